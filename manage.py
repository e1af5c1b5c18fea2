import click
from flask import current_app
from flask.cli import FlaskGroup
from flask_migrate import Migrate

from eventcert.app import create_app, db
from eventcert.models import Event
from eventcert.routes.certificates_multi import generate_pending_certificates
from eventcert.shared.certificate_sources import (
    load_event_template,
    load_event_templates,
    load_participant_context,
)
from eventcert.shared.certificates import (
    CertificateRenderError,
    render_merged_certificate,
    render_template_page,
)
from eventcert.shared.storage import write_atomic


migrate = Migrate()


def create_eventcert_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_eventcert_app)


@cli.command("gen_cert")
@click.option("--participant", "participant_id", required=True, type=int)
@click.option("--out", "out_path", required=True, type=click.Path(dir_okay=False))
@click.option("--template", "template_index", type=int, default=None)
def gen_cert(participant_id: int, out_path: str, template_index: int | None):
    """Render a participant's certificate (all templates, or one) to a PDF file."""
    context = load_participant_context(participant_id)
    if not context:
        click.echo("Participant not found", err=True)
        raise SystemExit(1)
    site_root = current_app.config["SITE_ROOT"]
    locale = current_app.config["CERT_LOCALE"]
    try:
        if template_index is not None:
            descriptor = load_event_template(context.event_id, template_index, site_root)
            if not descriptor:
                click.echo("Template not found", err=True)
                raise SystemExit(1)
            pdf_bytes = render_template_page(descriptor, context, locale=locale)
        else:
            templates = load_event_templates(context.event_id, site_root)
            if not templates:
                click.echo("No templates found", err=True)
                raise SystemExit(1)
            pdf_bytes = render_merged_certificate(templates, context, locale=locale)
    except CertificateRenderError as exc:
        click.echo(f"Certificate failed: {exc}", err=True)
        raise SystemExit(1)
    write_atomic(out_path, pdf_bytes)
    click.echo(out_path)


@cli.command("bulk_certs")
@click.option("--event", "event_id", required=True, type=int)
def bulk_certs(event_id: int):
    """Generate certificates for every verified participant still missing one."""
    event = db.session.get(Event, event_id)
    if not event:
        click.echo("Event not found", err=True)
        raise SystemExit(1)
    try:
        summary = generate_pending_certificates(event)
    except LookupError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1)
    click.echo(
        f"total={summary['total']} success={summary['success']} errors={summary['errors']}"
    )
    for detail in summary["errorDetails"]:
        click.echo(detail, err=True)


@cli.command("init_db")
def init_db():
    """Create tables directly, for local use without migrations."""
    db.create_all()
    click.echo("Tables created")


if __name__ == "__main__":
    cli()
