import json
import os
from datetime import datetime

import pytest
from PIL import Image
from PyPDF2 import PdfReader

from eventcert.app import db
from eventcert.models import (
    Certificate,
    CertificateTemplateMulti,
    Event,
    Participant,
    Ticket,
)
from manage import bulk_certs, gen_cert


@pytest.fixture
def cli_app(app):
    app.cli.add_command(gen_cert)
    app.cli.add_command(bulk_certs)
    return app


def _seed(app, template_count=2):
    event = Event(name="Workshop", slug="workshop", start_time=datetime(2025, 8, 17, 9))
    db.session.add(event)
    db.session.flush()
    ticket = Ticket(event_id=event.id, token="TKT-CLI", is_verified=True)
    db.session.add(ticket)
    db.session.flush()
    person = Participant(ticket_id=ticket.id, name="Budi Santoso", email="budi@example.com")
    db.session.add(person)
    for index in range(1, template_count + 1):
        rel = f"/certificates/templates/cli-{index}.png"
        path = os.path.join(app.config["SITE_ROOT"], rel.lstrip("/"))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        Image.new("RGB", (842, 595), "white").save(path)
        db.session.add(
            CertificateTemplateMulti(
                event_id=event.id,
                template_index=index,
                template_path=rel,
                template_fields=json.dumps([{"key": "name", "x": 421, "y": 300}]),
            )
        )
    db.session.commit()
    return event.id, person.id


def test_gen_cert_writes_merged_pdf(cli_app, tmp_path):
    _, participant_id = _seed(cli_app)
    out = tmp_path / "out" / "cert.pdf"
    runner = cli_app.test_cli_runner()
    res = runner.invoke(
        args=["gen_cert", "--participant", str(participant_id), "--out", str(out)]
    )
    assert res.exit_code == 0
    assert len(PdfReader(str(out)).pages) == 2


def test_gen_cert_single_template(cli_app, tmp_path):
    _, participant_id = _seed(cli_app)
    out = tmp_path / "single.pdf"
    runner = cli_app.test_cli_runner()
    res = runner.invoke(
        args=[
            "gen_cert",
            "--participant",
            str(participant_id),
            "--out",
            str(out),
            "--template",
            "2",
        ]
    )
    assert res.exit_code == 0
    reader = PdfReader(str(out))
    assert len(reader.pages) == 1
    assert "BUDI SANTOSO" in reader.pages[0].extract_text()


def test_gen_cert_unknown_participant(cli_app, tmp_path):
    runner = cli_app.test_cli_runner()
    res = runner.invoke(
        args=["gen_cert", "--participant", "404", "--out", str(tmp_path / "x.pdf")]
    )
    assert res.exit_code == 1
    assert not (tmp_path / "x.pdf").exists()


def test_bulk_certs_stores_certificates(cli_app):
    event_id, participant_id = _seed(cli_app, template_count=1)
    runner = cli_app.test_cli_runner()
    res = runner.invoke(args=["bulk_certs", "--event", str(event_id)])
    assert res.exit_code == 0
    assert "total=1 success=1 errors=0" in res.output
    cert = Certificate.query.filter_by(participant_id=participant_id).one()
    assert os.path.isfile(os.path.join(cli_app.config["SITE_ROOT"], cert.path.lstrip("/")))

    again = runner.invoke(args=["bulk_certs", "--event", str(event_id)])
    assert again.exit_code == 1


def test_bulk_certs_unknown_event(cli_app):
    runner = cli_app.test_cli_runner()
    res = runner.invoke(args=["bulk_certs", "--event", "999"])
    assert res.exit_code == 1
