from __future__ import annotations

import os
from datetime import datetime
from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file
from sqlalchemy.exc import SQLAlchemyError

from ..app import db
from ..models import Certificate, Event
from ..services.certificates_preview import render_preview_png
from ..shared.certificate_sources import (
    certificate_stats,
    list_event_templates,
    load_event_template,
    load_event_templates,
    load_participant_context,
    participants_pending_certificates,
)
from ..shared.certificates import (
    CertificateRenderError,
    iter_batch,
    render_merged_certificate,
    render_template_page,
)
from ..shared.storage import certificate_filename, write_atomic

bp = Blueprint(
    "certificates_multi",
    __name__,
    url_prefix="/events/<int:event_id>/certificates/multi-template",
)


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _int_or_none(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _participant_for_event(event_id: int, participant_id: int | None):
    if participant_id is None:
        return None, (jsonify({"error": "participantId is required"}), 400)
    context = load_participant_context(participant_id)
    if not context or context.event_id != event_id:
        return None, (jsonify({"error": "Participant not found"}), 404)
    return context, None


def _pdf_response(data: bytes, filename: str, *, inline: bool):
    return send_file(
        BytesIO(data),
        mimetype="application/pdf",
        as_attachment=not inline,
        download_name=filename,
    )


@bp.get("")
def list_templates(event_id: int):
    templates = list_event_templates(event_id, current_app.config["SITE_ROOT"])
    return jsonify({"templates": templates})


@bp.get("/stats")
def stats(event_id: int):
    if not db.session.get(Event, event_id):
        return jsonify({"error": "Event not found"}), 404
    return jsonify({"success": True, "stats": certificate_stats(event_id).as_dict()})


@bp.post("/preview")
def preview(event_id: int):
    payload = _json_payload()
    template_index = _int_or_none(payload.get("templateIndex"))
    participant_id = _int_or_none(payload.get("participantId"))
    if participant_id is None or template_index is None:
        return jsonify({"error": "participantId and templateIndex are required"}), 400
    context, error = _participant_for_event(event_id, participant_id)
    if error:
        return error
    try:
        descriptor = load_event_template(
            event_id, template_index, current_app.config["SITE_ROOT"]
        )
        if not descriptor:
            return jsonify({"error": "Template not found"}), 404
        pdf_bytes = render_template_page(
            descriptor, context, locale=current_app.config["CERT_LOCALE"]
        )
    except CertificateRenderError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Multi-template preview failed")
        return jsonify({"error": "Failed to generate preview."}), 500
    return _pdf_response(
        pdf_bytes,
        f"preview-certificate-{participant_id}-{template_index}.pdf",
        inline=True,
    )


@bp.post("/preview-image")
def preview_image(event_id: int):
    payload = _json_payload()
    template_index = _int_or_none(payload.get("templateIndex"))
    participant_id = _int_or_none(payload.get("participantId"))
    if participant_id is None or template_index is None:
        return jsonify({"error": "participantId and templateIndex are required"}), 400
    context, error = _participant_for_event(event_id, participant_id)
    if error:
        return error
    try:
        descriptor = load_event_template(
            event_id, template_index, current_app.config["SITE_ROOT"]
        )
        if not descriptor:
            return jsonify({"error": "Template not found"}), 404
        result = render_preview_png(
            descriptor, context, locale=current_app.config["CERT_LOCALE"]
        )
    except CertificateRenderError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Multi-template raster preview failed")
        return jsonify({"error": "Failed to generate preview."}), 500
    return jsonify({"image": result.data_url, "warnings": list(result.warnings)})


@bp.post("/generate")
def generate(event_id: int):
    payload = _json_payload()
    participant_id = _int_or_none(payload.get("participantId"))
    context, error = _participant_for_event(event_id, participant_id)
    if error:
        return error
    try:
        templates = load_event_templates(event_id, current_app.config["SITE_ROOT"])
        if not templates:
            return jsonify({"error": "No templates found"}), 404
        pdf_bytes = render_merged_certificate(
            templates, context, locale=current_app.config["CERT_LOCALE"]
        )
    except CertificateRenderError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Multi-template generate failed")
        return jsonify({"error": "Failed to generate certificate."}), 500
    return _pdf_response(
        pdf_bytes, f"certificates-multi-{participant_id}.pdf", inline=False
    )


def generate_pending_certificates(event: Event) -> dict:
    """Batch-render and store certificates for participants still missing one.

    Each document is written and its row committed as soon as it is rendered.
    A participant whose file or row cannot be stored is counted as an error
    and the batch moves on.
    """
    site_root = current_app.config["SITE_ROOT"]
    participants = participants_pending_certificates(event.id)
    if not participants:
        raise LookupError("No participants found without certificates")
    templates = load_event_templates(event.id, site_root, strict=False)
    if not templates:
        raise LookupError("No certificate templates found for this event")
    template_ids = {tmpl.template_index: tmpl.template_id for tmpl in templates}

    cert_dir = os.path.join(site_root, "certificates")
    names = {context.id: context.name for context in participants}
    error_details: list[str] = []
    success = 0
    entries = iter_batch(
        participants,
        templates,
        now=datetime.now(),
        locale=current_app.config["CERT_LOCALE"],
    )
    for position, entry in enumerate(entries):
        label = f"participant {entry.participant_id} ({names.get(entry.participant_id) or ''})"
        if not entry.ok:
            error_details.append(f"Failed to generate certificate for {label}: {entry.error}")
            continue
        filename = certificate_filename(names.get(entry.participant_id), event.slug, position)
        try:
            write_atomic(os.path.join(cert_dir, filename), entry.document)
            db.session.add(
                Certificate(
                    participant_id=entry.participant_id,
                    template_id=template_ids.get(entry.template_index),
                    path=f"/certificates/{filename}",
                    sent=False,
                )
            )
            db.session.commit()
        except (OSError, SQLAlchemyError) as exc:
            db.session.rollback()
            current_app.logger.warning(
                "[CERT-FAIL] participant=%s store failed: %s", entry.participant_id, exc
            )
            error_details.append(f"Failed to store certificate for {label}: {exc}")
            continue
        success += 1
    total = len(participants)
    current_app.logger.info(
        "[CERT-BULK] event=%s total=%s success=%s errors=%s",
        event.id,
        total,
        success,
        total - success,
    )
    return {
        "total": total,
        "success": success,
        "errors": total - success,
        "errorDetails": error_details,
    }


@bp.post("/bulk-generate")
def bulk_generate(event_id: int):
    event = db.session.get(Event, event_id)
    if not event:
        return jsonify({"error": "Event not found"}), 404
    try:
        summary = generate_pending_certificates(event)
    except LookupError as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Bulk certificate generation failed")
        return jsonify({"error": "Failed to generate certificates"}), 500
    return jsonify(
        {
            "success": True,
            "message": "Bulk certificate generation completed",
            "stats": summary,
        }
    )
