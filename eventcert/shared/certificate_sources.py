"""Convert stored events, participants and templates into typed render inputs."""

from __future__ import annotations

import logging
from typing import NamedTuple

from PIL import Image, UnidentifiedImageError

from ..app import db
from ..models import (
    Certificate,
    CertificateTemplateMulti,
    Event,
    Participant,
    Ticket,
)
from .certificate_values import ParticipantContext
from .certificates_layout import (
    DESIGN_CANVAS_SIZE,
    FieldSpec,
    TemplateDescriptor,
    build_template_descriptor,
)
from .storage import public_path

logger = logging.getLogger("eventcert.certificates")


class CertificateStats(NamedTuple):
    total_participants: int
    with_certificates: int
    without_certificates: int
    template_count: int
    progress_percentage: int
    can_generate: bool

    def as_dict(self) -> dict:
        return {
            "totalParticipants": self.total_participants,
            "withCertificates": self.with_certificates,
            "withoutCertificates": self.without_certificates,
            "templateCount": self.template_count,
            "progressPercentage": self.progress_percentage,
            "canGenerate": self.can_generate,
        }


def _context_from_row(participant: Participant, ticket: Ticket, event: Event) -> ParticipantContext:
    return ParticipantContext(
        id=participant.id,
        name=participant.name,
        email=participant.email,
        token=ticket.token,
        event_id=event.id,
        event_name=event.name,
        event_slug=event.slug,
        event_start_time=event.start_time,
    )


def load_participant_context(participant_id: int) -> ParticipantContext | None:
    row = (
        db.session.query(Participant, Ticket, Event)
        .join(Ticket, Participant.ticket_id == Ticket.id)
        .join(Event, Ticket.event_id == Event.id)
        .filter(Participant.id == participant_id)
        .first()
    )
    if not row:
        return None
    return _context_from_row(*row)


def template_image_size(path: str | None) -> tuple[int, int]:
    if not path:
        return DESIGN_CANVAS_SIZE
    try:
        with Image.open(path) as img:
            return img.size
    except (FileNotFoundError, UnidentifiedImageError, OSError):
        return DESIGN_CANVAS_SIZE


def descriptor_from_row(
    row: CertificateTemplateMulti, site_root: str, *, strict: bool = True
) -> TemplateDescriptor:
    image_path = public_path(site_root, row.template_path) or ""
    return build_template_descriptor(
        row.template_index,
        image_path,
        row.template_fields,
        image_size=row.template_size,
        template_id=row.id,
        strict=strict,
    )


def _template_rows(event_id: int) -> list[CertificateTemplateMulti]:
    return (
        db.session.query(CertificateTemplateMulti)
        .filter(CertificateTemplateMulti.event_id == event_id)
        .order_by(CertificateTemplateMulti.template_index.asc())
        .all()
    )


def load_event_templates(
    event_id: int, site_root: str, *, strict: bool = True
) -> list[TemplateDescriptor]:
    """Templates of an event in ascending index order.

    With ``strict=False`` malformed field lists are carried on the descriptor
    instead of raising, so a batch can fail only the participants using them.
    """
    descriptors = [
        descriptor_from_row(row, site_root, strict=strict)
        for row in _template_rows(event_id)
    ]
    for descriptor in descriptors:
        if descriptor.field_error:
            logger.warning(
                "[CERT-TEMPLATE] event=%s template=%s invalid fields: %s",
                event_id,
                descriptor.template_index,
                descriptor.field_error,
            )
    return descriptors


def load_event_template(
    event_id: int, template_index: int, site_root: str
) -> TemplateDescriptor | None:
    row = (
        db.session.query(CertificateTemplateMulti)
        .filter_by(event_id=event_id, template_index=template_index)
        .one_or_none()
    )
    if not row:
        return None
    return descriptor_from_row(row, site_root)


def field_payload(spec: FieldSpec) -> dict:
    """camelCase view of a field, the shape the designer stores."""
    return {
        "key": spec.key,
        "x": spec.x,
        "y": spec.y,
        "fontFamily": spec.font_family,
        "fontSize": spec.font_size,
        "bold": spec.bold,
        "italic": spec.italic,
        "active": spec.active,
        "label": spec.label,
        "color": spec.color,
    }


def list_event_templates(event_id: int, site_root: str) -> list[dict]:
    """Template summaries for designer callers, with native image sizes."""
    summaries: list[dict] = []
    for row in _template_rows(event_id):
        width, height = template_image_size(public_path(site_root, row.template_path))
        descriptor = descriptor_from_row(row, site_root, strict=False)
        summaries.append(
            {
                "templateIndex": row.template_index,
                "templateUrl": row.template_path,
                "fields": [field_payload(spec) for spec in descriptor.fields],
                "fieldCount": len(descriptor.fields),
                "fieldError": descriptor.field_error,
                "templateSize": {"width": width, "height": height},
            }
        )
    return summaries


def _verified_participants(event_id: int):
    return (
        db.session.query(Participant, Ticket, Event)
        .join(Ticket, Participant.ticket_id == Ticket.id)
        .join(Event, Ticket.event_id == Event.id)
        .filter(Ticket.event_id == event_id, Ticket.is_verified.is_(True))
    )


def _certified_ids():
    return db.select(Certificate.participant_id).where(
        Certificate.participant_id.isnot(None)
    )


def participants_pending_certificates(event_id: int) -> list[ParticipantContext]:
    """Verified participants without a certificate, earliest registration first."""
    rows = (
        _verified_participants(event_id)
        .filter(~Participant.id.in_(_certified_ids()))
        .order_by(Participant.registered_at.asc(), Participant.id.asc())
        .all()
    )
    return [_context_from_row(*row) for row in rows]


def certificate_stats(event_id: int) -> CertificateStats:
    total = (
        _verified_participants(event_id)
        .with_entities(db.func.count(db.distinct(Participant.id)))
        .scalar()
        or 0
    )
    with_certs = (
        _verified_participants(event_id)
        .filter(Participant.id.in_(_certified_ids()))
        .with_entities(db.func.count(db.distinct(Participant.id)))
        .scalar()
        or 0
    )
    template_count = (
        db.session.query(db.func.count(CertificateTemplateMulti.id))
        .filter(CertificateTemplateMulti.event_id == event_id)
        .scalar()
        or 0
    )
    without_certs = total - with_certs
    progress = round(with_certs / total * 100) if total else 0
    return CertificateStats(
        total_participants=total,
        with_certificates=with_certs,
        without_certificates=without_certs,
        template_count=template_count,
        progress_percentage=progress,
        can_generate=template_count > 0 and without_certs > 0,
    )
