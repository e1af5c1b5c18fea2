from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from .certificates_layout import FieldSpec

ROMAN_MONTHS: tuple[str, ...] = (
    "",
    "I",
    "II",
    "III",
    "IV",
    "V",
    "VI",
    "VII",
    "VIII",
    "IX",
    "X",
    "XI",
    "XII",
)

MONTH_NAMES: dict[str, tuple[str, ...]] = {
    "id": (
        "Januari",
        "Februari",
        "Maret",
        "April",
        "Mei",
        "Juni",
        "Juli",
        "Agustus",
        "September",
        "Oktober",
        "November",
        "Desember",
    ),
    "en": (
        "January",
        "February",
        "March",
        "April",
        "May",
        "June",
        "July",
        "August",
        "September",
        "October",
        "November",
        "December",
    ),
}

DEFAULT_LOCALE = "id"
CERTIFICATE_NUMBER_PREFIX = "NOMOR : "

_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")
_UNSUPPORTED_RE = re.compile("[^\x20-\x7e\u00a0-\u024f]")


@dataclass(frozen=True)
class ParticipantContext:
    id: int
    name: str | None
    event_id: int
    event_name: str | None
    event_slug: str | None = None
    event_start_time: datetime | None = None
    email: str | None = None
    token: str | None = None


def roman_month(month: int) -> str:
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {month!r}")
    return ROMAN_MONTHS[month]


def certificate_number(context: ParticipantContext, now: datetime) -> str:
    """Build the deterministic certificate number for a participant/event pair.

    The month and year come from the event start time; ``now`` is only used
    when the event has no start time recorded.
    """
    reference = context.event_start_time or now
    return (
        f"{CERTIFICATE_NUMBER_PREFIX}{context.id}{context.event_id}"
        f"/{context.event_slug or ''}"
        f"/{roman_month(reference.month)}/{reference.year:04d}"
    )


def format_long_date(value: datetime, locale: str = DEFAULT_LOCALE) -> str:
    months = MONTH_NAMES.get(locale, MONTH_NAMES[DEFAULT_LOCALE])
    return f"{value.day} {months[value.month - 1]} {value.year}"


def resolve_field_value(
    spec: FieldSpec,
    context: ParticipantContext,
    now: datetime,
    locale: str = DEFAULT_LOCALE,
) -> str:
    key = spec.key
    if key == "name":
        return (context.name or "").upper()
    if key == "event":
        return context.event_name or ""
    if key == "number":
        return certificate_number(context, now)
    if key == "token":
        return context.token or ""
    if key == "date":
        return format_long_date(now, locale)
    return spec.label or ""


def sanitize_text(value: str | None) -> str:
    """Drop characters the standard PDF fonts cannot draw."""
    if not value:
        return ""
    return _UNSUPPORTED_RE.sub("", _ZERO_WIDTH_RE.sub("", value))
