from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from functools import reduce
from io import BytesIO
from typing import Iterable, Iterator, Sequence

from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .certificate_values import (
    DEFAULT_LOCALE,
    ParticipantContext,
    resolve_field_value,
    sanitize_text,
)
from .certificates_layout import (
    DESIGN_CANVAS_HEIGHT,
    DESIGN_CANVAS_SIZE,
    DESIGN_CANVAS_WIDTH,
    SAFE_FALLBACK_FONT,
    CertificateRenderError,
    FieldSpec,
    TemplateDescriptor,
    TemplateFieldFormatError,
    field_font_code,
)

logger = logging.getLogger("eventcert.certificates")

PAGE_SIZE: tuple[float, float] = (float(DESIGN_CANVAS_WIDTH), float(DESIGN_CANVAS_HEIGHT))

ALLOWED_IMAGE_EXTENSIONS: dict[str, str] = {
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
}

class TemplateAssetError(CertificateRenderError):
    """Raised when a template background is missing, unreadable or not PNG/JPEG."""


class FontResolutionError(CertificateRenderError):
    """Raised when a font code cannot be embedded on this host."""


@dataclass(frozen=True)
class BatchEntry:
    participant_id: int
    template_index: int | None
    document: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BatchResult:
    results: tuple[BatchEntry, ...] = field(default_factory=tuple)
    success_count: int = 0
    failure_count: int = 0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failures(self) -> list[BatchEntry]:
        return [entry for entry in self.results if not entry.ok]


def validate_template_image(path: str) -> str:
    """Check that ``path`` is an existing PNG or JPEG and return its format."""
    if not path:
        # unset, or resolved outside the site root
        raise TemplateAssetError("Template image path is missing or outside the site root")
    ext = os.path.splitext(path)[1].lower()
    expected = ALLOWED_IMAGE_EXTENSIONS.get(ext)
    if expected is None:
        raise TemplateAssetError("Template must be PNG or JPG/JPEG")
    if not os.path.isfile(path):
        raise TemplateAssetError(f"Template image file not found: {path}")
    try:
        with Image.open(path) as img:
            detected = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise TemplateAssetError(f"Template image is not readable: {path}") from exc
    if detected != expected:
        raise TemplateAssetError(
            f"Template image content is {detected or 'unknown'}, expected {expected}"
        )
    return detected


def canvas_to_page(
    x: float,
    y: float,
    *,
    canvas_size: tuple[float, float] = DESIGN_CANVAS_SIZE,
    page_size: tuple[float, float] = PAGE_SIZE,
) -> tuple[float, float]:
    """Map a top-left-origin design canvas point to bottom-left page space."""
    canvas_w, canvas_h = canvas_size
    page_w, page_h = page_size
    x_page = (x / canvas_w) * page_w
    y_page = page_h - (y / canvas_h) * page_h
    return x_page, y_page


def centered_origin(x_page: float, text_width: float) -> float:
    return x_page - text_width / 2.0


def _available_font_codes() -> set[str]:
    fonts = set(pdfmetrics.getRegisteredFontNames())
    try:
        fonts.update(pdfmetrics.standardFonts)
    except AttributeError:
        fonts.update({"Helvetica", "Times-Roman", "Courier"})
    return fonts


def _ensure_embeddable(font_code: str) -> str:
    if font_code not in _available_font_codes():
        raise FontResolutionError(f"Font {font_code} is not available")
    try:
        pdfmetrics.getFont(font_code)
    except Exception as exc:
        raise FontResolutionError(f"Font {font_code} cannot be embedded") from exc
    return font_code


def resolve_embeddable_font(spec: FieldSpec) -> str:
    """Resolve the field's font code, falling back to Helvetica when needed."""
    font_code = field_font_code(spec)
    try:
        return _ensure_embeddable(font_code)
    except FontResolutionError as exc:
        logger.warning(
            "[CERT-FONT] family=%s bold=%s italic=%s %s->%s (%s)",
            spec.font_family,
            spec.bold,
            spec.italic,
            font_code,
            SAFE_FALLBACK_FONT,
            exc,
        )
        return SAFE_FALLBACK_FONT


def _check_fields(descriptor: TemplateDescriptor) -> None:
    if descriptor.field_error:
        raise TemplateFieldFormatError(
            descriptor.field_error, descriptor.template_index
        )


def draw_template_page(
    pdf,
    descriptor: TemplateDescriptor,
    context: ParticipantContext,
    *,
    now: datetime,
    locale: str = DEFAULT_LOCALE,
) -> int:
    """Draw the background and every active field onto ``pdf``.

    ``pdf`` is a reportlab canvas (or anything with the same drawing calls).
    Returns the number of fields drawn.
    """
    _check_fields(descriptor)
    validate_template_image(descriptor.image_path)
    page_w, page_h = PAGE_SIZE
    pdf.drawImage(
        ImageReader(descriptor.image_path),
        0,
        0,
        width=page_w,
        height=page_h,
    )
    drawn = 0
    for spec in descriptor.fields:
        if not spec.active:
            continue
        text = sanitize_text(resolve_field_value(spec, context, now, locale))
        font_code = resolve_embeddable_font(spec)
        x_page, y_page = canvas_to_page(spec.x, spec.y)
        width = stringWidth(text, font_code, spec.font_size)
        pdf.setFont(font_code, spec.font_size)
        pdf.setFillColorRGB(0, 0, 0)
        pdf.drawString(centered_origin(x_page, width), y_page, text)
        drawn += 1
    return drawn


def render_template_page(
    descriptor: TemplateDescriptor,
    context: ParticipantContext,
    *,
    now: datetime | None = None,
    locale: str = DEFAULT_LOCALE,
) -> bytes:
    """Render one template for one participant as a single-page PDF."""
    now = now or datetime.now()
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=PAGE_SIZE)
    drawn = draw_template_page(pdf, descriptor, context, now=now, locale=locale)
    pdf.showPage()
    pdf.save()
    logger.info(
        "[CERT] participant=%s event=%s template=%s fields=%s",
        context.id,
        context.event_id,
        descriptor.template_index,
        drawn,
    )
    return buffer.getvalue()


def render_merged_certificate(
    templates: Iterable[TemplateDescriptor],
    context: ParticipantContext,
    *,
    now: datetime | None = None,
    locale: str = DEFAULT_LOCALE,
) -> bytes:
    """Render every template for one participant into one multi-page PDF.

    Pages follow ascending template index. Any failing template aborts the
    whole document.
    """
    ordered = sorted(templates, key=lambda tmpl: tmpl.template_index)
    if not ordered:
        raise ValueError("No certificate templates found for this event")
    for descriptor in ordered:
        _check_fields(descriptor)
        validate_template_image(descriptor.image_path)

    now = now or datetime.now()
    writer = PdfWriter()
    for descriptor in ordered:
        page_bytes = render_template_page(descriptor, context, now=now, locale=locale)
        writer.add_page(PdfReader(BytesIO(page_bytes)).pages[0])
    out_buf = BytesIO()
    writer.write(out_buf)
    return out_buf.getvalue()


def assign_templates(participant_count: int, template_count: int) -> list[int]:
    """Round-robin template positions for a participant list."""
    if template_count <= 0:
        raise ValueError("No certificate templates found for this event")
    return [position % template_count for position in range(participant_count)]


def iter_batch(
    participants: Sequence[ParticipantContext],
    templates: Sequence[TemplateDescriptor],
    *,
    now: datetime | None = None,
    locale: str = DEFAULT_LOCALE,
) -> Iterator[BatchEntry]:
    """Yield one rendered (or failed) entry per participant, in list order.

    The i-th participant gets template ``i mod len(templates)`` (templates
    ordered by index). A failing participant yields an entry carrying the
    error and the batch continues. Callers that persist each document can
    consume entries as they come instead of holding the whole batch.
    """
    ordered = sorted(templates, key=lambda tmpl: tmpl.template_index)
    assignments = assign_templates(len(participants), len(ordered))
    now = now or datetime.now()

    for position, context in enumerate(participants):
        descriptor = ordered[assignments[position]]
        try:
            document = render_template_page(descriptor, context, now=now, locale=locale)
        except CertificateRenderError as exc:
            logger.warning(
                "[CERT-FAIL] participant=%s template=%s reason=%s",
                context.id,
                descriptor.template_index,
                exc,
            )
            yield BatchEntry(
                context.id,
                descriptor.template_index,
                error=str(exc) or type(exc).__name__,
            )
            continue
        except Exception as exc:
            logger.exception(
                "[CERT-FAIL] participant=%s template=%s",
                context.id,
                descriptor.template_index,
            )
            yield BatchEntry(
                context.id,
                descriptor.template_index,
                error=f"{type(exc).__name__}: {exc}",
            )
            continue
        logger.info(
            "[CERT-BATCH] %s/%s participant=%s template=%s ok",
            position + 1,
            len(participants),
            context.id,
            descriptor.template_index,
        )
        yield BatchEntry(context.id, descriptor.template_index, document=document)


def _tally(
    acc: tuple[list[BatchEntry], int, int], entry: BatchEntry
) -> tuple[list[BatchEntry], int, int]:
    entries, succeeded, failed = acc
    entries.append(entry)
    if entry.ok:
        return entries, succeeded + 1, failed
    return entries, succeeded, failed + 1


def render_batch(
    participants: Sequence[ParticipantContext],
    templates: Sequence[TemplateDescriptor],
    *,
    now: datetime | None = None,
    locale: str = DEFAULT_LOCALE,
) -> BatchResult:
    """Render one single-page certificate per participant into a BatchResult.

    Participants are processed strictly in list order, see ``iter_batch``.
    """
    entries, succeeded, failed = reduce(
        _tally,
        iter_batch(participants, templates, now=now, locale=locale),
        ([], 0, 0),
    )
    return BatchResult(
        results=tuple(entries),
        success_count=succeeded,
        failure_count=failed,
    )
