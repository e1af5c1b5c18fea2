from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

DESIGN_CANVAS_WIDTH = 842
DESIGN_CANVAS_HEIGHT = 595
DESIGN_CANVAS_SIZE: tuple[int, int] = (DESIGN_CANVAS_WIDTH, DESIGN_CANVAS_HEIGHT)

MAX_TEMPLATES_PER_EVENT = 6

FIELD_KEYS: tuple[str, ...] = ("name", "event", "number", "token", "date")

FONT_FAMILIES: tuple[str, ...] = ("Helvetica", "Times Roman", "Courier")
SERIF_FAMILY = "Times Roman"
DEFAULT_FONT_FAMILY = "Helvetica"
DEFAULT_FONT_SIZE = 24

STYLE_NORMAL = "normal"
STYLE_BOLD = "bold"
STYLE_ITALIC = "italic"
STYLE_BOLD_ITALIC = "bolditalic"

SAFE_FALLBACK_FONT = "Helvetica"

# (family, style) -> standard PDF font code
FONT_TABLE: Mapping[tuple[str, str], str] = MappingProxyType(
    {
        ("Helvetica", STYLE_NORMAL): "Helvetica",
        ("Helvetica", STYLE_BOLD): "Helvetica-Bold",
        ("Helvetica", STYLE_ITALIC): "Helvetica-Oblique",
        ("Helvetica", STYLE_BOLD_ITALIC): "Helvetica-BoldOblique",
        ("Times Roman", STYLE_NORMAL): "Times-Roman",
        ("Times Roman", STYLE_BOLD): "Times-Bold",
        ("Times Roman", STYLE_ITALIC): "Times-Italic",
        ("Times Roman", STYLE_BOLD_ITALIC): "Times-BoldItalic",
        ("Courier", STYLE_NORMAL): "Courier",
        ("Courier", STYLE_BOLD): "Courier-Bold",
        ("Courier", STYLE_ITALIC): "Courier-Oblique",
        ("Courier", STYLE_BOLD_ITALIC): "Courier-BoldOblique",
    }
)

PDF_FONT_CODES: frozenset[str] = frozenset(FONT_TABLE.values())


class CertificateRenderError(RuntimeError):
    """Base class for failures that prevent a certificate page from rendering."""


class TemplateFieldFormatError(CertificateRenderError):
    """Raised when a stored field list cannot be turned into FieldSpecs."""

    def __init__(self, message: str, template_index: int | None = None):
        super().__init__(message)
        self.template_index = template_index


@dataclass(frozen=True)
class FieldSpec:
    key: str
    x: float
    y: float
    font_family: str = DEFAULT_FONT_FAMILY
    font_size: int = DEFAULT_FONT_SIZE
    bold: bool = False
    italic: bool = False
    active: bool = True
    label: str = ""
    # Stored by the designer but never drawn; every field renders black.
    color: str | None = None


@dataclass(frozen=True)
class TemplateDescriptor:
    template_index: int
    image_path: str
    image_size: tuple[int, int] = DESIGN_CANVAS_SIZE
    fields: tuple[FieldSpec, ...] = field(default_factory=tuple)
    template_id: int | None = None
    field_error: str | None = None


def style_key(bold: bool, italic: bool) -> str:
    if bold and italic:
        return STYLE_BOLD_ITALIC
    if bold:
        return STYLE_BOLD
    if italic:
        return STYLE_ITALIC
    return STYLE_NORMAL


def resolve_font_code(
    font_family: str | None,
    bold: bool = False,
    italic: bool = False,
    *,
    key: str | None = None,
) -> str:
    """Map a logical family and style flags to a standard PDF font code.

    Emphasised participant names always use the serif family. Unknown
    family/style pairs resolve to plain Helvetica.
    """
    family = font_family or DEFAULT_FONT_FAMILY
    if key == "name" and (bold or italic):
        family = SERIF_FAMILY
    return FONT_TABLE.get((family, style_key(bold, italic)), SAFE_FALLBACK_FONT)


def field_font_code(spec: FieldSpec) -> str:
    return resolve_font_code(spec.font_family, spec.bold, spec.italic, key=spec.key)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_font_size(value: Any) -> int:
    try:
        size = int(value)
    except (TypeError, ValueError):
        return DEFAULT_FONT_SIZE
    return size if size > 0 else DEFAULT_FONT_SIZE


def sanitize_field(raw: Any, *, template_index: int | None = None) -> FieldSpec:
    if not isinstance(raw, dict):
        raise TemplateFieldFormatError(
            "Template field must be an object", template_index
        )
    x_val = raw.get("x")
    y_val = raw.get("y")
    if not _is_number(x_val) or not _is_number(y_val):
        raise TemplateFieldFormatError(
            "Field position (x/y) must be number", template_index
        )
    label = raw.get("label")
    color = raw.get("color")
    return FieldSpec(
        key=str(raw.get("key") or ""),
        x=float(x_val),
        y=float(y_val),
        font_family=str(raw.get("fontFamily") or DEFAULT_FONT_FAMILY),
        font_size=_coerce_font_size(raw.get("fontSize")),
        bold=bool(raw.get("bold")),
        italic=bool(raw.get("italic")),
        active=raw.get("active") is not False,
        label=label if isinstance(label, str) else "",
        color=color if isinstance(color, str) else None,
    )


def sanitize_fields(raw: Any, *, template_index: int | None = None) -> tuple[FieldSpec, ...]:
    """Validate a stored field list (JSON text or decoded list)."""
    if raw is None or raw == "":
        return ()
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise TemplateFieldFormatError(
                f"Invalid template fields format: {exc}", template_index
            ) from exc
    if not isinstance(raw, list):
        raise TemplateFieldFormatError(
            "Invalid template fields format: Fields is not array", template_index
        )
    return tuple(sanitize_field(item, template_index=template_index) for item in raw)


def parse_image_size(raw: Any) -> tuple[int, int]:
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return DESIGN_CANVAS_SIZE
    if isinstance(raw, dict):
        width = raw.get("width")
        height = raw.get("height")
        if _is_number(width) and _is_number(height) and width > 0 and height > 0:
            return int(width), int(height)
    return DESIGN_CANVAS_SIZE


def build_template_descriptor(
    template_index: int,
    image_path: str,
    fields: Any,
    *,
    image_size: Any = None,
    template_id: int | None = None,
    strict: bool = True,
) -> TemplateDescriptor:
    """Build a typed descriptor from stored template data.

    With ``strict=False`` a malformed field list does not raise; the error
    message is kept on the descriptor and raised again when it is rendered.
    """
    if not 1 <= int(template_index) <= MAX_TEMPLATES_PER_EVENT:
        raise ValueError(
            f"Template index must be between 1 and {MAX_TEMPLATES_PER_EVENT}"
        )
    size = parse_image_size(image_size)
    try:
        specs = sanitize_fields(fields, template_index=template_index)
    except TemplateFieldFormatError as exc:
        if strict:
            raise
        return TemplateDescriptor(
            template_index=int(template_index),
            image_path=image_path,
            image_size=size,
            template_id=template_id,
            field_error=str(exc),
        )
    return TemplateDescriptor(
        template_index=int(template_index),
        image_path=image_path,
        image_size=size,
        fields=specs,
        template_id=template_id,
    )
