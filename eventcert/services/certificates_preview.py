import base64
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO

from PIL import Image, ImageDraw, ImageFont

from ..shared.certificate_values import (
    DEFAULT_LOCALE,
    ParticipantContext,
    resolve_field_value,
    sanitize_text,
)
from ..shared.certificates import (
    TemplateFieldFormatError,
    canvas_to_page,
    centered_origin,
    validate_template_image,
)
from ..shared.certificates_layout import (
    DESIGN_CANVAS_HEIGHT,
    DESIGN_CANVAS_WIDTH,
    TemplateDescriptor,
    field_font_code,
)

_TEXT_COLOR = (0, 0, 0)

_FONT_PATHS = {
    "Helvetica": "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "Helvetica-Bold": "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "Helvetica-Oblique": "/usr/share/fonts/truetype/dejavu/DejaVuSans-Oblique.ttf",
    "Helvetica-BoldOblique": "/usr/share/fonts/truetype/dejavu/DejaVuSans-BoldOblique.ttf",
    "Times-Roman": "/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf",
    "Times-Bold": "/usr/share/fonts/truetype/dejavu/DejaVuSerif-Bold.ttf",
    "Times-Italic": "/usr/share/fonts/truetype/dejavu/DejaVuSerif-Italic.ttf",
    "Times-BoldItalic": "/usr/share/fonts/truetype/dejavu/DejaVuSerif-BoldItalic.ttf",
    "Courier": "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "Courier-Bold": "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Bold.ttf",
    "Courier-Oblique": "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Oblique.ttf",
    "Courier-BoldOblique": "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-BoldOblique.ttf",
}
_DEFAULT_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"


@dataclass(frozen=True)
class PreviewResult:
    image_base64: str
    warnings: tuple[str, ...]
    size: tuple[int, int]

    @property
    def data_url(self) -> str:
        return f"data:image/png;base64,{self.image_base64}"


def _font_path(pdf_font: str) -> str:
    return _FONT_PATHS.get(pdf_font) or _DEFAULT_FONT_PATH


def _load_font(pdf_font: str, size_px: int, warnings: list[str]):
    size_px = max(size_px, 1)
    path = _font_path(pdf_font)
    try:
        return ImageFont.truetype(path, size_px)
    except OSError:
        pass
    try:
        font = ImageFont.truetype(_DEFAULT_FONT_PATH, size_px)
    except OSError:
        font = ImageFont.load_default(size_px)
    message = f"[preview-font-fallback] {pdf_font} unavailable; using default font"
    if message not in warnings:
        warnings.append(message)
    return font


def render_preview_png(
    descriptor: TemplateDescriptor,
    context: ParticipantContext,
    *,
    now: datetime | None = None,
    locale: str = DEFAULT_LOCALE,
    scale: float = 1.0,
) -> PreviewResult:
    """Rasterise one template page for on-screen preview."""
    if descriptor.field_error:
        raise TemplateFieldFormatError(descriptor.field_error, descriptor.template_index)
    validate_template_image(descriptor.image_path)
    now = now or datetime.now()

    page_w = DESIGN_CANVAS_WIDTH * scale
    page_h = DESIGN_CANVAS_HEIGHT * scale
    size_px = (max(int(round(page_w)), 1), max(int(round(page_h)), 1))
    with Image.open(descriptor.image_path) as source:
        background = source.convert("RGB").resize(size_px)
    draw = ImageDraw.Draw(background)
    warnings: list[str] = []

    for spec in descriptor.fields:
        if not spec.active:
            continue
        text = sanitize_text(resolve_field_value(spec, context, now, locale))
        if not text:
            continue
        font = _load_font(field_font_code(spec), int(round(spec.font_size * scale)), warnings)
        x_page, y_page = canvas_to_page(spec.x, spec.y, page_size=(page_w, page_h))
        # raster rows grow downward; convert the baseline back
        baseline_px = page_h - y_page
        x_px = centered_origin(x_page, font.getlength(text))
        draw.text((x_px, baseline_px), text, font=font, fill=_TEXT_COLOR, anchor="ls")

    buffer = BytesIO()
    background.save(buffer, format="PNG")
    image_base64 = base64.b64encode(buffer.getvalue()).decode("ascii")
    return PreviewResult(
        image_base64=image_base64,
        warnings=tuple(warnings),
        size=size_px,
    )
