import logging
from datetime import datetime
from io import BytesIO

import pytest
from PyPDF2 import PdfReader
from reportlab.pdfbase.pdfmetrics import stringWidth

from eventcert.shared import certificates
from eventcert.shared.certificates import (
    TemplateAssetError,
    TemplateFieldFormatError,
    canvas_to_page,
    centered_origin,
    draw_template_page,
    render_merged_certificate,
    render_template_page,
    resolve_embeddable_font,
    validate_template_image,
)
from eventcert.shared.certificates_layout import FieldSpec, build_template_descriptor

NOW = datetime(2025, 8, 17, 10, 0)


class RecordingCanvas:
    def __init__(self):
        self.image = None
        self.font = None
        self.fill = None
        self.strings = []

    def drawImage(self, image, x, y, width=None, height=None):
        self.image = (x, y, width, height)

    def setFont(self, name, size):
        self.font = (name, size)

    def setFillColorRGB(self, r, g, b):
        self.fill = (r, g, b)

    def drawString(self, x, y, text):
        self.strings.append({"x": x, "y": y, "text": text, "font": self.font, "fill": self.fill})


def _descriptor(image_path, fields, index=1):
    return build_template_descriptor(index, image_path, fields)


def test_coordinate_flip():
    assert canvas_to_page(0, 0) == (0, 595)
    assert canvas_to_page(100, 595) == (100, 0)
    assert canvas_to_page(421, 297.5) == (421, 297.5)


def test_coordinate_scaling_to_other_page_size():
    assert canvas_to_page(421, 0, page_size=(1684, 1190)) == (842, 1190)


def test_centered_origin():
    assert centered_origin(421, 100) == 371


def test_fields_are_centered_and_black(make_image, participant):
    path = make_image()
    descriptor = _descriptor(
        path,
        [
            {"key": "name", "x": 421, "y": 250, "fontFamily": "Helvetica", "fontSize": 36, "bold": True},
            {"key": "number", "x": 300, "y": 100, "fontFamily": "Courier", "fontSize": 12},
        ],
    )
    pdf = RecordingCanvas()
    drawn = draw_template_page(pdf, descriptor, participant, now=NOW)
    assert drawn == 2
    assert pdf.image == (0, 0, 842.0, 595.0)

    name_call, number_call = pdf.strings
    assert name_call["text"] == "JANE DOE"
    assert name_call["font"] == ("Times-Bold", 36)
    width = stringWidth("JANE DOE", "Times-Bold", 36)
    assert abs((name_call["x"] + width / 2) - 421) <= 1
    assert name_call["y"] == 595 - 250
    assert name_call["fill"] == (0, 0, 0)

    assert number_call["text"] == "NOMOR : 73/summit/III/2024"
    assert number_call["font"] == ("Courier", 12)
    number_width = stringWidth(number_call["text"], "Courier", 12)
    assert abs(number_call["x"] - (300 - number_width / 2)) <= 1


def test_measurement_uses_sanitized_text(make_image, participant):
    path = make_image()
    descriptor = _descriptor(
        path,
        [{"key": "custom", "label": "Hi\U0001F600\u200b there", "x": 400, "y": 10, "fontSize": 20}],
    )
    pdf = RecordingCanvas()
    draw_template_page(pdf, descriptor, participant, now=NOW)
    (call,) = pdf.strings
    assert call["text"] == "Hi there"
    assert call["x"] == pytest.approx(400 - stringWidth("Hi there", "Helvetica", 20) / 2)


def test_inactive_fields_are_skipped(make_image, participant):
    path = make_image()
    descriptor = _descriptor(
        path,
        [
            {"key": "name", "x": 421, "y": 250, "active": False},
            {"key": "event", "x": 421, "y": 300},
        ],
    )
    pdf = RecordingCanvas()
    assert draw_template_page(pdf, descriptor, participant, now=NOW) == 1
    assert [call["text"] for call in pdf.strings] == ["Tech Summit"]


def test_duplicate_keys_both_render(make_image, participant):
    path = make_image()
    descriptor = _descriptor(
        path,
        [{"key": "token", "x": 100, "y": 100}, {"key": "token", "x": 700, "y": 500}],
    )
    pdf = RecordingCanvas()
    draw_template_page(pdf, descriptor, participant, now=NOW)
    assert [call["text"] for call in pdf.strings] == ["TKT-123", "TKT-123"]


def test_render_template_page_produces_single_page_pdf(make_image, participant):
    path = make_image("bg.jpg", fmt="JPEG")
    descriptor = _descriptor(path, [{"key": "name", "x": 421, "y": 250, "fontSize": 30}])
    pdf_bytes = render_template_page(descriptor, participant, now=NOW)
    assert pdf_bytes.startswith(b"%PDF")
    reader = PdfReader(BytesIO(pdf_bytes))
    assert len(reader.pages) == 1
    page = reader.pages[0]
    assert float(page.mediabox.width) == 842
    assert float(page.mediabox.height) == 595
    assert "JANE DOE" in page.extract_text()


def test_missing_image_raises_asset_error(tmp_path, participant):
    descriptor = _descriptor(str(tmp_path / "gone.png"), [])
    with pytest.raises(TemplateAssetError):
        render_template_page(descriptor, participant, now=NOW)


def test_unsupported_extension_rejected_before_reading(make_image):
    path = make_image("bg.gif")
    with pytest.raises(TemplateAssetError, match="PNG or JPG"):
        validate_template_image(path)


def test_content_must_match_extension(make_image, tmp_path):
    jpeg_named_png = make_image("sneaky.png", fmt="JPEG")
    with pytest.raises(TemplateAssetError, match="expected PNG"):
        validate_template_image(jpeg_named_png)
    corrupt = tmp_path / "corrupt.jpg"
    corrupt.write_bytes(b"not an image")
    with pytest.raises(TemplateAssetError, match="not readable"):
        validate_template_image(str(corrupt))


def test_validate_returns_format(make_image):
    assert validate_template_image(make_image("ok.jpeg", fmt="JPEG")) == "JPEG"
    assert validate_template_image(make_image("ok.png")) == "PNG"


def test_unresolved_path_reports_missing_or_outside_root():
    with pytest.raises(TemplateAssetError, match="outside the site root"):
        validate_template_image("")


def test_poisoned_descriptor_raises_field_error(make_image, participant):
    descriptor = build_template_descriptor(5, make_image(), "oops", strict=False)
    with pytest.raises(TemplateFieldFormatError) as exc:
        render_template_page(descriptor, participant, now=NOW)
    assert exc.value.template_index == 5


def test_font_fallback_when_not_embeddable(monkeypatch, caplog):
    monkeypatch.setattr(certificates, "_available_font_codes", lambda: {"Helvetica"})
    spec = FieldSpec(key="event", x=0, y=0, font_family="Courier", bold=True)
    with caplog.at_level(logging.WARNING, logger="eventcert.certificates"):
        assert resolve_embeddable_font(spec) == "Helvetica"
    assert "[CERT-FONT]" in caplog.text
    assert "Courier-Bold->Helvetica" in caplog.text


def test_merge_orders_pages_by_template_index(make_image, participant):
    templates = [
        _descriptor(make_image(f"t{index}.png"), [{"key": "custom", "label": f"PAGE{index}", "x": 421, "y": 300}], index)
        for index in (3, 1, 2)
    ]
    pdf_bytes = render_merged_certificate(templates, participant, now=NOW)
    reader = PdfReader(BytesIO(pdf_bytes))
    assert len(reader.pages) == 3
    texts = [page.extract_text() for page in reader.pages]
    assert "PAGE1" in texts[0]
    assert "PAGE2" in texts[1]
    assert "PAGE3" in texts[2]


def test_merge_fails_when_any_template_fails(make_image, tmp_path, participant):
    good = _descriptor(make_image("good.png"), [], 1)
    missing = _descriptor(str(tmp_path / "missing.png"), [], 2)
    with pytest.raises(TemplateAssetError):
        render_merged_certificate([good, missing], participant, now=NOW)
    poisoned = build_template_descriptor(3, make_image("p.png"), {"x": 1}, strict=False)
    with pytest.raises(TemplateFieldFormatError):
        render_merged_certificate([good, poisoned], participant, now=NOW)


def test_merge_requires_templates(participant):
    with pytest.raises(ValueError):
        render_merged_certificate([], participant, now=NOW)
