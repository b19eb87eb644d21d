from __future__ import annotations

from io import BytesIO

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from careerpath.resume_ingest import (
    EmptyContent,
    NoFileProvided,
    PdfParseError,
    ResumeUpload,
    UnsupportedFileType,
    ingest_resume,
    normalize_mime_type,
)


def build_pdf_bytes(*lines: str) -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    _, height = A4
    y = height - 72
    for line in lines:
        pdf.drawString(72, y, line)
        y -= 18
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def test_normalize_mime_type_strips_parameters() -> None:
    assert normalize_mime_type("Text/Plain; charset=UTF-8") == "text/plain"
    assert normalize_mime_type(None) == ""


def test_missing_upload() -> None:
    with pytest.raises(NoFileProvided, match="No file provided"):
        ingest_resume(None)


def test_plain_text_is_decoded() -> None:
    upload = ResumeUpload(content="Engenheira de dados, São Paulo".encode("utf-8"), content_type="text/plain")
    assert ingest_resume(upload) == "Engenheira de dados, São Paulo"


def test_invalid_utf8_is_replaced_not_rejected() -> None:
    upload = ResumeUpload(content=b"Python \xff developer", content_type="text/plain")
    assert ingest_resume(upload) == "Python � developer"


def test_pdf_text_is_extracted() -> None:
    upload = ResumeUpload(
        content=build_pdf_bytes("Jane Doe", "Senior Python Engineer"),
        content_type="application/pdf",
        filename="resume.pdf",
    )
    text = ingest_resume(upload)
    assert "Jane Doe" in text
    assert "Senior Python Engineer" in text


def test_corrupt_pdf_raises_parse_error() -> None:
    with pytest.raises(PdfParseError, match="Failed to parse PDF file"):
        ingest_resume(ResumeUpload(content=b"garbage bytes", content_type="application/pdf"))


def test_blank_pdf_is_empty_content() -> None:
    with pytest.raises(EmptyContent):
        ingest_resume(ResumeUpload(content=build_pdf_bytes(), content_type="application/pdf"))


@pytest.mark.parametrize(
    "content_type",
    ["application/msword", "image/png", "", "application/octet-stream"],
)
def test_other_types_are_unsupported(content_type: str) -> None:
    # Only the declared type is trusted; a text body under another type is still refused.
    with pytest.raises(UnsupportedFileType):
        ingest_resume(ResumeUpload(content=b"plain words", content_type=content_type, filename="resume.txt"))
