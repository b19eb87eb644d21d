from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from io import BytesIO

from PyPDF2 import PdfReader

logger = logging.getLogger("careerpath.ingest")

PDF_MIME_TYPE = "application/pdf"
TEXT_MIME_TYPE = "text/plain"


class IngestionError(ValueError):
    message = "Invalid resume upload"
    code = "INVALID_UPLOAD"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class NoFileProvided(IngestionError):
    message = "No file provided"
    code = "NO_FILE"


class PdfParseError(IngestionError):
    message = "Failed to parse PDF file"
    code = "PDF_PARSE_FAILED"


class UnsupportedFileType(IngestionError):
    message = "Unsupported file type. Please upload a PDF or text file."
    code = "UNSUPPORTED_FILE_TYPE"


class EmptyContent(IngestionError):
    message = "No text content found in the file"
    code = "EMPTY_CONTENT"


@dataclass
class ResumeUpload:
    content: bytes
    content_type: str
    filename: str | None = None


def normalize_mime_type(raw: str | None) -> str:
    return (raw or "").split(";", 1)[0].strip().lower()


def extract_pdf_text(pdf_bytes: bytes) -> str:
    try:
        reader = PdfReader(BytesIO(pdf_bytes))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as exc:
        logger.warning(json.dumps({"event": "pdf_parse_failed", "reason": str(exc)}, ensure_ascii=False))
        raise PdfParseError() from exc
    return "\n".join(pages)


def ingest_resume(upload: ResumeUpload | None) -> str:
    """Turn an uploaded resume into plain text, trusting only the declared MIME type."""
    if upload is None:
        raise NoFileProvided()

    mime_type = normalize_mime_type(upload.content_type)
    if mime_type == PDF_MIME_TYPE:
        text = extract_pdf_text(upload.content)
    elif mime_type == TEXT_MIME_TYPE:
        text = upload.content.decode("utf-8", errors="replace")
    else:
        raise UnsupportedFileType()

    if not text.strip():
        raise EmptyContent()
    return text
