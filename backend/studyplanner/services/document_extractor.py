from __future__ import annotations

import io
import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Optional

from studyplanner.core.config import settings
from studyplanner.core.errors import ExtractionEmpty, ValidationError


logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
IMAGE_MIMES = {"image/jpeg", "image/png"}
SUPPORTED_MIMES = {PDF_MIME} | IMAGE_MIMES

_EXT_TO_MIME = {
    ".pdf": PDF_MIME,
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}

# Control chars (including NUL) that some PDF extractors emit.
_CTRL_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_SOFT_HYPHEN = "\u00ad"
_MULTI_BLANK_RE = re.compile(r"\n{3,}")
_MULTI_SPACE_RE = re.compile(r"[ \t]{2,}")


@dataclass
class ExtractedSyllabus:
    """Result of reading an uploaded syllabus.

    PDFs come back with ``text`` filled in. Images are not read locally:
    ``text`` stays None and the bytes are kept so the model can transcribe
    them in the same call that generates the plan.
    """

    mime_type: str
    text: Optional[str] = None
    image: Optional[bytes] = None

    @property
    def needs_model_ocr(self) -> bool:
        return self.text is None and self.image is not None


def _sanitize_text(text: str) -> str:
    if not text:
        return ""
    return _CTRL_RE.sub(" ", text)


def _normalize_text(text: str) -> str:
    text = _sanitize_text(text)
    text = unicodedata.normalize("NFKC", text).replace(_SOFT_HYPHEN, "")
    text = _MULTI_SPACE_RE.sub(" ", text)
    text = _MULTI_BLANK_RE.sub("\n\n", text)
    return text.strip()


def resolve_mime_type(content_type: Optional[str], filename: Optional[str]) -> str:
    ctype = (content_type or "").split(";")[0].strip().lower()
    if ctype and ctype != "application/octet-stream":
        return ctype
    fname = (filename or "").lower()
    for ext, mime in _EXT_TO_MIME.items():
        if fname.endswith(ext):
            return mime
    return ctype


def _extract_text_pdf_pymupdf(data: bytes) -> str:
    """PyMuPDF (fitz). Usually best for PDFs with a proper text layer."""
    import fitz  # PyMuPDF

    parts = []
    with fitz.open(stream=data, filetype="pdf") as doc:
        for page in doc:
            page_text = (page.get_text("text") or "").strip()
            if page_text:
                parts.append(page_text)
    return "\n\n".join(parts)


def _extract_text_pdf_pypdf(data: bytes) -> str:
    """pypdf fallback."""
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(data))
    parts = []
    for page in reader.pages:
        page_text = (page.extract_text() or "").strip()
        if page_text:
            parts.append(page_text)
    return "\n\n".join(parts)


def extract_pdf_text(data: bytes) -> str:
    text = ""
    for name, extractor in (("pymupdf", _extract_text_pdf_pymupdf), ("pypdf", _extract_text_pdf_pypdf)):
        try:
            text = _normalize_text(extractor(data))
        except Exception as e:  # corrupt or encrypted PDFs raise library-specific errors
            logger.warning("pdf extractor %s failed: %s", name, e)
            continue
        if text:
            logger.info("pdf extracted with %s chars=%d", name, len(text))
            return text
    return text


def _verify_image(data: bytes) -> None:
    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError("Uploaded image could not be read.") from e


def extract_syllabus(data: bytes, *, content_type: Optional[str], filename: Optional[str] = None) -> ExtractedSyllabus:
    """Validate an upload and extract its text.

    Unsupported type and oversize files fail before any extraction attempt.
    """
    mime = resolve_mime_type(content_type, filename)
    if mime not in SUPPORTED_MIMES:
        raise ValidationError("Invalid file type. Please upload a PDF, JPEG or PNG.")
    if not data:
        raise ValidationError("Uploaded file is empty.")
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(f"File size exceeds the {settings.SYLLABUS_MAX_UPLOAD_MB}MB limit.")

    if mime in IMAGE_MIMES:
        _verify_image(data)
        return ExtractedSyllabus(mime_type=mime, image=data)

    text = extract_pdf_text(data)
    if not text:
        raise ExtractionEmpty("Could not extract text from the PDF.")
    return ExtractedSyllabus(mime_type=mime, text=text)


def truncate_for_prompt(text: str, max_chars: int) -> str:
    return (text or "")[: max(0, int(max_chars))]
