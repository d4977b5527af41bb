"""Text extraction for the supported document formats.

Uses PyMuPDF (fitz) for PDF and python-docx for Word documents. Extraction
never raises: every failure is reported as an ``ExtractionOutcome`` whose
status is not ``ok``, and callers treat that as "no content".
"""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass
from typing import Literal

import docx
import fitz  # PyMuPDF

from pocketsearch.utils.files import extension_of
from pocketsearch.utils.text import normalize_whitespace

LOGGER = logging.getLogger(__name__)

PLAIN_TEXT_EXTENSIONS = frozenset({"txt", "md"})

_init_lock = threading.Lock()
_initialized = False


def ensure_initialized() -> None:
    """One-time, process-wide setup of the extraction backends."""
    global _initialized
    if _initialized:
        return
    with _init_lock:
        if _initialized:
            return
        # MuPDF prints its own diagnostics to stderr; failures are logged here instead.
        fitz.TOOLS.mupdf_display_errors(False)
        _initialized = True


@dataclass(frozen=True, slots=True)
class ExtractionOutcome:
    status: Literal["ok", "unsupported", "corrupt"]
    text: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def text_or_empty(self) -> str:
        return self.text if self.ok else ""


def _read_plain_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _read_pdf_text(data: bytes) -> str:
    ensure_initialized()
    with fitz.open(stream=data, filetype="pdf") as document:
        pages = [normalize_whitespace([page.get_text() or ""]) for page in document]
    return "\n".join(page for page in pages if page)


def _read_docx_text(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text for cell in row.cells if cell.text]
            if cells:
                parts.append(" ".join(cells))
    return normalize_whitespace(parts)


_READERS = {
    "txt": _read_plain_text,
    "md": _read_plain_text,
    "pdf": _read_pdf_text,
    "docx": _read_docx_text,
}


def extract_text(name: str, data: bytes) -> ExtractionOutcome:
    """Extract text from raw file bytes, dispatching on the file extension."""
    reader = _READERS.get(extension_of(name))
    if reader is None:
        return ExtractionOutcome("unsupported")
    try:
        return ExtractionOutcome("ok", reader(data))
    except Exception as exc:
        LOGGER.warning("Failed to extract text from %s: %s", name, exc)
        return ExtractionOutcome("corrupt")
