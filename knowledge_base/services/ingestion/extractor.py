"""Plain-text extraction from uploaded documents.

Turns a raw byte buffer plus its declared media type into text:

* ``application/pdf`` -- PyMuPDF (``fitz``), page text joined in page order
* ``text/plain`` -- decoded through an encoding fallback chain
* ``application/vnd.openxmlformats-officedocument.wordprocessingml.document``
  -- python-docx, paragraph text joined in document order

Extraction is CPU-bound and synchronous; callers on the event loop run it
in a worker thread.
"""

from __future__ import annotations

import io
from collections.abc import Callable

import docx
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from knowledge_base.utils.errors import (
    EncodingFallbackExhaustedError,
    ExtractionFailedError,
    UnsupportedFormatError,
)

logger = structlog.get_logger(logger_name=__name__)

PDF_MEDIA_TYPE = "application/pdf"
TEXT_MEDIA_TYPE = "text/plain"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Separator inserted between PDF pages and between DOCX paragraphs.
SECTION_SEPARATOR = "\n\n"

DEFAULT_ENCODINGS: tuple[str, ...] = ("utf-8", "latin-1", "ascii")

_REPLACEMENT_CHAR = "\ufffd"


class TextExtractor:
    """Extracts plain text from PDF, plain-text and DOCX buffers.

    Parameters
    ----------
    encodings:
        Codecs tried in order for ``text/plain`` input.  The first codec
        that decodes strictly without producing U+FFFD wins.
    """

    def __init__(self, encodings: tuple[str, ...] = DEFAULT_ENCODINGS) -> None:
        self._encodings = encodings
        self._handlers: dict[str, Callable[[bytes], str]] = {
            PDF_MEDIA_TYPE: self._extract_pdf,
            TEXT_MEDIA_TYPE: self._extract_text,
            DOCX_MEDIA_TYPE: self._extract_docx,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def supported_media_types() -> list[str]:
        return [PDF_MEDIA_TYPE, TEXT_MEDIA_TYPE, DOCX_MEDIA_TYPE]

    def is_supported(self, media_type: str) -> bool:
        return _normalize(media_type) in self._handlers

    def extract(self, buffer: bytes, media_type: str) -> str:
        """Return the text content of *buffer*.

        Raises
        ------
        UnsupportedFormatError
            If *media_type* has no handler.
        ExtractionFailedError
            If the PDF or DOCX parser rejects the buffer.
        EncodingFallbackExhaustedError
            If no codec decodes a plain-text buffer cleanly.
        """
        handler = self._handlers.get(_normalize(media_type))
        if handler is None:
            raise UnsupportedFormatError(
                message=(
                    f"Unsupported file type: {media_type}. "
                    f"Allowed: {', '.join(self.supported_media_types())}"
                )
            )

        text = handler(buffer)
        logger.debug("text_extracted", media_type=media_type, chars=len(text))
        return text

    # ------------------------------------------------------------------
    # Format handlers
    # ------------------------------------------------------------------

    def _extract_text(self, buffer: bytes) -> str:
        for encoding in self._encodings:
            try:
                text = buffer.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                logger.warning("text_decode_failed", encoding=encoding)
                continue
            if _REPLACEMENT_CHAR in text:
                logger.warning("text_decode_replacement_chars", encoding=encoding)
                continue
            if encoding != self._encodings[0]:
                logger.info("text_decode_fallback_used", encoding=encoding)
            return text

        raise EncodingFallbackExhaustedError(
            message=f"Could not decode text with any of: {', '.join(self._encodings)}"
        )

    @staticmethod
    def _extract_pdf(buffer: bytes) -> str:
        try:
            doc = fitz.open(stream=buffer, filetype="pdf")
        except Exception as exc:
            raise ExtractionFailedError(
                message=f"Failed to open PDF: {exc}", provider_name="pymupdf"
            ) from exc

        try:
            pages = [doc[page_num].get_text("text") for page_num in range(len(doc))]
        except Exception as exc:
            raise ExtractionFailedError(
                message=f"Failed to read PDF text: {exc}", provider_name="pymupdf"
            ) from exc
        finally:
            doc.close()

        return SECTION_SEPARATOR.join(page.strip() for page in pages if page.strip())

    @staticmethod
    def _extract_docx(buffer: bytes) -> str:
        try:
            document = docx.Document(io.BytesIO(buffer))
        except Exception as exc:
            raise ExtractionFailedError(
                message=f"Failed to open DOCX: {exc}", provider_name="python-docx"
            ) from exc

        return SECTION_SEPARATOR.join(
            para.text for para in document.paragraphs if para.text.strip()
        )


def _normalize(media_type: str) -> str:
    """Drop parameters such as ``; charset=utf-8`` and lowercase the type."""
    return (media_type or "").split(";", 1)[0].strip().lower()
