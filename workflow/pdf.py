"""
Purchase order PDF handling.

PDFs are rendered by an external service: the client forwards a PO id and
receives the document as a base64 string.  This module only decodes and
stores that payload.
"""
import base64
import binascii
import logging
import re
from pathlib import Path

from .errors import ExternalServiceError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"

# "data:application/pdf;base64,...." prefix some renderers add
_DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,", re.IGNORECASE)


def decode_pdf_payload(payload: str) -> bytes:
    """Decode a base64 (optionally data-URL) payload into PDF bytes."""
    if not isinstance(payload, str) or not payload.strip():
        raise ExternalServiceError("PDF service returned an empty document")

    encoded = _DATA_URL_PREFIX.sub("", payload.strip())
    try:
        pdf_bytes = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ExternalServiceError(f"PDF payload is not valid base64: {exc}") from exc

    if not pdf_bytes.startswith(PDF_MAGIC):
        raise ExternalServiceError("PDF service returned data that is not a PDF document")
    return pdf_bytes


def save_pdf(po_id: str, pdf_bytes: bytes, export_dir: Path) -> Path:
    """Write the PO document to <export_dir>/<po_id>.pdf and return the path."""
    export_dir.mkdir(parents=True, exist_ok=True)
    path = export_dir / f"{po_id}.pdf"
    path.write_bytes(pdf_bytes)
    logger.info("Saved PO document %s (%d bytes)", path, len(pdf_bytes))
    return path
