"""
Dashboard business logic services.
"""
from .export import (
    build_export_payload,
    render_po_xml,
    DEFAULT_PO_XML_TEMPLATE,
)

__all__ = [
    "build_export_payload",
    "render_po_xml",
    "DEFAULT_PO_XML_TEMPLATE",
]
