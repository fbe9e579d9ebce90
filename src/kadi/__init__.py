"""
KADI Docs - Business Document Rendering

Turns structured quote, invoice, receipt and discharge descriptions into
print-ready A4 PDFs with a circular business stamp and a QR call-to-action:
- models: pydantic document and profile definitions
- settings: immutable render configuration
- rendering: layout engine, stamp and QR rasters, composer, stamp overlay
"""

__version__ = "1.0.0"

__all__ = ['models', 'settings', 'rendering']
