"""
pdfrebuildx - Rebuild real PDF files from HTML "fake PDF" renditions.

Some document viewers publish a PDF as HTML: one raster image per page with
an absolutely positioned text layer on top. This library measures such a
rendering, finds the page structure and draws it back into a PDF with
embedded page images, embedded web fonts and selectable text.

Quick Start:
    >>> from pdfrebuildx import convert_file
    >>> convert_file('document.html', 'document.pdf')

Main Classes:
    - Converter: Open a document, check it, convert it
    - DocumentAssembler: Draw extracted pages into a PDF
    - BrowserSession: Capture layout snapshots with headless Chromium
    - SnapshotView: Layout snapshot loaded from JSON

Data Classes:
    - Page, ImagePrimitive, TextPrimitive: Extracted page content
    - ConversionOptions: Conversion settings
    - Matrix: 2D affine transform

Exceptions:
    - PdfRebuildError: Base exception
    - SnapshotError: Invalid or unreadable snapshot
    - FontResolutionError: Font family cannot be resolved
    - FontEmbeddingError: Font program cannot be embedded
    - UnsupportedImageError: Image is not a PNG data URI
    - ConverterBusyError: Overlapping converter operations

For CLI usage, use the 'pdfrebuildx' command after installation.
"""

__version__ = "1.0.0"

# Core classes
from pdfrebuildx.assembly import DocumentAssembler, patch_text_matrix
from pdfrebuildx.browser import BrowserSession
from pdfrebuildx.converter import Converter, convert_file, convert_snapshot_file, convert_view
from pdfrebuildx.extraction import extract_page, extract_pages
from pdfrebuildx.fonts import FontCache
from pdfrebuildx.segmentation import looks_like_pdf, segment_pages
from pdfrebuildx.view import RenderedDocumentView, SnapshotView

# Data types
from pdfrebuildx.matrix import Matrix
from pdfrebuildx.types import ConversionOptions, ImagePrimitive, Page, TextMode, TextPrimitive

# Exceptions
from pdfrebuildx.exceptions import (
    PdfRebuildError,
    SnapshotError,
    FontResolutionError,
    FontEmbeddingError,
    UnsupportedImageError,
    ConverterBusyError,
)

# Utility functions
from pdfrebuildx.utils import configure_logging

__author__ = "pdfrebuildx Contributors"
__license__ = "MIT"

__all__ = [
    # Main classes
    "Converter",
    "DocumentAssembler",
    "BrowserSession",
    "FontCache",
    "RenderedDocumentView",
    "SnapshotView",
    # Functions
    "convert_file",
    "convert_snapshot_file",
    "convert_view",
    "extract_page",
    "extract_pages",
    "looks_like_pdf",
    "patch_text_matrix",
    "segment_pages",
    "configure_logging",
    # Data types
    "ConversionOptions",
    "ImagePrimitive",
    "Matrix",
    "Page",
    "TextMode",
    "TextPrimitive",
    # Exceptions
    "PdfRebuildError",
    "SnapshotError",
    "FontResolutionError",
    "FontEmbeddingError",
    "UnsupportedImageError",
    "ConverterBusyError",
    # Version info
    "__version__",
]
