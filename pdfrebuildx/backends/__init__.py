"""Backend abstractions for pdfrebuildx."""

from .base import BackendDocument, BackendPage, DocumentBackend
from .pypdf_backend import PypdfBackend

__all__ = [
    "BackendDocument",
    "BackendPage",
    "DocumentBackend",
    "PypdfBackend",
]
