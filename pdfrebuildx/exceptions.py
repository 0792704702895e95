"""
Custom exceptions for pdfrebuildx.

This module defines all custom exceptions used throughout the library.
"""


class PdfRebuildError(Exception):
    """Base exception for all pdfrebuildx errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown PDF reconstruction error occurred."


class SnapshotError(PdfRebuildError):
    """Raised when a layout snapshot cannot be acquired or decoded."""

    @property
    def default_message(self) -> str:
        return "Invalid or unreadable layout snapshot."


class FontResolutionError(PdfRebuildError):
    """Raised when a font family cannot be resolved to an embeddable font."""

    def __init__(self, font_family: str, message: str = "") -> None:
        self.font_family = font_family
        super().__init__(message or f"Cannot resolve font {font_family!r}.")

    @property
    def default_message(self) -> str:
        return "Font resolution failed."


class FontEmbeddingError(FontResolutionError):
    """Raised when font data was found but cannot be embedded."""

    @property
    def default_message(self) -> str:
        return "Font program cannot be embedded."


class UnsupportedImageError(PdfRebuildError):
    """Raised when an embedded image is not in a supported raster format."""

    @property
    def default_message(self) -> str:
        return "Unsupported image encoding; only PNG data URIs can be embedded."


class ConverterBusyError(PdfRebuildError):
    """Raised when a converter operation overlaps another or runs out of order."""

    @property
    def default_message(self) -> str:
        return "Converter is busy with another operation."
