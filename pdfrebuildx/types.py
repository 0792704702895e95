"""
Type definitions and dataclasses for pdfrebuildx.

This module defines the page primitives produced by extraction and consumed
by document assembly, plus the conversion options.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .matrix import Matrix

Color = Tuple[float, ...]


@dataclass(slots=True)
class ImagePrimitive:
    """
    Raster image placed on a page.

    Attributes:
        left: Distance from the page's left edge
        bottom: Distance from the page's bottom edge
        width: Drawn width
        height: Drawn height
        src: Image source, normally a ``data:`` URI
    """

    left: float
    bottom: float
    width: float
    height: float
    src: str


@dataclass(slots=True)
class TextPrimitive:
    """
    Positioned text run.

    ``bottom`` is the baseline position measured from the page's bottom edge.
    ``color`` holds 0-255 channel values with any alpha already folded into
    ``opacity``. ``transform`` is ``None`` when no ancestor was transformed.
    """

    left: float
    bottom: float
    width: float
    height: float
    font_family: str
    size: float
    color: Optional[Color]
    opacity: float
    transform: Optional[Matrix]
    text: str


@dataclass(slots=True)
class Page:
    """One logical output page with its primitives in paint order."""

    width: float
    height: float
    images: List[ImagePrimitive] = field(default_factory=list)
    text: List[TextPrimitive] = field(default_factory=list)


class TextMode(str, Enum):
    """How extracted text is painted in the output document."""

    VISIBLE = "visible"
    TRANSPARENT = "transparent"


@dataclass(frozen=True)
class ConversionOptions:
    """Options controlling snapshot to PDF conversion."""

    text_mode: TextMode = TextMode.VISIBLE
    producer: str = "pdfrebuildx"
    title: Optional[str] = None
