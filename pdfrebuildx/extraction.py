"""Turn page-root elements into flat lists of image and text primitives."""

from __future__ import annotations

import logging
import math
from typing import Any, List, Optional, Sequence

from .matrix import Matrix
from .segmentation import segment_pages
from .types import Color, ImagePrimitive, Page, TextPrimitive
from .view import BoundingBox, RenderedDocumentView, TextNode, parse_css_number

LOGGER = logging.getLogger(__name__)

__all__ = ["extract_pages", "extract_page", "is_text_leaf", "parse_color"]


def extract_pages(
    view: RenderedDocumentView,
    page_roots: Optional[Sequence[Any]] = None,
) -> Optional[List[Page]]:
    """Extract one :class:`Page` per page root.

    Segmentation runs first when ``page_roots`` is omitted. ``None`` means the
    document is not paginatable. Pages whose size cannot be measured are
    skipped.
    """

    if page_roots is None:
        segmentation = segment_pages(view)
        if segmentation is None:
            return None
        page_roots = segmentation.page_roots

    pages: List[Page] = []
    for number, element in enumerate(page_roots, start=1):
        page = extract_page(view, element)
        if page is None:
            LOGGER.warning("Skipping page %d: its size cannot be measured", number)
            continue
        pages.append(page)
    return pages


def extract_page(view: RenderedDocumentView, element: Any) -> Optional[Page]:
    """Extract a single page or return ``None`` when its box is unusable."""

    rect = view.bounding_box(element)
    if not _is_measurable(rect):
        return None

    page = Page(width=rect.width, height=rect.height)
    _visit(view, page, element, rect.left, rect.bottom, 1.0, Matrix.identity())
    return page


def is_text_leaf(view: RenderedDocumentView, element: Any) -> bool:
    """Whether ``element`` is emitted as one atomic text run.

    True when a direct child is a non-blank text node, or when every direct
    child is a text node, provided the full text content is non-empty.
    Wrappers whose only content is nested markup are passed through.
    """

    nodes = view.child_nodes(element)
    mixes_text = any(isinstance(node, TextNode) and node.text.strip() for node in nodes)
    only_text = all(isinstance(node, TextNode) for node in nodes)
    return (mixes_text or only_text) and view.text_content(element) != ""


def parse_color(value: str) -> Optional[List[float]]:
    """Parse ``rgb(...)``/``rgba(...)`` into channel values (alpha kept)."""

    text = (value or "").strip()
    for prefix in ("rgba(", "rgb("):
        if text.startswith(prefix) and text.endswith(")"):
            body = text[len(prefix):-1]
            parts = body.replace("/", ",").replace(",", " ").split()
            try:
                return [_parse_channel(part, index) for index, part in enumerate(parts)]
            except ValueError:
                return None
    return None


def _parse_channel(part: str, index: int) -> float:
    if not part.endswith("%"):
        return float(part)
    fraction = float(part[:-1]) / 100.0
    # Alpha is 0-1, colour channels are 0-255.
    return fraction if index == 3 else fraction * 255.0


def _is_measurable(rect: Optional[BoundingBox]) -> bool:
    if rect is None:
        return False
    values = (rect.left, rect.top, rect.width, rect.height)
    if not all(math.isfinite(value) for value in values):
        return False
    return rect.width > 0 and rect.height > 0


def _visit(
    view: RenderedDocumentView,
    page: Page,
    element: Any,
    page_x: float,
    page_y: float,
    opacity: float,
    matrix: Matrix,
) -> None:
    if view.tag_name(element) == "img":
        rect = view.bounding_box(element)
        if rect is None:
            LOGGER.debug("Image without a box skipped")
            return
        page.images.append(
            ImagePrimitive(
                left=rect.left - page_x,
                bottom=page_y - rect.bottom,
                width=rect.width,
                height=rect.height,
                src=view.attribute(element, "src") or "",
            )
        )
        return

    style = view.computed_style(element)
    own = Matrix.from_style_string(style.transform)
    if not own.is_identity:
        matrix = matrix.multiply(own)

    if is_text_leaf(view, element):
        rect = view.bounding_box(element)
        if rect is None:
            LOGGER.debug("Text element without a box skipped")
            return
        baseline = view.probe_baseline(element)

        channels = parse_color(style.color)
        text_opacity = opacity * style.opacity
        if channels is not None and len(channels) == 4:
            text_opacity *= channels.pop()
        color: Optional[Color] = tuple(channels) if channels else None

        page.text.append(
            TextPrimitive(
                left=rect.left - page_x,
                bottom=page_y - rect.bottom - baseline,
                width=rect.width,
                height=rect.height,
                font_family=style.font_family,
                size=parse_css_number(style.font_size, 0.0),
                color=color,
                opacity=text_opacity,
                transform=None if matrix.is_identity else matrix,
                text=view.text_content(element),
            )
        )
        return

    for child in view.children(element):
        _visit(view, page, child, page_x, page_y, opacity * style.opacity, matrix)
