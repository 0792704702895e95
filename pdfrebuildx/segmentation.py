"""Split a rendered document into pages from where its images sit.

The heuristic only applies to documents whose pages were rendered as one
embedded image each and glued into a single scrollable view. The deepest
container holding a strict majority of all images is the pagination root;
its child elements are the pages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Optional

from .view import RenderedDocumentView

LOGGER = logging.getLogger(__name__)

__all__ = [
    "NodeKind",
    "NodeArena",
    "Segmentation",
    "find_embedded_images",
    "is_embedded_image",
    "looks_like_pdf",
    "segment_pages",
]


class NodeKind(Enum):
    IMAGE = "image"
    CONTAINER = "container"


@dataclass(slots=True)
class NodeRecord:
    """Arena entry; ``parent`` and ``children`` are indices into the arena."""

    kind: NodeKind
    element: Any
    parent: Optional[int]
    children: List[int] = field(default_factory=list)
    image_count: int = 0


class NodeArena:
    """Minimal tree spanning the root and every image's ancestor chain."""

    def __init__(self, root: Any) -> None:
        self.records: List[NodeRecord] = []
        self._index: dict[int, int] = {}
        self.root = self._create(NodeKind.CONTAINER, root, None)

    def _create(self, kind: NodeKind, element: Any, parent: Optional[int]) -> int:
        index = len(self.records)
        self.records.append(NodeRecord(kind=kind, element=element, parent=parent))
        self._index[id(element)] = index
        return index

    def find(self, element: Any) -> Optional[int]:
        return self._index.get(id(element))

    def add_image(self, view: RenderedDocumentView, image: Any) -> None:
        """Attach ``image`` and the missing part of its ancestor chain."""

        chain = [image]
        element = view.parent(image)
        while element is not None and self.find(element) is None:
            chain.append(element)
            element = view.parent(element)
        if element is None:
            LOGGER.debug("Image outside of the segmentation root ignored")
            return

        parent = self.find(element)
        for depth, member in enumerate(reversed(chain)):
            kind = NodeKind.IMAGE if depth == len(chain) - 1 else NodeKind.CONTAINER
            index = self._create(kind, member, parent)
            self.records[parent].children.append(index)
            parent = index

    def count_images(self, index: Optional[int] = None) -> int:
        """Fill ``image_count`` bottom-up and return the total under ``index``."""

        start = self.root if index is None else index
        # Children are always created after their parent.
        order = list(self._subtree(start))
        for node_index in reversed(order):
            record = self.records[node_index]
            if record.kind is NodeKind.IMAGE:
                record.image_count = 1
            else:
                record.image_count = sum(self.records[child].image_count for child in record.children)
        return self.records[start].image_count

    def _subtree(self, start: int) -> Iterator[int]:
        stack = [start]
        while stack:
            index = stack.pop()
            yield index
            stack.extend(self.records[index].children)

    def pagination_root(self) -> int:
        """Descend while a child holds strictly more than half of all images."""

        total = self.records[self.root].image_count
        threshold = total / 2
        current = self.root
        while True:
            for child in self.records[current].children:
                if self.records[child].image_count > threshold:
                    current = child
                    break
            else:
                return current


@dataclass(slots=True)
class Segmentation:
    """Outcome of a successful page segmentation."""

    pagination_root: Any
    page_roots: List[Any]
    image_count: int


def is_embedded_image(view: RenderedDocumentView, element: Any) -> bool:
    """``<img>`` whose source is an inline ``data:`` reference."""

    if view.tag_name(element) != "img":
        return False
    src = view.attribute(element, "src")
    return bool(src) and src.startswith("data:")


def find_embedded_images(view: RenderedDocumentView, root: Any = None) -> List[Any]:
    """Return every embedded image under ``root`` in document order."""

    start = view.root if root is None else root
    images: List[Any] = []
    stack = list(reversed(view.children(start)))
    while stack:
        element = stack.pop()
        if is_embedded_image(view, element):
            images.append(element)
            continue
        stack.extend(reversed(view.children(element)))
    return images


def segment_pages(view: RenderedDocumentView) -> Optional[Segmentation]:
    """Return the page-root elements of ``view`` or ``None`` if not paginatable."""

    images = find_embedded_images(view)
    if not images:
        LOGGER.info("No embedded images found; document is not paginatable")
        return None

    arena = NodeArena(view.root)
    for image in images:
        arena.add_image(view, image)

    total = arena.count_images()
    if total <= 1:
        LOGGER.info("Only %d embedded image found; document is not paginatable", total)
        return None

    root_index = arena.pagination_root()
    pagination_root = arena.records[root_index].element
    page_roots = list(view.children(pagination_root))
    if not page_roots:
        LOGGER.info("Pagination root has no child elements; document is not paginatable")
        return None

    LOGGER.debug(
        "Pagination root <%s> holds %d of %d images across %d pages",
        view.tag_name(pagination_root),
        arena.records[root_index].image_count,
        total,
        len(page_roots),
    )
    return Segmentation(pagination_root=pagination_root, page_roots=page_roots, image_count=total)


def looks_like_pdf(view: RenderedDocumentView) -> bool:
    """Whether ``view`` looks like a paginated document rendered as images."""

    return segment_pages(view) is not None
