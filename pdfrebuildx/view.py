"""Read-only access to a rendered layout snapshot.

The reconstruction engine only talks to :class:`RenderedDocumentView`. The
in-memory :class:`SnapshotView` implements it over the JSON snapshot format
written by :mod:`pdfrebuildx.browser`, so live capture and offline conversion
share one code path.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional, Protocol, Sequence, Union

from .exceptions import SnapshotError

LOGGER = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

_LEADING_NUMBER_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


@dataclass(slots=True)
class BoundingBox:
    """Element box in viewport coordinates (top-left origin, y grows down)."""

    left: float
    top: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(slots=True)
class ComputedStyle:
    """The subset of the computed style the reconstruction needs."""

    color: str = "rgb(0, 0, 0)"
    opacity: float = 1.0
    font_family: str = ""
    font_size: float = 16.0
    transform: str = "none"


@dataclass(frozen=True, slots=True)
class FontFaceRule:
    """A ``@font-face`` rule; ``base_url`` resolves relative ``url()`` sources."""

    font_family: str
    src: str
    base_url: Optional[str] = None


@dataclass(eq=False, slots=True)
class TextNode:
    """Raw text child of an element."""

    text: str


@dataclass(eq=False)
class SnapshotElement:
    """Element of a :class:`SnapshotView`; handles compare by identity."""

    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    box: Optional[BoundingBox] = None
    style: ComputedStyle = field(default_factory=ComputedStyle)
    baseline: float = 0.0
    nodes: List[Union["SnapshotElement", TextNode]] = field(default_factory=list)
    parent: Optional["SnapshotElement"] = field(default=None, repr=False)

    def append(self, node: Union["SnapshotElement", TextNode]) -> None:
        if isinstance(node, SnapshotElement):
            node.parent = self
        self.nodes.append(node)


class RenderedDocumentView(Protocol):
    """Protocol for the rendered element tree consumed by the engine.

    ``child_nodes`` returns elements and :class:`TextNode` instances in
    document order; ``children`` returns elements only. Boxes use the
    viewport convention: top-left origin with y increasing downward.
    """

    @property
    def root(self) -> Any:
        """Element the segmentation starts from (normally ``<body>``)."""

    @property
    def base_url(self) -> Optional[str]:
        """URL of the loaded document."""

    def bounding_box(self, element: Any) -> Optional[BoundingBox]:
        """Measured box of ``element`` or ``None`` when it cannot be measured."""

    def computed_style(self, element: Any) -> ComputedStyle:
        """Computed style of ``element``."""

    def text_content(self, element: Any) -> str:
        """Concatenated text of ``element`` and all of its descendants."""

    def children(self, element: Any) -> Sequence[Any]:
        """Child elements of ``element`` in document order."""

    def child_nodes(self, element: Any) -> Sequence[Any]:
        """Child elements and text nodes of ``element`` in document order."""

    def parent(self, element: Any) -> Any:
        """Parent element or ``None`` for the document root."""

    def tag_name(self, element: Any) -> str:
        """Lower-case tag name."""

    def attribute(self, element: Any, name: str) -> Optional[str]:
        """Attribute value or ``None``."""

    def probe_baseline(self, element: Any) -> float:
        """Distance from the element's box bottom up to its text baseline.

        Measured by appending a zero-size probe glyph as the last child,
        taking ``probe.bottom - element.bottom`` and removing the probe.
        """

    def font_face_rules(self) -> Sequence[FontFaceRule]:
        """All ``@font-face`` rules of the document's style sheets."""


class SnapshotView:
    """:class:`RenderedDocumentView` over an in-memory snapshot tree."""

    def __init__(
        self,
        root: SnapshotElement,
        *,
        font_faces: Sequence[FontFaceRule] = (),
        base_url: Optional[str] = None,
    ) -> None:
        self._root = root
        self._font_faces = list(font_faces)
        self._base_url = base_url

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, base_url: Optional[str] = None) -> "SnapshotView":
        """Build a view from the decoded JSON snapshot format."""

        if not isinstance(data, Mapping):
            raise SnapshotError("Snapshot must be a JSON object.")
        version = data.get("version", SNAPSHOT_VERSION)
        if version != SNAPSHOT_VERSION:
            raise SnapshotError(f"Unsupported snapshot version: {version!r}")
        raw_root = data.get("root")
        if not isinstance(raw_root, Mapping):
            raise SnapshotError("Snapshot has no root element.")

        root = _parse_element(raw_root)
        font_faces = [_parse_font_face(raw) for raw in data.get("fontFaces") or []]
        url = base_url or data.get("url")
        LOGGER.debug("Loaded snapshot of %s with %d font-face rules", url, len(font_faces))
        return cls(root, font_faces=font_faces, base_url=url)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "SnapshotView":
        """Load a snapshot previously written with :func:`save_snapshot`."""

        snapshot_path = Path(path)
        try:
            data = json.loads(snapshot_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise SnapshotError(f"Unable to read snapshot: {path}. Error: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SnapshotError(f"Snapshot is not valid JSON: {path}. Error: {exc}") from exc
        return cls.from_dict(data)

    # ------------------------------------------------------------------
    # RenderedDocumentView implementation
    # ------------------------------------------------------------------
    @property
    def root(self) -> SnapshotElement:
        return self._root

    @property
    def base_url(self) -> Optional[str]:
        return self._base_url

    def bounding_box(self, element: SnapshotElement) -> Optional[BoundingBox]:
        return element.box

    def computed_style(self, element: SnapshotElement) -> ComputedStyle:
        return element.style

    def text_content(self, element: SnapshotElement) -> str:
        return "".join(_iter_text(element))

    def children(self, element: SnapshotElement) -> Sequence[SnapshotElement]:
        return [node for node in element.nodes if isinstance(node, SnapshotElement)]

    def child_nodes(self, element: SnapshotElement) -> Sequence[Union[SnapshotElement, TextNode]]:
        return list(element.nodes)

    def parent(self, element: SnapshotElement) -> Optional[SnapshotElement]:
        return element.parent

    def tag_name(self, element: SnapshotElement) -> str:
        return element.tag

    def attribute(self, element: SnapshotElement, name: str) -> Optional[str]:
        return element.attributes.get(name)

    def probe_baseline(self, element: SnapshotElement) -> float:
        # The probe was measured in the browser at capture time.
        return element.baseline

    def font_face_rules(self) -> Sequence[FontFaceRule]:
        return list(self._font_faces)


def save_snapshot(data: Mapping[str, Any], destination: Union[str, Path]) -> Path:
    """Write a captured snapshot dictionary as JSON."""

    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(data, handle)
    return path


def parse_css_number(value: Any, default: float) -> float:
    """Parse a leading number the way ``parseFloat`` does (``"12px"`` -> 12)."""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, str):
        return default
    match = _LEADING_NUMBER_RE.match(value)
    if match is None:
        return default
    return float(match.group(1))


def _iter_text(element: SnapshotElement) -> Iterator[str]:
    stack: list[Union[SnapshotElement, TextNode]] = [element]
    while stack:
        node = stack.pop()
        if isinstance(node, TextNode):
            yield node.text
        else:
            stack.extend(reversed(node.nodes))


def _parse_box(raw: Any) -> Optional[BoundingBox]:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        values = [raw.get("left"), raw.get("top"), raw.get("width"), raw.get("height")]
    elif isinstance(raw, Sequence) and not isinstance(raw, str):
        values = list(raw)
    else:
        raise SnapshotError(f"Invalid element box: {raw!r}")
    if len(values) != 4:
        raise SnapshotError(f"Invalid element box: {raw!r}")
    try:
        left, top, width, height = (float(value) for value in values)
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"Invalid element box: {raw!r}") from exc
    return BoundingBox(left=left, top=top, width=width, height=height)


def _parse_style(raw: Any) -> ComputedStyle:
    if raw is None:
        return ComputedStyle()
    if not isinstance(raw, Mapping):
        raise SnapshotError(f"Invalid element style: {raw!r}")
    return ComputedStyle(
        color=str(raw.get("color") or "rgb(0, 0, 0)"),
        opacity=parse_css_number(raw.get("opacity"), 1.0),
        font_family=str(raw.get("fontFamily") or ""),
        font_size=parse_css_number(raw.get("fontSize"), 16.0),
        transform=str(raw.get("transform") or "none"),
    )


def _parse_element(raw: Mapping[str, Any]) -> SnapshotElement:
    tag = raw.get("tag")
    if not isinstance(tag, str) or not tag:
        raise SnapshotError(f"Snapshot element without a tag: {dict(raw)!r:.80}")
    attributes = raw.get("attrs") or {}
    if not isinstance(attributes, Mapping):
        raise SnapshotError(f"Invalid attributes on <{tag}>")

    element = SnapshotElement(
        tag=tag.lower(),
        attributes={str(key): str(value) for key, value in attributes.items()},
        box=_parse_box(raw.get("box")),
        style=_parse_style(raw.get("style")),
        baseline=parse_css_number(raw.get("baseline"), 0.0),
    )
    for child in raw.get("children") or []:
        if not isinstance(child, Mapping):
            raise SnapshotError(f"Invalid child node under <{tag}>: {child!r:.80}")
        if "text" in child and "tag" not in child:
            element.append(TextNode(str(child["text"])))
        else:
            element.append(_parse_element(child))
    return element


def _parse_font_face(raw: Any) -> FontFaceRule:
    if not isinstance(raw, Mapping):
        raise SnapshotError(f"Invalid font-face rule: {raw!r:.80}")
    return FontFaceRule(
        font_family=str(raw.get("fontFamily") or ""),
        src=str(raw.get("src") or ""),
        base_url=raw.get("baseUrl"),
    )


__all__ = [
    "BoundingBox",
    "ComputedStyle",
    "FontFaceRule",
    "RenderedDocumentView",
    "SnapshotElement",
    "SnapshotView",
    "TextNode",
    "parse_css_number",
    "save_snapshot",
]
