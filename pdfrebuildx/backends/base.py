"""Backend protocol for authoring the output document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from ..types import Color

Operation = Tuple[List[Any], bytes]

PUSH_GRAPHICS_STATE = b"q"
SET_TEXT_MATRIX = b"Tm"


@dataclass
class BackendPage:
    """Output page under construction.

    ``operations`` is the ordered, mutable list of ``(operands, operator)``
    pairs drawn so far. Callers may patch entries in place until the
    document is serialised; operands support ``float()``.
    """

    width: float
    height: float
    operations: List[Operation] = field(default_factory=list)

    def make_operands(self, values: Sequence[float]) -> List[Any]:
        """Wrap plain numbers as operands suitable for ``operations``."""
        raise NotImplementedError


@dataclass
class BackendDocument:
    """Represents an output document with backend-specific helpers."""

    def add_page(self, width: float, height: float) -> BackendPage:
        raise NotImplementedError

    def prepare_image(self, data: bytes) -> Any:
        """Decode image bytes; pure, safe to run in a worker thread."""
        raise NotImplementedError

    def embed_image(self, prepared: Any) -> Any:
        raise NotImplementedError

    def prepare_font(self, data: bytes) -> Any:
        """Parse a font program; pure, safe to run in a worker thread."""
        raise NotImplementedError

    def embed_font(self, prepared: Any) -> Any:
        raise NotImplementedError

    def draw_image(
        self,
        page: BackendPage,
        image: Any,
        *,
        x: float,
        y: float,
        width: float,
        height: float,
    ) -> None:
        raise NotImplementedError

    def draw_text(
        self,
        page: BackendPage,
        text: str,
        *,
        font: Any,
        x: float,
        y: float,
        size: float,
        opacity: float = 1.0,
        color: Optional[Color] = None,
    ) -> None:
        raise NotImplementedError

    def serialize(self) -> bytes:
        raise NotImplementedError


class DocumentBackend(Protocol):
    """Protocol defining backend operations for document authoring."""

    def create_document(self, *, producer: str = "", title: Optional[str] = None) -> BackendDocument:
        """Return an empty output document."""
