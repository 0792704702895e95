"""High-level conversion entry points."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from .assembly import DocumentAssembler, ProgressCallback
from .backends.base import DocumentBackend
from .backends.pypdf_backend import PypdfBackend
from .browser import BrowserSession
from .exceptions import ConverterBusyError
from .extraction import extract_pages
from .fonts import FontLoader, load_font_source
from .segmentation import looks_like_pdf
from .types import ConversionOptions
from .utils import PathLike, is_url, time_block, to_path
from .view import RenderedDocumentView, SnapshotView

LOGGER = logging.getLogger(__name__)

__all__ = [
    "Converter",
    "convert_file",
    "convert_snapshot_file",
    "convert_view",
    "is_snapshot_file",
]


async def convert_view(
    view: RenderedDocumentView,
    options: Optional[ConversionOptions] = None,
    progress_callback: Optional[ProgressCallback] = None,
    backend: Optional[DocumentBackend] = None,
    *,
    font_loader: FontLoader = load_font_source,
    page_roots: Optional[Sequence[Any]] = None,
) -> Optional[bytes]:
    """Convert a rendered layout snapshot to PDF bytes.

    ``page_roots`` skips segmentation when the caller already ran it.
    Returns ``None`` when no pages could be extracted.
    """

    with time_block(LOGGER, "Page extraction"):
        pages = extract_pages(view, page_roots)
    if not pages:
        LOGGER.warning("No pages extracted")
        return None

    assembler = DocumentAssembler(backend, options, progress_callback, font_loader=font_loader)
    with time_block(LOGGER, "Document assembly"):
        return await assembler.assemble(view, pages)


def is_snapshot_file(source: PathLike) -> bool:
    text = str(source)
    return not is_url(text) and text.lower().endswith(".json")


def convert_snapshot_file(
    path: PathLike,
    output: Optional[PathLike] = None,
    options: Optional[ConversionOptions] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> Optional[bytes]:
    """Convert a JSON snapshot, optionally writing the PDF to ``output``."""

    view = SnapshotView.from_json(to_path(path))
    data = asyncio.run(convert_view(view, options, progress_callback))
    if data is not None and output is not None:
        _write_output(data, output)
    return data


def convert_file(
    source: PathLike,
    output: Optional[PathLike] = None,
    options: Optional[ConversionOptions] = None,
    progress_callback: Optional[ProgressCallback] = None,
    **session_options: Any,
) -> Optional[bytes]:
    """Convert an HTML file, a URL or a JSON snapshot to PDF.

    HTML files and URLs are rendered in a headless browser first;
    ``session_options`` are passed to :class:`BrowserSession`.
    """

    if is_snapshot_file(source):
        return convert_snapshot_file(source, output, options, progress_callback)

    async def run() -> Optional[bytes]:
        async with Converter(session=BrowserSession(**session_options)) as converter:
            await converter.open(source)
            return await converter.convert_to_pdf(options, progress_callback)

    data = asyncio.run(run())
    if data is not None and output is not None:
        _write_output(data, output)
    return data


def _write_output(data: bytes, output: PathLike) -> None:
    destination = to_path(output)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(data)
    LOGGER.info("Wrote %s", destination)


class Converter:
    """Stateful converter bound to one source document at a time.

    Operations must not overlap: starting one while another is running
    raises :class:`ConverterBusyError`.
    """

    def __init__(
        self,
        backend: Optional[DocumentBackend] = None,
        session: Optional[BrowserSession] = None,
    ) -> None:
        self.backend = backend or PypdfBackend()
        self._session = session
        self._view: Optional[RenderedDocumentView] = None
        self._processing = False

    @property
    def view(self) -> Optional[RenderedDocumentView]:
        return self._view

    async def __aenter__(self) -> "Converter":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def open(self, source: PathLike) -> RenderedDocumentView:
        """Render ``source`` and keep its snapshot as the current document."""

        with self._busy():
            self._view = None
            if is_snapshot_file(source):
                view: RenderedDocumentView = SnapshotView.from_json(to_path(source))
            else:
                if self._session is None:
                    self._session = BrowserSession()
                with time_block(LOGGER, "Capture"):
                    view = await self._session.capture(source)
            self._view = view
        return view

    def load(self, view: RenderedDocumentView) -> None:
        """Use an already captured ``view`` as the current document."""

        with self._busy():
            self._view = view

    def looks_like_pdf(self) -> bool:
        if self._view is None:
            return False
        return looks_like_pdf(self._view)

    async def convert_to_pdf(
        self,
        options: Optional[ConversionOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Optional[bytes]:
        if self._view is None:
            raise ConverterBusyError("No document has been opened for conversion.")
        with self._busy():
            return await convert_view(self._view, options, progress_callback, self.backend)

    async def close(self) -> None:
        with self._busy():
            self._view = None
            if self._session is not None:
                await self._session.close()

    @contextmanager
    def _busy(self) -> Iterator[None]:
        if self._processing:
            raise ConverterBusyError()
        self._processing = True
        try:
            yield
        finally:
            self._processing = False
