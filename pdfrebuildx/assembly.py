"""Draw extracted pages into an output document."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence

from .backends.base import PUSH_GRAPHICS_STATE, SET_TEXT_MATRIX, BackendDocument, BackendPage, DocumentBackend
from .backends.pypdf_backend import PypdfBackend
from .exceptions import UnsupportedImageError
from .fonts import FontCache, FontLoader, load_font_source
from .matrix import Matrix
from .types import ConversionOptions, ImagePrimitive, Page, TextMode
from .utils import decode_data_uri
from .view import RenderedDocumentView

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

SUPPORTED_IMAGE_TYPE = "image/png"

__all__ = ["DocumentAssembler", "ProgressCallback", "patch_text_matrix"]


def patch_text_matrix(page: BackendPage, transform: Matrix) -> bool:
    """Compose ``transform`` into the text matrix of the last drawn run.

    Scans ``page.operations`` backwards and rewrites the first ``Tm`` found
    as ``existing.multiply(transform)``. The scan stops at a ``q`` operator;
    in that case nothing is changed and ``False`` is returned.
    """

    for index in range(len(page.operations) - 1, -1, -1):
        operands, operator = page.operations[index]
        if operator == SET_TEXT_MATRIX:
            existing = Matrix.from_list(float(value) for value in operands)
            page.operations[index] = (
                page.make_operands(existing.multiply(transform).to_list()),
                operator,
            )
            return True
        if operator == PUSH_GRAPHICS_STATE:
            break

    LOGGER.debug("No text matrix before the graphics state push, transform %s dropped", transform.to_list())
    return False


def image_bytes(src: str) -> bytes:
    """Return the PNG payload of an image ``data:`` URI."""

    if not src.startswith("data:"):
        raise UnsupportedImageError(f"Image source is not an embedded data URI: {src:.60}")
    try:
        media_type, data = decode_data_uri(src)
    except ValueError as exc:
        raise UnsupportedImageError(f"Image data URI cannot be decoded: {exc}") from exc
    if media_type != SUPPORTED_IMAGE_TYPE:
        raise UnsupportedImageError(f"Unsupported image type {media_type!r}; only PNG can be embedded.")
    return data


class DocumentAssembler:
    """Build one output document from a list of extracted pages."""

    def __init__(
        self,
        backend: Optional[DocumentBackend] = None,
        options: Optional[ConversionOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
        *,
        font_loader: FontLoader = load_font_source,
    ) -> None:
        self.backend = backend or PypdfBackend()
        self.options = options or ConversionOptions()
        self.progress_callback = progress_callback
        self.font_loader = font_loader

    async def assemble(self, view: RenderedDocumentView, pages: Sequence[Page]) -> bytes:
        """Draw ``pages`` concurrently and return the serialised document.

        A failure on any page cancels the pages still running and is
        re-raised; no document is returned in that case.
        """

        document = self.backend.create_document(
            producer=self.options.producer,
            title=self.options.title,
        )
        targets = [document.add_page(page.width, page.height) for page in pages]
        fonts = FontCache(view, document, loader=self.font_loader)

        total = len(pages)
        LOGGER.info("Converting %d pages...", total)
        tasks: List[asyncio.Future[int]] = [
            asyncio.ensure_future(self._draw_page(document, fonts, target, page, number))
            for number, (target, page) in enumerate(zip(targets, pages), start=1)
        ]
        try:
            completed = 0
            for finished in asyncio.as_completed(tasks):
                number = await finished
                completed += 1
                LOGGER.info("Page %3d converted (%d remaining).", number, total - completed)
                if self.progress_callback:
                    self.progress_callback(completed, total)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            fonts.clear()

        LOGGER.info("Generating PDF file...")
        return await asyncio.to_thread(document.serialize)

    async def _draw_page(
        self,
        document: BackendDocument,
        fonts: FontCache,
        target: BackendPage,
        page: Page,
        number: int,
    ) -> int:
        for image in page.images:
            await self._draw_image(document, target, image)

        transparent = self.options.text_mode is TextMode.TRANSPARENT
        for run in page.text:
            font = await fonts.get_or_resolve(run.font_family)
            # Nothing may be awaited between drawing and patching the run.
            document.draw_text(
                target,
                run.text,
                font=font,
                x=run.left,
                y=run.bottom,
                size=run.size,
                opacity=0.0 if transparent else run.opacity,
                color=run.color,
            )
            if run.transform is not None:
                patch_text_matrix(target, run.transform)

        LOGGER.debug(
            "Page %d drawn with %d images and %d text runs",
            number,
            len(page.images),
            len(page.text),
        )
        return number

    async def _draw_image(self, document: BackendDocument, target: BackendPage, image: ImagePrimitive) -> Any:
        prepared = await asyncio.to_thread(document.prepare_image, image_bytes(image.src))
        reference = document.embed_image(prepared)
        document.draw_image(
            target,
            reference,
            x=image.left,
            y=image.bottom,
            width=image.width,
            height=image.height,
        )
        return reference
