"""Resolve CSS font families to fonts embedded in the output document."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse
from urllib.request import url2pathname

import httpx

from .backends.base import BackendDocument
from .exceptions import FontEmbeddingError, FontResolutionError
from .utils import decode_data_uri, is_url
from .view import RenderedDocumentView

LOGGER = logging.getLogger(__name__)

FontLoader = Callable[[str], Awaitable[bytes]]

_URL_RE = re.compile(r"""^url\(\s*(?:"([^"]*)"|'([^']*)'|([^)'"]*?))\s*\)""", re.IGNORECASE)

__all__ = [
    "FontCache",
    "FontLoader",
    "find_font_source",
    "load_font_source",
    "parse_font_src",
    "resolve_font_url",
]


def normalise_family(value: str) -> str:
    text = value.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1]
    return text.strip()


def _family_candidates(font_family: str) -> List[str]:
    candidates = [normalise_family(font_family)]
    for part in font_family.split(","):
        name = normalise_family(part)
        if name and name not in candidates:
            candidates.append(name)
    return candidates


def parse_font_src(font_family: str, src: str) -> str:
    """Return the first ``url(...)`` reference of a ``src`` descriptor."""

    text = (src or "").strip()
    match = _URL_RE.match(text)
    if match is None:
        raise FontResolutionError(font_family, f"Cannot extract font {font_family} with src {src}")
    return next(group for group in match.groups() if group is not None)


def find_font_source(view: RenderedDocumentView, font_family: str) -> Tuple[str, Optional[str]]:
    """Find the ``@font-face`` rule for ``font_family`` and return ``(url, base_url)``."""

    rules = view.font_face_rules()
    for candidate in _family_candidates(font_family):
        for rule in rules:
            if normalise_family(rule.font_family) == candidate:
                return parse_font_src(font_family, rule.src), rule.base_url or view.base_url
    raise FontResolutionError(font_family, f"Cannot find font {font_family}")


def resolve_font_url(src: str, base_url: Optional[str]) -> str:
    if src.startswith("data:") or is_url(src) or not base_url:
        return src
    return urljoin(base_url, src)


async def load_font_source(url: str) -> bytes:
    """Load font bytes from a data URI, an http(s) URL, a file URL or a path."""

    if url.startswith("data:"):
        return decode_data_uri(url)[1]

    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        async with httpx.AsyncClient(follow_redirects=True, timeout=30.0) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    path = Path(url2pathname(parsed.path)) if parsed.scheme == "file" else Path(url)
    return await asyncio.to_thread(path.read_bytes)


class FontCache:
    """Memoised, concurrency-safe font resolution for one output document.

    The first request for a family starts a single resolution task; every
    later or concurrent request awaits that same task, so each family is
    fetched and embedded at most once.
    """

    def __init__(
        self,
        view: RenderedDocumentView,
        document: BackendDocument,
        *,
        loader: FontLoader = load_font_source,
    ) -> None:
        self._view = view
        self._document = document
        self._loader = loader
        self._entries: Dict[str, asyncio.Future[Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_resolve(self, font_family: str) -> Any:
        entry = self._entries.get(font_family)
        if entry is None:
            entry = asyncio.ensure_future(self._resolve(font_family))
            self._entries[font_family] = entry
        # Shielded so one cancelled waiter does not cancel the shared task.
        return await asyncio.shield(entry)

    def clear(self) -> None:
        """Forget every entry, cancelling resolutions still in flight."""

        for entry in self._entries.values():
            if not entry.done():
                entry.cancel()
        self._entries.clear()

    async def _resolve(self, font_family: str) -> Any:
        src, base_url = find_font_source(self._view, font_family)
        url = resolve_font_url(src, base_url)
        LOGGER.debug("Resolving font %s from %.80s", font_family, url)

        try:
            data = await self._loader(url)
        except (OSError, ValueError, httpx.HTTPError) as exc:
            raise FontResolutionError(
                font_family, f"Cannot load font {font_family} from {url:.80}: {exc}"
            ) from exc

        try:
            prepared = await asyncio.to_thread(self._document.prepare_font, data)
        except FontEmbeddingError as exc:
            raise FontEmbeddingError(font_family, f"Cannot embed font {font_family}: {exc.message}") from exc
        font = self._document.embed_font(prepared)
        LOGGER.info("Embedded font %s", font_family)
        return font
