"""Live layout capture with a headless Chromium driven by Playwright."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .exceptions import SnapshotError
from .utils import PathLike, is_url
from .view import SNAPSHOT_VERSION, SnapshotView

LOGGER = logging.getLogger(__name__)

# Serialises the rendered body subtree and every @font-face rule into the
# snapshot format read by SnapshotView.from_dict. Text-bearing elements get
# the distance from their box bottom to the baseline of an inline
# zero-size probe appended as their last child.
CAPTURE_SCRIPT = """
() => {
  const SKIPPED = new Set(["SCRIPT", "STYLE", "NOSCRIPT", "TEMPLATE"]);

  function box(el) {
    const r = el.getBoundingClientRect();
    return [r.left + window.scrollX, r.top + window.scrollY, r.width, r.height];
  }

  function isTextLeaf(el) {
    const nodes = Array.from(el.childNodes).filter(
      (n) => n.nodeType === Node.TEXT_NODE ||
        (n.nodeType === Node.ELEMENT_NODE && !SKIPPED.has(n.tagName)));
    const texts = nodes.filter((n) => n.nodeType === Node.TEXT_NODE);
    const mixes = texts.some((n) => n.textContent.trim() !== "");
    return (mixes || texts.length === nodes.length) && el.textContent !== "";
  }

  function probeBaseline(el) {
    const probe = document.createElement("span");
    probe.style.cssText = "display:inline;font-size:0;line-height:0;padding:0;margin:0;border:0";
    probe.textContent = "A";
    el.appendChild(probe);
    const offset = probe.getBoundingClientRect().bottom - el.getBoundingClientRect().bottom;
    el.removeChild(probe);
    return offset;
  }

  function serialize(el) {
    const style = window.getComputedStyle(el);
    const node = {
      tag: el.tagName.toLowerCase(),
      attrs: {},
      box: box(el),
      style: {
        color: style.color,
        opacity: style.opacity,
        fontFamily: style.fontFamily,
        fontSize: style.fontSize,
        transform: style.transform,
      },
      baseline: 0,
      children: [],
    };
    for (const attr of Array.from(el.attributes)) {
      node.attrs[attr.name] = attr.value;
    }
    if (el.tagName !== "IMG" && isTextLeaf(el)) {
      node.baseline = probeBaseline(el);
    }
    for (const child of Array.from(el.childNodes)) {
      if (child.nodeType === Node.TEXT_NODE) {
        node.children.push({ text: child.textContent });
      } else if (child.nodeType === Node.ELEMENT_NODE && !SKIPPED.has(child.tagName)) {
        node.children.push(serialize(child));
      }
    }
    return node;
  }

  const fontFaces = [];
  function collect(rules, baseUrl) {
    for (const rule of Array.from(rules)) {
      if (rule instanceof CSSFontFaceRule) {
        fontFaces.push({
          fontFamily: rule.style.getPropertyValue("font-family"),
          src: rule.style.getPropertyValue("src"),
          baseUrl: baseUrl,
        });
      } else if (rule.cssRules) {
        collect(rule.cssRules, baseUrl);
      }
    }
  }
  for (const sheet of Array.from(document.styleSheets)) {
    let rules;
    try {
      rules = sheet.cssRules;
    } catch (e) {
      continue;  // cross-origin sheet
    }
    collect(rules, sheet.href || document.baseURI);
  }

  return { version: %d, url: document.URL, root: serialize(document.body), fontFaces: fontFaces };
}
""" % SNAPSHOT_VERSION


def to_document_url(source: PathLike) -> str:
    """Return ``source`` as a URL the browser can navigate to."""

    text = str(source)
    if is_url(text):
        return text
    return Path(text).expanduser().resolve().as_uri()


class BrowserSession:
    """Headless Chromium session producing :class:`SnapshotView` objects.

    The browser is launched lazily on the first capture and kept for the
    lifetime of the session; each capture uses a fresh page.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        timeout_ms: int = 30000,
        viewport: Optional[Dict[str, int]] = None,
    ) -> None:
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.viewport = viewport or {"width": 1280, "height": 1024}
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def __aenter__(self) -> "BrowserSession":
        await self._ensure_browser()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def capture(self, source: PathLike) -> SnapshotView:
        url = to_document_url(source)
        data = await self.capture_data(url)
        return SnapshotView.from_dict(data, base_url=url)

    async def capture_data(self, source: PathLike) -> Dict[str, Any]:
        """Navigate to ``source`` and return the raw snapshot dictionary."""

        url = to_document_url(source)
        browser = await self._ensure_browser()
        page = await browser.new_page(viewport=self.viewport)
        try:
            LOGGER.info("Analyzing file...")
            await page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
            data = await page.evaluate(CAPTURE_SCRIPT)
        except PlaywrightError as exc:
            raise SnapshotError(f"Cannot capture {url}: {exc}") from exc
        finally:
            await page.close()

        if not isinstance(data, dict) or data.get("root") is None:
            raise SnapshotError(f"Capture of {url} returned no document body")
        LOGGER.debug("Captured %s with %d font-face rules", url, len(data.get("fontFaces", [])))
        return data

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def _ensure_browser(self) -> Browser:
        if self._browser is None:
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=self.headless)
            except PlaywrightError as exc:
                await self.close()
                raise SnapshotError(f"Cannot launch the browser: {exc}") from exc
        return self._browser
