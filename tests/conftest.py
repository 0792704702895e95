from __future__ import annotations

import base64
import io
import json
from pathlib import Path
from typing import Any, Sequence
import sys

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen
from PIL import Image

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pdfrebuildx.view import SnapshotView  # noqa: E402

FONT_FAMILY = "TestSans"
DOCUMENT_URL = "file:///tmp/document.html"


def _box_glyph() -> Any:
    pen = TTGlyphPen(None)
    pen.moveTo((100, 0))
    pen.lineTo((100, 700))
    pen.lineTo((500, 700))
    pen.lineTo((500, 0))
    pen.closePath()
    return pen.glyph()


def build_test_font() -> bytes:
    glyph_order = [".notdef", "space", "H", "e", "l", "o", "W", "r", "d"]
    builder = FontBuilder(1000, isTTF=True)
    builder.setupGlyphOrder(glyph_order)
    builder.setupCharacterMap({ord(" "): "space", **{ord(name): name for name in glyph_order[2:]}})
    glyphs = {name: _box_glyph() for name in glyph_order}
    glyphs["space"] = TTGlyphPen(None).glyph()
    builder.setupGlyf(glyphs)
    metrics = {name: (600, 100) for name in glyph_order}
    metrics["space"] = (250, 0)
    builder.setupHorizontalMetrics(metrics)
    builder.setupHorizontalHeader(ascent=800, descent=-200)
    builder.setupNameTable(
        {"familyName": FONT_FAMILY, "styleName": "Regular", "psName": "TestSans-Regular"}
    )
    builder.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200)
    builder.setupPost()
    buffer = io.BytesIO()
    builder.save(buffer)
    return buffer.getvalue()


def build_test_png(mode: str = "RGB", size: tuple[int, int] = (4, 4)) -> bytes:
    color = (200, 10, 10, 128) if mode == "RGBA" else (200, 10, 10)
    image = Image.new(mode, size, color if mode != "L" else 128)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def data_uri(media_type: str, payload: bytes) -> str:
    return f"data:{media_type};base64,{base64.b64encode(payload).decode('ascii')}"


class SnapshotBuilder:
    """Builds snapshot dictionaries shaped like the browser capture output."""

    def __init__(self, png_uri: str, font_uri: str) -> None:
        self.png_uri = png_uri
        self.font_uri = font_uri

    @staticmethod
    def element(
        tag: str,
        box: Sequence[float] | None,
        children: Sequence[dict] = (),
        *,
        attrs: dict | None = None,
        style: dict | None = None,
        baseline: float = 0.0,
    ) -> dict:
        return {
            "tag": tag,
            "attrs": attrs or {},
            "box": list(box) if box is not None else None,
            "style": {"transform": "none", "opacity": "1", **(style or {})},
            "baseline": baseline,
            "children": list(children),
        }

    @staticmethod
    def text(value: str) -> dict:
        return {"text": value}

    def image(self, box: Sequence[float], src: str | None = None) -> dict:
        return self.element("img", box, attrs={"src": src or self.png_uri})

    def run(
        self,
        value: str,
        box: Sequence[float],
        *,
        style: dict | None = None,
        baseline: float = -3.0,
    ) -> dict:
        run_style = {"fontFamily": FONT_FAMILY, "fontSize": "12px", "color": "rgb(0, 0, 0)"}
        run_style.update(style or {})
        return self.element("span", box, [self.text(value)], style=run_style, baseline=baseline)

    def page(self, top: float, *, width: float = 100, height: float = 100, text: str = "Hello") -> dict:
        return self.element(
            "div",
            [0, top, width, height],
            [
                self.image([0, top, 100, 100]),
                self.run(text, [10, top + 10, 40, 14]),
            ],
            attrs={"class": "page"},
        )

    def document(
        self,
        pages: Sequence[dict],
        *,
        font_src: str | None = None,
        url: str = DOCUMENT_URL,
    ) -> dict:
        viewer = self.element("div", [0, 0, 100, 100 * max(len(pages), 1)], pages, attrs={"id": "viewer"})
        return {
            "version": 1,
            "url": url,
            "root": self.element("body", [0, 0, 100, 100 * max(len(pages), 1)], [viewer]),
            "fontFaces": [
                {
                    "fontFamily": f'"{FONT_FAMILY}"',
                    "src": font_src if font_src is not None else f'url("{self.font_uri}")',
                    "baseUrl": url,
                }
            ],
        }

    def fake_pdf(self, page_count: int = 2, **kwargs: Any) -> dict:
        return self.document([self.page(index * 100) for index in range(page_count)], **kwargs)

    def view(self, data: dict) -> SnapshotView:
        return SnapshotView.from_dict(data)


@pytest.fixture(scope="session")
def font_bytes() -> bytes:
    return build_test_font()


@pytest.fixture(scope="session")
def png_bytes() -> bytes:
    return build_test_png()


@pytest.fixture(scope="session")
def png_data_uri(png_bytes: bytes) -> str:
    return data_uri("image/png", png_bytes)


@pytest.fixture(scope="session")
def font_data_uri(font_bytes: bytes) -> str:
    return data_uri("font/ttf", font_bytes)


@pytest.fixture()
def builder(png_data_uri: str, font_data_uri: str) -> SnapshotBuilder:
    return SnapshotBuilder(png_data_uri, font_data_uri)


@pytest.fixture()
def snapshot_file(builder: SnapshotBuilder, tmp_path: Path) -> Path:
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(builder.fake_pdf()), encoding="utf-8")
    return path


@pytest.fixture(scope="session")
def png_factory():
    return build_test_png
