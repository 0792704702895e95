from __future__ import annotations

import asyncio
import base64
import io
import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from fontTools.ttLib import TTFont
from pypdf import PdfReader

from pdfrebuildx.converter import (
    Converter,
    convert_file,
    convert_snapshot_file,
    convert_view,
    is_snapshot_file,
)
from pdfrebuildx.exceptions import ConverterBusyError, FontResolutionError
from pdfrebuildx.segmentation import segment_pages
from pdfrebuildx.types import ConversionOptions
from pdfrebuildx.view import SnapshotView


def test_convert_view_end_to_end(builder) -> None:
    view = SnapshotView.from_dict(builder.fake_pdf(page_count=2))

    data = asyncio.run(convert_view(view, ConversionOptions(title="Rebuilt")))

    reader = PdfReader(io.BytesIO(data))
    assert len(reader.pages) == 2
    assert reader.metadata.get("/Title") == "Rebuilt"
    for page in reader.pages:
        assert (float(page.mediabox.width), float(page.mediabox.height)) == (100, 100)
        assert page["/Resources"]["/Font"]["/F1"].get_object()["/Subtype"] == "/Type0"
        assert "/Im" in " ".join(page["/Resources"]["/XObject"].keys())
        assert "Hello" in page.extract_text()


def test_convert_view_without_pages(builder) -> None:
    view = SnapshotView.from_dict(builder.document([builder.page(0)]))

    assert asyncio.run(convert_view(view)) is None


def test_convert_view_font_error(builder) -> None:
    view = SnapshotView.from_dict(builder.fake_pdf(font_src="local(TestSans)"))

    with pytest.raises(FontResolutionError):
        asyncio.run(convert_view(view))


def test_convert_view_embeds_woff2_font(builder, font_bytes: bytes) -> None:
    font = TTFont(io.BytesIO(font_bytes))
    font.flavor = "woff2"
    wrapped = io.BytesIO()
    font.save(wrapped)
    source = "data:font/woff2;base64," + base64.b64encode(wrapped.getvalue()).decode("ascii")
    view = SnapshotView.from_dict(builder.fake_pdf(font_src=f'url("{source}")'))

    data = asyncio.run(convert_view(view))

    reader = PdfReader(io.BytesIO(data))
    assert "Hello" in reader.pages[0].extract_text()


def test_convert_view_reuses_given_page_roots(builder) -> None:
    view = SnapshotView.from_dict(builder.fake_pdf(page_count=2))
    segmentation = segment_pages(view)

    with patch("pdfrebuildx.extraction.segment_pages") as segment:
        data = asyncio.run(convert_view(view, page_roots=segmentation.page_roots))

    segment.assert_not_called()
    assert len(PdfReader(io.BytesIO(data)).pages) == 2


def test_convert_snapshot_file(snapshot_file: Path, tmp_path: Path) -> None:
    output = tmp_path / "out" / "result.pdf"

    data = convert_snapshot_file(snapshot_file, output)

    assert output.read_bytes() == data
    assert len(PdfReader(str(output)).pages) == 2


def test_convert_file_uses_snapshot_for_json(snapshot_file: Path, tmp_path: Path) -> None:
    output = tmp_path / "result.pdf"

    convert_file(snapshot_file, output)

    assert output.exists()


def test_convert_snapshot_file_not_paginatable(builder, tmp_path: Path) -> None:
    path = tmp_path / "single.json"
    path.write_text(json.dumps(builder.document([builder.page(0)])), encoding="utf-8")
    output = tmp_path / "single.pdf"

    assert convert_snapshot_file(path, output) is None
    assert not output.exists()


@pytest.mark.parametrize(
    ("source", "expected"),
    [("snap.json", True), ("SNAP.JSON", True), ("doc.html", False), ("https://example.com/a.json", False)],
)
def test_is_snapshot_file(source: str, expected: bool) -> None:
    assert is_snapshot_file(source) is expected


def test_converter_with_loaded_view(builder) -> None:
    converter = Converter()
    converter.load(SnapshotView.from_dict(builder.fake_pdf(page_count=3)))

    assert converter.looks_like_pdf()
    data = asyncio.run(converter.convert_to_pdf())

    assert len(PdfReader(io.BytesIO(data)).pages) == 3


def test_converter_requires_open_document() -> None:
    converter = Converter()

    assert not converter.looks_like_pdf()
    with pytest.raises(ConverterBusyError):
        asyncio.run(converter.convert_to_pdf())


def test_converter_rejects_overlapping_operations(builder) -> None:
    view = SnapshotView.from_dict(builder.fake_pdf())
    converter = Converter()
    converter.load(view)

    async def run():
        conversion = asyncio.ensure_future(converter.convert_to_pdf())
        await asyncio.sleep(0)
        with pytest.raises(ConverterBusyError):
            converter.load(view)
        with pytest.raises(ConverterBusyError):
            await converter.convert_to_pdf()
        return await conversion

    assert asyncio.run(run()) is not None
    converter.load(view)


def test_converter_open_captures_with_session(builder) -> None:
    view = SnapshotView.from_dict(builder.fake_pdf())
    session = AsyncMock()
    session.capture.return_value = view

    async def run():
        async with Converter(session=session) as converter:
            opened = await converter.open("document.html")
            assert opened is view
            assert converter.view is view
            return await converter.convert_to_pdf()

    data = asyncio.run(run())

    session.capture.assert_awaited_once_with("document.html")
    session.close.assert_awaited_once()
    assert len(PdfReader(io.BytesIO(data)).pages) == 2


def test_converter_open_reads_snapshot(snapshot_file: Path) -> None:
    session = AsyncMock()

    async def run():
        converter = Converter(session=session)
        await converter.open(snapshot_file)
        return converter.looks_like_pdf()

    assert asyncio.run(run())
    session.capture.assert_not_awaited()
