"""pypdf backend implementation for document authoring."""

from __future__ import annotations

import io
import logging
import re
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from fontTools.ttLib import TTFont, TTLibError
from PIL import Image, UnidentifiedImageError
from pypdf import PageObject, PdfWriter
from pypdf.generic import (
    ArrayObject,
    ByteStringObject,
    ContentStream,
    DecodedStreamObject,
    DictionaryObject,
    FloatObject,
    IndirectObject,
    NameObject,
    NumberObject,
    TextStringObject,
)

from ..exceptions import FontEmbeddingError, UnsupportedImageError
from ..types import Color
from .base import BackendDocument, BackendPage, DocumentBackend

LOGGER = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_CONTROL_WHITESPACE_RE = re.compile(r"[\r\n\t\f\v]")
_PS_NAME_RE = re.compile(r"[^A-Za-z0-9_.+-]")


@dataclass
class PreparedImage:
    """Decoded raster ready to be written as an image XObject."""

    width: int
    height: int
    color_space: str
    pixels: bytes
    alpha: Optional[bytes] = None


@dataclass
class PreparedFont:
    """Metrics and program bytes extracted from a TrueType/OpenType font."""

    data: bytes
    postscript_name: str
    is_cff: bool
    glyph_for_codepoint: Dict[int, int]
    widths: Dict[int, int]
    bbox: List[int]
    ascent: int
    descent: int
    cap_height: int
    italic_angle: float


@dataclass
class PypdfImage:
    name: NameObject
    reference: IndirectObject
    width: int
    height: int


@dataclass
class PypdfFont:
    """Embedded Type0 font; tracks the glyphs drawn so far."""

    name: NameObject
    reference: IndirectObject
    prepared: PreparedFont
    widths_array: ArrayObject
    to_unicode: DecodedStreamObject
    used: Dict[int, str] = field(default_factory=dict)

    def encode(self, text: str) -> bytes:
        """Encode ``text`` as big-endian 2-byte glyph ids (Identity-H)."""

        encoded = bytearray()
        for char in text:
            gid = self.prepared.glyph_for_codepoint.get(ord(char), 0)
            if gid:
                self.used.setdefault(gid, char)
            encoded += gid.to_bytes(2, "big")
        return bytes(encoded)

    def finalize(self) -> None:
        """Write the width array and ToUnicode CMap for the used glyphs."""

        del self.widths_array[:]
        for gid in sorted(self.used):
            width = self.prepared.widths.get(gid, 1000)
            self.widths_array.append(NumberObject(gid))
            self.widths_array.append(ArrayObject([NumberObject(width)]))
        self.to_unicode.set_data(_to_unicode_cmap(self.used))


@dataclass
class PypdfPage(BackendPage):
    page: Optional[PageObject] = None
    fonts: DictionaryObject = field(default_factory=DictionaryObject)
    xobjects: DictionaryObject = field(default_factory=DictionaryObject)
    ext_gstates: DictionaryObject = field(default_factory=DictionaryObject)

    def make_operands(self, values: Sequence[float]) -> List[Any]:
        return [FloatObject(value) for value in values]


@dataclass
class PypdfDocument(BackendDocument):
    writer: PdfWriter
    pages: List[PypdfPage] = field(default_factory=list)
    fonts: List[PypdfFont] = field(default_factory=list)
    image_count: int = 0
    opacity_states: Dict[float, tuple[NameObject, IndirectObject]] = field(default_factory=dict)
    serialized: bool = False

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------
    def add_page(self, width: float, height: float) -> PypdfPage:
        page_obj = self.writer.add_blank_page(width=width, height=height)
        page = PypdfPage(width=width, height=height, page=page_obj)
        self.pages.append(page)
        return page

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------
    def prepare_image(self, data: bytes) -> PreparedImage:
        return decode_png(data)

    def embed_image(self, prepared: PreparedImage) -> PypdfImage:
        image_stream = _image_stream(prepared.width, prepared.height, prepared.color_space, prepared.pixels)
        if prepared.alpha is not None:
            mask = _image_stream(prepared.width, prepared.height, "/DeviceGray", prepared.alpha)
            image_stream[NameObject("/SMask")] = self._add(mask)

        self.image_count += 1
        return PypdfImage(
            name=NameObject(f"/Im{self.image_count}"),
            reference=self._add(image_stream),
            width=prepared.width,
            height=prepared.height,
        )

    def draw_image(
        self,
        page: PypdfPage,
        image: PypdfImage,
        *,
        x: float,
        y: float,
        width: float,
        height: float,
    ) -> None:
        page.xobjects[image.name] = image.reference
        page.operations.extend(
            [
                ([], b"q"),
                (page.make_operands([width, 0, 0, height, x, y]), b"cm"),
                ([image.name], b"Do"),
                ([], b"Q"),
            ]
        )

    # ------------------------------------------------------------------
    # Fonts and text
    # ------------------------------------------------------------------
    def prepare_font(self, data: bytes) -> PreparedFont:
        return parse_font_program(data)

    def embed_font(self, prepared: PreparedFont) -> PypdfFont:
        base_font = NameObject(f"/{prepared.postscript_name}")

        font_file = DecodedStreamObject()
        font_file.set_data(prepared.data)
        if prepared.is_cff:
            font_file[NameObject("/Subtype")] = NameObject("/OpenType")
        else:
            font_file[NameObject("/Length1")] = NumberObject(len(prepared.data))
        font_file_ref = self._add(font_file.flate_encode())

        descriptor = DictionaryObject(
            {
                NameObject("/Type"): NameObject("/FontDescriptor"),
                NameObject("/FontName"): base_font,
                NameObject("/Flags"): NumberObject(4),
                NameObject("/FontBBox"): ArrayObject([NumberObject(v) for v in prepared.bbox]),
                NameObject("/ItalicAngle"): FloatObject(prepared.italic_angle),
                NameObject("/Ascent"): NumberObject(prepared.ascent),
                NameObject("/Descent"): NumberObject(prepared.descent),
                NameObject("/CapHeight"): NumberObject(prepared.cap_height),
                NameObject("/StemV"): NumberObject(80),
                NameObject("/FontFile3" if prepared.is_cff else "/FontFile2"): font_file_ref,
            }
        )

        widths_array = ArrayObject()
        cid_font = DictionaryObject(
            {
                NameObject("/Type"): NameObject("/Font"),
                NameObject("/Subtype"): NameObject("/CIDFontType0" if prepared.is_cff else "/CIDFontType2"),
                NameObject("/BaseFont"): base_font,
                NameObject("/CIDSystemInfo"): DictionaryObject(
                    {
                        NameObject("/Registry"): TextStringObject("Adobe"),
                        NameObject("/Ordering"): TextStringObject("Identity"),
                        NameObject("/Supplement"): NumberObject(0),
                    }
                ),
                NameObject("/FontDescriptor"): self._add(descriptor),
                NameObject("/DW"): NumberObject(1000),
                NameObject("/W"): self._add(widths_array),
            }
        )
        if not prepared.is_cff:
            cid_font[NameObject("/CIDToGIDMap")] = NameObject("/Identity")

        to_unicode = DecodedStreamObject()
        type0 = DictionaryObject(
            {
                NameObject("/Type"): NameObject("/Font"),
                NameObject("/Subtype"): NameObject("/Type0"),
                NameObject("/BaseFont"): base_font,
                NameObject("/Encoding"): NameObject("/Identity-H"),
                NameObject("/DescendantFonts"): ArrayObject([self._add(cid_font)]),
                NameObject("/ToUnicode"): self._add(to_unicode),
            }
        )

        font = PypdfFont(
            name=NameObject(f"/F{len(self.fonts) + 1}"),
            reference=self._add(type0),
            prepared=prepared,
            widths_array=widths_array,
            to_unicode=to_unicode,
        )
        self.fonts.append(font)
        LOGGER.debug("Embedded font %s as %s", prepared.postscript_name, font.name)
        return font

    def draw_text(
        self,
        page: PypdfPage,
        text: str,
        *,
        font: PypdfFont,
        x: float,
        y: float,
        size: float,
        opacity: float = 1.0,
        color: Optional[Color] = None,
    ) -> None:
        page.fonts[font.name] = font.reference
        glyphs = font.encode(_CONTROL_WHITESPACE_RE.sub(" ", text))

        operations: List[tuple[List[Any], bytes]] = [([], b"q")]
        if opacity < 1.0:
            state_name, state_ref = self._opacity_state(opacity)
            page.ext_gstates[state_name] = state_ref
            operations.append(([state_name], b"gs"))
        operations.append(([], b"BT"))
        if color is not None:
            channels = [min(max(channel / 255.0, 0.0), 1.0) for channel in color[:3]]
            operations.append((page.make_operands(channels), b"rg"))
        operations.extend(
            [
                ([font.name, FloatObject(size)], b"Tf"),
                (page.make_operands([1, 0, 0, 1, x, y]), b"Tm"),
                ([ByteStringObject(glyphs)], b"Tj"),
                ([], b"ET"),
                ([], b"Q"),
            ]
        )
        page.operations.extend(operations)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    def serialize(self) -> bytes:
        if self.serialized:
            raise RuntimeError("Document has already been serialised")
        self.serialized = True

        for page in self.pages:
            self._write_page(page)
        for font in self.fonts:
            font.finalize()

        buffer = io.BytesIO()
        self.writer.write(buffer)
        return buffer.getvalue()

    def _write_page(self, page: PypdfPage) -> None:
        content = ContentStream(None, self.writer)
        content.operations = page.operations
        stream = DecodedStreamObject()
        stream.set_data(content.get_data())
        page.page[NameObject("/Contents")] = self._add(stream.flate_encode())

        resources = DictionaryObject()
        if page.fonts:
            resources[NameObject("/Font")] = page.fonts
        if page.xobjects:
            resources[NameObject("/XObject")] = page.xobjects
        if page.ext_gstates:
            resources[NameObject("/ExtGState")] = page.ext_gstates
        page.page[NameObject("/Resources")] = resources

    def _opacity_state(self, opacity: float) -> tuple[NameObject, IndirectObject]:
        key = round(max(opacity, 0.0), 4)
        state = self.opacity_states.get(key)
        if state is None:
            state_dict = DictionaryObject(
                {
                    NameObject("/Type"): NameObject("/ExtGState"),
                    NameObject("/ca"): FloatObject(key),
                    NameObject("/CA"): FloatObject(key),
                }
            )
            state = (NameObject(f"/GS{len(self.opacity_states) + 1}"), self._add(state_dict))
            self.opacity_states[key] = state
        return state

    def _add(self, obj: Any) -> IndirectObject:
        return self.writer._add_object(obj)  # type: ignore[attr-defined]


class PypdfBackend(DocumentBackend):
    """Backend implementation that uses `pypdf` under the hood."""

    def create_document(self, *, producer: str = "pdfrebuildx", title: Optional[str] = None) -> PypdfDocument:
        writer = PdfWriter()
        # OpenType (CFF) font programs need PDF 1.6+.
        writer.pdf_header = b"%PDF-1.7"
        metadata = {"/Producer": producer}
        if title:
            metadata["/Title"] = title
        writer.add_metadata(metadata)
        return PypdfDocument(writer=writer)


def decode_png(data: bytes) -> PreparedImage:
    """Decode PNG bytes into 8-bit colour samples plus an optional alpha plane."""

    if not data.startswith(PNG_SIGNATURE):
        raise UnsupportedImageError("Image data is not a PNG file.")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise UnsupportedImageError(f"PNG image cannot be decoded: {exc}") from exc

    has_alpha = image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if has_alpha:
        rgba = image.convert("RGBA")
        return PreparedImage(
            width=rgba.width,
            height=rgba.height,
            color_space="/DeviceRGB",
            pixels=rgba.convert("RGB").tobytes(),
            alpha=rgba.getchannel("A").tobytes(),
        )
    if image.mode in ("1", "L", "I", "I;16", "F"):
        grey = image.convert("L")
        return PreparedImage(grey.width, grey.height, "/DeviceGray", grey.tobytes())
    rgb = image.convert("RGB")
    return PreparedImage(rgb.width, rgb.height, "/DeviceRGB", rgb.tobytes())


def parse_font_program(data: bytes) -> PreparedFont:
    """Read the metrics needed to embed a TrueType/OpenType/WOFF font."""

    try:
        font = TTFont(io.BytesIO(data))
        if font.flavor is not None:
            # WOFF/WOFF2 wrappers are not valid PDF font programs.
            font.flavor = None
            buffer = io.BytesIO()
            font.save(buffer)
            data = buffer.getvalue()
            font = TTFont(io.BytesIO(data))

        units_per_em = font["head"].unitsPerEm or 1000
        scale = 1000.0 / units_per_em
        glyph_ids = {name: index for index, name in enumerate(font.getGlyphOrder())}
        metrics = font["hmtx"].metrics
        cmap = font.getBestCmap() or {}
        head = font["head"]
        hhea = font["hhea"]
        os2 = font["OS/2"] if "OS/2" in font else None
        post = font["post"] if "post" in font else None
        name_table = font["name"] if "name" in font else None
        is_cff = "CFF " in font or "CFF2" in font
    except (TTLibError, KeyError, AssertionError, ImportError, EOFError, ValueError, struct.error) as exc:
        raise FontEmbeddingError("", f"Font program cannot be parsed: {exc}") from exc

    postscript_name = ""
    if name_table is not None:
        postscript_name = name_table.getDebugName(6) or name_table.getDebugName(4) or ""
    postscript_name = _PS_NAME_RE.sub("", postscript_name) or "EmbeddedFont"

    cap_height = getattr(os2, "sCapHeight", 0) if os2 is not None else 0
    return PreparedFont(
        data=data,
        postscript_name=postscript_name,
        is_cff=is_cff,
        glyph_for_codepoint={
            codepoint: glyph_ids[name] for codepoint, name in cmap.items() if name in glyph_ids
        },
        widths={glyph_ids[name]: round(advance * scale) for name, (advance, _lsb) in metrics.items() if name in glyph_ids},
        bbox=[round(head.xMin * scale), round(head.yMin * scale), round(head.xMax * scale), round(head.yMax * scale)],
        ascent=round(hhea.ascent * scale),
        descent=round(hhea.descent * scale),
        cap_height=round((cap_height or hhea.ascent) * scale),
        italic_angle=float(getattr(post, "italicAngle", 0.0) or 0.0),
    )


def _image_stream(width: int, height: int, color_space: str, samples: bytes) -> Any:
    stream = DecodedStreamObject()
    stream.set_data(samples)
    stream.update(
        {
            NameObject("/Type"): NameObject("/XObject"),
            NameObject("/Subtype"): NameObject("/Image"),
            NameObject("/Width"): NumberObject(width),
            NameObject("/Height"): NumberObject(height),
            NameObject("/ColorSpace"): NameObject(color_space),
            NameObject("/BitsPerComponent"): NumberObject(8),
        }
    )
    return stream.flate_encode()


def _to_unicode_cmap(used: Dict[int, str]) -> bytes:
    lines = [
        "/CIDInit /ProcSet findresource begin",
        "12 dict begin",
        "begincmap",
        "/CIDSystemInfo << /Registry (Adobe) /Ordering (UCS) /Supplement 0 >> def",
        "/CMapName /Adobe-Identity-UCS def",
        "/CMapType 2 def",
        "1 begincodespacerange",
        "<0000> <FFFF>",
        "endcodespacerange",
    ]
    entries = sorted(used.items())
    for start in range(0, len(entries), 100):
        chunk = entries[start : start + 100]
        lines.append(f"{len(chunk)} beginbfchar")
        for gid, char in chunk:
            lines.append(f"<{gid:04X}> <{char.encode('utf-16-be').hex().upper()}>")
        lines.append("endbfchar")
    lines.extend(
        [
            "endcmap",
            "CMapName currentdict /CMap defineresource pop",
            "end",
            "end",
        ]
    )
    return ("\n".join(lines) + "\n").encode("ascii")
