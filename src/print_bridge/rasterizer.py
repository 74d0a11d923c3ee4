from print_bridge.bitmap import PixelGrid
from print_bridge.errors import EmptyDocumentError, InvalidDimensionsError, RenderError

import base64
import binascii
import logging
import math
import re
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import fitz  # PyMuPDF
from PIL import Image, ImageDraw, ImageFont

log = logging.getLogger(__name__)

PDF = "pdf"
IMAGE = "image"

DEFAULT_WIDTH = 576     # 80mm @ 203 dpi
DEFAULT_DPI = 203
TEXT_WIDTH = 384
PDF_POINTS_PER_INCH = 72
LINE_HEIGHT = 1.2

DATA_URI = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>;[^,]*)?,(?P<payload>.*)$", re.DOTALL)


def decode_base64(text: str) -> bytes:
    """Decode plain base64 or the payload of a ``data:...;base64,`` URI."""
    m = DATA_URI.match(text.strip())
    if m:
        text = m.group("payload")
    try:
        return base64.b64decode(re.sub(r"\s+", "", text), validate=True)
    except (binascii.Error, ValueError) as ex:
        raise RenderError(f"Invalid base64 payload: {ex}") from ex


@dataclass(frozen=True)
class SourceDocument:
    data: bytes
    kind: str

    @classmethod
    def from_bytes(cls, data: bytes, kind: Optional[str] = None):
        if not data:
            raise RenderError("Empty document")
        if kind is None:
            kind = PDF if data.lstrip()[:5] == b"%PDF-" else IMAGE
        if kind not in (PDF, IMAGE):
            raise RenderError(f"Unknown document kind {kind!r}")
        return cls(bytes(data), kind)

    @classmethod
    def from_base64(cls, text: str, kind: Optional[str] = None):
        m = DATA_URI.match(text.strip())
        if m and kind is None:
            mime = m.group("mime")
            if mime == "application/pdf":
                kind = PDF
            elif mime.startswith("image/"):
                kind = IMAGE
        return cls.from_bytes(decode_base64(text), kind)


def _target_width(native: float, width: Optional[int], dpi: Optional[int], native_dpi: Optional[float]) -> int:
    if width is None:
        if dpi is not None and native_dpi:
            width = round(native * dpi / native_dpi)
        elif dpi is not None:
            width = round(native)
        else:
            width = DEFAULT_WIDTH
    if width <= 0:
        raise InvalidDimensionsError(width, 0)
    return width


def _to_grid(img: Image.Image) -> PixelGrid:
    if img.mode != "L":
        img = img.convert("RGB")
    return PixelGrid(img.width, img.height, img.tobytes(), img.mode)


def _flatten(img: Image.Image) -> Image.Image:
    """Composite transparent images onto white paper."""
    if img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info:
        rgba = img.convert("RGBA")
        paper = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        return Image.alpha_composite(paper, rgba).convert("RGB")
    if img.mode not in ("L", "RGB"):
        return img.convert("RGB")
    return img


def _scale_to_width(img: Image.Image, width: int) -> Image.Image:
    if img.width == width:
        return img
    height = max(1, round(img.height * width / img.width))
    return img.resize((width, height), Image.LANCZOS)


def _render_pdf(data: bytes, width, dpi, page: int) -> Image.Image:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as ex:
        raise RenderError(f"Cannot open PDF: {ex}") from ex

    with doc:
        if doc.page_count == 0:
            raise EmptyDocumentError()
        if not 0 <= page < doc.page_count:
            raise RenderError(f"Page {page} out of range, document has {doc.page_count} pages")

        try:
            pdf_page = doc.load_page(page)
            native = pdf_page.rect.width
            target = _target_width(native, width, dpi, PDF_POINTS_PER_INCH)
            scale = target / native
            log.debug("Rendering page %d at scale %.3f", page, scale)
            pix = pdf_page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        except (RuntimeError, ValueError, ZeroDivisionError) as ex:
            raise RenderError(f"Cannot render PDF page {page}: {ex}") from ex

        img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)

    # the rasterizer rounds page boxes outwards; pin the width to the device
    return _scale_to_width(img, target)


def _render_image(data: bytes, width, dpi) -> Image.Image:
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except OSError as ex:
        raise RenderError(f"Cannot decode image: {ex}") from ex

    native_dpi = img.info.get("dpi", (None,))[0]
    img = _flatten(img)
    target = _target_width(img.width, width, dpi, native_dpi)
    return _scale_to_width(img, target)


def render(document: SourceDocument, width: Optional[int] = None, dpi: Optional[int] = None, page: int = 0) -> PixelGrid:
    """
    Render one page of a PDF, or an image, to a pixel grid.

    The page is scaled uniformly so that it is ``width`` dots wide; the
    height follows from the aspect ratio. Without ``width`` the native
    size at ``dpi`` is used, and without either the 80mm default.
    """
    if document.kind == PDF:
        img = _render_pdf(document.data, width, dpi, page)
    else:
        if page != 0:
            raise RenderError(f"Page {page} out of range, images have a single page")
        img = _render_image(document.data, width, dpi)

    log.info("Rendered %s to %dx%d", document.kind, img.width, img.height)
    return _to_grid(img)


def _load_font(font_path: Optional[str], size: int):
    if font_path:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError as ex:
            raise RenderError(f"Cannot load font {font_path}: {ex}") from ex
    return ImageFont.load_default(size=size)


def render_text(text: str, width: int = TEXT_WIDTH, font_size: int = 24, align: str = "center",
                padding: int = 10, line_spacing: int = 0, font_path: Optional[str] = None,
                bold: bool = False) -> PixelGrid:
    """
    Draw text black on white, one line per ``\\n``.

    Useful when the printer has no code page for the script.
    """
    anchors = {
        "left": (padding, "la"),
        "center": (width / 2, "ma"),
        "right": (width - padding, "ra"),
    }
    if align not in anchors:
        raise RenderError(f"Unknown alignment {align!r}")
    if width <= 0:
        raise InvalidDimensionsError(width, 0)

    font = _load_font(font_path, font_size)
    lines = text.split("\n")
    line_height = font_size * LINE_HEIGHT
    total = padding * 2 + line_height * len(lines) + line_spacing * (len(lines) - 1)

    img = Image.new("L", (width, math.ceil(total)), 255)
    draw = ImageDraw.Draw(img)

    x, anchor = anchors[align]
    y = padding
    for line in lines:
        draw.text((x, y), line, fill=0, font=font, anchor=anchor,
                  stroke_width=1 if bold else 0, stroke_fill=0)
        y += line_height + line_spacing

    return _to_grid(img)
