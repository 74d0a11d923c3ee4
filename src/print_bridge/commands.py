from print_bridge.bitmap import MonochromeBitmap
from print_bridge.errors import EncodingError, InvalidDimensionsError

from abc import ABC, abstractmethod
import unicodedata


MAX_DIMENSION = 0xFFFF
STRIP_HEIGHT = 24
FEED_LINES = 3

# combining tone marks that CP1258 keeps as separate code points
CP1258_TONE_MARKS = "\u0300\u0301\u0303\u0309\u0323"

CODEPAGES = {
    "cp1258": 30,
    "no-accents": 0,
}

ALIGNMENTS = {
    "left": 0,
    "center": 1,
    "right": 2,
}


def strip_tones(text: str) -> str:
    """Drop Vietnamese diacritics: "Đường phố" -> "Duong pho"."""
    text = text.replace("đ", "d").replace("Đ", "D")
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def _encode_cp1258_char(char: str) -> bytes:
    try:
        return char.encode("cp1258")
    except UnicodeEncodeError:
        pass
    # e.g. "ậ": keep "â" precomposed and append the dot below as a combining mark
    decomposed = unicodedata.normalize("NFD", char)
    base = decomposed[0] + "".join(m for m in decomposed[1:] if m not in CP1258_TONE_MARKS)
    tones = "".join(m for m in decomposed[1:] if m in CP1258_TONE_MARKS)
    composed = unicodedata.normalize("NFC", base) + tones
    return composed.encode("cp1258", errors="replace")


def encode_text(text: str, encoding: str) -> bytes:
    if encoding == "cp1258":
        text = unicodedata.normalize("NFC", text)
        return b"".join(_encode_cp1258_char(c) for c in text)
    elif encoding == "no-accents":
        return strip_tones(text).encode("ascii", errors="replace")
    elif encoding == "utf8":
        return text.encode("utf-8")
    raise EncodingError(f"Unknown text encoding {encoding!r}")


class CommandBuffer:
    """
    ESC/POS command writer collecting bytes in memory.

        buf = CommandBuffer()
        buf.initialize()
        buf.text("Hello")
        buf.cut()
        payload = buf.getvalue()
    """

    def __init__(self, encoding="cp1258"):
        self.encoding = encoding
        self._buf = bytearray()

    def raw(self, data: bytes):
        self._buf += data

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def initialize(self):
        self.raw(b"\x1b@")       # ESC @

    def codepage(self, n: int):
        self.raw(b"\x1bt" + bytes([n]))

    def text(self, s: str):
        self.raw(encode_text(s, self.encoding))

    def align(self, mode: str):
        if mode not in ALIGNMENTS:
            raise EncodingError(f"Unknown alignment {mode!r}")
        self.raw(b"\x1b\x61" + bytes([ALIGNMENTS[mode]]))

    def feed(self, lines: int):
        """ESC d n: print and feed n lines."""
        if not 0 <= lines <= 255:
            raise EncodingError(f"Feed of {lines} lines out of range")
        self.raw(b"\x1bd" + bytes([lines]))

    def cut(self):
        self.raw(b"\x1d\x56\x00")      # GS V 0, full cut


class Framer(ABC):
    """
    Turns a packed bitmap into a complete command stream:
    ESC @, image commands, feed 3 lines, full cut.
    """
    mode = None

    def frame(self, bitmap: MonochromeBitmap) -> bytes:
        if bitmap.width <= 0 or bitmap.height <= 0:
            raise InvalidDimensionsError(bitmap.width, bitmap.height)
        if bitmap.width > MAX_DIMENSION or bitmap.height > MAX_DIMENSION:
            raise EncodingError(
                f"Bitmap {bitmap.width}x{bitmap.height} exceeds {MAX_DIMENSION} dots",
                {"width": bitmap.width, "height": bitmap.height},
            )

        buf = CommandBuffer()
        buf.initialize()
        self.write_image(buf, bitmap)
        buf.feed(FEED_LINES)
        buf.cut()
        return buf.getvalue()

    @abstractmethod
    def write_image(self, buf: CommandBuffer, bitmap: MonochromeBitmap):
        ...


class StripFramer(Framer):
    """
    ESC * 33: 24-dot double density bit image, one strip of 24 rows at a time.

    Each strip is ``1B 2A 21 nL nH`` with n = width in dots, then 3 bytes per
    column (top 8 rows first, MSB = topmost row), then LF to advance the head
    by exactly one strip.
    """
    mode = "strip"

    def write_image(self, buf, bitmap):
        width, height = bitmap.width, bitmap.height
        header = b"\x1b\x2a\x21" + bytes([width & 0xFF, width >> 8])

        for top in range(0, height, STRIP_HEIGHT):
            strip = bytearray(header)
            for x in range(width):
                for band in range(3):
                    byte = 0
                    for bit in range(8):
                        if bitmap.pixel(x, top + band * 8 + bit):
                            byte |= 0x80 >> bit
                    strip.append(byte)
            strip.append(0x0A)
            buf.raw(strip)


class RasterFramer(Framer):
    """
    GS v 0: whole raster in one block.

    Header ``1D 76 30 00 xL xH yL yH``; x counts BYTES per row, y counts dots.
    """
    mode = "raster"

    def write_image(self, buf, bitmap):
        bytes_per_row = bitmap.bytes_per_row
        height = bitmap.height
        buf.raw(b"\x1d\x76\x30\x00")   # GS v 0 m=0
        buf.raw(bytes([bytes_per_row & 0xFF, bytes_per_row >> 8]))
        buf.raw(bytes([height & 0xFF, height >> 8]))
        buf.raw(bitmap.data)


FRAMERS = {
    StripFramer.mode: StripFramer,
    RasterFramer.mode: RasterFramer,
}


def framer_for(mode: str) -> Framer:
    try:
        return FRAMERS[mode]()
    except KeyError:
        raise EncodingError(f"Unknown image mode {mode!r}") from None


def text_commands(content: str, encoding="cp1258", align="left", feeds=FEED_LINES) -> bytes:
    """Plain text receipt: init, code page, alignment, text, feed, cut."""
    buf = CommandBuffer(encoding)
    buf.initialize()
    if encoding in CODEPAGES:
        buf.codepage(CODEPAGES[encoding])
    buf.align(align)
    buf.text(content)
    if feeds > 0:
        buf.feed(feeds)
    buf.cut()
    return buf.getvalue()
