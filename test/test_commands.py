from print_bridge.bitmap import MonochromeBitmap, PixelGrid, threshold
from print_bridge.commands import (
    CommandBuffer,
    RasterFramer,
    StripFramer,
    framer_for,
    strip_tones,
    text_commands,
)
from print_bridge.errors import EncodingError, InvalidDimensionsError

import pytest

INIT = b"\x1b\x40"
TRAILER = b"\x1b\x64\x03" + b"\x1d\x56\x00"


def split_strips(stream: bytes, width: int):
    assert stream.startswith(INIT)
    assert stream.endswith(TRAILER)
    body = stream[len(INIT):-len(TRAILER)]
    size = 5 + width * 3 + 1
    assert len(body) % size == 0
    return [body[i:i + size] for i in range(0, len(body), size)]


def test_strip_end_to_end_384x48_black():
    bitmap = threshold(PixelGrid.filled(384, 48, 0), 128)
    stream = StripFramer().frame(bitmap)

    strip = b"\x1b\x2a\x21\x80\x01" + b"\xff" * 1152 + b"\x0a"
    assert stream == INIT + strip + strip + TRAILER


def test_strip_count():
    for height, expected in [(1, 1), (23, 1), (24, 1), (25, 2), (48, 2), (49, 3), (100, 5)]:
        bitmap = threshold(PixelGrid.filled(8, height, 0))
        strips = split_strips(StripFramer().frame(bitmap), 8)
        assert len(strips) == expected
        for s in strips:
            assert s[:5] == b"\x1b\x2a\x21\x08\x00"
            assert s[-1:] == b"\x0a"


def test_last_strip_padded_with_white():
    bitmap = threshold(PixelGrid.filled(8, 25, 0))
    first, second = split_strips(StripFramer().frame(bitmap), 8)
    assert first[5:-1] == b"\xff" * 24
    # one real row, 23 rows of padding
    assert second[5:-1] == b"\x80\x00\x00" * 8


def test_strip_column_bit_order():
    pixels = bytearray([255] * (4 * 10))
    pixels[9 * 4 + 1] = 0    # x=1, y=9 -> second byte of column 1, bit 6
    pixels[0 * 4 + 3] = 0    # x=3, y=0 -> first byte of column 3, MSB
    bitmap = threshold(PixelGrid(4, 10, bytes(pixels)))
    (strip,) = split_strips(StripFramer().frame(bitmap), 4)
    columns = strip[5:-1]
    assert columns == bytes([
        0x00, 0x00, 0x00,
        0x00, 0x40, 0x00,
        0x00, 0x00, 0x00,
        0x80, 0x00, 0x00,
    ])


def test_width_field_units_differ():
    bitmap = threshold(PixelGrid.filled(576, 30, 0))

    strip = StripFramer().frame(bitmap)
    assert strip[2:7] == b"\x1b\x2a\x21\x40\x02"        # 576 dots

    raster = RasterFramer().frame(bitmap)
    assert raster[2:10] == b"\x1d\x76\x30\x00\x48\x00\x1e\x00"   # 72 bytes x 30 rows


def test_raster_block():
    bitmap = threshold(PixelGrid.filled(10, 3, 0))
    stream = RasterFramer().frame(bitmap)
    assert stream == INIT + b"\x1d\x76\x30\x00\x02\x00\x03\x00" + b"\xff\xc0" * 3 + TRAILER
    # one block, no line feeds between rows
    assert b"\x0a" not in stream


def test_reencoding_is_identical():
    data = bytes((x ^ y) & 0xFF for y in range(40) for x in range(50))
    grid = PixelGrid(50, 40, data)
    for framer in (StripFramer(), RasterFramer()):
        assert framer.frame(threshold(grid, 90)) == framer.frame(threshold(grid, 90))


def test_dimensions_over_16_bits():
    wide = MonochromeBitmap(65536, 1, bytes(8192))
    tall = MonochromeBitmap(8, 65536, bytes(65536))
    for framer in (StripFramer(), RasterFramer()):
        with pytest.raises(EncodingError):
            framer.frame(wide)
        with pytest.raises(EncodingError):
            framer.frame(tall)


def test_empty_bitmap():
    with pytest.raises(InvalidDimensionsError):
        RasterFramer().frame(MonochromeBitmap(0, 0, b""))


def test_framer_for():
    assert isinstance(framer_for("strip"), StripFramer)
    assert isinstance(framer_for("raster"), RasterFramer)
    with pytest.raises(EncodingError):
        framer_for("zpl")


def test_text_cp1258():
    stream = text_commands("Xin chào", align="center")
    assert stream == (
        b"\x1b\x40"
        b"\x1b\x74\x1e"     # ESC t 30
        b"\x1b\x61\x01"
        b"Xin ch\xe0o"
        b"\x1b\x64\x03"
        b"\x1d\x56\x00"
    )


def test_cp1258_tone_marks():
    buf = CommandBuffer("cp1258")
    buf.text("ậ ế Đ ư ờ")
    assert buf.getvalue() == b"\xe2\xf2 \xea\xec \xd0 \xfd \xf5\xcc"


def test_text_no_accents():
    assert strip_tones("Đường phố Hà Nội") == "Duong pho Ha Noi"
    stream = text_commands("Đường phố", encoding="no-accents", feeds=0)
    assert stream == b"\x1b\x40\x1b\x74\x00\x1b\x61\x00Duong pho\x1d\x56\x00"


def test_text_utf8():
    stream = text_commands("ок", encoding="utf8", align="right", feeds=5)
    assert stream == b"\x1b\x40\x1b\x61\x02" + "ок".encode("utf-8") + b"\x1b\x64\x05\x1d\x56\x00"


def test_text_rejects_unknown_options():
    with pytest.raises(EncodingError):
        text_commands("x", encoding="latin9")
    with pytest.raises(EncodingError):
        text_commands("x", align="justify")
    with pytest.raises(EncodingError):
        text_commands("x", feeds=300)
