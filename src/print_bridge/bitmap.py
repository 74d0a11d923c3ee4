from print_bridge.errors import InvalidDimensionsError

from dataclasses import dataclass


DEFAULT_THRESHOLD = 128

CHANNELS = {"L": 1, "RGB": 3}


@dataclass(frozen=True)
class PixelGrid:
    """
    Grayscale ("L") or colour ("RGB") pixels, row-major, one byte per channel.
    """
    width: int
    height: int
    data: bytes
    mode: str = "L"

    def __post_init__(self):
        if self.mode not in CHANNELS:
            raise ValueError(f"Unsupported pixel mode {self.mode!r}")
        expected = max(self.width, 0) * max(self.height, 0) * CHANNELS[self.mode]
        if len(self.data) != expected:
            raise ValueError(f"Pixel buffer has {len(self.data)} bytes, expected {expected}")

    @property
    def channels(self) -> int:
        return CHANNELS[self.mode]

    @classmethod
    def filled(cls, width: int, height: int, value=255, mode: str = "L"):
        """Uniform grid; ``value`` is a gray level or an (r, g, b) tuple."""
        if mode == "L":
            pixel = bytes([value])
        else:
            pixel = bytes(value if isinstance(value, (tuple, list)) else (value,) * 3)
        return cls(width, height, pixel * (max(width, 0) * max(height, 0)), mode)


@dataclass(frozen=True)
class MonochromeBitmap:
    """
    1 bit per pixel, 1 = black. Rows are padded to a whole byte, MSB first.
    """
    width: int
    height: int
    data: bytes

    def __post_init__(self):
        if len(self.data) != self.bytes_per_row * self.height:
            raise ValueError("Bitmap buffer does not match its dimensions")

    @property
    def bytes_per_row(self) -> int:
        return (self.width + 7) // 8

    def pixel(self, x: int, y: int) -> int:
        # outside the image reads as white
        if not (0 <= x < self.width and 0 <= y < self.height):
            return 0
        byte = self.data[y * self.bytes_per_row + (x >> 3)]
        return (byte >> (7 - (x & 7))) & 1

    def row(self, y: int) -> bytes:
        start = y * self.bytes_per_row
        return self.data[start:start + self.bytes_per_row]


def threshold(grid: PixelGrid, level: int = DEFAULT_THRESHOLD) -> MonochromeBitmap:
    """
    Reduce a pixel grid to a packed 1-bit bitmap.

    Gray is the plain mean of R, G and B (not luminance weighted). A pixel
    prints when gray < level, so gray == level stays white. ``level`` is
    clamped to [0, 255].
    """
    width, height = grid.width, grid.height
    if width <= 0 or height <= 0:
        raise InvalidDimensionsError(width, height)

    level = min(max(int(level), 0), 255)
    channels = grid.channels
    # mean(r, g, b) < level  <=>  r + g + b < 3 * level
    cutoff = level * channels
    stride = width * channels
    bytes_per_row = (width + 7) // 8

    out = bytearray(bytes_per_row * height)
    data = grid.data

    for y in range(height):
        row = data[y * stride:(y + 1) * stride]
        base = y * bytes_per_row
        for x in range(width):
            if channels == 1:
                gray = row[x]
            else:
                i = x * 3
                gray = row[i] + row[i + 1] + row[i + 2]
            if gray < cutoff:
                out[base + (x >> 3)] |= 0x80 >> (x & 7)

    return MonochromeBitmap(width, height, bytes(out))
