from print_bridge.bitmap import DEFAULT_THRESHOLD, threshold
from print_bridge.commands import FEED_LINES, framer_for, text_commands
from print_bridge.rasterizer import DEFAULT_WIDTH, SourceDocument, render, render_text
from print_bridge.transport import CONNECT_TIMEOUT, SETTLE_DELAY, send_to_printer

import logging
from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger(__name__)

TEXT_ENCODINGS = ("cp1258", "no-accents", "utf8")


class PrintOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # bitmap
    mode: Literal["raster", "strip"] = "raster"
    width: Optional[int] = None
    threshold: int = DEFAULT_THRESHOLD
    dpi: Optional[int] = None
    page: int = 0

    # text
    encoding: Literal["cp1258", "no-accents", "utf8"] = "cp1258"
    align: Literal["left", "center", "right"] = "left"
    feeds: int = Field(FEED_LINES, ge=0, le=255)
    rasterize: bool = False
    font_size: int = Field(24, alias="fontSize", gt=0)


def encode_document(document: SourceDocument, options: Optional[PrintOptions] = None) -> bytes:
    """PDF page / image -> pixel grid -> 1-bit bitmap -> ESC/POS stream."""
    options = options or PrintOptions()
    grid = render(document, width=options.width, dpi=options.dpi, page=options.page)
    bitmap = threshold(grid, options.threshold)
    payload = framer_for(options.mode).frame(bitmap)
    log.info("Encoded %dx%d bitmap as %s: %d bytes", bitmap.width, bitmap.height, options.mode, len(payload))
    return payload


def encode_text(content: str, options: Optional[PrintOptions] = None) -> bytes:
    options = options or PrintOptions()
    if not options.rasterize:
        return text_commands(content, options.encoding, options.align, options.feeds)

    grid = render_text(content, width=options.width or DEFAULT_WIDTH,
                       font_size=options.font_size, align=options.align)
    bitmap = threshold(grid, options.threshold)
    return framer_for(options.mode).frame(bitmap)


@dataclass(frozen=True)
class PrintJob:
    host: str
    port: int
    payload: bytes

    async def send(self, timeout: float = CONNECT_TIMEOUT, settle: float = SETTLE_DELAY) -> int:
        return await send_to_printer(self.host, self.port, self.payload, timeout=timeout, settle=settle)
