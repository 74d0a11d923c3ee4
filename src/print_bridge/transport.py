from print_bridge.errors import ConnectionTimeoutError, TransportError, WriteError

import asyncio
import logging
from contextlib import asynccontextmanager

log = logging.getLogger(__name__)

DEFAULT_PORT = 9100
CONNECT_TIMEOUT = 10.0   # seconds
CHECK_TIMEOUT = 3.0
SETTLE_DELAY = 0.5       # let the printer drain its buffer before closing
TEST_PAYLOAD = b"\x1b@"   # ESC @


@asynccontextmanager
async def connection(host: str, port: int, timeout: float = CONNECT_TIMEOUT):
    """
    Open a TCP connection to a printer and yield its stream writer.

    The socket is closed when the block finishes and aborted when it raises.
    A connect that does not finish within ``timeout`` seconds is cancelled,
    which releases the half-open socket.
    """
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except asyncio.TimeoutError as ex:
        log.error("Connection timeout: %s:%s", host, port)
        raise ConnectionTimeoutError(host, port, timeout) from ex
    except OSError as ex:
        log.error("Connection error %s:%s: %s", host, port, ex)
        raise TransportError(f"Cannot connect to {host}:{port}: {ex}", host, port, ex) from ex

    try:
        yield writer
    except BaseException:
        writer.transport.abort()
        raise

    writer.close()
    try:
        await writer.wait_closed()
    except OSError as ex:
        # payload is already flushed at this point
        log.warning("Error closing connection to %s:%s: %s", host, port, ex)


async def send_to_printer(host: str, port: int, payload: bytes,
                          timeout: float = CONNECT_TIMEOUT, settle: float = SETTLE_DELAY) -> int:
    """
    Deliver a command stream over one fresh TCP connection.

    Nothing is read back; success means the bytes were flushed locally.
    Returns the number of bytes sent.
    """
    async with connection(host, port, timeout) as writer:
        log.info("Connected to printer: %s:%s", host, port)
        try:
            writer.write(payload)
            await writer.drain()
        except OSError as ex:
            log.error("Write error %s:%s: %s", host, port, ex)
            raise WriteError(f"Write to {host}:{port} failed: {ex}", host, port, ex) from ex

        log.info("Sent %d bytes to printer", len(payload))
        await asyncio.sleep(settle)

    return len(payload)


async def check_printer(host: str, port: int = DEFAULT_PORT, timeout: float = CHECK_TIMEOUT,
                settle: float = SETTLE_DELAY) -> bool:
    """
    Send ESC @ to host:port. A printer that accepts the connection but
    fails the write raises, same as a real job would.
    """
    await send_to_printer(host, port, TEST_PAYLOAD, timeout=timeout, settle=settle)
    log.info("Printer is reachable at %s:%s", host, port)
    return True
