from print_bridge.errors import ConnectionTimeoutError, TransportError, WriteError
from print_bridge.job import PrintJob
from print_bridge.transport import check_printer, send_to_printer

import asyncio
import socket
import time

import pytest


async def serve_once(handler_result):
    """Local 'printer' collecting everything written to it."""
    done = asyncio.Event()

    async def handle(reader, writer):
        handler_result.extend(await reader.read())
        writer.close()
        done.set()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, port, done


def free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_send_delivers_whole_payload():
    payload = b"\x1b\x40" + bytes(range(256)) * 64 + b"\x1d\x56\x00"

    async def scenario():
        received = bytearray()
        server, port, done = await serve_once(received)
        async with server:
            sent = await send_to_printer("127.0.0.1", port, payload, settle=0.01)
            await asyncio.wait_for(done.wait(), 2)
        return sent, bytes(received)

    sent, received = asyncio.run(scenario())
    assert sent == len(payload)
    assert received == payload


def test_print_job_send():
    async def scenario():
        received = bytearray()
        server, port, done = await serve_once(received)
        async with server:
            await PrintJob("127.0.0.1", port, b"hello").send(settle=0)
            await asyncio.wait_for(done.wait(), 2)
        return bytes(received)

    assert asyncio.run(scenario()) == b"hello"


def test_settle_delay_before_close():
    async def scenario():
        received = bytearray()
        server, port, done = await serve_once(received)
        async with server:
            start = time.monotonic()
            await send_to_printer("127.0.0.1", port, b"x", settle=0.2)
            return time.monotonic() - start

    assert asyncio.run(scenario()) >= 0.2


def test_connection_refused():
    port = free_port()
    with pytest.raises(TransportError) as exc:
        asyncio.run(send_to_printer("127.0.0.1", port, b"x", timeout=2, settle=0))
    assert not isinstance(exc.value, ConnectionTimeoutError)
    assert isinstance(exc.value.cause, OSError)
    assert exc.value.port == port


def test_connect_timeout(monkeypatch):
    state = {"cancelled": False}

    async def never_connects(host, port):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    monkeypatch.setattr(asyncio, "open_connection", never_connects)

    start = time.monotonic()
    with pytest.raises(ConnectionTimeoutError) as exc:
        asyncio.run(send_to_printer("10.255.255.1", 9100, b"x", timeout=0.1))
    elapsed = time.monotonic() - start

    assert 0.1 <= elapsed < 0.5
    assert exc.value.timeout == 0.1
    # the pending connect is torn down, not left dangling
    assert state["cancelled"]


class BrokenWriter:
    def __init__(self):
        self.aborted = False
        self.closed = False
        self.transport = self

    def abort(self):
        self.aborted = True

    def write(self, data):
        pass

    async def drain(self):
        raise ConnectionResetError("reset by peer")

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


def test_write_failure_aborts_socket(monkeypatch):
    writer = BrokenWriter()

    async def connect(host, port):
        return None, writer

    monkeypatch.setattr(asyncio, "open_connection", connect)

    with pytest.raises(WriteError) as exc:
        asyncio.run(send_to_printer("127.0.0.1", 9100, b"x", settle=0))
    assert isinstance(exc.value.cause, ConnectionResetError)
    assert writer.aborted
    assert not writer.closed


def test_check_printer_sends_init():
    async def scenario():
        received = bytearray()
        server, port, done = await serve_once(received)
        async with server:
            ok = await check_printer("127.0.0.1", port, timeout=2, settle=0)
            await asyncio.wait_for(done.wait(), 2)
        return ok, bytes(received)

    assert asyncio.run(scenario()) == (True, b"\x1b@")

    with pytest.raises(TransportError):
        asyncio.run(check_printer("127.0.0.1", free_port(), timeout=2, settle=0))


def test_check_printer_reports_write_failure(monkeypatch):
    writer = BrokenWriter()

    async def connect(host, port):
        return None, writer

    monkeypatch.setattr(asyncio, "open_connection", connect)

    with pytest.raises(WriteError):
        asyncio.run(check_printer("127.0.0.1", 9100, settle=0))
    assert writer.aborted
