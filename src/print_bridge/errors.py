"""
Errors raised by the print pipeline.

    PrintBridgeError
    ├── RenderError              - input document cannot be rendered
    │   └── EmptyDocumentError   - PDF has no pages
    ├── EncodingError            - bitmap cannot be framed
    │   └── InvalidDimensionsError
    ├── TransportError           - network / device fault
    │   ├── ConnectionTimeoutError
    │   └── WriteError
    └── PrinterNotFoundError     - unknown printer id / no active printer

None of these are retried; they end the current job.
"""

from typing import Any, Dict, Optional


class PrintBridgeError(Exception):

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class RenderError(PrintBridgeError):
    """Document could not be parsed or rendered."""


class EmptyDocumentError(RenderError):
    def __init__(self):
        super().__init__("Document has no pages")


class EncodingError(PrintBridgeError):
    """Bitmap or text cannot be represented as printer commands."""


class InvalidDimensionsError(EncodingError):
    def __init__(self, width: int, height: int):
        super().__init__(f"Invalid bitmap dimensions {width}x{height}",
                         {"width": width, "height": height})
        self.width = width
        self.height = height


class TransportError(PrintBridgeError):
    """
    Socket level failure talking to the printer.

    The underlying exception, if any, is kept in ``cause``.
    """

    def __init__(self, message: str, host: str, port: int, cause: Optional[BaseException] = None):
        super().__init__(message, {"host": host, "port": port})
        self.host = host
        self.port = port
        self.cause = cause


class ConnectionTimeoutError(TransportError):
    def __init__(self, host: str, port: int, timeout: float):
        super().__init__(f"Connection timeout: {host}:{port} after {timeout:g}s", host, port)
        self.timeout = timeout


class WriteError(TransportError):
    pass


class PrinterNotFoundError(PrintBridgeError):
    def __init__(self, printer_id=None):
        if printer_id is None:
            message = "No active printer configured"
        else:
            message = f"Printer {printer_id} not found"
        super().__init__(message)
        self.printer_id = printer_id
