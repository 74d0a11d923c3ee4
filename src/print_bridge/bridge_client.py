from print_bridge.bitmap import DEFAULT_THRESHOLD
from print_bridge.models import NetworkPrinter
from print_bridge.rasterizer import DEFAULT_DPI, DEFAULT_WIDTH

import base64
import logging
from typing import Union

import requests

log = logging.getLogger(__name__)


class BridgeClient:
    """
    Sends print jobs to a bridge service running next to the printer.

    Every call returns ``{"success": bool, "error"?: str}``; network and
    HTTP failures are reported, not raised.
    """

    def __init__(self, bridge_url: str, timeout: float = 30.0):
        self.bridge_url = bridge_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def for_printer(cls, printer: NetworkPrinter, timeout: float = 30.0):
        if not printer.bridge_url:
            raise ValueError(f"Printer {printer.name} has no bridge URL")
        return cls(printer.bridge_url, timeout)

    def _post(self, path: str, body: dict) -> dict:
        url = f"{self.bridge_url}{path}"
        try:
            response = requests.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as ex:
            log.error("Bridge %s unreachable: %s", url, ex)
            return {"success": False, "error": f"Cannot reach print bridge: {ex}"}

        try:
            result = response.json()
        except ValueError:
            result = None

        if not response.ok:
            error = result.get("error") if isinstance(result, dict) else None
            error = error or f"HTTP {response.status_code}: {response.text}"
            log.error("Bridge %s failed: %s", url, error)
            return {"success": False, "error": error}

        if not isinstance(result, dict):
            return {"success": False, "error": "Bridge returned no JSON"}
        return result

    @staticmethod
    def _target(printer: NetworkPrinter) -> dict:
        return {"ipAddress": printer.ip_address, "port": printer.port}

    def print_pdf(self, printer: NetworkPrinter, pdf: Union[bytes, str], width=DEFAULT_WIDTH,
                  dpi=DEFAULT_DPI, threshold=DEFAULT_THRESHOLD, mode="raster") -> dict:
        """``pdf`` is raw bytes or an already encoded base64 / data URI string."""
        if isinstance(pdf, bytes):
            pdf = base64.b64encode(pdf).decode("ascii")
        body = {
            **self._target(printer),
            "pdfBase64": pdf,
            "options": {"mode": mode, "width": width, "dpi": dpi, "threshold": threshold},
        }
        return self._post("/print", body)

    def print_text(self, printer: NetworkPrinter, content: str, encoding="cp1258",
                   align="center", feeds=3) -> dict:
        body = {
            **self._target(printer),
            "contentBase64": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "options": {"encoding": encoding, "align": align, "feeds": feeds},
        }
        return self._post("/print", body)

    def test(self, printer: NetworkPrinter) -> dict:
        return self._post("/test", self._target(printer))
