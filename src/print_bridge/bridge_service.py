#!/usr/bin/env python3

from print_bridge.db import SessionLocal, init_db
from print_bridge.errors import (
    EncodingError,
    PrintBridgeError,
    PrinterNotFoundError,
    RenderError,
    TransportError,
)
from print_bridge.job import TEXT_ENCODINGS, PrintOptions, encode_document, encode_text
from print_bridge.rasterizer import IMAGE, PDF, SourceDocument, decode_base64
from print_bridge.registry import SqlPrinterRegistry
from print_bridge.transport import DEFAULT_PORT, TEST_PAYLOAD, send_to_printer

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

log = logging.getLogger(__name__)

VERSION = "6.1.0"
FEATURES = ["text", "cp1258", "bitmap", "pdf", "image"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Print Bridge", version=VERSION, lifespan=lifespan)

# browser back office calls the bridge cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------------------------------------------------------------
# Request bodies
# -----------------------------------------------------------------------------------

class Target(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ip_address: Optional[str] = Field(None, validation_alias=AliasChoices("ipAddress", "ip", "printerIp"))
    port: Optional[int] = Field(None, validation_alias=AliasChoices("port", "printerPort"))


class PrintRequest(Target):
    content: Optional[str] = None
    content_base64: Optional[str] = Field(None, alias="contentBase64")
    pdf_base64: Optional[str] = Field(None, validation_alias=AliasChoices("pdfBase64", "pdf"))
    image_base64: Optional[str] = Field(None, alias="imageBase64")
    options: PrintOptions = Field(default_factory=PrintOptions)

    @model_validator(mode="before")
    @classmethod
    def lift_options(cls, data):
        if not isinstance(data, dict):
            return data

        # /print/pdf callers send width, dpi and threshold next to the document
        loose = {k: data[k] for k in ("mode", "width", "threshold", "dpi", "page") if k in data}
        options = data.get("options") or {}
        if not isinstance(options, dict):
            return data
        options = {**loose, **options}

        # text callers name the code page in options.mode
        if options.get("mode") in TEXT_ENCODINGS:
            options.setdefault("encoding", options.pop("mode"))

        if options:
            data = {**data, "options": options}
        return data


class BitmapRequest(Target):
    bitmap: str


class ConnectionTestRequest(BaseModel):
    ip_address: str = Field(validation_alias=AliasChoices("ipAddress", "ip"))
    port: int = DEFAULT_PORT


class PrinterCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    ip_address: str = Field(alias="ipAddress")
    port: int = DEFAULT_PORT
    bridge_url: Optional[str] = Field(None, alias="bridgeUrl")


# -----------------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------------

def get_registry():
    db = SessionLocal()
    try:
        yield SqlPrinterRegistry(db)
    finally:
        db.close()


def get_sender():
    return send_to_printer


# -----------------------------------------------------------------------------------
# Errors -> {success: false, error}
# -----------------------------------------------------------------------------------

def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(PrintBridgeError)
async def bridge_error_handler(request: Request, ex: PrintBridgeError):
    if isinstance(ex, (RenderError, EncodingError)):
        status = 400
    elif isinstance(ex, PrinterNotFoundError):
        status = 404
    elif isinstance(ex, TransportError):
        status = 502
    else:
        status = 500
    log.error("%s %s failed: %s", request.method, request.url.path, ex)
    return failure(status, str(ex))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, ex: RequestValidationError):
    problems = []
    for err in ex.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{field}: {err.get('msg')}" if field else err.get("msg", ""))
    return failure(400, "Invalid request: " + "; ".join(problems))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, ex: Exception):
    log.exception("%s %s crashed", request.method, request.url.path)
    return failure(500, str(ex) or ex.__class__.__name__)


# -----------------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------------

def build_payload(req: PrintRequest) -> bytes:
    if req.pdf_base64:
        return encode_document(SourceDocument.from_base64(req.pdf_base64, PDF), req.options)
    if req.image_base64:
        return encode_document(SourceDocument.from_base64(req.image_base64, IMAGE), req.options)

    if req.content_base64 is not None:
        try:
            content = decode_base64(req.content_base64).decode("utf-8")
        except UnicodeDecodeError as ex:
            raise RenderError(f"contentBase64 is not UTF-8 text: {ex}") from ex
    elif req.content is not None:
        content = req.content
    else:
        raise RenderError("Missing required fields: content, contentBase64, pdfBase64 or imageBase64")

    return encode_text(content, req.options)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": VERSION,
        "features": FEATURES,
        "timestamp": datetime.now().isoformat(),
    }


@app.post("/print")
@app.post("/print/pdf")
async def print_job(req: PrintRequest, registry=Depends(get_registry), sender=Depends(get_sender)):
    host, port = registry.resolve(req.ip_address, req.port)
    # rendering and thresholding are CPU bound; keep them off the event loop
    payload = await run_in_threadpool(build_payload, req)
    log.info("Print request: %s:%s, %d bytes", host, port, len(payload))
    await sender(host, port, payload)
    return {"success": True, "message": "Print job sent successfully", "bytes": len(payload)}


@app.post("/print-bitmap")
async def print_bitmap(req: BitmapRequest, registry=Depends(get_registry), sender=Depends(get_sender)):
    """Send already encoded ESC/POS bytes (base64) as they are."""
    host, port = registry.resolve(req.ip_address, req.port)
    payload = decode_base64(req.bitmap)
    log.info("Bitmap print request: %s:%s, %d bytes", host, port, len(payload))
    await sender(host, port, payload)
    return {"success": True, "message": "Bitmap print job sent successfully", "bytes": len(payload)}


@app.post("/test")
async def test_connection(req: ConnectionTestRequest, sender=Depends(get_sender)):
    """Send ESC @ so the write path is exercised, not only the connect."""
    await sender(req.ip_address, req.port, TEST_PAYLOAD)
    return {"success": True, "message": "Connection test successful", "printer": f"{req.ip_address}:{req.port}"}


@app.get("/printers")
def list_printers(registry=Depends(get_registry)):
    return {"success": True, "printers": [p.to_dict() for p in registry.list()]}


@app.post("/printers")
def register_printer(req: PrinterCreate, registry=Depends(get_registry)):
    printer = registry.add(req.name, req.ip_address, req.port, req.bridge_url)
    return {"success": True, "printer": printer.to_dict()}


@app.post("/printers/{printer_id}/activate")
def activate_printer(printer_id: int, registry=Depends(get_registry)):
    printer = registry.set_active(printer_id)
    return {"success": True, "printer": printer.to_dict()}


@app.delete("/printers/{printer_id}")
def delete_printer(printer_id: int, registry=Depends(get_registry)):
    registry.remove(printer_id)
    return {"success": True}


def main(host=None, port=None):
    host = host or os.environ.get("PRINT_BRIDGE_HOST", "0.0.0.0")
    port = int(port or os.environ.get("PRINT_BRIDGE_PORT", 9100))
    log.info("Print bridge listening on %s:%s", host, port)
    uvicorn.run("print_bridge.bridge_service:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
