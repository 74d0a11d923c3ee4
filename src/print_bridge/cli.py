#!/usr/bin/env python3

from print_bridge.db import open_db, use_database
from print_bridge.errors import PrintBridgeError
from print_bridge.job import PrintJob, PrintOptions, encode_document, encode_text
from print_bridge.logging_config import setup_logging
from print_bridge.rasterizer import SourceDocument
from print_bridge.registry import SqlPrinterRegistry
from print_bridge.transport import DEFAULT_PORT, check_printer

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path


def add_image_options(p):
    p.add_argument("--mode", choices=["raster", "strip"], default="raster",
                   help="GS v 0 raster block or ESC * 24-dot strips")
    p.add_argument("--width", type=int, help="Target width in dots (default 576)")
    p.add_argument("--threshold", type=int, default=128, help="Gray cutoff 0-255")
    p.add_argument("--dpi", type=int, help="Render at this DPI when no width is given")
    p.add_argument("--page", type=int, default=0, help="PDF page index")


def add_target_options(p):
    p.add_argument("--host", help="Printer IP (default: active printer)")
    p.add_argument("--port", type=int, help=f"Printer port (default {DEFAULT_PORT})")


def image_options(args) -> PrintOptions:
    return PrintOptions(mode=args.mode, width=args.width, threshold=args.threshold,
                        dpi=args.dpi, page=args.page)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="print-bridge",
        description="ESC/POS thermal printer bridge"
    )
    parser.add_argument("--db", type=Path, default=Path(os.environ.get("PRINT_BRIDGE_DB", "printers.db")),
                        help="Printer registry (SQLite)")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd")

    # ------------------------------------------------------------
    # service
    # ------------------------------------------------------------
    serve = sub.add_parser("serve", help="Run the HTTP bridge")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    # ------------------------------------------------------------
    # printer registry
    # ------------------------------------------------------------
    printers = sub.add_parser("printers", help="Manage registered printers")
    psub = printers.add_subparsers(dest="action")
    psub.add_parser("ls", help="List printers")
    add = psub.add_parser("add", help="Register a printer")
    add.add_argument("name")
    add.add_argument("ip")
    add.add_argument("--port", type=int, default=DEFAULT_PORT)
    add.add_argument("--bridge-url")
    act = psub.add_parser("activate", help="Make a printer the active one")
    act.add_argument("id", type=int)
    rm = psub.add_parser("rm", help="Remove a printer")
    rm.add_argument("id", type=int)

    # ------------------------------------------------------------
    # documents
    # ------------------------------------------------------------
    enc = sub.add_parser("encode", help="Encode a PDF/image to a raw ESC/POS file")
    enc.add_argument("file", type=Path)
    enc.add_argument("-o", "--output", type=Path, required=True)
    add_image_options(enc)

    prn = sub.add_parser("print", help="Encode a PDF/image and send it to a printer")
    prn.add_argument("file", type=Path)
    add_image_options(prn)
    add_target_options(prn)

    txt = sub.add_parser("text", help="Print plain text")
    txt.add_argument("text")
    txt.add_argument("--encoding", choices=["cp1258", "no-accents", "utf8"], default="cp1258")
    txt.add_argument("--align", choices=["left", "center", "right"], default="left")
    txt.add_argument("--feeds", type=int, default=3)
    add_target_options(txt)

    test = sub.add_parser("test", help="Check that a printer accepts connections")
    test.add_argument("host")
    test.add_argument("port", type=int, nargs="?", default=DEFAULT_PORT)

    return parser


def registry_for(args):
    Session = open_db(args.db)
    return SqlPrinterRegistry(Session())


def run_printers(args):
    registry = registry_for(args)
    try:
        if args.action == "add":
            p = registry.add(args.name, args.ip, args.port, args.bridge_url)
            print(f"Added printer {p.id}: {p.name} ({p.ip_address}:{p.port})")
        elif args.action == "activate":
            p = registry.set_active(args.id)
            print(f"Active printer: {p.name} ({p.ip_address}:{p.port})")
        elif args.action == "rm":
            registry.remove(args.id)
            print(f"Removed printer {args.id}")
        else:
            for p in registry.list():
                mark = "*" if p.is_active else " "
                print(f"{mark} {p.id:3} | {p.name:20} | {p.ip_address}:{p.port} | {p.bridge_url or ''}")
    finally:
        registry.db.close()


def send(args, payload: bytes):
    registry = registry_for(args)
    try:
        host, port = registry.resolve(args.host, args.port)
    finally:
        registry.db.close()
    sent = asyncio.run(PrintJob(host, port, payload).send())
    print(f"Sent {sent} bytes to {host}:{port}")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if args.cmd == "serve":
            from print_bridge.bridge_service import main as serve
            setup_logging(logging.DEBUG if args.verbose else logging.INFO)
            use_database(args.db)
            serve(args.host, args.port)

        elif args.cmd == "printers":
            run_printers(args)

        elif args.cmd == "encode":
            document = SourceDocument.from_bytes(args.file.read_bytes())
            payload = encode_document(document, image_options(args))
            args.output.write_bytes(payload)
            print(f"Wrote {len(payload)} bytes to {args.output}")

        elif args.cmd == "print":
            document = SourceDocument.from_bytes(args.file.read_bytes())
            send(args, encode_document(document, image_options(args)))

        elif args.cmd == "text":
            options = PrintOptions(encoding=args.encoding, align=args.align, feeds=args.feeds)
            send(args, encode_text(args.text, options))

        elif args.cmd == "test":
            asyncio.run(check_printer(args.host, args.port))
            print(f"Printer is reachable at {args.host}:{args.port}")

        else:
            parser.print_help()

    except PrintBridgeError as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
