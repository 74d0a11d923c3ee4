from print_bridge.errors import PrinterNotFoundError
from print_bridge.models import NetworkPrinter
from print_bridge.transport import DEFAULT_PORT

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

log = logging.getLogger(__name__)


class PrinterRegistry(ABC):
    """
    Where print targets come from. At most one printer is active; it is
    used whenever a job names no explicit destination.
    """

    @abstractmethod
    def list(self) -> List[NetworkPrinter]:
        ...

    @abstractmethod
    def get(self, printer_id: int) -> NetworkPrinter:
        ...

    @abstractmethod
    def add(self, name: str, ip_address: str, port: int = DEFAULT_PORT,
            bridge_url: Optional[str] = None) -> NetworkPrinter:
        ...

    @abstractmethod
    def remove(self, printer_id: int):
        ...

    @abstractmethod
    def get_active(self) -> Optional[NetworkPrinter]:
        ...

    @abstractmethod
    def set_active(self, printer_id: int) -> NetworkPrinter:
        ...

    def resolve(self, host: Optional[str] = None, port: Optional[int] = None) -> Tuple[str, int]:
        """Explicit host wins; otherwise the active printer."""
        if host:
            return host, port or DEFAULT_PORT
        active = self.get_active()
        if active is None:
            raise PrinterNotFoundError()
        return active.ip_address, active.port


class SqlPrinterRegistry(PrinterRegistry):

    def __init__(self, db):
        self.db = db

    def list(self):
        return self.db.query(NetworkPrinter).order_by(NetworkPrinter.id).all()

    def get(self, printer_id):
        printer = self.db.get(NetworkPrinter, printer_id)
        if printer is None:
            raise PrinterNotFoundError(printer_id)
        return printer

    def add(self, name, ip_address, port=DEFAULT_PORT, bridge_url=None):
        # the first printer becomes active
        first = self.db.query(NetworkPrinter).count() == 0
        printer = NetworkPrinter(
            name=name,
            ip_address=ip_address,
            port=port,
            bridge_url=bridge_url,
            is_active=first,
        )
        self.db.add(printer)
        self.db.commit()
        log.info("Registered printer: %s (%s:%s)", name, ip_address, port)
        return printer

    def remove(self, printer_id):
        printer = self.get(printer_id)
        self.db.delete(printer)
        self.db.commit()
        log.info("Removed printer %s", printer_id)

    def get_active(self):
        return (
            self.db.query(NetworkPrinter)
            .filter(NetworkPrinter.is_active.is_(True))
            .order_by(NetworkPrinter.id)
            .first()
        )

    def set_active(self, printer_id):
        printer = self.get(printer_id)
        (
            self.db.query(NetworkPrinter)
            .filter(NetworkPrinter.id != printer.id)
            .update({NetworkPrinter.is_active: False}, synchronize_session="fetch")
        )
        printer.is_active = True
        self.db.commit()
        log.info("Active printer: %s (%s:%s)", printer.name, printer.ip_address, printer.port)
        return printer
