"""Printer discovery."""

from typing import List, Optional

from print_bridge.connection import ConnectionManager
from print_bridge.errors import ChannelClosed, DaemonRejected, PrinterDiscoveryError
from print_bridge.log import get_logger

log = get_logger(__name__)


class PrinterDirectory:
    """The printers the daemon reports, plus the current selection."""

    def __init__(self, connection: ConnectionManager):
        self.connection = connection
        self._printers: List[str] = []
        self._selected: Optional[str] = None

    @property
    def printers(self) -> List[str]:
        return list(self._printers)

    @property
    def selected(self) -> Optional[str]:
        return self._selected

    def select(self, name: str) -> str:
        if name not in self._printers:
            raise ValueError(f"unknown printer: {name!r}")
        self._selected = name
        return name

    async def _query(self, method: str, params: Optional[dict] = None):
        if not self.connection.is_active():
            raise PrinterDiscoveryError(PrinterDiscoveryError.NOT_CONNECTED, "no connection to the print daemon")
        try:
            return await self.connection.call(method, params)
        except (DaemonRejected, ChannelClosed) as e:
            raise PrinterDiscoveryError(PrinterDiscoveryError.QUERY_FAILED, str(e)) from e

    async def refresh(self) -> List[str]:
        """Replace the known printers with the daemon's current list.

        An empty list is a valid answer. The selection survives if the printer
        is still there, otherwise it falls back to the first printer.
        """
        result = await self._query("printers.find")
        if result is None:
            printers = []
        elif isinstance(result, str):
            printers = [result]
        elif isinstance(result, list):
            printers = [str(name) for name in result]
        else:
            raise PrinterDiscoveryError(
                PrinterDiscoveryError.QUERY_FAILED,
                f"unexpected printer list: {type(result).__name__}",
            )

        self._printers = printers
        if self._selected not in printers:
            self._selected = printers[0] if printers else None
        log.info("printers refreshed", count=len(printers), selected=self._selected)
        return list(printers)

    async def default_printer(self) -> Optional[str]:
        """The daemon's system default printer, if it has one."""
        result = await self._query("printers.getDefault")
        return str(result) if result else None
