"""High level bridge: trust setup, connection, printer selection and printing.

``PrintBridge`` runs the startup sequence an application needs and keeps
the last status message and connection flag for whatever displays them.
"""

from typing import List, Optional

from print_bridge.certs import CertificateStore
from print_bridge.config import ConnectOptions
from print_bridge.connection import ConnectionManager, websocket_connector
from print_bridge.dispatch import Accepted, PrintDispatcher
from print_bridge.encoder import Receipt, ReceiptOptions, encode
from print_bridge.errors import BridgeError, CertificateError
from print_bridge.jobs import JobConfig, PrintJob, PrintProfile
from print_bridge.log import get_logger
from print_bridge.printers import PrinterDirectory
from print_bridge.signing import Signer

log = get_logger(__name__)


class PrintBridge:
    def __init__(
        self,
        options: Optional[ConnectOptions] = None,
        signer: Optional[Signer] = None,
        trust: Optional[CertificateStore] = None,
        profile=PrintProfile.SILENT_DIALOG_SUPPRESS,
        connector=None,
        **connection_kwargs,
    ):
        self.options = options or ConnectOptions()
        self.trust = trust or CertificateStore()
        self.profile = PrintProfile(profile)
        self.connection = ConnectionManager(
            trust=self.trust, signer=signer, connector=connector or websocket_connector, **connection_kwargs
        )
        self.printers = PrinterDirectory(self.connection)
        self.dispatcher = PrintDispatcher(self.connection)
        self.status = "Initializing print bridge..."

    @property
    def connected(self) -> bool:
        return self.connection.is_active()

    def _report(self, status: str) -> None:
        self.status = status
        log.info("status", status=status)

    async def start(self, certificate: Optional[str] = None) -> List[str]:
        """Install trust, connect and discover printers."""
        if certificate is not None:
            try:
                await self.trust.load(certificate)
            except CertificateError as e:
                self._report(f"Initialization failed: {e}")
                raise

        await self.connect()
        return await self.refresh_printers()

    async def connect(self) -> None:
        if self.connection.is_active():
            return
        try:
            await self.connection.connect(self.options)
        except BridgeError as e:
            self._report(f"Connection failed: {e}")
            raise
        self._report("Connected to print daemon")

    async def refresh_printers(self) -> List[str]:
        try:
            printers = await self.printers.refresh()
        except BridgeError as e:
            self._report(f"Printer discovery failed: {e}")
            raise

        if printers:
            self._report(f"Found {len(printers)} printer(s)")
        else:
            self._report("No printers found")
        return printers

    def select_printer(self, name: str) -> str:
        return self.printers.select(name)

    def build_job(
        self, receipt: Receipt, options: Optional[ReceiptOptions] = None, **config_overrides
    ) -> PrintJob:
        config = JobConfig.for_profile(self.printers.selected or "", self.profile, **config_overrides)
        return PrintJob(config=config, commands=encode(receipt, options))

    async def print_receipt(
        self, receipt: Receipt, options: Optional[ReceiptOptions] = None, **config_overrides
    ) -> Accepted:
        printer = self.printers.selected
        if not printer:
            self._report("Please select a printer")
        job = self.build_job(receipt, options, **config_overrides)
        try:
            accepted = await self.dispatcher.send(printer, job)
        except BridgeError as e:
            if printer:
                self._report(f"Print failed: {e}")
            raise
        self._report("Print job sent successfully!")
        return accepted

    async def close(self) -> None:
        await self.connection.disconnect()
        self._report("Disconnected")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
