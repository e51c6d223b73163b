"""Sending print jobs to the daemon."""

from dataclasses import dataclass
from typing import Any, Optional

from print_bridge.connection import ConnectionManager
from print_bridge.errors import ChannelClosed, DaemonRejected, DispatchError
from print_bridge.jobs import PrintJob
from print_bridge.log import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class Accepted:
    printer: str
    job_name: Optional[str]
    result: Any = None


class PrintDispatcher:
    """Sends one job per call. Failed jobs are never resent automatically."""

    def __init__(self, connection: ConnectionManager):
        self.connection = connection

    async def send(self, printer: Optional[str], job: PrintJob) -> Accepted:
        if not printer:
            raise DispatchError(DispatchError.NO_PRINTER_SELECTED, "select a printer first")
        if not self.connection.is_active():
            raise DispatchError(DispatchError.NOT_CONNECTED, "no connection to the print daemon")

        config = job.config if job.config.printer == printer else job.config.for_printer(printer)
        params = {
            "printer": {"name": printer},
            "options": config.to_wire(),
            "data": job.to_wire_data(),
        }
        log.info("sending print job", printer=printer, job=config.job_name, segments=len(job.commands))
        try:
            result = await self.connection.call("print", params)
        except DaemonRejected as e:
            log.error("print job rejected", printer=printer, reason=e.reason)
            raise DispatchError(DispatchError.REJECTED, e.reason) from e
        except ChannelClosed as e:
            raise DispatchError(DispatchError.NOT_CONNECTED, str(e)) from e

        log.info("print job accepted", printer=printer)
        return Accepted(printer=printer, job_name=config.job_name, result=result)
