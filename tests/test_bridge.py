"""
End-to-end tests of the bridge against the fake daemon.
"""

import pytest

from conftest import TEST_CERTIFICATE, FakeDaemon, no_sleep
from print_bridge.bridge import PrintBridge
from print_bridge.config import ConnectOptions
from print_bridge.encoder import Receipt, ReceiptOptions
from print_bridge.errors import CertificateError, DaemonConnectionError, DispatchError
from print_bridge.signing import RSASigner, key_from_path

RECEIPT = Receipt(
    header="POS PRINTER TEST",
    items=[("Item 1", "$10.00"), ("Item 2", "$15.50")],
    total="$25.50",
    footer="Thank you!",
)


def make_bridge(daemon, **kwargs):
    kwargs.setdefault("options", ConnectOptions(retries=3, delay_between_retries=0))
    return PrintBridge(connector=daemon.connector, sleep=no_sleep, **kwargs)


class TestPrintBridge:
    @pytest.mark.anyio
    async def test_receipt_printed_end_to_end(self, rsa_key, key_file, certificate_file, fixed_clock):
        daemon = FakeDaemon(public_key=rsa_key.public_key())
        bridge = make_bridge(daemon, signer=RSASigner(key_from_path(str(key_file)), "SHA512"))

        async with bridge:
            printers = await bridge.start(str(certificate_file))
            assert printers == ["Printer-A", "Printer-B"]
            assert bridge.connected
            assert bridge.status == "Found 2 printer(s)"

            bridge.select_printer("Printer-A")
            accepted = await bridge.print_receipt(RECEIPT, ReceiptOptions(clock=fixed_clock))

            assert accepted.printer == "Printer-A"
            assert bridge.status == "Print job sent successfully!"

        assert not bridge.connected
        assert daemon.channel.closed
        assert daemon.certificates == [TEST_CERTIFICATE]

        job = daemon.jobs[0]
        assert job["printer"] == {"name": "Printer-A"}
        assert job["options"]["silent"] is True
        data = job["data"][0]["data"]
        expected_order = [
            "\x1b@",
            "\x1ba\x01",
            "POS PRINTER TEST",
            "\x1ba\x00",
            "Item 1            $10.00",
            "Item 2            $15.50",
            "------------------------",
            "TOTAL             $25.50",
            "\x1ba\x01",
            "Thank you!",
            "\x1dV\x41\x00",
            "\x1bd\x03",
        ]
        position = 0
        for fragment in expected_order:
            found = data.find(fragment, position)
            assert found >= 0, f"{fragment!r} missing or out of order"
            position = found + len(fragment)

    @pytest.mark.anyio
    async def test_no_printers(self, certificate_file):
        daemon = FakeDaemon(printers=[])
        async with make_bridge(daemon) as bridge:
            assert await bridge.start(str(certificate_file)) == []
            assert bridge.status == "No printers found"
            assert bridge.printers.selected is None

            with pytest.raises(DispatchError) as exc_info:
                await bridge.print_receipt(RECEIPT)

        assert exc_info.value.kind == DispatchError.NO_PRINTER_SELECTED
        assert bridge.status == "Disconnected"
        assert daemon.jobs == []

    @pytest.mark.anyio
    async def test_please_select_printer_status(self, daemon):
        bridge = make_bridge(daemon)
        with pytest.raises(DispatchError):
            await bridge.print_receipt(RECEIPT)
        assert bridge.status == "Please select a printer"
        assert daemon.connect_attempts == 0

    @pytest.mark.anyio
    async def test_bad_certificate_stops_startup(self, daemon, tmp_path):
        path = tmp_path / "override.crt"
        path.write_text("<html>not found</html>")
        bridge = make_bridge(daemon)

        with pytest.raises(CertificateError):
            await bridge.start(str(path))

        assert bridge.status.startswith("Initialization failed")
        assert daemon.connect_attempts == 0

    @pytest.mark.anyio
    async def test_daemon_not_running(self):
        daemon = FakeDaemon()
        daemon.fail_connects = 1000
        bridge = make_bridge(daemon)

        with pytest.raises(DaemonConnectionError):
            await bridge.start()

        assert daemon.connect_attempts == 4
        assert bridge.status.startswith("Connection failed")
        assert not bridge.connected
        await bridge.close()

    @pytest.mark.anyio
    async def test_print_failure_status(self, daemon):
        daemon.reject["print"] = "Printer jammed"
        async with make_bridge(daemon) as bridge:
            await bridge.start()
            with pytest.raises(DispatchError):
                await bridge.print_receipt(RECEIPT)
            assert bridge.status == "Print failed: Rejected: Printer jammed"

    @pytest.mark.anyio
    async def test_scaled_profile(self, daemon):
        async with make_bridge(daemon, profile="scaled") as bridge:
            await bridge.start()
            await bridge.print_receipt(RECEIPT, copies=2)

        assert daemon.jobs[0]["options"] == {"scaleContent": True, "units": "in", "density": 203, "copies": 2}
