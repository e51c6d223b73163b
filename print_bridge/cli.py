"""Command-line interface."""

import argparse
import asyncio
import sys

from print_bridge.bridge import PrintBridge
from print_bridge.config import DEFAULT_HOST, BridgeSettings
from print_bridge.encoder import DrawerKick, Receipt, ReceiptOptions
from print_bridge.errors import BridgeError
from print_bridge.jobs import PrintProfile
from print_bridge.log import configure_logging, get_logger
from print_bridge.signing import ALGORITHMS, SigningStrategy, build_signer, key_from_path, key_from_url
from print_bridge.sources import is_url

log = get_logger(__name__)

TEST_RECEIPT = Receipt(
    header="POS PRINTER TEST",
    items=[("Item 1", "$10.00"), ("Item 2", "$15.50")],
    total="$25.50",
    footer="Thank you!",
)


def build_parser(settings: BridgeSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="print-bridge",
        description="Print Bridge - silent receipt printing through a local print daemon",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --list-printers               Show the printers the daemon knows
  %(prog)s                               Print a test receipt on the first printer
  %(prog)s --printer "EPSON TM-T20"      Print a test receipt on a given printer
  %(prog)s --drawer                      Also kick the cash drawer
  %(prog)s --insecure                    Use ws:// (loopback daemons only)

Signing:
  %(prog)s --private-key key.pem                       RSA signature (default)
  %(prog)s --signing remote --signing-url https://...  Signing service
  %(prog)s --signing digest                            Digest only (demo, untrusted)

Settings can also come from PRINT_BRIDGE_* environment variables.
        """,
    )

    parser.add_argument(
        "-H",
        "--host",
        default=settings.connect.host,
        metavar="ADDR",
        help=f"Daemon address (default: {DEFAULT_HOST})",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=settings.connect.port,
        metavar="PORT",
        help="Daemon port (default: 8181 secure, 8182 insecure)",
    )

    parser.add_argument(
        "--insecure",
        action="store_true",
        default=not settings.connect.use_secure_transport,
        help="Use an unencrypted websocket (ignored for non-loopback hosts)",
    )

    parser.add_argument(
        "--bypass-ssl-error",
        action="store_true",
        default=settings.connect.bypass_ssl_error,
        help="Accept the daemon's self-signed TLS certificate",
    )

    parser.add_argument(
        "--retries",
        type=int,
        default=settings.connect.retries,
        metavar="N",
        help=f"Connection retries (default: {settings.connect.retries})",
    )

    parser.add_argument(
        "--delay",
        type=float,
        default=settings.connect.delay_between_retries,
        metavar="SECONDS",
        help=f"Delay between retries (default: {settings.connect.delay_between_retries})",
    )

    parser.add_argument(
        "--certificate",
        default=settings.certificate,
        metavar="PATH_OR_URL",
        help=f"Trust certificate (default: {settings.certificate})",
    )

    parser.add_argument(
        "--private-key",
        default=settings.private_key,
        metavar="PATH_OR_URL",
        help=f"Private key for RSA signing (default: {settings.private_key})",
    )

    parser.add_argument(
        "--signing",
        choices=[s.value for s in SigningStrategy],
        default=settings.signing,
        help=f"Signing strategy (default: {settings.signing})",
    )

    parser.add_argument(
        "--signing-url",
        metavar="URL",
        help="Signing service URL for --signing remote",
    )

    parser.add_argument(
        "--algorithm",
        choices=sorted(ALGORITHMS),
        type=str.upper,
        default=settings.algorithm,
        help=f"Signature digest (default: {settings.algorithm})",
    )

    parser.add_argument(
        "--profile",
        choices=[p.value for p in PrintProfile],
        default=settings.profile,
        help=f"Job configuration profile (default: {settings.profile})",
    )

    parser.add_argument(
        "--printer",
        metavar="NAME",
        help="Printer to use (default: first printer found)",
    )

    parser.add_argument(
        "--list-printers",
        action="store_true",
        help="List printers and exit",
    )

    parser.add_argument(
        "--drawer",
        action="store_true",
        help="Kick the cash drawer after the receipt",
    )

    parser.add_argument(
        "--partial-cut",
        action="store_true",
        help="Partial instead of full cut",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.debug,
        help="Verbose logging",
    )

    return parser


def bridge_from_args(args) -> PrintBridge:
    options = BridgeSettings().connect.with_overrides(
        host=args.host,
        port=args.port,
        use_secure_transport=not args.insecure,
        retries=args.retries,
        delay_between_retries=args.delay,
        bypass_ssl_error=args.bypass_ssl_error,
    )

    key_source = None
    if args.private_key:
        key_source = key_from_url(args.private_key) if is_url(args.private_key) else key_from_path(args.private_key)
    signer = build_signer(
        args.signing,
        algorithm=args.algorithm,
        key_source=key_source,
        url=args.signing_url,
    )
    return PrintBridge(options=options, signer=signer, profile=args.profile)


async def run(args) -> int:
    try:
        bridge = bridge_from_args(args)
    except ValueError as e:
        log.error("invalid configuration", error=str(e))
        return 2

    async with bridge:
        try:
            printers = await bridge.start(args.certificate)
            if args.list_printers:
                for name in printers:
                    print(name)
                return 0
            if args.printer:
                bridge.select_printer(args.printer)
            options = ReceiptOptions(
                partial_cut=args.partial_cut,
                drawer=DrawerKick() if args.drawer else None,
            )
            await bridge.print_receipt(TEST_RECEIPT, options)
        except (BridgeError, ValueError) as e:
            log.error("print bridge failed", error=str(e), status=bridge.status)
            return 1
        finally:
            print(bridge.status)
    return 0


def main(argv=None) -> int:
    """Main entry point with CLI argument parsing."""
    try:
        settings = BridgeSettings.from_env()
    except ValueError as e:
        log.error("invalid configuration", error=str(e))
        return 2
    args = build_parser(settings).parse_args(argv)
    configure_logging(debug=args.debug)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 130


if __name__ == "__main__":
    sys.exit(main())
