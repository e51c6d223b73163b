"""Receipt to ESC/POS command encoding."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Sequence, Tuple, Union

from escpos.constants import ESC, GS, HW_INIT, TXT_STYLE

from print_bridge.config import DEFAULT_FEED_LINES, DEFAULT_LINE_WIDTH
from print_bridge.jobs import CommandStream

Amount = Union[str, int, float, Decimal]


def _text(command: bytes) -> str:
    return command.decode("latin-1")


INITIALIZE = _text(HW_INIT)  # ESC @
ALIGN_CENTER = _text(TXT_STYLE["align"]["center"])  # ESC a 1
ALIGN_LEFT = _text(TXT_STYLE["align"]["left"])  # ESC a 0

# GS V m n - Select cut mode and cut paper
# m: 0x41 full cut / 0x42 partial cut, after feeding paper by n
CUT_FULL = 0x41
CUT_PARTIAL = 0x42
CUT_FEED_VARIANTS = (0x00, 0x10)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def cut(partial: bool = False, feed: int = 0x00) -> str:
    mode = CUT_PARTIAL if partial else CUT_FULL
    return _text(GS + b"V" + bytes([mode, feed]))


def feed(lines: int) -> str:
    """ESC d n - Print and feed n lines."""
    if not 0 <= lines <= 255:
        raise ValueError("feed lines must be between 0 and 255")
    return _text(ESC + b"d" + bytes([lines]))


@dataclass(frozen=True)
class DrawerKick:
    """Cash drawer pulse.

    pin: connector pin selector m (0 = pin 2, 1 = pin 5)
    on_ms / off_ms: pulse on and off times, sent in units of 2ms
    """

    pin: int = 0
    on_ms: int = 50
    off_ms: int = 50

    def __post_init__(self):
        if self.pin not in (0, 1):
            raise ValueError("drawer pin must be 0 or 1")
        for value in (self.on_ms, self.off_ms):
            if not 0 <= value <= 510:
                raise ValueError("pulse times must be between 0 and 510 ms")

    def command(self) -> str:
        # ESC p m t1 t2 - Generate pulse on pin m
        # 25 units = 50ms
        return _text(ESC + b"p" + bytes([self.pin, self.on_ms // 2, self.off_ms // 2]))


@dataclass(frozen=True)
class Receipt:
    header: str
    items: Sequence[Tuple[str, Amount]]
    total: Amount
    footer: str = ""
    total_label: str = "TOTAL"


@dataclass(frozen=True)
class ReceiptOptions:
    line_width: int = DEFAULT_LINE_WIDTH
    partial_cut: bool = False
    cut_feed: int = 0x00
    feed_lines: int = DEFAULT_FEED_LINES
    drawer: Optional[DrawerKick] = None
    currency: str = "$"
    clock: Callable[[], datetime] = field(default=datetime.now, compare=False)

    def __post_init__(self):
        if self.cut_feed not in CUT_FEED_VARIANTS:
            raise ValueError(f"cut_feed must be one of {CUT_FEED_VARIANTS}")
        if self.line_width < 8:
            raise ValueError("line_width is too narrow for a receipt")


def format_amount(amount: Amount, currency: str = "$") -> str:
    """Fixed two-decimal text; strings are taken as already formatted."""
    if isinstance(amount, str):
        return amount
    return f"{currency}{Decimal(str(amount)):.2f}"


def money_line(label: str, amount: str, width: int) -> str:
    """Label on the left, amount flush right, truncating the label if needed.

    An amount too wide for the line is never cut; it follows the first
    character of the label and the line runs past ``width``.
    """
    room = max(width - len(amount) - 1, 1)
    if len(label) > room:
        label = label[:room]
    pad = max(width - len(amount), len(label) + 1)
    return f"{label:<{pad}}{amount}\n"


def encode(receipt: Receipt, options: Optional[ReceiptOptions] = None) -> CommandStream:
    """Encode ``receipt`` as ESC/POS segments.

    Only the timestamp segment depends on anything but the arguments.
    """
    options = options or ReceiptOptions()
    width = options.line_width

    stream = CommandStream([INITIALIZE, ALIGN_CENTER, f"{receipt.header}\n\n", ALIGN_LEFT])
    for label, amount in receipt.items:
        stream.append(money_line(label, format_amount(amount, options.currency), width))
    stream.append("-" * width + "\n")
    total = format_amount(receipt.total, options.currency)
    stream.append(money_line(receipt.total_label, total, width) + "\n")
    stream.append(ALIGN_CENTER)
    stream.append(f"{receipt.footer}\n")
    stream.append(options.clock().strftime(TIMESTAMP_FORMAT) + "\n\n")
    stream.append(cut(options.partial_cut, options.cut_feed))
    stream.append(feed(options.feed_lines))
    if options.drawer is not None:
        stream.append(options.drawer.command())
    return stream
