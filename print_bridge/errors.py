"""Error taxonomy.

Every failure the bridge reports carries a ``kind`` (one of the class-level
constants of its family) and a human-readable ``detail``.
"""


class BridgeError(Exception):
    """Base class for all print bridge failures."""

    kinds: tuple = ()

    def __init__(self, kind: str, detail: str = ""):
        if self.kinds and kind not in self.kinds:
            raise ValueError(f"unknown {type(self).__name__} kind: {kind!r}")
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind}: {detail}" if detail else kind)


class CertificateError(BridgeError):
    INVALID_FORMAT = "InvalidFormat"
    FETCH_FAILED = "FetchFailed"
    kinds = (INVALID_FORMAT, FETCH_FAILED)


class SigningError(BridgeError):
    KEY_UNAVAILABLE = "KeyUnavailable"
    INVALID_KEY_FORMAT = "InvalidKeyFormat"
    ALGORITHM_FAILURE = "AlgorithmFailure"
    kinds = (KEY_UNAVAILABLE, INVALID_KEY_FORMAT, ALGORITHM_FAILURE)


class DaemonConnectionError(BridgeError):
    UNREACHABLE = "Unreachable"
    ALREADY_ACTIVE = "AlreadyActive"
    kinds = (UNREACHABLE, ALREADY_ACTIVE)


class PrinterDiscoveryError(BridgeError):
    NOT_CONNECTED = "NotConnected"
    QUERY_FAILED = "QueryFailed"
    kinds = (NOT_CONNECTED, QUERY_FAILED)


class DispatchError(BridgeError):
    NO_PRINTER_SELECTED = "NoPrinterSelected"
    NOT_CONNECTED = "NotConnected"
    REJECTED = "Rejected"
    kinds = (NO_PRINTER_SELECTED, NOT_CONNECTED, REJECTED)


class DaemonRejected(Exception):
    """The daemon answered a request with an error."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ChannelClosed(Exception):
    """The connection went away while a request was pending."""
