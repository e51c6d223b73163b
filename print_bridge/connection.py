"""Connection to the print daemon.

One websocket per manager. Requests are JSON objects tagged with a ``uid``;
a reader task matches each reply to the request that is waiting for it.
"""

import asyncio
import enum
import hashlib
import ipaddress
import json
import ssl
import time
import uuid
from contextlib import asynccontextmanager, suppress
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from print_bridge.certs import CertificateStore
from print_bridge.config import DEFAULT_INSECURE_PORT, DEFAULT_SECURE_PORT, ConnectOptions
from print_bridge.errors import ChannelClosed, DaemonConnectionError, DaemonRejected
from print_bridge.log import get_logger
from print_bridge.signing import Signer

log = get_logger(__name__)

TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


Connector = Callable[[str, Optional[ssl.SSLContext], float], Awaitable[Any]]


async def websocket_connector(url: str, ssl_context: Optional[ssl.SSLContext], open_timeout: float):
    kwargs = {"open_timeout": open_timeout}
    if ssl_context is not None:
        kwargs["ssl"] = ssl_context
    return await websockets.connect(url, **kwargs)


def is_loopback(host: str) -> bool:
    if host.lower() == "localhost":
        return True
    try:
        return ipaddress.ip_address(host.strip("[]")).is_loopback
    except ValueError:
        return False


def transport_for(options: ConnectOptions) -> Tuple[str, Optional[ssl.SSLContext]]:
    """Pick the daemon URL and TLS context for ``options``.

    Plain ``ws`` is only allowed towards a loopback daemon.
    """
    secure = options.use_secure_transport or not is_loopback(options.host)
    host = f"[{options.host}]" if ":" in options.host and not options.host.startswith("[") else options.host

    if not secure:
        port = options.port or DEFAULT_INSECURE_PORT
        return f"ws://{host}:{port}", None

    context = ssl.create_default_context()
    if options.bypass_ssl_error:
        log.warning("TLS verification disabled", host=options.host)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    port = options.port or DEFAULT_SECURE_PORT
    return f"wss://{host}:{port}", context


def canonical_json(value) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def signing_payload(call: str, params: dict, timestamp: int) -> str:
    """The text a signer signs for a request: SHA-256 hex of its canonical JSON."""
    body = canonical_json({"call": call, "params": params, "timestamp": timestamp})
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


class ConnectionManager:
    """Owns the single logical connection to the daemon and its state."""

    def __init__(
        self,
        trust: Optional[CertificateStore] = None,
        signer: Optional[Signer] = None,
        connector: Connector = websocket_connector,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.trust = trust
        self.signer = signer
        self._connector = connector
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._failure_reason: Optional[str] = None
        self._channel = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Future] = {}

        self.url: Optional[str] = None
        self.attempts = 0
        self.daemon_version: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def failure_reason(self) -> Optional[str]:
        return self._failure_reason

    def is_active(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState, reason: Optional[str] = None) -> None:
        if state is not self._state:
            log.debug("connection state", old=self._state.value, new=state.value)
        self._state = state
        self._failure_reason = reason if state is ConnectionState.FAILED else None

    async def connect(self, options: Optional[ConnectOptions] = None) -> "ConnectionManager":
        """Open the connection unless it is already open."""
        if self._state is ConnectionState.CONNECTED:
            return self
        if self._state is ConnectionState.CONNECTING:
            raise DaemonConnectionError(DaemonConnectionError.ALREADY_ACTIVE, "a connect is already in progress")

        options = options or ConnectOptions()
        url, ssl_context = transport_for(options)
        self.url = url
        self._set_state(ConnectionState.CONNECTING)

        try:
            channel = await self._open_with_retries(url, ssl_context, options)
        except DaemonConnectionError as e:
            self._set_state(ConnectionState.FAILED, e.detail)
            raise
        except BaseException:
            self._set_state(ConnectionState.DISCONNECTED)
            raise

        self._channel = channel
        self._reader = asyncio.create_task(self._read_loop(channel))
        try:
            await self._handshake()
        except (DaemonRejected, ChannelClosed) as e:
            await self._teardown()
            reason = f"{url}: handshake failed: {e}"
            self._set_state(ConnectionState.FAILED, reason)
            raise DaemonConnectionError(DaemonConnectionError.UNREACHABLE, reason) from e
        except BaseException:
            await self._teardown()
            self._set_state(ConnectionState.DISCONNECTED)
            raise

        self._set_state(ConnectionState.CONNECTED)
        log.info("connected to print daemon", url=url, version=self.daemon_version)
        return self

    async def _open_with_retries(self, url, ssl_context, options: ConnectOptions):
        attempts = options.retries + 1
        last_error = None

        for attempt in range(attempts):
            self.attempts = attempt + 1
            try:
                return await self._connector(url, ssl_context, options.open_timeout)
            except TRANSPORT_ERRORS as e:
                last_error = e
                log.warning(
                    "connect attempt failed",
                    url=url,
                    attempt=attempt + 1,
                    attempts=attempts,
                    error_type=type(e).__name__,
                    error=str(e) or "(no message)",
                )
                if attempt < attempts - 1:
                    await self._sleep(options.delay_between_retries)

        raise DaemonConnectionError(
            DaemonConnectionError.UNREACHABLE,
            f"{url} unreachable after {attempts} attempt(s): [{type(last_error).__name__}] {last_error}",
        )

    async def _handshake(self) -> None:
        certificate = await self.trust.resolve() if self.trust is not None else None
        if certificate is None:
            log.warning("no certificate installed, the daemon will treat this client as anonymous")
        await self._send({"uid": uuid.uuid4().hex, "certificate": certificate, "timestamp": _now_ms()})
        self.daemon_version = await self._request("getVersion")

    async def call(self, method: str, params: Optional[dict] = None):
        """Send a signed request and wait for the daemon's result.

        Raises ChannelClosed when not connected or the connection drops,
        DaemonRejected when the daemon answers with an error, and whatever
        the signer raises; in that case nothing is sent.
        """
        if self._state is not ConnectionState.CONNECTED:
            raise ChannelClosed(f"not connected (state: {self._state.value})")
        return await self._request(method, params)

    async def _request(self, method: str, params: Optional[dict] = None):
        params = params or {}
        timestamp = _now_ms()
        message = {"uid": uuid.uuid4().hex, "call": method, "params": params, "timestamp": timestamp}
        if self.signer is not None:
            message["signature"] = await self.signer.sign(signing_payload(method, params, timestamp))
            message["signAlgorithm"] = self.signer.algorithm

        future = asyncio.get_running_loop().create_future()
        self._pending[message["uid"]] = future
        try:
            await self._send(message)
            return await future
        finally:
            self._pending.pop(message["uid"], None)

    async def _send(self, message: dict) -> None:
        channel = self._channel
        if channel is None:
            raise ChannelClosed("connection closed")
        try:
            await channel.send(json.dumps(message))
        except ConnectionClosed as e:
            raise ChannelClosed(f"connection closed: {e}") from e
        log.debug("sent", call=message.get("call"), uid=message["uid"])

    async def _read_loop(self, channel) -> None:
        try:
            async for raw in channel:
                self._dispatch(raw)
        except ConnectionClosed as e:
            log.warning("daemon closed the connection", reason=str(e))
        finally:
            self._fail_pending("connection closed")
            if self._channel is channel:
                # Lost without disconnect() being called
                self._channel = None
                self._reader = None
                self._set_state(ConnectionState.DISCONNECTED)

    def _dispatch(self, raw) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            log.warning("ignoring malformed message", size=len(raw))
            return

        uid = message.get("uid") if isinstance(message, dict) else None
        future = self._pending.get(uid) if isinstance(uid, str) else None
        if future is None or future.done():
            log.debug("unsolicited message", message=message)
            return
        if message.get("error"):
            future.set_exception(DaemonRejected(str(message["error"])))
        else:
            future.set_result(message.get("result"))

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ChannelClosed(reason))
        self._pending.clear()

    async def _teardown(self) -> None:
        channel, reader = self._channel, self._reader
        self._channel = None
        self._reader = None
        if reader is not None:
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader
        if channel is not None:
            try:
                await channel.close()
            except TRANSPORT_ERRORS as e:
                log.warning("error while closing connection", error=str(e))
        self._fail_pending("disconnected")

    async def disconnect(self) -> None:
        """Close the connection. Safe to call any number of times."""
        if self._channel is None and self._reader is None:
            if self._state is ConnectionState.CONNECTED:
                self._set_state(ConnectionState.DISCONNECTED)
            return
        await self._teardown()
        self._set_state(ConnectionState.DISCONNECTED)
        log.info("disconnected from print daemon", url=self.url)

    @asynccontextmanager
    async def session(self, options: Optional[ConnectOptions] = None):
        """Connect for the duration of a ``async with`` block."""
        await self.connect(options)
        try:
            yield self
        finally:
            await self.disconnect()


def _now_ms() -> int:
    return int(time.time() * 1000)
