import asyncio
import base64
import json
from datetime import datetime

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from print_bridge.connection import signing_payload
from print_bridge.signing import ALGORITHMS

TEST_CERTIFICATE = """-----BEGIN CERTIFICATE-----
MIIBszCCAVmgAwIBAgIUTestCertificateForPrintBridgeOnly0wCgYIKoZIzj0E
AwIwEjEQMA4GA1UEAwwHdGVzdC1jYTAeFw0yNjAxMDEwMDAwMDBaFw0zNjAxMDEwMDAw
-----END CERTIFICATE-----
"""


# ============================================================================
# Asyncio Backend Configuration
# ============================================================================


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ============================================================================
# Fake daemon
# ============================================================================


class FakeChannel:
    """In-memory stand-in for a websocket connection to the daemon."""

    def __init__(self, daemon):
        self.daemon = daemon
        self.inbox = asyncio.Queue()
        self.sent = []
        self.closed = False

    async def send(self, raw):
        message = json.loads(raw)
        self.sent.append(message)
        reply = self.daemon.handle(message)
        if reply is not None:
            self.inbox.put_nowait(json.dumps(reply))

    def drop(self):
        """Daemon side hang-up."""
        self.inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self.inbox.get()
        if raw is None:
            raise StopAsyncIteration
        return raw

    async def close(self):
        self.closed = True
        self.inbox.put_nowait(None)


class FakeDaemon:
    """Answers the calls the bridge makes, and records everything it sees."""

    def __init__(self, printers=("Printer-A", "Printer-B"), public_key=None):
        self.printers = list(printers)
        self.public_key = public_key
        self.version = "2.2.4"
        self.fail_connects = 0
        self.connect_attempts = 0
        self.urls = []
        self.ssl_contexts = []
        self.channels = []
        self.certificates = []
        self.requests = []
        self.jobs = []
        self.reject = {}
        self.silent_calls = set()

    async def connector(self, url, ssl_context, open_timeout):
        self.connect_attempts += 1
        self.urls.append(url)
        self.ssl_contexts.append(ssl_context)
        if self.connect_attempts <= self.fail_connects:
            raise ConnectionRefusedError(f"[Errno 111] Connect call failed {url}")
        channel = FakeChannel(self)
        self.channels.append(channel)
        return channel

    @property
    def channel(self):
        return self.channels[-1]

    def _verify(self, message):
        if self.public_key is None:
            return True
        if "signature" not in message:
            return False
        payload = signing_payload(message["call"], message["params"], message["timestamp"])
        try:
            self.public_key.verify(
                base64.b64decode(message["signature"]),
                payload.encode("utf-8"),
                padding.PKCS1v15(),
                ALGORITHMS[message["signAlgorithm"]](),
            )
        except InvalidSignature:
            return False
        return True

    def handle(self, message):
        if "certificate" in message:
            self.certificates.append(message["certificate"])
            return None

        self.requests.append(message)
        call = message["call"]
        if call in self.silent_calls:
            return None
        if call in self.reject:
            return {"uid": message["uid"], "error": self.reject[call]}
        if not self._verify(message):
            return {"uid": message["uid"], "error": "Invalid signature"}

        if call == "getVersion":
            result = self.version
        elif call == "printers.find":
            result = self.printers if isinstance(self.printers, str) else list(self.printers)
        elif call == "printers.getDefault":
            result = self.printers[0] if self.printers else None
        elif call == "print":
            self.jobs.append(message["params"])
            result = None
        else:
            return {"uid": message["uid"], "error": f"Unknown call: {call}"}
        return {"uid": message["uid"], "result": result}


@pytest.fixture
def daemon():
    return FakeDaemon()


async def no_sleep(delay):
    await asyncio.sleep(0)


# ============================================================================
# Trust material
# ============================================================================


@pytest.fixture
def certificate_file(tmp_path):
    path = tmp_path / "certificate.pem"
    path.write_text(TEST_CERTIFICATE)
    return path


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def rsa_key_pem(rsa_key):
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def key_file(tmp_path, rsa_key_pem):
    path = tmp_path / "private-key.pem"
    path.write_text(rsa_key_pem)
    return path


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2026, 10, 19, 12, 30, 0)
