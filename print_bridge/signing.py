"""Request signing.

The daemon only runs silent jobs for requests it can verify. A ``Signer``
turns the payload of each request into the base64 signature the daemon
expects. Three strategies exist:

* ``RSASigner`` signs with a local private key (PKCS#1 v1.5).
* ``RemoteSigner`` asks a signing service for the signature. This is the
  hook production deployments use so the key never reaches the client.
* ``DigestSigner`` sends a plain digest instead of a signature. It is a
  demo/testing shortcut and the daemon treats it as untrusted.
"""

import asyncio
import base64
import binascii
import enum
import hashlib
import re
import string
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from print_bridge.errors import SigningError
from print_bridge.log import get_logger
from print_bridge.sources import fetch_text

log = get_logger(__name__)

KeySource = Callable[[], Awaitable[str]]

ALGORITHMS = {
    "SHA1": hashes.SHA1,
    "SHA256": hashes.SHA256,
    "SHA512": hashes.SHA512,
}

_KEY_MARKER = re.compile(r"-----BEGIN (?:RSA |ENCRYPTED )?PRIVATE KEY-----")
_KEY_END_MARKER = re.compile(r"-----END (?:RSA |ENCRYPTED )?PRIVATE KEY-----")
_HEX_DIGITS = set(string.hexdigits)


class SigningStrategy(enum.Enum):
    DIGEST_ONLY = "digest"
    RSA_SIGNATURE = "rsa"
    REMOTE = "remote"


def normalize_algorithm(name: str) -> str:
    algorithm = name.upper().replace("-", "")
    if algorithm not in ALGORITHMS:
        raise ValueError(f"unsupported signing algorithm: {name}")
    return algorithm


def hex_to_base64(text: str) -> str:
    """Convert a hex encoded signature to base64.

    Whitespace and a leading ``0x`` are ignored; anything else that is not a
    pair of hex digits is an error.
    """
    cleaned = "".join(text.split())
    if cleaned[:2] in ("0x", "0X"):
        cleaned = cleaned[2:]
    if len(cleaned) % 2:
        raise SigningError(
            SigningError.ALGORITHM_FAILURE,
            f"hex signature must have an even length (got {len(cleaned)})",
        )
    if not set(cleaned) <= _HEX_DIGITS:
        raise SigningError(SigningError.ALGORITHM_FAILURE, "hex signature has non-hex characters")
    return base64.b64encode(bytes.fromhex(cleaned)).decode("ascii")


def key_from_path(path: str) -> KeySource:
    async def read_key() -> str:
        return await fetch_text(path)

    return read_key


def key_from_url(url: str, http_client: Optional[httpx.AsyncClient] = None) -> KeySource:
    async def download_key() -> str:
        return await fetch_text(url, http_client)

    return download_key


class Signer(ABC):
    """Signs request payloads on behalf of the daemon."""

    algorithm: str = "SHA512"

    @abstractmethod
    async def sign(self, payload: str) -> str:
        """Return the base64 signature of ``payload`` or raise SigningError."""


class DigestSigner(Signer):
    """Low-trust strategy: the hex digest of the payload stands in for a signature."""

    def __init__(self, algorithm: str = "SHA256"):
        self.algorithm = normalize_algorithm(algorithm)

    async def sign(self, payload: str) -> str:
        digest = hashlib.new(self.algorithm.lower(), payload.encode("utf-8")).hexdigest()
        return hex_to_base64(digest)


class RSASigner(Signer):
    """Signs with an RSA private key read from ``key_source`` on every call."""

    def __init__(self, key_source: KeySource, algorithm: str = "SHA512"):
        self.key_source = key_source
        self.algorithm = normalize_algorithm(algorithm)

    async def sign(self, payload: str) -> str:
        try:
            pem = await self.key_source()
        except Exception as e:
            log.error("private key unavailable", error=str(e))
            raise SigningError(SigningError.KEY_UNAVAILABLE, str(e)) from e

        if not _KEY_MARKER.search(pem) or not _KEY_END_MARKER.search(pem):
            raise SigningError(SigningError.INVALID_KEY_FORMAT, "missing PEM private key delimiters")

        key = self._load_key(pem)
        try:
            signature = await asyncio.to_thread(
                key.sign,
                payload.encode("utf-8"),
                padding.PKCS1v15(),
                ALGORITHMS[self.algorithm](),
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningError(SigningError.ALGORITHM_FAILURE, str(e)) from e
        return base64.b64encode(signature).decode("ascii")

    @staticmethod
    def _load_key(pem: str) -> rsa.RSAPrivateKey:
        try:
            key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningError(SigningError.INVALID_KEY_FORMAT, str(e)) from e
        if not isinstance(key, rsa.RSAPrivateKey):
            raise SigningError(
                SigningError.INVALID_KEY_FORMAT,
                f"expected an RSA key, got {type(key).__name__}",
            )
        return key


class RemoteSigner(Signer):
    """Delegates signing to a service that holds the private key.

    The service receives the payload as the ``request`` query parameter and
    answers with the signature, hex encoded by default.
    """

    def __init__(
        self,
        url: str,
        algorithm: str = "SHA512",
        http_client: Optional[httpx.AsyncClient] = None,
        encoding: str = "hex",
    ):
        if encoding not in ("hex", "base64"):
            raise ValueError(f"unsupported signature encoding: {encoding}")
        self.url = url
        self.algorithm = normalize_algorithm(algorithm)
        self.encoding = encoding
        self._http_client = http_client

    async def _fetch(self, payload: str) -> str:
        params = {"request": payload}
        if self._http_client is not None:
            response = await self._http_client.get(self.url, params=params)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.url, params=params)
        response.raise_for_status()
        return response.text

    async def sign(self, payload: str) -> str:
        try:
            text = await self._fetch(payload)
        except httpx.HTTPError as e:
            log.error("remote signing failed", url=self.url, error=str(e))
            raise SigningError(SigningError.KEY_UNAVAILABLE, f"{self.url}: {e}") from e

        if not text.strip():
            raise SigningError(SigningError.ALGORITHM_FAILURE, f"{self.url}: empty signature")

        if self.encoding == "hex":
            return hex_to_base64(text)
        try:
            base64.b64decode("".join(text.split()), validate=True)
        except binascii.Error as e:
            raise SigningError(SigningError.ALGORITHM_FAILURE, f"bad base64 signature: {e}") from e
        return "".join(text.split())


def build_signer(
    strategy,
    algorithm: str = "SHA512",
    key_source: Optional[KeySource] = None,
    url: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Signer:
    """Create the signer for ``strategy`` (a SigningStrategy or its value)."""
    strategy = SigningStrategy(strategy)

    if strategy is SigningStrategy.DIGEST_ONLY:
        log.warning("digest-only signing in use; the daemon will not trust these requests")
        return DigestSigner(algorithm)
    if strategy is SigningStrategy.RSA_SIGNATURE:
        if key_source is None:
            raise ValueError("RSA signing needs a key source")
        return RSASigner(key_source, algorithm)
    if url is None:
        raise ValueError("remote signing needs a signing service URL")
    return RemoteSigner(url, algorithm, http_client=http_client)
