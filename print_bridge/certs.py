"""Trust certificate handling."""

from typing import Optional

import httpx

from print_bridge.errors import CertificateError
from print_bridge.log import get_logger
from print_bridge.sources import fetch_text

log = get_logger(__name__)

BEGIN_MARKER = "-----BEGIN CERTIFICATE-----"
END_MARKER = "-----END CERTIFICATE-----"


def validate_certificate(text: str) -> str:
    """Return ``text`` if it looks like a PEM certificate, else raise."""
    begin = text.find(BEGIN_MARKER)
    end = text.find(END_MARKER)
    if begin == -1 or end == -1 or end < begin:
        raise CertificateError(
            CertificateError.INVALID_FORMAT,
            "missing PEM certificate delimiters",
        )
    return text


class CertificateStore:
    """Holds the certificate the daemon uses to identify this client.

    The connection calls :meth:`resolve` whenever the daemon asks for the
    client's certificate, so the store has to outlive the connection.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._certificate: Optional[str] = None
        self._http_client = http_client

    @property
    def certificate(self) -> Optional[str]:
        return self._certificate

    def is_loaded(self) -> bool:
        return self._certificate is not None

    async def load(self, source: str) -> str:
        """Fetch, validate and install the certificate found at ``source``."""
        try:
            text = await fetch_text(source, self._http_client)
        except (OSError, httpx.HTTPError) as e:
            log.error("certificate fetch failed", source=source, error=str(e))
            raise CertificateError(CertificateError.FETCH_FAILED, f"{source}: {e}") from e
        except UnicodeDecodeError as e:
            # DER or other binary content
            log.error("certificate is not text", source=source, error=str(e))
            raise CertificateError(CertificateError.INVALID_FORMAT, f"{source}: not a PEM text file") from e

        # Nothing is installed unless validation passes
        self._certificate = validate_certificate(text)
        log.info("certificate loaded", source=source, size=len(text))
        return self._certificate

    async def resolve(self) -> Optional[str]:
        """Trust callback: the installed certificate, or None for anonymous."""
        return self._certificate
