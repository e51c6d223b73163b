"""Configuration defaults and connection options."""

import os
from dataclasses import dataclass, field, replace
from typing import Optional

# Daemon defaults
DEFAULT_HOST = "localhost"
DEFAULT_SECURE_PORT = 8181
DEFAULT_INSECURE_PORT = 8182
DEFAULT_OPEN_TIMEOUT = 10  # seconds

# Reconnection settings
MAX_RETRIES = 3
RETRY_DELAY = 1  # seconds

# Trust material, served by the hosting environment
CERT_FILE = "certificate.pem"
KEY_FILE = "private-key.pem"

# Receipt defaults
DEFAULT_LINE_WIDTH = 24  # characters, matches the test receipt layout
DEFAULT_FEED_LINES = 3
DEFAULT_DENSITY = 203  # dpi, common for 80mm thermal heads
DEFAULT_JOB_NAME = "POS Receipt"

ENV_PREFIX = "PRINT_BRIDGE_"


@dataclass(frozen=True)
class ConnectOptions:
    """How to reach the print daemon."""

    host: str = DEFAULT_HOST
    port: Optional[int] = None
    use_secure_transport: bool = True
    retries: int = MAX_RETRIES
    delay_between_retries: float = RETRY_DELAY
    bypass_ssl_error: bool = False
    open_timeout: float = DEFAULT_OPEN_TIMEOUT

    def __post_init__(self):
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.delay_between_retries < 0:
            raise ValueError("delay_between_retries must be >= 0")

    def with_overrides(self, **changes) -> "ConnectOptions":
        """Return a copy with the non-None values of ``changes`` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _env(name: str) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    return value if value else None


def _env_number(name: str, convert):
    value = _env(name)
    if value is None:
        return None
    try:
        return convert(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {value!r}") from None


def _env_bool(name: str) -> Optional[bool]:
    value = _env(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BridgeSettings:
    """Everything the bridge needs at startup, usually read from the environment."""

    connect: ConnectOptions = field(default_factory=ConnectOptions)
    certificate: Optional[str] = CERT_FILE
    private_key: Optional[str] = KEY_FILE
    signing: str = "rsa"
    algorithm: str = "SHA512"
    profile: str = "silent"
    debug: bool = False

    @classmethod
    def from_env(cls) -> "BridgeSettings":
        """Build settings from PRINT_BRIDGE_* environment variables.

        Raises ValueError for malformed values.
        """
        secure = _env_bool("SECURE")
        connect = ConnectOptions().with_overrides(
            host=_env("HOST"),
            port=_env_number("PORT", int),
            use_secure_transport=secure,
            retries=_env_number("RETRIES", int),
            delay_between_retries=_env_number("DELAY", float),
            bypass_ssl_error=_env_bool("BYPASS_SSL_ERROR"),
        )
        defaults = cls()
        return cls(
            connect=connect,
            certificate=_env("CERTIFICATE") or defaults.certificate,
            private_key=_env("PRIVATE_KEY") or defaults.private_key,
            signing=_env("SIGNING") or defaults.signing,
            algorithm=_env("ALGORITHM") or defaults.algorithm,
            profile=_env("PROFILE") or defaults.profile,
            debug=bool(_env_bool("DEBUG")),
        )
