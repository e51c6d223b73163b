"""Print job building blocks: job configuration, command streams and jobs."""

import enum
from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator, List, Optional

from print_bridge.config import DEFAULT_DENSITY, DEFAULT_JOB_NAME

UNITS = ("in", "mm", "cm")

# JobConfig attribute -> daemon option name
_WIRE_NAMES = {
    "scale_content": "scaleContent",
    "units": "units",
    "density": "density",
    "silent": "silent",
    "copies": "copies",
    "job_name": "jobName",
    "alt_printing": "altPrinting",
}


class PrintProfile(enum.Enum):
    SILENT_DIALOG_SUPPRESS = "silent"
    SCALED_DENSITY = "scaled"


_PROFILE_DEFAULTS = {
    PrintProfile.SILENT_DIALOG_SUPPRESS: dict(
        scale_content=False,
        silent=True,
        job_name=DEFAULT_JOB_NAME,
        copies=1,
        alt_printing=True,
    ),
    PrintProfile.SCALED_DENSITY: dict(
        scale_content=True,
        units="in",
        density=DEFAULT_DENSITY,
    ),
}


@dataclass(frozen=True)
class JobConfig:
    """Target printer plus rendering options for a single print call.

    Options left as None are not sent; the daemon applies its own defaults.
    """

    printer: str
    scale_content: Optional[bool] = None
    units: Optional[str] = None
    density: Optional[int] = None
    silent: Optional[bool] = None
    copies: Optional[int] = None
    job_name: Optional[str] = None
    alt_printing: Optional[bool] = None

    def __post_init__(self):
        if self.copies is not None and self.copies < 1:
            raise ValueError("copies must be >= 1")
        if self.units is not None and self.units not in UNITS:
            raise ValueError(f"units must be one of {UNITS}, got {self.units!r}")
        if self.density is not None and self.density <= 0:
            raise ValueError("density must be a positive dpi value")

    @classmethod
    def for_profile(cls, printer: str, profile=PrintProfile.SILENT_DIALOG_SUPPRESS, **overrides):
        """Build a config from a profile's defaults, then apply ``overrides``."""
        options = dict(_PROFILE_DEFAULTS[PrintProfile(profile)])
        options.update(overrides)
        return cls(printer=printer, **options)

    def for_printer(self, printer: str) -> "JobConfig":
        return replace(self, printer=printer)

    def to_wire(self) -> dict:
        """Options in the daemon's naming, unset ones left out."""
        options = {}
        for attr, name in _WIRE_NAMES.items():
            value = getattr(self, attr)
            if value is not None:
                options[name] = value
        return options


class CommandStream:
    """Ordered printer command segments.

    Segments are str whose code points are the bytes to send (latin-1), so
    the stream can travel in a JSON request unchanged.
    """

    def __init__(self, segments: Iterable[str] = ()):
        self._segments: List[str] = list(segments)

    def append(self, segment: str) -> None:
        self._segments.append(segment)

    def extend(self, segments: Iterable[str]) -> None:
        self._segments.extend(segments)

    @property
    def segments(self) -> List[str]:
        return list(self._segments)

    def joined(self) -> str:
        return "".join(self._segments)

    def to_bytes(self) -> bytes:
        return self.joined().encode("latin-1")

    def index(self, segment: str, start: int = 0) -> int:
        return self._segments.index(segment, start)

    def __iter__(self) -> Iterator[str]:
        return iter(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __getitem__(self, item):
        return self._segments[item]

    def __eq__(self, other):
        if isinstance(other, CommandStream):
            return self._segments == other._segments
        return NotImplemented

    def __repr__(self):
        return f"CommandStream({self._segments!r})"


@dataclass(frozen=True)
class PrintJob:
    config: JobConfig
    commands: CommandStream = field(default_factory=CommandStream)

    def to_wire_data(self) -> list:
        """Raw command data as the daemon's print call expects it."""
        return [
            {
                "type": "raw",
                "format": "command",
                "flavor": "plain",
                "data": self.commands.joined(),
            }
        ]
