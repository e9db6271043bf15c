"""Event identifier generation.

Identifiers look like ``007_lineage_data_3f1c9a2e-...``: a zero-padded
sequence (or a microsecond timestamp when no counter is available), a fixed
separator and a 128-bit random token. They double as storage keys, so only
digits, lowercase hex, ``_`` and ``-`` ever appear.
"""
import re
import secrets
import time
import uuid
from typing import Callable, Tuple

SEPARATOR = "_lineage_data_"
FILE_SUFFIX = ".json"
IDENTIFIER_PATTERN = re.compile(r"([0-9]+)" + SEPARATOR + r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})")


def random_token() -> str:
    """128 random bits in 8-4-4-4-12 hex grouping."""
    return str(uuid.UUID(bytes=secrets.token_bytes(16)))


def wall_clock_micros() -> int:
    return time.time_ns() // 1_000


class IdentifierGenerator:
    """Builds sortable-then-unique event identifiers."""

    def __init__(
        self,
        width: int = 3,
        token_factory: Callable[[], str] = random_token,
        clock: Callable[[], int] = wall_clock_micros,
    ):
        if width < 1:
            raise ValueError("width must be positive")
        self.width = width
        self._token_factory = token_factory
        self._clock = clock

    def generate(self, sequence: int | None = None) -> str:
        """
        Generate an identifier.

        Args:
            sequence: Counter value from a coordinated allocation. When None
                the wall clock (microseconds since epoch) is used instead.

        Returns:
            Identifier string, without file suffix.
        """
        if sequence is None:
            component = self._clock()
        else:
            if sequence < 0:
                raise ValueError(f"sequence must be non-negative, got {sequence}")
            component = sequence
        # Width is a minimum; larger values are never truncated.
        return f"{component:0{self.width}d}{SEPARATOR}{self._token_factory()}"


def parse_identifier(value: str) -> Tuple[str, str]:
    """Split an identifier into its (sequence-or-timestamp, token) parts."""
    match = IDENTIFIER_PATTERN.fullmatch(value)
    if match is None:
        raise ValueError(f"not a lineage event identifier: {value!r}")
    return match.group(1), match.group(2)


def validate_identifier(value: str) -> str:
    parse_identifier(value)
    return value


def filename_for(identifier: str) -> str:
    return identifier + FILE_SUFFIX
