"""
ERRORS - Failure taxonomy of the performance engine

Three kinds of trouble show up while turning agent artifacts into charts:

1. Data quality   - a bad observation (non-positive, non-finite, unparsable).
                    Dropped, logged, attached to the Series. Never raised.
2. Missing data   - an artifact (agent record, price file, config) could not
                    be fetched or parsed. The affected agent gets an empty
                    Series; the config falls back to the built-in default.
3. Configuration  - the requested market cannot be resolved even after the
                    fallback. The only fatal condition.

Computations over empty or single-point series return defined degenerate
values instead of raising.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union


class ArenaError(Exception):
    """Base class for all engine errors."""


class MissingArtifact(ArenaError):
    """Raised when an input artifact cannot be fetched or decoded."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        message = f"Missing artifact: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ConfigurationError(ArenaError):
    """Raised when the configuration cannot be resolved, fallback included."""


@dataclass(frozen=True)
class DataQualityWarning:
    """A dropped observation and the reason it was dropped."""

    agent_id: str
    date: Optional[Union[str, datetime]]
    value: Any
    reason: str

    def __str__(self) -> str:
        return f"[{self.agent_id}] {self.reason} (date={self.date!r}, value={self.value!r})"
