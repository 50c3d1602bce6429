"""Error taxonomy for the ingestion pipeline."""
from __future__ import annotations

from typing import Optional


class ConfigError(RuntimeError):
    """Missing or invalid credentials/identifiers. Fatal, never retried."""

    def __init__(self, message: str, problems: Optional[list] = None) -> None:
        super().__init__(message)
        self.problems = list(problems or [])


class NetworkError(RuntimeError):
    """Non-2xx response or transport failure for one outbound request."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.retry_after = retry_after


class ParseError(ValueError):
    """Malformed response body or tabular payload for one area."""


# Row- and merge-level conditions are recovered locally and only reported
# through the event log; the class names double as the event "kind".


class RowValidationError(ValueError):
    pass


class CoordinateWarning(UserWarning):
    pass


class DuplicateIdWarning(UserWarning):
    pass
