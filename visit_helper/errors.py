"""Error taxonomy for the check-in workflow and its notification channels."""
from __future__ import annotations

from typing import Any, Iterable, Mapping
from urllib.parse import urlsplit

__all__ = [
    "VisitHelperError",
    "TransportError",
    "MissingSessionTokenError",
    "NotificationConfigError",
]


class VisitHelperError(Exception):
    """Base class for errors raised by the visit helper."""


class TransportError(VisitHelperError):
    """Failure of a single exchange before a complete response was read (DNS, connect, timeout, decoding)."""

    def __init__(
        self,
        *,
        method: str,
        url: str,
        cause: BaseException,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        parts = urlsplit(url)
        self.method = method
        self.url = url
        self.hostname = parts.hostname or ""
        self.path = parts.path + (f"?{parts.query}" if parts.query else "")
        self.cause = cause
        self.context = dict(context or {})
        super().__init__(f"{method} {self.hostname}{self.path} failed: {cause!r}")


class MissingSessionTokenError(VisitHelperError):
    """Raised when the session bootstrap did not yield every required token."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required session token(s): {', '.join(self.missing)}")


class NotificationConfigError(VisitHelperError):
    """A notification channel was invoked without the settings it needs."""
