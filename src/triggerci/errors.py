# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Optional


@dataclass
class TriggerError(Exception):
    """
    Structured error with enough context for:
      - clean CLI output (kind + message)
      - machine-readable events
      - debugging without full tracebacks
    """
    kind: ClassVar[str] = "error"

    message: str
    status: Optional[int] = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.status is not None:
            lines.append(f"status={self.status}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class ConfigError(TriggerError):
    """Missing or invalid input. Raised before any network call."""
    kind: ClassVar[str] = "config"


@dataclass
class AuthError(TriggerError):
    """Token rejected by the platform (401/403)."""
    kind: ClassVar[str] = "auth"


@dataclass
class NotFoundError(TriggerError):
    kind: ClassVar[str] = "not_found"


@dataclass
class ValidationError(TriggerError):
    """Request rejected by the platform, e.g. unknown ref or a job that is not manual."""
    kind: ClassVar[str] = "validation"


@dataclass
class TransientError(TriggerError):
    """Network failure, timeout, rate limit or 5xx."""
    kind: ClassVar[str] = "transient"


def error_for_status(status: int, message: str, details: Optional[dict] = None) -> TriggerError:
    """Map an HTTP status code onto the error taxonomy."""
    details = dict(details or {})
    if status in (401, 403):
        return AuthError(message, status=status, details=details)
    if status == 404:
        return NotFoundError(message, status=status, details=details)
    if status == 429 or status >= 500:
        return TransientError(message, status=status, details=details)
    return ValidationError(message, status=status, details=details)
