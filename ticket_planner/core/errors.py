from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class TicketPlanError(Exception):
    """Base error envelope. Commands print these instead of raw tracebacks."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<tickets>"
        return f"{loc}: {self.code}: {self.message}"


class ValidationError(TicketPlanError):
    """Bad input shape or values, caught before any external call."""


class FormatError(TicketPlanError):
    """Malformed persisted ticket document."""


class SourceReadError(TicketPlanError):
    """Spreadsheet unreadable, or a sheet/column is missing."""


@dataclass(frozen=True)
class SubmissionError(TicketPlanError):
    """A remote create call failed. Tickets created before the failure stay in place."""

    created: tuple[Any, ...] = field(default_factory=tuple)


class TransportError(RuntimeError):
    """Raised by the Redmine client when a request cannot be completed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
