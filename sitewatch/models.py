"""Data models for website monitoring state and check outcomes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Up:
    """Outcome of a probe that received a 2xx response.

    Attributes:
        status_code: HTTP status code of the response.
        headers: Response headers, names as received, values as text.
        content_length: Content-Length reported by the server, or None.
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    content_length: int | None = None

    def is_up(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": "up",
            "status_code": self.status_code,
            "headers": dict(self.headers),
            "content_length": self.content_length,
        }


@dataclass(frozen=True)
class Down:
    """Outcome of a probe that failed.

    Attributes:
        status_code: HTTP status code, or 0 if no response was received.
        error_message: Response body or transport error description.
    """

    status_code: int
    error_message: str

    def is_up(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": "down",
            "status_code": self.status_code,
            "error_message": self.error_message,
        }


CheckOutcome = Up | Down


@dataclass(frozen=True)
class CheckRecord:
    """A single completed probe in a website's history."""

    timestamp: datetime
    outcome: CheckOutcome

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), **self.outcome.to_dict()}


@dataclass(frozen=True)
class FailureReport:
    """Details handed to a notification sink when a probe comes back Down."""

    url: str
    status_code: int
    error_message: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "status_code": self.status_code,
            "error_message": self.error_message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class WebsiteState:
    """Accumulated monitoring state for one URL.

    History grows without bound; there is no retention policy.

    Attributes:
        url: The monitored URL (registry key).
        last_check_at: Time of the most recent probe, None before the first.
        is_up: Whether the most recent probe was Up (False before the first).
        history: Completed probes, oldest first.
        successful_count: Number of Up records in history.
    """

    url: str
    last_check_at: datetime | None = None
    is_up: bool = False
    history: list[CheckRecord] = field(default_factory=list)
    successful_count: int = 0

    @property
    def total_checks(self) -> int:
        return len(self.history)

    def record(self, outcome: CheckOutcome, timestamp: datetime) -> CheckRecord:
        """Fold a probe outcome into this state and return the new record."""
        entry = CheckRecord(timestamp=timestamp, outcome=outcome)
        self.history.append(entry)
        self.last_check_at = timestamp
        self.is_up = outcome.is_up()
        if self.is_up:
            self.successful_count += 1
        return entry

    def copy(self) -> "WebsiteState":
        """Return a copy that does not share the history list."""
        return WebsiteState(
            url=self.url,
            last_check_at=self.last_check_at,
            is_up=self.is_up,
            history=list(self.history),
            successful_count=self.successful_count,
        )

    def to_dict(self, include_history: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "url": self.url,
            "last_check": self.last_check_at.isoformat() if self.last_check_at else None,
            "is_up": self.is_up,
            "total_checks": self.total_checks,
            "successful_checks": self.successful_count,
        }
        if include_history:
            data["history"] = [entry.to_dict() for entry in self.history]
        return data
