"""
Period data models.

A period is a labeled interval of tracked time. Its end boundary is a tagged
union of ``Open`` (still running) and ``Closed`` (finished at a timestamp),
so the open/closed distinction is explicit instead of hiding behind None.
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Union

from ..errors import StateTransitionError


@dataclass(frozen=True)
class Open:
    """End boundary of a period that is still running."""

    def __repr__(self) -> str:
        return "OPEN"


@dataclass(frozen=True)
class Closed:
    """End boundary of a finished period."""
    at: int


EndTime = Union[Open, Closed]

OPEN = Open()


METADATA_FIELDS = ("theme", "category", "name", "notes", "tags")


@dataclass(frozen=True)
class PeriodMetadata:
    """Free-form classification carried by a period."""
    theme: Optional[str] = None
    category: Optional[str] = None
    name: str = ""
    notes: str = ""
    tags: tuple[str, ...] = ()

    def merged(self, changes: dict[str, Any]) -> "PeriodMetadata":
        """Return a copy with the given (already validated) fields replaced."""
        values = {key: value for key, value in changes.items() if key in METADATA_FIELDS}
        if "tags" in values:
            values["tags"] = tuple(values["tags"])
        return replace(self, **values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "theme": self.theme,
            "category": self.category,
            "name": self.name,
            "notes": self.notes,
            "tags": list(self.tags),
        }


def new_period_id() -> str:
    """Generate an opaque unique period identifier."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Period:
    """A single tracked period.

    ``start_time`` and ``created_at`` never change after construction and
    ``end`` moves from ``OPEN`` to ``Closed`` exactly once. Only metadata and
    ``updated_at`` are replaced afterwards.
    """

    id: str
    start_time: int
    end: EndTime = OPEN
    is_pause: bool = False
    resume_from_id: Optional[str] = None
    metadata: PeriodMetadata = field(default_factory=PeriodMetadata)
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_open(self) -> bool:
        return isinstance(self.end, Open)

    @property
    def end_time(self) -> Optional[int]:
        """End timestamp in ms, or None while the period is open."""
        if isinstance(self.end, Closed):
            return self.end.at
        return None

    @property
    def theme(self) -> Optional[str]:
        return self.metadata.theme

    @property
    def category(self) -> Optional[str]:
        return self.metadata.category

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def notes(self) -> str:
        return self.metadata.notes

    @property
    def tags(self) -> tuple[str, ...]:
        return self.metadata.tags

    def close(self, timestamp: int) -> "Period":
        """
        Close this period at the given timestamp.

        Args:
            timestamp: End boundary in ms, must not precede ``start_time``

        Returns:
            New closed Period with ``updated_at`` set to the same instant

        Raises:
            StateTransitionError: If the period is already closed or the
                timestamp lies before its start
        """
        if not self.is_open:
            raise StateTransitionError(
                f"Period {self.id} is already closed",
                current_state="closed",
                attempted_transition="close",
                context={"period_id": self.id, "end_time": self.end_time}
            )
        if timestamp < self.start_time:
            raise StateTransitionError(
                f"Cannot close period {self.id} before it started",
                current_state="open",
                attempted_transition="close",
                context={"period_id": self.id, "start_time": self.start_time, "end_time": timestamp}
            )
        return replace(self, end=Closed(timestamp), updated_at=timestamp)

    def with_metadata(self, metadata: PeriodMetadata, timestamp: int) -> "Period":
        """Replace metadata and bump ``updated_at``; timestamps stay untouched."""
        return replace(self, metadata=metadata, updated_at=timestamp)

    def duration_ms(self, now_ms: Optional[int] = None) -> int:
        """Length of the period; open periods are measured up to ``now_ms``."""
        end = self.end_time if self.end_time is not None else now_ms
        if end is None:
            return 0
        return max(0, end - self.start_time)

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view for export and analytics consumers."""
        return {
            "id": self.id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_pause": self.is_pause,
            "resume_from_id": self.resume_from_id,
            **self.metadata.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class PeriodFilter:
    """Query filter for period history.

    ``start_time`` bounds the period start from below, ``end_time`` bounds the
    period end from above (open periods never match it). Results are always
    returned newest first.
    """

    start_time: Optional[int] = None
    end_time: Optional[int] = None
    theme: Optional[str] = None
    category: Optional[str] = None
    is_pause: Optional[bool] = None
    tags: tuple[str, ...] = ()
    closed_only: bool = False
    limit: Optional[int] = None
