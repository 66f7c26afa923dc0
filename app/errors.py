from __future__ import annotations

from typing import Iterable, List, Optional


class ScheduleError(ValueError):
    """Base class for roster and timesheet validation failures."""


class FormatError(ScheduleError):
    """Raised when a time label is not a zero-padded 24h HH:MM string."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid time '{value}'. Expected HH:MM (24-hour, zero-padded).")
        self.value = value


class OperatingHoursError(ScheduleError):
    def __init__(self, open_label: str, close_label: str) -> None:
        super().__init__(f"Shifts must be between {open_label} and {close_label}.")
        self.open_label = open_label
        self.close_label = close_label


class OrderingError(ScheduleError):
    def __init__(self, start_label: str, end_label: str) -> None:
        super().__init__(f"Start time must be before end time ({start_label} - {end_label}).")
        self.start_label = start_label
        self.end_label = end_label


class AvailabilityMismatchError(ScheduleError):
    def __init__(self, message: str = "Shift must be within staff availability.") -> None:
        super().__init__(message)


class OverlapError(ScheduleError):
    def __init__(self, conflicting_ids: Optional[Iterable[int]] = None) -> None:
        super().__init__("Shift overlaps with existing shift for this staff.")
        self.conflicting_ids: List[int] = [value for value in (conflicting_ids or []) if value is not None]


class TimesheetError(ScheduleError):
    """Raised for timesheet and clock workflow conflicts (duplicates, wrong owner)."""
