"""Data models for calendar mirroring."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ConfigurationError(ValueError):
    """Raised when sync configuration is missing, malformed or inconsistent."""


class PrivacyMode(str, Enum):
    """How much source event detail is copied to the destination."""
    FULL = 'full'
    BUSY = 'busy'
    TITLE_ONLY = 'title-only'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'PrivacyMode':
        """
        Parse a privacy mode string.

        Args:
            value: Mode string from configuration (None means full)

        Returns:
            Matching PrivacyMode

        Raises:
            ConfigurationError: If the value names no known mode
        """
        if value is None or value == '':
            return cls.FULL
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown privacy mode: {value!r}")


@dataclass(frozen=True)
class SourceCalendarConfig:
    """One source calendar mirrored into the destination."""
    calendar_id: str
    label: str
    privacy_mode: PrivacyMode = PrivacyMode.FULL
    enabled: bool = True
    color_id: Optional[str] = None


@dataclass(frozen=True)
class SyncOptions:
    """Fetch window, filtering and retry options."""
    sync_window_days: int = 30
    sync_past_days: int = 7
    include_all_day_events: bool = True
    include_declined_events: bool = False
    batch_size: int = 250
    retry_attempts: int = 3
    retry_delay_ms: int = 1000


@dataclass(frozen=True)
class EventMappingOptions:
    """Options controlling how destination events are shaped."""
    prefix_format: str = '[{label}] '
    copy_description: bool = False
    copy_location: bool = False
    copy_attendees: bool = False
    copy_reminders: bool = False
    set_as_private: bool = True
    busy_label: str = 'Busy'
    untitled_label: str = '(No title)'


@dataclass(frozen=True)
class SyncConfig:
    """Read-only configuration for one sync run."""
    destination_calendar_id: str
    calendars: Tuple[SourceCalendarConfig, ...]
    sync_options: SyncOptions = field(default_factory=SyncOptions)
    mapping_options: EventMappingOptions = field(default_factory=EventMappingOptions)

    def enabled_calendars(self) -> List[SourceCalendarConfig]:
        """Return enabled source calendars in configuration order."""
        return [calendar for calendar in self.calendars if calendar.enabled]

    def get_calendar(self, calendar_id: str) -> SourceCalendarConfig:
        """
        Look up a configured source calendar.

        Raises:
            ConfigurationError: If the calendar is not configured
        """
        for calendar in self.calendars:
            if calendar.calendar_id == calendar_id:
                return calendar
        raise ConfigurationError(f"Calendar not configured: {calendar_id}")


@dataclass
class CalendarSyncResult:
    """Result of syncing one source calendar."""
    calendar_id: str
    label: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    full_resync: bool = False
    token_resets: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'calendarId': self.calendar_id,
            'label': self.label,
            'created': self.created,
            'updated': self.updated,
            'deleted': self.deleted,
            'fullResync': self.full_resync,
            'tokenResets': self.token_resets,
        }


@dataclass
class CalendarError:
    """A failure captured for one source calendar."""
    calendar_id: str
    label: str
    error: str
    error_type: str = 'Exception'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'calendarId': self.calendar_id,
            'label': self.label,
            'error': self.error,
            'errorType': self.error_type,
        }


@dataclass
class SyncRunResult:
    """Aggregated result of a sync run across calendars."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    calendars: List[CalendarSyncResult] = field(default_factory=list)
    errors: List[CalendarError] = field(default_factory=list)

    @property
    def total_created(self) -> int:
        return sum(result.created for result in self.calendars)

    @property
    def total_updated(self) -> int:
        return sum(result.updated for result in self.calendars)

    @property
    def total_deleted(self) -> int:
        return sum(result.deleted for result in self.calendars)

    @property
    def duration_ms(self) -> int:
        if self.finished_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_summary(self) -> Dict[str, Any]:
        """
        Build the summary consumed by reporting.

        Returns:
            Dict with durations, totals, errors and per-calendar results
        """
        return {
            'startedAt': self.started_at.isoformat(),
            'finishedAt': self.finished_at.isoformat() if self.finished_at else None,
            'durationMs': self.duration_ms,
            'totalCreated': self.total_created,
            'totalUpdated': self.total_updated,
            'totalDeleted': self.total_deleted,
            'errors': [error.to_dict() for error in self.errors],
            'calendars': [result.to_dict() for result in self.calendars],
        }
