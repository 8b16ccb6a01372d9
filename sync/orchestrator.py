"""Orchestrator that runs the reconciler over every enabled source calendar."""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from processor.models import (
    CalendarError,
    CalendarSyncResult,
    ConfigurationError,
    SourceCalendarConfig,
    SyncConfig,
    SyncRunResult,
)
from storage.mapping_store import MappingStore
from sync.reconciler import Reconciler

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """Runs calendar syncs sequentially and aggregates their results."""

    def __init__(
        self,
        config: SyncConfig,
        gateway,
        mapping_store: MappingStore,
        reconciler: Optional[Reconciler] = None,
        clock: Callable[[], datetime] = _utc_now
    ):
        self.config = config
        self.mapping_store = mapping_store
        self.reconciler = reconciler or Reconciler(config, gateway, mapping_store, clock=clock)
        self.clock = clock

    def run(self) -> SyncRunResult:
        """
        Sync every enabled source calendar in configuration order.

        A failing calendar is recorded in the result's error list and does
        not stop the remaining calendars. Its partial counts still appear in
        the per-calendar results. The last sync timestamp is only advanced
        when at least one calendar succeeded.

        Returns:
            SyncRunResult with per-calendar results, totals and errors
        """
        return self._run_calendars(self.config.enabled_calendars())

    def sync_calendar(self, calendar_id: str) -> SyncRunResult:
        """
        Sync a single configured calendar, e.g. after a change notification.

        Args:
            calendar_id: Source calendar identifier

        Returns:
            SyncRunResult covering only that calendar

        Raises:
            ConfigurationError: If the calendar is unknown or disabled
        """
        calendar = self.config.get_calendar(calendar_id)
        if not calendar.enabled:
            raise ConfigurationError(f"Calendar is disabled: {calendar_id}")
        return self._run_calendars([calendar])

    def reset_calendar(self, calendar_id: str) -> None:
        """
        Drop the change token of a calendar so its next sync is a full resync.

        Raises:
            ConfigurationError: If the calendar is not configured
        """
        calendar = self.config.get_calendar(calendar_id)
        self.mapping_store.delete_sync_token(calendar.calendar_id)
        logger.info(f"Reset change token for {calendar.label} ({calendar.calendar_id})")

    def clear_all_sync_data(self) -> int:
        """Remove all change tokens, event maps and the last run timestamp."""
        return self.mapping_store.clear_all()

    def get_status(self) -> Dict[str, Any]:
        """
        Describe the persisted sync state.

        Returns:
            Dict with the last run timestamp and per-calendar token and
            mapping counts
        """
        last_sync = self.mapping_store.get_last_sync_timestamp()
        calendars = []
        for calendar in self.config.calendars:
            calendars.append({
                'calendarId': calendar.calendar_id,
                'label': calendar.label,
                'enabled': calendar.enabled,
                'privacyMode': calendar.privacy_mode.value,
                'hasSyncToken': self.mapping_store.get_sync_token(calendar.calendar_id) is not None,
                'mappedEvents': len(self.mapping_store.get_event_map(calendar.calendar_id)),
            })
        return {
            'lastSyncTimestamp': last_sync.isoformat() if last_sync else None,
            'calendars': calendars,
        }

    def _run_calendars(self, calendars: List[SourceCalendarConfig]) -> SyncRunResult:
        result = SyncRunResult(started_at=self.clock())
        logger.info(
            f"Starting sync of {len(calendars)} calendars",
            extra={'calendar_ids': [calendar.calendar_id for calendar in calendars]}
        )

        succeeded = 0
        for calendar in calendars:
            calendar_result = CalendarSyncResult(
                calendar_id=calendar.calendar_id,
                label=calendar.label
            )
            try:
                calendar_result = self.reconciler.sync_calendar(calendar, calendar_result)
                succeeded += 1
            except Exception as e:
                logger.error(
                    f"Sync failed for calendar {calendar.label} ({calendar.calendar_id}): {e}",
                    extra={'calendar_id': calendar.calendar_id, 'error_type': type(e).__name__},
                    exc_info=True
                )
                result.errors.append(CalendarError(
                    calendar_id=calendar.calendar_id,
                    label=calendar.label,
                    error=str(e),
                    error_type=type(e).__name__
                ))
            # Failed calendars still report the writes made before the error
            result.calendars.append(calendar_result)

        result.finished_at = self.clock()
        if succeeded or not calendars:
            self.mapping_store.set_last_sync_timestamp(result.finished_at)
        else:
            logger.warning("Every calendar failed; last sync timestamp left unchanged")

        logger.info(
            f"Sync completed: {result.total_created} created, "
            f"{result.total_updated} updated, {result.total_deleted} deleted, "
            f"{len(result.errors)} errors",
            extra={
                'duration_ms': result.duration_ms,
                'total_created': result.total_created,
                'total_updated': result.total_updated,
                'total_deleted': result.total_deleted,
                'errors': [error.to_dict() for error in result.errors],
            }
        )
        return result
