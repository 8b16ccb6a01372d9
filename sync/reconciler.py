"""Reconciler that mirrors one source calendar into the destination calendar."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from gateway.errors import NotFoundError, TokenInvalidatedError
from processor.event_transform import STATUS_CANCELLED, EventTransform
from processor.models import CalendarSyncResult, SourceCalendarConfig, SyncConfig
from storage.mapping_store import MappingStore
from sync.retry import call_with_retry

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


class Reconciler:
    """
    Decides and applies create, update and delete operations per source event.

    Each invocation fetches either the changes since the stored change token
    or, without a token, every event in the configured time window. The new
    change token is persisted only after the final page has been processed,
    so an interrupted run leaves the previous token in place and the next run
    repeats the work. Every destination write is keyed by the source event id
    through the mapping store, which makes repeating that work safe.
    """

    MAX_TOKEN_RESETS = 1

    def __init__(
        self,
        config: SyncConfig,
        gateway,
        mapping_store: MappingStore,
        transform: Optional[EventTransform] = None,
        clock: Callable[[], datetime] = _utc_now
    ):
        """
        Initialize the reconciler.

        Args:
            config: Read-only sync configuration
            gateway: Calendar gateway (list/get/insert/patch/remove events)
            mapping_store: Store for mappings and change tokens
            transform: Event transform (built from config when omitted)
            clock: Callable returning the current aware datetime
        """
        self.config = config
        self.gateway = gateway
        self.mapping_store = mapping_store
        self.transform = transform or EventTransform(config.mapping_options, clock=clock)
        self.clock = clock

    @property
    def destination_calendar_id(self) -> str:
        return self.config.destination_calendar_id

    def sync_calendar(
        self,
        calendar: SourceCalendarConfig,
        result: Optional[CalendarSyncResult] = None
    ) -> CalendarSyncResult:
        """
        Sync one source calendar into the destination.

        Writes already applied are kept when a later call fails. Callers
        that need the partial counts in that case pass their own result,
        which is updated in place.

        Args:
            calendar: Source calendar configuration
            result: Result to record counts in (created when omitted)

        Returns:
            CalendarSyncResult with created, updated and deleted counts

        Raises:
            TokenInvalidatedError: If the token is invalidated again after
                the single permitted reset
            Exception: Any other gateway or storage failure
        """
        if result is None:
            result = CalendarSyncResult(calendar_id=calendar.calendar_id, label=calendar.label)

        while True:
            try:
                self._run_page_loop(calendar, result)
                break
            except TokenInvalidatedError:
                if result.token_resets >= self.MAX_TOKEN_RESETS:
                    logger.error(
                        f"Change token for {calendar.calendar_id} invalidated again "
                        f"after reset; giving up"
                    )
                    raise
                result.token_resets += 1
                logger.warning(
                    f"Change token for {calendar.calendar_id} invalidated; "
                    f"clearing token and running full resync"
                )
                self.mapping_store.delete_sync_token(calendar.calendar_id)

        logger.info(
            f"Calendar {calendar.label} ({calendar.calendar_id}) synced: "
            f"{result.created} created, {result.updated} updated, "
            f"{result.deleted} deleted (full resync: {result.full_resync})"
        )
        return result

    def _run_page_loop(self, calendar: SourceCalendarConfig, result: CalendarSyncResult) -> None:
        options = self.config.sync_options
        sync_token = self.mapping_store.get_sync_token(calendar.calendar_id)

        list_kwargs: Dict[str, Any] = {
            'max_results': options.batch_size,
            'single_events': True,
            'show_deleted': True,
        }
        if sync_token:
            logger.info(f"Incremental sync for {calendar.calendar_id}")
            list_kwargs['sync_token'] = sync_token
        else:
            now = self.clock()
            list_kwargs['time_min'] = _rfc3339(now - timedelta(days=options.sync_past_days))
            list_kwargs['time_max'] = _rfc3339(now + timedelta(days=options.sync_window_days))
            result.full_resync = True
            logger.info(
                f"Full sync for {calendar.calendar_id} "
                f"({list_kwargs['time_min']} to {list_kwargs['time_max']})"
            )

        seen_event_ids = set()
        page_token = None
        page_number = 0
        while True:
            page_number += 1
            response = self._call(
                self.gateway.list_events,
                calendar.calendar_id,
                page_token=page_token,
                **list_kwargs
            )
            items = response.get('items', [])
            logger.debug(f"Page {page_number} of {calendar.calendar_id}: {len(items)} events")

            for event in items:
                seen_event_ids.add(event['id'])
                self.process_event(calendar, event, result)

            page_token = response.get('nextPageToken')
            if not page_token:
                break

        if not sync_token:
            # Mappings for events outside the window are never revisited
            self.mapping_store.prune_mappings(calendar.calendar_id, seen_event_ids)

        next_sync_token = response.get('nextSyncToken')
        if next_sync_token:
            self.mapping_store.set_sync_token(calendar.calendar_id, next_sync_token)

    def process_event(
        self,
        calendar: SourceCalendarConfig,
        event: Dict[str, Any],
        result: CalendarSyncResult
    ) -> None:
        """
        Apply the create, update or delete decision for one source event.

        Args:
            calendar: Source calendar configuration
            event: Source event resource
            result: Result to record the outcome in
        """
        source_event_id = event['id']
        destination_event_id = self.mapping_store.get_mapping(calendar.calendar_id, source_event_id)

        if event.get('status') == STATUS_CANCELLED:
            if destination_event_id:
                self._retract(calendar, source_event_id, destination_event_id, result)
            return

        if not self.transform.should_sync(event, self.config.sync_options):
            if destination_event_id:
                logger.info(f"Event {source_event_id} no longer qualifies; retracting")
                self._retract(calendar, source_event_id, destination_event_id, result)
            return

        body = self.transform.map_event(event, calendar)

        if not destination_event_id:
            self._create(calendar, source_event_id, body, result)
            return

        existing = self._fetch_destination_event(destination_event_id)
        if existing is None:
            logger.info(
                f"Destination event {destination_event_id} for {source_event_id} "
                f"is gone; recreating"
            )
            self._create(calendar, source_event_id, body, result)
            return

        if self.transform.has_changes(event, existing, calendar):
            self._call(
                self.gateway.patch_event,
                self.destination_calendar_id,
                destination_event_id,
                body
            )
            result.updated += 1
            logger.debug(f"Updated {destination_event_id} from {source_event_id}")

    def _create(
        self,
        calendar: SourceCalendarConfig,
        source_event_id: str,
        body: Dict[str, Any],
        result: CalendarSyncResult
    ) -> None:
        created = self._call(self.gateway.insert_event, self.destination_calendar_id, body)
        self.mapping_store.add_mapping(calendar.calendar_id, source_event_id, created['id'])
        result.created += 1
        logger.debug(f"Created {created['id']} from {source_event_id}")

    def _retract(
        self,
        calendar: SourceCalendarConfig,
        source_event_id: str,
        destination_event_id: str,
        result: CalendarSyncResult
    ) -> None:
        try:
            self._call(self.gateway.remove_event, self.destination_calendar_id, destination_event_id)
        except NotFoundError:
            logger.debug(f"Destination event {destination_event_id} already deleted")
        self.mapping_store.remove_mapping(calendar.calendar_id, source_event_id)
        result.deleted += 1
        logger.debug(f"Deleted {destination_event_id} for {source_event_id}")

    def _fetch_destination_event(self, destination_event_id: str) -> Optional[Dict[str, Any]]:
        try:
            existing = self._call(
                self.gateway.get_event,
                self.destination_calendar_id,
                destination_event_id
            )
        except NotFoundError:
            return None
        if existing.get('status') == STATUS_CANCELLED:
            return None
        return existing

    def _call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        options = self.config.sync_options
        return call_with_retry(
            func,
            *args,
            max_attempts=options.retry_attempts,
            base_delay_ms=options.retry_delay_ms,
            **kwargs
        )
