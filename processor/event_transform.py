"""Event transform for shaping source events into destination events."""
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from processor.models import (
    EventMappingOptions,
    PrivacyMode,
    SourceCalendarConfig,
    SyncOptions,
)

logger = logging.getLogger(__name__)

STATUS_CANCELLED = 'cancelled'
RESPONSE_DECLINED = 'declined'
TRANSPARENCY_OPAQUE = 'opaque'
VISIBILITY_PRIVATE = 'private'


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventTransform:
    """Decides which source events qualify and how they look at the destination."""

    def __init__(
        self,
        mapping_options: EventMappingOptions,
        clock: Callable[[], datetime] = _utc_now
    ):
        """
        Initialize the transform.

        Args:
            mapping_options: Destination shaping options
            clock: Callable returning the current aware datetime
        """
        self.options = mapping_options
        self.clock = clock

    def should_sync(self, event: Dict[str, Any], sync_options: SyncOptions) -> bool:
        """
        Decide whether a source event qualifies for the destination.

        Cancelled events always qualify so their deletion can be processed.

        Args:
            event: Source event resource
            sync_options: Filtering options

        Returns:
            True if the event should be mirrored
        """
        if event.get('status') == STATUS_CANCELLED:
            return True

        if not sync_options.include_all_day_events and is_all_day(event):
            return False

        if not sync_options.include_declined_events and self._declined_by_self(event):
            return False

        return True

    def map_event(
        self,
        source_event: Dict[str, Any],
        calendar: SourceCalendarConfig
    ) -> Dict[str, Any]:
        """
        Shape a source event into a destination event body.

        Args:
            source_event: Source event resource
            calendar: Configuration of the calendar the event came from

        Returns:
            Destination event body ready for insert or patch
        """
        prefix = self.build_prefix(calendar)
        mode = calendar.privacy_mode

        if mode is PrivacyMode.BUSY:
            body = self._map_busy(prefix)
        elif mode is PrivacyMode.TITLE_ONLY:
            body = self._map_title_only(source_event, prefix)
        elif mode is PrivacyMode.FULL:
            body = self._map_full(source_event, prefix)
        else:
            raise ValueError(f"Unhandled privacy mode: {mode!r}")

        body['start'] = source_event.get('start')
        body['end'] = source_event.get('end')

        if calendar.color_id:
            body['colorId'] = calendar.color_id

        body['extendedProperties'] = {
            'private': {
                'sourceCalendarId': calendar.calendar_id,
                'sourceEventId': source_event.get('id'),
                'syncedAt': self.clock().isoformat(),
            }
        }
        return body

    def has_changes(
        self,
        source_event: Dict[str, Any],
        existing_event: Dict[str, Any],
        calendar: SourceCalendarConfig
    ) -> bool:
        """
        Check whether an existing destination event is stale.

        The source event is re-shaped with map_event and compared to the
        destination, so drift detection always agrees with the mapping rules.

        Args:
            source_event: Current source event resource
            existing_event: Destination event as currently stored
            calendar: Configuration of the source calendar

        Returns:
            True if the destination event needs an update
        """
        mapped = self.map_event(source_event, calendar)

        if mapped.get('summary') != existing_event.get('summary'):
            return True

        if effective_instant(mapped.get('start')) != effective_instant(existing_event.get('start')):
            return True

        if effective_instant(mapped.get('end')) != effective_instant(existing_event.get('end')):
            return True

        if calendar.privacy_mode is PrivacyMode.FULL:
            if (mapped.get('description') or '') != (existing_event.get('description') or ''):
                return True
            if (mapped.get('location') or '') != (existing_event.get('location') or ''):
                return True

        return False

    def build_prefix(self, calendar: SourceCalendarConfig) -> str:
        """Substitute the calendar label into the configured prefix template."""
        template = self.options.prefix_format
        if not template:
            return ''
        return template.replace('{label}', calendar.label)

    def _map_busy(self, prefix: str) -> Dict[str, Any]:
        return {
            'summary': prefix + self.options.busy_label,
            'visibility': VISIBILITY_PRIVATE,
            'transparency': TRANSPARENCY_OPAQUE,
        }

    def _map_title_only(self, source_event: Dict[str, Any], prefix: str) -> Dict[str, Any]:
        return {
            'summary': prefix + (source_event.get('summary') or self.options.untitled_label),
            'transparency': source_event.get('transparency') or TRANSPARENCY_OPAQUE,
        }

    def _map_full(self, source_event: Dict[str, Any], prefix: str) -> Dict[str, Any]:
        body = {
            'summary': prefix + (source_event.get('summary') or self.options.untitled_label),
            'transparency': source_event.get('transparency') or TRANSPARENCY_OPAQUE,
        }

        if self.options.copy_description and source_event.get('description'):
            body['description'] = source_event['description']

        if self.options.copy_location and source_event.get('location'):
            body['location'] = source_event['location']

        if self.options.set_as_private:
            body['visibility'] = VISIBILITY_PRIVATE

        if source_event.get('recurrence'):
            body['recurrence'] = source_event['recurrence']

        return body

    def _declined_by_self(self, event: Dict[str, Any]) -> bool:
        for attendee in event.get('attendees') or []:
            if attendee.get('self'):
                return attendee.get('responseStatus') == RESPONSE_DECLINED
        return False


def is_all_day(event: Dict[str, Any]) -> bool:
    """Return True if the event spans whole dates rather than date-times."""
    start = event.get('start') or {}
    return 'date' in start and 'dateTime' not in start


def effective_instant(span: Optional[Dict[str, Any]]) -> Optional[Union[datetime, date, str]]:
    """
    Resolve the comparable instant of an event start or end.

    Args:
        span: Event time object with 'dateTime' or 'date'

    Returns:
        Aware datetime for date-time spans, date for all-day spans,
        the raw string if unparseable, None if neither is present
    """
    if not span:
        return None

    value = span.get('dateTime')
    if value:
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            logger.warning(f"Unparseable dateTime value: {value}")
            return value
        if parsed.tzinfo is None:
            return parsed
        return parsed.astimezone(timezone.utc)

    value = span.get('date')
    if value:
        try:
            return date.fromisoformat(value)
        except ValueError:
            logger.warning(f"Unparseable date value: {value}")
            return value

    return None
