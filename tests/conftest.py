"""Shared fixtures for calendar mirror sync tests."""
import copy
from datetime import datetime, timezone

import pytest

from gateway.errors import NotFoundError, TokenInvalidatedError
from processor.models import (
    EventMappingOptions,
    PrivacyMode,
    SourceCalendarConfig,
    SyncConfig,
    SyncOptions,
)
from storage.mapping_store import MappingStore
from storage.memory_store import InMemoryKeyValueStore

FIXED_NOW = datetime(2025, 1, 10, 0, 0, tzinfo=timezone.utc)
DESTINATION_ID = 'mirror@example.com'


class FakeCalendarGateway:
    """In-memory calendar gateway serving paged source events."""

    def __init__(self):
        self.source_pages = {}
        self.sync_tokens = {}
        self.invalid_tokens = set()
        self.list_errors = {}
        self.destination = {}
        self.list_calls = []
        self.inserts = []
        self.patches = []
        self.removals = []
        self._next_id = 0

    def set_events(self, calendar_id, *pages, sync_token='sync-1'):
        """Serve the given pages of events for a calendar."""
        self.source_pages[calendar_id] = [list(page) for page in pages] or [[]]
        self.sync_tokens[calendar_id] = sync_token

    def list_events(self, calendar_id, sync_token=None, time_min=None, time_max=None,
                    page_token=None, max_results=250, single_events=True, show_deleted=True):
        self.list_calls.append({
            'calendar_id': calendar_id,
            'sync_token': sync_token,
            'time_min': time_min,
            'time_max': time_max,
            'page_token': page_token,
            'max_results': max_results,
            'single_events': single_events,
            'show_deleted': show_deleted,
        })
        if calendar_id in self.list_errors:
            raise self.list_errors[calendar_id]
        if sync_token and sync_token in self.invalid_tokens:
            raise TokenInvalidatedError('Sync token is no longer valid', status_code=410)

        pages = self.source_pages.get(calendar_id, [[]])
        index = int(page_token) if page_token else 0
        response = {'items': copy.deepcopy(pages[index])}
        if index + 1 < len(pages):
            response['nextPageToken'] = str(index + 1)
        elif self.sync_tokens.get(calendar_id):
            response['nextSyncToken'] = self.sync_tokens[calendar_id]
        return response

    def get_event(self, calendar_id, event_id):
        if event_id not in self.destination:
            raise NotFoundError(f'{event_id} not found', status_code=404)
        return copy.deepcopy(self.destination[event_id])

    def insert_event(self, calendar_id, body):
        self._next_id += 1
        event_id = f'dest-{self._next_id}'
        stored = copy.deepcopy(body)
        stored['id'] = event_id
        self.destination[event_id] = stored
        self.inserts.append(event_id)
        return copy.deepcopy(stored)

    def patch_event(self, calendar_id, event_id, body):
        if event_id not in self.destination:
            raise NotFoundError(f'{event_id} not found', status_code=404)
        self.destination[event_id].update(copy.deepcopy(body))
        self.patches.append(event_id)

    def remove_event(self, calendar_id, event_id):
        if event_id not in self.destination:
            raise NotFoundError(f'{event_id} not found', status_code=410)
        del self.destination[event_id]
        self.removals.append(event_id)


@pytest.fixture
def clock():
    """Clock frozen at a fixed instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def work_calendar():
    return SourceCalendarConfig(
        calendar_id='work@example.com',
        label='W',
        privacy_mode=PrivacyMode.FULL,
        color_id='9'
    )


@pytest.fixture
def busy_calendar():
    return SourceCalendarConfig(
        calendar_id='partner@example.com',
        label='B',
        privacy_mode=PrivacyMode.BUSY,
        color_id='5'
    )


@pytest.fixture
def sync_options():
    return SyncOptions(
        sync_window_days=30,
        sync_past_days=7,
        include_all_day_events=True,
        include_declined_events=False,
        batch_size=50,
        retry_attempts=3,
        retry_delay_ms=0
    )


@pytest.fixture
def mapping_options():
    return EventMappingOptions(
        prefix_format='[{label}] ',
        copy_description=True,
        copy_location=True,
        set_as_private=True
    )


@pytest.fixture
def sync_config(work_calendar, busy_calendar, sync_options, mapping_options):
    return SyncConfig(
        destination_calendar_id=DESTINATION_ID,
        calendars=(work_calendar, busy_calendar),
        sync_options=sync_options,
        mapping_options=mapping_options
    )


@pytest.fixture
def gateway():
    return FakeCalendarGateway()


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def mapping_store(kv_store):
    return MappingStore(kv_store)


@pytest.fixture
def make_event():
    """Factory for source event resources."""
    def _make_event(event_id='e1', summary='Standup', status='confirmed',
                    start='2025-01-10T10:00:00+00:00', end='2025-01-10T11:00:00+00:00',
                    **extra):
        event = {
            'id': event_id,
            'status': status,
            'summary': summary,
            'start': {'dateTime': start},
            'end': {'dateTime': end},
        }
        event.update(extra)
        return event
    return _make_event
