"""Unit tests for MappingStore."""
import json
from datetime import datetime, timezone

import pytest

from storage.mapping_store import MappingStore, MappingStoreError


class TestMappingStore:
    """Test cases for MappingStore over the in-memory key-value store."""

    def test_sync_token_roundtrip(self, mapping_store, kv_store):
        """Test tokens are stored under syncToken_<calendarId>."""
        assert mapping_store.get_sync_token('cal-1') is None

        mapping_store.set_sync_token('cal-1', 'token-abc')

        assert mapping_store.get_sync_token('cal-1') == 'token-abc'
        assert kv_store.data['syncToken_cal-1'] == 'token-abc'

        mapping_store.delete_sync_token('cal-1')
        assert mapping_store.get_sync_token('cal-1') is None

    def test_event_map_layout(self, mapping_store, kv_store):
        """Test event maps are stored as JSON under eventMap_<calendarId>."""
        mapping_store.add_mapping('cal-1', 'src-1', 'dest-1')
        mapping_store.add_mapping('cal-1', 'src-2', 'dest-2')

        assert json.loads(kv_store.data['eventMap_cal-1']) == {
            'src-1': 'dest-1',
            'src-2': 'dest-2',
        }
        assert mapping_store.get_mapping('cal-1', 'src-2') == 'dest-2'
        assert mapping_store.get_mapping('cal-1', 'missing') is None

    def test_add_mapping_replaces_existing_entry(self, mapping_store):
        """Test a source event maps to at most one destination event."""
        mapping_store.add_mapping('cal-1', 'src-1', 'dest-1')
        mapping_store.add_mapping('cal-1', 'src-1', 'dest-9')

        assert mapping_store.get_event_map('cal-1') == {'src-1': 'dest-9'}

    def test_maps_are_per_calendar(self, mapping_store):
        """Test the same source event id in two calendars maps independently."""
        mapping_store.add_mapping('cal-1', 'shared', 'dest-1')
        mapping_store.add_mapping('cal-2', 'shared', 'dest-2')

        assert mapping_store.get_mapping('cal-1', 'shared') == 'dest-1'
        assert mapping_store.get_mapping('cal-2', 'shared') == 'dest-2'

    def test_remove_mapping(self, mapping_store):
        """Test removing one entry keeps the others."""
        mapping_store.set_event_map('cal-1', {'src-1': 'dest-1', 'src-2': 'dest-2'})

        mapping_store.remove_mapping('cal-1', 'src-1')
        mapping_store.remove_mapping('cal-1', 'unknown')

        assert mapping_store.get_event_map('cal-1') == {'src-2': 'dest-2'}

    def test_prune_mappings(self, mapping_store):
        """Test pruning keeps only the listed source events."""
        mapping_store.set_event_map('cal-1', {'src-1': 'dest-1', 'src-2': 'dest-2', 'src-3': 'dest-3'})
        mapping_store.add_mapping('cal-2', 'src-1', 'dest-9')

        removed = mapping_store.prune_mappings('cal-1', {'src-2', 'not-mapped'})

        assert removed == 2
        assert mapping_store.get_event_map('cal-1') == {'src-2': 'dest-2'}
        assert mapping_store.get_event_map('cal-2') == {'src-1': 'dest-9'}

    def test_prune_mappings_without_stale_entries(self, mapping_store, kv_store):
        """Test pruning with nothing stale writes nothing."""
        assert mapping_store.prune_mappings('cal-1', []) == 0
        assert 'eventMap_cal-1' not in kv_store.data

    def test_add_mapping_over_size_limit_raises(self, mapping_store, monkeypatch):
        """Test a map growing past the size limit raises and keeps the stored map."""
        monkeypatch.setattr('storage.mapping_store.MAX_EVENT_MAP_BYTES', 30)
        mapping_store.add_mapping('cal-1', 'src-1', 'dest-1')

        with pytest.raises(MappingStoreError):
            mapping_store.add_mapping('cal-1', 'src-2', 'dest-2')

        assert mapping_store.get_event_map('cal-1') == {'src-1': 'dest-1'}

    def test_corrupt_event_map_raises(self, kv_store):
        """Test unreadable maps surface instead of silently resetting."""
        kv_store.set('eventMap_cal-1', '{not json')
        store = MappingStore(kv_store)

        with pytest.raises(MappingStoreError):
            store.get_event_map('cal-1')

        kv_store.set('eventMap_cal-1', '["a", "b"]')
        with pytest.raises(MappingStoreError):
            store.get_event_map('cal-1')

    def test_last_sync_timestamp(self, mapping_store, kv_store):
        """Test the last run timestamp is stored as ISO-8601."""
        assert mapping_store.get_last_sync_timestamp() is None

        timestamp = datetime(2025, 1, 10, 12, 30, tzinfo=timezone.utc)
        mapping_store.set_last_sync_timestamp(timestamp)

        assert kv_store.data['lastSyncTimestamp'] == '2025-01-10T12:30:00+00:00'
        assert mapping_store.get_last_sync_timestamp() == timestamp

    def test_clear_all_keeps_unrelated_keys(self, mapping_store, kv_store):
        """Test clear_all removes sync state only."""
        mapping_store.set_sync_token('cal-1', 'token')
        mapping_store.set_sync_token('cal-2', 'token')
        mapping_store.add_mapping('cal-1', 'src-1', 'dest-1')
        mapping_store.set_last_sync_timestamp(datetime(2025, 1, 10, tzinfo=timezone.utc))
        kv_store.set('webhookChannel', 'channel-1')

        deleted = mapping_store.clear_all()

        assert deleted == 4
        assert kv_store.data == {'webhookChannel': 'channel-1'}
