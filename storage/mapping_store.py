"""Mapping store for event mappings, change tokens and run timestamps."""
import json
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

SYNC_TOKEN_PREFIX = 'syncToken_'
EVENT_MAP_PREFIX = 'eventMap_'
LAST_SYNC_TIMESTAMP_KEY = 'lastSyncTimestamp'

# DynamoDB caps items at 400 KB including the key; leave room for it
MAX_EVENT_MAP_BYTES = 399 * 1024


class MappingStoreError(Exception):
    """Raised when persisted sync state cannot be read."""


class MappingStore:
    """
    Durable sync state on top of a key-value store.

    Holds, per source calendar, the change token and the map of source event
    ids to destination event ids, plus the timestamp of the last run. The
    event map is stored whole under one key, so every change is a
    read-modify-write of that key.
    """

    def __init__(self, kv_store):
        """
        Initialize the mapping store.

        Args:
            kv_store: Object exposing get, set, delete, keys and delete_many
        """
        self.kv_store = kv_store

    def get_sync_token(self, calendar_id: str) -> Optional[str]:
        """Return the stored change token for a calendar, or None."""
        return self.kv_store.get(SYNC_TOKEN_PREFIX + calendar_id) or None

    def set_sync_token(self, calendar_id: str, token: str) -> None:
        self.kv_store.set(SYNC_TOKEN_PREFIX + calendar_id, token)

    def delete_sync_token(self, calendar_id: str) -> None:
        self.kv_store.delete(SYNC_TOKEN_PREFIX + calendar_id)

    def get_event_map(self, calendar_id: str) -> Dict[str, str]:
        """
        Load the full event map for a calendar.

        Args:
            calendar_id: Source calendar identifier

        Returns:
            Dict mapping source event id to destination event id

        Raises:
            MappingStoreError: If the stored value is not a JSON object
        """
        raw = self.kv_store.get(EVENT_MAP_PREFIX + calendar_id)
        if not raw:
            return {}

        try:
            event_map = json.loads(raw)
        except ValueError as e:
            raise MappingStoreError(
                f"Corrupt event map for calendar {calendar_id}: {e}"
            ) from e

        if not isinstance(event_map, dict):
            raise MappingStoreError(
                f"Corrupt event map for calendar {calendar_id}: "
                f"expected object, got {type(event_map).__name__}"
            )
        return event_map

    def set_event_map(self, calendar_id: str, event_map: Dict[str, str]) -> None:
        """
        Replace the full event map for a calendar.

        Raises:
            MappingStoreError: If the serialized map exceeds the item size limit
        """
        payload = json.dumps(event_map)
        size = len(payload.encode('utf-8'))
        if size > MAX_EVENT_MAP_BYTES:
            raise MappingStoreError(
                f"Event map for calendar {calendar_id} is too large to store "
                f"({len(event_map)} entries, {size} bytes, limit {MAX_EVENT_MAP_BYTES}); "
                f"reset the calendar to prune mappings outside the sync window"
            )
        self.kv_store.set(EVENT_MAP_PREFIX + calendar_id, payload)

    def get_mapping(self, calendar_id: str, source_event_id: str) -> Optional[str]:
        """Return the destination event id mapped to a source event, or None."""
        return self.get_event_map(calendar_id).get(source_event_id)

    def add_mapping(
        self,
        calendar_id: str,
        source_event_id: str,
        destination_event_id: str
    ) -> None:
        """
        Map a source event to a destination event.

        An existing entry for the same source event is replaced, so a source
        event never maps to more than one destination event.
        """
        event_map = self.get_event_map(calendar_id)
        event_map[source_event_id] = destination_event_id
        self.set_event_map(calendar_id, event_map)

    def remove_mapping(self, calendar_id: str, source_event_id: str) -> None:
        event_map = self.get_event_map(calendar_id)
        if event_map.pop(source_event_id, None) is not None:
            self.set_event_map(calendar_id, event_map)

    def prune_mappings(self, calendar_id: str, keep_ids: Iterable[str]) -> int:
        """
        Drop every mapping whose source event id is not in keep_ids.

        Args:
            calendar_id: Source calendar identifier
            keep_ids: Source event ids that are still listed

        Returns:
            Count of removed mappings
        """
        event_map = self.get_event_map(calendar_id)
        keep = set(keep_ids)
        stale = [source_id for source_id in event_map if source_id not in keep]
        if not stale:
            return 0

        for source_id in stale:
            del event_map[source_id]
        self.set_event_map(calendar_id, event_map)
        logger.info(f"Pruned {len(stale)} mappings outside the sync window for {calendar_id}")
        return len(stale)

    def get_last_sync_timestamp(self) -> Optional[datetime]:
        """Return the time of the last completed run, or None."""
        raw = self.kv_store.get(LAST_SYNC_TIMESTAMP_KEY)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw.replace('Z', '+00:00'))
        except ValueError:
            logger.warning(f"Ignoring unparseable last sync timestamp: {raw}")
            return None

    def set_last_sync_timestamp(self, timestamp: datetime) -> None:
        self.kv_store.set(LAST_SYNC_TIMESTAMP_KEY, timestamp.isoformat())

    def clear_all(self) -> int:
        """
        Remove every change token, event map and the last run timestamp.

        Keys unrelated to sync state are left untouched.

        Returns:
            Count of deleted keys
        """
        keys = (
            self.kv_store.keys(SYNC_TOKEN_PREFIX)
            + self.kv_store.keys(EVENT_MAP_PREFIX)
        )
        if self.kv_store.get(LAST_SYNC_TIMESTAMP_KEY) is not None:
            keys.append(LAST_SYNC_TIMESTAMP_KEY)

        deleted = self.kv_store.delete_many(keys)
        logger.info(f"Cleared {deleted} sync state keys")
        return deleted
