"""In-memory key-value store with the same interface as DynamoDBManager."""
from typing import Dict, List, Optional


class InMemoryKeyValueStore:
    """Dictionary-backed key-value store for local runs and tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self, prefix: str = '') -> List[str]:
        return [key for key in self.data if key.startswith(prefix)]

    def delete_many(self, keys: List[str]) -> int:
        for key in keys:
            self.data.pop(key, None)
        return len(keys)
