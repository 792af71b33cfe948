from typing import Dict

from npm_repository.domain.errors import StorageKeyNotFound
from npm_repository.storage.storage import Storage, validate_key


class InMemoryStorage(Storage):
    """Dictionary-backed storage for tests and throwaway deployments."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    async def exists(self, key: str) -> bool:
        return validate_key(key) in self._data

    async def get(self, key: str) -> bytes:
        normalized = validate_key(key)
        if normalized not in self._data:
            raise StorageKeyNotFound(key)
        return self._data[normalized]

    async def put(self, key: str, data: bytes) -> None:
        self._data[validate_key(key)] = bytes(data)

    async def delete(self, key: str) -> None:
        self._data.pop(validate_key(key), None)

    def keys(self):
        return sorted(self._data)
