from abc import ABC, abstractmethod

from npm_repository.domain.errors import InvalidPath


class Storage(ABC):
    """
    Abstract base class for key/value storage.

    Writes replace the whole value of a key; concurrent writers to the same
    key race and the last one wins.
    """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a value is stored under the key."""
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """
        Read the value stored under the key.
        Raises StorageKeyNotFound if nothing is stored there.
        """
        pass

    @abstractmethod
    async def put(self, key: str, data: bytes) -> None:
        """Store the value under the key (create or overwrite)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the value stored under the key. Missing keys are ignored."""
        pass


def validate_key(key: str) -> str:
    """
    Reject keys that could escape the storage root.
    Returns the key without surrounding slashes.

    Raises InvalidPath (a ValueError) for empty, absolute or dotted keys.
    """
    normalized = key.strip("/")
    if not normalized or key.startswith("/"):
        raise InvalidPath(f"Invalid storage key: {key!r}")
    if any(part in ("", ".", "..") for part in normalized.split("/")):
        raise InvalidPath(f"Invalid storage key: {key!r}")
    return normalized
