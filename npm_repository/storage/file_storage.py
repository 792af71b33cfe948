import logging
import uuid
from pathlib import Path

import aiofiles

from npm_repository.domain.errors import StorageKeyNotFound
from npm_repository.storage.storage import Storage, validate_key

logger = logging.getLogger(__name__)


class FileStorage(Storage):
    """
    Storage that keeps every key as a file below a root directory.

    Values are written to a temporary sibling first and then moved into
    place, so readers never observe a partially written file.
    """

    def __init__(self, root: Path):
        self._root = root

        # Ensure root directory exists
        if not self._root.exists():
            self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        return self._root.joinpath(*validate_key(key).split("/"))

    async def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise StorageKeyNotFound(key)
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
            tmp_path.replace(path)
        finally:
            tmp_path.unlink(missing_ok=True)
        logger.debug(f"Stored {len(data)} bytes at {key}")

    async def delete(self, key: str) -> None:
        path = self._path(key)
        if path.is_file():
            path.unlink()
            logger.debug(f"Deleted {key}")
