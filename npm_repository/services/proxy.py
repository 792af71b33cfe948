"""
Caching proxy in front of an upstream npm registry.

Package documents and assets follow different policies:

- Package documents are fetched from upstream on every request and the
  cached copy is only served when upstream is unavailable. New versions and
  dist-tags therefore show up immediately.
- Assets (tarballs) never change once published, so a cached asset is served
  without asking upstream, and upstream is asked only once per asset.

Storage layout:
    {name}/meta.json     package document, tarball paths in storage form
    {name}/meta.meta     {"last-modified": ..., "last-refreshed": ...}
    {path}               asset bytes
    {path}.meta          {"last-modified": ..., "content-type": ...}
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

import aiofiles
from pydantic import ValidationError

from npm_repository.domain.models import AssetMeta, NpmAsset, NpmPackage, PackageMeta
from npm_repository.domain.npm_utils import (
    asset_sidecar_key,
    meta_key,
    meta_sidecar_key,
    now_str,
)
from npm_repository.services.content import to_storage_form
from npm_repository.services.remote import HttpNpmRemote
from npm_repository.storage.storage import Storage

logger = logging.getLogger(__name__)


class NpmProxyStorage:
    """Reads and writes cached packages and assets on top of a Storage."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def get_package(self, name: str) -> Optional[NpmPackage]:
        content_key = meta_key(name)
        sidecar_key = meta_sidecar_key(name)
        if not await self.storage.exists(content_key) or not await self.storage.exists(sidecar_key):
            return None

        try:
            content = json.loads(await self.storage.get(content_key))
            meta = PackageMeta.model_validate_json(await self.storage.get(sidecar_key))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            # Unreadable entries count as a miss; the next refresh overwrites them.
            logger.warning(f"Ignoring corrupt cache entry for package {name}: {e}")
            return None
        if not isinstance(content, dict):
            logger.warning(f"Ignoring corrupt cache entry for package {name}: not a JSON object")
            return None
        return NpmPackage(name=name, content=content, meta=meta)

    async def save_package(self, package: NpmPackage) -> None:
        await self.storage.put(
            meta_key(package.name),
            json.dumps(package.content).encode("utf-8"),
        )
        await self.storage.put(
            meta_sidecar_key(package.name),
            package.meta.model_dump_json(by_alias=True).encode("utf-8"),
        )

    async def get_asset(self, path: str) -> Optional[NpmAsset]:
        sidecar_key = asset_sidecar_key(path)
        # The sidecar is written last, so its presence marks a complete asset.
        if not await self.storage.exists(sidecar_key) or not await self.storage.exists(path):
            return None

        try:
            meta = AssetMeta.model_validate_json(await self.storage.get(sidecar_key))
        except ValidationError as e:
            logger.warning(f"Ignoring corrupt cache entry for asset {path}: {e}")
            return None
        content = await self.storage.get(path)
        return NpmAsset(path=path, content=content, meta=meta)

    async def save_asset(self, path: str, source: Path, meta: AssetMeta) -> None:
        async with aiofiles.open(source, "rb") as f:
            data = await f.read()
        await self.storage.put(path, data)
        await self.storage.put(
            asset_sidecar_key(path),
            meta.model_dump_json(by_alias=True).encode("utf-8"),
        )


class NpmProxy:
    """
    Proxy facade used by the HTTP layer in proxy mode.
    """

    def __init__(
        self,
        storage: Storage,
        remote: HttpNpmRemote,
        temp_dir: Optional[Path] = None,
    ):
        self.storage = NpmProxyStorage(storage)
        self.remote = remote
        self.temp_dir = temp_dir

    async def get_package(self, name: str) -> Optional[NpmPackage]:
        """
        Retrieve package metadata, refreshed from upstream when possible.

        Returns None when the package is neither available upstream nor
        cached.
        """
        cached = await self.storage.get_package(name)

        loaded = await self.remote.load_package(name)
        if loaded is not None:
            package = NpmPackage(
                name=name,
                content=to_storage_form(loaded.content, name),
                meta=PackageMeta(
                    last_modified=loaded.meta.last_modified,
                    last_refreshed=now_str(),
                ),
            )
            await self.storage.save_package(package)
            logger.debug(f"Refreshed package {name} from upstream")
            return package

        if cached is not None:
            logger.info(f"Upstream unavailable for {name}, serving cached copy from {cached.meta.last_refreshed}")
            return cached

        logger.debug(f"Package {name} not found upstream or in cache")
        return None

    async def get_asset(self, path: str) -> Optional[NpmAsset]:
        """
        Retrieve an asset from the cache, downloading it once on a miss.
        """
        cached = await self.storage.get_asset(path)
        if cached is not None:
            return cached

        fd, tmp_name = tempfile.mkstemp(prefix="npm-asset-", suffix=".tmp", dir=self.temp_dir)
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            meta = await self.remote.load_asset(path, tmp_path)
            if meta is None:
                return None

            await self.storage.save_asset(path, tmp_path, meta)
            logger.debug(f"Cached asset {path} ({meta.content_type})")
            return await self.storage.get_asset(path)
        finally:
            tmp_path.unlink(missing_ok=True)

    async def close(self) -> None:
        """Close the proxy and its upstream client."""
        await self.remote.close()
