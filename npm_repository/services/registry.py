"""
Hosted (local mode) registry operations.

Every mutating operation reads the whole package document, computes the new
document with the functions in ``services.meta`` and writes it back in one
``put``. There is no compare-and-swap: two concurrent writes to the same
package race and the later one wins.
"""
from __future__ import annotations

import base64
import hashlib
import json
import logging
from typing import Any, Dict, Mapping, Optional

from npm_repository.domain.errors import (
    AssetNotFound,
    InvalidUpload,
    PackageNotFound,
    ParseError,
)
from npm_repository.domain.npm_utils import (
    DIST_TAGS,
    meta_key,
    package_of_tarball,
    tarball_key,
    tarball_path,
)
from npm_repository.services.content import to_client_form, to_storage_form
from npm_repository.services.meta import (
    VERSIONS,
    apply_deprecations,
    delete_tag,
    merge,
    set_tag,
    unpublish,
)
from npm_repository.services.tarball import TgzArchive
from npm_repository.storage.storage import Storage

logger = logging.getLogger(__name__)

ATTACHMENTS = "_attachments"


def _check_version(version: Any) -> str:
    """Version strings become path segments of tarball keys."""
    if not isinstance(version, str) or version in ("", ".", "..") or "/" in version:
        raise InvalidUpload(f"Invalid version: {version!r}")
    return version


class NpmRegistry:
    """
    Registry for packages published to this server.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    # ========================================================================
    # Package documents
    # ========================================================================

    async def _load_record(self, name: str) -> Optional[Dict[str, Any]]:
        key = meta_key(name)
        if not await self.storage.exists(key):
            return None
        try:
            return json.loads(await self.storage.get(key))
        except json.JSONDecodeError as e:
            logger.error(f"Stored document for {name} is corrupt: {e}")
            raise ParseError(f"Stored document for {name} is corrupt") from e

    async def _save_record(self, name: str, record: Dict[str, Any]) -> None:
        await self.storage.put(meta_key(name), json.dumps(record).encode("utf-8"))

    async def get_package(self, name: str, base_url: str) -> Dict[str, Any]:
        """Package document with tarball links pointing at ``base_url``."""
        record = await self._load_record(name)
        if record is None:
            raise PackageNotFound(name)
        return to_client_form(record, base_url)

    async def get_tarball(self, path: str) -> bytes:
        key = path.lstrip("/")
        if not await self.storage.exists(key):
            raise AssetNotFound(path)
        return await self.storage.get(key)

    # ========================================================================
    # Publishing
    # ========================================================================

    def _validate_upload(self, name: str, body: Mapping[str, Any]) -> Dict[str, bytes]:
        """
        Check the publish body against its tarballs.

        Returns the decoded tarball bytes keyed by version.
        """
        if body.get("name") not in (None, name):
            raise InvalidUpload(f"Package name '{body.get('name')}' does not match '{name}'")

        versions = body.get(VERSIONS) or {}
        attachments = body.get(ATTACHMENTS) or {}
        if not versions:
            raise InvalidUpload("Publish request does not contain any versions")
        if not attachments:
            raise InvalidUpload("Publish request does not contain any tarballs")
        for version in versions:
            _check_version(version)

        tarballs: Dict[str, bytes] = {}
        for filename, attachment in attachments.items():
            if not isinstance(attachment, Mapping) or "data" not in attachment:
                raise InvalidUpload(f"Attachment {filename} has no data")

            archive = TgzArchive(attachment["data"])
            descriptor = archive.read_package_descriptor()
            if descriptor.get("name") != name:
                raise InvalidUpload(
                    f"Tarball {filename} contains package '{descriptor.get('name')}', expected '{name}'"
                )
            version = descriptor.get("version")
            if version not in versions:
                raise InvalidUpload(
                    f"Tarball {filename} contains version '{version}' which is not being published"
                )
            tarballs[version] = archive.decode()

        missing = sorted(set(versions) - set(tarballs))
        if missing:
            raise InvalidUpload(f"No tarball supplied for version(s): {', '.join(missing)}")
        return tarballs

    async def publish(self, name: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Publish one or more versions.

        Tarballs are stored before the package document so the document never
        references a tarball that is not there yet.
        """
        tarballs = self._validate_upload(name, body)

        upload = to_storage_form(
            {key: value for key, value in body.items() if key != ATTACHMENTS},
            name,
        )
        existing = await self._load_record(name)
        record = merge(existing, upload)

        for version, data in tarballs.items():
            await self.storage.put(tarball_key(name, version), data)
        await self._save_record(name, record)

        logger.info(f"Published {name}@{', '.join(sorted(tarballs))}")
        return record

    # ========================================================================
    # Dist-tags and deprecation
    # ========================================================================

    async def get_dist_tags(self, name: str) -> Dict[str, str]:
        record = await self._load_record(name)
        if record is None:
            raise PackageNotFound(name)
        return dict(record.get(DIST_TAGS) or {})

    async def add_dist_tag(self, name: str, tag: str, version: str) -> Dict[str, str]:
        record = set_tag(await self._load_record(name), tag, version, name=name)
        await self._save_record(name, record)
        logger.info(f"Dist-tag {tag} of {name} now points at {version}")
        return record[DIST_TAGS]

    async def delete_dist_tag(self, name: str, tag: str) -> Dict[str, str]:
        record = delete_tag(await self._load_record(name), tag, name=name)
        await self._save_record(name, record)
        logger.info(f"Dist-tag {tag} of {name} removed")
        return record[DIST_TAGS]

    async def deprecate(self, name: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        record = await self._load_record(name)
        if record is None:
            raise PackageNotFound(name)
        updated = apply_deprecations(record, body.get(VERSIONS) or {})
        await self._save_record(name, updated)
        logger.info(f"Updated deprecations of {name}")
        return updated

    # ========================================================================
    # Curl publish and unpublish
    # ========================================================================

    async def publish_tarball(self, path: str, data: bytes) -> Dict[str, Any]:
        """
        Publish a raw tarball PUT to ``path`` (``curl -T pkg.tgz``).

        Name and version come from the archive's package.json; the version
        entry is built from it, with ``dist`` filled in by the registry.
        """
        archive = TgzArchive(data.decode("latin-1"), encoded=False)
        descriptor = archive.read_package_descriptor()
        name = descriptor.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidUpload("Tarball package.json has no name")
        version = _check_version(descriptor.get("version"))

        path_name = package_of_tarball(path)
        if path_name is not None and path_name != name:
            raise InvalidUpload(f"Tarball contains package '{name}', uploaded to '{path_name}'")

        entry = dict(descriptor)
        entry["_id"] = f"{name}@{version}"
        entry["dist"] = {
            "tarball": tarball_path(name, version),
            "shasum": hashlib.sha1(data).hexdigest(),
            "integrity": "sha512-" + base64.b64encode(hashlib.sha512(data).digest()).decode("ascii"),
        }
        upload = {"_id": name, "name": name, VERSIONS: {version: entry}}
        if "description" in descriptor:
            upload["description"] = descriptor["description"]

        record = merge(await self._load_record(name), upload)
        await self.storage.put(tarball_key(name, version), data)
        await self._save_record(name, record)

        logger.info(f"Published {name}@{version} from a raw tarball")
        return record

    async def unpublish(self, name: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Remove the versions missing from ``body`` together with their tarballs.

        The document is written before the tarballs are deleted so it never
        references a missing tarball.
        """
        record = await self._load_record(name)
        updated = unpublish(record, body.get(VERSIONS) or {}, name=name)
        removed = sorted(set(record[VERSIONS]) - set(updated[VERSIONS]))

        await self._save_record(name, updated)
        for version in removed:
            await self.storage.delete(tarball_key(name, version))

        logger.info(f"Unpublished {name}@{', '.join(removed) or 'nothing'}")
        return updated

    async def unpublish_all(self, name: str) -> None:
        """Remove the package document and every tarball it references."""
        record = await self._load_record(name)
        if record is None:
            raise PackageNotFound(name)

        await self.storage.delete(meta_key(name))
        for version in record.get(VERSIONS) or {}:
            await self.storage.delete(tarball_key(name, version))
        logger.info(f"Unpublished every version of {name}")

    async def delete_tarball(self, path: str) -> None:
        """
        Delete a tarball no version refers to anymore.

        npm sends this after an unpublish has already dropped the version, so
        deleting a tarball that is gone succeeds.
        """
        key = path.lstrip("/")
        name = package_of_tarball(key)
        record = await self._load_record(name) if name else None
        if record is not None:
            for version in record.get(VERSIONS) or {}:
                if tarball_key(name, version) == key:
                    raise InvalidUpload(f"Tarball {key} still belongs to {name}@{version}")

        await self.storage.delete(key)
        logger.info(f"Deleted tarball {key}")
