"""
Merging of package documents (``meta.json``).

Every function here is pure: it receives the current document (or None when
the package does not exist yet) and returns a new document. Reading the
current document and writing the result back is up to the caller, which
always replaces the stored document as a whole.

Default ``latest`` ordering: when a publish does not name its own ``latest``
tag, the lexicographically greatest version string of the upload is used.
No semantic-version comparison is performed.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Mapping, Optional

from npm_repository.domain.errors import InvalidUpload, PackageNotFound, TagNotFound
from npm_repository.domain.npm_utils import DIST_TAGS, LATEST, now_str

logger = logging.getLogger(__name__)

VERSIONS = "versions"
TIME = "time"
README = "readme"
CREATED = "created"
MODIFIED = "modified"
DEPRECATED = "deprecated"

# Top-level fields copied from the first upload into a new document.
_SKELETON_FIELDS = ("_id", "name", "description")

# Upload fields that never end up in the stored document.
_TRANSIENT_FIELDS = ("_attachments", "_rev")


def merge(
    existing: Optional[Dict[str, Any]],
    upload: Mapping[str, Any],
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Compute the package document after a publish.

    Args:
        existing: The stored document, or None for a first publish.
        upload: The publish body (versions, optional dist-tags and readme).
        now: Timestamp to record; defaults to the current time.

    Returns:
        A new document. ``time`` holds an entry for every version.
    """
    now = now or now_str()
    uploaded_versions = upload.get(VERSIONS) or {}
    if not uploaded_versions:
        raise InvalidUpload("Publish request does not contain any versions")

    upload_tags = upload.get(DIST_TAGS) or {}

    if existing is None:
        record: Dict[str, Any] = {
            field: copy.deepcopy(upload[field])
            for field in _SKELETON_FIELDS
            if field in upload
        }
        if "name" in record:
            record.setdefault("_id", record["name"])
        previous_versions: Dict[str, Any] = {}
        tags: Dict[str, str] = {}
        time: Dict[str, str] = {}
    else:
        record = copy.deepcopy(existing)
        previous_versions = record.get(VERSIONS) or {}
        tags = dict(record.get(DIST_TAGS) or {})
        time = dict(record.get(TIME) or {})

    for field in _TRANSIENT_FIELDS:
        record.pop(field, None)

    versions = dict(previous_versions)
    for version, entry in uploaded_versions.items():
        # Republishing a version replaces its entry.
        versions[version] = copy.deepcopy(entry)

    tags.update(upload_tags)
    if not upload_tags or LATEST not in tags:
        tags[LATEST] = max(uploaded_versions)

    unknown = sorted(v for v in upload_tags.values() if v not in versions)
    if unknown:
        raise InvalidUpload(f"Dist-tags reference unknown versions: {', '.join(unknown)}")

    created = time.get(CREATED, now)
    for version in versions:
        if version in uploaded_versions and version not in previous_versions:
            time[version] = now
        else:
            time.setdefault(version, now)
    time[CREATED] = created
    time[MODIFIED] = now

    record[DIST_TAGS] = tags
    record[VERSIONS] = versions
    record[TIME] = time
    if README in upload:
        record[README] = upload[README]

    logger.debug(
        f"Merged {len(uploaded_versions)} version(s) into {record.get('name', '?')}, "
        f"latest={tags[LATEST] if LATEST in tags else None}"
    )
    return record


def set_tag(
    record: Optional[Dict[str, Any]],
    tag: str,
    version: str,
    *,
    name: str = "unknown",
) -> Dict[str, Any]:
    """Point ``tag`` at ``version``. Applying it twice changes nothing."""
    if record is None:
        raise PackageNotFound(name)
    result = copy.deepcopy(record)
    tags = dict(result.get(DIST_TAGS) or {})
    tags[tag] = version
    result[DIST_TAGS] = tags
    return result


def delete_tag(
    record: Optional[Dict[str, Any]],
    tag: str,
    *,
    name: str = "unknown",
) -> Dict[str, Any]:
    """Remove ``tag``; fails with TagNotFound when the tag does not exist."""
    if record is None:
        raise PackageNotFound(name)
    tags = dict(record.get(DIST_TAGS) or {})
    if tag not in tags:
        raise TagNotFound(tag)
    result = copy.deepcopy(record)
    del tags[tag]
    result[DIST_TAGS] = tags
    return result


def apply_deprecations(
    record: Dict[str, Any],
    versions: Mapping[str, Any],
) -> Dict[str, Any]:
    """
    Copy the ``deprecated`` field of every version in ``versions`` into the
    document.

    Versions the document does not know are skipped, and so are versions
    sent without a ``deprecated`` field. An empty message is stored as
    given; npm uses it to lift a deprecation.
    """
    result = copy.deepcopy(record)
    stored = result.get(VERSIONS) or {}
    for version, entry in (versions or {}).items():
        if not isinstance(entry, Mapping) or DEPRECATED not in entry:
            continue
        if version not in stored:
            logger.debug(f"Skipping deprecation of unknown version {version}")
            continue
        stored[version][DEPRECATED] = entry[DEPRECATED]
    return result


def unpublish(
    record: Optional[Dict[str, Any]],
    remaining: Mapping[str, Any],
    *,
    name: str = "unknown",
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Drop every version that is not in ``remaining``.

    ``npm unpublish pkg@version`` sends the package document without the
    removed versions; only its version keys matter here. Removed versions
    lose their ``time`` entry. A ``latest`` tag that pointed at a removed
    version moves to the greatest remaining version, any other tag pointing
    at a removed version is dropped.

    Raises InvalidUpload when no version would remain; removing a whole
    package is a separate operation.
    """
    if record is None:
        raise PackageNotFound(name)
    now = now or now_str()

    result = copy.deepcopy(record)
    versions = {
        version: entry
        for version, entry in (result.get(VERSIONS) or {}).items()
        if version in (remaining or {})
    }
    if not versions:
        raise InvalidUpload(f"Unpublishing would remove every version of {name}")
    removed = sorted(set(result.get(VERSIONS) or {}) - set(versions))

    tags = {
        tag: version
        for tag, version in (result.get(DIST_TAGS) or {}).items()
        if version in versions
    }
    if LATEST not in tags:
        tags[LATEST] = max(versions)

    time = {
        key: value
        for key, value in (result.get(TIME) or {}).items()
        if key not in removed
    }
    time[MODIFIED] = now

    result[VERSIONS] = versions
    result[DIST_TAGS] = tags
    result[TIME] = time
    logger.debug(f"Unpublished {', '.join(removed) or 'nothing'} from {name}")
    return result
