"""
Tarball URL rewriting for package documents.

Package documents are stored with host-agnostic tarball paths
(``/{name}/-/{name}-{version}.tgz``) and are turned into absolute URLs only
when they are served, so the links always point back at the host the client
used to reach this registry.
"""
from __future__ import annotations

import copy
from typing import Any, Callable, Dict

from npm_repository.domain.npm_utils import tarball_path


def _rewrite_tarballs(
    document: Dict[str, Any],
    rewrite: Callable[[str, str], str],
) -> Dict[str, Any]:
    result = copy.deepcopy(document)
    versions = result.get("versions")
    if not isinstance(versions, dict):
        return result

    for version, entry in versions.items():
        if not isinstance(entry, dict):
            continue
        dist = entry.get("dist")
        if isinstance(dist, dict) and isinstance(dist.get("tarball"), str):
            dist["tarball"] = rewrite(version, dist["tarball"])
    return result


def to_storage_form(raw: Dict[str, Any], package_name: str) -> Dict[str, Any]:
    """
    Replace every ``versions[*].dist.tarball`` with the storage-relative
    path of that version, dropping whatever host the URL pointed at.
    """
    return _rewrite_tarballs(raw, lambda version, _: tarball_path(package_name, version))


def to_client_form(stored: Dict[str, Any], base_url: str) -> Dict[str, Any]:
    """
    Prefix every storage-relative tarball path with ``base_url``.
    Tarballs that already hold an absolute URL are left as they are.
    """
    base = base_url.rstrip("/")

    def absolute(_: str, tarball: str) -> str:
        if tarball.startswith("/"):
            return f"{base}{tarball}"
        return tarball

    return _rewrite_tarballs(stored, absolute)
