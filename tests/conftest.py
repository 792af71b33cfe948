"""
Shared fixtures: storages, tarball builders and publish bodies.
"""

import base64
import io
import json
import tarfile
from typing import Dict, Optional

import pytest

from npm_repository.storage.file_storage import FileStorage
from npm_repository.storage.memory_storage import InMemoryStorage


def build_tgz(files: Dict[str, bytes]) -> bytes:
    """Build a gzip-compressed tar archive holding ``files`` in order."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def package_tgz(name: str, version: str, extra: Optional[dict] = None) -> bytes:
    descriptor = {"name": name, "version": version}
    descriptor.update(extra or {})
    return build_tgz({
        "package/index.js": b"module.exports = 42;\n",
        "package/package.json": json.dumps(descriptor).encode("utf-8"),
    })


def publish_body(name: str, *versions: str, dist_tags: Optional[dict] = None) -> dict:
    """Body of `npm publish` for the given versions, tarballs included."""
    body = {
        "_id": name,
        "name": name,
        "description": "test package",
        "versions": {},
        "_attachments": {},
        "readme": f"# {name}",
    }
    short_name = name.split("/")[-1]
    for version in versions:
        body["versions"][version] = {
            "name": name,
            "version": version,
            "dist": {"tarball": f"http://localhost:4873/{name}/-/{short_name}-{version}.tgz"},
        }
        body["_attachments"][f"{name}-{version}.tgz"] = {
            "content_type": "application/octet-stream",
            "data": base64.b64encode(package_tgz(name, version)).decode("ascii"),
        }
    if dist_tags is not None:
        body["dist-tags"] = dist_tags
    return body


@pytest.fixture
def memory_storage():
    return InMemoryStorage()


@pytest.fixture
def file_storage(tmp_path):
    return FileStorage(tmp_path / "storage")
