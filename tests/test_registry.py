"""Tests for the hosted registry service."""

import base64
import hashlib
import json

import pytest

from conftest import build_tgz, package_tgz, publish_body
from npm_repository.domain.errors import (
    AssetNotFound,
    DecodeError,
    InvalidUpload,
    MemberNotFound,
    PackageNotFound,
    ParseError,
    TagNotFound,
)
from npm_repository.services.registry import NpmRegistry

BASE_URL = "http://registry.test"


@pytest.fixture
def registry(memory_storage):
    return NpmRegistry(memory_storage)


@pytest.mark.asyncio
async def test_publish_and_get_package(registry, memory_storage):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0"))

    document = await registry.get_package("left-pad", BASE_URL)

    assert document["dist-tags"] == {"latest": "1.0.0"}
    assert document["versions"]["1.0.0"]["dist"]["tarball"] == (
        f"{BASE_URL}/left-pad/-/left-pad-1.0.0.tgz"
    )
    assert document["readme"] == "# left-pad"
    assert "_attachments" not in document

    stored = json.loads(await memory_storage.get("left-pad/meta.json"))
    assert stored["versions"]["1.0.0"]["dist"]["tarball"] == "/left-pad/-/left-pad-1.0.0.tgz"


@pytest.mark.asyncio
async def test_published_tarball_is_served(registry):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0"))

    data = await registry.get_tarball("/left-pad/-/left-pad-1.0.0.tgz")

    assert data == package_tgz("left-pad", "1.0.0")


@pytest.mark.asyncio
async def test_publish_scoped_package(registry, memory_storage):
    await registry.publish("@scope/pkg", publish_body("@scope/pkg", "0.1.0"))

    assert await memory_storage.exists("@scope/pkg/meta.json")
    assert await memory_storage.exists("@scope/pkg/-/@scope/pkg-0.1.0.tgz")


@pytest.mark.asyncio
async def test_second_publish_advances_latest(registry):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0"))
    await registry.publish("left-pad", publish_body("left-pad", "1.0.1"))

    document = await registry.get_package("left-pad", BASE_URL)

    assert document["dist-tags"] == {"latest": "1.0.1"}
    assert set(document["versions"]) == {"1.0.0", "1.0.1"}
    assert {"created", "modified", "1.0.0", "1.0.1"} <= set(document["time"])


@pytest.mark.asyncio
async def test_publish_name_mismatch(registry, memory_storage):
    with pytest.raises(InvalidUpload):
        await registry.publish("right-pad", publish_body("left-pad", "1.0.0"))
    assert memory_storage.keys() == []


@pytest.mark.asyncio
async def test_publish_tarball_for_other_package(registry):
    body = publish_body("left-pad", "1.0.0")
    body["name"] = "right-pad"
    body["_id"] = "right-pad"

    with pytest.raises(InvalidUpload):
        await registry.publish("right-pad", body)


@pytest.mark.asyncio
async def test_publish_tarball_version_mismatch(registry):
    body = publish_body("left-pad", "1.0.0")
    body["versions"] = {"2.0.0": body["versions"]["1.0.0"]}

    with pytest.raises(InvalidUpload):
        await registry.publish("left-pad", body)


@pytest.mark.asyncio
async def test_publish_missing_tarball_for_version(registry):
    body = publish_body("left-pad", "1.0.0", "1.1.0")
    del body["_attachments"]["left-pad-1.1.0.tgz"]

    with pytest.raises(InvalidUpload):
        await registry.publish("left-pad", body)


@pytest.mark.asyncio
async def test_publish_without_attachments(registry):
    body = publish_body("left-pad", "1.0.0")
    body["_attachments"] = {}

    with pytest.raises(InvalidUpload):
        await registry.publish("left-pad", body)


@pytest.mark.asyncio
async def test_publish_corrupt_tarball(registry):
    body = publish_body("left-pad", "1.0.0")
    body["_attachments"]["left-pad-1.0.0.tgz"]["data"] = "%%%"

    with pytest.raises(DecodeError):
        await registry.publish("left-pad", body)


@pytest.mark.asyncio
async def test_publish_tarball_without_package_json(registry):
    body = publish_body("left-pad", "1.0.0")
    body["_attachments"]["left-pad-1.0.0.tgz"]["data"] = base64.b64encode(
        build_tgz({"package/index.js": b""})
    ).decode("ascii")

    with pytest.raises(MemberNotFound):
        await registry.publish("left-pad", body)


@pytest.mark.asyncio
async def test_get_missing_package(registry):
    with pytest.raises(PackageNotFound):
        await registry.get_package("left-pad", BASE_URL)


@pytest.mark.asyncio
async def test_get_missing_tarball(registry):
    with pytest.raises(AssetNotFound):
        await registry.get_tarball("left-pad/-/left-pad-1.0.0.tgz")


@pytest.mark.asyncio
async def test_corrupt_stored_document(registry, memory_storage):
    await memory_storage.put("left-pad/meta.json", b"{broken")

    with pytest.raises(ParseError):
        await registry.get_package("left-pad", BASE_URL)


@pytest.mark.asyncio
async def test_dist_tags(registry):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0", "2.0.0-beta.1", dist_tags={"latest": "1.0.0"}))

    tags = await registry.add_dist_tag("left-pad", "beta", "2.0.0-beta.1")
    assert tags == {"latest": "1.0.0", "beta": "2.0.0-beta.1"}
    assert await registry.get_dist_tags("left-pad") == tags

    tags = await registry.delete_dist_tag("left-pad", "beta")
    assert tags == {"latest": "1.0.0"}

    with pytest.raises(TagNotFound):
        await registry.delete_dist_tag("left-pad", "beta")


@pytest.mark.asyncio
async def test_dist_tags_of_missing_package(registry):
    with pytest.raises(PackageNotFound):
        await registry.get_dist_tags("left-pad")
    with pytest.raises(PackageNotFound):
        await registry.add_dist_tag("left-pad", "beta", "1.0.0")
    with pytest.raises(PackageNotFound):
        await registry.delete_dist_tag("left-pad", "beta")


@pytest.mark.asyncio
async def test_deprecate(registry):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0", "1.1.0"))
    document = await registry.get_package("left-pad", BASE_URL)
    document["versions"]["1.0.0"]["deprecated"] = "use 1.1.0"

    await registry.deprecate("left-pad", document)

    updated = await registry.get_package("left-pad", BASE_URL)
    assert updated["versions"]["1.0.0"]["deprecated"] == "use 1.1.0"
    assert "deprecated" not in updated["versions"]["1.1.0"]
    # The stored document keeps storage-form tarball paths.
    assert updated["versions"]["1.0.0"]["dist"]["tarball"].startswith(BASE_URL)


@pytest.mark.asyncio
async def test_deprecate_missing_package(registry):
    with pytest.raises(PackageNotFound):
        await registry.deprecate("left-pad", {"versions": {}})


@pytest.mark.asyncio
async def test_unpublish_single_version(registry, memory_storage):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0"))
    await registry.publish("left-pad", publish_body("left-pad", "1.1.0"))
    document = await registry.get_package("left-pad", BASE_URL)
    del document["versions"]["1.1.0"]

    await registry.unpublish("left-pad", document)

    updated = await registry.get_package("left-pad", BASE_URL)
    assert set(updated["versions"]) == {"1.0.0"}
    assert updated["dist-tags"] == {"latest": "1.0.0"}
    assert "1.1.0" not in updated["time"]
    assert not await memory_storage.exists("left-pad/-/left-pad-1.1.0.tgz")
    assert await memory_storage.exists("left-pad/-/left-pad-1.0.0.tgz")


@pytest.mark.asyncio
async def test_unpublish_missing_package(registry):
    with pytest.raises(PackageNotFound):
        await registry.unpublish("left-pad", {"versions": {"1.0.0": {}}})


@pytest.mark.asyncio
async def test_unpublish_all(registry, memory_storage):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0", "1.1.0"))

    await registry.unpublish_all("left-pad")

    assert memory_storage.keys() == []
    with pytest.raises(PackageNotFound):
        await registry.get_package("left-pad", BASE_URL)
    with pytest.raises(PackageNotFound):
        await registry.unpublish_all("left-pad")


@pytest.mark.asyncio
async def test_delete_tarball_of_unpublished_version(registry, memory_storage):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0"))
    await memory_storage.put("left-pad/-/left-pad-0.9.0.tgz", b"orphan")

    await registry.delete_tarball("/left-pad/-/left-pad-0.9.0.tgz")
    await registry.delete_tarball("/left-pad/-/left-pad-0.9.0.tgz")

    assert not await memory_storage.exists("left-pad/-/left-pad-0.9.0.tgz")


@pytest.mark.asyncio
async def test_delete_tarball_still_referenced(registry, memory_storage):
    await registry.publish("left-pad", publish_body("left-pad", "1.0.0"))

    with pytest.raises(InvalidUpload):
        await registry.delete_tarball("left-pad/-/left-pad-1.0.0.tgz")
    assert await memory_storage.exists("left-pad/-/left-pad-1.0.0.tgz")


@pytest.mark.asyncio
async def test_publish_raw_tarball(registry, memory_storage):
    data = package_tgz("left-pad", "1.2.0", {"description": "pads left"})

    await registry.publish_tarball("left-pad/-/left-pad-1.2.0.tgz", data)

    document = await registry.get_package("left-pad", BASE_URL)
    entry = document["versions"]["1.2.0"]
    assert document["dist-tags"] == {"latest": "1.2.0"}
    assert document["description"] == "pads left"
    assert entry["_id"] == "left-pad@1.2.0"
    assert entry["dist"]["tarball"] == f"{BASE_URL}/left-pad/-/left-pad-1.2.0.tgz"
    assert entry["dist"]["shasum"] == hashlib.sha1(data).hexdigest()
    assert entry["dist"]["integrity"].startswith("sha512-")
    assert await memory_storage.get("left-pad/-/left-pad-1.2.0.tgz") == data


@pytest.mark.asyncio
async def test_publish_raw_tarball_to_other_package_path(registry, memory_storage):
    with pytest.raises(InvalidUpload):
        await registry.publish_tarball("right-pad/-/right-pad-1.0.0.tgz", package_tgz("left-pad", "1.0.0"))
    assert memory_storage.keys() == []


@pytest.mark.asyncio
async def test_publish_raw_tarball_that_is_not_an_archive(registry):
    with pytest.raises(DecodeError):
        await registry.publish_tarball("left-pad/-/left-pad-1.0.0.tgz", b"not a tarball")


@pytest.mark.asyncio
@pytest.mark.parametrize("version", ["1.0.0//x", "..", "", "1.0.0/evil"])
async def test_publish_invalid_version(registry, memory_storage, version):
    body = publish_body("left-pad", "1.0.0")
    body["versions"] = {version: body["versions"]["1.0.0"]}

    with pytest.raises(InvalidUpload):
        await registry.publish("left-pad", body)
    assert memory_storage.keys() == []


@pytest.mark.asyncio
async def test_publish_raw_tarball_with_invalid_version(registry):
    with pytest.raises(InvalidUpload):
        await registry.publish_tarball("left-pad/-/x.tgz", package_tgz("left-pad", "1.0.0/../../x"))
