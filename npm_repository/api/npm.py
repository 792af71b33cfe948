"""
npm registry endpoints for packages hosted on this server (local mode).
"""
from __future__ import annotations

import logging
import re

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from npm_repository.api.common import (
    TARBALL_SUFFIX,
    base_url_for,
    http_error,
    read_json_body,
)
from npm_repository.core.dependencies import get_registry, get_repository_config
from npm_repository.domain.errors import NpmRegistryError
from npm_repository.domain.models import RepositoryConfig
from npm_repository.domain.npm_utils import (
    first_header,
    normalize_asset_path,
    normalize_package_name,
)
from npm_repository.services.registry import NpmRegistry

logger = logging.getLogger(__name__)
router = APIRouter()

# npm >= 7 names the command in `npm-command`; older clients put it in `referer`.
NPM_COMMAND_HEADERS = ("npm-command", "referer")
DEPRECATE_COMMAND = re.compile(r"^deprecate\b")
UNPUBLISH_COMMAND = re.compile(r"^unpublish\b")


def _strip_revision(path: str) -> str:
    """Drop the `/-rev/{rev}` suffix npm appends to unpublish requests."""
    return path.split("/-rev/", 1)[0]


# ---------------------------------------------------------------------------
# 1. GET /npm (client liveness check)
# ---------------------------------------------------------------------------

@router.get("/npm")
async def ping() -> dict:
    return {}


# ---------------------------------------------------------------------------
# 2. Dist-tags: GET/PUT/DELETE /-/package/{name}/dist-tags[/{tag}]
# ---------------------------------------------------------------------------

@router.get("/-/package/{name:path}/dist-tags")
async def get_dist_tags(
    name: str,
    registry: NpmRegistry = Depends(get_registry),
) -> dict:
    try:
        return await registry.get_dist_tags(normalize_package_name(name))
    except NpmRegistryError as e:
        raise http_error(e) from e


@router.put("/-/package/{name:path}/dist-tags/{tag}")
async def add_dist_tag(
    name: str,
    tag: str,
    request: Request,
    registry: NpmRegistry = Depends(get_registry),
) -> dict:
    """
    `npm dist-tag add`. The body is the version as a JSON string.
    """
    version = (await request.body()).decode("utf-8", errors="replace").strip().replace('"', "")
    if not version:
        raise HTTPException(status_code=400, detail="Version is required")
    try:
        return await registry.add_dist_tag(normalize_package_name(name), tag, version)
    except NpmRegistryError as e:
        raise http_error(e) from e


@router.delete("/-/package/{name:path}/dist-tags/{tag}")
async def delete_dist_tag(
    name: str,
    tag: str,
    registry: NpmRegistry = Depends(get_registry),
) -> dict:
    try:
        return await registry.delete_dist_tag(normalize_package_name(name), tag)
    except NpmRegistryError as e:
        raise http_error(e) from e


# ---------------------------------------------------------------------------
# 3. GET /{name} and GET /{name}/-/{file}.tgz
# ---------------------------------------------------------------------------

@router.get("/{path:path}")
async def download(
    path: str,
    request: Request,
    registry: NpmRegistry = Depends(get_registry),
    config: RepositoryConfig = Depends(get_repository_config),
) -> Response:
    """
    Package document, or tarball when the path ends in .tgz.
    """
    try:
        if path.endswith(TARBALL_SUFFIX):
            data = await registry.get_tarball(normalize_asset_path(path))
            return Response(content=data, media_type="application/octet-stream")

        document = await registry.get_package(
            normalize_package_name(path),
            base_url_for(request, config),
        )
    except NpmRegistryError as e:
        raise http_error(e) from e

    return JSONResponse(status_code=status.HTTP_200_OK, content=document)


# ---------------------------------------------------------------------------
# 4. PUT /{name}: publish, deprecate or unpublish; PUT /{name}/-/{file}.tgz
# ---------------------------------------------------------------------------

@router.put("/{name:path}")
async def put_package(
    name: str,
    request: Request,
    registry: NpmRegistry = Depends(get_registry),
) -> dict:
    """
    `npm publish`, `npm deprecate` and `npm unpublish pkg@version` all PUT the
    package document; the command header tells them apart. A PUT of a
    `.tgz` path carries the raw tarball (`curl -T`).
    """
    path = _strip_revision(name)
    if path.endswith(TARBALL_SUFFIX):
        try:
            record = await registry.publish_tarball(normalize_asset_path(path), await request.body())
        except NpmRegistryError as e:
            logger.warning(f"Rejected tarball upload to {path}: {e.message}")
            raise http_error(e) from e
        return {"ok": True, "id": record.get("name")}

    command = first_header(request.headers, *NPM_COMMAND_HEADERS) or "publish"

    try:
        package_name = normalize_package_name(path)
        body = await read_json_body(request)
        if DEPRECATE_COMMAND.match(command):
            await registry.deprecate(package_name, body)
        elif UNPUBLISH_COMMAND.match(command):
            await registry.unpublish(package_name, body)
        else:
            await registry.publish(package_name, body)
    except NpmRegistryError as e:
        logger.warning(f"Rejected {command} of {name}: {e.message}")
        raise http_error(e) from e

    return {"ok": True, "id": package_name}


# ---------------------------------------------------------------------------
# 5. DELETE /{name}/-rev/{rev} and DELETE /{name}/-/{file}.tgz/-rev/{rev}
# ---------------------------------------------------------------------------

@router.delete("/{name:path}")
async def unpublish(
    name: str,
    registry: NpmRegistry = Depends(get_registry),
) -> dict:
    """
    `npm unpublish pkg --force` removes the whole package; after a
    single-version unpublish npm also deletes the dropped tarball.
    """
    path = _strip_revision(name)
    try:
        if path.endswith(TARBALL_SUFFIX):
            await registry.delete_tarball(normalize_asset_path(path))
        else:
            await registry.unpublish_all(normalize_package_name(path))
    except NpmRegistryError as e:
        logger.warning(f"Rejected unpublish of {name}: {e.message}")
        raise http_error(e) from e

    return {"ok": True}
