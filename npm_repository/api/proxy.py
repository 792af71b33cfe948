"""
npm registry endpoints in proxy mode: everything is read through the
caching proxy in front of the upstream registry.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from npm_repository.api.common import TARBALL_SUFFIX, base_url_for, http_error
from npm_repository.core.dependencies import get_npm_proxy, get_repository_config
from npm_repository.domain.errors import NpmRegistryError
from npm_repository.domain.models import RepositoryConfig
from npm_repository.domain.npm_utils import normalize_asset_path, normalize_package_name
from npm_repository.services.content import to_client_form
from npm_repository.services.proxy import NpmProxy

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{path:path}")
async def download(
    path: str,
    request: Request,
    proxy: NpmProxy = Depends(get_npm_proxy),
    config: RepositoryConfig = Depends(get_repository_config),
) -> Response:
    """
    Package document, or tarball when the path ends in .tgz.
    """
    try:
        if path.endswith(TARBALL_SUFFIX):
            return await _download_asset(proxy, normalize_asset_path(path))
        return await _download_package(
            proxy,
            normalize_package_name(path),
            base_url_for(request, config),
        )
    except NpmRegistryError as e:
        raise http_error(e) from e


async def _download_package(proxy: NpmProxy, name: str, base_url: str) -> Response:
    package = await proxy.get_package(name)
    if package is None:
        raise HTTPException(status_code=404, detail="Package not found")

    return JSONResponse(
        content=to_client_form(package.content, base_url),
        headers={"Last-Modified": package.meta.last_modified},
    )


async def _download_asset(proxy: NpmProxy, path: str) -> Response:
    asset = await proxy.get_asset(path)
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")

    return Response(
        content=asset.content,
        media_type=asset.meta.content_type,
        headers={"Last-Modified": asset.meta.last_modified},
    )
