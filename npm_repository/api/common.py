from __future__ import annotations

import json
from typing import Any, Dict

from fastapi import HTTPException, Request

from npm_repository.domain.errors import NpmRegistryError, ParseError
from npm_repository.domain.models import RepositoryConfig

TARBALL_SUFFIX = ".tgz"


def route_prefix(config: RepositoryConfig) -> str:
    """Mount point of the npm routes: "" or "/{path_prefix}"."""
    prefix = config.path_prefix.strip("/")
    return f"/{prefix}" if prefix else ""


def base_url_for(request: Request, config: RepositoryConfig) -> str:
    """
    Public URL tarball links are built from: the configured base_url (which
    already includes any path prefix), or the URL the client used to reach
    this server followed by the path prefix.
    """
    if config.base_url:
        return config.base_url.rstrip("/")
    return str(request.base_url).rstrip("/") + route_prefix(config)


async def read_json_body(request: Request) -> Dict[str, Any]:
    """Parse the request body as a JSON object."""
    raw = await request.body()
    try:
        body = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ParseError("Request body must be a JSON object")
    return body


def http_error(error: NpmRegistryError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)
