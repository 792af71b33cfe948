"""
Client for the upstream npm registry used in proxy mode.

Every call is best-effort: a non-200 status, a timeout or a transport error
is logged and reported as ``None``. Upstream outages must never fail the
request that triggered the call.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import aiofiles
import httpx

from npm_repository.domain.errors import MissingHeader
from npm_repository.domain.models import AssetMeta, NpmPackage, PackageMeta
from npm_repository.domain.npm_utils import http_date_now, now_str, quote_package_name

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_URL = "https://registry.npmjs.org"


def _last_modified_or_now(response: httpx.Response) -> str:
    return response.headers.get("last-modified") or http_date_now()


class HttpNpmRemote:
    """
    Upstream registry client.

    Owns a single ``httpx.AsyncClient`` (one keep-alive connection pool per
    instance); call ``close()`` when done.
    """

    def __init__(
        self,
        upstream_url: str = DEFAULT_UPSTREAM_URL,
        timeout: float = 30.0,
        user_agent: str = "npm-repository",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.upstream_url = upstream_url.rstrip("/")
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": user_agent},
            transport=transport,
        )
        self._closed = False

    async def load_package(self, name: str) -> Optional[NpmPackage]:
        """
        Fetch the package document from upstream.

        The content is returned exactly as the upstream sent it; tarball URLs
        still point at the upstream host.
        """
        url = f"{self.upstream_url}/{quote_package_name(name)}"
        logger.debug(f"Loading package {name} from {url}")

        try:
            response = await self._client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            logger.error(f"Error occurred when loading package {name}: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"Could not load package {name}: status code {response.status_code}")
            return None

        try:
            content = response.json()
        except ValueError as e:
            logger.error(f"Upstream returned invalid JSON for package {name}: {e}")
            return None
        if not isinstance(content, dict):
            logger.error(f"Upstream returned a non-object document for package {name}")
            return None

        return NpmPackage(
            name=name,
            content=content,
            meta=PackageMeta(
                last_modified=_last_modified_or_now(response),
                last_refreshed=now_str(),
            ),
        )

    async def load_asset(self, path: str, sink: Path) -> Optional[AssetMeta]:
        """
        Download an asset into ``sink``, chunk by chunk.

        Returns the asset metadata on success. The sink may hold partial data
        when None is returned; removing it is the caller's job.
        """
        url = f"{self.upstream_url}/{path.lstrip('/')}"
        logger.debug(f"Loading asset {path} from {url}")

        try:
            async with self._client.stream("GET", url) as response:
                if response.status_code != 200:
                    logger.debug(f"Could not load asset {path}: status code {response.status_code}")
                    return None

                content_type = response.headers.get("content-type")
                if not content_type:
                    raise MissingHeader("Content-Type")

                async with aiofiles.open(sink, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        await f.write(chunk)

                return AssetMeta(
                    last_modified=_last_modified_or_now(response),
                    content_type=content_type,
                )
        except MissingHeader as e:
            logger.error(f"Upstream response for asset {path} is unusable: {e}")
            return None
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"Error occurred when loading asset {path}: {e}")
            return None

    async def close(self) -> None:
        """Release the connection pool. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()
