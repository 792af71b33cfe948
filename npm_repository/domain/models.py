"""
Pydantic models for the npm repository.

This module defines the data models used throughout the application:
- Repository configuration and settings
- Sidecar metadata stored next to cached packages and assets
- Cached package and asset containers returned by the proxy

Package documents (packuments) are deliberately kept as plain dictionaries so
that every field an npm client sends is stored and served untouched.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


RepositoryMode = Literal["local", "proxy"]


# ---------------------------------------------------------------------------
# Repository Configuration Models
# ---------------------------------------------------------------------------


class RepositoryConfig(BaseModel):
    """
    Top-level configuration for the npm repository.

    Persisted at: <DATA_DIR>/repository.json
    """

    display_name: str = Field(
        default="Python npm repository",
        description="Human-friendly name, used as the API title.",
    )
    mode: RepositoryMode = Field(
        default="local",
        description="'local' to host published packages, 'proxy' to cache an upstream registry.",
    )
    upstream_url: str = Field(
        default="https://registry.npmjs.org",
        description="Upstream registry used in proxy mode.",
    )
    base_url: Optional[str] = Field(
        default=None,
        description="Public URL of this registry. When unset it is derived from each request.",
    )
    path_prefix: str = Field(
        default="",
        description="Path the npm routes are mounted under, e.g. 'registry' for /registry/{package}. Empty mounts them at the root.",
    )
    remote_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to every upstream request.",
    )
    user_agent: str = Field(
        default="npm-repository",
        description="User-Agent header sent to the upstream registry.",
    )
    temp_dir: Optional[str] = Field(
        default=None,
        description="Directory for temporary asset downloads. Defaults to the system temp dir.",
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Timestamp when this repository configuration was first created.",
    )


# ---------------------------------------------------------------------------
# Cache Sidecar Models
# ---------------------------------------------------------------------------


class PackageMeta(BaseModel):
    """
    Sidecar metadata of a cached package, stored at ``{name}/meta.meta``.
    """

    model_config = ConfigDict(populate_by_name=True)

    last_modified: str = Field(
        alias="last-modified",
        description="Last-Modified value reported by the upstream registry.",
    )
    last_refreshed: str = Field(
        alias="last-refreshed",
        description="When this cache entry was written.",
    )


class AssetMeta(BaseModel):
    """
    Sidecar metadata of a cached asset, stored at ``{path}.meta``.
    """

    model_config = ConfigDict(populate_by_name=True)

    last_modified: str = Field(alias="last-modified")
    content_type: str = Field(alias="content-type")


class NpmPackage(BaseModel):
    """A package document together with its cache metadata."""

    name: str
    content: Dict[str, Any]
    meta: PackageMeta


class NpmAsset(BaseModel):
    """A binary asset (usually a tarball) together with its cache metadata."""

    path: str
    content: bytes
    meta: AssetMeta
