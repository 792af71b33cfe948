"""
Custom exceptions for the npm repository.

All exceptions inherit from NpmRegistryError, which carries the HTTP status
the routers report to clients.
"""

from typing import Optional


class NpmRegistryError(Exception):
    """Base exception for all registry errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for API response."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Client errors: malformed archives and uploads
# ---------------------------------------------------------------------------


class DecodeError(NpmRegistryError):
    """The archive could not be decoded or decompressed."""

    status_code = 400


class MemberNotFound(NpmRegistryError):
    """The archive does not contain the requested file."""

    status_code = 400

    def __init__(self, member: str):
        super().__init__(f"'{member}' file was not found")
        self.member = member


class ParseError(NpmRegistryError):
    """A JSON document (package.json or request body) is malformed."""

    status_code = 400


class InvalidUpload(NpmRegistryError):
    """A publish request is inconsistent with the tarballs it carries."""

    status_code = 400


class InvalidPath(NpmRegistryError, ValueError):
    """A package name, asset path or storage key that cannot be mapped to storage."""

    status_code = 400


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(NpmRegistryError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class PackageNotFound(NotFoundError):
    def __init__(self, name: str):
        super().__init__("Package", name)


class TagNotFound(NotFoundError):
    def __init__(self, tag: str):
        super().__init__("Dist-tag", tag)


class AssetNotFound(NotFoundError):
    def __init__(self, path: str):
        super().__init__("Asset", path)


class StorageKeyNotFound(NotFoundError):
    def __init__(self, key: str):
        super().__init__("Storage key", key)


# ---------------------------------------------------------------------------
# Upstream contract violations
# ---------------------------------------------------------------------------


class MissingHeader(NpmRegistryError):
    """The upstream registry omitted a header the proxy relies on."""

    status_code = 502

    def __init__(self, header: str):
        super().__init__(f"Failed to get '{header}'")
        self.header = header
