from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional

from npm_repository.domain.errors import InvalidPath

META_FILE = "meta.json"
META_SIDECAR = "meta.meta"
ASSET_SIDECAR_SUFFIX = ".meta"

DIST_TAGS = "dist-tags"
LATEST = "latest"


def now_str() -> str:
    """
    Current UTC time in the ISO-8601 form npm uses for ``time`` entries,
    e.g. ``2020-05-13T16:30:30.123Z``.
    """
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def http_date_now() -> str:
    """Current time as an HTTP-date, the form `Last-Modified` headers carry."""
    return format_datetime(datetime.now(timezone.utc), usegmt=True)


def tarball_path(name: str, version: str) -> str:
    """
    Storage-relative tarball path for a package version.

    Scoped packages keep their scope in the file name as well:
    ``/@scope/pkg/-/@scope/pkg-1.0.0.tgz``.
    """
    return f"/{name}/-/{name}-{version}.tgz"


def tarball_key(name: str, version: str) -> str:
    return tarball_path(name, version).lstrip("/")


def package_of_tarball(path: str) -> Optional[str]:
    """Package name of a tarball path such as ``@scope/pkg/-/pkg-1.0.0.tgz``."""
    name, separator, _ = path.lstrip("/").partition("/-/")
    return name if separator and name else None


def meta_key(name: str) -> str:
    return f"{name}/{META_FILE}"


def meta_sidecar_key(name: str) -> str:
    return f"{name}/{META_SIDECAR}"


def asset_sidecar_key(path: str) -> str:
    return f"{path}{ASSET_SIDECAR_SUFFIX}"


def normalize_package_name(raw: str) -> str:
    """
    Turn a request path segment into a package name.

    npm clients send scoped names either as ``@scope/pkg`` or with the slash
    escaped (``@scope%2fpkg``); both map to ``@scope/pkg``.
    """
    name = raw.strip("/")
    if name.startswith("@"):
        name = name.replace("%2f", "/").replace("%2F", "/")
    return _checked(name, "package name")


def normalize_asset_path(raw: str) -> str:
    """Request path of an asset, without the leading slash."""
    return _checked(raw.lstrip("/"), "asset path")


def _checked(value: str, what: str) -> str:
    if not value or any(part in ("", ".", "..") for part in value.split("/")):
        raise InvalidPath(f"Invalid {what}: {value!r}")
    return value


def quote_package_name(name: str) -> str:
    """Escape the scope separator the way the npm CLI does in request URLs."""
    if name.startswith("@"):
        return name.replace("/", "%2f")
    return name


def first_header(headers, *names: str) -> Optional[str]:
    """Return the first non-empty header value among ``names``."""
    for header in names:
        value = headers.get(header)
        if value:
            return value
    return None
