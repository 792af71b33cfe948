from pathlib import Path
from typing import Optional
import json
import logging
import os

from pydantic import ValidationError

from npm_repository.domain.models import RepositoryConfig
from npm_repository.services.proxy import NpmProxy
from npm_repository.services.registry import NpmRegistry
from npm_repository.services.remote import HttpNpmRemote
from npm_repository.storage.file_storage import FileStorage
from npm_repository.storage.storage import Storage

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "NPM_REPO_DATA_DIR"
_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _REPO_ROOT / "data"

_repository_config: Optional[RepositoryConfig] = None
_storage: Optional[Storage] = None
_registry: Optional[NpmRegistry] = None
_npm_proxy: Optional[NpmProxy] = None


def get_data_dir() -> Path:
    """
    Determine the data directory path.

    Priority:
    1. Environment variable NPM_REPO_DATA_DIR
    2. '<project root>/data'
    """
    env_path = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_path:
        d = Path(env_path).expanduser()
    else:
        d = _DEFAULT_DATA_DIR
    d.mkdir(parents=True, exist_ok=True)
    return d


def load_repository_config(data_dir: Path) -> RepositoryConfig:
    """
    Load repository.json, merging with defaults for any missing fields,
    and write it back so any new fields are persisted.
    """
    path = data_dir / "repository.json"
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            config = RepositoryConfig(**raw)
        except (ValueError, ValidationError) as e:
            # If parsing fails, fall back to defaults and overwrite file.
            logger.warning(f"Ignoring unreadable {path}: {e}")
            config = RepositoryConfig()
    else:
        config = RepositoryConfig()

    path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    return config


def get_repository_config() -> RepositoryConfig:
    global _repository_config
    if _repository_config is None:
        _repository_config = load_repository_config(get_data_dir())
    return _repository_config


def get_storage() -> Storage:
    global _storage
    if _storage is None:
        _storage = FileStorage(get_data_dir() / "storage")
    return _storage


def get_registry() -> NpmRegistry:
    global _registry
    if _registry is None:
        _registry = NpmRegistry(get_storage())
    return _registry


def get_npm_proxy() -> NpmProxy:
    global _npm_proxy
    if _npm_proxy is None:
        config = get_repository_config()
        remote = HttpNpmRemote(
            config.upstream_url,
            timeout=config.remote_timeout_seconds,
            user_agent=config.user_agent,
        )
        temp_dir = Path(config.temp_dir) if config.temp_dir else None
        _npm_proxy = NpmProxy(get_storage(), remote, temp_dir=temp_dir)
    return _npm_proxy


async def close_npm_proxy() -> None:
    global _npm_proxy
    if _npm_proxy is not None:
        await _npm_proxy.close()
        _npm_proxy = None
