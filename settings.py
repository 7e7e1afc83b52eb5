from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent

DEFAULT_COSMOS_DATABASE = "sindhi-db"
DEFAULT_COSMOS_CONTAINER = "kv-store"
DEFAULT_STORAGE_CONTAINER = "images"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("SETTINGS: %s=%r is not an integer, using %d", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    # Document store
    cosmos_endpoint: str
    cosmos_key: str
    cosmos_database: str
    cosmos_container: str

    # Blob store
    storage_account: str
    storage_key: str
    storage_container: str

    # Where the runtime JSON config is looked up (path or http(s) URL)
    runtime_config_path: str

    # Admin session
    jwt_secret: str
    jwt_alg: str
    admin_session_ttl: int

    # Uploads
    max_upload_mb: int

    # Debug
    debug_log_requests: bool

    @property
    def cosmos_configured(self) -> bool:
        return bool(self.cosmos_endpoint and self.cosmos_key)

    @property
    def storage_configured(self) -> bool:
        return bool(self.storage_account and self.storage_key)


def _settings_from_env() -> Settings:
    return Settings(
        cosmos_endpoint=os.getenv("COSMOS_ENDPOINT", "").strip(),
        cosmos_key=os.getenv("COSMOS_KEY", "").strip(),
        cosmos_database=os.getenv("COSMOS_DATABASE") or DEFAULT_COSMOS_DATABASE,
        cosmos_container=os.getenv("COSMOS_CONTAINER") or DEFAULT_COSMOS_CONTAINER,
        storage_account=os.getenv("STORAGE_ACCOUNT", "").strip(),
        storage_key=os.getenv("STORAGE_KEY", "").strip(),
        storage_container=os.getenv("STORAGE_CONTAINER") or DEFAULT_STORAGE_CONTAINER,
        runtime_config_path=os.getenv("RUNTIME_CONFIG_PATH") or str(PROJECT_ROOT / "config.json"),
        # NOTE: default is insecure; set JWT_SECRET in production
        jwt_secret=os.getenv("JWT_SECRET", "dev-only-super-secret"),
        jwt_alg=os.getenv("JWT_ALG", "HS256"),
        admin_session_ttl=_env_int("ADMIN_SESSION_TTL", 8 * 60 * 60),
        max_upload_mb=_env_int("MAX_UPLOAD_MB", 25),
        debug_log_requests=_env_bool("DEBUG_LOG_REQUESTS", False),
    )


def read_runtime_config(location: str) -> dict[str, Any] | None:
    """
    Read the runtime JSON config from a file path or an http(s) URL.

    Returns None for missing files, failed fetches, or invalid JSON.
    """
    try:
        if location.startswith(("http://", "https://")):
            response = httpx.get(location, timeout=5.0)
            if response.status_code != 200:
                return None
            raw = response.text
        else:
            path = Path(location)
            if not path.exists():
                return None
            raw = path.read_text(encoding="utf-8")
        if not raw.strip():
            return None
        doc = json.loads(raw)
    except (OSError, ValueError, httpx.HTTPError) as e:
        logger.debug("SETTINGS: runtime config %s not usable: %r", location, e)
        return None
    return doc if isinstance(doc, dict) else None


def _apply_runtime_config(base: Settings, doc: dict[str, Any]) -> Settings:
    def _str(name: str, fallback: str) -> str:
        value = doc.get(name)
        return value.strip() if isinstance(value, str) and value.strip() else fallback

    return replace(
        base,
        cosmos_endpoint=_str("cosmosEndpoint", ""),
        cosmos_key=_str("cosmosKey", ""),
        cosmos_database=_str("cosmosDatabase", DEFAULT_COSMOS_DATABASE),
        cosmos_container=_str("cosmosContainer", DEFAULT_COSMOS_CONTAINER),
        storage_account=_str("storageAccount", base.storage_account),
        storage_key=_str("storageKey", base.storage_key),
        storage_container=_str("storageContainer", base.storage_container),
    )


def resolve_settings() -> Settings:
    """
    Resolution order:
      1. environment, when both COSMOS_ENDPOINT and COSMOS_KEY are present
      2. runtime JSON config, when it names a cosmosEndpoint
      3. environment again, even if incomplete
    """
    env = _settings_from_env()
    if env.cosmos_configured:
        return env

    doc = read_runtime_config(env.runtime_config_path)
    if doc is not None:
        runtime = _apply_runtime_config(env, doc)
        if runtime.cosmos_endpoint:
            logger.info("SETTINGS: using runtime config from %s", env.runtime_config_path)
            return runtime

    logger.warning("SETTINGS: document store endpoint/key not configured")
    return env


_CACHED_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _CACHED_SETTINGS
    if _CACHED_SETTINGS is None:
        _CACHED_SETTINGS = resolve_settings()
    return _CACHED_SETTINGS


def reset_settings_cache() -> None:
    """Forget the resolved settings (tests only; no runtime reconfiguration)."""
    global _CACHED_SETTINGS
    _CACHED_SETTINGS = None
