from __future__ import annotations

import asyncio
import base64
import copy
from dataclasses import replace
from pathlib import Path
import sys
from typing import Any, Callable


import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
# This avoids ModuleNotFoundError for imports like `import persistence...` under pytest import modes
# that don't automatically prepend the cwd/rootdir to sys.path.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from persistence.interfaces import ReadResult, ReadStatus  # noqa: E402
from settings import Settings, reset_settings_cache  # noqa: E402

COSMOS_KEY = base64.b64encode(b"cosmos-master-key-for-tests").decode("ascii")
STORAGE_KEY = base64.b64encode(b"storage-account-key-for-tests").decode("ascii")


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    base = Settings(
        cosmos_endpoint="https://example-db.documents.azure.com:443/",
        cosmos_key=COSMOS_KEY,
        cosmos_database="sindhi-db",
        cosmos_container="kv-store",
        storage_account="examplestore",
        storage_key=STORAGE_KEY,
        storage_container="images",
        runtime_config_path="/nonexistent/config.json",
        jwt_secret="test-secret",
        jwt_alg="HS256",
        admin_session_ttl=3600,
        max_upload_mb=25,
        debug_log_requests=False,
    )

    def _make(**overrides: Any) -> Settings:
        return replace(base, **overrides)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """
    Strip store configuration from the environment and point the runtime config
    at a temp file that does not exist yet.
    """
    for name in (
        "COSMOS_ENDPOINT",
        "COSMOS_KEY",
        "COSMOS_DATABASE",
        "COSMOS_CONTAINER",
        "STORAGE_ACCOUNT",
        "STORAGE_KEY",
        "STORAGE_CONTAINER",
    ):
        monkeypatch.delenv(name, raising=False)
    config_path = tmp_path / "config.json"
    monkeypatch.setenv("RUNTIME_CONFIG_PATH", str(config_path))
    reset_settings_cache()
    yield config_path
    reset_settings_cache()


class FakeDocumentStore:
    """In-memory KeyValueDocumentStore with failure injection."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.get_calls: list[str] = []
        self.set_calls: list[tuple[str, Any]] = []
        self.set_failures = 0
        self.set_raises = False
        self.fail_reads = False
        self.set_gate: asyncio.Event | None = None

    async def fetch(self, key: str) -> ReadResult:
        self.get_calls.append(key)
        await asyncio.sleep(0)
        if self.fail_reads:
            return ReadResult(ReadStatus.TRANSPORT_ERROR, error="simulated")
        if key not in self.data:
            return ReadResult(ReadStatus.NOT_FOUND)
        return ReadResult(ReadStatus.FOUND, value=copy.deepcopy(self.data[key]))

    async def get(self, key: str) -> Any | None:
        result = await self.fetch(key)
        return result.value if result.found else None

    async def set(self, key: str, value: Any) -> bool:
        self.set_calls.append((key, copy.deepcopy(value)))
        if self.set_gate is not None:
            await self.set_gate.wait()
        if self.set_raises:
            raise RuntimeError("simulated transport failure")
        if self.set_failures > 0:
            self.set_failures -= 1
            return False
        self.data[key] = copy.deepcopy(value)
        return True

    async def delete(self, key: str) -> bool:
        self.data.pop(key, None)
        return True

    async def list_keys(self) -> list[str]:
        return list(self.data)


class FakeBlobStore:
    def __init__(self) -> None:
        self.uploads: list[dict[str, Any]] = []
        self.raise_on_upload: Exception | None = None

    async def upload(
        self,
        data: bytes,
        filename: str,
        *,
        content_type: str | None = None,
        folder: str | None = None,
    ) -> str:
        if self.raise_on_upload is not None:
            raise self.raise_on_upload
        self.uploads.append(
            {"size": len(data), "filename": filename, "content_type": content_type, "folder": folder}
        )
        prefix = f"{folder}/" if folder else ""
        return f"https://examplestore.blob.core.windows.net/images/{prefix}{filename}"


@pytest.fixture
def fake_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def fake_blobs() -> FakeBlobStore:
    return FakeBlobStore()


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(make_settings, fake_store, fake_blobs):
    """
    Build a TestClient around create_app() with in-memory stores.
    Persistence retries are disabled so failing writes resolve immediately.
    """
    from fastapi.testclient import TestClient

    import app as app_module
    from persistence.kv_cell import RetryPolicy

    clients = []

    def _make(**overrides: Any) -> TestClient:
        application = app_module.create_app(
            make_settings(**overrides),
            documents=fake_store,
            blobs=fake_blobs,
            retry=RetryPolicy(retries=0, delay=0),
        )
        client = TestClient(application)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def admin_client(client):
    r = client.post("/admin/login", data={"username": "admin", "password": "admin123"})
    assert r.status_code == 200
    return client
