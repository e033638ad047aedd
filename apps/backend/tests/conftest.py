"""Shared test fixtures and configuration."""

import io
import os
import tempfile
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

# app.main reads settings at import time
_TMP = tempfile.mkdtemp(prefix="nano-banana-tests-")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TMP, "uploads"))
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("APP_ENV", "testing")

from app.config import Settings  # noqa: E402
from app.services.nano_banana import ProviderPending  # noqa: E402
from app.services.session_store import SessionStore  # noqa: E402
from app.services.task_store import InMemoryTaskStore  # noqa: E402
from app.services.tasks import TaskPoller, TaskSubmitter  # noqa: E402
from app.services.uploads import ImageStorage  # noqa: E402


class FakeProvider:
    """Stands in for NanoBananaClient; statuses are scripted per task id."""

    def __init__(self) -> None:
        self.created: List[Dict[str, Any]] = []
        self.statuses: Dict[str, List[Any]] = {}
        self.status_calls: List[str] = []
        self.next_ids: List[str] = []
        self.create_error: Optional[Exception] = None

    def create_task(self, model, prompt, image_size, image_urls=None) -> str:
        if self.create_error is not None:
            raise self.create_error
        task_id = self.next_ids.pop(0) if self.next_ids else f"task-{len(self.created) + 1}"
        self.created.append({
            "task_id": task_id,
            "model": model,
            "prompt": prompt,
            "image_size": image_size,
            "image_urls": image_urls,
        })
        return task_id

    def script(self, task_id: str, *statuses: Any) -> None:
        self.statuses[task_id] = list(statuses)

    def get_task_status(self, task_id: str):
        self.status_calls.append(task_id)
        queue = self.statuses.get(task_id) or [ProviderPending("waiting")]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item


def make_image_bytes(fmt: str = "PNG", size=(8, 6)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        api_key="test-key",
        provider_base_url="https://provider.test/api/v1",
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="https://files.test",
        database_path=":memory:",
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def task_store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def sessions():
    store = SessionStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def session_id(sessions) -> str:
    return sessions.create_session()["session_id"]


@pytest.fixture
def storage(settings) -> ImageStorage:
    return ImageStorage(settings.upload_dir, settings.public_base_url)


@pytest.fixture
def submitter(provider, task_store, sessions, settings) -> TaskSubmitter:
    return TaskSubmitter(provider, task_store, sessions, settings)


@pytest.fixture
def poller(provider, task_store, sessions) -> TaskPoller:
    return TaskPoller(provider, task_store, sessions)


@pytest.fixture
def api(provider, task_store, sessions, storage):
    """TestClient with every service dependency replaced by a test instance."""
    from fastapi.testclient import TestClient

    from app import dependencies
    from app.main import app

    app.dependency_overrides[dependencies.get_provider] = lambda: provider
    app.dependency_overrides[dependencies.get_task_store] = lambda: task_store
    app.dependency_overrides[dependencies.get_session_store] = lambda: sessions
    app.dependency_overrides[dependencies.get_image_storage] = lambda: storage
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def api_session(api) -> str:
    resp = api.post("/api/session")
    assert resp.status_code == 201
    return resp.json()["sessionId"]
