"""Process-wide service instances, handed to routes through FastAPI's Depends."""
from __future__ import annotations
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from app.config import get_settings
from app.errors import SessionError
from app.services.nano_banana import NanoBananaClient
from app.services.prompt_enhancer import InFlightGuard, PromptEnhancer
from app.services.session_store import SessionStore
from app.services.task_store import InMemoryTaskStore, TaskStore
from app.services.tasks import TaskPoller, TaskSubmitter
from app.services.uploads import ImageStorage


@lru_cache(maxsize=1)
def get_provider() -> NanoBananaClient:
    return NanoBananaClient(get_settings())


@lru_cache(maxsize=1)
def get_task_store() -> TaskStore:
    return InMemoryTaskStore()


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    return SessionStore(get_settings().database_path)


@lru_cache(maxsize=1)
def get_image_storage() -> ImageStorage:
    settings = get_settings()
    return ImageStorage(settings.upload_dir, settings.public_base_url)


@lru_cache(maxsize=1)
def get_prompt_enhancer() -> PromptEnhancer:
    settings = get_settings()
    return PromptEnhancer(settings.enhance_webhook_url, settings.enhance_timeout)


@lru_cache(maxsize=1)
def get_enhance_guard() -> InFlightGuard:
    return InFlightGuard()


def get_submitter(
    provider: NanoBananaClient = Depends(get_provider),
    store: TaskStore = Depends(get_task_store),
    sessions: SessionStore = Depends(get_session_store),
) -> TaskSubmitter:
    return TaskSubmitter(provider, store, sessions, get_settings())


# one poller per process so its in-flight guard sees every request
_poller: Optional[TaskPoller] = None


def get_poller(
    provider: NanoBananaClient = Depends(get_provider),
    store: TaskStore = Depends(get_task_store),
    sessions: SessionStore = Depends(get_session_store),
) -> TaskPoller:
    global _poller
    if _poller is None or _poller.store is not store or _poller.provider is not provider or _poller.sessions is not sessions:
        _poller = TaskPoller(provider, store, sessions)
    return _poller


def require_session(
    x_session_id: Optional[str] = Header(None),
    sessions: SessionStore = Depends(get_session_store),
) -> str:
    """Resolve the X-Session-ID header to a known session id."""
    if not x_session_id:
        raise SessionError.missing_header()
    if not sessions.get_session(x_session_id):
        raise SessionError.not_found()
    return x_session_id
