"""
Task submission and polling.

A submitted request gets two identifiers: ``requestId`` names the durable
history row in the session store, ``taskId`` names the provider job and keys
the TaskRecord the poller advances. Records move Pending -> Completed or
Pending -> Failed exactly once; the store's compare-and-swap enforces it.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlparse
import logging
import threading
import time
import uuid

from app.config import Settings
from app.errors import AppError, TaskForbidden, TaskNotFound
from app.models import (
    DEFAULT_EDIT_ASPECT_RATIO,
    DEFAULT_GENERATION_ASPECT_RATIO,
    DEFAULT_SIZE,
    DEFAULT_STYLE,
    EditParams,
    GenerateRequest,
    RefineRequest,
)
from app.services.nano_banana import (
    EDIT_MODEL,
    GENERATION_MODEL,
    NanoBananaClient,
    ProviderFailed,
    ProviderSucceeded,
    map_image_size,
)
from app.services.session_store import SessionStore
from app.services.task_store import ImageDescriptor, TaskRecord, TaskStatus, TaskStore, iso

logger = logging.getLogger(__name__)

# the provider does not report dimensions; this is the size it renders at
NOMINAL_WIDTH = 1024
NOMINAL_HEIGHT = 1024

ABANDONED_MESSAGE = "Task abandoned before completion"

FAILURE_SUMMARIES = {
    "generation": "Generation failed",
    "edit": "Edit failed",
    "refinement": "Refinement failed",
}
STATUS_CHECK_FAILED = "Status check failed"


def image_format(url: str) -> str:
    path = urlparse(url).path.lower()
    return "jpeg" if path.endswith((".jpg", ".jpeg")) else "png"


def build_images(urls: List[str], request_id: str, kind: str) -> List[ImageDescriptor]:
    created = iso(time.time())
    return [
        ImageDescriptor(
            id=f"img-{uuid.uuid4().hex[:12]}",
            url=url,
            width=NOMINAL_WIDTH,
            height=NOMINAL_HEIGHT,
            format=image_format(url),
            created_at=created,
            request_id=request_id,
            kind=kind,
        )
        for url in urls
    ]


def task_payload(record: TaskRecord) -> Dict[str, Any]:
    """The JSON body a status poll answers with for ``record``."""
    payload: Dict[str, Any] = {
        "requestId": record.request_id,
        "taskId": record.task_id,
        "status": record.status.value,
        "createdAt": iso(record.created_at),
    }
    if record.status is TaskStatus.COMPLETED:
        payload["images"] = [img.to_dict() for img in record.images]
    elif record.status is TaskStatus.FAILED:
        payload["error"] = record.error
        payload["details"] = record.error_summary
    else:
        payload["taskState"] = record.task_state or "waiting"
    return payload


class TaskSubmitter:
    def __init__(self, provider: NanoBananaClient, store: TaskStore, sessions: SessionStore, settings: Settings):
        self.provider = provider
        self.store = store
        self.sessions = sessions
        self.settings = settings

    def submit_generation(self, session_id: str, req: GenerateRequest) -> Dict[str, Any]:
        size = req.size or DEFAULT_SIZE
        aspect_ratio = req.aspectRatio or DEFAULT_GENERATION_ASPECT_RATIO
        self.sessions.update_preferences(session_id, {
            "preferred_size": size,
            "preferred_style": req.style or DEFAULT_STYLE,
            "preferred_aspect_ratio": aspect_ratio,
            "last_active_mode": "generation",
        })
        return self._submit(
            session_id,
            kind="generation",
            model=GENERATION_MODEL,
            prompt=req.prompt.strip(),
            image_size=map_image_size(req.size or req.aspectRatio),
            size=size,
            style=req.style,
            aspect_ratio=aspect_ratio,
        )

    def submit_edit(self, session_id: str, params: EditParams, image_urls: List[str]) -> Dict[str, Any]:
        aspect_ratio = params.aspectRatio or DEFAULT_EDIT_ASPECT_RATIO
        self.sessions.update_preferences(session_id, {"last_active_mode": "edit"})
        return self._submit(
            session_id,
            kind="edit",
            model=EDIT_MODEL,
            prompt=params.editPrompt.strip(),
            image_size=map_image_size(aspect_ratio),
            image_urls=image_urls,
            style=params.style,
            aspect_ratio=aspect_ratio,
        )

    def submit_refinement(self, session_id: str, req: RefineRequest, image_url: str) -> Dict[str, Any]:
        aspect_ratio = req.aspectRatio or DEFAULT_EDIT_ASPECT_RATIO
        return self._submit(
            session_id,
            kind="refinement",
            model=EDIT_MODEL,
            prompt=req.editPrompt.strip(),
            image_size=map_image_size(aspect_ratio),
            image_urls=[image_url],
            style=req.style,
            aspect_ratio=aspect_ratio,
        )

    def reap_stale(self) -> int:
        removed = self.store.reap(self.settings.task_pending_ttl, self.settings.task_retention)
        for record in removed:
            if record.status is TaskStatus.PENDING:
                logger.info("Reaped abandoned task %s (request %s)", record.task_id, record.request_id)
                self.sessions.update_request_status(record.request_id, "failed", ABANDONED_MESSAGE)
        return len(removed)

    def _submit(
        self,
        session_id: str,
        kind: str,
        model: str,
        prompt: str,
        image_size: str,
        image_urls: Optional[List[str]] = None,
        size: Optional[str] = None,
        style: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
    ) -> Dict[str, Any]:
        self.reap_stale()
        request = self.sessions.add_request(
            session_id, kind, prompt, size=size, style=style, aspect_ratio=aspect_ratio
        )
        request_id = request["id"]

        try:
            task_id = self.provider.create_task(model, prompt, image_size, image_urls=image_urls)
        except AppError as e:
            logger.warning("%s request %s rejected: %s", kind, request_id, e.describe())
            self.sessions.update_request_status(request_id, "failed", e.describe())
            raise

        now = time.time()
        self.store.put(TaskRecord(
            task_id=task_id,
            session_id=session_id,
            request_id=request_id,
            kind=kind,
            created_at=now,
            updated_at=now,
        ))
        self.sessions.touch_session(session_id)
        logger.info("Submitted %s task %s for request %s", kind, task_id, request_id)
        return {
            "requestId": request_id,
            "taskId": task_id,
            "status": TaskStatus.PENDING.value,
            "createdAt": iso(now),
        }


class TaskPoller:
    def __init__(self, provider: NanoBananaClient, store: TaskStore, sessions: SessionStore):
        self.provider = provider
        self.store = store
        self.sessions = sessions
        self._inflight: Set[str] = set()
        self._inflight_lock = threading.Lock()

    def poll(self, task_id: str, session_id: str, kind: str) -> Dict[str, Any]:
        record = self.store.get(task_id)
        if record is None or record.kind != kind:
            raise TaskNotFound(task_id)
        if record.session_id != session_id:
            raise TaskForbidden()

        if record.status.is_terminal:
            return task_payload(record)

        with self._inflight_lock:
            if task_id in self._inflight:
                logger.debug("Poll for %s already in flight; answering from the record", task_id)
                return task_payload(record)
            self._inflight.add(task_id)
        try:
            return self._check_provider(record)
        finally:
            with self._inflight_lock:
                self._inflight.discard(task_id)

    def _check_provider(self, record: TaskRecord) -> Dict[str, Any]:
        task_id = record.task_id
        summary = FAILURE_SUMMARIES.get(record.kind, "Task failed")
        try:
            status = self.provider.get_task_status(task_id)
        except Exception as e:
            # transport and parse failures end the task like a provider failure
            message = e.describe() if isinstance(e, AppError) else (str(e) or e.__class__.__name__)
            logger.warning("Status check for %s failed: %s", task_id, message)
            return self._finish(record, TaskStatus.FAILED, error=message, error_summary=STATUS_CHECK_FAILED)

        if isinstance(status, ProviderSucceeded):
            images = build_images(status.result_urls, record.request_id, record.kind)
            return self._finish(record, TaskStatus.COMPLETED, images=images, task_state=status.state)
        if isinstance(status, ProviderFailed):
            return self._finish(record, TaskStatus.FAILED, error=status.message, error_summary=summary, task_state=status.state)

        # ProviderPending and ProviderUnknown both mean "keep polling"
        self.store.touch(task_id, status.state)
        current = self.store.get(task_id) or record
        return task_payload(current)

    def _finish(self, record: TaskRecord, new: TaskStatus, **fields: Any) -> Dict[str, Any]:
        task_id = record.task_id
        swapped = self.store.compare_and_swap_status(task_id, TaskStatus.PENDING, new, **fields)
        self.store.touch(task_id)
        current = self.store.get(task_id)
        if current is None:
            # reaped between the read and the swap
            raise TaskNotFound(task_id)
        if swapped:
            logger.info("Task %s %s", task_id, new.value)
            self.sessions.update_request_status(
                record.request_id, new.value, fields.get("error") if new is TaskStatus.FAILED else None
            )
            if new is TaskStatus.COMPLETED:
                self.sessions.touch_session(record.session_id)
        return task_payload(current)
