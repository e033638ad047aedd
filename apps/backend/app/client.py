"""
HTTP client for the Nano Banana Studio API, including the polling loop
a front end runs after creating a task.
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional
import logging
import mimetypes
import os
import time

import requests

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.5
MAX_WAIT = 120.0
TERMINAL = ("completed", "failed")

STATUS_PATHS = {
    "generation": "/api/generate/status",
    "edit": "/api/edit/status",
    "refinement": "/api/refine/status",
}


class ApiClientError(Exception):
    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        message = body.get("details") or body.get("error") if isinstance(body, dict) else str(body)
        super().__init__(f"HTTP {status_code}: {message}")


class NanoBananaApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        session_id: Optional[str] = None,
        timeout: float = 30.0,
        http: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = (base_url or os.getenv("API_BASE") or "http://127.0.0.1:8000").rstrip("/")
        self.session_id = session_id
        self.timeout = timeout
        self.http = http or requests.Session()
        self._clock = clock
        self._sleep = sleep

    # --------------------
    # Plain calls
    # --------------------
    def create_session(self) -> str:
        body = self._call("POST", "/api/session", with_session=False)
        self.session_id = body["sessionId"]
        return self.session_id

    def generate(self, prompt: str, size: Optional[str] = None, style: Optional[str] = None,
                 aspect_ratio: Optional[str] = None) -> Dict[str, Any]:
        payload = {"prompt": prompt, "size": size, "style": style, "aspectRatio": aspect_ratio}
        return self._call("POST", "/api/generate", json={k: v for k, v in payload.items() if v is not None})

    def edit(self, image_paths: Iterable[str], edit_prompt: str, style: Optional[str] = None,
             aspect_ratio: Optional[str] = None) -> Dict[str, Any]:
        data = {"editPrompt": edit_prompt}
        if style:
            data["style"] = style
        if aspect_ratio:
            data["aspectRatio"] = aspect_ratio
        handles = []
        try:
            files = []
            for p in image_paths:
                path = Path(p)
                fh = path.open("rb")
                handles.append(fh)
                ctype = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
                files.append(("images", (path.name, fh, ctype)))
            return self._call("POST", "/api/edit", data=data, files=files)
        finally:
            for fh in handles:
                fh.close()

    def refine(self, image_url: str, edit_prompt: str, style: Optional[str] = None,
               aspect_ratio: Optional[str] = None) -> Dict[str, Any]:
        payload = {"imageUrl": image_url, "editPrompt": edit_prompt, "style": style, "aspectRatio": aspect_ratio}
        return self._call("POST", "/api/refine", json={k: v for k, v in payload.items() if v is not None})

    def get_status(self, kind: str, task_id: str) -> Dict[str, Any]:
        return self._call("GET", STATUS_PATHS[kind], params={"taskId": task_id})

    # --------------------
    # Polling
    # --------------------
    def wait_for_task(
        self,
        kind: str,
        task_id: str,
        interval: float = POLL_INTERVAL,
        max_wait: float = MAX_WAIT,
        on_state: Optional[Callable[[str], None]] = None,
    ) -> Dict[str, Any]:
        """
        Poll until the task reaches a terminal status or ``max_wait`` elapses.

        Polls once immediately, then on a fixed ``interval`` cadence. Each
        poll finishes before the next starts, so there is never more than
        one outstanding status request for the task. On timeout the result
        is a local ``{"status": "failed", "error": "timeout"}``; the server
        and provider are not told, and the server-side task stays pending.
        """
        start = self._clock()
        deadline = start + max_wait
        tick = 0
        while True:
            try:
                result = self.get_status(kind, task_id)
            except (ApiClientError, requests.exceptions.RequestException) as e:
                logger.warning("Status check for %s failed: %s", task_id, e)
                return {"status": "failed", "taskId": task_id, "error": str(e)}

            if result.get("status") in TERMINAL:
                return result
            if on_state:
                on_state(result.get("taskState") or "generating")

            tick += 1
            next_poll = start + tick * interval
            now = self._clock()
            # slow polls push the clock past the schedule
            if now >= deadline or next_poll >= deadline:
                if deadline > now:
                    self._sleep(deadline - now)
                logger.info("Gave up on task %s after %.1fs", task_id, max_wait)
                return {"status": "failed", "taskId": task_id, "error": "timeout"}
            if next_poll > now:
                self._sleep(next_poll - now)

    def run_generation(self, prompt: str, **kwargs) -> Dict[str, Any]:
        wait_opts = {k: kwargs.pop(k) for k in ("interval", "max_wait", "on_state") if k in kwargs}
        created = self.generate(prompt, **kwargs)
        return self.wait_for_task("generation", created["taskId"], **wait_opts)

    def run_edit(self, image_paths: Iterable[str], edit_prompt: str, **kwargs) -> Dict[str, Any]:
        wait_opts = {k: kwargs.pop(k) for k in ("interval", "max_wait", "on_state") if k in kwargs}
        created = self.edit(image_paths, edit_prompt, **kwargs)
        return self.wait_for_task("edit", created["taskId"], **wait_opts)

    # --------------------
    # Helpers
    # --------------------
    def _call(self, method: str, path: str, with_session: bool = True, **kwargs) -> Dict[str, Any]:
        headers = {}
        if with_session:
            if not self.session_id:
                raise ValueError("No session; call create_session() first")
            headers["X-Session-ID"] = self.session_id
        r = self.http.request(method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs)
        try:
            body = r.json()
        except ValueError:
            body = {"error": r.text}
        if r.status_code >= 400:
            raise ApiClientError(r.status_code, body)
        return body
