from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
import json
import logging

import requests

from app.config import Settings, get_settings
from app.errors import AppError, ConfigError, ProviderError

logger = logging.getLogger(__name__)

GENERATION_MODEL = "google/nano-banana"
EDIT_MODEL = "google/nano-banana-edit"
OUTPUT_FORMAT = "png"

PENDING_STATES = ("waiting", "queuing", "generating")

_IMAGE_SIZE_MAP = {
    "512x512": "1:1",
    "768x768": "1:1",
    "1024x1024": "1:1",
    "1024x768": "4:3",
    "1:1": "1:1",
    "4:3": "4:3",
    "16:9": "16:9",
    "9:16": "9:16",
}


def map_image_size(size: Optional[str]) -> str:
    """Pixel sizes and ratios both become the provider's ratio-style image_size."""
    return _IMAGE_SIZE_MAP.get(size or "1:1", "1:1")


# --------------------
# Task status, one class per shape the provider reports
# --------------------
@dataclass(frozen=True)
class ProviderPending:
    state: str


@dataclass(frozen=True)
class ProviderSucceeded:
    result_urls: List[str]
    state: str = "success"


@dataclass(frozen=True)
class ProviderFailed:
    message: str
    state: str = "fail"


@dataclass(frozen=True)
class ProviderUnknown:
    """A state string we don't recognise; callers keep waiting on it."""
    state: str


ProviderStatus = Union[ProviderPending, ProviderSucceeded, ProviderFailed, ProviderUnknown]


def parse_task_status(data: Dict[str, Any]) -> ProviderStatus:
    """
    Turn the ``data`` object of a recordInfo response into a ProviderStatus.

    A ``success`` whose ``resultJson`` is not the documented
    ``{"resultUrls": [...]}`` document raises ValueError.
    """
    state = str(data.get("state") or "")
    if state in PENDING_STATES:
        return ProviderPending(state)
    if state == "fail":
        return ProviderFailed(data.get("failMsg") or "Task failed")
    if state == "success":
        raw = data.get("resultJson")
        result = json.loads(raw) if isinstance(raw, str) and raw else raw
        if not isinstance(result, dict):
            raise ValueError("Provider returned success without a resultJson object")
        urls = result.get("resultUrls")
        if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
            raise ValueError("Provider resultJson has no resultUrls list")
        return ProviderSucceeded(urls)
    return ProviderUnknown(state or "unknown")


class NanoBananaClient:
    """Thin client for the Nano Banana createTask / recordInfo endpoints."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.provider_base_url.rstrip("/")
        self.timeout = self.settings.provider_timeout
        self.session = session or requests.Session()
        self._authorized = False

    # --------------------
    # Public entry points
    # --------------------
    def create_task(
        self,
        model: str,
        prompt: str,
        image_size: str,
        image_urls: Optional[List[str]] = None,
    ) -> str:
        """Submit a job and return the provider's taskId."""
        task_input: Dict[str, Any] = {
            "prompt": prompt,
            "output_format": OUTPUT_FORMAT,
            "image_size": image_size,
        }
        if image_urls:
            task_input["image_urls"] = list(image_urls)
        payload = {
            "model": model,
            "callBackUrl": self.settings.callback_url,
            "input": task_input,
        }
        data = self._request("POST", "/jobs/createTask", "Task creation", json=payload)
        task_id = data.get("taskId") if isinstance(data, dict) else None
        if not task_id:
            raise ProviderError(502, "Task creation failed", "Provider response did not include a taskId")
        logger.info("Provider accepted %s task %s", model, task_id)
        return str(task_id)

    def get_task_status(self, task_id: str) -> ProviderStatus:
        data = self._request("GET", "/jobs/recordInfo", "Task status check", params={"taskId": task_id})
        if not isinstance(data, dict):
            raise ValueError("Provider status response has no data object")
        return parse_task_status(data)

    # --------------------
    # Helpers
    # --------------------
    def _ensure_auth(self) -> None:
        if self._authorized:
            return
        if not self.settings.api_key:
            raise ConfigError("NANO_BANANA_API_KEY is not set", message="API key not configured")
        self.session.headers.update({
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        })
        self._authorized = True

    def _request(self, method: str, path: str, operation: str, **kwargs) -> Any:
        self._ensure_auth()
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            raise ProviderError(504, "Gateway Timeout", f"{operation} request timed out. Please try again.")
        except requests.exceptions.ConnectionError as e:
            raise ProviderError(502, f"{operation} failed", f"Could not reach provider: {e}")

        if resp.status_code >= 400:
            raise self._http_error(resp, operation)

        try:
            body = resp.json()
        except ValueError:
            raise ProviderError(502, f"{operation} failed", "Provider returned a non-JSON response")

        code = body.get("code") if isinstance(body, dict) else None
        if code != 200:
            message = (body.get("msg") or body.get("message")) if isinstance(body, dict) else None
            status = code if isinstance(code, int) and 400 <= code < 600 else 502
            logger.warning("%s rejected by provider: code=%s msg=%s", operation, code, message)
            raise ProviderError(status, f"{operation} failed", message or "Provider rejected the request")
        return body.get("data")

    def _http_error(self, resp: requests.Response, operation: str) -> AppError:
        status = resp.status_code
        logger.warning("%s returned HTTP %d", operation, status)
        if status == 401:
            return ProviderError(401, "Unauthorized", "Invalid or expired API key")
        if status == 429:
            return ProviderError(429, "Too Many Requests", "Rate limit exceeded. Please try again later.")
        detail = None
        try:
            body = resp.json()
            if isinstance(body, dict):
                detail = body.get("msg") or body.get("message") or body.get("error")
        except ValueError:
            detail = (resp.text or "")[:200] or None
        if status == 400:
            return ProviderError(400, "Bad Request", detail or f"{operation} request validation failed")
        return ProviderError(status, f"{operation} failed", detail or f"HTTP {status}")
