from __future__ import annotations
from typing import Any, Optional
import logging
import threading

import requests

from app.errors import ConfigError, EnhancementError

logger = logging.getLogger(__name__)

MAX_ENHANCE_PROMPT_LENGTH = 10000

_TEXT_FIELDS = ("prompt", "enhanced_prompt", "enhancedPrompt", "result", "data", "text")


def extract_enhanced_prompt(body: Any) -> str:
    if isinstance(body, str):
        return body
    if isinstance(body, dict):
        for name in _TEXT_FIELDS:
            value = body.get(name)
            if value:
                return value if isinstance(value, str) else str(value)
    return str(body)


class PromptEnhancer:
    """Rewrites prompts through an external webhook (an n8n AI agent in production)."""

    def __init__(self, webhook_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def enhance(self, prompt: Optional[str]) -> str:
        if not prompt or not prompt.strip():
            raise EnhancementError(400, "Prompt is required", "Enter a prompt to enhance.", code="ENHANCEMENT_PROMPT_EMPTY")
        if len(prompt) > MAX_ENHANCE_PROMPT_LENGTH:
            raise EnhancementError(
                400,
                "Prompt too long",
                f"Prompts must be at most {MAX_ENHANCE_PROMPT_LENGTH} characters.",
                code="ENHANCEMENT_PROMPT_TOO_LONG",
            )
        if not self.webhook_url:
            raise ConfigError("ENHANCE_WEBHOOK_URL is not set")

        try:
            resp = self.session.post(self.webhook_url, json={"prompt": prompt}, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise EnhancementError(504, "Enhancement timed out", "The enhancement service took too long to respond.", code="ENHANCEMENT_TIMEOUT")
        except requests.exceptions.ConnectionError as e:
            logger.warning("Enhancement webhook unreachable: %s", e)
            raise EnhancementError(503, "Enhancement service unreachable", "Could not connect to the enhancement service.", code="ENHANCEMENT_NETWORK_ERROR")

        if resp.status_code >= 400:
            raise self._http_error(resp)

        content_type = resp.headers.get("Content-Type", "")
        if "json" in content_type:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
        else:
            body = resp.text
        return extract_enhanced_prompt(body).strip()

    def _http_error(self, resp: requests.Response) -> EnhancementError:
        if resp.status_code == 503:
            return EnhancementError(503, "Enhancement service unavailable", "Please try again later.", code="ENHANCEMENT_SERVICE_UNAVAILABLE")
        try:
            body = resp.json()
            message = body.get("message") or body.get("error") if isinstance(body, dict) else str(body)
        except ValueError:
            message = resp.text
        return EnhancementError(resp.status_code, message or "Enhancement failed", code="ENHANCEMENT_ERROR")


class InFlightGuard:
    """Allows one running call per key (a session id here)."""

    def __init__(self):
        self._keys = set()
        self._lock = threading.Lock()

    def acquire(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)
