"""Unit tests for task submission and polling."""

import json

import pytest
import requests

from app.errors import ProviderError, TaskForbidden, TaskNotFound
from app.models import EditParams, GenerateRequest, RefineRequest
from app.services.nano_banana import (
    EDIT_MODEL,
    GENERATION_MODEL,
    ProviderFailed,
    ProviderPending,
    ProviderSucceeded,
    ProviderUnknown,
    parse_task_status,
)
from app.services.task_store import TaskStatus
from app.services.tasks import ABANDONED_MESSAGE, image_format


class TestSubmitter:
    def test_generation_registers_one_pending_record(self, submitter, provider, task_store, sessions, session_id) -> None:
        provider.next_ids = ["t1"]
        out = submitter.submit_generation(session_id, GenerateRequest(prompt="  a red bicycle ", size="1024x768"))

        assert out["taskId"] == "t1"
        assert out["status"] == "pending"
        assert out["requestId"] != out["taskId"]
        assert len(task_store) == 1

        record = task_store.get("t1")
        assert record.status is TaskStatus.PENDING
        assert record.session_id == session_id
        assert record.request_id == out["requestId"]
        assert provider.created[0]["model"] == GENERATION_MODEL
        assert provider.created[0]["prompt"] == "a red bicycle"
        assert provider.created[0]["image_size"] == "4:3"

        row = sessions.get_request(out["requestId"])
        assert row["status"] == "pending"
        assert row["kind"] == "generation"
        assert row["size"] == "1024x768"

    def test_generation_updates_preferences(self, submitter, sessions, session_id) -> None:
        submitter.submit_generation(session_id, GenerateRequest(prompt="cat", style="artistic", aspectRatio="9:16"))
        prefs = sessions.get_preferences(session_id)
        assert prefs["preferred_style"] == "artistic"
        assert prefs["preferred_aspect_ratio"] == "9:16"
        assert prefs["last_active_mode"] == "generation"

    def test_edit_forwards_image_urls(self, submitter, provider, sessions, session_id) -> None:
        urls = ["https://files.test/a.png", "https://files.test/b.jpg"]
        out = submitter.submit_edit(session_id, EditParams(editPrompt="add a hat", aspectRatio="16:9"), urls)
        created = provider.created[0]
        assert created["model"] == EDIT_MODEL
        assert created["image_urls"] == urls
        assert created["image_size"] == "16:9"
        assert sessions.get_request(out["requestId"])["kind"] == "edit"
        assert sessions.get_preferences(session_id)["last_active_mode"] == "edit"

    def test_refinement_is_its_own_kind(self, submitter, task_store, session_id) -> None:
        out = submitter.submit_refinement(
            session_id, RefineRequest(imageUrl="https://x/1.png", editPrompt="brighter"), "https://files.test/r.png"
        )
        assert task_store.get(out["taskId"]).kind == "refinement"

    def test_provider_rejection_marks_request_failed(self, submitter, provider, task_store, sessions, session_id) -> None:
        provider.create_error = ProviderError(429, "Too Many Requests", "Rate limit exceeded. Please try again later.")
        with pytest.raises(ProviderError) as exc:
            submitter.submit_generation(session_id, GenerateRequest(prompt="cat"))
        assert exc.value.status_code == 429
        assert len(task_store) == 0

        history = sessions.get_full_session(session_id)["generationHistory"]
        assert history[0]["status"] == "failed"
        assert history[0]["error_message"] == "Rate limit exceeded. Please try again later."

    def test_submit_reaps_abandoned_tasks(self, submitter, provider, task_store, sessions, session_id) -> None:
        first = submitter.submit_generation(session_id, GenerateRequest(prompt="one"))
        record = task_store.get(first["taskId"])
        record.created_at = record.updated_at = 0.0
        task_store.put(record)

        submitter.submit_generation(session_id, GenerateRequest(prompt="two"))

        assert task_store.get(first["taskId"]) is None
        row = sessions.get_request(first["requestId"])
        assert row["status"] == "failed"
        assert row["error_message"] == ABANDONED_MESSAGE


class TestPoller:
    def _submit(self, submitter, provider, session_id, task_id="t1"):
        provider.next_ids = [task_id]
        return submitter.submit_generation(session_id, GenerateRequest(prompt="a red bicycle", size="1024x768"))

    def test_queuing_then_success(self, submitter, poller, provider, task_store, sessions, session_id) -> None:
        created = self._submit(submitter, provider, session_id)
        provider.script(
            "t1",
            ProviderPending("queuing"),
            parse_task_status({"state": "success", "resultJson": json.dumps({"resultUrls": ["https://x/1.png"]})}),
        )

        first = poller.poll("t1", session_id, "generation")
        assert first["status"] == "pending"
        assert first["taskState"] == "queuing"
        assert task_store.get("t1").status is TaskStatus.PENDING

        second = poller.poll("t1", session_id, "generation")
        assert second["status"] == "completed"
        [image] = second["images"]
        assert image["url"] == "https://x/1.png"
        assert image["format"] == "png"
        assert (image["width"], image["height"]) == (1024, 1024)
        assert image["associated_request_id"] == created["requestId"]
        assert image["id"].startswith("img-")

        assert task_store.get("t1").status is TaskStatus.COMPLETED
        assert sessions.get_request(created["requestId"])["status"] == "completed"

    def test_terminal_result_is_idempotent(self, submitter, poller, provider, session_id) -> None:
        self._submit(submitter, provider, session_id)
        provider.script("t1", ProviderSucceeded(["https://x/1.png"]))
        first = poller.poll("t1", session_id, "generation")
        calls = len(provider.status_calls)

        # a flip on the provider side must not reach the caller
        provider.script("t1", ProviderFailed("changed my mind"))
        assert poller.poll("t1", session_id, "generation") == first
        assert poller.poll("t1", session_id, "generation") == first
        assert len(provider.status_calls) == calls

    def test_provider_failure_message_is_kept(self, submitter, poller, provider, task_store, sessions, session_id) -> None:
        created = self._submit(submitter, provider, session_id)
        provider.script("t1", ProviderFailed("content policy violation"))

        results = [poller.poll("t1", session_id, "generation") for _ in range(3)]
        assert all(r == results[0] for r in results)
        assert results[0]["status"] == "failed"
        assert results[0]["error"] == "content policy violation"
        assert results[0]["details"] == "Generation failed"
        assert task_store.get("t1").error == "content policy violation"
        assert sessions.get_request(created["requestId"])["error_message"] == "content policy violation"

    def test_transport_error_becomes_failed_status(self, submitter, poller, provider, task_store, session_id) -> None:
        self._submit(submitter, provider, session_id)
        provider.script("t1", requests.exceptions.ConnectionError("connection reset"))

        result = poller.poll("t1", session_id, "generation")
        assert result["status"] == "failed"
        assert result["error"] == "connection reset"
        assert result["details"] == "Status check failed"
        assert task_store.get("t1").status is TaskStatus.FAILED

    def test_malformed_result_becomes_failed_status(self, submitter, poller, provider, session_id) -> None:
        self._submit(submitter, provider, session_id)
        provider.script("t1", ValueError("Provider resultJson has no resultUrls list"))
        result = poller.poll("t1", session_id, "generation")
        assert result["status"] == "failed"
        assert "resultUrls" in result["error"]

    def test_unknown_state_keeps_waiting(self, submitter, poller, provider, session_id) -> None:
        self._submit(submitter, provider, session_id)
        provider.script("t1", ProviderUnknown("paused"))
        result = poller.poll("t1", session_id, "generation")
        assert result["status"] == "pending"
        assert result["taskState"] == "paused"

    def test_unknown_task(self, poller, session_id) -> None:
        with pytest.raises(TaskNotFound):
            poller.poll("ghost", session_id, "generation")

    def test_wrong_kind_is_not_found(self, submitter, poller, provider, session_id) -> None:
        self._submit(submitter, provider, session_id)
        with pytest.raises(TaskNotFound):
            poller.poll("t1", session_id, "edit")

    def test_other_session_is_forbidden(self, submitter, poller, provider, sessions, session_id) -> None:
        self._submit(submitter, provider, session_id)
        provider.script("t1", ProviderSucceeded(["https://x/1.png"]))
        poller.poll("t1", session_id, "generation")

        intruder = sessions.create_session()["session_id"]
        with pytest.raises(TaskForbidden):
            poller.poll("t1", intruder, "generation")

    def test_overlapping_poll_does_not_hit_provider(self, submitter, poller, provider, session_id) -> None:
        self._submit(submitter, provider, session_id)
        poller._inflight.add("t1")
        result = poller.poll("t1", session_id, "generation")
        assert result["status"] == "pending"
        assert provider.status_calls == []


class TestImageFormat:
    @pytest.mark.parametrize("url,fmt", [
        ("https://x/1.png", "png"),
        ("https://x/1.JPG", "jpeg"),
        ("https://x/1.jpeg?sig=abc", "jpeg"),
        ("https://x/no-extension", "png"),
    ])
    def test_from_url(self, url, fmt) -> None:
        assert image_format(url) == fmt
