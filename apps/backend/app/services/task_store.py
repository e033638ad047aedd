from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional
import datetime as dt
import threading
import time


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PENDING


def iso(ts: float) -> str:
    return dt.datetime.fromtimestamp(ts, tz=dt.timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ImageDescriptor:
    id: str
    url: str
    width: int
    height: int
    format: str
    created_at: str
    request_id: str
    kind: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "created_at": self.created_at,
            "associated_request_id": self.request_id,
            "request_type": self.kind,
        }


@dataclass
class TaskRecord:
    task_id: str
    session_id: str
    request_id: str
    kind: str
    created_at: float
    updated_at: float
    status: TaskStatus = TaskStatus.PENDING
    task_state: Optional[str] = None
    images: List[ImageDescriptor] = field(default_factory=list)
    error: Optional[str] = None
    error_summary: Optional[str] = None
    last_polled_at: Optional[float] = None

    def copy(self) -> "TaskRecord":
        return replace(self, images=list(self.images))

    @property
    def last_activity(self) -> float:
        return max(self.updated_at, self.last_polled_at or 0.0)


class TaskStore(ABC):
    """Where task records live between submission and the last poll."""

    @abstractmethod
    def get(self, task_id: str) -> Optional[TaskRecord]:
        """Return a copy of the record, or None."""

    @abstractmethod
    def put(self, record: TaskRecord) -> None:
        """Insert or replace a record."""

    @abstractmethod
    def compare_and_swap_status(
        self, task_id: str, expected: TaskStatus, new: TaskStatus, **fields: Any
    ) -> bool:
        """Set status (and fields) only if the current status is ``expected``."""

    @abstractmethod
    def touch(self, task_id: str, task_state: Optional[str] = None) -> None:
        """Record that the task was polled, optionally with the provider state seen."""

    @abstractmethod
    def reap(self, pending_ttl: float, retention: float, now: Optional[float] = None) -> List[TaskRecord]:
        """Drop abandoned pending records and expired terminal ones; return what was dropped."""


class InMemoryTaskStore(TaskStore):
    def __init__(self):
        self._tasks: Dict[str, TaskRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def get(self, task_id: str) -> Optional[TaskRecord]:
        with self._lock:
            record = self._tasks.get(task_id)
            return record.copy() if record else None

    def put(self, record: TaskRecord) -> None:
        with self._lock:
            self._tasks[record.task_id] = record.copy()

    def compare_and_swap_status(
        self, task_id: str, expected: TaskStatus, new: TaskStatus, **fields: Any
    ) -> bool:
        with self._lock:
            record = self._tasks.get(task_id)
            if record is None or record.status is not expected:
                return False
            for name, value in fields.items():
                if not hasattr(record, name):
                    raise AttributeError(f"TaskRecord has no field {name!r}")
                setattr(record, name, value)
            record.status = new
            record.updated_at = time.time()
            return True

    def touch(self, task_id: str, task_state: Optional[str] = None) -> None:
        with self._lock:
            record = self._tasks.get(task_id)
            if record is None:
                return
            record.last_polled_at = time.time()
            if task_state is not None and record.status is TaskStatus.PENDING:
                record.task_state = task_state

    def reap(self, pending_ttl: float, retention: float, now: Optional[float] = None) -> List[TaskRecord]:
        now = time.time() if now is None else now
        removed: List[TaskRecord] = []
        with self._lock:
            for task_id, record in list(self._tasks.items()):
                limit = retention if record.status.is_terminal else pending_ttl
                if now - record.last_activity > limit:
                    removed.append(self._tasks.pop(task_id))
        return removed
