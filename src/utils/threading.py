"""Background task helpers for FTPLink.

Provides a one-shot background task whose outcome is cached, used to
decouple blocking socket operations (such as accepting a passive data
connection) from the thread that requested them.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar


T = TypeVar("T")


class TaskStatus(Enum):
    """Status of a background task."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TaskResult(Generic[T]):
    """Result of a background task."""
    status: TaskStatus
    result: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        """True if the task completed without raising."""
        return self.status == TaskStatus.COMPLETED


class ThreadedTask(Generic[T]):
    """
    Runs a callable once in a background thread and caches its outcome.

    Usage:
        task = ThreadedTask(listener.accept, name="accept")
        task.start()

        # Later, from any thread:
        outcome = task.get_result()  # blocks until the callable returned
        if outcome.ok:
            conn, addr = outcome.result
    """

    def __init__(
        self,
        target: Callable[[], T],
        name: Optional[str] = None
    ):
        """
        Initialize a threaded task.

        Args:
            target: Callable to run in background
            name: Optional thread name
        """
        self._target = target
        self._name = name

        self._thread: Optional[threading.Thread] = None
        self._done = threading.Event()
        self._result: Optional[TaskResult[T]] = None
        self._status = TaskStatus.PENDING

    @property
    def status(self) -> TaskStatus:
        """Current task status."""
        return self._status

    def start(self) -> None:
        """Start the background task."""
        if self._status != TaskStatus.PENDING:
            raise RuntimeError("Task already started")

        self._status = TaskStatus.RUNNING
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        """Internal method that runs in the background thread."""
        try:
            result = self._target()
            self._result = TaskResult(status=TaskStatus.COMPLETED, result=result)
            self._status = TaskStatus.COMPLETED
        except Exception as e:
            self._result = TaskResult(status=TaskStatus.FAILED, error=e)
            self._status = TaskStatus.FAILED
        finally:
            self._done.set()

    def get_result(self, timeout: Optional[float] = None) -> TaskResult[T]:
        """
        Wait for task completion and return result.

        Args:
            timeout: Maximum time to wait (None = forever)

        Returns:
            TaskResult with status and result/error

        Raises:
            TimeoutError: If timeout expires before task completes
        """
        if self._thread is not None:
            if not self._done.wait(timeout=timeout):
                raise TimeoutError("Task did not complete within timeout")

        return self._result or TaskResult(status=TaskStatus.PENDING)
