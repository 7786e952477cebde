"""Task scheduler for model calls.

A bounded pool of worker threads drains a priority queue (high before medium
before low, FIFO within a priority). Results are fetched by polling and are
retained for a grace window after completion, then purged.
"""

import itertools
import queue
import random
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from got_pipeline.errors import (
    ModelCallError,
    SchedulerTimeoutError,
    SingleToolRuleViolation,
    TaskFailedError,
    TaskNotFoundError,
)
from got_pipeline.llm.chains import ModelCallService
from got_pipeline.models.context import Credentials
from got_pipeline.models.enums import Capability, TaskPriority, TaskStatus

logger = structlog.get_logger(__name__)

_SHUTDOWN = object()


def validate_capabilities(capabilities: Iterable[Capability]) -> Optional[Capability]:
    """Enforce THINKING plus at most one extra capability.

    Returns:
        The extra capability, or None when the task is THINKING only.

    Raises:
        SingleToolRuleViolation: If THINKING is missing or more than one extra is present.
    """
    requested = set(capabilities)
    if Capability.THINKING not in requested:
        raise SingleToolRuleViolation("THINKING must always be included")
    extras = sorted(c.value for c in requested if c != Capability.THINKING)
    if len(extras) > 1:
        raise SingleToolRuleViolation(
            f"Found {len(extras)} non-THINKING tools, maximum is 1: {', '.join(extras)}"
        )
    return Capability(extras[0]) if extras else None


@dataclass
class ModelTask:
    """A unit of model work submitted to the scheduler."""

    prompt: str
    credentials: Credentials
    capabilities: frozenset[Capability] = frozenset({Capability.THINKING})
    priority: TaskPriority = TaskPriority.MEDIUM
    schema: Optional[dict[str, Any]] = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScheduledTask:
    """Scheduler-side state of a task."""

    task_id: str
    task: ModelTask
    status: TaskStatus = TaskStatus.QUEUED
    result: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[float] = None  # scheduler clock


class TaskScheduler:
    """Bounded, prioritized worker pool in front of a ModelCallService.

    Args:
        model_service: Service that executes prompts.
        max_workers: Number of worker threads.
        result_ttl: Seconds a finished task stays retrievable.
        poll_interval: Seconds between result checks in `get_result`.
        default_timeout: Seconds `get_result` waits when no timeout is given.
        max_retries: Attempts per task for transient ModelCallErrors.
        retry_delay: Multiplier for the exponential backoff between attempts.
        clock: Monotonic clock used for result retention.
    """

    def __init__(
        self,
        model_service: ModelCallService,
        max_workers: int = 3,
        result_ttl: float = 30.0,
        poll_interval: float = 0.5,
        default_timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.model_service = model_service
        self.max_workers = max_workers
        self.result_ttl = result_ttl
        self.poll_interval = poll_interval
        self.default_timeout = default_timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._clock = clock

        self._queue: queue.PriorityQueue = queue.PriorityQueue()
        self._sequence = itertools.count()
        self._tasks: dict[str, ScheduledTask] = {}
        self._condition = threading.Condition()
        self._workers: list[threading.Thread] = []
        self._started = False

    @classmethod
    def from_settings(cls, model_service: ModelCallService, settings) -> "TaskScheduler":
        return cls(
            model_service,
            max_workers=settings.scheduler_max_workers,
            result_ttl=settings.result_ttl_seconds,
            poll_interval=settings.scheduler_poll_interval,
            default_timeout=settings.task_timeout_seconds,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay_seconds,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._condition:
            if self._started:
                return
            self._started = True
            for index in range(self.max_workers):
                worker = threading.Thread(
                    target=self._worker_loop,
                    name=f"task-worker-{index}",
                    daemon=True,
                )
                worker.start()
                self._workers.append(worker)
        logger.debug("scheduler_started", workers=self.max_workers)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the workers once queued tasks have been drained."""
        with self._condition:
            if not self._started:
                return
            self._started = False
            workers, self._workers = self._workers, []
        # Sentinels sort after every real task
        for _ in workers:
            self._queue.put((0, next(self._sequence), _SHUTDOWN))
        if wait:
            for worker in workers:
                worker.join()
        logger.debug("scheduler_stopped")

    def __enter__(self) -> "TaskScheduler":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, task: ModelTask) -> str:
        """Queue a task and return its id.

        Raises:
            SingleToolRuleViolation: If the capability rule is broken. Nothing is queued.
        """
        validate_capabilities(task.capabilities)
        self.purge_expired()

        task_id = f"task_{int(time.time() * 1000)}_{random.getrandbits(36):09x}"
        with self._condition:
            self._tasks[task_id] = ScheduledTask(task_id=task_id, task=task)

        self._queue.put((-task.priority.rank, next(self._sequence), task_id))
        logger.debug("task_enqueued", task_id=task_id, priority=task.priority.value)

        if not self._started:
            self.start()
        return task_id

    def get_result(self, task_id: str, timeout: Optional[float] = None) -> str:
        """Poll until the task finishes.

        Raises:
            TaskNotFoundError: Unknown id, or result already purged.
            TaskFailedError: The task raised; carries the underlying message.
            SchedulerTimeoutError: No result within `timeout` seconds.
        """
        timeout = self.default_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        while True:
            self.purge_expired()
            with self._condition:
                scheduled = self._tasks.get(task_id)
                if scheduled is None:
                    raise TaskNotFoundError(f"Task not found: {task_id}")
                if scheduled.status == TaskStatus.COMPLETED:
                    return scheduled.result or ""
                if scheduled.status == TaskStatus.FAILED:
                    raise TaskFailedError(scheduled.error or "Task failed")

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("task_timeout", task_id=task_id, timeout=timeout)
                    raise SchedulerTimeoutError(f"Task timeout: {task_id} after {timeout}s")
                self._condition.wait(min(self.poll_interval, remaining))

    def run(self, task: ModelTask, timeout: Optional[float] = None) -> str:
        return self.get_result(self.enqueue(task), timeout)

    def run_many(self, tasks: list[ModelTask], timeout: Optional[float] = None) -> list[str]:
        """Fan out tasks and collect results in submission order.

        Every task is validated before any is queued.
        """
        for task in tasks:
            validate_capabilities(task.capabilities)
        task_ids = [self.enqueue(task) for task in tasks]
        return [self.get_result(task_id, timeout) for task_id in task_ids]

    def status(self, task_id: str) -> Optional[TaskStatus]:
        with self._condition:
            scheduled = self._tasks.get(task_id)
            return scheduled.status if scheduled else None

    def pending_count(self) -> int:
        with self._condition:
            return sum(
                1 for scheduled in self._tasks.values()
                if scheduled.status in (TaskStatus.QUEUED, TaskStatus.RUNNING)
            )

    def purge_expired(self) -> int:
        """Drop finished tasks whose retention window has passed."""
        now = self._clock()
        with self._condition:
            expired = [
                task_id for task_id, scheduled in self._tasks.items()
                if scheduled.finished_at is not None
                and now - scheduled.finished_at > self.result_ttl
            ]
            for task_id in expired:
                del self._tasks[task_id]
        if expired:
            logger.debug("task_results_purged", count=len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _worker_loop(self) -> None:
        while True:
            _, _, task_id = self._queue.get()
            try:
                if task_id is _SHUTDOWN:
                    return
                self._process(task_id)
            finally:
                self._queue.task_done()

    def _process(self, task_id: str) -> None:
        with self._condition:
            scheduled = self._tasks.get(task_id)
            if scheduled is None:
                return
            scheduled.status = TaskStatus.RUNNING

        try:
            result = self._execute(scheduled)
        except Exception as e:
            with self._condition:
                scheduled.status = TaskStatus.FAILED
                scheduled.error = str(e) or type(e).__name__
                scheduled.finished_at = self._clock()
                self._condition.notify_all()
            logger.warning("task_failed", task_id=task_id, attempts=scheduled.attempts, error=str(e))
            return

        with self._condition:
            scheduled.status = TaskStatus.COMPLETED
            scheduled.result = result
            scheduled.finished_at = self._clock()
            self._condition.notify_all()
        logger.debug("task_completed", task_id=task_id, attempts=scheduled.attempts)

    def _execute(self, scheduled: ScheduledTask) -> str:
        task = scheduled.task
        capability = validate_capabilities(task.capabilities)

        # Only transient model failures are retried
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_delay, max=30),
            retry=retry_if_exception_type(ModelCallError),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                scheduled.attempts += 1
                return self.model_service.call(
                    task.prompt,
                    task.credentials,
                    capability,
                    task.schema,
                    task.options or None,
                )
        raise ModelCallError("Model call produced no result")
