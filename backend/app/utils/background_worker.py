"""Thread-based background worker for fire-and-forget side effects.

Jobs are retried with linear backoff; a job that exhausts its retries lands
in ``dead_letter_queue`` and never propagates to the request that queued it.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="bg-worker")
_tasks: Dict[str, Future] = {}
_tasks_lock = threading.Lock()
# Each entry: (function name, args, kwargs, exception)
dead_letter_queue: deque[Tuple[str, tuple, dict, Exception]] = deque(maxlen=500)


def _run_with_retry(
    func: Callable[..., Any], *args: Any, retries: int = 3, backoff: float = 1.0, **kwargs: Any
) -> Any:
    for attempt in range(1, retries + 1):
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            logger.error(
                "Background task %s failed on attempt %s/%s: %s",
                func.__name__,
                attempt,
                retries,
                exc,
            )
            if attempt == retries:
                dead_letter_queue.append((func.__name__, args, kwargs, exc))
                return None
            time.sleep(backoff * attempt)
    return None


def _forget(task_id: str) -> Callable[[Future], None]:
    def _done(_future: Future) -> None:
        with _tasks_lock:
            _tasks.pop(task_id, None)

    return _done


def enqueue(
    func: Callable[..., Any], *args: Any, retries: int = 3, backoff: float = 1.0, **kwargs: Any
) -> str:
    """Submit ``func`` to the worker and return a task id without waiting."""

    task_id = str(uuid.uuid4())
    future = _executor.submit(_run_with_retry, func, *args, retries=retries, backoff=backoff, **kwargs)
    with _tasks_lock:
        _tasks[task_id] = future
    future.add_done_callback(_forget(task_id))
    return task_id


def drain(timeout: float = 5.0) -> None:
    """Block until currently queued jobs finish or ``timeout`` elapses."""
    with _tasks_lock:
        pending = list(_tasks.values())
    if pending:
        wait(pending, timeout=timeout)


def shutdown() -> None:
    _executor.shutdown(wait=False, cancel_futures=True)
