"""Settle-all fan-out for independent row writes."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Mapping

logger = logging.getLogger(__name__)

MAX_WORKERS = 8


@dataclass
class BatchResult:
    succeeded: List[Hashable] = field(default_factory=list)
    failed: List[Hashable] = field(default_factory=list)
    errors: Dict[Hashable, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def run_independent(tasks: Mapping[Hashable, Callable[[], object]]) -> BatchResult:
    """Run every task concurrently and classify the outcomes once all settle.

    A task fails when it raises or returns ``False``. No task is skipped
    because a sibling failed. Result lists keep the input order.
    """
    result = BatchResult()
    if not tasks:
        return result

    keys = list(tasks.keys())
    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(keys))) as pool:
        futures = {key: pool.submit(tasks[key]) for key in keys}

    for key in keys:
        future = futures[key]
        exc = future.exception()
        if exc is not None:
            logger.warning("Batch task %s failed: %s", key, exc)
            result.failed.append(key)
            result.errors[key] = str(exc) or exc.__class__.__name__
        elif future.result() is False:
            result.failed.append(key)
            result.errors[key] = "no row updated"
        else:
            result.succeeded.append(key)
    return result
