# repomirror/core/request_cache.py
import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)


class RequestCache:
    """Memo of async results for one logical request.

    Keys are full argument tuples. The running task is stored, so concurrent
    callers with the same key share one computation. A task that fails or is
    cancelled is dropped and the next call computes again. Never share one
    instance between requests: cached tokens would outlive their expiry checks.
    """

    def __init__(self):
        self._tasks: dict[Hashable, asyncio.Future] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    async def get_or_compute(self, key: Hashable, compute: Callable[[], Awaitable[Any]]):
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(compute())
            self._tasks[key] = task
        else:
            logger.debug("Request cache hit for %s", key[0] if isinstance(key, tuple) else key)

        try:
            # one caller being cancelled must not cancel the shared computation
            return await asyncio.shield(task)
        finally:
            if task.done() and (task.cancelled() or task.exception() is not None):
                if self._tasks.get(key) is task:
                    del self._tasks[key]

    def clear(self):
        self._tasks.clear()


@contextmanager
def request_scope():
    """Yield a fresh RequestCache that is emptied when the unit of work ends."""
    cache = RequestCache()
    try:
        yield cache
    finally:
        cache.clear()
