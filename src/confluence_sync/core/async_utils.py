"""Async utilities for bridging blocking HTTP and file I/O into the event loop."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        client = ConfluenceClient(config)
        page = await run_sync(client.get_page, page_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_worker_pool(
    items: Iterable[T],
    handler: Callable[[T], Awaitable[None]],
    max_workers: int,
) -> None:
    """Drain *items* through *handler* with at most *max_workers* in flight.

    Items are queued up front and ``min(max_workers, len(items))`` worker
    tasks pull from the queue until it is empty.  *handler* is expected to
    handle its own per-item failures; an exception escaping it cancels the
    remaining workers and propagates.

    Args:
        items: Work items, processed in queue order.
        handler: Coroutine function called once per item.
        max_workers: Upper bound on concurrent handler calls (>= 1).
    """
    queue: asyncio.Queue = asyncio.Queue()
    for item in items:
        queue.put_nowait(item)
    if queue.empty():
        return

    async def worker() -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await handler(item)
            finally:
                queue.task_done()

    count = max(1, min(max_workers, queue.qsize()))
    logger.debug("Starting %d workers for %d items", count, queue.qsize())
    tasks = [asyncio.create_task(worker()) for _ in range(count)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
