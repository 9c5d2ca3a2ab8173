from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Mapping, Optional, Set

from .logger import get_logger

BatchFetch = Callable[[List[Hashable]], Awaitable[Optional[Mapping[Hashable, Any]]]]
Lookup = Callable[[Hashable], Any]


class RequestCoalescer:
    """Collects keys requested during one loop tick and fetches them as one batch.

    A key already in flight is not requested again; its callers share the
    pending future. Futures resolve to whatever the batch returned for the
    key, or ``None`` when the batch failed or did not cover it.
    """

    def __init__(self, name: str, batch_fetch: BatchFetch):
        self._name = name
        self._batch_fetch = batch_fetch
        self._pending: Dict[Hashable, asyncio.Future] = {}
        self._in_flight: Dict[Hashable, asyncio.Future] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._flush_scheduled = False
        self._logger = get_logger(f"RequestCoalescer|{name}")

    def in_flight(self, key: Hashable) -> bool:
        return key in self._pending or key in self._in_flight

    @property
    def busy(self) -> bool:
        return bool(self._pending or self._tasks)

    def request(self, key: Hashable) -> asyncio.Future:
        existing = self._pending.get(key) or self._in_flight.get(key)
        if existing is not None:
            return existing
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending[key] = future
        if not self._flush_scheduled:
            self._flush_scheduled = True
            loop.call_soon(self._flush)
        return future

    def _flush(self) -> None:
        self._flush_scheduled = False
        if not self._pending:
            return
        batch = self._pending
        self._pending = {}
        self._in_flight.update(batch)
        task = asyncio.get_running_loop().create_task(self._run(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, batch: Dict[Hashable, asyncio.Future]) -> None:
        keys = list(batch)
        results: Optional[Mapping[Hashable, Any]] = None
        try:
            self._logger.debug(f"fetching {len(keys)} coalesced keys")
            results = await self._batch_fetch(keys)
        except Exception as exc:  # noqa: BLE001
            self._logger.opt(exception=exc).error(f"batch fetch for {len(keys)} keys failed")
        finally:
            for key, future in batch.items():
                self._in_flight.pop(key, None)
                if not future.done():
                    future.set_result(results.get(key) if results else None)

    async def wait_idle(self) -> None:
        while self._pending or self._tasks:
            if self._pending:
                await asyncio.sleep(0)
                continue
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class StalenessCoordinator:
    """Per-key fetch-if-missing decisions over the cache store.

    Each kind of data (records, chart series, hourly series, ...) is a lane
    with a lookup into the store and a batch fetcher. A fetch is issued iff
    the lookup finds nothing for that exact key.
    """

    def __init__(self):
        self._lookups: Dict[str, Lookup] = {}
        self._lanes: Dict[str, RequestCoalescer] = {}

    def register(self, kind: str, lookup: Lookup, batch_fetch: BatchFetch) -> None:
        self._lookups[kind] = lookup
        self._lanes[kind] = RequestCoalescer(kind, batch_fetch)

    def is_stale(self, kind: str, key: Hashable) -> bool:
        return self._lookups[kind](key) is None

    def request(self, kind: str, key: Hashable) -> asyncio.Future:
        """Future for ``key``; already resolved when the store has it."""
        cached = self._lookups[kind](key)
        if cached is not None:
            future = asyncio.get_running_loop().create_future()
            future.set_result(cached)
            return future
        return self._lanes[kind].request(key)

    def trigger(self, kind: str, key: Hashable) -> Any:
        """Cached value now; schedules a background fetch when it is missing."""
        cached = self._lookups[kind](key)
        if cached is None:
            self._lanes[kind].request(key)
        return cached

    async def wait_idle(self) -> None:
        # a batch in one lane may queue work in another
        while any(lane.busy for lane in self._lanes.values()):
            for lane in self._lanes.values():
                await lane.wait_idle()
