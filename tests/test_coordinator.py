"""
Unit tests for request coalescing and fetch-if-missing decisions.
"""

import asyncio

import pytest

from dexinfo.coordinator import RequestCoalescer, StalenessCoordinator


class RecordingFetch:
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.batches = []
        self.fail = fail
        self.delay = delay

    async def __call__(self, keys):
        self.batches.append(sorted(keys))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("upstream down")
        return {k: f"value-{k}" for k in keys if k != "missing"}


class TestRequestCoalescer:

    async def test_same_tick_requests_share_one_batch(self):
        fetch = RecordingFetch()
        lane = RequestCoalescer("pair", fetch)

        futures = [lane.request(k) for k in ("a", "b", "a", "c")]
        results = await asyncio.gather(*futures)

        assert fetch.batches == [["a", "b", "c"]]
        assert results == ["value-a", "value-b", "value-a", "value-c"]
        assert futures[0] is futures[2]

    async def test_in_flight_key_is_not_fetched_again(self):
        fetch = RecordingFetch(delay=0.01)
        lane = RequestCoalescer("pair", fetch)

        first = lane.request("a")
        await asyncio.sleep(0)
        assert lane.in_flight("a")
        second = lane.request("a")

        assert first is second
        assert await second == "value-a"
        assert fetch.batches == [["a"]]
        assert not lane.in_flight("a")

    async def test_failed_batch_resolves_none(self):
        lane = RequestCoalescer("pair", RecordingFetch(fail=True))

        assert await lane.request("a") is None
        await lane.wait_idle()
        assert not lane.busy

    async def test_key_missing_from_result_resolves_none(self):
        lane = RequestCoalescer("pair", RecordingFetch())
        assert await lane.request("missing") is None


class TestStalenessCoordinator:

    @pytest.fixture
    def cache(self):
        return {}

    @pytest.fixture
    def coordinator(self, cache):
        fetch = RecordingFetch()

        async def fetch_and_store(keys):
            results = await fetch(keys)
            cache.update(results)
            return results

        coordinator = StalenessCoordinator()
        coordinator.register("pair", cache.get, fetch_and_store)
        coordinator.fetch = fetch
        return coordinator

    async def test_cached_key_is_not_fetched(self, coordinator, cache):
        cache["a"] = "cached"

        assert coordinator.trigger("pair", "a") == "cached"
        assert await coordinator.request("pair", "a") == "cached"
        await coordinator.wait_idle()

        assert coordinator.fetch.batches == []

    async def test_trigger_returns_none_then_fills(self, coordinator, cache):
        assert coordinator.trigger("pair", "a") is None
        assert coordinator.trigger("pair", "b") is None
        assert coordinator.is_stale("pair", "a")

        await coordinator.wait_idle()

        assert coordinator.fetch.batches == [["a", "b"]]
        assert coordinator.trigger("pair", "a") == "value-a"
        assert not coordinator.is_stale("pair", "b")

    async def test_concurrent_consumers_issue_one_fetch(self, coordinator):
        results = await asyncio.gather(*(coordinator.request("pair", "x") for _ in range(5)))

        assert results == ["value-x"] * 5
        assert coordinator.fetch.batches == [["x"]]
