"""
Unit tests for the cache store transitions.
"""

import random
from dataclasses import replace

import pytest

from dexinfo.derivation import derive_pair_record
from dexinfo.exceptions import UnexpectedMutationError
from dexinfo.models import Candle, DailyPoint, PairSnapshot, Transactions
from dexinfo.store import ALL_NAMESPACE, TOP_NAMESPACE, CacheStore

from conftest import pair_row


def record(pair_id: str, volume: float = 1.0):
    return derive_pair_record(PairSnapshot.from_json(pair_row(pair_id, volume_usd=volume)), None, None, None, 1.0, 1)


@pytest.fixture
def store():
    return CacheStore()


class TestCacheStore:

    def test_write_does_not_touch_other_ids(self, store):
        rng = random.Random(7)
        for _ in range(20):
            ids = [f"0x{rng.getrandbits(64):016x}" for _ in range(rng.randint(2, 8))]
            before = {}
            for i in ids:
                store.put(i, record(i))
                before[i] = store.get(i)
            target = rng.choice(ids)
            store.put(target, record(target, volume=99.0))
            for i in ids:
                if i != target:
                    assert store.get(i) is before[i]
            assert store.get_record(target).one_day_volume_usd == 99.0

    def test_record_update_keeps_sub_series(self, store):
        points = [DailyPoint(date=0, daily_volume_usd=1, reserve_usd=2, utilization=50)]
        store.put_chart_data("0xA", points)
        store.put_series("0xa", "week", ([Candle(0, 1, 2)], [Candle(0, 2, 1)]))
        store.put_txns("0xa", Transactions(swaps=[{"id": "s"}]))

        store.put("0xa", record("0xa"))

        assert store.get_chart_data("0xa") == tuple(points)
        assert store.get_series("0xa", "week")[0] == (Candle(0, 1, 2),)
        assert store.get_series("0xa", "month") is None
        assert store.get_txns("0xa").swaps == [{"id": "s"}]

    def test_hourly_windows_are_independent(self, store):
        store.put_series("0xa", "week", ([Candle(0, 1, 2)], []))
        store.put_series("0xa", "month", ([Candle(0, 3, 4)], []))

        assert store.get_series("0xa", "week")[0][0].open == 1
        assert store.get_series("0xa", "month")[0][0].open == 3

    def test_entries_are_immutable(self, store):
        store.put("0xa", record("0xa"))
        entry = store.get("0xa")
        with pytest.raises(Exception):
            entry.record = None
        with pytest.raises(TypeError):
            entry.hourly_data["week"] = ([], [])

    def test_top_set_is_replaced_per_network(self, store):
        store.put_top_set("mainnet", [record("0x1"), record("0x2")])
        store.put_top_set("xdai", [record("0x3")])
        store.put_top_set("mainnet", [record("0x4")])

        assert list(store.get_top_set("mainnet")) == ["0x4"]
        assert list(store.get_top_set("xdai")) == ["0x3"]

    def test_reset_preserves_top_set(self, store):
        store.put("0xa", record("0xa"))
        store.put_chart_data("0xa", [])
        store.put_mining("active", [])
        store.put_top_set("mainnet", [record("0x1")])

        store.clear(preserve_top_set=True)

        assert store.get("0xa") is None
        assert store.get_record("0xa") is None
        assert store.get_chart_data("0xa") is None
        assert store.get_mining("active") is None
        assert list(store.get_top_set("mainnet")) == ["0x1"]

    def test_reset_without_preserving(self, store):
        store.put_top_set("mainnet", [record("0x1")])

        store.clear(preserve_top_set=False)

        assert store.get_top_set("mainnet") is None
        assert len(store.entries()) == 0

    def test_unexpected_mutation_raises(self, store):
        version = store.version
        with pytest.raises(UnexpectedMutationError):
            store.apply({"type": "UPDATE", "id": "0xa"})
        assert store.version == version

    def test_listeners_are_notified_per_namespace(self, store):
        seen = []
        unsubscribe = store.subscribe("0xa", seen.append)
        everything = []
        store.subscribe(ALL_NAMESPACE, everything.append)

        store.put("0xa", record("0xa"))
        store.put("0xb", record("0xb"))
        store.put_top_set("mainnet", [])
        unsubscribe()
        store.put("0xa", record("0xa"))

        assert seen == ["0xa"]
        assert everything == ["0xa", "0xb", TOP_NAMESPACE, "0xa"]

    def test_failing_listener_does_not_break_writes(self, store):
        def boom(_):
            raise RuntimeError("listener failure")

        store.subscribe("0xa", boom)
        store.put("0xa", record("0xa"))

        assert store.get_record("0xa") is not None

    def test_version_counts_mutations(self, store):
        start = store.version
        store.put("0xa", record("0xa"))
        store.put("0xa", replace(record("0xa"), swap_fee=30))
        assert store.version == start + 2
        assert store.get_record("0xa").swap_fee == 30
