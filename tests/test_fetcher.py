"""
Unit tests for the bulk entity fetcher.
"""

import pytest

from dexinfo.blocks import BlockResolver, get_timestamps_for_changes
from dexinfo.fetcher import BulkEntityFetcher
from dexinfo.models import BlockReferenceSet

from conftest import FakeBlocks, FakeMulticall, pair_row, token_row

NOW = 1_700_000_000
REFS = BlockReferenceSet(one_day=100, two_day=90, one_week=10)


def make_fetcher(subgraph, blocks=None, multicall=None):
    return BulkEntityFetcher(subgraph, BlockResolver(blocks or FakeBlocks()), multicall)


class TestBulkPairData:

    async def test_creation_between_reference_blocks(self, subgraph):
        day, two_days, week = get_timestamps_for_changes(NOW)
        blocks = FakeBlocks({day: 100, two_days: 90, week: 10})
        refs = await BlockResolver(blocks).get_reference_blocks(now=NOW)
        subgraph.pairs["0xabc"] = pair_row("0xabc", volume_usd=1000, created_at_block=95)
        subgraph.pairs_at[100] = {"0xabc": pair_row("0xabc", volume_usd=700, created_at_block=95)}
        subgraph.pairs_at[90] = {"0xabc": pair_row("0xabc", volume_usd=600, created_at_block=95)}

        records = await make_fetcher(subgraph, blocks).get_bulk_pair_data(["0xABC"], 2000.0, blocks=refs)

        assert len(records) == 1
        record = records[0]
        assert record.one_day_volume_usd == 300
        assert record.volume_change_usd == pytest.approx(200.0)
        assert record.one_week_volume_usd == 1000
        # the week-old snapshot was looked up once more before giving up
        assert ("fetch_pair", ("0xabc", 10)) in subgraph.calls

    async def test_fallback_single_query_fills_gap(self, subgraph):
        subgraph.pairs["0xa"] = pair_row("0xa", volume_usd=1000)
        subgraph.pairs_at[100] = {}
        subgraph.pair_single_at[("0xa", 100)] = pair_row("0xa", volume_usd=900)

        records = await make_fetcher(subgraph).get_bulk_pair_data(["0xa"], 1.0, blocks=REFS)

        assert records[0].one_day_volume_usd == 100
        assert subgraph.count("fetch_pair") == 3

    async def test_created_after_one_day_block(self, subgraph):
        subgraph.pairs["0xnew"] = pair_row("0xnew", volume_usd=321, created_at_block=150)

        records = await make_fetcher(subgraph).get_bulk_pair_data(["0xnew"], 1.0, blocks=REFS)

        assert records[0].one_day_volume_usd == 321
        assert records[0].one_week_volume_usd == 321

    async def test_historical_windows_one_query_per_block(self, subgraph):
        for pid in ("0x1", "0x2", "0x3"):
            subgraph.pairs[pid] = pair_row(pid)
            for block in REFS.as_tuple():
                subgraph.pairs_at.setdefault(block, {})[pid] = pair_row(pid)

        records = await make_fetcher(subgraph).get_bulk_pair_data(["0x1", "0x2", "0x3"], 1.0, blocks=REFS)

        assert len(records) == 3
        assert subgraph.count("fetch_pairs_bulk") == 1
        assert subgraph.count("fetch_pairs_historical_bulk") == 3
        assert subgraph.count("fetch_pair") == 0

    async def test_swap_fees_fetched_or_default(self, subgraph):
        subgraph.pairs["0x1"] = pair_row("0x1")
        subgraph.pairs["0x2"] = pair_row("0x2")
        multicall = FakeMulticall({"0x1": 30})

        records = await make_fetcher(subgraph, multicall=multicall).get_bulk_pair_data(["0x1", "0x2"], 1.0, blocks=REFS)

        fees = {r.id: r.swap_fee for r in records}
        assert fees == {"0x1": 30, "0x2": 25}
        assert len(multicall.calls) == 1

    async def test_multicall_mismatch_keeps_defaults(self, subgraph):
        subgraph.pairs["0x1"] = pair_row("0x1")
        multicall = FakeMulticall({"0x1": 30}, drop_last=True)

        records = await make_fetcher(subgraph, multicall=multicall).get_bulk_pair_data(["0x1"], 1.0, blocks=REFS)

        assert records[0].swap_fee == 25

    async def test_unresolved_block_means_no_history(self, subgraph):
        subgraph.pairs["0x1"] = pair_row("0x1", volume_usd=50)
        refs = BlockReferenceSet(one_day=None, two_day=None, one_week=None)

        records = await make_fetcher(subgraph).get_bulk_pair_data(["0x1"], 1.0, blocks=refs)

        assert records[0].one_day_volume_usd == 50
        assert subgraph.count("fetch_pairs_historical_bulk") == 0
        assert subgraph.count("fetch_pair") == 0

    async def test_stage_failure_returns_none(self, subgraph):
        subgraph.pairs["0x1"] = pair_row("0x1")
        subgraph.failing.add("fetch_pairs_historical_bulk")

        assert await make_fetcher(subgraph).get_bulk_pair_data(["0x1"], 1.0, blocks=REFS) is None

    async def test_blocks_outage_returns_none(self, subgraph):
        subgraph.pairs["0xabc"] = pair_row("0xabc", volume_usd=1000)
        subgraph.pairs_at[100] = {"0xabc": pair_row("0xabc", volume_usd=990)}
        blocks = FakeBlocks()
        blocks.bulk_fails = True
        blocks.single_fails = True

        assert await make_fetcher(subgraph, blocks).get_bulk_pair_data(["0xabc"], 1.0) is None
        assert await make_fetcher(subgraph, blocks).get_bulk_token_data(["0xt"], 1.0) is None

    async def test_large_id_sets_are_paged(self, subgraph):
        ids = [f"0x{i}" for i in range(5)]
        for pid in ids:
            subgraph.pairs[pid] = pair_row(pid)
            subgraph.pairs_at.setdefault(100, {})[pid] = pair_row(pid)
        fetcher = BulkEntityFetcher(subgraph, BlockResolver(FakeBlocks()), page_size=2)

        records = await fetcher.get_bulk_pair_data(ids, 1.0, blocks=REFS)

        assert sorted(r.id for r in records) == ids
        bulk_calls = [args for name, args in subgraph.calls if name == "fetch_pairs_bulk"]
        assert bulk_calls == [["0x0", "0x1"], ["0x2", "0x3"], ["0x4"]]
        assert subgraph.count("fetch_pairs_historical_bulk") == 9

    async def test_missing_price_returns_none(self, subgraph):
        assert await make_fetcher(subgraph).get_bulk_pair_data(["0x1"], None, blocks=REFS) is None
        assert subgraph.calls == []

    async def test_empty_ids(self, subgraph):
        assert await make_fetcher(subgraph).get_bulk_pair_data([], 1.0) == []


class TestBulkTokenData:

    async def test_token_records(self, subgraph):
        subgraph.tokens["0xt"] = token_row("0xt", volume_usd=500, derived_native=0.5, liquidity=4)
        subgraph.tokens_at[100] = {"0xt": token_row("0xt", volume_usd=400, derived_native=0.25, liquidity=4)}
        subgraph.native_price_at[100] = 1000.0

        records = await make_fetcher(subgraph).get_bulk_token_data(["0xT"], 1000.0, blocks=REFS)

        assert len(records) == 1
        assert records[0].one_day_volume_usd == 100
        assert records[0].price_usd == pytest.approx(500.0)
        assert records[0].price_change_usd == pytest.approx(100.0)

    async def test_failure_returns_none(self, subgraph):
        subgraph.failing.add("fetch_tokens_bulk")
        assert await make_fetcher(subgraph).get_bulk_token_data(["0xt"], 1.0, blocks=REFS) is None
