"""
Pytest configuration and shared fakes.

The fakes stand in for the swap subgraph, the blocks subgraph and the
multicall contract. They answer from in-memory tables and record every call
so tests can assert on round trips.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from eth_abi import encode

from dexinfo.config import AppConfig, default_networks
from dexinfo.exceptions import SubgraphError


def pair_row(
    pair_id: str,
    volume_usd: float = 0.0,
    reserve_usd: float = 0.0,
    untracked_volume_usd: float = 0.0,
    tracked_reserve_native: float = 0.0,
    created_at_block: int = 1,
    symbols: Tuple[str, str] = ("AAA", "BBB"),
) -> Dict[str, Any]:
    return {
        "id": pair_id,
        "token0": {"id": "0x" + "a" * 40, "symbol": symbols[0], "name": symbols[0], "decimals": "18"},
        "token1": {"id": "0x" + "b" * 40, "symbol": symbols[1], "name": symbols[1], "decimals": "18"},
        "reserve0": "10",
        "reserve1": "20",
        "reserveUSD": str(reserve_usd),
        "reserveNativeCurrency": "5",
        "trackedReserveNativeCurrency": str(tracked_reserve_native),
        "totalSupply": "100",
        "volumeUSD": str(volume_usd),
        "untrackedVolumeUSD": str(untracked_volume_usd),
        "token0Price": "2",
        "token1Price": "0.5",
        "txCount": "7",
        "createdAtBlockNumber": str(created_at_block),
        "createdAtTimestamp": "1600000000",
    }


def token_row(token_id: str, volume_usd: float = 0.0, derived_native: float = 1.0, liquidity: float = 0.0, txs: int = 0):
    return {
        "id": token_id,
        "symbol": "TKN",
        "name": "Token",
        "derivedNativeCurrency": str(derived_native),
        "tradeVolume": "0",
        "tradeVolumeUSD": str(volume_usd),
        "untrackedVolumeUSD": "0",
        "totalLiquidity": str(liquidity),
        "txCount": str(txs),
    }


class FakeSubgraph:
    def __init__(self):
        self.pairs: Dict[str, Dict[str, Any]] = {}
        self.pairs_at: Dict[int, Dict[str, Dict[str, Any]]] = {}
        # rows only the single-entity query knows about
        self.pair_single_at: Dict[Tuple[str, int], Dict[str, Any]] = {}
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self.tokens_at: Dict[int, Dict[str, Dict[str, Any]]] = {}
        self.day_datas: Dict[str, List[Dict[str, Any]]] = {}
        self.rates: Dict[int, Dict[str, Any]] = {}
        self.txns: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        self.campaigns: Dict[str, List[Dict[str, Any]]] = {"active": [], "expired": []}
        self.native_price: Optional[float] = 2000.0
        self.native_price_at: Dict[int, float] = {}
        self.synced_block: Optional[int] = None
        self.failing: set = set()
        self.calls: List[Tuple[str, Any]] = []

    def _record(self, name: str, args: Any = None) -> None:
        self.calls.append((name, args))
        if name in self.failing:
            raise SubgraphError(name, "GraphQL request failed after retries: boom")

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def aclose(self):
        pass

    async def fetch_top_pair_ids(self, first: int = 300) -> List[str]:
        self._record("fetch_top_pair_ids", first)
        ranked = sorted(self.pairs.values(), key=lambda r: float(r["reserveUSD"]), reverse=True)
        return [r["id"] for r in ranked[:first]]

    async def fetch_pairs_bulk(self, pair_ids: Sequence[str], first: int = 1000):
        self._record("fetch_pairs_bulk", list(pair_ids))
        return [self.pairs[p] for p in pair_ids if p in self.pairs]

    async def fetch_pairs_historical_bulk(self, pair_ids: Sequence[str], block: int, first: int = 1000):
        self._record("fetch_pairs_historical_bulk", block)
        at = self.pairs_at.get(block, {})
        return [at[p] for p in pair_ids if p in at]

    async def fetch_pair(self, pair_id: str, block: Optional[int] = None):
        self._record("fetch_pair", (pair_id, block))
        return self.pair_single_at.get((pair_id, block))

    async def fetch_pair_day_datas(self, pair_address: str, start_time: int, skip: int = 0, first: int = 1000):
        self._record("fetch_pair_day_datas", (pair_address, skip))
        rows = [r for r in self.day_datas.get(pair_address, []) if int(r["date"]) > start_time]
        return rows[skip:skip + first]

    async def fetch_pair_transactions(self, pair_address: str):
        self._record("fetch_pair_transactions", pair_address)
        return self.txns.get(pair_address, {"mints": [], "burns": [], "swaps": []})

    async def fetch_hourly_pair_rates(self, pair_address: str, blocks: Sequence[Tuple[int, int]]):
        self._record("fetch_hourly_pair_rates", list(blocks))
        return {f"t{ts}": self.rates.get(ts) for ts, _ in blocks}

    async def fetch_tokens_bulk(self, token_ids: Sequence[str], first: int = 1000):
        self._record("fetch_tokens_bulk", list(token_ids))
        return [self.tokens[t] for t in token_ids if t in self.tokens]

    async def fetch_tokens_historical_bulk(self, token_ids: Sequence[str], block: int, first: int = 1000):
        self._record("fetch_tokens_historical_bulk", block)
        at = self.tokens_at.get(block, {})
        return [at[t] for t in token_ids if t in at]

    async def fetch_token(self, token_id: str, block: Optional[int] = None):
        self._record("fetch_token", (token_id, block))
        return None

    async def fetch_native_currency_price(self, block: Optional[int] = None) -> Optional[float]:
        self._record("fetch_native_currency_price", block)
        if block is not None:
            return self.native_price_at.get(block)
        return self.native_price

    async def fetch_synced_block(self) -> Optional[int]:
        self._record("fetch_synced_block")
        return self.synced_block

    async def fetch_liquidity_mining_campaigns(self, now: int, first: int = 1000):
        self._record("fetch_liquidity_mining_campaigns", now)
        return self.campaigns


class FakeBlocks:
    """Blocks subgraph answering from a timestamp -> block table."""

    def __init__(self, blocks: Optional[Dict[int, int]] = None, head: Optional[int] = None):
        self.blocks: Dict[int, int] = dict(blocks or {})
        self.head = head
        self.bulk_fails = False
        self.single_fails = False
        self.calls: List[Tuple[str, Any]] = []

    async def aclose(self):
        pass

    async def fetch_blocks_bulk(self, timestamps: Sequence[int]):
        self.calls.append(("fetch_blocks_bulk", list(timestamps)))
        if self.bulk_fails:
            raise SubgraphError("GET_BLOCKS", "GraphQL request failed after retries: timeout")
        return {f"t{ts}": ([{"number": str(self.blocks[ts])}] if ts in self.blocks else []) for ts in timestamps}

    async def fetch_block(self, timestamp: int) -> Optional[int]:
        self.calls.append(("fetch_block", timestamp))
        if self.single_fails:
            raise SubgraphError("GET_BLOCK", "GraphQL request failed after retries: timeout")
        return self.blocks.get(timestamp)

    async def fetch_head_block(self) -> Optional[int]:
        self.calls.append(("fetch_head_block", None))
        return self.head


class FakeMulticall:
    def __init__(self, fees: Optional[Dict[str, int]] = None, drop_last: bool = False):
        self.fees = dict(fees or {})
        self.drop_last = drop_last
        self.calls: List[List[Tuple[str, bytes]]] = []

    async def aggregate(self, calls):
        self.calls.append(list(calls))
        out = [encode(["uint32"], [self.fees[target]]) if target in self.fees else b"" for target, _ in calls]
        return out[:-1] if self.drop_last else out


@pytest.fixture
def subgraph():
    return FakeSubgraph()


@pytest.fixture
def blocks_client():
    return FakeBlocks()


@pytest.fixture
def multicall():
    return FakeMulticall()


@pytest.fixture
def app_config():
    return AppConfig(
        network="mainnet",
        networks=default_networks(),
        request_rps=100.0,
        max_retries=1,
        backoff_seconds=0.0,
        refresh_interval_seconds=60,
        entity_page_size=1000,
        block_chunk_size=500,
        hourly_block_chunk_size=100,
        day_data_page_size=1000,
        default_swap_fee=25,
        log_level="DEBUG",
        top_pairs_count=10,
    )
