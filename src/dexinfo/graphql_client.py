from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from . import queries
from .exceptions import SubgraphError, SubgraphShapeError
from .logger import get_logger

NON_RETRYABLE_MARKERS = (
    "Cannot query field",
    "Unknown argument",
    "Unknown type",
    "does not exist",
    "Undefined field",
    "Unexpected",
)


def _block_arg(block: Optional[int]) -> Optional[Dict[str, int]]:
    return {"number": int(block)} if block is not None else None


class GraphQLClient:
    """Async client for one subgraph endpoint.

    Every request goes through ``query``: a minimum interval between calls,
    exponential backoff on transient failures and no retries for schema
    errors. Domain helpers below return plain response rows; callers decide
    what a missing row means.
    """

    def __init__(
        self,
        endpoint_url: str,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        request_rps: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = endpoint_url
        self._max_retries = max(1, max_retries)
        self._backoff = backoff_seconds
        self._client = httpx.AsyncClient(timeout=30, transport=transport)
        self._min_interval = 1.0 / max(0.1, float(request_rps))
        self._last_request_ts = 0.0
        self._throttle = asyncio.Lock()
        self._logger = get_logger("GraphQLClient")

    @property
    def url(self) -> str:
        return self._url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _wait_turn(self) -> None:
        async with self._throttle:
            now = time.monotonic()
            sleep_for = (self._last_request_ts + self._min_interval) - now
            if sleep_for > 0:
                await asyncio.sleep(sleep_for)
            self._last_request_ts = time.monotonic()

    async def query(self, name: str, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        last_exc: Optional[Exception] = None
        for attempt in range(self._max_retries):
            try:
                await self._wait_turn()
                resp = await self._client.post(self._url, json={"query": query, "variables": variables or {}})
                resp.raise_for_status()
                data = resp.json()
                if data.get("errors"):
                    msg = str(data["errors"])
                    if any(marker in msg for marker in NON_RETRYABLE_MARKERS):
                        raise SubgraphError(name, f"Non-retryable GraphQL schema error: {msg}", variables)
                    raise SubgraphError(name, f"GraphQL errors: {msg}", variables)
                if not isinstance(data.get("data"), dict):
                    raise SubgraphShapeError(name, "response carries no data object", variables)
                return data["data"]
            except SubgraphShapeError:
                raise
            except (httpx.HTTPError, SubgraphError, ValueError) as exc:
                last_exc = exc
                if isinstance(exc, SubgraphError) and "Non-retryable" in exc.message:
                    break
                self._logger.debug(f"{name} attempt {attempt + 1}/{self._max_retries} failed: {exc}")
                if attempt + 1 < self._max_retries:
                    await asyncio.sleep(self._backoff * (2 ** attempt))
        raise SubgraphError(name, f"GraphQL request failed after retries: {last_exc}", variables)

    @staticmethod
    def _collection(name: str, data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
        items = data.get(key)
        if not isinstance(items, list):
            raise SubgraphShapeError(name, f"expected list under {key!r}, got {type(items).__name__}")
        return items

    # --- pairs ---
    async def fetch_top_pair_ids(self, first: int = 300) -> List[str]:
        data = await self.query("PAIRS_CURRENT", queries.PAIRS_CURRENT, {"first": first})
        return [p["id"] for p in self._collection("PAIRS_CURRENT", data, "pairs")]

    async def fetch_pairs_bulk(self, pair_ids: Sequence[str], first: int = 1000) -> List[Dict[str, Any]]:
        data = await self.query("PAIRS_BULK", queries.PAIRS_BULK, {"allPairs": list(pair_ids), "first": first})
        return self._collection("PAIRS_BULK", data, "pairs")

    async def fetch_pairs_historical_bulk(
        self, pair_ids: Sequence[str], block: int, first: int = 1000
    ) -> List[Dict[str, Any]]:
        data = await self.query(
            "PAIRS_HISTORICAL_BULK",
            queries.PAIRS_HISTORICAL_BULK,
            {"allPairs": list(pair_ids), "first": first, "block": _block_arg(block)},
        )
        return self._collection("PAIRS_HISTORICAL_BULK", data, "pairs")

    async def fetch_pair(self, pair_id: str, block: Optional[int] = None) -> Optional[Dict[str, Any]]:
        data = await self.query("PAIR_DATA", queries.PAIR_DATA, {"id": pair_id, "block": _block_arg(block)})
        items = self._collection("PAIR_DATA", data, "pairs")
        return items[0] if items else None

    async def fetch_pair_day_datas(
        self, pair_address: str, start_time: int, skip: int = 0, first: int = 1000
    ) -> List[Dict[str, Any]]:
        data = await self.query(
            "PAIR_CHART",
            queries.PAIR_CHART,
            {"pairAddress": pair_address, "first": first, "skip": skip, "startTime": start_time},
        )
        return self._collection("PAIR_CHART", data, "pairDayDatas")

    async def fetch_pair_transactions(self, pair_address: str) -> Dict[str, List[Dict[str, Any]]]:
        data = await self.query("FILTERED_TRANSACTIONS", queries.FILTERED_TRANSACTIONS, {"allPairs": [pair_address]})
        return {key: self._collection("FILTERED_TRANSACTIONS", data, key) for key in ("mints", "burns", "swaps")}

    async def fetch_hourly_pair_rates(
        self, pair_address: str, blocks: Sequence[Tuple[int, int]]
    ) -> Dict[str, Optional[Dict[str, Any]]]:
        """``blocks`` holds (timestamp, block number); result is keyed t<timestamp>."""
        if not blocks:
            return {}
        return await self.query("HOURLY_PAIR_RATES", queries.hourly_pair_rates_query(pair_address, blocks))

    # --- tokens ---
    async def fetch_top_token_ids(self, first: int = 200) -> List[str]:
        data = await self.query("TOKENS_CURRENT", queries.TOKENS_CURRENT, {"first": first})
        return [t["id"] for t in self._collection("TOKENS_CURRENT", data, "tokens")]

    async def fetch_tokens_bulk(self, token_ids: Sequence[str], first: int = 1000) -> List[Dict[str, Any]]:
        data = await self.query("TOKENS_BULK", queries.TOKENS_BULK, {"ids": list(token_ids), "first": first})
        return self._collection("TOKENS_BULK", data, "tokens")

    async def fetch_tokens_historical_bulk(
        self, token_ids: Sequence[str], block: int, first: int = 1000
    ) -> List[Dict[str, Any]]:
        data = await self.query(
            "TOKENS_HISTORICAL_BULK",
            queries.TOKENS_HISTORICAL_BULK,
            {"ids": list(token_ids), "first": first, "block": _block_arg(block)},
        )
        return self._collection("TOKENS_HISTORICAL_BULK", data, "tokens")

    async def fetch_token(self, token_id: str, block: Optional[int] = None) -> Optional[Dict[str, Any]]:
        data = await self.query("TOKEN_DATA", queries.TOKEN_DATA, {"id": token_id, "block": _block_arg(block)})
        items = self._collection("TOKEN_DATA", data, "tokens")
        return items[0] if items else None

    # --- global ---
    async def fetch_native_currency_price(self, block: Optional[int] = None) -> Optional[float]:
        data = await self.query("NATIVE_CURRENCY_PRICE", queries.NATIVE_CURRENCY_PRICE, {"block": _block_arg(block)})
        bundles = self._collection("NATIVE_CURRENCY_PRICE", data, "bundles")
        if not bundles:
            return None
        val = bundles[0].get("nativeCurrencyPrice")
        return float(val) if val is not None else None

    async def fetch_synced_block(self) -> Optional[int]:
        data = await self.query("SUBGRAPH_META", queries.SUBGRAPH_META)
        number = ((data.get("_meta") or {}).get("block") or {}).get("number")
        return int(number) if number is not None else None

    async def fetch_liquidity_mining_campaigns(self, now: int, first: int = 1000) -> Dict[str, List[Dict[str, Any]]]:
        data = await self.query(
            "LIQUIDITY_MINING_CAMPAIGNS", queries.LIQUIDITY_MINING_CAMPAIGNS, {"now": str(now), "first": first}
        )
        return {key: self._collection("LIQUIDITY_MINING_CAMPAIGNS", data, key) for key in ("active", "expired")}

    # --- blocks subgraph ---
    async def fetch_blocks_bulk(self, timestamps: Sequence[int]) -> Dict[str, List[Dict[str, Any]]]:
        return await self.query("GET_BLOCKS", queries.blocks_bulk_query(timestamps))

    async def fetch_block(self, timestamp: int) -> Optional[int]:
        data = await self.query(
            "GET_BLOCK",
            queries.GET_BLOCK,
            {"timestampTo": int(timestamp), "timestampFrom": int(timestamp) - queries.BLOCK_SEARCH_WINDOW},
        )
        items = self._collection("GET_BLOCK", data, "blocks")
        return int(items[0]["number"]) if items else None

    async def fetch_head_block(self) -> Optional[int]:
        data = await self.query("HEAD_BLOCK", queries.HEAD_BLOCK)
        items = self._collection("HEAD_BLOCK", data, "blocks")
        return int(items[0]["number"]) if items else None
