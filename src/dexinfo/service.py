from __future__ import annotations

import asyncio
import time
from typing import Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from .blocks import BlockResolver, indexer_is_lagging
from .config import AppConfig, NetworkConfig
from .coordinator import StalenessCoordinator
from .exceptions import DexInfoError
from .fetcher import BulkEntityFetcher
from .graphql_client import GraphQLClient
from .logger import get_logger
from .mining import STATUSES, fetch_mining_campaigns
from .models import BlockReferenceSet, DailyPoint, MiningCampaign, PairRecord, TokenRecord, Transactions
from .multicall import Multicall, Web3Multicall
from .series import ONE_DAY, ONE_HOUR, fetch_hourly_rate_data, fetch_pair_chart_data
from .store import CacheStore, HourlySeries
from .token_icons import TokenIconCache

WEEK = "week"
MONTH = "month"
ALL_TIME = "all_time"
# First hour with pair data on the oldest deployment
ALL_TIME_START = 1589760000
TIME_WINDOWS = {WEEK: 7 * ONE_DAY, MONTH: 30 * ONE_DAY, ALL_TIME: None}


def window_start(window: str, now: Optional[int] = None) -> int:
    now = int(now if now is not None else time.time())
    span = TIME_WINDOWS.get(window)
    if span is None:
        return ALL_TIME_START
    return (now - span) // ONE_HOUR * ONE_HOUR


class AnalyticsService:
    """Read API used by pages and charts.

    ``get_*`` calls return what the cache holds right now (or ``None``) and
    schedule a background fetch for anything missing; they must run inside
    the event loop. ``ensure_*`` calls await the fetch instead.
    """

    def __init__(
        self,
        cfg: AppConfig,
        client: Optional[GraphQLClient] = None,
        blocks_client: Optional[GraphQLClient] = None,
        multicall: Optional[Multicall] = None,
        store: Optional[CacheStore] = None,
        icons: Optional[TokenIconCache] = None,
    ):
        self._cfg = cfg
        self._logger = get_logger("AnalyticsService")
        self.store = store or CacheStore()
        self.icons = icons or TokenIconCache(cfg.networks)
        self._network = cfg.network
        self._generation = 0
        self._native_price: Optional[float] = None
        self._synced_block: Optional[int] = None
        self._head_block: Optional[int] = None
        self._top_refresh: Optional[asyncio.Task] = None
        self._bind(cfg.current_network(), client, blocks_client, multicall)

        self.coordinator = StalenessCoordinator()
        self.coordinator.register("pair", self.store.get_record, self._fetch_pairs)
        self.coordinator.register("token", self.store.get_record, self._fetch_tokens)
        self.coordinator.register("chart", self.store.get_chart_data, self._fetch_charts)
        self.coordinator.register("hourly", lambda key: self.store.get_series(*key), self._fetch_hourly)
        self.coordinator.register("txns", self.store.get_txns, self._fetch_txns)
        self.coordinator.register("mining", self.store.get_mining, self._fetch_mining)

    def _bind(
        self,
        net: NetworkConfig,
        client: Optional[GraphQLClient] = None,
        blocks_client: Optional[GraphQLClient] = None,
        multicall: Optional[Multicall] = None,
    ) -> None:
        cfg = self._cfg
        self.client = client or GraphQLClient(
            net.subgraph_url, max_retries=cfg.max_retries, backoff_seconds=cfg.backoff_seconds, request_rps=cfg.request_rps
        )
        self.blocks_client = blocks_client or GraphQLClient(
            net.blocks_subgraph_url, max_retries=cfg.max_retries, backoff_seconds=cfg.backoff_seconds, request_rps=cfg.request_rps
        )
        self.multicall = multicall if multicall is not None else Web3Multicall(net.rpc_url, net.multicall_address)
        self.resolver = BlockResolver(self.blocks_client, chunk_size=cfg.block_chunk_size)
        self.fetcher = BulkEntityFetcher(
            self.client, self.resolver, self.multicall,
            default_swap_fee=cfg.default_swap_fee, page_size=cfg.entity_page_size,
        )

    @property
    def network(self) -> str:
        return self._network

    @property
    def latest_blocks(self) -> Tuple[Optional[int], Optional[int]]:
        return self._synced_block, self._head_block

    async def wait_idle(self) -> None:
        await self.coordinator.wait_idle()
        if self._top_refresh is not None:
            await asyncio.gather(self._top_refresh, return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_idle()
        await self.client.aclose()
        await self.blocks_client.aclose()
        await self.icons.aclose()

    # --- global inputs ---
    async def ensure_native_price(self, refresh: bool = False) -> Optional[float]:
        if self._native_price is None or refresh:
            try:
                price = await self.client.fetch_native_currency_price()
            except DexInfoError as exc:
                self._logger.warning(f"native currency price unavailable: {exc}")
                return self._native_price
            if price is not None:
                self._native_price = price
        return self._native_price

    async def refresh_latest_blocks(self) -> Tuple[Optional[int], Optional[int]]:
        try:
            synced, head = await asyncio.gather(self.client.fetch_synced_block(), self.blocks_client.fetch_head_block())
        except DexInfoError as exc:
            self._logger.warning(f"could not refresh latest blocks: {exc}")
            return self.latest_blocks
        self._synced_block, self._head_block = synced, head
        return synced, head

    def indexer_lagging(self) -> bool:
        threshold = self._cfg.networks[self._network].block_difference_threshold
        return indexer_is_lagging(self._synced_block, self._head_block, threshold)

    def _override_blocks(self) -> Optional[BlockReferenceSet]:
        if self.indexer_lagging() and self._synced_block is not None:
            return BlockReferenceSet.pinned(self._synced_block)
        return None

    # --- batch fetchers behind the coordinator ---
    def _still_current(self, generation: int) -> bool:
        if generation != self._generation:
            self._logger.info("dropping result fetched before a network switch")
            return False
        return True

    async def _fetch_pairs(self, ids: List[Hashable]) -> Optional[Dict[Hashable, PairRecord]]:
        generation = self._generation
        price = await self.ensure_native_price()
        records = await self.fetcher.get_bulk_pair_data([str(i) for i in ids], price, blocks=self._override_blocks())
        if records is None or not self._still_current(generation):
            return None
        for record in records:
            self.store.put(record.id, record)
        return {record.id: record for record in records}

    async def _fetch_tokens(self, ids: List[Hashable]) -> Optional[Dict[Hashable, TokenRecord]]:
        generation = self._generation
        price = await self.ensure_native_price()
        records = await self.fetcher.get_bulk_token_data([str(i) for i in ids], price, blocks=self._override_blocks())
        if records is None or not self._still_current(generation):
            return None
        for record in records:
            self.store.put(record.id, record)
        return {record.id: record for record in records}

    async def _fetch_charts(self, ids: List[Hashable]) -> Dict[Hashable, Tuple[DailyPoint, ...]]:
        generation = self._generation
        results = await asyncio.gather(
            *(fetch_pair_chart_data(self.client, str(i), page_size=self._cfg.day_data_page_size) for i in ids)
        )
        out = {}
        for key, points in zip(ids, results):
            if points is None or not self._still_current(generation):
                continue
            self.store.put_chart_data(str(key), points)
            out[key] = self.store.get_chart_data(str(key))
        return out

    async def _fetch_hourly(self, keys: List[Hashable]) -> Dict[Hashable, HourlySeries]:
        generation = self._generation
        latest_block = self._synced_block

        async def one(key):
            pair_id, window = key
            return await fetch_hourly_rate_data(
                self.client, self.resolver, pair_id, window_start(window),
                latest_block=latest_block, chunk_size=self._cfg.hourly_block_chunk_size,
            )

        results = await asyncio.gather(*(one(k) for k in keys))
        out = {}
        for key, series in zip(keys, results):
            if series is None or not self._still_current(generation):
                continue
            self.store.put_series(key[0], key[1], series)
            out[key] = self.store.get_series(key[0], key[1])
        return out

    async def _fetch_txns(self, ids: List[Hashable]) -> Dict[Hashable, Transactions]:
        generation = self._generation

        async def one(pair_id):
            try:
                return Transactions(**await self.client.fetch_pair_transactions(pair_id))
            except DexInfoError as exc:
                self._logger.warning(f"transactions for {pair_id} unavailable: {exc}")
                return None

        results = await asyncio.gather(*(one(str(i)) for i in ids))
        out = {}
        for key, txns in zip(ids, results):
            if txns is None or not self._still_current(generation):
                continue
            self.store.put_txns(str(key), txns)
            out[key] = txns
        return out

    async def _fetch_mining(self, statuses: List[Hashable]) -> Optional[Dict[Hashable, Tuple[MiningCampaign, ...]]]:
        generation = self._generation
        price = await self.ensure_native_price()
        campaigns = await fetch_mining_campaigns(self.client, price)
        if campaigns is None or not self._still_current(generation):
            return None
        # one query answers every status
        for status, items in campaigns.items():
            self.store.put_mining(status, items)
        return {status: self.store.get_mining(status) for status in campaigns}

    # --- non-blocking reads ---
    def get_entity(self, entity_id: str) -> Optional[PairRecord]:
        return self.coordinator.trigger("pair", entity_id.lower())

    def get_token(self, token_id: str) -> Optional[TokenRecord]:
        return self.coordinator.trigger("token", token_id.lower())

    def get_bulk_entities(self, ids: Sequence[str]) -> Dict[str, PairRecord]:
        out = {}
        for entity_id in ids:
            record = self.get_entity(entity_id)
            if record is not None:
                out[record.id] = record
        return out

    def get_bulk_tokens(self, ids: Sequence[str]) -> Dict[str, TokenRecord]:
        out = {}
        for token_id in ids:
            record = self.get_token(token_id)
            if record is not None:
                out[record.id] = record
        return out

    def get_daily_series(self, entity_id: str) -> Optional[Tuple[DailyPoint, ...]]:
        return self.coordinator.trigger("chart", entity_id.lower())

    def get_hourly_series(self, entity_id: str, window: str) -> Optional[HourlySeries]:
        return self.coordinator.trigger("hourly", (entity_id.lower(), window))

    def get_transactions(self, entity_id: str) -> Optional[Transactions]:
        return self.coordinator.trigger("txns", entity_id.lower())

    def get_mining_campaigns(self) -> Dict[str, Optional[Tuple[MiningCampaign, ...]]]:
        return {status: self.coordinator.trigger("mining", status) for status in STATUSES}

    def get_top_entities(self, network: Optional[str] = None) -> Mapping[str, PairRecord]:
        network = network or self._network
        top = self.store.get_top_set(network)
        if top is None and network == self._network and (self._top_refresh is None or self._top_refresh.done()):
            self._top_refresh = asyncio.get_running_loop().create_task(self.refresh_top_pairs())
        return top or {}

    # --- awaitable reads ---
    async def ensure_entity(self, entity_id: str) -> Optional[PairRecord]:
        return await asyncio.shield(self.coordinator.request("pair", entity_id.lower()))

    async def ensure_bulk_entities(self, ids: Sequence[str]) -> Dict[str, PairRecord]:
        records = await asyncio.gather(*(self.ensure_entity(i) for i in ids))
        return {r.id: r for r in records if r is not None}

    async def ensure_bulk_tokens(self, ids: Sequence[str]) -> Dict[str, TokenRecord]:
        futures = [asyncio.shield(self.coordinator.request("token", i.lower())) for i in ids]
        records = await asyncio.gather(*futures)
        return {r.id: r for r in records if r is not None}

    async def ensure_daily_series(self, entity_id: str) -> Optional[Tuple[DailyPoint, ...]]:
        return await asyncio.shield(self.coordinator.request("chart", entity_id.lower()))

    async def ensure_hourly_series(self, entity_id: str, window: str) -> Optional[HourlySeries]:
        return await asyncio.shield(self.coordinator.request("hourly", (entity_id.lower(), window)))

    async def ensure_transactions(self, entity_id: str) -> Optional[Transactions]:
        return await asyncio.shield(self.coordinator.request("txns", entity_id.lower()))

    async def ensure_mining_campaigns(self) -> Dict[str, Optional[Tuple[MiningCampaign, ...]]]:
        futures = [asyncio.shield(self.coordinator.request("mining", status)) for status in STATUSES]
        return dict(zip(STATUSES, await asyncio.gather(*futures)))

    async def ensure_top_entities(self) -> Mapping[str, PairRecord]:
        top = self.store.get_top_set(self._network)
        if top is None:
            await self.refresh_top_pairs()
            top = self.store.get_top_set(self._network)
        return top or {}

    # --- refresh cycle ---
    async def refresh_top_pairs(self) -> Optional[List[PairRecord]]:
        """Top pairs by reserve for the current network, replacing its partition."""
        generation = self._generation
        network = self._network
        price = await self.ensure_native_price(refresh=True)
        if price is None:
            return None
        await self.refresh_latest_blocks()
        try:
            ids = await self.client.fetch_top_pair_ids(self._cfg.top_pairs_count)
        except DexInfoError as exc:
            self._logger.opt(exception=exc).error("top pair list unavailable")
            return None
        overrides = self._override_blocks()
        if overrides is not None:
            self._logger.warning(
                f"indexer synced to {self._synced_block} of {self._head_block}, pinning history to synced block"
            )
        else:
            try:
                overrides = await self.resolver.get_reference_blocks()
            except DexInfoError as exc:
                self._logger.opt(exception=exc).error("reference blocks unavailable, skipping top pair refresh")
                return None
        records = await self.fetcher.get_bulk_pair_data(ids, price, blocks=overrides)
        if records is None or not self._still_current(generation):
            return None
        self.store.put_top_set(network, records)
        self._logger.info(f"refreshed {len(records)} top pairs on {network}")
        return records

    def reset_cache(self, preserve_top_set: bool = True) -> None:
        self.store.clear(preserve_top_set=preserve_top_set)

    async def switch_network(self, network: str) -> None:
        if network not in self._cfg.networks:
            raise ValueError(f"unknown network {network!r}")
        if network == self._network:
            return
        await self.client.aclose()
        await self.blocks_client.aclose()
        self._generation += 1
        self._network = network
        self._native_price = None
        self._synced_block = self._head_block = None
        self._bind(self._cfg.networks[network])
        self.reset_cache(preserve_top_set=True)
        self._logger.info(f"switched to {network}")

    async def token_icon(self, address: str) -> Optional[str]:
        return await self.icons.get_icon(self._network, address)
