from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from .blocks import BlockResolver
from .derivation import derive_pair_record, derive_token_record
from .exceptions import DexInfoError
from .graphql_client import GraphQLClient
from .logger import get_logger
from .models import BlockReferenceSet, PairRecord, PairSnapshot, TokenRecord, TokenSnapshot
from .multicall import Multicall, get_pairs_swap_fee

S = TypeVar("S")

HistoricalBulk = Callable[[Sequence[str], int], Awaitable[List[Dict[str, Any]]]]
SingleAtBlock = Callable[[str, Optional[int]], Awaitable[Optional[Dict[str, Any]]]]
Windows = Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]


class BulkEntityFetcher:
    """Current + 1d/2d/1w snapshots for many entities in as few round trips as possible.

    Both entry points return ``None`` when any stage fails. Callers must read
    that as "try again later", never as an entity without activity.
    """

    def __init__(
        self,
        client: GraphQLClient,
        resolver: BlockResolver,
        multicall: Optional[Multicall] = None,
        default_swap_fee: int = 25,
        page_size: int = 1000,
    ):
        self._client = client
        self._resolver = resolver
        self._multicall = multicall
        self._default_swap_fee = default_swap_fee
        self._page_size = max(1, page_size)
        self._logger = get_logger("BulkEntityFetcher")

    async def get_bulk_pair_data(
        self,
        pair_ids: Sequence[str],
        native_currency_price: Optional[float],
        blocks: Optional[BlockReferenceSet] = None,
    ) -> Optional[List[PairRecord]]:
        ids = [p.lower() for p in pair_ids]
        if not ids:
            return []
        if native_currency_price is None:
            self._logger.warning("native currency price unavailable, skipping pair fetch")
            return None
        try:
            refs = await self._resolver.get_reference_blocks(override=blocks)
            rows = await self._paged(ids, lambda chunk: self._client.fetch_pairs_bulk(chunk, first=self._page_size))
            current = [PairSnapshot.from_json(row) for row in rows]
            swap_fees = await get_pairs_swap_fee(self._multicall, [snap.id for snap in current])
            windows = await self._historical_windows(
                ids, refs,
                lambda chunk, block: self._client.fetch_pairs_historical_bulk(chunk, block, first=self._page_size),
                PairSnapshot.from_json,
            )

            async def fold(snap: PairSnapshot) -> PairRecord:
                one_day, two_day, one_week = await self._fill_missing(
                    snap.id, windows, refs, self._client.fetch_pair, PairSnapshot.from_json
                )
                return derive_pair_record(
                    snap, one_day, two_day, one_week,
                    native_currency_price, refs.one_day,
                    swap_fee=swap_fees.get(snap.id) or self._default_swap_fee,
                )

            records = await asyncio.gather(*(fold(snap) for snap in current))
            self._logger.debug(f"derived {len(records)} pair records from {len(ids)} requested ids")
            return list(records)
        except Exception as exc:  # noqa: BLE001
            self._logger.opt(exception=exc).error(f"bulk pair fetch failed for {len(ids)} pairs")
            return None

    async def get_bulk_token_data(
        self,
        token_ids: Sequence[str],
        native_currency_price: Optional[float],
        blocks: Optional[BlockReferenceSet] = None,
    ) -> Optional[List[TokenRecord]]:
        ids = [t.lower() for t in token_ids]
        if not ids:
            return []
        if native_currency_price is None:
            self._logger.warning("native currency price unavailable, skipping token fetch")
            return None
        try:
            refs = await self._resolver.get_reference_blocks(override=blocks)
            rows = await self._paged(ids, lambda chunk: self._client.fetch_tokens_bulk(chunk, first=self._page_size))
            current = [TokenSnapshot.from_json(row) for row in rows]
            windows = await self._historical_windows(
                ids, refs,
                lambda chunk, block: self._client.fetch_tokens_historical_bulk(chunk, block, first=self._page_size),
                TokenSnapshot.from_json,
            )
            old_native_price = await self._native_price_at(refs.one_day)

            async def fold(snap: TokenSnapshot) -> TokenRecord:
                one_day, two_day, one_week = await self._fill_missing(
                    snap.id, windows, refs, self._client.fetch_token, TokenSnapshot.from_json
                )
                return derive_token_record(snap, one_day, two_day, one_week, native_currency_price, old_native_price)

            records = await asyncio.gather(*(fold(snap) for snap in current))
            return list(records)
        except Exception as exc:  # noqa: BLE001
            self._logger.opt(exception=exc).error(f"bulk token fetch failed for {len(ids)} tokens")
            return None

    async def _paged(
        self, ids: Sequence[str], fetch: Callable[[Sequence[str]], Awaitable[List[Dict[str, Any]]]]
    ) -> List[Dict[str, Any]]:
        # a bulk query answers at most page_size rows
        rows: List[Dict[str, Any]] = []
        for i in range(0, len(ids), self._page_size):
            rows.extend(await fetch(ids[i:i + self._page_size]))
        return rows

    async def _historical_windows(
        self,
        ids: Sequence[str],
        refs: BlockReferenceSet,
        fetch: HistoricalBulk,
        parse: Callable[[Dict[str, Any]], S],
    ) -> Windows:
        async def one_window(block: Optional[int]) -> Dict[str, S]:
            # An unresolved block means no history for that window
            if block is None:
                return {}
            rows = await self._paged(ids, lambda chunk: fetch(chunk, block))
            return {str(row["id"]).lower(): parse(row) for row in rows}

        one_day, two_day, one_week = await asyncio.gather(*(one_window(b) for b in refs.as_tuple()))
        return one_day, two_day, one_week

    async def _fill_missing(
        self,
        entity_id: str,
        windows: Windows,
        refs: BlockReferenceSet,
        fetch_single: SingleAtBlock,
        parse: Callable[[Dict[str, Any]], S],
    ) -> Tuple[Optional[S], Optional[S], Optional[S]]:
        found: List[Optional[S]] = []
        for window, block in zip(windows, refs.as_tuple()):
            snap = window.get(entity_id)
            if snap is None and block is not None:
                row = await fetch_single(entity_id, block)
                snap = parse(row) if row else None
            found.append(snap)
        return found[0], found[1], found[2]

    async def _native_price_at(self, block: Optional[int]) -> Optional[float]:
        if block is None:
            return None
        try:
            return await self._client.fetch_native_currency_price(block=block)
        except DexInfoError as exc:
            self._logger.warning(f"native currency price at block {block} unavailable: {exc}")
            return None
