from __future__ import annotations

import time
from typing import Dict, List, Optional, Sequence, Tuple

from .exceptions import DexInfoError
from .graphql_client import GraphQLClient
from .logger import get_logger
from .models import BlockReferenceSet

ONE_DAY = 24 * 60 * 60
ONE_WEEK = 7 * ONE_DAY


def get_timestamps_for_changes(now: Optional[int] = None) -> Tuple[int, int, int]:
    now = int(now if now is not None else time.time())
    return now - ONE_DAY, now - 2 * ONE_DAY, now - ONE_WEEK


def indexer_is_lagging(synced_block: Optional[int], head_block: Optional[int], threshold: int) -> bool:
    if not synced_block or not head_block:
        return False
    return head_block - synced_block > threshold


def _chunks(items: Sequence[int], size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class BlockResolver:
    """Maps unix timestamps to the newest block at or before each of them.

    Timestamps are sent as aliased bulk queries, ``chunk_size`` per request.
    When a bulk request fails the chunk is retried one timestamp at a time.
    A timestamp the indexer answers with no block comes back as ``None``.
    If a single lookup fails too, the error propagates: an outage is not
    "no block yet".
    """

    def __init__(self, client: GraphQLClient, chunk_size: int = 500, bulk: bool = True):
        self._client = client
        self._chunk_size = max(1, chunk_size)
        self._bulk = bulk
        self._logger = get_logger("BlockResolver")

    async def get_blocks_from_timestamps(
        self, timestamps: Sequence[int], chunk_size: Optional[int] = None
    ) -> List[Optional[int]]:
        if not timestamps:
            return []
        size = max(1, chunk_size or self._chunk_size)
        resolved: Dict[int, Optional[int]] = {}
        unique = list(dict.fromkeys(int(ts) for ts in timestamps))
        for chunk in _chunks(unique, size):
            if self._bulk:
                try:
                    resolved.update(await self._resolve_bulk(chunk))
                    continue
                except DexInfoError as exc:
                    self._logger.warning(f"bulk block lookup failed for {len(chunk)} timestamps, going one by one: {exc}")
            resolved.update(await self._resolve_each(chunk))
        return [resolved.get(int(ts)) for ts in timestamps]

    async def _resolve_bulk(self, chunk: Sequence[int]) -> Dict[int, Optional[int]]:
        data = await self._client.fetch_blocks_bulk(chunk)
        out: Dict[int, Optional[int]] = {}
        for ts in chunk:
            rows = data.get(f"t{ts}")
            if isinstance(rows, list) and rows and rows[0].get("number") is not None:
                out[int(ts)] = int(rows[0]["number"])
            else:
                out[int(ts)] = None
        return out

    async def _resolve_each(self, chunk: Sequence[int]) -> Dict[int, Optional[int]]:
        out: Dict[int, Optional[int]] = {}
        for ts in chunk:
            try:
                out[int(ts)] = await self._client.fetch_block(ts)
            except DexInfoError:
                self._logger.error(f"could not resolve block for timestamp {ts}")
                raise
        return out

    async def get_reference_blocks(
        self, now: Optional[int] = None, override: Optional[BlockReferenceSet] = None
    ) -> BlockReferenceSet:
        if override is not None:
            return override
        one_day, two_day, one_week = await self.get_blocks_from_timestamps(list(get_timestamps_for_changes(now)))
        return BlockReferenceSet(one_day=one_day, two_day=two_day, one_week=one_week)
