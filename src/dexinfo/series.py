from __future__ import annotations

import time
from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .blocks import BlockResolver
from .graphql_client import GraphQLClient
from .logger import get_logger
from .models import Candle, DailyPoint

ONE_HOUR = 3600
ONE_DAY = 24 * ONE_HOUR
ONE_YEAR = 365 * ONE_DAY

_logger = get_logger("Series")


def utilization(volume: float, reserve: float) -> float:
    return 0.0 if reserve == 0 else volume / reserve * 100


def to_daily_point(row: Dict[str, Any]) -> DailyPoint:
    volume = float(row.get("dailyVolumeUSD") or 0.0)
    reserve = float(row.get("reserveUSD") or 0.0)
    return DailyPoint(
        date=int(row["date"]),
        daily_volume_usd=volume,
        reserve_usd=reserve,
        utilization=utilization(volume, reserve),
    )


def fill_daily_gaps(points: Iterable[DailyPoint], until: Optional[int] = None) -> List[DailyPoint]:
    """One point per calendar day from the first known day through ``until``.

    Duplicate days keep the last point seen. Missing days get zero volume and
    the most recent known reserve. ``until`` defaults to now minus one day.
    """
    by_day: Dict[int, DailyPoint] = {}
    for point in points:
        by_day[point.day_index] = point
    if not by_day:
        return []
    if until is None:
        until = int(time.time()) - ONE_DAY

    known = sorted(by_day)
    last_day = max(known[-1], until // ONE_DAY)
    filled: List[DailyPoint] = []
    reserve = by_day[known[0]].reserve_usd
    for day in range(known[0], last_day + 1):
        point = by_day.get(day)
        if point is None:
            point = DailyPoint(
                date=day * ONE_DAY,
                daily_volume_usd=0.0,
                reserve_usd=reserve,
                utilization=0.0,
                synthesized=True,
            )
        else:
            reserve = point.reserve_usd
        filled.append(point)
    return filled


def hour_boundaries(start_time: int, end_time: Optional[int] = None, interval: int = ONE_HOUR) -> List[int]:
    if end_time is None:
        end_time = int(time.time())
    if interval <= 0:
        return []
    # the hour still in progress is left out
    return list(range(int(start_time), int(end_time) - int(interval) + 1, int(interval)))


def build_candles(samples: Sequence[Tuple[int, float, float]]) -> Tuple[List[Candle], List[Candle]]:
    """Pairs consecutive (timestamp, rate0, rate1) samples into open/close candles.

    N samples give N-1 candles per rate; the last sample only closes.
    """
    rate0: List[Candle] = []
    rate1: List[Candle] = []
    for i in range(len(samples) - 1):
        ts, open0, open1 = samples[i]
        _, close0, close1 = samples[i + 1]
        rate0.append(Candle(timestamp=int(ts), open=float(open0), close=float(close0)))
        rate1.append(Candle(timestamp=int(ts), open=float(open1), close=float(close1)))
    return rate0, rate1


async def fetch_pair_chart_data(
    client: GraphQLClient,
    pair_address: str,
    page_size: int = 1000,
    now: Optional[int] = None,
) -> Optional[List[DailyPoint]]:
    """Last year of daily data for a pair, gap-filled. ``None`` on failure."""
    now = int(now if now is not None else time.time())
    # start one second before the minute a year ago so the boundary day is included
    start_time = (now - ONE_YEAR) // 60 * 60 - 1
    rows: List[Dict[str, Any]] = []
    skip = 0
    try:
        while True:
            page = await client.fetch_pair_day_datas(pair_address, start_time, skip=skip, first=page_size)
            rows.extend(page)
            skip += page_size
            if len(page) < page_size:
                break
    except Exception as exc:  # noqa: BLE001
        _logger.opt(exception=exc).error(f"chart data fetch failed for {pair_address}")
        return None
    return fill_daily_gaps((to_daily_point(r) for r in rows), until=now - ONE_DAY)


async def fetch_hourly_rate_data(
    client: GraphQLClient,
    resolver: BlockResolver,
    pair_address: str,
    start_time: int,
    interval: int = ONE_HOUR,
    latest_block: Optional[int] = None,
    chunk_size: int = 100,
    now: Optional[int] = None,
) -> Optional[Tuple[List[Candle], List[Candle]]]:
    """Open/close candles of token0Price and token1Price from ``start_time`` to the last full hour."""
    boundaries = hour_boundaries(start_time, now, interval)
    if not boundaries:
        return [], []
    try:
        blocks = await resolver.get_blocks_from_timestamps(boundaries, chunk_size=chunk_size)
        resolved = [
            (ts, block)
            for ts, block in zip(boundaries, blocks)
            if block is not None and (latest_block is None or block <= latest_block)
        ]
        if not resolved:
            return [], []

        result: Dict[str, Any] = {}
        for i in range(0, len(resolved), chunk_size):
            result.update(await client.fetch_hourly_pair_rates(pair_address, resolved[i:i + chunk_size]))

        samples: List[Tuple[int, float, float]] = []
        for ts, _ in resolved:
            row = result.get(f"t{ts}")
            if not row:
                continue
            samples.append((ts, float(row.get("token0Price") or 0.0), float(row.get("token1Price") or 0.0)))
        return build_candles(samples)
    except Exception as exc:  # noqa: BLE001
        _logger.opt(exception=exc).error(f"hourly rate fetch failed for {pair_address}")
        return None


def daily_frame(points: Sequence[DailyPoint]) -> pd.DataFrame:
    if not points:
        return pd.DataFrame(columns=["date", "daily_volume_usd", "reserve_usd", "utilization", "synthesized"])
    df = pd.DataFrame([asdict(p) for p in points])
    df["date"] = pd.to_datetime(df["date"], unit="s", utc=True)
    return df


def candle_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    if not candles:
        return pd.DataFrame(columns=["timestamp", "open", "close"])
    df = pd.DataFrame([asdict(c) for c in candles])
    df["timestamp"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
    return df
