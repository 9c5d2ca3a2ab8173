from __future__ import annotations

import math
from dataclasses import replace
from typing import Optional, Tuple

from .models import PairRecord, PairSnapshot, TokenRecord, TokenRef, TokenSnapshot

DEFAULT_SWAP_FEE = 25

# Tokens whose on-chain name/symbol renders badly in tables
TOKEN_OVERRIDES = {
    "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": {"name": "Ether (Wrapped)", "symbol": "ETH"},
    "0x1416946162b1c2c871a73b07e932d2fb6c932069": {"name": "Energi", "symbol": "NRGE"},
    "0xe91d153e0b41518a2ce8dd3d7944fa863463a97d": {"name": "xDAI (Wrapped)", "symbol": "XDAI"},
}


def get_percent_change(value_now: Optional[float], value_before: Optional[float]) -> float:
    if value_now is None or value_before is None:
        return 0.0
    try:
        change = (float(value_now) - float(value_before)) / float(value_before) * 100
    except ZeroDivisionError:
        return 0.0
    return change if math.isfinite(change) else 0.0


def get_two_day_percent_change(value_now: float, value_one_day_ago: float, value_two_days_ago: float) -> Tuple[float, float]:
    """Returns (one-day delta, percent change against the previous one-day delta)."""
    current_change = float(value_now) - float(value_one_day_ago)
    previous_change = float(value_one_day_ago) - float(value_two_days_ago)
    if previous_change == 0:
        return current_change, 0.0
    adjusted = (current_change - previous_change) / previous_change * 100
    return current_change, adjusted if math.isfinite(adjusted) else 0.0


def apply_name_overrides(token: TokenRef) -> TokenRef:
    override = TOKEN_OVERRIDES.get(token.id)
    if not override:
        return token
    return replace(token, name=override["name"], symbol=override["symbol"])


def derive_pair_record(
    current: PairSnapshot,
    one_day: Optional[PairSnapshot],
    two_day: Optional[PairSnapshot],
    one_week: Optional[PairSnapshot],
    native_currency_price: Optional[float],
    one_day_block: Optional[int],
    swap_fee: Optional[int] = None,
) -> PairRecord:
    if native_currency_price is None:
        raise ValueError("native currency price is required to derive pair metrics")

    one_day_volume_usd, volume_change_usd = get_two_day_percent_change(
        current.volume_usd,
        one_day.volume_usd if one_day else 0.0,
        two_day.volume_usd if two_day else 0.0,
    )
    one_day_volume_untracked, volume_change_untracked = get_two_day_percent_change(
        current.untracked_volume_usd,
        one_day.untracked_volume_usd if one_day else 0.0,
        two_day.untracked_volume_usd if two_day else 0.0,
    )
    one_week_volume_usd = current.volume_usd - one_week.volume_usd if one_week else current.volume_usd

    # Creation after the reference block is checked before the generic
    # missing-snapshot fallback; both land on lifetime volume
    if one_day is None and one_day_block is not None and current.created_at_block_number > one_day_block:
        one_day_volume_usd = current.volume_usd
    elif one_day is None:
        one_day_volume_usd = current.volume_usd

    snapshot = replace(
        current,
        token0=apply_name_overrides(current.token0),
        token1=apply_name_overrides(current.token1),
    )
    return PairRecord(
        snapshot=snapshot,
        one_day_volume_usd=one_day_volume_usd,
        one_week_volume_usd=one_week_volume_usd,
        volume_change_usd=volume_change_usd,
        one_day_volume_untracked=one_day_volume_untracked,
        volume_change_untracked=volume_change_untracked,
        tracked_reserve_usd=current.tracked_reserve_native_currency * float(native_currency_price),
        liquidity_change_usd=get_percent_change(current.reserve_usd, one_day.reserve_usd if one_day else None),
        swap_fee=swap_fee or DEFAULT_SWAP_FEE,
    )


def derive_token_record(
    current: TokenSnapshot,
    one_day: Optional[TokenSnapshot],
    two_day: Optional[TokenSnapshot],
    one_week: Optional[TokenSnapshot],
    native_currency_price: Optional[float],
    one_day_native_currency_price: Optional[float] = None,
) -> TokenRecord:
    if native_currency_price is None:
        raise ValueError("native currency price is required to derive token metrics")
    old_native_price = one_day_native_currency_price or native_currency_price

    one_day_volume_usd, volume_change_usd = get_two_day_percent_change(
        current.trade_volume_usd,
        one_day.trade_volume_usd if one_day else 0.0,
        two_day.trade_volume_usd if two_day else 0.0,
    )
    one_day_volume_untracked, volume_change_untracked = get_two_day_percent_change(
        current.untracked_volume_usd,
        one_day.untracked_volume_usd if one_day else 0.0,
        two_day.untracked_volume_usd if two_day else 0.0,
    )
    one_day_txns, txn_change = get_two_day_percent_change(
        current.tx_count,
        one_day.tx_count if one_day else 0,
        two_day.tx_count if two_day else 0,
    )
    one_week_volume_usd = (
        current.trade_volume_usd - one_week.trade_volume_usd if one_week else current.trade_volume_usd
    )

    price_usd = current.derived_native_currency * float(native_currency_price)
    old_price_usd = one_day.derived_native_currency * float(old_native_price) if one_day else None
    total_liquidity_usd = current.total_liquidity * price_usd
    old_liquidity_usd = one_day.total_liquidity * old_price_usd if one_day and old_price_usd is not None else None

    if one_day is None:
        one_day_volume_usd = current.trade_volume_usd
        one_day_txns = float(current.tx_count)

    override = TOKEN_OVERRIDES.get(current.id)
    snapshot = replace(current, **override) if override else current
    return TokenRecord(
        snapshot=snapshot,
        price_usd=price_usd,
        price_change_usd=get_percent_change(price_usd, old_price_usd),
        one_day_volume_usd=one_day_volume_usd,
        one_week_volume_usd=one_week_volume_usd,
        volume_change_usd=volume_change_usd,
        one_day_volume_untracked=one_day_volume_untracked,
        volume_change_untracked=volume_change_untracked,
        one_day_txns=one_day_txns,
        txn_change=txn_change,
        total_liquidity_usd=total_liquidity_usd,
        liquidity_change_usd=get_percent_change(total_liquidity_usd, old_liquidity_usd),
    )
