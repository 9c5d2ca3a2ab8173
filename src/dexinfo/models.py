from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


def to_float(val: Any) -> float:
    # Subgraph decimals arrive as strings; absent values count as zero
    if val is None or val == "":
        return 0.0
    try:
        return float(val)
    except (TypeError, ValueError):
        return 0.0


def to_int(val: Any) -> int:
    if val is None or val == "":
        return 0
    try:
        return int(float(val))
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class TokenRef:
    id: str
    symbol: str
    name: str
    decimals: int = 18
    derived_native_currency: float = 0.0
    total_liquidity: float = 0.0

    @staticmethod
    def from_json(data: Optional[Dict[str, Any]]) -> "TokenRef":
        data = data or {}
        return TokenRef(
            id=str(data.get("id") or "").lower(),
            symbol=str(data.get("symbol") or ""),
            name=str(data.get("name") or ""),
            decimals=to_int(data.get("decimals") or 18),
            derived_native_currency=to_float(data.get("derivedNativeCurrency")),
            total_liquidity=to_float(data.get("totalLiquidity")),
        )


@dataclass(frozen=True)
class PairSnapshot:
    """Pair fields as of a single block. Never mutated after parsing."""

    id: str
    token0: TokenRef
    token1: TokenRef
    reserve0: float
    reserve1: float
    reserve_usd: float
    reserve_native_currency: float
    tracked_reserve_native_currency: float
    total_supply: float
    volume_usd: float
    untracked_volume_usd: float
    token0_price: float
    token1_price: float
    tx_count: int
    created_at_block_number: int
    created_at_timestamp: int

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "PairSnapshot":
        return PairSnapshot(
            id=str(data["id"]).lower(),
            token0=TokenRef.from_json(data.get("token0")),
            token1=TokenRef.from_json(data.get("token1")),
            reserve0=to_float(data.get("reserve0")),
            reserve1=to_float(data.get("reserve1")),
            reserve_usd=to_float(data.get("reserveUSD")),
            reserve_native_currency=to_float(data.get("reserveNativeCurrency")),
            tracked_reserve_native_currency=to_float(data.get("trackedReserveNativeCurrency")),
            total_supply=to_float(data.get("totalSupply")),
            volume_usd=to_float(data.get("volumeUSD")),
            untracked_volume_usd=to_float(data.get("untrackedVolumeUSD")),
            token0_price=to_float(data.get("token0Price")),
            token1_price=to_float(data.get("token1Price")),
            tx_count=to_int(data.get("txCount")),
            created_at_block_number=to_int(data.get("createdAtBlockNumber")),
            created_at_timestamp=to_int(data.get("createdAtTimestamp")),
        )


@dataclass(frozen=True)
class TokenSnapshot:
    id: str
    symbol: str
    name: str
    derived_native_currency: float
    trade_volume: float
    trade_volume_usd: float
    untracked_volume_usd: float
    total_liquidity: float
    tx_count: int

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "TokenSnapshot":
        return TokenSnapshot(
            id=str(data["id"]).lower(),
            symbol=str(data.get("symbol") or ""),
            name=str(data.get("name") or ""),
            derived_native_currency=to_float(data.get("derivedNativeCurrency")),
            trade_volume=to_float(data.get("tradeVolume")),
            trade_volume_usd=to_float(data.get("tradeVolumeUSD")),
            untracked_volume_usd=to_float(data.get("untrackedVolumeUSD")),
            total_liquidity=to_float(data.get("totalLiquidity")),
            tx_count=to_int(data.get("txCount")),
        )


@dataclass(frozen=True)
class PairRecord:
    snapshot: PairSnapshot
    one_day_volume_usd: float
    one_week_volume_usd: float
    volume_change_usd: float
    one_day_volume_untracked: float
    volume_change_untracked: float
    tracked_reserve_usd: float
    liquidity_change_usd: float
    swap_fee: int = 25

    @property
    def id(self) -> str:
        return self.snapshot.id

    @property
    def token0(self) -> TokenRef:
        return self.snapshot.token0

    @property
    def token1(self) -> TokenRef:
        return self.snapshot.token1

    @property
    def reserve_usd(self) -> float:
        return self.snapshot.reserve_usd

    @property
    def label(self) -> str:
        return f"{self.token0.symbol or '?'}-{self.token1.symbol or '?'}"


@dataclass(frozen=True)
class TokenRecord:
    snapshot: TokenSnapshot
    price_usd: float
    price_change_usd: float
    one_day_volume_usd: float
    one_week_volume_usd: float
    volume_change_usd: float
    one_day_volume_untracked: float
    volume_change_untracked: float
    one_day_txns: float
    txn_change: float
    total_liquidity_usd: float
    liquidity_change_usd: float

    @property
    def id(self) -> str:
        return self.snapshot.id


@dataclass(frozen=True)
class BlockReferenceSet:
    one_day: Optional[int]
    two_day: Optional[int]
    one_week: Optional[int]

    def as_tuple(self) -> Tuple[Optional[int], Optional[int], Optional[int]]:
        return self.one_day, self.two_day, self.one_week

    @staticmethod
    def pinned(block: int) -> "BlockReferenceSet":
        return BlockReferenceSet(one_day=block, two_day=block, one_week=block)


@dataclass(frozen=True)
class DailyPoint:
    date: int
    daily_volume_usd: float
    reserve_usd: float
    utilization: float
    synthesized: bool = False

    @property
    def day_index(self) -> int:
        return self.date // 86400


@dataclass(frozen=True)
class Candle:
    timestamp: int
    open: float
    close: float


@dataclass(frozen=True)
class Transactions:
    mints: List[Dict[str, Any]] = field(default_factory=list)
    burns: List[Dict[str, Any]] = field(default_factory=list)
    swaps: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class MiningCampaign:
    id: str
    status: str
    pair: PairSnapshot
    starts_at: int
    ends_at: int
    duration: int
    staked_amount: float
    staking_cap: float
    locked: bool
    reward_tokens: Tuple[str, ...]
    staked_price_usd: float

    @staticmethod
    def from_json(data: Dict[str, Any], status: str, staked_price_usd: float) -> "MiningCampaign":
        rewards = data.get("rewards") or []
        return MiningCampaign(
            id=str(data["id"]).lower(),
            status=status,
            pair=PairSnapshot.from_json(data["stakablePair"]),
            starts_at=to_int(data.get("startsAt")),
            ends_at=to_int(data.get("endsAt")),
            duration=to_int(data.get("duration")),
            staked_amount=to_float(data.get("stakedAmount")),
            staking_cap=to_float(data.get("stakingCap")),
            locked=bool(data.get("locked")),
            reward_tokens=tuple(str((r.get("token") or {}).get("id") or "").lower() for r in rewards),
            staked_price_usd=staked_price_usd,
        )
