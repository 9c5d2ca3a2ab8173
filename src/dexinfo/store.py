"""In-memory cache of derived records and their attached series.

Every change goes through one of the mutation types below and ``apply``;
anything else is a contract violation and raises immediately. Entries are
immutable, so readers always get a consistent snapshot.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .exceptions import UnexpectedMutationError
from .logger import get_logger
from .models import Candle, DailyPoint, MiningCampaign, PairRecord, TokenRecord, Transactions

Record = Union[PairRecord, TokenRecord]
HourlySeries = Tuple[Sequence[Candle], Sequence[Candle]]

# Namespaces listeners can subscribe to besides individual entity ids
TOP_NAMESPACE = "top"
MINING_NAMESPACE = "mining"
ALL_NAMESPACE = "*"


@dataclass(frozen=True)
class CacheEntry:
    record: Optional[Record] = None
    chart_data: Optional[Tuple[DailyPoint, ...]] = None
    hourly_data: Mapping[str, HourlySeries] = field(default_factory=lambda: MappingProxyType({}))
    txns: Optional[Transactions] = None


@dataclass(frozen=True)
class UpdateRecord:
    entity_id: str
    record: Record


@dataclass(frozen=True)
class UpdateTransactions:
    entity_id: str
    txns: Transactions


@dataclass(frozen=True)
class UpdateChartData:
    entity_id: str
    chart_data: Sequence[DailyPoint]


@dataclass(frozen=True)
class UpdateHourlyData:
    entity_id: str
    window: str
    series: HourlySeries


@dataclass(frozen=True)
class UpdateMiningData:
    status: str
    campaigns: Sequence[MiningCampaign]


@dataclass(frozen=True)
class UpdateTopPairs:
    network: str
    records: Sequence[Record]


@dataclass(frozen=True)
class Reset:
    preserve_top_set: bool = True


Mutation = Union[UpdateRecord, UpdateTransactions, UpdateChartData, UpdateHourlyData, UpdateMiningData, UpdateTopPairs, Reset]
Listener = Callable[[str], Any]


class CacheStore:
    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._mining: Dict[str, Tuple[MiningCampaign, ...]] = {}
        self._top: Dict[str, Mapping[str, Record]] = {}
        self._version = 0
        self._listeners: Dict[str, List[Listener]] = {}
        self._logger = get_logger("CacheStore")

    @property
    def version(self) -> int:
        return self._version

    # --- reads ---
    def get(self, entity_id: str) -> Optional[CacheEntry]:
        return self._entries.get(entity_id.lower())

    def get_record(self, entity_id: str) -> Optional[Record]:
        entry = self.get(entity_id)
        return entry.record if entry else None

    def get_chart_data(self, entity_id: str) -> Optional[Tuple[DailyPoint, ...]]:
        entry = self.get(entity_id)
        return entry.chart_data if entry else None

    def get_series(self, entity_id: str, window: str) -> Optional[HourlySeries]:
        entry = self.get(entity_id)
        return entry.hourly_data.get(window) if entry else None

    def get_txns(self, entity_id: str) -> Optional[Transactions]:
        entry = self.get(entity_id)
        return entry.txns if entry else None

    def get_mining(self, status: str) -> Optional[Tuple[MiningCampaign, ...]]:
        return self._mining.get(status)

    def get_top_set(self, network: str) -> Optional[Mapping[str, Record]]:
        return self._top.get(network)

    def entries(self) -> Mapping[str, CacheEntry]:
        return MappingProxyType(dict(self._entries))

    # --- listeners ---
    def subscribe(self, namespace: str, listener: Listener) -> Callable[[], None]:
        self._listeners.setdefault(namespace, []).append(listener)

        def unsubscribe():
            listeners = self._listeners.get(namespace, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def _notify(self, namespace: str) -> None:
        keys = (namespace,) if namespace == ALL_NAMESPACE else (namespace, ALL_NAMESPACE)
        for key in keys:
            for listener in list(self._listeners.get(key, [])):
                try:
                    listener(namespace)
                except Exception as exc:  # noqa: BLE001
                    self._logger.opt(exception=exc).warning(f"listener for {namespace!r} raised")

    # --- transitions ---
    def apply(self, mutation: Mutation) -> None:
        if isinstance(mutation, UpdateRecord):
            namespace = self._merge(mutation.entity_id, record=mutation.record)
        elif isinstance(mutation, UpdateTransactions):
            namespace = self._merge(mutation.entity_id, txns=mutation.txns)
        elif isinstance(mutation, UpdateChartData):
            namespace = self._merge(mutation.entity_id, chart_data=tuple(mutation.chart_data))
        elif isinstance(mutation, UpdateHourlyData):
            current = self.get(mutation.entity_id) or CacheEntry()
            hourly = dict(current.hourly_data)
            hourly[mutation.window] = (tuple(mutation.series[0]), tuple(mutation.series[1]))
            namespace = self._merge(mutation.entity_id, hourly_data=MappingProxyType(hourly))
        elif isinstance(mutation, UpdateMiningData):
            self._mining[mutation.status] = tuple(mutation.campaigns)
            namespace = MINING_NAMESPACE
        elif isinstance(mutation, UpdateTopPairs):
            self._top[mutation.network] = MappingProxyType({r.id: r for r in mutation.records})
            namespace = TOP_NAMESPACE
        elif isinstance(mutation, Reset):
            self._entries = {}
            self._mining = {}
            if not mutation.preserve_top_set:
                self._top = {}
            namespace = ALL_NAMESPACE
        else:
            raise UnexpectedMutationError(mutation)
        self._version += 1
        self._notify(namespace)

    def _merge(self, entity_id: str, **changes) -> str:
        key = entity_id.lower()
        self._entries[key] = replace(self._entries.get(key) or CacheEntry(), **changes)
        return key

    def put(self, entity_id: str, record: Record) -> None:
        self.apply(UpdateRecord(entity_id, record))

    def put_txns(self, entity_id: str, txns: Transactions) -> None:
        self.apply(UpdateTransactions(entity_id, txns))

    def put_chart_data(self, entity_id: str, chart_data: Sequence[DailyPoint]) -> None:
        self.apply(UpdateChartData(entity_id, chart_data))

    def put_series(self, entity_id: str, window: str, series: HourlySeries) -> None:
        self.apply(UpdateHourlyData(entity_id, window, series))

    def put_mining(self, status: str, campaigns: Sequence[MiningCampaign]) -> None:
        self.apply(UpdateMiningData(status, campaigns))

    def put_top_set(self, network: str, records: Sequence[Record]) -> None:
        self.apply(UpdateTopPairs(network, records))

    def clear(self, preserve_top_set: bool = True) -> None:
        self.apply(Reset(preserve_top_set))
