from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from .graphql_client import GraphQLClient
from .logger import get_logger
from .models import MiningCampaign, to_float

ACTIVE = "active"
EXPIRED = "expired"
STATUSES = (ACTIVE, EXPIRED)

_logger = get_logger("Mining")


def staked_amount_usd(campaign: Dict[str, Any], native_currency_price: float) -> float:
    """USD value of the LP tokens staked in a campaign.

    Staked LP share of the pair's supply times the pair's reserve in native
    currency, priced at the current native currency price.
    """
    pair = campaign.get("stakablePair") or {}
    total_supply = to_float(pair.get("totalSupply"))
    if total_supply <= 0:
        return 0.0
    share = to_float(campaign.get("stakedAmount")) / total_supply
    return share * to_float(pair.get("reserveNativeCurrency")) * float(native_currency_price)


async def fetch_mining_campaigns(
    client: GraphQLClient, native_currency_price: Optional[float], now: Optional[int] = None
) -> Optional[Dict[str, List[MiningCampaign]]]:
    if native_currency_price is None:
        return None
    now = int(now if now is not None else time.time())
    try:
        raw = await client.fetch_liquidity_mining_campaigns(now)
    except Exception as exc:  # noqa: BLE001
        _logger.opt(exception=exc).error("liquidity mining campaign fetch failed")
        return None
    out: Dict[str, List[MiningCampaign]] = {}
    for status in STATUSES:
        campaigns = []
        for row in raw.get(status, []):
            if not row.get("stakablePair"):
                continue
            usd = round(staked_amount_usd(row, native_currency_price), 2)
            campaigns.append(MiningCampaign.from_json(row, status, usd))
        out[status] = campaigns
    return out
