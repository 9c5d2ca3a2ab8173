from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional

import httpx

from .config import NetworkConfig
from .logger import get_logger


class TokenIconCache:
    """Token logo URIs per network, loaded once from each network's token list.

    Owned by whoever builds the service and injected from there. A failed
    list download leaves the network empty so the next lookup retries.
    """

    def __init__(self, networks: Mapping[str, NetworkConfig], transport: Optional[httpx.AsyncBaseTransport] = None):
        self._networks = networks
        self._icons: Dict[str, Dict[str, str]] = {}
        self._client = httpx.AsyncClient(timeout=30, transport=transport, follow_redirects=True)
        self._logger = get_logger("TokenIconCache")

    async def aclose(self) -> None:
        await self._client.aclose()

    def invalidate(self, network: Optional[str] = None) -> None:
        if network is None:
            self._icons.clear()
        else:
            self._icons.pop(network, None)

    async def _load(self, network: str) -> Optional[Dict[str, str]]:
        cfg = self._networks.get(network)
        if cfg is None:
            self._logger.warning(f"could not fetch token logos for network {network}")
            return None
        try:
            resp = await self._client.get(cfg.token_list_url)
            resp.raise_for_status()
            tokens = resp.json().get("tokens") or []
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning(f"could not fetch token list at {cfg.token_list_url}: {exc}")
            return None
        icons = {}
        for token in tokens:
            if token.get("chainId") != cfg.chain_id or not token.get("address"):
                continue
            icons[str(token["address"]).lower()] = token.get("logoURI")
        self._icons[network] = icons
        self._logger.debug(f"loaded {len(icons)} token logos for {network}")
        return icons

    async def get_icon(
        self, network: str, address: str, cancelled: Optional[Callable[[], bool]] = None
    ) -> Optional[str]:
        if not address:
            return None
        icons = self._icons.get(network)
        if icons is None:
            icons = await self._load(network)
        if icons is None or (cancelled is not None and cancelled()):
            return None
        return icons.get(address.lower())
