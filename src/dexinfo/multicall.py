from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from eth_abi import decode
from eth_utils import keccak
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from .exceptions import MulticallIntegrityError
from .logger import get_logger

MULTICALL_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "address", "name": "target", "type": "address"},
                    {"internalType": "bytes", "name": "callData", "type": "bytes"},
                ],
                "internalType": "struct Multicall.Call[]",
                "name": "calls",
                "type": "tuple[]",
            }
        ],
        "name": "aggregate",
        "outputs": [
            {"internalType": "uint256", "name": "blockNumber", "type": "uint256"},
            {"internalType": "bytes[]", "name": "returnData", "type": "bytes[]"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

SWAP_FEE_SIGNATURE = "swapFee()"
SWAP_FEE_SELECTOR = keccak(text=SWAP_FEE_SIGNATURE)[:4]


class Multicall(Protocol):
    async def aggregate(self, calls: Sequence[Tuple[str, bytes]]) -> List[bytes]:
        ...


class Web3Multicall:
    """Read-only ``aggregate`` against a deployed Multicall contract."""

    def __init__(self, rpc_url: str, address: str, timeout: int = 30):
        self._w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._contract = self._w3.eth.contract(address=Web3.to_checksum_address(address), abi=MULTICALL_ABI)

    async def aggregate(self, calls: Sequence[Tuple[str, bytes]]) -> List[bytes]:
        payload = [(Web3.to_checksum_address(target), data) for target, data in calls]
        _, return_data = await self._contract.functions.aggregate(payload).call()
        return [bytes(item) for item in return_data]


async def aggregate_checked(multicall: Multicall, calls: Sequence[Tuple[str, bytes]]) -> List[bytes]:
    results = await multicall.aggregate(calls)
    if len(results) != len(calls):
        raise MulticallIntegrityError(len(calls), len(results))
    return results


def decode_swap_fee(data: bytes) -> Optional[int]:
    if not data:
        return None
    (fee,) = decode(["uint32"], data)
    return int(fee)


async def get_pairs_swap_fee(multicall: Optional[Multicall], pair_ids: Sequence[str]) -> Dict[str, int]:
    """Swap fee per pair in basis points; pairs whose lookup fails are left out."""
    log = get_logger("Multicall")
    fees: Dict[str, int] = {}
    if multicall is None or not pair_ids:
        return fees
    try:
        results = await aggregate_checked(multicall, [(pair_id, SWAP_FEE_SELECTOR) for pair_id in pair_ids])
    except Exception as exc:  # noqa: BLE001
        log.opt(exception=exc).error(f"error fetching swap fees for {len(pair_ids)} pairs")
        return fees
    for pair_id, raw in zip(pair_ids, results):
        try:
            fee = decode_swap_fee(raw)
        except Exception as exc:  # noqa: BLE001
            log.warning(f"could not decode swap fee for {pair_id}: {exc}")
            continue
        if fee is not None:
            fees[pair_id] = fee
    return fees
