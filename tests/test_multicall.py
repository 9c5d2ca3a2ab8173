"""
Unit tests for multicall swap-fee lookups.
"""

import pytest
from eth_abi import encode

from dexinfo.exceptions import MulticallIntegrityError
from dexinfo.multicall import SWAP_FEE_SELECTOR, aggregate_checked, decode_swap_fee, get_pairs_swap_fee

from conftest import FakeMulticall


class TestMulticall:

    async def test_length_mismatch_raises(self):
        with pytest.raises(MulticallIntegrityError) as exc_info:
            await aggregate_checked(FakeMulticall({"0x1": 30}, drop_last=True), [("0x1", SWAP_FEE_SELECTOR)])
        assert exc_info.value.expected == 1
        assert exc_info.value.received == 0

    async def test_fees_by_pair(self):
        multicall = FakeMulticall({"0x1": 30, "0x2": 0})

        fees = await get_pairs_swap_fee(multicall, ["0x1", "0x2", "0x3"])

        assert fees == {"0x1": 30, "0x2": 0}
        assert multicall.calls == [[("0x1", SWAP_FEE_SELECTOR), ("0x2", SWAP_FEE_SELECTOR), ("0x3", SWAP_FEE_SELECTOR)]]

    async def test_mismatch_gives_no_fees(self):
        assert await get_pairs_swap_fee(FakeMulticall({"0x1": 30}, drop_last=True), ["0x1", "0x2"]) == {}

    async def test_no_multicall(self):
        assert await get_pairs_swap_fee(None, ["0x1"]) == {}

    def test_decode(self):
        assert decode_swap_fee(encode(["uint32"], [25])) == 25
        assert decode_swap_fee(b"") is None
