"""
Block Timestamp Resolver Tests.

============================================================
PURPOSE
============================================================
Convergence and failure tolerance of the timestamp -> block
binary search.

============================================================
"""

from unittest.mock import AsyncMock

import pytest

from wallet_query.exceptions import NodeRpcError
from wallet_query.models import NodeBlock
from wallet_query.resolver import BlockTimestampResolver


GENESIS = 1_600_000_000
BLOCK_TIME = 12


class SyntheticNode:
    """Node with `size` blocks at a fixed 12s spacing."""

    def __init__(self, size: int, failing=()):
        self.size = size
        self.failing = set(failing)
        self.probes = []

    async def current_block_number(self) -> int:
        return self.size - 1

    async def get_block(self, number, include_transactions=False):
        self.probes.append(number)
        if number in self.failing:
            raise NodeRpcError("header not found", method="eth_getBlockByNumber")
        if number < 0 or number >= self.size:
            return None
        return NodeBlock(number=number, timestamp=GENESIS + number * BLOCK_TIME)


def timestamp_of(number: int) -> int:
    return GENESIS + number * BLOCK_TIME


class TestResolverConvergence:
    """Tests for exactness and probe bounds."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("block", [0, 1, 37, 64, 98, 99])
    async def test_exact_block_timestamp(self, block):
        """Test exact timestamps resolve to their block."""
        resolver = BlockTimestampResolver(SyntheticNode(100), probe_delay_seconds=0)

        assert await resolver.resolve(timestamp_of(block)) == block

    @pytest.mark.asyncio
    async def test_between_blocks_picks_lower(self):
        """Test the highest block not after the target wins."""
        resolver = BlockTimestampResolver(SyntheticNode(100), probe_delay_seconds=0)

        assert await resolver.resolve(timestamp_of(41) + 11) == 41

    @pytest.mark.asyncio
    async def test_before_genesis(self):
        """Test targets before every block resolve to 0."""
        resolver = BlockTimestampResolver(SyntheticNode(100), probe_delay_seconds=0)

        assert await resolver.resolve(GENESIS - 1000) == 0

    @pytest.mark.asyncio
    async def test_after_head(self):
        """Test targets in the future resolve to head."""
        resolver = BlockTimestampResolver(SyntheticNode(100), probe_delay_seconds=0)

        assert await resolver.resolve(timestamp_of(10_000)) == 99

    @pytest.mark.asyncio
    async def test_exhaustive_small_chain(self):
        """Test every target on a small chain is exact."""
        node = SyntheticNode(300)
        resolver = BlockTimestampResolver(node, probe_delay_seconds=0)

        for block in range(0, 300, 7):
            target = timestamp_of(block) + 5
            assert await resolver.resolve(target) == block
            assert resolver.last_iterations <= 15

    @pytest.mark.asyncio
    async def test_large_chain_bounded(self):
        """Test probe ceiling on a chain far beyond 2^15 blocks."""
        node = SyntheticNode(20_000_000)
        resolver = BlockTimestampResolver(node, probe_delay_seconds=0)
        target = timestamp_of(12_345_678) + 3

        block = await resolver.resolve(target)

        assert resolver.last_iterations == 15
        assert len(node.probes) == 15
        assert timestamp_of(block) <= target


class TestResolverFailures:
    """Tests for probe failure handling."""

    @pytest.mark.asyncio
    async def test_probe_failure_narrows_upper_bound(self):
        """Test failing probes do not raise."""
        node = SyntheticNode(100, failing={49})
        resolver = BlockTimestampResolver(node, probe_delay_seconds=0)

        block = await resolver.resolve(timestamp_of(80))

        assert node.probes[0] == 49
        assert timestamp_of(block) <= timestamp_of(80)
        assert block < 49

    @pytest.mark.asyncio
    async def test_head_failure_propagates(self):
        """Test head lookup errors surface."""
        node = SyntheticNode(100)
        node.current_block_number = AsyncMock(side_effect=NodeRpcError("down"))
        resolver = BlockTimestampResolver(node, probe_delay_seconds=0)

        with pytest.raises(NodeRpcError):
            await resolver.resolve(GENESIS)

    @pytest.mark.asyncio
    async def test_probe_delay(self):
        """Test one pacing delay per probe."""
        sleep = AsyncMock()
        resolver = BlockTimestampResolver(SyntheticNode(100), probe_delay_seconds=0.1, sleep=sleep)

        await resolver.resolve(timestamp_of(20))

        assert sleep.await_count == resolver.last_iterations
        sleep.assert_awaited_with(0.1)
