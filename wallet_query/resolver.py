"""
Block Timestamp Resolver - maps a UNIX time to the nearest block.

Bounded binary search over [0, head]. With the default ceiling of 15
probes the answer is exact up to 2^15 blocks; beyond that it is the best
candidate seen so far, which is accepted as an approximation.
"""

import asyncio
import logging
from typing import Optional

from wallet_query.exceptions import NodeRpcError
from wallet_query.providers.node import NodeProviderClient
from wallet_query.rate_limiter import SleepFunc


logger = logging.getLogger(__name__)


class BlockTimestampResolver:
    """Resolve timestamps to block numbers against a node."""

    def __init__(
        self,
        node: NodeProviderClient,
        max_iterations: int = 15,
        probe_delay_seconds: float = 0.1,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self._node = node
        self._max_iterations = max_iterations
        self._probe_delay = probe_delay_seconds
        self._sleep = sleep or asyncio.sleep
        self.last_iterations = 0

    async def resolve(self, target_timestamp: int) -> int:
        """
        Find the highest block with `timestamp <= target_timestamp`.

        Probe failures and missing blocks narrow the upper bound and never
        raise. A failing head lookup propagates.

        Returns:
            Block number, 0 when no probed block qualifies
        """
        low = 0
        high = await self._node.current_block_number()
        best = 0
        iterations = 0

        while low <= high and iterations < self._max_iterations:
            mid = (low + high) // 2
            iterations += 1

            try:
                block = await self._node.get_block(mid)
            except NodeRpcError as e:
                logger.warning(f"[resolver] Probe of block {mid} failed: {e.message}")
                block = None

            if block is None:
                high = mid - 1
            elif block.timestamp <= target_timestamp:
                best = mid
                low = mid + 1
            else:
                high = mid - 1

            if self._probe_delay > 0:
                await self._sleep(self._probe_delay)

        self.last_iterations = iterations
        logger.info(
            f"[resolver] Resolved timestamp {target_timestamp} to block {best} "
            f"in {iterations} probes"
        )
        return best
