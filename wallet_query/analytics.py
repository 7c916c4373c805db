"""
Wallet Analytics - derived views over the aggregated transaction stream.

Nothing is cached. Every call re-fetches and recomputes, so cost is
linear in the size of the aggregated window. The computations are plain
functions taking `now`, and the computer class only wires them to the
engine.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

from wallet_query.engine import AggregationEngine
from wallet_query.exceptions import InvalidRangeError
from wallet_query.models import (
    ActivityWindows,
    AnalyticsSummary,
    Direction,
    FlowPatterns,
    FundingInfo,
    NormalizedTransaction,
    TimelineBucket,
    TokenDistribution,
    TransactionCategory,
    TransactionPatterns,
)
from wallet_query.validation import SECONDS_PER_DAY, parse_duration_days


logger = logging.getLogger(__name__)


SECONDS_PER_HOUR = 3600
TIMELINE_PERIODS = ("daily", "hourly")


# =============================================================
# PURE COMPUTATIONS
# =============================================================

def activity_windows(transactions: Iterable[NormalizedTransaction], now: float) -> ActivityWindows:
    """Counts of transactions strictly newer than now - 1h / 24h / 7d."""
    windows = ActivityWindows()
    for tx in transactions:
        age = now - tx.timestamp
        if age < SECONDS_PER_HOUR:
            windows.last_hour += 1
        if age < SECONDS_PER_DAY:
            windows.last_24_hours += 1
        if age < 7 * SECONDS_PER_DAY:
            windows.last_week += 1
    return windows


def token_distribution(transactions: Iterable[NormalizedTransaction]) -> TokenDistribution:
    """
    Count per token symbol over non-native records.

    The most active token is the highest count; on a tie the symbol seen
    first wins.
    """
    counts: dict[str, int] = {}
    for tx in transactions:
        if tx.category is TransactionCategory.NATIVE or not tx.token_symbol:
            continue
        counts[tx.token_symbol] = counts.get(tx.token_symbol, 0) + 1

    most_active = max(counts, key=counts.get) if counts else None
    return TokenDistribution(
        unique_count=len(counts),
        most_active=most_active,
        distribution=counts,
    )


def flow_patterns(transactions: Iterable[NormalizedTransaction]) -> FlowPatterns:
    """ETH sent/received over native transfers only."""
    sent = 0.0
    received = 0.0
    for tx in transactions:
        if tx.category is not TransactionCategory.NATIVE:
            continue
        if tx.direction is Direction.SEND:
            sent += tx.amount()
        else:
            received += tx.amount()
    return FlowPatterns(sent=sent, received=received, net_flow=received - sent)


def summarize_transactions(
    transactions: list[NormalizedTransaction],
    balance: str,
    funding: Optional[FundingInfo],
    now: float,
) -> AnalyticsSummary:
    by_category: dict[TransactionCategory, int] = {}
    for tx in transactions:
        by_category[tx.category] = by_category.get(tx.category, 0) + 1

    return AnalyticsSummary(
        total_transactions=len(transactions),
        eth_transactions=by_category.get(TransactionCategory.NATIVE, 0),
        token_transactions=sum(
            count for category, count in by_category.items() if category.is_token
        ),
        internal_transactions=by_category.get(TransactionCategory.INTERNAL, 0),
        current_balance=balance,
        activity=activity_windows(transactions, now),
        tokens=token_distribution(transactions),
        patterns=flow_patterns(transactions),
        funding=funding or FundingInfo(),
    )


def _recent(transactions: Iterable[NormalizedTransaction], days: int, now: float) -> list[NormalizedTransaction]:
    cutoff = now - days * SECONDS_PER_DAY
    return [tx for tx in transactions if tx.timestamp > cutoff]


def transaction_patterns(
    transactions: Iterable[NormalizedTransaction],
    days: int,
    now: float,
) -> TransactionPatterns:
    recent = _recent(transactions, days, now)
    return TransactionPatterns(
        total_transactions=len(recent),
        days=days,
        average_per_day=f"{len(recent) / days:.2f}" if days > 0 else "0",
        eth=sum(1 for tx in recent if not tx.token_symbol),
        token=sum(1 for tx in recent if tx.token_symbol),
        internal=sum(1 for tx in recent if tx.category is TransactionCategory.INTERNAL),
    )


def bucket_key(timestamp: int, period: str) -> str:
    """ISO start of the UTC day or hour containing `timestamp`."""
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    if period == "hourly":
        moment = moment.replace(minute=0, second=0, microsecond=0)
    else:
        moment = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def activity_timeline(
    transactions: Iterable[NormalizedTransaction],
    period: str,
    days: int,
    now: float,
) -> list[TimelineBucket]:
    """Buckets in ascending time order. Empty periods are omitted."""
    if period not in TIMELINE_PERIODS:
        raise InvalidRangeError("period must be 'daily' or 'hourly'", value=period)

    buckets: dict[str, TimelineBucket] = {}
    for tx in _recent(transactions, days, now):
        key = bucket_key(tx.timestamp, period)
        bucket = buckets.setdefault(key, TimelineBucket(timestamp=key))
        if tx.category is TransactionCategory.INTERNAL:
            bucket.internal_transactions += 1
        elif tx.token_symbol:
            bucket.token_transactions += 1
        else:
            bucket.eth_transactions += 1
        bucket.total_volume += tx.amount()

    return [buckets[key] for key in sorted(buckets)]


# =============================================================
# COMPUTER
# =============================================================

class WalletAnalyticsComputer:
    """Fetches through the aggregation engine and derives analytics."""

    def __init__(self, engine: AggregationEngine) -> None:
        self._engine = engine

    async def summarize(self, address: str, now: Optional[float] = None) -> AnalyticsSummary:
        balance = await self._engine.get_balance(address)
        transactions = await self._engine.get_all(address)
        funding = await self._engine.get_funded_by(address)

        summary = summarize_transactions(
            transactions,
            balance,
            funding,
            now if now is not None else time.time(),
        )
        logger.info(
            f"[analytics] {address}: {summary.total_transactions} transactions, "
            f"{summary.tokens.unique_count} tokens"
        )
        return summary

    async def patterns(
        self,
        address: str,
        timeframe: str = "7d",
        now: Optional[float] = None,
    ) -> TransactionPatterns:
        days = parse_duration_days(timeframe, default=7)
        transactions = await self._engine.get_all(address)
        return transaction_patterns(transactions, days, now if now is not None else time.time())

    async def timeline(
        self,
        address: str,
        period: str = "daily",
        duration: str = "30d",
        now: Optional[float] = None,
    ) -> list[TimelineBucket]:
        if period not in TIMELINE_PERIODS:
            raise InvalidRangeError("period must be 'daily' or 'hourly'", value=period)
        days = parse_duration_days(duration, default=30)
        transactions = await self._engine.get_all(address)
        return activity_timeline(transactions, period, days, now if now is not None else time.time())
