"""
Wallet Query Package - Ethereum wallet activity aggregation.

Merges native, internal and token transfers for one address from a
rate-limited block explorer, and degrades to direct node scanning when
the explorer is unavailable.

Features:
- One normalized transaction schema for all five categories
- Merged streams ordered newest block first
- Explorer -> node fallback with explicit outcome states
- Date -> block resolution by bounded binary search
- In-memory filters, pagination and wallet analytics

Quick Start:
    from wallet_query import AggregationEngine, WalletQueryConfig

    async def show_wallet(address: str):
        config = WalletQueryConfig.from_env()

        async with AggregationEngine.from_config(config) as engine:
            # Never raises on explorer failure - falls back to the node
            transactions = await engine.get_all(address)

            for tx in transactions[:10]:
                print(f"{tx.block_number} {tx.category.value} {tx.value}")

            print(f"Balance: {await engine.get_balance(address)} ETH")

Fallback States:
- success: explorer answered
- fallback: node scan of the last 5 blocks completed
- fallback_partial: some node probes failed
- fallback_failed: nothing usable, possibly empty records
"""

from wallet_query.analytics import WalletAnalyticsComputer
from wallet_query.config import WalletQueryConfig
from wallet_query.engine import AggregationEngine
from wallet_query.exceptions import (
    ConfigurationError,
    InvalidAddressError,
    InvalidDateError,
    InvalidInputError,
    InvalidRangeError,
    MalformedRecordError,
    NodeRpcError,
    RequestTimeoutError,
    UpstreamError,
    WalletQueryError,
)
from wallet_query.models import (
    AdvancedQuery,
    AnalyticsSummary,
    ComprehensiveReport,
    Direction,
    FetchOutcome,
    NormalizedTransaction,
    OutcomeState,
    QueryWindow,
    TransactionCategory,
    TransactionPage,
    TransactionStatus,
)
from wallet_query.providers import ExplorerClient, NodeProviderClient
from wallet_query.rate_limiter import FixedIntervalPacer
from wallet_query.resolver import BlockTimestampResolver


__version__ = "1.0.0"

__all__ = [
    # Engine
    "AggregationEngine",
    "WalletAnalyticsComputer",
    "BlockTimestampResolver",

    # Providers
    "ExplorerClient",
    "NodeProviderClient",
    "FixedIntervalPacer",

    # Config
    "WalletQueryConfig",

    # Models
    "NormalizedTransaction",
    "TransactionCategory",
    "TransactionStatus",
    "Direction",
    "QueryWindow",
    "FetchOutcome",
    "OutcomeState",
    "AnalyticsSummary",
    "AdvancedQuery",
    "TransactionPage",
    "ComprehensiveReport",

    # Exceptions
    "WalletQueryError",
    "UpstreamError",
    "NodeRpcError",
    "MalformedRecordError",
    "InvalidInputError",
    "InvalidAddressError",
    "InvalidDateError",
    "InvalidRangeError",
    "ConfigurationError",
    "RequestTimeoutError",
]
