"""
Wallet Query Data Models - Normalized transaction views and derived analytics.

Every record is request-scoped. Nothing here is persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from wallet_query.exceptions import InvalidRangeError


T = TypeVar("T")


class TransactionCategory(Enum):
    """Transaction kinds, each with its own explorer action."""
    NATIVE = "native"
    INTERNAL = "internal"
    ERC20 = "erc20"
    ERC721 = "erc721"
    ERC1155 = "erc1155"

    @property
    def is_token(self) -> bool:
        return self in (
            TransactionCategory.ERC20,
            TransactionCategory.ERC721,
            TransactionCategory.ERC1155,
        )


class Direction(Enum):
    """Direction relative to the queried address."""
    SEND = "send"
    RECEIVE = "receive"


class TransactionStatus(Enum):
    """Execution status of a native transaction."""
    SUCCESS = "success"
    FAILED = "failed"


class OutcomeState(Enum):
    """States of the per-category upstream/fallback state machine."""
    SUCCESS = "success"
    UPSTREAM_FAILED = "upstream_failed"
    FALLBACK = "fallback"
    FALLBACK_PARTIAL = "fallback_partial"
    FALLBACK_FAILED = "fallback_failed"


@dataclass(frozen=True)
class NormalizedTransaction:
    """
    Unified transaction record - STRICT schema.

    `value` is a decimal string already converted to the human-readable
    denomination. ERC-721 transfers carry no value.
    """
    hash: str
    block_number: int
    timestamp: int
    from_address: Optional[str]
    to_address: Optional[str]
    value: Optional[str]
    category: TransactionCategory
    direction: Direction

    status: Optional[TransactionStatus] = None

    # Token fields (non-native only)
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None
    contract_address: Optional[str] = None
    token_id: Optional[str] = None

    # Gas (native/internal only, raw wei)
    gas_used: Optional[str] = None
    gas_price: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "hash": self.hash,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "category": self.category.value,
            "direction": self.direction.value,
            "status": self.status.value if self.status else None,
            "tokenSymbol": self.token_symbol,
            "tokenName": self.token_name,
            "contractAddress": self.contract_address,
            "tokenId": self.token_id,
            "gasUsed": self.gas_used,
            "gasPrice": self.gas_price,
        }

    def amount(self) -> float:
        """Value as float, for UI-grade filtering and sorting only."""
        try:
            return float(self.value or 0)
        except ValueError:
            return 0.0


@dataclass(frozen=True)
class QueryWindow:
    """Inclusive block range bounding a single query."""
    from_block: int
    to_block: int

    def __post_init__(self) -> None:
        if self.from_block < 0:
            raise InvalidRangeError("fromBlock must be >= 0", value=self.from_block)
        if self.from_block > self.to_block:
            raise InvalidRangeError(
                f"fromBlock {self.from_block} is greater than toBlock {self.to_block}",
                value=(self.from_block, self.to_block),
            )

    @classmethod
    def trailing(cls, head: int, span: int) -> "QueryWindow":
        """Window covering the last `span` blocks up to `head`."""
        return cls(from_block=max(head - span, 0), to_block=head)

    def clamp_tail(self, span: int) -> "QueryWindow":
        """Narrow to the last `span` blocks of this window."""
        return QueryWindow(
            from_block=max(self.to_block - span, self.from_block),
            to_block=self.to_block,
        )

    @property
    def size(self) -> int:
        return self.to_block - self.from_block + 1

    def contains(self, block_number: int) -> bool:
        return self.from_block <= block_number <= self.to_block

    def to_dict(self) -> dict[str, Any]:
        return {"fromBlock": self.from_block, "toBlock": self.to_block}


@dataclass
class FetchOutcome(Generic[T]):
    """
    Result of one category fetch, tagged with how it was obtained.

    SUCCESS means the explorer answered. UPSTREAM_FAILED means it did not
    and no node fallback exists for the category. FALLBACK/FALLBACK_PARTIAL mean
    records came from a node scan. FALLBACK_FAILED carries whatever was
    collected before the scan gave up, possibly nothing.
    """
    state: OutcomeState
    records: list[T] = field(default_factory=list)
    source: str = "explorer"
    window: Optional[QueryWindow] = None
    error: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.state in (
            OutcomeState.FALLBACK,
            OutcomeState.FALLBACK_PARTIAL,
            OutcomeState.FALLBACK_FAILED,
        )

    @property
    def is_degraded(self) -> bool:
        return self.state is not OutcomeState.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "source": self.source,
            "window": self.window.to_dict() if self.window else None,
            "error": self.error,
            "count": len(self.records),
        }


@dataclass(frozen=True)
class NodeBlock:
    """Block as returned by the node, with decoded number and timestamp."""
    number: int
    timestamp: int
    transactions: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class TokenMetadata:
    """Token identity used when decoding raw logs."""
    symbol: str = "UNKNOWN"
    name: Optional[str] = None
    decimals: int = 18


@dataclass
class FundingInfo:
    """First funding transaction of an address."""
    funded_by: Optional[str] = None
    funding_tx: Optional[str] = None
    block_number: Optional[int] = None
    timestamp: Optional[int] = None
    value: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fundedBy": self.funded_by,
            "fundingTx": self.funding_tx,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "value": self.value,
        }


@dataclass
class MinedBlock:
    """Block validated/mined by an address."""
    block_number: Optional[int]
    timestamp: Optional[int]
    block_reward: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "blockReward": self.block_reward,
        }


@dataclass
class BeaconWithdrawal:
    """Beacon chain withdrawal credited to an address."""
    withdrawal_index: Optional[int]
    validator_index: Optional[int]
    address: Optional[str]
    amount: Optional[str]
    block_number: Optional[int]
    timestamp: Optional[int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "withdrawalIndex": self.withdrawal_index,
            "validatorIndex": self.validator_index,
            "address": self.address,
            "amount": self.amount,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
        }


@dataclass
class AddressBalance:
    address: str
    balance: str

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "balance": self.balance}


@dataclass
class TokenBalance:
    """ERC-20 balance at a block."""
    balance: str
    balance_raw: str
    symbol: str = "ERC20"
    decimals: int = 18
    block_number: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": self.balance,
            "balanceRaw": self.balance_raw,
            "unit": self.symbol,
            "decimals": self.decimals,
            "blockNumber": self.block_number,
        }


@dataclass
class AddressValidation:
    is_valid: bool
    checksum_address: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "checksumAddress": self.checksum_address}


@dataclass
class NetworkStatus:
    block_number: int
    gas_price: Optional[str]
    chain_id: str
    explorer_configured: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "blockNumber": self.block_number,
            "gasPrice": self.gas_price,
            "chainId": self.chain_id,
            "explorerConfigured": self.explorer_configured,
        }


@dataclass
class ActivityWindows:
    last_hour: int = 0
    last_24_hours: int = 0
    last_week: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastHour": self.last_hour,
            "last24Hours": self.last_24_hours,
            "lastWeek": self.last_week,
        }


@dataclass
class TokenDistribution:
    unique_count: int = 0
    most_active: Optional[str] = None
    distribution: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uniqueCount": self.unique_count,
            "mostActive": self.most_active,
            "distribution": dict(self.distribution),
        }


@dataclass
class FlowPatterns:
    sent: float = 0.0
    received: float = 0.0
    net_flow: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"sent": self.sent, "received": self.received, "netFlow": self.net_flow}


@dataclass
class AnalyticsSummary:
    """Derived wallet analytics. Recomputed on every call, never cached."""
    total_transactions: int
    eth_transactions: int
    token_transactions: int
    internal_transactions: int
    current_balance: str
    activity: ActivityWindows
    tokens: TokenDistribution
    patterns: FlowPatterns
    funding: FundingInfo = field(default_factory=FundingInfo)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTransactions": self.total_transactions,
            "ethTransactions": self.eth_transactions,
            "tokenTransactions": self.token_transactions,
            "internalTransactions": self.internal_transactions,
            "currentBalance": self.current_balance,
            "activity": self.activity.to_dict(),
            "tokens": self.tokens.to_dict(),
            "patterns": self.patterns.to_dict(),
            "funding": self.funding.to_dict(),
        }


@dataclass
class TransactionPatterns:
    total_transactions: int
    days: int
    average_per_day: str
    eth: int
    token: int
    internal: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTransactions": self.total_transactions,
            "timeScope": f"{self.days} day(s)",
            "averagePerDay": self.average_per_day,
            "transactionTypes": {
                "eth": self.eth,
                "token": self.token,
                "internal": self.internal,
            },
        }


@dataclass
class TimelineBucket:
    """Per-period activity counts. `timestamp` is the ISO bucket start."""
    timestamp: str
    eth_transactions: int = 0
    token_transactions: int = 0
    internal_transactions: int = 0
    total_volume: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "ethTransactions": self.eth_transactions,
            "tokenTransactions": self.token_transactions,
            "internalTransactions": self.internal_transactions,
            "totalVolume": self.total_volume,
        }


@dataclass
class AdvancedQuery:
    """Filters for the combined search."""
    address: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    transaction_type: Optional[str] = None
    token_symbol: Optional[str] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    limit: int = 100
    offset: int = 0
    sort_by: str = "blockNumber"
    sort_order: str = "desc"

    def validate(self) -> None:
        """Validate pagination and sort parameters."""
        if self.limit < 1:
            raise InvalidRangeError("limit must be >= 1", value=self.limit)
        if self.offset < 0:
            raise InvalidRangeError("offset must be >= 0", value=self.offset)
        if self.sort_order not in ("asc", "desc"):
            raise InvalidRangeError("sortOrder must be 'asc' or 'desc'", value=self.sort_order)

    def filters_applied(self) -> int:
        """Number of optional filters set."""
        optional = (
            self.start_date, self.end_date, self.from_block, self.to_block,
            self.transaction_type, self.token_symbol, self.min_amount, self.max_amount,
        )
        return sum(1 for value in optional if value is not None)


@dataclass
class TransactionPage:
    """One page of an advanced search."""
    transactions: list[NormalizedTransaction]
    total: int
    limit: int
    offset: int
    filters_applied: int = 0

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit)

    @property
    def has_next_page(self) -> bool:
        return self.offset + self.limit < self.total

    @property
    def has_prev_page(self) -> bool:
        return self.offset > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactions": [tx.to_dict() for tx in self.transactions],
            "total": self.total,
            "page": self.page,
            "totalPages": self.total_pages,
            "hasNextPage": self.has_next_page,
            "hasPrevPage": self.has_prev_page,
            "metadata": {"filtersApplied": self.filters_applied},
        }


@dataclass
class BranchResult:
    """One branch of a concurrent composite fetch."""
    name: str
    ok: bool
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = self.data
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        elif isinstance(data, list):
            data = [item.to_dict() if hasattr(item, "to_dict") else item for item in data]
        return {"ok": self.ok, "data": data, "error": self.error}


@dataclass
class ComprehensiveReport:
    """Composite fetch result. Partial success is a valid outcome."""
    address: str
    branches: dict[str, BranchResult] = field(default_factory=dict)

    @property
    def failed_branches(self) -> list[str]:
        return [name for name, branch in self.branches.items() if not branch.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "branches": {name: branch.to_dict() for name, branch in self.branches.items()},
            "failedBranches": self.failed_branches,
        }
