"""
In-memory filters over normalized transaction streams.

Pure functions. Amounts compare as floats, which is adequate for UI
filtering and not for accounting.
"""

from itertools import chain
from typing import Callable, Iterable, Optional

from wallet_query.exceptions import InvalidRangeError
from wallet_query.models import AdvancedQuery, NormalizedTransaction, TransactionPage
from wallet_query.validation import SECONDS_PER_DAY, parse_utc_date


Transactions = list[NormalizedTransaction]

SORT_KEYS: dict[str, Callable[[NormalizedTransaction], float]] = {
    "blockNumber": lambda tx: tx.block_number,
    "timestamp": lambda tx: tx.timestamp,
    "value": lambda tx: tx.amount(),
}

# "eth" selects records without a token symbol, "token" the rest
KINDS = ("all", "eth", "token")


def _matches_kind(tx: NormalizedTransaction, kind: str) -> bool:
    if kind == "eth":
        return not tx.token_symbol
    if kind == "token":
        return bool(tx.token_symbol)
    return True


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise InvalidRangeError(f"type must be one of {', '.join(KINDS)}", value=kind)


def by_date_range(
    transactions: Iterable[NormalizedTransaction],
    start_timestamp: int,
    end_timestamp: int,
    kind: str = "all",
) -> Transactions:
    """Inclusive timestamp bounds."""
    _check_kind(kind)
    return [
        tx for tx in transactions
        if start_timestamp <= tx.timestamp <= end_timestamp and _matches_kind(tx, kind)
    ]


def by_block_range(
    transactions: Iterable[NormalizedTransaction],
    from_block: Optional[int] = None,
    to_block: Optional[int] = None,
    kind: str = "all",
) -> Transactions:
    """Inclusive block bounds; a missing bound is open."""
    _check_kind(kind)
    return [
        tx for tx in transactions
        if (from_block is None or tx.block_number >= from_block)
        and (to_block is None or tx.block_number <= to_block)
        and _matches_kind(tx, kind)
    ]


def by_token(transactions: Iterable[NormalizedTransaction], token_symbol: str) -> Transactions:
    """Case-insensitive symbol match. "eth" selects native-denominated records."""
    symbol = token_symbol.lower()
    if symbol == "eth":
        return [tx for tx in transactions if not tx.token_symbol]
    return [
        tx for tx in transactions
        if tx.token_symbol and tx.token_symbol.lower() == symbol
    ]


def by_type(transactions: Iterable[NormalizedTransaction], transaction_type: str) -> Transactions:
    """Match on category (native, erc20, ...) or direction (send, receive)."""
    wanted = transaction_type.lower()
    return [
        tx for tx in transactions
        if tx.category.value == wanted or tx.direction.value == wanted
    ]


def by_amount_range(
    transactions: Iterable[NormalizedTransaction],
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
) -> Transactions:
    """Inclusive amount bounds. Idempotent."""
    return [
        tx for tx in transactions
        if (min_amount is None or tx.amount() >= min_amount)
        and (max_amount is None or tx.amount() <= max_amount)
    ]


def sort_transactions(
    transactions: Iterable[NormalizedTransaction],
    sort_by: str = "blockNumber",
    sort_order: str = "desc",
) -> Transactions:
    """Stable sort; ties keep their input order in both directions."""
    key = SORT_KEYS.get(sort_by)
    if key is None:
        raise InvalidRangeError(
            f"sortBy must be one of {', '.join(SORT_KEYS)}",
            value=sort_by,
        )
    return sorted(transactions, key=key, reverse=(sort_order == "desc"))


def merge_descending(*streams: Iterable[NormalizedTransaction]) -> Transactions:
    """Concatenate streams in order, then stable-sort by block, newest first."""
    return sort_transactions(chain.from_iterable(streams), "blockNumber", "desc")


def paginate(
    transactions: Transactions,
    limit: int,
    offset: int,
    filters_applied: int = 0,
) -> TransactionPage:
    return TransactionPage(
        transactions=transactions[offset:offset + limit],
        total=len(transactions),
        limit=limit,
        offset=offset,
        filters_applied=filters_applied,
    )


def apply_query(transactions: Iterable[NormalizedTransaction], query: AdvancedQuery) -> TransactionPage:
    """
    Apply every filter set on `query`, sort, then paginate.

    Raises:
        InvalidRangeError: bad pagination or sort parameters
        InvalidDateError: unparseable start/end date
    """
    query.validate()
    result = list(transactions)

    if query.start_date or query.end_date:
        start = parse_utc_date(query.start_date) if query.start_date else 0
        end = (
            parse_utc_date(query.end_date) + SECONDS_PER_DAY - 1
            if query.end_date else float("inf")
        )
        result = by_date_range(result, start, end)

    if query.from_block is not None or query.to_block is not None:
        result = by_block_range(result, query.from_block, query.to_block)

    if query.transaction_type:
        result = by_type(result, query.transaction_type)

    if query.token_symbol and query.token_symbol.lower() != "all":
        result = by_token(result, query.token_symbol)

    if query.min_amount is not None or query.max_amount is not None:
        result = by_amount_range(result, query.min_amount, query.max_amount)

    result = sort_transactions(result, query.sort_by, query.sort_order)
    return paginate(result, query.limit, query.offset, query.filters_applied())
