"""
Transaction Filter Tests.

============================================================
PURPOSE
============================================================
Tests for the in-memory filters, merge ordering and pagination.

============================================================
"""

import pytest

from wallet_query.exceptions import InvalidRangeError
from wallet_query.filters import (
    apply_query,
    by_amount_range,
    by_block_range,
    by_date_range,
    by_token,
    by_type,
    merge_descending,
    paginate,
    sort_transactions,
)
from wallet_query.models import (
    AdvancedQuery,
    Direction,
    NormalizedTransaction,
    TransactionCategory,
)


ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
JAN_1_2024 = 1704067200


def make_tx(
    block: int,
    tx_hash: str = None,
    value: str = "1.0",
    category: TransactionCategory = TransactionCategory.NATIVE,
    direction: Direction = Direction.SEND,
    symbol: str = None,
    timestamp: int = None,
) -> NormalizedTransaction:
    return NormalizedTransaction(
        hash=tx_hash or f"0x{block:x}",
        block_number=block,
        timestamp=timestamp if timestamp is not None else JAN_1_2024 + block * 12,
        from_address=ADDRESS,
        to_address=None,
        value=value,
        category=category,
        direction=direction,
        token_symbol=symbol,
    )


@pytest.fixture
def mixed_transactions():
    return [
        make_tx(10, value="0.5"),
        make_tx(11, value="2.0", direction=Direction.RECEIVE),
        make_tx(12, value="100", category=TransactionCategory.ERC20, symbol="USDC"),
        make_tx(13, value="5", category=TransactionCategory.ERC20, symbol="dai"),
        make_tx(14, value=None, category=TransactionCategory.ERC721, symbol="PUNK"),
        make_tx(15, value="0.1", category=TransactionCategory.INTERNAL),
    ]


class TestMerge:
    """Tests for merge ordering."""

    def test_descending_order(self, mixed_transactions):
        """Test adjacent pairs are non-increasing by block."""
        merged = merge_descending(mixed_transactions[:3], mixed_transactions[3:])

        for newer, older in zip(merged, merged[1:]):
            assert newer.block_number >= older.block_number

    def test_ties_keep_fetch_order(self):
        """Test stable ordering within the same block."""
        first = make_tx(50, tx_hash="0xa")
        second = make_tx(50, tx_hash="0xb")
        third = make_tx(50, tx_hash="0xc")

        merged = merge_descending([first], [make_tx(10)], [second, third])

        assert [tx.hash for tx in merged[:3]] == ["0xa", "0xb", "0xc"]

    def test_sort_ascending_by_value(self, mixed_transactions):
        """Test value sort parses amounts."""
        result = sort_transactions(mixed_transactions, "value", "asc")

        assert [tx.block_number for tx in result] == [14, 15, 10, 11, 13, 12]

    def test_unknown_sort_key(self, mixed_transactions):
        """Test invalid sort keys are rejected."""
        with pytest.raises(InvalidRangeError):
            sort_transactions(mixed_transactions, "gas")


class TestPredicates:
    """Tests for individual filters."""

    def test_by_date_range(self, mixed_transactions):
        """Test inclusive timestamp bounds."""
        result = by_date_range(mixed_transactions, JAN_1_2024 + 11 * 12, JAN_1_2024 + 13 * 12)

        assert [tx.block_number for tx in result] == [11, 12, 13]

    def test_by_date_range_kind(self, mixed_transactions):
        """Test eth/token kinds."""
        eth = by_date_range(mixed_transactions, 0, 10**10, kind="eth")
        token = by_date_range(mixed_transactions, 0, 10**10, kind="token")

        assert [tx.block_number for tx in eth] == [10, 11, 15]
        assert [tx.block_number for tx in token] == [12, 13, 14]

        with pytest.raises(InvalidRangeError):
            by_date_range(mixed_transactions, 0, 1, kind="nft")

    def test_by_block_range(self, mixed_transactions):
        """Test open and closed block bounds."""
        assert len(by_block_range(mixed_transactions, 12, 13)) == 2
        assert len(by_block_range(mixed_transactions, from_block=14)) == 2
        assert len(by_block_range(mixed_transactions, to_block=10)) == 1

    def test_by_token(self, mixed_transactions):
        """Test case-insensitive symbols and eth selection."""
        assert [tx.block_number for tx in by_token(mixed_transactions, "DAI")] == [13]
        assert [tx.block_number for tx in by_token(mixed_transactions, "ETH")] == [10, 11, 15]

    def test_by_type(self, mixed_transactions):
        """Test category and direction matching."""
        assert len(by_type(mixed_transactions, "erc20")) == 2
        assert [tx.block_number for tx in by_type(mixed_transactions, "receive")] == [11]

    def test_amount_range_idempotent(self, mixed_transactions):
        """Test re-applying the same range changes nothing."""
        once = by_amount_range(mixed_transactions, 0.2, 10)
        twice = by_amount_range(once, 0.2, 10)

        assert once == twice
        assert [tx.block_number for tx in once] == [10, 11, 13]

    def test_amount_range_open_bounds(self, mixed_transactions):
        """Test missing bounds are open."""
        assert len(by_amount_range(mixed_transactions, min_amount=50)) == 1
        assert len(by_amount_range(mixed_transactions)) == len(mixed_transactions)


class TestPagination:
    """Tests for page arithmetic."""

    @pytest.mark.parametrize("total,limit,offset", [
        (0, 10, 0),
        (5, 10, 0),
        (10, 3, 0),
        (10, 3, 3),
        (10, 3, 9),
        (10, 3, 12),
        (25, 10, 20),
    ])
    def test_page_invariants(self, total, limit, offset):
        """Test page size and navigation flags."""
        transactions = [make_tx(block) for block in range(total)]

        page = paginate(transactions, limit, offset)

        assert len(page.transactions) == min(limit, max(0, total - offset))
        assert page.has_next_page == (offset + limit < total)
        assert page.has_prev_page == (offset > 0)
        assert page.total == total

    def test_page_numbers(self):
        """Test page and total page counts."""
        page = paginate([make_tx(block) for block in range(25)], limit=10, offset=10)

        assert page.page == 2
        assert page.total_pages == 3
        assert page.to_dict()["hasNextPage"] is True


class TestApplyQuery:
    """Tests for the combined search."""

    def test_combined_filters(self, mixed_transactions):
        """Test filters, sort and pagination together."""
        query = AdvancedQuery(
            address=ADDRESS,
            token_symbol="eth",
            min_amount=0.2,
            sort_by="value",
            sort_order="desc",
            limit=1,
        )

        page = apply_query(mixed_transactions, query)

        assert page.total == 2
        assert [tx.block_number for tx in page.transactions] == [11]
        assert page.has_next_page is True
        assert page.filters_applied == 2

    def test_date_bounds(self, mixed_transactions):
        """Test start/end dates cover whole UTC days."""
        query = AdvancedQuery(address=ADDRESS, start_date="2024-01-01", end_date="2024-01-01")

        page = apply_query(mixed_transactions, query)

        assert page.total == len(mixed_transactions)

        query = AdvancedQuery(address=ADDRESS, start_date="2024-01-02")
        assert apply_query(mixed_transactions, query).total == 0

    def test_token_all_is_no_filter(self, mixed_transactions):
        """Test token symbol 'all' keeps everything."""
        page = apply_query(mixed_transactions, AdvancedQuery(address=ADDRESS, token_symbol="all"))

        assert page.total == len(mixed_transactions)

    def test_invalid_pagination(self, mixed_transactions):
        """Test bad limit/offset/sort order."""
        for query in (
            AdvancedQuery(address=ADDRESS, limit=0),
            AdvancedQuery(address=ADDRESS, offset=-1),
            AdvancedQuery(address=ADDRESS, sort_order="up"),
        ):
            with pytest.raises(InvalidRangeError):
                apply_query(mixed_transactions, query)
