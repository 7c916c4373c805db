"""
Transaction Normalizer Tests.

============================================================
PURPOSE
============================================================
Unit tests for mapping explorer records, node transactions and
transfer logs to NormalizedTransaction.

TEST CATEGORIES:
- Value helpers: unit formatting, integer parsing
- Explorer records: per-category mapping, status, direction
- Batches: malformed records skipped and logged
- Node records: block-scan transactions and transfer logs

============================================================
"""

import logging

import pytest
from eth_abi import encode
from eth_utils import encode_hex

from wallet_query.exceptions import MalformedRecordError
from wallet_query.models import (
    Direction,
    TokenMetadata,
    TransactionCategory,
    TransactionStatus,
)
from wallet_query.normalizer import (
    TRANSFER_SINGLE_TOPIC,
    TRANSFER_TOPIC,
    classify_log,
    compute_direction,
    format_units,
    normalize,
    normalize_batch,
    normalize_node_transaction,
    normalize_transfer_log,
    pad_address_topic,
    parse_int,
)
from wallet_query.schemas import NormalTransaction


ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
OTHER = "0x000000000000000000000000000000000000dead"
TOKEN = "0x00000000000000000000000000000000000000aa"


def native_record(block: int = 100, **overrides):
    record = {
        "hash": f"0x{block:064x}",
        "blockNumber": str(block),
        "timeStamp": "1704067200",
        "from": ADDRESS.lower(),
        "to": OTHER,
        "value": "1500000000000000000",
        "isError": "0",
        "txreceipt_status": "1",
        "gasUsed": "21000",
        "gasPrice": "1000000000",
    }
    record.update(overrides)
    return record


# ============================================================
# VALUE HELPERS
# ============================================================

class TestValueHelpers:
    """Tests for format_units/parse_int/direction."""

    def test_format_units(self):
        """Test decimal rendering of raw amounts."""
        assert format_units(1_500_000_000_000_000_000, 18) == "1.5"
        assert format_units(0, 18) == "0.0"
        assert format_units(10 ** 18, 18) == "1.0"
        assert format_units(1, 18) == "0.000000000000000001"
        assert format_units(1_234_500, 6) == "1.2345"
        assert format_units(7, 0) == "7.0"

    def test_parse_int(self):
        """Test decimal and hex parsing."""
        assert parse_int("42") == 42
        assert parse_int("0x10") == 16
        assert parse_int(5) == 5
        assert parse_int("") is None
        assert parse_int(None) is None
        assert parse_int("not-a-number") is None

    def test_direction_is_case_insensitive(self):
        """Test send iff from matches the queried address."""
        assert compute_direction(ADDRESS.lower(), ADDRESS) is Direction.SEND
        assert compute_direction(ADDRESS.upper().replace("0X", "0x"), ADDRESS) is Direction.SEND
        assert compute_direction(OTHER, ADDRESS) is Direction.RECEIVE
        assert compute_direction(None, ADDRESS) is Direction.RECEIVE


# ============================================================
# EXPLORER RECORDS
# ============================================================

class TestNormalizeExplorerRecords:
    """Tests for normalize() per category."""

    def test_native_success(self):
        """Test native transfer mapping."""
        tx = normalize(native_record(), TransactionCategory.NATIVE, ADDRESS)

        assert tx.category is TransactionCategory.NATIVE
        assert tx.block_number == 100
        assert tx.timestamp == 1704067200
        assert tx.value == "1.5"
        assert tx.status is TransactionStatus.SUCCESS
        assert tx.direction is Direction.SEND
        assert tx.gas_used == "21000"
        assert tx.gas_price == "1000000000"
        assert tx.token_symbol is None

    def test_native_failed(self):
        """Test failed receipt status."""
        record = native_record(isError="1", txreceipt_status="0")
        tx = normalize(record, TransactionCategory.NATIVE, ADDRESS)

        assert tx.status is TransactionStatus.FAILED

    def test_native_without_receipt_status(self):
        """Test pre-Byzantium records fall back to isError."""
        record = native_record(txreceipt_status="")
        tx = normalize(record, TransactionCategory.NATIVE, ADDRESS)

        assert tx.status is TransactionStatus.SUCCESS

    def test_accepts_schema_instance(self):
        """Test normalizing an already-validated schema record."""
        record = NormalTransaction.model_validate(native_record())
        tx = normalize(record, TransactionCategory.NATIVE, ADDRESS)

        assert tx.hash == record.hash

    def test_receive_direction(self):
        """Test incoming transfer direction."""
        record = native_record(**{"from": OTHER, "to": ADDRESS.lower()})
        tx = normalize(record, TransactionCategory.NATIVE, ADDRESS)

        assert tx.direction is Direction.RECEIVE

    def test_internal_keeps_contract_address(self):
        """Test internal transfers keep contractAddress."""
        record = native_record(contractAddress=TOKEN, type="call")
        tx = normalize(record, TransactionCategory.INTERNAL, ADDRESS)

        assert tx.category is TransactionCategory.INTERNAL
        assert tx.contract_address == TOKEN
        assert tx.status is None

    def test_erc20_uses_token_decimal(self):
        """Test ERC-20 value scaled by tokenDecimal."""
        record = native_record(
            value="2500000",
            tokenDecimal="6",
            tokenSymbol="USDC",
            tokenName="USD Coin",
            contractAddress=TOKEN,
        )
        tx = normalize(record, TransactionCategory.ERC20, ADDRESS)

        assert tx.value == "2.5"
        assert tx.token_symbol == "USDC"
        assert tx.token_name == "USD Coin"
        assert tx.contract_address == TOKEN

    def test_erc20_defaults_to_18_decimals(self):
        """Test missing tokenDecimal assumes 18."""
        record = native_record(value="1000000000000000000", tokenSymbol="XYZ")
        tx = normalize(record, TransactionCategory.ERC20, ADDRESS)

        assert tx.value == "1.0"

    def test_erc721_has_no_value(self):
        """Test ERC-721 mapping."""
        record = native_record(tokenID="42", tokenSymbol="PUNK", contractAddress=TOKEN)
        tx = normalize(record, TransactionCategory.ERC721, ADDRESS)

        assert tx.value is None
        assert tx.token_id == "42"

    def test_erc1155_value_is_quantity(self):
        """Test ERC-1155 value is the unscaled quantity."""
        record = native_record(tokenID="7", tokenValue="3", tokenSymbol="ITEM")
        tx = normalize(record, TransactionCategory.ERC1155, ADDRESS)

        assert tx.value == "3"
        assert tx.token_id == "7"

    def test_missing_block_number_raises(self):
        """Test missing blockNumber is malformed."""
        record = native_record()
        del record["blockNumber"]

        with pytest.raises(MalformedRecordError) as exc_info:
            normalize(record, TransactionCategory.NATIVE, ADDRESS)
        assert exc_info.value.field_name == "blockNumber"

    def test_missing_hash_raises(self):
        """Test missing hash is malformed."""
        record = native_record(hash="")

        with pytest.raises(MalformedRecordError) as exc_info:
            normalize(record, TransactionCategory.NATIVE, ADDRESS)
        assert exc_info.value.field_name == "hash"

    def test_numeric_fields_coerced(self):
        """Test numbers delivered as JSON ints are accepted."""
        record = native_record(blockNumber=123, timeStamp=1704067200)
        tx = normalize(record, TransactionCategory.NATIVE, ADDRESS)

        assert tx.block_number == 123


class TestNormalizeBatch:
    """Tests for normalize_batch()."""

    def test_skips_malformed_record(self, caplog):
        """Test one malformed record in ten is skipped and logged."""
        records = [native_record(block=100 + i) for i in range(10)]
        del records[4]["blockNumber"]

        with caplog.at_level(logging.WARNING, logger="wallet_query.normalizer"):
            result = normalize_batch(records, TransactionCategory.NATIVE, ADDRESS)

        assert len(result) == 9
        assert all(tx.block_number != 104 for tx in result)
        assert "Skipping malformed native record" in caplog.text

    def test_direction_determinism(self):
        """Test exactly one direction holds for every record."""
        records = [
            native_record(block=1, **{"from": ADDRESS.lower()}),
            native_record(block=2, **{"from": OTHER}),
            native_record(block=3, **{"from": ADDRESS}),
        ]
        result = normalize_batch(records, TransactionCategory.NATIVE, ADDRESS)

        for tx in result:
            is_sender = tx.from_address.lower() == ADDRESS.lower()
            assert (tx.direction is Direction.SEND) == is_sender


# ============================================================
# NODE RECORDS
# ============================================================

class TestNodeTransactions:
    """Tests for block-scan transaction mapping."""

    def test_hex_fields(self):
        """Test node transaction fields are hex decoded."""
        tx = normalize_node_transaction(
            {
                "hash": "0xabc",
                "blockNumber": hex(998),
                "from": OTHER,
                "to": ADDRESS.lower(),
                "value": hex(10 ** 18),
                "gasPrice": hex(20_000_000_000),
            },
            timestamp=1704067200,
            queried_address=ADDRESS,
        )

        assert tx.block_number == 998
        assert tx.value == "1.0"
        assert tx.gas_price == "20000000000"
        assert tx.status is None
        assert tx.gas_used is None
        assert tx.direction is Direction.RECEIVE

    def test_missing_block_number(self):
        """Test pending transactions are rejected."""
        with pytest.raises(MalformedRecordError):
            normalize_node_transaction({"hash": "0xabc"}, 0, ADDRESS)


class TestTransferLogs:
    """Tests for log classification and decoding."""

    def _erc20_log(self, **overrides):
        log = {
            "address": TOKEN,
            "topics": [TRANSFER_TOPIC, pad_address_topic(ADDRESS), pad_address_topic(OTHER)],
            "data": encode_hex(encode(["uint256"], [2_500_000])),
            "blockNumber": hex(500),
            "transactionHash": "0xfeed",
            "logIndex": "0x1",
        }
        log.update(overrides)
        return log

    def test_classify(self):
        """Test topic count distinguishes ERC-20 from ERC-721."""
        erc20 = self._erc20_log()
        erc721 = self._erc20_log(topics=erc20["topics"] + ["0x" + "0" * 62 + "2a"])
        erc1155 = self._erc20_log(topics=[TRANSFER_SINGLE_TOPIC, "0x0", "0x0", "0x0"])
        other = self._erc20_log(topics=["0x" + "1" * 64])

        assert classify_log(erc20) is TransactionCategory.ERC20
        assert classify_log(erc721) is TransactionCategory.ERC721
        assert classify_log(erc1155) is TransactionCategory.ERC1155
        assert classify_log(other) is None

    def test_erc20_log(self):
        """Test ERC-20 log decoding with token metadata."""
        tx = normalize_transfer_log(
            self._erc20_log(),
            ADDRESS,
            timestamp=1704067200,
            token=TokenMetadata(symbol="USDC", decimals=6),
        )

        assert tx.category is TransactionCategory.ERC20
        assert tx.value == "2.5"
        assert tx.token_symbol == "USDC"
        assert tx.from_address == ADDRESS
        assert tx.to_address.lower() == OTHER
        assert tx.direction is Direction.SEND
        assert tx.block_number == 500

    def test_erc721_log(self):
        """Test ERC-721 log carries the token id."""
        log = self._erc20_log(data="0x")
        log["topics"] = log["topics"] + ["0x" + "0" * 62 + "2a"]

        tx = normalize_transfer_log(log, ADDRESS, timestamp=0)

        assert tx.category is TransactionCategory.ERC721
        assert tx.token_id == "42"
        assert tx.value is None
        assert tx.token_symbol == "UNKNOWN"

    def test_erc1155_log(self):
        """Test TransferSingle decoding."""
        log = self._erc20_log(
            topics=[
                TRANSFER_SINGLE_TOPIC,
                pad_address_topic(OTHER),
                pad_address_topic(OTHER),
                pad_address_topic(ADDRESS),
            ],
            data=encode_hex(encode(["uint256", "uint256"], [7, 3])),
        )

        tx = normalize_transfer_log(log, ADDRESS, timestamp=0)

        assert tx.category is TransactionCategory.ERC1155
        assert tx.token_id == "7"
        assert tx.value == "3"
        assert tx.direction is Direction.RECEIVE

    def test_synthesized_hash(self):
        """Test hash synthesized when the log has none."""
        log = self._erc20_log(transactionHash=None, blockNumber="0x10", logIndex="0x2")

        tx = normalize_transfer_log(log, ADDRESS, timestamp=0)

        assert tx.hash == f"{TOKEN}-16-2"

    def test_undecodable_data(self):
        """Test truncated payload is malformed."""
        with pytest.raises(MalformedRecordError):
            normalize_transfer_log(self._erc20_log(data="0x1234"), ADDRESS, timestamp=0)

    def test_not_a_transfer(self):
        """Test unrelated events are rejected."""
        with pytest.raises(MalformedRecordError):
            normalize_transfer_log(self._erc20_log(topics=["0x" + "1" * 64]), ADDRESS, timestamp=0)
