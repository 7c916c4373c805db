"""
Transaction Normalizer - maps every upstream transaction shape to
NormalizedTransaction.

Pure functions, no I/O. Optional fields that are missing or malformed
become None/defaults. Only a missing hash or block number is fatal for a
record, and even then only for that record.
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex, keccak, to_checksum_address
from pydantic import ValidationError

from wallet_query.exceptions import MalformedRecordError
from wallet_query.models import (
    Direction,
    NormalizedTransaction,
    TokenMetadata,
    TransactionCategory,
    TransactionStatus,
)
from wallet_query.schemas import (
    ExplorerRecord,
    InternalTransaction,
    MultiTokenTransfer,
    NftTransfer,
    NormalTransaction,
    TokenTransfer,
)


logger = logging.getLogger(__name__)


NATIVE_DECIMALS = 18
# Assumed when the explorer omits tokenDecimal. Wrong for non-18 tokens.
DEFAULT_TOKEN_DECIMALS = 18

TRANSFER_TOPIC = encode_hex(keccak(text="Transfer(address,address,uint256)"))
TRANSFER_SINGLE_TOPIC = encode_hex(
    keccak(text="TransferSingle(address,address,address,uint256,uint256)")
)

CATEGORY_SCHEMAS: dict[TransactionCategory, type[ExplorerRecord]] = {
    TransactionCategory.NATIVE: NormalTransaction,
    TransactionCategory.INTERNAL: InternalTransaction,
    TransactionCategory.ERC20: TokenTransfer,
    TransactionCategory.ERC721: NftTransfer,
    TransactionCategory.ERC1155: MultiTokenTransfer,
}

RawRecord = Union[ExplorerRecord, Mapping[str, Any]]


# =============================================================
# VALUE HELPERS
# =============================================================

def format_units(value: int, decimals: int) -> str:
    """Render a raw integer amount as a decimal string ("1.5", "0.0")."""
    sign = "-" if value < 0 else ""
    value = abs(value)
    if decimals <= 0:
        return f"{sign}{value}.0"
    whole, fraction = divmod(value, 10 ** decimals)
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{fraction_str}"


def parse_int(value: Any) -> Optional[int]:
    """Parse decimal or 0x-hex integers. None when absent or unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    except ValueError:
        return None


def compute_direction(from_address: Optional[str], queried_address: str) -> Direction:
    """SEND iff `from` equals the queried address, case-insensitively."""
    if from_address and from_address.lower() == queried_address.lower():
        return Direction.SEND
    return Direction.RECEIVE


def pad_address_topic(address: str) -> str:
    """Left-pad an address to a 32-byte log topic."""
    return "0x" + address.lower().replace("0x", "").rjust(64, "0")


def topic_to_address(topic: str) -> str:
    """Extract the checksummed address from a 32-byte topic."""
    return to_checksum_address("0x" + topic[-40:])


def _format_amount(raw: Optional[str], decimals: int) -> str:
    amount = parse_int(raw)
    return format_units(amount if amount is not None else 0, decimals)


def _coerce(raw: RawRecord, category: TransactionCategory) -> ExplorerRecord:
    schema = CATEGORY_SCHEMAS[category]
    if isinstance(raw, schema):
        return raw
    if isinstance(raw, ExplorerRecord):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        raise MalformedRecordError(
            f"Expected a mapping for {category.value} record",
            raw_data=raw,
        )
    try:
        return schema.model_validate(dict(raw))
    except ValidationError as e:
        raise MalformedRecordError(
            f"Invalid {category.value} record: {e.error_count()} field error(s)",
            raw_data=raw,
            original_error=e,
        )


def _native_status(record: NormalTransaction) -> TransactionStatus:
    if record.txreceipt_status == "1":
        return TransactionStatus.SUCCESS
    # Pre-Byzantium receipts carry no status field, only isError
    if not record.txreceipt_status and record.is_error == "0":
        return TransactionStatus.SUCCESS
    return TransactionStatus.FAILED


# =============================================================
# EXPLORER RECORDS
# =============================================================

def normalize(
    raw: RawRecord,
    category: TransactionCategory,
    queried_address: str,
    decimals: Optional[int] = None,
) -> NormalizedTransaction:
    """
    Normalize one explorer record.

    Args:
        raw: Explorer list item (schema instance or plain mapping)
        category: Transaction category the record belongs to
        queried_address: Address the direction is computed against
        decimals: Token decimals from metadata, used when the record
            itself carries no tokenDecimal

    Raises:
        MalformedRecordError: hash or blockNumber missing
    """
    record = _coerce(raw, category)

    if not record.hash:
        raise MalformedRecordError(
            f"{category.value} record has no hash",
            field_name="hash",
            raw_data=raw,
        )
    block_number = parse_int(record.block_number)
    if block_number is None:
        raise MalformedRecordError(
            f"{category.value} record {record.hash} has no blockNumber",
            field_name="blockNumber",
            raw_data=raw,
        )

    base = dict(
        hash=record.hash,
        block_number=block_number,
        timestamp=parse_int(record.time_stamp) or 0,
        from_address=record.from_address or None,
        to_address=record.to_address or None,
        category=category,
        direction=compute_direction(record.from_address, queried_address),
    )

    if category is TransactionCategory.NATIVE:
        return NormalizedTransaction(
            **base,
            value=_format_amount(record.value, NATIVE_DECIMALS),
            status=_native_status(record),
            gas_used=record.gas_used or None,
            gas_price=record.gas_price or None,
        )

    if category is TransactionCategory.INTERNAL:
        return NormalizedTransaction(
            **base,
            value=_format_amount(record.value, NATIVE_DECIMALS),
            contract_address=record.contract_address or None,
            gas_used=record.gas_used or None,
        )

    if category is TransactionCategory.ERC20:
        token_decimals = parse_int(record.token_decimal)
        if token_decimals is None:
            token_decimals = decimals if decimals is not None else DEFAULT_TOKEN_DECIMALS
        return NormalizedTransaction(
            **base,
            value=_format_amount(record.value, token_decimals),
            token_symbol=record.token_symbol or None,
            token_name=record.token_name or None,
            contract_address=record.contract_address or None,
            gas_used=record.gas_used or None,
            gas_price=record.gas_price or None,
        )

    if category is TransactionCategory.ERC721:
        return NormalizedTransaction(
            **base,
            value=None,
            token_symbol=record.token_symbol or None,
            token_name=record.token_name or None,
            contract_address=record.contract_address or None,
            token_id=record.token_id or None,
        )

    quantity = parse_int(record.token_value)
    return NormalizedTransaction(
        **base,
        value=str(quantity) if quantity is not None else None,
        token_symbol=record.token_symbol or None,
        token_name=record.token_name or None,
        contract_address=record.contract_address or None,
        token_id=record.token_id or None,
    )


def normalize_batch(
    records: Iterable[RawRecord],
    category: TransactionCategory,
    queried_address: str,
) -> list[NormalizedTransaction]:
    """Normalize a page of records, skipping (and logging) malformed ones."""
    normalized = []
    skipped = 0
    for raw in records:
        try:
            normalized.append(normalize(raw, category, queried_address))
        except MalformedRecordError as e:
            skipped += 1
            logger.warning(f"Skipping malformed {category.value} record: {e.message}")
    if skipped:
        logger.info(f"Normalized {len(normalized)} {category.value} records, skipped {skipped}")
    return normalized


# =============================================================
# NODE RECORDS
# =============================================================

def normalize_node_transaction(
    tx: Mapping[str, Any],
    timestamp: int,
    queried_address: str,
) -> NormalizedTransaction:
    """
    Normalize a full transaction object from `eth_getBlockByNumber`.

    Receipts are not fetched during block scans, so status and gasUsed
    stay unknown.
    """
    tx_hash = tx.get("hash")
    block_number = parse_int(tx.get("blockNumber"))
    if not tx_hash or block_number is None:
        raise MalformedRecordError(
            "Node transaction missing hash or blockNumber",
            field_name="hash" if not tx_hash else "blockNumber",
            raw_data=tx,
        )

    value = parse_int(tx.get("value"))
    gas_price = parse_int(tx.get("gasPrice"))
    from_address = tx.get("from") or None
    return NormalizedTransaction(
        hash=tx_hash,
        block_number=block_number,
        timestamp=timestamp,
        from_address=from_address,
        to_address=tx.get("to") or None,
        value=format_units(value or 0, NATIVE_DECIMALS),
        category=TransactionCategory.NATIVE,
        direction=compute_direction(from_address, queried_address),
        gas_price=str(gas_price) if gas_price is not None else None,
    )


def classify_log(log: Mapping[str, Any]) -> Optional[TransactionCategory]:
    """Infer the token standard of a transfer log from its topics."""
    topics = log.get("topics") or []
    if not topics:
        return None
    signature = str(topics[0]).lower()
    if signature == TRANSFER_TOPIC:
        # ERC-721 indexes tokenId as a fourth topic
        if len(topics) == 3:
            return TransactionCategory.ERC20
        if len(topics) == 4:
            return TransactionCategory.ERC721
    if signature == TRANSFER_SINGLE_TOPIC and len(topics) == 4:
        return TransactionCategory.ERC1155
    return None


def _log_data(log: Mapping[str, Any]) -> bytes:
    data = log.get("data") or "0x"
    return bytes.fromhex(str(data)[2:] if str(data).startswith("0x") else str(data))


def normalize_transfer_log(
    log: Mapping[str, Any],
    queried_address: str,
    timestamp: int,
    token: Optional[TokenMetadata] = None,
) -> NormalizedTransaction:
    """
    Decode a Transfer/TransferSingle log into a NormalizedTransaction.

    Logs without a transaction hash get one synthesized from the
    contract address, block number and log index.

    Raises:
        MalformedRecordError: unknown event shape or undecodable payload
    """
    token = token or TokenMetadata()
    category = classify_log(log)
    if category is None:
        raise MalformedRecordError("Not a token transfer log", field_name="topics", raw_data=log)

    block_number = parse_int(log.get("blockNumber"))
    if block_number is None:
        raise MalformedRecordError("Log has no blockNumber", field_name="blockNumber", raw_data=log)

    contract = log.get("address") or ""
    tx_hash = log.get("transactionHash")
    if not tx_hash:
        log_index = parse_int(log.get("logIndex"))
        tx_hash = f"{contract}-{block_number}" + (f"-{log_index}" if log_index is not None else "")

    topics = [str(topic) for topic in log["topics"]]
    try:
        if category is TransactionCategory.ERC1155:
            from_address = topic_to_address(topics[2])
            to_address = topic_to_address(topics[3])
            token_id, quantity = decode(["uint256", "uint256"], _log_data(log))
            value: Optional[str] = str(quantity)
            token_id_str: Optional[str] = str(token_id)
        else:
            from_address = topic_to_address(topics[1])
            to_address = topic_to_address(topics[2])
            if category is TransactionCategory.ERC721:
                value = None
                token_id_str = str(int(topics[3], 16))
            else:
                (amount,) = decode(["uint256"], _log_data(log))
                value = format_units(amount, token.decimals)
                token_id_str = None
    except (DecodingError, ValueError, TypeError, IndexError) as e:
        raise MalformedRecordError(
            f"Failed to decode {category.value} log: {e}",
            field_name="data",
            raw_data=log,
            original_error=e,
        )

    return NormalizedTransaction(
        hash=tx_hash,
        block_number=block_number,
        timestamp=timestamp,
        from_address=from_address,
        to_address=to_address,
        value=value,
        category=category,
        direction=compute_direction(from_address, queried_address),
        token_symbol=token.symbol,
        token_name=token.name,
        contract_address=contract or None,
        token_id=token_id_str,
    )
