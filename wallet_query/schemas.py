"""
Pydantic Schemas for explorer API responses, one per action.

Explorer payloads are loosely typed (numbers arrive as strings, fields
come and go between actions). Records are validated here, at the client
boundary, so the normalizer works on typed input. Every field is
optional: a missing required field is a normalization concern, not a
schema one.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================
# ENVELOPE
# =============================================================

class ExplorerEnvelope(BaseModel):
    """Standard `{status, message, result}` response wrapper."""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    status: Optional[str] = None
    message: Optional[str] = None
    result: Any = None

    @property
    def is_failure(self) -> bool:
        return self.status == "0"


class ExplorerRecord(BaseModel):
    """Base for all explorer list items."""
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


# =============================================================
# TRANSACTION LISTS
# =============================================================

class TransferRecord(ExplorerRecord):
    """Fields shared by every transaction-list action."""
    hash: Optional[str] = None
    block_number: Optional[str] = Field(default=None, alias="blockNumber")
    time_stamp: Optional[str] = Field(default=None, alias="timeStamp")
    from_address: Optional[str] = Field(default=None, alias="from")
    to_address: Optional[str] = Field(default=None, alias="to")
    contract_address: Optional[str] = Field(default=None, alias="contractAddress")
    gas_used: Optional[str] = Field(default=None, alias="gasUsed")
    gas_price: Optional[str] = Field(default=None, alias="gasPrice")


class NormalTransaction(TransferRecord):
    """`txlist` item."""
    value: Optional[str] = None
    is_error: Optional[str] = Field(default=None, alias="isError")
    txreceipt_status: Optional[str] = None
    nonce: Optional[str] = None
    input: Optional[str] = None
    function_name: Optional[str] = Field(default=None, alias="functionName")


class InternalTransaction(TransferRecord):
    """`txlistinternal` item."""
    value: Optional[str] = None
    type: Optional[str] = None
    trace_id: Optional[str] = Field(default=None, alias="traceId")
    is_error: Optional[str] = Field(default=None, alias="isError")


class TokenTransfer(TransferRecord):
    """`tokentx` item."""
    value: Optional[str] = None
    token_name: Optional[str] = Field(default=None, alias="tokenName")
    token_symbol: Optional[str] = Field(default=None, alias="tokenSymbol")
    token_decimal: Optional[str] = Field(default=None, alias="tokenDecimal")


class NftTransfer(TransferRecord):
    """`tokennfttx` item."""
    token_id: Optional[str] = Field(default=None, alias="tokenID")
    token_name: Optional[str] = Field(default=None, alias="tokenName")
    token_symbol: Optional[str] = Field(default=None, alias="tokenSymbol")


class MultiTokenTransfer(TransferRecord):
    """`token1155tx` item."""
    token_id: Optional[str] = Field(default=None, alias="tokenID")
    token_value: Optional[str] = Field(default=None, alias="tokenValue")
    token_name: Optional[str] = Field(default=None, alias="tokenName")
    token_symbol: Optional[str] = Field(default=None, alias="tokenSymbol")


# =============================================================
# ACCOUNT ACTIONS
# =============================================================

class BalanceEntry(ExplorerRecord):
    """`balancemulti` item."""
    account: Optional[str] = None
    balance: Optional[str] = None


class FundedByResult(ExplorerRecord):
    """`fundedby` result."""
    block: Optional[str] = None
    time_stamp: Optional[str] = Field(default=None, alias="timeStamp")
    funding_address: Optional[str] = Field(default=None, alias="fundingAddress")
    funding_txn: Optional[str] = Field(default=None, alias="fundingTxn")
    value: Optional[str] = None


class MinedBlockRecord(ExplorerRecord):
    """`getminedblocks` item."""
    block_number: Optional[str] = Field(default=None, alias="blockNumber")
    time_stamp: Optional[str] = Field(default=None, alias="timeStamp")
    block_reward: Optional[str] = Field(default=None, alias="blockReward")


class BeaconWithdrawalRecord(ExplorerRecord):
    """`txsBeaconWithdrawal` item. `amount` is denominated in gwei."""
    withdrawal_index: Optional[str] = Field(default=None, alias="withdrawalIndex")
    validator_index: Optional[str] = Field(default=None, alias="validatorIndex")
    address: Optional[str] = None
    amount: Optional[str] = None
    block_number: Optional[str] = Field(default=None, alias="blockNumber")
    timestamp: Optional[str] = None


# Transaction list action -> item schema
ACTION_SCHEMAS: dict[str, type[ExplorerRecord]] = {
    "txlist": NormalTransaction,
    "txlistinternal": InternalTransaction,
    "tokentx": TokenTransfer,
    "tokennfttx": NftTransfer,
    "token1155tx": MultiTokenTransfer,
    "balancemulti": BalanceEntry,
    "getminedblocks": MinedBlockRecord,
    "txsBeaconWithdrawal": BeaconWithdrawalRecord,
}
