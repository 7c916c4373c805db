"""
Aggregation Engine - explorer-first queries with node fallback.

Each category fetch is an explicit state machine:

    explorer OK           -> SUCCESS
    explorer UpstreamError -> UPSTREAM_FAILED when the category has no node
                              equivalent (internal), else node scan of
                              the last few blocks
        all probes OK     -> FALLBACK
        some probes fail  -> FALLBACK_PARTIAL
        nothing usable    -> FALLBACK_FAILED (partial/empty records)

Category fetches never raise for upstream or fallback failure. Invalid
input raises immediately. Single-value queries (balance) degrade to the
node once and let node errors propagate.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Optional

from wallet_query.config import WalletQueryConfig
from wallet_query.exceptions import (
    InvalidRangeError,
    MalformedRecordError,
    NodeRpcError,
    RequestTimeoutError,
    UpstreamError,
    WalletQueryError,
)
from wallet_query.filters import (
    apply_query,
    by_amount_range,
    by_block_range,
    by_date_range,
    by_token,
    by_type,
    merge_descending,
)
from wallet_query.models import (
    AddressBalance,
    AddressValidation,
    AdvancedQuery,
    BeaconWithdrawal,
    BranchResult,
    ComprehensiveReport,
    FetchOutcome,
    FundingInfo,
    MinedBlock,
    NetworkStatus,
    NormalizedTransaction,
    OutcomeState,
    QueryWindow,
    TokenBalance,
    TokenMetadata,
    TransactionCategory,
    TransactionPage,
)
from wallet_query.normalizer import (
    NATIVE_DECIMALS,
    TRANSFER_SINGLE_TOPIC,
    TRANSFER_TOPIC,
    classify_log,
    format_units,
    normalize_batch,
    normalize_node_transaction,
    normalize_transfer_log,
    pad_address_topic,
    parse_int,
)
from wallet_query.providers.explorer import ExplorerClient
from wallet_query.providers.node import ERC20_ABI, NodeProviderClient
from wallet_query.rate_limiter import FixedIntervalPacer, SleepFunc
from wallet_query.resolver import BlockTimestampResolver
from wallet_query.validation import (
    check_address,
    parse_day_bounds,
    parse_utc_date,
    validate_address,
    validate_address_list,
    validate_days_back,
)


logger = logging.getLogger(__name__)


BLOCKS_PER_DAY = 7200
GWEI_DECIMALS = 9
MINED_BLOCK_TYPES = ("blocks", "uncles")

EXPLORER_LISTS = {
    TransactionCategory.NATIVE: "get_tx_list",
    TransactionCategory.INTERNAL: "get_internal_tx_list",
    TransactionCategory.ERC20: "get_token_transfers",
    TransactionCategory.ERC721: "get_nft_transfers",
    TransactionCategory.ERC1155: "get_erc1155_transfers",
}


def _scan_state(failures: int, attempts: int) -> OutcomeState:
    if failures == 0:
        return OutcomeState.FALLBACK
    if failures < attempts:
        return OutcomeState.FALLBACK_PARTIAL
    return OutcomeState.FALLBACK_FAILED


class AggregationEngine:
    """
    Wallet activity aggregation over an explorer and a node.

    Usage:
        config = WalletQueryConfig.from_env()
        async with AggregationEngine.from_config(config) as engine:
            txs = await engine.get_all("0x...")
    """

    def __init__(
        self,
        config: WalletQueryConfig,
        explorer: ExplorerClient,
        node: NodeProviderClient,
        resolver: Optional[BlockTimestampResolver] = None,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self._config = config
        self._explorer = explorer
        self._node = node
        self._sleep = sleep or asyncio.sleep
        self._resolver = resolver or BlockTimestampResolver(
            node,
            max_iterations=config.resolver_max_iterations,
            probe_delay_seconds=config.node_probe_delay_seconds,
            sleep=self._sleep,
        )

    @classmethod
    def from_config(cls, config: WalletQueryConfig) -> "AggregationEngine":
        """Build the engine and its clients from validated configuration."""
        config.validate()
        pacer = FixedIntervalPacer(config.request_interval_seconds)
        return cls(
            config=config,
            explorer=ExplorerClient(config, pacer=pacer),
            node=NodeProviderClient(config),
        )

    @property
    def resolver(self) -> BlockTimestampResolver:
        return self._resolver

    async def close(self) -> None:
        await self._explorer.close()
        await self._node.close()

    async def __aenter__(self) -> "AggregationEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ─────────────────────────────────────────────────────────────
    # Plumbing
    # ─────────────────────────────────────────────────────────────

    async def _bounded(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        """Apply the configured request deadline."""
        deadline = self._config.request_deadline_seconds
        if deadline is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=deadline)
        except asyncio.TimeoutError as e:
            logger.error(f"[engine] {operation} exceeded deadline of {deadline}s")
            raise RequestTimeoutError(
                f"{operation} exceeded deadline of {deadline}s",
                operation=operation,
                timeout_seconds=deadline,
                original_error=e,
            )

    async def _default_window(self, window: Optional[QueryWindow]) -> QueryWindow:
        if window is not None:
            return window
        head = await self._node.current_block_number()
        return QueryWindow.trailing(head, self._config.default_window_blocks)

    # ─────────────────────────────────────────────────────────────
    # Category fetches
    # ─────────────────────────────────────────────────────────────

    async def fetch_category(
        self,
        category: TransactionCategory,
        address: str,
        window: Optional[QueryWindow] = None,
        contract_address: Optional[str] = None,
    ) -> FetchOutcome[NormalizedTransaction]:
        """Fetch one category and report how the records were obtained."""
        return await self._bounded(
            f"fetch_{category.value}",
            self._fetch_category(category, validate_address(address), window, contract_address),
        )

    async def _fetch_category(
        self,
        category: TransactionCategory,
        address: str,
        window: Optional[QueryWindow],
        contract_address: Optional[str],
    ) -> FetchOutcome[NormalizedTransaction]:
        window = await self._default_window(window)

        kwargs = {}
        if contract_address and category.is_token:
            kwargs["contract_address"] = validate_address(contract_address)

        fetch = getattr(self._explorer, EXPLORER_LISTS[category])
        try:
            raw = await fetch(address, window, **kwargs)
        except UpstreamError as e:
            logger.warning(
                f"[engine] Explorer {category.value} fetch failed for {address}: {e.message}. "
                f"Falling back to node scan"
            )
            return await self._fallback(category, address, window, contract_address, e.message)

        records = normalize_batch(raw, category, address)
        logger.info(
            f"[engine] {len(records)} {category.value} records for {address} "
            f"(blocks {window.from_block}-{window.to_block})"
        )
        return FetchOutcome(
            state=OutcomeState.SUCCESS,
            records=records,
            source="explorer",
            window=window,
        )

    async def _fallback(
        self,
        category: TransactionCategory,
        address: str,
        window: QueryWindow,
        contract_address: Optional[str],
        reason: str,
    ) -> FetchOutcome[NormalizedTransaction]:
        if category is TransactionCategory.INTERNAL:
            logger.warning(
                "[engine] Internal transactions need a tracing node, returning no records"
            )
            return FetchOutcome(
                state=OutcomeState.UPSTREAM_FAILED,
                source="explorer",
                window=window,
                error=reason,
            )

        scan_window = window.clamp_tail(self._config.fallback_window_blocks)
        if category is TransactionCategory.NATIVE:
            outcome = await self._scan_native(address, scan_window)
        else:
            outcome = await self._scan_token_logs(category, address, scan_window, contract_address)

        if outcome.error is None:
            outcome.error = reason
        logger.warning(
            f"[engine] {category.value} fallback for {address} ended {outcome.state.value} "
            f"with {len(outcome.records)} records (blocks {scan_window.from_block}-{scan_window.to_block})"
        )
        return outcome

    async def _scan_native(
        self,
        address: str,
        window: QueryWindow,
    ) -> FetchOutcome[NormalizedTransaction]:
        """Inspect every transaction of every block in the window."""
        target = address.lower()
        records: list[NormalizedTransaction] = []
        failures = 0

        for number in range(window.from_block, window.to_block + 1):
            try:
                block = await self._node.get_block(number, include_transactions=True)
            except NodeRpcError as e:
                failures += 1
                logger.warning(f"[engine] Skipping block {number}: {e.message}")
                block = None

            if block is not None:
                for tx in block.transactions:
                    if not isinstance(tx, Mapping):
                        continue
                    sender = (tx.get("from") or "").lower()
                    recipient = (tx.get("to") or "").lower()
                    if target not in (sender, recipient):
                        continue
                    try:
                        records.append(normalize_node_transaction(tx, block.timestamp, address))
                    except MalformedRecordError as e:
                        logger.warning(f"[engine] Skipping node transaction: {e.message}")

            if self._config.fallback_block_delay_seconds > 0:
                await self._sleep(self._config.fallback_block_delay_seconds)

        return FetchOutcome(
            state=_scan_state(failures, window.size),
            records=merge_descending(records),
            source="node",
            window=window,
        )

    async def _scan_token_logs(
        self,
        category: TransactionCategory,
        address: str,
        window: QueryWindow,
        contract_address: Optional[str],
    ) -> FetchOutcome[NormalizedTransaction]:
        """Query incoming and outgoing transfer logs for the address."""
        padded = pad_address_topic(address)
        if category is TransactionCategory.ERC1155:
            # TransferSingle(operator, from, to, id, value)
            queries = (
                ("incoming", [TRANSFER_SINGLE_TOPIC, None, None, padded]),
                ("outgoing", [TRANSFER_SINGLE_TOPIC, None, padded]),
            )
        else:
            queries = (
                ("incoming", [TRANSFER_TOPIC, None, padded]),
                ("outgoing", [TRANSFER_TOPIC, padded]),
            )

        base_filter: dict[str, Any] = {
            "fromBlock": window.from_block,
            "toBlock": window.to_block,
        }
        if contract_address:
            base_filter["address"] = contract_address

        logs: list[dict[str, Any]] = []
        failures = 0
        for label, topics in queries:
            try:
                logs.extend(await self._node.get_logs({**base_filter, "topics": topics}))
            except NodeRpcError as e:
                failures += 1
                logger.warning(f"[engine] {label} {category.value} log query failed: {e.message}")

        timestamps: dict[int, int] = {}
        tokens: dict[str, TokenMetadata] = {}
        seen: set[tuple[Any, Any]] = set()
        records: list[NormalizedTransaction] = []

        for log in logs:
            if classify_log(log) is not category:
                continue
            # Self-transfers match both queries
            key = (log.get("transactionHash"), log.get("logIndex"))
            if key in seen:
                continue
            seen.add(key)

            block_number = parse_int(log.get("blockNumber"))
            if block_number is None:
                logger.warning("[engine] Skipping log without blockNumber")
                continue

            timestamp = await self._block_timestamp(block_number, timestamps)
            token = await self._token_metadata(log.get("address"), category, tokens)
            try:
                records.append(normalize_transfer_log(log, address, timestamp, token))
            except MalformedRecordError as e:
                logger.warning(f"[engine] Skipping {category.value} log: {e.message}")

        return FetchOutcome(
            state=_scan_state(failures, len(queries)),
            records=merge_descending(records),
            source="node",
            window=window,
        )

    async def _block_timestamp(self, number: int, cache: dict[int, int]) -> int:
        if number not in cache:
            try:
                block = await self._node.get_block(number)
                cache[number] = block.timestamp if block else 0
            except NodeRpcError as e:
                logger.warning(f"[engine] Timestamp lookup for block {number} failed: {e.message}")
                cache[number] = 0
        return cache[number]

    async def _token_metadata(
        self,
        contract: Optional[str],
        category: TransactionCategory,
        cache: dict[str, TokenMetadata],
    ) -> TokenMetadata:
        """Best-effort symbol/decimals; UNKNOWN/18 when the contract does not answer."""
        if not contract:
            return TokenMetadata()
        if contract in cache:
            return cache[contract]

        symbol = TokenMetadata.symbol
        decimals = TokenMetadata.decimals
        try:
            symbol = await self._node.call_contract(contract, ERC20_ABI, "symbol")
        except NodeRpcError as e:
            logger.debug(f"[engine] symbol() failed for {contract}: {e.message}")
        if category is TransactionCategory.ERC20:
            try:
                decimals = int(await self._node.call_contract(contract, ERC20_ABI, "decimals"))
            except NodeRpcError as e:
                logger.debug(f"[engine] decimals() failed for {contract}: {e.message}")

        cache[contract] = TokenMetadata(symbol=symbol or TokenMetadata.symbol, decimals=decimals)
        return cache[contract]

    async def get_transactions(
        self,
        address: str,
        window: Optional[QueryWindow] = None,
    ) -> list[NormalizedTransaction]:
        """Native transfers."""
        outcome = await self.fetch_category(TransactionCategory.NATIVE, address, window)
        return outcome.records

    async def get_internal(
        self,
        address: str,
        window: Optional[QueryWindow] = None,
    ) -> list[NormalizedTransaction]:
        outcome = await self.fetch_category(TransactionCategory.INTERNAL, address, window)
        return outcome.records

    async def get_token_transfers(
        self,
        address: str,
        window: Optional[QueryWindow] = None,
        contract_address: Optional[str] = None,
    ) -> list[NormalizedTransaction]:
        outcome = await self.fetch_category(
            TransactionCategory.ERC20, address, window, contract_address
        )
        return outcome.records

    async def get_nft_transfers(
        self,
        address: str,
        window: Optional[QueryWindow] = None,
        contract_address: Optional[str] = None,
    ) -> list[NormalizedTransaction]:
        outcome = await self.fetch_category(
            TransactionCategory.ERC721, address, window, contract_address
        )
        return outcome.records

    async def get_erc1155_transfers(
        self,
        address: str,
        window: Optional[QueryWindow] = None,
        contract_address: Optional[str] = None,
    ) -> list[NormalizedTransaction]:
        outcome = await self.fetch_category(
            TransactionCategory.ERC1155, address, window, contract_address
        )
        return outcome.records

    async def get_all(
        self,
        address: str,
        window: Optional[QueryWindow] = None,
    ) -> list[NormalizedTransaction]:
        """
        All five categories, merged and sorted by block, newest first.

        Categories are fetched one after another with a pause in between
        so the explorer quota holds.
        """
        return await self._bounded("get_all", self._get_all(validate_address(address), window))

    async def _get_all(
        self,
        address: str,
        window: Optional[QueryWindow],
    ) -> list[NormalizedTransaction]:
        window = await self._default_window(window)

        streams = []
        degraded = []
        for index, category in enumerate(TransactionCategory):
            if index and self._config.category_delay_seconds > 0:
                await self._sleep(self._config.category_delay_seconds)
            outcome = await self._fetch_category(category, address, window, None)
            if outcome.is_degraded:
                degraded.append(category.value)
            streams.append(outcome.records)

        merged = merge_descending(*streams)
        logger.info(
            f"[engine] {len(merged)} transactions for {address}"
            + (f", degraded categories: {', '.join(degraded)}" if degraded else "")
        )
        return merged

    async def get_extended_transactions(
        self,
        address: str,
        days_back: int = 7,
    ) -> list[NormalizedTransaction]:
        """Native transfers over a day-based window, capped to the default span."""
        window = await self._extended_window(days_back)
        return await self.get_transactions(address, window)

    async def get_extended_token_transfers(
        self,
        address: str,
        days_back: int = 7,
    ) -> list[NormalizedTransaction]:
        window = await self._extended_window(days_back)
        return await self.get_token_transfers(address, window)

    async def _extended_window(self, days_back: int) -> QueryWindow:
        validate_days_back(days_back)
        span = min(days_back * BLOCKS_PER_DAY, self._config.default_window_blocks)
        head = await self._node.current_block_number()
        return QueryWindow.trailing(head, span)

    # ─────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────

    async def get_balance(self, address: str) -> str:
        """Current native balance in ETH. Node errors propagate."""
        return await self._bounded("get_balance", self._balance(validate_address(address)))

    async def _balance(self, address: str) -> str:
        try:
            wei = await self._explorer.get_balance(address)
        except UpstreamError as e:
            logger.warning(f"[engine] Explorer balance failed for {address}: {e.message}. Using node")
            wei = await self._node.get_balance(address)
        return format_units(wei, NATIVE_DECIMALS)

    async def get_balance_at_date(self, address: str, date: str) -> str:
        """
        Native balance at 00:00 UTC of `date` (YYYY-MM-DD).

        Raises:
            InvalidAddressError: bad address
            InvalidDateError: unparseable date
        """
        address = validate_address(address)
        target = parse_utc_date(date)
        return await self._bounded(
            "get_balance_at_date",
            self._balance_at(address, target),
        )

    async def _balance_at(self, address: str, target: int) -> str:
        block_number = await self._resolver.resolve(target)
        try:
            wei = await self._explorer.get_balance_history(address, block_number)
        except UpstreamError as e:
            logger.warning(
                f"[engine] Explorer balancehistory failed at block {block_number}: {e.message}. "
                f"Using node"
            )
            wei = await self._node.get_balance(address, at_block=block_number)
        return format_units(wei, NATIVE_DECIMALS)

    async def get_multiple_balances(self, addresses: list[str]) -> list[AddressBalance]:
        """Current balances for up to 20 addresses."""
        checked = validate_address_list(addresses)
        return await self._bounded("get_multiple_balances", self._multiple_balances(checked))

    async def _multiple_balances(self, addresses: list[str]) -> list[AddressBalance]:
        try:
            entries = await self._explorer.get_balance_multi(addresses)
        except UpstreamError as e:
            logger.warning(f"[engine] Explorer balancemulti failed: {e.message}. Using node")
            balances = []
            for address in addresses:
                wei = await self._node.get_balance(address)
                balances.append(AddressBalance(address, format_units(wei, NATIVE_DECIMALS)))
            return balances

        return [
            AddressBalance(
                address=entry.account or "",
                balance=format_units(parse_int(entry.balance) or 0, NATIVE_DECIMALS),
            )
            for entry in entries
        ]

    async def get_token_balance_at_date(
        self,
        address: str,
        token_address: str,
        date: str,
    ) -> TokenBalance:
        """ERC-20 balance at 00:00 UTC of `date`, read from the node."""
        address = validate_address(address)
        token_address = validate_address(token_address)
        target = parse_utc_date(date)
        return await self._bounded(
            "get_token_balance_at_date",
            self._token_balance_at(address, token_address, target),
        )

    async def _token_balance_at(self, address: str, token_address: str, target: int) -> TokenBalance:
        block_number = await self._resolver.resolve(target)
        raw = await self._node.call_contract(
            token_address, ERC20_ABI, "balanceOf", [address], at_block=block_number
        )
        token = await self._token_metadata(token_address, TransactionCategory.ERC20, {})
        return TokenBalance(
            balance=format_units(raw, token.decimals),
            balance_raw=str(raw),
            symbol=token.symbol,
            decimals=token.decimals,
            block_number=block_number,
        )

    # ─────────────────────────────────────────────────────────────
    # Explorer-only account data (empty/null on failure)
    # ─────────────────────────────────────────────────────────────

    async def get_funded_by(self, address: str) -> FundingInfo:
        return await self._bounded("get_funded_by", self._funded_by(validate_address(address)))

    async def _funded_by(self, address: str) -> FundingInfo:
        try:
            result = await self._explorer.get_funded_by(address)
        except UpstreamError as e:
            logger.warning(f"[engine] fundedby unavailable for {address}: {e.message}")
            return FundingInfo()
        if result is None:
            return FundingInfo()

        value = parse_int(result.value)
        return FundingInfo(
            funded_by=result.funding_address,
            funding_tx=result.funding_txn,
            block_number=parse_int(result.block),
            timestamp=parse_int(result.time_stamp),
            value=format_units(value, NATIVE_DECIMALS) if value is not None else None,
        )

    async def get_mined_blocks(self, address: str, blocktype: str = "blocks") -> list[MinedBlock]:
        if blocktype not in MINED_BLOCK_TYPES:
            raise InvalidRangeError("blocktype must be 'blocks' or 'uncles'", value=blocktype)
        return await self._bounded(
            "get_mined_blocks",
            self._mined_blocks(validate_address(address), blocktype),
        )

    async def _mined_blocks(self, address: str, blocktype: str) -> list[MinedBlock]:
        try:
            records = await self._explorer.get_mined_blocks(address, blocktype=blocktype)
        except UpstreamError as e:
            logger.warning(f"[engine] getminedblocks unavailable for {address}: {e.message}")
            return []

        blocks = []
        for record in records:
            reward = parse_int(record.block_reward)
            blocks.append(MinedBlock(
                block_number=parse_int(record.block_number),
                timestamp=parse_int(record.time_stamp),
                block_reward=format_units(reward, NATIVE_DECIMALS) if reward is not None else None,
            ))
        return blocks

    async def get_beacon_withdrawals(
        self,
        address: str,
        window: Optional[QueryWindow] = None,
    ) -> list[BeaconWithdrawal]:
        return await self._bounded(
            "get_beacon_withdrawals",
            self._beacon_withdrawals(validate_address(address), window),
        )

    async def _beacon_withdrawals(
        self,
        address: str,
        window: Optional[QueryWindow],
    ) -> list[BeaconWithdrawal]:
        window = await self._default_window(window)
        try:
            records = await self._explorer.get_beacon_withdrawals(address, window)
        except UpstreamError as e:
            logger.warning(f"[engine] txsBeaconWithdrawal unavailable for {address}: {e.message}")
            return []

        withdrawals = []
        for record in records:
            gwei = parse_int(record.amount)
            withdrawals.append(BeaconWithdrawal(
                withdrawal_index=parse_int(record.withdrawal_index),
                validator_index=parse_int(record.validator_index),
                address=record.address,
                amount=format_units(gwei, GWEI_DECIMALS) if gwei is not None else None,
                block_number=parse_int(record.block_number),
                timestamp=parse_int(record.timestamp),
            ))
        return withdrawals

    # ─────────────────────────────────────────────────────────────
    # Utilities
    # ─────────────────────────────────────────────────────────────

    def validate_address(self, address: str) -> AddressValidation:
        return check_address(address)

    async def get_network_status(self) -> NetworkStatus:
        """Head block, gas price and chain id, queried concurrently."""
        block_number, gas_price, chain_id = await self._bounded(
            "get_network_status",
            asyncio.gather(
                self._node.current_block_number(),
                self._node.gas_price(),
                self._node.chain_id(),
            ),
        )
        return NetworkStatus(
            block_number=block_number,
            gas_price=str(gas_price),
            chain_id=str(chain_id),
            explorer_configured=self._config.explorer_configured,
        )

    async def get_head_block(self) -> int:
        """Current head block number."""
        return await self._bounded("get_head_block", self._node.current_block_number())

    async def get_block_from_hours_ago(self, hours_ago: float = 1, block_time_seconds: int = 12) -> int:
        """Estimate the block mined `hours_ago` hours before head."""
        if hours_ago < 0 or block_time_seconds <= 0:
            raise InvalidRangeError(
                "hours_ago must be >= 0 and block_time_seconds > 0",
                value=(hours_ago, block_time_seconds),
            )
        head = await self.get_head_block()
        blocks_ago = int(hours_ago * 3600 // block_time_seconds)
        return max(head - blocks_ago, 0)

    async def fetch_comprehensive(
        self,
        address: str,
        window: Optional[QueryWindow] = None,
    ) -> ComprehensiveReport:
        """
        Balance, funding, mined blocks, beacon withdrawals and all
        transactions, gathered concurrently. A failing branch is reported
        in its BranchResult and does not affect the others.
        """
        address = validate_address(address)
        return await self._bounded(
            "fetch_comprehensive",
            self._comprehensive(address, window),
        )

    async def _comprehensive(
        self,
        address: str,
        window: Optional[QueryWindow],
    ) -> ComprehensiveReport:
        window = await self._default_window(window)

        branches = {
            "balance": self._balance(address),
            "funding": self._funded_by(address),
            "minedBlocks": self._mined_blocks(address, "blocks"),
            "beaconWithdrawals": self._beacon_withdrawals(address, window),
            "transactions": self._get_all(address, window),
        }
        results = await asyncio.gather(*branches.values(), return_exceptions=True)

        report = ComprehensiveReport(address=address)
        for name, result in zip(branches, results):
            report.branches[name] = self._branch_result(name, result)
        if report.failed_branches:
            logger.warning(
                f"[engine] Comprehensive fetch for {address} partial, failed: "
                f"{', '.join(report.failed_branches)}"
            )
        return report

    @staticmethod
    def _branch_result(name: str, result: Any) -> BranchResult:
        if isinstance(result, WalletQueryError):
            logger.warning(f"[engine] Branch {name} failed: {result}")
            return BranchResult(name=name, ok=False, error=result.message)
        if isinstance(result, Exception):
            logger.warning(f"[engine] Branch {name} failed: {result!r}")
            return BranchResult(name=name, ok=False, error=str(result) or type(result).__name__)
        if isinstance(result, BaseException):
            # Cancellation and interpreter exits are not branch failures
            raise result
        return BranchResult(name=name, ok=True, data=result)

    # ─────────────────────────────────────────────────────────────
    # Filters over get_all
    # ─────────────────────────────────────────────────────────────

    async def by_date_range(
        self,
        address: str,
        start_date: str,
        end_date: str,
        kind: str = "all",
    ) -> list[NormalizedTransaction]:
        start, end = parse_day_bounds(start_date, end_date)
        return by_date_range(await self.get_all(address), start, end, kind)

    async def by_block_range(
        self,
        address: str,
        from_block: int,
        to_block: int,
        kind: str = "all",
    ) -> list[NormalizedTransaction]:
        window = QueryWindow(from_block=from_block, to_block=to_block)
        return by_block_range(await self.get_all(address, window), from_block, to_block, kind)

    async def by_token(
        self,
        address: str,
        token_symbol: str,
        window: Optional[QueryWindow] = None,
    ) -> list[NormalizedTransaction]:
        return by_token(await self.get_all(address, window), token_symbol)

    async def by_type(
        self,
        address: str,
        transaction_type: str,
        window: Optional[QueryWindow] = None,
    ) -> list[NormalizedTransaction]:
        return by_type(await self.get_all(address, window), transaction_type)

    async def by_amount_range(
        self,
        address: str,
        min_amount: Optional[float] = None,
        max_amount: Optional[float] = None,
        token_symbol: str = "all",
    ) -> list[NormalizedTransaction]:
        transactions = await self.get_all(address)
        if token_symbol.lower() != "all":
            transactions = by_token(transactions, token_symbol)
        return by_amount_range(transactions, min_amount, max_amount)

    async def advanced(self, query: AdvancedQuery) -> TransactionPage:
        """Combined filter, sort and pagination."""
        query.validate()
        window = None
        if query.from_block is not None:
            head = await self._node.current_block_number()
            to_block = query.to_block if query.to_block is not None else head
            window = QueryWindow(from_block=query.from_block, to_block=min(to_block, head))
        return apply_query(await self.get_all(query.address, window), query)
