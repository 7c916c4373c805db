"""
Block Explorer Client - Etherscan V2 API.

API: https://api.etherscan.io/v2/api
Rate Limit: 5 calls/second on the free tier
Auth: API key and chain id appended to every call

Every response is unwrapped from the `{status, message, result}`
envelope. `status == "0"` is a failure even on HTTP 200, including the
"No transactions found" case. List items are validated into per-action
pydantic schemas here, so callers never see raw dictionaries.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from wallet_query.config import WalletQueryConfig
from wallet_query.exceptions import UpstreamError
from wallet_query.logging_utils import mask_params, mask_url
from wallet_query.models import QueryWindow
from wallet_query.normalizer import parse_int
from wallet_query.providers.base import BaseHttpProvider
from wallet_query.rate_limiter import FixedIntervalPacer
from wallet_query.schemas import (
    ACTION_SCHEMAS,
    BalanceEntry,
    BeaconWithdrawalRecord,
    ExplorerEnvelope,
    ExplorerRecord,
    FundedByResult,
    MinedBlockRecord,
)


logger = logging.getLogger(__name__)


class ExplorerClient(BaseHttpProvider):
    """
    Etherscan V2 client.

    No retries. Failures raise UpstreamError and the aggregation engine
    decides whether to degrade to the node.
    """

    DEFAULT_OFFSET = 1000

    def __init__(
        self,
        config: WalletQueryConfig,
        pacer: Optional[FixedIntervalPacer] = None,
        session=None,
    ) -> None:
        super().__init__(timeout=config.http_timeout_seconds, session=session)
        self._api_url = config.explorer_api_url
        self._api_key = config.explorer_api_key
        self._chain_id = config.chain_id
        self._default_offset = config.max_transactions_per_request or self.DEFAULT_OFFSET
        self._pacer = pacer or FixedIntervalPacer(config.request_interval_seconds)

    @property
    def name(self) -> str:
        return "explorer"

    @property
    def pacer(self) -> FixedIntervalPacer:
        return self._pacer

    def _transport_error(
        self,
        message: str,
        url: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ) -> UpstreamError:
        return UpstreamError(
            message,
            http_status=status_code,
            original_error=original_error,
            context={"url": mask_url(url)},
        )

    # ─────────────────────────────────────────────────────────────
    # Core request
    # ─────────────────────────────────────────────────────────────

    async def request(
        self,
        action: str,
        params: Optional[dict[str, Any]] = None,
        module: str = "account",
    ) -> Any:
        """
        Execute one explorer action and return its `result`.

        Raises:
            UpstreamError: transport failure, HTTP error, JSON-RPC error
                or `status == "0"`
        """
        query: dict[str, Any] = {"module": module, "action": action}
        for key, value in (params or {}).items():
            if value is not None:
                query[key] = value
        query["apikey"] = self._api_key
        query["chainid"] = self._chain_id

        logger.debug(f"[explorer] GET {action} params={mask_params(query)}")
        return await self._pacer.run(lambda: self._execute(action, query))

    async def _execute(self, action: str, query: dict[str, Any]) -> Any:
        try:
            data = await self._make_request("GET", self._api_url, params=query)
        except UpstreamError as e:
            e.action = action
            raise

        if not isinstance(data, dict):
            raise UpstreamError(
                f"Unexpected response type: {type(data).__name__}",
                action=action,
            )

        # Proxy module responses use JSON-RPC framing
        if data.get("error"):
            error = data["error"]
            message = error.get("message", "Unknown") if isinstance(error, dict) else str(error)
            raise UpstreamError(f"RPC error: {message}", action=action, context={"error": error})

        envelope = ExplorerEnvelope.model_validate(data)
        if envelope.is_failure:
            detail = envelope.result if isinstance(envelope.result, str) else ""
            message = envelope.message or "NOTOK"
            raise UpstreamError(
                f"{message}: {detail}" if detail else message,
                status=envelope.status,
                action=action,
            )

        return envelope.result

    def _parse_items(
        self,
        action: str,
        items: Any,
        schema: Optional[type[ExplorerRecord]] = None,
    ) -> list[Any]:
        """Validate list items, skipping the ones that do not fit the schema."""
        if not isinstance(items, list):
            raise UpstreamError(
                f"Expected a list result, got {type(items).__name__}",
                action=action,
            )
        schema = schema or ACTION_SCHEMAS[action]

        parsed = []
        for item in items:
            try:
                parsed.append(schema.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    f"[explorer] Skipping invalid {action} item: {e.error_count()} field error(s)"
                )
        return parsed

    async def _list_transfers(
        self,
        action: str,
        address: str,
        window: QueryWindow,
        page: int = 1,
        offset: Optional[int] = None,
        sort: str = "desc",
        contract_address: Optional[str] = None,
    ) -> list[Any]:
        result = await self.request(action, {
            "address": address,
            "contractaddress": contract_address,
            "startblock": window.from_block,
            "endblock": window.to_block,
            "page": page,
            "offset": offset or self._default_offset,
            "sort": sort,
        })
        records = self._parse_items(action, result)
        logger.info(
            f"[explorer] {action} returned {len(records)} records for "
            f"blocks {window.from_block}-{window.to_block}"
        )
        return records

    # ─────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────

    async def get_balance(self, address: str, tag: str = "latest") -> int:
        """Native balance in wei."""
        result = await self.request("balance", {"address": address, "tag": tag})
        return self._parse_wei("balance", result)

    async def get_balance_multi(self, addresses: list[str]) -> list[BalanceEntry]:
        result = await self.request("balancemulti", {
            "address": ",".join(addresses),
            "tag": "latest",
        })
        return self._parse_items("balancemulti", result, BalanceEntry)

    async def get_balance_history(self, address: str, block_number: int) -> int:
        """Native balance in wei at a historical block."""
        result = await self.request("balancehistory", {
            "address": address,
            "blockno": block_number,
        })
        return self._parse_wei("balancehistory", result)

    @staticmethod
    def _parse_wei(action: str, result: Any) -> int:
        wei = parse_int(result)
        if wei is None or wei < 0:
            raise UpstreamError(f"Non-numeric balance result: {result!r}", action=action)
        return wei

    # ─────────────────────────────────────────────────────────────
    # Transaction lists
    # ─────────────────────────────────────────────────────────────

    async def get_tx_list(self, address: str, window: QueryWindow, **kwargs) -> list[Any]:
        return await self._list_transfers("txlist", address, window, **kwargs)

    async def get_internal_tx_list(self, address: str, window: QueryWindow, **kwargs) -> list[Any]:
        return await self._list_transfers("txlistinternal", address, window, **kwargs)

    async def get_token_transfers(self, address: str, window: QueryWindow, **kwargs) -> list[Any]:
        return await self._list_transfers("tokentx", address, window, **kwargs)

    async def get_nft_transfers(self, address: str, window: QueryWindow, **kwargs) -> list[Any]:
        return await self._list_transfers("tokennfttx", address, window, **kwargs)

    async def get_erc1155_transfers(self, address: str, window: QueryWindow, **kwargs) -> list[Any]:
        return await self._list_transfers("token1155tx", address, window, **kwargs)

    # ─────────────────────────────────────────────────────────────
    # Account metadata
    # ─────────────────────────────────────────────────────────────

    async def get_funded_by(self, address: str) -> Optional[FundedByResult]:
        result = await self.request("fundedby", {"address": address})
        if not result:
            return None
        if isinstance(result, list):
            result = result[0]
        try:
            return FundedByResult.model_validate(result)
        except ValidationError as e:
            raise UpstreamError(
                f"Invalid fundedby result: {e.error_count()} field error(s)",
                action="fundedby",
                original_error=e,
            )

    async def get_mined_blocks(
        self,
        address: str,
        blocktype: str = "blocks",
        page: int = 1,
        offset: int = 10,
    ) -> list[MinedBlockRecord]:
        result = await self.request("getminedblocks", {
            "address": address,
            "blocktype": blocktype,
            "page": page,
            "offset": offset,
        })
        return self._parse_items("getminedblocks", result)

    async def get_beacon_withdrawals(
        self,
        address: str,
        window: QueryWindow,
        page: int = 1,
        offset: int = 100,
        sort: str = "desc",
    ) -> list[BeaconWithdrawalRecord]:
        result = await self.request("txsBeaconWithdrawal", {
            "address": address,
            "startblock": window.from_block,
            "endblock": window.to_block,
            "page": page,
            "offset": offset,
            "sort": sort,
        })
        return self._parse_items("txsBeaconWithdrawal", result)
