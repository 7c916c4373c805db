"""
Node Provider Client - Ethereum JSON-RPC 2.0 over HTTP.

Authoritative but unindexed: anything beyond point lookups requires
scanning blocks or logs. Several endpoints may be configured; on a
transport failure the next one is tried and, if it answers, becomes
primary for subsequent calls.
"""

import logging
from typing import Any, Optional, Sequence, Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import encode_hex, keccak

from wallet_query.config import WalletQueryConfig
from wallet_query.exceptions import ConfigurationError, NodeRpcError
from wallet_query.logging_utils import mask_url
from wallet_query.models import NodeBlock
from wallet_query.normalizer import parse_int
from wallet_query.providers.base import BaseHttpProvider


logger = logging.getLogger(__name__)


# Minimal ERC-20 ABI
ERC20_ABI: list[dict[str, Any]] = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "symbol",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
]

BlockTag = Union[int, str, None]


def to_block_tag(block: BlockTag) -> str:
    """int -> hex quantity, None -> "latest", strings pass through."""
    if block is None:
        return "latest"
    if isinstance(block, int):
        return hex(block)
    return block


class NodeProviderClient(BaseHttpProvider):
    """
    JSON-RPC client with endpoint rotation.

    Logical JSON-RPC errors (`{"error": ...}`) are raised immediately;
    only transport failures move on to the next endpoint.
    """

    def __init__(
        self,
        config: Optional[WalletQueryConfig] = None,
        node_urls: Optional[Sequence[str]] = None,
        session=None,
    ) -> None:
        urls = list(node_urls or (config.node_urls if config else []))
        urls = [url for url in urls if url.startswith(("http://", "https://"))]
        if not urls:
            raise ConfigurationError(
                message="NodeProviderClient requires at least one http(s) node URL",
                config_key="node_urls",
            )
        timeout = config.http_timeout_seconds if config else self.DEFAULT_TIMEOUT
        super().__init__(timeout=timeout, session=session)

        self._urls = urls
        self._primary = 0
        self._request_id = 0

    @property
    def name(self) -> str:
        return "node"

    @property
    def primary_url(self) -> str:
        return self._urls[self._primary]

    def _get_default_headers(self) -> dict[str, str]:
        headers = super()._get_default_headers()
        headers["Content-Type"] = "application/json"
        return headers

    def _transport_error(
        self,
        message: str,
        url: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ) -> NodeRpcError:
        return NodeRpcError(
            message,
            rpc_url=mask_url(url),
            code=status_code,
            original_error=original_error,
        )

    def _next_request_id(self) -> int:
        """Get next JSON-RPC request ID."""
        self._request_id += 1
        return self._request_id

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make a JSON-RPC call, rotating endpoints on transport failure."""
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_request_id(),
            "method": method,
            "params": params,
        }

        last_error: Optional[NodeRpcError] = None
        for attempt in range(len(self._urls)):
            index = (self._primary + attempt) % len(self._urls)
            url = self._urls[index]
            try:
                data = await self._make_request("POST", url, json_body=payload)
            except NodeRpcError as e:
                e.method = method
                last_error = e
                logger.warning(f"[node] {method} failed on {mask_url(url)}: {e.message}")
                continue

            if index != self._primary:
                logger.info(f"[node] Promoting {mask_url(url)} to primary endpoint")
                self._primary = index
            break
        else:
            raise last_error

        if not isinstance(data, dict):
            raise NodeRpcError(
                f"Invalid JSON-RPC response: {type(data).__name__}",
                method=method,
                rpc_url=mask_url(url),
            )

        if data.get("error"):
            error = data["error"]
            raise NodeRpcError(
                f"RPC error: {error.get('message', 'Unknown')}",
                method=method,
                rpc_url=mask_url(url),
                code=error.get("code"),
                context={"error": error},
            )

        return data.get("result")

    def _parse_quantity(self, method: str, value: Any) -> int:
        number = parse_int(value)
        if number is None:
            raise NodeRpcError(f"Expected hex quantity, got {value!r}", method=method)
        return number

    # ─────────────────────────────────────────────────────────────
    # Chain state
    # ─────────────────────────────────────────────────────────────

    async def current_block_number(self) -> int:
        result = await self._rpc_call("eth_blockNumber", [])
        return self._parse_quantity("eth_blockNumber", result)

    async def get_block(
        self,
        number: int,
        include_transactions: bool = False,
    ) -> Optional[NodeBlock]:
        """
        Fetch a block by number.

        Returns:
            NodeBlock, or None when the node does not have the block
        """
        result = await self._rpc_call(
            "eth_getBlockByNumber",
            [to_block_tag(number), include_transactions],
        )
        if not result:
            return None

        return NodeBlock(
            number=self._parse_quantity("eth_getBlockByNumber", result.get("number")),
            timestamp=self._parse_quantity("eth_getBlockByNumber", result.get("timestamp")),
            transactions=list(result.get("transactions") or []),
        )

    async def get_balance(self, address: str, at_block: BlockTag = None) -> int:
        """Balance in wei."""
        result = await self._rpc_call("eth_getBalance", [address, to_block_tag(at_block)])
        return self._parse_quantity("eth_getBalance", result)

    async def get_transaction_count(self, address: str, at_block: BlockTag = None) -> int:
        result = await self._rpc_call(
            "eth_getTransactionCount",
            [address, to_block_tag(at_block)],
        )
        return self._parse_quantity("eth_getTransactionCount", result)

    async def get_code(self, address: str, at_block: BlockTag = None) -> str:
        result = await self._rpc_call("eth_getCode", [address, to_block_tag(at_block)])
        return result or "0x"

    async def gas_price(self) -> int:
        result = await self._rpc_call("eth_gasPrice", [])
        return self._parse_quantity("eth_gasPrice", result)

    async def chain_id(self) -> int:
        result = await self._rpc_call("eth_chainId", [])
        return self._parse_quantity("eth_chainId", result)

    async def get_logs(self, log_filter: dict[str, Any]) -> list[dict[str, Any]]:
        """
        `eth_getLogs`. Integer fromBlock/toBlock are converted to hex.
        """
        params = dict(log_filter)
        for key in ("fromBlock", "toBlock"):
            if key in params:
                params[key] = to_block_tag(params[key])

        result = await self._rpc_call("eth_getLogs", [params])
        if not isinstance(result, list):
            raise NodeRpcError(
                f"Expected log list, got {type(result).__name__}",
                method="eth_getLogs",
            )
        return result

    # ─────────────────────────────────────────────────────────────
    # Contract calls
    # ─────────────────────────────────────────────────────────────

    async def call_contract(
        self,
        address: str,
        abi: list[dict[str, Any]],
        method: str,
        args: Sequence[Any] = (),
        at_block: BlockTag = None,
    ) -> Any:
        """
        Call a view function via `eth_call`.

        Returns:
            The decoded output. Single outputs are unwrapped.
        """
        fragment = next(
            (item for item in abi if item.get("type", "function") == "function" and item.get("name") == method),
            None,
        )
        if fragment is None:
            raise ValueError(f"Method {method} not found in ABI")

        input_types = [item["type"] for item in fragment.get("inputs", [])]
        output_types = [item["type"] for item in fragment.get("outputs", [])]

        selector = keccak(text=f"{method}({','.join(input_types)})")[:4]
        try:
            data = encode_hex(selector + encode(input_types, list(args)))
        except EncodingError as e:
            raise NodeRpcError(
                f"Failed to encode arguments for {method}: {e}",
                method="eth_call",
                original_error=e,
            )

        result = await self._rpc_call(
            "eth_call",
            [{"to": address, "data": data}, to_block_tag(at_block)],
        )

        try:
            decoded = decode(output_types, bytes.fromhex((result or "0x")[2:]))
        except (DecodingError, ValueError) as e:
            raise NodeRpcError(
                f"Failed to decode {method} output from {address}: {e}",
                method="eth_call",
                original_error=e,
            )

        if len(decoded) == 1:
            return decoded[0]
        return decoded
