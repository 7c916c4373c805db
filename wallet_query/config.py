"""
Wallet Query Configuration - Endpoints, credentials and pacing.

Loaded once at process start and passed explicitly to every client and
to the aggregation engine. There is no module-level config singleton.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from dotenv import load_dotenv

from wallet_query.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


ETHERSCAN_V2_API_URL = "https://api.etherscan.io/v2/api"

# Checked in order; the first one set becomes the primary node.
NODE_URL_ENV_VARS = ("INFURA_URL", "ALCHEMY_URL", "LOCAL_RPC_URL")


@dataclass
class WalletQueryConfig:
    """Configuration for explorer/node access and aggregation bounds."""

    # Endpoints
    node_urls: list[str] = field(default_factory=list)
    explorer_api_key: str = ""
    explorer_api_url: str = ETHERSCAN_V2_API_URL
    chain_id: int = 1

    # Pacing (seconds)
    request_interval_seconds: float = 0.2  # explorer free tier: 5 calls/second
    category_delay_seconds: float = 0.3
    node_probe_delay_seconds: float = 0.1
    fallback_block_delay_seconds: float = 0.1

    # Windows (blocks)
    default_window_blocks: int = 50
    fallback_window_blocks: int = 5
    max_transactions_per_request: int = 1000

    resolver_max_iterations: int = 15

    # Timeouts
    http_timeout_seconds: float = 30.0
    request_deadline_seconds: Optional[float] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "WalletQueryConfig":
        """Build configuration from environment variables (and `.env`)."""
        load_dotenv(env_file)

        node_urls = [os.environ[name] for name in NODE_URL_ENV_VARS if os.environ.get(name)]
        extra = os.environ.get("NODE_RPC_URLS", "")
        for url in (item.strip() for item in extra.split(",")):
            if url and url not in node_urls:
                node_urls.append(url)

        deadline = os.environ.get("REQUEST_DEADLINE_SECONDS")

        try:
            return cls(
                node_urls=node_urls,
                explorer_api_key=os.environ.get("ETHERSCAN_API_KEY", ""),
                explorer_api_url=os.environ.get("ETHERSCAN_API_URL", ETHERSCAN_V2_API_URL),
                chain_id=int(os.environ.get("CHAIN_ID", "1")),
                request_interval_seconds=float(os.environ.get("REQUEST_INTERVAL_SECONDS", "0.2")),
                http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30")),
                request_deadline_seconds=float(deadline) if deadline else None,
                log_level=os.environ.get("LOG_LEVEL", "INFO"),
                log_format=os.environ.get("LOG_FORMAT", "text"),
            )
        except ValueError as e:
            raise ConfigurationError(
                message=f"Invalid numeric configuration value: {e}",
                original_error=e,
            )

    def validate(self) -> None:
        """Fail fast on unusable configuration."""
        usable = [url for url in self.node_urls if url.startswith(("http://", "https://"))]
        if not usable:
            raise ConfigurationError(
                message=(
                    "No Ethereum node URL found. Set INFURA_URL, ALCHEMY_URL, "
                    "LOCAL_RPC_URL or NODE_RPC_URLS"
                ),
                config_key="node_urls",
            )
        if self.request_interval_seconds < 0:
            raise ConfigurationError(
                message="request_interval_seconds must be >= 0",
                config_key="request_interval_seconds",
            )
        if self.fallback_window_blocks > self.default_window_blocks:
            raise ConfigurationError(
                message="fallback_window_blocks must not exceed default_window_blocks",
                config_key="fallback_window_blocks",
            )
        if not self.explorer_api_key:
            logger.warning("ETHERSCAN_API_KEY is not set, explorer calls will be rejected")

    @property
    def explorer_configured(self) -> bool:
        return bool(self.explorer_api_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_urls": len(self.node_urls),
            "explorer_api_url": self.explorer_api_url,
            "explorer_configured": self.explorer_configured,
            "chain_id": self.chain_id,
            "request_interval_seconds": self.request_interval_seconds,
            "default_window_blocks": self.default_window_blocks,
            "fallback_window_blocks": self.fallback_window_blocks,
        }
