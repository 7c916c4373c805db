"""
Base HTTP Provider - aiohttp session lifecycle shared by the explorer
and node clients.

Sessions are long-lived and read-only after construction; one instance
can serve any number of concurrent requests.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from wallet_query.exceptions import WalletQueryError


logger = logging.getLogger(__name__)


class BaseHttpProvider(ABC):
    """
    Abstract base class for HTTP-backed providers.

    Subclasses implement `name` and `_transport_error()`, which maps
    HTTP/connection failures to the provider's own exception type.
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._last_latency_ms: Optional[float] = None
        self._request_count = 0

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in log prefixes."""
        pass

    @abstractmethod
    def _transport_error(
        self,
        message: str,
        url: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ) -> WalletQueryError:
        """Build the exception raised for HTTP/connection failures."""
        pass

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": "WalletQuery/1.0",
        }

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """Make HTTP request and decode the JSON body."""
        session = await self._get_session()
        self._request_count += 1

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
            ) as response:
                self._last_latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    raise self._transport_error(
                        "Rate limit exceeded",
                        url,
                        status_code=429,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise self._transport_error(
                        f"HTTP {response.status}: {body[:200]}",
                        url,
                        status_code=response.status,
                    )

                return await response.json(content_type=None)

        except aiohttp.ClientError as e:
            raise self._transport_error(
                f"Connection error: {e}",
                url,
                original_error=e,
            )
        except asyncio.TimeoutError as e:
            raise self._transport_error(
                "Request timed out",
                url,
                original_error=e,
            )
        except ValueError as e:
            raise self._transport_error(
                f"Invalid JSON response: {e}",
                url,
                original_error=e,
            )

    def get_stats(self) -> dict[str, Any]:
        return {
            "requests": self._request_count,
            "last_latency_ms": self._last_latency_ms,
        }

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseHttpProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, requests={self._request_count})>"
