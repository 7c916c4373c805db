"""
Configuration, Validation and Pacing Tests.

============================================================
PURPOSE
============================================================
Tests for environment configuration, caller input validation,
query windows, credential masking and explorer call pacing.

============================================================
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from wallet_query.config import WalletQueryConfig
from wallet_query.exceptions import (
    ConfigurationError,
    InvalidAddressError,
    InvalidDateError,
    InvalidRangeError,
)
from wallet_query.logging_utils import mask_params, mask_url
from wallet_query.models import QueryWindow
from wallet_query.rate_limiter import FixedIntervalPacer
from wallet_query.validation import (
    check_address,
    parse_day_bounds,
    parse_duration_days,
    parse_utc_date,
    validate_address,
    validate_address_list,
    validate_days_back,
)


ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"

ENV_VARS = (
    "INFURA_URL",
    "ALCHEMY_URL",
    "LOCAL_RPC_URL",
    "NODE_RPC_URLS",
    "ETHERSCAN_API_KEY",
    "ETHERSCAN_API_URL",
    "CHAIN_ID",
    "REQUEST_INTERVAL_SECONDS",
    "HTTP_TIMEOUT_SECONDS",
    "REQUEST_DEADLINE_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return str(tmp_path / "missing.env")


class TestConfig:
    """Tests for WalletQueryConfig."""

    def test_from_env(self, monkeypatch, clean_env):
        """Test node URL ordering and numeric parsing."""
        monkeypatch.setenv("ALCHEMY_URL", "https://eth-mainnet.g.alchemy.com/v2/key")
        monkeypatch.setenv("INFURA_URL", "https://mainnet.infura.io/v3/key")
        monkeypatch.setenv("NODE_RPC_URLS", "http://localhost:8545, https://mainnet.infura.io/v3/key")
        monkeypatch.setenv("ETHERSCAN_API_KEY", "abc")
        monkeypatch.setenv("CHAIN_ID", "11155111")
        monkeypatch.setenv("REQUEST_DEADLINE_SECONDS", "20")

        config = WalletQueryConfig.from_env(env_file=clean_env)

        assert config.node_urls == [
            "https://mainnet.infura.io/v3/key",
            "https://eth-mainnet.g.alchemy.com/v2/key",
            "http://localhost:8545",
        ]
        assert config.chain_id == 11155111
        assert config.request_deadline_seconds == 20.0
        assert config.explorer_configured is True

    def test_defaults(self, clean_env):
        """Test defaults with an empty environment."""
        config = WalletQueryConfig.from_env(env_file=clean_env)

        assert config.node_urls == []
        assert config.request_interval_seconds == 0.2
        assert config.default_window_blocks == 50
        assert config.fallback_window_blocks == 5
        assert config.request_deadline_seconds is None

    def test_invalid_number(self, monkeypatch, clean_env):
        """Test non-numeric values raise ConfigurationError."""
        monkeypatch.setenv("CHAIN_ID", "mainnet")

        with pytest.raises(ConfigurationError):
            WalletQueryConfig.from_env(env_file=clean_env)

    def test_validate_requires_http_node(self):
        """Test no usable node URL fails fast."""
        with pytest.raises(ConfigurationError) as exc_info:
            WalletQueryConfig().validate()
        assert exc_info.value.config_key == "node_urls"

        with pytest.raises(ConfigurationError):
            WalletQueryConfig(node_urls=["wss://mainnet.infura.io/ws/v3/key"]).validate()

    def test_validate_missing_key_warns(self, caplog):
        """Test a missing explorer key is a warning, not an error."""
        config = WalletQueryConfig(node_urls=["http://localhost:8545"])

        with caplog.at_level("WARNING"):
            config.validate()

        assert "ETHERSCAN_API_KEY" in caplog.text
        assert config.explorer_configured is False

    def test_validate_fallback_window(self):
        """Test fallback window cannot exceed the default window."""
        config = WalletQueryConfig(
            node_urls=["http://localhost:8545"],
            explorer_api_key="k",
            fallback_window_blocks=100,
        )

        with pytest.raises(ConfigurationError):
            config.validate()


class TestValidation:
    """Tests for caller input validation."""

    def test_address(self):
        """Test checksum normalization and rejection."""
        assert validate_address(ADDRESS.lower()) == ADDRESS
        assert check_address(None).is_valid is False

        for bad in ("", "0x123", "d8dA6BF26964aF9D7eEd9e03E53415D37aA9604", "0xZZ" + "0" * 38):
            with pytest.raises(InvalidAddressError):
                validate_address(bad)

    def test_utc_date(self):
        """Test YYYY-MM-DD maps to midnight UTC."""
        assert parse_utc_date("2024-01-01") == 1704067200

        for bad in (None, "", "2024/01/01", "2024-13-01", "yesterday"):
            with pytest.raises(InvalidDateError):
                parse_utc_date(bad)

    def test_day_bounds(self):
        """Test inclusive whole-day bounds."""
        assert parse_day_bounds("2024-01-01", "2024-01-01") == (1704067200, 1704067200 + 86399)

        with pytest.raises(InvalidRangeError):
            parse_day_bounds("2024-01-02", "2024-01-01")

    def test_durations(self):
        """Test day and hour durations."""
        assert parse_duration_days("7d", default=1) == 7
        assert parse_duration_days("25h", default=1) == 2
        assert parse_duration_days(None, default=30) == 30

        with pytest.raises(InvalidRangeError):
            parse_duration_days("xd", default=1)

    def test_days_back(self):
        """Test 1..30 inclusive."""
        assert validate_days_back(1) == 1
        assert validate_days_back(30) == 30
        for bad in (0, 31):
            with pytest.raises(InvalidRangeError):
                validate_days_back(bad)

    def test_address_list(self):
        """Test list bounds and per-address validation."""
        assert validate_address_list([f" {ADDRESS.lower()} "]) == [ADDRESS]

        with pytest.raises(InvalidRangeError):
            validate_address_list([])
        with pytest.raises(InvalidRangeError):
            validate_address_list([ADDRESS] * 21)
        with pytest.raises(InvalidAddressError):
            validate_address_list([ADDRESS, "0x1"])


class TestQueryWindow:
    """Tests for block windows."""

    def test_trailing(self):
        """Test trailing windows clamp at genesis."""
        assert QueryWindow.trailing(1000, 50) == QueryWindow(950, 1000)
        assert QueryWindow.trailing(10, 50) == QueryWindow(0, 10)

    def test_clamp_tail(self):
        """Test narrowing to the last blocks of a window."""
        window = QueryWindow(950, 1000).clamp_tail(5)

        assert window == QueryWindow(995, 1000)
        assert window.size == 6
        assert QueryWindow(998, 1000).clamp_tail(5) == QueryWindow(998, 1000)

    def test_invalid(self):
        """Test reversed and negative windows."""
        with pytest.raises(InvalidRangeError):
            QueryWindow(10, 5)
        with pytest.raises(InvalidRangeError):
            QueryWindow(-1, 5)


class TestMasking:
    """Tests for credential masking."""

    def test_mask_url(self):
        """Test provider keys in paths and query strings."""
        assert mask_url("https://mainnet.infura.io/v3/abcdef123") == "https://mainnet.infura.io/v3/***"
        assert mask_url("https://eth-mainnet.g.alchemy.com/v2/xyz") == "https://eth-mainnet.g.alchemy.com/v2/***"
        assert (
            mask_url("https://api.etherscan.io/v2/api?module=account&apikey=secret")
            == "https://api.etherscan.io/v2/api?module=account&apikey=***"
        )

    def test_mask_params(self):
        """Test apikey is masked and other params kept."""
        masked = mask_params({"apikey": "ABCDEFGHIJ", "action": "txlist"})

        assert masked["apikey"] == "ABCD...***"
        assert masked["action"] == "txlist"


class TestPacer:
    """Tests for explorer call pacing."""

    @pytest.mark.asyncio
    async def test_serializes_concurrent_calls(self):
        """Test gathered calls do not overlap and each is followed by a pause."""
        events = []

        async def record_sleep(seconds):
            events.append(("sleep", seconds))

        pacer = FixedIntervalPacer(0.2, sleep=record_sleep)

        def make_call(name):
            async def call():
                events.append(("start", name))
                await asyncio.sleep(0)
                events.append(("end", name))
                return name
            return call

        results = await asyncio.gather(*(pacer.run(make_call(n)) for n in ("a", "b", "c")))

        assert results == ["a", "b", "c"]
        assert events == [
            ("start", "a"), ("end", "a"), ("sleep", 0.2),
            ("start", "b"), ("end", "b"), ("sleep", 0.2),
            ("start", "c"), ("end", "c"), ("sleep", 0.2),
        ]
        assert pacer.paced_calls == 3

    @pytest.mark.asyncio
    async def test_failure_not_paced(self):
        """Test a failing call releases the gate without a pause."""
        sleep = AsyncMock()
        pacer = FixedIntervalPacer(0.2, sleep=sleep)

        async def failing():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await pacer.run(failing)

        sleep.assert_not_awaited()
        assert pacer.paced_calls == 0

    @pytest.mark.asyncio
    async def test_zero_interval(self):
        """Test zero interval never sleeps."""
        sleep = AsyncMock()
        pacer = FixedIntervalPacer(0, sleep=sleep)

        async def call():
            return 1

        assert await pacer.run(call) == 1
        sleep.assert_not_awaited()

    def test_negative_interval(self):
        """Test negative intervals are rejected."""
        with pytest.raises(ValueError):
            FixedIntervalPacer(-1)
