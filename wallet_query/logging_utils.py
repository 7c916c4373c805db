"""
Wallet Query - Logging setup and credential masking.

Explorer API keys travel as query parameters and node provider keys are
often embedded in the RPC URL path. Neither may reach the logs.
"""

import json
import logging
import re
import sys
from typing import Any, Optional


# Parameter names that should be masked
SENSITIVE_PARAMS = {
    "apikey",
    "api_key",
    "secret",
    "token",
    "access_token",
}

# Provider keys embedded in RPC URL paths (Infura /v3/<key>, Alchemy /v2/<key>)
_URL_KEY_RE = re.compile(r"(/v[23]/)(?!api(?:[/?#]|$))([^/?#\s]+)")


def mask_value(value: str, show_chars: int = 4) -> str:
    """Mask a sensitive value, showing only the first few chars."""
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_params(params: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Mask sensitive query parameters."""
    if not params:
        return {}

    masked = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        else:
            masked[key] = value
    return masked


def mask_url(url: str) -> str:
    """Mask credentials in a URL path or query string."""
    if not url:
        return url

    url = _URL_KEY_RE.sub(lambda m: f"{m.group(1)}***", url)
    for param in SENSITIVE_PARAMS:
        pattern = re.compile(f"({param}=)([^&]+)", re.IGNORECASE)
        url = pattern.sub(lambda m: f"{m.group(1)}***", url)
    return url


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
) -> logging.Logger:
    """
    Configure root logging on stdout.

    Args:
        level: Log level name
        log_format: Output format (json or text)

    Returns:
        The package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("wallet_query")
