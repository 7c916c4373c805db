"""
Caller input validation - addresses, calendar dates and ranges.

Failures raise immediately and are never retried.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from eth_utils import is_address, to_checksum_address

from wallet_query.exceptions import (
    InvalidAddressError,
    InvalidDateError,
    InvalidRangeError,
)
from wallet_query.models import AddressValidation


MAX_DAYS_BACK = 30
MAX_MULTI_BALANCE_ADDRESSES = 20
SECONDS_PER_DAY = 86400


def check_address(address: Optional[str]) -> AddressValidation:
    """Report validity and checksum form without raising."""
    if not isinstance(address, str) or not is_address(address):
        return AddressValidation(is_valid=False, checksum_address=None)
    return AddressValidation(is_valid=True, checksum_address=to_checksum_address(address))


def validate_address(address: Optional[str]) -> str:
    """Return the checksummed address or raise InvalidAddressError."""
    result = check_address(address)
    if not result.is_valid:
        raise InvalidAddressError("Invalid Ethereum address", value=address)
    return result.checksum_address


def parse_utc_date(date: Optional[str]) -> int:
    """UNIX timestamp of YYYY-MM-DD at 00:00:00 UTC."""
    if not date:
        raise InvalidDateError("Date is required. Use YYYY-MM-DD", value=date)
    try:
        day = datetime.strptime(date.strip(), "%Y-%m-%d")
    except ValueError as e:
        raise InvalidDateError(
            "Invalid date format. Use YYYY-MM-DD",
            value=date,
            original_error=e,
        )
    return int(day.replace(tzinfo=timezone.utc).timestamp())


def parse_day_bounds(start_date: str, end_date: str) -> tuple[int, int]:
    """Inclusive [start 00:00:00, end 23:59:59] UTC bounds for two dates."""
    start = parse_utc_date(start_date)
    end = parse_utc_date(end_date) + SECONDS_PER_DAY - 1
    if start > end:
        raise InvalidRangeError(
            f"startDate {start_date} is after endDate {end_date}",
            value=(start_date, end_date),
        )
    return start, end


def parse_duration_days(duration: Optional[str], default: int) -> int:
    """Convert '7d' / '48h' style durations to whole days."""
    if not duration:
        return default
    text = duration.strip().lower()
    try:
        if text.endswith("d"):
            return int(text[:-1])
        if text.endswith("h"):
            return math.ceil(int(text[:-1]) / 24)
    except ValueError as e:
        raise InvalidRangeError(f"Invalid duration '{duration}'", value=duration, original_error=e)
    return default


def validate_days_back(days_back: int) -> int:
    if days_back < 1 or days_back > MAX_DAYS_BACK:
        raise InvalidRangeError(
            f"daysBack must be between 1 and {MAX_DAYS_BACK}",
            value=days_back,
        )
    return days_back


def validate_address_list(addresses: list[str]) -> list[str]:
    """Validate a multi-balance address list."""
    if not addresses:
        raise InvalidRangeError("At least one address is required", value=addresses)
    if len(addresses) > MAX_MULTI_BALANCE_ADDRESSES:
        raise InvalidRangeError(
            f"Maximum {MAX_MULTI_BALANCE_ADDRESSES} addresses per call",
            value=len(addresses),
        )
    return [validate_address(address.strip()) for address in addresses]
