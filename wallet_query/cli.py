"""
Wallet Query - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line access to the aggregation engine.

- argparse subcommands, one per query
- Configuration from environment / .env
- Prints JSON to stdout

============================================================
USAGE
============================================================
python -m wallet_query transactions --address 0x...
python -m wallet_query all --address 0x... --from-block 19000000 --to-block 19000050
python -m wallet_query balance-at-date --address 0x... --date 2024-01-01

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from wallet_query.analytics import WalletAnalyticsComputer
from wallet_query.config import WalletQueryConfig
from wallet_query.engine import AggregationEngine
from wallet_query.exceptions import (
    ConfigurationError,
    InvalidInputError,
    WalletQueryError,
)
from wallet_query.logging_utils import setup_logging
from wallet_query.models import QueryWindow


logger = logging.getLogger(__name__)


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INPUT_ERROR = 2

COMMANDS = ("transactions", "all", "balance", "balance-at-date", "analytics", "status")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="wallet-query",
        description="Ethereum wallet activity aggregation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  transactions     - Native transfers in a block window
  all              - All categories merged, newest first
  balance          - Current ETH balance
  balance-at-date  - ETH balance at 00:00 UTC of a date
  analytics        - Activity, token and flow summary
  status           - Node head, gas price and chain id

Examples:
  %(prog)s transactions --address 0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045
  %(prog)s balance-at-date --address 0x... --date 2024-01-01
        """
    )

    parser.add_argument(
        "command",
        choices=COMMANDS,
        help="Query to run",
    )

    parser.add_argument(
        "--address", "-a",
        type=str,
        help="Wallet address (required except for status)",
    )

    # --------------------------------------------------------
    # Window Options
    # --------------------------------------------------------
    window_group = parser.add_argument_group("Window Options")

    window_group.add_argument(
        "--from-block",
        type=int,
        metavar="N",
        help="First block of the query window (default: head - 50)",
    )

    window_group.add_argument(
        "--to-block",
        type=int,
        metavar="N",
        help="Last block of the query window (default: head)",
    )

    window_group.add_argument(
        "--date",
        type=str,
        metavar="YYYY-MM-DD",
        help="Calendar day for balance-at-date",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: LOG_FORMAT or text)",
    )

    parser.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Path to a .env file",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    if args.command != "status" and not args.address:
        errors.append(f"--address is required for {args.command}")

    if args.command == "balance-at-date" and not args.date:
        errors.append("--date is required for balance-at-date")

    if args.to_block is not None and args.from_block is None:
        errors.append("--to-block requires --from-block")

    return errors


# ============================================================
# COMMANDS
# ============================================================

async def _build_window(engine: AggregationEngine, args: argparse.Namespace) -> Optional[QueryWindow]:
    if args.from_block is None:
        return None
    to_block = args.to_block
    if to_block is None:
        to_block = await engine.get_head_block()
    return QueryWindow(from_block=args.from_block, to_block=to_block)


def _serialize(result: Any) -> Any:
    if isinstance(result, list):
        return [_serialize(item) for item in result]
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result


async def run_command(engine: AggregationEngine, args: argparse.Namespace) -> Any:
    """Dispatch one command and return a JSON-serializable result."""
    if args.command == "status":
        return await engine.get_network_status()

    if args.command == "balance":
        return {"address": args.address, "balance": await engine.get_balance(args.address)}

    if args.command == "balance-at-date":
        balance = await engine.get_balance_at_date(args.address, args.date)
        return {"address": args.address, "date": args.date, "balance": balance}

    if args.command == "analytics":
        return await WalletAnalyticsComputer(engine).summarize(args.address)

    window = await _build_window(engine, args)
    if args.command == "transactions":
        return await engine.get_transactions(args.address, window)
    return await engine.get_all(args.address, window)


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: WalletQueryConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    try:
        engine = AggregationEngine.from_config(config)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE

    async with engine:
        try:
            result = await run_command(engine, args)
        except InvalidInputError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return EXIT_INPUT_ERROR
        except WalletQueryError as e:
            logger.error(f"Query failed: {e}")
            print(f"Error: {e.message}", file=sys.stderr)
            return EXIT_FAILURE

    print(json.dumps(_serialize(result), indent=2))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    try:
        config = WalletQueryConfig.from_env(args.env_file)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(
        level=args.log_level or config.log_level,
        log_format=args.log_format or config.log_format,
    )

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
