#!/usr/bin/env python3
"""
Round-trip Swap Bot CLI
=======================

Usage:
    roundtrip-bot run --config config.json --keys pk.txt
    roundtrip-bot run --network network.yaml --gas-mode static
    roundtrip-bot balance --keys pk.txt
    roundtrip-bot init-network network.yaml

Exit status is 1 on configuration errors or unhandled exceptions.
"""

import argparse
import sys
from typing import List, Optional

from rich import box
from rich.table import Table

from .config import GAS_MODES, load_private_keys, load_run_config, load_swap_config, write_network_template
from .logging_utils import StructuredLogger, configure_logger
from .runner import BatchOrchestrator, report_batch
from .utils import ConfigError, error_summary, format_eth, format_token
from .wallet import WalletContext, make_web3


def _load_network(args, logger: StructuredLogger):
    swap_config = load_swap_config(args.network)
    overrides = {}
    if getattr(args, 'rpc_url', None):
        overrides['rpc_url'] = args.rpc_url
    if getattr(args, 'gas_mode', None):
        overrides['gas_mode'] = args.gas_mode
    if overrides:
        logger.info(f"Network overrides: {', '.join(sorted(overrides))}")
        swap_config = swap_config.with_overrides(**overrides)
    return swap_config


def run_command(args, logger: StructuredLogger) -> int:
    """Execute the configured swaps for every wallet and print the summary."""
    try:
        swap_config = _load_network(args, logger)
        run_config = load_run_config(args.config)
        keys = load_private_keys(args.keys)
    except ConfigError as e:
        logger.critical(f"Fatal error: {e.summary}", extra={'detail': e.detail})
        return 1

    logger.register_secrets(keys)
    logger.info(
        f"Chain {swap_config.chain_id} via {swap_config.rpc_url}, gas mode {swap_config.gas_mode}",
        extra={'sequential_swap': run_config.sequential_swap}
    )

    orchestrator = BatchOrchestrator(keys, swap_config, run_config, logger=logger)
    result = orchestrator.run()
    report_batch(result, logger)
    return 0


def balance_command(args, logger: StructuredLogger) -> int:
    """Print native, output-token and wrapped balances per wallet."""
    try:
        swap_config = _load_network(args, logger)
        keys = load_private_keys(args.keys)
    except ConfigError as e:
        logger.critical(f"Fatal error: {e.summary}", extra={'detail': e.detail})
        return 1

    logger.register_secrets(keys)
    web3 = make_web3(swap_config)

    table = Table(title="Wallet Balances", box=box.ROUNDED)
    table.add_column("Wallet", style="cyan")
    table.add_column("Address", style="dim")
    table.add_column("ETH", justify="right", style="green")
    table.add_column("WETH", justify="right", style="yellow")
    table.add_column(swap_config.token_out_symbol, justify="right", style="yellow")

    for index, key in enumerate(keys):
        wallet = WalletContext(key, web3, swap_config, index=index, logger=logger)
        snap = wallet.snapshot()
        table.add_row(
            f"#{index + 1}",
            wallet.address,
            format_eth(snap.eth),
            format_eth(snap.wrapped),
            format_token(snap.token_out, swap_config.token_out_decimals, swap_config.token_out_symbol),
        )

    logger.console.print(table)
    return 0


def init_network_command(args, logger: StructuredLogger) -> int:
    """Write the default network settings for editing."""
    path = write_network_template(args.output)
    logger.info(f"Network template written to {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roundtrip-bot",
        description="ETH -> USDC -> WETH -> ETH swap cycles across many wallets"
    )
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Console and file log level (default: INFO)")
    parser.add_argument("--log-file", default=None,
                        help="Also write JSON log lines to this file")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_network_args(sub):
        sub.add_argument("--network", default=None,
                         help="YAML file overriding network settings")
        sub.add_argument("--rpc-url", default=None, help="Override the RPC endpoint")
        sub.add_argument("--keys", default="pk.txt",
                         help="Private key file, one per line (default: pk.txt)")

    run_parser = subparsers.add_parser("run", help="Run swap cycles for every wallet")
    add_network_args(run_parser)
    run_parser.add_argument("--config", default="config.json",
                            help="Run config JSON (default: config.json)")
    run_parser.add_argument("--gas-mode", choices=GAS_MODES, default=None,
                            help="static: one gas quote per sequence, dynamic: per step")
    run_parser.set_defaults(handler=run_command)

    balance_parser = subparsers.add_parser("balance", help="Show wallet balances")
    add_network_args(balance_parser)
    balance_parser.set_defaults(handler=balance_command)

    init_parser = subparsers.add_parser("init-network", help="Write default network YAML")
    init_parser.add_argument("output", nargs="?", default="network.yaml",
                             help="Destination file (default: network.yaml)")
    init_parser.set_defaults(handler=init_network_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "handler", None):
        parser.print_help()
        return 1

    logger = configure_logger(log_file=args.log_file, log_level=args.log_level)

    try:
        return args.handler(args, logger)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except Exception as e:
        logger.critical(f"Unhandled error: {error_summary(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
