"""
Round-trip Swap Bot

Runs ETH -> USDC -> WETH -> ETH swap cycles on an EVM chain for a list of
wallets, one wallet at a time.

Usage:
    from roundtrip_bot import BatchOrchestrator, load_swap_config, load_run_config

    # or from the shell
    roundtrip-bot run --config config.json --keys pk.txt
"""

__version__ = "1.0.0"

from .config import RunConfig, SwapConfig, load_private_keys, load_run_config, load_swap_config
from .gas import GasEstimator, GasPricer, GasQuote
from .runner import BatchOrchestrator, BatchResult, WalletRunner, report_batch
from .sequencer import SingleSwap, SwapSequencer, SwapStep
from .utils import (
    BotError,
    ConfigError,
    InsufficientFundsError,
    SequenceError,
    TransactionError,
)
from .wallet import BalanceGuard, WalletContext

__all__ = [
    "RunConfig",
    "SwapConfig",
    "load_private_keys",
    "load_run_config",
    "load_swap_config",
    "GasEstimator",
    "GasPricer",
    "GasQuote",
    "BatchOrchestrator",
    "BatchResult",
    "WalletRunner",
    "report_batch",
    "SingleSwap",
    "SwapSequencer",
    "SwapStep",
    "BotError",
    "ConfigError",
    "InsufficientFundsError",
    "SequenceError",
    "TransactionError",
    "BalanceGuard",
    "WalletContext",
]
