"""
Wallet Runner and Batch Orchestrator
====================================

``WalletRunner`` repeats the configured swap cycle for one wallet. A failed
cycle is counted and the loop moves on; cycles are separated by a random
pause. ``BatchOrchestrator`` runs every wallet in order, one at a time, over
a single RPC connection, and ``report_batch`` prints the summary.
"""

import random
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from rich import box
from rich.table import Table
from web3 import Web3

from .config import RunConfig, SwapConfig
from .gas import GasEstimator, GasPricer
from .logging_utils import StructuredLogger, get_logger
from .sequencer import SingleSwap, SwapSequencer
from .utils import BotError, SequenceError, format_address
from .wallet import BalanceGuard, SwapSessionResult, WalletContext, make_web3


@dataclass(frozen=True)
class BatchResult:
    """Per-wallet results in processing order, with derived totals."""
    sessions: Tuple[SwapSessionResult, ...] = ()

    @property
    def total_success(self) -> int:
        return sum(s.success_count for s in self.sessions)

    @property
    def total_fail(self) -> int:
        return sum(s.fail_count for s in self.sessions)

    @property
    def total_attempts(self) -> int:
        return self.total_success + self.total_fail

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.total_success / self.total_attempts * 100

    def to_dict(self):
        return {
            'wallets': [s.to_dict() for s in self.sessions],
            'total_success': self.total_success,
            'total_fail': self.total_fail,
            'success_rate': round(self.success_rate, 2),
        }


class WalletRunner:
    """Runs ``number_of_swaps`` cycles for one wallet."""

    def __init__(
        self,
        wallet: WalletContext,
        swap_config: SwapConfig,
        run_config: RunConfig,
        pricer: GasPricer,
        estimator: GasEstimator,
        guard: Optional[BalanceGuard] = None,
        logger: Optional[StructuredLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.wallet = wallet
        self.swap_config = swap_config
        self.run_config = run_config
        self.logger = logger or get_logger()
        self.sleep = sleep
        self.rng = rng or random.Random()

        components = dict(
            wallet=wallet,
            config=swap_config,
            pricer=pricer,
            estimator=estimator,
            guard=guard or BalanceGuard(self.logger),
            logger=self.logger,
            clock=clock,
        )
        self.sequencer = SwapSequencer(sleep=sleep, **components)
        self.single_swap = SingleSwap(**components)

    def random_delay_ms(self) -> int:
        """Uniform in [min_swap_delay_ms, max_swap_delay_ms)."""
        return self.rng.randrange(self.swap_config.min_swap_delay_ms, self.swap_config.max_swap_delay_ms)

    def pause(self):
        delay_ms = self.random_delay_ms()
        self.logger.info(f"Waiting {delay_ms // 1000} seconds before next transaction...")
        self.sleep(delay_ms / 1000)

    def cycle(self, amount: int) -> bool:
        if self.run_config.sequential_swap:
            self.sequencer.run(amount)
            return True
        return self.single_swap.execute(amount)

    def _log_failure(self, number: int, exc: Exception):
        err = BotError.from_exception(exc)
        self.logger.error(f"Error in swap {number}: {err.summary}", extra={'detail': err.detail})
        if isinstance(exc, SequenceError) and exc.completed_steps:
            self.logger.warning(
                f"Wallet left mid-sequence after {', '.join(exc.completed_steps)}; "
                f"intermediate tokens stay in {self.wallet.address}",
                extra={'failed_step': exc.failed_step, 'completed_steps': list(exc.completed_steps)}
            )

    def run(self) -> SwapSessionResult:
        total = self.run_config.number_of_swaps
        amount = self.run_config.amount_wei(self.swap_config)
        label = "Sequential swap" if self.run_config.sequential_swap else "Swap"

        for i in range(total):
            number = i + 1
            self.logger.info(f"Starting swap {number}/{total}")
            try:
                succeeded = self.cycle(amount)
            except Exception as e:
                self._log_failure(number, e)
                succeeded = False

            if succeeded:
                self.wallet.record_success()
                self.logger.info(f"{label} {number} completed successfully")
            else:
                self.wallet.record_failure()
                self.logger.error(f"{label} {number} failed")

            if number < total:
                self.pause()

        return self.wallet.session_result()


WalletFactory = Callable[[str, int], WalletContext]


class BatchOrchestrator:
    """Processes wallets strictly in order, never concurrently."""

    def __init__(
        self,
        private_keys: Sequence[str],
        swap_config: SwapConfig,
        run_config: RunConfig,
        web3: Optional[Web3] = None,
        logger: Optional[StructuredLogger] = None,
        pricer: Optional[GasPricer] = None,
        estimator: Optional[GasEstimator] = None,
        wallet_factory: Optional[WalletFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.private_keys = list(private_keys)
        self.swap_config = swap_config
        self.run_config = run_config
        self.logger = logger or get_logger()
        self.web3 = web3 if web3 is not None else make_web3(swap_config)
        self.pricer = pricer or GasPricer(swap_config, self.web3, self.logger)
        self.estimator = estimator or GasEstimator(swap_config, self.web3, self.logger)
        self.wallet_factory = wallet_factory or self._default_wallet
        self.sleep = sleep
        self.rng = rng or random.Random()

    def _default_wallet(self, private_key: str, index: int) -> WalletContext:
        return WalletContext(private_key, self.web3, self.swap_config, index=index, logger=self.logger)

    def run(self) -> BatchResult:
        self.logger.info(f"Loaded {len(self.private_keys)} wallets")
        self.logger.info(f"Configured for {self.run_config.number_of_swaps} swaps per wallet")

        sessions: List[SwapSessionResult] = []
        for index, key in enumerate(self.private_keys):
            wallet = self.wallet_factory(key, index)
            self.logger.info(
                f"Wallet #{index + 1}: {wallet.address}",
                extra={'wallet_index': index + 1, 'address': wallet.address}
            )
            runner = WalletRunner(
                wallet,
                self.swap_config,
                self.run_config,
                self.pricer,
                self.estimator,
                logger=self.logger,
                sleep=self.sleep,
                rng=self.rng,
            )
            sessions.append(runner.run())

        return BatchResult(tuple(sessions))


def summary_table(result: BatchResult) -> Table:
    table = Table(title="Execution Summary", box=box.ROUNDED)
    table.add_column("Wallet", style="cyan")
    table.add_column("Address", style="dim")
    table.add_column("Successful", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Success %", justify="right")

    for index, session in enumerate(result.sessions, start=1):
        table.add_row(
            f"#{index}",
            format_address(session.address),
            str(session.success_count),
            str(session.fail_count),
            f"{session.success_rate:.2f}%",
        )

    table.add_row(
        "TOTAL",
        "",
        str(result.total_success),
        str(result.total_fail),
        f"{result.success_rate:.2f}%",
        style="bold"
    )
    return table


def report_batch(result: BatchResult, logger: Optional[StructuredLogger] = None):
    """Log per-wallet and total counts, then print the summary table."""
    logger = logger or get_logger()

    logger.info("EXECUTION SUMMARY")
    for index, session in enumerate(result.sessions, start=1):
        logger.info(
            f"Wallet #{index}: {session.success_count} successful, {session.fail_count} failed",
            extra=session.to_dict()
        )

    logger.info("TOTAL RESULTS", extra=result.to_dict())
    logger.info(f"Total Successful Swaps: {result.total_success}")
    logger.info(f"Total Failed Swaps: {result.total_fail}")
    logger.info(f"Success Rate: {result.success_rate:.2f}%")

    logger.console.print(summary_table(result))
    logger.print_metrics_summary()
