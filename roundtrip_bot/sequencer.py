"""
Swap Sequencer
==============

Runs one round trip as five chained transactions from a single wallet:

    SWAP_OUT     native -> output token (router, value = amount)
    APPROVE_OUT  output token approves router for MAX_UINT256
    SWAP_BACK    full output-token balance -> wrapped native (router)
    APPROVE_IN   wrapped native approves router for MAX_UINT256
    WITHDRAW     unwrap the full wrapped-native balance

Steps never overlap. Each one is quoted, estimated, balance-checked, signed
with the next local nonce, confirmed on chain, and followed by a cool-down
before the next step reads balances. A failure moves the machine to FAILED
and raises ``SequenceError``. Confirmed steps are not rolled back.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import SwapConfig
from .gas import GasEstimator, GasPricer, GasQuote
from .logging_utils import StructuredLogger, get_logger
from .transactions import (
    MAX_UINT256,
    TransactionRequest,
    encode_approve,
    encode_exact_input_single,
    encode_withdraw,
)
from .utils import (
    BotError,
    SequenceError,
    format_eth,
    format_gwei,
    format_token,
)
from .wallet import BalanceGuard, WalletContext


class SwapStep(Enum):
    SWAP_OUT = "swap_out"
    APPROVE_OUT = "approve_out"
    SWAP_BACK = "swap_back"
    APPROVE_IN = "approve_in"
    WITHDRAW = "withdraw"
    DONE = "done"
    FAILED = "failed"


# state -> state after a confirmed transaction
TRANSITIONS: Mapping[SwapStep, SwapStep] = {
    SwapStep.SWAP_OUT: SwapStep.APPROVE_OUT,
    SwapStep.APPROVE_OUT: SwapStep.SWAP_BACK,
    SwapStep.SWAP_BACK: SwapStep.APPROVE_IN,
    SwapStep.APPROVE_IN: SwapStep.WITHDRAW,
    SwapStep.WITHDRAW: SwapStep.DONE,
}

TERMINAL_STEPS = frozenset({SwapStep.DONE, SwapStep.FAILED})


def advance(step: SwapStep, succeeded: bool) -> SwapStep:
    """Next state of the sequence."""
    if step in TERMINAL_STEPS:
        raise ValueError(f"No transition out of terminal state {step.value}")
    return TRANSITIONS[step] if succeeded else SwapStep.FAILED


@dataclass
class SequenceResult:
    """Hashes of the confirmed transactions, in submission order."""
    tx_hashes: Dict[str, str] = field(default_factory=dict)
    final_step: SwapStep = SwapStep.DONE

    @property
    def completed(self) -> bool:
        return self.final_step is SwapStep.DONE


class SwapRequestBuilder:
    """Transaction drafts for each step; no gas or nonce yet."""

    def __init__(self, config: SwapConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self.clock = clock

    def deadline(self) -> int:
        return int(self.clock()) + self.config.deadline_seconds

    def swap(self, token_in: str, token_out: str, recipient: str,
             amount: int, value: int = 0) -> TransactionRequest:
        data = encode_exact_input_single(
            token_in=token_in,
            token_out=token_out,
            pool_fee=self.config.pool_fee,
            recipient=recipient,
            deadline=self.deadline(),
            amount_in=amount,
            routing_constant=self.config.routing_constant,
        )
        return TransactionRequest(
            to=self.config.router_address,
            data=data,
            chain_id=self.config.chain_id,
            value=value,
        )

    def swap_out(self, recipient: str, amount: int) -> TransactionRequest:
        """Native in, output token out; the router wraps the attached value."""
        return self.swap(self.config.token_in, self.config.token_out, recipient, amount, value=amount)

    def swap_back(self, recipient: str, amount: int) -> TransactionRequest:
        return self.swap(self.config.token_out, self.config.token_in, recipient, amount)

    def approve(self, token: str) -> TransactionRequest:
        return TransactionRequest(
            to=token,
            data=encode_approve(self.config.router_address, MAX_UINT256),
            chain_id=self.config.chain_id,
        )

    def withdraw(self, amount: int) -> TransactionRequest:
        return TransactionRequest(
            to=self.config.token_in,
            data=encode_withdraw(amount),
            chain_id=self.config.chain_id,
        )


class _GasAndGuard:
    """Shared quote -> estimate -> balance check pipeline."""

    def __init__(
        self,
        wallet: WalletContext,
        config: SwapConfig,
        pricer: GasPricer,
        estimator: GasEstimator,
        guard: Optional[BalanceGuard] = None,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.wallet = wallet
        self.config = config
        self.pricer = pricer
        self.estimator = estimator
        self.logger = logger or get_logger()
        self.guard = guard or BalanceGuard(self.logger)
        self.builder = SwapRequestBuilder(config, clock)

    def price(self, draft: TransactionRequest, quote: GasQuote) -> TransactionRequest:
        """Attach a buffered gas limit and fees, then run the balance guard."""
        gas_limit = self.estimator.estimate(draft.estimation_fields(self.wallet.address))
        priced = draft.with_gas(gas_limit, quote.max_fee_per_gas, quote.max_priority_fee_per_gas)
        self.guard.ensure(self.wallet, priced)
        return priced


class SwapSequencer(_GasAndGuard):
    """Executes the five-step round trip for one wallet."""

    def __init__(self, *args, sleep: Callable[[float], None] = time.sleep, **kwargs):
        super().__init__(*args, **kwargs)
        self.sleep = sleep

    def _draft(self, step: SwapStep, amount: int) -> TransactionRequest:
        address = self.wallet.address
        if step is SwapStep.SWAP_OUT:
            self.logger.info(f"Step 1: swapping {format_eth(amount)} -> {self.config.token_out_symbol}")
            return self.builder.swap_out(address, amount)

        if step is SwapStep.APPROVE_OUT:
            self.logger.info(f"Step 2: approving {self.config.token_out_symbol} for router")
            return self.builder.approve(self.config.token_out)

        if step is SwapStep.SWAP_BACK:
            balance = self.wallet.token_balance(self.config.token_out)
            if balance <= 0:
                raise BotError(f"No {self.config.token_out_symbol} balance to swap back")
            self.logger.info(
                f"Step 3: swapping "
                f"{format_token(balance, self.config.token_out_decimals, self.config.token_out_symbol)} -> WETH"
            )
            return self.builder.swap_back(address, balance)

        if step is SwapStep.APPROVE_IN:
            self.logger.info("Step 4: approving WETH for router")
            return self.builder.approve(self.config.token_in)

        if step is SwapStep.WITHDRAW:
            balance = self.wallet.token_balance(self.config.token_in)
            if balance <= 0:
                raise BotError("No WETH balance to withdraw")
            self.logger.info(f"Step 5: withdrawing {format_eth(balance)} WETH -> ETH")
            return self.builder.withdraw(balance)

        raise ValueError(f"No transaction for state {step.value}")

    def _submit(self, step: SwapStep, draft: TransactionRequest, quote: GasQuote) -> str:
        request = self.price(draft, quote).with_nonce(self.wallet.next_nonce())

        with self.logger.timed_operation(step.value, extra={'nonce': request.nonce}) as metric:
            tx_hash = self.wallet.send(request)
            metric.tx_hash = tx_hash
            self.logger.info(f"{step.value} sent: {tx_hash}", extra={'nonce': request.nonce})
            receipt = self.wallet.confirm(tx_hash)
            metric.gas_used = receipt.get('gasUsed')
            metric.block_number = receipt.get('blockNumber')

        self.logger.info(
            f"{step.value} confirmed in block {receipt.get('blockNumber')}",
            extra={'tx_hash': tx_hash, 'gas_used': receipt.get('gasUsed')}
        )
        return tx_hash

    def run(self, amount: int) -> SequenceResult:
        """Execute all five steps or raise ``SequenceError``."""
        self.logger.info("Starting sequential swap", extra={'address': self.wallet.address})
        self.wallet.snapshot()
        self.wallet.refresh_nonce()

        static_quote = self.pricer.quote() if self.config.gas_mode == "static" else None

        result = SequenceResult()
        completed: List[str] = []
        step = SwapStep.SWAP_OUT

        while step not in TERMINAL_STEPS:
            try:
                draft = self._draft(step, amount)
                quote = static_quote or self.pricer.quote()
                tx_hash = self._submit(step, draft, quote)
            except Exception as e:
                result.final_step = advance(step, succeeded=False)
                err = BotError.from_exception(e)
                self.logger.error(
                    f"Sequence stopped at {step.value}: {err.summary}",
                    extra={'completed_steps': completed, 'detail': err.detail}
                )
                raise SequenceError(
                    f"{step.value} failed: {err.summary}",
                    err.detail,
                    failed_step=step.value,
                    completed_steps=completed,
                ) from e

            result.tx_hashes[step.value] = tx_hash
            completed.append(step.value)
            step = advance(step, succeeded=True)
            self.sleep(self.config.step_delay_seconds)

        result.final_step = step
        self.wallet.snapshot()
        return result


class SingleSwap(_GasAndGuard):
    """One native -> output-token swap with its own gas and balance checks."""

    def execute(self, amount: int) -> bool:
        """True if the swap confirmed; False if it was mined with a failed status."""
        draft = self.builder.swap_out(self.wallet.address, amount)
        request = self.price(draft, self.pricer.quote())

        self.wallet.refresh_nonce()
        request = request.with_nonce(self.wallet.next_nonce())

        self.logger.info(
            f"Transaction details: gas limit {request.gas}, "
            f"max fee {format_gwei(request.max_fee_per_gas)}, "
            f"priority fee {format_gwei(request.max_priority_fee_per_gas)}, "
            f"value {format_eth(request.value)}",
            extra=self._details(request)
        )

        with self.logger.timed_operation(SwapStep.SWAP_OUT.value, extra={'nonce': request.nonce}) as metric:
            tx_hash = self.wallet.send(request)
            metric.tx_hash = tx_hash
            self.logger.info(f"Transaction sent: {tx_hash}")
            receipt = self.wallet.wait_for_receipt(tx_hash)
            metric.gas_used = receipt.get('gasUsed')
            metric.block_number = receipt.get('blockNumber')

        if receipt['status'] != 1:
            metric.success = False
            metric.error = "reverted"
            return False
        return True

    @staticmethod
    def _details(request: TransactionRequest) -> Dict[str, Any]:
        return {
            'gas': request.gas,
            'max_fee_per_gas': request.max_fee_per_gas,
            'max_priority_fee_per_gas': request.max_priority_fee_per_gas,
            'value': request.value,
            'nonce': request.nonce,
        }
