"""
Wallet Module
=============
Per-wallet state for one run: signing identity, locally tracked nonce,
balance reads, broadcast and receipt waits, and the balance guard that runs
before every submission.

Nonce rule: ``refresh_nonce`` reads the network count once per sequence;
``next_nonce`` hands out consecutive values, one per submitted transaction.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_account import Account
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import Web3

from .config import SwapConfig
from .logging_utils import StructuredLogger, get_logger
from .transactions import ERC20_ABI, TransactionRequest
from .utils import (
    InsufficientFundsError,
    TransactionError,
    format_eth,
    format_token,
)

# Read-only calls are idempotent, so transport errors get a few retries.
# requests' exceptions and socket timeouts are OSError subclasses.
read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type(OSError),
    reraise=True,
)


def make_web3(config: SwapConfig) -> Web3:
    """HTTP provider with an explicit request timeout."""
    return Web3(Web3.HTTPProvider(config.rpc_url, request_kwargs={'timeout': config.rpc_timeout}))


def has_sufficient_balance(balance: int, value: int, gas_limit: int, max_fee_per_gas: int) -> bool:
    """True iff balance covers value plus the worst-case gas cost."""
    return balance >= value + gas_limit * max_fee_per_gas


@dataclass(frozen=True)
class BalanceSnapshot:
    eth: int
    token_out: int
    wrapped: int


@dataclass(frozen=True)
class SwapSessionResult:
    """Outcome of one wallet's run."""
    address: str
    success_count: int = 0
    fail_count: int = 0

    @property
    def attempts(self) -> int:
        return self.success_count + self.fail_count

    @property
    def success_rate(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.success_count / self.attempts * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'success_count': self.success_count,
            'fail_count': self.fail_count,
        }


class WalletContext:
    """One private key bound to one RPC connection for the length of a run."""

    def __init__(self, private_key: str, web3: Web3, config: SwapConfig,
                 index: int = 0, logger: Optional[StructuredLogger] = None):
        self.web3 = web3
        self.config = config
        self.index = index
        self.logger = logger or get_logger()

        self.account = Account.from_key(private_key)
        self.address = self.account.address

        self.nonce: Optional[int] = None
        self.success_count = 0
        self.fail_count = 0

    # Nonce tracking

    @read_retry
    def refresh_nonce(self) -> int:
        """Reset the local nonce to the network's transaction count."""
        self.nonce = self.web3.eth.get_transaction_count(self.address)
        self.logger.debug(f"Nonce refreshed: {self.nonce}", extra={'address': self.address})
        return self.nonce

    def next_nonce(self) -> int:
        """Current nonce, then advance by one."""
        if self.nonce is None:
            raise RuntimeError("Nonce not initialized, call refresh_nonce() first")
        nonce = self.nonce
        self.nonce += 1
        return nonce

    # Balances

    @read_retry
    def eth_balance(self) -> int:
        return self.web3.eth.get_balance(self.address)

    @read_retry
    def token_balance(self, token_address: str) -> int:
        token = self.web3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_ABI
        )
        return token.functions.balanceOf(self.address).call()

    def snapshot(self) -> BalanceSnapshot:
        """Native, output-token and wrapped-native balances, logged."""
        snap = BalanceSnapshot(
            eth=self.eth_balance(),
            token_out=self.token_balance(self.config.token_out),
            wrapped=self.token_balance(self.config.token_in),
        )
        self.logger.info(
            f"Balances: {format_eth(snap.eth)} | WETH {format_eth(snap.wrapped)} | "
            f"{format_token(snap.token_out, self.config.token_out_decimals, self.config.token_out_symbol)}",
            extra={'address': self.address, 'eth': snap.eth,
                   'token_out': snap.token_out, 'wrapped': snap.wrapped}
        )
        return snap

    # Submission

    def send(self, request: TransactionRequest) -> str:
        """Sign and broadcast; returns the transaction hash as hex."""
        signed = self.account.sign_transaction(request.to_tx_dict())
        try:
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise TransactionError.from_exception(e)
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        try:
            return self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.config.receipt_timeout
            )
        except Exception as e:
            raise TransactionError.from_exception(e, tx_hash=tx_hash)

    def confirm(self, tx_hash: str) -> Dict[str, Any]:
        """Wait for the receipt and require a successful status."""
        receipt = self.wait_for_receipt(tx_hash)
        if receipt['status'] != 1:
            raise TransactionError(
                f"Transaction reverted: {tx_hash}",
                f"status={receipt['status']} block={receipt.get('blockNumber')}",
                tx_hash=tx_hash,
            )
        return receipt

    # Session tally

    def record_success(self):
        self.success_count += 1

    def record_failure(self):
        self.fail_count += 1

    def session_result(self) -> SwapSessionResult:
        return SwapSessionResult(
            address=self.address,
            success_count=self.success_count,
            fail_count=self.fail_count,
        )


class BalanceGuard:
    """Refuses a transaction the wallet cannot pay for. Never retried."""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or get_logger()

    def check(self, balance: int, value: int, gas_limit: int, max_fee_per_gas: int) -> bool:
        gas_cost = gas_limit * max_fee_per_gas
        total_cost = value + gas_cost
        self.logger.info(
            f"Balance {format_eth(balance)}, value {format_eth(value)}, "
            f"gas {format_eth(gas_cost)}, total {format_eth(total_cost)}",
            extra={'balance': balance, 'value': value,
                   'gas_cost': gas_cost, 'total_cost': total_cost}
        )
        return has_sufficient_balance(balance, value, gas_limit, max_fee_per_gas)

    def ensure(self, wallet: WalletContext, request: TransactionRequest) -> None:
        """Raise ``InsufficientFundsError`` unless ``wallet`` can cover ``request``."""
        balance = wallet.eth_balance()
        if not self.check(balance, request.value, request.gas, request.max_fee_per_gas):
            raise InsufficientFundsError(
                "Insufficient balance for transaction",
                f"balance={balance} value={request.value} "
                f"gas={request.gas} max_fee_per_gas={request.max_fee_per_gas}"
            )
