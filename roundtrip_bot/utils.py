"""
Utility Module

Error types, formatting and validation helpers shared by the swap bot.

Library errors (web3 RPC failures, contract reverts) often embed call-stack
detail after the first ';' of their message. ``BotError.from_exception``
splits that once at the boundary into a short ``summary`` and the full
``detail`` so the rest of the bot never parses error strings.
"""

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from web3 import Web3


class BotError(Exception):
    """Base error carrying a short summary and verbose detail."""

    def __init__(self, summary: str, detail: Optional[str] = None):
        super().__init__(summary)
        self.summary = summary
        self.detail = detail if detail is not None else summary

    @classmethod
    def from_exception(cls, exc: BaseException, **kwargs) -> "BotError":
        """Wrap any exception, keeping only the text before the first ';' as summary."""
        if isinstance(exc, BotError) and not kwargs:
            return exc
        detail = str(exc) or exc.__class__.__name__
        summary = detail.split(";", 1)[0].strip() or exc.__class__.__name__
        return cls(summary, detail, **kwargs)


class ConfigError(BotError):
    """Missing or malformed configuration or key file."""
    pass


class InsufficientFundsError(BotError):
    """Wallet cannot cover value plus gas for the next transaction."""
    pass


class TransactionError(BotError):
    """Broadcast failure or a receipt with a failed status."""

    def __init__(self, summary: str, detail: Optional[str] = None,
                 tx_hash: Optional[str] = None):
        super().__init__(summary, detail)
        self.tx_hash = tx_hash


class SequenceError(BotError):
    """A step of the swap chain failed; earlier steps stay confirmed."""

    def __init__(self, summary: str, detail: Optional[str] = None,
                 failed_step: Optional[str] = None,
                 completed_steps: Sequence[str] = ()):
        super().__init__(summary, detail)
        self.failed_step = failed_step
        self.completed_steps = tuple(completed_steps)


def error_summary(exc: BaseException) -> str:
    """Short human-readable text for any exception."""
    return BotError.from_exception(exc).summary


# Formatting utilities

def format_eth(wei_amount: int) -> str:
    """Format a wei amount as ETH with six decimals."""
    eth = Web3.from_wei(wei_amount, "ether")
    return f"{Decimal(eth):.6f} ETH"


def format_token(raw_amount: int, decimals: int, symbol: str) -> str:
    """Format a raw ERC20 amount using its decimals."""
    value = Decimal(raw_amount) / (Decimal(10) ** decimals)
    return f"{value:.6f} {symbol}"


def format_gwei(wei_amount: int) -> str:
    """Format a per-gas price in Gwei."""
    return f"{Decimal(Web3.from_wei(wei_amount, 'gwei')):f} Gwei"


def format_address(address: str, length: int = 6) -> str:
    """Format Ethereum address with ellipsis."""
    if len(address) <= length * 2 + 2:
        return address
    return f"{address[:length + 2]}...{address[-length:]}"


# Validation utilities

def validate_private_key(key: str) -> bool:
    """Validate private key format."""
    if not key:
        return False

    key_clean = key[2:] if key.startswith("0x") else key

    if len(key_clean) != 64:
        return False

    try:
        int(key_clean, 16)
        return True
    except ValueError:
        return False


def validate_address(address: str) -> bool:
    """Validate Ethereum address format (any case)."""
    if not isinstance(address, str) or not address:
        return False
    return Web3.is_address(address.lower())


def redact_secrets(message: str, secrets: Iterable[str] = ()) -> str:
    """
    Remove known private keys from a message.

    Keys are matched literally, with and without their 0x prefix. A generic
    64-hex pattern would also swallow transaction hashes.
    """
    if not isinstance(message, str):
        message = str(message)
    for secret in secrets:
        bare = secret[2:] if secret.startswith("0x") else secret
        if bare:
            message = message.replace(bare, "[KEY_REDACTED]")
    return message
