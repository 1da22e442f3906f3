"""
Gas pricing and gas limit estimation.

Both components degrade instead of failing: a pricer without fee data falls
back to the static price from ``SwapConfig``, and an estimator whose
simulation reverts falls back to a fixed gas limit large enough for the
most expensive step of the swap chain.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from web3 import Web3

from .config import SwapConfig
from .logging_utils import StructuredLogger, get_logger
from .utils import BotError, format_gwei

BUFFER_DENOMINATOR = 100


@dataclass(frozen=True)
class GasQuote:
    """EIP-1559 fee pair for one transaction."""
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    live: bool = True

    def to_tx_fields(self) -> Dict[str, int]:
        return {
            'maxFeePerGas': self.max_fee_per_gas,
            'maxPriorityFeePerGas': self.max_priority_fee_per_gas,
        }


class GasPricer:
    """
    Derives fee parameters from the latest block.

    max fee = last base fee + configured priority fee. Without a base fee
    (RPC failure, pre-London chain) both fees equal the static fallback.
    """

    def __init__(self, config: SwapConfig, web3: Optional[Web3] = None,
                 logger: Optional[StructuredLogger] = None):
        self.config = config
        self.web3 = web3
        self.logger = logger or get_logger()

    def fallback_quote(self) -> GasQuote:
        price = self.config.fallback_gas_price_wei
        return GasQuote(max_fee_per_gas=price, max_priority_fee_per_gas=price, live=False)

    def quote_from_snapshot(self, snapshot: Optional[Mapping[str, Any]]) -> GasQuote:
        base_fee = None
        if snapshot:
            base_fee = snapshot.get('baseFeePerGas', snapshot.get('lastBaseFeePerGas'))

        if base_fee is None:
            quote = self.fallback_quote()
            self.logger.warning(
                f"No network fee data, using fallback gas price {format_gwei(quote.max_fee_per_gas)}",
                extra={'max_fee_per_gas': quote.max_fee_per_gas}
            )
            return quote

        priority_fee = self.config.priority_fee_wei
        quote = GasQuote(
            max_fee_per_gas=int(base_fee) + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )
        self.logger.info(
            f"Gas quote: max fee {format_gwei(quote.max_fee_per_gas)}, "
            f"priority {format_gwei(quote.max_priority_fee_per_gas)}",
            extra={'base_fee': int(base_fee), **quote.to_tx_fields()}
        )
        return quote

    def quote(self) -> GasQuote:
        """Quote from the latest block. Never raises."""
        if self.web3 is None:
            return self.quote_from_snapshot(None)
        try:
            snapshot = self.web3.eth.get_block('latest')
        except Exception as e:
            self.logger.warning(f"Fee data unavailable: {BotError.from_exception(e).summary}")
            snapshot = None
        return self.quote_from_snapshot(snapshot)


class GasEstimator:
    """eth_estimateGas with a percentage buffer and a fixed fallback."""

    def __init__(self, config: SwapConfig, web3: Web3,
                 logger: Optional[StructuredLogger] = None):
        self.config = config
        self.web3 = web3
        self.logger = logger or get_logger()

    def apply_buffer(self, estimate: int) -> int:
        return int(estimate) * self.config.gas_buffer_percent // BUFFER_DENOMINATOR

    def estimate(self, draft: Mapping[str, Any]) -> int:
        """Buffered gas limit for ``draft``; the fallback limit on any failure."""
        try:
            estimate = self.web3.eth.estimate_gas(dict(draft))
        except Exception as e:
            err = BotError.from_exception(e)
            self.logger.warning(
                f"Gas estimation failed: {err.summary}. Using {self.config.gas_limit_fallback}",
                extra={'detail': err.detail}
            )
            return self.config.gas_limit_fallback

        gas_limit = self.apply_buffer(estimate)
        self.logger.debug(
            f"Estimated gas {estimate}, limit {gas_limit}",
            extra={'estimate': int(estimate), 'gas_limit': gas_limit}
        )
        return gas_limit
