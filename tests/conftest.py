"""
Shared fixtures: an in-memory wallet that simulates the swap chain's balance
effects, plus a mocked RPC for gas pricing and estimation.
"""

import io
from unittest.mock import Mock

import pytest
from eth_abi import decode
from rich.console import Console
from web3 import Web3

from roundtrip_bot.config import RunConfig, SwapConfig
from roundtrip_bot.gas import GasEstimator, GasPricer
from roundtrip_bot.logging_utils import StructuredLogger
from roundtrip_bot.transactions import (
    EXACT_INPUT_SINGLE_SIGNATURE,
    WITHDRAW_SIGNATURE,
    function_selector,
)
from roundtrip_bot.utils import TransactionError
from roundtrip_bot.wallet import BalanceGuard, WalletContext

KEY_A = "0x" + "1" * 64
KEY_B = "0x" + "2" * 64
KEY_C = "0x" + "3" * 64

SWAP_PARAMS = ['(address,address,address,address,uint256,uint256,uint256,uint160)']


class FakeWallet(WalletContext):
    """
    WalletContext with chain access replaced by dictionaries.

    A swap with value credits ``swap_out_yield`` output tokens, a swap without
    value converts the given output tokens into ``swap_back_yield`` wrapped
    native, and withdraw moves wrapped native back to the native balance.
    """

    def __init__(self, private_key=KEY_A, config=None, logger=None, index=0,
                 eth=10**18, swap_out_yield=19_000, swap_back_yield=19_000_000_000_000,
                 chain_nonce=7):
        super().__init__(private_key, Mock(), config or SwapConfig(), index=index, logger=logger)
        self.eth = eth
        self.tokens = {}
        self.swap_out_yield = swap_out_yield
        self.swap_back_yield = swap_back_yield
        self.chain_nonce = chain_nonce
        self.refresh_calls = 0
        self.broadcasts = 0
        self.sent = []
        self.failed_receipts = set()
        self.broadcast_failures = {}

    def refresh_nonce(self):
        self.refresh_calls += 1
        self.nonce = self.chain_nonce + len(self.sent)
        return self.nonce

    def eth_balance(self):
        return self.eth

    def token_balance(self, token_address):
        return self.tokens.get(Web3.to_checksum_address(token_address), 0)

    def _credit(self, token, amount):
        token = Web3.to_checksum_address(token)
        self.tokens[token] = self.tokens.get(token, 0) + amount

    def _apply(self, request):
        selector = request.data[:4]
        if selector == function_selector(EXACT_INPUT_SINGLE_SIGNATURE):
            params = decode(SWAP_PARAMS, request.data[4:])[0]
            token_in, token_out, amount = params[0], params[1], params[5]
            if request.value:
                self.eth -= request.value
                self._credit(token_out, self.swap_out_yield)
            else:
                self._credit(token_in, -amount)
                self._credit(token_out, self.swap_back_yield)
        elif selector == function_selector(WITHDRAW_SIGNATURE):
            (amount,) = decode(['uint256'], request.data[4:])
            self._credit(self.config.token_in, -amount)
            self.eth += amount

    def send(self, request):
        request.to_tx_dict()
        self.broadcasts += 1
        number = self.broadcasts
        if number in self.broadcast_failures:
            raise TransactionError.from_exception(ValueError(self.broadcast_failures[number]))
        self.sent.append(request)
        if number not in self.failed_receipts:
            self._apply(request)
        return "0x%064x" % number

    def wait_for_receipt(self, tx_hash):
        number = int(tx_hash, 16)
        return {
            'status': 0 if number in self.failed_receipts else 1,
            'gasUsed': 100_000,
            'blockNumber': 1000 + number,
        }


@pytest.fixture
def swap_config():
    return SwapConfig()


@pytest.fixture
def console_output():
    return io.StringIO()


@pytest.fixture
def logger(console_output):
    return StructuredLogger(
        'roundtrip_bot.tests',
        log_level='DEBUG',
        console=Console(file=console_output, width=240, force_terminal=False),
    )


@pytest.fixture
def mock_web3():
    web3 = Mock()
    web3.eth.get_block.return_value = {'baseFeePerGas': 1_000, 'number': 42}
    web3.eth.estimate_gas.return_value = 100_000
    return web3


@pytest.fixture
def pricer(swap_config, mock_web3, logger):
    return GasPricer(swap_config, mock_web3, logger)


@pytest.fixture
def estimator(swap_config, mock_web3, logger):
    return GasEstimator(swap_config, mock_web3, logger)


@pytest.fixture
def guard(logger):
    return BalanceGuard(logger)


@pytest.fixture
def wallet(swap_config, logger):
    return FakeWallet(config=swap_config, logger=logger)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def run_config():
    return RunConfig(number_of_swaps=3, amount_per_swap="0.00002", sequential_swap=False)
