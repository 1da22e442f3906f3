"""
Transaction Encoding Module
===========================

Builds calldata and EIP-1559 transaction requests for the swap chain.

Calls used:
- exactInputSingle((address,address,address,address,uint256,uint256,uint256,uint160))
  on the router: tokenIn, tokenOut, pool deployer, recipient, deadline,
  amountIn, routing constant, 0
- approve(address,uint256) on the ERC20 being sold
- withdraw(uint256) on WETH
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from eth_abi import encode
from web3 import Web3

MAX_UINT256 = 2**256 - 1
EIP1559_TX_TYPE = 2

EXACT_INPUT_SINGLE_SIGNATURE = (
    "exactInputSingle((address,address,address,address,uint256,uint256,uint256,uint160))"
)
APPROVE_SIGNATURE = "approve(address,uint256)"
WITHDRAW_SIGNATURE = "withdraw(uint256)"

# Minimal ERC20 + WETH ABI for balance reads
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
]


def function_selector(signature: str) -> bytes:
    """First four bytes of the keccak hash of a function signature."""
    return bytes(Web3.keccak(text=signature)[:4])


def encode_exact_input_single(
    token_in: str,
    token_out: str,
    pool_fee: str,
    recipient: str,
    deadline: int,
    amount_in: int,
    routing_constant: int,
) -> bytes:
    """Router swap calldata. The trailing limit is always zero."""
    params = (
        Web3.to_checksum_address(token_in),
        Web3.to_checksum_address(token_out),
        Web3.to_checksum_address(pool_fee),
        Web3.to_checksum_address(recipient),
        int(deadline),
        int(amount_in),
        int(routing_constant),
        0,
    )
    return function_selector(EXACT_INPUT_SINGLE_SIGNATURE) + encode(
        ['(address,address,address,address,uint256,uint256,uint256,uint160)'],
        [params]
    )


def encode_approve(spender: str, amount: int = MAX_UINT256) -> bytes:
    return function_selector(APPROVE_SIGNATURE) + encode(
        ['address', 'uint256'],
        [Web3.to_checksum_address(spender), int(amount)]
    )


def encode_withdraw(amount: int) -> bytes:
    return function_selector(WITHDRAW_SIGNATURE) + encode(['uint256'], [int(amount)])


@dataclass(frozen=True)
class TransactionRequest:
    """
    One EIP-1559 transaction. Fields are filled in stages: the draft has no
    gas or nonce, ``with_gas`` and ``with_nonce`` return completed copies.
    """
    to: str
    data: bytes
    chain_id: int
    value: int = 0
    gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    nonce: Optional[int] = None
    tx_type: int = EIP1559_TX_TYPE

    def with_gas(self, gas_limit: int, max_fee_per_gas: int, max_priority_fee_per_gas: int) -> "TransactionRequest":
        return replace(
            self,
            gas=gas_limit,
            max_fee_per_gas=max_fee_per_gas,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
        )

    def with_nonce(self, nonce: int) -> "TransactionRequest":
        return replace(self, nonce=nonce)

    def estimation_fields(self, sender: str) -> Dict[str, Any]:
        """Fields for eth_estimateGas."""
        return {
            'from': sender,
            'to': Web3.to_checksum_address(self.to),
            'value': self.value,
            'data': Web3.to_hex(self.data),
        }

    def to_tx_dict(self) -> Dict[str, Any]:
        """Signable transaction dict; every field must be set."""
        missing = [
            name for name in ('gas', 'max_fee_per_gas', 'max_priority_fee_per_gas', 'nonce')
            if getattr(self, name) is None
        ]
        if missing:
            raise ValueError(f"Transaction is incomplete, missing: {', '.join(missing)}")

        return {
            'chainId': self.chain_id,
            'type': self.tx_type,
            'to': Web3.to_checksum_address(self.to),
            'value': self.value,
            'data': Web3.to_hex(self.data),
            'gas': self.gas,
            'maxFeePerGas': self.max_fee_per_gas,
            'maxPriorityFeePerGas': self.max_priority_fee_per_gas,
            'nonce': self.nonce,
        }
