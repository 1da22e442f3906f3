"""
Configuration Module

Immutable settings for the swap bot:
- ``SwapConfig``: network, contracts and gas policy (YAML-overridable)
- ``RunConfig``: how many swaps per wallet and in which mode (JSON)
- the private key list (plain text, one key per line)

Every loader raises ``ConfigError`` so the CLI can abort the run before any
wallet is touched.
"""

import json
import logging
from dataclasses import dataclass, asdict, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from web3 import Web3

from .utils import ConfigError, validate_address, validate_private_key

logger = logging.getLogger(__name__)

GAS_MODES = ("static", "dynamic")

_ADDRESS_FIELDS = ("router_address", "token_in", "token_out", "pool_fee")


def _to_wei(amount: Any, unit: str, field_name: str) -> int:
    try:
        return int(Web3.to_wei(Decimal(str(amount)), unit))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ConfigError(f"Invalid {field_name}: {amount!r}", str(e))


@dataclass(frozen=True)
class SwapConfig:
    """Network and contract settings. Built once, shared read-only."""

    # Network
    rpc_url: str = "https://rpc.soneium.org/"
    chain_id: int = 1868
    rpc_timeout: int = 30
    receipt_timeout: int = 120

    # Contracts
    router_address: str = "0xeba58c20629ddab41e21a3e4e2422e583ebd9719"
    token_in: str = "0x4200000000000000000000000000000000000006"  # WETH
    token_out: str = "0xbA9986D2381edf1DA03B0B9c1f8b00dc4AacC369"  # USDC
    pool_fee: str = "0x0000000000000000000000000000000000000000"  # pool deployer selector
    token_out_symbol: str = "USDC"
    token_out_decimals: int = 6
    routing_constant: int = 53081

    # Trading
    default_amount: str = "0.00002"
    deadline_seconds: int = 3600

    # Gas
    gas_mode: str = "dynamic"  # static: one quote per sequence, dynamic: per step
    fallback_gas_price_gwei: str = "0.0012"
    priority_fee_gwei: str = "0.0012"
    gas_limit_fallback: int = 350000
    gas_buffer_percent: int = 120

    # Pacing
    step_delay_seconds: float = 2.0
    min_swap_delay_ms: int = 5000
    max_swap_delay_ms: int = 15000

    def __post_init__(self):
        for name in _ADDRESS_FIELDS:
            value = getattr(self, name)
            if not validate_address(value):
                raise ConfigError(f"Invalid address for {name}: {value!r}")
            object.__setattr__(self, name, Web3.to_checksum_address(value))

        if self.gas_mode not in GAS_MODES:
            raise ConfigError(f"gas_mode must be one of {GAS_MODES}, got {self.gas_mode!r}")
        if self.min_swap_delay_ms >= self.max_swap_delay_ms:
            raise ConfigError("min_swap_delay_ms must be below max_swap_delay_ms")

        # Fail fast on malformed decimal strings
        _ = (self.fallback_gas_price_wei, self.priority_fee_wei, self.default_amount_wei)

    @property
    def fallback_gas_price_wei(self) -> int:
        return _to_wei(self.fallback_gas_price_gwei, 'gwei', 'fallback_gas_price_gwei')

    @property
    def priority_fee_wei(self) -> int:
        return _to_wei(self.priority_fee_gwei, 'gwei', 'priority_fee_gwei')

    @property
    def default_amount_wei(self) -> int:
        return _to_wei(self.default_amount, 'ether', 'default_amount')

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapConfig":
        """Create SwapConfig from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in fields(cls)}
        unknown = set(data) - valid_fields
        if unknown:
            logger.warning(f"Ignoring unknown network settings: {sorted(unknown)}")
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        try:
            return cls(**filtered)
        except TypeError as e:
            raise ConfigError("Malformed network settings", str(e))

    def with_overrides(self, **changes) -> "SwapConfig":
        return replace(self, **changes)


@dataclass(frozen=True)
class RunConfig:
    """Per-run settings from the JSON config file."""
    number_of_swaps: int = 0
    amount_per_swap: Optional[str] = None
    sequential_swap: bool = False

    _KEY_ALIASES = {
        "numberOfSwaps": "number_of_swaps",
        "amountPerSwap": "amount_per_swap",
        "sequentialSwap": "sequential_swap",
    }

    def __post_init__(self):
        if isinstance(self.number_of_swaps, bool) or not isinstance(self.number_of_swaps, int):
            raise ConfigError(f"numberOfSwaps must be an integer, got {self.number_of_swaps!r}")
        if self.number_of_swaps < 0:
            raise ConfigError(f"numberOfSwaps must be >= 0, got {self.number_of_swaps}")
        if not isinstance(self.sequential_swap, bool):
            raise ConfigError(f"sequentialSwap must be a boolean, got {self.sequential_swap!r}")
        if not self.amount_per_swap:
            # "" or 0 means the network default
            object.__setattr__(self, "amount_per_swap", None)
        else:
            object.__setattr__(self, "amount_per_swap", str(self.amount_per_swap))
            if _to_wei(self.amount_per_swap, 'ether', 'amountPerSwap') <= 0:
                raise ConfigError(f"amountPerSwap must be positive, got {self.amount_per_swap}")

    def amount_wei(self, swap_config: SwapConfig) -> int:
        """Swap amount in wei, falling back to the network default."""
        if self.amount_per_swap:
            return _to_wei(self.amount_per_swap, 'ether', 'amountPerSwap')
        return swap_config.default_amount_wei

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunConfig":
        if not isinstance(data, dict):
            raise ConfigError("Run config must be a JSON object")
        normalized = {cls._KEY_ALIASES.get(k, k): v for k, v in data.items()}
        if "number_of_swaps" not in normalized:
            raise ConfigError("Run config is missing numberOfSwaps")
        valid_fields = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in normalized.items() if k in valid_fields})


def load_run_config(path: Path) -> RunConfig:
    """Load the JSON run config."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file is not valid JSON: {path}", str(e))
    return RunConfig.from_dict(data)


def load_private_keys(path: Path) -> List[str]:
    """Read one private key per line; blank lines are skipped."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Key file not found: {path}")

    with open(path, 'r') as f:
        keys = [line.strip() for line in f]
    keys = [k for k in keys if k]

    for line_no, key in enumerate(keys, start=1):
        if not validate_private_key(key):
            # never echo the key itself
            raise ConfigError(f"Malformed private key #{line_no} in {path}")
    return keys


def load_swap_config(path: Optional[Path] = None) -> SwapConfig:
    """Defaults, optionally overridden by a YAML network file."""
    if path is None:
        return SwapConfig()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Network file not found: {path}")
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Network file is not valid YAML: {path}", str(e))
    if not isinstance(data, dict):
        raise ConfigError(f"Network file must contain a mapping: {path}")
    return SwapConfig.from_dict(data)


def write_network_template(path: Path) -> Path:
    """Write the default network settings as a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        f.write(DEFAULT_NETWORK_CONFIG + "\n")
    return path


# Default network template
DEFAULT_NETWORK_CONFIG = """
# Round-trip swap bot network settings
# Any key left out keeps its built-in default.

rpc_url: https://rpc.soneium.org/
chain_id: 1868
rpc_timeout: 30
receipt_timeout: 120

# Contracts
router_address: "0xeba58c20629ddab41e21a3e4e2422e583ebd9719"
token_in: "0x4200000000000000000000000000000000000006"
token_out: "0xbA9986D2381edf1DA03B0B9c1f8b00dc4AacC369"
pool_fee: "0x0000000000000000000000000000000000000000"
token_out_symbol: USDC
token_out_decimals: 6
routing_constant: 53081

# Trading
default_amount: "0.00002"
deadline_seconds: 3600

# Gas (static = one quote per sequence, dynamic = re-quote each step)
gas_mode: dynamic
fallback_gas_price_gwei: "0.0012"
priority_fee_gwei: "0.0012"
gas_limit_fallback: 350000
gas_buffer_percent: 120

# Pacing
step_delay_seconds: 2.0
min_swap_delay_ms: 5000
max_swap_delay_ms: 15000
""".strip()
