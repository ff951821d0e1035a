"""
PoWToken Configuration

Issuance schedule:
- Each accepted solution ("epoch") mints a fixed reward to the solver
- The reward halves every time the minted supply crosses the cap of its era
- Difficulty is retargeted every N epochs toward a fixed solve rate
"""

import os
from dataclasses import dataclass, replace
from typing import Dict

# =============================================================================
# ISSUANCE
# =============================================================================

TOTAL_SUPPLY = 21_000_000  # Whole tokens
DECIMALS = 8
BASE_REWARD = 50  # Whole tokens per solution in era 0
MAX_REWARD_ERA = 39  # 50 * 10**8 / 2**39 truncates to zero past this point

# =============================================================================
# DIFFICULTY RETARGET
# =============================================================================

BLOCKS_PER_ADJUSTMENT = 1024  # Epochs between retargets
MINING_RATE_FACTOR = 60  # External blocks expected per epoch

# Largest single retarget step, in percent
QUOTIENT_LIMIT = 1000

# Target moves by target / TARGET_DIVISOR per percentage point
TARGET_DIVISOR = 2000

MINIMUM_TARGET = 2 ** 16  # Hardest
MAXIMUM_TARGET = 2 ** 234  # Easiest

UINT256_MAX = 2 ** 256 - 1

# =============================================================================
# ARGON2 PARAMETERS (keystore key derivation, memory-hard)
# =============================================================================

ARGON2_TIME_COST = 2  # Number of iterations
ARGON2_MEMORY_COST = 65536  # Memory usage in KB (64MB)
ARGON2_PARALLELISM = 4  # Number of parallel threads
ARGON2_HASH_LEN = 32  # Derived key length
ARGON2_SALT_LEN = 16
KEYSTORE_NONCE_LEN = 12  # AES-GCM nonce

# =============================================================================
# LOCAL FILES / NETWORK
# =============================================================================

DEFAULT_DATA_DIR = os.path.expanduser("~/.powtoken")
DEFAULT_PORT = 8545


@dataclass(frozen=True)
class TokenParams:
    """
    Parameters of one token deployment.

    Attributes:
        name: Human readable token name
        symbol: Ticker symbol
        total_supply: Maximum supply in whole tokens
        decimals: Number of decimal places of one whole token
        base_reward: Reward in whole tokens for a solution in era 0
        max_reward_era: Last era; the era counter never goes past it
        blocks_per_adjustment: Epochs between difficulty retargets
        mining_rate_factor: External blocks that should elapse per epoch
        min_target: Hardest allowed mining target
        max_target: Easiest allowed mining target (also the genesis target)
    """
    name: str = "PoW Token"
    symbol: str = "POW"
    total_supply: int = TOTAL_SUPPLY
    decimals: int = DECIMALS
    base_reward: int = BASE_REWARD
    max_reward_era: int = MAX_REWARD_ERA
    blocks_per_adjustment: int = BLOCKS_PER_ADJUSTMENT
    mining_rate_factor: int = MINING_RATE_FACTOR
    min_target: int = MINIMUM_TARGET
    max_target: int = MAXIMUM_TARGET

    def __post_init__(self):
        if self.blocks_per_adjustment <= 0:
            raise ValueError("blocks_per_adjustment must be positive")
        if self.mining_rate_factor <= 0:
            raise ValueError("mining_rate_factor must be positive")
        if not 0 < self.min_target <= self.max_target <= UINT256_MAX:
            raise ValueError("targets must satisfy 0 < min_target <= max_target <= 2**256-1")

    @property
    def unit(self) -> int:
        """Base units in one whole token."""
        return 10 ** self.decimals

    @property
    def supply_units(self) -> int:
        """Total supply expressed in base units."""
        return self.total_supply * self.unit

    @property
    def base_reward_units(self) -> int:
        """Era 0 reward expressed in base units."""
        return self.base_reward * self.unit

    @property
    def expected_blocks_per_period(self) -> int:
        """External blocks that should elapse over one adjustment period."""
        return self.blocks_per_adjustment * self.mining_rate_factor

    def with_overrides(self, **changes) -> 'TokenParams':
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, object]:
        return {
            'name': self.name,
            'symbol': self.symbol,
            'total_supply': self.total_supply,
            'decimals': self.decimals,
            'base_reward': self.base_reward,
            'max_reward_era': self.max_reward_era,
            'blocks_per_adjustment': self.blocks_per_adjustment,
            'mining_rate_factor': self.mining_rate_factor,
            'min_target': self.min_target,
            'max_target': self.max_target,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> 'TokenParams':
        return cls(**data)


# The two deployments differ only in how often difficulty is retargeted
PRESETS: Dict[str, TokenParams] = {
    'classic': TokenParams(
        name="0xBitcoin Token",
        symbol="0xBTC",
        blocks_per_adjustment=1024,
    ),
    'fast': TokenParams(
        name="Fast Retarget Token",
        symbol="FPOW",
        blocks_per_adjustment=512,
    ),
}

DEFAULT_PRESET = 'classic'
