"""
Persistent mining state for PoWToken

- MiningState: challenge, target, era, minted supply, epoch bookkeeping
- SolutionRegistry: challenge number -> accepted digest, write-once
- MiningStatistics: who was rewarded last, and when
"""

from typing import Dict, Any, Iterator, Optional
from dataclasses import dataclass, asdict

from .crypto_utils import ZERO_HASH, from_hex, to_hex


@dataclass
class MiningState:
    """
    The single mutable record owned by the mining engine.

    Attributes:
        challenge_number: Current 32-byte puzzle seed
        mining_target: Upper bound a valid digest must not exceed
        reward_era: Current halving era (starts at 0)
        tokens_minted: Base units minted so far
        max_supply_for_era: Minted-supply ceiling that ends the current era
        epoch_count: Number of accepted solutions
        latest_difficulty_period_start: External block height of the last retarget
    """
    challenge_number: bytes
    mining_target: int
    reward_era: int = 0
    tokens_minted: int = 0
    max_supply_for_era: int = 0
    epoch_count: int = 0
    latest_difficulty_period_start: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['challenge_number'] = to_hex(self.challenge_number)
        # uint256 values do not survive every JSON reader as numbers
        data['mining_target'] = hex(self.mining_target)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MiningState':
        data = dict(data)
        data['challenge_number'] = from_hex(data['challenge_number'])
        data['mining_target'] = int(data['mining_target'], 16)
        return cls(**data)


class SolutionRegistry:
    """
    Replay protection: at most one rewarded digest per challenge number.

    Entries for rotated challenges are kept forever.
    """

    def __init__(self, solutions: Optional[Dict[bytes, bytes]] = None):
        self._solutions: Dict[bytes, bytes] = dict(solutions or {})

    def get(self, challenge_number: bytes) -> bytes:
        """Digest recorded for a challenge, or the zero hash."""
        return self._solutions.get(challenge_number, ZERO_HASH)

    def is_solved(self, challenge_number: bytes) -> bool:
        return self.get(challenge_number) != ZERO_HASH

    def record(self, challenge_number: bytes, digest: bytes):
        """
        Record the accepted digest for a challenge.

        Raises:
            ValueError: If the challenge already has a solution
        """
        if self.is_solved(challenge_number):
            raise ValueError("challenge already has a recorded solution")
        self._solutions[challenge_number] = digest

    def __contains__(self, challenge_number: bytes) -> bool:
        return self.is_solved(challenge_number)

    def __len__(self) -> int:
        return len(self._solutions)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._solutions)

    def to_dict(self) -> Dict[str, str]:
        return {to_hex(c): to_hex(d) for c, d in self._solutions.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'SolutionRegistry':
        return cls({from_hex(c): from_hex(d) for c, d in data.items()})


@dataclass
class MiningStatistics:
    """Diagnostics about the most recent reward. Rebuilt on every mint."""
    last_reward_to: str = ""
    last_reward_amount: int = 0
    last_reward_block: int = 0
    last_reward_timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MiningStatistics':
        return cls(**data)
