"""
Mining engine for PoWToken

Mint flow (one indivisible step):
1. Validate: keccak(challenge, caller, nonce) must equal the claimed digest,
   must not exceed the mining target, and the challenge must still be open
2. Reward: base reward halved once per era, credited to the caller
3. Epoch: maybe advance the era, recompute the era cap, count the epoch
4. Retarget difficulty every blocks_per_adjustment epochs
5. Rotate the challenge to a fresh seed from the environment
6. Announce the mint

The successor state is computed in full before anything is committed, so a
failure at any step leaves the engine, the ledger and the event sink untouched.
"""

import json
import time
import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, Any, Optional, Union

from . import config
from . import safe_math
from .config import TokenParams
from .crypto_utils import (
    ZERO_HASH, mint_digest, meets_target, from_hex, to_hex
)
from .environment import Environment
from .errors import (
    MiningError, InvalidSolution, TargetNotMet, AlreadySolved, SupplyExceeded
)
from .ledger import BalanceLedger, EventSink
from .state import MiningState, SolutionRegistry, MiningStatistics

logger = logging.getLogger(__name__)


@dataclass
class MintResult:
    """Outcome of an accepted mint."""
    recipient: str
    nonce: int
    digest: bytes
    reward: int
    epoch_count: int
    reward_era: int
    new_challenge_number: bytes
    mining_target: int
    retargeted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'recipient': self.recipient,
            'nonce': self.nonce,
            'digest': to_hex(self.digest),
            'reward': self.reward,
            'epoch_count': self.epoch_count,
            'reward_era': self.reward_era,
            'new_challenge_number': to_hex(self.new_challenge_number),
            'mining_target': hex(self.mining_target),
            'retargeted': self.retargeted,
        }


def retarget(mining_target: int, elapsed: int, params: TokenParams) -> int:
    """
    Compute the next mining target after one adjustment period.

    Args:
        mining_target: Target in force during the period
        elapsed: External blocks that elapsed over the period
        params: Token parameters (epochs per period, blocks per epoch, bounds)

    Returns:
        New target, clamped into [min_target, max_target]
    """
    expected = safe_math.mul(params.blocks_per_adjustment, params.mining_rate_factor)

    # Zero elapsed blocks is measured as one so the ratio stays defined
    elapsed = max(elapsed, 1)
    # Beyond this the step saturates at QUOTIENT_LIMIT anyway
    elapsed = safe_math.limit(elapsed, safe_math.mul(expected, config.QUOTIENT_LIMIT // 100 + 2))

    step = safe_math.div(mining_target, config.TARGET_DIVISOR)

    if elapsed < expected:
        # Solved too fast: lower the target (harder)
        excess_block_pct = safe_math.div(safe_math.mul(expected, 100), elapsed)
        excess_block_pct_extra = safe_math.limit(
            safe_math.sub(excess_block_pct, 100), config.QUOTIENT_LIMIT)
        mining_target = safe_math.sub(mining_target, safe_math.mul(step, excess_block_pct_extra))
    else:
        # Solved too slowly: raise the target (easier)
        shortage_block_pct = safe_math.div(safe_math.mul(elapsed, 100), expected)
        shortage_block_pct_extra = safe_math.limit(
            safe_math.sub(shortage_block_pct, 100), config.QUOTIENT_LIMIT)
        increment = safe_math.mul(step, shortage_block_pct_extra)
        # Never step past max_target, which may sit right under 2**256
        headroom = params.max_target - mining_target if mining_target < params.max_target else 0
        mining_target = safe_math.add(mining_target, safe_math.limit(increment, headroom))

    if mining_target < params.min_target:
        mining_target = params.min_target
    if mining_target > params.max_target:
        mining_target = params.max_target
    return mining_target


class MiningEngine:
    """
    The mineable-token engine.

    Owns MiningState, SolutionRegistry and MiningStatistics exclusively.
    Credits rewards through a BalanceLedger, announces them through an
    EventSink and reads heights, seeds and caller identity from an Environment.
    """

    def __init__(self, params: TokenParams, environment: Environment,
                 ledger: BalanceLedger, event_sink: EventSink,
                 state: Optional[MiningState] = None,
                 registry: Optional[SolutionRegistry] = None,
                 statistics: Optional[MiningStatistics] = None):
        self.params = params
        self.environment = environment
        self.ledger = ledger
        self.event_sink = event_sink
        self._lock = threading.Lock()

        self._state = state if state is not None else self._genesis_state()
        self._registry = registry if registry is not None else SolutionRegistry()
        self.statistics = statistics if statistics is not None else MiningStatistics()

    def _genesis_state(self) -> MiningState:
        """Era 0, easiest target, challenge from the environment."""
        return MiningState(
            challenge_number=self._fresh_challenge(),
            mining_target=self.params.max_target,
            reward_era=0,
            tokens_minted=0,
            max_supply_for_era=self.era_supply_cap(0),
            epoch_count=0,
            latest_difficulty_period_start=self.environment.current_block_height()
        )

    def _fresh_challenge(self) -> bytes:
        seed = self.environment.recent_unpredictable_seed()
        if seed == ZERO_HASH:
            raise RuntimeError("environment returned a zero seed")
        return seed

    # ------------------------------------------------------------------
    # Issuance schedule
    # ------------------------------------------------------------------

    def reward_for_era(self, era: int) -> int:
        """Per-solution reward in base units during an era (era 0 pays the full base reward)."""
        return safe_math.div(self.params.base_reward_units, 2 ** era)

    def era_supply_cap(self, era: int) -> int:
        """Minted supply at which an era ends: supply - supply / 2**(era + 1)."""
        supply = self.params.supply_units
        return safe_math.sub(supply, safe_math.div(supply, 2 ** (era + 1)))

    # ------------------------------------------------------------------
    # Mint
    # ------------------------------------------------------------------

    def mint(self, nonce: int, challenge_digest: Union[bytes, str]) -> MintResult:
        """
        Submit a proof-of-work solution on behalf of the current caller.

        Args:
            nonce: Nonce the miner found
            challenge_digest: The digest the miner claims that nonce produces

        Returns:
            MintResult describing the reward and the new challenge

        Raises:
            InvalidSolution: Digest mismatch or malformed input
            TargetNotMet: Digest larger than the mining target
            AlreadySolved: The current challenge was already rewarded
            SupplyExceeded: Minted supply would pass the era cap
            ArithmeticFault: A checked operation overflowed or underflowed
        """
        with self._lock:
            recipient = self.environment.caller_identity()
            state = self._state

            try:
                digest = self._validate_solution(state, recipient, nonce, challenge_digest)

                reward = self.reward_for_era(state.reward_era)
                new_state = replace(state)
                new_state.tokens_minted = safe_math.add(state.tokens_minted, reward)
                if new_state.tokens_minted > new_state.max_supply_for_era:
                    raise SupplyExceeded(
                        f"minted {new_state.tokens_minted} exceeds era cap {new_state.max_supply_for_era}")

                retargeted = self._start_new_mining_epoch(new_state)

                # Commit. The ledger goes first since it is the only step that can still fail.
                self.ledger.credit(recipient, reward)
            except MiningError as e:
                logger.debug("Rejected mint from %s (nonce %s): %s", recipient, nonce, e)
                raise

            self._registry.record(state.challenge_number, digest)
            self._state = new_state
            self.statistics = MiningStatistics(
                last_reward_to=recipient,
                last_reward_amount=reward,
                last_reward_block=self.environment.current_block_height(),
                last_reward_timestamp=time.time()
            )

            logger.info("Epoch %d mined by %s: reward %d, era %d",
                        new_state.epoch_count, recipient, reward, new_state.reward_era)

            self.event_sink.emit(recipient, reward, new_state.epoch_count, new_state.challenge_number)

            return MintResult(
                recipient=recipient,
                nonce=nonce,
                digest=digest,
                reward=reward,
                epoch_count=new_state.epoch_count,
                reward_era=new_state.reward_era,
                new_challenge_number=new_state.challenge_number,
                mining_target=new_state.mining_target,
                retargeted=retargeted
            )

    def _validate_solution(self, state: MiningState, recipient: str, nonce: int,
                           challenge_digest: Union[bytes, str]) -> bytes:
        try:
            claimed = from_hex(challenge_digest)
            digest = mint_digest(state.challenge_number, recipient, nonce)
        except (ValueError, TypeError, AttributeError) as e:
            raise InvalidSolution(str(e)) from e

        if digest != claimed:
            raise InvalidSolution("digest does not match challenge, sender and nonce")

        if not meets_target(digest, state.mining_target):
            raise TargetNotMet("digest is above the mining target")

        if self._registry.is_solved(state.challenge_number):
            raise AlreadySolved("challenge already rewarded")

        return digest

    def _start_new_mining_epoch(self, state: MiningState) -> bool:
        """Advance era, cap, epoch, difficulty and challenge on a working copy of the state."""
        next_reward = self.reward_for_era(state.reward_era)
        if (safe_math.add(state.tokens_minted, next_reward) > state.max_supply_for_era
                and state.reward_era < self.params.max_reward_era):
            state.reward_era += 1

        state.max_supply_for_era = self.era_supply_cap(state.reward_era)
        state.epoch_count = safe_math.add(state.epoch_count, 1)

        retargeted = False
        if state.epoch_count % self.params.blocks_per_adjustment == 0:
            self._readjust_difficulty(state)
            retargeted = True

        # Last, so everything above ran against the challenge that was solved
        state.challenge_number = self._fresh_challenge()
        return retargeted

    def _readjust_difficulty(self, state: MiningState):
        height = self.environment.current_block_height()
        elapsed = safe_math.sub(height, state.latest_difficulty_period_start)
        old_target = state.mining_target

        state.mining_target = retarget(old_target, elapsed, self.params)
        state.latest_difficulty_period_start = height

        logger.info("Difficulty retarget at epoch %d: %d blocks elapsed (expected %d), target %#x -> %#x",
                    state.epoch_count, elapsed, self.params.expected_blocks_per_period,
                    old_target, state.mining_target)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> MiningState:
        """A copy of the current mining state."""
        return replace(self._state)

    @property
    def registry(self) -> SolutionRegistry:
        return self._registry

    def get_challenge_number(self) -> bytes:
        return self._state.challenge_number

    def get_mining_difficulty(self) -> int:
        """Higher is harder; the inverse of the raw target."""
        return safe_math.div(self.params.max_target, self._state.mining_target)

    def get_mining_target(self) -> int:
        return self._state.mining_target

    def get_mining_reward(self) -> int:
        """Reward for the next accepted solution, in base units."""
        return self.reward_for_era(self._state.reward_era)

    # Debug helpers: stateless, for miner software

    @staticmethod
    def get_mint_digest(nonce: int, challenge_digest: bytes, challenge_number: bytes,
                        address: str) -> bytes:
        """Digest the engine would compute for this nonce. challenge_digest is not used."""
        return mint_digest(challenge_number, address, nonce)

    @staticmethod
    def check_mint_solution(nonce: int, challenge_digest: Union[bytes, str], challenge_number: bytes,
                            address: str, test_target: int) -> bool:
        """True if the nonce produces challenge_digest and the digest meets test_target."""
        digest = mint_digest(challenge_number, address, nonce)
        if not meets_target(digest, test_target):
            return False
        return digest == from_hex(challenge_digest)

    def info(self) -> Dict[str, Any]:
        """Summary used by the CLI and the mining server."""
        state = self._state
        return {
            'name': self.params.name,
            'symbol': self.params.symbol,
            'decimals': self.params.decimals,
            'total_supply': self.params.supply_units,
            'tokens_minted': state.tokens_minted,
            'max_supply_for_era': state.max_supply_for_era,
            'reward_era': state.reward_era,
            'epoch_count': state.epoch_count,
            'mining_reward': self.get_mining_reward(),
            'mining_target': hex(state.mining_target),
            'mining_difficulty': self.get_mining_difficulty(),
            'challenge_number': to_hex(state.challenge_number),
            'latest_difficulty_period_start': state.latest_difficulty_period_start,
            'blocks_per_adjustment': self.params.blocks_per_adjustment,
            'statistics': self.statistics.to_dict(),
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'params': self.params.to_dict(),
            'state': self._state.to_dict(),
            'solutions': self._registry.to_dict(),
            'statistics': self.statistics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], environment: Environment,
                  ledger: BalanceLedger, event_sink: EventSink) -> 'MiningEngine':
        return cls(
            params=TokenParams.from_dict(data['params']),
            environment=environment,
            ledger=ledger,
            event_sink=event_sink,
            state=MiningState.from_dict(data['state']),
            registry=SolutionRegistry.from_dict(data.get('solutions', {})),
            statistics=MiningStatistics.from_dict(data.get('statistics', {}))
        )

    def save(self, filepath: str):
        """Save engine state to file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str, environment: Environment,
             ledger: BalanceLedger, event_sink: EventSink) -> 'MiningEngine':
        """Load engine state from file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data, environment, ledger, event_sink)

    def __repr__(self) -> str:
        state = self._state
        return (f"MiningEngine(epoch={state.epoch_count}, era={state.reward_era}, "
                f"minted={state.tokens_minted}, target={state.mining_target:#x})")
