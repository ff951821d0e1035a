"""
PoWToken Miner - CPU nonce search against the current challenge

Mining flow:
1. Read the current challenge number and mining target
2. Hash (challenge, our address, nonce) until a digest <= target turns up
3. Sign a mint request for that solution and submit it
4. On success the challenge rotates; start over
"""

import time
import secrets
import threading
import multiprocessing
from typing import Optional, Dict, Any, Callable, List
from dataclasses import dataclass

from .crypto_utils import mint_digest, meets_target, to_hex
from .engine import MiningEngine, MintResult
from .environment import SimulatedChain
from .errors import MiningError
from .wallet import Wallet, MintRequest


@dataclass
class Solution:
    """A nonce whose digest meets the target."""
    nonce: int
    digest: bytes
    challenge_number: bytes
    target: int
    attempts: int = 0
    elapsed_time: float = 0.0

    @property
    def hash_rate(self) -> float:
        return self.attempts / self.elapsed_time if self.elapsed_time > 0 else 0.0


@dataclass
class MineResult:
    """Result of one search-and-submit round."""
    success: bool
    solution: Optional[Solution] = None
    mint: Optional[MintResult] = None
    error: Optional[MiningError] = None


def find_solution(challenge_number: bytes, target: int, address: str,
                  start_nonce: int = 0, step: int = 1,
                  max_attempts: Optional[int] = None,
                  stop_event: Optional[threading.Event] = None) -> Optional[Solution]:
    """
    Search nonces start_nonce, start_nonce + step, ... for a valid digest.

    Args:
        challenge_number: Challenge to solve
        target: Digest must not exceed this
        address: Reward address baked into the digest
        start_nonce: First nonce to try
        step: Distance between tried nonces (threads interleave with it)
        max_attempts: Give up after this many hashes (None = never)
        stop_event: Checked every hash; set it to abandon the search

    Returns:
        The Solution, or None if the search was abandoned
    """
    start_time = time.time()
    attempts = 0
    nonce = start_nonce

    while max_attempts is None or attempts < max_attempts:
        if stop_event is not None and stop_event.is_set():
            return None

        digest = mint_digest(challenge_number, address, nonce)
        attempts += 1

        if meets_target(digest, target):
            return Solution(
                nonce=nonce,
                digest=digest,
                challenge_number=challenge_number,
                target=target,
                attempts=attempts,
                elapsed_time=time.time() - start_time
            )

        nonce += step

    return None


class LocalBackend:
    """Mines straight into an in-process engine through a simulated chain."""

    def __init__(self, engine: MiningEngine, chain: SimulatedChain, blocks_per_solve: int = 0):
        """
        Args:
            engine: Engine to mint on
            chain: Chain hosting the engine
            blocks_per_solve: Empty blocks sealed before each submission,
                to simulate wall-clock time passing while hashing
        """
        self.engine = engine
        self.chain = chain
        self.blocks_per_solve = blocks_per_solve

    def get_challenge_number(self) -> bytes:
        return self.engine.get_challenge_number()

    def get_mining_target(self) -> int:
        return self.engine.get_mining_target()

    def get_mining_reward(self) -> int:
        return self.engine.get_mining_reward()

    def submit(self, request: MintRequest) -> MintResult:
        if self.blocks_per_solve:
            self.chain.advance(self.blocks_per_solve)
        return self.chain.submit_signed(self.engine, request)


class Miner:
    """
    CPU miner for PoWToken.

    Works against any backend exposing get_challenge_number(),
    get_mining_target(), get_mining_reward() and submit(MintRequest):
    LocalBackend for an in-process engine, MiningClient for a remote server.
    """

    def __init__(self, wallet: Wallet, backend, num_threads: int = 1):
        """
        Initialize the miner.

        Args:
            wallet: Wallet to receive mining rewards
            backend: Where challenges come from and solutions go to
            num_threads: Number of mining threads
        """
        self.wallet = wallet
        self.backend = backend
        self.num_threads = max(1, min(num_threads, multiprocessing.cpu_count()))

        # Mining state
        self.is_mining = False
        self.total_hashes = 0
        self.start_time = 0.0
        self.solutions_found = 0
        self.solutions_accepted = 0
        self.total_reward = 0

        self._stop_event = threading.Event()

    def search(self, challenge_number: bytes, target: int) -> Optional[Solution]:
        """Find a solution for the given challenge, starting from a random nonce."""
        return find_solution(
            challenge_number, target, self.wallet.address,
            start_nonce=secrets.randbits(64),
            stop_event=self._stop_event
        )

    def mine_once(self, verbose: bool = True) -> MineResult:
        """
        Solve the current challenge and submit the solution.

        Args:
            verbose: Print progress information

        Returns:
            MineResult; rejected submissions carry the engine's error
        """
        challenge_number = self.backend.get_challenge_number()
        target = self.backend.get_mining_target()

        if verbose:
            print(f"\n⛏️  Mining challenge {to_hex(challenge_number)[:18]}...")
            print(f"   Target: {target:#x}")
            print(f"   Reward: {self.backend.get_mining_reward()} units")

        solution = self.search(challenge_number, target)
        if solution is None:
            return MineResult(success=False)

        self.total_hashes += solution.attempts
        self.solutions_found += 1

        request = self.wallet.sign_mint(solution.nonce, solution.digest, challenge_number)
        try:
            mint = self.backend.submit(request)
        except MiningError as e:
            if verbose:
                print(f"\n❌ Solution rejected: {e}")
            return MineResult(success=False, solution=solution, error=e)

        self.solutions_accepted += 1
        self.total_reward += mint.reward

        if verbose:
            print(f"\n✅ Epoch #{mint.epoch_count} mined!")
            print(f"   Nonce: {solution.nonce}")
            print(f"   Digest: {to_hex(solution.digest)}")
            print(f"   Attempts: {solution.attempts:,}")
            print(f"   Hash rate: {solution.hash_rate:.2f} H/s")
            print(f"   Reward: {mint.reward} units (era {mint.reward_era})")
            if mint.retargeted:
                print(f"   Difficulty retargeted, new target {mint.mining_target:#x}")

        return MineResult(success=True, solution=solution, mint=mint)

    def mine_continuous(self, count: int = 0, verbose: bool = True,
                        callback: Optional[Callable[[MineResult], bool]] = None) -> List[MineResult]:
        """
        Mine solutions continuously.

        Args:
            count: Number of accepted solutions to mine (0 = infinite)
            verbose: Print progress
            callback: Called after each round, return False to stop

        Returns:
            List of MineResults
        """
        self.is_mining = True
        self._stop_event.clear()
        self.start_time = time.time()
        results = []

        if verbose:
            print("=" * 60)
            print("     PoWToken Miner Started")
            print("=" * 60)
            print(f"Address: {self.wallet.address}")
            print(f"Threads: {self.num_threads}")
            print("=" * 60)

        while self.is_mining:
            if count > 0 and self.solutions_accepted >= count:
                break

            result = self.mine_once(verbose=verbose)
            results.append(result)

            if result.solution is None:
                break
            if callback and not callback(result):
                break

        if verbose:
            elapsed = time.time() - self.start_time
            print("\n" + "=" * 60)
            print("     Mining Session Complete")
            print("=" * 60)
            print(f"Solutions accepted: {self.solutions_accepted}/{self.solutions_found}")
            print(f"Total reward: {self.total_reward} units")
            print(f"Total time: {elapsed:.2f}s")
            print("=" * 60)

        self.is_mining = False
        return results

    def stop(self):
        """Stop mining."""
        self.is_mining = False
        self._stop_event.set()

    def get_stats(self) -> Dict[str, Any]:
        """Get mining statistics."""
        elapsed = time.time() - self.start_time if self.start_time else 0
        return {
            'is_mining': self.is_mining,
            'total_hashes': self.total_hashes,
            'solutions_found': self.solutions_found,
            'solutions_accepted': self.solutions_accepted,
            'total_reward': self.total_reward,
            'elapsed_time': elapsed,
            'hash_rate': self.total_hashes / elapsed if elapsed > 0 else 0.0,
        }


class MultiThreadedMiner(Miner):
    """
    Multi-threaded miner for multi-core CPUs.

    Each thread works on an interleaved nonce range.
    First thread to find a valid digest wins.
    """

    def __init__(self, wallet: Wallet, backend, num_threads: int = 0):
        if num_threads <= 0:
            num_threads = multiprocessing.cpu_count()
        super().__init__(wallet, backend, num_threads)
        self._lock = threading.Lock()
        self._found: Optional[Solution] = None

    def _mine_thread(self, challenge_number: bytes, target: int,
                     start_nonce: int, found_event: threading.Event):
        """Mining thread worker."""
        while not found_event.is_set() and not self._stop_event.is_set():
            solution = find_solution(
                challenge_number, target, self.wallet.address,
                start_nonce=start_nonce, step=self.num_threads,
                max_attempts=1000, stop_event=found_event
            )
            if solution is not None:
                with self._lock:
                    if self._found is None:
                        self._found = solution
                        found_event.set()
                return
            start_nonce += 1000 * self.num_threads

    def search(self, challenge_number: bytes, target: int) -> Optional[Solution]:
        """Find a solution using multiple threads."""
        self._found = None
        found_event = threading.Event()
        base_nonce = secrets.randbits(64)
        start_time = time.time()

        threads = []
        for i in range(self.num_threads):
            t = threading.Thread(
                target=self._mine_thread,
                args=(challenge_number, target, base_nonce + i, found_event)
            )
            t.daemon = True
            t.start()
            threads.append(t)

        for t in threads:
            t.join()

        solution = self._found
        if solution is not None:
            # Per-thread attempt counts are not tracked; report wall time only
            solution.elapsed_time = time.time() - start_time
        return solution
