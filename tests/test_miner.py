"""
Tests for the CPU miner and the node wrapper
"""

import os
import sys
import shutil
import tempfile
import threading
import unittest

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from powtoken.config import TokenParams, UINT256_MAX
from powtoken.crypto_utils import keccak256, meets_target
from powtoken.errors import InvalidSolution
from powtoken.miner import find_solution, LocalBackend, Miner, MultiThreadedMiner
from powtoken.node import Node
from powtoken.wallet import Wallet

ALICE = "0x" + "a1" * 20

EASY_PARAMS = TokenParams(blocks_per_adjustment=4, max_target=2 ** 252)


class StaleBackend(LocalBackend):
    """Keeps serving a challenge that has already been rotated away."""

    def __init__(self, challenge_number, engine, chain):
        super().__init__(engine, chain)
        self.challenge_number = challenge_number

    def get_challenge_number(self):
        return self.challenge_number


class TestFindSolution(unittest.TestCase):
    """Test the nonce search."""

    def setUp(self):
        self.challenge = keccak256(b"challenge")

    def test_any_digest_meets_max_target(self):
        solution = find_solution(self.challenge, UINT256_MAX, ALICE, start_nonce=7)
        self.assertEqual(solution.nonce, 7)
        self.assertEqual(solution.attempts, 1)

    def test_solution_meets_target(self):
        solution = find_solution(self.challenge, 2 ** 250, ALICE)
        self.assertTrue(meets_target(solution.digest, 2 ** 250))
        self.assertEqual(solution.challenge_number, self.challenge)

    def test_gives_up(self):
        self.assertIsNone(find_solution(self.challenge, 0, ALICE, max_attempts=50))

    def test_stop_event(self):
        stop = threading.Event()
        stop.set()
        self.assertIsNone(find_solution(self.challenge, 0, ALICE, stop_event=stop))

    def test_step(self):
        solution = find_solution(self.challenge, 2 ** 250, ALICE, start_nonce=3, step=5)
        self.assertEqual(solution.nonce % 5, 3)


class TestMiner(unittest.TestCase):
    """Test mining into an in-process node."""

    def setUp(self):
        self.node = Node.create(EASY_PARAMS)
        self.wallet = Wallet.generate()
        self.backend = LocalBackend(self.node.engine, self.node.chain)

    def test_mine_continuous(self):
        miner = Miner(self.wallet, self.backend)
        results = miner.mine_continuous(count=3, verbose=False)

        self.assertEqual(len(results), 3)
        self.assertTrue(all(r.success for r in results))
        self.assertEqual(miner.solutions_accepted, 3)
        self.assertEqual(self.node.ledger.balance_of(self.wallet.address), 3 * 50 * 10 ** 8)
        self.assertEqual(miner.get_stats()['total_reward'], 3 * 50 * 10 ** 8)
        self.assertEqual(self.node.engine.state.epoch_count, 3)

    def test_callback_stops_mining(self):
        miner = Miner(self.wallet, self.backend)
        results = miner.mine_continuous(count=5, verbose=False, callback=lambda r: False)
        self.assertEqual(len(results), 1)

    def test_rejected_solution(self):
        """A stale solution is reported in the result, not raised."""
        stale_challenge = self.node.engine.get_challenge_number()
        Miner(self.wallet, self.backend).mine_once(verbose=False)

        miner = Miner(self.wallet, StaleBackend(stale_challenge, self.node.engine, self.node.chain))
        result = miner.mine_once(verbose=False)

        self.assertFalse(result.success)
        self.assertIsInstance(result.error, InvalidSolution)
        self.assertEqual(miner.solutions_found, 1)
        self.assertEqual(miner.solutions_accepted, 0)

    def test_multithreaded(self):
        miner = MultiThreadedMiner(self.wallet, self.backend, num_threads=2)
        result = miner.mine_once(verbose=False)

        self.assertTrue(result.success)
        self.assertEqual(self.node.ledger.balance_of(self.wallet.address), result.mint.reward)

    def test_blocks_per_solve(self):
        backend = LocalBackend(self.node.engine, self.node.chain, blocks_per_solve=60)
        miner = Miner(self.wallet, backend)
        start = self.node.chain.current_block_height()

        miner.mine_continuous(count=4, verbose=False)

        # 60 empty blocks plus the transaction's own block per solution
        self.assertEqual(self.node.chain.current_block_height(), start + 4 * 61)
        # Slightly slow period: the fourth mint retargets, clamped at the easiest target
        self.assertEqual(self.node.engine.get_mining_target(), EASY_PARAMS.max_target)
        self.assertEqual(self.node.engine.state.latest_difficulty_period_start, start + 3 * 61 + 60)


class TestNode(unittest.TestCase):
    """Test node persistence."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_open_creates_and_reloads(self):
        node = Node.open(self.temp_dir, EASY_PARAMS)
        wallet = Wallet.generate()
        Miner(wallet, LocalBackend(node.engine, node.chain)).mine_continuous(count=2, verbose=False)
        node.save()

        reopened = Node.open(self.temp_dir)
        self.assertEqual(reopened.engine.params, EASY_PARAMS)
        self.assertEqual(reopened.engine.state, node.engine.state)
        self.assertEqual(reopened.chain.current_block_height(), node.chain.current_block_height())
        self.assertEqual(reopened.ledger.balance_of(wallet.address), 2 * 50 * 10 ** 8)


if __name__ == '__main__':
    unittest.main()
