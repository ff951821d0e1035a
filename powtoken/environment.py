"""
Hosting environment for the mining engine.

The engine needs three things from wherever it runs: the current external
block height, an unpredictable recent seed for the next challenge, and the
identity of whoever invoked it. SimulatedChain provides all three in-process.
"""

import threading
from contextlib import contextmanager
from typing import Optional, Dict, Any, Iterator

from .crypto_utils import keccak256, normalize_address, to_hex
from .errors import InvalidSignature


class Environment:
    """Interface consumed by MiningEngine."""

    def current_block_height(self) -> int:
        raise NotImplementedError

    def recent_unpredictable_seed(self) -> bytes:
        raise NotImplementedError

    def caller_identity(self) -> str:
        raise NotImplementedError


class SimulatedChain(Environment):
    """
    A minimal stand-in for a blockchain host.

    Block hashes are keccak-256 of a chain seed and the block number, so a
    chain can be rebuilt from (seed, height). The seed handed to the engine is
    the hash of the block before the current one, like blockhash(number - 1).

    With automine enabled every transaction is sealed in its own block, which
    is how local development chains behave.
    """

    def __init__(self, height: int = 1, automine: bool = True, chain_seed: str = "powtoken"):
        if height < 1:
            raise ValueError("height must be at least 1")
        self.height = height
        self.automine = automine
        self.chain_seed = chain_seed
        self._caller: Optional[str] = None
        self._lock = threading.RLock()

    def block_hash(self, number: int) -> bytes:
        """Hash of a sealed block."""
        if not 0 <= number < self.height:
            raise ValueError(f"block {number} is not sealed (height {self.height})")
        return keccak256(self.chain_seed.encode('utf-8') + number.to_bytes(32, 'big'))

    def current_block_height(self) -> int:
        return self.height

    def recent_unpredictable_seed(self) -> bytes:
        return self.block_hash(self.height - 1)

    def caller_identity(self) -> str:
        if self._caller is None:
            raise RuntimeError("no transaction in progress")
        return self._caller

    def mine_block(self) -> bytes:
        """Seal the current block and return its hash."""
        with self._lock:
            self.height += 1
            return self.block_hash(self.height - 1)

    def advance(self, blocks: int):
        """Seal several empty blocks."""
        with self._lock:
            self.height += blocks

    @contextmanager
    def transact(self, caller: str) -> Iterator['SimulatedChain']:
        """
        Run a transaction as caller.

        Transactions are serialized; a failed transaction still occupies a
        block when automine is on.
        """
        with self._lock:
            self._caller = normalize_address(caller)
            try:
                yield self
            finally:
                self._caller = None
                if self.automine:
                    self.mine_block()

    def submit_signed(self, engine, request):
        """
        Authenticate a signed mint request and submit it as its signer.

        Args:
            engine: The MiningEngine to call
            request: A MintRequest produced by Wallet.sign_mint

        Returns:
            The engine's MintResult

        Raises:
            InvalidSignature: If the signature or signer address does not check out
        """
        if not request.verify():
            raise InvalidSignature("mint request signature does not verify")
        with self.transact(request.address):
            return engine.mint(request.nonce, request.digest)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'height': self.height,
            'automine': self.automine,
            'chain_seed': self.chain_seed,
            'head': to_hex(self.block_hash(self.height - 1)),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulatedChain':
        return cls(
            height=data['height'],
            automine=data.get('automine', True),
            chain_seed=data.get('chain_seed', "powtoken")
        )

    def __repr__(self) -> str:
        return f"SimulatedChain(height={self.height}, automine={self.automine})"
