"""
PoWToken Node - one engine, its collaborators and their files on disk

Layout of a data directory:
- chain.json   simulated chain height and seed
- ledger.json  balances
- engine.json  parameters, mining state, solutions, statistics
"""

import os
import json
import logging
from typing import Optional

from . import config
from .config import TokenParams
from .engine import MiningEngine
from .environment import SimulatedChain
from .ledger import InMemoryLedger, RecordingEventSink

logger = logging.getLogger(__name__)


class Node:
    """Bundles a SimulatedChain, InMemoryLedger, RecordingEventSink and MiningEngine."""

    CHAIN_FILE = "chain.json"
    LEDGER_FILE = "ledger.json"
    ENGINE_FILE = "engine.json"

    def __init__(self, engine: MiningEngine, chain: SimulatedChain,
                 ledger: InMemoryLedger, events: RecordingEventSink,
                 data_dir: Optional[str] = None):
        self.engine = engine
        self.chain = chain
        self.ledger = ledger
        self.events = events
        self.data_dir = data_dir

    @classmethod
    def create(cls, params: TokenParams, data_dir: Optional[str] = None,
               chain: Optional[SimulatedChain] = None) -> 'Node':
        """Deploy a fresh engine at genesis."""
        chain = chain or SimulatedChain()
        ledger = InMemoryLedger()
        events = RecordingEventSink()
        engine = MiningEngine(params, chain, ledger, events)
        # Deployment is a transaction of its own
        chain.mine_block()
        logger.info("Deployed %s (%s) at block %d", params.name, params.symbol, chain.height - 1)
        return cls(engine, chain, ledger, events, data_dir)

    @classmethod
    def open(cls, data_dir: str = config.DEFAULT_DATA_DIR,
             params: Optional[TokenParams] = None) -> 'Node':
        """
        Load a node from data_dir, or deploy a new one there.

        Args:
            data_dir: Directory holding the node files
            params: Parameters for a new deployment (default preset if None)
        """
        engine_path = os.path.join(data_dir, cls.ENGINE_FILE)
        if not os.path.exists(engine_path):
            os.makedirs(data_dir, exist_ok=True)
            node = cls.create(params or config.PRESETS[config.DEFAULT_PRESET], data_dir)
            node.save()
            return node

        with open(os.path.join(data_dir, cls.CHAIN_FILE), 'r') as f:
            chain = SimulatedChain.from_dict(json.load(f))
        ledger = InMemoryLedger.load(os.path.join(data_dir, cls.LEDGER_FILE))
        events = RecordingEventSink()
        engine = MiningEngine.load(engine_path, chain, ledger, events)
        return cls(engine, chain, ledger, events, data_dir)

    def save(self):
        """Write all node files. No-op for nodes without a data directory."""
        if not self.data_dir:
            return
        os.makedirs(self.data_dir, exist_ok=True)
        with open(os.path.join(self.data_dir, self.CHAIN_FILE), 'w') as f:
            json.dump(self.chain.to_dict(), f, indent=2)
        self.ledger.save(os.path.join(self.data_dir, self.LEDGER_FILE))
        self.engine.save(os.path.join(self.data_dir, self.ENGINE_FILE))

    def __repr__(self) -> str:
        return f"Node({self.engine!r}, {self.chain!r})"
