"""
PoWToken - a proof-of-work mineable token with halving issuance
"""

__version__ = "1.0.0"
__author__ = "PoWToken Team"

from .config import TokenParams, PRESETS
from .engine import MiningEngine, MintResult, retarget
from .environment import Environment, SimulatedChain
from .ledger import BalanceLedger, EventSink, InMemoryLedger, RecordingEventSink
from .wallet import Wallet, MintRequest
from .miner import Miner, MultiThreadedMiner, LocalBackend

__all__ = [
    'TokenParams', 'PRESETS', 'MiningEngine', 'MintResult', 'retarget',
    'Environment', 'SimulatedChain', 'BalanceLedger', 'EventSink',
    'InMemoryLedger', 'RecordingEventSink', 'Wallet', 'MintRequest',
    'Miner', 'MultiThreadedMiner', 'LocalBackend',
]
