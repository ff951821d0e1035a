"""
Collaborators the mining engine writes to.

The engine only ever credits balances and announces mints; transfer and
allowance bookkeeping live elsewhere. These in-memory implementations back
the simulated chain, the CLI and the mining server.
"""

import json
import logging
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass, asdict

from . import safe_math
from .crypto_utils import normalize_address, to_hex

logger = logging.getLogger(__name__)


class BalanceLedger:
    """Interface: something that can receive freshly minted units."""

    def credit(self, recipient: str, amount: int):
        raise NotImplementedError


class EventSink:
    """Interface: something that is told about every successful mint."""

    def emit(self, recipient: str, amount: int, epoch_count: int, new_challenge_number: bytes):
        raise NotImplementedError


class InMemoryLedger(BalanceLedger):
    """Balances keyed by normalized address, in base units."""

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self._balances: Dict[str, int] = {}
        for address, amount in (balances or {}).items():
            self._balances[normalize_address(address)] = amount

    def credit(self, recipient: str, amount: int):
        address = normalize_address(recipient)
        self._balances[address] = safe_math.add(self._balances.get(address, 0), amount)

    def balance_of(self, address: str) -> int:
        return self._balances.get(normalize_address(address), 0)

    def total(self) -> int:
        return sum(self._balances.values())

    def holders(self) -> List[str]:
        return sorted(self._balances)

    def to_dict(self) -> Dict[str, int]:
        return dict(self._balances)

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> 'InMemoryLedger':
        return cls(data)

    def save(self, filepath: str):
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'InMemoryLedger':
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))

    def __repr__(self) -> str:
        return f"InMemoryLedger(holders={len(self._balances)}, total={self.total()})"


@dataclass
class MintEvent:
    """A Mint(from, reward_amount, epoch_count, new_challenge_number) event."""
    recipient: str
    amount: int
    epoch_count: int
    new_challenge_number: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RecordingEventSink(EventSink):
    """
    Keeps every mint event and forwards it to optional listeners.

    Listeners are plain callables taking a MintEvent. A listener that raises
    is logged and skipped.
    """

    def __init__(self):
        self.events: List[MintEvent] = []
        self._listeners: List[Callable[[MintEvent], None]] = []

    def subscribe(self, listener: Callable[[MintEvent], None]):
        self._listeners.append(listener)

    def emit(self, recipient: str, amount: int, epoch_count: int, new_challenge_number: bytes):
        event = MintEvent(
            recipient=recipient,
            amount=amount,
            epoch_count=epoch_count,
            new_challenge_number=to_hex(new_challenge_number)
        )
        self.events.append(event)
        logger.debug("Mint event: epoch %d, %d units to %s", epoch_count, amount, recipient)
        # The mint is already committed; a broken listener must not undo that
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Mint listener %r failed for epoch %d", listener, epoch_count)

    @property
    def last_event(self) -> Optional[MintEvent]:
        return self.events[-1] if self.events else None

    def __len__(self) -> int:
        return len(self.events)
