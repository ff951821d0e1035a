"""
Error taxonomy for the mining engine.

Every failure aborts the whole mint invocation; nothing is retried internally.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    # Solution validation
    INVALID_SOLUTION = 0x0100
    TARGET_NOT_MET = 0x0101
    ALREADY_SOLVED = 0x0102
    INVALID_SIGNATURE = 0x0103

    # Arithmetic guard
    OVERFLOW = 0x0200
    UNDERFLOW = 0x0201
    DIVIDE_BY_ZERO = 0x0202

    # Internal consistency
    SUPPLY_EXCEEDED = 0xFF00
    INTERNAL_ERROR = 0xFF01


class MiningError(Exception):
    """Base class for every error surfaced by a mint invocation."""

    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message or self.code.name)
        self.message = message or self.code.name

    def __str__(self) -> str:
        return f"{self.code.name}({self.code:#06x}): {self.message}"

    def to_dict(self):
        return {'error': self.code.name, 'code': int(self.code), 'message': self.message}


class InvalidSolution(MiningError):
    """The claimed digest does not match hash(challenge, caller, nonce)."""
    code = ErrorCode.INVALID_SOLUTION


class TargetNotMet(MiningError):
    """The digest is numerically larger than the current mining target."""
    code = ErrorCode.TARGET_NOT_MET


class AlreadySolved(MiningError):
    """The current challenge already has a rewarded solution."""
    code = ErrorCode.ALREADY_SOLVED


class InvalidSignature(MiningError):
    """A signed mint request failed authentication."""
    code = ErrorCode.INVALID_SIGNATURE


class SupplyExceeded(MiningError):
    """Minted supply passed the era cap. Internal fault, not a user error."""
    code = ErrorCode.SUPPLY_EXCEEDED


class ArithmeticFault(MiningError):
    """Checked uint256 arithmetic failed."""


class Overflow(ArithmeticFault):
    code = ErrorCode.OVERFLOW


class Underflow(ArithmeticFault):
    code = ErrorCode.UNDERFLOW


class DivideByZero(ArithmeticFault):
    code = ErrorCode.DIVIDE_BY_ZERO


_BY_CODE = {
    cls.code: cls
    for cls in (InvalidSolution, TargetNotMet, AlreadySolved, InvalidSignature,
                SupplyExceeded, Overflow, Underflow, DivideByZero)
}


def error_from_dict(data) -> MiningError:
    """Rebuild an error from its wire form (see MiningError.to_dict)."""
    code = ErrorCode.__members__.get(data.get('error', ''), ErrorCode.INTERNAL_ERROR)
    cls = _BY_CODE.get(code, MiningError)
    return cls(data.get('message', ''))
