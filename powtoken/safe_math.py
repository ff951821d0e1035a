"""
Checked uint256 arithmetic.

Results that cannot be represented in 0..2**256-1 raise instead of wrapping,
which aborts the enclosing mint before anything is committed.
"""

from .config import UINT256_MAX
from .errors import Overflow, Underflow, DivideByZero


def _check_operand(value: int) -> int:
    if value < 0:
        raise Underflow(f"negative operand {value}")
    if value > UINT256_MAX:
        raise Overflow("operand exceeds uint256")
    return value


def add(a: int, b: int) -> int:
    result = _check_operand(a) + _check_operand(b)
    if result > UINT256_MAX:
        raise Overflow(f"{a} + {b} exceeds uint256")
    return result


def sub(a: int, b: int) -> int:
    if _check_operand(b) > _check_operand(a):
        raise Underflow(f"{a} - {b} is negative")
    return a - b


def mul(a: int, b: int) -> int:
    result = _check_operand(a) * _check_operand(b)
    if result > UINT256_MAX:
        raise Overflow(f"{a} * {b} exceeds uint256")
    return result


def div(a: int, b: int) -> int:
    """Floor division, as on the EVM."""
    if _check_operand(b) == 0:
        raise DivideByZero(f"{a} / 0")
    return _check_operand(a) // b


def limit(a: int, upper_bound: int) -> int:
    """Return a, but never more than upper_bound."""
    if a > upper_bound:
        return upper_bound
    return a
