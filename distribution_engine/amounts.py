"""Integer smallest-unit amounts: decimal parsing, display and checked math.

Amounts are parsed from human decimal strings ("1.5") into integers of the
smallest unit (``scale`` units per whole token). The default conversion goes
through ``float`` and truncates toward zero, which matches the reference
behavior but can lose precision for values with many significant digits.
Pass ``exact=True`` to convert with rational arithmetic instead.
"""

from decimal import Decimal
from fractions import Fraction
import math
import re

DEFAULT_SCALE = 1_000_000_000
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1

_DECIMAL_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d{1,3})?$")


class MalformedAmount(ValueError):
    """Raised when an amount string is not a non-negative decimal number."""


class ArithmeticOverflow(ArithmeticError):
    """Raised when an amount computation leaves the representable range."""


def parse_decimal_to_integer(value: str, scale: int = DEFAULT_SCALE, exact: bool = False) -> int:
    if not isinstance(value, str) or not _DECIMAL_PATTERN.match(value):
        raise MalformedAmount(f"Malformed amount: {value!r}")

    if exact:
        parsed = Fraction(value)
        if parsed < 0:
            raise MalformedAmount("Amounts must be non-negative.")
        amount = int(parsed * scale)
    else:
        parsed_float = float(value)
        if not math.isfinite(parsed_float):
            raise MalformedAmount(f"Malformed amount: {value!r}")
        if parsed_float < 0:
            raise MalformedAmount("Amounts must be non-negative.")
        scaled = parsed_float * scale
        if not math.isfinite(scaled):
            raise ArithmeticOverflow(f"Amount {value} exceeds the u64 range.")
        amount = int(scaled)

    if amount > U64_MAX:
        raise ArithmeticOverflow(f"Amount {value} exceeds the u64 range.")
    return amount


def format_integer_amount(amount: int, scale: int = DEFAULT_SCALE) -> str:
    """Render an integer amount as an exact decimal string."""

    if amount < 0:
        raise MalformedAmount("Amounts must be non-negative.")
    whole, remainder = divmod(amount, scale)
    if remainder == 0:
        return str(whole)
    fraction = format(Decimal(remainder) / Decimal(scale), "f").split(".", 1)[1]
    return f"{whole}.{fraction.rstrip('0')}"


def checked_add(a: int, b: int, limit: int = U64_MAX) -> int:
    result = a + b
    if result > limit:
        raise ArithmeticOverflow("Addition overflow.")
    return result


def checked_mul(a: int, b: int, limit: int = U64_MAX) -> int:
    result = a * b
    if result > limit:
        raise ArithmeticOverflow("Multiplication overflow.")
    return result


def checked_mul_div(value: int, numerator: int, denominator: int, limit: int = U128_MAX) -> int:
    """floor(value * numerator / denominator) with an overflow-checked product."""

    if denominator == 0:
        return 0
    return checked_mul(value, numerator, limit) // denominator
