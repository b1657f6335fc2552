"""
Module: cafe_kernel.db.types
Responsibility: Annotated column aliases and the sanctioned rounding helpers
    for money and hours.  Centralizes precision so every model, calculator
    and test rounds the same way.
Architecture position: Kernel > DB.  May be imported by models/, domain/ and
    module code.  MUST NOT import from outer layers.

Invariants enforced:
    - No floats anywhere in pay computation.  Money and rates are Decimal.
    - Money rounds HALF_UP to centavos, and only through round_money().
    - Hours derive from whole minutes, HALF_UP to two places, and only
      through minutes_to_hours().

Failure modes:
    - decimal.InvalidOperation on non-numeric input to to_decimal().
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount: 38 digits, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Multipliers and contribution rates
Rate = Annotated[Decimal, Numeric(38, 18)]

# Short status / enum value strings
ShortCode = Annotated[str, String(50)]

# Free-text reasons and notes
LongText = Annotated[str, String(2000)]


MONEY_DECIMAL_PLACES = 2
HOURS_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

CENTAVO = Decimal("0.01")
ZERO = Decimal("0")
MINUTES_PER_HOUR = Decimal(60)


def to_decimal(value) -> Decimal:
    """Convert config/user input to Decimal without going through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given decimal places (default: centavos).

    This is the ONLY sanctioned rounding function for money.  Pay components
    and deductions each pass through it exactly once.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def minutes_to_hours(minutes: int) -> Decimal:
    """Convert whole minutes to decimal hours, HALF_UP to two places."""
    return round_money(
        Decimal(minutes) / MINUTES_PER_HOUR,
        decimal_places=HOURS_DECIMAL_PLACES,
    )
