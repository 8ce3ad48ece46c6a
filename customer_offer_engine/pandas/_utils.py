"""Money conversion helpers shared by the DataFrame adapters."""

import numbers
from decimal import Decimal


def decimal_to_float(value: Decimal | None) -> float | None:
    """Float for a DataFrame cell; ``None`` (e.g. a missing cost) stays ``None``."""
    if value is None:
        return None
    return float(value)


def float_to_decimal(value: numbers.Real) -> Decimal:
    """Read a numeric cell back into ``Decimal`` via its string form.

    Accepts Python and numpy scalars, so values taken straight from a
    DataFrame row work. Going through ``str`` keeps ``3200.0`` as
    ``Decimal('3200.0')`` rather than its binary expansion.

    Raises:
        TypeError: If value is not a real number (booleans included)

    Example:
        >>> float_to_decimal(3200.5)
        Decimal('3200.5')
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    if isinstance(value, numbers.Integral):
        return Decimal(int(value))
    return Decimal(str(float(value)))
