"""Precision-safe wallet balance aggregation.

Lotus reports balances as attoFIL integers encoded as decimal strings. They
are summed as `Decimal` values and only turned into a float at the display
boundary, by way of the canonical whole-FIL string (the same thing Lotus
prints for `FIL.Unitless()`).
"""
from __future__ import annotations

import decimal
import math
from decimal import Decimal
from typing import Iterable, Union

from .types import ConversionError


# 1 FIL = 10^18 attoFIL
FIL_PRECISION = 18

# Enough digits for any uint256, so summation never rounds.
_CONTEXT = decimal.Context(prec=80, traps=[decimal.InvalidOperation])

Balance = Union[Decimal, int]


class BalanceReducer:
    """Sums balances and renders the total for fixed-width sinks."""

    def reduce(self, balances: Iterable[Balance]) -> Decimal:
        total = Decimal(0)
        for balance in balances:
            total = _CONTEXT.add(total, Decimal(balance))
        return total

    def to_display_unit(self, total: Balance) -> float:
        """Convert an attoFIL total to whole FIL as a float.

        Raises:
            ConversionError: the rendered total isn't a finite number.
        """
        text = unitless(total)
        try:
            value = float(text)
        except ValueError as e:
            raise ConversionError(f"parsing balance {text!r}: {e}") from e
        if not math.isfinite(value):
            raise ConversionError(f"parsing balance {text!r}: not a finite number")
        return value


def unitless(atto: Balance) -> str:
    """Render an attoFIL amount as a plain whole-FIL decimal string."""
    value = Decimal(atto)
    if not value.is_finite():
        raise ConversionError(f"balance {value!r} is not a finite number")
    fil = _CONTEXT.scaleb(value, -FIL_PRECISION)
    if fil.is_zero():
        return "0"
    return format(_CONTEXT.normalize(fil), "f")


def parse_atto(raw) -> Decimal:
    """Parse an attoFIL amount as returned over JSON-RPC."""
    try:
        value = Decimal(str(raw).strip())
    except decimal.InvalidOperation as e:
        raise ConversionError(f"balance {raw!r} is not a decimal integer") from e
    if not value.is_finite() or value != value.to_integral_value():
        raise ConversionError(f"balance {raw!r} is not a decimal integer")
    return value
