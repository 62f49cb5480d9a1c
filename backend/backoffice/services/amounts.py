"""Invoice amount calculator.

Pure functions with no session or I/O; the preview endpoint calls them
directly.

Rules:
  - line total          = quantity × unit_price (kept unrounded)
  - subtotal            = Σ line totals, rounded ONCE to 2 dp (half-up)
  - tax                 = subtotal × tax_rate / 100, rounded to 2 dp (half-up)
  - total               = subtotal + tax
  - total_secondary     = Σ quantity × unit_price_secondary over lines that
                          carry a secondary price, rounded to 2 dp;
                          None when no line has one

Inputs are trusted to be non-negative; services.validation rejects bad
quantities and prices before anything reaches this module.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


class PricedLine(Protocol):
    quantity: Decimal
    unit_price: Decimal
    unit_price_secondary: Decimal | None


@dataclass(frozen=True)
class InvoiceAmounts:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    total_secondary: Decimal | None = None


def _dec(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def to_money(value) -> Decimal:
    """Round any numeric value to 2 dp using half-up rounding."""
    return _dec(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_totals(line: PricedLine) -> tuple[Decimal, Decimal | None]:
    """Return the unrounded (primary, secondary) totals of one line."""
    quantity = _dec(line.quantity)
    primary = quantity * _dec(line.unit_price)
    secondary = None
    if line.unit_price_secondary is not None:
        secondary = quantity * _dec(line.unit_price_secondary)
    return primary, secondary


def calculate_amounts(lines: Iterable[PricedLine], tax_rate) -> InvoiceAmounts:
    """Compute subtotal, tax, total and secondary-currency total."""
    rate = _dec(tax_rate) if tax_rate is not None else ZERO

    subtotal_raw = Decimal("0")
    secondary_raw: Decimal | None = None
    for line in lines:
        primary, secondary = line_totals(line)
        subtotal_raw += primary
        if secondary is not None:
            secondary_raw = (secondary_raw or Decimal("0")) + secondary

    subtotal = to_money(subtotal_raw)
    tax = to_money(subtotal * rate / HUNDRED)
    return InvoiceAmounts(
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
        total_secondary=to_money(secondary_raw) if secondary_raw is not None else None,
    )
