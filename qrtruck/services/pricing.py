"""
Order Pricing

Platform fee, Canadian sales tax and totals. All arithmetic is done on
``Decimal`` and rounded half-up to cents; callers may pass floats, ints,
strings or decimals.

Example:
    >>> breakdown = calculate_order_totals(15.00, Province.ON)
    >>> breakdown.tax, breakdown.platform_fee, breakdown.total
    (Decimal('1.95'), Decimal('0.70'), Decimal('17.65'))
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from qrtruck.models import Province

Number = Union[Decimal, float, int, str]

CENT = Decimal("0.01")

PLATFORM_FEE_RATE = Decimal("0.04")
PLATFORM_FEE_FIXED = Decimal("0.10")

PROVINCIAL_TAX_RATES: dict[Province, Decimal] = {
    Province.AB: Decimal("0.05"),     # GST
    Province.BC: Decimal("0.12"),     # GST + PST
    Province.MB: Decimal("0.12"),     # GST + PST
    Province.NB: Decimal("0.15"),     # HST
    Province.NL: Decimal("0.15"),     # HST
    Province.NT: Decimal("0.05"),     # GST
    Province.NS: Decimal("0.15"),     # HST
    Province.NU: Decimal("0.05"),     # GST
    Province.ON: Decimal("0.13"),     # HST
    Province.PE: Decimal("0.15"),     # HST
    Province.QC: Decimal("0.14975"),  # GST + QST
    Province.SK: Decimal("0.11"),     # GST + PST
    Province.YT: Decimal("0.05"),     # GST
}

_HST_PROVINCES = {Province.NB, Province.NL, Province.NS, Province.ON, Province.PE}
_PST_PROVINCES = {Province.BC, Province.MB, Province.SK}


def to_decimal(value: Number) -> Decimal:
    """Convert without inheriting binary float noise (0.1 -> Decimal('0.1'))."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value: Number) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _require_non_negative(subtotal: Decimal) -> None:
    if subtotal < 0:
        raise ValueError("Subtotal must not be negative")


def calculate_platform_fee(subtotal: Number) -> Decimal:
    """Service charge added to every order: 4% of subtotal plus $0.10."""
    amount = to_decimal(subtotal)
    _require_non_negative(amount)
    return round2(amount * PLATFORM_FEE_RATE + PLATFORM_FEE_FIXED)


def get_tax_rate(province: Union[Province, str]) -> Decimal:
    """Combined sales tax rate for a province code."""
    return PROVINCIAL_TAX_RATES[Province(province)]


def calculate_tax(subtotal: Number, province: Union[Province, str]) -> Decimal:
    amount = to_decimal(subtotal)
    _require_non_negative(amount)
    return round2(amount * get_tax_rate(province))


def calculate_tax_at_rate(subtotal: Number, rate: Number) -> Decimal:
    """Tax using a stored rate (trucks keep the rate they were registered with)."""
    amount = to_decimal(subtotal)
    _require_non_negative(amount)
    return round2(amount * to_decimal(rate))


def calculate_total(subtotal: Number, tax: Number, platform_fee: Number) -> Decimal:
    return round2(to_decimal(subtotal) + to_decimal(tax) + to_decimal(platform_fee))


def get_tax_label(province: Union[Province, str]) -> str:
    """Display label for receipts and tax reports."""
    province = Province(province)
    if province in _HST_PROVINCES:
        return "HST"
    if province == Province.QC:
        return "GST + QST"
    if province in _PST_PROVINCES:
        return "GST + PST"
    return "GST"


def to_cents(amount: Number) -> int:
    """Dollars to the smallest currency unit expected by Stripe."""
    return int(round2(amount) * 100)


def from_cents(cents: int) -> Decimal:
    return round2(Decimal(cents) / 100)


@dataclass(frozen=True)
class PriceBreakdown:
    """Everything a checkout needs to display and charge."""
    subtotal: Decimal
    tax: Decimal
    platform_fee: Decimal
    total: Decimal
    tax_rate: Decimal

    @property
    def fee_percentage(self) -> Decimal:
        """Platform fee as a percentage of the subtotal."""
        if self.subtotal == 0:
            return Decimal("0.00")
        return round2(self.platform_fee / self.subtotal * 100)

    @property
    def merchant_payout(self) -> Decimal:
        """What the truck receives before its own processing costs."""
        return round2(self.subtotal + self.tax)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "tax_rate": float(self.tax_rate),
            "platform_fee": float(self.platform_fee),
            "total": float(self.total),
            "fee_percentage": float(self.fee_percentage),
            "merchant_payout": float(self.merchant_payout),
        }


def calculate_order_totals(
    subtotal: Number,
    province: Union[Province, str, None] = None,
    tax_rate: Union[Number, None] = None,
) -> PriceBreakdown:
    """
    Price an order.

    The truck's stored ``tax_rate`` wins when given; otherwise the rate is
    looked up from ``province``.
    """
    amount = round2(subtotal)
    _require_non_negative(amount)

    if tax_rate is not None:
        rate = to_decimal(tax_rate)
    elif province is not None:
        rate = get_tax_rate(province)
    else:
        raise ValueError("Either province or tax_rate is required")

    tax = calculate_tax_at_rate(amount, rate)
    fee = calculate_platform_fee(amount)

    return PriceBreakdown(
        subtotal=amount,
        tax=tax,
        platform_fee=fee,
        total=calculate_total(amount, tax, fee),
        tax_rate=rate,
    )
