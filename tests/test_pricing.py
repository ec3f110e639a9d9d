from decimal import Decimal, ROUND_HALF_UP

import pytest

from qrtruck.models import Province
from qrtruck.services.pricing import (
    PROVINCIAL_TAX_RATES,
    calculate_order_totals,
    calculate_platform_fee,
    calculate_tax,
    from_cents,
    get_tax_label,
    get_tax_rate,
    round2,
    to_cents,
)


def test_platform_fee_is_four_percent_plus_ten_cents():
    assert calculate_platform_fee(15) == Decimal("0.70")
    assert calculate_platform_fee("25.50") == Decimal("1.12")
    assert calculate_platform_fee(0) == Decimal("0.10")


def test_every_province_has_a_rate():
    assert set(PROVINCIAL_TAX_RATES) == set(Province)
    assert get_tax_rate("QC") == Decimal("0.14975")
    assert get_tax_rate(Province.AB) == Decimal("0.05")


def test_tax_rounds_half_up():
    # 25.50 * 0.13 = 3.315
    assert calculate_tax("25.50", Province.ON) == Decimal("3.32")
    # 0.1 as a float must not become 0.1000000000000000055...
    assert round2(0.125) == Decimal("0.13")


def test_order_totals_example():
    breakdown = calculate_order_totals(15.00, Province.ON)

    assert breakdown.subtotal == Decimal("15.00")
    assert breakdown.tax == Decimal("1.95")
    assert breakdown.platform_fee == Decimal("0.70")
    assert breakdown.total == Decimal("17.65")
    assert breakdown.merchant_payout == Decimal("16.95")
    assert breakdown.fee_percentage == Decimal("4.67")


def test_stored_tax_rate_wins_over_province():
    breakdown = calculate_order_totals(10, Province.ON, tax_rate=0.05)
    assert breakdown.tax == Decimal("0.50")
    assert breakdown.total == Decimal("11.00")


def test_quebec_total():
    breakdown = calculate_order_totals(20, Province.QC)
    # 20 * 0.14975 = 2.995
    assert breakdown.tax == Decimal("3.00")
    assert breakdown.total == Decimal("23.90")


def test_zero_subtotal():
    breakdown = calculate_order_totals(0, Province.AB)
    assert breakdown.total == Decimal("0.10")
    assert breakdown.fee_percentage == Decimal("0.00")


def test_negative_subtotal_rejected():
    with pytest.raises(ValueError):
        calculate_order_totals(-1, Province.ON)


def test_province_or_rate_required():
    with pytest.raises(ValueError):
        calculate_order_totals(10)


@pytest.mark.parametrize(
    "province,label",
    [(Province.ON, "HST"), (Province.QC, "GST + QST"), (Province.BC, "GST + PST"), (Province.AB, "GST")],
)
def test_tax_labels(province, label):
    assert get_tax_label(province) == label


def test_cents_conversion():
    assert to_cents(17.65) == 1765
    assert to_cents("0.005") == 1
    assert from_cents(1765) == Decimal("17.65")


def test_breakdown_to_dict_is_floats():
    data = calculate_order_totals("15.50", Province.ON).to_dict()
    assert data == {
        "subtotal": 15.5,
        "tax": 2.02,
        "tax_rate": 0.13,
        "platform_fee": 0.72,
        "total": 18.24,
        "fee_percentage": 4.65,
        "merchant_payout": 17.52,
    }


@pytest.mark.parametrize(
    "province, rate, tax_on_100",
    [
        ("AB", "0.05", "5.00"),
        ("BC", "0.12", "12.00"),
        ("MB", "0.12", "12.00"),
        ("NB", "0.15", "15.00"),
        ("NL", "0.15", "15.00"),
        ("NT", "0.05", "5.00"),
        ("NS", "0.15", "15.00"),
        ("NU", "0.05", "5.00"),
        ("ON", "0.13", "13.00"),
        ("PE", "0.15", "15.00"),
        ("QC", "0.14975", "14.98"),
        ("SK", "0.11", "11.00"),
        ("YT", "0.05", "5.00"),
    ],
)
def test_provincial_tax(province, rate, tax_on_100):
    assert get_tax_rate(province) == Decimal(rate)
    assert calculate_tax(100, province) == Decimal(tax_on_100)
    for subtotal in ("0.00", "7.77", "19.99", "250.45"):
        expected = (Decimal(subtotal) * Decimal(rate)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        assert calculate_tax(subtotal, province) == expected
