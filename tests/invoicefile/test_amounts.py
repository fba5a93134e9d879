"""Summen, Steuern, Rabatte und Anzahlungen."""

from __future__ import annotations

from decimal import Decimal

import pytest

from agents.invoicefile.amounts import calculate_amount, format_money, to_decimal

POSITIONS = [
    {"name": "Beratung", "quantity": 2, "price": "100.00", "vat": 19},
    {"name": "Fachbuch", "quantity": 1, "price": 20, "vat": 7, "discount": 10},
]


def test_totals_per_rate() -> None:
    amounts = calculate_amount(POSITIONS)

    assert [p.net for p in amounts.positions] == [Decimal("200.00"), Decimal("18.00")]
    assert amounts.net_by_rate == {Decimal("7.00"): Decimal("18.00"), Decimal("19.00"): Decimal("200.00")}
    assert amounts.tax_by_rate[Decimal("19.00")] == Decimal("38.00")
    assert amounts.tax_by_rate[Decimal("7.00")] == Decimal("1.26")
    assert amounts.line_total == Decimal("218.00")
    assert amounts.tax_total == Decimal("39.26")
    assert amounts.grand_total == Decimal("257.26")
    assert amounts.due_payable == Decimal("257.26")


def test_total_discount_and_deduction() -> None:
    amounts = calculate_amount(POSITIONS, total_discount="10", deduction=50)

    assert amounts.allowance_by_rate == {Decimal("7.00"): Decimal("1.80"), Decimal("19.00"): Decimal("20.00")}
    assert amounts.allowance_total == Decimal("21.80")
    assert amounts.tax_basis_total == Decimal("196.20")
    assert amounts.tax_total == Decimal("35.33")
    assert amounts.grand_total == Decimal("231.53")
    assert amounts.prepaid == Decimal("50.00")
    assert amounts.due_payable == Decimal("181.53")
    assert amounts.basis_for_rate(Decimal("19.00")) == Decimal("180.00")


def test_subtotals_by_index_and_range() -> None:
    amounts = calculate_amount(
        POSITIONS,
        sub_totals_definitions=[
            {"label": "Dienstleistung", "positions": [0]},
            {"from": 0, "to": 1},
        ],
    )
    assert amounts.subtotals == {
        "Dienstleistung": Decimal("200.00"),
        "Zwischensumme 2": Decimal("218.00"),
    }


def test_empty_positions() -> None:
    amounts = calculate_amount(None)
    assert amounts.positions == []
    assert amounts.grand_total == Decimal("0.00")


def test_to_decimal() -> None:
    assert to_decimal("1,5") == Decimal("1.5")
    assert to_decimal(None) == Decimal("0")
    assert to_decimal({"value": "3"}) == Decimal("3")
    with pytest.raises(ValueError):
        to_decimal(True)
    with pytest.raises(ValueError):
        to_decimal("zwölf")


def test_format_money() -> None:
    assert format_money(Decimal("1234.5")) == "1.234,50 EUR"
    assert format_money(-3, "CHF") == "-3,00 CHF"
