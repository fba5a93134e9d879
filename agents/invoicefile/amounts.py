"""Steuer-, Rabatt- und Summenberechnung über Rechnungspositionen.

Beträge werden als ``Decimal`` mit ``ROUND_HALF_UP`` auf zwei Nachkommastellen
quantisiert. Identische Positionen liefern identische Summen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Konvertiere Payload-Werte deterministisch in ``Decimal``.

    ``None`` und leere Strings gelten als 0, deutsches Dezimalkomma wird
    akzeptiert. Floats laufen über ``str``, um Binärrundung zu vermeiden.
    """

    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        raise ValueError(f"Unsupported decimal input: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip().replace(",", "."))
        except InvalidOperation as err:
            raise ValueError(f"Unsupported decimal input: {value!r}") from err
    if isinstance(value, Mapping) and "value" in value:
        return to_decimal(value["value"])
    raise ValueError(f"Unsupported decimal input: {type(value)!r}")


def quantize_money(amount: Any) -> Decimal:
    return to_decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class PositionAmount:
    index: int
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    gross_line: Decimal
    discount: Decimal
    net: Decimal


@dataclass(slots=True)
class AmountSummary:
    positions: List[PositionAmount]
    net_by_rate: Dict[Decimal, Decimal]
    allowance_by_rate: Dict[Decimal, Decimal]
    tax_by_rate: Dict[Decimal, Decimal]
    line_total: Decimal
    allowance_total: Decimal
    tax_basis_total: Decimal
    tax_total: Decimal
    grand_total: Decimal
    prepaid: Decimal
    due_payable: Decimal
    total_discount_percent: Decimal = ZERO
    subtotals: Dict[str, Decimal] = field(default_factory=dict)

    def basis_for_rate(self, rate: Decimal) -> Decimal:
        return quantize_money(self.net_by_rate.get(rate, ZERO) - self.allowance_by_rate.get(rate, ZERO))


def _position_amount(index: int, position: Mapping[str, Any]) -> PositionAmount:
    quantity = to_decimal(position.get("quantity", 1))
    unit_price = to_decimal(position.get("price"))
    rate = quantize_money(position.get("vat"))
    gross_line = quantize_money(quantity * unit_price)
    discount = quantize_money(gross_line * to_decimal(position.get("discount")) / HUNDRED)
    return PositionAmount(
        index=index,
        quantity=quantity,
        unit_price=unit_price,
        tax_rate=rate,
        gross_line=gross_line,
        discount=discount,
        net=quantize_money(gross_line - discount),
    )


def _subtotals(
    definitions: Any, positions: List[PositionAmount]
) -> Dict[str, Decimal]:
    result: Dict[str, Decimal] = {}
    if not isinstance(definitions, list):
        return result
    for number, definition in enumerate(definitions, start=1):
        if not isinstance(definition, Mapping):
            continue
        label = str(definition.get("label") or definition.get("title") or f"Zwischensumme {number}")
        if isinstance(definition.get("positions"), list):
            indices = {int(i) for i in definition["positions"]}
        else:
            start = int(definition.get("from", 0))
            end = int(definition.get("to", len(positions) - 1))
            indices = set(range(start, end + 1))
        result[label] = quantize_money(
            sum((p.net for p in positions if p.index in indices), ZERO)
        )
    return result


def calculate_amount(
    invoice_positions: Optional[Iterable[Any]],
    total_discount: Any = None,
    deduction: Any = None,
    sub_totals_definitions: Any = None,
) -> AmountSummary:
    """Aggregiert Positionen nach Steuersatz.

    ``total_discount`` ist ein Prozentsatz auf die Nettosumme je Steuersatz,
    ``deduction`` ein bereits gezahlter Betrag (Anzahlung), der vom
    Bruttobetrag abgezogen wird.
    """

    positions = [
        _position_amount(index, position)
        for index, position in enumerate(invoice_positions or [])
        if isinstance(position, Mapping)
    ]
    discount_percent = to_decimal(total_discount)

    net_by_rate: Dict[Decimal, Decimal] = {}
    for position in positions:
        net_by_rate[position.tax_rate] = quantize_money(
            net_by_rate.get(position.tax_rate, ZERO) + position.net
        )
    net_by_rate = dict(sorted(net_by_rate.items(), key=lambda kv: kv[0]))

    allowance_by_rate = {
        rate: quantize_money(net * discount_percent / HUNDRED) for rate, net in net_by_rate.items()
    }
    tax_by_rate = {
        rate: quantize_money((net - allowance_by_rate[rate]) * rate / HUNDRED)
        for rate, net in net_by_rate.items()
    }

    line_total = quantize_money(sum(net_by_rate.values(), ZERO))
    allowance_total = quantize_money(sum(allowance_by_rate.values(), ZERO))
    tax_basis_total = quantize_money(line_total - allowance_total)
    tax_total = quantize_money(sum(tax_by_rate.values(), ZERO))
    grand_total = quantize_money(tax_basis_total + tax_total)
    prepaid = quantize_money(deduction)

    return AmountSummary(
        positions=positions,
        net_by_rate=net_by_rate,
        allowance_by_rate=allowance_by_rate,
        tax_by_rate=tax_by_rate,
        line_total=line_total,
        allowance_total=allowance_total,
        tax_basis_total=tax_basis_total,
        tax_total=tax_total,
        grand_total=grand_total,
        prepaid=prepaid,
        due_payable=quantize_money(grand_total - prepaid),
        total_discount_percent=quantize_money(discount_percent),
        subtotals=_subtotals(sub_totals_definitions, positions),
    )


def format_money(value: Any, currency: str = "EUR") -> str:
    """Deutsche Schreibweise: ``1.234,50 EUR``."""

    amount = quantize_money(value)
    formatted = f"{amount:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"{formatted} {currency}".rstrip()
