"""Rechnungs-PDF-Erzeugung mit ReportLab.

Zwei Varianten, gesteuert über ``data.template.variant`` der Payload:

* ``legacy`` – festes Layout (Anschriften, Kopfdaten, Positionstabelle,
  Summenblock) direkt aus der Payload.
* ``jinja`` – die Vorlage unter ``data.template.path`` wird mit Jinja2
  gerendert; durch Leerzeilen getrennte Blöcke werden zu ReportLab-Absätzen
  (ReportLab-Markup wie ``<b>`` oder ``<br/>`` ist erlaubt, Zeilen mit ``# ``
  werden Überschriften).

Mit ``included_letter`` wird ein Begleitschreiben vorangestellt; ein unter
``letter.file`` angegebenes PDF wird per pikepdf davor gehängt.
"""

from __future__ import annotations

import io
from datetime import datetime, timezone
from html import escape
from pathlib import Path
from typing import Any, List, Mapping

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .amounts import AmountSummary, format_money, to_decimal
from .payload import get_in, invoice_positions, to_str
from .pdftools import concatenate_bytes
from .templates import VARIANT_JINJA, compute_amounts, render_template

PDF_CREATOR = "invoicefile DocumentRenderer"

DOCUMENT_TITLES = {
    "correction": "Korrekturrechnung",
    "cancellation": "Stornorechnung",
}


def _text(value: Any) -> str:
    return escape(to_str(value), quote=False)


def _address_lines(party: Any) -> List[str]:
    if not isinstance(party, Mapping):
        return []
    city_line = " ".join(filter(None, [to_str(party.get("postcode")), to_str(party.get("city"))]))
    lines = [party.get("name"), party.get("street"), city_line, party.get("country")]
    return [to_str(line) for line in lines if line]


class DocumentRenderer:
    """Erzeugt Rechnungs-PDF-Bytes aus einer (normalisierten) Payload."""

    def __init__(self, *, pagesize=A4) -> None:
        self.pagesize = pagesize
        styles = getSampleStyleSheet()
        self.styles = {
            "body": styles["BodyText"],
            "title": styles["Title"],
            "heading": styles["Heading2"],
            "small": ParagraphStyle("small", parent=styles["BodyText"], fontSize=7, leading=9),
            "right": ParagraphStyle("right", parent=styles["BodyText"], alignment=2),
        }

    def render_invoice(self, payload: Mapping[str, Any], *, included_letter: bool = False) -> bytes:
        story: list = []
        if included_letter:
            story.extend(self._letter_story(payload))
            story.append(PageBreak())

        if get_in(payload, ["data", "template", "variant"]) == VARIANT_JINJA:
            story.extend(self._template_story(payload))
        else:
            story.extend(self._legacy_story(payload))

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self.pagesize,
            leftMargin=20 * mm,
            rightMargin=20 * mm,
            topMargin=20 * mm,
            bottomMargin=20 * mm,
            title=self._title(payload),
            author=to_str(get_in(payload, ["owner", "name"])),
            subject="Rechnung",
            creator=PDF_CREATOR,
        )
        doc.build(story)
        pdf_bytes = buffer.getvalue()

        letter_file = get_in(payload, ["letter", "file"]) if included_letter else None
        if letter_file and Path(str(letter_file)).is_file():
            pdf_bytes = concatenate_bytes([Path(str(letter_file)), pdf_bytes])
        return pdf_bytes

    def _title(self, payload: Mapping[str, Any]) -> str:
        base = DOCUMENT_TITLES.get(to_str(get_in(payload, ["fixingReferenceType"])), "Rechnung")
        number = to_str(get_in(payload, ["invoiceNumber"]))
        return f"{base} {number}".strip()

    def _address_block(self, payload: Mapping[str, Any]) -> list:
        seller = get_in(payload, ["owner"], {})
        sender = " · ".join(_address_lines(seller)[:3])
        story = [Paragraph(escape(sender, quote=False), self.styles["small"]), Spacer(1, 2 * mm)]
        for line in _address_lines(get_in(payload, ["debtor"], {})):
            story.append(Paragraph(escape(line, quote=False), self.styles["body"]))
        story.append(Spacer(1, 10 * mm))
        return story

    def _letter_story(self, payload: Mapping[str, Any]) -> list:
        letter = get_in(payload, ["letter"])
        if isinstance(letter, Mapping):
            subject = to_str(letter.get("subject"))
            body = to_str(letter.get("body") or letter.get("text"))
        else:
            subject, body = "", to_str(letter) if not isinstance(letter, bool) else ""

        story = self._address_block(payload)
        story.append(Paragraph(_text(self._letter_date(payload)), self.styles["right"]))
        if subject:
            story.append(Paragraph(f"<b>{escape(subject, quote=False)}</b>", self.styles["body"]))
            story.append(Spacer(1, 4 * mm))
        for block in body.split("\n\n"):
            if block.strip():
                story.append(Paragraph(escape(block.strip(), quote=False).replace("\n", "<br/>"), self.styles["body"]))
        return story

    @staticmethod
    def _letter_date(payload: Mapping[str, Any]) -> str:
        raw = to_str(get_in(payload, ["date"]))
        try:
            return datetime.fromisoformat(raw).strftime("%d.%m.%Y")
        except ValueError:
            return datetime.now(timezone.utc).strftime("%d.%m.%Y")

    def _template_story(self, payload: Mapping[str, Any]) -> list:
        template_path = Path(str(get_in(payload, ["data", "template", "path"])))
        rendered = render_template(template_path, payload)

        story: list = []
        for block in rendered.split("\n\n"):
            block = block.strip()
            if not block:
                continue
            if block.startswith("# "):
                story.append(Paragraph(block[2:], self.styles["heading"]))
            else:
                story.append(Paragraph(block.replace("\n", "<br/>"), self.styles["body"]))
        return story or [Spacer(1, 1)]

    def _legacy_story(self, payload: Mapping[str, Any]) -> list:
        currency = to_str(get_in(payload, ["data", "currency"])) or "EUR"
        amounts = compute_amounts(payload)

        story = self._address_block(payload)
        story.append(Paragraph(_text(self._title(payload)), self.styles["title"]))
        story.append(self._meta_table(payload))
        story.append(Spacer(1, 6 * mm))

        introduction = get_in(payload, ["data", "introduction"])
        if introduction:
            story.append(Paragraph(_text(introduction), self.styles["body"]))
            story.append(Spacer(1, 4 * mm))

        story.append(self._positions_table(payload, currency))
        story.append(Spacer(1, 4 * mm))
        story.append(self._totals_table(amounts, currency))
        story.append(Spacer(1, 6 * mm))

        for key in ("taxExemptionReasonMessage", "paymentterm", "postscript"):
            text = get_in(payload, ["data", key])
            if text:
                story.append(Paragraph(_text(text), self.styles["body"]))
        return story

    def _meta_table(self, payload: Mapping[str, Any]) -> Table:
        rows = [
            ("Rechnungsnummer", get_in(payload, ["invoiceNumber"])),
            ("Rechnungsdatum", get_in(payload, ["date"])),
            ("Fällig am", get_in(payload, ["dueDate"])),
            ("Kundennummer", get_in(payload, ["debtor", "number"])),
            ("Leistungsdatum", get_in(payload, ["data", "serviceDate"])),
            ("Bestellnummer", get_in(payload, ["data", "orderNumber"])),
        ]
        start = get_in(payload, ["data", "serviceDateRangeStart"])
        end = get_in(payload, ["data", "serviceDateRangeEnd"])
        if start or end:
            rows.append(("Leistungszeitraum", f"{to_str(start)} – {to_str(end)}"))
        data = [[label, to_str(value)] for label, value in rows if value]
        table = Table(data or [["", ""]], colWidths=[45 * mm, 80 * mm], hAlign="LEFT")
        table.setStyle(TableStyle([("FONTSIZE", (0, 0), (-1, -1), 9)]))
        return table

    def _positions_table(self, payload: Mapping[str, Any], currency: str) -> Table:
        rows: list = [["Pos.", "Bezeichnung", "Menge", "Einzelpreis", "USt", "Gesamt"]]
        for index, position in enumerate(invoice_positions(payload), start=1):
            if not isinstance(position, Mapping):
                continue
            quantity = to_decimal(position.get("quantity", 1))
            price = to_decimal(position.get("price"))
            label = _text(position.get("name"))
            description = position.get("description")
            if description:
                label += f"<br/><font size=7>{_text(description)}</font>"
            rows.append(
                [
                    str(index),
                    Paragraph(label, self.styles["body"]),
                    f"{format(quantity.normalize(), 'f')} {to_str(position.get('unit'))}".strip(),
                    format_money(price, currency),
                    f"{to_str(position.get('vat'))} %",
                    format_money(quantity * price, currency),
                ]
            )
        table = Table(rows, colWidths=[12 * mm, 68 * mm, 20 * mm, 25 * mm, 14 * mm, 27 * mm], repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 8),
                    ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.black),
                    ("ALIGN", (2, 1), (-1, -1), "RIGHT"),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ]
            )
        )
        return table

    def _totals_table(self, amounts: AmountSummary, currency: str) -> Table:
        rows: list = [[label, format_money(value, currency)] for label, value in amounts.subtotals.items()]
        rows.append(["Summe Positionen", format_money(amounts.line_total, currency)])
        if amounts.allowance_total:
            rows.append([f"Rabatt {amounts.total_discount_percent} %", format_money(-amounts.allowance_total, currency)])
        rows.append(["Nettobetrag", format_money(amounts.tax_basis_total, currency)])
        for rate, tax in amounts.tax_by_rate.items():
            rows.append([f"USt {rate} %", format_money(tax, currency)])
        rows.append(["Gesamtbetrag", format_money(amounts.grand_total, currency)])
        if amounts.prepaid:
            rows.append(["Abzüglich Anzahlung", format_money(-amounts.prepaid, currency)])
            rows.append(["Zahlbetrag", format_money(amounts.due_payable, currency)])

        table = Table(rows, colWidths=[50 * mm, 30 * mm], hAlign="RIGHT")
        table.setStyle(
            TableStyle(
                [
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                    ("LINEABOVE", (0, -1), (-1, -1), 0.5, colors.black),
                    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ]
            )
        )
        return table

