"""ZUGFeRD 1.0 (Profil EXTENDED) – CrossIndustryDocument."""

from __future__ import annotations

import textwrap
from typing import Any, Mapping

from ..amounts import AmountSummary, PositionAmount, to_decimal
from ..payload import as_list, get_in, invoice_positions, to_str
from .formatting import date_element, element, ensure_well_formed, fmt_amount, fmt_quantity, join, mapping, x

GUIDELINE_ZF1_EXTENDED = "urn:ferd:CrossIndustryDocument:invoice:1p0:extended"
PROFILE_NAME = "zf:1:extended"

DOCUMENT_NAMES = {
    "correction": "KORREKTURRECHNUNG",
    "cancellation": "STORNORECHNUNG",
}


def _category(rate: Any) -> str:
    return "S" if to_decimal(rate) > 0 else "E"


def _party(tag: str, party: Mapping[str, Any], vat_id: Any = None) -> str:
    vat = ""
    if to_str(vat_id):
        vat = f'<ram:SpecifiedTaxRegistration>{element("ram:ID", vat_id, schemeID="VA")}</ram:SpecifiedTaxRegistration>'
    return join(
        f"<{tag}>",
        element("ram:Name", party.get("name")),
        "<ram:PostalTradeAddress>",
        element("ram:PostcodeCode", party.get("postcode")),
        element("ram:LineOne", party.get("street")),
        element("ram:CityName", party.get("city")),
        element("ram:CountryID", to_str(party.get("country")) or "DE"),
        "</ram:PostalTradeAddress>",
        vat,
        f"</{tag}>",
    )


def _line_item(position: Mapping[str, Any], amount: PositionAmount, currency: str) -> str:
    unit_code = to_str(position.get("unitCode")) or "C62"
    cur = x(currency)
    return textwrap.dedent(
        f"""
        <ram:IncludedSupplyChainTradeLineItem>
          <ram:AssociatedDocumentLineDocument><ram:LineID>{amount.index + 1}</ram:LineID></ram:AssociatedDocumentLineDocument>
          <ram:SpecifiedSupplyChainTradeAgreement>
            <ram:GrossPriceProductTradePrice><ram:ChargeAmount currencyID="{cur}">{fmt_amount(amount.unit_price)}</ram:ChargeAmount></ram:GrossPriceProductTradePrice>
            <ram:NetPriceProductTradePrice><ram:ChargeAmount currencyID="{cur}">{fmt_amount(amount.unit_price)}</ram:ChargeAmount></ram:NetPriceProductTradePrice>
          </ram:SpecifiedSupplyChainTradeAgreement>
          <ram:SpecifiedSupplyChainTradeDelivery>
            <ram:BilledQuantity unitCode="{x(unit_code)}">{fmt_quantity(amount.quantity)}</ram:BilledQuantity>
          </ram:SpecifiedSupplyChainTradeDelivery>
          <ram:SpecifiedSupplyChainTradeSettlement>
            <ram:ApplicableTradeTax>
              <ram:TypeCode>VAT</ram:TypeCode>
              <ram:CategoryCode>{_category(amount.tax_rate)}</ram:CategoryCode>
              <ram:ApplicablePercent>{fmt_amount(amount.tax_rate)}</ram:ApplicablePercent>
            </ram:ApplicableTradeTax>
            <ram:SpecifiedTradeSettlementMonetarySummation>
              <ram:LineTotalAmount currencyID="{cur}">{fmt_amount(amount.net)}</ram:LineTotalAmount>
            </ram:SpecifiedTradeSettlementMonetarySummation>
          </ram:SpecifiedSupplyChainTradeSettlement>
          <ram:SpecifiedTradeProduct>
            {element("ram:Name", position.get("name") or position.get("description") or "Position")}
          </ram:SpecifiedTradeProduct>
        </ram:IncludedSupplyChainTradeLineItem>
        """
    ).strip()


def _taxes(amounts: AmountSummary, currency: str, exemption_reason: Any) -> str:
    cur = x(currency)
    fragments = []
    for rate, tax in amounts.tax_by_rate.items():
        category = _category(rate)
        fragments.append(
            join(
                "<ram:ApplicableTradeTax>",
                f'<ram:CalculatedAmount currencyID="{cur}">{fmt_amount(tax)}</ram:CalculatedAmount>',
                "<ram:TypeCode>VAT</ram:TypeCode>",
                element("ram:ExemptionReason", exemption_reason) if category == "E" else "",
                f'<ram:BasisAmount currencyID="{cur}">{fmt_amount(amounts.basis_for_rate(rate))}</ram:BasisAmount>',
                f"<ram:CategoryCode>{category}</ram:CategoryCode>",
                f"<ram:ApplicablePercent>{fmt_amount(rate)}</ram:ApplicablePercent>",
                "</ram:ApplicableTradeTax>",
            )
        )
    return join(*fragments)


def generate_zf1_xml(payload: Mapping[str, Any], amounts: AmountSummary) -> bytes:
    """Erzeugt das ZUGFeRD-1.0-XML (UTF-8) für die Einbettung ins PDF/A-3."""

    data = mapping(get_in(payload, ["data"]))
    seller = mapping(get_in(payload, ["owner"]))
    buyer = mapping(get_in(payload, ["debtor"]))
    currency = to_str(data.get("currency")) or "EUR"
    cur = x(currency)

    positions = [p for p in invoice_positions(payload) if isinstance(p, Mapping)]
    lines_xml = "\n".join(_line_item(p, a, currency) for p, a in zip(positions, amounts.positions))

    notes = [data.get("introduction"), data.get("postscript"), *as_list(data.get("notes"))]
    notes_xml = join(
        *(f"<ram:IncludedNote>{element('ram:Content', note)}</ram:IncludedNote>" for note in notes if to_str(note))
    )

    iban = to_str(data.get("sellerIban")).replace(" ", "")
    payment_means = join(
        "<ram:SpecifiedTradeSettlementPaymentMeans>",
        "<ram:TypeCode>58</ram:TypeCode>",
        join(
            "<ram:PayeePartyCreditorFinancialAccount>",
            element("ram:IBANID", iban),
            element("ram:AccountName", data.get("sellerBankCardHolder")),
            "</ram:PayeePartyCreditorFinancialAccount>",
        )
        if iban
        else "",
        "</ram:SpecifiedTradeSettlementPaymentMeans>",
    )

    payment_terms = ""
    if to_str(data.get("paymentterm")) or get_in(payload, ["dueDate"]):
        payment_terms = join(
            "<ram:SpecifiedTradePaymentTerms>",
            element("ram:Description", data.get("paymentterm")),
            date_element("ram:DueDateDateTime", get_in(payload, ["dueDate"])),
            "</ram:SpecifiedTradePaymentTerms>",
        )

    delivered = data.get("deliveryDate") or data.get("serviceDate")
    delivery = ""
    if delivered:
        delivery = f"<ram:ActualDeliverySupplyChainEvent>{date_element('ram:OccurrenceDateTime', delivered)}</ram:ActualDeliverySupplyChainEvent>"

    seller_party = dict(seller)
    for key, source in (("name", "sellerName"), ("street", "sellerStreet"), ("postcode", "sellerPostcode"), ("city", "sellerCity"), ("country", "sellerCountry")):
        if to_str(data.get(source)):
            seller_party[key] = data[source]

    document_name = DOCUMENT_NAMES.get(to_str(get_in(payload, ["fixingReferenceType"])), "RECHNUNG")

    xml_content = f"""<?xml version="1.0" encoding="UTF-8"?>
<rsm:CrossIndustryDocument xmlns:rsm="urn:ferd:CrossIndustryDocument:invoice:1p0"
    xmlns:ram="urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:12"
    xmlns:udt="urn:un:unece:uncefact:data:standard:UnqualifiedDataType:15">
  <rsm:SpecifiedExchangedDocumentContext>
    <ram:GuidelineSpecifiedDocumentContextParameter>
      <ram:ID>{GUIDELINE_ZF1_EXTENDED}</ram:ID>
    </ram:GuidelineSpecifiedDocumentContextParameter>
  </rsm:SpecifiedExchangedDocumentContext>
  <rsm:HeaderExchangedDocument>
    <ram:ID>{x(get_in(payload, ["invoiceNumber"]))}</ram:ID>
    <ram:Name>{document_name}</ram:Name>
    <ram:TypeCode>{x(to_str(data.get("invoiceTypeCode")) or "380")}</ram:TypeCode>
    {date_element("ram:IssueDateTime", get_in(payload, ["date"]) or get_in(payload, ["created_at"]))}
{textwrap.indent(notes_xml, '    ')}
  </rsm:HeaderExchangedDocument>
  <rsm:SpecifiedSupplyChainTradeTransaction>
    <ram:ApplicableSupplyChainTradeAgreement>
{textwrap.indent(element("ram:BuyerReference", data.get("buyerReference")), '      ')}
{textwrap.indent(_party("ram:SellerTradeParty", seller_party, data.get("valueAddedTaxId")), '      ')}
{textwrap.indent(_party("ram:BuyerTradeParty", buyer, buyer.get("vatId")), '      ')}
    </ram:ApplicableSupplyChainTradeAgreement>
    <ram:ApplicableSupplyChainTradeDelivery>
{textwrap.indent(delivery, '      ')}
    </ram:ApplicableSupplyChainTradeDelivery>
    <ram:ApplicableSupplyChainTradeSettlement>
      {element("ram:PaymentReference", get_in(payload, ["invoiceNumber"]))}
      <ram:InvoiceCurrencyCode>{cur}</ram:InvoiceCurrencyCode>
{textwrap.indent(payment_means, '      ')}
{textwrap.indent(_taxes(amounts, currency, data.get("taxExemptionReasonMessage")), '      ')}
{textwrap.indent(payment_terms, '      ')}
      <ram:SpecifiedTradeSettlementMonetarySummation>
        <ram:LineTotalAmount currencyID="{cur}">{fmt_amount(amounts.line_total)}</ram:LineTotalAmount>
        <ram:ChargeTotalAmount currencyID="{cur}">0.00</ram:ChargeTotalAmount>
        <ram:AllowanceTotalAmount currencyID="{cur}">{fmt_amount(amounts.allowance_total)}</ram:AllowanceTotalAmount>
        <ram:TaxBasisTotalAmount currencyID="{cur}">{fmt_amount(amounts.tax_basis_total)}</ram:TaxBasisTotalAmount>
        <ram:TaxTotalAmount currencyID="{cur}">{fmt_amount(amounts.tax_total)}</ram:TaxTotalAmount>
        <ram:GrandTotalAmount currencyID="{cur}">{fmt_amount(amounts.grand_total)}</ram:GrandTotalAmount>
        <ram:TotalPrepaidAmount currencyID="{cur}">{fmt_amount(amounts.prepaid)}</ram:TotalPrepaidAmount>
        <ram:DuePayableAmount currencyID="{cur}">{fmt_amount(amounts.due_payable)}</ram:DuePayableAmount>
      </ram:SpecifiedTradeSettlementMonetarySummation>
    </ram:ApplicableSupplyChainTradeSettlement>
{textwrap.indent(lines_xml, '    ')}
  </rsm:SpecifiedSupplyChainTradeTransaction>
</rsm:CrossIndustryDocument>
"""

    return ensure_well_formed(xml_content, PROFILE_NAME).encode("utf-8")
