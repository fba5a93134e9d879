"""ZUGFeRD 2 / XRechnung (CII, D16B) – Feldzuordnung und XML-Erzeugung.

``build_zf2_values`` bildet aus der verschachtelten Payload das flache
Werteobjekt, ``generate_zf2_xml`` rendert daraus eine CrossIndustryInvoice.
Das Ergebnis bleibt im Speicher und wird dem Aufrufer zurückgegeben; das PDF
wird in diesem Zweig nicht verändert.
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from ..amounts import AmountSummary, PositionAmount, calculate_amount, to_decimal
from ..payload import as_list, get_in, invoice_positions, to_str
from .formatting import (
    date_element,
    element,
    ensure_well_formed,
    fmt_amount,
    fmt_quantity,
    join,
    mapping,
    x,
)

FORMAT_ZF2 = "ZF:2"
FORMAT_XRECHNUNG = "xrechnung"

GUIDELINES = {
    FORMAT_ZF2: "urn:cen.eu:en16931:2017#conformant#urn:factur-x.eu:1p0:extended",
    FORMAT_XRECHNUNG: "urn:cen.eu:en16931:2017#compliant#urn:xeinkauf.de:kosit:xrechnung_3.0",
}
XRECHNUNG_BUSINESS_PROCESS = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
DEFAULT_UNIT_CODE = "C62"
DEFAULT_PAYMENT_MEANS_CODE = "58"

# Felder aus ``data``, die als String an den Generator gehen
STRING_FIELDS = (
    "serviceDateRangeStart",
    "serviceDateRangeEnd",
    "serviceDate",
    "deliveryDate",
    "shippingOrderNumber",
    "orderNumber",
    "supplierNumber",
    "introduction",
    "paymentterm",
    "postscript",
)

# Zielschlüssel → Pfad in der Payload, ohne Umwandlung übernommen
PASSTHROUGH_FIELDS = {
    "totaldiscount": ["data", "totaldiscount"],
    "deduction": ["data", "deduction"],
    "subTotalsDefinitions": ["data", "subTotalsDefinitions"],
    "taxExemptionReasonMessage": ["data", "taxExemptionReasonMessage"],
    "specifiedTradeSettlementPaymentMeans": ["data", "specifiedTradeSettlementPaymentMeans"],
    "specifiedTradePaymentTerms": ["data", "specifiedTradePaymentTerms"],
    "transport": ["data", "transport"],
    "allowance": ["data", "allowance"],
    "deliveryNote": ["data", "deliveryNote"],
    "deliveryId": ["data", "debtor", "extras", "deliveryId"],
    "deliveryGlobalId": ["data", "debtor", "extras", "deliveryGlobalId"],
    "deliverySchemeId": ["data", "debtor", "extras", "deliverySchemeId"],
    "sellerId": ["data", "sellerId"],
    "sellerGlobalId": ["data", "sellerGlobalId"],
    "sellerSchemeId": ["data", "sellerSchemeId"],
    "sellerName": ["data", "sellerName"],
    "sellerPhone": ["data", "telephone"],
    "sellerEmail": ["data", "email"],
    "sellerPostcode": ["data", "sellerPostcode"],
    "sellerStreet": ["data", "sellerStreet"],
    "sellerCity": ["data", "sellerCity"],
    "sellerSpecifiedLegalOrganization": ["data", "sellerSpecifiedLegalOrganization"],
    "sellerCountry": ["data", "sellerCountry"],
    "sellerVatId": ["data", "valueAddedTaxId"],
    "sellerTaxId": ["data", "taxIdentNumber"],
    "sellerIban": ["data", "sellerIban"],
    "sellerBankCardHolder": ["data", "sellerBankCardHolder"],
    "additionalReferences": ["data", "additionalReferences"],
    "buyerReference": ["data", "buyerReference"],
    "contractReferencedDocument": ["data", "contractReferencedDocument"],
    "invoiceReferencedDocument": ["data", "invoiceReferencedDocument"],
    "notes": ["data", "notes"],
}


def build_zf2_values(
    payload: Mapping[str, Any],
    pdf_path: Path,
    receiver: Any,
    format_tag: str,
) -> Dict[str, Any]:
    """Flaches Werteobjekt für den ZF2-/XRechnung-Generator."""

    values: Dict[str, Any] = {
        key: value for key, value in payload.items() if key not in ("data", "debtor", "owner")
    }
    values["pdfPath"] = str(pdf_path)
    values["$receiver"] = receiver
    values["seller"] = dict(mapping(get_in(payload, ["owner"])))
    values["buyer"] = dict(mapping(get_in(payload, ["debtor"])))
    values["invoiceType"] = to_str(get_in(payload, ["data", "invoiceType"]))
    values["invoiceTypeCode"] = to_str(get_in(payload, ["data", "invoiceTypeCode"])) or "380"
    for key in STRING_FIELDS:
        values[key] = to_str(get_in(payload, ["data", key]))
    for key, path in PASSTHROUGH_FIELDS.items():
        values[key] = get_in(payload, path)
    values["invoicePositions"] = invoice_positions(payload)
    values["currency"] = to_str(get_in(payload, ["data", "currency"])) or "EUR"
    values["contactPerson"] = dict(mapping(get_in(payload, ["data", "contactPerson"])))
    values["definedTradeContact"] = dict(mapping(get_in(payload, ["data", "customerContactPerson"])))
    values["format"] = format_tag
    return values


def _category_code(rate: Any) -> str:
    return "S" if to_decimal(rate) > 0 else "E"


def _contact(contact: Mapping[str, Any]) -> str:
    if not any(contact.get(key) for key in ("name", "telephone", "phone", "email")):
        return ""
    phone = contact.get("telephone") or contact.get("phone")
    return join(
        "<ram:DefinedTradeContact>",
        element("ram:PersonName", contact.get("name")),
        f"<ram:TelephoneUniversalCommunication>{element('ram:CompleteNumber', phone)}</ram:TelephoneUniversalCommunication>"
        if phone
        else "",
        f"<ram:EmailURIUniversalCommunication>{element('ram:URIID', contact.get('email'))}</ram:EmailURIUniversalCommunication>"
        if contact.get("email")
        else "",
        "</ram:DefinedTradeContact>",
    )


def _address(postcode: Any, street: Any, city: Any, country: Any) -> str:
    return join(
        "<ram:PostalTradeAddress>",
        element("ram:PostcodeCode", postcode),
        element("ram:LineOne", street),
        element("ram:CityName", city),
        element("ram:CountryID", to_str(country) or "DE"),
        "</ram:PostalTradeAddress>",
    )


def _tax_registration(value: Any, scheme: str) -> str:
    if not to_str(value):
        return ""
    return f'<ram:SpecifiedTaxRegistration>{element("ram:ID", value, schemeID=scheme)}</ram:SpecifiedTaxRegistration>'


def _seller_party(values: Mapping[str, Any]) -> str:
    seller = mapping(values.get("seller"))
    email = values.get("sellerEmail") or seller.get("email")
    global_id = ""
    if to_str(values.get("sellerGlobalId")):
        global_id = element("ram:GlobalID", values["sellerGlobalId"], schemeID=to_str(values.get("sellerSchemeId")) or "0088")
    legal = ""
    if to_str(values.get("sellerSpecifiedLegalOrganization")):
        legal = f'<ram:SpecifiedLegalOrganization>{element("ram:ID", values["sellerSpecifiedLegalOrganization"])}</ram:SpecifiedLegalOrganization>'
    contact = dict(mapping(values.get("contactPerson")))
    contact.setdefault("telephone", values.get("sellerPhone"))
    contact.setdefault("email", email)
    return join(
        "<ram:SellerTradeParty>",
        element("ram:ID", values.get("sellerId")),
        global_id,
        element("ram:Name", values.get("sellerName") or seller.get("name")),
        legal,
        _contact(contact),
        _address(
            values.get("sellerPostcode") or seller.get("postcode"),
            values.get("sellerStreet") or seller.get("street"),
            values.get("sellerCity") or seller.get("city"),
            values.get("sellerCountry") or seller.get("country"),
        ),
        f'<ram:URIUniversalCommunication>{element("ram:URIID", email, schemeID="EM")}</ram:URIUniversalCommunication>'
        if email
        else "",
        _tax_registration(values.get("sellerVatId"), "VA"),
        _tax_registration(values.get("sellerTaxId"), "FC"),
        "</ram:SellerTradeParty>",
    )


def _buyer_party(values: Mapping[str, Any]) -> str:
    buyer = mapping(values.get("buyer"))
    return join(
        "<ram:BuyerTradeParty>",
        element("ram:ID", buyer.get("number") or buyer.get("id")),
        element("ram:Name", buyer.get("name")),
        _contact(mapping(values.get("definedTradeContact"))),
        _address(buyer.get("postcode"), buyer.get("street"), buyer.get("city"), buyer.get("country")),
        f'<ram:URIUniversalCommunication>{element("ram:URIID", buyer.get("email"), schemeID="EM")}</ram:URIUniversalCommunication>'
        if buyer.get("email")
        else "",
        _tax_registration(buyer.get("vatId"), "VA"),
        "</ram:BuyerTradeParty>",
    )


def _referenced(tag: str, reference: Any, *, with_date: bool = False) -> str:
    ref = mapping(reference) if isinstance(reference, Mapping) else {"id": reference}
    if not to_str(ref.get("id")):
        return ""
    issued = ""
    if with_date and ref.get("date"):
        issued = date_element("ram:FormattedIssueDateTime", ref["date"]).replace("udt:", "qdt:")
    return join(f"<{tag}>", element("ram:IssuerAssignedID", ref["id"]), element("ram:TypeCode", ref.get("typeCode")), issued, f"</{tag}>")


def _additional_references(references: Any) -> Iterable[str]:
    for reference in as_list(references):
        if not isinstance(reference, Mapping) or not to_str(reference.get("id")):
            continue
        yield join(
            "<ram:AdditionalReferencedDocument>",
            element("ram:IssuerAssignedID", reference["id"]),
            element("ram:TypeCode", reference.get("typeCode") or "916"),
            element("ram:ReferenceTypeCode", reference.get("referenceTypeCode")),
            "</ram:AdditionalReferencedDocument>",
        )


def _render_trade_line(position: Mapping[str, Any], amount: PositionAmount) -> str:
    allowance = ""
    if amount.discount:
        allowance = textwrap.dedent(
            f"""
            <ram:SpecifiedTradeAllowanceCharge>
              <ram:ChargeIndicator><udt:Indicator>false</udt:Indicator></ram:ChargeIndicator>
              <ram:ActualAmount>{fmt_amount(amount.discount)}</ram:ActualAmount>
              <ram:Reason>Rabatt</ram:Reason>
            </ram:SpecifiedTradeAllowanceCharge>
            """
        ).strip()
    unit_code = to_str(position.get("unitCode")) or DEFAULT_UNIT_CODE
    return join(
        "<ram:IncludedSupplyChainTradeLineItem>",
        f"<ram:AssociatedDocumentLineDocument><ram:LineID>{amount.index + 1}</ram:LineID></ram:AssociatedDocumentLineDocument>",
        join(
            "<ram:SpecifiedTradeProduct>",
            element("ram:SellerAssignedID", position.get("number")),
            element("ram:Name", position.get("name") or position.get("description") or "Position"),
            element("ram:Description", position.get("description")),
            "</ram:SpecifiedTradeProduct>",
        ),
        "<ram:SpecifiedLineTradeAgreement>"
        f"<ram:NetPriceProductTradePrice><ram:ChargeAmount>{fmt_amount(amount.unit_price)}</ram:ChargeAmount></ram:NetPriceProductTradePrice>"
        "</ram:SpecifiedLineTradeAgreement>",
        f'<ram:SpecifiedLineTradeDelivery><ram:BilledQuantity unitCode="{x(unit_code)}">{fmt_quantity(amount.quantity)}</ram:BilledQuantity></ram:SpecifiedLineTradeDelivery>',
        "<ram:SpecifiedLineTradeSettlement>",
        "<ram:ApplicableTradeTax><ram:TypeCode>VAT</ram:TypeCode>"
        f"<ram:CategoryCode>{_category_code(amount.tax_rate)}</ram:CategoryCode>"
        f"<ram:RateApplicablePercent>{fmt_amount(amount.tax_rate)}</ram:RateApplicablePercent></ram:ApplicableTradeTax>",
        allowance,
        f"<ram:SpecifiedTradeSettlementLineMonetarySummation><ram:LineTotalAmount>{fmt_amount(amount.net)}</ram:LineTotalAmount></ram:SpecifiedTradeSettlementLineMonetarySummation>",
        "</ram:SpecifiedLineTradeSettlement>",
        "</ram:IncludedSupplyChainTradeLineItem>",
    )


def _render_header_taxes(amounts: AmountSummary, exemption_reason: Any) -> List[str]:
    fragments = []
    for rate, tax in amounts.tax_by_rate.items():
        category = _category_code(rate)
        fragments.append(
            join(
                "<ram:ApplicableTradeTax>",
                f"<ram:CalculatedAmount>{fmt_amount(tax)}</ram:CalculatedAmount>",
                "<ram:TypeCode>VAT</ram:TypeCode>",
                element("ram:ExemptionReason", exemption_reason) if category == "E" else "",
                f"<ram:BasisAmount>{fmt_amount(amounts.basis_for_rate(rate))}</ram:BasisAmount>",
                f"<ram:CategoryCode>{category}</ram:CategoryCode>",
                f"<ram:RateApplicablePercent>{fmt_amount(rate)}</ram:RateApplicablePercent>",
                "</ram:ApplicableTradeTax>",
            )
        )
    return fragments


def _render_header_allowances(amounts: AmountSummary) -> List[str]:
    fragments = []
    for rate, allowance in amounts.allowance_by_rate.items():
        if not allowance:
            continue
        fragments.append(
            textwrap.dedent(
                f"""
                <ram:SpecifiedTradeAllowanceCharge>
                  <ram:ChargeIndicator><udt:Indicator>false</udt:Indicator></ram:ChargeIndicator>
                  <ram:CalculationPercent>{fmt_amount(amounts.total_discount_percent)}</ram:CalculationPercent>
                  <ram:BasisAmount>{fmt_amount(amounts.net_by_rate[rate])}</ram:BasisAmount>
                  <ram:ActualAmount>{fmt_amount(allowance)}</ram:ActualAmount>
                  <ram:Reason>Rabatt</ram:Reason>
                  <ram:CategoryTradeTax>
                    <ram:TypeCode>VAT</ram:TypeCode>
                    <ram:CategoryCode>{_category_code(rate)}</ram:CategoryCode>
                    <ram:RateApplicablePercent>{fmt_amount(rate)}</ram:RateApplicablePercent>
                  </ram:CategoryTradeTax>
                </ram:SpecifiedTradeAllowanceCharge>
                """
            ).strip()
        )
    return fragments


def _payment_means(values: Mapping[str, Any]) -> str:
    means = mapping(values.get("specifiedTradeSettlementPaymentMeans"))
    iban = means.get("iban") or values.get("sellerIban")
    account = ""
    if to_str(iban):
        account = join(
            "<ram:PayeePartyCreditorFinancialAccount>",
            element("ram:IBANID", to_str(iban).replace(" ", "")),
            element("ram:AccountName", means.get("accountName") or values.get("sellerBankCardHolder")),
            "</ram:PayeePartyCreditorFinancialAccount>",
        )
    return join(
        "<ram:SpecifiedTradeSettlementPaymentMeans>",
        element("ram:TypeCode", means.get("typeCode") or DEFAULT_PAYMENT_MEANS_CODE),
        element("ram:Information", means.get("information")),
        account,
        "</ram:SpecifiedTradeSettlementPaymentMeans>",
    )


def _payment_terms(values: Mapping[str, Any]) -> str:
    terms = mapping(values.get("specifiedTradePaymentTerms"))
    description = terms.get("description") or values.get("paymentterm")
    due_date = terms.get("dueDate") or values.get("dueDate")
    if not to_str(description) and not to_str(due_date):
        return ""
    return join(
        "<ram:SpecifiedTradePaymentTerms>",
        element("ram:Description", description),
        date_element("ram:DueDateDateTime", due_date),
        element("ram:DirectDebitMandateID", terms.get("directDebitMandateId")),
        "</ram:SpecifiedTradePaymentTerms>",
    )


def _notes(values: Mapping[str, Any]) -> List[str]:
    notes = values.get("notes")
    texts = as_list(notes) if isinstance(notes, (list, tuple)) else [notes]
    texts += [values.get("introduction"), values.get("postscript")]
    return [
        f"<ram:IncludedNote>{element('ram:Content', text)}</ram:IncludedNote>"
        for text in texts
        if to_str(text)
    ]


def _delivery(values: Mapping[str, Any]) -> str:
    ship_to = ""
    if to_str(values.get("deliveryId")) or to_str(values.get("deliveryGlobalId")):
        global_id = ""
        if to_str(values.get("deliveryGlobalId")):
            global_id = element("ram:GlobalID", values["deliveryGlobalId"], schemeID=to_str(values.get("deliverySchemeId")) or "0088")
        ship_to = join("<ram:ShipToTradeParty>", element("ram:ID", values.get("deliveryId")), global_id, "</ram:ShipToTradeParty>")
    delivered = values.get("deliveryDate") or values.get("serviceDate")
    event = ""
    if delivered:
        event = f"<ram:ActualDeliverySupplyChainEvent>{date_element('ram:OccurrenceDateTime', delivered)}</ram:ActualDeliverySupplyChainEvent>"
    return join(
        "<ram:ApplicableHeaderTradeDelivery>",
        ship_to,
        event,
        _referenced("ram:DespatchAdviceReferencedDocument", values.get("deliveryNote")),
        "</ram:ApplicableHeaderTradeDelivery>",
    )


def _billing_period(values: Mapping[str, Any]) -> str:
    start = date_element("ram:StartDateTime", values.get("serviceDateRangeStart"))
    end = date_element("ram:EndDateTime", values.get("serviceDateRangeEnd"))
    if not start and not end:
        return ""
    return join("<ram:BillingSpecifiedPeriod>", start, end, "</ram:BillingSpecifiedPeriod>")


def _summation(amounts: AmountSummary, currency: str) -> str:
    return textwrap.dedent(
        f"""
        <ram:SpecifiedTradeSettlementHeaderMonetarySummation>
          <ram:LineTotalAmount>{fmt_amount(amounts.line_total)}</ram:LineTotalAmount>
          <ram:ChargeTotalAmount>0.00</ram:ChargeTotalAmount>
          <ram:AllowanceTotalAmount>{fmt_amount(amounts.allowance_total)}</ram:AllowanceTotalAmount>
          <ram:TaxBasisTotalAmount>{fmt_amount(amounts.tax_basis_total)}</ram:TaxBasisTotalAmount>
          <ram:TaxTotalAmount currencyID="{x(currency)}">{fmt_amount(amounts.tax_total)}</ram:TaxTotalAmount>
          <ram:GrandTotalAmount>{fmt_amount(amounts.grand_total)}</ram:GrandTotalAmount>
          <ram:TotalPrepaidAmount>{fmt_amount(amounts.prepaid)}</ram:TotalPrepaidAmount>
          <ram:DuePayableAmount>{fmt_amount(amounts.due_payable)}</ram:DuePayableAmount>
        </ram:SpecifiedTradeSettlementHeaderMonetarySummation>
        """
    ).strip()


def generate_zf2_xml(values: Mapping[str, Any]) -> str:
    """Rendert die CrossIndustryInvoice für ``values["format"]``.

    ``ZF:2`` erzeugt das Factur-X/ZUGFeRD-2-Profil EXTENDED, ``xrechnung`` die
    XRechnung-CII-Syntax inklusive Peppol-Geschäftsprozess.
    """

    format_tag = to_str(values.get("format")) or FORMAT_ZF2
    if format_tag not in GUIDELINES:
        raise ValueError(f"Unsupported ZF2 format: {format_tag}")

    currency = to_str(values.get("currency")) or "EUR"
    positions = [p for p in as_list(values.get("invoicePositions")) if isinstance(p, Mapping)]
    amounts = calculate_amount(
        positions,
        get_in(values, ["totaldiscount", "value"]),
        values.get("deduction"),
        values.get("subTotalsDefinitions"),
    )

    business_process = ""
    if format_tag == FORMAT_XRECHNUNG:
        business_process = (
            "<ram:BusinessProcessSpecifiedDocumentContextParameter>"
            f"<ram:ID>{XRECHNUNG_BUSINESS_PROCESS}</ram:ID>"
            "</ram:BusinessProcessSpecifiedDocumentContextParameter>"
        )

    lines_xml = "\n".join(
        _render_trade_line(position, amount) for position, amount in zip(positions, amounts.positions)
    )

    agreement = join(
        "<ram:ApplicableHeaderTradeAgreement>",
        element("ram:BuyerReference", values.get("buyerReference")),
        _seller_party(values),
        _buyer_party(values),
        _referenced("ram:SellerOrderReferencedDocument", values.get("supplierNumber")),
        _referenced("ram:BuyerOrderReferencedDocument", values.get("orderNumber")),
        _referenced("ram:ContractReferencedDocument", values.get("contractReferencedDocument")),
        *_additional_references(values.get("additionalReferences")),
        "</ram:ApplicableHeaderTradeAgreement>",
    )

    settlement = join(
        "<ram:ApplicableHeaderTradeSettlement>",
        element("ram:PaymentReference", values.get("invoiceNumber")),
        element("ram:InvoiceCurrencyCode", currency),
        _payment_means(values),
        *_render_header_taxes(amounts, values.get("taxExemptionReasonMessage")),
        _billing_period(values),
        *_render_header_allowances(amounts),
        _payment_terms(values),
        _summation(amounts, currency),
        _referenced("ram:InvoiceReferencedDocument", values.get("invoiceReferencedDocument"), with_date=True),
        "</ram:ApplicableHeaderTradeSettlement>",
    )

    xml_content = f"""<?xml version="1.0" encoding="UTF-8"?>
<rsm:CrossIndustryInvoice xmlns:rsm="urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100"
    xmlns:qdt="urn:un:unece:uncefact:data:standard:QualifiedDataType:100"
    xmlns:ram="urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100"
    xmlns:udt="urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100">
  <rsm:ExchangedDocumentContext>
{textwrap.indent(business_process, '    ') if business_process else ''}
    <ram:GuidelineSpecifiedDocumentContextParameter>
      <ram:ID>{GUIDELINES[format_tag]}</ram:ID>
    </ram:GuidelineSpecifiedDocumentContextParameter>
  </rsm:ExchangedDocumentContext>
  <rsm:ExchangedDocument>
    <ram:ID>{x(values.get("invoiceNumber"))}</ram:ID>
    <ram:TypeCode>{x(values.get("invoiceTypeCode") or "380")}</ram:TypeCode>
    {date_element("ram:IssueDateTime", values.get("date") or values.get("created_at"))}
{textwrap.indent(join(*_notes(values)), '    ')}
  </rsm:ExchangedDocument>
  <rsm:SupplyChainTradeTransaction>
{textwrap.indent(lines_xml, '    ')}
{textwrap.indent(agreement, '    ')}
{textwrap.indent(_delivery(values), '    ')}
{textwrap.indent(settlement, '    ')}
  </rsm:SupplyChainTradeTransaction>
</rsm:CrossIndustryInvoice>
"""

    return ensure_well_formed(xml_content, format_tag)
