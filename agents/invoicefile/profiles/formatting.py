"""Gemeinsame Formatierungshelfer für die CII-Ausgabe (ZUGFeRD 1/2)."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from html import escape
from typing import Any, Mapping, Optional

from lxml import etree

from ..amounts import to_decimal
from ..errors import ProfileGenerationFailed
from ..payload import to_str


def fmt_amount(value: Any) -> str:
    return f"{to_decimal(value).quantize(Decimal('0.01')):.2f}"


def fmt_quantity(value: Any) -> str:
    return f"{to_decimal(value).quantize(Decimal('0.0001')):.4f}"


def fmt_date_102(value: Any) -> Optional[str]:
    """Datum im UN/CEFACT-Format 102 (``YYYYMMDD``); ungültig → ``None``."""

    if isinstance(value, date):
        return value.strftime("%Y%m%d")
    text = to_str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).strftime("%Y%m%d")
    except ValueError:
        return None


def x(value: Any) -> str:
    return escape(to_str(value))


def element(tag: str, value: Any, **attributes: str) -> str:
    """``<tag attr="…">value</tag>``; leere Werte ergeben einen Leerstring."""

    text = to_str(value)
    if not text:
        return ""
    attrs = "".join(f' {name}="{escape(val)}"' for name, val in attributes.items())
    return f"<{tag}{attrs}>{escape(text)}</{tag}>"


def date_element(tag: str, value: Any) -> str:
    formatted = fmt_date_102(value)
    if formatted is None:
        return ""
    return f'<{tag}><udt:DateTimeString format="102">{formatted}</udt:DateTimeString></{tag}>'


def join(*fragments: str) -> str:
    return "\n".join(fragment for fragment in fragments if fragment)


def mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def ensure_well_formed(xml: str, profile: str) -> str:
    """Parst das erzeugte Dokument mit lxml; Syntaxfehler → ``ProfileGenerationFailed``."""

    try:
        etree.fromstring(xml.encode("utf-8"))
    except etree.XMLSyntaxError as err:
        raise ProfileGenerationFailed(profile, f"generated XML is not well-formed: {err}") from err
    return xml
