"""Normalisierung der Rechnungs-Payload.

Die Payload ist ein beliebig verschachteltes ``dict`` (JSON). Fehlende Felder
führen nie zu Fehlern, sondern zu ``None`` oder dokumentierten Defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, MutableMapping, Optional, Sequence, Union

from .dto import FixingInfo

KeyPath = Union[str, Sequence[str]]

_MISSING = object()


def _split(path: KeyPath) -> Sequence[str]:
    if isinstance(path, str):
        return path.split(".")
    return path


def get_in(mapping: Any, path: KeyPath, default: Any = None) -> Any:
    """Liest einen verschachtelten Wert; ``default`` wenn ein Glied fehlt."""

    current = mapping
    for key in _split(path):
        if isinstance(current, Mapping):
            current = current.get(key, _MISSING)
        elif isinstance(current, Sequence) and not isinstance(current, str) and key.isdigit():
            index = int(key)
            current = current[index] if index < len(current) else _MISSING
        else:
            return default
        if current is _MISSING:
            return default
    return current


def set_in(mapping: MutableMapping[str, Any], path: KeyPath, value: Any) -> None:
    """Setzt einen verschachtelten Wert und legt fehlende Zwischen-dicts an."""

    keys = list(_split(path))
    current = mapping
    for key in keys[:-1]:
        child = current.get(key)
        if not isinstance(child, MutableMapping):
            child = {}
            current[key] = child
        current = child
    current[keys[-1]] = value


def to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (list, tuple)):
        return ",".join(to_str(item) for item in value)
    return str(value)


def as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def parse_datetime(value: Any, *, now: Optional[datetime] = None) -> datetime:
    """ISO-8601/``datetime`` → UTC-``datetime``; ungültig oder leer → ``now``."""

    fallback = now or datetime.now(timezone.utc)
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return fallback
    else:
        return fallback
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class NormalizedPayload:
    invoice_id: Any
    document_id: str
    invoice_number: str
    receiver: Any
    recreate: bool
    fixing: FixingInfo
    created_at: datetime
    uploaded_invoice_file: Optional[str]
    template_label: Optional[str]
    used_profile: str
    letter: Any
    enabled_webhook: bool
    invoice_type: str
    invoice_type_code: str
    currency: str

    @property
    def fixing_reference_type(self) -> Optional[str]:
        return self.fixing.fixing_reference_type


def get_receiver(payload: Mapping[str, Any]) -> Any:
    return get_in(payload, ["$receiver"]) or get_in(payload, ["owner", "id"])


def invoice_positions(payload: Mapping[str, Any]) -> list:
    return as_list(get_in(payload, ["data", "invoicePositions"]))


def normalize_payload(
    payload: Mapping[str, Any], *, now: Optional[datetime] = None
) -> NormalizedPayload:
    label = get_in(payload, ["data", "template", "label"])
    label = label.strip() if isinstance(label, str) else None
    uploaded = get_in(payload, ["data", "uploadedInvoiceFile"])

    return NormalizedPayload(
        invoice_id=get_in(payload, ["id"]),
        document_id=to_str(get_in(payload, ["documentId"], "")),
        invoice_number=to_str(get_in(payload, ["invoiceNumber"], "")),
        receiver=get_receiver(payload),
        recreate=bool(get_in(payload, ["$recreate"], False)),
        fixing=FixingInfo(
            fixing_reference_id=get_in(payload, ["fixingReferenceId"]),
            fixing_reference_type=get_in(payload, ["fixingReferenceType"]),
        ),
        created_at=parse_datetime(get_in(payload, ["created_at"]), now=now),
        uploaded_invoice_file=str(uploaded) if uploaded else None,
        template_label=label or None,
        used_profile=to_str(get_in(payload, ["usedProfile"])) or "simple",
        letter=get_in(payload, ["letter"]),
        enabled_webhook=bool(get_in(payload, ["enabledWebhook"])),
        invoice_type=to_str(get_in(payload, ["data", "invoiceType"])),
        invoice_type_code=to_str(get_in(payload, ["data", "invoiceTypeCode"])) or "380",
        currency=to_str(get_in(payload, ["data", "currency"])) or "EUR",
    )
