"""Datentransferobjekte des Invoice File Builders.

Alle Objekte sind anfragebezogen: sie beschreiben, wo erzeugte Dateien liegen,
nicht deren Inhalt. ``to_dict`` liefert jeweils die Schlüssel, die Aufrufer
des Builders (Webhooks, Queue-Consumer) erwarten.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from .errors import ProfileGenerationFailed, TemplateInvalid

if TYPE_CHECKING:
    from .profiles import EInvoiceProfile


@dataclass(frozen=True, slots=True)
class UploadDescriptor:
    filename: str
    path: str


@dataclass(frozen=True, slots=True)
class FilePathResult:
    filename: str
    full_path: Path
    folder_path: str


@dataclass(frozen=True, slots=True)
class FixingInfo:
    fixing_reference_id: Optional[str] = None
    fixing_reference_type: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DocumentFile:
    """Rechnung inklusive Begleitschreiben."""

    filename: str
    invoice_id: Any
    path: str
    full_path: Path

    def to_dict(self) -> Dict[str, Any]:
        return {"filename": self.filename, "invoice": self.invoice_id, "path": self.path}


@dataclass(frozen=True, slots=True)
class InvoiceFile:
    filename: str
    path: str
    full_path: Path

    def to_dict(self) -> Dict[str, Any]:
        return {"filename": self.filename, "path": self.path, "fullPath": str(self.full_path)}


@dataclass(frozen=True, slots=True)
class ProducedFiles:
    document_file: Optional[DocumentFile] = None
    invoice_file: Optional[InvoiceFile] = None


@dataclass(slots=True)
class InvoiceResult:
    receiver: Any
    zugferd_payload: Optional[str]
    document_file: Optional[DocumentFile]
    invoice_file: Optional[InvoiceFile]
    enabled_webhook: bool
    invoice_id: Any
    profile: Optional["EInvoiceProfile"] = None
    template_error: Optional[TemplateInvalid] = None
    profile_error: Optional[ProfileGenerationFailed] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "$receiver": self.receiver,
            "ZUGFeRDPayload": self.zugferd_payload,
            "documentFile": self.document_file.to_dict() if self.document_file else None,
            "invoiceFile": self.invoice_file.to_dict() if self.invoice_file else None,
            "enabledWebhook": self.enabled_webhook,
            "invoiceId": self.invoice_id,
        }
