"""Invoice File Builder: Rechnungs-PDF, Begleitschreiben und ZUGFeRD/XRechnung."""

from .amounts import AmountSummary, calculate_amount, format_money
from .builder import make_invoice_file
from .dto import DocumentFile, InvoiceFile, InvoiceResult
from .errors import (
    ConversionFailed,
    InvoiceFileError,
    ProfileGenerationFailed,
    RenderFailed,
    TemplateInvalid,
)
from .profiles import EInvoiceProfile, ProfileOutcome, generate_profile
from .rendering import DocumentRenderer

__all__ = [
    "AmountSummary",
    "calculate_amount",
    "format_money",
    "make_invoice_file",
    "DocumentFile",
    "InvoiceFile",
    "InvoiceResult",
    "ConversionFailed",
    "InvoiceFileError",
    "ProfileGenerationFailed",
    "RenderFailed",
    "TemplateInvalid",
    "EInvoiceProfile",
    "ProfileOutcome",
    "generate_profile",
    "DocumentRenderer",
]
