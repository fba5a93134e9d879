"""E-Rechnungsprofile: ``simple``, ZUGFeRD 2 (EXTENDED/XRechnung), ZUGFeRD 1.

Jedes Mitglied von ``EInvoiceProfile`` hat genau einen Handler in
``PROFILE_HANDLERS``; ``generate_profile`` liefert ein ``ProfileOutcome``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from backend.core.config import Settings
from backend.core.logging import get_logger

from ..amounts import calculate_amount
from ..errors import ProfileGenerationFailed
from ..payload import get_in, invoice_positions
from .ghostscript import convert_to_pdfa3
from .zf1 import generate_zf1_xml
from .zf2 import FORMAT_XRECHNUNG, FORMAT_ZF2, build_zf2_values, generate_zf2_xml

logger = get_logger(__name__)


class EInvoiceProfile(str, Enum):
    SIMPLE = "simple"
    ZF2_EXTENDED = "zf:2:extended"
    ZF2_XRECHNUNG = "zf:2:xrechnung"
    ZF1_EXTENDED = "zf:1:extended"

    @classmethod
    def from_tag(cls, tag: Any) -> "EInvoiceProfile":
        """Unbekannte oder fehlende Profile werden wie ``simple`` behandelt."""
        try:
            return cls(str(tag).strip()) if tag else cls.SIMPLE
        except ValueError:
            return cls.SIMPLE

    @property
    def format_tag(self) -> str:
        return _FORMAT_TAGS[self]


_FORMAT_TAGS = {
    EInvoiceProfile.SIMPLE: "simple",
    EInvoiceProfile.ZF2_EXTENDED: FORMAT_ZF2,
    EInvoiceProfile.ZF2_XRECHNUNG: FORMAT_XRECHNUNG,
    EInvoiceProfile.ZF1_EXTENDED: "ZF:1",
}


@dataclass(frozen=True, slots=True)
class ProfileContext:
    payload: Mapping[str, Any]
    pdf_path: Path
    filename: str
    receiver: Any
    settings: Settings


@dataclass(frozen=True, slots=True)
class ProfileOutcome:
    profile: EInvoiceProfile
    zugferd_payload: Optional[str] = None
    error: Optional[ProfileGenerationFailed] = None


def _handle_simple(profile: EInvoiceProfile, context: ProfileContext) -> Optional[str]:
    return None


def _handle_zf2(profile: EInvoiceProfile, context: ProfileContext) -> Optional[str]:
    values = build_zf2_values(context.payload, context.pdf_path, context.receiver, profile.format_tag)
    try:
        return generate_zf2_xml(values)
    except ProfileGenerationFailed:
        raise
    except (ValueError, ArithmeticError) as err:
        raise ProfileGenerationFailed(profile.value, str(err)) from err


def _handle_zf1(profile: EInvoiceProfile, context: ProfileContext) -> Optional[str]:
    payload = context.payload
    try:
        amounts = calculate_amount(
            invoice_positions(payload),
            get_in(payload, ["data", "totaldiscount", "value"]),
            get_in(payload, ["data", "deduction"]),
            get_in(payload, ["data", "subTotalsDefinitions"]),
        )
        xml_bytes = generate_zf1_xml(payload, amounts)
    except ProfileGenerationFailed:
        raise
    except (ValueError, ArithmeticError) as err:
        raise ProfileGenerationFailed(profile.value, str(err)) from err

    convert_to_pdfa3(
        context.pdf_path,
        xml_bytes,
        Path(context.filename).stem,
        settings=context.settings,
    )
    return None


ProfileHandler = Callable[[EInvoiceProfile, ProfileContext], Optional[str]]

PROFILE_HANDLERS: Dict[EInvoiceProfile, ProfileHandler] = {
    EInvoiceProfile.SIMPLE: _handle_simple,
    EInvoiceProfile.ZF2_EXTENDED: _handle_zf2,
    EInvoiceProfile.ZF2_XRECHNUNG: _handle_zf2,
    EInvoiceProfile.ZF1_EXTENDED: _handle_zf1,
}


def generate_profile(
    profile: EInvoiceProfile,
    payload: Mapping[str, Any],
    *,
    pdf_path: Path,
    filename: str,
    receiver: Any,
    settings: Settings,
) -> ProfileOutcome:
    """Führt den Handler des Profils aus; Fehler werden weitergereicht."""

    context = ProfileContext(
        payload=payload,
        pdf_path=Path(pdf_path),
        filename=filename,
        receiver=receiver,
        settings=settings,
    )
    zugferd_payload = PROFILE_HANDLERS[profile](profile, context)
    if profile is not EInvoiceProfile.SIMPLE:
        logger.info("E-invoice profile %s generated for %s", profile.value, filename)
    return ProfileOutcome(profile=profile, zugferd_payload=zugferd_payload)


__all__ = [
    "EInvoiceProfile",
    "PROFILE_HANDLERS",
    "ProfileContext",
    "ProfileOutcome",
    "generate_profile",
]
