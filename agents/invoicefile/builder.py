"""Invoice File Builder – orchestriert Normalisierung, Pfade, Vorlage, PDF, Profil.

Ablauf je Aufruf (synchron, ohne Wiederholungen):

1. Payload normalisieren (Defaults, Empfänger, Korrekturart)
2. Zielpfad bestimmen (``YYYY/MM`` nur beim Neuerzeugen)
3. Vorlage auflösen – entfällt, wenn ein fertiges PDF hochgeladen wurde
4. PDF erzeugen bzw. hochgeladenes PDF übernehmen
5. E-Rechnungsprofil anwenden (Fehler werden protokolliert, nicht geworfen)
"""

from __future__ import annotations

import copy
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from backend.core import config
from backend.core.config import Settings
from backend.core.logging import get_logger

from .dto import InvoiceResult
from .errors import ProfileGenerationFailed
from .paths import get_file_path, get_upload, invoice_prefix, slugify
from .payload import normalize_payload
from .producer import PdfProducer, find_uploaded_invoice
from .profiles import EInvoiceProfile, ProfileOutcome, generate_profile
from .rendering import DocumentRenderer
from .templates import TemplateResolver

logger = get_logger(__name__)


def _run_profile(
    profile: EInvoiceProfile,
    payload: Mapping[str, Any],
    *,
    pdf_path: Path,
    filename: str,
    receiver: Any,
    settings: Settings,
    invoice_id: Any,
) -> ProfileOutcome:
    try:
        return generate_profile(
            profile,
            payload,
            pdf_path=pdf_path,
            filename=filename,
            receiver=receiver,
            settings=settings,
        )
    except ProfileGenerationFailed as err:
        if settings.PROFILE_ERRORS_RAISE:
            raise
        logger.exception(
            "E-invoice profile %s failed for invoice %s",
            profile.value,
            invoice_id,
            extra={"invoice_id": invoice_id},
        )
        return ProfileOutcome(profile=profile, error=err)
    except Exception as err:
        if settings.PROFILE_ERRORS_RAISE:
            raise
        logger.exception(
            "Unexpected error in e-invoice profile %s for invoice %s",
            profile.value,
            invoice_id,
            extra={"invoice_id": invoice_id},
        )
        return ProfileOutcome(
            profile=profile,
            error=ProfileGenerationFailed(profile.value, str(err)),
        )


def make_invoice_file(
    payload: Mapping[str, Any],
    *,
    settings: Optional[Settings] = None,
    renderer: Optional[DocumentRenderer] = None,
    now: Optional[datetime] = None,
) -> InvoiceResult:
    """Erzeugt das Rechnungs-PDF (und ggf. Begleitschreiben und E-Rechnung).

    ``payload`` wird nicht verändert; die Vorlagenfelder
    ``data.template.{variant,path,output}`` landen in einer Kopie, die an
    Renderer und Profile weitergereicht wird.
    """

    settings = settings or config.settings
    upload_dir = Path(settings.UPLOAD_DIR)
    working: Dict[str, Any] = copy.deepcopy(dict(payload))
    normalized = normalize_payload(working, now=now)

    prefix = invoice_prefix(slugify(normalized.invoice_number, "_"), normalized.fixing_reference_type)
    upload = get_upload(normalized.recreate, prefix, normalized.document_id, normalized.created_at)
    target = get_file_path(
        upload_dir,
        prefix=prefix,
        document_id=normalized.document_id,
        upload=upload,
        ignore_path_date=not normalized.recreate,
        now=now,
    )
    logger.info(
        "Building invoice %s into %s",
        normalized.invoice_id,
        target.full_path,
        extra={"invoice_id": normalized.invoice_id},
    )

    producer = PdfProducer(upload_dir, renderer, now=now)
    template_error = None
    if find_uploaded_invoice(working) is not None:
        produced = producer.create_pdf(
            True,
            working,
            normalized.fixing,
            target.filename,
            target.folder_path,
            target.full_path,
            False,
        )
    else:
        resolution = TemplateResolver(upload_dir, settings.TEMPLATE_STORAGE_DIR).resolve(
            working, target.full_path, normalized.template_label
        )
        template_error = resolution.error
        produced = producer.create_pdf(
            resolution.can_render,
            working,
            normalized.fixing,
            target.filename,
            target.folder_path,
            target.full_path,
            resolution.has_template_file,
        )

    profile = EInvoiceProfile.from_tag(normalized.used_profile)
    outcome = _run_profile(
        profile,
        working,
        pdf_path=target.full_path,
        filename=target.filename,
        receiver=normalized.receiver,
        settings=settings,
        invoice_id=normalized.invoice_id,
    )

    return InvoiceResult(
        receiver=normalized.receiver,
        zugferd_payload=outcome.zugferd_payload,
        document_file=produced.document_file,
        invoice_file=produced.invoice_file,
        enabled_webhook=normalized.enabled_webhook,
        invoice_id=normalized.invoice_id,
        profile=profile,
        template_error=template_error,
        profile_error=outcome.error,
    )
