"""Dateinamen und Ablageordner für Rechnungs-PDFs."""

from __future__ import annotations

import re
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .dto import FilePathResult, UploadDescriptor

_TRANSLITERATION = str.maketrans(
    {"ä": "ae", "ö": "oe", "ü": "ue", "Ä": "Ae", "Ö": "Oe", "Ü": "Ue", "ß": "ss"}
)

INVOICE_PREFIXES = {
    "correction": "Korrekturrechnung",
    "cancellation": "Stornorechnung",
}
LETTER_PREFIXES = {
    "correction": "Korrekturrechnung-Inkl-Begleitschreiben",
    "cancellation": "Stornierung-Inkl-Begleitschreiben",
}
DEFAULT_INVOICE_PREFIX = "Rechnung"
DEFAULT_LETTER_PREFIX = "Rechnung-Inkl-Begleitschreiben"


def slugify(value: str, separator: str = "-") -> str:
    text = unicodedata.normalize("NFKD", str(value).translate(_TRANSLITERATION))
    text = text.encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^A-Za-z0-9]+", separator, text)
    return text.strip(separator)


def invoice_prefix(slug: str, fixing_reference_type: Optional[str]) -> str:
    base = INVOICE_PREFIXES.get(fixing_reference_type or "", DEFAULT_INVOICE_PREFIX)
    return f"{base}_{slug}"


def letter_prefix(fixing_reference_type: Optional[str]) -> str:
    return LETTER_PREFIXES.get(fixing_reference_type or "", DEFAULT_LETTER_PREFIX)


def file_stem(prefix: str, document_id: str) -> str:
    return f"{prefix}_{document_id}" if document_id else prefix


def get_upload(
    recreate: bool, prefix: str, document_id: str, created_at: datetime
) -> Optional[UploadDescriptor]:
    """Beschreibt die Ablage einer früheren Version, falls neu erzeugt wird."""

    if not recreate:
        return None
    return UploadDescriptor(
        filename=f"{file_stem(prefix, document_id)}.pdf",
        path=created_at.strftime("%Y/%m"),
    )


def get_file_path(
    upload_dir: Path,
    *,
    prefix: str,
    document_id: str = "",
    upload: Optional[UploadDescriptor] = None,
    ignore_path_date: bool = False,
    extension: str = "pdf",
    now: Optional[datetime] = None,
) -> FilePathResult:
    """Berechnet Zielpfad und legt den Ordner an.

    Mit ``upload`` wird dessen Dateiname und Ordner übernommen. Sonst entsteht
    ``<prefix>_<id>.<ext>`` direkt im Upload-Verzeichnis (``ignore_path_date``)
    oder in ``YYYY/MM`` von ``now``.
    """

    if upload is not None:
        filename = upload.filename
        folder_path = upload.path
    else:
        filename = f"{file_stem(prefix, document_id)}.{extension}"
        if ignore_path_date:
            folder_path = ""
        else:
            folder_path = (now or datetime.now(timezone.utc)).strftime("%Y/%m")

    folder = Path(upload_dir) / folder_path if folder_path else Path(upload_dir)
    folder.mkdir(parents=True, exist_ok=True)
    return FilePathResult(
        filename=filename,
        full_path=folder / filename,
        folder_path=folder_path,
    )
