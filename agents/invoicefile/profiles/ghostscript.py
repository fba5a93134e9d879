"""PDF/A-3-Konvertierung mit eingebettetem ZUGFeRD-1.0-XML über Ghostscript.

Das XML wird pro Aufruf in eine eigene temporäre Datei unter dem
Upload-Verzeichnis geschrieben, damit parallele Läufe sich nicht gegenseitig
überschreiben. Ghostscript schreibt nach ``<pdf>.tmp``; erst nach Erfolg
ersetzt diese Datei das Original.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from backend.core.config import Settings
from backend.core.logging import get_logger

from ..errors import ConversionFailed

logger = get_logger(__name__)

DRIVER_PATH = Path(__file__).resolve().parent / "resources" / "zugferd.ps"
XML_PREFIX = "ZUGFeRD-invoice-"


def build_command(
    settings: Settings,
    *,
    xml_path: Path,
    pdf_path: Path,
    output_path: Path,
    title: str,
    driver_path: Path = DRIVER_PATH,
) -> List[str]:
    """Argumentliste für Ghostscript; der Titel ist ein eigenes Argument."""

    icc_profile = settings.ZUGFERD_ICC_PROFILE
    return [
        settings.GHOSTSCRIPT_BINARY,
        f"--permit-file-read={xml_path}",
        f"--permit-file-read={icc_profile}",
        f"--permit-file-read={driver_path}",
        f"-sZUGFeRDXMLFile={xml_path}",
        f"-sZUGFeRDICCProfile={icc_profile}",
        f"-sInvoiceTitle={title}",
        "-dPDFA=3",
        "-dBATCH",
        "-dNOPAUSE",
        "-sColorConversionStrategy=RGB",
        "-sDEVICE=pdfwrite",
        "-dPDFACompatibilityPolicy=1",
        f"-sOutputFile={output_path}",
        str(driver_path),
        str(pdf_path),
    ]


def _discard(path: Path) -> None:
    # Inhalt zuerst leeren, dann entfernen
    try:
        path.write_bytes(b"")
    finally:
        path.unlink(missing_ok=True)


def convert_to_pdfa3(
    pdf_path: Path,
    xml_bytes: bytes,
    title: str,
    *,
    settings: Settings,
    scratch_dir: Optional[Path] = None,
) -> Path:
    """Ersetzt ``pdf_path`` durch eine PDF/A-3-Fassung mit eingebettetem XML.

    Fehler (Exit-Code != 0, Timeout, fehlendes Binary) werden als
    ``ConversionFailed`` gemeldet; das Original-PDF bleibt dann unverändert.
    """

    pdf_path = Path(pdf_path)
    output_path = pdf_path.with_name(f"{pdf_path.name}.tmp")
    scratch = Path(scratch_dir or settings.UPLOAD_DIR)
    scratch.mkdir(parents=True, exist_ok=True)

    fd, raw_xml_path = tempfile.mkstemp(prefix=XML_PREFIX, suffix=".xml", dir=str(scratch))
    xml_path = Path(raw_xml_path)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(xml_bytes)

        command = build_command(
            settings,
            xml_path=xml_path,
            pdf_path=pdf_path,
            output_path=output_path,
            title=title,
        )
        logger.info("Converting %s to PDF/A-3 with %s", pdf_path.name, settings.GHOSTSCRIPT_BINARY)
        try:
            proc = subprocess.run(
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=settings.GHOSTSCRIPT_TIMEOUT_SECONDS,
            )
        except subprocess.TimeoutExpired as err:
            raise ConversionFailed(f"Ghostscript timed out after {err.timeout}s") from err
        except FileNotFoundError as err:
            raise ConversionFailed(f"Ghostscript binary not found: {settings.GHOSTSCRIPT_BINARY}") from err

        if proc.returncode != 0:
            raise ConversionFailed(
                f"Ghostscript exited with {proc.returncode}",
                returncode=proc.returncode,
                stderr=proc.stderr or "",
            )
        if not output_path.is_file():
            raise ConversionFailed("Ghostscript produced no output", returncode=proc.returncode)

        os.replace(output_path, pdf_path)
        logger.info("PDF/A-3 written to %s", pdf_path)
        return pdf_path
    finally:
        _discard(xml_path)
        output_path.unlink(missing_ok=True)
