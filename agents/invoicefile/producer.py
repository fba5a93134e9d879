"""Erzeugung bzw. Übernahme des Rechnungs-PDFs und des Begleitschreibens."""

from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional

from backend.core.logging import get_logger

from .dto import DocumentFile, FixingInfo, InvoiceFile, ProducedFiles
from .errors import RenderFailed
from .paths import get_file_path, letter_prefix
from .payload import get_in, to_str
from .pdftools import concatenate
from .rendering import DocumentRenderer

logger = get_logger(__name__)


def find_uploaded_invoice(payload: Mapping[str, Any]) -> Optional[Path]:
    """Fertig hochgeladenes Rechnungs-PDF, sofern es noch existiert."""

    uploaded = get_in(payload, ["data", "uploadedInvoiceFile"])
    if not uploaded:
        return None
    path = Path(str(uploaded))
    return path if path.exists() else None


class PdfProducer:
    """Zustandslos bis auf Upload-Verzeichnis, Renderer und Uhr."""

    def __init__(
        self,
        upload_dir: Path,
        renderer: Optional[DocumentRenderer] = None,
        *,
        now: Optional[datetime] = None,
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self.renderer = renderer or DocumentRenderer()
        self.now = now

    def _render(self, payload: Mapping[str, Any], *, included_letter: bool = False) -> bytes:
        try:
            return self.renderer.render_invoice(payload, included_letter=included_letter)
        except Exception as err:
            raise RenderFailed(f"Rendering invoice {get_in(payload, ['id'])} failed: {err}") from err

    def generate_document_pdf(
        self, payload: Mapping[str, Any], fixing: FixingInfo
    ) -> Optional[DocumentFile]:
        """Rechnung inklusive Begleitschreiben, nur wenn ``letter`` gesetzt ist."""

        if not get_in(payload, ["letter"]):
            return None

        target = get_file_path(
            self.upload_dir,
            prefix=letter_prefix(fixing.fixing_reference_type),
            document_id=to_str(get_in(payload, ["documentId"], "")),
            now=self.now,
        )
        target.full_path.write_bytes(self._render(payload, included_letter=True))
        logger.info("Letter document written to %s", target.full_path)
        return DocumentFile(
            filename=target.filename,
            invoice_id=get_in(payload, ["id"]),
            path=target.folder_path,
            full_path=target.full_path,
        )

    def relocate(self, uploaded: Path, pdf_path: Path) -> None:
        if uploaded.resolve() == Path(pdf_path).resolve():
            return
        Path(pdf_path).parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(uploaded), str(pdf_path))
        logger.info("Uploaded invoice %s moved to %s", uploaded, pdf_path)

    def create_pdf(
        self,
        can_create_pdf: bool,
        payload: Mapping[str, Any],
        fixing: FixingInfo,
        filename: str,
        folder_path: str,
        pdf_path: Path,
        has_template_file: bool,
    ) -> ProducedFiles:
        pdf_path = Path(pdf_path)
        invoice_file = InvoiceFile(filename=filename, path=folder_path, full_path=pdf_path)

        uploaded = find_uploaded_invoice(payload)
        if uploaded is not None:
            self.relocate(uploaded, pdf_path)
            return ProducedFiles(invoice_file=invoice_file)

        if not can_create_pdf:
            return ProducedFiles()

        document_file = self.generate_document_pdf(payload, fixing)

        # Template output is re-paginated through pikepdf into the final path
        target = pdf_path.with_name(f"{pdf_path.name}.pdf") if has_template_file else pdf_path
        target.write_bytes(self._render(payload))
        if has_template_file:
            try:
                concatenate([target], pdf_path)
            finally:
                target.unlink(missing_ok=True)

        logger.info("Invoice PDF written to %s", pdf_path)
        return ProducedFiles(document_file=document_file, invoice_file=invoice_file)
