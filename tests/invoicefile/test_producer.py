"""PDF-Erzeugung, Übernahme hochgeladener PDFs und Begleitschreiben."""

from __future__ import annotations

from pathlib import Path

import pytest

from agents.invoicefile.dto import FixingInfo
from agents.invoicefile.errors import RenderFailed
from agents.invoicefile.pdftools import page_count
from agents.invoicefile.producer import PdfProducer


def _create(producer: PdfProducer, payload: dict, pdf_path: Path, *, fixing=None, has_template_file=False):
    return producer.create_pdf(
        True,
        payload,
        fixing or FixingInfo(),
        pdf_path.name,
        "",
        pdf_path,
        has_template_file,
    )


def test_uploaded_pdf_is_moved_byte_identical(upload_dir, payload, renderer, make_pdf, tmp_path) -> None:
    source = tmp_path / "incoming" / "fertig.pdf"
    source.parent.mkdir()
    content = make_pdf(3)
    source.write_bytes(content)
    payload["data"]["uploadedInvoiceFile"] = str(source)
    pdf_path = upload_dir / "Rechnung_RE_2025_001_doc-42.pdf"

    produced = _create(PdfProducer(upload_dir, renderer), payload, pdf_path)

    assert pdf_path.read_bytes() == content
    assert not source.exists()
    assert renderer.calls == []
    assert produced.document_file is None
    assert produced.invoice_file is not None
    assert produced.invoice_file.full_path == pdf_path


def test_legacy_render_writes_pdf_directly(upload_dir, payload, renderer) -> None:
    upload_dir.mkdir(parents=True)
    pdf_path = upload_dir / "Rechnung.pdf"

    produced = _create(PdfProducer(upload_dir, renderer), payload, pdf_path)

    assert page_count(pdf_path) == 1
    assert produced.invoice_file.to_dict() == {
        "filename": "Rechnung.pdf",
        "path": "",
        "fullPath": str(pdf_path),
    }
    assert renderer.calls == [{"included_letter": False, "template": None}]


def test_template_output_is_normalised_and_side_file_removed(upload_dir, payload, renderer) -> None:
    upload_dir.mkdir(parents=True)
    pdf_path = upload_dir / "Rechnung.pdf"

    _create(PdfProducer(upload_dir, renderer), payload, pdf_path, has_template_file=True)

    assert page_count(pdf_path) == 1
    assert not pdf_path.with_name("Rechnung.pdf.pdf").exists()


@pytest.mark.parametrize(
    ("fixing_type", "expected_prefix"),
    [
        ("correction", "Korrekturrechnung-Inkl-Begleitschreiben"),
        ("cancellation", "Stornierung-Inkl-Begleitschreiben"),
        (None, "Rechnung-Inkl-Begleitschreiben"),
    ],
)
def test_letter_document_prefix(upload_dir, payload, renderer, now, fixing_type, expected_prefix) -> None:
    upload_dir.mkdir(parents=True)
    payload["letter"] = {"subject": "Ihre Rechnung", "body": "Sehr geehrte Damen und Herren"}
    pdf_path = upload_dir / "Rechnung.pdf"

    produced = _create(
        PdfProducer(upload_dir, renderer, now=now),
        payload,
        pdf_path,
        fixing=FixingInfo(fixing_reference_type=fixing_type),
    )

    document = produced.document_file
    assert document is not None
    assert document.filename == f"{expected_prefix}_doc-42.pdf"
    assert document.path == "2025/03"
    assert document.full_path.is_file()
    assert document.to_dict() == {"filename": document.filename, "invoice": 42, "path": "2025/03"}
    assert [call["included_letter"] for call in renderer.calls] == [True, False]


def test_no_letter_no_document(upload_dir, payload, renderer) -> None:
    upload_dir.mkdir(parents=True)
    produced = _create(PdfProducer(upload_dir, renderer), payload, upload_dir / "Rechnung.pdf")
    assert produced.document_file is None


def test_cannot_create_pdf_produces_nothing(upload_dir, payload, renderer) -> None:
    pdf_path = upload_dir / "Rechnung.pdf"
    produced = PdfProducer(upload_dir, renderer).create_pdf(False, payload, FixingInfo(), "Rechnung.pdf", "", pdf_path, False)

    assert produced.invoice_file is None
    assert not pdf_path.exists()


def test_renderer_errors_become_render_failed(upload_dir, payload, renderer_factory) -> None:
    upload_dir.mkdir(parents=True)
    with pytest.raises(RenderFailed):
        _create(PdfProducer(upload_dir, renderer_factory(fail=True)), payload, upload_dir / "Rechnung.pdf")
