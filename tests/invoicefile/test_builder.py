"""End-to-End-Tests für ``make_invoice_file``."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

import pytest

from agents.invoicefile import EInvoiceProfile, make_invoice_file
from agents.invoicefile.errors import ConversionFailed, TemplateInvalid
from agents.invoicefile.pdftools import page_count
from agents.invoicefile.profiles import ghostscript
from agents.invoicefile.rendering import DocumentRenderer

FILENAME = "Rechnung_RE_2025_001_doc-42.pdf"


def test_simple_profile(payload, settings, upload_dir, renderer, now) -> None:
    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert result.zugferd_payload is None
    assert result.profile is EInvoiceProfile.SIMPLE
    assert result.invoice_file.full_path == upload_dir / FILENAME
    assert page_count(upload_dir / FILENAME) == 1
    assert result.to_dict() == {
        "$receiver": "owner-1",
        "ZUGFeRDPayload": None,
        "documentFile": None,
        "invoiceFile": {"filename": FILENAME, "path": "", "fullPath": str(upload_dir / FILENAME)},
        "enabledWebhook": True,
        "invoiceId": 42,
    }


def test_caller_payload_is_not_modified(payload, settings, renderer, now) -> None:
    make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert "template" not in payload["data"]
    assert renderer.calls[0]["template"]["variant"] == "legacy"


def test_recreate_uses_created_at_folder(payload, settings, upload_dir, renderer, now) -> None:
    payload["$recreate"] = True

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert result.invoice_file.path == "2025/01"
    assert result.invoice_file.full_path == upload_dir / "2025" / "01" / FILENAME
    assert result.invoice_file.full_path.is_file()


@pytest.mark.parametrize(
    ("fixing_type", "prefix"),
    [("correction", "Korrekturrechnung"), ("cancellation", "Stornorechnung")],
)
def test_fixing_type_prefix(payload, settings, renderer, now, fixing_type, prefix) -> None:
    payload["fixingReferenceType"] = fixing_type

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert result.invoice_file.filename == f"{prefix}_RE_2025_001_doc-42.pdf"


def test_uploaded_invoice_skips_rendering(payload, settings, upload_dir, renderer, make_pdf, tmp_path, now) -> None:
    uploaded = tmp_path / "upload.pdf"
    content = make_pdf(4)
    uploaded.write_bytes(content)
    payload["data"]["uploadedInvoiceFile"] = str(uploaded)

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert (upload_dir / FILENAME).read_bytes() == content
    assert renderer.calls == []
    assert result.invoice_file is not None
    assert result.template_error is None


def test_missing_template_renders_legacy(payload, settings, renderer, now) -> None:
    payload["data"]["template"] = {"label": "gibt-es-nicht.j2"}

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert result.template_error is None
    assert renderer.calls[0]["template"]["variant"] == "legacy"
    assert result.invoice_file.full_path.is_file()


def test_invalid_template_is_reported_and_legacy_used(payload, settings, upload_dir, renderer, now) -> None:
    template = upload_dir / "filestorage" / "kaputt.j2"
    template.parent.mkdir(parents=True)
    template.write_text("{% for %}", encoding="utf-8")
    payload["data"]["template"] = {"label": "kaputt.j2"}

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert isinstance(result.template_error, TemplateInvalid)
    assert renderer.calls[0]["template"]["variant"] == "legacy"
    assert result.invoice_file.full_path.is_file()


def test_template_reading_absent_field_falls_back_to_legacy(payload, settings, upload_dir, now) -> None:
    template = upload_dir / "filestorage" / "bestellung.j2"
    template.parent.mkdir(parents=True)
    template.write_text("Bestellung: {{ data.orderNumber }}", encoding="utf-8")
    payload["data"]["template"] = {"label": "bestellung.j2"}

    result = make_invoice_file(payload, settings=settings, renderer=DocumentRenderer(), now=now)

    assert isinstance(result.template_error, TemplateInvalid)
    assert result.invoice_file.full_path.read_bytes().startswith(b"%PDF")


def test_custom_template_is_used(payload, settings, upload_dir, renderer, now) -> None:
    template = upload_dir / "filestorage" / "kunde.j2"
    template.parent.mkdir(parents=True)
    template.write_text("# Rechnung {{ invoiceNumber }}", encoding="utf-8")
    payload["data"]["template"] = {"label": " kunde.j2 "}

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert renderer.calls[0]["template"]["variant"] == "jinja"
    assert renderer.calls[0]["template"]["path"] == str(template)
    assert not (upload_dir / f"{FILENAME}.pdf").exists()
    assert result.invoice_file.full_path.is_file()


def test_letter_document(payload, settings, renderer, now) -> None:
    payload["letter"] = {"subject": "Ihre Rechnung"}

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert result.document_file.filename == "Rechnung-Inkl-Begleitschreiben_doc-42.pdf"
    assert result.to_dict()["documentFile"]["invoice"] == 42


@pytest.mark.parametrize(
    ("tag", "marker"),
    [("zf:2:xrechnung", "xrechnung_3.0"), ("zf:2:extended", "factur-x.eu:1p0:extended")],
)
def test_zf2_payload_returned(payload, settings, upload_dir, renderer, now, tag, marker) -> None:
    payload["usedProfile"] = tag

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert marker in result.zugferd_payload
    assert result.to_dict()["ZUGFeRDPayload"] == result.zugferd_payload
    assert list(upload_dir.glob("*.xml")) == []


def test_zf1_replaces_pdf(payload, settings, upload_dir, renderer, make_pdf, now, monkeypatch) -> None:
    payload["usedProfile"] = "zf:1:extended"
    converted = make_pdf(3)

    def fake_run(command, **kwargs):
        output = next(arg.split("=", 1)[1] for arg in command if arg.startswith("-sOutputFile="))
        Path(output).write_bytes(converted)
        return subprocess.CompletedProcess(command, 0, "", "")

    monkeypatch.setattr(ghostscript.subprocess, "run", fake_run)

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert result.zugferd_payload is None
    assert result.profile_error is None
    assert (upload_dir / FILENAME).read_bytes() == converted
    assert list(upload_dir.glob("ZUGFeRD-invoice-*")) == []


def test_profile_failure_is_logged_not_raised(payload, settings, upload_dir, renderer, now, monkeypatch, caplog) -> None:
    payload["usedProfile"] = "zf:1:extended"
    monkeypatch.setattr(
        ghostscript.subprocess,
        "run",
        lambda command, **kwargs: subprocess.CompletedProcess(command, 1, "", "fatal"),
    )

    with caplog.at_level(logging.ERROR):
        result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert result.zugferd_payload is None
    assert isinstance(result.profile_error, ConversionFailed)
    assert (upload_dir / FILENAME).is_file()
    assert any("zf:1:extended" in record.getMessage() for record in caplog.records)


def test_profile_failure_raises_when_configured(payload, settings, renderer, now, monkeypatch) -> None:
    payload["usedProfile"] = "zf:1:extended"
    monkeypatch.setattr(
        ghostscript.subprocess,
        "run",
        lambda command, **kwargs: subprocess.CompletedProcess(command, 2, "", "fatal"),
    )
    strict = settings.model_copy(update={"PROFILE_ERRORS_RAISE": True})

    with pytest.raises(ConversionFailed):
        make_invoice_file(payload, settings=strict, renderer=renderer, now=now)


def test_unexpected_profile_error_is_wrapped(payload, settings, renderer, now) -> None:
    payload["usedProfile"] = "zf:2:extended"
    payload["data"]["invoicePositions"][0]["price"] = "kein preis"

    result = make_invoice_file(payload, settings=settings, renderer=renderer, now=now)

    assert result.zugferd_payload is None
    assert result.profile_error is not None
    assert result.profile_error.profile == "zf:2:extended"
