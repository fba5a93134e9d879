"""Auflösung kundenspezifischer Vorlagen und Rückfall auf das Standardlayout."""

from __future__ import annotations

from pathlib import Path

import pytest

from agents.invoicefile.errors import TemplateInvalid
from agents.invoicefile.templates import (
    VARIANT_JINJA,
    VARIANT_LEGACY,
    TemplateResolver,
    template_file_path,
    validate_template,
)


def _write_template(upload_dir: Path, label: str, source: str) -> Path:
    path = upload_dir / "filestorage" / label
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source, encoding="utf-8")
    return path


def test_template_file_path(tmp_path: Path) -> None:
    assert template_file_path(tmp_path, "kunde.j2") == tmp_path / "filestorage" / "kunde.j2"
    assert template_file_path(tmp_path, "") is None
    assert template_file_path(tmp_path, None) is None


def test_missing_label_uses_legacy(tmp_path: Path) -> None:
    payload: dict = {}
    output = tmp_path / "Rechnung.pdf"
    resolution = TemplateResolver(tmp_path).resolve(payload, output, None)

    assert resolution.variant == VARIANT_LEGACY
    assert resolution.has_template_file is False
    assert resolution.can_render is True
    assert resolution.error is None
    assert payload["data"]["template"] == {"variant": "legacy", "path": None, "output": str(output)}


def test_missing_file_uses_legacy_without_error(tmp_path: Path) -> None:
    payload: dict = {"data": {}}
    resolution = TemplateResolver(tmp_path).resolve(payload, tmp_path / "x.pdf", "gibt-es-nicht.j2")

    assert resolution.variant == VARIANT_LEGACY
    assert resolution.error is None


def test_valid_template_selects_jinja(tmp_path: Path) -> None:
    path = _write_template(tmp_path, "kunde.j2", "# Rechnung {{ invoiceNumber }}\n")
    payload: dict = {"data": {}}
    resolution = TemplateResolver(tmp_path).resolve(payload, tmp_path / "x.pdf", "kunde.j2")

    assert resolution.variant == VARIANT_JINJA
    assert resolution.has_template_file is True
    assert resolution.path == path
    assert payload["data"]["template"]["path"] == str(path)


def test_invalid_template_falls_back_to_legacy(tmp_path: Path) -> None:
    _write_template(tmp_path, "kaputt.j2", "{% if %}")
    payload: dict = {"data": {}}
    resolution = TemplateResolver(tmp_path).resolve(payload, tmp_path / "x.pdf", "kaputt.j2")

    assert resolution.variant == VARIANT_LEGACY
    assert resolution.can_render is True
    assert isinstance(resolution.error, TemplateInvalid)
    assert payload["data"]["template"]["variant"] == VARIANT_LEGACY


def test_validate_template_raises(tmp_path: Path) -> None:
    path = _write_template(tmp_path, "kaputt.j2", "{{ unclosed")
    with pytest.raises(TemplateInvalid) as excinfo:
        validate_template(path)
    assert excinfo.value.path == str(path)


def test_missing_payload_field_falls_back_to_legacy(tmp_path: Path) -> None:
    _write_template(tmp_path, "kunde.j2", "Bestellung: {{ data.orderNumber }}")
    payload: dict = {"data": {"invoicePositions": []}}
    resolution = TemplateResolver(tmp_path).resolve(payload, tmp_path / "x.pdf", "kunde.j2")

    assert resolution.variant == VARIANT_LEGACY
    assert resolution.can_render is True
    assert isinstance(resolution.error, TemplateInvalid)
    assert "orderNumber" in resolution.error.reason
    assert payload["data"]["template"]["path"] is None


def test_template_sees_its_own_output_path(tmp_path: Path) -> None:
    _write_template(tmp_path, "kunde.j2", "Datei: {{ data.template.output }}")
    payload: dict = {"data": {"invoicePositions": []}}
    resolution = TemplateResolver(tmp_path).resolve(payload, tmp_path / "x.pdf", "kunde.j2")

    assert resolution.variant == VARIANT_JINJA
    assert resolution.error is None
