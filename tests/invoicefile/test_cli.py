"""CLI ``tools.invoicefile.build``."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from tools.invoicefile.build import main


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_cli_builds_pdf_and_writes_xml(payload, tmp_path: Path, capsys) -> None:
    payload["usedProfile"] = "zf:2:xrechnung"
    payload_file = tmp_path / "payload.json"
    payload_file.write_text(json.dumps(payload), encoding="utf-8")
    out_dir = tmp_path / "out"
    xml_out = tmp_path / "xml" / "rechnung.xml"

    output = main([str(payload_file), "--upload-dir", str(out_dir), "--xml-out", str(xml_out)])

    printed = json.loads(capsys.readouterr().out)
    assert printed == output
    assert printed["invoiceId"] == 42
    assert printed["invoiceFile"]["filename"] == "Rechnung_RE_2025_001_doc-42.pdf"
    assert (out_dir / "Rechnung_RE_2025_001_doc-42.pdf").read_bytes().startswith(b"%PDF")
    assert "xrechnung_3.0" in xml_out.read_text(encoding="utf-8")


def test_cli_rejects_non_object_payload(tmp_path: Path) -> None:
    payload_file = tmp_path / "payload.json"
    payload_file.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(SystemExit):
        main([str(payload_file), "--upload-dir", str(tmp_path / "out")])


def test_cli_missing_payload_file(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        main([str(tmp_path / "fehlt.json")])
