"""Rechnungsdatei aus einer JSON-Payload erzeugen (PDF + optional ZUGFeRD/XRechnung)."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable

from agents.invoicefile import make_invoice_file
from backend.core.config import Settings
from backend.core.logging import configure_logging


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build an invoice PDF from a payload")
    parser.add_argument("payload", type=Path, help="JSON-Datei mit der Rechnungs-Payload")
    parser.add_argument("--upload-dir", type=Path, help="Zielverzeichnis (überschreibt UPLOAD_DIR)")
    parser.add_argument("--xml-out", type=Path, help="ZUGFeRD-2/XRechnung-XML zusätzlich hierhin schreiben")
    parser.add_argument("--verbose", action="store_true", help="Zusätzliche Logs")
    parser.add_argument("--json-logs", action="store_true", help="Logs als JSON-Zeilen")
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> dict:
    args = parse_args(argv)
    settings = Settings()
    if args.upload_dir is not None:
        settings = settings.model_copy(update={"UPLOAD_DIR": str(args.upload_dir)})

    configure_logging(
        "DEBUG" if args.verbose else settings.log_level,
        json_output=args.json_logs or settings.log_json,
    )

    try:
        payload = json.loads(args.payload.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as err:
        raise SystemExit(f"Cannot read payload {args.payload}: {err}") from err
    if not isinstance(payload, dict):
        raise SystemExit("Payload must be a JSON object")

    result = make_invoice_file(payload, settings=settings)
    output = result.to_dict()

    if args.xml_out is not None and result.zugferd_payload:
        args.xml_out.parent.mkdir(parents=True, exist_ok=True)
        args.xml_out.write_text(result.zugferd_payload, encoding="utf-8")
        output["xmlOut"] = str(args.xml_out)

    print(json.dumps(output, indent=2, default=str))
    return output


if __name__ == "__main__":  # pragma: no cover
    main()
