"""Fixtures für den Invoice File Builder (ohne Ghostscript, ohne Netzwerk)."""

from __future__ import annotations

import copy
import io
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Mapping

import pikepdf
import pytest

from backend.core.config import Settings

FIXED_NOW = datetime(2025, 3, 7, 9, 30, tzinfo=timezone.utc)

SAMPLE_PAYLOAD = {
    "id": 42,
    "documentId": "doc-42",
    "invoiceNumber": "RE-2025/001",
    "date": "2025-01-15",
    "dueDate": "2025-01-29",
    "created_at": "2025-01-15T10:00:00Z",
    "enabledWebhook": 1,
    "owner": {
        "id": "owner-1",
        "name": "Muster GmbH",
        "street": "Hauptstraße 1",
        "postcode": "10115",
        "city": "Berlin",
        "country": "DE",
        "email": "rechnung@muster.example",
    },
    "debtor": {
        "id": "debtor-7",
        "number": "K-1000",
        "name": "Kunde AG",
        "street": "Nebenweg 2",
        "postcode": "80331",
        "city": "München",
        "country": "DE",
        "email": "einkauf@kunde.example",
    },
    "data": {
        "currency": "EUR",
        "serviceDate": "2025-01-10",
        "paymentterm": "Zahlbar innerhalb von 14 Tagen ohne Abzug.",
        "sellerName": "Muster GmbH",
        "valueAddedTaxId": "DE123456789",
        "sellerIban": "DE89370400440532013000",
        "sellerBankCardHolder": "Muster GmbH",
        "buyerReference": "04011000-12345-34",
        "invoicePositions": [
            {"name": "Beratung", "quantity": 2, "price": "100.00", "vat": 19},
            {"name": "Fachbuch", "quantity": 1, "price": 20, "vat": 7, "discount": 10},
        ],
    },
}


def blank_pdf(pages: int = 1) -> bytes:
    pdf = pikepdf.new()
    for _ in range(pages):
        pdf.add_blank_page(page_size=(595, 842))
    buffer = io.BytesIO()
    pdf.save(buffer)
    return buffer.getvalue()


class FakeRenderer:
    """Liefert leere PDFs und merkt sich die Aufrufe."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[dict] = []

    def render_invoice(self, payload: Mapping[str, Any], *, included_letter: bool = False) -> bytes:
        self.calls.append(
            {
                "included_letter": included_letter,
                "template": copy.deepcopy(payload.get("data", {}).get("template")),
            }
        )
        if self.fail:
            raise RuntimeError("renderer exploded")
        return blank_pdf(2 if included_letter else 1)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def settings(upload_dir: Path) -> Settings:
    return Settings(UPLOAD_DIR=str(upload_dir), GHOSTSCRIPT_BINARY="gs-test")


@pytest.fixture
def payload() -> dict:
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def make_pdf():
    return blank_pdf


@pytest.fixture
def renderer_factory():
    return FakeRenderer
