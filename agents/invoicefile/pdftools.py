"""PDF-Nachbearbeitung mit pikepdf (Seitenverkettung, Normalisierung)."""

from __future__ import annotations

import io
from contextlib import ExitStack
from pathlib import Path
from typing import BinaryIO, Iterable, Union

import pikepdf

PdfSource = Union[Path, str, bytes]


def _open(source: PdfSource) -> pikepdf.Pdf:
    if isinstance(source, bytes):
        return pikepdf.Pdf.open(io.BytesIO(source))
    return pikepdf.Pdf.open(str(source))


def concatenate(sources: Iterable[PdfSource], output: Union[Path, str, BinaryIO]) -> int:
    """Verkettet alle Seiten der Quellen in ``output``; liefert die Seitenzahl.

    Eine einzelne Quelle ergibt ein neu geschriebenes, normalisiertes PDF.
    Quelle und Ziel dürfen nicht identisch sein.
    """

    with ExitStack() as stack:
        target = stack.enter_context(pikepdf.new())
        for source in sources:
            pdf = stack.enter_context(_open(source))
            target.pages.extend(pdf.pages)
        target.save(str(output) if isinstance(output, (Path, str)) else output)
        return len(target.pages)


def concatenate_bytes(sources: Iterable[PdfSource]) -> bytes:
    buffer = io.BytesIO()
    concatenate(sources, buffer)
    return buffer.getvalue()


def page_count(source: PdfSource) -> int:
    with _open(source) as pdf:
        return len(pdf.pages)
