"""Auflösung und Prüfung kundenspezifischer Rechnungsvorlagen (Jinja2)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from backend.core.logging import get_logger

from .amounts import AmountSummary, calculate_amount, format_money
from .errors import TemplateInvalid
from .payload import get_in, invoice_positions, set_in, to_str

VARIANT_JINJA = "jinja"
VARIANT_LEGACY = "legacy"

logger = get_logger(__name__)


def _datefmt_filter(value: Any, fmt: str = "%d.%m.%Y") -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime(fmt)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime(fmt)
        except ValueError:
            return value
    return ""


def build_environment(search_path: Optional[Path] = None) -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(search_path)) if search_path else None,
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        cache_size=0,
    )
    env.filters["money"] = format_money
    env.filters["datefmt"] = _datefmt_filter
    env.globals["Decimal"] = Decimal
    return env


def template_file_path(
    upload_dir: Path, label: Any, storage_dir: str = "filestorage"
) -> Optional[Path]:
    if not isinstance(label, str) or not label.strip():
        return None
    return Path(upload_dir) / storage_dir / label.strip()


def has_template_file(path: Optional[Path]) -> bool:
    return bool(path) and path.is_file() and os.access(path, os.R_OK)


def compute_amounts(payload: Mapping[str, Any]) -> AmountSummary:
    return calculate_amount(
        invoice_positions(payload),
        get_in(payload, ["data", "totaldiscount", "value"]),
        get_in(payload, ["data", "deduction"]),
        get_in(payload, ["data", "subTotalsDefinitions"]),
    )


def template_context(payload: Mapping[str, Any]) -> Dict[str, Any]:
    context = dict(payload)
    context["amounts"] = compute_amounts(payload)
    context["currency"] = to_str(get_in(payload, ["data", "currency"])) or "EUR"
    return context


def render_template(path: Path, payload: Mapping[str, Any]) -> str:
    template = build_environment(path.parent).get_template(path.name)
    return template.render(template_context(payload))


def validate_template(path: Path, payload: Optional[Mapping[str, Any]] = None) -> None:
    """Kompiliert die Vorlage; Syntax- und Lesefehler → ``TemplateInvalid``.

    Mit ``payload`` wird zusätzlich vorab gerendert, damit Zugriffe auf
    Felder, die diese Rechnung nicht enthält, vor der PDF-Erzeugung auffallen.
    """

    try:
        source = path.read_text(encoding="utf-8")
        build_environment(path.parent).parse(source)
    except (OSError, UnicodeDecodeError, TemplateError) as err:
        raise TemplateInvalid(str(path), str(err)) from err

    if payload is None:
        return
    try:
        render_template(path, payload)
    except (TemplateError, TypeError, ValueError) as err:
        raise TemplateInvalid(str(path), str(err)) from err


@dataclass(frozen=True, slots=True)
class TemplateResolution:
    variant: str
    path: Optional[Path]
    has_template_file: bool
    can_render: bool
    error: Optional[TemplateInvalid] = None


class TemplateResolver:
    """Schreibt ``data.template.{variant,path,output}`` für den Renderer."""

    def __init__(self, upload_dir: Path, storage_dir: str = "filestorage") -> None:
        self.upload_dir = Path(upload_dir)
        self.storage_dir = storage_dir

    def resolve(self, payload: MutableMapping[str, Any], output: Path, label: Any) -> TemplateResolution:
        path = template_file_path(self.upload_dir, label, self.storage_dir)
        found = has_template_file(path)
        error: Optional[TemplateInvalid] = None

        # Das Vorab-Rendern sieht dieselben Vorlagenfelder wie der Renderer
        set_in(payload, ["data", "template", "variant"], VARIANT_JINJA if found else VARIANT_LEGACY)
        set_in(payload, ["data", "template", "path"], str(path) if found else None)
        set_in(payload, ["data", "template", "output"], str(output))

        if found:
            try:
                validate_template(path, payload)
            except TemplateInvalid as err:
                logger.warning("Template %s rejected, using legacy layout: %s", path, err.reason)
                error = err
                found = False

        variant = VARIANT_JINJA if found else VARIANT_LEGACY
        set_in(payload, ["data", "template", "variant"], variant)
        set_in(payload, ["data", "template", "path"], str(path) if found else None)

        return TemplateResolution(
            variant=variant,
            path=path if found else None,
            has_template_file=found,
            can_render=True,
            error=error,
        )
