"""Fehlerklassen des Invoice File Builders."""

from __future__ import annotations

from typing import Optional


class InvoiceFileError(RuntimeError):
    pass


class TemplateInvalid(InvoiceFileError):
    """Vorlage existiert, lässt sich aber nicht kompilieren."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Template {path} is invalid: {reason}")
        self.path = path
        self.reason = reason


class RenderFailed(InvoiceFileError):
    pass


class ProfileGenerationFailed(InvoiceFileError):
    def __init__(self, profile: str, message: str) -> None:
        super().__init__(f"{profile}: {message}")
        self.profile = profile


class ConversionFailed(ProfileGenerationFailed):
    """Ghostscript-Lauf (PDF/A-3) mit Fehler beendet."""

    def __init__(
        self,
        message: str,
        *,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__("zf:1:extended", message)
        self.returncode = returncode
        self.stderr = stderr
