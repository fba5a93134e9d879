"""Centralized logging configuration with PII redaction."""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional


class PIIRedactionFilter(logging.Filter):
    """Filter to redact PII (IBAN, e-mail, phone) from log messages."""

    def __init__(self):
        super().__init__()
        # IBAN pattern: 2 letters + 2 digits + up to 30 alphanumeric characters
        self.iban_pattern = re.compile(r'\b([A-Z]{2}\d{2}[A-Z0-9]{10,30})\b')
        self.email_pattern = re.compile(r'(\b\S+@\S+\.\S+\b)')
        # Phone pattern: optional +, digits, spaces, dashes, slashes
        self.phone_pattern = re.compile(r'(\+?\d[\d \-/]{6,}\d)')

    def redact(self, text: str) -> str:
        text = self.iban_pattern.sub(self._mask_iban, text)
        text = self.email_pattern.sub(self._mask_email, text)
        return self.phone_pattern.sub(self._mask_phone, text)

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact PII from log record message and string args."""
        if record.msg:
            record.msg = self.redact(str(record.msg))

        if isinstance(record.args, tuple) and record.args:
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True

    def _mask_iban(self, match) -> str:
        """Mask IBAN: keep country code, mask the rest."""
        iban = match.group(1)
        return iban[:2] + "*" * (len(iban) - 2)

    def _mask_email(self, match) -> str:
        """Mask email: show first char of user, keep domain."""
        email = match.group(1)
        if "@" not in email:
            return email
        user, domain = email.split("@", 1)
        masked_user = user[0] + "*" * (len(user) - 1) if len(user) > 1 else "*"
        return f"{masked_user}@{domain}"

    def _mask_phone(self, match) -> str:
        """Mask phone: show first 2 chars, mask the rest."""
        phone = match.group(1)
        return phone[:2] + "*" * (len(phone) - 2)


class JSONFormatter(logging.Formatter):
    """One JSON object per record with the invoice id as correlation field."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'invoice_id': getattr(record, 'invoice_id', None) or 'unknown',
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': record.getMessage(),
            'ts_utc': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        }
        if record.exc_info:
            log_entry['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with PII redaction applied."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, PIIRedactionFilter) for f in logger.filters):
        logger.addFilter(PIIRedactionFilter())
    return logger


def configure_logging(level: str = "INFO", json_output: bool = False,
                      stream: Optional[object] = None) -> logging.Handler:
    """Install a single redacting handler on the root logger."""
    handler = logging.StreamHandler(stream or sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    handler.addFilter(PIIRedactionFilter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if getattr(existing, "_invoicefile", False):
            root_logger.removeHandler(existing)
    handler._invoicefile = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())
    return handler
