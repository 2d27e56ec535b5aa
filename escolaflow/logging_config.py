"""Logging setup with masking of contact numbers and credentials."""
import logging
import re
import sys

from .config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class SensitiveDataFilter(logging.Filter):
    """Mask phone numbers and API keys before a record is emitted."""

    SENSITIVE_PATTERNS = [
        (re.compile(r"(key=)[^&\s\"']+", re.IGNORECASE), r"\1***"),
        (re.compile(r"(apikey[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", re.IGNORECASE), r"\1***"),
        (re.compile(r"(?<![\w-])\+?\d{10,13}(?![\w-])"), None),
    ]

    @staticmethod
    def _mask_phone(match):
        digits = re.sub(r"\D", "", match.group(0))
        return digits[:2] + "*" * (len(digits) - 4) + digits[-2:]

    def mask(self, text: str) -> str:
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            text = pattern.sub(replacement or self._mask_phone, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self.mask(v) if isinstance(v, str) else v for k, v in record.args.items()}
            else:
                record.args = tuple(self.mask(a) if isinstance(a, str) else a for a in record.args)
        return True


def setup_logging(level: str = None) -> logging.Logger:
    logger = logging.getLogger("escolaflow")
    logger.setLevel((level or LOG_LEVEL).upper())
    if not any(getattr(h, "_escolaflow", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(SensitiveDataFilter())
        handler._escolaflow = True
        logger.addHandler(handler)
    return logger
