import json
import logging
import re
from typing import Any

from .settings import Settings

_SECRET_KV = re.compile(r"(pass(word|phrase)?|token|secret|api[_-]?key)\s*=\s*([^\s,;]+)", re.IGNORECASE)
_BEARER = re.compile(r"(Bearer)\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE)
_PEM_PRIV = re.compile(
    r"-----BEGIN (?:RSA |EC )?PRIVATE KEY-----.*?-----END (?:RSA |EC )?PRIVATE KEY-----",
    re.DOTALL | re.IGNORECASE,
)

# Operator-facing severity tags, mapped onto logging levels.
STATUS_LEVELS = {
    "info": logging.INFO,
    "ok": logging.INFO,
    "warning": logging.WARNING,
    "critical": logging.CRITICAL,
}


class _Redact(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            # Render args first so secrets passed as %s arguments are covered too.
            msg = record.getMessage()
            record.args = None
            msg = _PEM_PRIV.sub("[REDACTED-PRIVATE-KEY]", msg)
            msg = _SECRET_KV.sub(lambda m: f"{m.group(1)}=[REDACTED]", msg)
            msg = _BEARER.sub(lambda m: f"{m.group(1)} [REDACTED]", msg)
            record.msg = msg
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        status = getattr(record, "status", None)
        if status:
            payload["status"] = status
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def status(logger: logging.Logger, kind: str, message: str, *args: Any) -> None:
    """Log an operator status line tagged info/ok/warning/critical."""
    level = STATUS_LEVELS.get(kind, logging.INFO)
    logger.log(level, "[%s] " + message, kind.upper(), *args, extra={"status": kind})


def setup_logging(settings: Settings, json_mode: bool | None = None) -> None:
    root = logging.getLogger()
    if getattr(root, "_certrotate_configured", False):
        return

    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    root.setLevel(level)

    if json_mode is None:
        json_mode = settings.LOG_JSON

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(_Redact())
    handler.setFormatter(_JsonFormatter() if json_mode else logging.Formatter("%(message)s"))
    root.addHandler(handler)

    setattr(root, "_certrotate_configured", True)
