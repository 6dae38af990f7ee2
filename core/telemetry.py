"""
Logging estruturado e telemetria

A redação cobre a mensagem e os campos passados em ``extra=`` (erros do
httpx trazem a URL da Bot API com o token).
"""

import logging
import os
import re
from logging.handlers import RotatingFileHandler

from pythonjsonlogger import jsonlogger

from core.config import settings

SERVICE_NAME = "vocab-review-engine"
REDACTED = "[REDACTED]"

# Padrões de secrets para redação
SECRET_PATTERNS = [
    re.compile(r"bot\d{8,10}:[A-Za-z0-9_-]{35}"),  # URL da Bot API
    re.compile(r"\d{8,10}:[A-Za-z0-9_-]{35}"),  # Telegram token
    re.compile(r"[A-Za-z0-9_\-]{40,}"),  # Chaves genéricas longas
]

# Atributos padrão do LogRecord; o resto veio de ``extra=``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def redact(value: str) -> str:
    for pattern in SECRET_PATTERNS:
        value = pattern.sub(REDACTED, value)
    return value


class RedactSecrets(logging.Filter):
    """Filtro para remover secrets da mensagem e dos campos extras"""

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        for key, value in list(record.__dict__.items()):
            if key not in _RECORD_ATTRS and isinstance(value, str):
                setattr(record, key, redact(value))
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Formatter JSON customizado"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = record.created
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME
        log_record["env"] = settings.APP_ENV
        log_record["logger"] = record.name


def _build_handler(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(CustomJsonFormatter())
    handler.addFilter(RedactSecrets())
    return handler


logger = logging.getLogger("vocab_review_engine")
logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger.addHandler(_build_handler(logging.StreamHandler()))

# Arquivo rotativo apenas quando LOG_FILE estiver configurado
if settings.LOG_FILE:
    os.makedirs(os.path.dirname(os.path.abspath(settings.LOG_FILE)), exist_ok=True)
    logger.addHandler(
        _build_handler(
            RotatingFileHandler(
                settings.LOG_FILE,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
        )
    )
