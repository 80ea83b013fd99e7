import logging
import json
import sys
from typing import Any


class JSONFormatter(logging.Formatter):
    """
    Formatador de logs em JSON para facilitar ingestão por ferramentas de observabilidade (Datadog, CloudWatch, etc).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        # Campos extras da cascata (logger.info(..., extra={"cascata": {...}}))
        if hasattr(record, "cascata"):
            log_record["cascata"] = record.cascata  # type: ignore

        return json.dumps(log_record, default=str)


def setup_logging(json_logs: bool = True, level: int = logging.INFO):
    """
    Configura o logging raiz da aplicação (JSON em produção, texto no dev).
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    # Remove handlers existentes para evitar duplicação
    logger.handlers = []
    logger.addHandler(handler)

    # Configura loggers de bibliotecas específicas para reduzir ruído
    logging.getLogger("uvicorn.access").handlers = []  # Deixa o uvicorn usar o root logger
    logging.getLogger("uvicorn.error").handlers = []
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
