# src/libs/holdings-engine/holdings_engine/logging_utils.py
import logging
import os
import sys
import uuid
from contextvars import ContextVar
from pythonjsonlogger import jsonlogger

# Holds the correlation ID for the mutation or tool run currently in flight.
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="<not-set>")


class CorrelationIdFilter(logging.Filter):
    """
    A logging filter that injects the current correlation ID and the service
    identity into every log record.
    """
    def filter(self, record):
        record.correlation_id = correlation_id_var.get()
        record.service = os.getenv("SERVICE_NAME", "holdings-engine")
        record.environment = os.getenv("ENVIRONMENT", "local")
        return True


def setup_logging(level: int = logging.INFO):
    """
    Configures the root logger for structured JSON logging so that every
    logger in the process, libraries included, inherits the same format.
    """
    root_logger = logging.getLogger()

    # Clear any existing handlers to prevent duplicate logs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s %(service)s %(environment)s %(correlation_id)s",
        rename_fields={
            "asctime": "timestamp",
            "levelname": "level",
            "name": "logger"
        }
    )
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger.addHandler(handler)


def generate_correlation_id(prefix: str) -> str:
    """
    Generates a new correlation ID with a caller-specific prefix (e.g. 'REBUILD').
    """
    return f"{prefix}:{uuid.uuid4()}"
