import contextvars
import logging
import sys
import uuid

from pythonjsonlogger import jsonlogger

# Per-request correlation fields
ctx_request_id = contextvars.ContextVar("request_id", default=None)
ctx_actor = contextvars.ContextVar("actor", default=None)


class ContextFilter(logging.Filter):
    """Copy the correlation context onto every record."""

    def filter(self, record):
        record.request_id = ctx_request_id.get() or "-"
        record.actor = ctx_actor.get() or "-"
        return True


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        # Drop the placeholders the filter adds outside a request.
        for key in ("request_id", "actor"):
            if log_record.get(key) in (None, "-"):
                log_record.pop(key, None)


def setup_logger(log_format: str = "text", log_level: str = "INFO"):
    """Configure the root logger."""
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())

    if log_format.lower() == "json":
        formatter = CorrelationJsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(actor)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s %(actor)s] %(message)s"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root_logger


def new_request_id(incoming=None):
    """Honour a caller-supplied X-Request-ID, otherwise mint one."""
    if incoming and len(incoming) <= 128:
        return incoming
    return uuid.uuid4().hex


def bind_context(request_id=None, actor=None):
    """Set correlation fields for the current task; returns tokens for ``reset_context``."""
    return ctx_request_id.set(request_id), ctx_actor.set(actor)


def reset_context(tokens):
    request_token, actor_token = tokens
    ctx_request_id.reset(request_token)
    ctx_actor.reset(actor_token)
