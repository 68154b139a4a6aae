from __future__ import annotations

import logging
import sys

from flask import g, has_request_context

from signpost_workflow import config
from signpost_workflow.tenancy import get_context_tenant_id

LOG_FORMAT = "%(signpost_tenant_id)s - %(asctime)s %(levelname)s [%(name)s] %(message)s"

# Libraries whose records must reach the root handlers (and so the tenant formatter).
_PROPAGATED_LOGGERS = ("sqlalchemy", "sqlalchemy.engine", "alembic", "werkzeug")


def _resolve_tenant_id_for_logging(record: logging.LogRecord) -> str:
    if has_request_context():
        tid = getattr(g, "signpost_tenant_id", None)
        if tid:
            return tid
    return get_context_tenant_id() or "system"


class TenantContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "signpost_tenant_id", None):
            record.signpost_tenant_id = _resolve_tenant_id_for_logging(record)
        return True


class TenantAwareFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if not getattr(record, "signpost_tenant_id", None):
            record.signpost_tenant_id = _resolve_tenant_id_for_logging(record)
        return super().format(record)


def _apply_formatter_to_all_handlers(log_formatter: logging.Formatter) -> None:
    seen = set()
    for handler in logging.getLogger().handlers:
        if id(handler) in seen:
            continue
        handler.setFormatter(log_formatter)
        seen.add(id(handler))

    for logger in logging.root.manager.loggerDict.values():
        if not isinstance(logger, logging.Logger):
            continue
        for handler in logger.handlers:
            if id(handler) in seen:
                continue
            handler.setFormatter(log_formatter)
            seen.add(id(handler))


def configure_logging(app) -> None:
    """Install the tenant-aware formatter on every handler and route library loggers to root."""
    level_name = str(app.config.get("SIGNPOST_LOG_LEVEL") or config.log_level()).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stdout))
    for handler in root.handlers:
        if not any(isinstance(f, TenantContextFilter) for f in handler.filters):
            handler.addFilter(TenantContextFilter())

    for name in _PROPAGATED_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True
    if app.config.get("SQLALCHEMY_ECHO"):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    _apply_formatter_to_all_handlers(TenantAwareFormatter(LOG_FORMAT))
