"""Signpost workflow configuration from environment."""
from __future__ import annotations

import os

from flask import current_app, has_app_context


def _get(key: str, default: str | None = None) -> str | None:
    value = os.environ.get(key)
    if value is not None and value != "":
        return value.strip()
    return default


def _env_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def database_uri() -> str:
    return _get("SIGNPOST_DATABASE_URI") or "sqlite:///signpost_workflow.db"


def sqlalchemy_echo() -> bool:
    return _env_truthy(_get("SIGNPOST_SQLALCHEMY_ECHO"))


def global_tenant_id() -> str:
    """Reserved tenant that owns the shared global default templates."""
    return _get("SIGNPOST_GLOBAL_TENANT_ID") or "global-default"


def default_tenant_id() -> str:
    """Tenant used when a request carries none and the fallback is allowed."""
    return _get("SIGNPOST_DEFAULT_TENANT_ID") or "default"


def allow_missing_tenant_context() -> bool:
    return _env_truthy(_get("SIGNPOST_ALLOW_MISSING_TENANT_CONTEXT"))


def tenant_header() -> str:
    return _get("SIGNPOST_TENANT_HEADER") or "X-Signpost-Tenant"


def reset_approval_on_graph_edit() -> bool:
    """When on, node/option/link edits to an APPROVED template also revert it to DRAFT."""
    return _env_truthy(_get("SIGNPOST_RESET_APPROVAL_ON_GRAPH_EDIT"))


def log_level() -> str:
    return (_get("SIGNPOST_LOG_LEVEL") or "INFO").upper()


def create_tables() -> bool:
    """Run create_all() at start-up. Turn off when the schema is managed with Alembic."""
    value = _get("SIGNPOST_CREATE_TABLES")
    return True if value is None else _env_truthy(value)


def flask_config() -> dict:
    """Settings copied into app.config by create_app()."""
    return {
        "SQLALCHEMY_DATABASE_URI": database_uri(),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "SQLALCHEMY_ECHO": sqlalchemy_echo(),
        # Bound values can carry clinical notes; keep them out of error messages.
        "SQLALCHEMY_ENGINE_OPTIONS": {"hide_parameters": True},
        "SIGNPOST_GLOBAL_TENANT_ID": global_tenant_id(),
        "SIGNPOST_DEFAULT_TENANT_ID": default_tenant_id(),
        "SIGNPOST_ALLOW_MISSING_TENANT_CONTEXT": allow_missing_tenant_context(),
        "SIGNPOST_TENANT_HEADER": tenant_header(),
        "SIGNPOST_RESET_APPROVAL_ON_GRAPH_EDIT": reset_approval_on_graph_edit(),
        "SIGNPOST_LOG_LEVEL": log_level(),
        "SIGNPOST_CREATE_TABLES": create_tables(),
    }


def current_setting(key: str, fallback):
    """Read a setting from the active Flask app, falling back to the environment getter."""
    if has_app_context() and key in current_app.config:
        return current_app.config[key]
    return fallback()
