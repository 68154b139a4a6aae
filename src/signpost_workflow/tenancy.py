from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Optional, cast

from flask import g, has_request_context, request

from signpost_workflow import config
from signpost_workflow.exceptions.api_error import ApiError

LOGGER = logging.getLogger(__name__)

_CONTEXT_TENANT_ID: ContextVar[Optional[str]] = ContextVar("signpost_tenant_id", default=None)

# Local flag to avoid warning spam outside Flask request context
_CONTEXT_WARNED_DEFAULT: ContextVar[bool] = ContextVar("signpost_warned_default_tenant", default=False)


def global_tenant_id() -> str:
    return config.current_setting("SIGNPOST_GLOBAL_TENANT_ID", config.global_tenant_id)


def default_tenant_id() -> str:
    return config.current_setting("SIGNPOST_DEFAULT_TENANT_ID", config.default_tenant_id)


def allow_missing_tenant_context() -> bool:
    return bool(config.current_setting("SIGNPOST_ALLOW_MISSING_TENANT_CONTEXT", config.allow_missing_tenant_context))


def is_global_tenant(tenant_id: str | None) -> bool:
    return tenant_id is not None and tenant_id == global_tenant_id()


def get_context_tenant_id() -> str | None:
    return _CONTEXT_TENANT_ID.get()


def clear_tenant_context() -> None:
    """Clear tenant context variables to prevent cross-request leakage."""
    _CONTEXT_TENANT_ID.set(None)
    _CONTEXT_WARNED_DEFAULT.set(False)


def _warn_default_once(message: str, tenant_id: str) -> None:
    """Warn once per Flask request (via g flag), otherwise once per execution context."""
    if has_request_context():
        if getattr(g, "_signpost_warned_default_tenant", False):
            return
        g._signpost_warned_default_tenant = True
        LOGGER.warning(message, tenant_id)
        return

    if _CONTEXT_WARNED_DEFAULT.get():
        return
    _CONTEXT_WARNED_DEFAULT.set(True)
    LOGGER.warning(message, tenant_id)


def get_tenant_id(*, warn_on_default: bool = True) -> str:
    """Return the tenant id for the current execution."""
    if has_request_context():
        tid = cast(Optional[str], getattr(g, "signpost_tenant_id", None))
        if tid:
            if get_context_tenant_id() != tid:
                _CONTEXT_TENANT_ID.set(tid)
            return tid

        ctx_tid = get_context_tenant_id()
        if ctx_tid:
            g.signpost_tenant_id = ctx_tid
            return ctx_tid

        if allow_missing_tenant_context():
            fallback = default_tenant_id()
            g.signpost_tenant_id = fallback
            _CONTEXT_TENANT_ID.set(fallback)
            if warn_on_default:
                _warn_default_once("No tenant id found in request context; defaulting to '%s'.", fallback)
            return fallback

        raise RuntimeError("Missing tenant id in request context.")

    ctx_tid = get_context_tenant_id()
    if ctx_tid:
        return ctx_tid

    if allow_missing_tenant_context():
        fallback = default_tenant_id()
        _CONTEXT_TENANT_ID.set(fallback)
        if warn_on_default:
            _warn_default_once("No tenant id found in non-request context; defaulting to '%s'.", fallback)
        return fallback

    raise RuntimeError("Missing tenant id in non-request context.")


def resolve_request_tenant() -> None:
    """before_request hook: copy the tenant header into g unless auth already set it."""
    if getattr(g, "signpost_tenant_id", None):
        return
    header = config.current_setting("SIGNPOST_TENANT_HEADER", config.tenant_header)
    tenant_id = (request.headers.get(header) or "").strip()
    if tenant_id:
        g.signpost_tenant_id = tenant_id
        _CONTEXT_TENANT_ID.set(tenant_id)


def ensure_tenant_exists(tenant_id: str | None) -> None:
    """Validate that the tenant row exists; raise if missing to enforce pre-provisioning."""
    if not tenant_id:
        raise RuntimeError("Missing tenant id. Ensure the request carries a tenant.")

    from signpost_workflow.models.db import db
    from signpost_workflow.models.tenant import TenantModel

    tenant = db.session.get(TenantModel, tenant_id)

    if tenant is None:
        raise RuntimeError(f"Tenant '{tenant_id}' does not exist. Create it before running workflows.")


def create_tenant_if_not_exists(
    tenant_id: str,
    name: str | None = None,
    slug: str | None = None,
) -> None:
    """Create a tenant row if it does not exist. Slug defaults to the tenant id."""
    if not tenant_id or not tenant_id.strip():
        return
    tenant_id = tenant_id.strip()
    display_name = (name or tenant_id).strip()
    slug_value = (slug or tenant_id).strip()

    from signpost_workflow.models.db import db
    from signpost_workflow.models.tenant import TenantModel

    if db.session.get(TenantModel, tenant_id) is not None:
        return
    tenant = TenantModel(
        id=tenant_id,
        name=display_name,
        slug=slug_value,
        created_by="system",
        modified_by="system",
    )
    db.session.add(tenant)
    db.session.commit()
    LOGGER.info("Created tenant row for tenant_id=%s name=%s slug=%s", tenant_id, display_name, slug_value)


def require_known_tenant(tenant_id: str | None) -> str:
    """Service guard: the tenant must be given and provisioned. Unknown tenants read as not found."""
    if not tenant_id:
        raise ApiError("tenant_required", "Tenant context required", status_code=400)
    try:
        ensure_tenant_exists(tenant_id)
    except RuntimeError as exception:
        raise ApiError("not_found", "Tenant not found", status_code=404) from exception
    return tenant_id
