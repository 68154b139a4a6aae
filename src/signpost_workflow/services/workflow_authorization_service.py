from __future__ import annotations

from typing import Any

from flask import g

from signpost_workflow import tenancy


class WorkflowAuthorizationService:
    """Admin and actor checks for workflow routes.

    Authentication lives outside this package; whatever authenticates the request puts
    an object on g.user with a username and, optionally, is_admin / admin_tenant_ids.
    """

    @staticmethod
    def current_user() -> Any | None:
        return getattr(g, "user", None)

    @classmethod
    def current_username(cls) -> str | None:
        user = cls.current_user()
        username = getattr(user, "username", None) if user is not None else None
        return username or None

    @classmethod
    def is_tenant_admin(cls, tenant_id: str | None, user: Any | None = None) -> bool:
        user = user if user is not None else cls.current_user()
        if user is None or not tenant_id:
            return False
        if getattr(user, "is_admin", False):
            return True
        admin_tenant_ids = getattr(user, "admin_tenant_ids", None) or ()
        return tenant_id in admin_tenant_ids

    @classmethod
    def can_edit_template(cls, template_tenant_id: str | None, user: Any | None = None) -> bool:
        """Global templates are editable only by admins of the global tenant."""
        if tenancy.is_global_tenant(template_tenant_id):
            return cls.is_tenant_admin(tenancy.global_tenant_id(), user)
        return cls.is_tenant_admin(template_tenant_id, user)
