from sqlalchemy.orm import declared_attr

from signpost_workflow.models.db import db


class TenantScopedMixin:
    @declared_attr
    def tenant_id(cls):  # noqa: N805
        return db.Column(db.String(255), db.ForeignKey("signpost_tenant.id"), nullable=False, index=True)
