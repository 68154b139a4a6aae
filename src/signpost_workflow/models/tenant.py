from __future__ import annotations

import enum

from sqlalchemy import func

from signpost_workflow.models.db import SignpostBaseDBModel
from signpost_workflow.models.db import db


class TenantStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DELETED = "DELETED"


class TenantModel(SignpostBaseDBModel):
    """A practice (or the reserved global tenant) owning workflow templates."""

    __tablename__ = "signpost_tenant"

    id: str = db.Column(db.String(255), primary_key=True)
    name: str = db.Column(db.String(255), nullable=False)
    slug: str = db.Column(db.String(255), unique=True, index=True, nullable=False)
    status: TenantStatus = db.Column(
        db.Enum(TenantStatus), default=TenantStatus.ACTIVE, nullable=False
    )

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    modified_at = db.Column(
        db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by: str = db.Column(db.String(255), nullable=False)
    modified_by: str = db.Column(db.String(255), nullable=False)

    def __repr__(self):
        return f"<TenantModel(name={self.name}, slug={self.slug}, status={self.status})>"
