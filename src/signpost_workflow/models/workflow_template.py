from __future__ import annotations

import enum
from typing import Any, Optional

from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.orm import relationship, validates

from signpost_workflow.models.audit_mixin import AuditDateTimeMixin
from signpost_workflow.models.db import SignpostBaseDBModel
from signpost_workflow.models.db import db
from signpost_workflow.models.tenant_scoped import TenantScopedMixin


class ApprovalStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"


class WorkflowType(str, enum.Enum):
    PRIMARY = "PRIMARY"
    SUPPORTING = "SUPPORTING"
    MODULE = "MODULE"


class LandingCategory(str, enum.Enum):
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    ADMIN = "ADMIN"


# keep in sync with WorkflowTemplateModel __table_args__
UNIQUE_OVERRIDE_CONSTRAINT = "uq_workflow_template_tenant_source"

# Fields a tenant admin edits directly; changing any of them while APPROVED reverts to DRAFT.
EDITABLE_TEMPLATE_FIELDS = ("name", "description", "is_active", "colour_hex", "category", "workflow_type")


class WorkflowTemplateModel(TenantScopedMixin, SignpostBaseDBModel, AuditDateTimeMixin):
    """A named workflow definition owned by a tenant or by the global tenant."""

    __tablename__ = "signpost_workflow_template"
    __table_args__ = (
        UniqueConstraint("tenant_id", "source_template_id", name=UNIQUE_OVERRIDE_CONSTRAINT),
        Index("ix_workflow_template_approval_status", "approval_status"),
        Index("ix_workflow_template_source_template_id", "source_template_id"),
    )
    __allow_unmapped__ = True

    id: int = db.Column(db.Integer, primary_key=True)
    name: str = db.Column(db.String(255), nullable=False)
    description: Optional[str] = db.Column(db.Text, nullable=True)
    is_active: bool = db.Column(db.Boolean, default=True, nullable=False)
    colour_hex: Optional[str] = db.Column(db.String(32), nullable=True)
    category: str = db.Column(db.String(20), nullable=False, default=LandingCategory.PRIMARY.value)
    workflow_type: str = db.Column(db.String(20), nullable=False, default=WorkflowType.SUPPORTING.value)
    approval_status: str = db.Column(db.String(20), nullable=False, default=ApprovalStatus.DRAFT.value)
    approved_by: Optional[str] = db.Column(db.String(255), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    source_template_id: Optional[int] = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_template.id"),
        nullable=True,
    )
    last_edited_by: Optional[str] = db.Column(db.String(255), nullable=True)
    last_edited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    nodes = relationship(
        "WorkflowNodeModel",
        back_populates="template",
        order_by="WorkflowNodeModel.sort_order",
        lazy="select",
    )

    @validates("category")
    def validate_category(self, key: str, value: Any) -> str:
        return self.validate_enum_field(key, value, LandingCategory)

    @validates("workflow_type")
    def validate_workflow_type(self, key: str, value: Any) -> str:
        return self.validate_enum_field(key, value, WorkflowType)

    @validates("approval_status")
    def validate_approval_status(self, key: str, value: Any) -> str:
        return self.validate_enum_field(key, value, ApprovalStatus)

    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED.value

    def is_override(self) -> bool:
        return self.source_template_id is not None

    def revert_to_draft(self) -> None:
        self.approval_status = ApprovalStatus.DRAFT.value
        self.approved_by = None
        self.approved_at = None

    def serialized(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "colour_hex": self.colour_hex,
            "category": self.category,
            "workflow_type": self.workflow_type,
            "approval_status": self.approval_status,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "source_template_id": self.source_template_id,
            "last_edited_by": self.last_edited_by,
            "last_edited_at": self.last_edited_at.isoformat() if self.last_edited_at else None,
        }
