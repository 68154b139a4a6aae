from __future__ import annotations

import enum
from typing import Any, Optional

from sqlalchemy import Index
from sqlalchemy.orm import relationship, validates

from signpost_workflow.models.audit_mixin import AuditDateTimeMixin
from signpost_workflow.models.audit_mixin import utcnow
from signpost_workflow.models.db import SignpostBaseDBModel
from signpost_workflow.models.db import db
from signpost_workflow.models.tenant_scoped import TenantScopedMixin


class WorkflowInstanceStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class WorkflowInstanceModel(TenantScopedMixin, SignpostBaseDBModel, AuditDateTimeMixin):
    """One run of a workflow template.

    current_node_id is set exactly while the instance is ACTIVE. It is deliberately not a
    foreign key: nodes may be deleted under a running instance, which is then completed on
    the next read.
    """

    __tablename__ = "signpost_workflow_instance"
    __table_args__ = (
        Index("ix_workflow_instance_template_id", "template_id"),
        Index("ix_workflow_instance_status", "status"),
    )
    __allow_unmapped__ = True

    id: int = db.Column(db.Integer, primary_key=True)
    template_id: int = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_template.id"),
        nullable=False,
    )
    started_by: str = db.Column(db.String(255), nullable=False)
    status: str = db.Column(db.String(20), nullable=False, default=WorkflowInstanceStatus.ACTIVE.value)
    reference: Optional[str] = db.Column(db.String(255), nullable=True)
    category: Optional[str] = db.Column(db.String(255), nullable=True)
    current_node_id: Optional[int] = db.Column(db.Integer, nullable=True)
    final_action_key: Optional[str] = db.Column(db.String(64), nullable=True)
    # END node the run finished on, if any
    outcome_node_id: Optional[int] = db.Column(db.Integer, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    template = relationship("WorkflowTemplateModel", lazy="joined")
    answers = relationship(
        "WorkflowAnswerRecordModel",
        back_populates="instance",
        order_by="WorkflowAnswerRecordModel.id",
        lazy="select",
    )

    @validates("status")
    def validate_status(self, key: str, value: Any) -> str:
        return self.validate_enum_field(key, value, WorkflowInstanceStatus)

    def is_active(self) -> bool:
        return self.status == WorkflowInstanceStatus.ACTIVE.value

    def is_completed(self) -> bool:
        return self.status == WorkflowInstanceStatus.COMPLETED.value

    def mark_completed(self, action_key: str | None = None, outcome_node_id: int | None = None) -> None:
        self.status = WorkflowInstanceStatus.COMPLETED.value
        self.current_node_id = None
        self.completed_at = utcnow()
        if action_key is not None:
            self.final_action_key = action_key
        if outcome_node_id is not None:
            self.outcome_node_id = outcome_node_id

    def serialized(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "template_id": self.template_id,
            "started_by": self.started_by,
            "status": self.status,
            "reference": self.reference,
            "category": self.category,
            "current_node_id": self.current_node_id,
            "final_action_key": self.final_action_key,
            "outcome_node_id": self.outcome_node_id,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
