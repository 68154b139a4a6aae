from __future__ import annotations

from typing import Optional

from sqlalchemy import Index
from sqlalchemy.orm import relationship

from signpost_workflow.models.audit_mixin import utcnow
from signpost_workflow.models.db import SignpostBaseDBModel
from signpost_workflow.models.db import db


class WorkflowAnswerRecordModel(SignpostBaseDBModel):
    """Append-only log entry written whenever an instance leaves a question node."""

    __tablename__ = "signpost_workflow_answer_record"
    __table_args__ = (
        Index("ix_workflow_answer_record_instance_id", "instance_id"),
        Index("ix_workflow_answer_record_node_id", "node_id"),
        Index("ix_workflow_answer_record_answer_option_id", "answer_option_id"),
    )
    __allow_unmapped__ = True

    id: int = db.Column(db.Integer, primary_key=True)
    instance_id: int = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_instance.id"),
        nullable=False,
    )
    node_id: int = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_node.id"),
        nullable=False,
    )
    answer_option_id: Optional[int] = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_answer_option.id"),
        nullable=True,
    )
    answer_value_key: Optional[str] = db.Column(db.String(255), nullable=True)
    free_text_note: Optional[str] = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    instance = relationship("WorkflowInstanceModel", back_populates="answers")

    def serialized(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "node_id": self.node_id,
            "answer_option_id": self.answer_option_id,
            "answer_value_key": self.answer_value_key,
            "free_text_note": self.free_text_note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
