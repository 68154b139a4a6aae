from __future__ import annotations

from typing import Optional

from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.orm import relationship

from signpost_workflow.models.db import SignpostBaseDBModel
from signpost_workflow.models.db import db


class WorkflowAnswerOptionModel(SignpostBaseDBModel):
    """A labelled edge leaving a node. A null next_node_id is a terminal branch."""

    __tablename__ = "signpost_workflow_answer_option"
    __table_args__ = (
        UniqueConstraint("node_id", "value_key", name="uq_workflow_answer_option_node_value_key"),
        Index("ix_workflow_answer_option_node_id", "node_id"),
        Index("ix_workflow_answer_option_next_node_id", "next_node_id"),
    )
    __allow_unmapped__ = True

    id: int = db.Column(db.Integer, primary_key=True)
    node_id: int = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_node.id"),
        nullable=False,
    )
    label: str = db.Column(db.String(255), nullable=False)
    value_key: str = db.Column(db.String(255), nullable=False)
    description: Optional[str] = db.Column(db.Text, nullable=True)
    next_node_id: Optional[int] = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_node.id"),
        nullable=True,
    )
    action_key: Optional[str] = db.Column(db.String(64), nullable=True)
    # canvas anchor hints, ignored by the runner
    source_handle: Optional[str] = db.Column(db.String(64), nullable=True)
    target_handle: Optional[str] = db.Column(db.String(64), nullable=True)

    node = relationship(
        "WorkflowNodeModel",
        foreign_keys=[node_id],
        back_populates="answer_options",
    )

    def serialized(self) -> dict:
        return {
            "id": self.id,
            "node_id": self.node_id,
            "label": self.label,
            "value_key": self.value_key,
            "description": self.description,
            "next_node_id": self.next_node_id,
            "action_key": self.action_key,
            "source_handle": self.source_handle,
            "target_handle": self.target_handle,
        }
