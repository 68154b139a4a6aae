from __future__ import annotations

import enum
from typing import Any, Optional

from sqlalchemy import Index
from sqlalchemy.orm import relationship, validates

from signpost_workflow.models.db import SignpostBaseDBModel
from signpost_workflow.models.db import db


class WorkflowNodeType(str, enum.Enum):
    INSTRUCTION = "INSTRUCTION"
    QUESTION = "QUESTION"
    PANEL = "PANEL"
    END = "END"


DEFAULT_NODE_TITLES = {
    WorkflowNodeType.INSTRUCTION.value: "New instruction",
    WorkflowNodeType.QUESTION.value: "New question",
    WorkflowNodeType.PANEL.value: "New panel",
    WorkflowNodeType.END.value: "New outcome",
}


def normalize_action_key(value: Any) -> str | None:
    """Blank and the form placeholder "NONE" both mean no action."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.upper() == "NONE":
        return None
    return text


class WorkflowNodeModel(SignpostBaseDBModel):
    """One step of a workflow template graph."""

    __tablename__ = "signpost_workflow_node"
    __table_args__ = (
        Index("ix_workflow_node_template_id", "template_id"),
        Index("ix_workflow_node_template_sort", "template_id", "sort_order"),
    )
    __allow_unmapped__ = True

    id: int = db.Column(db.Integer, primary_key=True)
    template_id: int = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_template.id"),
        nullable=False,
    )
    node_type: str = db.Column(db.String(20), nullable=False, default=WorkflowNodeType.INSTRUCTION.value)
    title: str = db.Column(db.String(255), nullable=False)
    body: Optional[str] = db.Column(db.Text, nullable=True)
    sort_order: int = db.Column(db.Integer, nullable=False, default=0)
    is_start: bool = db.Column(db.Boolean, nullable=False, default=False)
    action_key: Optional[str] = db.Column(db.String(64), nullable=True)
    position_x: Optional[int] = db.Column(db.Integer, nullable=True)
    position_y: Optional[int] = db.Column(db.Integer, nullable=True)
    badges: list[str] | None = db.Column(db.JSON, nullable=True)
    style: dict | None = db.Column(db.JSON, nullable=True)

    template = relationship("WorkflowTemplateModel", back_populates="nodes")
    answer_options = relationship(
        "WorkflowAnswerOptionModel",
        foreign_keys="WorkflowAnswerOptionModel.node_id",
        back_populates="node",
        order_by="WorkflowAnswerOptionModel.id",
        lazy="select",
    )
    workflow_links = relationship(
        "WorkflowNodeLinkModel",
        back_populates="node",
        order_by="WorkflowNodeLinkModel.sort_order",
        lazy="select",
    )

    @validates("node_type")
    def validate_node_type(self, key: str, value: Any) -> str:
        return self.validate_enum_field(key, value, WorkflowNodeType)

    def is_type(self, node_type: WorkflowNodeType) -> bool:
        return self.node_type == node_type.value

    def serialized(self, include_options: bool = False) -> dict:
        result = {
            "id": self.id,
            "template_id": self.template_id,
            "node_type": self.node_type,
            "title": self.title,
            "body": self.body,
            "sort_order": self.sort_order,
            "is_start": self.is_start,
            "action_key": self.action_key,
            "position_x": self.position_x,
            "position_y": self.position_y,
            "badges": list(self.badges or []),
            "style": self.style,
        }
        if include_options:
            result["answer_options"] = [o.serialized() for o in self.answer_options]
            result["workflow_links"] = [link.serialized() for link in self.workflow_links]
        return result
