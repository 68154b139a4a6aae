from __future__ import annotations

from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.orm import relationship

from signpost_workflow.models.audit_mixin import AuditDateTimeMixin
from signpost_workflow.models.db import SignpostBaseDBModel
from signpost_workflow.models.db import db

DEFAULT_LINK_LABEL = "Open linked workflow"


class WorkflowNodeLinkModel(SignpostBaseDBModel, AuditDateTimeMixin):
    """Ordered cross-reference from a node to a different workflow template."""

    __tablename__ = "signpost_workflow_node_link"
    __table_args__ = (
        UniqueConstraint("node_id", "template_id", name="uq_workflow_node_link_node_template"),
        Index("ix_workflow_node_link_node_id", "node_id"),
        Index("ix_workflow_node_link_template_id", "template_id"),
    )
    __allow_unmapped__ = True

    id: int = db.Column(db.Integer, primary_key=True)
    node_id: int = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_node.id"),
        nullable=False,
    )
    # The linked (target) template, never the template owning node_id.
    template_id: int = db.Column(
        db.Integer,
        db.ForeignKey("signpost_workflow_template.id"),
        nullable=False,
    )
    label: str = db.Column(db.String(255), nullable=False, default=DEFAULT_LINK_LABEL)
    sort_order: int = db.Column(db.Integer, nullable=False, default=0)

    node = relationship("WorkflowNodeModel", back_populates="workflow_links")

    def serialized(self) -> dict:
        return {
            "id": self.id,
            "node_id": self.node_id,
            "template_id": self.template_id,
            "label": self.label,
            "sort_order": self.sort_order,
        }
