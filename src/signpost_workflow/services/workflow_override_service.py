from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from signpost_workflow import tenancy
from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.models.audit_mixin import utcnow
from signpost_workflow.models.db import db
from signpost_workflow.models.workflow_answer_option import WorkflowAnswerOptionModel
from signpost_workflow.models.workflow_node import WorkflowNodeModel
from signpost_workflow.models.workflow_node_link import WorkflowNodeLinkModel
from signpost_workflow.models.workflow_template import UNIQUE_OVERRIDE_CONSTRAINT
from signpost_workflow.models.workflow_template import ApprovalStatus
from signpost_workflow.models.workflow_template import WorkflowTemplateModel
from signpost_workflow.services.workflow_template_service import WorkflowTemplateService

logger = logging.getLogger(__name__)


class WorkflowOverrideService:
    """Tenant copies of global templates, and the approval gate in front of them."""

    @classmethod
    def find_override(cls, tenant_id: str, global_template_id: int) -> WorkflowTemplateModel | None:
        return WorkflowTemplateModel.query.filter_by(
            tenant_id=tenant_id, source_template_id=global_template_id
        ).first()

    @staticmethod
    def copy_graph(source: WorkflowTemplateModel, target: WorkflowTemplateModel) -> dict[int, int]:
        """Copy nodes, edges and links of source into target. Returns the old->new node id map.

        Nodes go first so every edge destination has a new id before edges are copied.
        Link targets are other templates and keep their original ids.
        """
        source_nodes = WorkflowTemplateService.ordered_nodes(source.id)

        id_map: dict[int, int] = {}
        for node in source_nodes:
            copy = WorkflowNodeModel(
                template_id=target.id,
                node_type=node.node_type,
                title=node.title,
                body=node.body,
                sort_order=node.sort_order,
                is_start=node.is_start,
                action_key=node.action_key,
                position_x=node.position_x,
                position_y=node.position_y,
                badges=list(node.badges) if node.badges else None,
                style=dict(node.style) if node.style else None,
            )
            db.session.add(copy)
            db.session.flush()
            id_map[node.id] = copy.id

        for node in source_nodes:
            new_node_id = id_map[node.id]
            for option in node.answer_options:
                db.session.add(
                    WorkflowAnswerOptionModel(
                        node_id=new_node_id,
                        label=option.label,
                        value_key=option.value_key,
                        description=option.description,
                        next_node_id=id_map.get(option.next_node_id) if option.next_node_id else None,
                        action_key=option.action_key,
                        source_handle=option.source_handle,
                        target_handle=option.target_handle,
                    )
                )
            for link in node.workflow_links:
                db.session.add(
                    WorkflowNodeLinkModel(
                        node_id=new_node_id,
                        template_id=link.template_id,
                        label=link.label,
                        sort_order=link.sort_order,
                    )
                )
        return id_map

    @classmethod
    def create_override(
        cls,
        tenant_id: str | None,
        global_template_id: int,
        username: str | None = None,
    ) -> tuple[WorkflowTemplateModel, bool]:
        """Return (override, created). Repeated or racing calls get the one existing override."""
        tenancy.require_known_tenant(tenant_id)
        if tenancy.is_global_tenant(tenant_id):
            raise ApiError(
                "invalid_override", "Global templates cannot be overridden by the global tenant", status_code=400
            )

        source = WorkflowTemplateModel.query.filter_by(
            id=global_template_id, tenant_id=tenancy.global_tenant_id()
        ).first()
        if source is None:
            raise ApiError("not_found", "Global template not found", status_code=404)

        existing = cls.find_override(tenant_id, source.id)
        if existing is not None:
            return existing, False

        override = WorkflowTemplateModel(
            tenant_id=tenant_id,
            name=source.name,
            description=source.description,
            is_active=source.is_active,
            colour_hex=source.colour_hex,
            category=source.category,
            workflow_type=source.workflow_type,
            approval_status=ApprovalStatus.DRAFT.value,
            source_template_id=source.id,
            last_edited_by=username,
            last_edited_at=utcnow() if username else None,
        )
        try:
            db.session.add(override)
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            # Another request created the override between our lookup and insert.
            existing = cls.find_override(tenant_id, source.id)
            if existing is not None:
                logger.info(
                    "Override of template %s for tenant %s created concurrently; returning %s",
                    source.id,
                    tenant_id,
                    existing.id,
                )
                return existing, False
            message = str(getattr(exc, "orig", exc))
            logger.error("Override insert failed (%s): %s", UNIQUE_OVERRIDE_CONSTRAINT, message)
            raise

        try:
            id_map = cls.copy_graph(source, override)
        except Exception:
            db.session.rollback()
            raise
        WorkflowTemplateModel.commit_with_rollback_on_exception()
        logger.info(
            "Created override %s of global template %s for tenant %s (%d nodes)",
            override.id,
            source.id,
            tenant_id,
            len(id_map),
        )
        return override, True

    @classmethod
    def approve_template(
        cls, tenant_id: str | None, template_id: int, username: str | None = None
    ) -> WorkflowTemplateModel:
        """Mark a template APPROVED. The graph itself is not checked."""
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        template.approval_status = ApprovalStatus.APPROVED.value
        template.approved_by = username
        template.approved_at = utcnow()
        WorkflowTemplateModel.commit_with_rollback_on_exception()
        logger.info("Template %s approved by %s", template.id, username)
        return template
