from __future__ import annotations

import logging
from typing import Any

from signpost_workflow import config
from signpost_workflow import tenancy
from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.models.audit_mixin import utcnow
from signpost_workflow.models.db import db
from signpost_workflow.models.workflow_answer_option import WorkflowAnswerOptionModel
from signpost_workflow.models.workflow_answer_record import WorkflowAnswerRecordModel
from signpost_workflow.models.workflow_instance import WorkflowInstanceModel
from signpost_workflow.models.workflow_node import WorkflowNodeModel
from signpost_workflow.models.workflow_node_link import WorkflowNodeLinkModel
from signpost_workflow.models.workflow_template import (
    EDITABLE_TEMPLATE_FIELDS,
    ApprovalStatus,
    LandingCategory,
    WorkflowTemplateModel,
    WorkflowType,
)

logger = logging.getLogger(__name__)

TEMPLATE_NOT_FOUND_MESSAGE = "Template not found"

# Names the create dialog pre-fills; saving them unchanged is almost always a mistake.
PLACEHOLDER_TEMPLATE_NAMES = frozenset({"new workflow"})


def coerce_bool(value: Any) -> bool:
    """Accept real booleans as well as HTML form values ("on", "true", "1")."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class WorkflowTemplateService:
    """CRUD for workflow templates, scoped to the caller's tenant."""

    @staticmethod
    def _require_tenant(tenant_id: str | None) -> str:
        return tenancy.require_known_tenant(tenant_id)

    @classmethod
    def find_template(cls, tenant_id: str | None, template_id: int) -> WorkflowTemplateModel | None:
        tenant = cls._require_tenant(tenant_id)
        return WorkflowTemplateModel.query.filter_by(id=template_id, tenant_id=tenant).first()

    @classmethod
    def get_template_or_404(cls, tenant_id: str | None, template_id: int) -> WorkflowTemplateModel:
        """Templates of other tenants are reported exactly like missing ones."""
        template = cls.find_template(tenant_id, template_id)
        if template is None:
            raise ApiError("not_found", TEMPLATE_NOT_FOUND_MESSAGE, status_code=404)
        return template

    @staticmethod
    def _validate_name(raw: Any) -> str:
        name = (str(raw) if raw is not None else "").strip()
        if not name:
            raise ApiError("missing_fields", "Workflow name is required", status_code=400)
        if name.lower() in PLACEHOLDER_TEMPLATE_NAMES:
            raise ApiError("invalid_name", "Please enter a specific workflow name", status_code=400)
        return name

    @staticmethod
    def _validate_choice(raw: Any, enum_cls: Any, label: str) -> str:
        value = (str(raw) if raw is not None else "").strip().upper()
        for member in enum_cls:
            if member.value == value:
                return member.value
        raise ApiError("invalid_field", f"Invalid {label}", status_code=400)

    @classmethod
    def _normalize_fields(cls, fields: dict[str, Any]) -> dict[str, Any]:
        """Parse the editable fields present in the payload; absent keys are left out."""
        normalized: dict[str, Any] = {}
        if "name" in fields:
            normalized["name"] = cls._validate_name(fields["name"])
        if "description" in fields:
            normalized["description"] = _optional_text(fields["description"])
        if "is_active" in fields:
            normalized["is_active"] = coerce_bool(fields["is_active"])
        if "colour_hex" in fields:
            normalized["colour_hex"] = _optional_text(fields["colour_hex"])
        if "category" in fields:
            normalized["category"] = cls._validate_choice(fields["category"], LandingCategory, "landing category")
        if "workflow_type" in fields:
            normalized["workflow_type"] = cls._validate_choice(fields["workflow_type"], WorkflowType, "workflow type")
        return normalized

    @classmethod
    def create_template(
        cls,
        tenant_id: str | None,
        fields: dict[str, Any] | None,
        username: str | None = None,
    ) -> WorkflowTemplateModel:
        tenant = cls._require_tenant(tenant_id)
        fields = dict(fields or {})
        if "name" not in fields:
            raise ApiError("missing_fields", "Workflow name is required", status_code=400)
        values = cls._normalize_fields(fields)

        template = WorkflowTemplateModel(
            tenant_id=tenant,
            name=values["name"],
            description=values.get("description"),
            is_active=values.get("is_active", True),
            colour_hex=values.get("colour_hex"),
            category=values.get("category", LandingCategory.PRIMARY.value),
            workflow_type=values.get("workflow_type", WorkflowType.SUPPORTING.value),
            approval_status=ApprovalStatus.DRAFT.value,
            last_edited_by=username,
            last_edited_at=utcnow() if username else None,
        )
        db.session.add(template)
        WorkflowTemplateModel.commit_with_rollback_on_exception()
        logger.info("Created workflow template %s for tenant %s", template.id, tenant)
        return template

    @classmethod
    def update_template(
        cls,
        tenant_id: str | None,
        template_id: int,
        fields: dict[str, Any] | None,
        username: str | None = None,
    ) -> WorkflowTemplateModel:
        """Apply field changes. An APPROVED template goes back to DRAFT if any value really changed."""
        template = cls.get_template_or_404(tenant_id, template_id)
        values = cls._normalize_fields(dict(fields or {}))

        changed = [
            field for field in EDITABLE_TEMPLATE_FIELDS
            if field in values and values[field] != getattr(template, field)
        ]
        for field in changed:
            setattr(template, field, values[field])

        if changed and template.is_approved():
            logger.info(
                "Template %s edited while approved (%s); reverting to draft",
                template.id,
                ", ".join(changed),
            )
            template.revert_to_draft()

        if username:
            template.last_edited_by = username
            template.last_edited_at = utcnow()
        WorkflowTemplateModel.commit_with_rollback_on_exception()
        return template

    @classmethod
    def touch_for_graph_edit(cls, template: WorkflowTemplateModel, username: str | None = None) -> None:
        """Record a node/option/link edit on the owning template. The caller commits."""
        if username:
            template.last_edited_by = username
            template.last_edited_at = utcnow()
        reset = config.current_setting(
            "SIGNPOST_RESET_APPROVAL_ON_GRAPH_EDIT", config.reset_approval_on_graph_edit
        )
        if reset and template.is_approved():
            logger.info("Template %s diagram edited while approved; reverting to draft", template.id)
            template.revert_to_draft()

    @classmethod
    def delete_template(cls, tenant_id: str | None, template_id: int) -> None:
        """Remove a template with its nodes, options, links, instances and answer log in one commit."""
        template = cls.get_template_or_404(tenant_id, template_id)

        node_ids = [
            row.id for row in WorkflowNodeModel.query.with_entities(WorkflowNodeModel.id).filter_by(template_id=template.id)
        ]
        option_ids = [
            row.id
            for row in WorkflowAnswerOptionModel.query.with_entities(WorkflowAnswerOptionModel.id).filter(
                WorkflowAnswerOptionModel.node_id.in_(node_ids)
            )
        ]
        instance_ids = [
            row.id
            for row in WorkflowInstanceModel.query.with_entities(WorkflowInstanceModel.id).filter_by(template_id=template.id)
        ]

        try:
            WorkflowAnswerRecordModel.query.filter(
                db.or_(
                    WorkflowAnswerRecordModel.node_id.in_(node_ids),
                    WorkflowAnswerRecordModel.answer_option_id.in_(option_ids),
                    WorkflowAnswerRecordModel.instance_id.in_(instance_ids),
                )
            ).delete(synchronize_session=False)
            WorkflowAnswerOptionModel.query.filter(
                WorkflowAnswerOptionModel.id.in_(option_ids)
            ).delete(synchronize_session=False)
            WorkflowNodeLinkModel.query.filter(
                db.or_(
                    WorkflowNodeLinkModel.node_id.in_(node_ids),
                    WorkflowNodeLinkModel.template_id == template.id,
                )
            ).delete(synchronize_session=False)
            # Overrides of a deleted global template become plain tenant templates.
            WorkflowTemplateModel.query.filter_by(source_template_id=template.id).update(
                {"source_template_id": None}, synchronize_session=False
            )
            WorkflowNodeModel.query.filter(WorkflowNodeModel.id.in_(node_ids)).delete(synchronize_session=False)
            WorkflowInstanceModel.query.filter(
                WorkflowInstanceModel.id.in_(instance_ids)
            ).delete(synchronize_session=False)
            WorkflowTemplateModel.query.filter_by(id=template.id).delete(synchronize_session=False)
            db.session.expunge(template)
        except Exception:
            db.session.rollback()
            raise
        WorkflowTemplateModel.commit_with_rollback_on_exception()
        logger.info(
            "Deleted workflow template %s (%d nodes, %d instances)", template_id, len(node_ids), len(instance_ids)
        )

    @classmethod
    def list_templates(cls, tenant_id: str | None, include_inactive: bool = True) -> list[WorkflowTemplateModel]:
        tenant = cls._require_tenant(tenant_id)
        query = WorkflowTemplateModel.query.filter_by(tenant_id=tenant)
        if not include_inactive:
            query = query.filter(WorkflowTemplateModel.is_active.is_(True))
        return query.order_by(WorkflowTemplateModel.name.asc(), WorkflowTemplateModel.id.asc()).all()

    @staticmethod
    def ordered_nodes(template_id: int) -> list[WorkflowNodeModel]:
        """Nodes by sort order, id breaking ties. The one fallback ordering used everywhere."""
        return (
            WorkflowNodeModel.query.filter_by(template_id=template_id)
            .order_by(WorkflowNodeModel.sort_order.asc(), WorkflowNodeModel.id.asc())
            .all()
        )

    @classmethod
    def get_template_graph(cls, tenant_id: str | None, template_id: int) -> dict:
        template = cls.get_template_or_404(tenant_id, template_id)
        result = template.serialized()
        result["nodes"] = [node.serialized(include_options=True) for node in cls.ordered_nodes(template.id)]
        return result
