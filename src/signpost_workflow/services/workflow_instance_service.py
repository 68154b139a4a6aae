from __future__ import annotations

import logging
from typing import Any

from signpost_workflow import tenancy
from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.models.db import db
from signpost_workflow.models.workflow_answer_option import WorkflowAnswerOptionModel
from signpost_workflow.models.workflow_answer_record import WorkflowAnswerRecordModel
from signpost_workflow.models.workflow_instance import WorkflowInstanceModel
from signpost_workflow.models.workflow_instance import WorkflowInstanceStatus
from signpost_workflow.models.workflow_node import WorkflowNodeModel
from signpost_workflow.models.workflow_node import WorkflowNodeType
from signpost_workflow.models.workflow_template import WorkflowTemplateModel
from signpost_workflow.services.workflow_override_service import WorkflowOverrideService
from signpost_workflow.services.workflow_template_service import WorkflowTemplateService

logger = logging.getLogger(__name__)

INSTANCE_NOT_FOUND_MESSAGE = "Workflow instance not found"


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class WorkflowInstanceService:
    """Runs workflow instances through a template graph.

    An instance is ACTIVE with a current node, or COMPLETED with none. Moves are:
    continue (INSTRUCTION nodes) and answer (QUESTION nodes). Arriving on an END node
    completes the instance the next time it is read.
    """

    @staticmethod
    def resolve_start_node(nodes: list[WorkflowNodeModel]) -> WorkflowNodeModel | None:
        """The start-flagged node, else the first node in sort order."""
        for node in nodes:
            if node.is_start:
                return node
        return nodes[0] if nodes else None

    @staticmethod
    def next_node_in_sort_order(
        nodes: list[WorkflowNodeModel], current: WorkflowNodeModel
    ) -> WorkflowNodeModel | None:
        for index, node in enumerate(nodes):
            if node.id == current.id:
                return nodes[index + 1] if index + 1 < len(nodes) else None
        return None

    @classmethod
    def get_instance_or_404(cls, tenant_id: str | None, instance_id: int) -> WorkflowInstanceModel:
        tenancy.require_known_tenant(tenant_id)
        instance = WorkflowInstanceModel.query.filter_by(id=instance_id, tenant_id=tenant_id).first()
        if instance is None:
            raise ApiError("not_found", INSTANCE_NOT_FOUND_MESSAGE, status_code=404)
        return instance

    @classmethod
    def _startable_template(cls, tenant_id: str, template_id: int) -> WorkflowTemplateModel | None:
        template = db.session.get(WorkflowTemplateModel, template_id)
        if template is None or not template.is_active:
            return None
        if template.tenant_id == tenant_id:
            return template
        if not tenancy.is_global_tenant(template.tenant_id):
            return None
        # A tenant with an override of this global runs its own copy, as the effective view shows it.
        override = WorkflowOverrideService.find_override(tenant_id, template.id)
        if override is None:
            return template
        return override if override.is_active else None

    @classmethod
    def start_instance(
        cls,
        tenant_id: str | None,
        template_id: int,
        username: str | None,
        reference: str | None = None,
        category: str | None = None,
    ) -> WorkflowInstanceModel:
        tenancy.require_known_tenant(tenant_id)
        if not username:
            raise ApiError("missing_fields", "A user is required to start a workflow", status_code=400)

        template = cls._startable_template(tenant_id, template_id)
        if template is None:
            raise ApiError("not_found", "Template not found or inactive", status_code=404)

        start_node = cls.resolve_start_node(WorkflowTemplateService.ordered_nodes(template.id))
        if start_node is None:
            raise ApiError("template_empty", "Template has no nodes", status_code=400)

        instance = WorkflowInstanceModel(
            tenant_id=tenant_id,
            template_id=template.id,
            started_by=username,
            status=WorkflowInstanceStatus.ACTIVE.value,
            reference=_optional_text(reference),
            category=_optional_text(category),
            current_node_id=start_node.id,
        )
        db.session.add(instance)
        WorkflowInstanceModel.commit_with_rollback_on_exception()
        logger.info("Started instance %s of template %s at node %s", instance.id, template.id, start_node.id)
        return instance

    @classmethod
    def _current_node(cls, instance: WorkflowInstanceModel) -> WorkflowNodeModel | None:
        if instance.current_node_id is None:
            return None
        return WorkflowNodeModel.query.filter_by(
            id=instance.current_node_id, template_id=instance.template_id
        ).first()

    @classmethod
    def _require_active(cls, instance: WorkflowInstanceModel) -> WorkflowNodeModel:
        if not instance.is_active():
            raise ApiError("instance_completed", "This workflow has already been completed", status_code=400)
        node = cls._current_node(instance)
        if node is None:
            raise ApiError("current_node_missing", "Current step no longer exists", status_code=400)
        return node

    @classmethod
    def continue_from_instruction(cls, tenant_id: str | None, instance_id: int) -> dict:
        instance = cls.get_instance_or_404(tenant_id, instance_id)
        node = cls._require_active(instance)
        if not node.is_type(WorkflowNodeType.INSTRUCTION):
            raise ApiError("invalid_node_type", "Current node is not an instruction node", status_code=400)

        next_node_id = None
        edge = (
            WorkflowAnswerOptionModel.query.filter(
                WorkflowAnswerOptionModel.node_id == node.id,
                WorkflowAnswerOptionModel.next_node_id.isnot(None),
            )
            .order_by(WorkflowAnswerOptionModel.id.asc())
            .first()
        )
        if edge is not None:
            next_node_id = edge.next_node_id
        else:
            following = cls.next_node_in_sort_order(WorkflowTemplateService.ordered_nodes(instance.template_id), node)
            if following is not None:
                next_node_id = following.id

        if next_node_id is None:
            instance.mark_completed()
        else:
            instance.current_node_id = next_node_id
        WorkflowInstanceModel.commit_with_rollback_on_exception()
        if instance.is_completed():
            logger.info("Instance %s completed after instruction node %s", instance.id, node.id)
        return {
            "instance": instance.serialized(),
            "completed": instance.is_completed(),
            "action_key": instance.final_action_key,
            "next_node_id": next_node_id,
        }

    @classmethod
    def answer_question(
        cls,
        tenant_id: str | None,
        instance_id: int,
        answer_option_id: Any,
        free_text_note: str | None = None,
    ) -> dict:
        """Log the chosen option, then move along it. Both writes share one commit."""
        instance = cls.get_instance_or_404(tenant_id, instance_id)
        node = cls._require_active(instance)
        if not node.is_type(WorkflowNodeType.QUESTION):
            raise ApiError("invalid_node_type", "Current node is not a question node", status_code=400)

        try:
            option_id = int(answer_option_id)
        except (TypeError, ValueError) as exception:
            raise ApiError("missing_fields", "An answer must be selected", status_code=400) from exception
        option = WorkflowAnswerOptionModel.query.filter_by(id=option_id, node_id=node.id).first()
        if option is None:
            raise ApiError("invalid_option", "Answer option does not belong to the current question", status_code=400)

        db.session.add(
            WorkflowAnswerRecordModel(
                instance_id=instance.id,
                node_id=node.id,
                answer_option_id=option.id,
                answer_value_key=option.value_key,
                free_text_note=_optional_text(free_text_note),
            )
        )
        if option.next_node_id is not None:
            instance.current_node_id = option.next_node_id
        else:
            instance.mark_completed(option.action_key)
        WorkflowInstanceModel.commit_with_rollback_on_exception()

        if instance.is_completed():
            logger.info(
                "Instance %s completed on answer %s (action %s)", instance.id, option.value_key, option.action_key
            )
        return {
            "instance": instance.serialized(),
            "completed": instance.is_completed(),
            "action_key": option.action_key,
            "next_node_id": option.next_node_id,
        }

    @classmethod
    def settle_instance(cls, instance: WorkflowInstanceModel) -> WorkflowNodeModel | None:
        """Apply the read-time completions. Returns the current node of a still-active instance."""
        if not instance.is_active():
            return None
        node = cls._current_node(instance)
        if node is None:
            logger.warning(
                "Instance %s points at missing node %s; completing it", instance.id, instance.current_node_id
            )
            instance.mark_completed()
            WorkflowInstanceModel.commit_with_rollback_on_exception()
            return None
        if node.is_type(WorkflowNodeType.END):
            instance.mark_completed(node.action_key, outcome_node_id=node.id)
            WorkflowInstanceModel.commit_with_rollback_on_exception()
            logger.info("Instance %s reached outcome node %s (action %s)", instance.id, node.id, node.action_key)
            return None
        return node

    @classmethod
    def get_instance(cls, tenant_id: str | None, instance_id: int) -> dict:
        instance = cls.get_instance_or_404(tenant_id, instance_id)
        current_node = cls.settle_instance(instance)
        db.session.refresh(instance)

        current = None
        if current_node is not None:
            current = current_node.serialized()
            current["answer_options"] = [
                option.serialized() for option in sorted(current_node.answer_options, key=lambda o: o.label.lower())
            ]
            current["workflow_links"] = [link.serialized() for link in current_node.workflow_links]

        outcome = None
        if instance.outcome_node_id is not None:
            outcome_node = db.session.get(WorkflowNodeModel, instance.outcome_node_id)
            if outcome_node is not None:
                outcome = outcome_node.serialized()

        records = (
            WorkflowAnswerRecordModel.query.filter_by(instance_id=instance.id)
            .order_by(WorkflowAnswerRecordModel.created_at.asc(), WorkflowAnswerRecordModel.id.asc())
            .all()
        )
        node_titles = {
            node.id: node.title
            for node in WorkflowNodeModel.query.filter(
                WorkflowNodeModel.id.in_(list({record.node_id for record in records}))
            )
        }
        option_labels = {
            option.id: option.label
            for option in WorkflowAnswerOptionModel.query.filter(
                WorkflowAnswerOptionModel.id.in_(list({r.answer_option_id for r in records if r.answer_option_id}))
            )
        }
        answers = []
        for record in records:
            entry = record.serialized()
            entry["node_title"] = node_titles.get(record.node_id)
            entry["answer_label"] = option_labels.get(record.answer_option_id)
            answers.append(entry)

        template = instance.template
        return {
            "instance": instance.serialized(),
            "template": {
                "id": template.id,
                "name": template.name,
                "colour_hex": template.colour_hex,
            },
            "current_node": current,
            "outcome_node": outcome,
            "answers": answers,
            "completed": instance.is_completed(),
            "action_key": instance.final_action_key,
        }

    @classmethod
    def list_instances(cls, tenant_id: str | None, status: str | None = None) -> list[WorkflowInstanceModel]:
        tenancy.require_known_tenant(tenant_id)
        query = WorkflowInstanceModel.query.filter_by(tenant_id=tenant_id)
        if status:
            normalized = str(status).strip().upper()
            if normalized not in {member.value for member in WorkflowInstanceStatus}:
                raise ApiError("invalid_field", "Invalid instance status", status_code=400)
            query = query.filter(WorkflowInstanceModel.status == normalized)
        return query.order_by(WorkflowInstanceModel.created_at.desc(), WorkflowInstanceModel.id.desc()).all()
