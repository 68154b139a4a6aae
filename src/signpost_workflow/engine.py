"""Public workflow operations.

Every function here takes the caller's tenant id first and returns an ActionResult:
``success`` with plain-dict data, or a failure whose ``kind`` is ``not_found``,
``validation`` or ``internal``. Nothing raises past this module.
"""
from __future__ import annotations

from typing import Any

from signpost_workflow.helpers.action_result import engine_operation
from signpost_workflow.services.effective_workflow_service import EffectiveWorkflowService
from signpost_workflow.services.workflow_graph_service import WorkflowGraphService
from signpost_workflow.services.workflow_instance_service import WorkflowInstanceService
from signpost_workflow.services.workflow_override_service import WorkflowOverrideService
from signpost_workflow.services.workflow_template_service import WorkflowTemplateService

# Templates


@engine_operation("createTemplate")
def create_template(tenant_id: str | None, fields: dict[str, Any], username: str | None = None) -> dict:
    return WorkflowTemplateService.create_template(tenant_id, fields, username).serialized()


@engine_operation("updateTemplate")
def update_template(
    tenant_id: str | None, template_id: int, fields: dict[str, Any], username: str | None = None
) -> dict:
    return WorkflowTemplateService.update_template(tenant_id, template_id, fields, username).serialized()


@engine_operation("deleteTemplate")
def delete_template(tenant_id: str | None, template_id: int) -> dict:
    WorkflowTemplateService.delete_template(tenant_id, template_id)
    return {"id": template_id, "deleted": True}


@engine_operation("getTemplate")
def get_template(tenant_id: str | None, template_id: int) -> dict:
    return WorkflowTemplateService.get_template_graph(tenant_id, template_id)


@engine_operation("listTemplates")
def list_templates(tenant_id: str | None, include_inactive: bool = True) -> list[dict]:
    return [t.serialized() for t in WorkflowTemplateService.list_templates(tenant_id, include_inactive)]


@engine_operation("approveTemplate")
def approve_template(tenant_id: str | None, template_id: int, username: str | None = None) -> dict:
    return WorkflowOverrideService.approve_template(tenant_id, template_id, username).serialized()


@engine_operation("createOverride")
def create_override(tenant_id: str | None, global_template_id: int, username: str | None = None) -> dict:
    template, created = WorkflowOverrideService.create_override(tenant_id, global_template_id, username)
    return {"template_id": template.id, "created": created, "template": template.serialized()}


@engine_operation("listEffectiveWorkflows")
def list_effective_workflows(
    tenant_id: str | None, include_drafts: bool = False, include_inactive: bool = False
) -> list[dict]:
    return EffectiveWorkflowService.list_effective_workflows(tenant_id, include_drafts, include_inactive)


@engine_operation("getEffectiveWorkflow")
def get_effective_workflow(tenant_id: str | None, template_id: int, include_drafts: bool = False) -> dict:
    return EffectiveWorkflowService.get_effective_workflow(tenant_id, template_id, include_drafts)


# Graph


@engine_operation("createNode")
def create_node(
    tenant_id: str | None, template_id: int, fields: dict[str, Any] | None = None, username: str | None = None
) -> dict:
    return WorkflowGraphService.create_node(tenant_id, template_id, fields, username).serialized()


@engine_operation("updateNode")
def update_node(
    tenant_id: str | None, template_id: int, node_id: int, fields: dict[str, Any], username: str | None = None
) -> dict:
    return WorkflowGraphService.update_node(tenant_id, template_id, node_id, fields, username).serialized()


@engine_operation("deleteNode")
def delete_node(tenant_id: str | None, template_id: int, node_id: int, username: str | None = None) -> dict:
    WorkflowGraphService.delete_node(tenant_id, template_id, node_id, username)
    return {"id": node_id, "deleted": True}


@engine_operation("bulkUpdatePositions")
def bulk_update_positions(
    tenant_id: str | None, template_id: int, updates: list[dict[str, Any]], username: str | None = None
) -> dict:
    return WorkflowGraphService.bulk_update_positions(tenant_id, template_id, updates, username)


@engine_operation("createAnswerOption")
def create_answer_option(
    tenant_id: str | None, template_id: int, node_id: int, fields: dict[str, Any], username: str | None = None
) -> dict:
    return WorkflowGraphService.create_answer_option(tenant_id, template_id, node_id, fields, username).serialized()


@engine_operation("updateAnswerOption")
def update_answer_option(
    tenant_id: str | None, template_id: int, option_id: int, fields: dict[str, Any], username: str | None = None
) -> dict:
    return WorkflowGraphService.update_answer_option(
        tenant_id, template_id, option_id, fields, username
    ).serialized()


@engine_operation("deleteAnswerOption")
def delete_answer_option(tenant_id: str | None, template_id: int, option_id: int, username: str | None = None) -> dict:
    WorkflowGraphService.delete_answer_option(tenant_id, template_id, option_id, username)
    return {"id": option_id, "deleted": True}


@engine_operation("createNodeLink")
def create_node_link(
    tenant_id: str | None,
    template_id: int,
    node_id: int,
    linked_template_id: int,
    label: str | None = None,
    username: str | None = None,
) -> dict:
    return WorkflowGraphService.create_node_link(
        tenant_id, template_id, node_id, linked_template_id, label, username
    ).serialized()


@engine_operation("deleteNodeLink")
def delete_node_link(tenant_id: str | None, template_id: int, link_id: int, username: str | None = None) -> dict:
    WorkflowGraphService.delete_node_link(tenant_id, template_id, link_id, username)
    return {"id": link_id, "deleted": True}


# Instances


@engine_operation("startInstance")
def start_instance(
    tenant_id: str | None,
    template_id: int,
    username: str | None,
    reference: str | None = None,
    category: str | None = None,
) -> dict:
    return WorkflowInstanceService.start_instance(tenant_id, template_id, username, reference, category).serialized()


@engine_operation("continueFromInstruction")
def continue_from_instruction(tenant_id: str | None, instance_id: int) -> dict:
    return WorkflowInstanceService.continue_from_instruction(tenant_id, instance_id)


@engine_operation("answerQuestion")
def answer_question(
    tenant_id: str | None, instance_id: int, answer_option_id: int, free_text_note: str | None = None
) -> dict:
    return WorkflowInstanceService.answer_question(tenant_id, instance_id, answer_option_id, free_text_note)


@engine_operation("getInstance")
def get_instance(tenant_id: str | None, instance_id: int) -> dict:
    return WorkflowInstanceService.get_instance(tenant_id, instance_id)


@engine_operation("listInstances")
def list_instances(tenant_id: str | None, status: str | None = None) -> list[dict]:
    return [i.serialized() for i in WorkflowInstanceService.list_instances(tenant_id, status)]
