from __future__ import annotations

from flask import request

from signpost_workflow import engine
from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.helpers.response_helper import action_response
from signpost_workflow.routes.workflow_controller import _current_username
from signpost_workflow.routes.workflow_controller import _json_body
from signpost_workflow.routes.workflow_controller import _tenant_id
from signpost_workflow.routes.workflow_controller import handle_api_errors
from signpost_workflow.routes.workflow_controller import workflow_blueprint


@workflow_blueprint.route("/instances", methods=["GET"])
@handle_api_errors
def list_instances():
    tenant_id = _tenant_id()
    _current_username()
    return action_response(engine.list_instances(tenant_id, request.args.get("status")))


@workflow_blueprint.route("/instances", methods=["POST"])
@handle_api_errors
def start_instance():
    tenant_id = _tenant_id()
    username = _current_username()
    body = _json_body()
    template_id = body.get("template_id")
    if template_id in (None, ""):
        raise ApiError("missing_fields", "template_id is required", status_code=400)
    try:
        template_id = int(template_id)
    except (TypeError, ValueError) as exception:
        raise ApiError("invalid_field", "template_id must be an integer", status_code=400) from exception
    return action_response(
        engine.start_instance(tenant_id, template_id, username, body.get("reference"), body.get("category")),
        status_code=201,
    )


@workflow_blueprint.route("/instances/<int:instance_id>", methods=["GET"])
@handle_api_errors
def get_instance(instance_id: int):
    tenant_id = _tenant_id()
    _current_username()
    return action_response(engine.get_instance(tenant_id, instance_id))


@workflow_blueprint.route("/instances/<int:instance_id>/continue", methods=["POST"])
@handle_api_errors
def continue_from_instruction(instance_id: int):
    tenant_id = _tenant_id()
    _current_username()
    return action_response(engine.continue_from_instruction(tenant_id, instance_id))


@workflow_blueprint.route("/instances/<int:instance_id>/answer", methods=["POST"])
@handle_api_errors
def answer_question(instance_id: int):
    tenant_id = _tenant_id()
    _current_username()
    body = _json_body()
    return action_response(
        engine.answer_question(tenant_id, instance_id, body.get("answer_option_id"), body.get("free_text_note"))
    )
