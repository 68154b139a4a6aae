from __future__ import annotations

from functools import wraps

from flask import Blueprint, request

from signpost_workflow import engine
from signpost_workflow import tenancy
from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.helpers.response_helper import action_response
from signpost_workflow.helpers.response_helper import error_response
from signpost_workflow.services.workflow_authorization_service import WorkflowAuthorizationService

workflow_blueprint = Blueprint("signpost_workflow", __name__, url_prefix="/v1.0/workflow")


def handle_api_errors(f):
    """Turn request-level ApiErrors (auth, tenant, body) into the standard error payload."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ApiError as e:
            return error_response(e.error_code, e.message, e.status_code, kind=e.kind)

    return decorated_function


def _tenant_id() -> str:
    try:
        return tenancy.get_tenant_id()
    except RuntimeError as exception:
        raise ApiError("tenant_required", "Tenant context required", status_code=400) from exception


def _current_username() -> str:
    username = WorkflowAuthorizationService.current_username()
    if not username:
        raise ApiError("not_authenticated", "User not authenticated", status_code=401)
    return username


def _check_admin_permission(tenant_id: str) -> str:
    username = _current_username()
    if not WorkflowAuthorizationService.can_edit_template(tenant_id):
        raise ApiError(
            "insufficient_permissions",
            "User does not have permission to edit workflows for this tenant.",
            status_code=403,
        )
    return username


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ApiError("invalid_body", "Request body must be a JSON object", status_code=400)
    return body


def _query_flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in {"1", "true", "yes", "on"}


@workflow_blueprint.route("/templates", methods=["GET"])
@handle_api_errors
def list_templates():
    tenant_id = _tenant_id()
    _current_username()
    return action_response(engine.list_templates(tenant_id))


@workflow_blueprint.route("/templates", methods=["POST"])
@handle_api_errors
def create_template():
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.create_template(tenant_id, _json_body(), username), status_code=201)


@workflow_blueprint.route("/templates/<int:template_id>", methods=["GET"])
@handle_api_errors
def get_template(template_id: int):
    tenant_id = _tenant_id()
    _current_username()
    return action_response(engine.get_template(tenant_id, template_id))


@workflow_blueprint.route("/templates/<int:template_id>", methods=["PATCH"])
@handle_api_errors
def update_template(template_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.update_template(tenant_id, template_id, _json_body(), username))


@workflow_blueprint.route("/templates/<int:template_id>", methods=["DELETE"])
@handle_api_errors
def delete_template(template_id: int):
    tenant_id = _tenant_id()
    _check_admin_permission(tenant_id)
    return action_response(engine.delete_template(tenant_id, template_id))


@workflow_blueprint.route("/templates/<int:template_id>/approve", methods=["POST"])
@handle_api_errors
def approve_template(template_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.approve_template(tenant_id, template_id, username))


@workflow_blueprint.route("/templates/<int:global_template_id>/override", methods=["POST"])
@handle_api_errors
def create_override(global_template_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    result = engine.create_override(tenant_id, global_template_id, username)
    status_code = 201 if result.success and result.data["created"] else 200
    return action_response(result, status_code=status_code)


@workflow_blueprint.route("/effective", methods=["GET"])
@handle_api_errors
def list_effective_workflows():
    tenant_id = _tenant_id()
    _current_username()
    # Drafts are an editor's view; staff only ever see approved workflows.
    include_drafts = _query_flag("include_drafts") and WorkflowAuthorizationService.is_tenant_admin(tenant_id)
    return action_response(
        engine.list_effective_workflows(tenant_id, include_drafts, _query_flag("include_inactive"))
    )


@workflow_blueprint.route("/effective/<int:template_id>", methods=["GET"])
@handle_api_errors
def get_effective_workflow(template_id: int):
    tenant_id = _tenant_id()
    _current_username()
    include_drafts = _query_flag("include_drafts") and WorkflowAuthorizationService.is_tenant_admin(tenant_id)
    return action_response(engine.get_effective_workflow(tenant_id, template_id, include_drafts))


@workflow_blueprint.route("/templates/<int:template_id>/nodes", methods=["POST"])
@handle_api_errors
def create_node(template_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.create_node(tenant_id, template_id, _json_body(), username), status_code=201)


@workflow_blueprint.route("/templates/<int:template_id>/nodes/<int:node_id>", methods=["PATCH"])
@handle_api_errors
def update_node(template_id: int, node_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.update_node(tenant_id, template_id, node_id, _json_body(), username))


@workflow_blueprint.route("/templates/<int:template_id>/nodes/<int:node_id>", methods=["DELETE"])
@handle_api_errors
def delete_node(template_id: int, node_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.delete_node(tenant_id, template_id, node_id, username))


@workflow_blueprint.route("/templates/<int:template_id>/positions", methods=["PUT"])
@handle_api_errors
def bulk_update_positions(template_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    updates = _json_body().get("positions")
    return action_response(engine.bulk_update_positions(tenant_id, template_id, updates, username))


@workflow_blueprint.route("/templates/<int:template_id>/nodes/<int:node_id>/options", methods=["POST"])
@handle_api_errors
def create_answer_option(template_id: int, node_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(
        engine.create_answer_option(tenant_id, template_id, node_id, _json_body(), username), status_code=201
    )


@workflow_blueprint.route("/templates/<int:template_id>/options/<int:option_id>", methods=["PATCH"])
@handle_api_errors
def update_answer_option(template_id: int, option_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.update_answer_option(tenant_id, template_id, option_id, _json_body(), username))


@workflow_blueprint.route("/templates/<int:template_id>/options/<int:option_id>", methods=["DELETE"])
@handle_api_errors
def delete_answer_option(template_id: int, option_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.delete_answer_option(tenant_id, template_id, option_id, username))


@workflow_blueprint.route("/templates/<int:template_id>/nodes/<int:node_id>/links", methods=["POST"])
@handle_api_errors
def create_node_link(template_id: int, node_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    body = _json_body()
    return action_response(
        engine.create_node_link(
            tenant_id, template_id, node_id, body.get("template_id"), body.get("label"), username
        ),
        status_code=201,
    )


@workflow_blueprint.route("/templates/<int:template_id>/links/<int:link_id>", methods=["DELETE"])
@handle_api_errors
def delete_node_link(template_id: int, link_id: int):
    tenant_id = _tenant_id()
    username = _check_admin_permission(tenant_id)
    return action_response(engine.delete_node_link(tenant_id, template_id, link_id, username))
