from flask import jsonify, make_response

from signpost_workflow.helpers.action_result import ActionResult

_STATUS_BY_KIND = {
    "not_found": 404,
    "validation": 400,
    "internal": 500,
}


def success_response(data, status_code=200):
    """Helper to create standardized success response."""
    return make_response(jsonify({"success": True, "data": data}), status_code)


def error_response(error_code, message, status_code, kind=None):
    """Helper to create standardized error response."""
    return make_response(jsonify({
        "success": False,
        "error": message,
        "kind": kind,
        "errorCode": error_code,
    }), status_code)


def action_response(result: ActionResult, status_code=200):
    """Turn an engine ActionResult into a JSON response; failures map their kind to a status."""
    if result.success:
        return success_response(result.data, status_code)
    return error_response(
        result.error_code,
        result.error,
        _STATUS_BY_KIND.get(result.kind, 500),
        kind=result.kind,
    )
