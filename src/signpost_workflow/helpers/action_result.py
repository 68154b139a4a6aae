from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any

from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.models.db import db

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Something went wrong while saving. Please try again."


@dataclass
class ActionResult:
    """Outcome of one engine operation. Callers branch on success and kind, not on exceptions."""

    success: bool
    data: Any = None
    error: str | None = None
    kind: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> ActionResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, kind: str, error_code: str | None = None) -> ActionResult:
        return cls(success=False, error=error, kind=kind, error_code=error_code)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        return {
            "success": False,
            "error": self.error,
            "kind": self.kind,
            "errorCode": self.error_code,
        }


def _log_context(args: tuple, kwargs: dict) -> str:
    """Tenant and ids only. Field payloads and free-text notes stay out of the log."""
    tenant_id = kwargs.get("tenant_id", args[0] if args and isinstance(args[0], str) else None)
    ids = [str(a) for a in args if isinstance(a, int) and not isinstance(a, bool)]
    ids.extend(
        f"{key}={value}"
        for key, value in kwargs.items()
        if key.endswith("_id") and key != "tenant_id" and isinstance(value, (int, str))
    )
    return f"tenant={tenant_id} ids=[{', '.join(ids)}]"


def engine_operation(operation: str):
    """Run a service call as one unit of work and convert every failure into an ActionResult."""

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return ActionResult.ok(f(*args, **kwargs))
            except ApiError as e:
                db.session.rollback()
                if e.kind == "internal":
                    logger.error("%s failed: %s (%s)", operation, e.error_code, _log_context(args, kwargs))
                    return ActionResult.fail(INTERNAL_ERROR_MESSAGE, "internal", e.error_code)
                return ActionResult.fail(e.message, e.kind, e.error_code)
            except Exception:
                db.session.rollback()
                logger.exception("%s failed (%s)", operation, _log_context(args, kwargs))
                return ActionResult.fail(INTERNAL_ERROR_MESSAGE, "internal", "internal_server_error")

        return decorated_function

    return decorator
