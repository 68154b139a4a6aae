from __future__ import annotations

import logging
from typing import Any

from flask import Flask, g

from signpost_workflow import config
from signpost_workflow import tenancy
from signpost_workflow.models.db import db
from signpost_workflow.services.logging_service import configure_logging

logger = logging.getLogger(__name__)


def register_request_tenant_context_hooks(app: Flask) -> None:
    if getattr(app, "_signpost_request_tenant_hooks_registered", False):
        return

    @app.before_request
    def _signpost_before_request() -> None:
        tenancy.clear_tenant_context()
        tenancy.resolve_request_tenant()

    @app.teardown_request
    def _signpost_teardown_request(_exc) -> None:
        # g outlives the request when the caller already pushed an app context.
        g.pop("signpost_tenant_id", None)
        g.pop("_signpost_warned_default_tenant", None)
        tenancy.clear_tenant_context()

    app._signpost_request_tenant_hooks_registered = True


def create_app(config_overrides: dict[str, Any] | None = None) -> Flask:
    """Build the Flask app serving the workflow API.

    Settings come from the SIGNPOST_* environment variables; config_overrides wins over them.
    """
    app = Flask(__name__)
    app.config.update(config.flask_config())
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)
    db.init_app(app)

    import signpost_workflow.models.load_database_models  # noqa: F401
    from signpost_workflow.routes import instances_controller  # noqa: F401
    from signpost_workflow.routes.workflow_controller import workflow_blueprint

    app.register_blueprint(workflow_blueprint)
    register_request_tenant_context_hooks(app)

    with app.app_context():
        if app.config.get("SIGNPOST_CREATE_TABLES"):
            db.create_all()
        tenancy.create_tenant_if_not_exists(
            app.config["SIGNPOST_GLOBAL_TENANT_ID"], name="Global defaults"
        )

    logger.info("Signpost workflow app created (global tenant %s)", app.config["SIGNPOST_GLOBAL_TENANT_ID"])
    return app
