# tests/conftest.py
from types import SimpleNamespace

import pytest
from flask import g

from signpost_workflow.app import create_app
from signpost_workflow.models.db import db
from signpost_workflow.tenancy import clear_tenant_context
from signpost_workflow.tenancy import create_tenant_if_not_exists

GLOBAL_TENANT = "global-default"
TENANT_A = "tenant-a"
TENANT_B = "tenant-b"

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "SQLALCHEMY_ECHO": False,
    "SIGNPOST_CREATE_TABLES": True,
    "SIGNPOST_GLOBAL_TENANT_ID": GLOBAL_TENANT,
    "SIGNPOST_DEFAULT_TENANT_ID": "default",
    "SIGNPOST_ALLOW_MISSING_TENANT_CONTEXT": False,
    "SIGNPOST_TENANT_HEADER": "X-Signpost-Tenant",
    "SIGNPOST_RESET_APPROVAL_ON_GRAPH_EDIT": False,
    "SIGNPOST_LOG_LEVEL": "INFO",
}


@pytest.fixture(autouse=True)
def _reset_tenant_context_between_tests():
    clear_tenant_context()
    yield
    clear_tenant_context()


@pytest.fixture
def app():
    """Fresh app bound to an in-memory database, with two practice tenants besides the global one."""
    app = create_app(dict(TEST_CONFIG))

    @app.before_request
    def _load_test_user() -> None:
        # Stand-in for the external auth layer: the test client passes the user in headers.
        from flask import request

        username = request.headers.get("X-Test-User")
        g.user = None
        if username:
            admin_tenants = request.headers.get("X-Test-Admin-Tenants", "")
            g.user = SimpleNamespace(
                username=username,
                is_admin=request.headers.get("X-Test-Superuser") == "1",
                admin_tenant_ids=[t for t in admin_tenants.split(",") if t],
            )

    with app.app_context():
        create_tenant_if_not_exists(TENANT_A, name="Tenant A")
        create_tenant_if_not_exists(TENANT_B, name="Tenant B")

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def template_factory(app_ctx):
    from signpost_workflow.services.workflow_template_service import WorkflowTemplateService

    def _make(tenant_id=TENANT_A, name="Blood test results", **fields):
        return WorkflowTemplateService.create_template(tenant_id, {"name": name, **fields}, "author")

    return _make


@pytest.fixture
def node_factory(app_ctx):
    from signpost_workflow.services.workflow_graph_service import WorkflowGraphService

    def _make(template, node_type="INSTRUCTION", **fields):
        return WorkflowGraphService.create_node(
            template.tenant_id, template.id, {"node_type": node_type, **fields}, "author"
        )

    return _make


@pytest.fixture
def option_factory(app_ctx):
    from signpost_workflow.services.workflow_graph_service import WorkflowGraphService

    def _make(template, node, label, next_node=None, **fields):
        payload = {"label": label, **fields}
        if next_node is not None:
            payload["next_node_id"] = next_node.id
        return WorkflowGraphService.create_answer_option(template.tenant_id, template.id, node.id, payload, "author")

    return _make
