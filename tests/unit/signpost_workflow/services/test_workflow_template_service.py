from unittest.mock import patch

import pytest

from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.models.db import db
from signpost_workflow.models.workflow_answer_option import WorkflowAnswerOptionModel
from signpost_workflow.models.workflow_answer_record import WorkflowAnswerRecordModel
from signpost_workflow.models.workflow_instance import WorkflowInstanceModel
from signpost_workflow.models.workflow_node import WorkflowNodeModel
from signpost_workflow.models.workflow_node_link import WorkflowNodeLinkModel
from signpost_workflow.models.workflow_template import WorkflowTemplateModel
from signpost_workflow.services.workflow_graph_service import WorkflowGraphService
from signpost_workflow.services.workflow_instance_service import WorkflowInstanceService
from signpost_workflow.services.workflow_override_service import WorkflowOverrideService
from signpost_workflow.services.workflow_template_service import WorkflowTemplateService

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


def _approve(template):
    return WorkflowOverrideService.approve_template(template.tenant_id, template.id, "dr.jones")


class TestCreateTemplate:
    def test_create_template_defaults(self, app_ctx):
        template = WorkflowTemplateService.create_template(TENANT_A, {"name": "  Medication review  "}, "admin")

        assert template.id is not None
        assert template.name == "Medication review"
        assert template.approval_status == "DRAFT"
        assert template.is_active is True
        assert template.category == "PRIMARY"
        assert template.workflow_type == "SUPPORTING"
        assert template.last_edited_by == "admin"
        assert template.last_edited_at is not None

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_create_template_requires_name(self, app_ctx, name):
        try:
            WorkflowTemplateService.create_template(TENANT_A, {"name": name}, "admin")
            assert False, "Expected ApiError"
        except ApiError as e:
            assert e.error_code == "missing_fields"
            assert e.message == "Workflow name is required"
            assert e.kind == "validation"

    def test_create_template_rejects_placeholder_name(self, app_ctx):
        try:
            WorkflowTemplateService.create_template(TENANT_A, {"name": "New Workflow"}, "admin")
            assert False, "Expected ApiError"
        except ApiError as e:
            assert e.error_code == "invalid_name"
            assert e.message == "Please enter a specific workflow name"

    def test_create_template_rejects_unknown_workflow_type(self, app_ctx):
        with pytest.raises(ApiError) as excinfo:
            WorkflowTemplateService.create_template(TENANT_A, {"name": "Coding", "workflow_type": "EPIC"}, "admin")
        assert excinfo.value.status_code == 400

    def test_create_template_accepts_form_values(self, app_ctx):
        template = WorkflowTemplateService.create_template(
            TENANT_A,
            {"name": "Coding", "workflow_type": "module", "category": "admin", "is_active": "off"},
            "admin",
        )
        assert template.workflow_type == "MODULE"
        assert template.category == "ADMIN"
        assert template.is_active is False

    def test_create_template_requires_tenant(self, app_ctx):
        with pytest.raises(ApiError) as excinfo:
            WorkflowTemplateService.create_template(None, {"name": "Coding"}, "admin")
        assert excinfo.value.error_code == "tenant_required"


class TestUpdateTemplate:
    def test_name_change_on_approved_template_reverts_to_draft(self, template_factory):
        template = template_factory(name="Letters")
        _approve(template)
        assert template.approval_status == "APPROVED"
        assert template.approved_by == "dr.jones"

        updated = WorkflowTemplateService.update_template(TENANT_A, template.id, {"name": "Hospital letters"}, "admin")

        assert updated.name == "Hospital letters"
        assert updated.approval_status == "DRAFT"
        assert updated.approved_by is None
        assert updated.approved_at is None

    def test_identical_values_keep_approval(self, template_factory):
        template = template_factory(name="Letters", description="Incoming letters", colour_hex="#005eb8")
        _approve(template)

        updated = WorkflowTemplateService.update_template(
            TENANT_A,
            template.id,
            {
                "name": "Letters",
                "description": "Incoming letters",
                "colour_hex": "#005eb8",
                "is_active": True,
                "category": "PRIMARY",
                "workflow_type": "SUPPORTING",
            },
            "admin",
        )

        assert updated.approval_status == "APPROVED"
        assert updated.approved_by == "dr.jones"
        assert updated.last_edited_by == "admin"

    @pytest.mark.parametrize(
        "fields",
        [
            {"description": "changed"},
            {"is_active": False},
            {"colour_hex": "#ff0000"},
            {"category": "SECONDARY"},
            {"workflow_type": "PRIMARY"},
        ],
    )
    def test_any_user_facing_field_change_resets_approval(self, template_factory, fields):
        template = template_factory(name="Letters")
        _approve(template)

        updated = WorkflowTemplateService.update_template(TENANT_A, template.id, fields, "admin")

        assert updated.approval_status == "DRAFT"

    def test_update_draft_stays_draft(self, template_factory):
        template = template_factory(name="Letters")
        updated = WorkflowTemplateService.update_template(TENANT_A, template.id, {"name": "Letters v2"}, "admin")
        assert updated.approval_status == "DRAFT"

    def test_cross_tenant_update_is_not_found(self, template_factory):
        template = template_factory(tenant_id=TENANT_A, name="Letters")
        try:
            WorkflowTemplateService.update_template(TENANT_B, template.id, {"name": "Mine now"}, "intruder")
            assert False, "Expected ApiError"
        except ApiError as e:
            assert e.status_code == 404
            assert e.message == "Template not found"
        db.session.refresh(template)
        assert template.name == "Letters"

    def test_invalid_name_leaves_template_unchanged(self, template_factory):
        template = template_factory(name="Letters")
        with pytest.raises(ApiError):
            WorkflowTemplateService.update_template(TENANT_A, template.id, {"name": "", "description": "x"}, "admin")
        db.session.refresh(template)
        assert template.description is None


class TestGraphEditApproval:
    def test_graph_edit_keeps_approval_by_default(self, template_factory, node_factory):
        template = template_factory(name="Letters")
        _approve(template)

        node_factory(template, "QUESTION", title="Is it urgent?")

        db.session.refresh(template)
        assert template.approval_status == "APPROVED"
        assert template.last_edited_by == "author"

    def test_graph_edit_resets_approval_when_enabled(self, app, template_factory, node_factory):
        app.config["SIGNPOST_RESET_APPROVAL_ON_GRAPH_EDIT"] = True
        template = template_factory(name="Letters")
        _approve(template)

        node_factory(template, "QUESTION", title="Is it urgent?")

        db.session.refresh(template)
        assert template.approval_status == "DRAFT"
        assert template.approved_by is None


class TestDeleteTemplate:
    def test_delete_cascades_everything(self, template_factory, node_factory, option_factory):
        template = template_factory(name="Letters")
        other = template_factory(name="Coding")
        question = node_factory(template, "QUESTION", title="Urgent?", is_start=True)
        end = node_factory(template, "END", title="Forward", action_key="FORWARD_TO_GP")
        option = option_factory(template, question, "Yes", next_node=end)
        WorkflowGraphService.create_node_link(TENANT_A, template.id, question.id, other.id)
        other_node = node_factory(other, "INSTRUCTION", title="See letters")
        WorkflowGraphService.create_node_link(TENANT_A, other.id, other_node.id, template.id)
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        WorkflowInstanceService.answer_question(TENANT_A, instance.id, option.id)
        template_id = template.id

        WorkflowTemplateService.delete_template(TENANT_A, template_id)

        assert db.session.get(WorkflowTemplateModel, template_id) is None
        assert WorkflowNodeModel.query.filter_by(template_id=template_id).count() == 0
        assert WorkflowAnswerOptionModel.query.count() == 0
        assert WorkflowInstanceModel.query.filter_by(template_id=template_id).count() == 0
        assert WorkflowAnswerRecordModel.query.count() == 0
        # Links from the other template pointing here are gone too.
        assert WorkflowNodeLinkModel.query.count() == 0
        assert db.session.get(WorkflowTemplateModel, other.id) is not None

    def test_delete_global_detaches_overrides(self, template_factory):
        global_template = template_factory(tenant_id="global-default", name="Letters")
        override, _ = WorkflowOverrideService.create_override(TENANT_A, global_template.id, "admin")
        override_id = override.id

        WorkflowTemplateService.delete_template("global-default", global_template.id)

        db.session.expire_all()
        kept = db.session.get(WorkflowTemplateModel, override_id)
        assert kept is not None
        assert kept.source_template_id is None

    def test_delete_unknown_template_is_not_found(self, app_ctx):
        with pytest.raises(ApiError) as excinfo:
            WorkflowTemplateService.delete_template(TENANT_A, 9999)
        assert excinfo.value.kind == "not_found"

    def test_delete_failure_rolls_back(self, template_factory, node_factory):
        template = template_factory(name="Letters")
        node_factory(template, "INSTRUCTION", title="Read letter")

        with patch.object(
            WorkflowTemplateModel, "commit_with_rollback_on_exception", side_effect=RuntimeError("connection lost")
        ):
            with pytest.raises(RuntimeError):
                WorkflowTemplateService.delete_template(TENANT_A, template.id)
        db.session.rollback()

        assert WorkflowTemplateModel.query.filter_by(name="Letters").count() == 1
        assert WorkflowNodeModel.query.count() == 1


class TestReadTemplates:
    def test_list_templates_is_tenant_scoped(self, template_factory):
        template_factory(tenant_id=TENANT_A, name="Bravo")
        template_factory(tenant_id=TENANT_A, name="Alpha", is_active=False)
        template_factory(tenant_id=TENANT_B, name="Charlie")

        names = [t.name for t in WorkflowTemplateService.list_templates(TENANT_A)]
        assert names == ["Alpha", "Bravo"]
        active = [t.name for t in WorkflowTemplateService.list_templates(TENANT_A, include_inactive=False)]
        assert active == ["Bravo"]

    def test_get_template_graph_orders_nodes(self, template_factory, node_factory, option_factory):
        template = template_factory(name="Letters")
        first = node_factory(template, "QUESTION", title="First")
        second = node_factory(template, "END", title="Second")
        option_factory(template, first, "Done", next_node=second)
        WorkflowGraphService.update_node(TENANT_A, template.id, first.id, {"sort_order": 10})

        graph = WorkflowTemplateService.get_template_graph(TENANT_A, template.id)

        assert [n["title"] for n in graph["nodes"]] == ["Second", "First"]
        assert graph["nodes"][1]["answer_options"][0]["label"] == "Done"
        assert graph["nodes"][0]["answer_options"] == []
