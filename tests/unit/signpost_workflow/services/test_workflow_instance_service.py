from unittest.mock import patch

import pytest

from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.models.db import db
from signpost_workflow.models.workflow_answer_record import WorkflowAnswerRecordModel
from signpost_workflow.models.workflow_instance import WorkflowInstanceModel
from signpost_workflow.services.workflow_graph_service import WorkflowGraphService
from signpost_workflow.services.workflow_instance_service import WorkflowInstanceService
from signpost_workflow.services.workflow_override_service import WorkflowOverrideService
from signpost_workflow.services.workflow_template_service import WorkflowTemplateService

GLOBAL = "global-default"
TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


@pytest.fixture
def triage(template_factory, node_factory, option_factory):
    """Q1 (start) --Yes--> I1, no edge from I1, E1 is an outcome with REFER."""
    template = template_factory(name="Triage")
    q1 = node_factory(template, "QUESTION", title="Q1", is_start=True)
    i1 = node_factory(template, "INSTRUCTION", title="I1")
    e1 = node_factory(template, "END", title="E1", action_key="REFER")
    for node, sort_order in ((q1, 1), (i1, 2), (e1, 3)):
        WorkflowGraphService.update_node(TENANT_A, template.id, node.id, {"sort_order": sort_order})
    yes = option_factory(template, q1, "Yes", next_node=i1)
    return {"template": template, "q1": q1, "i1": i1, "e1": e1, "yes": yes}


class TestStartInstance:
    def test_start_uses_flagged_start_node_regardless_of_sort_order(self, template_factory, node_factory):
        template = template_factory()
        node_factory(template, "INSTRUCTION", title="First by order")
        flagged = node_factory(template, "QUESTION", title="Flagged", is_start=True)

        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse", reference="NHS 123")

        assert instance.current_node_id == flagged.id
        assert instance.status == "ACTIVE"
        assert instance.started_by == "nurse"
        assert instance.reference == "NHS 123"
        assert instance.tenant_id == TENANT_A

    def test_start_without_flag_uses_lowest_sort_order(self, template_factory, node_factory):
        template = template_factory()
        late = node_factory(template, "INSTRUCTION", title="Late")
        early = node_factory(template, "QUESTION", title="Early")
        WorkflowGraphService.update_node(TENANT_A, template.id, late.id, {"sort_order": 5})
        WorkflowGraphService.update_node(TENANT_A, template.id, early.id, {"sort_order": 2})

        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")

        assert instance.current_node_id == early.id

    def test_empty_template_is_validation_error(self, template_factory):
        template = template_factory()
        try:
            WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
            assert False, "Expected ApiError"
        except ApiError as e:
            assert e.kind == "validation"
            assert e.message == "Template has no nodes"
        assert WorkflowInstanceModel.query.count() == 0

    def test_inactive_template_cannot_start(self, template_factory, node_factory):
        template = template_factory(is_active=False)
        node_factory(template, "INSTRUCTION")
        with pytest.raises(ApiError) as excinfo:
            WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        assert excinfo.value.kind == "not_found"

    def test_other_tenant_template_cannot_start(self, template_factory, node_factory):
        template = template_factory(tenant_id=TENANT_B)
        node_factory(template, "INSTRUCTION")
        with pytest.raises(ApiError) as excinfo:
            WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        assert excinfo.value.kind == "not_found"

    def test_global_template_can_start_for_tenant(self, template_factory, node_factory):
        template = template_factory(tenant_id=GLOBAL)
        node = node_factory(template, "INSTRUCTION")
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        assert instance.tenant_id == TENANT_A
        assert instance.current_node_id == node.id

    def test_global_id_runs_the_tenant_override(self, template_factory, node_factory):
        global_template = template_factory(tenant_id=GLOBAL, name="Letters")
        node_factory(global_template, "QUESTION", title="Old global question")
        WorkflowOverrideService.approve_template(GLOBAL, global_template.id, "lead")
        override, _ = WorkflowOverrideService.create_override(TENANT_A, global_template.id, "admin")
        local_node = WorkflowTemplateService.ordered_nodes(override.id)[0]
        WorkflowGraphService.update_node(TENANT_A, override.id, local_node.id, {"title": "Local question"})
        WorkflowOverrideService.approve_template(TENANT_A, override.id, "admin")

        instance = WorkflowInstanceService.start_instance(TENANT_A, global_template.id, "nurse")

        assert instance.template_id == override.id
        assert instance.current_node_id == local_node.id
        other = WorkflowInstanceService.start_instance(TENANT_B, global_template.id, "nurse")
        assert other.template_id == global_template.id

    def test_global_id_with_inactive_override_cannot_start(self, template_factory, node_factory):
        global_template = template_factory(tenant_id=GLOBAL, name="Letters")
        node_factory(global_template, "INSTRUCTION")
        override, _ = WorkflowOverrideService.create_override(TENANT_A, global_template.id, "admin")
        WorkflowTemplateService.update_template(TENANT_A, override.id, {"is_active": False}, "admin")

        with pytest.raises(ApiError) as excinfo:
            WorkflowInstanceService.start_instance(TENANT_A, global_template.id, "nurse")
        assert excinfo.value.kind == "not_found"

    def test_unprovisioned_tenant_is_not_found(self, template_factory, node_factory):
        template = template_factory(tenant_id=GLOBAL)
        node_factory(template, "INSTRUCTION")

        with pytest.raises(ApiError) as excinfo:
            WorkflowInstanceService.start_instance("ghost-practice", template.id, "nurse")

        assert excinfo.value.kind == "not_found"
        assert excinfo.value.message == "Tenant not found"
        assert WorkflowInstanceModel.query.count() == 0


class TestContinueFromInstruction:
    def test_follows_first_edge_with_destination(self, template_factory, node_factory, option_factory):
        template = template_factory()
        start = node_factory(template, "INSTRUCTION", title="Read", is_start=True)
        next_in_order = node_factory(template, "INSTRUCTION", title="Next in order")
        jump = node_factory(template, "QUESTION", title="Jump")
        option_factory(template, start, "Dead end")
        option_factory(template, start, "Go", next_node=jump)
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")

        result = WorkflowInstanceService.continue_from_instruction(TENANT_A, instance.id)

        assert result["completed"] is False
        assert result["next_node_id"] == jump.id
        assert instance.current_node_id == jump.id
        assert next_in_order.id != jump.id

    def test_last_instruction_completes(self, template_factory, node_factory):
        template = template_factory()
        node_factory(template, "INSTRUCTION", title="Only")
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")

        result = WorkflowInstanceService.continue_from_instruction(TENANT_A, instance.id)

        assert result["completed"] is True
        assert instance.status == "COMPLETED"
        assert instance.current_node_id is None
        assert instance.completed_at is not None

    def test_question_node_is_rejected_without_changes(self, triage):
        instance = WorkflowInstanceService.start_instance(TENANT_A, triage["template"].id, "nurse")
        try:
            WorkflowInstanceService.continue_from_instruction(TENANT_A, instance.id)
            assert False, "Expected ApiError"
        except ApiError as e:
            assert e.kind == "validation"
            assert e.message == "Current node is not an instruction node"
        db.session.refresh(instance)
        assert instance.current_node_id == triage["q1"].id
        assert instance.status == "ACTIVE"

    def test_completed_instance_never_reactivates(self, template_factory, node_factory):
        template = template_factory()
        node_factory(template, "INSTRUCTION")
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        WorkflowInstanceService.continue_from_instruction(TENANT_A, instance.id)

        with pytest.raises(ApiError) as excinfo:
            WorkflowInstanceService.continue_from_instruction(TENANT_A, instance.id)
        assert excinfo.value.error_code == "instance_completed"
        assert instance.status == "COMPLETED"

    def test_other_tenant_instance_is_not_found(self, triage):
        instance = WorkflowInstanceService.start_instance(TENANT_A, triage["template"].id, "nurse")
        with pytest.raises(ApiError) as excinfo:
            WorkflowInstanceService.continue_from_instruction(TENANT_B, instance.id)
        assert excinfo.value.kind == "not_found"


class TestAnswerQuestion:
    def test_terminal_option_records_and_completes(self, template_factory, node_factory, option_factory):
        template = template_factory()
        question = node_factory(template, "QUESTION", title="Needs action?")
        node_factory(template, "INSTRUCTION", title="Never reached")
        file_it = option_factory(template, question, "No", action_key="FILE_WITHOUT_FORWARDING")
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")

        result = WorkflowInstanceService.answer_question(TENANT_A, instance.id, file_it.id, "nothing to do")

        assert result["completed"] is True
        assert result["action_key"] == "FILE_WITHOUT_FORWARDING"
        assert instance.status == "COMPLETED"
        assert instance.current_node_id is None
        assert instance.final_action_key == "FILE_WITHOUT_FORWARDING"
        record = WorkflowAnswerRecordModel.query.filter_by(instance_id=instance.id).one()
        assert record.node_id == question.id
        assert record.answer_option_id == file_it.id
        assert record.answer_value_key == "no"
        assert record.free_text_note == "nothing to do"

    def test_terminal_option_without_action_still_completes(self, template_factory, node_factory, option_factory):
        template = template_factory()
        question = node_factory(template, "QUESTION")
        plain = option_factory(template, question, "Done")
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")

        result = WorkflowInstanceService.answer_question(TENANT_A, instance.id, plain.id)

        assert result["completed"] is True
        assert result["action_key"] is None
        assert WorkflowAnswerRecordModel.query.count() == 1

    def test_option_from_other_node_is_rejected(self, triage, node_factory, option_factory):
        other_question = node_factory(triage["template"], "QUESTION", title="Other")
        stray = option_factory(triage["template"], other_question, "Stray")
        instance = WorkflowInstanceService.start_instance(TENANT_A, triage["template"].id, "nurse")

        with pytest.raises(ApiError) as excinfo:
            WorkflowInstanceService.answer_question(TENANT_A, instance.id, stray.id)

        assert excinfo.value.kind == "validation"
        assert WorkflowAnswerRecordModel.query.count() == 0

    def test_instruction_node_is_rejected(self, triage):
        instance = WorkflowInstanceService.start_instance(TENANT_A, triage["template"].id, "nurse")
        WorkflowInstanceService.answer_question(TENANT_A, instance.id, triage["yes"].id)

        with pytest.raises(ApiError) as excinfo:
            WorkflowInstanceService.answer_question(TENANT_A, instance.id, triage["yes"].id)

        assert excinfo.value.message == "Current node is not a question node"
        assert WorkflowAnswerRecordModel.query.count() == 1

    def test_commit_failure_leaves_no_record(self, template_factory, node_factory, option_factory):
        template = template_factory()
        question = node_factory(template, "QUESTION")
        done = option_factory(template, question, "Done")
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        instance_id = instance.id

        with patch.object(
            WorkflowInstanceModel, "commit_with_rollback_on_exception", side_effect=RuntimeError("connection lost")
        ):
            with pytest.raises(RuntimeError):
                WorkflowInstanceService.answer_question(TENANT_A, instance_id, done.id)
        db.session.rollback()

        reloaded = db.session.get(WorkflowInstanceModel, instance_id)
        assert reloaded.status == "ACTIVE"
        assert reloaded.current_node_id == question.id
        assert WorkflowAnswerRecordModel.query.count() == 0


class TestGetInstance:
    def test_missing_current_node_force_completes(self, template_factory, node_factory):
        template = template_factory()
        node = node_factory(template, "INSTRUCTION")
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        WorkflowGraphService.delete_node(TENANT_A, template.id, node.id)

        view = WorkflowInstanceService.get_instance(TENANT_A, instance.id)

        assert view["completed"] is True
        assert view["current_node"] is None
        assert view["instance"]["status"] == "COMPLETED"
        assert view["instance"]["current_node_id"] is None

    def test_active_view_sorts_options_by_label(self, template_factory, node_factory, option_factory):
        template = template_factory()
        question = node_factory(template, "QUESTION", title="Which team?")
        option_factory(template, question, "pharmacy")
        option_factory(template, question, "GP")
        option_factory(template, question, "Admin")
        instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")

        view = WorkflowInstanceService.get_instance(TENANT_A, instance.id)

        assert view["completed"] is False
        assert view["current_node"]["title"] == "Which team?"
        assert [o["label"] for o in view["current_node"]["answer_options"]] == ["Admin", "GP", "pharmacy"]
        assert view["template"]["name"] == template.name

    def test_list_instances_newest_first_and_filtered(self, template_factory, node_factory):
        template = template_factory()
        node_factory(template, "INSTRUCTION")
        first = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        second = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
        WorkflowInstanceService.continue_from_instruction(TENANT_A, first.id)

        assert [i.id for i in WorkflowInstanceService.list_instances(TENANT_A)] == [second.id, first.id]
        assert [i.id for i in WorkflowInstanceService.list_instances(TENANT_A, "completed")] == [first.id]
        assert WorkflowInstanceService.list_instances(TENANT_B) == []
        with pytest.raises(ApiError):
            WorkflowInstanceService.list_instances(TENANT_A, "PAUSED")


def test_end_to_end_triage_run(triage):
    template, q1, i1, e1 = triage["template"], triage["q1"], triage["i1"], triage["e1"]

    instance = WorkflowInstanceService.start_instance(TENANT_A, template.id, "nurse")
    assert instance.current_node_id == q1.id

    answered = WorkflowInstanceService.answer_question(TENANT_A, instance.id, triage["yes"].id)
    assert answered["completed"] is False
    assert instance.current_node_id == i1.id
    assert WorkflowAnswerRecordModel.query.filter_by(instance_id=instance.id).count() == 1

    continued = WorkflowInstanceService.continue_from_instruction(TENANT_A, instance.id)
    assert continued["completed"] is False
    assert instance.current_node_id == e1.id
    assert instance.status == "ACTIVE"

    view = WorkflowInstanceService.get_instance(TENANT_A, instance.id)
    assert view["completed"] is True
    assert view["action_key"] == "REFER"
    assert view["outcome_node"]["id"] == e1.id
    assert view["instance"]["status"] == "COMPLETED"
    assert view["instance"]["final_action_key"] == "REFER"
    assert [(a["node_title"], a["answer_label"]) for a in view["answers"]] == [("Q1", "Yes")]
