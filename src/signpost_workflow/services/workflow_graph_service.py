from __future__ import annotations

import logging
from typing import Any

from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.helpers.value_key import derive_value_key
from signpost_workflow.helpers.value_key import slugify_label
from signpost_workflow.helpers.value_key import unique_value_key
from signpost_workflow.models.db import db
from signpost_workflow.models.workflow_answer_option import WorkflowAnswerOptionModel
from signpost_workflow.models.workflow_answer_record import WorkflowAnswerRecordModel
from signpost_workflow.models.workflow_node import DEFAULT_NODE_TITLES
from signpost_workflow.models.workflow_node import WorkflowNodeModel
from signpost_workflow.models.workflow_node import WorkflowNodeType
from signpost_workflow.models.workflow_node import normalize_action_key
from signpost_workflow.models.workflow_node_link import DEFAULT_LINK_LABEL
from signpost_workflow.models.workflow_node_link import WorkflowNodeLinkModel
from signpost_workflow.models.workflow_template import WorkflowTemplateModel
from signpost_workflow.services.workflow_template_service import WorkflowTemplateService
from signpost_workflow.services.workflow_template_service import coerce_bool

logger = logging.getLogger(__name__)

MIN_NODE_WIDTH = 300
MIN_NODE_HEIGHT = 200


def _round_position(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError) as exception:
        raise ApiError("invalid_position", f"Invalid {field} position", status_code=400) from exception


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def merge_node_style(current: dict | None, incoming: dict | None) -> dict | None:
    """Merge a style patch into the stored style. Dimensions are clamped, junk dimensions dropped."""
    if incoming is None:
        return None
    if not isinstance(incoming, dict):
        raise ApiError("invalid_style", "Node style must be an object", status_code=400)
    merged = dict(current or {})
    for key, value in incoming.items():
        if key in ("width", "height"):
            minimum = MIN_NODE_WIDTH if key == "width" else MIN_NODE_HEIGHT
            try:
                merged[key] = max(minimum, int(round(float(value))))
            except (TypeError, ValueError):
                merged.pop(key, None)
            continue
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged or None


def _normalize_badges(value: Any) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise ApiError("invalid_badges", "Badges must be a list", status_code=400)
    badges = [str(badge).strip() for badge in value if str(badge).strip()]
    return badges or None


class WorkflowGraphService:
    """Nodes, answer options (edges) and node links of a template graph."""

    @staticmethod
    def _get_node_or_404(template: WorkflowTemplateModel, node_id: int) -> WorkflowNodeModel:
        node = WorkflowNodeModel.query.filter_by(id=node_id, template_id=template.id).first()
        if node is None:
            raise ApiError("not_found", "Node not found", status_code=404)
        return node

    @staticmethod
    def _get_option_or_404(template: WorkflowTemplateModel, option_id: int) -> WorkflowAnswerOptionModel:
        option = (
            WorkflowAnswerOptionModel.query.join(
                WorkflowNodeModel, WorkflowAnswerOptionModel.node_id == WorkflowNodeModel.id
            )
            .filter(
                WorkflowAnswerOptionModel.id == option_id,
                WorkflowNodeModel.template_id == template.id,
            )
            .first()
        )
        if option is None:
            raise ApiError("not_found", "Answer option not found", status_code=404)
        return option

    @classmethod
    def _validate_next_node(cls, template: WorkflowTemplateModel, next_node_id: Any) -> int | None:
        if next_node_id in (None, ""):
            return None
        try:
            node_id = int(next_node_id)
        except (TypeError, ValueError) as exception:
            raise ApiError("invalid_field", "Invalid target node", status_code=400) from exception
        exists = WorkflowNodeModel.query.filter_by(id=node_id, template_id=template.id).first()
        if exists is None:
            raise ApiError("not_found", "Target node not found", status_code=404)
        return node_id

    @staticmethod
    def _clear_start_flag(template_id: int, keep_node_id: int | None = None) -> None:
        query = WorkflowNodeModel.query.filter(
            WorkflowNodeModel.template_id == template_id,
            WorkflowNodeModel.is_start.is_(True),
        )
        if keep_node_id is not None:
            query = query.filter(WorkflowNodeModel.id != keep_node_id)
        query.update({"is_start": False}, synchronize_session="fetch")

    @staticmethod
    def _validate_node_type(raw: Any) -> str:
        value = str(raw or WorkflowNodeType.INSTRUCTION.value).strip().upper()
        for member in WorkflowNodeType:
            if member.value == value:
                return member.value
        raise ApiError("invalid_field", "Invalid node type", status_code=400)

    # Nodes

    @classmethod
    def create_node(
        cls,
        tenant_id: str | None,
        template_id: int,
        fields: dict[str, Any] | None = None,
        username: str | None = None,
    ) -> WorkflowNodeModel:
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        fields = dict(fields or {})
        node_type = cls._validate_node_type(fields.get("node_type"))
        title = _optional_text(fields.get("title")) or DEFAULT_NODE_TITLES[node_type]

        max_sort_order = (
            db.session.query(db.func.max(WorkflowNodeModel.sort_order))
            .filter(WorkflowNodeModel.template_id == template.id)
            .scalar()
        )
        is_start = coerce_bool(fields.get("is_start", False))
        if is_start:
            cls._clear_start_flag(template.id)

        node = WorkflowNodeModel(
            template_id=template.id,
            node_type=node_type,
            title=title,
            body=_optional_text(fields.get("body")),
            sort_order=(max_sort_order or 0) + 1,
            is_start=is_start,
            action_key=normalize_action_key(fields.get("action_key")),
            position_x=_round_position(fields.get("position_x"), "x"),
            position_y=_round_position(fields.get("position_y"), "y"),
            badges=_normalize_badges(fields.get("badges")),
            style=merge_node_style(None, fields.get("style")),
        )
        db.session.add(node)
        WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowNodeModel.commit_with_rollback_on_exception()
        return node

    @classmethod
    def update_node(
        cls,
        tenant_id: str | None,
        template_id: int,
        node_id: int,
        fields: dict[str, Any] | None,
        username: str | None = None,
    ) -> WorkflowNodeModel:
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        node = cls._get_node_or_404(template, node_id)
        fields = dict(fields or {})

        if "node_type" in fields:
            node.node_type = cls._validate_node_type(fields["node_type"])
        if "title" in fields:
            title = _optional_text(fields["title"])
            if title is None:
                raise ApiError("missing_fields", "Title is required", status_code=400)
            node.title = title
        if "body" in fields:
            node.body = _optional_text(fields["body"])
        if "action_key" in fields:
            node.action_key = normalize_action_key(fields["action_key"])
        if "sort_order" in fields:
            try:
                node.sort_order = int(fields["sort_order"])
            except (TypeError, ValueError) as exception:
                raise ApiError("invalid_field", "Invalid sort order", status_code=400) from exception
        if "position_x" in fields:
            node.position_x = _round_position(fields["position_x"], "x")
        if "position_y" in fields:
            node.position_y = _round_position(fields["position_y"], "y")
        if "badges" in fields:
            node.badges = _normalize_badges(fields["badges"])
        if "style" in fields:
            node.style = merge_node_style(node.style, fields["style"])
        if "is_start" in fields:
            is_start = coerce_bool(fields["is_start"])
            if is_start:
                cls._clear_start_flag(template.id, keep_node_id=node.id)
            node.is_start = is_start

        WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowNodeModel.commit_with_rollback_on_exception()
        return node

    @classmethod
    def delete_node(
        cls,
        tenant_id: str | None,
        template_id: int,
        node_id: int,
        username: str | None = None,
    ) -> None:
        """Delete a node: answer records, then its links and edges, then the node itself."""
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        node = cls._get_node_or_404(template, node_id)

        option_ids = [
            row.id
            for row in WorkflowAnswerOptionModel.query.with_entities(WorkflowAnswerOptionModel.id).filter_by(
                node_id=node.id
            )
        ]
        WorkflowAnswerRecordModel.query.filter(
            db.or_(
                WorkflowAnswerRecordModel.node_id == node.id,
                WorkflowAnswerRecordModel.answer_option_id.in_(option_ids),
            )
        ).delete(synchronize_session=False)
        WorkflowNodeLinkModel.query.filter_by(node_id=node.id).delete(synchronize_session=False)
        # Edges arriving here become terminal branches.
        WorkflowAnswerOptionModel.query.filter_by(next_node_id=node.id).update(
            {"next_node_id": None}, synchronize_session=False
        )
        WorkflowAnswerOptionModel.query.filter(
            WorkflowAnswerOptionModel.id.in_(option_ids)
        ).delete(synchronize_session=False)
        WorkflowNodeModel.query.filter_by(id=node.id).delete(synchronize_session=False)
        db.session.expunge(node)
        WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowNodeModel.commit_with_rollback_on_exception()
        logger.debug(
            "Deleted node %s from template %s with %d outgoing edges", node_id, template.id, len(option_ids)
        )

    @classmethod
    def bulk_update_positions(
        cls,
        tenant_id: str | None,
        template_id: int,
        updates: list[dict[str, Any]] | None,
        username: str | None = None,
    ) -> dict:
        """Write canvas positions. Unknown node ids are skipped so a concurrent delete cannot fail the batch."""
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        if not isinstance(updates, list):
            raise ApiError("invalid_field", "Position updates must be a list", status_code=400)

        parsed: list[tuple[int, int | None, int | None]] = []
        for entry in updates:
            if not isinstance(entry, dict) or entry.get("node_id") in (None, ""):
                raise ApiError("invalid_field", "Each position update needs a node_id", status_code=400)
            try:
                node_id = int(entry["node_id"])
            except (TypeError, ValueError) as exception:
                raise ApiError("invalid_field", "Invalid node id", status_code=400) from exception
            parsed.append(
                (node_id, _round_position(entry.get("x"), "x"), _round_position(entry.get("y"), "y"))
            )

        nodes = {
            node.id: node
            for node in WorkflowNodeModel.query.filter(
                WorkflowNodeModel.template_id == template.id,
                WorkflowNodeModel.id.in_([node_id for node_id, _, _ in parsed]),
            )
        }
        updated = 0
        skipped: list[int] = []
        for node_id, x, y in parsed:
            node = nodes.get(node_id)
            if node is None:
                skipped.append(node_id)
                continue
            node.position_x = x
            node.position_y = y
            updated += 1

        if skipped:
            logger.warning(
                "Skipped position updates for missing nodes %s in template %s", skipped, template.id
            )
        if updated:
            WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowNodeModel.commit_with_rollback_on_exception()
        return {"updated": updated, "skipped": skipped}

    # Answer options

    @staticmethod
    def _taken_value_keys(node_id: int, exclude_option_id: int | None = None) -> set[str]:
        query = WorkflowAnswerOptionModel.query.with_entities(WorkflowAnswerOptionModel.value_key).filter(
            WorkflowAnswerOptionModel.node_id == node_id
        )
        if exclude_option_id is not None:
            query = query.filter(WorkflowAnswerOptionModel.id != exclude_option_id)
        return {row.value_key for row in query}

    @staticmethod
    def _explicit_value_key(raw: Any, taken: set[str]) -> str:
        value_key = slugify_label(str(raw))
        if not value_key:
            raise ApiError("invalid_field", "Value key must contain letters or numbers", status_code=400)
        if value_key in taken:
            raise ApiError(
                "duplicate_value_key",
                f'Value key "{value_key}" already exists for this node',
                status_code=400,
            )
        return value_key

    @classmethod
    def create_answer_option(
        cls,
        tenant_id: str | None,
        template_id: int,
        node_id: int,
        fields: dict[str, Any] | None,
        username: str | None = None,
    ) -> WorkflowAnswerOptionModel:
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        node = cls._get_node_or_404(template, node_id)
        fields = dict(fields or {})

        label = _optional_text(fields.get("label"))
        if label is None:
            raise ApiError("missing_fields", "Label is required", status_code=400)

        taken = cls._taken_value_keys(node.id)
        if _optional_text(fields.get("value_key")):
            value_key = cls._explicit_value_key(fields["value_key"], taken)
        else:
            value_key = unique_value_key(derive_value_key(label), taken)

        option = WorkflowAnswerOptionModel(
            node_id=node.id,
            label=label,
            value_key=value_key,
            description=_optional_text(fields.get("description")),
            next_node_id=cls._validate_next_node(template, fields.get("next_node_id")),
            action_key=normalize_action_key(fields.get("action_key")),
            source_handle=_optional_text(fields.get("source_handle")),
            target_handle=_optional_text(fields.get("target_handle")),
        )
        db.session.add(option)
        WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowAnswerOptionModel.commit_with_rollback_on_exception()
        return option

    @classmethod
    def update_answer_option(
        cls,
        tenant_id: str | None,
        template_id: int,
        option_id: int,
        fields: dict[str, Any] | None,
        username: str | None = None,
    ) -> WorkflowAnswerOptionModel:
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        option = cls._get_option_or_404(template, option_id)
        fields = dict(fields or {})
        taken = cls._taken_value_keys(option.node_id, exclude_option_id=option.id)

        if _optional_text(fields.get("value_key")):
            option.value_key = cls._explicit_value_key(fields["value_key"], taken)
        if "label" in fields:
            label = _optional_text(fields["label"])
            if label is None:
                raise ApiError("missing_fields", "Label is required", status_code=400)
            if label != option.label and not _optional_text(fields.get("value_key")):
                option.value_key = unique_value_key(derive_value_key(label), taken)
            option.label = label
        if "description" in fields:
            option.description = _optional_text(fields["description"])
        if "next_node_id" in fields:
            option.next_node_id = cls._validate_next_node(template, fields["next_node_id"])
        if "action_key" in fields:
            option.action_key = normalize_action_key(fields["action_key"])
        if "source_handle" in fields:
            option.source_handle = _optional_text(fields["source_handle"])
        if "target_handle" in fields:
            option.target_handle = _optional_text(fields["target_handle"])

        WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowAnswerOptionModel.commit_with_rollback_on_exception()
        return option

    @classmethod
    def delete_answer_option(
        cls,
        tenant_id: str | None,
        template_id: int,
        option_id: int,
        username: str | None = None,
    ) -> None:
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        option = cls._get_option_or_404(template, option_id)
        WorkflowAnswerRecordModel.query.filter_by(answer_option_id=option.id).delete(synchronize_session=False)
        db.session.delete(option)
        WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowAnswerOptionModel.commit_with_rollback_on_exception()

    # Node links

    @classmethod
    def create_node_link(
        cls,
        tenant_id: str | None,
        template_id: int,
        node_id: int,
        linked_template_id: Any,
        label: str | None = None,
        username: str | None = None,
    ) -> WorkflowNodeLinkModel:
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        node = cls._get_node_or_404(template, node_id)
        try:
            target_id = int(linked_template_id)
        except (TypeError, ValueError) as exception:
            raise ApiError("missing_fields", "Linked workflow is required", status_code=400) from exception

        if target_id == template.id:
            raise ApiError("self_link", "Cannot link to the same workflow template", status_code=400)
        # The target must be visible to this tenant, same as any other template lookup.
        target = WorkflowTemplateService.find_template(tenant_id, target_id)
        if target is None:
            raise ApiError("not_found", "Linked workflow not found", status_code=404)

        existing = WorkflowNodeLinkModel.query.filter_by(node_id=node.id, template_id=target.id).first()
        if existing is not None:
            raise ApiError("duplicate_link", "Link to this workflow already exists", status_code=400)

        max_sort_order = (
            db.session.query(db.func.max(WorkflowNodeLinkModel.sort_order))
            .filter(WorkflowNodeLinkModel.node_id == node.id)
            .scalar()
        )
        link = WorkflowNodeLinkModel(
            node_id=node.id,
            template_id=target.id,
            label=_optional_text(label) or DEFAULT_LINK_LABEL,
            sort_order=0 if max_sort_order is None else max_sort_order + 1,
        )
        db.session.add(link)
        WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowNodeLinkModel.commit_with_rollback_on_exception()
        return link

    @classmethod
    def delete_node_link(
        cls,
        tenant_id: str | None,
        template_id: int,
        link_id: int,
        username: str | None = None,
    ) -> None:
        template = WorkflowTemplateService.get_template_or_404(tenant_id, template_id)
        link = (
            WorkflowNodeLinkModel.query.join(WorkflowNodeModel, WorkflowNodeLinkModel.node_id == WorkflowNodeModel.id)
            .filter(WorkflowNodeLinkModel.id == link_id, WorkflowNodeModel.template_id == template.id)
            .first()
        )
        if link is None:
            raise ApiError("not_found", "Link not found", status_code=404)
        db.session.delete(link)
        WorkflowTemplateService.touch_for_graph_edit(template, username)
        WorkflowNodeLinkModel.commit_with_rollback_on_exception()
