from __future__ import annotations

from signpost_workflow import tenancy
from signpost_workflow.exceptions.api_error import ApiError
from signpost_workflow.models.workflow_template import WorkflowTemplateModel

SOURCE_GLOBAL = "global"
SOURCE_OVERRIDE = "override"
SOURCE_CUSTOM = "custom"


def _effective(template: WorkflowTemplateModel, source: str, source_template_id: int | None) -> dict:
    result = template.serialized()
    result["source"] = source
    result["source_template_id"] = source_template_id
    return result


class EffectiveWorkflowService:
    """What a tenant actually sees: global defaults, replaced by its own overrides, plus its custom templates."""

    @staticmethod
    def _visible(template: WorkflowTemplateModel, include_drafts: bool) -> bool:
        return include_drafts or template.is_approved()

    @classmethod
    def list_effective_workflows(
        cls,
        tenant_id: str | None,
        include_drafts: bool = False,
        include_inactive: bool = False,
    ) -> list[dict]:
        tenancy.require_known_tenant(tenant_id)

        global_query = WorkflowTemplateModel.query.filter_by(tenant_id=tenancy.global_tenant_id())
        local_query = WorkflowTemplateModel.query.filter_by(tenant_id=tenant_id)
        if not include_inactive:
            global_query = global_query.filter(WorkflowTemplateModel.is_active.is_(True))
            local_query = local_query.filter(WorkflowTemplateModel.is_active.is_(True))
        order = (WorkflowTemplateModel.name.asc(), WorkflowTemplateModel.id.asc())
        global_templates = global_query.order_by(*order).all()
        # The global tenant looking at itself sees its templates once, as globals.
        local_templates = [] if tenancy.is_global_tenant(tenant_id) else local_query.order_by(*order).all()

        overrides: dict[int, WorkflowTemplateModel] = {}
        custom: list[WorkflowTemplateModel] = []
        for local in local_templates:
            if local.source_template_id is not None:
                overrides[local.source_template_id] = local
            else:
                custom.append(local)

        effective: list[dict] = []
        for global_template in global_templates:
            override = overrides.get(global_template.id)
            if override is not None:
                # An unapproved override hides the global it replaces.
                if cls._visible(override, include_drafts):
                    effective.append(_effective(override, SOURCE_OVERRIDE, global_template.id))
            elif cls._visible(global_template, include_drafts):
                effective.append(_effective(global_template, SOURCE_GLOBAL, None))

        for template in custom:
            if cls._visible(template, include_drafts):
                effective.append(_effective(template, SOURCE_CUSTOM, None))
        return effective

    @classmethod
    def get_effective_workflow(
        cls,
        tenant_id: str | None,
        template_id: int,
        include_drafts: bool = False,
    ) -> dict:
        """Resolve one id the way list_effective_workflows would show it; hidden counts as not found."""
        tenancy.require_known_tenant(tenant_id)
        not_found = ApiError("not_found", "Workflow not found", status_code=404)

        local = WorkflowTemplateModel.query.filter_by(id=template_id, tenant_id=tenant_id).first()
        if local is not None and not tenancy.is_global_tenant(tenant_id):
            if not cls._visible(local, include_drafts):
                raise not_found
            if local.source_template_id is not None:
                return _effective(local, SOURCE_OVERRIDE, local.source_template_id)
            return _effective(local, SOURCE_CUSTOM, None)

        global_template = WorkflowTemplateModel.query.filter_by(
            id=template_id, tenant_id=tenancy.global_tenant_id()
        ).first()
        if global_template is None:
            raise not_found

        override = WorkflowTemplateModel.query.filter_by(
            tenant_id=tenant_id, source_template_id=global_template.id
        ).first()
        if override is not None:
            if cls._visible(override, include_drafts):
                return _effective(override, SOURCE_OVERRIDE, global_template.id)
            raise not_found

        if cls._visible(global_template, include_drafts):
            return _effective(global_template, SOURCE_GLOBAL, None)
        raise not_found
