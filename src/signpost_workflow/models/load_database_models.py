"""Import every model so metadata (create_all, Alembic) and string relationships resolve."""

from signpost_workflow.models.db import db  # noqa: F401
from signpost_workflow.models.tenant import TenantModel  # noqa: F401
from signpost_workflow.models.workflow_template import WorkflowTemplateModel  # noqa: F401
from signpost_workflow.models.workflow_node import WorkflowNodeModel  # noqa: F401
from signpost_workflow.models.workflow_answer_option import WorkflowAnswerOptionModel  # noqa: F401
from signpost_workflow.models.workflow_node_link import WorkflowNodeLinkModel  # noqa: F401
from signpost_workflow.models.workflow_instance import WorkflowInstanceModel  # noqa: F401
from signpost_workflow.models.workflow_answer_record import WorkflowAnswerRecordModel  # noqa: F401
