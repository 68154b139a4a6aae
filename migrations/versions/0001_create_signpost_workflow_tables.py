"""create_signpost_workflow_tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:12:44.508113

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """
    Apply this migration.

    Creates the tenant table and the workflow engine tables: templates, nodes,
    answer options, node links, instances and the answer log. Referential
    cleanup is done by the application, so foreign keys carry no ON DELETE.
    """
    op.create_table(
        'signpost_tenant',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column(
            'status',
            sa.Enum('ACTIVE', 'INACTIVE', 'DELETED', name='tenantstatus'),
            nullable=False,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('created_by', sa.String(length=255), nullable=False),
        sa.Column('modified_by', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_signpost_tenant_slug', 'signpost_tenant', ['slug'], unique=True)

    op.create_table(
        'signpost_workflow_template',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('colour_hex', sa.String(length=32), nullable=True),
        sa.Column('category', sa.String(length=20), nullable=False),
        sa.Column('workflow_type', sa.String(length=20), nullable=False),
        sa.Column('approval_status', sa.String(length=20), nullable=False),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_template_id', sa.Integer(), nullable=True),
        sa.Column('last_edited_by', sa.String(length=255), nullable=True),
        sa.Column('last_edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['signpost_tenant.id']),
        sa.ForeignKeyConstraint(['source_template_id'], ['signpost_workflow_template.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'source_template_id', name='uq_workflow_template_tenant_source'),
    )
    op.create_index(
        'ix_signpost_workflow_template_tenant_id', 'signpost_workflow_template', ['tenant_id'], unique=False
    )
    op.create_index(
        'ix_workflow_template_approval_status', 'signpost_workflow_template', ['approval_status'], unique=False
    )
    op.create_index(
        'ix_workflow_template_source_template_id', 'signpost_workflow_template', ['source_template_id'], unique=False
    )

    op.create_table(
        'signpost_workflow_node',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('node_type', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('is_start', sa.Boolean(), nullable=False),
        sa.Column('action_key', sa.String(length=64), nullable=True),
        sa.Column('position_x', sa.Integer(), nullable=True),
        sa.Column('position_y', sa.Integer(), nullable=True),
        sa.Column('badges', sa.JSON(), nullable=True),
        sa.Column('style', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['template_id'], ['signpost_workflow_template.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_workflow_node_template_id', 'signpost_workflow_node', ['template_id'], unique=False)
    op.create_index(
        'ix_workflow_node_template_sort', 'signpost_workflow_node', ['template_id', 'sort_order'], unique=False
    )

    op.create_table(
        'signpost_workflow_answer_option',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('node_id', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=False),
        sa.Column('value_key', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('next_node_id', sa.Integer(), nullable=True),
        sa.Column('action_key', sa.String(length=64), nullable=True),
        sa.Column('source_handle', sa.String(length=64), nullable=True),
        sa.Column('target_handle', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['node_id'], ['signpost_workflow_node.id']),
        sa.ForeignKeyConstraint(['next_node_id'], ['signpost_workflow_node.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('node_id', 'value_key', name='uq_workflow_answer_option_node_value_key'),
    )
    op.create_index(
        'ix_workflow_answer_option_node_id', 'signpost_workflow_answer_option', ['node_id'], unique=False
    )
    op.create_index(
        'ix_workflow_answer_option_next_node_id', 'signpost_workflow_answer_option', ['next_node_id'], unique=False
    )

    op.create_table(
        'signpost_workflow_node_link',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('node_id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['node_id'], ['signpost_workflow_node.id']),
        sa.ForeignKeyConstraint(['template_id'], ['signpost_workflow_template.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('node_id', 'template_id', name='uq_workflow_node_link_node_template'),
    )
    op.create_index('ix_workflow_node_link_node_id', 'signpost_workflow_node_link', ['node_id'], unique=False)
    op.create_index(
        'ix_workflow_node_link_template_id', 'signpost_workflow_node_link', ['template_id'], unique=False
    )

    op.create_table(
        'signpost_workflow_instance',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=255), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('started_by', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('category', sa.String(length=255), nullable=True),
        sa.Column('current_node_id', sa.Integer(), nullable=True),
        sa.Column('final_action_key', sa.String(length=64), nullable=True),
        sa.Column('outcome_node_id', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['signpost_tenant.id']),
        sa.ForeignKeyConstraint(['template_id'], ['signpost_workflow_template.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_signpost_workflow_instance_tenant_id', 'signpost_workflow_instance', ['tenant_id'], unique=False
    )
    op.create_index(
        'ix_workflow_instance_template_id', 'signpost_workflow_instance', ['template_id'], unique=False
    )
    op.create_index('ix_workflow_instance_status', 'signpost_workflow_instance', ['status'], unique=False)

    op.create_table(
        'signpost_workflow_answer_record',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.Column('node_id', sa.Integer(), nullable=False),
        sa.Column('answer_option_id', sa.Integer(), nullable=True),
        sa.Column('answer_value_key', sa.String(length=255), nullable=True),
        sa.Column('free_text_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['instance_id'], ['signpost_workflow_instance.id']),
        sa.ForeignKeyConstraint(['node_id'], ['signpost_workflow_node.id']),
        sa.ForeignKeyConstraint(['answer_option_id'], ['signpost_workflow_answer_option.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_workflow_answer_record_instance_id', 'signpost_workflow_answer_record', ['instance_id'], unique=False
    )
    op.create_index(
        'ix_workflow_answer_record_node_id', 'signpost_workflow_answer_record', ['node_id'], unique=False
    )
    op.create_index(
        'ix_workflow_answer_record_answer_option_id',
        'signpost_workflow_answer_record',
        ['answer_option_id'],
        unique=False,
    )


def downgrade():
    """
    Rollback this migration.

    Drops every table created in upgrade(), children first.
    """
    op.drop_table('signpost_workflow_answer_record')
    op.drop_table('signpost_workflow_instance')
    op.drop_table('signpost_workflow_node_link')
    op.drop_table('signpost_workflow_answer_option')
    op.drop_table('signpost_workflow_node')
    op.drop_table('signpost_workflow_template')
    op.drop_index('ix_signpost_tenant_slug', table_name='signpost_tenant')
    op.drop_table('signpost_tenant')
    sa.Enum(name='tenantstatus').drop(op.get_bind(), checkfirst=True)
