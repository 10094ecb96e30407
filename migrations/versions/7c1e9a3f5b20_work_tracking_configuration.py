"""work_tracking_configuration

Creates the work tracking configuration tables:
  - datasources, projects
  - workflows, workflow_steps, workflow_events
  - work_item_types, work_item_type_maps
  - contexts, context_work_item_maps
  - states (work items), snapshots
  - filters, review_rooms     — stored queries scanned before removals

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 7c1e9a3f5b20
Revises:
Create Date: 2026-10-18 09:12:41.380114
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e9a3f5b20'
down_revision = None
branch_labels = None
depends_on = None


def _tenant_cols():
    return [sa.Column("tenant_id", sa.String(length=128), nullable=False)]


def _datasource_cols():
    return _tenant_cols() + [sa.Column("datasource_id", sa.String(length=128), nullable=False)]


def _deleted_at():
    return sa.Column("deleted_at", sa.DateTime(), nullable=True)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Datasource / Project ──────────────────────────────────────────────
    if "datasources" not in existing:
        op.create_table(
            "datasources",
            *_tenant_cols(),
            sa.Column("datasource_id", sa.String(length=128), nullable=False),
            sa.Column(
                "provider", sa.String(length=40), nullable=True,
                comment="jira-cloud | jira-server | azure-boards | kanbanize | ...",
            ),
            sa.Column("namespace", sa.String(length=255), nullable=True),
            sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column(
                "next_run_start_from", sa.DateTime(), nullable=True,
                comment="Ingestion cursor. NULL means the next extraction run starts from scratch.",
            ),
            _deleted_at(),
            sa.PrimaryKeyConstraint("tenant_id", "datasource_id"),
        )
        op.create_index("ix_datasources_deleted_at", "datasources", ["deleted_at"])

    if "projects" not in existing:
        op.create_table(
            "projects",
            *_datasource_cols(),
            sa.Column("project_id", sa.String(length=255), nullable=False),
            sa.Column("datasource_type", sa.String(length=40), nullable=True),
            sa.Column("name", sa.String(length=255), nullable=True),
            sa.Column("workspace", sa.String(length=255), nullable=True),
            _deleted_at(),
            sa.PrimaryKeyConstraint("tenant_id", "datasource_id", "project_id"),
        )
        op.create_index("ix_projects_deleted_at", "projects", ["deleted_at"])

    # ── Workflow configuration ────────────────────────────────────────────
    if "workflows" not in existing:
        op.create_table(
            "workflows",
            *_datasource_cols(),
            sa.Column("workflow_id", sa.String(length=512), nullable=False),
            sa.Column("workflow_name", sa.String(length=512), nullable=True),
            sa.Column("project_id", sa.String(length=255), nullable=True),
            sa.Column("datasource_workflow_id", sa.String(length=255), nullable=True),
            _deleted_at(),
            sa.PrimaryKeyConstraint("tenant_id", "datasource_id", "workflow_id"),
        )
        op.create_index("ix_workflows_project_id", "workflows", ["project_id"])
        op.create_index("ix_workflows_deleted_at", "workflows", ["deleted_at"])

    if "workflow_steps" not in existing:
        op.create_table(
            "workflow_steps",
            *_datasource_cols(),
            sa.Column("workflow_id", sa.String(length=512), nullable=False),
            sa.Column("id", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("project_id", sa.String(length=255), nullable=True),
            sa.Column(
                "state_category", sa.String(length=20), nullable=True,
                comment="proposed | inprogress | completed | removed",
            ),
            sa.Column("state_type", sa.String(length=40), nullable=True),
            sa.Column("order", sa.Integer(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _deleted_at(),
            sa.PrimaryKeyConstraint("tenant_id", "datasource_id", "workflow_id", "id", "name"),
        )
        op.create_index("ix_workflow_steps_deleted_at", "workflow_steps", ["deleted_at"])

    if "workflow_events" not in existing:
        op.create_table(
            "workflow_events",
            *_datasource_cols(),
            sa.Column("workflow_id", sa.String(length=512), nullable=False),
            sa.Column("arrival_point_order", sa.Integer(), nullable=True),
            sa.Column("commitment_point_order", sa.Integer(), nullable=True),
            sa.Column("departure_point_order", sa.Integer(), nullable=True),
            _deleted_at(),
            sa.PrimaryKeyConstraint("tenant_id", "datasource_id", "workflow_id"),
        )
        op.create_index("ix_workflow_events_deleted_at", "workflow_events", ["deleted_at"])

    if "work_item_types" not in existing:
        op.create_table(
            "work_item_types",
            *_tenant_cols(),
            sa.Column("work_item_type_id", sa.String(length=512), nullable=False),
            sa.Column("display_name", sa.String(length=255), nullable=False),
            sa.Column(
                "level", sa.String(length=40), nullable=True,
                comment="portfolio | team | individual",
            ),
            sa.Column("service_level_expectation_in_days", sa.Integer(), nullable=True),
            _deleted_at(),
            sa.PrimaryKeyConstraint("tenant_id", "work_item_type_id"),
        )
        op.create_index("ix_work_item_types_deleted_at", "work_item_types", ["deleted_at"])

    if "work_item_type_maps" not in existing:
        op.create_table(
            "work_item_type_maps",
            *_datasource_cols(),
            sa.Column("workflow_id", sa.String(length=512), nullable=False),
            sa.Column("work_item_type_id", sa.String(length=512), nullable=False),
            sa.Column(
                "datasource_work_item_id", sa.String(length=255), nullable=False,
                comment="Id of the issue/card type in the source tool.",
            ),
            sa.Column("project_id", sa.String(length=255), nullable=False),
            sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("service_level_expectation_in_days", sa.Integer(), nullable=True),
            sa.Column("is_distinct", sa.Boolean(), nullable=True),
            sa.PrimaryKeyConstraint(
                "tenant_id", "datasource_id", "workflow_id",
                "work_item_type_id", "datasource_work_item_id", "project_id",
            ),
        )
        op.create_index("ix_work_item_type_maps_archived", "work_item_type_maps", ["archived"])
        op.create_index(
            "ix_work_item_type_maps_tenant_type", "work_item_type_maps",
            ["tenant_id", "work_item_type_id"],
        )

    # ── Contexts ──────────────────────────────────────────────────────────
    if "contexts" not in existing:
        op.create_table(
            "contexts",
            *_tenant_cols(),
            sa.Column("context_id", sa.String(length=255), nullable=False),
            sa.Column("datasource_id", sa.String(length=128), nullable=True),
            sa.Column(
                "project_id", sa.String(length=512), nullable=True,
                comment="Project id, or several comma-joined ids; matched per id.",
            ),
            sa.Column("name", sa.String(length=255), nullable=True),
            sa.Column("position_in_hierarchy", sa.String(length=64), nullable=True),
            sa.Column("context_address", sa.String(length=255), nullable=True),
            sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.PrimaryKeyConstraint("tenant_id", "context_id"),
        )
        op.create_index("ix_contexts_tenant_datasource", "contexts", ["tenant_id", "datasource_id"])

    if "context_work_item_maps" not in existing:
        op.create_table(
            "context_work_item_maps",
            *_tenant_cols(),
            sa.Column("context_id", sa.String(length=255), nullable=False),
            sa.Column("work_item_id", sa.String(length=255), nullable=False),
            _deleted_at(),
            sa.PrimaryKeyConstraint("tenant_id", "context_id", "work_item_id"),
        )
        op.create_index("ix_context_work_item_maps_work_item_id", "context_work_item_maps", ["work_item_id"])
        op.create_index("ix_context_work_item_maps_deleted_at", "context_work_item_maps", ["deleted_at"])

    # ── Work item instances ───────────────────────────────────────────────
    if "states" not in existing:
        op.create_table(
            "states",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("partition_key", sa.String(length=255), nullable=False),
            sa.Column("sort_key", sa.String(length=512), nullable=False),
            sa.Column("work_item_id", sa.String(length=255), nullable=False),
            sa.Column("work_item_type_id", sa.String(length=512), nullable=True),
            sa.Column("work_item_type_name", sa.String(length=255), nullable=True),
            sa.Column("work_item_type_level", sa.String(length=40), nullable=True),
            sa.Column("project_id", sa.String(length=255), nullable=True),
            sa.Column("title", sa.String(length=1024), nullable=True),
            sa.Column("state", sa.String(length=255), nullable=True),
            sa.Column("state_category", sa.String(length=20), nullable=True),
            sa.Column("changed_date", sa.DateTime(), nullable=True),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("partition_key", "sort_key", name="uq_states_partition_sort"),
        )
        op.create_index("ix_states_work_item_id", "states", ["work_item_id"])

    if "snapshots" not in existing:
        op.create_table(
            "snapshots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("partition_key", sa.String(length=255), nullable=False),
            sa.Column("sort_key", sa.String(length=512), nullable=True),
            sa.Column("gs2_partition_key", sa.String(length=512), nullable=True),
            sa.Column("work_item_id", sa.String(length=255), nullable=False),
            sa.Column("work_item_type_id", sa.String(length=512), nullable=True),
            sa.Column("work_item_type_name", sa.String(length=255), nullable=True),
            sa.Column("project_id", sa.String(length=255), nullable=True),
            sa.Column("state", sa.String(length=255), nullable=True),
            sa.Column("state_category", sa.String(length=20), nullable=True),
            sa.Column("snapshot_date", sa.DateTime(), nullable=True),
            sa.Column("revision", sa.Integer(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_snapshots_partition_key", "snapshots", ["partition_key"])

    # ── Stored queries ────────────────────────────────────────────────────
    if "filters" not in existing:
        op.create_table(
            "filters",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.String(length=128), nullable=False),
            sa.Column("datasource_id", sa.String(length=128), nullable=False),
            sa.Column("context_id", sa.String(length=255), nullable=True),
            sa.Column("display_name", sa.String(length=255), nullable=False),
            sa.Column("query", sa.Text(), nullable=True, comment="Query as written by the user."),
            sa.Column("parsed_query", sa.Text(), nullable=True),
            _deleted_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_filters_tenant_datasource", "filters", ["tenant_id", "datasource_id"])
        op.create_index("ix_filters_deleted_at", "filters", ["deleted_at"])

    if "review_rooms" not in existing:
        op.create_table(
            "review_rooms",
            sa.Column("room_id", sa.String(length=255), nullable=False),
            sa.Column("tenant_id", sa.String(length=128), nullable=False),
            sa.Column("datasource_id", sa.String(length=128), nullable=True),
            sa.Column("room_name", sa.String(length=255), nullable=False),
            sa.Column("query", sa.Text(), nullable=True),
            sa.Column("parsed_query", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("room_id"),
        )
        op.create_index("ix_review_rooms_tenant_datasource", "review_rooms", ["tenant_id", "datasource_id"])


def downgrade():
    for table in (
        "review_rooms",
        "filters",
        "snapshots",
        "states",
        "context_work_item_maps",
        "contexts",
        "work_item_type_maps",
        "work_item_types",
        "workflow_events",
        "workflow_steps",
        "workflows",
        "projects",
        "datasources",
    ):
        op.drop_table(table)
