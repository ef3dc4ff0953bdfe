"""blog generation queue core

Revision ID: 20260301_0001
Revises:
Create Date: 2026-03-01

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None


ORG_SCOPED_TABLES = [
    "org_members",
    "blog_generation_queue",
    "blog_approvals",
    "blog_platform_publishing",
    "workflow_phase_states",
    "blog_posts",
]


def _is_postgresql() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP"))


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "orgs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("brand_voice", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_orgs_name"),
    )

    op.create_table(
        "org_members",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="member"),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
    )
    op.create_index("ix_org_members_org_created_at", "org_members", ["org_id", "created_at"], unique=False)

    op.create_table(
        "blog_generation_queue",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("topic", sa.String(length=500), nullable=False),
        sa.Column("keywords_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("target_audience", sa.String(length=255), nullable=True),
        sa.Column("tone", sa.String(length=40), nullable=False, server_default="professional"),
        sa.Column("word_count", sa.Integer(), nullable=False, server_default="1500"),
        sa.Column("quality_level", sa.String(length=24), nullable=False, server_default="high"),
        sa.Column("template_type", sa.String(length=64), nullable=True),
        sa.Column("custom_instructions", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="queued"),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_stage", sa.String(length=80), nullable=True),
        sa.Column("progress_updates_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("generated_title", sa.String(length=500), nullable=True),
        sa.Column("generated_content", sa.Text(), nullable=True),
        sa.Column("generation_metadata_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("generation_error", sa.Text(), nullable=True),
        sa.Column("post_id", sa.String(length=36), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=False, server_default="{}"),
        _timestamp("queued_at"),
        _timestamp("generation_started_at", nullable=True),
        _timestamp("generation_completed_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("priority BETWEEN 1 AND 10", name="ck_blog_generation_queue_priority"),
        sa.CheckConstraint(
            "progress_percentage BETWEEN 0 AND 100",
            name="ck_blog_generation_queue_progress_percentage",
        ),
        sa.CheckConstraint(
            "status IN ('queued','generating','generated','in_review','approved','rejected',"
            "'scheduled','publishing','published','failed','cancelled')",
            name="ck_blog_generation_queue_status",
        ),
    )
    op.create_index(
        "ix_blog_generation_queue_org_status_priority",
        "blog_generation_queue",
        ["org_id", "status", "priority"],
        unique=False,
    )
    op.create_index(
        "ix_blog_generation_queue_org_created_at",
        "blog_generation_queue",
        ["org_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "blog_approvals",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("queue_id", sa.String(length=36), nullable=True),
        sa.Column("requested_by", sa.String(length=36), nullable=True),
        sa.Column("reviewed_by", sa.String(length=36), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("revision_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("previous_approval_id", sa.String(length=36), nullable=True),
        _timestamp("requested_at"),
        _timestamp("reviewed_at", nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["queue_id"], ["blog_generation_queue.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["requested_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending','approved','rejected','changes_requested')",
            name="ck_blog_approvals_status",
        ),
    )
    op.create_index(
        "ix_blog_approvals_org_status_requested_at",
        "blog_approvals",
        ["org_id", "status", "requested_at"],
        unique=False,
    )
    op.create_index("ix_blog_approvals_queue_status", "blog_approvals", ["queue_id", "status"], unique=False)
    if _is_postgresql():
        op.execute(
            """
            CREATE UNIQUE INDEX uq_blog_approvals_queue_pending
            ON blog_approvals (queue_id)
            WHERE status = 'pending';
            """
        )

    op.create_table(
        "blog_platform_publishing",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("queue_id", sa.String(length=36), nullable=True),
        sa.Column("platform", sa.String(length=24), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="scheduled"),
        _timestamp("scheduled_at", nullable=True),
        _timestamp("published_at", nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("platform_post_id", sa.String(length=128), nullable=True),
        sa.Column("platform_url", sa.String(length=1024), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("published_by", sa.String(length=36), nullable=True),
        sa.Column("publish_metadata_json", sa.Text(), nullable=False, server_default="{}"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["queue_id"], ["blog_generation_queue.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["published_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("queue_id", "platform", name="uq_blog_platform_publishing_queue_platform"),
        sa.CheckConstraint(
            "platform IN ('webflow','wordpress','shopify')",
            name="ck_blog_platform_publishing_platform",
        ),
        sa.CheckConstraint(
            "status IN ('scheduled','publishing','published','failed')",
            name="ck_blog_platform_publishing_status",
        ),
    )
    op.create_index(
        "ix_blog_platform_publishing_org_status",
        "blog_platform_publishing",
        ["org_id", "status"],
        unique=False,
    )

    op.create_table(
        "workflow_phase_states",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("queue_id", sa.String(length=36), nullable=False),
        sa.Column("phase", sa.String(length=40), nullable=False, server_default="phase_1_content"),
        sa.Column("resumable", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("content_result_json", sa.Text(), nullable=True),
        sa.Column("images_result_json", sa.Text(), nullable=True),
        sa.Column("enhancement_result_json", sa.Text(), nullable=True),
        sa.Column("interlinking_result_json", sa.Text(), nullable=True),
        sa.Column("publishing_preparation_result_json", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["queue_id"], ["blog_generation_queue.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("queue_id", name="uq_workflow_phase_states_queue"),
    )

    op.create_table(
        "blog_posts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("queue_id", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="draft"),
        sa.Column("metadata_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("seo_data_json", sa.Text(), nullable=False, server_default="{}"),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_blog_posts_org_created_at", "blog_posts", ["org_id", "created_at"], unique=False)

    if _is_postgresql():
        op.execute(
            """
            CREATE OR REPLACE FUNCTION app_current_org_id()
            RETURNS text
            LANGUAGE sql
            STABLE
            AS $$
                SELECT NULLIF(current_setting('app.current_org_id', true), '');
            $$;
            """
        )

        op.execute("ALTER TABLE orgs ENABLE ROW LEVEL SECURITY;")
        op.execute("ALTER TABLE orgs FORCE ROW LEVEL SECURITY;")
        op.execute(
            """
            CREATE POLICY orgs_select_policy ON orgs
            FOR SELECT USING (app_current_org_id() IS NULL OR id = app_current_org_id());
            """
        )
        op.execute(
            """
            CREATE POLICY orgs_insert_policy ON orgs
            FOR INSERT WITH CHECK (app_current_org_id() IS NULL OR id = app_current_org_id());
            """
        )
        op.execute(
            """
            CREATE POLICY orgs_update_policy ON orgs
            FOR UPDATE USING (id = app_current_org_id())
            WITH CHECK (id = app_current_org_id());
            """
        )

        for table_name in ORG_SCOPED_TABLES:
            op.execute(f"ALTER TABLE {table_name} ENABLE ROW LEVEL SECURITY;")
            op.execute(f"ALTER TABLE {table_name} FORCE ROW LEVEL SECURITY;")
            op.execute(
                f"""
                CREATE POLICY {table_name}_select_policy ON {table_name}
                FOR SELECT USING (org_id = app_current_org_id());
                """
            )
            op.execute(
                f"""
                CREATE POLICY {table_name}_insert_policy ON {table_name}
                FOR INSERT WITH CHECK (
                    app_current_org_id() IS NULL OR org_id = app_current_org_id()
                );
                """
            )
            op.execute(
                f"""
                CREATE POLICY {table_name}_update_policy ON {table_name}
                FOR UPDATE USING (org_id = app_current_org_id())
                WITH CHECK (org_id = app_current_org_id());
                """
            )
            op.execute(
                f"""
                CREATE POLICY {table_name}_delete_policy ON {table_name}
                FOR DELETE USING (org_id = app_current_org_id());
                """
            )


def downgrade() -> None:
    if _is_postgresql():
        for table_name in reversed(ORG_SCOPED_TABLES):
            for action in ("select", "insert", "update", "delete"):
                op.execute(f"DROP POLICY IF EXISTS {table_name}_{action}_policy ON {table_name};")
        for action in ("select", "insert", "update"):
            op.execute(f"DROP POLICY IF EXISTS orgs_{action}_policy ON orgs;")
        op.execute("DROP INDEX IF EXISTS uq_blog_approvals_queue_pending;")

    op.drop_index("ix_blog_posts_org_created_at", table_name="blog_posts")
    op.drop_table("blog_posts")
    op.drop_table("workflow_phase_states")
    op.drop_index("ix_blog_platform_publishing_org_status", table_name="blog_platform_publishing")
    op.drop_table("blog_platform_publishing")
    op.drop_index("ix_blog_approvals_queue_status", table_name="blog_approvals")
    op.drop_index("ix_blog_approvals_org_status_requested_at", table_name="blog_approvals")
    op.drop_table("blog_approvals")
    op.drop_index("ix_blog_generation_queue_org_created_at", table_name="blog_generation_queue")
    op.drop_index("ix_blog_generation_queue_org_status_priority", table_name="blog_generation_queue")
    op.drop_table("blog_generation_queue")
    op.drop_index("ix_org_members_org_created_at", table_name="org_members")
    op.drop_table("org_members")
    op.drop_table("orgs")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    if _is_postgresql():
        op.execute("DROP FUNCTION IF EXISTS app_current_org_id();")
