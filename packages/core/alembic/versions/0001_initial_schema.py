"""Initial schema: objects, fragments, simplifications, links, runs, audit log, usage

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

FRAGMENT_STATES = ("to_simplify", "processing", "in_use", "ignore")
OBJECT_STATUSES = ("publish", "draft", "trash")
RUN_KINDS = ("simplification", "deletion")
RUN_STATUSES = ("not_started", "locked_running", "partial", "done", "failed", "cancelled")


def _enum(values: tuple[str, ...], name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=max(len(v) for v in values))


def upgrade() -> None:
    op.create_table(
        "content_object",
        sa.Column("content_object_id", sa.Uuid(), primary_key=True),
        sa.Column("object_id", sa.Integer(), nullable=False),
        sa.Column("object_type", sa.String(length=100), nullable=False),
        sa.Column("blog_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("page_builder", sa.String(length=100), nullable=True),
        sa.Column("source_language", sa.String(length=20), nullable=False),
        sa.Column("status", _enum(OBJECT_STATUSES, "objectstatus"), nullable=False),
        sa.Column(
            "original_id",
            sa.Uuid(),
            sa.ForeignKey("content_object.content_object_id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("target_language", sa.String(length=20), nullable=True),
        sa.Column("api_name", sa.String(length=40), nullable=True),
        sa.Column("automatic_mode_prevented", sa.Boolean(), nullable=False),
        sa.Column("simplified_in", sa.JSON(), nullable=False),
        sa.Column("changed_languages", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("object_id", "object_type", "blog_id", name="uq_content_object_identity"),
        sa.UniqueConstraint("original_id", "target_language", name="uq_content_object_copy_language"),
    )

    op.create_table(
        "object_lock",
        sa.Column("lock_id", sa.Uuid(), primary_key=True),
        sa.Column(
            "content_object_id",
            sa.Uuid(),
            sa.ForeignKey("content_object.content_object_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("target_language", sa.String(length=20), nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("content_object_id", "target_language", name="uq_object_lock_object_language"),
    )

    op.create_table(
        "fragment",
        sa.Column("fragment_id", sa.Uuid(), primary_key=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("source_language", sa.String(length=20), nullable=False),
        sa.Column("field", sa.String(length=32), nullable=False),
        sa.Column("is_html", sa.Boolean(), nullable=False),
        sa.Column("state", _enum(FRAGMENT_STATES, "fragmentstate"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("content_hash", "source_language", name="uq_fragment_hash_language"),
    )
    op.create_index("ix_fragment_state", "fragment", ["state"])

    op.create_table(
        "simplification",
        sa.Column("simplification_id", sa.Uuid(), primary_key=True),
        sa.Column(
            "fragment_id",
            sa.Uuid(),
            sa.ForeignKey("fragment.fragment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("target_language", sa.String(length=20), nullable=False),
        sa.Column("simplified_content", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("api_name", sa.String(length=40), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("fragment_id", "target_language", name="uq_simplification_fragment_language"),
    )
    op.create_index("ix_simplification_hash_language", "simplification", ["content_hash", "target_language"])

    op.create_table(
        "object_link",
        sa.Column("link_id", sa.Uuid(), primary_key=True),
        sa.Column(
            "fragment_id",
            sa.Uuid(),
            sa.ForeignKey("fragment.fragment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("object_id", sa.Integer(), nullable=False),
        sa.Column("object_type", sa.String(length=100), nullable=False),
        sa.Column("blog_id", sa.Integer(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("page_builder", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "fragment_id", "object_id", "object_type", "blog_id", name="uq_object_link_occurrence"
        ),
    )
    op.create_index("ix_object_link_object", "object_link", ["object_id", "object_type", "blog_id"])

    op.create_table(
        "api_log",
        sa.Column("log_id", sa.Uuid(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("api_name", sa.String(length=40), nullable=False),
        sa.Column("http_status", sa.Integer(), nullable=False),
        sa.Column("request", sa.JSON(), nullable=False),
        sa.Column("response", sa.Text(), nullable=False),
        sa.Column("duration_s", sa.Float(), nullable=False),
        sa.Column("quota", sa.Integer(), nullable=False),
        sa.Column("blog_id", sa.Integer(), nullable=False),
        sa.Column("error_type", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_api_log_api_created", "api_log", ["api_name", "created_at"])

    op.create_table(
        "api_usage",
        sa.Column("api_name", sa.String(length=40), primary_key=True),
        sa.Column("characters_spent", sa.Integer(), nullable=False),
        sa.Column("reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "simplification_run",
        sa.Column("run_id", sa.Uuid(), primary_key=True),
        sa.Column("kind", _enum(RUN_KINDS, "runkind"), nullable=False),
        sa.Column(
            "content_object_id",
            sa.Uuid(),
            sa.ForeignKey("content_object.content_object_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("target_language", sa.String(length=20), nullable=True),
        sa.Column("api_name", sa.String(length=40), nullable=True),
        sa.Column("status", _enum(RUN_STATUSES, "runstatus"), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("max", sa.Integer(), nullable=False),
        sa.Column("succeeded", sa.Integer(), nullable=False),
        sa.Column("max_items_per_tick", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("failures", sa.JSON(), nullable=False),
        sa.Column("results", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_log", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_simplification_run_object", "simplification_run", ["content_object_id", "target_language"]
    )


def downgrade() -> None:
    op.drop_index("ix_simplification_run_object", table_name="simplification_run")
    op.drop_table("simplification_run")
    op.drop_table("api_usage")
    op.drop_index("ix_api_log_api_created", table_name="api_log")
    op.drop_table("api_log")
    op.drop_index("ix_object_link_object", table_name="object_link")
    op.drop_table("object_link")
    op.drop_index("ix_simplification_hash_language", table_name="simplification")
    op.drop_table("simplification")
    op.drop_index("ix_fragment_state", table_name="fragment")
    op.drop_table("fragment")
    op.drop_table("object_lock")
    op.drop_table("content_object")
