"""create crawl pipeline tables

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "crawl_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("brand_id", sa.String(length=64), nullable=False),
        sa.Column("target_url", sa.Text(), nullable=False),
        sa.Column(
            "state",
            sa.String(length=16),
            nullable=False,
            comment="queued, running, succeeded, failed, timed_out",
        ),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("leased_by", sa.String(length=128), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "heartbeat_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Last lease stamp or extension; drives the visibility timeout",
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column(
            "result_ref",
            postgresql.UUID(as_uuid=True),
            nullable=True,
            comment="extraction_results.id of the persisted result",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crawl_jobs_brand_id", "crawl_jobs", ["brand_id"], unique=False)
    op.create_index("ix_crawl_jobs_state_created_at", "crawl_jobs", ["state", "created_at"], unique=False)

    op.create_table(
        "extraction_results",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("brand_id", sa.String(length=64), nullable=False),
        sa.Column("crawl_job_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source_url", sa.Text(), nullable=False),
        sa.Column("text_blocks", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "images",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="Deduplicated by resolved absolute URL",
        ),
        sa.Column("detected_host", sa.String(length=32), nullable=False),
        sa.Column("host_confidence", sa.Float(), nullable=False),
        sa.Column("host_signals", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "extraction_errors",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="Partial failures recorded per facet",
        ),
        sa.Column("extracted_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["crawl_job_id"], ["crawl_jobs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_extraction_results_brand_id", "extraction_results", ["brand_id"], unique=False)
    op.create_index(
        "ix_extraction_results_crawl_job_id",
        "extraction_results",
        ["crawl_job_id"],
        unique=False,
    )

    op.create_table(
        "brand_snapshots",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("brand_id", sa.String(length=64), nullable=False),
        sa.Column("extraction_result_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="Copy, images and host profile frozen for guide generation",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["extraction_result_id"], ["extraction_results.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_brand_snapshots_brand_id", "brand_snapshots", ["brand_id"], unique=False)
    op.create_index(
        "ix_brand_snapshots_extraction_result_id",
        "brand_snapshots",
        ["extraction_result_id"],
        unique=False,
    )

    op.create_table(
        "onboarding_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("brand_id", sa.String(length=64), nullable=False),
        sa.Column("snapshot_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("stage", sa.String(length=32), nullable=False),
        sa.Column("items_queued", sa.Integer(), nullable=False),
        sa.Column("items_completed", sa.Integer(), nullable=False),
        sa.Column("brand_guide", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("content_plan", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "superseded_by",
            postgresql.UUID(as_uuid=True),
            nullable=True,
            comment="Run that replaced this one; set together with stage=failed",
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["snapshot_id"], ["brand_snapshots.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_onboarding_runs_brand_id_stage",
        "onboarding_runs",
        ["brand_id", "stage"],
        unique=False,
    )
    op.create_index("ix_onboarding_runs_snapshot_id", "onboarding_runs", ["snapshot_id"], unique=False)

    op.create_table(
        "content_drafts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("brand_id", sa.String(length=64), nullable=False),
        sa.Column("run_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("plan_item", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("headline", sa.Text(), nullable=True),
        sa.Column("cta", sa.Text(), nullable=True),
        sa.Column("hashtags", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("bfs_score", sa.Float(), nullable=True),
        sa.Column("bfs_breakdown", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["run_id"], ["onboarding_runs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_content_drafts_run_id", "content_drafts", ["run_id"], unique=False)
    op.create_index(
        "ix_content_drafts_brand_id_status",
        "content_drafts",
        ["brand_id", "status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_content_drafts_brand_id_status", table_name="content_drafts")
    op.drop_index("ix_content_drafts_run_id", table_name="content_drafts")
    op.drop_table("content_drafts")
    op.drop_index("ix_onboarding_runs_snapshot_id", table_name="onboarding_runs")
    op.drop_index("ix_onboarding_runs_brand_id_stage", table_name="onboarding_runs")
    op.drop_table("onboarding_runs")
    op.drop_index("ix_brand_snapshots_extraction_result_id", table_name="brand_snapshots")
    op.drop_index("ix_brand_snapshots_brand_id", table_name="brand_snapshots")
    op.drop_table("brand_snapshots")
    op.drop_index("ix_extraction_results_crawl_job_id", table_name="extraction_results")
    op.drop_index("ix_extraction_results_brand_id", table_name="extraction_results")
    op.drop_table("extraction_results")
    op.drop_index("ix_crawl_jobs_state_created_at", table_name="crawl_jobs")
    op.drop_index("ix_crawl_jobs_brand_id", table_name="crawl_jobs")
    op.drop_table("crawl_jobs")
