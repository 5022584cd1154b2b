"""Initial schema for players, history, reports, feedback and attestations.

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01
"""

from alembic import op  # type: ignore[attr-defined]
import sqlalchemy as sa

revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("current_handle", sa.String(), nullable=False),
        sa.Column("current_display_name", sa.String(), nullable=True),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("first_observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_external_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_players_external_id", "players", ["external_id"], unique=True)
    op.create_index("ix_players_current_handle", "players", ["current_handle"])
    op.create_index("ix_players_is_active", "players", ["is_active"])

    op.create_table(
        "player_handle_history",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("handle", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("first_observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("player_id", "handle", name="uq_handle_history_player_handle"),
    )
    op.create_index(
        "ix_player_handle_history_player_id", "player_handle_history", ["player_id"]
    )
    op.create_index("ix_player_handle_history_handle", "player_handle_history", ["handle"])

    op.create_table(
        "player_org_history",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("org_external_id", sa.String(), nullable=False),
        sa.Column("org_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("first_observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("player_id", "org_external_id", name="uq_org_history_player_org"),
    )
    op.create_index("ix_player_org_history_player_id", "player_org_history", ["player_id"])
    op.create_index(
        "ix_player_org_history_org_external_id", "player_org_history", ["org_external_id"]
    )
    op.create_index("ix_player_org_history_is_current", "player_org_history", ["is_current"])

    op.create_table(
        "player_reports",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("reporter_id", sa.String(), nullable=False),
        sa.Column("main_player_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("evidence_urls", sa.JSON(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("org_external_id", sa.String(), nullable=True),
        sa.Column("org_name", sa.String(), nullable=True),
        sa.Column("secondary_handle", sa.String(), nullable=True),
        sa.Column("secondary_external_id", sa.String(), nullable=True),
        sa.Column("secondary_display_name", sa.String(), nullable=True),
        sa.Column(
            "secondary_player_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=True
        ),
        sa.Column("relationship_type", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_player_reports_kind", "player_reports", ["kind"])
    op.create_index("ix_player_reports_reporter_id", "player_reports", ["reporter_id"])
    op.create_index("ix_player_reports_main_player_id", "player_reports", ["main_player_id"])
    op.create_index("ix_player_reports_org_external_id", "player_reports", ["org_external_id"])
    op.create_index(
        "ix_player_reports_secondary_handle", "player_reports", ["secondary_handle"]
    )
    op.create_index(
        "ix_player_reports_secondary_external_id", "player_reports", ["secondary_external_id"]
    )
    op.create_index(
        "ix_player_reports_player_kind_created",
        "player_reports",
        ["main_player_id", "kind", "created_at"],
    )

    op.create_table(
        "player_comments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("author_id", sa.String(), nullable=False),
        sa.Column("content", sa.String(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_player_comments_player_id", "player_comments", ["player_id"])
    op.create_index("ix_player_comments_author_id", "player_comments", ["author_id"])

    op.create_table(
        "player_tags",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("tagger_id", sa.String(), nullable=False),
        sa.Column("tag_name", sa.String(), nullable=False),
        sa.Column("tag_type", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("player_id", "tag_name", name="uq_player_tags_player_name"),
    )
    op.create_index("ix_player_tags_player_id", "player_tags", ["player_id"])
    op.create_index("ix_player_tags_tagger_id", "player_tags", ["tagger_id"])
    op.create_index("ix_player_tags_tag_name", "player_tags", ["tag_name"])

    op.create_table(
        "attestations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("artifact_kind", sa.String(), nullable=False),
        sa.Column("artifact_id", sa.Integer(), nullable=False),
        sa.Column("voter_id", sa.String(), nullable=False),
        sa.Column("attestation_type", sa.String(), nullable=False),
        sa.Column("comment", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "artifact_kind", "artifact_id", "voter_id", name="uq_attestation_voter"
        ),
    )
    op.create_index("ix_attestations_voter_id", "attestations", ["voter_id"])
    op.create_index(
        "ix_attestations_artifact_lookup", "attestations", ["artifact_kind", "artifact_id"]
    )


def downgrade() -> None:
    op.drop_table("attestations")
    op.drop_table("player_tags")
    op.drop_table("player_comments")
    op.drop_table("player_reports")
    op.drop_table("player_org_history")
    op.drop_table("player_handle_history")
    op.drop_table("players")
