"""Initial schema for proposal governance."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def upgrade() -> None:  # noqa: D401
    """Create identity, property and governance tables."""

    voting_method = sa.Enum("SimpleMajority", "PerSeat", "WeightedArea", "Consensus", name="voting_method")
    vote_choice = sa.Enum("Yes", "No", "Abstain", name="vote_choice")

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.String(length=36), primary_key=True),
        sa.Column("role_id", sa.String(length=36), primary_key=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_user_roles_role_id", "user_roles", ["role_id"])

    op.create_table(
        "buildings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("construction_year", sa.Integer()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "apartments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("building_id", sa.String(length=36), nullable=False),
        sa.Column("number", sa.String(length=64), nullable=False),
        sa.Column("size_sq_m", sa.Numeric(10, 2)),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["building_id"], ["buildings.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("building_id", "number", name="uq_apartments_building_number"),
    )
    op.create_index("ix_apartments_building_id", "apartments", ["building_id"])

    op.create_table(
        "apartment_owners",
        sa.Column("apartment_id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), primary_key=True),
        sa.ForeignKeyConstraint(["apartment_id"], ["apartments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_apartment_owners_user_id", "apartment_owners", ["user_id"])

    op.create_table(
        "apartment_renters",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("apartment_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["apartment_id"], ["apartments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_apartment_renters_user_id", "apartment_renters", ["user_id"])

    op.create_table(
        "building_managers",
        sa.Column("building_id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), primary_key=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["building_id"], ["buildings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_building_managers_user_id", "building_managers", ["user_id"])

    op.create_table(
        "proposals",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=False),
        sa.Column("building_id", sa.String(length=36)),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("voting_method", voting_method, nullable=False),
        sa.Column("eligible_roles", sa.JSON(), nullable=False),
        sa.Column("tallied", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["building_id"], ["buildings.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_proposals_building_id", "proposals", ["building_id"])
    op.create_index("ix_proposals_start_end", "proposals", ["start_time", "end_time"])

    op.create_table(
        "votes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("proposal_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("choice", vote_choice, nullable=False),
        sa.Column("cast_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("proposal_id", "user_id", name="uq_votes_proposal_user"),
    )
    op.create_index("ix_votes_proposal_id", "votes", ["proposal_id"])

    op.create_table(
        "proposal_results",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("proposal_id", sa.String(length=36), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("yes_weight", sa.Numeric(18, 6), nullable=False),
        sa.Column("no_weight", sa.Numeric(18, 6), nullable=False),
        sa.Column("abstain_weight", sa.Numeric(18, 6), nullable=False),
        sa.Column("total_weight", sa.Numeric(18, 6), nullable=False),
        sa.Column("tallied_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("tallied_by", sa.String(length=36), nullable=False),
        sa.Column("method_applied_version", sa.String(length=32), nullable=False),
        sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("proposal_id", name="uq_proposal_results_proposal_id"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_id", sa.String(length=36)),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("resource_type", sa.String(length=128), nullable=False),
        sa.Column("resource_id", sa.String(length=128)),
        sa.Column("payload", sa.JSON()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource_type", "resource_id"])


def downgrade() -> None:  # noqa: D401
    """Drop all governance tables."""

    op.drop_index("ix_audit_logs_resource", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_table("proposal_results")

    op.drop_index("ix_votes_proposal_id", table_name="votes")
    op.drop_table("votes")

    op.drop_index("ix_proposals_start_end", table_name="proposals")
    op.drop_index("ix_proposals_building_id", table_name="proposals")
    op.drop_table("proposals")

    op.drop_index("ix_building_managers_user_id", table_name="building_managers")
    op.drop_table("building_managers")

    op.drop_index("ix_apartment_renters_user_id", table_name="apartment_renters")
    op.drop_table("apartment_renters")

    op.drop_index("ix_apartment_owners_user_id", table_name="apartment_owners")
    op.drop_table("apartment_owners")

    op.drop_index("ix_apartments_building_id", table_name="apartments")
    op.drop_table("apartments")

    op.drop_table("buildings")

    op.drop_index("ix_user_roles_role_id", table_name="user_roles")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_table("users")

    for enum_name in ["vote_choice", "voting_method"]:
        _drop_enum(enum_name)
