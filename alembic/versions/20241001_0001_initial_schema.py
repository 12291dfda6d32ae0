"""initial schema

Revision ID: 0001
Revises:
Create Date: 2024-10-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("logo_url", sa.String(length=1024), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_companies")),
    )
    op.create_table(
        "events",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_events")),
    )
    op.create_table(
        "prizes",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("company_id", ID_TYPE, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["company_id"],
            ["companies.id"],
            name=op.f("fk_prizes_company_id_companies"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prizes")),
    )
    op.create_index(op.f("ix_prizes_company_id"), "prizes", ["company_id"], unique=False)
    op.create_table(
        "collaborators",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("company_id", ID_TYPE, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.ForeignKeyConstraint(
            ["company_id"],
            ["companies.id"],
            name=op.f("fk_collaborators_company_id_companies"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_collaborators")),
        sa.UniqueConstraint("company_id", "code", name="uq_collaborators_company_code"),
    )
    op.create_index(
        op.f("ix_collaborators_company_id"), "collaborators", ["company_id"], unique=False
    )
    op.create_table(
        "roleta_participants",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("company_id", ID_TYPE, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("prize_id", ID_TYPE, nullable=True),
        sa.Column("prize_name", sa.String(length=255), nullable=True),
        sa.Column("spun_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["company_id"],
            ["companies.id"],
            name=op.f("fk_roleta_participants_company_id_companies"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["prize_id"],
            ["prizes.id"],
            name=op.f("fk_roleta_participants_prize_id_prizes"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_roleta_participants")),
    )
    op.create_index(
        op.f("ix_roleta_participants_company_id"),
        "roleta_participants",
        ["company_id"],
        unique=False,
    )
    op.create_index(
        "ix_roleta_participants_company_email",
        "roleta_participants",
        ["company_id", "email"],
        unique=False,
    )
    op.create_table(
        "raffles",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_raffles_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffles")),
    )
    op.create_index(op.f("ix_raffles_event_id"), "raffles", ["event_id"], unique=False)
    op.create_table(
        "raffle_participants",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("raffle_id", ID_TYPE, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["raffle_id"],
            ["raffles.id"],
            name=op.f("fk_raffle_participants_raffle_id_raffles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffle_participants")),
    )
    op.create_index(
        op.f("ix_raffle_participants_raffle_id"),
        "raffle_participants",
        ["raffle_id"],
        unique=False,
    )
    op.create_table(
        "raffle_winners",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("raffle_id", ID_TYPE, nullable=False),
        sa.Column("participant_id", ID_TYPE, nullable=False),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["participant_id"],
            ["raffle_participants.id"],
            name=op.f("fk_raffle_winners_participant_id_raffle_participants"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["raffle_id"],
            ["raffles.id"],
            name=op.f("fk_raffle_winners_raffle_id_raffles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffle_winners")),
        sa.UniqueConstraint(
            "raffle_id", "participant_id", name="uq_raffle_winner_per_participant"
        ),
    )
    op.create_index(
        op.f("ix_raffle_winners_participant_id"),
        "raffle_winners",
        ["participant_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_raffle_winners_raffle_id"), "raffle_winners", ["raffle_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_raffle_winners_raffle_id"), table_name="raffle_winners")
    op.drop_index(op.f("ix_raffle_winners_participant_id"), table_name="raffle_winners")
    op.drop_table("raffle_winners")
    op.drop_index(
        op.f("ix_raffle_participants_raffle_id"), table_name="raffle_participants"
    )
    op.drop_table("raffle_participants")
    op.drop_index(op.f("ix_raffles_event_id"), table_name="raffles")
    op.drop_table("raffles")
    op.drop_index("ix_roleta_participants_company_email", table_name="roleta_participants")
    op.drop_index(
        op.f("ix_roleta_participants_company_id"), table_name="roleta_participants"
    )
    op.drop_table("roleta_participants")
    op.drop_index(op.f("ix_collaborators_company_id"), table_name="collaborators")
    op.drop_table("collaborators")
    op.drop_index(op.f("ix_prizes_company_id"), table_name="prizes")
    op.drop_table("prizes")
    op.drop_table("events")
    op.drop_table("companies")
