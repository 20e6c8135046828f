"""Create the bets table.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

The (event_id, status) index backs the matching query that loads all
pending bets of an event when its outcome arrives.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "bets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=50), nullable=False),
        sa.Column("event_id", sa.String(length=50), nullable=False),
        sa.Column("event_market_id", sa.String(length=50), nullable=False),
        sa.Column("predicted_winner_id", sa.String(length=50), nullable=False),
        sa.Column("bet_amount", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default="PENDING",
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'WON', 'LOST')", name="ck_bets_status"
        ),
    )
    op.create_index("idx_bets_event_id_status", "bets", ["event_id", "status"])
    op.create_index("idx_bets_user_id", "bets", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_bets_user_id", table_name="bets")
    op.drop_index("idx_bets_event_id_status", table_name="bets")
    op.drop_table("bets")
