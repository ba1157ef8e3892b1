"""event series: rule string and parent link

Revision ID: 20251215_add_recurrence
Revises: 20250925_add_status_owner
Create Date: 2025-12-15
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = "20251215_add_recurrence"
down_revision: Union[str, Sequence[str], None] = "20250925_add_status_owner"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Children of a series point at the first occurrence through series_id;
    only that first row stores the rule string.
    """
    bind = op.get_bind()
    cols = {c["name"] for c in inspect(bind).get_columns("events")}

    with op.batch_alter_table("events") as batch:
        if "is_recurring" not in cols:
            batch.add_column(sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()))
        if "recurrence_rule" not in cols:
            batch.add_column(sa.Column("recurrence_rule", sa.Text(), nullable=True))
        if "series_id" not in cols:
            batch.add_column(sa.Column("series_id", sa.Integer(), nullable=True))
            batch.create_foreign_key(
                "fk_events_series_id", "events", ["series_id"], ["id"], ondelete="CASCADE"
            )
            batch.create_index("ix_events_series_id", ["series_id"])


def downgrade() -> None:
    bind = op.get_bind()
    cols = {c["name"] for c in inspect(bind).get_columns("events")}

    with op.batch_alter_table("events") as batch:
        if "series_id" in cols:
            batch.drop_index("ix_events_series_id")
            batch.drop_constraint("fk_events_series_id", type_="foreignkey")
            batch.drop_column("series_id")
        if "recurrence_rule" in cols:
            batch.drop_column("recurrence_rule")
        if "is_recurring" in cols:
            batch.drop_column("is_recurring")
