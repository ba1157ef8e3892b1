"""add review status and owner columns to events

Revision ID: 20250925_add_status_owner
Revises: 9e014ae1434f
Create Date: 2025-09-25
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = "20250925_add_status_owner"
down_revision: Union[str, Sequence[str], None] = "9e014ae1434f"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    cols = {c["name"] for c in inspect(bind).get_columns("events")}

    if "status" not in cols:
        op.add_column(
            "events",
            sa.Column("status", sa.String(length=32), nullable=False, server_default="pending_review"),
        )
    if "owner" not in cols:
        op.add_column("events", sa.Column("owner", sa.String(length=255), nullable=True))


def downgrade() -> None:
    bind = op.get_bind()
    cols = {c["name"] for c in inspect(bind).get_columns("events")}

    if "owner" in cols:
        op.drop_column("events", "owner")
    if "status" in cols:
        op.drop_column("events", "status")
