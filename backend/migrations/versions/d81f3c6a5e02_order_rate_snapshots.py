"""order commission and team rate snapshots

Revision ID: d81f3c6a5e02
Revises: c4e1a9b27d10
Create Date: 2026-10-18 10:30:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "d81f3c6a5e02"
down_revision = "c4e1a9b27d10"
branch_labels = None
depends_on = None


def _column_exists(bind, table_name: str, column_name: str) -> bool:
    try:
        cols = sa.inspect(bind).get_columns(table_name)
        return any((col.get("name") or "") == column_name for col in cols)
    except Exception:
        return False


def upgrade():
    bind = op.get_bind()
    to_add: list[sa.Column] = []
    if not _column_exists(bind, "orders", "commission_rate"):
        to_add.append(sa.Column("commission_rate", sa.Integer(), nullable=True))
    if not _column_exists(bind, "orders", "team_rate"):
        to_add.append(sa.Column("team_rate", sa.Integer(), nullable=True))
    if to_add:
        with op.batch_alter_table("orders") as batch_op:
            for col in to_add:
                batch_op.add_column(col)


def downgrade():
    bind = op.get_bind()
    with op.batch_alter_table("orders") as batch_op:
        for name in ("team_rate", "commission_rate"):
            if _column_exists(bind, "orders", name):
                batch_op.drop_column(name)
