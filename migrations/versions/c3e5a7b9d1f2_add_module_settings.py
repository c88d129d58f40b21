"""add settings_json to module_states (per-module JSON settings)

Revision ID: c3e5a7b9d1f2
Revises: b7d2c4e6f8a1
Create Date: 2026-10-20 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "c3e5a7b9d1f2"
down_revision: Union[str, Sequence[str], None] = "b7d2c4e6f8a1"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    existing = {c["name"] for c in sa.inspect(bind).get_columns("module_states")}
    if "settings_json" not in existing:
        op.add_column("module_states", sa.Column("settings_json", sa.Text(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("module_states") as batch_op:
        batch_op.drop_column("settings_json")
