"""add module_states table (module registry on/off state)

Revision ID: b7d2c4e6f8a1
Revises: a0c1e2d3f4b5
Create Date: 2026-10-19 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b7d2c4e6f8a1"
down_revision: Union[str, Sequence[str], None] = "a0c1e2d3f4b5"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Rows are seeded by the app (catalog defaults), not by the migration.
    op.create_table(
        "module_states",
        sa.Column("module_type", sa.String(64), primary_key=True),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("last_changed_at", sa.DateTime(), nullable=True),
        sa.Column("last_changed_by", sa.String(320), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("module_states")
