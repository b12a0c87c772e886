"""add order, reconciliation stamp and structured options

Revision ID: 6e21b8f4c9d3
Revises: 3a9c1e7d2b40
Create Date: 2025-11-03 11:05:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "6e21b8f4c9d3"
down_revision = "3a9c1e7d2b40"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("sessions") as batch_op:
        batch_op.add_column(sa.Column("order_id", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("reconciliation_fired_at", sa.DateTime(timezone=True), nullable=True))

    with op.batch_alter_table("questions") as batch_op:
        batch_op.add_column(sa.Column("options", sa.JSON(), nullable=True))


def downgrade():
    with op.batch_alter_table("questions") as batch_op:
        batch_op.drop_column("options")
    with op.batch_alter_table("sessions") as batch_op:
        for column in ("reconciliation_fired_at", "order_id"):
            batch_op.drop_column(column)
