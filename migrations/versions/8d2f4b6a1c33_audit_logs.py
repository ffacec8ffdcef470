"""persisted application logs

Revision ID: 8d2f4b6a1c33
Revises: 5c1e0a7d9b21
Create Date: 2026-10-20 10:30:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "8d2f4b6a1c33"
down_revision = "5c1e0a7d9b21"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("level", sa.String(length=20), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False, server_default="anonymous"),
        sa.Column("is_authenticated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("extra_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_logs_level", "logs", ["level"], unique=False)
    op.create_index("ix_logs_user_id", "logs", ["user_id"], unique=False)


def downgrade():
    op.drop_index("ix_logs_user_id", table_name="logs")
    op.drop_index("ix_logs_level", table_name="logs")
    op.drop_table("logs")
