"""add actuals overrides

Revision ID: 202610181500
Revises: 202610180900
Create Date: 2026-10-18 15:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610181500"
down_revision = "202610180900"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "actuals_overrides",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.Integer(), primary_key=True, default=1),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("total_income_cents", sa.Integer(), nullable=False),
        sa.Column("total_expenses_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "total_income_cents >= 0 AND total_expenses_cents >= 0",
            name="ck_actuals_override_amounts_positive",
        ),
        sa.UniqueConstraint("user_id", "month", name="uq_actuals_override_user_month"),
    )


def downgrade():
    op.drop_table("actuals_overrides")
