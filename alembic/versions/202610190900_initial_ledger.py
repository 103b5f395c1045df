"""initial ledger tables

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_categories_user_created", "categories", ["user_id", "created_at", "id"]
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "category_id", sa.Uuid(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_expenses_amount_positive"),
    )
    op.create_index(
        "ix_expenses_user_created", "expenses", ["user_id", "created_at", "id"]
    )
    op.create_index(
        "ix_expenses_user_category_created",
        "expenses",
        ["user_id", "category_id", "created_at"],
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "category_id", sa.Uuid(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("goal", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("goal >= 0", name="ck_budgets_goal_positive"),
        sa.CheckConstraint("start_date <= end_date", name="ck_budgets_window_ordered"),
    )
    op.create_index(
        "ix_budgets_user_created", "budgets", ["user_id", "created_at", "id"]
    )
    op.create_index(
        "ix_budgets_category_window",
        "budgets",
        ["user_id", "category_id", "start_date", "end_date"],
    )


def downgrade() -> None:
    op.drop_index("ix_budgets_category_window", table_name="budgets")
    op.drop_index("ix_budgets_user_created", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_expenses_user_category_created", table_name="expenses")
    op.drop_index("ix_expenses_user_created", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_categories_user_created", table_name="categories")
    op.drop_table("categories")
    op.drop_table("users")
