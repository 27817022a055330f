"""subscriptions and projected transactions

Revision ID: 202610170900
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610170900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255)),
        sa.Column("name", sa.String(length=120)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "user_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("timezone", sa.String(length=64)),
        sa.Column("subscription_alert_days", sa.Integer()),
        sa.Column("default_currency", sa.String(length=3)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3)),
        sa.Column(
            "billing_cycle",
            sa.Enum("daily", "weekly", "monthly", "yearly", name="billingcycle"),
            nullable=False,
        ),
        sa.Column("next_renewal_date", sa.Date(), nullable=False),
        sa.Column("alert_days", sa.Integer()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_subscription_amount_positive"
        ),
        sa.CheckConstraint(
            "alert_days IS NULL OR alert_days >= 0",
            name="ck_subscription_alert_days_positive",
        ),
    )
    op.create_index(
        "ix_subscriptions_user_active", "subscriptions", ["user_id", "is_active"]
    )
    op.create_index(
        "ix_subscriptions_renewal_date", "subscriptions", ["next_renewal_date"]
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("subscription_id", sa.Integer(), sa.ForeignKey("subscriptions.id")),
        sa.Column(
            "is_projected", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "subscription_id", "date", name="uq_txn_subscription_date"
        ),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_transactions_amount_positive"
        ),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_projected_date", "transactions", ["is_projected", "date"]
    )


def downgrade():
    op.drop_index("ix_transactions_projected_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_subscriptions_renewal_date", table_name="subscriptions")
    op.drop_index("ix_subscriptions_user_active", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("categories")
    op.drop_table("user_settings")
    op.drop_table("users")
