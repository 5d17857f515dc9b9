"""Initial schema: customers, carts, orders and the reminder pipeline.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # Create enum types
    op.execute("CREATE TYPE consent_state AS ENUM ('granted', 'revoked', 'unknown')")
    op.execute("CREATE TYPE reminder_status AS ENUM ('pending', 'sent', 'blocked')")
    op.execute("CREATE TYPE order_status AS ENUM ('pending', 'completed', 'refunded')")
    op.execute("CREATE TYPE reorder_status AS ENUM ('pending', 'completed')")

    consent_state = postgresql.ENUM(name="consent_state", create_type=False)

    # Create customers table
    op.create_table(
        "customers",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column(
            "marketing_consent",
            consent_state,
            nullable=False,
            server_default="unknown",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_customers")),
    )
    op.create_index(op.f("ix_customers_email"), "customers", ["email"], unique=True)

    # Create carts table
    op.create_table(
        "carts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("customer_id", sa.UUID(), nullable=True),
        sa.Column("session_token", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="ZAR"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("converted_order_ref", sa.String(255), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reminder_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(customer_id IS NULL) <> (session_token IS NULL)",
            name=op.f("ck_carts_single_owner"),
        ),
        sa.ForeignKeyConstraint(
            ["customer_id"],
            ["customers.id"],
            name=op.f("fk_carts_customer_id_customers"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_carts")),
    )
    op.create_index(op.f("ix_carts_customer_id"), "carts", ["customer_id"], unique=False)
    op.create_index(op.f("ix_carts_session_token"), "carts", ["session_token"], unique=False)
    op.create_index(
        op.f("ix_carts_last_activity_at"), "carts", ["last_activity_at"], unique=False
    )

    # Create orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("cart_id", sa.UUID(), nullable=True),
        sa.Column("customer_id", sa.UUID(), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="ZAR"),
        sa.Column(
            "status",
            postgresql.ENUM(name="order_status", create_type=False),
            nullable=False,
            server_default="completed",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["cart_id"],
            ["carts.id"],
            name=op.f("fk_orders_cart_id_carts"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["customer_id"],
            ["customers.id"],
            name=op.f("fk_orders_customer_id_customers"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_orders")),
    )
    op.create_index(op.f("ix_orders_cart_id"), "orders", ["cart_id"], unique=False)
    op.create_index(op.f("ix_orders_customer_id"), "orders", ["customer_id"], unique=False)

    # Create recovery_tokens table
    op.create_table(
        "recovery_tokens",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("cart_id", sa.UUID(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["cart_id"],
            ["carts.id"],
            name=op.f("fk_recovery_tokens_cart_id_carts"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_recovery_tokens")),
        sa.UniqueConstraint("token_hash", name=op.f("uq_recovery_tokens_token_hash")),
    )
    op.create_index(
        op.f("ix_recovery_tokens_cart_id"), "recovery_tokens", ["cart_id"], unique=False
    )

    # Create reminder_logs table
    op.create_table(
        "reminder_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("cart_id", sa.UUID(), nullable=False),
        sa.Column("template", sa.String(50), nullable=False),
        sa.Column("tier_minutes", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(name="reminder_status", create_type=False),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("recipient_consent_state", consent_state, nullable=False),
        sa.Column("recipient_email", sa.String(255), nullable=True),
        sa.Column("email_id", sa.String(255), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["cart_id"],
            ["carts.id"],
            name=op.f("fk_reminder_logs_cart_id_carts"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_reminder_logs")),
        sa.UniqueConstraint("cart_id", "template", name="uq_reminder_logs_cart_template"),
    )
    op.create_index(op.f("ix_reminder_logs_cart_id"), "reminder_logs", ["cart_id"], unique=False)

    # Create cart_events table
    op.create_table(
        "cart_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("cart_id", sa.UUID(), nullable=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default="{}"),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["cart_id"],
            ["carts.id"],
            name=op.f("fk_cart_events_cart_id_carts"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_cart_events")),
    )
    op.create_index(op.f("ix_cart_events_cart_id"), "cart_events", ["cart_id"], unique=False)
    op.create_index(
        op.f("ix_cart_events_event_type"), "cart_events", ["event_type"], unique=False
    )

    # Create reorder_logs table
    op.create_table(
        "reorder_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("original_order_id", sa.UUID(), nullable=False),
        sa.Column("customer_id", sa.UUID(), nullable=True),
        sa.Column("cart_id", sa.UUID(), nullable=True),
        sa.Column("order_id", sa.UUID(), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(name="reorder_status", create_type=False),
            nullable=False,
            server_default="pending",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["original_order_id"],
            ["orders.id"],
            name=op.f("fk_reorder_logs_original_order_id_orders"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["customer_id"],
            ["customers.id"],
            name=op.f("fk_reorder_logs_customer_id_customers"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["cart_id"],
            ["carts.id"],
            name=op.f("fk_reorder_logs_cart_id_carts"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["order_id"],
            ["orders.id"],
            name=op.f("fk_reorder_logs_order_id_orders"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_reorder_logs")),
    )
    op.create_index(
        op.f("ix_reorder_logs_original_order_id"),
        "reorder_logs",
        ["original_order_id"],
        unique=False,
    )
    op.create_index(op.f("ix_reorder_logs_cart_id"), "reorder_logs", ["cart_id"], unique=False)


def downgrade() -> None:
    op.drop_table("reorder_logs")
    op.drop_table("cart_events")
    op.drop_table("reminder_logs")
    op.drop_table("recovery_tokens")
    op.drop_table("orders")
    op.drop_table("carts")
    op.drop_table("customers")

    op.execute("DROP TYPE IF EXISTS reorder_status")
    op.execute("DROP TYPE IF EXISTS order_status")
    op.execute("DROP TYPE IF EXISTS reminder_status")
    op.execute("DROP TYPE IF EXISTS consent_state")
