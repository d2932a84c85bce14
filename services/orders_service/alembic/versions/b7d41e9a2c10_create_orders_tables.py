"""create_orders_tables

Revision ID: b7d41e9a2c10
Revises:
Create Date: 2026-10-18 09:12:00.000000
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "b7d41e9a2c10"
down_revision = None
branch_labels = None
depends_on = None


ORDER_STATUS = postgresql.ENUM(
    "processing",
    "confirmed",
    "preparing",
    "out_for_delivery",
    "delivered",
    "cancelled",
    name="order_status_enum",
    create_type=False,
)
DELIVERY_METHOD = postgresql.ENUM(
    "standard", "express", "pickup", name="order_delivery_method_enum", create_type=False
)
PAYMENT_STATUS = postgresql.ENUM(
    "pending", "paid", "refunded", name="order_payment_status_enum", create_type=False
)
AGENT_ORDER_KIND = postgresql.ENUM(
    "active", "rejected", "completed", name="agent_order_kind_enum", create_type=False
)
NOTIFICATION_TYPE = postgresql.ENUM(
    "order", "order_status", name="notification_type_enum", create_type=False
)
ENUMS = (ORDER_STATUS, DELIVERY_METHOD, PAYMENT_STATUS, AGENT_ORDER_KIND, NOTIFICATION_TYPE)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "delivery_agents",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("vehicle_type", sa.String(length=30), nullable=False),
        sa.Column("vehicle_number", sa.String(length=30), nullable=True),
        sa.Column("is_available", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("is_verified", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("current_longitude", sa.Float(), nullable=True),
        sa.Column("current_latitude", sa.Float(), nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating", sa.Numeric(3, 2), server_default="0", nullable=True),
        sa.Column("total_ratings", sa.Integer(), server_default="0", nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_delivery_agents_user_id", "delivery_agents", ["user_id"], unique=True
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("contact_number", sa.String(length=50), nullable=False),
        sa.Column("restaurant_id", sa.Uuid(), nullable=True),
        sa.Column("delivery_method", DELIVERY_METHOD, nullable=False),
        sa.Column("delivery_address", sa.Text(), nullable=False),
        sa.Column("delivery_instructions", sa.Text(), nullable=True),
        sa.Column("pickup_longitude", sa.Float(), nullable=True),
        sa.Column("pickup_latitude", sa.Float(), nullable=True),
        sa.Column("delivery_longitude", sa.Float(), nullable=True),
        sa.Column("delivery_latitude", sa.Float(), nullable=True),
        sa.Column("status", ORDER_STATUS, nullable=False),
        sa.Column("delivery_agent_id", sa.Uuid(), nullable=True),
        sa.Column("estimated_delivery_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_delivery_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pickup_code", sa.String(length=4), nullable=True),
        sa.Column("pickup_code_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_pickup_completed", sa.Boolean(), server_default="false", nullable=False
        ),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax", sa.Numeric(12, 2), server_default="0", nullable=True),
        sa.Column("delivery_fee", sa.Numeric(12, 2), server_default="0", nullable=True),
        sa.Column("discount", sa.Numeric(12, 2), server_default="0", nullable=True),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("promo_code_applied", sa.String(length=50), nullable=True),
        sa.Column("payment_method", sa.String(length=30), nullable=False),
        sa.Column("payment_status", PAYMENT_STATUS, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(delivery_method = 'pickup') = (pickup_code IS NOT NULL)",
            name="order_pickup_code_iff_pickup",
        ),
        sa.ForeignKeyConstraint(
            ["restaurant_id"], ["restaurants.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(["delivery_agent_id"], ["delivery_agents.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_delivery_agent_id", "orders", ["delivery_agent_id"])
    op.create_index("ix_orders_status_agent", "orders", ["status", "delivery_agent_id"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("order_id", sa.Uuid(), nullable=False),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="order_item_positive_quantity"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["posts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "order_status_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Uuid(), nullable=False),
        sa.Column("status", ORDER_STATUS, nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("location_longitude", sa.Float(), nullable=True),
        sa.Column("location_latitude", sa.Float(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_order_status_history_order_id", "order_status_history", ["order_id"]
    )

    op.create_table(
        "delivery_agent_orders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("agent_id", sa.Uuid(), nullable=False),
        sa.Column("order_id", sa.Uuid(), nullable=False),
        sa.Column("kind", AGENT_ORDER_KIND, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["agent_id"], ["delivery_agents.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("agent_id", "order_id", "kind", name="uq_agent_order_kind"),
    )
    op.create_index(
        "ix_delivery_agent_orders_order_id", "delivery_agent_orders", ["order_id"]
    )
    op.create_index(
        "uq_delivery_agent_orders_active_order",
        "delivery_agent_orders",
        ["order_id"],
        unique=True,
        postgresql_where=sa.text("kind = 'active'"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("sender_id", sa.String(length=64), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("type", NOTIFICATION_TYPE, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("post_id", sa.Uuid(), nullable=True),
        sa.Column("order_id", sa.Uuid(), nullable=True),
        sa.Column("read", sa.Boolean(), server_default="false", nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notifications_recipient_created",
        "notifications",
        ["recipient_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_notifications_recipient_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index(
        "uq_delivery_agent_orders_active_order", table_name="delivery_agent_orders"
    )
    op.drop_index(
        "ix_delivery_agent_orders_order_id", table_name="delivery_agent_orders"
    )
    op.drop_table("delivery_agent_orders")
    op.drop_index(
        "ix_order_status_history_order_id", table_name="order_status_history"
    )
    op.drop_table("order_status_history")
    op.drop_index("ix_order_items_order_id", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("ix_orders_status_agent", table_name="orders")
    op.drop_index("ix_orders_delivery_agent_id", table_name="orders")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_index("ix_orders_customer_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_delivery_agents_user_id", table_name="delivery_agents")
    op.drop_table("delivery_agents")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
