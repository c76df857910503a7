"""create fulfillment tables

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-10-19 09:12:44.310512

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


item_type = sa.Enum("book", "bundle", name="itemtype")
purchase_status = sa.Enum(
    "pending", "pending_initiation", "awaiting_payment", "pending_verification", "completed", "rejected",
    name="purchasestatus",
)
request_status = sa.Enum("pending", "contacted", "approved", "rejected", "completed", name="requeststatus")
contact_type = sa.Enum("telegram", "whatsapp", "email", name="contacttype")
payment_config_type = sa.Enum("bank_account", "mobile_money", name="paymentconfigtype")
library_status = sa.Enum("owned", "reading", "completed", name="librarystatus")
recipient_role = sa.Enum("admin", "buyer", name="recipientrole")


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("can_login", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("author", sa.String(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_free", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "bundles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "bundle_books",
        sa.Column("bundle_id", sa.Integer(), sa.ForeignKey("bundles.id"), primary_key=True),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), primary_key=True),
    )

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("item_type", item_type, nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount_in_birr", sa.Numeric(12, 2), nullable=True),
        sa.Column("status", purchase_status, nullable=False),
        sa.Column("transaction_reference", sa.String(), nullable=True),
        sa.Column("payment_provider_id", sa.String(), nullable=True),
        sa.Column("initiation_token", sa.String(), nullable=True),
        sa.Column("telegram_chat_id", sa.BigInteger(), nullable=True),
        sa.Column("telegram_user_id", sa.BigInteger(), nullable=True),
        sa.Column("payment_proof_key", sa.String(), nullable=True),
        sa.Column("admin_notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_purchases_user_id", "purchases", ["user_id"])
    op.create_index("ix_purchases_item_id", "purchases", ["item_id"])
    op.create_index("ix_purchases_status", "purchases", ["status"])
    op.create_index("ix_purchases_transaction_reference", "purchases", ["transaction_reference"], unique=True)
    op.create_index("ix_purchases_initiation_token", "purchases", ["initiation_token"], unique=True)
    op.create_index("ix_purchases_telegram_chat_id", "purchases", ["telegram_chat_id"])

    op.create_table(
        "purchase_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("item_type", item_type, nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", request_status, nullable=False),
        sa.Column("preferred_contact_method", contact_type, nullable=True),
        sa.Column("user_message", sa.String(), nullable=True),
        sa.Column("admin_notes", sa.String(), nullable=True),
        sa.Column("contacted_at", sa.DateTime(), nullable=True),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_purchase_requests_user_id", "purchase_requests", ["user_id"])
    op.create_index("ix_purchase_requests_status", "purchase_requests", ["status"])

    op.create_table(
        "admin_contact_info",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("contact_type", contact_type, nullable=False),
        sa.Column("contact_value", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_admin_contact_info_admin_id", "admin_contact_info", ["admin_id"])

    op.create_table(
        "payment_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("config_type", payment_config_type, nullable=False),
        sa.Column("provider_name", sa.String(), nullable=False),
        sa.Column("account_number", sa.String(), nullable=False),
        sa.Column("account_name", sa.String(), nullable=False),
        sa.Column("instructions", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "user_library",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("status", library_status, nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("last_read_position", sa.String(), nullable=True),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_user_library_user_id", "user_library", ["user_id"])
    op.create_index("ix_user_library_book_id", "user_library", ["book_id"])

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient_role", recipient_role, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("trigger_source", sa.String(), nullable=False),
        sa.Column("related_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("content", sa.String(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notification_recipient_role", "notification", ["recipient_role"])


def downgrade():
    for table in (
        "notification",
        "user_library",
        "payment_config",
        "admin_contact_info",
        "purchase_requests",
        "purchases",
        "bundle_books",
        "bundles",
        "books",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        item_type, purchase_status, request_status, contact_type, payment_config_type,
        library_status, recipient_role,
    ):
        enum.drop(bind, checkfirst=True)
