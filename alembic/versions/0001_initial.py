"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "trips",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), nullable=False),
        sa.Column("bus_id", sa.String(length=36), nullable=False),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("arrival_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("base_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        sa.Column("available_seats", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="SCHEDULED"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("available_seats >= 0 AND available_seats <= total_seats", name="ck_trips_available_seats"),
    )
    op.create_index("ix_trips_company_id", "trips", ["company_id"])
    op.create_index("ix_trips_bus_id", "trips", ["bus_id"])
    op.create_index("ix_trips_departure_time", "trips", ["departure_time"])

    op.create_table(
        "seats",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("bus_id", sa.String(length=36), nullable=False),
        sa.Column("seat_number", sa.String(length=10), nullable=False),
        sa.Column("seat_type", sa.String(length=20), nullable=False, server_default="STANDARD"),
        sa.Column("price_multiplier", sa.Float(), nullable=True, server_default="1.0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("bus_id", "seat_number", name="uq_seats_bus_seat_number"),
    )
    op.create_index("ix_seats_bus_id", "seats", ["bus_id"])

    op.create_table(
        "seat_locks",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("trip_id", sa.String(length=36), nullable=False),
        sa.Column("seat_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("trip_id", "seat_id", name="uq_seat_locks_trip_seat"),
    )
    op.create_index("ix_seat_locks_trip_id", "seat_locks", ["trip_id"])
    op.create_index("ix_seat_locks_seat_id", "seat_locks", ["seat_id"])
    op.create_index("ix_seat_locks_user_id", "seat_locks", ["user_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_code", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("trip_id", sa.String(length=36), nullable=False),
        sa.Column("company_id", sa.String(length=36), nullable=False),
        sa.Column("passenger_name", sa.String(length=200), nullable=False),
        sa.Column("passenger_phone", sa.String(length=30), nullable=False),
        sa.Column("passenger_email", sa.String(length=320), nullable=False, server_default=""),
        sa.Column("seat_numbers", sa.JSON(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("voucher_id", sa.String(length=36), nullable=True),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("booking_status", sa.String(length=20), nullable=False, server_default="CONFIRMED"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_bookings_booking_code", "bookings", ["booking_code"], unique=True)
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_trip_id", "bookings", ["trip_id"])
    op.create_index("ix_bookings_company_id", "bookings", ["company_id"])
    op.create_index("ix_bookings_booking_status", "bookings", ["booking_status"])

    op.create_table(
        "booking_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("trip_id", sa.String(length=36), nullable=False),
        sa.Column("seat_id", sa.String(length=36), nullable=False),
        sa.Column("seat_number", sa.String(length=10), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("booking_id", "seat_id", name="uq_booking_items_booking_seat"),
    )
    op.create_index("ix_booking_items_booking_id", "booking_items", ["booking_id"])
    op.create_index("ix_booking_items_trip_id", "booking_items", ["trip_id"])
    op.create_index("ix_booking_items_seat_id", "booking_items", ["seat_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("payment_code", sa.String(length=30), nullable=False),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("company_id", sa.String(length=36), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("voucher_id", sa.String(length=36), nullable=True),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("transaction_id", sa.String(length=120), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payments_payment_code", "payments", ["payment_code"], unique=True)
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index("ix_payments_company_id", "payments", ["company_id"])

    op.create_table(
        "payment_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("payment_id", sa.String(length=36), nullable=False),
        sa.Column("event_type", sa.String(length=40), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="INFO"),
        sa.Column("payload_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("response_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payment_logs_payment_id", "payment_logs", ["payment_id"])
    op.create_index("ix_payment_logs_event_type", "payment_logs", ["event_type"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("invoice_number", sa.String(length=60), nullable=False),
        sa.Column("company_id", sa.String(length=36), nullable=False),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("payment_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
        sa.Column("subtotal", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tax_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_invoices_invoice_number", "invoices", ["invoice_number"], unique=True)
    op.create_index("ix_invoices_company_id", "invoices", ["company_id"])
    op.create_index("ix_invoices_booking_id", "invoices", ["booking_id"])
    op.create_index("ix_invoices_payment_id", "invoices", ["payment_id"], unique=True)

    op.create_table(
        "vouchers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("company_id", sa.String(length=36), nullable=True),
        sa.Column("discount_type", sa.String(length=10), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("min_order_value", sa.Integer(), nullable=True),
        sa.Column("max_discount", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_per_user", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("company_id", "code", name="uq_vouchers_company_code"),
    )
    op.create_index("ix_vouchers_code", "vouchers", ["code"])
    op.create_index("ix_vouchers_company_id", "vouchers", ["company_id"])

    op.create_table(
        "voucher_usages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("voucher_id", sa.String(length=36), nullable=False),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("applied_discount", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_voucher_usages_voucher_id", "voucher_usages", ["voucher_id"])
    op.create_index("ix_voucher_usages_booking_id", "voucher_usages", ["booking_id"])
    op.create_index("ix_voucher_usages_user_id", "voucher_usages", ["user_id"])

    op.create_table(
        "vnpay_transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("payment_id", sa.String(length=36), nullable=False),
        sa.Column("order_id", sa.String(length=60), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("order_info", sa.Text(), nullable=False, server_default=""),
        sa.Column("bank_code", sa.String(length=20), nullable=True),
        sa.Column("payment_url", sa.Text(), nullable=True),
        sa.Column("transaction_no", sa.String(length=60), nullable=True),
        sa.Column("response_code", sa.String(length=10), nullable=True),
        sa.Column("response_message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_vnpay_transactions_payment_id", "vnpay_transactions", ["payment_id"])
    op.create_index("ix_vnpay_transactions_order_id", "vnpay_transactions", ["order_id"], unique=True)

    op.create_table(
        "email_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("to_email", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("related_booking_code", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_email_logs_to_email", "email_logs", ["to_email"])


def downgrade() -> None:
    for table in (
        "email_logs", "vnpay_transactions", "voucher_usages", "vouchers", "invoices",
        "payment_logs", "payments", "booking_items", "bookings", "seat_locks", "seats", "trips",
    ):
        op.drop_table(table)
