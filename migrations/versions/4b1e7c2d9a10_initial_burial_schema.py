"""initial burial booking schema

Revision ID: 4b1e7c2d9a10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "4b1e7c2d9a10"
down_revision = None
branch_labels = None
depends_on = None


user_role = sa.Enum("ADMIN", "USER", name="user_role")
plot_status = sa.Enum("AVAILABLE", "RESERVED", "OCCUPIED", name="plot_status")
gender = sa.Enum("MALE", "FEMALE", name="gender")
staff_role = sa.Enum("GRAVE_DIGGER", "BODY_WASHER", name="staff_role")
# Second use of the type on PostgreSQL; it already exists by then.
staff_role_existing = staff_role.with_variant(
    postgresql.ENUM("GRAVE_DIGGER", "BODY_WASHER", name="staff_role", create_type=False),
    "postgresql",
)
kit_type = sa.Enum("MALE", "FEMALE", name="kit_type")
kit_usage_reason = sa.Enum("BOOKING", "BOOKING_CANCELLED", "ADMIN_ADD", "ADMIN_REMOVE", name="kit_usage_reason")
booking_status = sa.Enum(
    "PENDING",
    "APPROVED_PENDING_PAYMENT",
    "PAYMENT_CONFIRMED",
    "CONFIRMED",
    "COMPLETED",
    "REJECTED",
    "CANCELLED",
    name="booking_status",
)
payment_status = sa.Enum("PENDING", "SUBMITTED", "SUCCESSFUL", "REJECTED", "CANCELLED", name="payment_status")
waqaf_status = sa.Enum("PENDING", "SUCCESSFUL", "FAILED", name="waqaf_status")

LIVE_BOOKING = "status NOT IN ('REJECTED', 'CANCELLED')"
REAL_STAFF = "staff_id IS NOT NULL"


def upgrade():
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "plot",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("plot_identifier", sa.String(length=30), nullable=False),
        sa.Column("row", sa.Integer(), nullable=False),
        sa.Column("column", sa.Integer(), nullable=False),
        sa.Column("status", plot_status, nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plot_identifier"),
        sa.UniqueConstraint("row", "column", name="uq_plot_grid_position"),
    )
    op.create_index("ix_plot_booking_id", "plot", ["booking_id"], unique=False)

    op.create_table(
        "deceased",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("ic_number", sa.String(length=20), nullable=False),
        sa.Column("gender", gender, nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("date_of_death", sa.Date(), nullable=True),
        sa.Column("plot_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["plot_id"], ["plot.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ic_number"),
    )
    op.create_index("ix_deceased_plot_id", "deceased", ["plot_id"], unique=False)

    op.create_table(
        "package",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(length=120), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("price >= 0", name="ck_package_price"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("label"),
    )

    op.create_table(
        "booking",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("plot_id", sa.Integer(), nullable=False),
        sa.Column("deceased_id", sa.Integer(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", booking_status, nullable=False),
        sa.Column("death_certificate_url", sa.String(length=500), nullable=True),
        sa.Column("burial_permit_url", sa.String(length=500), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=True),
        sa.Column("admin_notes", sa.String(length=500), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approval_date", sa.DateTime(), nullable=True),
        sa.Column("payment_deadline", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["plot_id"], ["plot.id"]),
        sa.ForeignKeyConstraint(["deceased_id"], ["deceased.id"]),
        sa.ForeignKeyConstraint(["approved_by"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["cancelled_by"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_booking_plot_id", "booking", ["plot_id"], unique=False)
    op.create_index("ix_booking_status_date", "booking", ["status", "booking_date"], unique=False)
    op.create_index("ix_booking_user_created", "booking", ["user_id", "created_at"], unique=False)
    op.create_index(
        "ix_booking_plot_live",
        "booking",
        ["plot_id"],
        unique=True,
        sqlite_where=sa.text(LIVE_BOOKING),
        postgresql_where=sa.text(LIVE_BOOKING),
    )

    op.create_table(
        "booking_package",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("package_id", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.ForeignKeyConstraint(["booking_id"], ["booking.id"]),
        sa.ForeignKeyConstraint(["package_id"], ["package.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id", "package_id", name="uq_booking_package"),
    )
    op.create_index("ix_booking_package_booking_id", "booking_package", ["booking_id"], unique=False)
    op.create_index("ix_booking_package_package_id", "booking_package", ["package_id"], unique=False)

    op.create_table(
        "staff",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=False),
        sa.Column("role", staff_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "booking_staff",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("role", staff_role_existing, nullable=False),
        sa.Column("staff_id", sa.Integer(), nullable=True),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(), nullable=False),
        sa.Column("assigned_by", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["booking_id"], ["booking.id"]),
        sa.ForeignKeyConstraint(["staff_id"], ["staff.id"]),
        sa.ForeignKeyConstraint(["assigned_by"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id", "role", name="uq_booking_staff_role"),
    )
    op.create_index("ix_booking_staff_booking_id", "booking_staff", ["booking_id"], unique=False)
    op.create_index("ix_booking_staff_staff_id", "booking_staff", ["staff_id"], unique=False)
    op.create_index(
        "ix_booking_staff_one_per_day",
        "booking_staff",
        ["staff_id", "booking_date"],
        unique=True,
        sqlite_where=sa.text(REAL_STAFF),
        postgresql_where=sa.text(REAL_STAFF),
    )

    op.create_table(
        "funeral_kit",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kit_type", kit_type, nullable=False),
        sa.Column("available_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("available_quantity >= 0", name="ck_kit_available_non_negative"),
        sa.CheckConstraint("total_used >= 0", name="ck_kit_used_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kit_type"),
    )

    op.create_table(
        "funeral_kit_usage",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kit_id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("reason", kit_usage_reason, nullable=False),
        sa.Column("changed_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["kit_id"], ["funeral_kit.id"]),
        sa.ForeignKeyConstraint(["booking_id"], ["booking.id"]),
        sa.ForeignKeyConstraint(["changed_by"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_kit_usage_kit_created", "funeral_kit_usage", ["kit_id", "created_at"], unique=False)
    op.create_index("ix_funeral_kit_usage_booking_id", "funeral_kit_usage", ["booking_id"], unique=False)

    op.create_table(
        "booking_funeral_kit",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("kit_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_booking_kit_quantity"),
        sa.ForeignKeyConstraint(["booking_id"], ["booking.id"]),
        sa.ForeignKeyConstraint(["kit_id"], ["funeral_kit.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id", "kit_id", name="uq_booking_funeral_kit"),
    )
    op.create_index("ix_booking_funeral_kit_booking_id", "booking_funeral_kit", ["booking_id"], unique=False)

    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="MYR"),
        sa.Column("method", sa.String(length=20), nullable=False, server_default="QR_PAYMENT"),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("transaction_id", sa.String(length=80), nullable=True),
        sa.Column("receipt_url", sa.String(length=500), nullable=True),
        sa.Column("receipt_path", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("verified_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["booking_id"], ["booking.id"]),
        sa.ForeignKeyConstraint(["verified_by"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id"),
    )

    op.create_table(
        "waqaf",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("donor_name", sa.String(length=160), nullable=False),
        sa.Column("donor_email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="MYR"),
        sa.Column("message", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("payment_status", waqaf_status, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_waqaf_amount"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_waqaf_created_at", "waqaf", ["created_at"], unique=False)

    op.create_table(
        "payment_setting",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("qr_image_url", sa.String(length=500), nullable=True),
        sa.Column("qr_image_path", sa.String(length=255), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["updated_by"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade():
    op.drop_table("payment_setting")
    op.drop_index("ix_waqaf_created_at", table_name="waqaf")
    op.drop_table("waqaf")
    op.drop_table("payment")
    op.drop_index("ix_booking_funeral_kit_booking_id", table_name="booking_funeral_kit")
    op.drop_table("booking_funeral_kit")
    op.drop_index("ix_funeral_kit_usage_booking_id", table_name="funeral_kit_usage")
    op.drop_index("ix_kit_usage_kit_created", table_name="funeral_kit_usage")
    op.drop_table("funeral_kit_usage")
    op.drop_table("funeral_kit")
    op.drop_index("ix_booking_staff_one_per_day", table_name="booking_staff")
    op.drop_index("ix_booking_staff_staff_id", table_name="booking_staff")
    op.drop_index("ix_booking_staff_booking_id", table_name="booking_staff")
    op.drop_table("booking_staff")
    op.drop_table("staff")
    op.drop_index("ix_booking_package_package_id", table_name="booking_package")
    op.drop_index("ix_booking_package_booking_id", table_name="booking_package")
    op.drop_table("booking_package")
    op.drop_index("ix_booking_plot_live", table_name="booking")
    op.drop_index("ix_booking_user_created", table_name="booking")
    op.drop_index("ix_booking_status_date", table_name="booking")
    op.drop_index("ix_booking_plot_id", table_name="booking")
    op.drop_table("booking")
    op.drop_table("package")
    op.drop_index("ix_deceased_plot_id", table_name="deceased")
    op.drop_table("deceased")
    op.drop_index("ix_plot_booking_id", table_name="plot")
    op.drop_table("plot")
    op.drop_table("user_account")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum in (
            waqaf_status,
            payment_status,
            booking_status,
            kit_usage_reason,
            kit_type,
            staff_role,
            gender,
            plot_status,
            user_role,
        ):
            enum.drop(bind, checkfirst=True)
