from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint, event, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import generate_password_hash

from app.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class PlotStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    OCCUPIED = "OCCUPIED"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class StaffRole(str, Enum):
    GRAVE_DIGGER = "GRAVE_DIGGER"
    BODY_WASHER = "BODY_WASHER"


class KitType(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class KitUsageReason(str, Enum):
    BOOKING = "BOOKING"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    ADMIN_ADD = "ADMIN_ADD"
    ADMIN_REMOVE = "ADMIN_REMOVE"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED_PENDING_PAYMENT = "APPROVED_PENDING_PAYMENT"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    # Legacy synonym of PAYMENT_CONFIRMED kept for rows written by older clients.
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


INACTIVE_BOOKING_STATUSES = (BookingStatus.REJECTED, BookingStatus.CANCELLED)


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    SUCCESSFUL = "SUCCESSFUL"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class WaqafStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    phone: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.USER,
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    bookings = relationship("Booking", back_populates="user", foreign_keys="Booking.user_id")


class Plot(db.Model):
    __tablename__ = "plot"
    __table_args__ = (UniqueConstraint("row", "column", name="uq_plot_grid_position"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    plot_identifier: Mapped[str] = mapped_column(db.String(30), unique=True, nullable=False)
    row: Mapped[int] = mapped_column(nullable=False)
    column: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[PlotStatus] = mapped_column(
        SAEnum(PlotStatus, name="plot_status"),
        nullable=False,
        default=PlotStatus.AVAILABLE,
    )
    # Plain column: booking.plot_id already points the other way.
    booking_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    deceased = relationship("Deceased", back_populates="plot")

    @property
    def block(self) -> str:
        return plot_block(self.plot_identifier)


def plot_block(plot_identifier: str | None) -> str | None:
    if not plot_identifier:
        return None
    trimmed = plot_identifier.strip()
    if "-" in trimmed:
        return trimmed.split("-", 1)[0].strip()
    parts = trimmed.split()
    if parts and parts[0].lower() == "blok":
        return " ".join(parts[:2])
    return parts[0] if parts else None


class Deceased(db.Model):
    __tablename__ = "deceased"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    ic_number: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    gender: Mapped[Gender] = mapped_column(SAEnum(Gender, name="gender"), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(nullable=True)
    date_of_death: Mapped[date | None] = mapped_column(nullable=True)
    plot_id: Mapped[int | None] = mapped_column(ForeignKey("plot.id"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    plot = relationship("Plot", back_populates="deceased")


class Package(db.Model):
    __tablename__ = "package"
    __table_args__ = (CheckConstraint("price >= 0", name="ck_package_price"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    label: Mapped[str] = mapped_column(db.String(120), unique=True, nullable=False)
    price: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=0)
    description: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Booking(db.Model):
    __tablename__ = "booking"
    __table_args__ = (
        Index("ix_booking_status_date", "status", "booking_date"),
        Index("ix_booking_user_created", "user_id", "created_at"),
        Index(
            "ix_booking_plot_live",
            "plot_id",
            unique=True,
            sqlite_where=text("status NOT IN ('REJECTED', 'CANCELLED')"),
            postgresql_where=text("status NOT IN ('REJECTED', 'CANCELLED')"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    plot_id: Mapped[int] = mapped_column(ForeignKey("plot.id"), nullable=False, index=True)
    deceased_id: Mapped[int] = mapped_column(ForeignKey("deceased.id"), nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(nullable=False)
    # Calendar day of scheduled_at in the configured burial time zone.
    booking_date: Mapped[date] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=0)
    status: Mapped[BookingStatus] = mapped_column(
        SAEnum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    death_certificate_url: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    burial_permit_url: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    approval_date: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_deadline: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="bookings", foreign_keys=[user_id])
    plot = relationship("Plot")
    deceased = relationship("Deceased")
    packages = relationship("BookingPackage", back_populates="booking", cascade="all, delete-orphan")
    staff_assignments = relationship("BookingStaff", back_populates="booking")
    kit_reservations = relationship("BookingFuneralKit", back_populates="booking")
    payment = relationship("Payment", back_populates="booking", uselist=False)

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_BOOKING_STATUSES


class BookingPackage(db.Model):
    __tablename__ = "booking_package"
    __table_args__ = (UniqueConstraint("booking_id", "package_id", name="uq_booking_package"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("booking.id"), nullable=False, index=True)
    package_id: Mapped[int] = mapped_column(ForeignKey("package.id"), nullable=False, index=True)
    price: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)

    booking = relationship("Booking", back_populates="packages")
    package = relationship("Package")


class Staff(db.Model):
    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    phone: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    role: Mapped[StaffRole] = mapped_column(SAEnum(StaffRole, name="staff_role"), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class BookingStaff(db.Model):
    __tablename__ = "booking_staff"
    __table_args__ = (
        UniqueConstraint("booking_id", "role", name="uq_booking_staff_role"),
        Index(
            "ix_booking_staff_one_per_day",
            "staff_id",
            "booking_date",
            unique=True,
            sqlite_where=text("staff_id IS NOT NULL"),
            postgresql_where=text("staff_id IS NOT NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("booking.id"), nullable=False, index=True)
    role: Mapped[StaffRole] = mapped_column(SAEnum(StaffRole, name="staff_role"), nullable=False)
    # NULL means the service is not required (handled by the family).
    staff_id: Mapped[int | None] = mapped_column(ForeignKey("staff.id"), nullable=True, index=True)
    # Copied from the booking so the one-booking-per-day rule is a unique index.
    booking_date: Mapped[date] = mapped_column(nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    assigned_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)

    booking = relationship("Booking", back_populates="staff_assignments")
    staff = relationship("Staff")


class FuneralKit(db.Model):
    __tablename__ = "funeral_kit"
    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_kit_available_non_negative"),
        CheckConstraint("total_used >= 0", name="ck_kit_used_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    kit_type: Mapped[KitType] = mapped_column(SAEnum(KitType, name="kit_type"), unique=True, nullable=False)
    available_quantity: Mapped[int] = mapped_column(nullable=False, default=0)
    total_used: Mapped[int] = mapped_column(nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class FuneralKitUsage(db.Model):
    __tablename__ = "funeral_kit_usage"
    __table_args__ = (Index("ix_kit_usage_kit_created", "kit_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    kit_id: Mapped[int] = mapped_column(ForeignKey("funeral_kit.id"), nullable=False)
    booking_id: Mapped[int | None] = mapped_column(ForeignKey("booking.id"), nullable=True, index=True)
    quantity_change: Mapped[int] = mapped_column(nullable=False)
    reason: Mapped[KitUsageReason] = mapped_column(SAEnum(KitUsageReason, name="kit_usage_reason"), nullable=False)
    changed_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    notes: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    kit = relationship("FuneralKit")
    user = relationship("User")


class BookingFuneralKit(db.Model):
    __tablename__ = "booking_funeral_kit"
    __table_args__ = (
        UniqueConstraint("booking_id", "kit_id", name="uq_booking_funeral_kit"),
        CheckConstraint("quantity > 0", name="ck_booking_kit_quantity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("booking.id"), nullable=False, index=True)
    kit_id: Mapped[int] = mapped_column(ForeignKey("funeral_kit.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    booking = relationship("Booking", back_populates="kit_reservations")
    kit = relationship("FuneralKit")


class Payment(db.Model):
    __tablename__ = "payment"

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("booking.id"), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(db.String(3), nullable=False, default="MYR")
    method: Mapped[str] = mapped_column(db.String(20), nullable=False, default="QR_PAYMENT")
    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    transaction_id: Mapped[str | None] = mapped_column(db.String(80), nullable=True)
    receipt_url: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    receipt_path: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verified_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    booking = relationship("Booking", back_populates="payment")


class Waqaf(db.Model):
    __tablename__ = "waqaf"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_waqaf_amount"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    donor_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    donor_email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(db.String(3), nullable=False, default="MYR")
    message: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    payment_status: Mapped[WaqafStatus] = mapped_column(
        SAEnum(WaqafStatus, name="waqaf_status"),
        nullable=False,
        default=WaqafStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)


class PaymentSetting(db.Model):
    __tablename__ = "payment_setting"

    id: Mapped[int] = mapped_column(primary_key=True)
    qr_image_url: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    qr_image_path: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    updated_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


@event.listens_for(FuneralKitUsage, "before_update")
def kit_usage_before_update(_mapper, _connection, target: FuneralKitUsage) -> None:
    raise ValueError(f"Rekod penggunaan kit #{target.id} tidak boleh diubah")


@event.listens_for(FuneralKitUsage, "before_delete")
def kit_usage_before_delete(_mapper, _connection, target: FuneralKitUsage) -> None:
    raise ValueError(f"Rekod penggunaan kit #{target.id} tidak boleh dipadam")


def seed_demo_data(session) -> None:
    admin = User(
        email="admin@kubur.local",
        full_name="Pentadbir Kubur",
        phone="0123456789",
        password_hash=generate_password_hash("admin123"),
        role=UserRole.ADMIN,
    )
    waris = User(
        email="waris@kubur.local",
        full_name="Aisyah binti Karim",
        phone="0191112233",
        password_hash=generate_password_hash("waris123"),
        role=UserRole.USER,
    )
    jiran = User(
        email="jiran@kubur.local",
        full_name="Farid bin Hassan",
        phone="0174445566",
        password_hash=generate_password_hash("jiran123"),
        role=UserRole.USER,
    )
    session.add_all([admin, waris, jiran])
    session.flush()

    plots = []
    for row, block in enumerate(("A1", "A2", "B1"), start=1):
        for column in range(1, 7):
            plots.append(
                Plot(
                    plot_identifier=f"{block}-{column}",
                    row=row,
                    column=column,
                    status=PlotStatus.AVAILABLE,
                )
            )
    session.add_all(plots)
    session.flush()

    occupied = next(p for p in plots if p.plot_identifier == "B1-6")
    occupied.status = PlotStatus.OCCUPIED
    session.add(
        Deceased(
            name="Haji Abdullah bin Osman",
            ic_number="400101015555",
            gender=Gender.MALE,
            date_of_birth=date(1940, 1, 1),
            date_of_death=date(2023, 8, 14),
            plot_id=occupied.id,
        )
    )

    session.add_all(
        [
            Staff(name="Ahmad bin Ali", phone="0131234567", role=StaffRole.GRAVE_DIGGER),
            Staff(name="Rahman bin Yusof", phone="0132345678", role=StaffRole.GRAVE_DIGGER),
            Staff(name="Ismail bin Musa", phone="0133456789", role=StaffRole.GRAVE_DIGGER, is_active=False),
            Staff(name="Siti binti Omar", phone="0134567890", role=StaffRole.BODY_WASHER),
            Staff(name="Hasan bin Daud", phone="0135678901", role=StaffRole.BODY_WASHER),
        ]
    )

    session.add_all(
        [
            FuneralKit(kit_type=KitType.MALE, available_quantity=3, total_used=0),
            FuneralKit(kit_type=KitType.FEMALE, available_quantity=5, total_used=0),
        ]
    )

    session.add_all(
        [
            Package(label="Pakej Asas", price=Decimal("500.00"), description="Liang lahad dan urusan pengebumian"),
            Package(label="Batu Nisan", price=Decimal("300.00"), description="Sepasang batu nisan granit"),
            Package(label="Pakej Lengkap", price=Decimal("1200.00"), description="Asas, batu nisan dan kepuk"),
        ]
    )

    session.add(
        Waqaf(
            donor_name="Hamba Allah",
            donor_email="",
            amount=Decimal("150.00"),
            message="Untuk penyelenggaraan tanah perkuburan",
            payment_status=WaqafStatus.SUCCESSFUL,
        )
    )
    session.add(PaymentSetting())
    session.commit()
