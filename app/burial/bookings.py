"""Booking workflow.

States::

    PENDING -> APPROVED_PENDING_PAYMENT -> PAYMENT_CONFIRMED (CONFIRMED) -> COMPLETED
    PENDING -> REJECTED
    any state before COMPLETED -> CANCELLED

The payment sub-status (PENDING, SUBMITTED, SUCCESSFUL, REJECTED, CANCELLED)
lives on the booking's ``Payment`` row, created when the booking is approved.

Creating a booking reserves the plot, the staff and the kits inside one
database transaction; a failure in any step rolls every step back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.burial.kits import KitInventory, parse_kit_type, parse_quantity
from app.burial.plots import PlotLedger
from app.burial.staff import StaffAssignmentRequest, StaffRoster
from app.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DuplicateReservationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.extensions import db
from app.core.models import (
    Booking,
    BookingPackage,
    BookingStatus,
    Deceased,
    Gender,
    KitType,
    Package,
    Payment,
    PaymentStatus,
    PlotStatus,
    utcnow,
)
from app.core.principal import Principal
from app.core.storage import LocalObjectStorage, default_storage, object_parts
from app.core.utils import paginate_query

logger = logging.getLogger(__name__)

CONFIRMED_STATUSES = (BookingStatus.PAYMENT_CONFIRMED, BookingStatus.CONFIRMED)
CANCELLABLE_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.APPROVED_PENDING_PAYMENT,
    BookingStatus.PAYMENT_CONFIRMED,
    BookingStatus.CONFIRMED,
)
OWNER_CANCELLABLE_STATUSES = (BookingStatus.PENDING, BookingStatus.APPROVED_PENDING_PAYMENT)
PAYABLE_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.REJECTED)


def _parse_date(value: object, label: str) -> date | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationError(f"Tarikh {label} tidak sah") from exc


def parse_datetime(value: object) -> datetime:
    raw = str(value or "").strip()
    if not raw:
        raise ValidationError("Tarikh dan masa pengebumian diperlukan")
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError("Tarikh dan masa pengebumian tidak sah") from exc


def _parse_id(value: object, label: str) -> int:
    raw = str(value if value is not None else "").strip()
    if not raw.isdigit():
        raise ValidationError(f"{label} tidak sah")
    return int(raw)


@dataclass(frozen=True)
class KitSelection:
    kit_type: KitType
    quantity: int


@dataclass
class BookingRequest:
    deceased_name: str
    deceased_ic: str
    deceased_gender: Gender
    plot_id: int
    scheduled_at: datetime
    staff: list[StaffAssignmentRequest]
    package_ids: list[int] = field(default_factory=list)
    kits: list[KitSelection] = field(default_factory=list)
    date_of_birth: date | None = None
    date_of_death: date | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, object], roster: StaffRoster) -> "BookingRequest":
        name = str(payload.get("deceasedName") or payload.get("deceased_name") or "").strip()
        ic_number = str(payload.get("deceasedIC") or payload.get("deceased_ic") or "").strip()
        if not name or not ic_number:
            raise ValidationError("Nama dan nombor kad pengenalan si mati diperlukan")
        raw_gender = str(payload.get("deceasedGender") or payload.get("deceased_gender") or "").strip().upper()
        try:
            gender = Gender(raw_gender)
        except ValueError as exc:
            raise ValidationError("Jantina si mati tidak sah") from exc

        plot_id = _parse_id(payload.get("plotId", payload.get("plot_id")), "Plot")
        scheduled_at = parse_datetime(payload.get("bookingDateTime") or payload.get("scheduled_at"))

        raw_packages = payload.get("selectedPackageIds") or payload.get("package_ids") or []
        if not isinstance(raw_packages, list):
            raise ValidationError("Senarai pakej tidak sah")
        package_ids: list[int] = []
        for raw in raw_packages:
            package_id = _parse_id(raw, "Pakej")
            if package_id not in package_ids:
                package_ids.append(package_id)

        raw_kits = payload.get("selectedFuneralKits") or payload.get("kits") or []
        if not isinstance(raw_kits, list):
            raise ValidationError("Senarai kit jenazah tidak sah")
        kits: list[KitSelection] = []
        for item in raw_kits:
            if not isinstance(item, dict):
                raise ValidationError("Format kit jenazah tidak sah")
            kit_type = parse_kit_type(item.get("kitType") or item.get("kit_type"))
            quantity = parse_quantity(item.get("quantity"))
            if quantity <= 0:
                raise ValidationError(f"Kuantiti tidak sah: {quantity}")
            if any(kit.kit_type == kit_type for kit in kits):
                raise DuplicateReservationError(f"Kit {kit_type.value} dipilih lebih daripada sekali")
            kits.append(KitSelection(kit_type, quantity))

        staff = roster.parse_assignments(payload.get("staffAssignments") or payload.get("staff") or [])

        return cls(
            deceased_name=name,
            deceased_ic=ic_number,
            deceased_gender=gender,
            plot_id=plot_id,
            scheduled_at=roster.local_datetime(scheduled_at),
            staff=staff,
            package_ids=package_ids,
            kits=kits,
            date_of_birth=_parse_date(payload.get("dateOfBirth") or payload.get("date_of_birth"), "lahir"),
            date_of_death=_parse_date(payload.get("dateOfDeath") or payload.get("date_of_death"), "kematian"),
        )


class ReservationBatch:
    """Unit of work around the plot, staff and kit reservations of one booking.

    Commits when the block exits cleanly. Any error rolls back every staged
    step; a unique-index violation at flush or commit time is reported as a
    ``ConflictError``.
    """

    def __init__(self, session: Session, label: str) -> None:
        self.session = session
        self.label = label
        self.steps: list[str] = []

    def __enter__(self) -> "ReservationBatch":
        return self

    def record(self, step: str) -> None:
        self.steps.append(step)

    def __exit__(self, exc_type, exc, _tb) -> bool:
        if exc_type is None:
            try:
                self.session.commit()
            except IntegrityError as error:
                self.session.rollback()
                logger.warning("%s lost a race at commit after %s", self.label, self.steps)
                raise ConflictError("Sumber yang dipilih baru sahaja ditempah. Sila pilih semula.") from error
            return False
        self.session.rollback()
        logger.warning(
            "%s rolled back after %s: %s",
            self.label,
            ", ".join(self.steps) or "no steps",
            exc,
        )
        if isinstance(exc, IntegrityError):
            raise ConflictError("Sumber yang dipilih baru sahaja ditempah. Sila pilih semula.") from exc
        return False


class BookingWorkflow:
    def __init__(
        self,
        session: Session,
        ledger: PlotLedger,
        roster: StaffRoster,
        inventory: KitInventory,
        storage: LocalObjectStorage | None = None,
        payment_deadline_days: int = 3,
        currency: str = "MYR",
    ) -> None:
        self.session = session
        self.ledger = ledger
        self.roster = roster
        self.inventory = inventory
        self.storage = storage
        self.payment_deadline_days = payment_deadline_days
        self.currency = currency

    # -- lookups ------------------------------------------------------------

    def get(self, booking_id: int) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Tempahan tidak ditemui")
        return booking

    def _reload(self, booking_id: int) -> Booking:
        return self.session.get(Booking, booking_id, populate_existing=True)

    def visible_booking(self, booking_id: int, actor: Principal) -> Booking:
        booking = self.get(booking_id)
        if not actor.is_admin and booking.user_id != actor.user_id:
            raise NotFoundError("Tempahan tidak ditemui")
        return booking

    def owned_booking(self, booking_id: int, actor: Principal) -> Booking:
        booking = self.get(booking_id)
        if booking.user_id != actor.user_id:
            raise AuthorizationError("Anda tidak dibenarkan mengubah tempahan ini")
        return booking

    def readable_object(self, object_path: str, actor: Principal | None) -> str:
        """Check who may download a stored upload and return its clean path.

        The QR image is public. Booking documents follow booking visibility,
        and payment receipts are readable by their uploader and by admins.
        """
        parts = object_parts(object_path)
        if len(parts) < 2:
            raise NotFoundError("Fail tidak ditemui")
        prefix, owner = parts[0], parts[1]
        if prefix == "payment_qr":
            return "/".join(parts)
        if actor is None:
            raise AuthenticationError("Sila log masuk")
        if prefix == "booking_documents" and owner.isdigit():
            self.visible_booking(int(owner), actor)
        elif prefix == "payment_receipts" and owner.isdigit():
            if not actor.is_admin and int(owner) != actor.user_id:
                logger.warning("User %s refused receipt file %s", actor.user_id, "/".join(parts))
                raise AuthorizationError("Anda tidak dibenarkan melihat fail ini")
        else:
            raise NotFoundError("Fail tidak ditemui")
        return "/".join(parts)

    @staticmethod
    def _require_admin(actor: Principal) -> None:
        if not actor.is_admin:
            raise AuthorizationError("Hanya pentadbir boleh melakukan tindakan ini")

    def _transition(
        self,
        booking: Booking,
        from_statuses: tuple[BookingStatus, ...],
        to_status: BookingStatus,
        **values,
    ) -> bool:
        result = self.session.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status.in_(from_statuses))
            .values(status=to_status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        self._reload(booking.id)
        return result.rowcount == 1

    # -- create -------------------------------------------------------------

    def _resolve_deceased(self, request: BookingRequest) -> Deceased:
        deceased = self.session.query(Deceased).filter_by(ic_number=request.deceased_ic).first()
        if deceased is None:
            deceased = Deceased(
                name=request.deceased_name,
                ic_number=request.deceased_ic,
                gender=request.deceased_gender,
                date_of_birth=request.date_of_birth,
                date_of_death=request.date_of_death,
            )
            self.session.add(deceased)
            return deceased
        live = (
            self.session.query(Booking.id)
            .filter(Booking.deceased_id == deceased.id, Booking.status.not_in((BookingStatus.REJECTED, BookingStatus.CANCELLED)))
            .first()
        )
        if live or deceased.plot_id is not None:
            raise ValidationError(f"Si mati dengan No. KP {request.deceased_ic} sudah mempunyai tempahan atau plot")
        deceased.name = request.deceased_name
        deceased.gender = request.deceased_gender
        deceased.date_of_birth = request.date_of_birth or deceased.date_of_birth
        deceased.date_of_death = request.date_of_death or deceased.date_of_death
        return deceased

    def create(self, request: BookingRequest, actor: Principal) -> Booking:
        plot = self.ledger.get(request.plot_id)
        if plot.status != PlotStatus.AVAILABLE:
            raise ConflictError(f"Plot {plot.plot_identifier} telah ditempah. Sila pilih plot lain.")

        packages: list[Package] = []
        if request.package_ids:
            found = {p.id: p for p in self.session.query(Package).filter(Package.id.in_(request.package_ids)).all()}
            missing = [str(pid) for pid in request.package_ids if pid not in found]
            if missing:
                raise NotFoundError(f"Pakej tidak ditemui: {', '.join(missing)}")
            packages = [found[pid] for pid in request.package_ids]
        for selection in request.kits:
            self.inventory.by_type(selection.kit_type)
        total = sum((Decimal(p.price) for p in packages), Decimal("0.00"))

        with ReservationBatch(self.session, f"Booking for plot {plot.plot_identifier}") as batch:
            deceased = self._resolve_deceased(request)
            booking = Booking(
                user_id=actor.user_id,
                plot_id=plot.id,
                deceased=deceased,
                scheduled_at=request.scheduled_at,
                booking_date=self.roster.local_day(request.scheduled_at),
                total_price=total,
                status=BookingStatus.PENDING,
            )
            for package in packages:
                booking.packages.append(BookingPackage(package_id=package.id, price=package.price))
            self.session.add(booking)
            self.session.flush()
            batch.record("booking")

            self.ledger.reserve(plot.id, booking.id)
            deceased.plot_id = plot.id
            batch.record("plot")

            self.roster.assign(booking, request.staff, actor.user_id)
            batch.record("staff")

            for selection in request.kits:
                self.inventory.reserve(booking.id, selection.kit_type, selection.quantity, actor.user_id)
                batch.record(f"kit:{selection.kit_type.value}")

        logger.info(
            "Booking %s created by user %s for plot %s on %s",
            booking.id,
            actor.user_id,
            plot.plot_identifier,
            booking.booking_date.isoformat(),
        )
        return booking

    # -- admin transitions --------------------------------------------------

    def approve(self, booking_id: int, actor: Principal, notes: str | None = None) -> Booking:
        self._require_admin(actor)
        booking = self.get(booking_id)
        if booking.status == BookingStatus.APPROVED_PENDING_PAYMENT:
            return booking
        if booking.status != BookingStatus.PENDING:
            raise InvalidStateError(f"Tempahan berstatus {booking.status.value} tidak boleh diluluskan")

        now = utcnow()
        moved = self._transition(
            booking,
            (BookingStatus.PENDING,),
            BookingStatus.APPROVED_PENDING_PAYMENT,
            approved_by=actor.user_id,
            approval_date=now,
            payment_deadline=now + timedelta(days=self.payment_deadline_days),
            admin_notes=(notes or "").strip() or booking.admin_notes,
        )
        if not moved:
            if booking.status == BookingStatus.APPROVED_PENDING_PAYMENT:
                return booking
            raise InvalidStateError(f"Tempahan berstatus {booking.status.value} tidak boleh diluluskan")

        if booking.payment is None:
            self.session.add(
                Payment(
                    booking_id=booking.id,
                    amount=booking.total_price,
                    currency=self.currency,
                    method="QR_PAYMENT",
                    status=PaymentStatus.PENDING,
                )
            )
        self.session.commit()
        logger.info("Booking %s approved by %s", booking.id, actor.user_id)
        return booking

    def verify_payment(
        self,
        payment_id: int,
        actor: Principal,
        verified: bool = True,
        notes: str | None = None,
    ) -> Payment:
        self._require_admin(actor)
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("Bayaran tidak ditemui")
        target = PaymentStatus.SUCCESSFUL if verified else PaymentStatus.REJECTED
        if payment.status == target:
            return payment
        if payment.status != PaymentStatus.SUBMITTED:
            raise InvalidStateError(f"Bayaran berstatus {payment.status.value} tidak boleh disahkan")
        booking = payment.booking
        if verified and booking.status != BookingStatus.APPROVED_PENDING_PAYMENT:
            raise InvalidStateError(f"Tempahan berstatus {booking.status.value} tidak menunggu bayaran")

        now = utcnow()
        result = self.session.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == PaymentStatus.SUBMITTED)
            .values(
                status=target,
                verified_at=now,
                verified_by=actor.user_id,
                notes=(notes or "").strip() or payment.notes,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        payment = self.session.get(Payment, payment.id, populate_existing=True)
        if result.rowcount != 1:
            self.session.rollback()
            if payment.status == target:
                return payment
            raise InvalidStateError(f"Bayaran berstatus {payment.status.value} tidak boleh disahkan")

        if verified and not self._transition(
            booking,
            (BookingStatus.APPROVED_PENDING_PAYMENT,),
            BookingStatus.PAYMENT_CONFIRMED,
        ):
            self.session.rollback()
            raise InvalidStateError("Tempahan tidak lagi menunggu bayaran")
        self.session.commit()
        logger.info(
            "Payment %s of booking %s %s by %s",
            payment.id,
            booking.id,
            "verified" if verified else "rejected",
            actor.user_id,
        )
        return payment

    def complete(self, booking_id: int, actor: Principal) -> Booking:
        self._require_admin(actor)
        booking = self.get(booking_id)
        if booking.status == BookingStatus.COMPLETED:
            return booking
        if booking.status not in CONFIRMED_STATUSES:
            raise InvalidStateError(
                f"Hanya tempahan yang telah disahkan bayaran boleh diselesaikan (status {booking.status.value})"
            )
        try:
            moved = self._transition(
                booking,
                CONFIRMED_STATUSES,
                BookingStatus.COMPLETED,
                completed_at=utcnow(),
            )
            if not moved:
                if booking.status == BookingStatus.COMPLETED:
                    return booking
                raise InvalidStateError(f"Tempahan berstatus {booking.status.value} tidak boleh diselesaikan")
            self.ledger.finalize(booking.plot_id, booking.id)
            booking.deceased.plot_id = booking.plot_id
        except Exception:
            self.session.rollback()
            raise
        self.session.commit()
        logger.info("Booking %s completed by %s", booking.id, actor.user_id)
        return booking

    def reject(self, booking_id: int, actor: Principal, reason: str | None) -> Booking:
        self._require_admin(actor)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Sebab penolakan diperlukan")
        booking = self.get(booking_id)
        if booking.status == BookingStatus.REJECTED:
            return booking
        if booking.status != BookingStatus.PENDING:
            raise InvalidStateError(f"Tempahan berstatus {booking.status.value} tidak boleh ditolak")
        try:
            moved = self._transition(
                booking,
                (BookingStatus.PENDING,),
                BookingStatus.REJECTED,
                rejection_reason=reason,
            )
            if not moved:
                if booking.status == BookingStatus.REJECTED:
                    return booking
                raise InvalidStateError(f"Tempahan berstatus {booking.status.value} tidak boleh ditolak")
            self._release_resources(booking, actor, f"Tempahan #{booking.id} ditolak")
        except Exception:
            self.session.rollback()
            raise
        self.session.commit()
        logger.info("Booking %s rejected by %s: %s", booking.id, actor.user_id, reason)
        return booking

    # -- shared transitions -------------------------------------------------

    def cancel(self, booking_id: int, actor: Principal, reason: str | None = None) -> Booking:
        booking = self.get(booking_id)
        if not actor.is_admin and booking.user_id != actor.user_id:
            raise AuthorizationError("Anda tidak dibenarkan membatalkan tempahan ini")
        if booking.status == BookingStatus.CANCELLED:
            return booking
        if booking.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError(f"Tempahan berstatus {booking.status.value} tidak boleh dibatalkan")

        allowed = CANCELLABLE_STATUSES
        if not actor.is_admin:
            allowed = OWNER_CANCELLABLE_STATUSES
            payment_status = booking.payment.status if booking.payment else None
            if booking.status not in allowed or payment_status in (PaymentStatus.SUBMITTED, PaymentStatus.SUCCESSFUL):
                raise InvalidStateError("Tempahan ini hanya boleh dibatalkan oleh pentadbir")

        note = (reason or "").strip()
        try:
            moved = self._transition(
                booking,
                allowed,
                BookingStatus.CANCELLED,
                cancelled_by=actor.user_id,
                cancelled_at=utcnow(),
                admin_notes=note or booking.admin_notes,
            )
            if not moved:
                if booking.status == BookingStatus.CANCELLED:
                    return booking
                raise InvalidStateError(f"Tempahan berstatus {booking.status.value} tidak boleh dibatalkan")
            self._release_resources(booking, actor, f"Tempahan #{booking.id} dibatalkan")
        except Exception:
            self.session.rollback()
            raise
        self.session.commit()
        logger.info("Booking %s cancelled by %s", booking.id, actor.user_id)
        return booking

    def _release_resources(self, booking: Booking, actor: Principal, note: str) -> None:
        self.ledger.release(booking.plot_id, booking.id)
        deceased = booking.deceased
        if deceased is not None and deceased.plot_id == booking.plot_id:
            deceased.plot_id = None
        self.roster.release(booking.id)
        self.inventory.release(booking.id, actor.user_id, note)
        payment = booking.payment
        if payment is not None and payment.status != PaymentStatus.SUCCESSFUL:
            payment.status = PaymentStatus.CANCELLED
        self.session.flush()

    def reassign_staff(self, booking_id: int, actor: Principal, raw_assignments: object) -> Booking:
        self._require_admin(actor)
        booking = self.get(booking_id)
        if booking.status == BookingStatus.COMPLETED:
            raise InvalidStateError("Tempahan yang telah selesai tidak boleh diubah")
        requests = self.roster.parse_assignments(raw_assignments)
        try:
            self.roster.assign(booking, requests, actor.user_id)
        except Exception:
            self.session.rollback()
            raise
        self.session.commit()
        self.session.refresh(booking)
        return booking

    # -- requester actions --------------------------------------------------

    def _require_storage(self) -> LocalObjectStorage:
        if self.storage is None:
            raise ValidationError("Storan fail tidak dikonfigurasi")
        return self.storage

    def submit_payment(
        self,
        booking_id: int,
        actor: Principal,
        receipt: tuple[bytes, str] | None = None,
        transaction_id: str | None = None,
        notes: str | None = None,
    ) -> Payment:
        booking = self.owned_booking(booking_id, actor)
        if booking.status != BookingStatus.APPROVED_PENDING_PAYMENT:
            raise InvalidStateError(
                f"Bayaran hanya boleh dihantar selepas tempahan diluluskan (status {booking.status.value})"
            )
        payment = booking.payment
        if payment is None:
            raise InvalidStateError("Rekod bayaran belum dicipta")
        if payment.status not in PAYABLE_PAYMENT_STATUSES:
            raise InvalidStateError(f"Bayaran berstatus {payment.status.value} tidak boleh dihantar semula")
        transaction_id = (transaction_id or "").strip() or None
        if receipt is None and transaction_id is None:
            raise ValidationError("Resit bayaran atau ID transaksi diperlukan")

        receipt_path = None
        receipt_url = None
        if receipt is not None:
            data, extension = receipt
            receipt_path = f"payment_receipts/{actor.user_id}/booking-{booking.id}-{utcnow():%Y%m%d%H%M%S}{extension}"
            receipt_url = self._require_storage().upload(receipt_path, data)
        try:
            now = utcnow()
            result = self.session.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status.in_(PAYABLE_PAYMENT_STATUSES))
                .values(
                    status=PaymentStatus.SUBMITTED,
                    transaction_id=transaction_id,
                    receipt_url=receipt_url,
                    receipt_path=receipt_path,
                    notes=(notes or "").strip() or None,
                    paid_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateError("Bayaran sudah dihantar")
            self.session.commit()
        except Exception:
            self.session.rollback()
            if receipt_path:
                self._require_storage().remove(receipt_path)
            raise
        payment = self.session.get(Payment, payment.id, populate_existing=True)
        logger.info("Payment %s submitted for booking %s", payment.id, booking.id)
        return payment

    def attach_documents(
        self,
        booking_id: int,
        actor: Principal,
        death_certificate: tuple[bytes, str] | None = None,
        burial_permit: tuple[bytes, str] | None = None,
    ) -> Booking:
        booking = self.owned_booking(booking_id, actor)
        if booking.status != BookingStatus.PENDING:
            raise InvalidStateError("Dokumen hanya boleh dimuat naik semasa tempahan menunggu kelulusan")
        if death_certificate is None and burial_permit is None:
            raise ValidationError("Tiada dokumen dimuat naik")
        storage = self._require_storage()
        stored: list[str] = []
        try:
            if death_certificate is not None:
                data, extension = death_certificate
                path = f"booking_documents/{booking.id}/death-certificate{extension}"
                booking.death_certificate_url = storage.upload(path, data)
                stored.append(path)
            if burial_permit is not None:
                data, extension = burial_permit
                path = f"booking_documents/{booking.id}/burial-permit{extension}"
                booking.burial_permit_url = storage.upload(path, data)
                stored.append(path)
            self.session.commit()
        except Exception:
            self.session.rollback()
            for path in stored:
                storage.remove(path)
            raise
        logger.info("Booking %s documents updated (%d file(s))", booking.id, len(stored))
        return booking

    # -- listings -----------------------------------------------------------

    def payment_for(self, booking_id: int, actor: Principal) -> Payment:
        booking = self.visible_booking(booking_id, actor)
        if booking.payment is None:
            raise NotFoundError("Rekod bayaran belum dicipta")
        return booking.payment

    def _listing_query(self):
        return self.session.query(Booking).options(
            joinedload(Booking.plot),
            joinedload(Booking.deceased),
            joinedload(Booking.payment),
            joinedload(Booking.user),
        )

    def list_for_user(self, actor: Principal) -> list[Booking]:
        return (
            self._listing_query()
            .filter(Booking.user_id == actor.user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .all()
        )

    def list_for_admin(self, status: str = "", page: int = 1, limit: int = 20) -> dict[str, object]:
        query = self._listing_query()
        status = (status or "").strip().upper()
        if status and status != "ALL":
            try:
                query = query.filter(Booking.status == BookingStatus(status))
            except ValueError as exc:
                raise ValidationError(f"Status tidak sah: {status}") from exc
        result = paginate_query(query.order_by(Booking.created_at.desc(), Booking.id.desc()), page, limit)
        counts = {item.value: 0 for item in BookingStatus}
        for booking_status, count in (
            self.session.query(Booking.status, func.count(Booking.id)).group_by(Booking.status).all()
        ):
            counts[booking_status.value] = count
        counts["ALL"] = sum(counts.values())
        result["counts"] = counts
        return result


def booking_workflow() -> BookingWorkflow:
    config = current_app.config
    session = db.session
    return BookingWorkflow(
        session,
        PlotLedger(session),
        StaffRoster.from_config(session, config),
        KitInventory(session),
        storage=default_storage(),
        payment_deadline_days=config["PAYMENT_DEADLINE_DAYS"],
        currency=config["PAYMENT_CURRENCY"],
    )
