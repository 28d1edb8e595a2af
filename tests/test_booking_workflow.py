from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.burial.bookings import BookingRequest, booking_workflow
from app.burial.kits import KitInventory
from app.burial.staff import staff_roster
from app.core.errors import (
    AuthorizationError,
    ConflictError,
    DuplicateReservationError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.extensions import db
from app.core.models import (
    Booking,
    BookingFuneralKit,
    BookingStaff,
    BookingStatus,
    Deceased,
    FuneralKit,
    FuneralKitUsage,
    KitType,
    KitUsageReason,
    Package,
    PaymentStatus,
    Plot,
    PlotStatus,
    StaffRole,
)
from conftest import booking_payload, create_booking, plot_id, principal, staff_id

ADMIN = "admin@kubur.local"
WARIS = "waris@kubur.local"
JIRAN = "jiran@kubur.local"
BURIAL_DAY = date(2026, 11, 2)


def _plot(identifier: str) -> Plot:
    return db.session.get(Plot, plot_id(identifier), populate_existing=True)


def _kit(kit_type: KitType) -> FuneralKit:
    kit_id = FuneralKit.query.filter_by(kit_type=kit_type).first().id
    return db.session.get(FuneralKit, kit_id, populate_existing=True)


def _available_diggers() -> list[object]:
    return [o["id"] for o in staff_roster().list_available(StaffRole.GRAVE_DIGGER, BURIAL_DAY)]


def _approved_booking(**kwargs) -> Booking:
    booking = create_booking(**kwargs)
    return booking_workflow().approve(booking.id, principal(ADMIN))


def _paid_booking(**kwargs) -> Booking:
    booking = _approved_booking(**kwargs)
    workflow = booking_workflow()
    payment = workflow.submit_payment(booking.id, principal(WARIS), transaction_id="TXN-1001")
    workflow.verify_payment(payment.id, principal(ADMIN), verified=True)
    return workflow.get(booking.id)


def test_create_reserves_plot_kit_and_staff(app):
    ahmad = staff_id("Ahmad bin Ali")
    booking = create_booking(plot="A1-5", digger=ahmad, kits=[{"kitType": "MALE", "quantity": 1}])

    assert booking.status == BookingStatus.PENDING
    plot = _plot("A1-5")
    assert plot.status == PlotStatus.RESERVED
    assert plot.booking_id == booking.id

    kit = _kit(KitType.MALE)
    assert kit.available_quantity == 2
    assert kit.total_used == 1

    diggers = _available_diggers()
    assert ahmad not in diggers
    assert "not-needed-penggali" in diggers
    washers = [o["id"] for o in staff_roster().list_available(StaffRole.BODY_WASHER, BURIAL_DAY)]
    assert washers[0] == "not-needed-pemandi"

    assert booking.deceased.plot_id == plot.id
    usage = FuneralKitUsage.query.filter_by(booking_id=booking.id).one()
    assert usage.quantity_change == -1
    assert usage.reason == KitUsageReason.BOOKING


def test_second_booking_for_same_plot_conflicts_without_side_effects(app):
    first = create_booking(plot="A1-5", kits=[{"kitType": "MALE", "quantity": 1}])
    bookings_before = Booking.query.count()
    deceased_before = Deceased.query.count()

    with pytest.raises(ConflictError):
        create_booking(
            email=JIRAN,
            plot="A1-5",
            ic_number="750505055555",
            digger=staff_id("Rahman bin Yusof"),
            kits=[{"kitType": "MALE", "quantity": 1}],
        )

    assert Booking.query.count() == bookings_before
    assert Deceased.query.count() == deceased_before
    assert _plot("A1-5").booking_id == first.id
    assert _kit(KitType.MALE).available_quantity == 2
    assert staff_id("Rahman bin Yusof") in _available_diggers()


def test_failure_in_a_later_step_rolls_back_earlier_reservations(app):
    bookings_before = Booking.query.count()
    with pytest.raises(InsufficientStockError):
        create_booking(
            plot="A2-3",
            digger=staff_id("Ahmad bin Ali"),
            kits=[{"kitType": "FEMALE", "quantity": 1}, {"kitType": "MALE", "quantity": 9}],
        )

    assert Booking.query.count() == bookings_before
    assert _plot("A2-3").status == PlotStatus.AVAILABLE
    assert _kit(KitType.FEMALE).available_quantity == 5
    assert staff_id("Ahmad bin Ali") in _available_diggers()
    assert BookingStaff.query.count() == 0
    assert FuneralKitUsage.query.count() == 0


def test_staff_conflict_during_create_rolls_back_plot(app):
    ahmad = staff_id("Ahmad bin Ali")
    create_booking(plot="A1-1", ic_number="800101010001", digger=ahmad)

    with pytest.raises(ConflictError):
        create_booking(plot="A1-2", ic_number="800101010002", digger=ahmad)
    assert _plot("A1-2").status == PlotStatus.AVAILABLE


def test_duplicate_kit_type_in_request_is_refused(app):
    workflow = booking_workflow()
    payload = booking_payload(kits=[{"kitType": "MALE", "quantity": 1}, {"kitType": "male", "quantity": 1}])
    with pytest.raises(DuplicateReservationError):
        BookingRequest.from_payload(payload, workflow.roster)


def test_create_requires_deceased_details_and_mandatory_roles(app):
    workflow = booking_workflow()
    payload = booking_payload()
    payload["deceasedName"] = ""
    with pytest.raises(ValidationError):
        BookingRequest.from_payload(payload, workflow.roster)

    payload = booking_payload()
    payload["staffAssignments"] = [{"role": "GRAVE_DIGGER", "staffId": "not-needed-penggali"}]
    with pytest.raises(ValidationError):
        BookingRequest.from_payload(payload, workflow.roster)


def test_total_price_is_sum_of_selected_packages(app):
    packages = Package.query.filter(Package.label.in_(["Pakej Asas", "Batu Nisan"])).all()
    booking = create_booking(packages=[p.id for p in packages])
    assert booking.total_price == Decimal("800.00")
    assert sorted(item.price for item in booking.packages) == [Decimal("300.00"), Decimal("500.00")]


def test_unknown_package_is_not_found(app):
    with pytest.raises(NotFoundError):
        create_booking(packages=[9999])
    assert _plot("A1-5").status == PlotStatus.AVAILABLE


def test_reject_requires_reason_and_releases_everything(app):
    ahmad = staff_id("Ahmad bin Ali")
    booking = create_booking(plot="A1-5", digger=ahmad, kits=[{"kitType": "MALE", "quantity": 1}])
    workflow = booking_workflow()

    with pytest.raises(ValidationError):
        workflow.reject(booking.id, principal(ADMIN), "   ")
    assert workflow.get(booking.id).status == BookingStatus.PENDING

    rejected = workflow.reject(booking.id, principal(ADMIN), "Incomplete documents")
    assert rejected.status == BookingStatus.REJECTED
    assert rejected.rejection_reason == "Incomplete documents"

    plot = _plot("A1-5")
    assert plot.status == PlotStatus.AVAILABLE
    assert plot.booking_id is None
    kit = _kit(KitType.MALE)
    assert (kit.available_quantity, kit.total_used) == (3, 0)
    assert ahmad in _available_diggers()
    assert BookingFuneralKit.query.filter_by(booking_id=booking.id).count() == 0

    again = workflow.reject(booking.id, principal(ADMIN), "Incomplete documents")
    assert again.status == BookingStatus.REJECTED
    assert _kit(KitType.MALE).available_quantity == 3


def test_reject_only_from_pending(app):
    booking = _approved_booking()
    with pytest.raises(InvalidStateError):
        booking_workflow().reject(booking.id, principal(ADMIN), "Too late")


def test_released_plot_can_be_booked_again(app):
    booking = create_booking(plot="A1-5", digger=staff_id("Ahmad bin Ali"))
    booking_workflow().reject(booking.id, principal(ADMIN), "Salah plot")

    rebooked = create_booking(email=JIRAN, plot="A1-5", ic_number="660606066666", digger=staff_id("Ahmad bin Ali"))
    assert rebooked.status == BookingStatus.PENDING
    assert _plot("A1-5").booking_id == rebooked.id


def test_cancel_is_idempotent(app):
    booking = create_booking(plot="A1-4", kits=[{"kitType": "FEMALE", "quantity": 2}])
    workflow = booking_workflow()

    cancelled = workflow.cancel(booking.id, principal(WARIS))
    assert cancelled.status == BookingStatus.CANCELLED
    usage_after_first = FuneralKitUsage.query.count()
    assert _kit(KitType.FEMALE).available_quantity == 5

    again = workflow.cancel(booking.id, principal(WARIS))
    assert again.status == BookingStatus.CANCELLED
    assert FuneralKitUsage.query.count() == usage_after_first
    assert _kit(KitType.FEMALE).available_quantity == 5
    assert _plot("A1-4").status == PlotStatus.AVAILABLE


def test_owner_cannot_cancel_after_payment_is_submitted(app):
    booking = _approved_booking()
    workflow = booking_workflow()
    workflow.submit_payment(booking.id, principal(WARIS), transaction_id="TXN-2002")

    with pytest.raises(InvalidStateError):
        workflow.cancel(booking.id, principal(WARIS))
    cancelled = workflow.cancel(booking.id, principal(ADMIN), "Permintaan keluarga")
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.payment.status == PaymentStatus.CANCELLED


def test_other_user_cannot_cancel(app):
    booking = create_booking()
    with pytest.raises(AuthorizationError):
        booking_workflow().cancel(booking.id, principal(JIRAN))


def test_cancel_after_completion_is_refused(app):
    booking = _paid_booking()
    workflow = booking_workflow()
    workflow.complete(booking.id, principal(ADMIN))
    with pytest.raises(InvalidStateError):
        workflow.cancel(booking.id, principal(ADMIN))


def test_approve_creates_pending_payment_and_is_idempotent(app):
    booking = create_booking(packages=[Package.query.filter_by(label="Pakej Lengkap").first().id])
    workflow = booking_workflow()

    approved = workflow.approve(booking.id, principal(ADMIN), "Dokumen lengkap")
    assert approved.status == BookingStatus.APPROVED_PENDING_PAYMENT
    assert approved.payment_deadline is not None
    assert approved.payment.status == PaymentStatus.PENDING
    assert approved.payment.amount == Decimal("1200.00")
    assert approved.payment.currency == "MYR"

    again = workflow.approve(booking.id, principal(ADMIN))
    assert again.status == BookingStatus.APPROVED_PENDING_PAYMENT
    assert again.payment.id == approved.payment.id


def test_non_admin_cannot_approve(app):
    booking = create_booking()
    with pytest.raises(AuthorizationError):
        booking_workflow().approve(booking.id, principal(WARIS))


def test_payment_cannot_be_submitted_for_pending_booking(app):
    booking = create_booking()
    with pytest.raises(InvalidStateError):
        booking_workflow().submit_payment(booking.id, principal(WARIS), transaction_id="TXN-1")


def test_payment_requires_receipt_or_transaction(app):
    booking = _approved_booking()
    with pytest.raises(ValidationError):
        booking_workflow().submit_payment(booking.id, principal(WARIS))


def test_rejected_receipt_can_be_resubmitted(app):
    booking = _approved_booking()
    workflow = booking_workflow()
    payment = workflow.submit_payment(booking.id, principal(WARIS), receipt=(b"png-bytes", ".png"))
    assert payment.status == PaymentStatus.SUBMITTED
    assert payment.receipt_url.startswith("/storage/payment_receipts/")

    rejected = workflow.verify_payment(payment.id, principal(ADMIN), verified=False, notes="Resit kabur")
    assert rejected.status == PaymentStatus.REJECTED
    assert workflow.get(booking.id).status == BookingStatus.APPROVED_PENDING_PAYMENT

    resubmitted = workflow.submit_payment(booking.id, principal(WARIS), transaction_id="TXN-3003")
    assert resubmitted.status == PaymentStatus.SUBMITTED
    verified = workflow.verify_payment(payment.id, principal(ADMIN), verified=True)
    assert verified.status == PaymentStatus.SUCCESSFUL
    assert workflow.get(booking.id).status == BookingStatus.PAYMENT_CONFIRMED

    assert workflow.verify_payment(payment.id, principal(ADMIN), verified=True).status == PaymentStatus.SUCCESSFUL


def test_complete_occupies_plot(app):
    booking = _paid_booking(plot="A2-2")
    workflow = booking_workflow()

    completed = workflow.complete(booking.id, principal(ADMIN))
    assert completed.status == BookingStatus.COMPLETED
    plot = _plot("A2-2")
    assert plot.status == PlotStatus.OCCUPIED
    assert plot.booking_id == booking.id
    assert completed.deceased.plot_id == plot.id

    assert workflow.complete(booking.id, principal(ADMIN)).status == BookingStatus.COMPLETED


def test_complete_accepts_legacy_confirmed_status(app):
    booking = _approved_booking(plot="A2-4")
    booking.status = BookingStatus.CONFIRMED
    db.session.commit()

    completed = booking_workflow().complete(booking.id, principal(ADMIN))
    assert completed.status == BookingStatus.COMPLETED
    assert _plot("A2-4").status == PlotStatus.OCCUPIED


def test_complete_requires_confirmed_payment(app):
    booking = _approved_booking(plot="A2-5")
    with pytest.raises(InvalidStateError):
        booking_workflow().complete(booking.id, principal(ADMIN))
    assert _plot("A2-5").status == PlotStatus.RESERVED


def test_whole_assignment_fails_when_both_staff_are_busy(app):
    ahmad = staff_id("Ahmad bin Ali")
    siti = staff_id("Siti binti Omar")
    create_booking(plot="A1-1", ic_number="800101010001", digger=ahmad, washer=siti)
    other = create_booking(plot="A1-2", ic_number="800101010002")

    with pytest.raises(ConflictError) as excinfo:
        booking_workflow().reassign_staff(
            other.id,
            principal(ADMIN),
            [
                {"role": "GRAVE_DIGGER", "staffId": str(ahmad)},
                {"role": "BODY_WASHER", "staffId": str(siti)},
            ],
        )
    assert "Ahmad bin Ali" in str(excinfo.value)
    assert "Siti binti Omar" in str(excinfo.value)
    rows = BookingStaff.query.filter_by(booking_id=other.id).all()
    assert len(rows) == 2
    assert all(row.staff_id is None for row in rows)


def test_reassign_staff_after_cancellation_frees_the_day(app):
    ahmad = staff_id("Ahmad bin Ali")
    first = create_booking(plot="A1-1", ic_number="800101010001", digger=ahmad)
    other = create_booking(plot="A1-2", ic_number="800101010002")
    workflow = booking_workflow()
    workflow.cancel(first.id, principal(WARIS))

    updated = workflow.reassign_staff(
        other.id,
        principal(ADMIN),
        [
            {"role": "GRAVE_DIGGER", "staffId": str(ahmad)},
            {"role": "BODY_WASHER", "staffId": "not-needed-pemandi"},
        ],
    )
    diggers = [row.staff_id for row in updated.staff_assignments if row.role == StaffRole.GRAVE_DIGGER]
    assert diggers == [ahmad]


def test_reusing_deceased_with_live_booking_is_refused(app):
    create_booking(plot="A1-1", ic_number="800101010001")
    with pytest.raises(ValidationError):
        create_booking(plot="A1-2", ic_number="800101010001")
    assert _plot("A1-2").status == PlotStatus.AVAILABLE


def test_deceased_can_be_rebooked_after_rejection(app):
    booking = create_booking(plot="A1-1", ic_number="800101010001")
    booking_workflow().reject(booking.id, principal(ADMIN), "Plot salah")

    again = create_booking(plot="A1-2", ic_number="800101010001")
    assert again.deceased_id == booking.deceased_id
    assert again.deceased.plot_id == plot_id("A1-2")


def test_kit_inventory_round_trip_through_workflow(app):
    before = _kit(KitType.FEMALE)
    total = before.available_quantity + before.total_used
    booking = create_booking(kits=[{"kitType": "FEMALE", "quantity": 3}])
    mid = _kit(KitType.FEMALE)
    assert mid.available_quantity + mid.total_used == total

    booking_workflow().cancel(booking.id, principal(ADMIN))
    after = _kit(KitType.FEMALE)
    assert (after.available_quantity, after.total_used) == (before.available_quantity, before.total_used)
    assert KitInventory(db.session).release(booking.id, None) == 0
