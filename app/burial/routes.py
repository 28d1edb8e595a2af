from __future__ import annotations

from datetime import date

from flask import jsonify, request
from flask_login import login_required

from app.burial import burial_bp
from app.burial.bookings import BookingRequest, booking_workflow, parse_datetime
from app.burial.catalog import list_packages, list_plots, plot_by_id, search_deceased
from app.burial.donations import create_waqaf, user_statistics
from app.burial.kits import kit_inventory
from app.burial.payment_qr import current_payment_setting
from app.burial.serializers import (
    booking_to_dict,
    deceased_to_dict,
    kit_to_dict,
    package_to_dict,
    payment_setting_to_dict,
    payment_to_dict,
    plot_to_dict,
    waqaf_to_dict,
)
from app.burial.staff import parse_staff_role, staff_roster
from app.core.errors import ValidationError
from app.core.permissions import require_principal
from app.core.principal import current_principal
from app.core.storage import read_upload


def request_payload() -> dict[str, object]:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def optional_int_arg(name: str) -> int | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    if not raw.lstrip("-").isdigit():
        raise ValidationError(f"Parameter {name} tidak sah")
    return int(raw)


def _requested_day(raw: str) -> date:
    raw = (raw or "").strip()
    if not raw:
        raise ValidationError("Tarikh diperlukan")
    if len(raw) == 10:
        try:
            return date.fromisoformat(raw)
        except ValueError as exc:
            raise ValidationError("Tarikh tidak sah") from exc
    return staff_roster().local_day(parse_datetime(raw))


@burial_bp.get("/plots")
def plots_index():
    rows = list_plots(request.args.get("status", ""))
    return jsonify({"plots": [plot_to_dict(plot) for plot in rows]})


@burial_bp.get("/plots/<int:plot_id>")
def plot_detail(plot_id: int):
    plot = plot_by_id(plot_id)
    data = plot_to_dict(plot)
    data["deceased"] = [{"name": d.name, "gender": d.gender.value} for d in plot.deceased]
    return jsonify({"plot": data})


@burial_bp.get("/search-deceased")
def deceased_search():
    filters = {
        "name": request.args.get("name", "").strip(),
        "ic": request.args.get("ic", "").strip(),
        "plot": request.args.get("plot", "").strip(),
    }
    rows = search_deceased(filters)
    return jsonify({"results": [deceased_to_dict(row) for row in rows], "count": len(rows)})


@burial_bp.get("/packages")
def packages_index():
    return jsonify({"packages": [package_to_dict(p) for p in list_packages()]})


@burial_bp.get("/funeral-kits")
def funeral_kits_index():
    return jsonify({"kits": [kit_to_dict(kit) for kit in kit_inventory().list_kits()]})


@burial_bp.get("/staff/available")
@login_required
@require_principal
def staff_available():
    roster = staff_roster()
    role = parse_staff_role(request.args.get("role") or request.args.get("type"))
    day = _requested_day(request.args.get("date", ""))
    options = roster.list_available(role, day, optional_int_arg("exclude_booking_id"))
    return jsonify({"role": role.value, "date": day.isoformat(), "staff": options})


@burial_bp.post("/bookings")
@login_required
@require_principal
def booking_create():
    workflow = booking_workflow()
    booking_request = BookingRequest.from_payload(request_payload(), workflow.roster)
    booking = workflow.create(booking_request, current_principal())
    return jsonify({"bookingId": booking.id, "status": booking.status.value}), 201


@burial_bp.get("/user/bookings")
@login_required
@require_principal
def user_bookings():
    rows = booking_workflow().list_for_user(current_principal())
    return jsonify({"bookings": [booking_to_dict(b) for b in rows]})


@burial_bp.get("/bookings/<int:booking_id>")
@login_required
@require_principal
def booking_detail(booking_id: int):
    booking = booking_workflow().visible_booking(booking_id, current_principal())
    return jsonify({"booking": booking_to_dict(booking, detail=True)})


@burial_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
@require_principal
def booking_cancel(booking_id: int):
    payload = request_payload()
    booking = booking_workflow().cancel(booking_id, current_principal(), str(payload.get("reason") or ""))
    return jsonify({"booking": booking_to_dict(booking)})


@burial_bp.post("/bookings/<int:booking_id>/documents")
@login_required
@require_principal
def booking_documents(booking_id: int):
    booking = booking_workflow().attach_documents(
        booking_id,
        current_principal(),
        death_certificate=read_upload(request.files.get("death_certificate"), "sijil kematian"),
        burial_permit=read_upload(request.files.get("burial_permit"), "permit pengebumian"),
    )
    return jsonify({"booking": booking_to_dict(booking, detail=True)})


@burial_bp.get("/bookings/<int:booking_id>/payment")
@login_required
@require_principal
def booking_payment(booking_id: int):
    payment = booking_workflow().payment_for(booking_id, current_principal())
    return jsonify({"payment": payment_to_dict(payment)})


@burial_bp.post("/bookings/<int:booking_id>/payment")
@login_required
@require_principal
def booking_payment_submit(booking_id: int):
    payload = request_payload()
    payment = booking_workflow().submit_payment(
        booking_id,
        current_principal(),
        receipt=read_upload(request.files.get("receipt"), "resit"),
        transaction_id=str(payload.get("transaction_id") or payload.get("transactionId") or ""),
        notes=str(payload.get("notes") or ""),
    )
    return jsonify({"payment": payment_to_dict(payment)})


@burial_bp.get("/payment-settings/qr")
def payment_qr():
    return jsonify(payment_setting_to_dict(current_payment_setting()))


@burial_bp.post("/waqaf")
def waqaf_create():
    waqaf = create_waqaf(request_payload())
    return jsonify({"waqaf": waqaf_to_dict(waqaf)}), 201


@burial_bp.get("/statistics/user")
@login_required
@require_principal
def statistics_user():
    data = user_statistics(
        current_principal(),
        optional_int_arg("year"),
        optional_int_arg("month"),
    )
    return jsonify(data)
