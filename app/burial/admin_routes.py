from __future__ import annotations

from flask import jsonify, make_response, request
from flask_login import current_user, login_required

from app.burial import admin_bp
from app.burial.bookings import booking_workflow
from app.burial.catalog import create_package, delete_package, update_package
from app.burial.donations import admin_statistics, list_waqaf, statistics_csv_bytes, update_waqaf_status
from app.burial.kits import adjust_kit_quantity, kit_inventory
from app.burial.payment_qr import update_payment_qr
from app.burial.routes import optional_int_arg, request_payload
from app.burial.serializers import (
    booking_to_dict,
    kit_to_dict,
    package_to_dict,
    payment_setting_to_dict,
    payment_to_dict,
    staff_to_dict,
    usage_to_dict,
    waqaf_to_dict,
)
from app.burial.staff import create_staff, delete_staff, list_staff, update_staff
from app.core.permissions import require_role
from app.core.principal import current_principal
from app.core.storage import read_upload


def _flag(value: object, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@admin_bp.get("/bookings")
@login_required
@require_role("admin")
def bookings_index():
    result = booking_workflow().list_for_admin(
        request.args.get("status", ""),
        request.args.get("page", 1, type=int),
        request.args.get("limit", 20, type=int),
    )
    result["rows"] = [booking_to_dict(b) for b in result["rows"]]
    return jsonify(result)


@admin_bp.get("/bookings/<int:booking_id>")
@login_required
@require_role("admin")
def booking_detail(booking_id: int):
    booking = booking_workflow().get(booking_id)
    return jsonify({"booking": booking_to_dict(booking, detail=True)})


@admin_bp.post("/bookings/<int:booking_id>/approve")
@login_required
@require_role("admin")
def booking_approve(booking_id: int):
    payload = request_payload()
    booking = booking_workflow().approve(booking_id, current_principal(), str(payload.get("notes") or ""))
    return jsonify({"booking": booking_to_dict(booking, detail=True)})


@admin_bp.post("/bookings/<int:booking_id>/reject")
@login_required
@require_role("admin")
def booking_reject(booking_id: int):
    payload = request_payload()
    reason = str(payload.get("rejection_reason") or payload.get("reason") or "")
    booking = booking_workflow().reject(booking_id, current_principal(), reason)
    return jsonify({"booking": booking_to_dict(booking, detail=True)})


@admin_bp.post("/bookings/<int:booking_id>/complete")
@login_required
@require_role("admin")
def booking_complete(booking_id: int):
    booking = booking_workflow().complete(booking_id, current_principal())
    return jsonify({"booking": booking_to_dict(booking, detail=True)})


@admin_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
@require_role("admin")
def booking_cancel(booking_id: int):
    payload = request_payload()
    booking = booking_workflow().cancel(booking_id, current_principal(), str(payload.get("reason") or ""))
    return jsonify({"booking": booking_to_dict(booking, detail=True)})


@admin_bp.put("/bookings/<int:booking_id>/staff")
@login_required
@require_role("admin")
def booking_staff_update(booking_id: int):
    payload = request_payload()
    booking = booking_workflow().reassign_staff(
        booking_id,
        current_principal(),
        payload.get("staffAssignments") or payload.get("assignments"),
    )
    return jsonify({"booking": booking_to_dict(booking, detail=True)})


@admin_bp.post("/payments/<int:payment_id>/verify")
@login_required
@require_role("admin")
def payment_verify(payment_id: int):
    payload = request_payload()
    payment = booking_workflow().verify_payment(
        payment_id,
        current_principal(),
        verified=_flag(payload.get("verified"), default=True),
        notes=str(payload.get("notes") or ""),
    )
    return jsonify({"payment": payment_to_dict(payment)})


@admin_bp.get("/staff")
@login_required
@require_role("admin")
def staff_index():
    filters = {
        "role": request.args.get("role", ""),
        "active_only": request.args.get("active_only", ""),
    }
    return jsonify({"staff": [staff_to_dict(s) for s in list_staff(filters)]})


@admin_bp.post("/staff")
@login_required
@require_role("admin")
def staff_create():
    staff = create_staff(request_payload())
    return jsonify({"staff": staff_to_dict(staff)}), 201


@admin_bp.put("/staff/<int:staff_id>")
@login_required
@require_role("admin")
def staff_update(staff_id: int):
    staff = update_staff(staff_id, request_payload())
    return jsonify({"staff": staff_to_dict(staff)})


@admin_bp.delete("/staff/<int:staff_id>")
@login_required
@require_role("admin")
def staff_delete(staff_id: int):
    delete_staff(staff_id)
    return jsonify({"deleted": staff_id})


@admin_bp.get("/funeral-kits")
@login_required
@require_role("admin")
def kits_index():
    return jsonify({"kits": [kit_to_dict(kit) for kit in kit_inventory().list_kits()]})


@admin_bp.post("/funeral-kits/<int:kit_id>/adjust")
@login_required
@require_role("admin")
def kit_adjust(kit_id: int):
    kit = adjust_kit_quantity(kit_id, request_payload(), current_user.id)
    return jsonify({"kit": kit_to_dict(kit)})


@admin_bp.get("/funeral-kits/usage")
@login_required
@require_role("admin")
def kit_usage():
    history = kit_inventory().usage_history(
        optional_int_arg("kit_id"),
        request.args.get("limit", 50, type=int),
        request.args.get("offset", 0, type=int),
    )
    history["rows"] = [usage_to_dict(row) for row in history["rows"]]
    return jsonify(history)


@admin_bp.post("/packages")
@login_required
@require_role("admin")
def package_create():
    package = create_package(request_payload())
    return jsonify({"package": package_to_dict(package)}), 201


@admin_bp.put("/packages/<int:package_id>")
@login_required
@require_role("admin")
def package_update(package_id: int):
    package = update_package(package_id, request_payload())
    return jsonify({"package": package_to_dict(package)})


@admin_bp.delete("/packages/<int:package_id>")
@login_required
@require_role("admin")
def package_delete(package_id: int):
    delete_package(package_id)
    return jsonify({"deleted": package_id})


@admin_bp.get("/waqaf")
@login_required
@require_role("admin")
def waqaf_index():
    result = list_waqaf(
        {"status": request.args.get("status", "")},
        request.args.get("page", 1, type=int),
        request.args.get("limit", 20, type=int),
    )
    result["rows"] = [waqaf_to_dict(w) for w in result["rows"]]
    return jsonify(result)


@admin_bp.patch("/waqaf/<int:waqaf_id>")
@login_required
@require_role("admin")
def waqaf_update(waqaf_id: int):
    waqaf = update_waqaf_status(waqaf_id, request_payload())
    return jsonify({"waqaf": waqaf_to_dict(waqaf)})


@admin_bp.post("/payment-settings/qr")
@login_required
@require_role("admin")
def payment_qr_update():
    setting = update_payment_qr(read_upload(request.files.get("qr_image"), "QR"), current_user.id)
    return jsonify(payment_setting_to_dict(setting))


@admin_bp.get("/statistics")
@login_required
@require_role("admin")
def statistics():
    return jsonify(admin_statistics(optional_int_arg("year"), optional_int_arg("month")))


@admin_bp.get("/statistics/export")
@login_required
@require_role("admin")
def statistics_export():
    report_key = request.args.get("type", "bookings")
    year = optional_int_arg("year")
    month = optional_int_arg("month")
    csv_bytes = statistics_csv_bytes(report_key, year, month)
    suffix = f"-{year}" if year else ""
    suffix += f"-{month:02d}" if year and month else ""
    response = make_response(csv_bytes)
    response.headers["Content-Type"] = "text/csv; charset=utf-8"
    response.headers["Content-Disposition"] = f"attachment; filename={report_key}{suffix}.csv"
    return response
