from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from app.core.i18n import translate
from app.core.models import (
    Booking,
    Deceased,
    FuneralKit,
    FuneralKitUsage,
    Package,
    Payment,
    PaymentSetting,
    Plot,
    Staff,
    User,
    Waqaf,
)
from app.core.utils import money


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _amount(value: Decimal | None) -> str:
    return f"{Decimal(value or 0):.2f}"


def user_to_dict(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "role": user.role.value,
        "is_active": user.is_active,
    }


def plot_to_dict(plot: Plot) -> dict[str, object]:
    return {
        "id": plot.id,
        "plot_identifier": plot.plot_identifier,
        "block": plot.block,
        "row": plot.row,
        "column": plot.column,
        "status": plot.status.value,
        "status_label": translate(f"plot.{plot.status.value}"),
        "booking_id": plot.booking_id,
    }


def deceased_to_dict(deceased: Deceased) -> dict[str, object]:
    plot = deceased.plot
    return {
        "id": deceased.id,
        "name": deceased.name,
        "ic_number": deceased.ic_number,
        "gender": deceased.gender.value,
        "date_of_birth": _iso(deceased.date_of_birth),
        "date_of_death": _iso(deceased.date_of_death),
        "plot": plot_to_dict(plot) if plot else None,
        "block": plot.block if plot else None,
    }


def package_to_dict(package: Package) -> dict[str, object]:
    return {
        "id": package.id,
        "label": package.label,
        "price": _amount(package.price),
        "price_display": money(package.price),
        "description": package.description,
    }


def staff_to_dict(staff: Staff) -> dict[str, object]:
    return {
        "id": staff.id,
        "name": staff.name,
        "phone": staff.phone,
        "role": staff.role.value,
        "role_label": translate(f"staff.{staff.role.value}"),
        "is_active": staff.is_active,
    }


def kit_to_dict(kit: FuneralKit) -> dict[str, object]:
    return {
        "id": kit.id,
        "kit_type": kit.kit_type.value,
        "label": translate(f"kit.{kit.kit_type.value}"),
        "available_quantity": kit.available_quantity,
        "total_used": kit.total_used,
        "updated_at": _iso(kit.updated_at),
    }


def usage_to_dict(usage: FuneralKitUsage) -> dict[str, object]:
    return {
        "id": usage.id,
        "kit_id": usage.kit_id,
        "kit_type": usage.kit.kit_type.value if usage.kit else None,
        "booking_id": usage.booking_id,
        "quantity_change": usage.quantity_change,
        "reason": usage.reason.value,
        "changed_by": usage.changed_by,
        "changed_by_name": usage.user.full_name if usage.user else None,
        "notes": usage.notes,
        "created_at": _iso(usage.created_at),
    }


def payment_to_dict(payment: Payment) -> dict[str, object]:
    return {
        "id": payment.id,
        "booking_id": payment.booking_id,
        "amount": _amount(payment.amount),
        "currency": payment.currency,
        "method": payment.method,
        "status": payment.status.value,
        "status_label": translate(f"payment.{payment.status.value}"),
        "transaction_id": payment.transaction_id,
        "receipt_url": payment.receipt_url,
        "notes": payment.notes,
        "paid_at": _iso(payment.paid_at),
        "verified_at": _iso(payment.verified_at),
        "verified_by": payment.verified_by,
    }


def booking_to_dict(booking: Booking, detail: bool = False) -> dict[str, object]:
    data: dict[str, object] = {
        "id": booking.id,
        "user_id": booking.user_id,
        "status": booking.status.value,
        "status_label": translate(f"booking.{booking.status.value}"),
        "scheduled_at": _iso(booking.scheduled_at),
        "booking_date": _iso(booking.booking_date),
        "total_price": _amount(booking.total_price),
        "plot": plot_to_dict(booking.plot) if booking.plot else None,
        "deceased": {
            "id": booking.deceased.id,
            "name": booking.deceased.name,
            "ic_number": booking.deceased.ic_number,
            "gender": booking.deceased.gender.value,
        }
        if booking.deceased
        else None,
        "payment": payment_to_dict(booking.payment) if booking.payment else None,
        "rejection_reason": booking.rejection_reason,
        "created_at": _iso(booking.created_at),
    }
    if not detail:
        return data
    data.update(
        {
            "requester": user_to_dict(booking.user) if booking.user else None,
            "admin_notes": booking.admin_notes,
            "approval_date": _iso(booking.approval_date),
            "payment_deadline": _iso(booking.payment_deadline),
            "cancelled_at": _iso(booking.cancelled_at),
            "completed_at": _iso(booking.completed_at),
            "death_certificate_url": booking.death_certificate_url,
            "burial_permit_url": booking.burial_permit_url,
            "packages": [
                {
                    "id": item.package_id,
                    "label": item.package.label if item.package else None,
                    "price": _amount(item.price),
                }
                for item in booking.packages
            ],
            "staff": [
                {
                    "role": row.role.value,
                    "staff_id": row.staff_id,
                    "name": row.staff.name if row.staff else translate("staff.not_required"),
                    "not_required": row.staff_id is None,
                }
                for row in sorted(booking.staff_assignments, key=lambda r: r.role.value)
            ],
            "kits": [
                {
                    "kit_type": row.kit.kit_type.value,
                    "quantity": row.quantity,
                }
                for row in booking.kit_reservations
            ],
        }
    )
    return data


def waqaf_to_dict(waqaf: Waqaf) -> dict[str, object]:
    return {
        "id": waqaf.id,
        "donor_name": waqaf.donor_name,
        "donor_email": waqaf.donor_email,
        "amount": _amount(waqaf.amount),
        "currency": waqaf.currency,
        "message": waqaf.message,
        "payment_status": waqaf.payment_status.value,
        "created_at": _iso(waqaf.created_at),
    }


def payment_setting_to_dict(setting: PaymentSetting | None) -> dict[str, object]:
    if setting is None:
        return {"qr_image_url": None, "updated_at": None}
    return {
        "qr_image_url": setting.qr_image_url,
        "updated_at": _iso(setting.updated_at),
    }
