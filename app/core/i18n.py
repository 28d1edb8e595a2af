from __future__ import annotations

from flask import has_request_context, session

SUPPORTED_LANGS = {"ms", "en"}
DEFAULT_LANG = "ms"

I18N: dict[str, dict[str, str]] = {
    "booking.PENDING": {"ms": "Menunggu kelulusan", "en": "Pending approval"},
    "booking.APPROVED_PENDING_PAYMENT": {"ms": "Diluluskan - menunggu bayaran", "en": "Approved - awaiting payment"},
    "booking.PAYMENT_CONFIRMED": {"ms": "Bayaran disahkan", "en": "Payment confirmed"},
    "booking.CONFIRMED": {"ms": "Disahkan", "en": "Confirmed"},
    "booking.COMPLETED": {"ms": "Selesai", "en": "Completed"},
    "booking.REJECTED": {"ms": "Ditolak", "en": "Rejected"},
    "booking.CANCELLED": {"ms": "Dibatalkan", "en": "Cancelled"},
    "payment.PENDING": {"ms": "Belum dibayar", "en": "Not paid"},
    "payment.SUBMITTED": {"ms": "Resit dihantar", "en": "Receipt submitted"},
    "payment.SUCCESSFUL": {"ms": "Berjaya", "en": "Successful"},
    "payment.REJECTED": {"ms": "Resit ditolak", "en": "Receipt rejected"},
    "payment.CANCELLED": {"ms": "Dibatalkan", "en": "Cancelled"},
    "plot.AVAILABLE": {"ms": "Kosong", "en": "Available"},
    "plot.RESERVED": {"ms": "Ditempah", "en": "Reserved"},
    "plot.OCCUPIED": {"ms": "Berpenghuni", "en": "Occupied"},
    "staff.GRAVE_DIGGER": {"ms": "Penggali Kubur", "en": "Grave digger"},
    "staff.BODY_WASHER": {"ms": "Pemandi Jenazah", "en": "Body washer"},
    "staff.not_required": {"ms": "Tidak Perlu", "en": "Not required"},
    "kit.MALE": {"ms": "Kit Lelaki", "en": "Male kit"},
    "kit.FEMALE": {"ms": "Kit Perempuan", "en": "Female kit"},
}


def get_locale() -> str:
    if not has_request_context():
        return DEFAULT_LANG
    lang = session.get("lang", DEFAULT_LANG)
    if lang not in SUPPORTED_LANGS:
        return DEFAULT_LANG
    return lang


def translate(key: str) -> str:
    lang = get_locale()
    return I18N.get(key, {}).get(lang, key)
