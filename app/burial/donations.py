"""Waqaf donations, statistics and CSV export."""
from __future__ import annotations

import csv
import logging
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo
from decimal import Decimal, InvalidOperation
from io import StringIO

from flask import current_app

from app.core.errors import NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import Booking, BookingStatus, Waqaf, WaqafStatus
from app.core.principal import Principal
from app.core.utils import paginate_query

logger = logging.getLogger(__name__)


def _parse_amount(value: object) -> Decimal:
    raw = str(value if value is not None else "").strip().replace(",", "")
    try:
        amount = Decimal(raw).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Jumlah sumbangan tidak sah") from exc
    if amount <= 0:
        raise ValidationError("Jumlah sumbangan mesti lebih daripada 0")
    return amount


def create_waqaf(payload: dict[str, object]) -> Waqaf:
    donor_name = str(payload.get("donor_name") or payload.get("donorName") or "").strip()
    if not donor_name:
        raise ValidationError("Nama penyumbang diperlukan")
    donor_email = str(payload.get("donor_email") or payload.get("donorEmail") or "").strip().lower()
    if donor_email and "@" not in donor_email:
        raise ValidationError("Email penyumbang tidak sah")
    waqaf = Waqaf(
        donor_name=donor_name,
        donor_email=donor_email,
        amount=_parse_amount(payload.get("amount")),
        currency=current_app.config["PAYMENT_CURRENCY"],
        message=str(payload.get("message") or "").strip(),
        payment_status=WaqafStatus.PENDING,
    )
    db.session.add(waqaf)
    db.session.commit()
    logger.info("Waqaf %s recorded (%s %s)", waqaf.id, waqaf.currency, waqaf.amount)
    return waqaf


def list_waqaf(filters: dict[str, str], page: int = 1, page_size: int = 20) -> dict[str, object]:
    query = Waqaf.query.order_by(Waqaf.created_at.desc(), Waqaf.id.desc())
    status = (filters.get("status") or "").strip().upper()
    if status and status != "ALL":
        try:
            query = query.filter(Waqaf.payment_status == WaqafStatus(status))
        except ValueError as exc:
            raise ValidationError(f"Status tidak sah: {status}") from exc
    return paginate_query(query, page, page_size)


def update_waqaf_status(waqaf_id: int, payload: dict[str, object]) -> Waqaf:
    waqaf = db.session.get(Waqaf, waqaf_id)
    if waqaf is None:
        raise NotFoundError("Rekod waqaf tidak ditemui")
    raw = str(payload.get("payment_status") or payload.get("status") or "").strip().upper()
    if raw not in {WaqafStatus.SUCCESSFUL.value, WaqafStatus.FAILED.value}:
        raise ValidationError("Status mesti SUCCESSFUL atau FAILED")
    waqaf.payment_status = WaqafStatus(raw)
    db.session.commit()
    logger.info("Waqaf %s marked %s", waqaf.id, raw)
    return waqaf


def _period(year: int | None, month: int | None) -> tuple[date, date] | None:
    if year is None:
        if month is not None:
            raise ValidationError("Tahun diperlukan apabila bulan dipilih")
        return None
    if not 1900 <= year <= 9998:
        raise ValidationError("Tahun tidak sah")
    if month is None:
        return date(year, 1, 1), date(year + 1, 1, 1)
    if not 1 <= month <= 12:
        raise ValidationError("Bulan tidak sah")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _bookings_in(period: tuple[date, date] | None, user_id: int | None = None) -> list[Booking]:
    query = Booking.query
    if user_id is not None:
        query = query.filter(Booking.user_id == user_id)
    if period:
        query = query.filter(Booking.booking_date >= period[0], Booking.booking_date < period[1])
    return query.order_by(Booking.booking_date.asc(), Booking.id.asc()).all()


def _burial_tz() -> ZoneInfo:
    return ZoneInfo(current_app.config["BURIAL_TIMEZONE"])


def _local_date(value: datetime) -> date:
    # Stored timestamps are UTC; naive ones come back from SQLite.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(_burial_tz()).date()


def _utc_bound(day: date) -> datetime:
    local_midnight = datetime.combine(day, time.min, tzinfo=_burial_tz())
    return local_midnight.astimezone(timezone.utc).replace(tzinfo=None)


def _waqaf_in(period: tuple[date, date] | None) -> list[Waqaf]:
    query = Waqaf.query
    if period:
        query = query.filter(
            Waqaf.created_at >= _utc_bound(period[0]),
            Waqaf.created_at < _utc_bound(period[1]),
        )
    return query.order_by(Waqaf.created_at.asc(), Waqaf.id.asc()).all()


def _monthly(rows: list[tuple[date, Decimal]]) -> dict[str, dict[str, object]]:
    buckets: dict[str, dict[str, object]] = {}
    for day, amount in rows:
        key = f"{day.year}-{day.month:02d}"
        bucket = buckets.setdefault(key, {"count": 0, "amount": Decimal("0.00")})
        bucket["count"] += 1
        bucket["amount"] += Decimal(amount or 0)
    return {key: {"count": b["count"], "amount": f"{b['amount']:.2f}"} for key, b in sorted(buckets.items())}


def _booking_summary(bookings: list[Booking]) -> dict[str, object]:
    by_status = {status.value: 0 for status in BookingStatus}
    for booking in bookings:
        by_status[booking.status.value] += 1
    total = sum((Decimal(b.total_price or 0) for b in bookings), Decimal("0.00"))
    return {
        "total_bookings": len(bookings),
        "total_booking_amount": f"{total:.2f}",
        "by_status": by_status,
        "monthly": _monthly([(b.booking_date, b.total_price) for b in bookings]),
    }


def admin_statistics(year: int | None = None, month: int | None = None) -> dict[str, object]:
    period = _period(year, month)
    waqaf_rows = _waqaf_in(period)
    waqaf_total = sum((Decimal(w.amount) for w in waqaf_rows), Decimal("0.00"))
    return {
        "year": year,
        "month": month,
        "bookings": _booking_summary(_bookings_in(period)),
        "waqaf": {
            "total_waqaf": len(waqaf_rows),
            "total_waqaf_amount": f"{waqaf_total:.2f}",
            "successful_waqaf": sum(1 for w in waqaf_rows if w.payment_status == WaqafStatus.SUCCESSFUL),
            "monthly": _monthly([(_local_date(w.created_at), w.amount) for w in waqaf_rows]),
        },
    }


def user_statistics(actor: Principal, year: int | None = None, month: int | None = None) -> dict[str, object]:
    period = _period(year, month)
    return {
        "year": year,
        "month": month,
        "bookings": _booking_summary(_bookings_in(period, actor.user_id)),
    }


def statistics_csv_bytes(
    report_key: str,
    year: int | None = None,
    month: int | None = None,
    export_limit: int = 1000,
) -> bytes:
    period = _period(year, month)
    key = (report_key or "").strip().lower()
    if key == "bookings":
        headers = ["id", "booking_date", "status", "plot", "deceased", "requester", "total_price"]
        rows = [
            {
                "id": b.id,
                "booking_date": b.booking_date.isoformat(),
                "status": b.status.value,
                "plot": b.plot.plot_identifier if b.plot else "-",
                "deceased": b.deceased.name if b.deceased else "-",
                "requester": b.user.email if b.user else "-",
                "total_price": f"{Decimal(b.total_price or 0):.2f}",
            }
            for b in _bookings_in(period)
        ]
    elif key == "waqaf":
        headers = ["id", "created_at", "donor_name", "donor_email", "amount", "currency", "payment_status"]
        rows = [
            {
                "id": w.id,
                "created_at": w.created_at.isoformat(),
                "donor_name": w.donor_name,
                "donor_email": w.donor_email,
                "amount": f"{Decimal(w.amount):.2f}",
                "currency": w.currency,
                "payment_status": w.payment_status.value,
            }
            for w in _waqaf_in(period)
        ]
    else:
        raise ValidationError("Laporan tidak sah")
    stream = StringIO()
    writer = csv.DictWriter(stream, fieldnames=headers)
    writer.writeheader()
    for row in rows[: max(1, min(export_limit, 5000))]:
        writer.writerow(row)
    return stream.getvalue().encode("utf-8")
