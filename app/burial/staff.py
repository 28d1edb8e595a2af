"""Staff roster and per-day availability.

A real staff member works at most one live booking per calendar day. The
"not required" choice is a separate variant and never takes part in the
exclusivity check.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.i18n import translate
from app.core.models import (
    INACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStaff,
    Staff,
    StaffRole,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RealStaff:
    staff_id: int


@dataclass(frozen=True)
class NotRequired:
    pass


StaffChoice = RealStaff | NotRequired


@dataclass(frozen=True)
class StaffAssignmentRequest:
    role: StaffRole
    choice: StaffChoice


def parse_staff_role(value: object) -> StaffRole:
    raw = str(value or "").strip().upper()
    try:
        return StaffRole(raw)
    except ValueError as exc:
        raise ValidationError(f"Jenis kakitangan tidak sah: {raw or '-'}") from exc


class StaffRoster:
    def __init__(
        self,
        session: Session,
        tz_name: str,
        mandatory_roles: tuple[str, ...],
        not_required_ids: dict[str, str],
    ) -> None:
        self.session = session
        self.tz = ZoneInfo(tz_name)
        self.mandatory_roles = tuple(StaffRole(role) for role in mandatory_roles)
        self.not_required_ids = {StaffRole(role): value for role, value in not_required_ids.items()}

    @classmethod
    def from_config(cls, session: Session, config) -> "StaffRoster":
        return cls(
            session,
            config["BURIAL_TIMEZONE"],
            tuple(config["MANDATORY_STAFF_ROLES"]),
            dict(config["STAFF_NOT_REQUIRED_IDS"]),
        )

    # -- time helpers -------------------------------------------------------

    def local_datetime(self, value: datetime) -> datetime:
        """Naive wall-clock time in the burial time zone."""
        if value.tzinfo is not None:
            value = value.astimezone(self.tz).replace(tzinfo=None)
        return value

    def local_day(self, value: datetime | date) -> date:
        if isinstance(value, datetime):
            return self.local_datetime(value).date()
        return value

    # -- parsing ------------------------------------------------------------

    def parse_choice(self, role: StaffRole, raw: object) -> StaffChoice:
        if raw is None:
            return NotRequired()
        text = str(raw).strip()
        if not text or text in self.not_required_ids.values():
            return NotRequired()
        if not text.isdigit():
            raise ValidationError(f"Kakitangan tidak sah untuk {translate(f'staff.{role.value}')}")
        return RealStaff(int(text))

    def parse_assignments(self, raw_assignments: object) -> list[StaffAssignmentRequest]:
        if not isinstance(raw_assignments, list):
            raise ValidationError("Tugasan kakitangan diperlukan")
        requests: list[StaffAssignmentRequest] = []
        for item in raw_assignments:
            if not isinstance(item, dict):
                raise ValidationError("Format tugasan kakitangan tidak sah")
            role = parse_staff_role(item.get("role") or item.get("staffType"))
            requests.append(StaffAssignmentRequest(role, self.parse_choice(role, item.get("staffId"))))
        self.validate_roles(requests)
        return requests

    def validate_roles(self, requests: list[StaffAssignmentRequest]) -> None:
        seen: set[StaffRole] = set()
        for request in requests:
            if request.role in seen:
                raise ValidationError(f"Tugasan {translate(f'staff.{request.role.value}')} berulang")
            seen.add(request.role)
        for role in self.mandatory_roles:
            if role not in seen:
                raise ValidationError(f"Tugasan {translate(f'staff.{role.value}')} diperlukan")

    # -- queries ------------------------------------------------------------

    def get(self, staff_id: int) -> Staff:
        staff = self.session.get(Staff, staff_id)
        if staff is None:
            raise NotFoundError("Kakitangan tidak ditemui")
        return staff

    def busy_staff_ids(self, day: date, exclude_booking_id: int | None = None) -> set[int]:
        query = (
            select(BookingStaff.staff_id)
            .join(Booking, Booking.id == BookingStaff.booking_id)
            .where(
                Booking.booking_date == day,
                Booking.status.not_in(INACTIVE_BOOKING_STATUSES),
                BookingStaff.staff_id.is_not(None),
            )
        )
        if exclude_booking_id is not None:
            query = query.where(BookingStaff.booking_id != exclude_booking_id)
        return set(self.session.execute(query).scalars())

    def not_required_option(self, role: StaffRole) -> dict[str, object]:
        return {
            "id": self.not_required_ids.get(role),
            "name": translate("staff.not_required"),
            "phone": "",
            "role": role.value,
            "not_required": True,
        }

    def list_available(
        self,
        role: StaffRole,
        day: date | datetime,
        exclude_booking_id: int | None = None,
    ) -> list[dict[str, object]]:
        busy = self.busy_staff_ids(self.local_day(day), exclude_booking_id)
        candidates = (
            self.session.query(Staff)
            .filter(Staff.role == role, Staff.is_active.is_(True))
            .order_by(Staff.name.asc(), Staff.id.asc())
            .all()
        )
        options = [self.not_required_option(role)]
        for staff in candidates:
            if staff.id in busy:
                continue
            options.append(
                {
                    "id": staff.id,
                    "name": staff.name,
                    "phone": staff.phone,
                    "role": staff.role.value,
                    "not_required": False,
                }
            )
        return options

    # -- mutations ----------------------------------------------------------

    def assign(
        self,
        booking: Booking,
        requests: list[StaffAssignmentRequest],
        assigned_by: int | None,
    ) -> list[BookingStaff]:
        if not booking.is_active:
            raise InvalidStateError("Tidak boleh menugaskan kakitangan kepada tempahan yang dibatalkan")
        self.validate_roles(requests)

        real_ids = [r.choice.staff_id for r in requests if isinstance(r.choice, RealStaff)]
        if real_ids:
            rows = (
                self.session.query(Staff)
                .filter(Staff.id.in_(real_ids))
                .with_for_update()
                .all()
            )
            by_id = {staff.id: staff for staff in rows}
            for request in requests:
                if not isinstance(request.choice, RealStaff):
                    continue
                staff = by_id.get(request.choice.staff_id)
                if staff is None:
                    raise NotFoundError("Kakitangan tidak ditemui")
                if not staff.is_active:
                    raise ValidationError(f"{staff.name} tidak aktif")
                if staff.role != request.role:
                    raise ValidationError(f"{staff.name} bukan {translate(f'staff.{request.role.value}')}")

            busy = self.busy_staff_ids(booking.booking_date, exclude_booking_id=booking.id)
            clashes = sorted(by_id[sid].name for sid in real_ids if sid in busy)
            if clashes:
                logger.warning(
                    "Staff clash for booking %s on %s: %s",
                    booking.id,
                    booking.booking_date.isoformat(),
                    ", ".join(clashes),
                )
                raise ConflictError(
                    f"Kakitangan sudah ditugaskan pada tarikh ini: {', '.join(clashes)}"
                )

        self._remove_assignments(booking.id)
        now = utcnow()
        rows = [
            BookingStaff(
                booking_id=booking.id,
                role=request.role,
                staff_id=request.choice.staff_id if isinstance(request.choice, RealStaff) else None,
                booking_date=booking.booking_date,
                assigned_at=now,
                assigned_by=assigned_by,
            )
            for request in requests
        ]
        self.session.add_all(rows)
        try:
            with self.session.begin_nested():
                self.session.flush()
        except IntegrityError as exc:
            logger.warning("Concurrent staff assignment for booking %s", booking.id)
            raise ConflictError("Salah satu kakitangan yang dipilih sudah ditugaskan pada tarikh ini") from exc
        logger.info(
            "Staff assigned to booking %s: %s",
            booking.id,
            ", ".join(f"{row.role.value}={row.staff_id or 'not-required'}" for row in rows),
        )
        return rows

    def _remove_assignments(self, booking_id: int) -> int:
        rows = self.session.query(BookingStaff).filter(BookingStaff.booking_id == booking_id).all()
        for row in rows:
            self.session.delete(row)
        # Old rows must be gone before the replacements hit the unique indexes.
        self.session.flush()
        return len(rows)

    def release(self, booking_id: int) -> int:
        count = self._remove_assignments(booking_id)
        if count:
            logger.info("Released %d staff assignment(s) of booking %s", count, booking_id)
        return count


def staff_roster() -> StaffRoster:
    return StaffRoster.from_config(db.session, current_app.config)


def _staff_payload(payload: dict[str, object]) -> dict[str, object]:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Nama dan jenis kakitangan diperlukan")
    role = parse_staff_role(payload.get("role") or payload.get("staffType"))
    return {
        "name": name,
        "phone": str(payload.get("phone") or "").strip(),
        "role": role,
    }


def list_staff(filters: dict[str, str]) -> list[Staff]:
    query = Staff.query.order_by(Staff.name.asc(), Staff.id.asc())
    role = (filters.get("role") or filters.get("type") or "").strip()
    if role:
        query = query.filter(Staff.role == parse_staff_role(role))
    if (filters.get("active_only") or "").strip().lower() in {"1", "true", "yes"}:
        query = query.filter(Staff.is_active.is_(True))
    return query.all()


def create_staff(payload: dict[str, object]) -> Staff:
    staff = Staff(**_staff_payload(payload), is_active=True)
    db.session.add(staff)
    db.session.commit()
    logger.info("Staff %s created (%s)", staff.id, staff.role.value)
    return staff


def update_staff(staff_id: int, payload: dict[str, object]) -> Staff:
    staff = staff_roster().get(staff_id)
    values = _staff_payload(payload)
    staff.name = values["name"]
    staff.phone = values["phone"]
    staff.role = values["role"]
    if "is_active" in payload or "isActive" in payload:
        raw = payload.get("is_active", payload.get("isActive"))
        staff.is_active = raw if isinstance(raw, bool) else str(raw).strip().lower() in {"1", "true", "yes", "on"}
    db.session.add(staff)
    db.session.commit()
    logger.info("Staff %s updated (active=%s)", staff.id, staff.is_active)
    return staff


def delete_staff(staff_id: int) -> None:
    staff = staff_roster().get(staff_id)
    referenced = BookingStaff.query.filter_by(staff_id=staff.id).first()
    if referenced:
        raise ConflictError(
            "Tidak boleh memadamkan kakitangan yang mempunyai tugasan. Sila nyahaktifkan sahaja."
        )
    db.session.delete(staff)
    db.session.commit()
    logger.info("Staff %s deleted", staff_id)
