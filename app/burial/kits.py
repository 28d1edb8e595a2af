"""Funeral kit inventory and its append-only usage ledger."""
from __future__ import annotations

import logging

from sqlalchemy import case, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.errors import (
    DuplicateReservationError,
    InsufficientStockError,
    NegativeStockError,
    NotFoundError,
    ValidationError,
)
from app.core.extensions import db
from app.core.i18n import translate
from app.core.models import (
    BookingFuneralKit,
    FuneralKit,
    FuneralKitUsage,
    KitType,
    KitUsageReason,
    utcnow,
)

logger = logging.getLogger(__name__)

ADMIN_REASONS = (KitUsageReason.ADMIN_ADD, KitUsageReason.ADMIN_REMOVE)


def parse_kit_type(value: object) -> KitType:
    raw = str(value or "").strip().upper()
    try:
        return KitType(raw)
    except ValueError as exc:
        raise ValidationError(f"Jenis kit tidak sah: {raw or '-'}") from exc


def parse_quantity(value: object, field_name: str = "kuantiti") -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name.capitalize()} tidak sah")
    if isinstance(value, int):
        return value
    raw = str(value if value is not None else "").strip()
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{field_name.capitalize()} tidak sah") from exc


class KitInventory:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_kits(self) -> list[FuneralKit]:
        return self.session.query(FuneralKit).order_by(FuneralKit.kit_type.asc()).all()

    def get(self, kit_id: int) -> FuneralKit:
        kit = self.session.get(FuneralKit, kit_id)
        if kit is None:
            raise NotFoundError("Kit jenazah tidak ditemui")
        return kit

    def by_type(self, kit_type: KitType) -> FuneralKit:
        kit = self.session.query(FuneralKit).filter_by(kit_type=kit_type).first()
        if kit is None:
            raise NotFoundError(f"{translate(f'kit.{kit_type.value}')} tidak ditemui")
        return kit

    def _reload(self, kit_id: int) -> FuneralKit:
        return self.session.get(FuneralKit, kit_id, populate_existing=True)

    def reservations_for(self, booking_id: int) -> list[BookingFuneralKit]:
        return (
            self.session.query(BookingFuneralKit)
            .options(joinedload(BookingFuneralKit.kit))
            .filter(BookingFuneralKit.booking_id == booking_id)
            .order_by(BookingFuneralKit.id.asc())
            .all()
        )

    def reserve(
        self,
        booking_id: int,
        kit_type: KitType,
        quantity: int,
        actor_id: int | None,
    ) -> BookingFuneralKit:
        if quantity <= 0:
            raise ValidationError(f"Kuantiti tidak sah: {quantity}")
        kit = self.by_type(kit_type)
        existing = (
            self.session.query(BookingFuneralKit.id)
            .filter_by(booking_id=booking_id, kit_id=kit.id)
            .first()
        )
        if existing:
            raise DuplicateReservationError(
                f"{translate(f'kit.{kit_type.value}')} sudah ditempah untuk tempahan ini"
            )

        result = self.session.execute(
            update(FuneralKit)
            .where(FuneralKit.id == kit.id, FuneralKit.available_quantity >= quantity)
            .values(
                available_quantity=FuneralKit.available_quantity - quantity,
                total_used=FuneralKit.total_used + quantity,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        kit = self._reload(kit.id)
        if result.rowcount != 1:
            logger.warning(
                "Insufficient %s kits for booking %s: available=%s requested=%s",
                kit_type.value,
                booking_id,
                kit.available_quantity,
                quantity,
            )
            raise InsufficientStockError(
                f"{translate(f'kit.{kit_type.value}')} tidak mencukupi. "
                f"Tersedia: {kit.available_quantity}, Diminta: {quantity}"
            )

        reservation = BookingFuneralKit(booking_id=booking_id, kit_id=kit.id, quantity=quantity)
        self.session.add(reservation)
        self.session.add(
            FuneralKitUsage(
                kit_id=kit.id,
                booking_id=booking_id,
                quantity_change=-quantity,
                reason=KitUsageReason.BOOKING,
                changed_by=actor_id,
                notes=f"Ditempah untuk tempahan #{booking_id}",
            )
        )
        self.session.flush()
        logger.info(
            "Reserved %d %s kit(s) for booking %s (available now %d)",
            quantity,
            kit_type.value,
            booking_id,
            kit.available_quantity,
        )
        return reservation

    def release(self, booking_id: int, actor_id: int | None, note: str = "") -> int:
        reservations = self.reservations_for(booking_id)
        for reservation in reservations:
            quantity = reservation.quantity
            self.session.execute(
                update(FuneralKit)
                .where(FuneralKit.id == reservation.kit_id)
                .values(
                    available_quantity=FuneralKit.available_quantity + quantity,
                    total_used=case(
                        (FuneralKit.total_used >= quantity, FuneralKit.total_used - quantity),
                        else_=0,
                    ),
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            self.session.add(
                FuneralKitUsage(
                    kit_id=reservation.kit_id,
                    booking_id=booking_id,
                    quantity_change=quantity,
                    reason=KitUsageReason.BOOKING_CANCELLED,
                    changed_by=actor_id,
                    notes=note or f"Tempahan #{booking_id} dibatalkan",
                )
            )
            self._reload(reservation.kit_id)
        for reservation in reservations:
            self.session.delete(reservation)
        if reservations:
            self.session.flush()
            logger.info("Released %d kit reservation(s) of booking %s", len(reservations), booking_id)
        return len(reservations)

    def adjust(
        self,
        kit_id: int,
        delta: int,
        reason: KitUsageReason,
        note: str,
        actor_id: int | None,
    ) -> FuneralKit:
        if delta == 0:
            raise ValidationError("Perubahan kuantiti tidak boleh sifar")
        if reason not in ADMIN_REASONS:
            raise ValidationError("Sebab tidak sah. Mesti ADMIN_ADD atau ADMIN_REMOVE.")
        kit = self.get(kit_id)

        result = self.session.execute(
            update(FuneralKit)
            .where(FuneralKit.id == kit.id, FuneralKit.available_quantity + delta >= 0)
            .values(available_quantity=FuneralKit.available_quantity + delta, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        kit = self._reload(kit.id)
        if result.rowcount != 1:
            logger.warning(
                "Refused kit %s adjustment %+d: available=%d",
                kit.kit_type.value,
                delta,
                kit.available_quantity,
            )
            raise NegativeStockError(
                f"Kuantiti tidak boleh kurang daripada 0. Semasa: {kit.available_quantity}, Perubahan: {delta}"
            )

        # The ledger entry is best-effort here; the stock change stands on its own.
        try:
            with self.session.begin_nested():
                self.session.add(
                    FuneralKitUsage(
                        kit_id=kit.id,
                        booking_id=None,
                        quantity_change=delta,
                        reason=reason,
                        changed_by=actor_id,
                        notes=(note or "").strip(),
                    )
                )
        except SQLAlchemyError:
            logger.error("Could not record usage for kit %s adjustment %+d", kit.id, delta, exc_info=True)
        logger.info("Kit %s adjusted %+d by user %s", kit.kit_type.value, delta, actor_id)
        return kit

    def usage_history(self, kit_id: int | None = None, limit: int = 50, offset: int = 0) -> dict[str, object]:
        safe_limit = max(1, min(limit, 200))
        safe_offset = max(0, offset)
        query = self.session.query(FuneralKitUsage)
        if kit_id is not None:
            query = query.filter(FuneralKitUsage.kit_id == kit_id)
        total = query.count()
        rows = (
            query.options(joinedload(FuneralKitUsage.kit), joinedload(FuneralKitUsage.user))
            .order_by(FuneralKitUsage.created_at.desc(), FuneralKitUsage.id.desc())
            .offset(safe_offset)
            .limit(safe_limit)
            .all()
        )
        return {
            "rows": rows,
            "limit": safe_limit,
            "offset": safe_offset,
            "total": total,
            "has_more": safe_offset + safe_limit < total,
        }


def kit_inventory() -> KitInventory:
    return KitInventory(db.session)


def adjust_kit_quantity(kit_id: int, payload: dict[str, object], user_id: int | None) -> FuneralKit:
    delta = parse_quantity(payload.get("quantity_change", payload.get("quantityChange")), "perubahan kuantiti")
    raw_reason = str(payload.get("reason") or "").strip().upper()
    try:
        reason = KitUsageReason(raw_reason)
    except ValueError as exc:
        raise ValidationError("Sebab tidak sah. Mesti ADMIN_ADD atau ADMIN_REMOVE.") from exc
    note = str(payload.get("notes") or "")
    try:
        kit = kit_inventory().adjust(kit_id, delta, reason, note, user_id)
    except Exception:
        db.session.rollback()
        raise
    db.session.commit()
    return kit
