"""Plot catalogue, deceased search and package management."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import func
from sqlalchemy.orm import joinedload

from app.burial.plots import PlotLedger
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import BookingPackage, Deceased, Package, Plot, PlotStatus

logger = logging.getLogger(__name__)


def list_plots(status: str = "") -> list[Plot]:
    raw = (status or "").strip().upper()
    plot_status = None
    if raw:
        try:
            plot_status = PlotStatus(raw)
        except ValueError as exc:
            raise ValidationError(f"Status plot tidak sah: {raw}") from exc
    return PlotLedger(db.session).list_plots(plot_status)


def plot_by_id(plot_id: int) -> Plot:
    return PlotLedger(db.session).get(plot_id)


def search_deceased(filters: dict[str, str]) -> list[Deceased]:
    name = (filters.get("name") or "").strip()
    ic_number = (filters.get("ic") or filters.get("ic_number") or "").strip()
    plot_identifier = (filters.get("plot") or filters.get("plot_identifier") or "").strip()
    if not any([name, ic_number, plot_identifier]):
        raise ValidationError("Sila masukkan nama, nombor KP atau nombor plot")

    query = Deceased.query.options(joinedload(Deceased.plot))
    if name:
        query = query.filter(func.lower(Deceased.name).contains(name.lower()))
    if ic_number:
        query = query.filter(Deceased.ic_number == ic_number)
    if plot_identifier:
        query = query.join(Plot, Plot.id == Deceased.plot_id).filter(
            func.lower(Plot.plot_identifier).contains(plot_identifier.lower())
        )
    return query.order_by(Deceased.name.asc(), Deceased.id.asc()).limit(100).all()


def _parse_price(value: object) -> Decimal:
    raw = str(value if value is not None else "").strip().replace(",", "")
    try:
        price = Decimal(raw).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Harga tidak sah") from exc
    if price < 0:
        raise ValidationError("Harga tidak boleh negatif")
    return price


def _package_values(payload: dict[str, object]) -> dict[str, object]:
    label = str(payload.get("label") or "").strip()
    if not label:
        raise ValidationError("Nama pakej diperlukan")
    return {
        "label": label,
        "price": _parse_price(payload.get("price")),
        "description": str(payload.get("description") or "").strip(),
    }


def list_packages() -> list[Package]:
    return Package.query.order_by(Package.price.asc(), Package.id.asc()).all()


def package_by_id(package_id: int) -> Package:
    package = db.session.get(Package, package_id)
    if package is None:
        raise NotFoundError("Pakej tidak ditemui")
    return package


def _ensure_unique_label(label: str, package_id: int | None = None) -> None:
    query = Package.query.filter(func.lower(Package.label) == label.lower())
    if package_id is not None:
        query = query.filter(Package.id != package_id)
    if query.first():
        raise ConflictError(f"Pakej '{label}' sudah wujud")


def create_package(payload: dict[str, object]) -> Package:
    values = _package_values(payload)
    _ensure_unique_label(values["label"])
    package = Package(**values)
    db.session.add(package)
    db.session.commit()
    logger.info("Package %s created at %s", package.id, package.price)
    return package


def update_package(package_id: int, payload: dict[str, object]) -> Package:
    package = package_by_id(package_id)
    values = _package_values(payload)
    _ensure_unique_label(values["label"], package.id)
    package.label = values["label"]
    package.price = values["price"]
    package.description = values["description"]
    db.session.commit()
    logger.info("Package %s updated", package.id)
    return package


def delete_package(package_id: int) -> None:
    package = package_by_id(package_id)
    if BookingPackage.query.filter_by(package_id=package.id).first():
        raise ConflictError("Pakej ini digunakan oleh tempahan dan tidak boleh dipadam")
    db.session.delete(package)
    db.session.commit()
    logger.info("Package %s deleted", package_id)
