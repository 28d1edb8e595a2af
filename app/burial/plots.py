"""Plot ledger.

Every status change is a single conditional ``UPDATE ... WHERE status = ...``
and the affected row count decides whether the caller won the race.
"""
from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InvalidStateError, NotFoundError
from app.core.models import Plot, PlotStatus, utcnow

logger = logging.getLogger(__name__)


class PlotLedger:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, plot_id: int) -> Plot:
        plot = self.session.get(Plot, plot_id)
        if plot is None:
            raise NotFoundError("Plot tidak ditemui")
        return plot

    def _reload(self, plot_id: int) -> Plot:
        return self.session.get(Plot, plot_id, populate_existing=True)

    def list_plots(self, status: PlotStatus | None = None) -> list[Plot]:
        query = self.session.query(Plot)
        if status is not None:
            query = query.filter(Plot.status == status)
        return query.order_by(Plot.row.asc(), Plot.column.asc()).all()

    def reserve(self, plot_id: int, booking_id: int) -> Plot:
        result = self.session.execute(
            update(Plot)
            .where(Plot.id == plot_id, Plot.status == PlotStatus.AVAILABLE)
            .values(status=PlotStatus.RESERVED, booking_id=booking_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            plot = self.get(plot_id)
            logger.warning(
                "Plot %s not reservable for booking %s (status=%s)",
                plot.plot_identifier,
                booking_id,
                plot.status.value,
            )
            raise ConflictError(f"Plot {plot.plot_identifier} telah ditempah. Sila pilih plot lain.")
        plot = self._reload(plot_id)
        logger.info("Plot %s reserved for booking %s", plot.plot_identifier, booking_id)
        return plot

    def finalize(self, plot_id: int, booking_id: int) -> Plot:
        result = self.session.execute(
            update(Plot)
            .where(
                Plot.id == plot_id,
                Plot.status == PlotStatus.RESERVED,
                Plot.booking_id == booking_id,
            )
            .values(status=PlotStatus.OCCUPIED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        plot = self._reload(plot_id)
        if plot is None:
            raise NotFoundError("Plot tidak ditemui")
        if result.rowcount != 1:
            if plot.status == PlotStatus.OCCUPIED and plot.booking_id == booking_id:
                return plot
            raise InvalidStateError(
                f"Plot {plot.plot_identifier} tidak ditempah untuk tempahan #{booking_id} (status {plot.status.value})"
            )
        logger.info("Plot %s occupied by booking %s", plot.plot_identifier, booking_id)
        return plot

    def release(self, plot_id: int, booking_id: int | None = None) -> Plot:
        conditions = [Plot.id == plot_id, Plot.status == PlotStatus.RESERVED]
        if booking_id is not None:
            conditions.append(Plot.booking_id == booking_id)
        result = self.session.execute(
            update(Plot)
            .where(*conditions)
            .values(status=PlotStatus.AVAILABLE, booking_id=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        plot = self._reload(plot_id)
        if plot is None:
            raise NotFoundError("Plot tidak ditemui")
        if result.rowcount == 1:
            logger.info("Plot %s released (booking %s)", plot.plot_identifier, booking_id)
            return plot
        if plot.status == PlotStatus.OCCUPIED and (booking_id is None or plot.booking_id == booking_id):
            raise InvalidStateError(f"Plot {plot.plot_identifier} sudah berpenghuni")
        # Already available, or now held by another booking: nothing of ours to release.
        return plot
