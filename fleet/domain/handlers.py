"""Domain event handlers — wired up at application startup."""

from __future__ import annotations

import logging

from fleet.domain.bus import EventBus
from fleet.domain.events import (
    ReservationClosed,
    ReservationConfirmed,
    ReservationConflictRejected,
    ReservationRescheduled,
)
from fleet.domain.models import (
    HistoryEntry,
    HistoryEntryType,
    IntervalStatus,
    VehicleStatus,
)
from fleet.repos.memory import HistoryRepository

logger = logging.getLogger(__name__)

_CLOSED_ENTRY_TYPES = {
    IntervalStatus.COMPLETED: HistoryEntryType.COMPLETED,
    IntervalStatus.CANCELLED: HistoryEntryType.CANCELLED,
}


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to all repositories.

    Vehicle and reservation repositories may be the in-memory or the Strapi
    implementations; both expose the same methods.
    """

    def __init__(
        self,
        bus: EventBus,
        vehicle_repo,
        reservation_repo,
        history_repo: HistoryRepository,
    ) -> None:
        self.bus = bus
        self.vehicle_repo = vehicle_repo
        self.reservation_repo = reservation_repo
        self.history_repo = history_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(ReservationConfirmed, self.on_reservation_confirmed)
        self.bus.subscribe(ReservationRescheduled, self.on_reservation_rescheduled)
        self.bus.subscribe(ReservationClosed, self.on_reservation_closed)
        self.bus.subscribe(ReservationConflictRejected, self.on_conflict_rejected)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_reservation_confirmed(self, event: ReservationConfirmed) -> None:
        self.history_repo.add(
            HistoryEntry(
                reservation_id=event.reservation_id,
                type=HistoryEntryType.CREATED,
                payload={"vehicle_id": event.vehicle_id},
            )
        )

        vehicle = self.vehicle_repo.get(event.vehicle_id)
        if vehicle is None:
            return
        if vehicle.status == VehicleStatus.AVAILABLE:
            vehicle.status = VehicleStatus.RESERVED
            self.vehicle_repo.update(vehicle)
            logger.info("Vehicle %s is now reserved", vehicle.license_plate)

    def on_reservation_rescheduled(self, event: ReservationRescheduled) -> None:
        self.history_repo.add(
            HistoryEntry(
                reservation_id=event.reservation_id,
                type=HistoryEntryType.RESCHEDULED,
                payload={
                    "previous_start": event.previous_start.isoformat(),
                    "previous_end": event.previous_end.isoformat(),
                },
            )
        )

    def on_reservation_closed(self, event: ReservationClosed) -> None:
        self.history_repo.add(
            HistoryEntry(
                reservation_id=event.reservation_id,
                type=_CLOSED_ENTRY_TYPES[event.status],
            )
        )

        vehicle = self.vehicle_repo.get(event.vehicle_id)
        if vehicle is None or vehicle.status != VehicleStatus.RESERVED:
            return

        # Release the vehicle only once its last active reservation is gone
        still_reserved = any(
            r.status == IntervalStatus.ACTIVE and r.id != event.reservation_id
            for r in self.reservation_repo.list_for_vehicle(event.vehicle_id)
        )
        if not still_reserved:
            vehicle.status = VehicleStatus.AVAILABLE
            self.vehicle_repo.update(vehicle)
            logger.info("Vehicle %s is available again", vehicle.license_plate)

    def on_conflict_rejected(self, event: ReservationConflictRejected) -> None:
        logger.info(
            "Rejected reservation of vehicle %s from %s to %s; overlaps %s",
            event.vehicle_id,
            event.start.isoformat(),
            event.end.isoformat(),
            ", ".join(event.conflicting_ids),
        )
