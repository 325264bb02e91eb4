"""Domain events emitted during the reservation lifecycle."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from fleet.domain.models import IntervalStatus


class ReservationConfirmed(BaseModel):
    """Fired when a new reservation passed the availability check and was stored."""

    reservation_id: str
    vehicle_id: str


class ReservationRescheduled(BaseModel):
    """Fired when an active reservation was moved to a new time span."""

    reservation_id: str
    previous_start: datetime
    previous_end: datetime


class ReservationClosed(BaseModel):
    """Fired when a reservation was completed or cancelled."""

    reservation_id: str
    vehicle_id: str
    status: IntervalStatus


class ReservationConflictRejected(BaseModel):
    """Fired when a requested reservation overlapped active ones."""

    vehicle_id: str
    start: datetime
    end: datetime
    conflicting_ids: list[str]
