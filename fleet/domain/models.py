"""Domain models for the fleet reservation service."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator


class InvalidInterval(ValueError):
    """Raised when an interval does not satisfy ``start < end``."""


class InvalidTransition(ValueError):
    """Raised when a reservation leaves a terminal status."""


class IntervalStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VehicleStatus(StrEnum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    DEFECTIVE = "defective"


class VehicleType(StrEnum):
    CAR = "car"
    TRUCK = "truck"
    VAN = "van"
    TRACTOR = "tractor"
    TRAILER = "trailer"


class FuelType(StrEnum):
    DIESEL = "diesel"
    PETROL = "petrol"
    ELECTRIC = "electric"
    HYBRID = "hybrid"


class HistoryEntryType(StrEnum):
    CREATED = "created"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _assume_utc(value: datetime) -> datetime:
    # Naive and aware datetimes cannot be compared, so never let a naive one in.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


Timestamp = Annotated[datetime, AfterValidator(_assume_utc)]


def _require_ordered(start: datetime, end: datetime) -> None:
    if end <= start:
        raise InvalidInterval(f"end ({end.isoformat()}) must be after start ({start.isoformat()})")


# ---------------------------------------------------------------------------
# Interval conflict checking
# ---------------------------------------------------------------------------


class Interval(BaseModel):
    """A resource-scoped half-open time span ``[start, end)``."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    resource_id: str
    start: Timestamp
    end: Timestamp
    status: IntervalStatus = IntervalStatus.ACTIVE

    @model_validator(mode="after")
    def _end_after_start(self) -> Interval:
        _require_ordered(self.start, self.end)
        return self


class ConflictQuery(BaseModel):
    resource_id: str
    start: Timestamp
    end: Timestamp
    exclude_interval_id: str | None = None


class ConflictResult(BaseModel):
    available: bool
    conflicts: list[Interval] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Fleet entities
# ---------------------------------------------------------------------------


class VehicleData(BaseModel):
    license_plate: str = Field(min_length=1, max_length=20)
    make: str = Field(min_length=1, max_length=50)
    model: str = Field(min_length=1, max_length=50)
    year: int = Field(ge=1950)
    vehicle_type: VehicleType = VehicleType.CAR
    fuel_type: FuelType = FuelType.DIESEL
    consumption: float = Field(ge=0, le=50)
    tank_size: float = Field(ge=10, le=500)
    mileage: int = Field(ge=0)
    inspection_due: date
    insurance_due: date
    status: VehicleStatus = VehicleStatus.AVAILABLE
    location: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=500)

    @field_validator("year")
    @classmethod
    def _not_in_future(cls, value: int) -> int:
        if value > date.today().year + 1:
            raise ValueError("year lies too far in the future")
        return value


class Vehicle(VehicleData):
    id: str = Field(default_factory=_new_id)


class Reservation(BaseModel):
    id: str = Field(default_factory=_new_id)
    vehicle_id: str
    employee_name: str = Field(min_length=1, max_length=100)
    start: Timestamp
    end: Timestamp
    purpose: str = Field(min_length=1, max_length=200)
    planned_km: int | None = Field(default=None, ge=0)
    status: IntervalStatus = IntervalStatus.ACTIVE
    notes: str | None = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _end_after_start(self) -> Reservation:
        _require_ordered(self.start, self.end)
        return self

    def to_interval(self) -> Interval:
        return Interval(
            id=self.id,
            resource_id=self.vehicle_id,
            start=self.start,
            end=self.end,
            status=self.status,
        )

    def transition(self, status: IntervalStatus) -> None:
        """Move an active reservation to *status*.

        Completed and cancelled reservations are final; trying to move them
        again raises :class:`InvalidTransition`.
        """
        if self.status != IntervalStatus.ACTIVE:
            raise InvalidTransition(f"Reservation is already {self.status}")
        if status == IntervalStatus.ACTIVE:
            raise InvalidTransition("Reservation is already active")
        self.status = status


class HistoryEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    reservation_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    type: HistoryEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class ReservationUpdate(BaseModel):
    """Editable fields of a reservation.

    Ordering of start and end is checked by the availability check, which
    reports it as an InvalidInterval.
    """

    employee_name: str = Field(min_length=1, max_length=100)
    start: Timestamp
    end: Timestamp
    purpose: str = Field(min_length=1, max_length=200)
    planned_km: int | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=500)


class ReservationRequest(ReservationUpdate):
    vehicle_id: str


class AvailabilityRequest(BaseModel):
    vehicle_id: str
    start: Timestamp
    end: Timestamp
    exclude_reservation_id: str | None = None


class ReservationConflict(BaseModel):
    detail: str
    conflicts: list[Interval]


class InspectionWarning(BaseModel):
    vehicle_id: str
    license_plate: str
    inspection_due: date
    days_remaining: int
    overdue: bool


class FleetStatistics(BaseModel):
    total_vehicles: int = 0
    available_vehicles: int = 0
    reserved_vehicles: int = 0
    maintenance_vehicles: int = 0
    defective_vehicles: int = 0
    inspection_warnings: int = 0
