"""Service for searching the vehicle list."""

from __future__ import annotations

from datetime import date

from fleet.domain.models import Vehicle, VehicleStatus, VehicleType
from fleet.services.inspections import DEFAULT_WARNING_DAYS, is_inspection_expiring


def filter_vehicles(
    vehicles: list[Vehicle],
    today: date,
    search: str | None = None,
    status: VehicleStatus | None = None,
    vehicle_type: VehicleType | None = None,
    inspection_warning: bool = False,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> list[Vehicle]:
    """Return the vehicles matching every given filter, ordered by license plate.

    *search* is a case-insensitive substring match on plate, make and model.
    """
    needle = (search or "").strip().lower()

    def matches(vehicle: Vehicle) -> bool:
        if needle and not any(
            needle in text.lower()
            for text in (vehicle.license_plate, vehicle.make, vehicle.model)
        ):
            return False
        if status is not None and vehicle.status != status:
            return False
        if vehicle_type is not None and vehicle.vehicle_type != vehicle_type:
            return False
        if inspection_warning and not is_inspection_expiring(
            vehicle.inspection_due, today, warning_days
        ):
            return False
        return True

    return sorted(
        (v for v in vehicles if matches(v)), key=lambda v: v.license_plate
    )
