"""Fleet dashboard counters."""

from __future__ import annotations

from datetime import date

from fleet.domain.models import FleetStatistics, Vehicle, VehicleStatus
from fleet.services.inspections import DEFAULT_WARNING_DAYS, is_inspection_expiring


def fleet_statistics(
    vehicles: list[Vehicle], today: date, warning_days: int = DEFAULT_WARNING_DAYS
) -> FleetStatistics:
    def count(status: VehicleStatus) -> int:
        return sum(1 for v in vehicles if v.status == status)

    return FleetStatistics(
        total_vehicles=len(vehicles),
        available_vehicles=count(VehicleStatus.AVAILABLE),
        reserved_vehicles=count(VehicleStatus.RESERVED),
        maintenance_vehicles=count(VehicleStatus.MAINTENANCE),
        defective_vehicles=count(VehicleStatus.DEFECTIVE),
        inspection_warnings=sum(
            1
            for v in vehicles
            if is_inspection_expiring(v.inspection_due, today, warning_days)
        ),
    )
