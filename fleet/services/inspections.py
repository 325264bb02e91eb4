"""Service for flagging vehicles whose TÜV inspection is due soon."""

from __future__ import annotations

from datetime import date, timedelta

from fleet.domain.models import InspectionWarning, Vehicle

DEFAULT_WARNING_DAYS = 60


def is_inspection_expiring(
    inspection_due: date, today: date, warning_days: int = DEFAULT_WARNING_DAYS
) -> bool:
    """Return True if the inspection expires within *warning_days* of *today*.

    Already expired inspections count as expiring.
    """
    return inspection_due <= today + timedelta(days=warning_days)


def inspection_warnings(
    vehicles: list[Vehicle], today: date, warning_days: int = DEFAULT_WARNING_DAYS
) -> list[InspectionWarning]:
    """Return one warning per expiring vehicle, soonest expiry first."""
    warnings = [
        InspectionWarning(
            vehicle_id=vehicle.id,
            license_plate=vehicle.license_plate,
            inspection_due=vehicle.inspection_due,
            days_remaining=(vehicle.inspection_due - today).days,
            overdue=vehicle.inspection_due < today,
        )
        for vehicle in vehicles
        if is_inspection_expiring(vehicle.inspection_due, today, warning_days)
    ]
    return sorted(warnings, key=lambda w: w.inspection_due)
