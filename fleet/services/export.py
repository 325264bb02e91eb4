"""CSV export of reservation lists."""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone, tzinfo

from fleet.domain.models import IntervalStatus, Reservation, Vehicle

UNKNOWN_VEHICLE = "Unbekannt"

_STATUS_LABELS = {
    IntervalStatus.ACTIVE: "Aktiv",
    IntervalStatus.COMPLETED: "Abgeschlossen",
    IntervalStatus.CANCELLED: "Storniert",
}


def to_csv(rows: list[dict]) -> str:
    """Serialise *rows* as comma separated text, header taken from the first row.

    Returns an empty string when there are no rows.
    """
    if not rows:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=list(rows[0].keys()),
        lineterminator="\n",
        quoting=csv.QUOTE_MINIMAL,
    )
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def vehicle_label(vehicle: Vehicle | None) -> str:
    if vehicle is None:
        return UNKNOWN_VEHICLE
    return f"{vehicle.license_plate} - {vehicle.make} {vehicle.model}"


def _format_timestamp(value: datetime, tz: tzinfo) -> str:
    return value.astimezone(tz).strftime("%d.%m.%Y %H:%M")


def reservations_csv(
    reservations: list[Reservation],
    vehicles: list[Vehicle],
    tz: tzinfo = timezone.utc,
) -> str:
    """Render reservations with German column headers, earliest start first."""
    by_id = {v.id: v for v in vehicles}
    rows = [
        {
            "Fahrzeug": vehicle_label(by_id.get(r.vehicle_id)),
            "Mitarbeiter": r.employee_name,
            "Start": _format_timestamp(r.start, tz),
            "Ende": _format_timestamp(r.end, tz),
            "Zweck": r.purpose,
            "Geplante km": r.planned_km if r.planned_km is not None else "",
            "Status": _STATUS_LABELS[r.status],
            "Notizen": r.notes or "",
        }
        for r in sorted(reservations, key=lambda r: r.start)
    ]
    return to_csv(rows)
