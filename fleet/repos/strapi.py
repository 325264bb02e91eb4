"""Repositories backed by a Strapi CMS reachable over REST.

The CMS stores vehicles under ``/vehicles`` and reservations under
``/vehicle-reservations`` with German field names, split date/time columns
and German status values. Everything is translated into the domain models
here, so the rest of the service never sees a wire shape.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, tzinfo
from typing import Any

import httpx

from fleet.domain.models import (
    FuelType,
    IntervalStatus,
    Reservation,
    Vehicle,
    VehicleStatus,
    VehicleType,
)

logger = logging.getLogger(__name__)

VEHICLES = "/vehicles"
RESERVATIONS = "/vehicle-reservations"

_PAGE_SIZE = 100

_VEHICLE_STATUSES = {
    "verfuegbar": VehicleStatus.AVAILABLE,
    "reserviert": VehicleStatus.RESERVED,
    "wartung": VehicleStatus.MAINTENANCE,
    "defekt": VehicleStatus.DEFECTIVE,
}
_RESERVATION_STATUSES = {
    "aktiv": IntervalStatus.ACTIVE,
    "abgeschlossen": IntervalStatus.COMPLETED,
    "storniert": IntervalStatus.CANCELLED,
}
_FUEL_TYPES = {
    "diesel": FuelType.DIESEL,
    "benzin": FuelType.PETROL,
    "elektro": FuelType.ELECTRIC,
    "hybrid": FuelType.HYBRID,
}


def _invert(mapping: dict[str, Any]) -> dict[Any, str]:
    return {value: key for key, value in mapping.items()}


_VEHICLE_STATUS_NAMES = _invert(_VEHICLE_STATUSES)
_RESERVATION_STATUS_NAMES = _invert(_RESERVATION_STATUSES)
_FUEL_TYPE_NAMES = _invert(_FUEL_TYPES)


class BackendError(RuntimeError):
    """Raised when the CMS cannot be reached or returns unusable data."""


# ---------------------------------------------------------------------------
# Wire shape helpers
# ---------------------------------------------------------------------------


def _flatten(entry: dict) -> dict:
    """Collapse a v4 ``{"id", "attributes"}`` entry; flat v5 entries pass through."""
    attributes = entry.get("attributes")
    if isinstance(attributes, dict):
        return {"id": entry.get("id"), **attributes}
    return dict(entry)


def _relation_id(value: Any) -> str | None:
    """Extract the id of a related record from any of the relation shapes."""
    if value is None:
        return None
    if isinstance(value, dict):
        if "data" in value:
            return _relation_id(value["data"])
        return _relation_id(value.get("id"))
    return str(value)


def _wire_id(value: str) -> int | str:
    return int(value) if value.isdigit() else value


def _combine(day: str, clock: str | None, tz: tzinfo) -> datetime:
    # Strapi time columns come back as "HH:MM:SS.mmm", forms send "HH:MM".
    return datetime.combine(
        date.fromisoformat(day), time.fromisoformat((clock or "00:00")[:8]), tzinfo=tz
    )


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


def vehicle_from_strapi(item: dict) -> Vehicle:
    try:
        return Vehicle(
            id=str(item["id"]),
            license_plate=item["kennzeichen"],
            make=item["marke"],
            model=item["modell"],
            year=item["baujahr"],
            vehicle_type=VehicleType(item.get("typ") or VehicleType.CAR),
            fuel_type=_FUEL_TYPES[item.get("kraftstoffart") or "diesel"],
            consumption=item.get("verbrauch") or 0,
            tank_size=item["tankgroesse"],
            mileage=item.get("laufleistung") or 0,
            inspection_due=item["tuev_ablauf"],
            insurance_due=item["versicherung_ablauf"],
            status=_VEHICLE_STATUSES[item.get("status") or "verfuegbar"],
            location=item.get("standort"),
            notes=item.get("notizen"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise BackendError(f"Malformed vehicle record {item.get('id')!r}: {exc}") from exc


def vehicle_to_strapi(vehicle: Vehicle) -> dict:
    return {
        "kennzeichen": vehicle.license_plate,
        "marke": vehicle.make,
        "modell": vehicle.model,
        "baujahr": vehicle.year,
        "typ": str(vehicle.vehicle_type),
        "kraftstoffart": _FUEL_TYPE_NAMES[vehicle.fuel_type],
        "verbrauch": vehicle.consumption,
        "tankgroesse": vehicle.tank_size,
        "laufleistung": vehicle.mileage,
        "tuev_ablauf": vehicle.inspection_due.isoformat(),
        "versicherung_ablauf": vehicle.insurance_due.isoformat(),
        "status": _VEHICLE_STATUS_NAMES[vehicle.status],
        "standort": vehicle.location,
        "notizen": vehicle.notes,
    }


def reservation_from_strapi(
    item: dict, tz: tzinfo, default_vehicle_id: str | None = None
) -> Reservation:
    """Build a Reservation from a flattened CMS record.

    Create/update responses do not populate the vehicle relation, so the
    caller may pass the vehicle id it already knows as *default_vehicle_id*.
    """
    try:
        extra = {}
        if item.get("createdAt"):
            extra["created_at"] = item["createdAt"]
        return Reservation(
            id=str(item["id"]),
            vehicle_id=_relation_id(item.get("vehicle")) or default_vehicle_id,
            employee_name=item["mitarbeiter_name"],
            start=_combine(item["start_datum"], item.get("start_zeit"), tz),
            end=_combine(item["end_datum"], item.get("end_zeit"), tz),
            purpose=item["zweck"],
            planned_km=item.get("geplante_kilometer"),
            status=_RESERVATION_STATUSES[item.get("status") or "aktiv"],
            notes=item.get("notizen"),
            **extra,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise BackendError(f"Malformed reservation record {item.get('id')!r}: {exc}") from exc


def reservation_to_strapi(reservation: Reservation, tz: tzinfo) -> dict:
    start = reservation.start.astimezone(tz)
    end = reservation.end.astimezone(tz)
    return {
        "vehicle": _wire_id(reservation.vehicle_id),
        "mitarbeiter_name": reservation.employee_name,
        "start_datum": start.date().isoformat(),
        "start_zeit": start.strftime("%H:%M"),
        "end_datum": end.date().isoformat(),
        "end_zeit": end.strftime("%H:%M"),
        "zweck": reservation.purpose,
        "geplante_kilometer": reservation.planned_km,
        "status": _RESERVATION_STATUS_NAMES[reservation.status],
        "notizen": reservation.notes,
    }


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


class StrapiClient:
    """Thin synchronous client for Strapi collection endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.Client(
            base_url=base_url, timeout=timeout, headers=headers, transport=transport
        )

    def close(self) -> None:
        self._http.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        allow_missing: bool = False,
    ) -> httpx.Response | None:
        try:
            response = self._http.request(method, path, params=params, json=json)
            if allow_missing and response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise BackendError(f"{method} {path} failed: {exc}") from exc
        return response

    def _json(self, method: str, path: str, response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError as exc:
            logger.error("%s %s returned a non-JSON body", method, path)
            raise BackendError(f"{method} {path} returned a non-JSON body") from exc
        if not isinstance(body, dict):
            raise BackendError(f"{method} {path} returned {type(body).__name__}, not an object")
        return body

    def _entry(self, method: str, path: str, response: httpx.Response) -> dict:
        body = self._json(method, path, response)
        try:
            return _flatten(body["data"])
        except (KeyError, TypeError, AttributeError) as exc:
            raise BackendError(f"{method} {path} returned no entry") from exc

    def list(self, collection: str, params: dict | None = None) -> list[dict]:
        """Return every entry of *collection*, following the pagination metadata."""
        items: list[dict] = []
        page = 1
        while True:
            query = dict(params or {})
            query["pagination[page]"] = page
            query["pagination[pageSize]"] = _PAGE_SIZE
            body = self._json("GET", collection, self._request("GET", collection, params=query))
            try:
                items.extend(_flatten(entry) for entry in body.get("data") or [])
                pagination = (body.get("meta") or {}).get("pagination") or {}
                page_count = int(pagination.get("pageCount") or 1)
            except (TypeError, ValueError, AttributeError) as exc:
                raise BackendError(f"GET {collection} returned a malformed page") from exc
            if page >= page_count:
                return items
            page += 1

    def get(self, collection: str, entry_id: str, params: dict | None = None) -> dict | None:
        path = f"{collection}/{entry_id}"
        response = self._request("GET", path, params=params, allow_missing=True)
        if response is None:
            return None
        data = self._json("GET", path, response).get("data")
        if not data:
            return None
        if not isinstance(data, dict):
            raise BackendError(f"GET {path} returned no entry")
        return _flatten(data)

    def create(self, collection: str, data: dict) -> dict:
        response = self._request("POST", collection, json={"data": data})
        return self._entry("POST", collection, response)

    def update(self, collection: str, entry_id: str, data: dict) -> dict:
        path = f"{collection}/{entry_id}"
        response = self._request("PUT", path, json={"data": data})
        return self._entry("PUT", path, response)

    def delete(self, collection: str, entry_id: str) -> None:
        self._request("DELETE", f"{collection}/{entry_id}", allow_missing=True)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class StrapiVehicleRepository:
    """Vehicle store on the ``/vehicles`` collection."""

    def __init__(self, client: StrapiClient) -> None:
        self._client = client

    def add(self, vehicle: Vehicle) -> Vehicle:
        return vehicle_from_strapi(self._client.create(VEHICLES, vehicle_to_strapi(vehicle)))

    def get(self, vehicle_id: str) -> Vehicle | None:
        item = self._client.get(VEHICLES, vehicle_id)
        return vehicle_from_strapi(item) if item else None

    def list_all(self) -> list[Vehicle]:
        items = self._client.list(VEHICLES, {"sort": "kennzeichen:asc"})
        return [vehicle_from_strapi(item) for item in items]

    def update(self, vehicle: Vehicle) -> Vehicle:
        item = self._client.update(VEHICLES, vehicle.id, vehicle_to_strapi(vehicle))
        return vehicle_from_strapi(item)

    def delete(self, vehicle_id: str) -> None:
        self._client.delete(VEHICLES, vehicle_id)


class StrapiReservationRepository:
    """Reservation store on the ``/vehicle-reservations`` collection."""

    def __init__(self, client: StrapiClient, tz: tzinfo) -> None:
        self._client = client
        self._tz = tz

    def add(self, reservation: Reservation) -> Reservation:
        item = self._client.create(RESERVATIONS, reservation_to_strapi(reservation, self._tz))
        return reservation_from_strapi(item, self._tz, reservation.vehicle_id)

    def get(self, reservation_id: str) -> Reservation | None:
        item = self._client.get(RESERVATIONS, reservation_id, {"populate": "vehicle"})
        return reservation_from_strapi(item, self._tz) if item else None

    def list_all(self) -> list[Reservation]:
        items = self._client.list(RESERVATIONS, {"populate": "vehicle"})
        return [reservation_from_strapi(item, self._tz) for item in items]

    def list_for_vehicle(self, vehicle_id: str) -> list[Reservation]:
        """Return every reservation of one vehicle, earliest start first."""
        items = self._client.list(
            RESERVATIONS,
            {
                "filters[vehicle][id][$eq]": vehicle_id,
                "populate": "vehicle",
                "sort": "start_datum:asc",
            },
        )
        reservations = [reservation_from_strapi(item, self._tz, vehicle_id) for item in items]
        return sorted(reservations, key=lambda r: r.start)

    def update(self, reservation: Reservation) -> Reservation:
        item = self._client.update(
            RESERVATIONS, reservation.id, reservation_to_strapi(reservation, self._tz)
        )
        return reservation_from_strapi(item, self._tz, reservation.vehicle_id)
