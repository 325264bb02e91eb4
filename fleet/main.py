"""FastAPI application — entry point for the fleet reservation service."""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from fleet.domain.bus import EventBus
from fleet.domain.events import (
    ReservationClosed,
    ReservationConfirmed,
    ReservationConflictRejected,
    ReservationRescheduled,
)
from fleet.domain.handlers import HandlerRegistry
from fleet.domain.models import (
    AvailabilityRequest,
    ConflictQuery,
    ConflictResult,
    FleetStatistics,
    HistoryEntry,
    InspectionWarning,
    IntervalStatus,
    InvalidInterval,
    InvalidTransition,
    Reservation,
    ReservationConflict,
    ReservationRequest,
    ReservationUpdate,
    Vehicle,
    VehicleData,
    VehicleStatus,
    VehicleType,
)
from fleet.repos.memory import (
    HistoryRepository,
    ReservationRepository,
    VehicleRepository,
    create_memory_repositories,
)
from fleet.repos.strapi import (
    BackendError,
    StrapiClient,
    StrapiReservationRepository,
    StrapiVehicleRepository,
)
from fleet.services.conflicts import check_availability
from fleet.services.export import reservations_csv
from fleet.services.inspections import inspection_warnings
from fleet.services.statistics import fleet_statistics
from fleet.services.vehicles import filter_vehicles
from fleet.utils.config import Config, get_config
from fleet.utils.logger import setup_logging

config = get_config()
setup_logging(config.log_level)
logger = logging.getLogger(__name__)

local_tz = ZoneInfo(config.timezone)


def _build_repositories(config: Config):
    """Return ``(client, vehicle_repo, reservation_repo)``; client is None in memory mode."""
    if config.backend == "strapi":
        logger.info("Using Strapi backend at %s", config.strapi_url)
        client = StrapiClient(
            config.strapi_url, timeout=config.strapi_timeout, token=config.strapi_token
        )
        return (
            client,
            StrapiVehicleRepository(client),
            StrapiReservationRepository(client, local_tz),
        )
    if config.backend != "memory":
        raise ValueError(f"Unknown FLEET_BACKEND {config.backend!r}")
    if config.seed_demo_data:
        return (None, *create_memory_repositories())
    return None, VehicleRepository(), ReservationRepository()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if strapi_client is not None:
        logger.info("Closing Strapi client")
        strapi_client.close()


app = FastAPI(title="Fleet Reservation Service", lifespan=lifespan)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
strapi_client, vehicle_repo, reservation_repo = _build_repositories(config)
history_repo = HistoryRepository()

handler_registry = HandlerRegistry(
    bus=event_bus,
    vehicle_repo=vehicle_repo,
    reservation_repo=reservation_repo,
    history_repo=history_repo,
)

# Availability check, write and history must not interleave within this process.
# Across processes the backend has to enforce exclusion itself.
_booking_lock = threading.Lock()


@app.exception_handler(BackendError)
def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ── Helpers ───────────────────────────────────────────────────────────


def _today(today: date | None) -> date:
    return today or datetime.now(local_tz).date()


def _get_vehicle_or_404(vehicle_id: str) -> Vehicle:
    vehicle = vehicle_repo.get(vehicle_id)
    if vehicle is None:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


def _get_reservation_or_404(reservation_id: str) -> Reservation:
    reservation = reservation_repo.get(reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return reservation


def _check(
    vehicle_id: str, start: datetime, end: datetime, exclude_id: str | None = None
) -> ConflictResult:
    query = ConflictQuery(
        resource_id=vehicle_id, start=start, end=end, exclude_interval_id=exclude_id
    )
    existing = [r.to_interval() for r in reservation_repo.list_for_vehicle(vehicle_id)]
    try:
        return check_availability(query, existing)
    except InvalidInterval as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _conflict_response(
    vehicle_id: str, start: datetime, end: datetime, result: ConflictResult
) -> JSONResponse:
    event_bus.publish(
        ReservationConflictRejected(
            vehicle_id=vehicle_id,
            start=start,
            end=end,
            conflicting_ids=[c.id for c in result.conflicts],
        )
    )
    body = ReservationConflict(
        detail="Vehicle is already reserved in this period",
        conflicts=result.conflicts,
    )
    return JSONResponse(status_code=409, content=body.model_dump(mode="json"))


def _close(reservation_id: str, status: IntervalStatus) -> Reservation:
    with _booking_lock:
        reservation = _get_reservation_or_404(reservation_id)
        try:
            reservation.transition(status)
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        reservation = reservation_repo.update(reservation)
        event_bus.publish(
            ReservationClosed(
                reservation_id=reservation.id,
                vehicle_id=reservation.vehicle_id,
                status=status,
            )
        )
    return reservation


# ── Vehicle routes ────────────────────────────────────────────────────


@app.get("/vehicles", response_model=list[Vehicle])
def list_vehicles(
    search: str | None = None,
    status: VehicleStatus | None = None,
    vehicle_type: VehicleType | None = None,
    inspection_warning: bool = False,
    today: date | None = None,
) -> list[Vehicle]:
    """Return vehicles, optionally narrowed by search text and filters."""
    return filter_vehicles(
        vehicle_repo.list_all(),
        today=_today(today),
        search=search,
        status=status,
        vehicle_type=vehicle_type,
        inspection_warning=inspection_warning,
        warning_days=config.inspection_warning_days,
    )


@app.post("/vehicles", response_model=Vehicle, status_code=201)
def create_vehicle(payload: VehicleData) -> Vehicle:
    vehicle = vehicle_repo.add(Vehicle(**payload.model_dump()))
    logger.info("Created vehicle %s (%s)", vehicle.license_plate, vehicle.id)
    return vehicle


@app.get("/vehicles/statistics", response_model=FleetStatistics)
def get_fleet_statistics(today: date | None = None) -> FleetStatistics:
    """Return the fleet dashboard counters."""
    return fleet_statistics(
        vehicle_repo.list_all(), _today(today), config.inspection_warning_days
    )


@app.get("/vehicles/inspection-warnings", response_model=list[InspectionWarning])
def list_inspection_warnings(
    today: date | None = None, warning_days: int | None = None
) -> list[InspectionWarning]:
    """Return vehicles whose TÜV expires within the warning window."""
    days = warning_days if warning_days is not None else config.inspection_warning_days
    return inspection_warnings(vehicle_repo.list_all(), _today(today), days)


@app.get("/vehicles/{vehicle_id}", response_model=Vehicle)
def get_vehicle(vehicle_id: str) -> Vehicle:
    return _get_vehicle_or_404(vehicle_id)


@app.put("/vehicles/{vehicle_id}", response_model=Vehicle)
def update_vehicle(vehicle_id: str, payload: VehicleData) -> Vehicle:
    _get_vehicle_or_404(vehicle_id)
    return vehicle_repo.update(Vehicle(id=vehicle_id, **payload.model_dump()))


@app.delete("/vehicles/{vehicle_id}", status_code=200)
def delete_vehicle(vehicle_id: str) -> dict:
    _get_vehicle_or_404(vehicle_id)
    vehicle_repo.delete(vehicle_id)
    logger.info("Deleted vehicle %s", vehicle_id)
    return {"status": "deleted"}


@app.get("/vehicles/{vehicle_id}/reservations", response_model=list[Reservation])
def list_vehicle_reservations(vehicle_id: str) -> list[Reservation]:
    """Return all reservations of one vehicle, earliest first."""
    _get_vehicle_or_404(vehicle_id)
    return reservation_repo.list_for_vehicle(vehicle_id)


# ── Reservation routes ────────────────────────────────────────────────


@app.get("/reservations", response_model=list[Reservation])
def list_reservations(
    status: IntervalStatus | None = None, vehicle_id: str | None = None
) -> list[Reservation]:
    if vehicle_id is not None:
        reservations = reservation_repo.list_for_vehicle(vehicle_id)
    else:
        reservations = reservation_repo.list_all()
    if status is not None:
        reservations = [r for r in reservations if r.status == status]
    return sorted(reservations, key=lambda r: r.start)


@app.post("/reservations/check-availability", response_model=ConflictResult)
def check_reservation_availability(body: AvailabilityRequest) -> ConflictResult:
    """Report whether a vehicle is free for the requested span.

    Pass *exclude_reservation_id* when checking the new span of a reservation
    that is being edited.
    """
    return _check(body.vehicle_id, body.start, body.end, body.exclude_reservation_id)


@app.post(
    "/reservations",
    response_model=Reservation,
    status_code=201,
    responses={409: {"model": ReservationConflict}},
)
def create_reservation(body: ReservationRequest) -> Reservation:
    """Reserve a vehicle if no active reservation overlaps the requested span."""
    _get_vehicle_or_404(body.vehicle_id)

    with _booking_lock:
        result = _check(body.vehicle_id, body.start, body.end)
        if not result.available:
            return _conflict_response(body.vehicle_id, body.start, body.end, result)
        reservation = reservation_repo.add(Reservation(**body.model_dump()))
        event_bus.publish(
            ReservationConfirmed(
                reservation_id=reservation.id, vehicle_id=reservation.vehicle_id
            )
        )

    logger.info(
        "Reserved vehicle %s for %s (%s)",
        reservation.vehicle_id,
        reservation.employee_name,
        reservation.id,
    )
    return reservation


@app.get("/reservations/export.csv")
def export_reservations(
    status: IntervalStatus | None = None, vehicle_id: str | None = None
) -> Response:
    """Download the reservation list as CSV."""
    reservations = list_reservations(status=status, vehicle_id=vehicle_id)
    content = reservations_csv(reservations, vehicle_repo.list_all(), tz=local_tz)
    filename = f"reservierungen_{datetime.now(local_tz).date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/reservations/{reservation_id}", response_model=Reservation)
def get_reservation(reservation_id: str) -> Reservation:
    return _get_reservation_or_404(reservation_id)


@app.put(
    "/reservations/{reservation_id}",
    response_model=Reservation,
    responses={409: {"model": ReservationConflict}},
)
def update_reservation(reservation_id: str, body: ReservationUpdate) -> Reservation:
    """Edit an active reservation; its own previous span never counts as a conflict."""
    with _booking_lock:
        reservation = _get_reservation_or_404(reservation_id)
        if reservation.status != IntervalStatus.ACTIVE:
            raise HTTPException(
                status_code=409, detail=f"Reservation is already {reservation.status}"
            )

        result = _check(reservation.vehicle_id, body.start, body.end, exclude_id=reservation.id)
        if not result.available:
            return _conflict_response(reservation.vehicle_id, body.start, body.end, result)

        previous_start, previous_end = reservation.start, reservation.end
        updated = reservation_repo.update(
            Reservation(
                id=reservation.id,
                vehicle_id=reservation.vehicle_id,
                status=reservation.status,
                created_at=reservation.created_at,
                **body.model_dump(),
            )
        )
        if (previous_start, previous_end) != (updated.start, updated.end):
            event_bus.publish(
                ReservationRescheduled(
                    reservation_id=updated.id,
                    previous_start=previous_start,
                    previous_end=previous_end,
                )
            )
    return updated


@app.post("/reservations/{reservation_id}/complete", response_model=Reservation)
def complete_reservation(reservation_id: str) -> Reservation:
    return _close(reservation_id, IntervalStatus.COMPLETED)


@app.post("/reservations/{reservation_id}/cancel", response_model=Reservation)
def cancel_reservation(reservation_id: str) -> Reservation:
    return _close(reservation_id, IntervalStatus.CANCELLED)


@app.get("/reservations/{reservation_id}/history", response_model=list[HistoryEntry])
def get_reservation_history(reservation_id: str) -> list[HistoryEntry]:
    """Return the lifecycle entries of a reservation, oldest first."""
    _get_reservation_or_404(reservation_id)
    return history_repo.list_for_reservation(reservation_id)
