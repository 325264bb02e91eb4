"""In-memory repositories for vehicles, reservations and reservation history."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from fleet.domain.models import (
    FuelType,
    HistoryEntry,
    Reservation,
    Vehicle,
    VehicleStatus,
    VehicleType,
)


class VehicleRepository:
    """Dict-backed store for Vehicle instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Vehicle] = {}

    def add(self, vehicle: Vehicle) -> Vehicle:
        self._store[vehicle.id] = vehicle
        return vehicle

    def get(self, vehicle_id: str) -> Vehicle | None:
        return self._store.get(vehicle_id)

    def list_all(self) -> list[Vehicle]:
        return list(self._store.values())

    def update(self, vehicle: Vehicle) -> Vehicle:
        self._store[vehicle.id] = vehicle
        return vehicle

    def delete(self, vehicle_id: str) -> None:
        self._store.pop(vehicle_id, None)


class ReservationRepository:
    """Dict-backed store for Reservation instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Reservation] = {}

    def add(self, reservation: Reservation) -> Reservation:
        self._store[reservation.id] = reservation
        return reservation

    def get(self, reservation_id: str) -> Reservation | None:
        return self._store.get(reservation_id)

    def list_all(self) -> list[Reservation]:
        return list(self._store.values())

    def list_for_vehicle(self, vehicle_id: str) -> list[Reservation]:
        """Return every reservation of one vehicle, earliest start first."""
        return sorted(
            [r for r in self._store.values() if r.vehicle_id == vehicle_id],
            key=lambda r: r.start,
        )

    def update(self, reservation: Reservation) -> Reservation:
        self._store[reservation.id] = reservation
        return reservation


class HistoryRepository:
    """List-backed store for HistoryEntry instances."""

    def __init__(self) -> None:
        self._entries: list[HistoryEntry] = []

    def add(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def list_for_reservation(self, reservation_id: str) -> list[HistoryEntry]:
        return sorted(
            [e for e in self._entries if e.reservation_id == reservation_id],
            key=lambda e: e.timestamp,
        )


# ---------------------------------------------------------------------------
# Seed data – the demo fleet shown before a CMS is connected
# ---------------------------------------------------------------------------


def _seed_fleet(vehicles: VehicleRepository, reservations: ReservationRepository) -> None:
    today = date.today()

    vehicles.add(
        Vehicle(
            license_plate="ABC-123",
            make="Volkswagen",
            model="Golf",
            year=2020,
            vehicle_type=VehicleType.CAR,
            fuel_type=FuelType.DIESEL,
            consumption=5.5,
            tank_size=50,
            mileage=45000,
            inspection_due=today + timedelta(days=150),
            insurance_due=today + timedelta(days=300),
            status=VehicleStatus.AVAILABLE,
            location="Hauptstandort",
        )
    )
    sprinter = vehicles.add(
        Vehicle(
            license_plate="DEF-456",
            make="Mercedes",
            model="Sprinter",
            year=2019,
            vehicle_type=VehicleType.VAN,
            fuel_type=FuelType.DIESEL,
            consumption=8.2,
            tank_size=75,
            mileage=78000,
            # Close enough to show up among the inspection warnings
            inspection_due=today + timedelta(days=20),
            insurance_due=today + timedelta(days=200),
            status=VehicleStatus.RESERVED,
            location="Außenstelle Nord",
        )
    )

    tomorrow = datetime.now(timezone.utc).replace(
        hour=8, minute=0, second=0, microsecond=0
    ) + timedelta(days=1)
    reservations.add(
        Reservation(
            vehicle_id=sprinter.id,
            employee_name="Max Mustermann",
            start=tomorrow,
            end=tomorrow + timedelta(hours=8),
            purpose="Kundenbesuch",
        )
    )


def create_memory_repositories() -> tuple[VehicleRepository, ReservationRepository]:
    """Return vehicle and reservation repositories pre-loaded with sample data."""
    vehicles = VehicleRepository()
    reservations = ReservationRepository()
    _seed_fleet(vehicles, reservations)
    return vehicles, reservations
