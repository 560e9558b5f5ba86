import threading
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from agrirent import create_app
from agrirent.config import TestingConfig
from agrirent.errors import Conflict, EquipmentUnavailable, NotFound, StorageFailure, Timeout
from agrirent.extensions import db
from agrirent.models import Booking
from agrirent.models.enums import Role
from agrirent.services import Actor, BookingService
from agrirent.services.transaction import entity_locks, unit_of_work


def at(hour, day=1):
    return datetime(2030, 6, day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture()
def file_app(tmp_path, seeder):
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'agrirent.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 15}}
        BOOKING_LOCK_TIMEOUT = 10.0

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        ids = seeder()
        db.session.remove()
    yield app, ids
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def test_concurrent_overlapping_bookings_one_wins(file_app):
    app, ids = file_app
    renters = [Actor(ids.farmer, Role.FARMER), Actor(ids.other_farmer, Role.FARMER)]
    barrier = threading.Barrier(len(renters))
    outcomes = []
    outcomes_lock = threading.Lock()

    def attempt(renter, start, end):
        with app.app_context():
            barrier.wait()
            try:
                BookingService.create_booking(renter, ids.equipment, start, end)
                result = "booked"
            except EquipmentUnavailable:
                result = "unavailable"
            finally:
                db.session.remove()
            with outcomes_lock:
                outcomes.append(result)

    threads = [
        threading.Thread(target=attempt, args=(renters[0], at(10), at(12))),
        threading.Thread(target=attempt, args=(renters[1], at(11), at(13))),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["booked", "unavailable"]
    with app.app_context():
        assert Booking.query.filter_by(equipment_id=ids.equipment).count() == 1


def test_lock_wait_gives_up_with_timeout(ctx, seed, actors):
    booking = BookingService.create_booking(actors.farmer, seed.equipment, at(10), at(12))
    ctx.config["BOOKING_LOCK_TIMEOUT"] = 0.05

    with entity_locks.hold("booking", booking.id, timeout=1):
        with pytest.raises(Timeout):
            BookingService.transition_booking(booking.id, "confirmed", actors.owner)

    assert db.session.get(Booking, booking.id).status == "pending"


def test_version_conflict_is_retried_then_reported(ctx, seed, actors, monkeypatch):
    booking = BookingService.create_booking(actors.farmer, seed.equipment, at(10), at(12))
    calls = []

    def stale_commit():
        calls.append(1)
        raise StaleDataError("bookings row changed")

    monkeypatch.setattr(db.session, "commit", stale_commit)
    with pytest.raises(Conflict):
        BookingService.transition_booking(booking.id, "confirmed", actors.owner)
    monkeypatch.undo()

    assert len(calls) == ctx.config["BOOKING_MAX_RETRIES"]
    assert db.session.get(Booking, booking.id).status == "pending"


def test_version_conflict_recovers_on_retry(ctx, seed, actors, monkeypatch):
    booking = BookingService.create_booking(actors.farmer, seed.equipment, at(10), at(12))
    real_commit = db.session.commit
    calls = []

    def flaky_commit():
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError("bookings row changed")
        return real_commit()

    monkeypatch.setattr(db.session, "commit", flaky_commit)
    updated = BookingService.transition_booking(booking.id, "confirmed", actors.owner)
    monkeypatch.undo()

    assert len(calls) == 2
    assert updated.status == "confirmed"
    assert [event.status for event in updated.history] == ["pending", "confirmed"]


@pytest.mark.parametrize(
    "error, expected",
    [
        (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), Conflict),
        (OperationalError("UPDATE", {}, Exception("database is locked")), Timeout),
        (OperationalError("SELECT", {}, Exception("disk I/O error")), StorageFailure),
    ],
)
def test_storage_errors_are_translated(ctx, error, expected):
    with pytest.raises(expected):
        with unit_of_work():
            raise error


def test_lock_registry_forgets_released_entries(ctx, seed, actors):
    before = len(entity_locks)
    for missing_id in range(1000, 1200):
        with pytest.raises(NotFound):
            BookingService.transition_booking(missing_id, "confirmed", actors.owner)
    assert len(entity_locks) == before

    booking = BookingService.create_booking(actors.farmer, seed.equipment, at(10), at(12))
    BookingService.transition_booking(booking.id, "confirmed", actors.owner)
    BookingService.transition_booking(booking.id, "cancelled", actors.farmer)
    assert len(entity_locks) == before


def test_lock_entry_lives_while_held(ctx):
    before = len(entity_locks)
    with entity_locks.hold("booking", "held", timeout=1):
        assert len(entity_locks) == before + 1
        with pytest.raises(Timeout):
            with entity_locks.hold("booking", "held", timeout=0.01):
                pass
        assert len(entity_locks) == before + 1
    assert len(entity_locks) == before
