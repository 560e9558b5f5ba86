import threading
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from agrirent.errors import Conflict, StorageFailure, Timeout
from agrirent.extensions import db

# PostgreSQL lock_not_available / deadlock_detected.
LOCK_ERROR_CODES = {"55P03", "40P01"}


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class EntityLockRegistry:
    """In-process mutual exclusion keyed by (kind, id).

    Row locks taken with ``with_for_update`` cover other processes; this keeps
    threads of one worker from racing before the database sees either of them.
    An entry lives only while some thread holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def __len__(self):
        with self._guard:
            return len(self._locks)

    def _checkout(self, name):
        with self._guard:
            entry = self._locks.get(name)
            if entry is None:
                entry = self._locks[name] = _LockEntry()
            entry.users += 1
            return entry

    def _checkin(self, name, entry):
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[name]

    @contextmanager
    def hold(self, kind, key, timeout=None):
        if timeout is None:
            timeout = current_app.config["BOOKING_LOCK_TIMEOUT"]
        name = (kind, str(key))
        entry = self._checkout(name)
        try:
            if not entry.lock.acquire(timeout=timeout):
                current_app.logger.warning("Timed out after %ss waiting for %s %s", timeout, kind, key)
                raise Timeout(f"Timed out waiting for {kind} {key}. Retry the request.")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(name, entry)


entity_locks = EntityLockRegistry()


def apply_lock_timeout():
    """Bound row-lock waits for the current transaction where the backend supports it."""
    if db.session.get_bind().dialect.name != "postgresql":
        return
    millis = int(current_app.config["BOOKING_LOCK_TIMEOUT"] * 1000)
    db.session.execute(text(f"SET LOCAL lock_timeout = {millis}"))


def _is_lock_error(exc):
    pgcode = getattr(exc.orig, "pgcode", None)
    return pgcode in LOCK_ERROR_CODES or "database is locked" in str(exc.orig).lower()


@contextmanager
def unit_of_work():
    """Roll back on any failure and translate storage errors.

    ``StaleDataError`` is re-raised untouched so callers can retry.
    """
    try:
        yield
    except StaleDataError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning("Integrity conflict: %s", exc.orig)
        raise Conflict("Concurrent update detected. Retry the request.") from exc
    except OperationalError as exc:
        db.session.rollback()
        if _is_lock_error(exc):
            current_app.logger.warning("Row lock wait exceeded: %s", exc.orig)
            raise Timeout("Timed out waiting for a database lock. Retry the request.") from exc
        current_app.logger.error("Storage failure: %s", exc.orig)
        raise StorageFailure("Storage unavailable. Retry the request.") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Storage failure: %s", exc)
        raise StorageFailure("Storage unavailable. Retry the request.") from exc
    except Exception:
        db.session.rollback()
        raise
