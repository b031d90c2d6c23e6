"""
Tenant-scoped data access.

Every method takes the owner id explicitly; nothing here reads the
current request or any other ambient state.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from errors import ConflictError
from models import (
    db, OwnerSettings, ParkingSession, VehicleHistory,
    STATUS_ACTIVE, STATUS_COMPLETED, utcnow,
)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
RECENT_LIMIT = 10


class SessionRepository:

    def __init__(self, session=None):
        self.db_session = session if session is not None else db.session

    def _owned(self, owner_id):
        return self.db_session.query(ParkingSession).filter(ParkingSession.owner_id == owner_id)

    def get(self, owner_id, session_id):
        """Return the owner's session with this id, or None."""
        return self._owned(owner_id).filter(ParkingSession.id == session_id).first()

    def find_active(self, owner_id, vehicle_number):
        """Most recently entered active session for a vehicle, or None."""
        return (
            self._owned(owner_id)
            .filter(
                ParkingSession.vehicle_number == vehicle_number,
                ParkingSession.status == STATUS_ACTIVE,
            )
            .order_by(ParkingSession.entry_time.desc())
            .first()
        )

    def add(self, parking_session):
        """
        Insert a new session.

        Raises:
            ConflictError: if the active-vehicle unique index rejects the row
        """
        self.db_session.add(parking_session)
        try:
            self.db_session.commit()
        except IntegrityError:
            self.db_session.rollback()
            raise ConflictError('Vehicle already has an active parking session', field='vehicle_number')
        return parking_session

    def save(self, parking_session):
        self.db_session.add(parking_session)
        self.db_session.commit()
        return parking_session

    def count_active(self, owner_id, entered_since=None):
        query = self._owned(owner_id).filter(ParkingSession.status == STATUS_ACTIVE)
        if entered_since is not None:
            query = query.filter(ParkingSession.entry_time >= entered_since)
        return query.count()

    def completed_exited_since(self, owner_id, since):
        """Completed sessions whose exit time is at or after `since` (naive UTC)."""
        return (
            self._owned(owner_id)
            .filter(
                ParkingSession.status == STATUS_COMPLETED,
                ParkingSession.exit_time.isnot(None),
                ParkingSession.exit_time >= since,
            )
            .order_by(ParkingSession.exit_time)
            .all()
        )

    def recent(self, owner_id, limit=RECENT_LIMIT):
        return (
            self._owned(owner_id)
            .order_by(ParkingSession.entry_time.desc())
            .limit(limit)
            .all()
        )

    def search(self, owner_id, query, limit=SEARCH_LIMIT):
        """Case-insensitive substring match on the vehicle number."""
        return (
            self._owned(owner_id)
            .filter(func.lower(ParkingSession.vehicle_number).contains(query.lower(), autoescape=True))
            .order_by(ParkingSession.entry_time.desc())
            .limit(limit)
            .all()
        )


class SettingsStore:

    def __init__(self, session=None, defaults=None):
        self.db_session = session if session is not None else db.session
        self.defaults = defaults or {}

    def get(self, owner_id):
        return self.db_session.query(OwnerSettings).filter_by(owner_id=owner_id).first()

    def upsert(self, owner_id, **changes):
        """Apply changes to the owner's settings, creating the row from defaults if needed."""
        settings = self.get(owner_id)
        if settings is None:
            settings = OwnerSettings(owner_id=owner_id, **self.defaults)
            self.db_session.add(settings)
        for key, value in changes.items():
            setattr(settings, key, value)
        self.db_session.commit()
        return settings


class VehicleHistoryRepository:

    def __init__(self, session=None):
        self.db_session = session if session is not None else db.session

    def get(self, owner_id, vehicle_number):
        return self.db_session.query(VehicleHistory).filter_by(owner_id=owner_id, vehicle_number=vehicle_number).first()

    def record_visit(self, owner_id, vehicle_number, visited_at=None):
        """Count one more visit for the vehicle, in its own transaction."""
        try:
            history = self.get(owner_id, vehicle_number)
            if history is None:
                history = VehicleHistory(owner_id=owner_id, vehicle_number=vehicle_number, total_visits=0)
                self.db_session.add(history)
            history.total_visits += 1
            history.last_visit = visited_at or utcnow()
            self.db_session.commit()
        except Exception:
            self.db_session.rollback()
            raise
        return history

    def rebuild(self, owner_id):
        """Recompute the owner's history rows from their session records."""
        rows = (
            self.db_session.query(
                ParkingSession.vehicle_number,
                func.count(ParkingSession.id),
                func.max(ParkingSession.entry_time),
            )
            .filter(ParkingSession.owner_id == owner_id)
            .group_by(ParkingSession.vehicle_number)
            .all()
        )
        self.db_session.query(VehicleHistory).filter_by(owner_id=owner_id).delete()
        for vehicle_number, visits, last_visit in rows:
            self.db_session.add(VehicleHistory(
                owner_id=owner_id,
                vehicle_number=vehicle_number,
                total_visits=visits,
                last_visit=last_visit,
            ))
        self.db_session.commit()
        logger.info('Rebuilt vehicle history for owner %s (%d vehicles)', owner_id, len(rows))
        return len(rows)
