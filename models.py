import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

STATUS_ACTIVE = 'active'
STATUS_COMPLETED = 'completed'

AMOUNT_AUTO = 'auto'
AMOUNT_MANUAL = 'manual'


def utcnow():
    """Current time as naive UTC, the form every timestamp is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _isoformat(value):
    return value.isoformat() if value else None


class OwnerSettings(db.Model):
    __tablename__ = 'owner_settings'

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.String(64), unique=True, nullable=False)
    hourly_rate = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(3), nullable=False, default='USD')
    auto_calculate = db.Column(db.Boolean, nullable=False, default=True)
    whatsapp_enabled = db.Column(db.Boolean, nullable=False, default=True)
    whatsapp_number = db.Column(db.String(32), nullable=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'owner_id': self.owner_id,
            'hourly_rate': self.hourly_rate,
            'currency': self.currency,
            'auto_calculate': self.auto_calculate,
            'whatsapp_enabled': self.whatsapp_enabled,
            'whatsapp_number': self.whatsapp_number,
            'updated_at': _isoformat(self.updated_at),
        }


class ParkingSession(db.Model):
    __tablename__ = 'parking_sessions'
    # One open session per vehicle per owner; the database settles racing entries
    __table_args__ = (
        db.Index(
            'uq_parking_sessions_active_vehicle',
            'owner_id', 'vehicle_number',
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index('ix_parking_sessions_owner_entry', 'owner_id', 'entry_time'),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = db.Column(db.String(64), nullable=False)
    vehicle_number = db.Column(db.String(20), nullable=False)
    entry_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    exit_time = db.Column(db.DateTime, nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)
    amount = db.Column(db.Float, nullable=True)
    amount_type = db.Column(db.String(10), nullable=True)
    status = db.Column(db.String(10), nullable=False, default=STATUS_ACTIVE)
    receipt_sent = db.Column(db.Boolean, nullable=False, default=False)
    receipt_sent_at = db.Column(db.DateTime, nullable=True)
    entry_image_url = db.Column(db.String(500), nullable=True)
    exit_image_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_active(self):
        return self.status == STATUS_ACTIVE

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'vehicle_number': self.vehicle_number,
            'entry_time': _isoformat(self.entry_time),
            'exit_time': _isoformat(self.exit_time),
            'duration_minutes': self.duration_minutes,
            'amount': self.amount,
            'amount_type': self.amount_type,
            'status': self.status,
            'receipt_sent': self.receipt_sent,
            'receipt_sent_at': _isoformat(self.receipt_sent_at),
            'entry_image_url': self.entry_image_url,
            'exit_image_url': self.exit_image_url,
        }


class VehicleHistory(db.Model):
    __tablename__ = 'vehicle_history'
    __table_args__ = (
        db.UniqueConstraint('owner_id', 'vehicle_number', name='uq_vehicle_history_owner_vehicle'),
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.String(64), nullable=False)
    vehicle_number = db.Column(db.String(20), nullable=False)
    total_visits = db.Column(db.Integer, nullable=False, default=0)
    last_visit = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            'vehicle_number': self.vehicle_number,
            'total_visits': self.total_visits,
            'last_visit': _isoformat(self.last_visit),
        }
