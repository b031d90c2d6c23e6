"""
Parking session lifecycle: entry -> exit -> charge -> receipt.
"""
import logging
from dataclasses import dataclass

from broadcast import VEHICLE_ENTERED, VEHICLE_EXITED
from charges import compute_charge, compute_duration_minutes
from errors import (
    ConfigError, ConflictError, InvalidArgumentError, InvalidStateError,
    NotFoundError, ValidationError,
)
from models import (
    ParkingSession, STATUS_ACTIVE, STATUS_COMPLETED, AMOUNT_AUTO, AMOUNT_MANUAL, utcnow,
)
from notifications import format_receipt

logger = logging.getLogger(__name__)


@dataclass
class ReceiptResult:
    delivered: bool


class ParkingService:

    def __init__(self, sessions, settings, history, dispatcher, broadcaster, clock=utcnow):
        self.sessions = sessions
        self.settings = settings
        self.history = history
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster
        self.clock = clock

    # ============================================
    # Transitions
    # ============================================

    def record_entry(self, owner_id, vehicle_number, image_url=None, timestamp=None):
        """
        Open a session for a vehicle.

        Raises:
            ConflictError: the vehicle already has an active session
        """
        if self.sessions.find_active(owner_id, vehicle_number):
            raise ConflictError('Vehicle already has an active parking session', field='vehicle_number')

        parking_session = ParkingSession(
            owner_id=owner_id,
            vehicle_number=vehicle_number,
            entry_time=timestamp or self.clock(),
            entry_image_url=image_url,
            status=STATUS_ACTIVE,
        )
        self.sessions.add(parking_session)

        logger.info('Vehicle entry recorded: session=%s vehicle=%s owner=%s',
                    parking_session.id, vehicle_number, owner_id)

        self._record_visit(owner_id, vehicle_number, parking_session.entry_time)
        self._publish(owner_id, VEHICLE_ENTERED, parking_session, parking_session.entry_time)
        return parking_session

    def record_exit(self, owner_id, vehicle_number, image_url=None, timestamp=None):
        """
        Close the vehicle's active session and auto-charge it when the owner allows.

        Raises:
            NotFoundError: no active session for the vehicle
            ValidationError: the exit time is before the entry time
        """
        parking_session = self.sessions.find_active(owner_id, vehicle_number)
        if not parking_session:
            raise NotFoundError('No active parking session found for this vehicle', field='vehicle_number')

        exit_time = timestamp or self.clock()
        try:
            duration = compute_duration_minutes(parking_session.entry_time, exit_time)
        except InvalidArgumentError as e:
            raise ValidationError(e.message, field='timestamp')

        amount = None
        owner_settings = self.settings.get(owner_id)
        if owner_settings and owner_settings.auto_calculate and owner_settings.hourly_rate > 0:
            amount = compute_charge(duration, owner_settings.hourly_rate)

        parking_session.exit_time = exit_time
        parking_session.exit_image_url = image_url
        parking_session.duration_minutes = duration
        parking_session.amount = amount
        parking_session.amount_type = AMOUNT_AUTO if amount is not None else None
        parking_session.status = STATUS_COMPLETED
        self.sessions.save(parking_session)

        logger.info('Vehicle exit recorded: session=%s vehicle=%s duration=%s amount=%s',
                    parking_session.id, vehicle_number, duration, amount)

        self._publish(owner_id, VEHICLE_EXITED, parking_session, exit_time)
        return parking_session

    def calculate_charge(self, owner_id, session_id, amount=None, hourly_rate=None):
        """
        Set a completed session's amount, either manually or from a rate.

        A manual amount wins. Otherwise the rate is the explicit override,
        then the owner's configured rate. Safe to call repeatedly.

        Raises:
            NotFoundError, InvalidStateError, ConfigError, ValidationError
        """
        parking_session = self._get_owned(owner_id, session_id)
        if parking_session.status != STATUS_COMPLETED:
            raise InvalidStateError('Session must be completed before calculating charge')

        if amount is not None:
            if amount < 0:
                raise ValidationError('Amount cannot be negative', field='amount')
            parking_session.amount = round(float(amount), 2)
            parking_session.amount_type = AMOUNT_MANUAL
        else:
            rate = self._effective_rate(owner_id, hourly_rate)
            if parking_session.duration_minutes is None:
                raise InvalidStateError('Duration not available for calculation')
            parking_session.amount = compute_charge(parking_session.duration_minutes, rate)
            parking_session.amount_type = AMOUNT_AUTO

        self.sessions.save(parking_session)
        logger.info('Charge calculated: session=%s amount=%s type=%s',
                    parking_session.id, parking_session.amount, parking_session.amount_type)
        return parking_session

    def send_receipt(self, owner_id, session_id, recipient):
        """
        Deliver the receipt for a completed, charged session.

        A provider failure is reported as ReceiptResult(delivered=False);
        only calls against a missing or unfinished session raise.
        """
        parking_session = self._get_owned(owner_id, session_id)
        if (parking_session.status != STATUS_COMPLETED
                or parking_session.exit_time is None
                or parking_session.amount is None
                or parking_session.duration_minutes is None):
            raise InvalidStateError('Session must be completed with exit time and amount')

        owner_settings = self.settings.get(owner_id)
        if owner_settings and not owner_settings.whatsapp_enabled:
            logger.info('Receipt not sent, WhatsApp disabled for owner %s: session=%s',
                        owner_id, parking_session.id)
            return ReceiptResult(delivered=False)

        currency = owner_settings.currency if owner_settings else 'USD'
        message = format_receipt(parking_session, currency)

        delivered = bool(self.dispatcher.send(recipient, message))
        if delivered:
            parking_session.receipt_sent = True
            parking_session.receipt_sent_at = self.clock()
            self.sessions.save(parking_session)
            logger.info('Receipt sent: session=%s', parking_session.id)
        else:
            logger.warning('Receipt not delivered: session=%s', parking_session.id)

        return ReceiptResult(delivered=delivered)

    # ============================================
    # Helpers
    # ============================================

    def _get_owned(self, owner_id, session_id):
        parking_session = self.sessions.get(owner_id, session_id)
        if not parking_session:
            raise NotFoundError('Parking session not found', field='session_id')
        return parking_session

    def _effective_rate(self, owner_id, override):
        if override is not None and override > 0:
            return override
        owner_settings = self.settings.get(owner_id)
        if owner_settings and owner_settings.hourly_rate > 0:
            return owner_settings.hourly_rate
        raise ConfigError('Hourly rate not configured', field='hourly_rate')

    def _record_visit(self, owner_id, vehicle_number, visited_at):
        try:
            self.history.record_visit(owner_id, vehicle_number, visited_at)
        except Exception:
            logger.exception('Error updating vehicle history for %s', vehicle_number)

    def _publish(self, owner_id, event, parking_session, at):
        payload = {
            'session_id': parking_session.id,
            'vehicle_number': parking_session.vehicle_number,
            'timestamp': at.isoformat(),
        }
        try:
            self.broadcaster.publish(owner_id, event, payload)
        except Exception:
            logger.exception('Error publishing %s for owner %s', event, owner_id)
