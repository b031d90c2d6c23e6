import logging
import uuid
from datetime import datetime, timezone
from numbers import Number
from urllib.parse import urlparse
from zoneinfo import ZoneInfo

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request

from broadcast import Broadcaster, EventStream
from config import Config, configure_logging
from dashboard import get_dashboard_stats, search_vehicles
from errors import NotFoundError, ValidationError, register_error_handlers
from lifecycle import ParkingService
from models import db, utcnow
from notifications import build_dispatcher
from repository import SessionRepository, SettingsStore, VehicleHistoryRepository

logger = logging.getLogger(__name__)

parking_bp = Blueprint('parking', __name__, url_prefix='/api/parking')
settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')

MAX_VEHICLE_NUMBER_LENGTH = 20


# ============================================
# App factory
# ============================================

def create_app(overrides=None):
    """
    Build the Flask application.

    Args:
        overrides: optional dict applied on top of Config (tests pass an
            in-memory database URI here)
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config['LOG_LEVEL'])

    # Fails fast on an unknown zone name
    app.config['PARKING_TZINFO'] = ZoneInfo(app.config['PARKING_TIMEZONE'])

    db.init_app(app)
    register_error_handlers(app)

    settings_defaults = {
        'hourly_rate': app.config['DEFAULT_HOURLY_RATE'],
        'currency': app.config['DEFAULT_CURRENCY'],
        'auto_calculate': app.config['DEFAULT_AUTO_CALCULATE'],
        'whatsapp_enabled': True,
    }
    app.extensions['parking'] = ParkingService(
        sessions=SessionRepository(),
        settings=SettingsStore(defaults=settings_defaults),
        history=VehicleHistoryRepository(),
        dispatcher=app.config.get('RECEIPT_DISPATCHER') or build_dispatcher(app.config),
        broadcaster=app.config.get('BROADCASTER') or Broadcaster(),
    )

    app.register_blueprint(parking_bp)
    app.register_blueprint(settings_bp)

    @app.before_request
    def log_request():
        logger.info('%s %s', request.method, request.path)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()})

    with app.app_context():
        db.create_all()

    return app


def parking_service():
    return current_app.extensions['parking']


# ============================================
# Request helpers
# ============================================

@parking_bp.before_request
@settings_bp.before_request
def load_owner():
    """Every parking and settings call is scoped to the X-Owner-Id header."""
    owner_id = (request.headers.get('X-Owner-Id') or '').strip()
    if not owner_id:
        raise ValidationError('Missing owner id', field='X-Owner-Id')
    g.owner_id = owner_id


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def parse_vehicle_number(data):
    value = data.get('vehicle_number')
    if not isinstance(value, str) or not value.strip():
        raise ValidationError('Vehicle number is required', field='vehicle_number')
    value = value.strip()
    if len(value) > MAX_VEHICLE_NUMBER_LENGTH:
        raise ValidationError(
            f'Vehicle number must be at most {MAX_VEHICLE_NUMBER_LENGTH} characters',
            field='vehicle_number',
        )
    return value


def parse_image_url(data):
    value = data.get('image_url')
    if value is None:
        return None
    parsed = urlparse(value) if isinstance(value, str) else None
    if not parsed or parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValidationError('Image URL must be an http(s) URL', field='image_url')
    return value


def parse_timestamp(data, tz):
    """
    Read an optional ISO 8601 timestamp and return it as naive UTC.

    Values without an offset are taken to be in the parking timezone.
    """
    value = data.get('timestamp')
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError('Timestamp must be an ISO 8601 date-time', field='timestamp')
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def parse_number(data, field, minimum=0, allow_equal=True):
    value = data.get(field)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, Number):
        raise ValidationError(f'{field} must be a number', field=field)
    if value < minimum or (value == minimum and not allow_equal):
        comparison = 'at least' if allow_equal else 'greater than'
        raise ValidationError(f'{field} must be {comparison} {minimum}', field=field)
    return value


def parse_session_id(data):
    value = data.get('session_id')
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError):
        raise ValidationError('Invalid session ID', field='session_id')


# ============================================
# Parking API
# ============================================

@parking_bp.route('/entry', methods=['POST'])
def record_entry():
    data = get_json_body()
    parking_session = parking_service().record_entry(
        g.owner_id,
        parse_vehicle_number(data),
        image_url=parse_image_url(data),
        timestamp=parse_timestamp(data, current_app.config['PARKING_TZINFO']),
    )
    return jsonify(parking_session.to_dict()), 201


@parking_bp.route('/exit', methods=['POST'])
def record_exit():
    data = get_json_body()
    parking_session = parking_service().record_exit(
        g.owner_id,
        parse_vehicle_number(data),
        image_url=parse_image_url(data),
        timestamp=parse_timestamp(data, current_app.config['PARKING_TZINFO']),
    )
    return jsonify(parking_session.to_dict())


@parking_bp.route('/calculate-charge', methods=['POST'])
def calculate_charge():
    data = get_json_body()
    parking_session = parking_service().calculate_charge(
        g.owner_id,
        parse_session_id(data),
        amount=parse_number(data, 'amount'),
        hourly_rate=parse_number(data, 'hourly_rate', allow_equal=False),
    )
    return jsonify(parking_session.to_dict())


@parking_bp.route('/send-receipt', methods=['POST'])
def send_receipt():
    data = get_json_body()
    recipient = data.get('recipient_phone')
    if not isinstance(recipient, str) or not recipient.strip():
        raise ValidationError('recipient_phone is required', field='recipient_phone')

    result = parking_service().send_receipt(g.owner_id, parse_session_id(data), recipient.strip())
    return jsonify({
        'success': result.delivered,
        'message': 'Receipt sent successfully' if result.delivered else 'Failed to send receipt',
    })


@parking_bp.route('/dashboard', methods=['GET'])
def dashboard():
    stats = get_dashboard_stats(
        parking_service().sessions,
        g.owner_id,
        now=utcnow(),
        tz=current_app.config['PARKING_TZINFO'],
    )
    return jsonify(stats)


@parking_bp.route('/search', methods=['GET'])
def search():
    results = search_vehicles(parking_service().sessions, g.owner_id, request.args.get('q'))
    return jsonify([s.to_dict() for s in results])


@parking_bp.route('/events', methods=['GET'])
def events():
    """Live vehicle-entered / vehicle-exited events for the owner's dashboard."""
    stream = EventStream(
        parking_service().broadcaster,
        g.owner_id,
        heartbeat=current_app.config['EVENT_STREAM_HEARTBEAT'],
    )
    logger.info('Event stream opened for owner %s', g.owner_id)
    return Response(
        stream,
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )


# ============================================
# Settings API
# ============================================

@settings_bp.route('', methods=['GET'])
def get_settings():
    owner_settings = parking_service().settings.get(g.owner_id)
    if not owner_settings:
        raise NotFoundError('Settings not found')
    return jsonify(owner_settings.to_dict())


@settings_bp.route('', methods=['PUT'])
def update_settings():
    data = get_json_body()
    changes = {}

    hourly_rate = parse_number(data, 'hourly_rate')
    if hourly_rate is not None:
        changes['hourly_rate'] = float(hourly_rate)

    if 'currency' in data:
        currency = data['currency']
        if not isinstance(currency, str) or len(currency) != 3 or not currency.isalpha():
            raise ValidationError('Currency must be a 3-letter code', field='currency')
        changes['currency'] = currency.upper()

    for flag in ('auto_calculate', 'whatsapp_enabled'):
        if flag in data:
            if not isinstance(data[flag], bool):
                raise ValidationError(f'{flag} must be true or false', field=flag)
            changes[flag] = data[flag]

    if 'whatsapp_number' in data:
        number = data['whatsapp_number']
        if number is not None and not isinstance(number, str):
            raise ValidationError('whatsapp_number must be a string', field='whatsapp_number')
        changes['whatsapp_number'] = number.strip() if number else None

    owner_settings = parking_service().settings.upsert(g.owner_id, **changes)
    logger.info('Settings updated for owner %s', g.owner_id)
    return jsonify(owner_settings.to_dict())


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', debug=True)
