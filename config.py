import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application settings read from the environment (and a .env file)."""

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///parking.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    APP_ENV = os.getenv('APP_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # IANA zone used for "today" and the 7-day earnings window
    PARKING_TIMEZONE = os.getenv('PARKING_TIMEZONE', 'UTC')

    DEFAULT_HOURLY_RATE = float(os.getenv('DEFAULT_HOURLY_RATE', '5.0'))
    DEFAULT_CURRENCY = os.getenv('DEFAULT_CURRENCY', 'USD')
    DEFAULT_AUTO_CALCULATE = _env_bool('DEFAULT_AUTO_CALCULATE', True)

    # Seconds between keep-alive comments on an idle event stream
    EVENT_STREAM_HEARTBEAT = float(os.getenv('EVENT_STREAM_HEARTBEAT', '15'))

    # auto | twilio | meta | mock | none
    WHATSAPP_PROVIDER = os.getenv('WHATSAPP_PROVIDER', 'auto')
    WHATSAPP_TIMEOUT = float(os.getenv('WHATSAPP_TIMEOUT', '10'))

    TWILIO_ACCOUNT_SID = os.getenv('TWILIO_ACCOUNT_SID')
    TWILIO_AUTH_TOKEN = os.getenv('TWILIO_AUTH_TOKEN')
    TWILIO_WHATSAPP_NUMBER = os.getenv('TWILIO_WHATSAPP_NUMBER', 'whatsapp:+14155238886')

    META_WHATSAPP_ACCESS_TOKEN = os.getenv('META_WHATSAPP_ACCESS_TOKEN')
    META_WHATSAPP_PHONE_NUMBER_ID = os.getenv('META_WHATSAPP_PHONE_NUMBER_ID')
    META_GRAPH_API_VERSION = os.getenv('META_GRAPH_API_VERSION', 'v18.0')


def configure_logging(level='INFO'):
    """Install the process-wide log format. Later calls only adjust the level."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    logging.getLogger().setLevel(level)
