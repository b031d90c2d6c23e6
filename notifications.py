"""
WhatsApp receipt delivery.

The lifecycle code only sees `ReceiptDispatcher.send(recipient, message)`.
Which provider sits behind it is decided once, by `build_dispatcher`,
when the app starts.
"""
import logging
from abc import ABC, abstractmethod

import requests

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = 'https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json'
META_MESSAGES_URL = 'https://graph.facebook.com/{version}/{phone_number_id}/messages'


# ============================================
# Receipt formatting
# ============================================

def _plural(count, unit):
    return f"{count} {unit}{'s' if count != 1 else ''}"


def format_duration(minutes):
    """Human readable duration, e.g. 125 -> '2 hours 5 minutes'."""
    hours, mins = divmod(int(minutes), 60)
    if hours and mins:
        return f'{_plural(hours, "hour")} {_plural(mins, "minute")}'
    if hours:
        return _plural(hours, 'hour')
    return _plural(mins, 'minute')


def format_receipt(parking_session, currency='USD', payment_link=None):
    """Build the WhatsApp receipt text for a completed session."""
    entry = parking_session.entry_time.strftime('%Y-%m-%d %H:%M')
    exit_ = parking_session.exit_time.strftime('%Y-%m-%d %H:%M')

    lines = [
        '\U0001F697 *Parking Receipt*',
        '',
        f'Vehicle Number: *{parking_session.vehicle_number}*',
        f'Entry Time: {entry} UTC',
        f'Exit Time: {exit_} UTC',
        f'Duration: {format_duration(parking_session.duration_minutes)}',
        f'Amount: *{currency} {parking_session.amount:.2f}*',
    ]
    if payment_link:
        lines += ['', f'Payment Link: {payment_link}']
    lines += ['', 'Thank you for using our parking service!']
    return '\n'.join(lines)


# ============================================
# Dispatchers
# ============================================

class ReceiptDispatcher(ABC):
    """Delivers a formatted receipt. Returns True on delivery, False otherwise."""

    name = 'abstract'

    @abstractmethod
    def send(self, recipient, message):
        raise NotImplementedError


class TwilioWhatsAppDispatcher(ReceiptDispatcher):
    name = 'twilio'

    def __init__(self, account_sid, auth_token, from_number, timeout=10):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    def send(self, recipient, message):
        to = recipient if recipient.startswith('whatsapp:') else f'whatsapp:{recipient}'
        try:
            response = requests.post(
                TWILIO_MESSAGES_URL.format(sid=self.account_sid),
                data={'From': self.from_number, 'To': to, 'Body': message},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error('Failed to send WhatsApp message via Twilio: %s', e)
            return False

        logger.info('WhatsApp message sent via Twilio to %s', recipient)
        return True


class MetaWhatsAppDispatcher(ReceiptDispatcher):
    name = 'meta'

    def __init__(self, access_token, phone_number_id, api_version='v18.0', timeout=10):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.timeout = timeout

    def send(self, recipient, message):
        url = META_MESSAGES_URL.format(version=self.api_version, phone_number_id=self.phone_number_id)
        try:
            response = requests.post(
                url,
                json={
                    'messaging_product': 'whatsapp',
                    'to': recipient,
                    'type': 'text',
                    'text': {'body': message},
                },
                headers={'Authorization': f'Bearer {self.access_token}'},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error('Failed to send WhatsApp message via Meta API: %s', e)
            return False

        logger.info('WhatsApp message sent via Meta API to %s', recipient)
        return True


class LoggingDispatcher(ReceiptDispatcher):
    """Mock mode: the receipt is written to the log and reported as delivered."""

    name = 'mock'

    def send(self, recipient, message):
        logger.info('WhatsApp message (mock mode) to %s:\n%s', recipient, message)
        return True


class DisabledDispatcher(ReceiptDispatcher):
    name = 'none'

    def send(self, recipient, message):
        logger.warning('No WhatsApp service available, message to %s not sent', recipient)
        return False


def build_dispatcher(config):
    """
    Pick the receipt dispatcher from configuration.

    WHATSAPP_PROVIDER selects explicitly; 'auto' prefers Twilio, then Meta,
    then the logging mock in development, else a disabled dispatcher.
    """
    provider = (config.get('WHATSAPP_PROVIDER') or 'auto').lower()
    timeout = config.get('WHATSAPP_TIMEOUT', 10)

    has_twilio = bool(config.get('TWILIO_ACCOUNT_SID') and config.get('TWILIO_AUTH_TOKEN'))
    has_meta = bool(config.get('META_WHATSAPP_ACCESS_TOKEN') and config.get('META_WHATSAPP_PHONE_NUMBER_ID'))

    if provider == 'auto':
        if has_twilio:
            provider = 'twilio'
        elif has_meta:
            provider = 'meta'
        elif config.get('APP_ENV') == 'development':
            provider = 'mock'
        else:
            provider = 'none'

    if provider == 'twilio':
        if not has_twilio:
            raise ValueError('WHATSAPP_PROVIDER=twilio needs TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN')
        dispatcher = TwilioWhatsAppDispatcher(
            config['TWILIO_ACCOUNT_SID'],
            config['TWILIO_AUTH_TOKEN'],
            config.get('TWILIO_WHATSAPP_NUMBER', 'whatsapp:+14155238886'),
            timeout=timeout,
        )
    elif provider == 'meta':
        if not has_meta:
            raise ValueError('WHATSAPP_PROVIDER=meta needs META_WHATSAPP_ACCESS_TOKEN and META_WHATSAPP_PHONE_NUMBER_ID')
        dispatcher = MetaWhatsAppDispatcher(
            config['META_WHATSAPP_ACCESS_TOKEN'],
            config['META_WHATSAPP_PHONE_NUMBER_ID'],
            api_version=config.get('META_GRAPH_API_VERSION', 'v18.0'),
            timeout=timeout,
        )
    elif provider == 'mock':
        dispatcher = LoggingDispatcher()
    elif provider == 'none':
        dispatcher = DisabledDispatcher()
    else:
        raise ValueError(f'Unknown WHATSAPP_PROVIDER: {provider}')

    logger.info('WhatsApp receipts use the %s dispatcher', dispatcher.name)
    return dispatcher
