import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ParkingError(Exception):
    """Base class for errors that map to a 4xx response."""

    status_code = 400

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self):
        body = {'error': self.message}
        if self.field:
            body['field'] = self.field
        return body


class ValidationError(ParkingError):
    status_code = 400


class InvalidArgumentError(ParkingError, ValueError):
    """A pure function was called with arguments outside its domain."""
    status_code = 400


class ConfigError(ParkingError):
    status_code = 400


class NotFoundError(ParkingError):
    status_code = 404


class ConflictError(ParkingError):
    status_code = 409


class InvalidStateError(ParkingError):
    status_code = 422


def register_error_handlers(app):
    """Attach JSON error handlers for the error taxonomy to a Flask app."""

    @app.errorhandler(ParkingError)
    def handle_parking_error(error):
        logger.info('Request rejected: %s (%s)', error.message, type(error).__name__)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception('Unhandled error')
        return jsonify({'error': 'Internal server error'}), 500
