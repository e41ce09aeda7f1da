"""
Domain errors for the garden booking service.

Every error carries a ``kind`` naming its place in the taxonomy, a
human-readable message, and the HTTP status the API layer answers with.
Only ``StoreUnavailable`` is worth retrying; everything else needs
corrected input.
"""

import logging

from flask import jsonify
from sqlalchemy.exc import OperationalError

from models import db

logger = logging.getLogger(__name__)


class GardenSpaceError(Exception):
    """Base class for all domain errors."""

    kind = 'Error'
    status_code = 500
    retryable = False

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message()
        self.details = details or {}
        super().__init__(self.message)

    @classmethod
    def default_message(cls):
        return cls.kind

    def to_dict(self):
        body = {
            'error': self.kind,
            'message': self.message,
            'retryable': self.retryable,
        }
        if self.details:
            body['details'] = self.details
        return body

    def to_response(self):
        response = jsonify(self.to_dict())
        response.status_code = self.status_code
        return response


class NotFound(GardenSpaceError):
    kind = 'NotFound'
    status_code = 404


class PolicyRejected(GardenSpaceError):
    """No plots left, or the payment instrument falls below policy."""

    kind = 'PolicyRejected'
    status_code = 409


class InvalidCardFormat(GardenSpaceError):
    kind = 'InvalidCardFormat'
    status_code = 400


class CardExpired(GardenSpaceError):
    kind = 'CardExpired'
    status_code = 400


class InvalidCvv(GardenSpaceError):
    kind = 'InvalidCvv'
    status_code = 400


class InvalidDuration(GardenSpaceError):
    kind = 'InvalidDuration'
    status_code = 400


class DuplicateBooking(GardenSpaceError):
    kind = 'DuplicateBooking'
    status_code = 409


class AlreadyCancelled(GardenSpaceError):
    kind = 'AlreadyCancelled'
    status_code = 409


class Forbidden(GardenSpaceError):
    kind = 'Forbidden'
    status_code = 403


class Unauthorized(GardenSpaceError):
    kind = 'Unauthorized'
    status_code = 401


class InvalidRequest(GardenSpaceError):
    kind = 'InvalidRequest'
    status_code = 400


class InvalidMessage(GardenSpaceError):
    kind = 'InvalidMessage'
    status_code = 400


class StoreUnavailable(GardenSpaceError):
    """The backing store failed; the caller may retry the request."""

    kind = 'StoreUnavailable'
    status_code = 503
    retryable = True


def register_error_handlers(app):
    @app.errorhandler(GardenSpaceError)
    def handle_domain_error(error):
        if error.status_code >= 500:
            logger.error('%s: %s', error.kind, error.message)
        else:
            logger.warning('%s: %s', error.kind, error.message)
        return error.to_response()

    @app.errorhandler(OperationalError)
    def handle_store_failure(error):
        db.session.rollback()
        logger.error('Store failure while handling request', exc_info=error)
        return StoreUnavailable('Store is unavailable, please retry').to_response()
