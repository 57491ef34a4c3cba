import traceback
import logging
from flask import jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from marshmallow import ValidationError as MarshmallowValidationError
from flask_jwt_extended.exceptions import JWTExtendedException
from datetime import datetime

from dinebook.errors import BookingError

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware:
    """Global error handler middleware for consistent error responses.

    HTTP exceptions raised through ``flask_smorest.abort`` are left to the
    handler the Api registers for them.
    """

    def __init__(self, app):
        self.app = app
        self.register_error_handlers()

    def register_error_handlers(self):

        @self.app.errorhandler(BookingError)
        def handle_booking_error(e):
            """Handle errors raised by the booking core"""
            return self._handle_exception(e, e.status_code, e.error_type, e.to_dict())

        @self.app.errorhandler(Exception)
        def handle_generic_exception(e):
            return self._handle_exception(e, 500, "Internal Server Error")

        @self.app.errorhandler(SQLAlchemyError)
        def handle_sqlalchemy_error(e):
            return self._handle_exception(e, 500, "Database Error")

        @self.app.errorhandler(MarshmallowValidationError)
        def handle_validation_error(e):
            return self._handle_exception(e, 400, "Validation Error")

        @self.app.errorhandler(JWTExtendedException)
        def handle_jwt_error(e):
            return self._handle_exception(e, 401, "Authentication Error")

    def _handle_exception(self, exception, status_code, error_type, body=None):
        """Common exception handler"""

        request_info = {
            'method': request.method,
            'path': request.path,
            'args': dict(request.args),
            'timestamp': datetime.utcnow().isoformat()
        }

        error = body or {
            'type': error_type,
            'message': str(exception),
            'status_code': status_code,
        }
        error.update({
            'timestamp': datetime.utcnow().isoformat(),
            'path': request.path,
            'method': request.method
        })

        if isinstance(exception, MarshmallowValidationError):
            error['validation_errors'] = exception.messages

        if status_code >= 500:
            logger.error(
                f"Server Error: {error_type} - {exception}",
                extra={
                    'request_data': request_info,
                    'exception': repr(exception),
                },
                exc_info=exception
            )
        else:
            logger.warning(
                f"Client Error: {error_type} - {exception}",
                extra={
                    'request_data': request_info,
                    'exception': repr(exception)
                }
            )

        if status_code >= 500 and current_app.config.get('DEBUG', False):
            error['traceback'] = traceback.format_exc()

        return jsonify({'error': error}), status_code


def init_error_handler(app):
    """Initialize error handler middleware"""
    return ErrorHandlerMiddleware(app)
