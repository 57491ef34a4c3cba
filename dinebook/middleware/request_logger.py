import logging
import time
from flask import request, g
from datetime import datetime
import uuid

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = {
    'password', 'token', 'secret', 'authorization', 'credential',
    'api_key', 'jwt', 'session', 'cookie'
}

SENSITIVE_HEADERS = {
    'authorization', 'cookie', 'x-api-key', 'x-auth-token'
}


def sanitize_data(data):
    """Redact values whose key looks like a credential."""
    if isinstance(data, list):
        return [sanitize_data(item) for item in data]
    if not isinstance(data, dict):
        return data

    cleaned = {}
    for key, value in data.items():
        if any(sensitive in str(key).lower() for sensitive in SENSITIVE_KEYS):
            cleaned[key] = '***REDACTED***'
        else:
            cleaned[key] = sanitize_data(value)
    return cleaned


class RequestLoggerMiddleware:
    """Middleware for logging request and response details"""

    def __init__(self, app):
        self.app = app
        self.register_middleware()

    def register_middleware(self):

        @self.app.before_request
        def before_request():
            g.request_id = str(uuid.uuid4())
            g.start_time = time.time()

            logger.info(
                f"Request Started - ID: {g.request_id}",
                extra={
                    'request_id': g.request_id,
                    'event': 'request_started',
                    'request_data': self._get_request_data()
                }
            )

        @self.app.after_request
        def after_request(response):
            request_id = getattr(g, 'request_id', None)
            processing_time = time.time() - getattr(g, 'start_time', time.time())

            logger.log(
                self._get_log_level(response.status_code),
                f"Request Completed - ID: {request_id} - Status: {response.status_code} - Time: {processing_time:.3f}s",
                extra={
                    'request_id': request_id,
                    'event': 'request_completed',
                    'processing_time': processing_time,
                    'response_data': {
                        'status_code': response.status_code,
                        'content_length': response.content_length,
                    }
                }
            )

            if request_id:
                response.headers['X-Request-ID'] = request_id
            response.headers['X-Processing-Time'] = f"{processing_time:.3f}s"
            return response

    def _get_request_data(self):
        request_data = {
            'method': request.method,
            'path': request.path,
            'endpoint': request.endpoint,
            'remote_addr': request.remote_addr,
            'timestamp': datetime.utcnow().isoformat()
        }

        if request.args:
            request_data['query_params'] = sanitize_data(dict(request.args))

        if request.is_json:
            request_data['body'] = sanitize_data(request.get_json(silent=True))

        request_data['headers'] = {
            key: '***REDACTED***' if key.lower() in SENSITIVE_HEADERS else value
            for key, value in request.headers.items()
        }
        return request_data

    def _get_log_level(self, status_code):
        if status_code >= 500:
            return logging.ERROR
        elif status_code >= 400:
            return logging.WARNING
        return logging.INFO


def init_request_logger(app):
    """Initialize request logger middleware"""
    return RequestLoggerMiddleware(app)
