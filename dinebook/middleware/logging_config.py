import logging
import logging.handlers
import os
from datetime import datetime
import json


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    EXTRA_FIELDS = (
        'request_id', 'event', 'request_data', 'response_data',
        'processing_time', 'booking_id', 'restaurant_id', 'exception',
    )

    def format(self, record):
        log_entry = {
            'timestamp': datetime.utcnow().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['traceback'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def _rotating_handler(logs_dir, filename, level, formatter):
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(logs_dir, filename),
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(app):
    """Setup structured logging for the application"""

    logs_dir = app.config.get('LOG_DIR')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.handlers.clear()

    json_formatter = JSONFormatter()
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    request_logger = logging.getLogger('dinebook.middleware.request_logger')
    request_logger.handlers.clear()
    request_logger.setLevel(logging.INFO)

    # No log directory (tests) means console only
    if logs_dir:
        os.makedirs(logs_dir, exist_ok=True)
        root_logger.addHandler(_rotating_handler(
            logs_dir, 'app.log', logging.INFO, json_formatter))
        root_logger.addHandler(_rotating_handler(
            logs_dir, 'error.log', logging.ERROR, json_formatter))

        request_logger.addHandler(_rotating_handler(
            logs_dir, 'requests.log', logging.INFO, json_formatter))
        request_logger.propagate = False

    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Logging system initialized", extra={
        'event': 'logging_initialized',
    })


def get_logger(name):
    """Get a logger instance with the given name"""
    return logging.getLogger(name)
