import os
from dotenv import load_dotenv
from datetime import timedelta
from celery.schedules import crontab

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
load_dotenv(os.path.join(basedir, '.env'))


class Config:
    PROPAGATE_EXCEPTIONS = True
    API_TITLE = "Restaurant Table Reservation API"
    API_VERSION = "v1"
    OPENAPI_VERSION = "3.0.3"
    OPENAPI_URL_PREFIX = "/"
    OPENAPI_SWAGGER_UI_PATH = "/swagger-ui"
    OPENAPI_SWAGGER_UI_URL = "https://cdn.jsdelivr.net/npm/swagger-ui-dist/"
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-only-change-me'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'app.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'jwt-secret-key')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=30)

    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(basedir, 'logs'))

    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 587))
    MAIL_USE_TLS = os.environ.get(
        'MAIL_USE_TLS', 'True').lower() in ['true', '1']
    MAIL_USE_SSL = os.environ.get(
        'MAIL_USE_SSL', 'False').lower() in ['true', '1']
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get(
        'MAIL_DEFAULT_SENDER', 'bookings@dinebook.local')

    # Booking fee policy
    BOOKING_BASE_RATE = int(os.environ.get('BOOKING_BASE_RATE', 10))
    BOOKING_TOP_TABLES = int(os.environ.get('BOOKING_TOP_TABLES', 3))
    BOOKING_MARKUP_FACTOR = os.environ.get('BOOKING_MARKUP_FACTOR', '1.10')
    # None counts every status when ranking table popularity
    BOOKING_POPULARITY_STATUSES = None

    # Housekeeping
    STALE_PENDING_HOURS = int(os.environ.get('STALE_PENDING_HOURS', 24))

    # Table locks held while a guest checks out
    TABLE_LOCK_MINUTES = int(os.environ.get('TABLE_LOCK_MINUTES', 5))
    TABLE_LOCK_MAX_MINUTES = int(os.environ.get('TABLE_LOCK_MAX_MINUTES', 30))

    # Celery Configuration
    CELERY_CONFIG = {
        'broker_url': os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
        'result_backend': os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0'),
        'broker_transport_options': {
            'visibility_timeout': 3600
        },
        'task_serializer': 'json',
        'accept_content': ['json'],
        'result_serializer': 'json',
        'timezone': 'UTC',
        'enable_utc': True,
        'broker_connection_retry_on_startup': True,
        'beat_schedule': {
            'expire-stale-pending-bookings': {
                'task': 'dinebook.tasks.expire_stale_pending_bookings',
                'schedule': crontab(minute=0),
            },
            'complete-finished-bookings': {
                'task': 'dinebook.tasks.complete_finished_bookings',
                'schedule': crontab(minute='*/15'),
            },
            'expire-table-locks': {
                'task': 'dinebook.tasks.expire_table_locks',
                'schedule': crontab(),
            },
        },
    }


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///dev.db')


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    JWT_SECRET_KEY = 'testing-secret-key'
    MAIL_SUPPRESS_SEND = True
    LOG_DIR = None

    CELERY_CONFIG = {
        'broker_url': 'memory://',
        'result_backend': 'cache+memory://',
        'task_always_eager': True,
        'task_eager_propagates': False,
    }


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
