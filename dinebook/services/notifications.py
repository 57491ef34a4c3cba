import logging

from kombu.exceptions import OperationalError as BrokerError
from redis.exceptions import ConnectionError as RedisConnectionError

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Hands status-change notifications to Celery without waiting on them."""

    def notify_status_change(self, booking, new_status, previous_status):
        from dinebook.tasks import send_booking_status_email

        try:
            send_booking_status_email.delay(booking.id, new_status, previous_status)
        except (BrokerError, RedisConnectionError) as e:
            logger.error(f"Could not queue notification for booking {booking.id}: {e}", extra={
                'event': 'notification_enqueue_failed'
            })
        except Exception:
            logger.exception(f"Unexpected error queueing notification for booking {booking.id}", extra={
                'event': 'notification_enqueue_failed'
            })
