from celery import shared_task
from flask import current_app
import logging

from dinebook import db
from dinebook.models import Booking
from dinebook.services.email import send_email

logger = logging.getLogger(__name__)

STATUS_SUBJECTS = {
    "confirmed": "Your table booking is confirmed",
    "cancelled": "Your table booking was cancelled",
    "completed": "Thanks for dining with us",
}


@shared_task(bind=True, max_retries=3)
def send_booking_status_email(self, booking_id, new_status, previous_status):
    """E-mail the customer about a booking status change."""
    booking = db.session.get(Booking, booking_id)
    if not booking:
        logger.warning(f"Booking {booking_id} vanished before notification", extra={
            'event': 'notification_skipped'
        })
        return "Booking not found"

    body = (
        f"Hello {booking.customer_name},\n\n"
        f"Your booking {booking.booking_ref} for {booking.guest_count} guest(s) on "
        f"{booking.date.isoformat()} from {booking.start_time} to {booking.end_time} "
        f"changed from {previous_status} to {new_status}.\n"
    )
    try:
        send_email(
            subject=STATUS_SUBJECTS.get(new_status, "Your table booking was updated"),
            sender=current_app.config['MAIL_DEFAULT_SENDER'],
            recipients=[booking.customer_email],
            text_body=body
        )
    except Exception as e:
        logger.error(f"Failed to send status e-mail for booking {booking_id}: {e}", extra={
            'event': 'notification_failed'
        })
        raise self.retry(exc=e, countdown=60)

    logger.info(f"Status e-mail sent for booking {booking_id}", extra={
        'event': 'notification_sent'
    })
    return "sent"


@shared_task(bind=True)
def expire_stale_pending_bookings(self):
    from dinebook.services import build_booking_service

    service = build_booking_service()
    expired = service.lifecycle.expire_stale_pending(
        current_app.config["STALE_PENDING_HOURS"])
    logger.info(f"Auto-cancelled {expired} stale pending bookings", extra={
        'event': 'stale_bookings_expired'
    })
    return expired


@shared_task(bind=True)
def complete_finished_bookings(self):
    from dinebook.services import build_booking_service

    service = build_booking_service()
    completed = service.lifecycle.complete_finished()
    logger.info(f"Auto-completed {completed} finished bookings", extra={
        'event': 'finished_bookings_completed'
    })
    return completed


@shared_task(bind=True)
def expire_table_locks(self):
    from dinebook.services import build_booking_service

    service = build_booking_service()
    expired = service.lifecycle.expire_locks()
    logger.info(f"Expired {expired} table locks", extra={
        'event': 'table_locks_cleanup'
    })
    return expired
