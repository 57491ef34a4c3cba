from flask import current_app

from dinebook.services.store import BookingStore
from dinebook.services.directory import RestaurantDirectory
from dinebook.services.availability import AvailabilityChecker
from dinebook.services.pricing import FeeCalculator
from dinebook.services.lifecycle import BookingLifecycleManager, Actor
from dinebook.services.notifications import NotificationDispatcher


class BookingService:
    """Entry points the HTTP layer and background tasks call into."""

    def __init__(self, store, directory, checker, calculator, lifecycle):
        self.store = store
        self.directory = directory
        self.checker = checker
        self.calculator = calculator
        self.lifecycle = lifecycle

    def check_availability(self, restaurant_id, date, start_time, end_time, table_ids=None):
        return self.checker.check(restaurant_id, date, start_time, end_time, table_ids)

    def booked_tables(self, restaurant_id, date, start_time, end_time, table_ids=None):
        return self.checker.booked_tables(restaurant_id, date, start_time, end_time, table_ids)

    def create_booking(self, params):
        return self.lifecycle.create(
            restaurant_id=params["restaurant_id"],
            table_id=params["table_id"],
            date=params["date"],
            start_time=params["start_time"],
            end_time=params["end_time"],
            guest_count=params["guest_count"],
            customer=params["customer"],
            special_requests=params.get("special_requests"),
        )

    def transition_booking(self, booking_id, new_status, actor):
        return self.lifecycle.transition(booking_id, new_status, actor)

    def delete_booking(self, booking_id, actor):
        self.lifecycle.delete(booking_id, actor)

    def list_bookings(self, restaurant_id, filters=None, actor=None):
        return self.lifecycle.list_for_restaurant(restaurant_id, filters, actor)

    def hold_table(self, params, actor):
        return self.lifecycle.create_lock(
            restaurant_id=params["restaurant_id"],
            table_id=params["table_id"],
            date=params["date"],
            start_time=params["start_time"],
            end_time=params["end_time"],
            guest_count=params["guest_count"],
            actor=actor,
            hold_minutes=params.get("hold_minutes"),
        )

    def confirm_table_lock(self, lock_ref, actor, special_requests=None, customer_phone=None):
        return self.lifecycle.confirm_lock(lock_ref, actor, special_requests=special_requests,
                                           customer_phone=customer_phone)

    def release_table_lock(self, lock_ref, actor):
        return self.lifecycle.release_lock(lock_ref, actor)

    def compute_fee(self, guest_count, table_id, restaurant_id):
        self.directory.require_tables(restaurant_id, [table_id])
        return self.calculator.compute(guest_count, table_id, restaurant_id)


def build_booking_service(session=None, notifier=None, **fee_options):
    """Wire the booking components around one session (default: db.session)."""
    if session is None:
        from dinebook import db
        session = db.session

    config = current_app.config
    store = BookingStore(session)
    directory = RestaurantDirectory(session)
    checker = AvailabilityChecker(store, directory)
    calculator = FeeCalculator(
        store, directory,
        base_rate=fee_options.pop("base_rate", config["BOOKING_BASE_RATE"]),
        top_n=fee_options.pop("top_n", config["BOOKING_TOP_TABLES"]),
        markup=fee_options.pop("markup", config["BOOKING_MARKUP_FACTOR"]),
        counted_statuses=fee_options.pop("counted_statuses",
                                         config["BOOKING_POPULARITY_STATUSES"]),
        **fee_options,
    )
    lifecycle = BookingLifecycleManager(
        store, directory, checker, calculator,
        notifier or NotificationDispatcher(),
        lock_minutes=config["TABLE_LOCK_MINUTES"],
        max_lock_minutes=config["TABLE_LOCK_MAX_MINUTES"],
    )
    return BookingService(store, directory, checker, calculator, lifecycle)


__all__ = ["BookingService", "build_booking_service", "Actor"]
