"""Booking lifecycle: creation, status transitions, deletion and listings.

Every status change goes through :meth:`BookingLifecycleManager.transition`,
which is the only place a ``modified`` history entry is written.
"""
import logging
import re
from datetime import datetime, timedelta

import pytz

from dinebook.errors import (
    ValidationError, ConflictError, InvalidTransitionError,
    ForbiddenError, NotFoundError, PreconditionFailedError, LockExpiredError
)
from dinebook.models import (
    Booking, TableLock, BOOKING_STATUSES, TERMINAL_STATUSES, PAYMENT_STATUSES
)
from dinebook.services.helper import (
    parse_booking_date, parse_window, generate_booking_ref, generate_lock_ref
)

logger = logging.getLogger(__name__)

ROLE_CUSTOMER = "user"
ROLE_OWNER = "admin"
ROLE_SYSTEM = "system"

TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "cancelled": set(),
    "completed": set(),
}
CUSTOMER_TARGETS = {"cancelled", "completed"}
NOTIFY_ON = {"confirmed", "cancelled", "completed"}

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def require_guest_count(guest_count):
    if isinstance(guest_count, bool) or not isinstance(guest_count, int) or guest_count <= 0:
        raise ValidationError("guest_count must be a positive integer.",
                              field="guest_count")


class Actor:
    """Authenticated caller as supplied by the identity layer."""

    def __init__(self, id, role):
        self.id = id
        self.role = role

    def __repr__(self):
        return f"Actor(id={self.id!r}, role={self.role!r})"


SYSTEM_ACTOR = Actor(None, ROLE_SYSTEM)


class BookingLifecycleManager:

    def __init__(self, store, directory, checker, calculator, notifier,
                 lock_minutes=5, max_lock_minutes=30):
        self.store = store
        self.directory = directory
        self.checker = checker
        self.calculator = calculator
        self.notifier = notifier
        self.lock_minutes = lock_minutes
        self.max_lock_minutes = max_lock_minutes

    # Authorization

    def _is_restaurant_owner(self, restaurant_id, actor):
        return (actor.role == ROLE_OWNER
                and str(self.directory.get_owner_id(restaurant_id)) == str(actor.id))

    def _authorize(self, booking, actor, new_status=None):
        if actor.role == ROLE_SYSTEM:
            return
        if actor.role == ROLE_CUSTOMER:
            if str(booking.user_id) != str(actor.id):
                raise ForbiddenError("Not the owner of this booking.")
            if new_status is not None and new_status not in CUSTOMER_TARGETS:
                raise ForbiddenError(
                    f"Customers cannot move a booking to '{new_status}'.")
            return
        if self._is_restaurant_owner(booking.restaurant_id, actor):
            return
        raise ForbiddenError("Not the owner of this restaurant.")

    def _load(self, booking_id):
        booking = self.store.get(booking_id)
        if not booking:
            raise NotFoundError("Booking not found.", {"booking_id": booking_id})
        return booking

    # Operations

    def get(self, booking_id, actor):
        booking = self._load(booking_id)
        self._authorize(booking, actor)
        return booking

    def create(self, restaurant_id, table_id, date, start_time, end_time,
               guest_count, customer, special_requests=None, lock=None):
        """Admit a pending booking if its table is free for the window.

        ``lock`` is the customer's own active table lock for the same slot;
        it is confirmed together with the insert.
        """
        booking_date = parse_booking_date(date)
        start_time, end_time = parse_window(start_time, end_time)
        require_guest_count(guest_count)
        customer_name = (customer.get("name") or "").strip()
        customer_email = (customer.get("email") or "").strip()
        if not customer.get("user_id"):
            raise ValidationError("Customer id is required.", field="user_id")
        if not customer_name:
            raise ValidationError("Customer name is required.", field="customer_name")
        if not EMAIL_RE.match(customer_email):
            raise ValidationError("A valid customer email is required.",
                                  field="customer_email")

        self.directory.require_tables(restaurant_id, [table_id])

        conflicts = self.checker.booked_tables(
            restaurant_id, booking_date, start_time, end_time, table_ids=[table_id],
            exclude_lock_id=lock.id if lock is not None else None)
        if conflicts:
            raise ConflictError("Table is already booked for this time slot.",
                                conflicts=conflicts[table_id])

        pricing = self.calculator.compute(guest_count, table_id, restaurant_id)

        booking = Booking(
            booking_ref=generate_booking_ref(),
            restaurant_id=restaurant_id,
            user_id=customer["user_id"],
            table_id=table_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer.get("phone"),
            date=booking_date,
            start_time=start_time,
            end_time=end_time,
            guest_count=guest_count,
            fee=pricing["fee"],
            base_fee=pricing["base_fee"],
            markup_applied=pricing["markup_applied"],
            pricing_degraded=pricing["degraded"],
            payment_status="unpaid",
            status="pending",
            special_requests=special_requests,
        )
        created_details = {
            "table_id": table_id,
            "date": booking_date.isoformat(),
            "start_time": start_time,
            "end_time": end_time,
            "guest_count": guest_count,
            "fee": pricing["fee"],
        }
        if lock is not None:
            created_details["lock_ref"] = lock.lock_ref
        booking.add_to_history(
            "created",
            Actor(customer["user_id"], ROLE_CUSTOMER),
            new_status="pending",
            details=created_details,
        )
        self.store.insert_if_free(booking, lock=lock)

        logger.info(f"Booking {booking.booking_ref} created for table {table_id}", extra={
            'event': 'booking_created',
            'booking_id': booking.id,
            'restaurant_id': restaurant_id,
        })
        return booking

    def transition(self, booking_id, new_status, actor, details=None):
        if new_status not in BOOKING_STATUSES:
            raise ValidationError(f"Unknown status '{new_status}'.", field="status")

        booking = self._load(booking_id)
        self._authorize(booking, actor, new_status)

        previous_status = booking.status
        if previous_status == new_status:
            return booking
        if new_status not in TRANSITIONS[previous_status]:
            raise InvalidTransitionError(previous_status, new_status)

        now = datetime.utcnow()
        entry_details = {
            "previous_status": previous_status,
            "new_status": new_status,
            "actor_role": actor.role,
            "timestamp": now.isoformat(),
        }
        entry_details.update(details or {})

        with self.store.versioned(booking):
            booking.status = new_status
            booking.add_to_history("modified", actor,
                                   previous_status=previous_status,
                                   new_status=new_status,
                                   details=entry_details,
                                   timestamp=now)

        logger.info(f"Booking {booking.booking_ref} moved {previous_status} -> {new_status}", extra={
            'event': 'booking_status_changed',
            'booking_id': booking.id,
        })

        if new_status in NOTIFY_ON:
            self.notifier.notify_status_change(booking, new_status, previous_status)
        return booking

    def delete(self, booking_id, actor):
        booking = self._load(booking_id)
        self._authorize(booking, actor)
        if booking.status not in TERMINAL_STATUSES:
            raise PreconditionFailedError(
                "Only cancelled or completed bookings can be deleted.",
                {"status": booking.status})

        booking_ref = booking.booking_ref
        self.store.delete(booking)
        logger.info(f"Booking {booking_ref} deleted", extra={'event': 'booking_deleted'})

    def list_for_restaurant(self, restaurant_id, filters=None, actor=None):
        self.directory.get_restaurant(restaurant_id)
        if actor is not None and actor.role != ROLE_SYSTEM \
                and not self._is_restaurant_owner(restaurant_id, actor):
            raise ForbiddenError("Not the owner of this restaurant.")

        filters = filters or {}
        status = filters.get("status")
        if status in ("", "all"):
            status = None
        if status is not None and status not in BOOKING_STATUSES:
            raise ValidationError(f"Unknown status '{status}'.", field="status")
        date_from = parse_booking_date(filters["date_from"], "date_from") \
            if filters.get("date_from") else None
        date_to = parse_booking_date(filters["date_to"], "date_to") \
            if filters.get("date_to") else None
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must not be after date_to.", field="date_from")

        bookings = self.store.search(restaurant_id, status=status,
                                     date_from=date_from, date_to=date_to,
                                     search=filters.get("search"))

        stats = {"total": len(bookings)}
        for value in BOOKING_STATUSES:
            stats[value] = sum(1 for b in bookings if b.status == value)
        stats["total_guests"] = sum(b.guest_count or 0 for b in bookings)
        return {"bookings": bookings, "stats": stats}

    def list_for_customer(self, user_id):
        return self.store.for_customer(user_id)

    def record_payment(self, booking_id, payment_status, actor, reference=None):
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status '{payment_status}'.",
                                  field="payment_status")
        booking = self._load(booking_id)
        if actor.role != ROLE_SYSTEM and not self._is_restaurant_owner(booking.restaurant_id, actor):
            raise ForbiddenError("Not the owner of this restaurant.")

        previous = booking.payment_status
        if previous == payment_status and reference in (None, booking.payment_reference):
            return booking

        with self.store.versioned(booking):
            booking.payment_status = payment_status
            if reference:
                booking.payment_reference = reference
            booking.add_to_history("payment_updated", actor, details={
                "previous_payment_status": previous,
                "payment_status": payment_status,
                "reference": reference,
            })
        return booking

    # Table locks

    def _load_lock(self, lock_ref):
        lock = self.store.get_lock(lock_ref)
        if not lock:
            raise NotFoundError("Table lock not found.", {"lock_ref": lock_ref})
        return lock

    def _authorize_lock(self, lock, actor):
        if actor.role == ROLE_SYSTEM:
            return
        if actor.role != ROLE_CUSTOMER or str(lock.user_id) != str(actor.id):
            raise ForbiddenError("Not the holder of this table lock.")

    def get_lock(self, lock_ref, actor):
        lock = self._load_lock(lock_ref)
        self._authorize_lock(lock, actor)
        return lock

    def create_lock(self, restaurant_id, table_id, date, start_time, end_time,
                    guest_count, actor, hold_minutes=None):
        """Hold a table slot for a customer for ``hold_minutes``.

        The slot must be free of active bookings and of any other unexpired
        lock. The lock occupies the table until it is confirmed,
        released or expires.
        """
        if actor.role != ROLE_CUSTOMER:
            raise ForbiddenError("Only customers can hold a table.")
        booking_date = parse_booking_date(date)
        start_time, end_time = parse_window(start_time, end_time)
        require_guest_count(guest_count)
        if hold_minutes is None:
            hold_minutes = self.lock_minutes
        if isinstance(hold_minutes, bool) or not isinstance(hold_minutes, int) \
                or not 1 <= hold_minutes <= self.max_lock_minutes:
            raise ValidationError(
                f"hold_minutes must be between 1 and {self.max_lock_minutes}.",
                field="hold_minutes")

        self.directory.require_tables(restaurant_id, [table_id])
        conflicts = self.checker.booked_tables(
            restaurant_id, booking_date, start_time, end_time, table_ids=[table_id])
        if conflicts:
            raise ConflictError("Table is not available for this time slot.",
                                conflicts=conflicts[table_id])

        now = datetime.utcnow()
        lock = TableLock(
            lock_ref=generate_lock_ref(),
            restaurant_id=restaurant_id,
            user_id=int(actor.id),
            table_id=table_id,
            date=booking_date,
            start_time=start_time,
            end_time=end_time,
            guest_count=guest_count,
            status="active",
            locked_at=now,
            expires_at=now + timedelta(minutes=hold_minutes),
        )
        self.store.insert_lock_if_free(lock)

        logger.info(f"Table {table_id} locked for {hold_minutes} minutes as {lock.lock_ref}", extra={
            'event': 'table_lock_created',
            'restaurant_id': restaurant_id,
        })
        return lock

    def confirm_lock(self, lock_ref, actor, special_requests=None, customer_phone=None):
        """Turn an active lock into a pending booking for the lock holder."""
        lock = self._load_lock(lock_ref)
        self._authorize_lock(lock, actor)

        if lock.status == "active" and lock.is_expired():
            with self.store.versioned(lock):
                lock.status = "expired"
        if lock.status == "expired":
            raise LockExpiredError("Table lock has expired.", {
                "lock_ref": lock_ref,
                "expires_at": lock.expires_at.isoformat(),
            })
        if lock.status != "active":
            raise ConflictError(f"Table lock is already {lock.status}.",
                                details={"lock_ref": lock_ref, "status": lock.status})

        holder = lock.user
        return self.create(
            restaurant_id=lock.restaurant_id,
            table_id=lock.table_id,
            date=lock.date,
            start_time=lock.start_time,
            end_time=lock.end_time,
            guest_count=lock.guest_count,
            customer={
                "user_id": holder.id,
                "name": holder.full_name,
                "email": holder.email,
                "phone": customer_phone or holder.phone,
            },
            special_requests=special_requests,
            lock=lock,
        )

    def release_lock(self, lock_ref, actor):
        """Give the slot back. Releasing a released or expired lock is a no-op."""
        lock = self._load_lock(lock_ref)
        self._authorize_lock(lock, actor)

        if lock.status in ("released", "expired"):
            return lock
        if lock.status == "confirmed":
            raise PreconditionFailedError("A confirmed table lock cannot be released.",
                                          {"lock_ref": lock_ref, "booking_id": lock.booking_id})

        with self.store.versioned(lock):
            lock.status = "released"
            lock.released_at = datetime.utcnow()

        logger.info(f"Table lock {lock_ref} released", extra={'event': 'table_lock_released'})
        return lock

    # Housekeeping

    def expire_stale_pending(self, older_than_hours, now=None):
        """Cancel pending bookings created more than ``older_than_hours`` ago."""
        cutoff = (now or datetime.utcnow()) - timedelta(hours=older_than_hours)
        expired = 0
        for booking_id in self.store.pending_created_before(cutoff):
            try:
                self.transition(booking_id, "cancelled", SYSTEM_ACTOR, details={
                    "reason": "Auto-cancelled: stale pending booking",
                    "automated": True,
                })
                expired += 1
            except (ConflictError, InvalidTransitionError, NotFoundError) as e:
                logger.info(f"Skipped stale booking {booking_id}: {e}", extra={
                    'event': 'stale_booking_skipped'
                })
        return expired

    def complete_finished(self, now=None):
        """Complete confirmed bookings whose end time has passed locally."""
        now = now or datetime.now(pytz.utc)
        completed = 0
        for booking in self.store.confirmed_up_to(now.date() + timedelta(days=1)):
            tz = pytz.timezone(booking.restaurant.timezone)
            end_naive = datetime.combine(
                booking.date, datetime.strptime(booking.end_time, "%H:%M").time())
            if tz.localize(end_naive) > now:
                continue
            try:
                self.transition(booking.id, "completed", SYSTEM_ACTOR, details={
                    "reason": "Auto-completed after end time",
                    "automated": True,
                })
                completed += 1
            except (ConflictError, InvalidTransitionError, NotFoundError) as e:
                logger.info(f"Skipped finished booking {booking.id}: {e}", extra={
                    'event': 'finished_booking_skipped'
                })
        return completed

    def expire_locks(self, now=None):
        """Mark active table locks past their expiry as expired."""
        expired = self.store.expire_locks(now)
        if expired:
            logger.info(f"Expired {expired} table locks", extra={'event': 'table_locks_expired'})
        return expired
