import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from dinebook.errors import ConflictError, NotFoundError
from dinebook.models import Booking, TableInstance, TableLock, ACTIVE_STATUSES

logger = logging.getLogger(__name__)


def conflict_window(booking):
    return {
        "booking_ref": booking.booking_ref,
        "table_id": booking.table_id,
        "start_time": booking.start_time,
        "end_time": booking.end_time,
        "status": booking.status,
    }


def lock_window(lock):
    return {
        "lock_ref": lock.lock_ref,
        "table_id": lock.table_id,
        "start_time": lock.start_time,
        "end_time": lock.end_time,
        "status": "locked",
        "expires_at": lock.expires_at.isoformat(),
    }


class BookingStore:
    """Booking persistence on top of a SQLAlchemy session.

    The session is the unit of work: callers pass in the request-scoped
    session and the store commits or rolls it back per operation.
    """

    def __init__(self, session):
        self.session = session

    def get(self, booking_id):
        return self.session.get(Booking, booking_id)

    def get_lock(self, lock_ref):
        return self.session.execute(
            select(TableLock).where(TableLock.lock_ref == lock_ref)
        ).scalar_one_or_none()

    def occupying(self, restaurant_id, booking_date, start_time, end_time,
                  table_ids=None):
        """Pending/confirmed bookings whose window overlaps [start, end)."""
        stmt = select(Booking).where(
            Booking.restaurant_id == restaurant_id,
            Booking.date == booking_date,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )
        if table_ids is not None:
            stmt = stmt.where(Booking.table_id.in_(list(table_ids)))
        return self.session.execute(
            stmt.order_by(Booking.table_id, Booking.start_time)
        ).scalars().all()

    def holding(self, restaurant_id, booking_date, start_time, end_time,
                table_ids=None, now=None, exclude_lock_id=None):
        """Active, unexpired table locks whose window overlaps [start, end)."""
        stmt = select(TableLock).where(
            TableLock.restaurant_id == restaurant_id,
            TableLock.date == booking_date,
            TableLock.status == "active",
            TableLock.expires_at > (now or datetime.utcnow()),
            TableLock.start_time < end_time,
            TableLock.end_time > start_time,
        )
        if table_ids is not None:
            stmt = stmt.where(TableLock.table_id.in_(list(table_ids)))
        if exclude_lock_id is not None:
            stmt = stmt.where(TableLock.id != exclude_lock_id)
        return self.session.execute(
            stmt.order_by(TableLock.table_id, TableLock.start_time)
        ).scalars().all()

    def table_booking_counts(self, restaurant_id, limit, statuses=None):
        """[(table_id, count)] ranked by count desc, then table id asc."""
        booking_count = func.count(Booking.id).label("booking_count")
        stmt = select(Booking.table_id, booking_count).where(
            Booking.restaurant_id == restaurant_id
        )
        if statuses is not None:
            stmt = stmt.where(Booking.status.in_(list(statuses)))
        stmt = (
            stmt.group_by(Booking.table_id)
            .order_by(booking_count.desc(), Booking.table_id.asc())
            .limit(limit)
        )
        return [(row.table_id, row.booking_count)
                for row in self.session.execute(stmt).all()]

    def _lock_table_row(self, restaurant_id, table_id):
        # Bumping booking_seq takes a write lock on the table's row, so two
        # writers for the same table run their overlap checks one at a time.
        locked = self.session.execute(
            update(TableInstance)
            .where(
                TableInstance.restaurant_id == restaurant_id,
                TableInstance.table_id == table_id,
            )
            .values(booking_seq=TableInstance.booking_seq + 1)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not locked:
            raise NotFoundError("Table not found for this restaurant.",
                                {"table_id": table_id})

    def _slot_conflicts(self, record, exclude_lock_id=None):
        windows = [conflict_window(b) for b in self.occupying(
            record.restaurant_id, record.date, record.start_time,
            record.end_time, table_ids=[record.table_id])]
        windows += [lock_window(lock) for lock in self.holding(
            record.restaurant_id, record.date, record.start_time,
            record.end_time, table_ids=[record.table_id],
            exclude_lock_id=exclude_lock_id)]
        return windows

    def insert_if_free(self, booking, lock=None):
        """Insert the booking unless an active booking or lock overlaps its slot.

        ``lock`` is the caller's own table lock for this slot. It does not
        block the insert and is marked confirmed in the same commit.
        """
        try:
            self._lock_table_row(booking.restaurant_id, booking.table_id)
            conflicts = self._slot_conflicts(
                booking, exclude_lock_id=lock.id if lock is not None else None)
            if conflicts:
                raise ConflictError("Table is already booked for this time slot.",
                                    conflicts=conflicts)

            self.session.add(booking)
            if lock is not None:
                lock.status = "confirmed"
                lock.confirmed_at = datetime.utcnow()
                lock.booking = booking
            self.session.commit()
        except (IntegrityError, StaleDataError):
            self.session.rollback()
            logger.warning("Booking insert rejected by a constraint", extra={
                'event': 'booking_insert_integrity_error'
            })
            raise ConflictError("Booking could not be stored, please retry.")
        except Exception:
            self.session.rollback()
            raise
        return booking

    def insert_lock_if_free(self, lock):
        """Insert a table lock unless a booking or another lock holds the slot."""
        try:
            self._lock_table_row(lock.restaurant_id, lock.table_id)
            conflicts = self._slot_conflicts(lock)
            if conflicts:
                raise ConflictError("Table is already held for this time slot.",
                                    conflicts=conflicts)
            self.session.add(lock)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Table was locked by another request, please retry.")
        except Exception:
            self.session.rollback()
            raise
        return lock

    @contextmanager
    def versioned(self, record):
        """Change a version-checked row and commit it as one unit.

        Autoflush stays off inside the block, so the version-checked UPDATE
        is only sent by the commit. If the row changed since it was loaded
        the session is rolled back and ConflictError is raised.
        """
        try:
            with self.session.no_autoflush:
                yield record
            self.session.commit()
        except (StaleDataError, IntegrityError):
            # IntegrityError: two writers appended the same history sequence
            self.session.rollback()
            logger.info("Concurrent modification detected", extra={
                'event': 'version_conflict'
            })
            raise ConflictError(
                f"{record.__class__.__name__} was modified concurrently, please retry.",
                details={"id": record.id})
        except Exception:
            self.session.rollback()
            raise

    def expire_locks(self, now=None):
        """Mark every active lock past its expiry as expired; returns the count."""
        expired = self.session.execute(
            update(TableLock)
            .where(
                TableLock.status == "active",
                TableLock.expires_at <= (now or datetime.utcnow()),
            )
            .values(status="expired", version=TableLock.version + 1)
            .execution_options(synchronize_session=False)
        ).rowcount
        self.session.commit()
        return expired

    def delete(self, booking):
        self.session.delete(booking)
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    def search(self, restaurant_id, status=None, date_from=None, date_to=None,
               search=None):
        stmt = select(Booking).where(Booking.restaurant_id == restaurant_id)
        if status:
            stmt = stmt.where(Booking.status == status)
        if date_from:
            stmt = stmt.where(Booking.date >= date_from)
        if date_to:
            stmt = stmt.where(Booking.date <= date_to)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(
                Booking.customer_name.ilike(pattern),
                Booking.customer_email.ilike(pattern),
                Booking.booking_ref.ilike(pattern),
            ))
        return self.session.execute(
            stmt.order_by(Booking.date.asc(), Booking.start_time.asc(), Booking.id.asc())
        ).scalars().all()

    def for_customer(self, user_id):
        return self.session.execute(
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.date.desc(), Booking.start_time.desc())
        ).scalars().all()

    def pending_created_before(self, cutoff):
        return self.session.execute(
            select(Booking.id).where(
                Booking.status == "pending",
                Booking.created_at < cutoff,
            )
        ).scalars().all()

    def confirmed_up_to(self, last_date):
        return self.session.execute(
            select(Booking).where(
                Booking.status == "confirmed",
                Booking.date <= last_date,
            )
        ).scalars().all()
