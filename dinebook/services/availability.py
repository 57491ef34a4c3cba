from dinebook.services.helper import parse_booking_date, parse_window
from dinebook.services.store import conflict_window, lock_window


def windows_overlap(start_a, end_a, start_b, end_b):
    """Half-open overlap: [18:00, 20:00) and [20:00, 22:00) do not conflict."""
    return start_a < end_b and start_b < end_a


class AvailabilityChecker:
    """Answers which tables are committed for a date and time window.

    Pending and confirmed bookings occupy a table, and so do table locks that
    are active and not yet expired. Nothing here writes.
    """

    def __init__(self, store, directory):
        self.store = store
        self.directory = directory

    def _candidate_tables(self, restaurant_id, table_ids):
        if table_ids is None:
            return self.directory.get_table_ids(restaurant_id)
        return self.directory.require_tables(restaurant_id, table_ids)

    def occupancy(self, restaurant_id, booking_date, start_time, end_time,
                  table_ids=None, exclude_lock_id=None, now=None):
        """Return ``(candidate table ids, {table_id: conflicting windows})``.

        Booking windows are listed before lock windows for each table.
        ``exclude_lock_id`` leaves the caller's own lock out of the answer.
        """
        booking_date = parse_booking_date(booking_date)
        start_time, end_time = parse_window(start_time, end_time)
        candidates = self._candidate_tables(restaurant_id, table_ids)

        occupied = {}
        for booking in self.store.occupying(restaurant_id, booking_date,
                                            start_time, end_time,
                                            table_ids=candidates):
            occupied.setdefault(booking.table_id, []).append(conflict_window(booking))
        for lock in self.store.holding(restaurant_id, booking_date,
                                       start_time, end_time,
                                       table_ids=candidates, now=now,
                                       exclude_lock_id=exclude_lock_id):
            occupied.setdefault(lock.table_id, []).append(lock_window(lock))
        return candidates, occupied

    def booked_tables(self, restaurant_id, booking_date, start_time, end_time,
                      table_ids=None, exclude_lock_id=None):
        """Map each occupied table id to the windows it conflicts with."""
        return self.occupancy(restaurant_id, booking_date, start_time, end_time,
                              table_ids, exclude_lock_id=exclude_lock_id)[1]

    def check(self, restaurant_id, booking_date, start_time, end_time,
              table_ids=None):
        """{table_id: occupied} for every candidate table."""
        candidates, occupied = self.occupancy(
            restaurant_id, booking_date, start_time, end_time, table_ids)
        return {table_id: table_id in occupied for table_id in candidates}

    def is_free(self, restaurant_id, table_id, booking_date, start_time, end_time):
        return not self.check(restaurant_id, booking_date, start_time, end_time,
                              table_ids=[table_id])[table_id]
