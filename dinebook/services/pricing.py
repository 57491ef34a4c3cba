import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import SQLAlchemyError

from dinebook.errors import ValidationError

logger = logging.getLogger(__name__)


def round_half_up(value):
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class FeeCalculator:
    """Prices a table booking, marking up the restaurant's most booked tables.

    ``base_fee_policy`` is a callable ``(guest_count, restaurant) -> fee``;
    the default charges the restaurant's per-guest rate (or ``base_rate``)
    for every guest. ``counted_statuses`` limits which bookings count towards
    popularity; ``None`` counts all of them.
    """

    def __init__(self, store, directory, base_rate=10, top_n=3, markup="1.10",
                 counted_statuses=None, base_fee_policy=None):
        self.store = store
        self.directory = directory
        self.base_rate = base_rate
        self.top_n = top_n
        self.markup = Decimal(str(markup))
        self.counted_statuses = counted_statuses
        self.base_fee_policy = base_fee_policy or self.default_base_fee

    def default_base_fee(self, guest_count, restaurant):
        rate = restaurant.base_rate if restaurant.base_rate is not None else self.base_rate
        return guest_count * rate

    def top_tables(self, restaurant_id):
        return [table_id for table_id, _ in self.store.table_booking_counts(
            restaurant_id, self.top_n, statuses=self.counted_statuses)]

    def compute(self, guest_count, table_id, restaurant_id):
        if isinstance(guest_count, bool) or not isinstance(guest_count, int) or guest_count <= 0:
            raise ValidationError("guest_count must be a positive integer.",
                                  field="guest_count")
        restaurant = self.directory.get_restaurant(restaurant_id)
        base_fee = round_half_up(self.base_fee_policy(guest_count, restaurant))

        try:
            top_tables = self.top_tables(restaurant_id)
        except SQLAlchemyError:
            # Runs before the booking's write begins, so nothing is lost here.
            self.store.rollback()
            logger.warning(
                f"Popularity ranking unavailable for restaurant {restaurant_id}, charging base fee",
                exc_info=True,
                extra={'event': 'fee_ranking_degraded'}
            )
            return {"fee": base_fee, "base_fee": base_fee,
                    "markup_applied": False, "degraded": True}

        if table_id in top_tables:
            return {"fee": round_half_up(base_fee * self.markup), "base_fee": base_fee,
                    "markup_applied": True, "degraded": False}
        return {"fee": base_fee, "base_fee": base_fee,
                "markup_applied": False, "degraded": False}
