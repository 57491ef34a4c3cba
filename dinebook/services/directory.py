from sqlalchemy import select

from dinebook.errors import NotFoundError
from dinebook.models import (
    Restaurant, RestaurantOperatingHours, Floorplan, TableInstance
)


class RestaurantDirectory:
    """Read-only view of restaurants, their floor plans and opening hours."""

    def __init__(self, session):
        self.session = session

    def get_restaurant(self, restaurant_id):
        restaurant = self.session.execute(
            select(Restaurant).where(
                Restaurant.id == restaurant_id,
                Restaurant.is_deleted.is_(False)
            )
        ).scalar_one_or_none()
        if not restaurant:
            raise NotFoundError("Restaurant not found.",
                                {"restaurant_id": restaurant_id})
        return restaurant

    def get_table_ids(self, restaurant_id):
        """Table ids reachable from the restaurant's active floor plans."""
        self.get_restaurant(restaurant_id)
        return list(self.session.execute(
            select(TableInstance.table_id)
            .join(Floorplan, TableInstance.floorplan_id == Floorplan.id)
            .where(
                TableInstance.restaurant_id == restaurant_id,
                TableInstance.is_available.is_(True),
                Floorplan.is_active.is_(True)
            )
            .order_by(TableInstance.table_id)
        ).scalars().all())

    def get_operating_hours(self, restaurant_id):
        self.get_restaurant(restaurant_id)
        return self.session.execute(
            select(RestaurantOperatingHours)
            .where(RestaurantOperatingHours.restaurant_id == restaurant_id)
            .order_by(RestaurantOperatingHours.day_of_week)
        ).scalars().all()

    def get_owner_id(self, restaurant_id):
        return self.get_restaurant(restaurant_id).admin_id

    def require_tables(self, restaurant_id, table_ids):
        """Raise NotFoundError unless every id belongs to the restaurant."""
        known = set(self.get_table_ids(restaurant_id))
        missing = sorted(set(table_ids) - known)
        if missing:
            raise NotFoundError("One or more tables not found for this restaurant.",
                                {"table_ids": missing})
        return list(table_ids)
