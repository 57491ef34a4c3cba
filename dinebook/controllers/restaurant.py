from flask_smorest import Blueprint, abort
from flask.views import MethodView
from flask_jwt_extended import get_jwt_identity, jwt_required, get_jwt

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from dinebook import db
from dinebook.models import (
    Restaurant,
    RestaurantOperatingHours,
    Floorplan,
    TableInstance
)
from dinebook.schemas import RestaurantSchema, FloorplanSchema

logger = logging.getLogger(__name__)

blp = Blueprint("Restaurants", __name__, description="Operations on Restaurants")


def check_admin_role():
    """Check if the JWT contains the 'admin' role."""
    claims = get_jwt()
    if claims.get("role") != "admin":
        abort(403, message="Access forbidden: Admin role required.")


def get_owned_restaurant(restaurant_id):
    restaurant = Restaurant.query.filter_by(id=restaurant_id, is_deleted=False).first_or_404()
    if str(restaurant.admin_id) != get_jwt_identity():
        abort(403, message="You do not have permission to modify this restaurant.")
    return restaurant


def add_floorplan(restaurant, plan_data):
    tables = plan_data.pop("tables")
    floorplan = Floorplan(restaurant=restaurant, **plan_data)
    db.session.add(floorplan)
    for table in tables:
        db.session.add(TableInstance(restaurant_id=restaurant.id, floorplan=floorplan, **table))
    return floorplan


def commit_or_abort(action):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        abort(400, message="Table ids must be unique within a restaurant.")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Failed to {action}", extra={'event': 'restaurant_write_failed'})
        abort(500, message=f"An error occurred while trying to {action}.")


@blp.route("/api/restaurants")
class RestaurantList(MethodView):
    @jwt_required()
    @blp.arguments(RestaurantSchema)
    def post(self, restaurant_data):
        """Create a restaurant with its opening hours, floor plans and tables."""
        check_admin_role()
        hours = restaurant_data.pop("operating_hours")
        floorplans = restaurant_data.pop("floorplans", [])

        days = [hour["day_of_week"] for hour in hours]
        if len(days) != len(set(days)):
            abort(400, message="Each weekday may only appear once in operating hours.")

        restaurant = Restaurant(admin_id=int(get_jwt_identity()), **restaurant_data)
        db.session.add(restaurant)
        try:
            db.session.flush()
        except SQLAlchemyError:
            db.session.rollback()
            abort(500, message="An error occurred while creating the restaurant.")

        for hour in hours:
            db.session.add(RestaurantOperatingHours(restaurant_id=restaurant.id, **hour))
        for plan_data in floorplans:
            add_floorplan(restaurant, plan_data)

        commit_or_abort("create the restaurant")
        logger.info(f"Restaurant {restaurant.id} created", extra={
            'event': 'restaurant_created',
            'restaurant_id': restaurant.id
        })
        return {"restaurant": restaurant.to_dict(), "status": 201}, 201


@blp.route("/api/restaurants/<int:restaurant_id>")
class RestaurantDetail(MethodView):
    def get(self, restaurant_id):
        restaurant = Restaurant.query.filter_by(id=restaurant_id, is_deleted=False).first_or_404()
        return restaurant.to_dict()


@blp.route("/api/restaurants/<int:restaurant_id>/floorplans")
class RestaurantFloorplans(MethodView):
    @jwt_required()
    @blp.arguments(FloorplanSchema)
    def post(self, plan_data, restaurant_id):
        """Add a floor plan with its tables to an existing restaurant."""
        check_admin_role()
        restaurant = get_owned_restaurant(restaurant_id)
        floorplan = add_floorplan(restaurant, plan_data)
        commit_or_abort("add the floor plan")
        return {"floorplan": floorplan.to_dict(), "status": 201}, 201
