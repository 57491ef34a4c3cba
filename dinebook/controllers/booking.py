from flask_smorest import Blueprint, abort
from flask.views import MethodView
from flask_jwt_extended import get_jwt_identity, jwt_required, get_jwt

from dinebook import db
from dinebook.models import User
from dinebook.schemas import (
    AvailabilityQuerySchema,
    FeeQuerySchema,
    BookingRequestSchema,
    BookingStatusSchema,
    BookingFilterSchema,
    PaymentUpdateSchema,
    TableLockRequestSchema,
    TableLockConfirmSchema
)
from dinebook.services import build_booking_service, Actor
from dinebook.services.helper import is_within_operating_hours


blp = Blueprint("Bookings", __name__, description="Table availability and bookings")


def current_actor():
    return Actor(get_jwt_identity(), get_jwt().get("role"))


def check_user_role():
    if get_jwt().get("role") != "user":
        abort(403, message="Access forbidden: user role required.")


@blp.route("/api/restaurants/<int:restaurant_id>/availability")
class TableAvailability(MethodView):
    @blp.arguments(AvailabilityQuerySchema, location="query")
    def get(self, query, restaurant_id):
        """Which tables are free for a date and time window."""
        service = build_booking_service()
        candidates, booked = service.checker.occupancy(
            restaurant_id, query["date"], query["start_time"], query["end_time"],
            query.get("table_ids"))
        return {
            "date": query["date"].isoformat(),
            "start_time": query["start_time"],
            "end_time": query["end_time"],
            "tables": [
                {"table_id": table_id, "available": table_id not in booked,
                 "conflicts": booked.get(table_id, [])}
                for table_id in candidates
            ]
        }, 200


@blp.route("/api/restaurants/<int:restaurant_id>/fee")
class FeeQuote(MethodView):
    @blp.arguments(FeeQuerySchema, location="query")
    def get(self, query, restaurant_id):
        """Quote the booking fee for a table and party size."""
        service = build_booking_service()
        pricing = service.compute_fee(query["guest_count"], query["table_id"], restaurant_id)
        return {"table_id": query["table_id"], "guest_count": query["guest_count"],
                **pricing}, 200


@blp.route("/api/restaurants/<int:restaurant_id>/bookings")
class RestaurantBookings(MethodView):
    @jwt_required()
    @blp.arguments(BookingRequestSchema)
    def post(self, booking_data, restaurant_id):
        """Book a table for the current customer."""
        check_user_role()
        user = db.session.get(User, int(get_jwt_identity()))
        if not user or user.is_deleted:
            abort(404, message="User not found.")

        service = build_booking_service()
        hours = service.directory.get_operating_hours(restaurant_id)
        if not is_within_operating_hours(hours, booking_data["date"],
                                         booking_data["start_time"],
                                         booking_data["end_time"]):
            abort(400, message="Requested time is outside the restaurant's operating hours.")

        booking = service.create_booking({
            "restaurant_id": restaurant_id,
            "table_id": booking_data["table_id"],
            "date": booking_data["date"],
            "start_time": booking_data["start_time"],
            "end_time": booking_data["end_time"],
            "guest_count": booking_data["guest_count"],
            "special_requests": booking_data.get("special_requests"),
            "customer": {
                "user_id": user.id,
                "name": user.full_name,
                "email": user.email,
                "phone": booking_data.get("customer_phone") or user.phone,
            },
        })
        return {
            "message": "Booking created successfully.",
            "booking": booking.to_dict(),
            "status": 201
        }, 201

    @jwt_required()
    @blp.arguments(BookingFilterSchema, location="query")
    def get(self, filters, restaurant_id):
        """Bookings of a restaurant with per-status counts, for its owner."""
        service = build_booking_service()
        result = service.list_bookings(restaurant_id, filters, current_actor())
        return {
            "bookings": [booking.to_dict() for booking in result["bookings"]],
            "stats": result["stats"]
        }, 200


@blp.route("/api/bookings/<int:booking_id>")
class BookingDetail(MethodView):
    @jwt_required()
    def get(self, booking_id):
        service = build_booking_service()
        booking = service.lifecycle.get(booking_id, current_actor())
        return booking.to_dict(include_history=True), 200

    @jwt_required()
    def delete(self, booking_id):
        """Remove a cancelled or completed booking."""
        service = build_booking_service()
        service.delete_booking(booking_id, current_actor())
        return {"message": "Booking deleted successfully.", "status": 200}, 200


@blp.route("/api/bookings/<int:booking_id>/status")
class BookingStatus(MethodView):
    @jwt_required()
    @blp.arguments(BookingStatusSchema)
    def patch(self, status_data, booking_id):
        service = build_booking_service()
        booking = service.transition_booking(booking_id, status_data["status"], current_actor())
        return {
            "message": "Booking status updated.",
            "booking": booking.to_dict(include_history=True)
        }, 200


@blp.route("/api/bookings/<int:booking_id>/payment")
class BookingPayment(MethodView):
    @jwt_required()
    @blp.arguments(PaymentUpdateSchema)
    def patch(self, payment_data, booking_id):
        """Record the payment outcome for a booking (restaurant owner)."""
        service = build_booking_service()
        booking = service.lifecycle.record_payment(
            booking_id, payment_data["payment_status"], current_actor(),
            reference=payment_data.get("reference"))
        return {"message": "Payment status updated.", "booking": booking.to_dict()}, 200


@blp.route("/api/restaurants/<int:restaurant_id>/table-locks")
class TableLocks(MethodView):
    @jwt_required()
    @blp.arguments(TableLockRequestSchema)
    def post(self, lock_data, restaurant_id):
        """Hold a table for a few minutes while the customer checks out."""
        check_user_role()
        service = build_booking_service()
        lock = service.hold_table({"restaurant_id": restaurant_id, **lock_data},
                                  current_actor())
        return {
            "message": f"Table locked until {lock.expires_at.isoformat()}.",
            "lock": lock.to_dict(),
            "status": 201
        }, 201


@blp.route("/api/table-locks/<string:lock_ref>")
class TableLockDetail(MethodView):
    @jwt_required()
    def get(self, lock_ref):
        service = build_booking_service()
        return {"lock": service.lifecycle.get_lock(lock_ref, current_actor()).to_dict()}, 200

    @jwt_required()
    def delete(self, lock_ref):
        """Release a held table."""
        service = build_booking_service()
        lock = service.release_table_lock(lock_ref, current_actor())
        return {"message": "Table lock released.", "lock": lock.to_dict()}, 200


@blp.route("/api/table-locks/<string:lock_ref>/confirm")
class TableLockConfirm(MethodView):
    @jwt_required()
    @blp.arguments(TableLockConfirmSchema)
    def post(self, confirm_data, lock_ref):
        """Turn a held table into a booking."""
        check_user_role()
        service = build_booking_service()
        booking = service.confirm_table_lock(
            lock_ref, current_actor(),
            special_requests=confirm_data.get("special_requests"),
            customer_phone=confirm_data.get("customer_phone"))
        return {
            "message": "Booking created successfully.",
            "booking": booking.to_dict(),
            "status": 201
        }, 201
