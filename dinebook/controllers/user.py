from flask_smorest import Blueprint, abort
from flask.views import MethodView
from flask_jwt_extended import get_jwt_identity, jwt_required, get_jwt

from dinebook.models import User
from dinebook.schemas import UserSchema, LoginSchema
from dinebook.services import build_booking_service
from dinebook.services.logout import logout_logic
from dinebook.services.helper import create_logic, login_logic


blp = Blueprint("Users", __name__, description="Operations on customers")


def check_user_role():
    """Check if the JWT contains the 'user' role."""
    claims = get_jwt()
    if claims.get("role") != "user":
        abort(403, message="Access forbidden: user role required.")


@blp.route("/api/users")
class UserList(MethodView):
    @blp.arguments(UserSchema)
    def post(self, user_data):
        """Register a customer and return it with tokens."""
        existing_user = User.query.filter(
            User.email == user_data["email"],
            User.is_deleted.is_(False)
        ).first()
        if existing_user:
            return {"message": "Email already in use."}, 400

        return create_logic(user_data, User, "user")

    @jwt_required()
    def get(self):
        """Get the current customer using the token."""
        check_user_role()
        user = User.query.filter_by(id=get_jwt_identity(), is_deleted=False).first_or_404()
        return user.to_dict()


@blp.route("/api/users/login")
class UserLogin(MethodView):
    @blp.arguments(LoginSchema)
    def post(self, user_data):
        return login_logic(user_data, User, "user")


@blp.route("/api/users/logout")
class UserLogout(MethodView):
    @jwt_required()
    def post(self):
        """Logout a customer by revoking the token."""
        jti = get_jwt()["jti"]
        exp = get_jwt()["exp"]
        return logout_logic(jti, exp)


@blp.route("/api/users/bookings")
class UserBookings(MethodView):
    @jwt_required()
    def get(self):
        """Bookings made by the current customer, newest first."""
        check_user_role()
        service = build_booking_service()
        bookings = service.lifecycle.list_for_customer(int(get_jwt_identity()))
        return {
            "bookings": [booking.to_dict() for booking in bookings],
            "count": len(bookings)
        }, 200
