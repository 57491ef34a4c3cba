from flask_smorest import Blueprint, abort
from flask.views import MethodView
from flask_jwt_extended import get_jwt_identity, jwt_required, get_jwt

from dinebook.models import Admin
from dinebook.schemas import AdminSchema, LoginSchema
from dinebook.services.logout import logout_logic
from dinebook.services.helper import create_logic, login_logic

blp = Blueprint("Admins", __name__, description="Operations on restaurant owners")


def check_admin_role():
    """Check if the JWT contains the 'admin' role."""
    claims = get_jwt()
    if claims.get("role") != "admin":
        abort(403, message="Access forbidden: Admin role required.")


@blp.route("/api/admins")
class AdminList(MethodView):
    @blp.arguments(AdminSchema)
    def post(self, admin_data):
        """Create a new admin and return the created admin with tokens."""
        existing_admin = Admin.query.filter(
            Admin.email == admin_data["email"],
            Admin.is_deleted.is_(False)
        ).first()
        if existing_admin:
            return {"message": "Email already in use."}, 400

        return create_logic(admin_data, Admin, "admin")

    @jwt_required()
    def get(self):
        """Get the current admin using the token."""
        check_admin_role()
        admin = Admin.query.filter_by(id=get_jwt_identity(), is_deleted=False).first_or_404()
        return admin.to_dict()


@blp.route("/api/admins/login")
class AdminLogin(MethodView):
    @blp.arguments(LoginSchema)
    def post(self, admin_data):
        return login_logic(admin_data, Admin, "admin")


@blp.route("/api/admins/logout")
class AdminLogout(MethodView):
    @jwt_required()
    def post(self):
        jti = get_jwt()["jti"]
        exp = get_jwt()["exp"]
        return logout_logic(jti, exp)
