from flask import Flask, jsonify
from flask_smorest import Api
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_mail import Mail
from flask_cors import CORS
from celery import Celery

from dinebook.config import Config


db = SQLAlchemy()
migrate = Migrate()
mail = Mail()
jwt = JWTManager()
celery = Celery(__name__)


def create_app(config_class=Config):

    app = Flask(__name__)
    app.config.from_object(config_class)
    CORS(app)

    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)
    jwt.init_app(app)

    from .celery_config import make_celery
    make_celery(app, celery)

    from .middleware import init_middleware
    init_middleware(app)

    from .controllers.user import blp as UserBlp
    from .controllers.admin import blp as AdminBlp
    from .controllers.restaurant import blp as RestaurantBlp
    from .controllers.booking import blp as BookingBlp
    from .services.logout import is_token_revoked

    @jwt.token_in_blocklist_loader
    def check_if_token_in_blocklist(jwt_header, jwt_payload):
        return is_token_revoked(jwt_payload)

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            "message": "The token has expired.",
            "error": "token_expired"
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            "message": "Signature verification failed.",
            "error": "invalid_token"
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            "description": "Request doesn't contain an access token.",
            "error": "authorization_required"
        }), 401

    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        return jsonify({
            "description": "The token has been revoked.",
            "error": "token_revoked"
        }), 401

    api = Api(app)
    api.register_blueprint(UserBlp)
    api.register_blueprint(AdminBlp)
    api.register_blueprint(RestaurantBlp)
    api.register_blueprint(BookingBlp)

    @app.route('/')
    def home():
        return jsonify({"message": "Welcome to the Restaurant Table Reservation API!"})

    return app
