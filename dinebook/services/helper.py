from dinebook.models import WEEKDAYS
from dinebook.errors import ValidationError
from dinebook import db

from flask_jwt_extended import (
    create_access_token,
    create_refresh_token
)
from passlib.hash import pbkdf2_sha256
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from flask_smorest import abort

from datetime import datetime, date, time
import random
import string
import logging

logger = logging.getLogger(__name__)

DAY_NUMBERS = {name: number for number, name in WEEKDAYS.items()}


def parse_booking_date(value, field="date"):
    """Accept a date or a YYYY-MM-DD string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError("Invalid date. Use YYYY-MM-DD.", field=field)


def parse_booking_time(value, field):
    """Normalise a wall-clock time to zero padded HH:MM."""
    if isinstance(value, time):
        return value.strftime("%H:%M")
    try:
        return datetime.strptime(str(value), "%H:%M").strftime("%H:%M")
    except (TypeError, ValueError):
        raise ValidationError("Invalid time. Use HH:MM.", field=field)


def parse_window(start_time, end_time):
    start = parse_booking_time(start_time, "start_time")
    end = parse_booking_time(end_time, "end_time")
    if end <= start:
        raise ValidationError("end_time must be after start_time.",
                              field="end_time",
                              details={"start_time": start, "end_time": end})
    return start, end


def get_opening_closing_time(date_obj, operating_hours):
    day_no = DAY_NUMBERS[date_obj.strftime("%A")]

    for day_info in operating_hours:
        if day_info.day_of_week == day_no:
            return day_info.opening_time, day_info.closing_time

    return None, None


def is_within_operating_hours(operating_hours, date_obj, start_time, end_time):
    opening_time, closing_time = get_opening_closing_time(date_obj, operating_hours)
    if not opening_time or not closing_time:
        return False
    return (opening_time.strftime("%H:%M") <= start_time
            and end_time <= closing_time.strftime("%H:%M"))


def generate_booking_ref(now=None, length=5):
    """Human readable reference, e.g. BK261016X7K2P."""
    now = now or datetime.utcnow()
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
    return f"BK{now.strftime('%y%m%d')}{suffix}"


def generate_lock_ref(length=12):
    return "lock_" + ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))


# Account helpers used by the user and admin controllers

def create_logic(data, Model, entity):
    """Create an account and return it with a fresh token pair."""
    data.pop("confirm_password", None)
    data["password"] = pbkdf2_sha256.hash(data["password"])
    item = Model(**data)

    try:
        db.session.add(item)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if "email" in str(e.orig):
            abort(400, message=f"{entity.capitalize()} with this email already exists.")
        abort(500, message=f"An error occurred while creating the {entity}.")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to create %s", entity, extra={'event': 'account_create_failed'})
        abort(500, message=f"An error occurred while creating the {entity}.")

    access_token = create_access_token(identity=str(item.id), additional_claims={"role": entity}, fresh=True)
    refresh_token = create_refresh_token(identity=str(item.id), additional_claims={"role": entity})

    return {
        f"{entity}": item.to_dict(),
        "access_token": access_token,
        "refresh_token": refresh_token,
        "message": f"{entity.capitalize()} created successfully",
        "status": 201
    }, 201


def login_logic(login_data, Model, entity):
    """Business logic to log in a user."""
    item = Model.query.filter_by(email=login_data["email"], is_deleted=False).first()
    if not item or not pbkdf2_sha256.verify(login_data["password"], item.password):
        abort(401, message="Invalid email or password.")

    access_token = create_access_token(identity=str(item.id), additional_claims={"role": entity}, fresh=True)
    refresh_token = create_refresh_token(identity=str(item.id), additional_claims={"role": entity})

    return {
        "message": "Login successful",
        "access_token": access_token,
        "refresh_token": refresh_token,
        "status": 200
    }, 200
