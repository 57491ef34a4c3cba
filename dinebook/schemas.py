from marshmallow import (
    Schema,
    fields,
    validate,
    validates,
    ValidationError,
    post_load,
    validates_schema
)

from enum import Enum

import pytz

from dinebook.models import BOOKING_STATUSES, PAYMENT_STATUSES


class Weekday(Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


# Mapping weekdays to numbers
WEEKDAYS = {
    "Monday": 0, "Tuesday": 1, "Wednesday": 2, "Thursday": 3,
    "Friday": 4, "Saturday": 5, "Sunday": 6
}

TIME_RE = r"^(?:[01]\d|2[0-3]):[0-5]\d$"
PHONE_RE = r"^\+\d{1,3}\d{4,14}$"


def time_field(**kwargs):
    return fields.Str(
        validate=validate.Regexp(TIME_RE, error="Invalid time format. Use HH:MM"),
        **kwargs
    )


# Accounts

class AccountSchema(Schema):
    id = fields.Int(dump_only=True)
    first_name = fields.Str(required=True, validate=validate.Length(min=1, max=50))
    last_name = fields.Str(required=False, validate=validate.Length(min=1, max=50))
    email = fields.Email(required=True, validate=validate.Length(max=120))
    phone = fields.Str(
        required=False,
        validate=validate.Regexp(
            PHONE_RE,
            error="Invalid phone number. Must be in E.164 format (e.g., +14155552671)."
        )
    )
    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(min=8, error="Password must be at least 8 characters")
    )
    confirm_password = fields.Str(
        required=True,
        load_only=True
    )

    @validates_schema
    def validate_password_match(self, data, **kwargs):
        """Ensure password and confirm_password match."""
        if data.get("password") != data.get("confirm_password"):
            raise ValidationError({"confirm_password": "Passwords do not match."})


class UserSchema(AccountSchema):
    pass


class AdminSchema(AccountSchema):
    pass


class LoginSchema(Schema):
    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)


# Restaurant setup

class RestaurantOperatingHoursSchema(Schema):
    """Handles opening and closing times for each day of the week."""
    day_of_week = fields.Str(
        required=True,
        validate=validate.OneOf([day.value for day in Weekday]),
        metadata={"description": "Day of the week (e.g., 'Monday')"}
    )
    opening_time = fields.Time(required=True, format='%H:%M')
    closing_time = fields.Time(required=True, format='%H:%M')

    @validates_schema
    def validate_opening_closing(self, data, **kwargs):
        """Ensure closing time is after opening time."""
        if "opening_time" in data and "closing_time" in data:
            if data["closing_time"] <= data["opening_time"]:
                raise ValidationError("Closing time must be after opening time.")

    @post_load
    def convert_day_to_number(self, data, **kwargs):
        """Convert weekday name to number before saving."""
        data["day_of_week"] = WEEKDAYS[data["day_of_week"]]
        return data


class TableSchema(Schema):
    table_id = fields.Str(required=True, validate=validate.Length(min=1, max=50))
    capacity = fields.Int(required=True, validate=validate.Range(min=1))
    location_description = fields.Str(allow_none=True)
    is_available = fields.Bool(load_default=True)


class FloorplanSchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    is_active = fields.Bool(load_default=True)
    tables = fields.List(fields.Nested(TableSchema), required=True,
                         validate=validate.Length(min=1))

    @validates("tables")
    def validate_unique_tables(self, value, **kwargs):
        ids = [table["table_id"] for table in value]
        if len(ids) != len(set(ids)):
            raise ValidationError("Table ids must be unique within a floor plan.")


class RestaurantSchema(Schema):
    """Main schema for restaurant details."""
    name = fields.String(required=True, validate=validate.Length(min=1))
    address = fields.String(required=False)
    phone = fields.Str(
        required=False,
        validate=validate.Regexp(
            PHONE_RE,
            error="Invalid phone number. Must be in E.164 format (e.g., +14155552671)."
        )
    )
    timezone = fields.String(load_default="Asia/Bangkok")
    base_rate = fields.Int(required=False, allow_none=True,
                           validate=validate.Range(min=1))
    operating_hours = fields.List(fields.Nested(RestaurantOperatingHoursSchema), required=True)
    floorplans = fields.List(fields.Nested(FloorplanSchema), load_default=list)

    @validates("timezone")
    def validate_timezone(self, value, **kwargs):
        if value not in pytz.all_timezones_set:
            raise ValidationError("Unknown timezone.")


# Bookings

class AvailabilityQuerySchema(Schema):
    date = fields.Date(required=True)
    start_time = time_field(required=True)
    end_time = time_field(required=True)
    table_ids = fields.List(fields.Str(), required=False)

    @validates_schema
    def validate_window(self, data, **kwargs):
        if data.get("start_time") and data.get("end_time") \
                and data["end_time"] <= data["start_time"]:
            raise ValidationError({"end_time": "end_time must be after start_time."})


class FeeQuerySchema(Schema):
    table_id = fields.Str(required=True)
    guest_count = fields.Int(required=True, validate=validate.Range(min=1))


class BookingRequestSchema(Schema):
    table_id = fields.Str(required=True, validate=validate.Length(min=1))
    date = fields.Date(required=True)
    start_time = time_field(required=True)
    end_time = time_field(required=True)
    guest_count = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    customer_phone = fields.Str(required=False)
    special_requests = fields.Str(required=False, validate=validate.Length(max=1000))


class BookingStatusSchema(Schema):
    status = fields.Str(required=True, validate=validate.OneOf(BOOKING_STATUSES))


class BookingFilterSchema(Schema):
    status = fields.Str(
        required=False,
        validate=validate.OneOf(BOOKING_STATUSES + ("all",))
    )
    date_from = fields.Date(required=False)
    date_to = fields.Date(required=False)
    search = fields.Str(required=False)


class PaymentUpdateSchema(Schema):
    payment_status = fields.Str(required=True, validate=validate.OneOf(PAYMENT_STATUSES))
    reference = fields.Str(required=False, validate=validate.Length(max=255))


class TableLockRequestSchema(Schema):
    table_id = fields.Str(required=True, validate=validate.Length(min=1))
    date = fields.Date(required=True)
    start_time = time_field(required=True)
    end_time = time_field(required=True)
    guest_count = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    hold_minutes = fields.Int(required=False, strict=True, validate=validate.Range(min=1),
                              metadata={"description": "Defaults to TABLE_LOCK_MINUTES"})


class TableLockConfirmSchema(Schema):
    customer_phone = fields.Str(required=False)
    special_requests = fields.Str(required=False, validate=validate.Length(max=1000))
