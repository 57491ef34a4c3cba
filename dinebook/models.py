from dinebook import db
from datetime import datetime

from sqlalchemy import event


# Mapping weekdays to numbers (0 = Monday, ..., 6 = Sunday)
WEEKDAYS = {0: "Monday", 1: "Tuesday", 2: "Wednesday",
            3: "Thursday", 4: "Friday", 5: "Saturday", 6: "Sunday"}

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
ACTIVE_STATUSES = ("pending", "confirmed")
TERMINAL_STATUSES = ("cancelled", "completed")
PAYMENT_STATUSES = ("unpaid", "paid", "failed")
LOCK_STATUSES = ("active", "confirmed", "released", "expired")


class User(db.Model):
    """A customer account."""
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(100), nullable=False, unique=True)
    password = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    role = db.Column(db.String(50), nullable=False, default='user')

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    is_deleted = db.Column(db.Boolean, default=False)

    @property
    def full_name(self):
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def to_dict(self):
        return {
            "user_id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Admin(db.Model):
    """A restaurant owner account."""
    __tablename__ = 'admin'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(100), nullable=False, unique=True)
    password = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    role = db.Column(db.String(50), nullable=False, default='admin')

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    is_deleted = db.Column(db.Boolean, default=False)

    def to_dict(self):
        return {
            "admin_id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class RestaurantOperatingHours(db.Model):
    """Stores different opening and closing times for each weekday."""
    __tablename__ = 'restaurant_operating_hours'

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey(
        'restaurant.id', ondelete='CASCADE'), nullable=False)
    # 0 (Monday) to 6 (Sunday)
    day_of_week = db.Column(db.Integer, nullable=False)
    opening_time = db.Column(db.Time, nullable=False)
    closing_time = db.Column(db.Time, nullable=False)

    restaurant = db.relationship(
        'Restaurant', backref='operating_hours', lazy=True)

    def to_dict(self):
        return {
            "operating_hour_id": self.id,
            "day_of_week": WEEKDAYS.get(self.day_of_week, "Unknown"),
            "opening_time": self.opening_time.strftime("%H:%M"),
            "closing_time": self.closing_time.strftime("%H:%M")
        }


class Restaurant(db.Model):
    __tablename__ = 'restaurant'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.String(150), nullable=True)
    timezone = db.Column(db.String(100), nullable=False,
                         default="Asia/Bangkok")
    # Per-guest booking rate; falls back to BOOKING_BASE_RATE when unset
    base_rate = db.Column(db.Integer, nullable=True)

    admin_id = db.Column(db.Integer, db.ForeignKey(
        'admin.id', ondelete='CASCADE'), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    is_deleted = db.Column(db.Boolean, default=False)

    admin = db.relationship('Admin', backref='restaurants', lazy='joined')

    def to_dict(self):
        return {
            "restaurant_id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "timezone": self.timezone,
            "base_rate": self.base_rate,
            "owner_id": self.admin_id,
            "operating_hours": [hour.to_dict() for hour in self.operating_hours],
            "floorplans": [plan.to_dict() for plan in self.floorplans],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Floorplan(db.Model):
    __tablename__ = 'floorplan'

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey(
        'restaurant.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    restaurant = db.relationship('Restaurant', backref='floorplans')

    def to_dict(self):
        return {
            "floorplan_id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "tables": [table.to_dict() for table in self.tables],
        }


class TableInstance(db.Model):
    __tablename__ = 'table_instance'

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey(
        'restaurant.id', ondelete='CASCADE'), nullable=False, index=True)
    floorplan_id = db.Column(db.Integer, db.ForeignKey(
        'floorplan.id', ondelete='CASCADE'), nullable=False)
    # Friendly identifier shown on the floor plan, e.g. "t1"
    table_id = db.Column(db.String(50), nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    location_description = db.Column(db.String(100))
    is_available = db.Column(db.Boolean, default=True)
    # Bumped by every booking insert on this table; the UPDATE serializes
    # concurrent writers for the same table.
    booking_seq = db.Column(db.Integer, nullable=False, default=0)

    floorplan = db.relationship('Floorplan', backref='tables')

    __table_args__ = (
        db.UniqueConstraint('restaurant_id', 'table_id',
                            name='uq_restaurant_table'),
    )

    def to_dict(self):
        return {
            "table_id": self.table_id,
            "capacity": self.capacity,
            "location_description": self.location_description,
            "is_available": self.is_available,
        }


class Booking(db.Model):
    __tablename__ = "booking"

    id = db.Column(db.Integer, primary_key=True)
    booking_ref = db.Column(db.String(20), nullable=False, unique=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey(
        'restaurant.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    table_id = db.Column(db.String(50), nullable=False)

    customer_name = db.Column(db.String(100), nullable=False)
    customer_email = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(20), nullable=True)

    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)  # Example: "18:00"
    end_time = db.Column(db.String(5), nullable=False)
    guest_count = db.Column(db.Integer, nullable=False)

    fee = db.Column(db.Integer, nullable=False)
    base_fee = db.Column(db.Integer, nullable=False)
    markup_applied = db.Column(db.Boolean, nullable=False, default=False)
    pricing_degraded = db.Column(db.Boolean, nullable=False, default=False)
    payment_status = db.Column(
        db.Enum(*PAYMENT_STATUSES, name='booking_payment_status_enum'),
        nullable=False,
        default="unpaid"
    )
    payment_reference = db.Column(db.String(255), nullable=True)

    status = db.Column(
        db.Enum(*BOOKING_STATUSES, name='booking_status_enum'),
        nullable=False,
        default="pending"
    )
    special_requests = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    version = db.Column(db.Integer, nullable=False)

    history = db.relationship(
        "BookingHistory",
        back_populates="booking",
        order_by="BookingHistory.sequence",
        cascade="all, delete-orphan",
    )
    user = db.relationship("User", backref="bookings")
    restaurant = db.relationship("Restaurant", backref="bookings")

    __table_args__ = (
        db.Index('ix_booking_table_date', 'restaurant_id', 'table_id', 'date'),
        db.Index('ix_booking_restaurant_date', 'restaurant_id', 'date'),
    )
    __mapper_args__ = {"version_id_col": version}

    def add_to_history(self, action, actor, previous_status=None,
                       new_status=None, details=None, timestamp=None):
        """Append a history entry unless an identical one is already logged.

        Returns the new entry, or None when it was a duplicate.
        """
        timestamp = timestamp or datetime.utcnow()
        details = details or {}
        for entry in self.history:
            if (entry.action == action and entry.created_at == timestamp
                    and (entry.details or {}) == details):
                return None

        entry = BookingHistory(
            sequence=len(self.history) + 1,
            action=action,
            actor_id=str(actor.id) if actor.id is not None else None,
            actor_role=actor.role,
            previous_status=previous_status,
            new_status=new_status,
            details=details,
            created_at=timestamp,
        )
        self.history.append(entry)
        return entry

    def to_dict(self, include_history=False):
        data = {
            "booking_id": self.id,
            "booking_ref": self.booking_ref,
            "restaurant_id": self.restaurant_id,
            "user_id": self.user_id,
            "table_id": self.table_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "guest_count": self.guest_count,
            "pricing": {
                "fee": self.fee,
                "base_fee": self.base_fee,
                "markup_applied": self.markup_applied,
                "degraded": self.pricing_degraded,
            },
            "payment_status": self.payment_status,
            "payment_reference": self.payment_reference,
            "status": self.status,
            "special_requests": self.special_requests,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            data["history"] = [entry.to_dict() for entry in self.history]
        return data


class BookingHistory(db.Model):
    __tablename__ = "booking_history"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey(
        "booking.id", ondelete='CASCADE'), nullable=False)
    sequence = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(50), nullable=False)
    actor_id = db.Column(db.String(50), nullable=True)
    actor_role = db.Column(db.String(20), nullable=False)
    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=True)
    details = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    booking = db.relationship("Booking", back_populates="history")

    __table_args__ = (
        db.UniqueConstraint('booking_id', 'sequence',
                            name='uq_booking_history_sequence'),
    )

    def to_dict(self):
        return {
            "sequence": self.sequence,
            "action": self.action,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "details": self.details,
            "timestamp": self.created_at.isoformat(),
        }


@event.listens_for(BookingHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise ValueError("Booking history entries are append-only.")


class TableLock(db.Model):
    """A short hold on a table slot while the guest finishes checking out.

    An active lock occupies its slot until ``expires_at``; confirming it
    turns it into a booking.
    """
    __tablename__ = "table_lock"

    id = db.Column(db.Integer, primary_key=True)
    lock_ref = db.Column(db.String(40), nullable=False, unique=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey(
        'restaurant.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    table_id = db.Column(db.String(50), nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey(
        'booking.id', ondelete='SET NULL'), nullable=True)

    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)
    guest_count = db.Column(db.Integer, nullable=False)

    status = db.Column(
        db.Enum(*LOCK_STATUSES, name='table_lock_status_enum'),
        nullable=False,
        default="active"
    )
    locked_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    released_at = db.Column(db.DateTime, nullable=True)
    version = db.Column(db.Integer, nullable=False)

    user = db.relationship("User", backref="table_locks")
    restaurant = db.relationship("Restaurant", backref="table_locks")
    booking = db.relationship("Booking")

    __table_args__ = (
        db.Index('ix_table_lock_slot', 'restaurant_id', 'date', 'table_id'),
        db.Index('ix_table_lock_expiry', 'status', 'expires_at'),
    )
    __mapper_args__ = {"version_id_col": version}

    def is_expired(self, now=None):
        return (now or datetime.utcnow()) >= self.expires_at

    def to_dict(self, now=None):
        now = now or datetime.utcnow()
        expired = self.status == "expired" or (
            self.status == "active" and self.is_expired(now))
        remaining = 0 if expired or self.status != "active" \
            else int((self.expires_at - now).total_seconds())
        return {
            "lock_ref": self.lock_ref,
            "restaurant_id": self.restaurant_id,
            "table_id": self.table_id,
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "guest_count": self.guest_count,
            "status": "expired" if expired else self.status,
            "expires_at": self.expires_at.isoformat(),
            "seconds_remaining": remaining,
            "booking_id": self.booking_id,
        }


class TokenBlocklist(db.Model):
    __tablename__ = "token_blocklist"

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), nullable=False, unique=True)
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
