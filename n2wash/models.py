import secrets
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Role names stored in user_roles.role
ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"
ROLE_HALL = "hall"
INSTANCE_ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_HALL)

STATION_TYPES = ("washing", "ppf", "detailing", "universal")
CAR_SIZES = ("small", "medium", "large")

RESERVATION_STATUSES = (
    "pending",
    "confirmed",
    "in_progress",
    "completed",
    "cancelled",
    "released",
    "no_show",
    "change_requested",
)


def generate_public_token():
    """Generate an unguessable token for public links"""
    return secrets.token_urlsafe(16)


def generate_batch_id():
    return str(uuid.uuid4())


class Instance(Base):
    __tablename__ = "instances"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    short_name = Column(String(100), nullable=True)  # Used as SMS prefix when set
    slug = Column(String(63), unique=True, index=True, nullable=False)  # Subdomain label
    phone = Column(String(50), nullable=True)
    reservation_phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    google_maps_url = Column(String(500), nullable=True)
    website = Column(String(500), nullable=True)
    social_facebook = Column(String(500), nullable=True)
    social_instagram = Column(String(500), nullable=True)
    logo_url = Column(String(500), nullable=True)  # Storage key for the logo
    primary_color = Column(String(7), nullable=True)
    timezone = Column(String(64), default="Europe/Warsaw", nullable=False)
    # {"monday": {"open": "08:00", "close": "18:00"}, "sunday": null, ...}
    working_hours = Column(JSON, nullable=True)
    auto_confirm_reservations = Column(Boolean, default=True, nullable=False)
    booking_days_ahead = Column(Integer, default=90, nullable=False)
    customer_edit_cutoff_hours = Column(Integer, default=1, nullable=False)
    sms_limit = Column(Integer, default=100, nullable=False)
    sms_used = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    subscription = relationship(
        "InstanceSubscription", back_populates="instance", uselist=False, cascade="all, delete-orphan"
    )
    stations = relationship("Station", back_populates="instance", cascade="all, delete-orphan")
    halls = relationship("Hall", back_populates="instance", cascade="all, delete-orphan")
    features = relationship("InstanceFeature", back_populates="instance", cascade="all, delete-orphan")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(50), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Float, default=0, nullable=False)
    price_per_station = Column(Float, default=0, nullable=False)
    sms_limit = Column(Integer, default=100, nullable=False)
    included_features = Column(JSON, default=list, nullable=False)  # ["offers", "halls", ...]
    sort_order = Column(Integer, default=0)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class InstanceSubscription(Base):
    __tablename__ = "instance_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), unique=True, nullable=False)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    station_limit = Column(Integer, default=2, nullable=False)
    monthly_price = Column(Float, nullable=True)
    status = Column(String(20), default="active")  # active, past_due, cancelled
    is_trial = Column(Boolean, default=False)
    trial_expires_at = Column(DateTime, nullable=True)
    starts_at = Column(DateTime, server_default=func.now())
    ends_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    instance = relationship("Instance", back_populates="subscription")
    plan = relationship("SubscriptionPlan")


class InstanceFeature(Base):
    __tablename__ = "instance_features"
    __table_args__ = (UniqueConstraint("instance_id", "feature_key", name="uq_instance_feature"),)

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    feature_key = Column(String(100), nullable=False)
    enabled = Column(Boolean, default=False, nullable=False)
    parameters = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    instance = relationship("Instance", back_populates="features")


class Station(Base):
    __tablename__ = "stations"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), default="universal", nullable=False)  # washing, ppf, detailing, universal
    color = Column(String(7), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, server_default=func.now())

    instance = relationship("Instance", back_populates="stations")


class Hall(Base):
    __tablename__ = "halls"
    __table_args__ = (UniqueConstraint("instance_id", "slug", name="uq_hall_slug"),)

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(63), nullable=False)
    station_ids = Column(JSON, default=list, nullable=False)
    # Which reservation fields the kiosk shows, e.g. {"customer_name": true, "admin_notes": false}
    visible_fields = Column(JSON, nullable=True)
    # Status actions the kiosk may perform, e.g. {"start": true, "complete": true, "release": false}
    allowed_actions = Column(JSON, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    instance = relationship("Instance", back_populates="halls")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("instance_id", "username", name="uq_instance_username"),)

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=True, index=True)  # null for super admins
    username = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    is_blocked = Column(Boolean, default=False, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")
    instance = relationship("Instance")


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # super_admin, admin, employee, hall
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=True, index=True)
    hall_id = Column(Integer, ForeignKey("halls.id"), nullable=True)

    user = relationship("User", back_populates="roles")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    short_name = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, default=60, nullable=False)
    price_small = Column(Float, nullable=True)
    price_medium = Column(Float, nullable=True)
    price_large = Column(Float, nullable=True)
    price_from = Column(Float, nullable=True)
    station_type = Column(String(20), nullable=True)  # Restrict to stations of this type
    active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, server_default=func.now())


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("instance_id", "phone", name="uq_customer_phone"),)

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    email = Column(String(255), nullable=True)
    phone_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    station_id = Column(Integer, ForeignKey("stations.id"), nullable=True, index=True)
    service_ids = Column(JSON, default=list, nullable=False)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=False)
    customer_email = Column(String(255), nullable=True)
    vehicle_plate = Column(String(100), nullable=False)
    car_size = Column(String(10), nullable=True)  # small, medium, large
    reservation_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=True)  # Multi-day jobs (PPF, detailing)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    status = Column(String(20), default="pending", nullable=False, index=True)
    confirmation_code = Column(String(10), unique=True, index=True, nullable=False)
    price = Column(Float, nullable=True)
    source = Column(String(20), default="admin", nullable=False)  # admin, customer
    admin_notes = Column(Text, nullable=True)
    customer_notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by_username = Column(String(100), nullable=True)
    # Change requests point at the reservation they want to replace
    original_reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)
    change_request_note = Column(Text, nullable=True)
    edited_by_customer_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(100), nullable=True)
    no_show_at = Column(DateTime, nullable=True)
    confirmation_sms_sent_at = Column(DateTime, nullable=True)
    pickup_sms_sent_at = Column(DateTime, nullable=True)
    reminder_1day_sent = Column(Boolean, default=False, nullable=False)
    reminder_1hour_sent = Column(Boolean, default=False, nullable=False)
    reminder_1day_last_attempt_at = Column(DateTime, nullable=True)
    reminder_1hour_last_attempt_at = Column(DateTime, nullable=True)
    reminder_failure_count = Column(Integer, default=0, nullable=False)
    reminder_permanent_failure = Column(Boolean, default=False, nullable=False)
    reminder_failure_reason = Column(Text, nullable=True)
    photo_urls = Column(JSON, default=list, nullable=True)  # Storage keys
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    station = relationship("Station")
    original_reservation = relationship("Reservation", remote_side=[id])


class ReservationChange(Base):
    __tablename__ = "reservation_changes"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False)
    batch_id = Column(String(36), nullable=False, index=True)
    change_type = Column(String(20), nullable=False)  # created, updated, deleted
    field_name = Column(String(100), nullable=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    changed_by_username = Column(String(100), nullable=False)
    changed_by_type = Column(String(20), nullable=False)  # admin, customer, system
    created_at = Column(DateTime, server_default=func.now())


class Break(Base):
    __tablename__ = "breaks"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    station_id = Column(Integer, ForeignKey("stations.id"), nullable=False)
    break_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    note = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class ClosedDay(Base):
    __tablename__ = "closed_days"
    __table_args__ = (UniqueConstraint("instance_id", "closed_date", name="uq_closed_day"),)

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    closed_date = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class SmsMessageSetting(Base):
    __tablename__ = "sms_message_settings"
    __table_args__ = (UniqueConstraint("instance_id", "message_type", name="uq_sms_setting"),)

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    message_type = Column(String(50), nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    send_at_time = Column(String(5), nullable=True)  # HH:MM, used by reminder_1day
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SmsLog(Base):
    __tablename__ = "sms_logs"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=True, index=True)
    phone = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    message_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)  # sent, failed, simulated
    error_message = Column(Text, nullable=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)
    sent_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    gateway_response = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class SmsVerificationCode(Base):
    __tablename__ = "sms_verification_codes"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    phone = Column(String(50), nullable=False, index=True)
    code = Column(String(10), nullable=False)
    reservation_data = Column(JSON, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Offer(Base):
    __tablename__ = "offers"
    __table_args__ = (UniqueConstraint("instance_id", "offer_number", name="uq_offer_number"),)

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    offer_number = Column(String(50), nullable=False)
    public_token = Column(String(64), unique=True, index=True, default=generate_public_token)
    status = Column(String(20), default="draft", nullable=False)  # draft, sent, viewed, accepted, rejected, expired
    customer_data = Column(JSON, nullable=False)  # {"name", "phone", "email", "company", "nip"}
    vehicle_data = Column(JSON, nullable=True)  # {"brand", "model", "plate"}
    items = Column(JSON, default=list, nullable=False)  # [{"name", "quantity", "unit_price_net"}]
    vat_rate = Column(Float, default=23.0, nullable=False)
    total_net = Column(Float, default=0, nullable=False)
    total_gross = Column(Float, default=0, nullable=False)
    notes = Column(Text, nullable=True)
    payment_terms = Column(Text, nullable=True)
    valid_until = Column(Date, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    viewed_at = Column(DateTime, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    views = relationship("OfferView", back_populates="offer", cascade="all, delete-orphan")


class OfferView(Base):
    __tablename__ = "offer_views"

    id = Column(Integer, primary_key=True, index=True)
    offer_id = Column(Integer, ForeignKey("offers.id"), nullable=False, index=True)
    user_agent = Column(String(500), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    offer = relationship("Offer", back_populates="views")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # new_reservation, cancelled, change_requested, offer_viewed...
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("instances.id"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    endpoint = Column(String(1000), unique=True, nullable=False)
    p256dh = Column(String(255), nullable=False)
    auth = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
