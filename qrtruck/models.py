"""
SQLAlchemy Database Models

Relational schema for the ordering platform:
- Users (platform admins, truck owners, customers)
- Food trucks with their province-derived tax rate and shop status
- Menu items
- Orders created once a payment succeeds
- Pickup events (at most one per order)
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Float,
    DateTime,
    Text,
    Enum,
    Boolean,
    Integer,
    ForeignKey,
    JSON,
)

from qrtruck.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    """Account roles."""
    ADMIN = "ADMIN"
    TRUCK_OWNER = "TRUCK_OWNER"
    CUSTOMER = "CUSTOMER"


class Province(str, enum.Enum):
    """Canadian provinces and territories."""
    AB = "AB"
    BC = "BC"
    MB = "MB"
    NB = "NB"
    NL = "NL"
    NT = "NT"
    NS = "NS"
    NU = "NU"
    ON = "ON"
    PE = "PE"
    QC = "QC"
    SK = "SK"
    YT = "YT"


class ShopStatus(str, enum.Enum):
    """Merchant-controlled availability of a truck."""
    OPEN = "OPEN"
    PAUSED = "PAUSED"
    CLOSED = "CLOSED"


class OrderStatus(str, enum.Enum):
    """Order lifecycle."""
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    PICKED_UP = "PICKED_UP"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class User(Base):
    """Platform account. Truck owners may link a Stripe connected account."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)

    stripe_connect_id = Column(String(100), nullable=True, unique=True)
    stripe_onboarded = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    def __repr__(self):
        return f"<User {self.email} - {self.role.value}>"


class FoodTruck(Base):
    """
    A truck and its public storefront.

    ``tax_rate`` is copied from the provincial table whenever the province
    is set, so historical orders keep the rate they were charged.
    """
    __tablename__ = "food_trucks"

    id = Column(String(32), primary_key=True, default=_new_id)
    owner_id = Column(
        String(32),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # =========================================================================
    # STOREFRONT
    # =========================================================================
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String(255), nullable=False)
    logo_url = Column(String(500), nullable=True)
    banner_url = Column(String(500), nullable=True)
    qr_code_url = Column(Text, nullable=True)  # PNG data URL

    # =========================================================================
    # TAX
    # =========================================================================
    province = Column(Enum(Province), nullable=False)
    tax_rate = Column(Float, nullable=False)

    # =========================================================================
    # STATUS
    # =========================================================================
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    shop_status = Column(Enum(ShopStatus), default=ShopStatus.OPEN, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    def __repr__(self):
        return f"<FoodTruck {self.name} - {self.province.value} - {self.shop_status.value}>"


class MenuItem(Base):
    """A dish sold by one truck."""
    __tablename__ = "menu_items"

    id = Column(String(32), primary_key=True, default=_new_id)
    truck_id = Column(
        String(32),
        ForeignKey("food_trucks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    category = Column(String(50), nullable=False)
    image_url = Column(String(500), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    def __repr__(self):
        return f"<MenuItem {self.name} - ${self.price:.2f}>"


class Order(Base):
    """
    A paid order.

    Rows are only created after the payment processor reports success,
    either from the webhook or from the client fallback. ``order_number``
    is unique so the two paths cannot both insert.
    """
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=_new_id)
    order_number = Column(String(40), nullable=False, unique=True, index=True)
    truck_id = Column(
        String(32),
        ForeignKey("food_trucks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        String(32),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(20), nullable=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)  # [{menu_item_id, name, price, quantity}]

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False)
    tax = Column(Float, nullable=False)
    platform_fee = Column(Float, nullable=False)
    total = Column(Float, nullable=False)

    # =========================================================================
    # PAYMENT INFO
    # =========================================================================
    stripe_payment_id = Column(String(100), nullable=True, index=True)
    stripe_status = Column(String(40), nullable=True)

    # =========================================================================
    # FULFILMENT
    # =========================================================================
    pickup_code = Column(String(4), nullable=False)
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Order {self.order_number} - {self.status.value} - ${self.total:.2f}>"


class PickupEvent(Base):
    """Proof that an order was handed over. One per order."""
    __tablename__ = "pickup_events"

    id = Column(String(32), primary_key=True, default=_new_id)
    order_id = Column(
        String(32),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    staff_name = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    photo_url = Column(String(500), nullable=True)
    picked_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<PickupEvent order={self.order_id}>"
