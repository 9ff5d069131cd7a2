import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    # stored as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _values(enum_cls):
    return [m.value for m in enum_cls]


class OrderStatus(str, enum.Enum):
    PREPARING = "Preparing"
    ON_THE_WAY = "On the way"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class RestaurantStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    BUSY = "busy"


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)  # bcrypt hash
    phone = Column(String(20), nullable=True)
    role = Column(
        Enum(UserRole, values_callable=_values, name="user_role"),
        nullable=False,
        default=UserRole.CUSTOMER,
    )

    locations = relationship("CustomerLocation", back_populates="user")
    orders = relationship("Order", back_populates="user")


class Restaurant(Base):
    __tablename__ = "restaurants"

    restaurant_id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    image = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    # display-only ETA estimates, in minutes
    delivery_time = Column(Integer, nullable=True)
    preparing_time = Column(Integer, nullable=True)
    category = Column(String(100), nullable=True)
    opening_time = Column(Time, nullable=True)
    closing_time = Column(Time, nullable=True)
    status = Column(
        Enum(RestaurantStatus, values_callable=_values, name="restaurant_status"),
        nullable=False,
        default=RestaurantStatus.OPEN,
    )

    items = relationship("Item", back_populates="restaurant", cascade="all, delete-orphan")


class CustomerLocation(Base):
    __tablename__ = "customer_location"

    location_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    street = Column(String(255), nullable=False)
    building = Column(String(100), nullable=True)
    apartment = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    floor = Column(String(50), nullable=True)

    user = relationship("User", back_populates="locations")


class Item(Base):
    __tablename__ = "items"

    item_id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.restaurant_id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    image = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True)
    availability = Column(Boolean, nullable=False, default=True)

    restaurant = relationship("Restaurant", back_populates="items")


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("customer_location.location_id"), nullable=False)
    order_date = Column(DateTime, nullable=False, default=utcnow, index=True)
    status = Column(
        Enum(OrderStatus, values_callable=_values, name="order_status"),
        nullable=False,
        default=OrderStatus.PREPARING,
        index=True,
    )
    total_amount = Column(Numeric(10, 2), nullable=False)  # fixed at checkout
    payment_method = Column(String(50), nullable=True)

    user = relationship("User", back_populates="orders")
    location = relationship("CustomerLocation")
    details = relationship("OrderDetail", back_populates="order", cascade="all, delete-orphan")


class OrderDetail(Base):
    __tablename__ = "order_details"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_order_details_quantity"),)

    order_id = Column(Integer, ForeignKey("orders.order_id"), primary_key=True)
    item_id = Column(Integer, ForeignKey("items.item_id"), primary_key=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # snapshot of price at order time

    order = relationship("Order", back_populates="details")
    item = relationship("Item")


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating"),)

    review_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    restaurant_id = Column(Integer, ForeignKey("restaurants.restaurant_id"), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.order_id"), nullable=True, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    review_date = Column(DateTime, nullable=False, default=utcnow)
