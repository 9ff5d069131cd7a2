from datetime import date, datetime, time
from typing import Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from .models import OrderStatus, RestaurantStatus, UserRole


# ----- Orders: requests -----

class OrderItemRequest(BaseModel):
    item_id: int = Field(validation_alias=AliasChoices("itemId", "item_id", "id"))
    quantity: int = Field(gt=0)
    price: Optional[float] = Field(None, ge=0)  # unit price shown at checkout


class CreateOrderRequest(BaseModel):
    items: List[OrderItemRequest] = []
    location_id: Optional[int] = Field(None, validation_alias=AliasChoices("locationId", "location_id"))
    payment_method: Optional[str] = None
    total_amount: float = Field(ge=0)
    user_id: Optional[int] = None  # admin-only: place an order on behalf of a customer


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    force: bool = False


# ----- Orders: responses -----

class OrderCreated(BaseModel):
    message: str = "Order placed successfully"
    orderId: int


class StatusUpdated(BaseModel):
    message: str = "Order status updated"
    order_id: int
    status: OrderStatus


class AdminOrderItem(BaseModel):
    name: Optional[str]
    price: float
    quantity: int


class AdminOrderRead(BaseModel):
    order_id: int
    user_id: int
    location_id: int
    order_date: datetime
    status: OrderStatus
    total_amount: float
    payment_method: Optional[str]
    customerName: Optional[str]
    items: List[AdminOrderItem]


class HistoryItem(BaseModel):
    item_id: int
    name: Optional[str]
    price: float
    quantity: int
    image: Optional[str]
    restaurant_id: Optional[int]
    restaurant_name: Optional[str]


class RestaurantRef(BaseModel):
    id: int
    name: str


class HistoryOrderRead(BaseModel):
    order_id: int
    user_id: int
    location_id: int
    order_date: datetime
    created_at: datetime
    status: OrderStatus
    total_amount: float
    payment_method: Optional[str]
    items: List[HistoryItem]
    restaurants: List[RestaurantRef]


class Address(BaseModel):
    street: Optional[str] = None
    building: Optional[str] = None
    apartment: Optional[str] = None
    city: Optional[str] = None
    floor: Optional[str] = None


class OrderDetailRead(BaseModel):
    order_id: int
    user_id: int
    status: OrderStatus
    total_amount: float
    payment_method: Optional[str]
    order_date: datetime
    created_at: datetime
    restaurant_id: Optional[int]
    restaurant_name: str
    items: List[HistoryItem]
    address: Address


# ----- Auth / users -----

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    name: Optional[str] = None
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    token: str


class UserRead(BaseModel):
    user_id: int
    name: str
    email: EmailStr
    phone: Optional[str]
    role: UserRole

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


# ----- Locations -----

class LocationCreate(BaseModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    building: Optional[str] = None
    apartment: Optional[str] = None
    floor: Optional[str] = None


class LocationRead(BaseModel):
    location_id: int
    user_id: int
    street: str
    building: Optional[str]
    apartment: Optional[str]
    city: Optional[str]
    floor: Optional[str]

    class Config:
        from_attributes = True


class LocationCreated(BaseModel):
    message: str = "Location added successfully."
    locationId: int
    userId: int


# ----- Restaurants / items -----

class RestaurantCreate(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    image: Optional[str] = None
    status: RestaurantStatus = RestaurantStatus.OPEN
    opening_time: Optional[time] = None
    closing_time: Optional[time] = None
    category: Optional[str] = None
    preparing_time: Optional[int] = Field(None, ge=0)
    delivery_time: Optional[int] = Field(None, ge=0)


class RestaurantUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    image: Optional[str] = None
    status: Optional[RestaurantStatus] = None
    opening_time: Optional[time] = None
    closing_time: Optional[time] = None
    category: Optional[str] = None
    preparing_time: Optional[int] = Field(None, ge=0)
    delivery_time: Optional[int] = Field(None, ge=0)


class RestaurantRead(BaseModel):
    restaurant_id: int
    name: str
    image: Optional[str]
    phone: Optional[str]
    status: RestaurantStatus
    opening_time: Optional[time]
    closing_time: Optional[time]
    category: Optional[str]
    preparing_time: Optional[int]
    delivery_time: Optional[int]
    eta_minutes: Optional[int] = None  # display only

    class Config:
        from_attributes = True


class ItemCreate(BaseModel):
    restaurant_id: int
    name: str = Field(min_length=1)
    price: float = Field(gt=0)
    description: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    availability: bool = True


class ItemUpdate(BaseModel):
    restaurant_id: Optional[int] = None
    name: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    availability: Optional[bool] = None


class ItemRead(BaseModel):
    item_id: int
    restaurant_id: int
    name: str
    description: Optional[str]
    price: float
    image: Optional[str]
    category: Optional[str]
    availability: bool

    class Config:
        from_attributes = True


class Created(BaseModel):
    message: str
    id: int


class Message(BaseModel):
    message: str


# ----- Reviews -----

class ReviewCreate(BaseModel):
    order_id: Optional[int] = None
    item_ratings: Dict[str, Union[int, float, str, None]] = {}
    comment: Optional[str] = None


class ReviewCreated(BaseModel):
    message: str = "Review submitted"
    rating: int


class RatingSummary(BaseModel):
    restaurant_id: int
    avg_rating: float
    review_count: int


# ----- Sales -----

class DailySales(BaseModel):
    day: date
    total_sales: float
    orders_count: int


class MonthlySales(BaseModel):
    month: str
    total_sales: float
    orders_count: int
