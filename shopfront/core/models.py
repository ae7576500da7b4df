from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from shopfront.data.models import OrderStatus, PaymentStatus, Role

# Auth

class UserRegister(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    email: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=1)

class UserLogin(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)

class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: Role

    model_config = ConfigDict(from_attributes=True)

class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[str] = Field(default=None, min_length=3, max_length=100)

class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse

# Addresses

class AddressCreate(BaseModel):
    address: str = Field(min_length=1)
    phone: str = Field(min_length=1, max_length=20)
    city: str = Field(min_length=1, max_length=100)
    is_default: bool = False

class AddressUpdate(BaseModel):
    address: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = Field(default=None, min_length=1, max_length=20)
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_default: Optional[bool] = None

class AddressResponse(BaseModel):
    id: int
    user_id: int
    address: str
    phone: str
    city: str
    is_default: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

# Products

class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    category: Optional[str] = Field(default=None, max_length=100)
    type: Optional[str] = Field(default=None, max_length=100)
    type2: Optional[str] = Field(default=None, max_length=100)
    style: Optional[str] = Field(default=None, max_length=100)
    style2: Optional[str] = Field(default=None, max_length=100)
    stock_quantity: int = Field(default=0, ge=0)

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    discount: Optional[Decimal] = Field(default=None, ge=0, le=100, max_digits=5, decimal_places=2)
    category: Optional[str] = Field(default=None, max_length=100)
    type: Optional[str] = Field(default=None, max_length=100)
    type2: Optional[str] = Field(default=None, max_length=100)
    style: Optional[str] = Field(default=None, max_length=100)
    style2: Optional[str] = Field(default=None, max_length=100)
    stock_quantity: Optional[int] = Field(default=None, ge=0)

class ProductResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    price: Decimal
    discount: Decimal
    category: Optional[str]
    type: Optional[str] = None
    type2: Optional[str] = None
    style: Optional[str] = None
    style2: Optional[str] = None
    stock_quantity: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit
        return cls(
            current_page=page,
            total_pages=total_pages,
            total=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )

class ProductPage(BaseModel):
    products: List[ProductResponse]
    pagination: Pagination

class CategoryProducts(BaseModel):
    category: str
    products: List[ProductResponse]

# Orders

class OrderItemBase(BaseModel):
    product_id: int = Field(gt=0)
    quantity: int = Field(gt=0)

class OrderItemCreate(OrderItemBase):
    pass

class OrderItemResponse(OrderItemBase):
    id: int
    product_name: Optional[str] = None
    price: Decimal
    subtotal: Decimal

    model_config = ConfigDict(from_attributes=True)

class OrderCreate(BaseModel):
    address_id: int
    items: List[OrderItemCreate]

class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None

class OrderResponse(BaseModel):
    id: int
    customer_id: int
    address_id: int
    address: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    items: List[OrderItemResponse]
    total_price: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class OrderPage(BaseModel):
    orders: List[OrderResponse]
    pagination: Pagination

class CountByValue(BaseModel):
    value: str
    count: int

class OrderStats(BaseModel):
    total_orders: int
    total_revenue: Decimal
    status_distribution: List[CountByValue]
    payment_distribution: List[CountByValue]

# Reviews

class ReviewCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    review: str = Field(min_length=1)
    rating: Decimal = Field(default=Decimal("5"), ge=1, le=5, max_digits=2, decimal_places=1)

class ReviewUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    review: Optional[str] = Field(default=None, min_length=1)
    rating: Optional[Decimal] = Field(default=None, ge=1, le=5, max_digits=2, decimal_places=1)

class ReviewResponse(BaseModel):
    id: int
    name: str
    review: str
    rating: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ReviewPage(BaseModel):
    reviews: List[ReviewResponse]
    pagination: Pagination

class RatingCount(BaseModel):
    rating: Decimal
    count: int

class ReviewStats(BaseModel):
    total_reviews: int
    average_rating: Decimal
    rating_distribution: List[RatingCount]
