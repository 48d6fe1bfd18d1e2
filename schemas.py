"""
Request/response schemas for the Jewelry Store API

Pydantic models shared by the routes in main.py. ORM rows are converted with
``Model.model_validate(row)`` (from_attributes).
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Auth

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    user_id: str
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class UserOut(ORMModel):
    id: str = Field(validation_alias=AliasChoices("public_id", "id"))
    username: str
    email: str
    role: str
    created_at: datetime
    last_login: Optional[datetime] = None


class TokenResponse(BaseModel):
    token: str
    refresh_token: str
    user: UserOut


# Catalog

class JewelryImageIn(BaseModel):
    url: str
    sort_order: int = 0


class JewelryImageOut(ORMModel):
    id: int
    jewelry_item_id: int
    url: str
    sort_order: int


class JewelryItemIn(BaseModel):
    name: str = Field(..., max_length=160)
    description: str = ""
    category: str = Field(..., max_length=60)
    collection: Optional[str] = None
    weight_grams: Optional[Decimal] = None
    color: Optional[str] = None
    size_cm: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    shipping_price: Decimal = Field(Decimal("0.00"), ge=0)
    stock_quantity: int = Field(0, ge=0)
    is_available: bool = True
    main_image_url: Optional[str] = None
    video_url: Optional[str] = None
    video_poster_url: Optional[str] = None
    video_duration_seconds: Optional[int] = None
    gallery_images: List[JewelryImageIn] = Field(default_factory=list)


class JewelryItemCard(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    category: str
    collection: Optional[str] = None
    price: Decimal
    stock_quantity: int
    is_available: bool
    main_image_url: Optional[str] = None
    color: Optional[str] = None
    size_cm: Optional[str] = None
    shipping_price: Decimal


class JewelryItemDetail(JewelryItemCard):
    weight_grams: Optional[Decimal] = None
    video_url: Optional[str] = None
    video_poster_url: Optional[str] = None
    video_duration_seconds: Optional[int] = None
    gallery_images: List[JewelryImageOut] = Field(default_factory=list)


# Cart

class CartItemIn(BaseModel):
    jewelry_item_id: int
    quantity: int = 1


class CartRemoveIn(BaseModel):
    jewelry_item_id: int


class CartLineOut(ORMModel):
    id: int
    jewelry_item_id: int
    name: Optional[str] = None
    main_image_url: Optional[str] = None
    quantity: int
    price_at_add_time: Decimal
    line_total: Decimal


class CartOut(BaseModel):
    id: int
    items: List[CartLineOut]
    total: Decimal


# Orders

class ShippingDetails(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    phone_number: str = Field(..., min_length=1, max_length=30)
    country: str = Field(..., min_length=1, max_length=60)
    city: str = Field(..., min_length=1, max_length=60)
    street: str = Field(..., min_length=1, max_length=120)
    postal_code: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=500)
    payment_method: Optional[str] = Field(None, max_length=32)
    payment_reference: Optional[str] = Field(None, max_length=128)
    currency_code: Optional[str] = Field(None, max_length=3)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)


class OrderLineOut(ORMModel):
    jewelry_item_id: int
    name: Optional[str] = Field(None, validation_alias=AliasChoices("name_snapshot", "name"))
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderSummary(BaseModel):
    order_id: int
    created_at: datetime
    status: str
    grand_total: Decimal
    currency_code: str
    item_count: int


class OrderDetail(OrderSummary):
    subtotal: Decimal
    shipping: Decimal
    tax_vat: Decimal
    discount_total: Decimal
    full_name: str
    phone: str
    country: str
    city: str
    street: str
    postal_code: Optional[str] = None
    notes: Optional[str] = None
    payment_provider: Optional[str] = None
    payment_reference: Optional[str] = None
    paypal_order_id: Optional[str] = None
    paypal_capture_id: Optional[str] = None
    paypal_status: Optional[str] = None
    items: List[OrderLineOut]


# Checkout

class CreatePayPalOrderResponse(BaseModel):
    order_id: str
    approve_url: str


class CaptureRequest(BaseModel):
    order_id: str = Field(..., min_length=1)


class CaptureResponse(BaseModel):
    order_id: str
    capture_id: str
    amount: Decimal
    currency: str
    payer_email: str
    store_order_id: int
