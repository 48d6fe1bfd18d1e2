"""
Relational schema for the storefront.

Each class maps to one table. Money is stored as Numeric(18, 2) and handled as Decimal.
"""
import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

Money = Numeric(18, 2)


def utcnow() -> datetime:
    return datetime.utcnow()


class Role(str, enum.Enum):
    CUSTOMER = "Customer"
    ADMIN = "Admin"


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    FULFILLED = "Fulfilled"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    public_id: Mapped[str] = mapped_column(String(36), unique=True, default=lambda: str(uuid.uuid4()))
    username: Mapped[str] = mapped_column(String(100), unique=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default=Role.CUSTOMER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    refresh_token_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    refresh_token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    cart = relationship("Cart", back_populates="user", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


class JewelryItem(Base):
    __tablename__ = "jewelry_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160))
    description: Mapped[str] = mapped_column(String(2000), default="")
    category: Mapped[str] = mapped_column(String(60), index=True)
    collection: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    weight_grams: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    size_cm: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    price: Mapped[Decimal] = mapped_column(Money)
    shipping_price: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"))
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    main_image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    video_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    video_poster_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    video_duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    gallery_images: Mapped[List["JewelryImage"]] = relationship(
        back_populates="jewelry_item",
        cascade="all, delete-orphan",
        order_by="JewelryImage.sort_order",
    )


class JewelryImage(Base):
    __tablename__ = "jewelry_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    jewelry_item_id: Mapped[int] = mapped_column(ForeignKey("jewelry_items.id", ondelete="CASCADE"))
    url: Mapped[str] = mapped_column(String(500))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    jewelry_item: Mapped[JewelryItem] = relationship(back_populates="gallery_images")


class Cart(Base):
    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

    user = relationship("User", back_populates="cart")
    items: Mapped[List["CartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "jewelry_item_id", name="uq_cart_items_cart_item"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cart_id: Mapped[int] = mapped_column(ForeignKey("carts.id", ondelete="CASCADE"))
    jewelry_item_id: Mapped[int] = mapped_column(ForeignKey("jewelry_items.id"))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    price_at_add_time: Mapped[Decimal] = mapped_column(Money)

    cart: Mapped[Cart] = relationship(back_populates="items")
    jewelry_item: Mapped[JewelryItem] = relationship()


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    # lifecycle
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=OrderStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    # money
    subtotal: Mapped[Decimal] = mapped_column(Money)
    shipping: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"))
    tax_vat: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"))
    discount_total: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"))
    grand_total: Mapped[Decimal] = mapped_column(Money)
    currency_code: Mapped[str] = mapped_column(String(3), default="USD")

    # shipping details
    full_name: Mapped[str] = mapped_column(String(100), default="")
    phone: Mapped[str] = mapped_column(String(30), default="")
    country: Mapped[str] = mapped_column(String(60), default="")
    city: Mapped[str] = mapped_column(String(60), default="")
    street: Mapped[str] = mapped_column(String(120), default="")
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # payment
    payment_provider: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payment_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    paypal_order_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    paypal_capture_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    paypal_payer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    paypal_gross_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    paypal_fee_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    paypal_net_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    paypal_captured_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    user = relationship("User")
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    jewelry_item_id: Mapped[int] = mapped_column(Integer)
    name_snapshot: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(Money)
    quantity: Mapped[int] = mapped_column(Integer)
    line_total: Mapped[Decimal] = mapped_column(Money)

    order: Mapped[Order] = relationship(back_populates="items")


class PasswordResetRequest(Base):
    __tablename__ = "password_reset_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    # only the hash of the emailed token is kept
    token_hash: Mapped[str] = mapped_column(String(64), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime())
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
