"""
Cart service.

A cart belongs to exactly one user and is created lazily. Each line keeps the
unit price the product had when it was added; lines are never re-priced.
"""
import logging
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from errors import InvalidRequestError, NotFoundError
from models import Cart, CartItem, JewelryItem, User

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def cart_total(items: Iterable[CartItem]) -> Decimal:
    """Sum of unit price x quantity, each line rounded to cents."""
    return sum((round_money(i.price_at_add_time * i.quantity) for i in items), Decimal("0.00"))


def _ensure_user(db: Session, user_id: int) -> None:
    if db.get(User, user_id) is None:
        raise NotFoundError(f"User with id {user_id} does not exist.")


def find_cart(db: Session, user_id: int) -> Optional[Cart]:
    return db.scalar(
        select(Cart)
        .options(selectinload(Cart.items).selectinload(CartItem.jewelry_item))
        .where(Cart.user_id == user_id)
    )


def get_or_create_cart(db: Session, user_id: int) -> Cart:
    _ensure_user(db, user_id)
    cart = find_cart(db, user_id)
    if cart is not None:
        return cart

    cart = Cart(user_id=user_id)
    db.add(cart)
    db.commit()
    db.refresh(cart)
    logger.info(f"Created cart {cart.id} for user {user_id}")
    return cart


def add_item(db: Session, user_id: int, jewelry_item_id: int, quantity: int) -> Cart:
    if quantity < 1:
        raise InvalidRequestError("Quantity must be at least 1.")
    _ensure_user(db, user_id)

    cart = get_or_create_cart(db, user_id)
    existing = next((line for line in cart.items if line.jewelry_item_id == jewelry_item_id), None)
    if existing is not None:
        existing.quantity += quantity
    else:
        item = db.get(JewelryItem, jewelry_item_id)
        if item is None:
            raise NotFoundError(f"Jewelry item {jewelry_item_id} not found.")
        if not item.is_available:
            raise InvalidRequestError(f"Jewelry item {jewelry_item_id} is not available.")
        cart.items.append(
            CartItem(jewelry_item_id=item.id, quantity=quantity, price_at_add_time=item.price)
        )
    db.commit()
    db.refresh(cart)
    return cart


def remove_item(db: Session, user_id: int, jewelry_item_id: int) -> Cart:
    _ensure_user(db, user_id)
    cart = find_cart(db, user_id)
    if cart is None:
        raise NotFoundError("Cart not found")

    line = next((line for line in cart.items if line.jewelry_item_id == jewelry_item_id), None)
    if line is None:
        raise NotFoundError("Item not found in cart")

    cart.items.remove(line)
    db.commit()
    db.refresh(cart)
    return cart
