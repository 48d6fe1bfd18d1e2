import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

import notifications
from carts import find_cart, round_money
from errors import InvalidRequestError, NotFoundError
from models import Order, OrderItem, OrderStatus, User
from schemas import OrderDetail, OrderLineOut, OrderSummary, ShippingDetails

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def create_order(db: Session, user: User, details: ShippingDetails) -> Order:
    """
    Turn the user's cart into a Pending order and empty the cart.

    Reading the cart, inserting the order and deleting the cart lines commit
    together or not at all. The confirmation mail is sent after commit and its
    failure never affects the order.
    """
    try:
        cart = find_cart(db, user.id)
        if cart is None:
            raise NotFoundError("Cart not found for user.")
        if not cart.items:
            raise InvalidRequestError("Cannot create an order from an empty cart.")

        order = Order(
            user_id=user.id,
            status=OrderStatus.PENDING,
            full_name=details.full_name,
            phone=details.phone_number,
            country=details.country,
            city=details.city,
            street=details.street,
            postal_code=details.postal_code,
            notes=details.notes,
            payment_provider=details.payment_method,
            payment_ref=details.payment_reference,
            currency_code=(details.currency_code or "").strip().upper() or "USD",
        )

        subtotal = ZERO
        shipping = ZERO
        for line in cart.items:
            line_total = round_money(line.price_at_add_time * line.quantity)
            subtotal += line_total
            # shipping is charged once, at the most expensive rate in the cart
            shipping = max(shipping, line.jewelry_item.shipping_price or ZERO)
            order.items.append(
                OrderItem(
                    jewelry_item_id=line.jewelry_item_id,
                    name_snapshot=line.jewelry_item.name,
                    unit_price=line.price_at_add_time,
                    quantity=line.quantity,
                    line_total=line_total,
                )
            )

        tax = details.tax_amount if details.tax_amount is not None else ZERO
        discount = details.discount_amount if details.discount_amount is not None else ZERO

        order.subtotal = subtotal
        order.shipping = shipping
        order.tax_vat = tax
        order.discount_total = discount
        order.grand_total = subtotal + shipping + tax - discount

        db.add(order)
        cart.items.clear()
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Created order {order.id} for user {user.id}: {order.grand_total} {order.currency_code}")

    recipient = (user.email or "").strip()
    if recipient:
        try:
            notifications.send_order_confirmation(recipient, order)
        except Exception:
            logger.exception(f"Failed to send checkout notice for order {order.id}")

    return order


def list_orders(db: Session, user_id: int) -> List[Order]:
    stmt = (
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(db.scalars(stmt))


def get_order(db: Session, user_id: int, order_id: int) -> Order:
    order = db.scalar(
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.id == order_id, Order.user_id == user_id)
    )
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def paypal_status(order: Order) -> Optional[str]:
    if order.paypal_capture_id or order.status == OrderStatus.PAID:
        return "COMPLETED"
    if order.paypal_order_id:
        return "CREATED"
    return None


def to_summary(order: Order) -> OrderSummary:
    return OrderSummary(
        order_id=order.id,
        created_at=order.created_at,
        status=order.status.value,
        grand_total=order.grand_total,
        currency_code=order.currency_code,
        item_count=sum(line.quantity for line in order.items),
    )


def to_detail(order: Order) -> OrderDetail:
    summary = to_summary(order)
    return OrderDetail(
        **summary.model_dump(),
        subtotal=order.subtotal,
        shipping=order.shipping,
        tax_vat=order.tax_vat,
        discount_total=order.discount_total,
        full_name=order.full_name,
        phone=order.phone,
        country=order.country,
        city=order.city,
        street=order.street,
        postal_code=order.postal_code,
        notes=order.notes,
        payment_provider=order.payment_provider,
        payment_reference=order.payment_ref,
        paypal_order_id=order.paypal_order_id,
        paypal_capture_id=order.paypal_capture_id,
        paypal_status=paypal_status(order),
        items=[OrderLineOut.model_validate(line) for line in order.items],
    )
