"""
PayPal checkout: create a provider order for the cart, then capture it.

State per provider order id: no order -> provider order created -> captured.
Only the capture writes to the database; it is keyed on the provider order id
so a repeated capture updates the same row.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import httpx
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carts import cart_total, find_cart, round_money
from errors import InvalidRequestError, NotFoundError, PaymentError, PaymentProviderError
from models import Cart, Order, OrderItem, OrderStatus, User
from paypal_client import PayPalClient
from schemas import CaptureResponse, CreatePayPalOrderResponse

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# PayPal response bodies, reduced to the fields used here

class PayPalLink(BaseModel):
    href: str
    rel: str
    method: Optional[str] = None


class PayPalOrder(BaseModel):
    id: str
    status: Optional[str] = None
    links: List[PayPalLink] = []


class PayPalAmount(BaseModel):
    currency_code: str
    value: str


class SellerReceivableBreakdown(BaseModel):
    gross_amount: Optional[PayPalAmount] = None
    paypal_fee: Optional[PayPalAmount] = None
    net_amount: Optional[PayPalAmount] = None


class PayPalCapture(BaseModel):
    id: str
    status: str
    amount: PayPalAmount
    seller_receivable_breakdown: Optional[SellerReceivableBreakdown] = None


class PayPalPayments(BaseModel):
    captures: List[PayPalCapture] = []


class PayPalPurchaseUnit(BaseModel):
    payments: Optional[PayPalPayments] = None


class PayPalPayer(BaseModel):
    email_address: Optional[str] = None


class PayPalCaptureResult(BaseModel):
    id: Optional[str] = None
    payer: Optional[PayPalPayer] = None
    purchase_units: List[PayPalPurchaseUnit] = []


def _parse(response: httpx.Response, model, what: str):
    if response.status_code < 200 or response.status_code >= 300:
        logger.error(f"PayPal {what} failed: status={response.status_code} body={response.text[:500]}")
        raise PaymentProviderError(f"PayPal {what} failed with status {response.status_code}", response.status_code)
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError):
        raise PaymentProviderError(f"Invalid PayPal {what} response", response.status_code)


def _decimal(amount: PayPalAmount) -> Decimal:
    try:
        value = Decimal(amount.value)
    except InvalidOperation:
        raise PaymentProviderError(f"Invalid amount value from PayPal: {amount.value!r}")
    if not value.is_finite():
        raise PaymentProviderError(f"Invalid amount value from PayPal: {amount.value!r}")
    return value


def _same_currency(a: str, b: str) -> bool:
    return a.strip().upper() == b.strip().upper()


def _load_cart(db: Session, user: User) -> Cart:
    cart = find_cart(db, user.id)
    if cart is None:
        raise NotFoundError("Cart not found for user.")
    return cart


async def create_paypal_order(
    db: Session, paypal: PayPalClient, user: User, idempotency_key: Optional[str]
) -> CreatePayPalOrderResponse:
    cart = _load_cart(db, user)
    if not cart.items:
        raise InvalidRequestError("Cart is empty.")

    total = cart_total(cart.items)
    currency = paypal.options.currency
    body = {
        "intent": "CAPTURE",
        "purchase_units": [
            {"amount": {"currency_code": currency, "value": f"{total:.2f}"}},
        ],
        "application_context": {
            "shipping_preference": "NO_SHIPPING",
            "user_action": "PAY_NOW",
            "brand_name": paypal.options.brand_name,
        },
    }

    response = await paypal.post("/v2/checkout/orders", body, idempotency_key)
    doc = _parse(response, PayPalOrder, "create order")

    approve = next((link.href for link in doc.links if link.rel == "approve"), None)
    if approve is None:
        raise PaymentProviderError("PayPal order has no approval link")

    logger.info(f"Created PayPal order {doc.id} for user {user.id}: {total:.2f} {currency}")
    return CreatePayPalOrderResponse(order_id=doc.id, approve_url=approve)


def _order_from_cart(user: User, cart: Cart, expected: Decimal, currency: str) -> Order:
    order = Order(
        user_id=user.id,
        status=OrderStatus.PAID,
        subtotal=expected,
        shipping=ZERO,
        tax_vat=ZERO,
        discount_total=ZERO,
        grand_total=expected,
        currency_code=currency,
    )
    for line in cart.items:
        order.items.append(
            OrderItem(
                jewelry_item_id=line.jewelry_item_id,
                name_snapshot=line.jewelry_item.name if line.jewelry_item else None,
                unit_price=line.price_at_add_time,
                quantity=line.quantity,
                line_total=round_money(line.price_at_add_time * line.quantity),
            )
        )
    return order


async def capture_paypal_order(
    db: Session, paypal: PayPalClient, user: User, order_id: str, idempotency_key: Optional[str]
) -> CaptureResponse:
    response = await paypal.post(f"/v2/checkout/orders/{order_id}/capture", {}, idempotency_key)
    result = _parse(response, PayPalCaptureResult, "capture")

    if not result.purchase_units or not result.purchase_units[0].payments \
            or not result.purchase_units[0].payments.captures:
        raise PaymentProviderError("PayPal capture response has no capture")
    capture = result.purchase_units[0].payments.captures[0]

    if capture.status != "COMPLETED":
        logger.warning(f"PayPal order {order_id} capture status is {capture.status}")
        raise PaymentError("Capture not completed")

    amount = _decimal(capture.amount)
    currency = capture.amount.currency_code

    gross = amount
    fee = None
    net = amount
    breakdown = capture.seller_receivable_breakdown
    if breakdown is not None:
        if breakdown.gross_amount is not None:
            if not _same_currency(breakdown.gross_amount.currency_code, currency):
                raise PaymentError("Gross amount currency mismatch")
            gross = _decimal(breakdown.gross_amount)
        if breakdown.paypal_fee is not None:
            if not _same_currency(breakdown.paypal_fee.currency_code, currency):
                raise PaymentError("Fee currency mismatch")
            fee = _decimal(breakdown.paypal_fee)
        if breakdown.net_amount is not None:
            if not _same_currency(breakdown.net_amount.currency_code, currency):
                raise PaymentError("Net amount currency mismatch")
            net = _decimal(breakdown.net_amount)

    # the cart may have changed since the provider order was created
    cart = _load_cart(db, user)
    expected = cart_total(cart.items)
    if not _same_currency(currency, paypal.options.currency):
        logger.warning(f"PayPal order {order_id} captured in {currency}, expected {paypal.options.currency}")
        raise PaymentError("Currency mismatch")
    if amount != expected:
        logger.warning(f"PayPal order {order_id} captured {amount}, cart total is {expected}")
        raise PaymentError("Amount mismatch")

    payer_email = result.payer.email_address if result.payer else None
    now = datetime.utcnow()

    def apply_capture(order: Order) -> None:
        order.status = OrderStatus.PAID
        order.paid_at = now
        order.payment_provider = "PayPal"
        order.payment_ref = capture.id
        order.paypal_order_id = order_id
        order.paypal_capture_id = capture.id
        order.paypal_payer_email = payer_email
        order.paypal_gross_amount = gross
        order.paypal_fee_amount = fee
        order.paypal_net_amount = net
        order.paypal_captured_at = now

    def find_order() -> Optional[Order]:
        return db.scalar(select(Order).where(Order.paypal_order_id == order_id))

    order = find_order()
    if order is None:
        order = _order_from_cart(user, cart, expected, currency.upper())
        apply_capture(order)
        db.add(order)
        try:
            db.commit()
        except IntegrityError:
            # a concurrent capture inserted the row first; update that one instead
            db.rollback()
            order = find_order()
            if order is None:
                raise
            logger.info(f"PayPal order {order_id} was recorded concurrently, updating order {order.id}")
            apply_capture(order)
            db.commit()
    else:
        apply_capture(order)
        db.commit()

    logger.info(f"Captured PayPal order {order_id} as order {order.id}: {amount} {currency}")
    return CaptureResponse(
        order_id=order_id,
        capture_id=capture.id,
        amount=amount,
        currency=currency,
        payer_email=payer_email or "",
        store_order_id=order.id,
    )
