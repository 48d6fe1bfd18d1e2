"""Outgoing mail: order confirmations and password-reset links."""
import logging
import smtplib
from email.message import EmailMessage

import config
from models import Order

logger = logging.getLogger(__name__)

BRAND = "EDTArt"


def send_email(to: str, subject: str, html_body: str) -> bool:
    """
    Send one HTML message over SMTP with STARTTLS.

    Returns False when no SMTP host is configured. Delivery errors propagate;
    callers decide whether a failed mail matters.
    """
    if not config.SMTP_HOST:
        logger.warning(f"SMTP_HOST not set, skipping mail to {to}: {subject}")
        return False

    message = EmailMessage()
    message["From"] = f"{BRAND} <{config.MAIL_FROM}>"
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=30) as client:
        client.starttls()
        if config.SMTP_USER:
            client.login(config.SMTP_USER, config.SMTP_PASSWORD)
        client.send_message(message)
    logger.info(f"Sent mail to {to}: {subject}")
    return True


def render_order_confirmation(order: Order) -> str:
    rows = "".join(
        f"<tr><td>{line.name_snapshot or line.jewelry_item_id}</td>"
        f"<td>{line.quantity}</td><td>{line.unit_price:.2f}</td><td>{line.line_total:.2f}</td></tr>"
        for line in order.items
    )
    return f"""
<p>Thank you for your order #{order.id}.</p>
<table>
  <tr><th>Item</th><th>Qty</th><th>Unit price</th><th>Total</th></tr>
  {rows}
</table>
<p>Subtotal: {order.subtotal:.2f} {order.currency_code}<br/>
Shipping: {order.shipping:.2f} {order.currency_code}<br/>
Tax: {order.tax_vat:.2f} {order.currency_code}<br/>
Discount: {order.discount_total:.2f} {order.currency_code}<br/>
<strong>Total: {order.grand_total:.2f} {order.currency_code}</strong></p>
"""


def send_order_confirmation(to: str, order: Order) -> bool:
    return send_email(to, f"Your {BRAND} order #{order.id}", render_order_confirmation(order))


def send_password_reset(to: str, reset_url: str) -> bool:
    html = f"""
<p>We received a request to reset your password.</p>
<p><a href="{reset_url}">Reset Password</a> (valid for {config.PASSWORD_RESET_MINUTES} minutes)</p>
<p>If you didn't request this, you can safely ignore this email.</p>
"""
    return send_email(to, f"Reset your {BRAND} password", html)
