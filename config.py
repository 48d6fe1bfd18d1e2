import os

from pydantic import BaseModel

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./jewelry_store.db")

# Security/JWT
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", "15"))
REFRESH_TOKEN_DAYS = int(os.getenv("REFRESH_TOKEN_DAYS", "7"))
PASSWORD_RESET_MINUTES = int(os.getenv("PASSWORD_RESET_MINUTES", "30"))
FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:5173")

# Mail
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
MAIL_FROM = os.getenv("MAIL_FROM", SMTP_USER)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class PayPalOptions(BaseModel):
    client_id: str = ""
    secret: str = ""
    base_url: str = "https://api-m.paypal.com"
    currency: str = "USD"
    brand_name: str = "EDTArt"


def paypal_options() -> PayPalOptions:
    return PayPalOptions(
        client_id=os.getenv("PAYPAL_CLIENT_ID", ""),
        secret=os.getenv("PAYPAL_SECRET", ""),
        base_url=os.getenv("PAYPAL_BASE_URL", "https://api-m.paypal.com"),
        currency=os.getenv("PAYPAL_CURRENCY", "USD"),
        brand_name=os.getenv("PAYPAL_BRAND_NAME", "EDTArt"),
    )
