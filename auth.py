"""Registration, login, token refresh and password reset."""
import hashlib
import logging
import random
import secrets
import time
from datetime import datetime, timedelta
from typing import Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

import config
import notifications
from errors import AuthenticationError, InvalidRequestError
from models import PasswordResetRequest, User
from security import create_token, hash_password, new_refresh_token, password_is_valid, verify_password

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "we sent an email with a password reset link"
# seconds; hides whether the address belongs to an account
LOOKUP_DELAY = (0.05, 0.15)


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest().upper()


def register(db: Session, username: str, email: str, password: str) -> User:
    email = email.strip().lower()
    taken = db.scalar(select(User).where(or_(User.username == username, User.email == email)))
    if taken:
        raise InvalidRequestError("Such user already exists")
    if not password_is_valid(password):
        raise InvalidRequestError("Password must be at least 8 characters long and contain a digit.")

    user = User(username=username, email=email, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id} ({user.username})")
    return user


def issue_tokens(db: Session, user: User) -> Tuple[str, str]:
    """Create an access token and a fresh refresh token; only the refresh token hash is stored."""
    refresh_token = new_refresh_token()
    user.refresh_token_hash = hash_password(refresh_token)
    user.refresh_token_expires_at = datetime.utcnow() + timedelta(days=config.REFRESH_TOKEN_DAYS)
    db.commit()
    return create_token(user), refresh_token


def login(db: Session, email: str, password: str) -> Tuple[User, str, str]:
    user = db.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    user.last_login = datetime.utcnow()
    token, refresh_token = issue_tokens(db, user)
    return user, token, refresh_token


def refresh(db: Session, user_public_id: str, refresh_token: str) -> Tuple[User, str, str]:
    user = db.scalar(select(User).where(User.public_id == user_public_id))
    if (
        user is None
        or not user.refresh_token_hash
        or user.refresh_token_expires_at is None
        or user.refresh_token_expires_at < datetime.utcnow()
        or not verify_password(refresh_token, user.refresh_token_hash)
    ):
        raise AuthenticationError("Invalid or expired refresh token")
    token, new_token = issue_tokens(db, user)
    return user, token, new_token


def forgot_password(db: Session, email: str) -> str:
    """
    Start a password reset.

    The answer is the same whether or not the address is known, and a small
    random delay hides the lookup time. A new link is only issued when the user
    has no unused, unexpired request.
    """
    if not email or not email.strip():
        raise InvalidRequestError("Email is required")

    normalized = email.strip().lower()
    user = db.scalar(select(User).where(func.lower(User.email) == normalized))

    time.sleep(random.uniform(*LOOKUP_DELAY))

    if user is None:
        return FORGOT_PASSWORD_MESSAGE

    now = datetime.utcnow()
    active = db.scalar(
        select(PasswordResetRequest).where(
            PasswordResetRequest.user_id == user.id,
            PasswordResetRequest.used_at.is_(None),
            PasswordResetRequest.expires_at > now,
        )
    )
    if active is not None:
        return FORGOT_PASSWORD_MESSAGE

    token = secrets.token_urlsafe(32)
    db.add(
        PasswordResetRequest(
            user_id=user.id,
            token_hash=_hash_reset_token(token),
            created_at=now,
            expires_at=now + timedelta(minutes=config.PASSWORD_RESET_MINUTES),
        )
    )
    db.commit()

    reset_url = f"{config.FRONTEND_BASE_URL.rstrip('/')}/reset-password?token={token}"
    try:
        notifications.send_password_reset(user.email, reset_url)
    except Exception:
        logger.exception(f"Failed to send password reset mail for user {user.id}")
    return FORGOT_PASSWORD_MESSAGE


def reset_password(db: Session, token: str, new_password: str) -> None:
    if not token or not token.strip():
        raise InvalidRequestError("Token is required.")
    if not new_password or not new_password.strip():
        raise InvalidRequestError("New password is required.")
    if not password_is_valid(new_password):
        raise InvalidRequestError("Password does not meet requirements.")

    now = datetime.utcnow()
    reset = db.scalar(select(PasswordResetRequest).where(PasswordResetRequest.token_hash == _hash_reset_token(token)))
    if reset is None or reset.used_at is not None or reset.expires_at < now:
        raise AuthenticationError("Invalid or expired reset token.")

    user = db.get(User, reset.user_id)
    if user is None:
        raise AuthenticationError("Invalid or expired reset token.")

    try:
        user.password_hash = hash_password(new_password)
        reset.used_at = now
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Password reset for user {user.id}")
