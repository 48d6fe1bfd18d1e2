from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import jwt
import pytest
from sqlalchemy import select

import auth
import config
import notifications
from errors import AuthenticationError, InvalidRequestError
from models import PasswordResetRequest, User


@pytest.fixture
def sent_resets(monkeypatch):
    sent = []
    monkeypatch.setattr(notifications, "send_password_reset", lambda to, url: sent.append((to, url)))
    return sent


@pytest.fixture
def no_delay(monkeypatch):
    monkeypatch.setattr(auth, "LOOKUP_DELAY", (0, 0))


def test_register_and_login(db):
    user = auth.register(db, "noa", "Noa@Example.com", "sparkle123")
    assert user.role == "Customer"
    assert user.public_id
    assert user.password_hash != "sparkle123"

    logged_in, token, refresh_token = auth.login(db, "noa@example.com", "sparkle123")

    assert logged_in.id == user.id
    assert logged_in.last_login is not None
    assert refresh_token
    claims = jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    assert claims["sub"] == user.public_id
    assert claims["role"] == "Customer"


def test_register_rejects_duplicates(db):
    auth.register(db, "noa", "noa@example.com", "sparkle123")
    with pytest.raises(InvalidRequestError):
        auth.register(db, "noa", "other@example.com", "sparkle123")
    with pytest.raises(InvalidRequestError):
        auth.register(db, "someone", "noa@example.com", "sparkle123")


@pytest.mark.parametrize("password", ["short1", "longbutnodigits", "        "])
def test_register_enforces_password_policy(db, password):
    with pytest.raises(InvalidRequestError):
        auth.register(db, "noa", "noa@example.com", password)


def test_login_with_wrong_password(db):
    auth.register(db, "noa", "noa@example.com", "sparkle123")
    with pytest.raises(AuthenticationError):
        auth.login(db, "noa@example.com", "sparkle124")
    with pytest.raises(AuthenticationError):
        auth.login(db, "nobody@example.com", "sparkle123")


def test_refresh_rotates_tokens(db):
    user = auth.register(db, "noa", "noa@example.com", "sparkle123")
    _, _, refresh_token = auth.login(db, "noa@example.com", "sparkle123")

    _, new_access, new_refresh = auth.refresh(db, user.public_id, refresh_token)

    assert new_access
    assert new_refresh != refresh_token
    with pytest.raises(AuthenticationError):
        auth.refresh(db, user.public_id, refresh_token)


def test_refresh_rejects_expired_token(db):
    user = auth.register(db, "noa", "noa@example.com", "sparkle123")
    _, _, refresh_token = auth.login(db, "noa@example.com", "sparkle123")
    user.refresh_token_expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(AuthenticationError):
        auth.refresh(db, user.public_id, refresh_token)


def test_forgot_and_reset_password(db, sent_resets, no_delay):
    user = auth.register(db, "noa", "noa@example.com", "sparkle123")

    message = auth.forgot_password(db, " NOA@example.com ")

    assert message == auth.FORGOT_PASSWORD_MESSAGE
    assert len(sent_resets) == 1
    to, url = sent_resets[0]
    assert to == "noa@example.com"
    assert url.startswith(f"{config.FRONTEND_BASE_URL}/reset-password?token=")
    token = parse_qs(urlparse(url).query)["token"][0]

    stored = db.scalar(select(PasswordResetRequest).where(PasswordResetRequest.user_id == user.id))
    assert stored.token_hash != token

    auth.reset_password(db, token, "newsparkle456")

    auth.login(db, "noa@example.com", "newsparkle456")
    with pytest.raises(AuthenticationError):
        auth.login(db, "noa@example.com", "sparkle123")
    # tokens are single use
    with pytest.raises(AuthenticationError):
        auth.reset_password(db, token, "another789x")


def test_forgot_password_does_not_reveal_unknown_accounts(db, sent_resets, no_delay):
    message = auth.forgot_password(db, "ghost@example.com")
    assert message == auth.FORGOT_PASSWORD_MESSAGE
    assert sent_resets == []


def test_forgot_password_reuses_active_request(db, sent_resets, no_delay):
    auth.register(db, "noa", "noa@example.com", "sparkle123")
    auth.forgot_password(db, "noa@example.com")
    auth.forgot_password(db, "noa@example.com")

    assert len(sent_resets) == 1
    assert len(db.scalars(select(PasswordResetRequest)).all()) == 1


def test_forgot_password_survives_mail_failure(db, monkeypatch, no_delay):
    auth.register(db, "noa", "noa@example.com", "sparkle123")

    def broken(to, url):
        raise OSError("smtp unreachable")

    monkeypatch.setattr(notifications, "send_password_reset", broken)
    assert auth.forgot_password(db, "noa@example.com") == auth.FORGOT_PASSWORD_MESSAGE


def test_reset_rejects_expired_token(db, sent_resets, no_delay):
    auth.register(db, "noa", "noa@example.com", "sparkle123")
    auth.forgot_password(db, "noa@example.com")
    token = parse_qs(urlparse(sent_resets[0][1]).query)["token"][0]

    request = db.scalar(select(PasswordResetRequest))
    request.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()

    with pytest.raises(AuthenticationError):
        auth.reset_password(db, token, "newsparkle456")


def test_reset_enforces_password_policy(db):
    with pytest.raises(InvalidRequestError):
        auth.reset_password(db, "whatever", "weak")
    with pytest.raises(AuthenticationError):
        auth.reset_password(db, "unknown-token", "strongpass1")


def test_user_lookup_is_by_public_id(db):
    user = auth.register(db, "noa", "noa@example.com", "sparkle123")
    assert db.scalar(select(User).where(User.public_id == user.public_id)).id == user.id
