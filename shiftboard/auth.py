"""Accounts, password hashing and API bearer tokens."""

from __future__ import annotations

import base64
import binascii
import datetime
import hashlib
import logging
import os
import secrets
from typing import Optional, Tuple

from sqlalchemy import delete, select

from .database import ApiToken, User, count_users, get_user_by_login, record_audit_log
from .errors import AccountLockedError
from .roles import GLOBAL_ROLE_ADMIN, GLOBAL_ROLE_USER

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000
MIN_PASSWORD_LENGTH = 8
MAX_FAILED_ATTEMPTS = 5
LOCKOUT_MINUTES = 15
TOKEN_TTL_HOURS = int(os.environ.get("SHIFTBOARD_TOKEN_TTL_HOURS", "24"))


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _ensure_aware(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def secure_hash_password(password: str, *, enforce_length: bool = True) -> Tuple[str, str]:
    if enforce_length and len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    salt = secrets.token_bytes(16)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return (
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(derived).decode("ascii"),
    )


def verify_secure_password(password: str, salt_b64: str, hash_b64: str) -> bool:
    try:
        salt = base64.b64decode(salt_b64.encode("ascii"))
        stored = base64.b64decode(hash_b64.encode("ascii"))
    except (binascii.Error, ValueError):
        return False
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return secrets.compare_digest(derived, stored)


def register_user(session, username: str, email: str, password: str, full_name: str = "") -> User:
    """Create an account. The very first account becomes an admin."""
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username:
        raise ValueError("Username is required.")
    if "@" not in email:
        raise ValueError("A valid email address is required.")
    if get_user_by_login(session, username) or get_user_by_login(session, email):
        raise ValueError("Username or email already registered.")
    salt, password_hash = secure_hash_password(password or "")
    role = GLOBAL_ROLE_ADMIN if count_users(session) == 0 else GLOBAL_ROLE_USER
    user = User(
        username=username,
        email=email,
        full_name=(full_name or "").strip(),
        role=role,
        password_salt=salt,
        password_hash=password_hash,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Registered user %s with role %s", username, role)
    record_audit_log(session, user.id, "account_create", target_type="User", target_id=user.id, payload={"role": role})
    return user


def verify_credentials(session, login: str, password: str) -> Optional[User]:
    """Return the user for valid credentials, ``None`` otherwise.

    Raises :class:`AccountLockedError` while an account is locked, including
    on the failed attempt that triggers the lock.
    """
    user = get_user_by_login(session, login)
    if not user:
        return None

    now = _now()
    locked_until = _ensure_aware(user.locked_until)
    if locked_until and locked_until > now:
        raise AccountLockedError(locked_until)
    if locked_until and locked_until <= now:
        user.locked_until = None
        user.failed_attempts = 0

    if not verify_secure_password(password or "", user.password_salt, user.password_hash):
        user.failed_attempts = (user.failed_attempts or 0) + 1
        locked_time: Optional[datetime.datetime] = None
        if user.failed_attempts >= MAX_FAILED_ATTEMPTS:
            locked_time = now + datetime.timedelta(minutes=LOCKOUT_MINUTES)
            user.locked_until = locked_time
        session.commit()
        if locked_time:
            logger.warning("Account %s locked until %s", user.username, locked_time.isoformat())
            record_audit_log(session, user.id, "account_locked", target_type="User", target_id=user.id)
            raise AccountLockedError(locked_time)
        return None

    user.failed_attempts = 0
    user.locked_until = None
    user.last_login = now
    session.commit()
    return user


def change_password(session, user: User, current_password: str, new_password: str) -> None:
    if not verify_secure_password(current_password or "", user.password_salt, user.password_hash):
        raise PermissionError("Current password is incorrect.")
    salt, password_hash = secure_hash_password(new_password or "")
    user.password_salt = salt
    user.password_hash = password_hash
    session.execute(delete(ApiToken).where(ApiToken.user_id == user.id))
    session.commit()
    record_audit_log(session, user.id, "password_change", target_type="User", target_id=user.id)


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(session, user: User, ttl_hours: Optional[int] = None) -> str:
    token = secrets.token_urlsafe(32)
    hours = TOKEN_TTL_HOURS if ttl_hours is None else ttl_hours
    session.add(
        ApiToken(
            user_id=user.id,
            token_hash=_token_digest(token),
            expires_at=_now() + datetime.timedelta(hours=hours),
        )
    )
    session.commit()
    return token


def resolve_token(session, token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    row = session.scalars(select(ApiToken).where(ApiToken.token_hash == _token_digest(token))).first()
    if not row:
        return None
    if _ensure_aware(row.expires_at) <= _now():
        session.delete(row)
        session.commit()
        return None
    return session.get(User, row.user_id)


def revoke_token(session, token: Optional[str]) -> bool:
    if not token:
        return False
    result = session.execute(delete(ApiToken).where(ApiToken.token_hash == _token_digest(token)))
    session.commit()
    return bool(result.rowcount)


def purge_expired_tokens(session) -> int:
    result = session.execute(delete(ApiToken).where(ApiToken.expires_at <= _now()))
    session.commit()
    return result.rowcount or 0
