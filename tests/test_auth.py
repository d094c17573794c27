from __future__ import annotations

import pytest

from shiftboard import auth
from shiftboard import database as db
from shiftboard.errors import AccountLockedError
from shiftboard.roles import (
    UNASSIGNED_COLOR,
    can_edit_company,
    can_manage_company,
    can_read_company,
    grouped_by_role,
    normalize_company_role,
    palette_for_role,
)

PASSWORD = "correct-horse"


def test_first_account_is_admin(memory_db):
    session = memory_db["session"]
    first = auth.register_user(session, "Owner", "Owner@Example.com", PASSWORD)
    second = auth.register_user(session, "clerk", "clerk@example.com", PASSWORD)
    assert (first.role, second.role) == ("admin", "user")
    assert first.email == "owner@example.com"
    assert db.get_user_by_login(session, "OWNER@example.com").id == first.id


@pytest.mark.parametrize(
    "username,email,password",
    [("", "a@example.com", PASSWORD), ("ann", "not-an-email", PASSWORD), ("ann", "a@example.com", "short")],
)
def test_registration_validation(memory_db, username, email, password):
    with pytest.raises(ValueError):
        auth.register_user(memory_db["session"], username, email, password)


def test_duplicate_username_or_email(memory_db):
    session = memory_db["session"]
    auth.register_user(session, "ann", "ann@example.com", PASSWORD)
    with pytest.raises(ValueError):
        auth.register_user(session, "ann", "other@example.com", PASSWORD)
    with pytest.raises(ValueError):
        auth.register_user(session, "ann2", "ann@example.com", PASSWORD)


def test_login_by_username_or_email(memory_db):
    session = memory_db["session"]
    user = auth.register_user(session, "ann", "ann@example.com", PASSWORD)
    assert auth.verify_credentials(session, "ann", "wrong-password") is None
    assert user.failed_attempts == 1
    assert auth.verify_credentials(session, "ann", PASSWORD).id == user.id
    assert auth.verify_credentials(session, "ann@example.com", PASSWORD).id == user.id
    assert auth.verify_credentials(session, "nobody", PASSWORD) is None
    assert user.failed_attempts == 0


def test_lockout_after_repeated_failures(memory_db):
    session = memory_db["session"]
    user = auth.register_user(session, "ann", "ann@example.com", PASSWORD)
    for _ in range(auth.MAX_FAILED_ATTEMPTS - 1):
        assert auth.verify_credentials(session, "ann", "wrong-password") is None
    with pytest.raises(AccountLockedError):
        auth.verify_credentials(session, "ann", "wrong-password")
    # the right password does not help while locked
    with pytest.raises(AccountLockedError):
        auth.verify_credentials(session, "ann", PASSWORD)
    actions = [row.action for row in db.list_audit_log(session, target_type="User")]
    assert "account_locked" in actions
    assert user.locked_until is not None


def test_tokens_resolve_and_revoke(memory_db):
    session = memory_db["session"]
    user = auth.register_user(session, "ann", "ann@example.com", PASSWORD)
    token = auth.issue_token(session, user)
    assert auth.resolve_token(session, token).id == user.id
    assert auth.resolve_token(session, "made-up") is None
    assert auth.resolve_token(session, None) is None
    assert auth.revoke_token(session, token)
    assert auth.resolve_token(session, token) is None
    assert not auth.revoke_token(session, token)


def test_expired_tokens(memory_db):
    session = memory_db["session"]
    user = auth.register_user(session, "ann", "ann@example.com", PASSWORD)
    stale = auth.issue_token(session, user, ttl_hours=-1)
    auth.issue_token(session, user, ttl_hours=-1)
    fresh = auth.issue_token(session, user)
    assert auth.resolve_token(session, stale) is None
    assert auth.purge_expired_tokens(session) == 1
    assert auth.resolve_token(session, fresh).id == user.id


def test_change_password_revokes_tokens(memory_db):
    session = memory_db["session"]
    user = auth.register_user(session, "ann", "ann@example.com", PASSWORD)
    token = auth.issue_token(session, user)
    with pytest.raises(PermissionError):
        auth.change_password(session, user, "wrong-password", "brand-new-pass")
    auth.change_password(session, user, PASSWORD, "brand-new-pass")
    assert auth.resolve_token(session, token) is None
    assert auth.verify_credentials(session, "ann", "brand-new-pass").id == user.id


def test_corrupt_hash_does_not_verify():
    assert not auth.verify_secure_password(PASSWORD, "%%%", "%%%")


def test_company_permissions():
    assert can_read_company("user", "member")
    assert not can_edit_company("user", "member")
    assert can_edit_company("user", "manager")
    assert not can_manage_company("user", "manager")
    assert can_manage_company("user", "owner")
    assert not can_read_company("user", None)
    assert can_manage_company("admin", None)


def test_company_role_aliases():
    assert normalize_company_role("Staff") == "member"
    assert normalize_company_role(" MGR ") == "manager"
    with pytest.raises(ValueError):
        normalize_company_role("janitor")


def test_role_palette_and_grouping():
    assert palette_for_role("Barista") == palette_for_role(" barista ")
    assert palette_for_role("") == UNASSIGNED_COLOR
    grouped = grouped_by_role(
        [{"name": "zed", "role": "Kitchen"}, {"name": "Amy", "role": "Kitchen"}, {"name": "Bo", "role": ""}]
    )
    assert list(grouped) == ["Kitchen", "Other"]
    assert [row["name"] for row in grouped["Kitchen"]] == ["Amy", "zed"]
