# tests/test_users.py
from datetime import timedelta

import pytest
from sqlalchemy import text

from storefront.database import utcnow
from storefront.errors import DuplicatedUserEmail, InvalidToken, UserNotFound
from storefront.models import Token, User, UserFilter, UserUpdate
from storefront.security import generate_token, hash_password, hash_token, verify_password

pytestmark = pytest.mark.anyio


async def test_create_and_lookup(users, user):
    assert user.id > 0
    assert user.password_hash == b"not-a-real-bcrypt-hash"
    assert await users.get_by_id(user.id) == user
    assert await users.get_by_email("alice@example.com") == user
    assert await users.list(UserFilter(email="alice@example.com")) == [user]
    with pytest.raises(UserNotFound):
        await users.get_by_email("nobody@example.com")


async def test_password_hash_never_serialized(user):
    assert "password_hash" not in user.model_dump()
    assert "not-a-real" not in repr(user)


async def test_duplicate_email(users, user):
    with pytest.raises(DuplicatedUserEmail):
        await users.create(User(email="alice@example.com", password_hash=b"y"))
    other = await users.create(User(email="bob@example.com", password_hash=b"y"))
    with pytest.raises(DuplicatedUserEmail):
        await users.update(other.id, UserUpdate(email="alice@example.com"))


async def test_update_keeps_absent_fields(users, user):
    updated = await users.update(user.id, UserUpdate(email="alice@example.org"))
    assert updated.email == "alice@example.org"
    assert updated.password_hash == user.password_hash
    with pytest.raises(UserNotFound):
        await users.update(user.id + 10, UserUpdate(email="ghost@example.com"))


def test_password_hashing():
    digest = hash_password("correct horse battery", rounds=4)
    assert digest != b"correct horse battery"
    assert verify_password("correct horse battery", digest)
    assert not verify_password("wrong password", digest)
    assert not verify_password("anything", b"")


async def test_token_lookup(tokens, user):
    token = generate_token(user.id, 16, timedelta(hours=1))
    assert token.hashed == hash_token(token.plain)
    await tokens.create(token)
    assert await tokens.get_user_id(token.plain) == user.id
    assert (await tokens.get_user(token.plain)).email == user.email
    with pytest.raises(InvalidToken):
        await tokens.get_user("not-a-token")


async def test_expired_token_is_ignored_but_kept(db, tokens, user):
    expired = Token(plain="old", hashed=hash_token("old"), user_id=user.id, expiry=utcnow() - timedelta(minutes=1))
    await tokens.create(expired)
    with pytest.raises(InvalidToken):
        await tokens.get_user("old")

    async with db.acquire() as conn:
        count = (await conn.execute(text("SELECT COUNT(*) FROM tokens"))).scalar_one()
    assert count == 1


async def test_token_for_unknown_user(tokens):
    with pytest.raises(InvalidToken):
        await tokens.create(generate_token(99999))
