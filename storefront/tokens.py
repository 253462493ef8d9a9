# storefront/tokens.py
import logging

from .database import utcnow
from .errors import InvalidToken
from .models import Token, User
from .security import hash_token
from .store import Store

logger = logging.getLogger(__name__)

USER_COLUMNS = ("id", "email", "password_hash", "created_at", "updated_at")


class TokenStore(Store):
    """Bearer tokens, keyed by digest. Expired rows are ignored, not deleted."""

    async def create(self, token: Token) -> Token:
        await self._execute(
            "INSERT INTO tokens (hashed, user_id, expiry) VALUES (:hashed, :user_id, :expiry)",
            {"hashed": token.hashed, "user_id": token.user_id, "expiry": token.expiry},
        )
        logger.info("issued token for user %s", token.user_id)
        return token

    async def get_user(self, plain: str) -> User:
        columns = ", ".join(f"users.{name} AS {name}" for name in USER_COLUMNS)
        rows = await self._fetch(
            f"SELECT {columns} FROM users "
            f"JOIN tokens ON tokens.user_id = users.id "
            f"WHERE tokens.hashed = :hashed AND tokens.expiry > :now",
            {"hashed": hash_token(plain), "now": utcnow()},
            columns=USER_COLUMNS,
        )
        if not rows:
            raise InvalidToken()
        return User.model_validate(rows[0])

    async def get_user_id(self, plain: str) -> int:
        user = await self.get_user(plain)
        return user.id
