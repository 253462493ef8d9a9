# storefront/users.py
from .errors import UserNotFound
from .models import User, UserFilter, UserUpdate
from .query import USER_SORT_COLUMNS
from .store import ResourceStore, UnversionedUpdate


class UserStore(UnversionedUpdate, ResourceStore):
    table = "users"
    columns = ("id", "email", "password_hash", "created_at", "updated_at")
    model = User
    filter_model = UserFilter
    predicates = ("id", "email")
    sort_columns = USER_SORT_COLUMNS
    not_found = UserNotFound

    async def create(self, user: User) -> User:
        return await self._insert(user, ("email", "password_hash"))

    async def get_by_email(self, email: str) -> User:
        if not email:
            raise self.not_found()
        found = await self.list(UserFilter(email=email))
        return found[0]

    async def update(self, id: int, changes: UserUpdate) -> User:
        return await super().update(id, changes)
