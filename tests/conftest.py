# tests/conftest.py
import pytest

from storefront.carts import CartStore
from storefront.categories import CategoryStore
from storefront.database import Database
from storefront.models import Category, Product, User
from storefront.products import ProductStore
from storefront.tokens import TokenStore
from storefront.users import UserStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}"


@pytest.fixture
async def db(database_url):
    database = Database(database_url)
    await database.create_schema()
    yield database
    await database.close()


@pytest.fixture
def products(db):
    return ProductStore(db)


@pytest.fixture
def categories(db):
    return CategoryStore(db)


@pytest.fixture
def carts(db):
    return CartStore(db)


@pytest.fixture
def users(db):
    return UserStore(db)


@pytest.fixture
def tokens(db):
    return TokenStore(db)


@pytest.fixture
async def category(categories):
    return await categories.create(Category(name="Electronics", description="gadgets and gear"))


@pytest.fixture
async def product(products, category):
    return await products.create(
        Product(name="Laptop", description="14 inch", category_id=category.id, price=99900, quantity=5)
    )


@pytest.fixture
async def user(users):
    # stores never look inside the hash
    return await users.create(User(email="alice@example.com", password_hash=b"not-a-real-bcrypt-hash"))
