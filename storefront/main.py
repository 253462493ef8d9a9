# storefront/main.py
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Annotated, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, Path, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers

from .carts import CartStore
from .categories import CategoryStore
from .config import Settings, load_settings
from .core import (
    CartIn,
    CartPatch,
    CategoryIn,
    CategoryPatch,
    LoginIn,
    ProductIn,
    ProductPatch,
    UserIn,
    UserPatch,
)
from .database import Database
from .errors import (
    Forbidden,
    InvalidCredentials,
    InvalidInputError,
    InvalidToken,
    StoreError,
    UserNotFound,
)
from .models import MAX_BIGINT, CartFilter, CategoryFilter, ProductFilter, User, UserFilter
from .products import ProductStore
from .search import SearchStore
from .security import generate_token, hash_password, verify_password
from .tokens import TokenStore
from .users import UserStore

logger = logging.getLogger(__name__)

RowID = Annotated[int, Path(le=MAX_BIGINT)]


@dataclass
class Stores:
    products: ProductStore
    categories: CategoryStore
    carts: CartStore
    users: UserStore
    tokens: TokenStore
    search: SearchStore

    @classmethod
    def open(cls, db: Database) -> "Stores":
        return cls(
            products=ProductStore(db),
            categories=CategoryStore(db),
            carts=CartStore(db),
            users=UserStore(db),
            tokens=TokenStore(db),
            search=SearchStore(db),
        )


def _error(status_code: int, code: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message, "code": code}, headers=headers)


# ---------------------------
# Dependencies
# ---------------------------
def get_stores(request: Request) -> Stores:
    return request.app.state.stores


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def current_user(
    authorization: Optional[str] = Header(None),
    stores: Stores = Depends(get_stores),
) -> Optional[User]:
    """The authenticated user, or None for anonymous requests."""
    if not authorization:
        return None
    scheme, _, plain = authorization.partition(" ")
    if scheme != "Bearer" or not plain.strip():
        raise InvalidInputError("invalid or missing authentication token")
    return await stores.tokens.get_user(plain.strip())


async def require_user(user: Optional[User] = Depends(current_user)) -> User:
    if user is None:
        raise InvalidToken("you must be authenticated to access this resource")
    return user


router = APIRouter()


@router.get("/healthcheck")
async def healthcheck(request: Request):
    try:
        await request.app.state.db.ping()
    except DBAPIError:
        logger.exception("database ping failed")
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return {"status": "available"}


# ---------------------------
# Product endpoints
# ---------------------------
@router.get("/products")
async def list_products(
    sort: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    offset: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    name: Optional[str] = None,
    category_id: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    stores: Stores = Depends(get_stores),
):
    criteria = ProductFilter(sort=sort, limit=limit, offset=offset, name=name, category_id=category_id)
    return {"products": await stores.products.list(criteria)}


@router.get("/products/{product_id}")
async def get_product(product_id: RowID, stores: Stores = Depends(get_stores)):
    return {"product": await stores.products.get_by_id(product_id)}


@router.post("/products", status_code=201)
async def create_product(
    payload: ProductIn,
    response: Response,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    product = await stores.products.create(payload.to_model())
    response.headers["Location"] = f"/products/{product.id}"
    return {"product": product}


@router.patch("/products/{product_id}")
async def update_product(
    product_id: RowID,
    payload: ProductPatch,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    await stores.products.get_by_id(product_id)
    product = await stores.products.update(product_id, payload.changes(), payload.version)
    return {"product": product}


@router.delete("/products/{product_id}", status_code=204)
async def delete_product(
    product_id: RowID,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    await stores.products.delete(product_id)
    return Response(status_code=204)


# ---------------------------
# Category endpoints
# ---------------------------
@router.get("/categories")
async def list_categories(
    sort: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    offset: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    name: Optional[str] = None,
    stores: Stores = Depends(get_stores),
):
    criteria = CategoryFilter(sort=sort, limit=limit, offset=offset, name=name)
    return {"categories": await stores.categories.list(criteria)}


@router.get("/categories/{category_id}")
async def get_category(category_id: RowID, stores: Stores = Depends(get_stores)):
    return {"category": await stores.categories.get_by_id(category_id)}


@router.post("/categories", status_code=201)
async def create_category(
    payload: CategoryIn,
    response: Response,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    category = await stores.categories.create(payload.to_model())
    response.headers["Location"] = f"/categories/{category.id}"
    return {"category": category}


@router.patch("/categories/{category_id}")
async def update_category(
    category_id: RowID,
    payload: CategoryPatch,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    await stores.categories.get_by_id(category_id)
    category = await stores.categories.update(category_id, payload.changes(), payload.version)
    return {"category": category}


@router.delete("/categories/{category_id}", status_code=204)
async def delete_category(
    category_id: RowID,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    # products of the category go with it
    await stores.categories.delete(category_id)
    return Response(status_code=204)


# ---------------------------
# Cart endpoints
# ---------------------------
@router.get("/carts")
async def list_carts(
    sort: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    offset: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    user_id: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    product_id: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    criteria = CartFilter(sort=sort, limit=limit, offset=offset, user_id=user_id, product_id=product_id)
    return {"carts": await stores.carts.list(criteria)}


@router.get("/carts/user/{user_id}")
async def get_user_carts(
    user_id: RowID,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    return {"carts": await stores.carts.get_by_user(user_id)}


@router.get("/carts/{cart_id}")
async def get_cart(
    cart_id: RowID,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    return {"cart": await stores.carts.get_by_id(cart_id)}


@router.post("/carts", status_code=201)
async def create_cart(
    payload: CartIn,
    response: Response,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    cart = await stores.carts.create(payload.to_model(user.id))
    response.headers["Location"] = f"/carts/{cart.id}"
    return {"cart": cart}


@router.patch("/carts/{cart_id}")
async def update_cart(
    cart_id: RowID,
    payload: CartPatch,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    await stores.carts.get_by_id(cart_id)
    return {"cart": await stores.carts.update(cart_id, payload.changes())}


@router.delete("/carts/{cart_id}", status_code=204)
async def delete_cart(
    cart_id: RowID,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    await stores.carts.delete(cart_id)
    return Response(status_code=204)


# ---------------------------
# User endpoints
# ---------------------------
@router.post("/users", status_code=201)
async def register_user(
    payload: UserIn,
    response: Response,
    stores: Stores = Depends(get_stores),
    settings: Settings = Depends(get_settings),
):
    password_hash = await run_in_threadpool(hash_password, payload.password, settings.bcrypt_rounds)
    user = await stores.users.create(User(email=payload.email, password_hash=password_hash))
    response.headers["Location"] = f"/users/{user.id}"
    return {"user": user}


@router.get("/users")
async def list_users(
    sort: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    offset: Optional[int] = Query(None, ge=0, le=MAX_BIGINT),
    email: Optional[str] = None,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    criteria = UserFilter(sort=sort, limit=limit, offset=offset, email=email)
    return {"users": await stores.users.list(criteria)}


@router.get("/users/me")
async def get_me(user: User = Depends(require_user)):
    return {"user": user}


@router.get("/users/{user_id}")
async def get_user(
    user_id: RowID,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    return {"user": await stores.users.get_by_id(user_id)}


@router.patch("/users/{user_id}")
async def update_user(
    user_id: RowID,
    payload: UserPatch,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
    settings: Settings = Depends(get_settings),
):
    if user.id != user_id:
        raise Forbidden()
    password_hash = None
    if payload.password is not None:
        password_hash = await run_in_threadpool(hash_password, payload.password, settings.bcrypt_rounds)
    return {"user": await stores.users.update(user_id, payload.changes(password_hash))}


@router.delete("/users/{user_id}", status_code=204)
async def delete_user(
    user_id: RowID,
    user: User = Depends(require_user),
    stores: Stores = Depends(get_stores),
):
    if user.id != user_id:
        raise Forbidden()
    await stores.users.delete(user_id)
    return Response(status_code=204)


# ---------------------------
# Auth & search
# ---------------------------
@router.post("/auth/login", status_code=201)
async def login(
    payload: LoginIn,
    stores: Stores = Depends(get_stores),
    settings: Settings = Depends(get_settings),
):
    try:
        user = await stores.users.get_by_email(payload.email)
    except UserNotFound:
        raise InvalidCredentials() from None
    if not await run_in_threadpool(verify_password, payload.password, user.password_hash):
        raise InvalidCredentials()

    token = generate_token(user.id, settings.token_bytes, timedelta(hours=settings.token_ttl_hours))
    await stores.tokens.create(token)
    return {"token": {"plain_token": token.plain, "expiry": token.expiry}}


@router.get("/search")
async def search(q: str = "", stores: Stores = Depends(get_stores)):
    hits = await stores.search.search(q)
    return {"results": [hit.model_dump(mode="json", exclude_none=True) for hit in hits]}


# ---------------------------
# Application
# ---------------------------
class _BodyTooLarge(Exception):
    pass


class BodySizeLimit:
    """Answer 413 once a request body grows past ``max_bytes``.

    A declared Content-Length is checked before the app runs. Chunked
    bodies are counted as they arrive; whatever the app tried to send after
    the limit tripped is dropped in favour of the 413.
    """

    def __init__(self, app, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    def _too_large(self) -> JSONResponse:
        return _error(413, "body_too_large", f"request body must not be larger than {self.max_bytes} bytes")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length", "")
        if length.isdigit() and int(length) > self.max_bytes:
            await self._too_large()(scope, receive, send)
            return

        received = 0
        exceeded = False

        async def counting_receive():
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    exceeded = True
                    raise _BodyTooLarge()
            return message

        async def guarded_send(message):
            if not exceeded:
                await send(message)

        try:
            await self.app(scope, counting_receive, guarded_send)
        except Exception:
            # the app may re-raise the read failure as its own error
            if not exceeded:
                raise
        if exceeded:
            await self._too_large()(scope, receive, send)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database(settings.database_url)
        await db.create_schema()
        app.state.db = db
        app.state.stores = Stores.open(db)
        try:
            yield
        finally:
            await db.close()

    app = FastAPI(title="storefront", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(BodySizeLimit, max_bytes=settings.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def guard(request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(call_next(request), settings.request_timeout)
        except asyncio.TimeoutError:
            response = _error(503, "timeout", "the server timed out processing the request")
        elapsed = (time.perf_counter() - started) * 1000
        logger.info("%s %s %d %.1fms", request.method, request.url.path, response.status_code, elapsed)
        return response

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, getattr(exc, "detail", "") or exc)
            return _error(500, exc.code, "internal server error")
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return _error(exc.status_code, exc.code, exc.message, headers)

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            where = ".".join(str(part) for part in err.get("loc", ())[1:]) or "request"
            problems.append(f"{where}: {err.get('msg')}")
        return _error(400, InvalidInputError.code, "; ".join(problems) or InvalidInputError.default_message)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "internal", "internal server error")

    app.include_router(router)
    return app


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    logger.info("starting server on %s", settings.address)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
