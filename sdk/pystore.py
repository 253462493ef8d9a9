# sdk/pystore.py
import requests
import httpx
from typing import Any, Dict, List, Optional
from rich import print


class StoreClient:
    def __init__(self, base_url: str = "http://127.0.0.1:8085", token: Optional[str] = None, timeout: int = 10):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.timeout = timeout
        self.token = None
        if token:
            self.use_token(token)

    def use_token(self, token: str):
        self.token = token
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        r = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        r.raise_for_status()
        return r

    @staticmethod
    def _params(**values) -> Dict[str, Any]:
        # drop unset filters so the server sees no constraint
        return {k: v for k, v in values.items() if v not in (None, "")}

    # Users & auth
    def register(self, email: str, password: str):
        return self._request("POST", "/users", json={"email": email, "password": password}).json()["user"]

    def login(self, email: str, password: str):
        token = self._request("POST", "/auth/login", json={"email": email, "password": password}).json()["token"]
        self.use_token(token["plain_token"])
        return token

    def me(self):
        return self._request("GET", "/users/me").json()["user"]

    def list_users(self, email: Optional[str] = None, sort: Optional[str] = None,
                   limit: Optional[int] = None, offset: Optional[int] = None):
        params = self._params(email=email, sort=sort, limit=limit, offset=offset)
        return self._request("GET", "/users", params=params).json()["users"]

    def update_user(self, user_id: int, email: Optional[str] = None, password: Optional[str] = None):
        payload = self._params(email=email, password=password)
        return self._request("PATCH", f"/users/{user_id}", json=payload).json()["user"]

    def delete_user(self, user_id: int):
        self._request("DELETE", f"/users/{user_id}")

    # Categories
    def list_categories(self, name: Optional[str] = None, sort: Optional[str] = None,
                        limit: Optional[int] = None, offset: Optional[int] = None):
        params = self._params(name=name, sort=sort, limit=limit, offset=offset)
        return self._request("GET", "/categories", params=params).json()["categories"]

    def get_category(self, category_id: int):
        return self._request("GET", f"/categories/{category_id}").json()["category"]

    def create_category(self, name: str, description: str = ""):
        payload = {"name": name, "description": description}
        return self._request("POST", "/categories", json=payload).json()["category"]

    def update_category(self, category_id: int, version: int, **changes):
        payload = dict(self._params(**changes), version=version)
        return self._request("PATCH", f"/categories/{category_id}", json=payload).json()["category"]

    def delete_category(self, category_id: int):
        self._request("DELETE", f"/categories/{category_id}")

    # Products
    def list_products(self, category_id: Optional[int] = None, name: Optional[str] = None,
                      sort: Optional[str] = None, limit: Optional[int] = None, offset: Optional[int] = None):
        params = self._params(category_id=category_id, name=name, sort=sort, limit=limit, offset=offset)
        return self._request("GET", "/products", params=params).json()["products"]

    def get_product(self, product_id: int):
        return self._request("GET", f"/products/{product_id}").json()["product"]

    def create_product(self, name: str, category_id: int, price: int, quantity: int, description: str = ""):
        payload = {
            "name": name, "description": description, "category_id": category_id,
            "price": price, "quantity": quantity,
        }
        return self._request("POST", "/products", json=payload).json()["product"]

    def update_product(self, product_id: int, version: int, **changes):
        payload = dict(self._params(**changes), version=version)
        return self._request("PATCH", f"/products/{product_id}", json=payload).json()["product"]

    # Async update (used to race two writers against each other)
    async def update_product_async(self, product_id: int, version: int, **changes) -> httpx.Response:
        payload = dict(self._params(**changes), version=version)
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            # no raise_for_status: callers inspect 409 themselves
            return await client.patch(f"{self.base_url}/products/{product_id}", json=payload, headers=headers)

    def delete_product(self, product_id: int):
        self._request("DELETE", f"/products/{product_id}")

    # Carts
    def list_carts(self, user_id: Optional[int] = None, product_id: Optional[int] = None,
                   sort: Optional[str] = None, limit: Optional[int] = None, offset: Optional[int] = None):
        params = self._params(user_id=user_id, product_id=product_id, sort=sort, limit=limit, offset=offset)
        return self._request("GET", "/carts", params=params).json()["carts"]

    def user_carts(self, user_id: int):
        return self._request("GET", f"/carts/user/{user_id}").json()["carts"]

    def get_cart(self, cart_id: int):
        return self._request("GET", f"/carts/{cart_id}").json()["cart"]

    def add_to_cart(self, product_id: int, quantity: int = 1, user_id: Optional[int] = None):
        payload = self._params(product_id=product_id, quantity=quantity, user_id=user_id)
        return self._request("POST", "/carts", json=payload).json()["cart"]

    def update_cart(self, cart_id: int, quantity: Optional[int] = None, product_id: Optional[int] = None):
        payload = self._params(quantity=quantity, product_id=product_id)
        return self._request("PATCH", f"/carts/{cart_id}", json=payload).json()["cart"]

    def remove_cart(self, cart_id: int):
        self._request("DELETE", f"/carts/{cart_id}")

    # Search
    def search(self, query: str) -> List[Dict[str, Any]]:
        r = self.session.get(f"{self.base_url}/search", params={"q": query}, timeout=self.timeout)
        if r.status_code == 404:
            return []
        r.raise_for_status()
        return r.json()["results"]

    def healthcheck(self):
        return self._request("GET", "/healthcheck").json()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="storefront client")
    parser.add_argument("--base-url", default="http://127.0.0.1:8085")
    parser.add_argument("--token", help="Bearer token returned by login")
    subparsers = parser.add_subparsers(dest="command", required=True)

    lp = subparsers.add_parser("list-products", help="List products")
    lp.add_argument("--category-id", type=int)
    lp.add_argument("--sort")
    lp.add_argument("--limit", type=int)
    lp.add_argument("--offset", type=int)

    subparsers.add_parser("list-categories", help="List categories")

    gp = subparsers.add_parser("get-product", help="Get a product by its ID")
    gp.add_argument("--product-id", type=int, required=True)

    sp = subparsers.add_parser("search", help="Search categories and products by name")
    sp.add_argument("query")

    reg = subparsers.add_parser("register", help="Create a user account")
    reg.add_argument("--email", required=True)
    reg.add_argument("--password", required=True)

    li = subparsers.add_parser("login", help="Log in and print a bearer token")
    li.add_argument("--email", required=True)
    li.add_argument("--password", required=True)

    vc = subparsers.add_parser("view-cart", help="Show the carts of a user")
    vc.add_argument("--user-id", type=int, required=True)

    args = parser.parse_args()
    c = StoreClient(base_url=args.base_url, token=args.token)

    if args.command == "list-products":
        print(c.list_products(category_id=args.category_id, sort=args.sort, limit=args.limit, offset=args.offset))
    elif args.command == "list-categories":
        print(c.list_categories())
    elif args.command == "get-product":
        print(c.get_product(args.product_id))
    elif args.command == "search":
        print(c.search(args.query))
    elif args.command == "register":
        print(c.register(args.email, args.password))
    elif args.command == "login":
        print(c.login(args.email, args.password))
    elif args.command == "view-cart":
        print(c.user_carts(args.user_id))
