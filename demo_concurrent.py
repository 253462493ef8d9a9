# demo_concurrent.py
# Two writers race to update the same product version: exactly one wins,
# the other gets 409 and has to re-read before trying again.
import asyncio
import os
import uuid

import requests
from rich import print

from sdk.pystore import StoreClient


async def race(client: StoreClient, product_id: int, version: int):
    results = await asyncio.gather(
        client.update_product_async(product_id, version, quantity=1),
        client.update_product_async(product_id, version, quantity=0),
    )
    for who, resp in zip(("alice", "bob"), results):
        if resp.status_code == 200:
            product = resp.json()["product"]
            print(f"✅ {who} updated the product: quantity={product['quantity']} version={product['version']}")
        elif resp.status_code == 409:
            print(f"❌ {who} lost the race: {resp.json()['detail']}")
        else:
            print(f"⚠️  {who} unexpected response {resp.status_code}: {resp.text}")


async def main():
    c = StoreClient(base_url=os.environ.get("STOREFRONT_URL", "http://127.0.0.1:8085"))
    suffix = uuid.uuid4().hex[:8]
    email = f"demo-{suffix}@example.com"
    password = "correct horse battery"

    try:
        c.register(email, password)
        c.login(email, password)
    except requests.exceptions.HTTPError as e:
        print(f"[red]could not sign in: {e.response.text}[/red]")
        return

    category = c.create_category(f"Laptops {suffix}", "portable computers")
    product = c.create_product(f"Gaming Laptop {suffix}", category["id"], 500000, 2, "16GB, RTX")
    print(f"\n🖥️  Created product: {product}")

    print("\n⚡ Two concurrent updates at version", product["version"])
    await race(c, product["id"], product["version"])

    print("\n📦 Final product state:", c.get_product(product["id"]))

if __name__ == "__main__":
    asyncio.run(main())
