# cli.py
import os
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.prompt import IntPrompt, Confirm, Prompt
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich import box

from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle

from sdk.pystore import StoreClient
import requests

console = Console()
c = StoreClient(base_url=os.environ.get("STOREFRONT_URL", "http://127.0.0.1:8085"))


status_message = "Ready"
product_cache: List[Dict[str, Any]] = []
email_cache = set()
current_user: Optional[Dict[str, Any]] = None

custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})


def _error_text(exc: Exception) -> str:
    """Prefer the server's own message over the HTTP reason phrase."""
    if isinstance(exc, requests.exceptions.HTTPError) and exc.response is not None:
        try:
            body = exc.response.json()
        except ValueError:
            return f"HTTP {exc.response.status_code}: {exc.response.text}"
        return f"HTTP {exc.response.status_code}: {body.get('detail', body)}"
    return str(exc)


# ---------------------------
# Display helpers
# ---------------------------
def show_products(products: List[Dict[str, Any]]):
    if not products:
        console.print("[italic yellow]No products found[/italic yellow]")
        return

    table = Table(
        title="📦 Products Catalog",
        box=box.ROUNDED,
        header_style="bold cyan",
        title_style="bold magenta",
        show_lines=True
    )
    table.add_column("ID", style="dim", width=6)
    table.add_column("Name", style="bold", width=24)
    table.add_column("Price", justify="right", width=10)
    table.add_column("Qty", justify="right", width=8)
    table.add_column("Category", justify="right", width=9)
    table.add_column("Version", justify="right", width=8)

    for p in products:
        table.add_row(
            str(p.get("id", "N/A")),
            p.get("name", "N/A"),
            f"${p.get('price', 0) / 100:.2f}",
            str(p.get("quantity", 0)),
            str(p.get("category_id", "N/A")),
            str(p.get("version", "-")),
        )
    console.print(table)


def show_categories(categories: List[Dict[str, Any]]):
    if not categories:
        console.print("[italic yellow]No categories found[/italic yellow]")
        return

    table = Table(title="🏷️ Categories", box=box.ROUNDED, header_style="bold cyan", show_lines=True)
    table.add_column("ID", style="dim", width=6)
    table.add_column("Name", style="bold", width=24)
    table.add_column("Description", width=40)
    table.add_column("Version", justify="right", width=8)
    for cat in categories:
        table.add_row(str(cat.get("id")), cat.get("name", ""), cat.get("description", ""), str(cat.get("version", "-")))
    console.print(table)


def show_carts(carts: List[Dict[str, Any]]):
    if not carts:
        console.print(Panel("Your cart is empty 🛍️", style="blue"))
        return

    names = {p.get("id"): p for p in product_cache}
    table = Table(title="🛒 Shopping Cart", box=box.ROUNDED, header_style="bold blue", show_lines=True)
    table.add_column("Line", style="dim", width=6)
    table.add_column("Product", style="bold", width=30)
    table.add_column("Qty", justify="right", width=8)
    table.add_column("Subtotal", justify="right", width=12)

    total = 0
    for line in carts:
        product = names.get(line.get("product_id"))
        if product is None:
            table.add_row(str(line.get("id")), f"Product {line.get('product_id')}", str(line.get("quantity")), "-")
            continue
        subtotal = product.get("price", 0) * line.get("quantity", 0)
        total += subtotal
        table.add_row(str(line.get("id")), product.get("name", ""), str(line.get("quantity")), f"${subtotal / 100:.2f}")

    console.print(Panel(table, title=f"Total: ${total / 100:.2f}", border_style="blue"))


def show_search(results: List[Dict[str, Any]], term: str):
    if not results:
        console.print(f"[yellow]Nothing matches '{term}'[/yellow]")
        return
    show_categories([hit["category"] for hit in results if "category" in hit])
    show_products([hit["product"] for hit in results if "product" in hit])


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


# ---------------------------
# API wrapper
# ---------------------------
def try_api(fn, *args, success_msg: Optional[str] = None, **kwargs):
    """Call fn with a spinner; on failure print the error and return None."""
    global status_message
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task(description="Processing...", total=None)
            result = fn(*args, **kwargs)

        if success_msg:
            status_message = success_msg
            console.print(show_status(success_msg, True))
        return result
    except (requests.exceptions.RequestException, KeyError) as e:
        status_message = f"Error: {_error_text(e)}"
        console.print(show_status(status_message, False))
        return None


# ---------------------------
# Autocompletion helpers
# ---------------------------
def get_product_completer():
    global product_cache
    if not product_cache:
        product_cache = try_api(c.list_products) or []
    return WordCompleter([str(p.get("id")) for p in product_cache], ignore_case=True)


def get_email_completer():
    return WordCompleter(sorted(email_cache), ignore_case=True)


def refresh_products():
    global product_cache
    product_cache = try_api(c.list_products) or []


def create_header():
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)

    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    who = current_user["email"] if current_user else "not logged in"
    header.add_row(
        "🛍️ Storefront",
        f"[bold blue]{c.base_url}[/bold blue]",
        f"[dim]{who} · {now}[/dim]"
    )
    return Panel(header, style="bold blue")


def prompt_with_autocomplete(message: str, completer=None, default: str = ""):
    return prompt(f"{message} ", completer=completer, style=custom_style, default=default)


def ask_price(message: str, default: float = 10.0) -> int:
    while True:
        raw = Prompt.ask(message, default=str(default))
        try:
            return int(round(float(raw) * 100))
        except ValueError:
            console.print("[red]Please enter a valid number.[/red]")


def ask_id(message: str, completer=None) -> Optional[int]:
    raw = prompt_with_autocomplete(message, completer=completer).strip()
    if not raw.isdigit():
        console.print("[red]Please enter a numeric id.[/red]")
        return None
    return int(raw)


# ---------------------------
# Main menu
# ---------------------------
def menu():
    global status_message, product_cache, current_user

    console.clear()
    console.print(create_header())
    refresh_products()

    while True:
        if status_message:
            console.print(show_status(status_message, "Error" not in status_message))

        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)

        options = [
            ("1", "📦 List products", "7", "🛒 Add to cart"),
            ("2", "🏷️ List categories", "8", "🛍️ View my cart"),
            ("3", "🔍 Search", "9", "➖ Remove cart line"),
            ("4", "➕ New category", "10", "📝 Sign up"),
            ("5", "➕ New product", "11", "🔑 Log in"),
            ("6", "✏️ Update product", "q", "👋 Quit"),
        ]
        for row in options:
            menu_table.add_row(*row)

        console.print(Panel(menu_table, title="📋 Menu", border_style="yellow"))

        choice = prompt_with_autocomplete(
            "\nChoose an option",
            completer=WordCompleter([str(i) for i in range(1, 12)] + ["q", "quit", "exit"])
        ).strip()

        if choice == "1":
            products = try_api(c.list_products, sort="name", success_msg="Products loaded successfully")
            if products is not None:
                product_cache = products
                show_products(products)

        elif choice == "2":
            categories = try_api(c.list_categories, sort="name", success_msg="Categories loaded")
            if categories is not None:
                show_categories(categories)

        elif choice == "3":
            term = prompt_with_autocomplete("Enter search term")
            results = try_api(c.search, term, success_msg=f"Search for '{term}' completed")
            if results is not None:
                show_search(results, term)

        elif choice == "4":
            name = prompt_with_autocomplete("Category name")
            description = prompt_with_autocomplete("Description")
            resp = try_api(c.create_category, name, description, success_msg=f"Category '{name}' created")
            if resp:
                show_categories([resp])

        elif choice == "5":
            name = prompt_with_autocomplete("Product name")
            description = prompt_with_autocomplete("Description")
            category_id = IntPrompt.ask("🏷️ Category id", default=1)
            price = ask_price("💰 Price in dollars")
            qty = IntPrompt.ask("📦 Quantity", default=1)
            resp = try_api(
                c.create_product, name, category_id, price, qty, description,
                success_msg=f"Product '{name}' created"
            )
            if resp:
                show_products([resp])
                refresh_products()

        elif choice == "6":
            pid = ask_id("Product id", completer=get_product_completer())
            if pid is None:
                continue
            product = try_api(c.get_product, pid)
            if not product:
                continue
            show_products([product])
            qty = IntPrompt.ask("📦 New quantity", default=product["quantity"])
            price = ask_price("💰 New price in dollars", default=product["price"] / 100)
            resp = try_api(
                c.update_product, pid, product["version"], quantity=qty, price=price,
                success_msg=f"Product {pid} updated"
            )
            if resp:
                show_products([resp])
                refresh_products()

        elif choice == "7":
            pid = ask_id("Product id", completer=get_product_completer())
            if pid is None:
                continue
            qty = IntPrompt.ask("Quantity", default=1)
            resp = try_api(c.add_to_cart, pid, qty, success_msg=f"Added {qty} of product {pid} to cart")
            if resp and current_user:
                show_carts(try_api(c.user_carts, current_user["id"]) or [])

        elif choice == "8":
            if not current_user:
                console.print("[yellow]Log in first.[/yellow]")
                continue
            carts = try_api(c.user_carts, current_user["id"], success_msg="Cart loaded")
            if carts is not None:
                show_carts(carts)

        elif choice == "9":
            cart_id = ask_id("Cart line id")
            if cart_id is not None and Confirm.ask(f"Remove cart line {cart_id}?"):
                try_api(c.remove_cart, cart_id, success_msg=f"Cart line {cart_id} removed")

        elif choice == "10":
            email = prompt_with_autocomplete("Email", completer=get_email_completer())
            password = prompt("Password (9-71 characters) ", is_password=True)
            resp = try_api(c.register, email, password, success_msg=f"Account created for {email}")
            if resp:
                email_cache.add(email)

        elif choice == "11":
            email = prompt_with_autocomplete("Email", completer=get_email_completer())
            password = prompt("Password ", is_password=True)
            token = try_api(c.login, email, password, success_msg=f"Logged in as {email}")
            if token:
                email_cache.add(email)
                current_user = try_api(c.me)
                console.print(create_header())

        elif choice.lower() in ("q", "quit", "exit"):
            if Confirm.ask("Are you sure you want to quit?"):
                console.print(Panel.fit("[bold green]Goodbye! 👋[/bold green]", title="Goodbye"))
                sys.exit(0)

        console.print()
        console.rule(style="dim")


if __name__ == "__main__":
    try:
        menu()
    except KeyboardInterrupt:
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)
