# cli.py
import os
import sys
from datetime import datetime
from typing import List, Dict, Any, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.prompt import Confirm
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich import box

from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle

from sdk.menu_client import MenuClient

console = Console()
c = MenuClient(
    base_url=os.getenv("MENU_SITE_URL", "http://127.0.0.1:8085"),
    sync_secret=os.getenv("MENU_SYNC_SECRET"),
)

status_message = "Ready"
category_cache: List[Dict[str, Any]] = []
key_cache: List[str] = []

custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})


# ---------------------------
# Display helpers
# ---------------------------
def show_categories(categories: List[Dict[str, Any]]):
    if not categories:
        console.print("[italic yellow]No categories found[/italic yellow]")
        return

    table = Table(title="🍽️ Categories", box=box.ROUNDED, header_style="bold cyan",
                  title_style="bold magenta", show_lines=True)
    table.add_column("ID", style="dim", width=38)
    table.add_column("Name", style="bold", width=28)
    table.add_column("Localized", width=28)

    for cat in categories:
        table.add_row(cat.get("id", ""), cat.get("name") or "Unnamed Category", cat.get("name_localized") or "")
    console.print(table)


def show_products(page: Dict[str, Any]):
    if page.get("error"):
        console.print(Panel.fit(f"[red]Error loading products:[/red] {page['error']}", title="❌ Products"))
        return
    products = page.get("products") or []
    category = page.get("category") or {}
    if not products:
        console.print("[italic yellow]No products found in this category[/italic yellow]")
        return

    table = Table(title=f"📦 {category.get('name', 'Products')}", box=box.ROUNDED,
                  header_style="bold cyan", title_style="bold magenta", show_lines=True)
    table.add_column("Name", style="bold", width=30)
    table.add_column("Price", justify="right", width=44)
    table.add_column("Modifiers", justify="center", width=10)

    for p in products:
        table.add_row(
            p.get("name") or "Unnamed Product",
            p.get("display_price", ""),
            "✓" if p.get("has_modifier_pricing") else "",
        )
    console.print(table)


def show_cache_status(status: Dict[str, Any]):
    entries = status.get("entries") or []
    table = Table(title=f"🗄️ Cache ({status.get('total_entries', 0)} entries, "
                        f"expiry {status.get('cache_expiry_hours', '?')}h)",
                  box=box.ROUNDED, header_style="bold yellow", title_style="bold yellow")
    table.add_column("Key", width=50)
    table.add_column("Age (h)", justify="right", width=10)
    table.add_column("Expired", justify="center", width=8)
    table.add_column("Size", justify="right", width=10)

    for e in entries:
        expired = "[red]yes[/red]" if e.get("expired") else "[green]no[/green]"
        table.add_row(e.get("key", ""), f"{e.get('age_hours', 0):.2f}", expired, str(e.get("size", 0)))
    console.print(table)


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


# ---------------------------
# API wrapper
# ---------------------------
def try_api(fn, *args, success_msg: Optional[str] = None, **kwargs):
    """
    Calls fn(*args, **kwargs) behind a spinner. Errors are shown in the status
    panel and turn into None.
    """
    global status_message
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task(description="Processing...", total=None)
            result = fn(*args, **kwargs)

        if isinstance(result, dict) and result.get("success") is False:
            raise RuntimeError(result.get("error") or result.get("message"))
        if success_msg:
            status_message = success_msg
            console.print(show_status(success_msg, True))
        return result
    except Exception as e:
        status_message = f"Error: {e}"
        console.print(show_status(f"Error: {e}", False))
        return None


# ---------------------------
# Autocompletion helpers
# ---------------------------
def load_categories() -> List[Dict[str, Any]]:
    page = try_api(c.list_categories) or {}
    return page.get("categories") or []


def get_category_completer():
    global category_cache
    if not category_cache:
        category_cache = load_categories()
    return WordCompleter([cat["id"] for cat in category_cache if cat.get("id")], ignore_case=True,
                         meta_dict={cat["id"]: cat.get("name") or "" for cat in category_cache if cat.get("id")})


def get_key_completer():
    global key_cache
    status = try_api(c.cache_status) or {}
    key_cache = [e["key"] for e in status.get("entries") or []]
    return WordCompleter(key_cache, ignore_case=True)


def prompt_with_autocomplete(message: str, completer=None, default: str = ""):
    return prompt(f"{message} ", completer=completer, style=custom_style, default=default)


def create_header():
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)

    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    header.add_row("🍔 Menu Site", "[bold blue]Menu & cache console[/bold blue]", f"[dim]{now}[/dim]")
    return Panel(header, style="bold blue")


# ---------------------------
# Main menu
# ---------------------------
def menu():
    global status_message, category_cache

    console.clear()
    console.print(create_header())

    while True:
        if status_message:
            console.print(show_status(status_message, "Error" not in status_message))

        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)

        options = [
            ("1", "🍽️ List categories", "4", "🔄 Sync cache"),
            ("2", "📦 Products of a category", "5", "🧹 Clear cache"),
            ("3", "🗄️ Cache status", "6", "♻️ Refresh a key"),
            ("", "", "7", "⌛ Sweep expired"),
            ("", "", "q", "👋 Quit"),
        ]
        for row in options:
            menu_table.add_row(*row)
        console.print(Panel(menu_table, title="📋 Menu", border_style="yellow"))

        choice = prompt_with_autocomplete(
            "\nChoose an option",
            completer=WordCompleter([str(i) for i in range(1, 8)] + ["q", "quit", "exit"])
        ).strip()

        if choice == "1":
            page = try_api(c.list_categories, success_msg="Categories loaded")
            if page is not None:
                category_cache = page.get("categories") or []
                if page.get("error"):
                    console.print(show_status(f"Error loading categories: {page['error']}", False))
                show_categories(category_cache)

        elif choice == "2":
            cid = prompt_with_autocomplete("Enter category ID", completer=get_category_completer()).strip()
            page = try_api(c.list_products, cid, success_msg=f"Products loaded for {cid}")
            if page is not None:
                show_products(page)

        elif choice == "3":
            status = try_api(c.cache_status, success_msg="Cache status loaded")
            if status:
                show_cache_status(status)

        elif choice == "4":
            resp = try_api(c.sync_cache, success_msg="Cache cleared and synced")
            if resp:
                console.print(Panel.fit(
                    f"Deleted entries: [bold]{resp.get('deleted_entries', 0)}[/bold]\n"
                    f"Categories fetched: [bold]{resp.get('categories', 0)}[/bold]",
                    title="✅ Sync"
                ))
                category_cache = []

        elif choice == "5":
            if Confirm.ask("[red]This will clear every cache entry. Continue?[/red]"):
                resp = try_api(c.clear_cache, success_msg="Cache cleared")
                if resp:
                    console.print(f"Deleted entries: {resp.get('deleted_entries', 0)}")
                category_cache = []

        elif choice == "6":
            key = prompt_with_autocomplete("Enter cache key", completer=get_key_completer()).strip()
            try_api(c.refresh_key, key, success_msg=f"Cache refreshed for key: {key}")

        elif choice == "7":
            resp = try_api(c.sweep_cache, success_msg="Expired entries removed")
            if resp:
                console.print(f"Deleted entries: {resp.get('deleted_entries', 0)}")

        elif choice.lower() in ("q", "quit", "exit"):
            if Confirm.ask("Are you sure you want to quit?"):
                console.print(Panel.fit("[bold green]Bye! 👋[/bold green]", title="Goodbye"))
                sys.exit(0)

        console.print()
        console.rule(style="dim")


if __name__ == "__main__":
    try:
        menu()
    except KeyboardInterrupt:
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n\n[bold red]Unexpected error: {e}[/bold red]")
        sys.exit(1)
