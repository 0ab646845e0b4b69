#!/usr/bin/env python3
"""Interactive console for Inmero"""

import logging
import sys
from datetime import timedelta
from pathlib import Path

import questionary
from questionary import Style
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from inmero_client.booking import BookingSelector
from inmero_client.client import InmeroClient
from inmero_client.constants import DURATION_OPTIONS, GUEST_OPTIONS
from inmero_client.discovery import nearby
from inmero_client.errors import InmeroError, SessionExpired
from inmero_client.menu import PreorderCart, format_price
from inmero_client.models import ClientConfig, Location
from inmero_client.notifications import NotificationsManager
from inmero_client.storage import get_cached_location, get_last_login_email
from inmero_client.tracing import init_sentry, with_sentry_transaction

DEFAULT_STORAGE_PATH = Path("~/.inmero/storage.json")

custom_style = Style([
    ('qmark', 'fg:#e65100 bold'),
    ('question', 'bold'),
    ('answer', 'fg:#f44336 bold'),
    ('pointer', 'fg:#e65100 bold'),
    ('highlighted', 'fg:#e65100 bold'),
    ('selected', 'fg:#cc5454'),
    ('separator', 'fg:#cc5454'),
    ('instruction', ''),
    ('text', ''),
    ('disabled', 'fg:#858585 italic')
])

console = Console()
logger = logging.getLogger(__name__)


def error_text(e: Exception) -> str:
    """User-facing message for an error raised by the client."""
    return getattr(e, "user_message", None) or getattr(e, "message", None) or str(e)


def show_error(e: Exception, title: str = "Error"):
    console.print(Panel(f"[bold red]❌ {error_text(e)}[/bold red]", title=title, border_style="red"))


def display_banner():
    banner = Text()
    banner.append("\n🍽️  ", style="bold red")
    banner.append("INMERO", style="bold yellow")
    banner.append(" - Reservas de restaurantes\n", style="bold white")
    console.print(Panel(banner, box=box.DOUBLE, border_style="yellow", padding=(1, 2)))


@with_sentry_transaction("login")
def login(client: InmeroClient) -> bool:
    console.print("\n[bold yellow]🔐 Iniciar sesión[/bold yellow]\n")
    identifier = questionary.text(
        "Email o documento:",
        default=get_last_login_email(client.storage) or "",
        style=custom_style
    ).ask()
    if identifier is None:
        return False
    password = questionary.password("Contraseña:", style=custom_style).ask()
    remember = questionary.confirm("¿Recordar email?", default=True, style=custom_style).ask()

    with console.status("[bold green]Iniciando sesión..."):
        session = client.auth.login(identifier, password or "", remember_email=bool(remember))
    console.print(f"[green]✓ Bienvenido, {session.username}[/green]\n")
    return True


@with_sentry_transaction("logout")
def logout(client: InmeroClient):
    client.auth.logout()
    console.print("[cyan]Sesión cerrada[/cyan]\n")


def locations_table(locations) -> Table:
    table = Table(box=box.ROUNDED, border_style="yellow")
    table.add_column("ID", style="dim", width=6)
    table.add_column("Restaurante", style="bold white")
    table.add_column("Distancia", style="cyan")
    table.add_column("Rating", style="yellow")
    for location in locations:
        table.add_row(
            str(location.id),
            location.name or "N/A",
            location.distance_label or "-",
            f"{location.rating:.1f} ({location.total_reviews})",
        )
    return table


@with_sentry_transaction("home")
def browse_restaurants(client: InmeroClient) -> list[Location]:
    console.print("\n[bold yellow]🔍 Restaurantes[/bold yellow]\n")
    origin = get_cached_location(client.storage)
    with console.status("[bold green]Cargando restaurantes..."):
        home = client.discovery.load_home(origin=origin)

    if not home.locations:
        console.print("[yellow]No hay restaurantes disponibles[/yellow]")
        return []

    console.print(locations_table(home.locations))
    if origin is not None:
        near = [loc.name for loc in nearby(home.locations) if loc.name]
        if near:
            console.print(f"[dim]Cerca de ti: {', '.join(near)}[/dim]")
    return home.locations


def pick_location(locations: list[Location]) -> Location | None:
    if not locations:
        return None
    choices = [questionary.Choice(f"{loc.name} (#{loc.id})", value=loc) for loc in locations]
    return questionary.select("Restaurante:", choices=choices, style=custom_style).ask()


def pick_date(selector: BookingSelector) -> bool:
    today = selector.today()
    choices = [
        questionary.Choice(
            (today + timedelta(days=offset)).strftime("%a %d %b"),
            value=today + timedelta(days=offset),
        )
        for offset in range(14)
    ]
    picked = questionary.select("Fecha:", choices=choices, style=custom_style).ask()
    if picked is None:
        return False
    selector.set_date(picked)
    return True


@with_sentry_transaction("book")
def make_reservation(client: InmeroClient, location: Location):
    console.print(f"\n[bold yellow]📅 Reservar en {location.name}[/bold yellow]\n")
    selector = client.booking(location.id)

    if not pick_date(selector):
        return
    guests = questionary.select(
        "Personas:",
        choices=[str(n) for n in GUEST_OPTIONS],
        default=str(selector.draft.number_of_guests),
        style=custom_style
    ).ask()
    if guests is None:
        return
    selector.set_guests(int(guests))

    with console.status("[bold green]Buscando horarios..."):
        selector.load_slots()

    options = selector.slot_options()
    if not options:
        console.print("[yellow]No hay horarios disponibles para esta fecha[/yellow]")
        return

    choices = []
    for option in options:
        label = f"{option.slot.time}  ({len(option.tables)} mesas)"
        if option.in_past:
            choices.append(questionary.Choice(label, value=option.slot, disabled="muy pronto"))
        elif not option.tables:
            choices.append(questionary.Choice(label, value=option.slot, disabled="sin mesas"))
        else:
            choices.append(questionary.Choice(label, value=option.slot))
    if not any(option.selectable for option in options):
        console.print("[yellow]Ningún horario admite este número de personas[/yellow]")
        return

    slot = questionary.select("Horario:", choices=choices, style=custom_style).ask()
    if slot is None:
        return
    _, table = selector.select_slot(slot)

    occasion_types = selector.load_occasion_types()
    occasion = questionary.select(
        "Ocasión:",
        choices=[questionary.Choice(o.name, value=o.id) for o in occasion_types],
        style=custom_style
    ).ask()
    selector.set_occasion(occasion)

    duration = questionary.select(
        "Duración (minutos):",
        choices=[str(d) for d in DURATION_OPTIONS],
        default=str(selector.draft.duration_minutes),
        style=custom_style
    ).ask()
    if duration:
        selector.set_duration(int(duration))
    selector.set_comments(questionary.text("Comentarios (opcional):", style=custom_style).ask() or "")

    payload = selector.build_payload()
    summary = Table(show_header=False, box=box.SIMPLE)
    summary.add_column("Campo", style="cyan")
    summary.add_column("Valor", style="white")
    summary.add_row("Restaurante", location.name or str(location.id))
    summary.add_row("Fecha y hora", payload.date_time)
    summary.add_row("Personas", str(payload.number_of_guests))
    summary.add_row("Mesa", f"{table.table_number or table.table_id} (capacidad {table.capacity})")
    summary.add_row("Duración", f"{payload.duration_minutes} min")
    if payload.comments:
        summary.add_row("Comentarios", payload.comments)
    console.print(summary)

    if not questionary.confirm("¿Confirmar reserva?", default=True, style=custom_style).ask():
        console.print("[yellow]Reserva cancelada[/yellow]")
        return

    with console.status("[bold green]Creando reserva..."):
        reservation_id = selector.submit()
    console.print(Panel(
        f"[bold green]✅ Reserva confirmada[/bold green]\n\nReserva #{reservation_id}",
        title="Listo",
        border_style="green"
    ))

    if questionary.confirm("¿Quieres pre-ordenar del menú?", default=False, style=custom_style).ask():
        try:
            preorder_menu(client, selector, location, reservation_id)
        except SessionExpired:
            raise
        except InmeroError as e:
            show_error(e, title="Pre-orden")


def preorder_menu(client: InmeroClient, selector: BookingSelector, location: Location, reservation_id: int):
    with console.status("[bold green]Cargando menú..."):
        _, categories = client.menu.load_categories(location.id)
    if not categories:
        console.print("[yellow]El menú no tiene categorías[/yellow]")
        return

    cart = PreorderCart()
    while True:
        category = questionary.select(
            f"Categoría ({cart.total_items} items en el carrito):",
            choices=[questionary.Choice(c.name or str(c.id), value=c) for c in categories]
            + [questionary.Choice("✅ Enviar pre-orden", value="submit"), questionary.Choice("Cancelar", value=None)],
            style=custom_style
        ).ask()
        if category is None:
            console.print("[yellow]Pre-orden cancelada[/yellow]")
            return
        if category == "submit":
            break

        items = client.menu.items_for(category.id)
        if not items:
            console.print("[yellow]No hay items en esta categoría[/yellow]")
            continue
        item = questionary.select(
            "Item:",
            choices=[
                questionary.Choice(f"{i.name} {format_price(i.price)} (x{cart.quantity(i.id)})", value=i)
                for i in items
            ],
            style=custom_style
        ).ask()
        if item is None:
            continue
        quantity = questionary.text(
            "Cantidad:",
            default=str(cart.quantity(item.id) or 1),
            validate=lambda value: value.isdigit() or "Ingresa un número",
            style=custom_style
        ).ask()
        if quantity is not None:
            cart.change(item.id, int(quantity) - cart.quantity(item.id))

    if not cart:
        console.print("[yellow]Selecciona al menos un item del menú[/yellow]")
        return
    with console.status("[bold green]Enviando pre-orden..."):
        selector.preorder(reservation_id, cart.items)
    console.print(f"[green]✓ {cart.total_items} items agregados a la reserva #{reservation_id}[/green]")


@with_sentry_transaction("toggle_favorite")
def toggle_favorite(client: InmeroClient, location: Location):
    index = client.favorites.rebuild_index(client.user_id)
    result = client.favorites.toggle(client.user_id, location.id, index)
    if result.action == "added":
        console.print(f"[green]❤️  {location.name} agregado a favoritos[/green]")
    else:
        console.print(f"[cyan]{location.name} eliminado de favoritos[/cyan]")


@with_sentry_transaction("reservations")
def list_reservations(client: InmeroClient):
    with console.status("[bold green]Cargando reservas..."):
        page = client.api_access.list_reservations(client.user_id)
    if not page.data:
        console.print("[yellow]No tienes reservas[/yellow]")
        return
    table = Table(box=box.ROUNDED, border_style="yellow")
    table.add_column("#", style="dim")
    table.add_column("Fecha y hora")
    table.add_column("Personas")
    table.add_column("Estado", style="cyan")
    for reservation in page.data:
        table.add_row(
            str(reservation.id),
            reservation.date_time or "-",
            str(reservation.number_of_guests or "-"),
            reservation.status or "-",
        )
    console.print(table)


@with_sentry_transaction("notifications")
def show_notifications(client: InmeroClient):
    inbox: NotificationsManager = client.notifications()
    with console.status("[bold green]Cargando notificaciones..."):
        inbox.refresh()
    console.print(f"\n[bold]🔔 {inbox.unread_count} sin leer[/bold]")
    for notification in inbox.notifications:
        marker = "[dim]·[/dim]" if notification.is_read else "[bold yellow]●[/bold yellow]"
        console.print(f"{marker} {notification.title or ''} [dim]{notification.message or ''}[/dim]")
    if inbox.unread_count and questionary.confirm(
        "¿Marcar todas como leídas?", default=False, style=custom_style
    ).ask():
        inbox.mark_all_read()


def run_action(client: InmeroClient, action, *args) -> bool:
    """Run one menu action; returns False when the session ended."""
    try:
        action(client, *args)
    except SessionExpired as e:
        show_error(e, title="Sesión expirada")
        return False
    except InmeroError as e:
        show_error(e)
    return True


def main():
    """Main interactive loop"""
    logging.basicConfig(
        level=logging.WARNING,
        format='%(levelname)s:%(name)s:%(message)s',
        handlers=[logging.StreamHandler()]
    )
    display_banner()

    config = ClientConfig.from_env()
    if not config.storage_path:
        config = config.model_copy(update={"storage_path": str(DEFAULT_STORAGE_PATH.expanduser())})
    init_sentry(config)
    client = InmeroClient.build(config)

    locations: list[Location] = []
    while True:
        if not client.auth.is_authenticated() and client.store.refresh_token is None:
            try:
                if not login(client):
                    break
            except InmeroError as e:
                show_error(e, title="Login")
                continue

        action = questionary.select(
            "¿Qué quieres hacer?",
            choices=[
                "🔍 Ver restaurantes",
                "📅 Hacer una reserva",
                "❤️  Favorito",
                "📋 Mis reservas",
                "🔔 Notificaciones",
                "🚪 Cerrar sesión",
                "❌ Salir"
            ],
            style=custom_style
        ).ask()

        if action is None or "Salir" in action:
            console.print("\n[yellow]👋 ¡Hasta pronto![/yellow]\n")
            break
        elif "Ver restaurantes" in action:
            try:
                locations = browse_restaurants(client)
            except SessionExpired as e:
                show_error(e, title="Sesión expirada")
            except InmeroError as e:
                show_error(e)
        elif "Hacer una reserva" in action or "Favorito" in action:
            location = pick_location(locations)
            if location is None:
                console.print("[yellow]Primero carga la lista de restaurantes[/yellow]")
                continue
            handler = make_reservation if "reserva" in action else toggle_favorite
            run_action(client, handler, location)
        elif "Mis reservas" in action:
            run_action(client, list_reservations)
        elif "Notificaciones" in action:
            run_action(client, show_notifications)
        elif "Cerrar sesión" in action:
            logout(client)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Interrumpido por el usuario[/yellow]")
        sys.exit(0)
