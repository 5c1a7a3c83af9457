"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemorySchedulingStore
from ..config import AppConfig, load_config
from ..domain.exceptions import SchedulingError
from ..domain.models import Booking, BookingChange, BookingRequest, BookingStatus, to_date
from ..services.ports import BookingFilter
from ..services.scheduling_service import SchedulingService

app = typer.Typer(
    name="appointment-engine",
    help="Staff availability and conflict-free appointment booking",
    add_completion=False
)

console = Console()

SAMPLE_DATA_FILE = Path(__file__).parent.parent / "adapters" / "sample_data.json"

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DataOption = Annotated[Optional[Path], typer.Option("--data", "-D", help="JSON data file. Defaults to the config's data_file or the bundled sample data")]


def _configure_logging(config: AppConfig) -> None:
    logging.basicConfig(
        level=config.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _open(config_file: Optional[Path], data_file: Optional[Path]) -> Tuple[AppConfig, InMemorySchedulingStore, SchedulingService, Optional[Path]]:
    """
    Load config and data and build the scheduling service.

    Returns the path mutations must be written back to, or None when the
    bundled sample data is in use.
    """
    config = load_config(config_file)
    _configure_logging(config)

    data_path = data_file or config.data_file
    store = InMemorySchedulingStore.from_json_file(data_path or SAMPLE_DATA_FILE, timezone=config.timezone)
    service = SchedulingService.from_config(config, store)
    return config, store, service, data_path


def _save(store: InMemorySchedulingStore, data_path: Optional[Path]) -> None:
    if data_path is None:
        console.print("[yellow]⚠  Sample data in use - changes are not saved (pass --data to persist).[/yellow]")
        return
    store.dump_json(data_path)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _booking_panel(booking: Booking, store: InMemorySchedulingStore, timezone: str, title: str) -> Panel:
    start = booking.start.in_timezone(timezone)
    end = booking.end.in_timezone(timezone)
    paid = f"{booking.paid_amount}" if booking.paid_amount is not None else "-"
    return Panel.fit(
        f"[bold]ID:[/bold] {booking.id}\n"
        f"[bold]Staff:[/bold] {store.staff_members().get(booking.staff_id, booking.staff_id)}\n"
        f"[bold]Client:[/bold] {store.client_name(booking.client_id)}\n"
        f"[bold]Service:[/bold] {booking.service_id} ({booking.duration_minutes} min)\n"
        f"[bold]When:[/bold] {start.format('YYYY-MM-DD HH:mm')} - {end.format('HH:mm')}\n"
        f"[bold]Status:[/bold] {booking.status.value}\n"
        f"[bold]Paid:[/bold] {'yes' if booking.paid else 'no'} ({paid})",
        title=title,
    )


@app.command()
def availability(
    staff: Annotated[str, typer.Argument(help="Staff member id")],
    service: Annotated[str, typer.Argument(help="Service id")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show the free slots of a staff member for a service on a date.

    Example:

        appointment-engine availability ana haircut 2024-11-25
    """
    try:
        config, _, scheduling, _ = _open(config_file, data_file)
        result = asyncio.run(scheduling.compute_availability(staff, service, to_date(day)))
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print()
    if not result.is_available:
        reason = result.message or "every slot is taken"
        console.print(f"[yellow]⚠ No free slots for {staff} on {day}: {reason}.[/yellow]\n")
        return

    table = Table(
        title=f"Free slots - {staff} / {service} / {day}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column("Start", style="bold green")
    table.add_column("End")

    for idx, slot in enumerate(result.slots, 1):
        table.add_row(
            str(idx),
            slot.start.in_timezone(config.timezone).format("HH:mm"),
            slot.end.in_timezone(config.timezone).format("HH:mm"),
        )

    console.print(table)
    console.print()


@app.command()
def book(
    staff: Annotated[str, typer.Argument(help="Staff member id")],
    service: Annotated[str, typer.Argument(help="Service id")],
    client: Annotated[str, typer.Argument(help="Client id")],
    start: Annotated[str, typer.Argument(help="Start (YYYY-MM-DD HH:mm, config timezone)")],
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-text notes")] = None,
    paid_amount: Annotated[Optional[str], typer.Option("--paid-amount", help="Amount paid up front")] = None,
    package: Annotated[Optional[str], typer.Option("--package", help="Package subscription id")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Book a free slot.
    """
    try:
        config, store, scheduling, data_path = _open(config_file, data_file)
        request = BookingRequest(
            staff_id=staff,
            service_id=service,
            client_id=client,
            start=start,
            notes=notes,
            paid=paid_amount is not None,
            paid_amount=paid_amount,
            package_subscription_id=package,
        )
        booking = asyncio.run(scheduling.validate_and_create_booking(request))
        _save(store, data_path)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(_booking_panel(booking, store, config.timezone, "✓ Booked"))


@app.command()
def move(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    staff: Annotated[Optional[str], typer.Option("--staff", help="New staff member id")] = None,
    service: Annotated[Optional[str], typer.Option("--service", help="New service id")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="New start (YYYY-MM-DD HH:mm)")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Replace notes")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Change staff, service, time or notes of a booking.
    """
    try:
        config, store, scheduling, data_path = _open(config_file, data_file)
        change = BookingChange(staff_id=staff, service_id=service, start=start, notes=notes)
        booking = asyncio.run(scheduling.update_booking(booking_id, change))
        _save(store, data_path)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(_booking_panel(booking, store, config.timezone, "✓ Updated"))


@app.command()
def status(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    new_status: Annotated[str, typer.Argument(help="confirmed, completed, cancelled or no_show")],
    paid_amount: Annotated[Optional[str], typer.Option("--paid-amount", help="Amount paid at completion")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Move a booking to a new status.
    """
    try:
        config, store, scheduling, data_path = _open(config_file, data_file)
        booking = asyncio.run(scheduling.transition(booking_id, new_status, paid_amount=paid_amount))
        _save(store, data_path)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(_booking_panel(booking, store, config.timezone, f"✓ {booking.status.value}"))


@app.command()
def bookings(
    client: Annotated[Optional[str], typer.Option("--client", help="Filter by client id")] = None,
    staff: Annotated[Optional[str], typer.Option("--staff", help="Filter by staff member id")] = None,
    service: Annotated[Optional[str], typer.Option("--service", help="Filter by service id")] = None,
    booking_status: Annotated[Optional[str], typer.Option("--status", help="Filter by status")] = None,
    day: Annotated[Optional[str], typer.Option("--date", help="Only this date (YYYY-MM-DD)")] = None,
    date_from: Annotated[Optional[str], typer.Option("--from", help="From date (YYYY-MM-DD)")] = None,
    date_to: Annotated[Optional[str], typer.Option("--to", help="To date (YYYY-MM-DD)")] = None,
    paid: Annotated[Optional[bool], typer.Option("--paid/--unpaid", help="Filter by payment")] = None,
    page: Annotated[int, typer.Option("--page", help="Page number")] = 1,
    limit: Annotated[int, typer.Option("--limit", help="Items per page")] = 10,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List bookings.
    """
    try:
        config, store, scheduling, _ = _open(config_file, data_file)
        filters = BookingFilter(
            client_id=client,
            staff_id=staff,
            service_id=service,
            status=BookingStatus.parse(booking_status) if booking_status else None,
            day=to_date(day) if day else None,
            date_from=to_date(date_from) if date_from else None,
            date_to=to_date(date_to) if date_to else None,
            paid=paid,
        )
        result = asyncio.run(scheduling.list_bookings(filters, page=page, limit=limit))
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not result.items:
        console.print("[yellow]No bookings found.[/yellow]")
        return

    table = Table(
        title=f"Bookings (page {result.page}/{result.pages}, {result.total} total)",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("ID", style="dim")
    table.add_column("When", style="bold yellow")
    table.add_column("Staff")
    table.add_column("Client")
    table.add_column("Service")
    table.add_column("Status")

    for booking in result.items:
        table.add_row(
            booking.id,
            booking.start.in_timezone(config.timezone).format("YYYY-MM-DD HH:mm"),
            booking.staff_id,
            store.client_name(booking.client_id),
            booking.service_id,
            booking.status.value,
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def hours(
    staff: Annotated[str, typer.Argument(help="Staff member id")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List the weekly working windows of a staff member.
    """
    try:
        _, store, _, _ = _open(config_file, data_file)
        windows = store.list_working_windows(staff)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not windows:
        console.print(f"[yellow]{staff} has no working hours configured.[/yellow]")
        return

    table = Table(title=f"Working hours - {staff}", show_header=True, header_style="bold cyan")
    table.add_column("Day", style="bold yellow")
    table.add_column("From")
    table.add_column("To")
    for window in windows:
        table.add_row(
            window.day_of_week.label,
            window.start_time.strftime("%H:%M"),
            window.end_time.strftime("%H:%M"),
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def client(
    client_id: Annotated[str, typer.Argument(help="Client id")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show a client's visit statistics.
    """
    try:
        config, store, scheduling, _ = _open(config_file, data_file)
        stats = asyncio.run(scheduling.get_client_statistics(client_id))
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    last_visit = (
        stats.last_visit.in_timezone(config.timezone).format("YYYY-MM-DD HH:mm")
        if stats.last_visit else "-"
    )
    console.print(Panel.fit(
        f"[bold]Visits:[/bold] {stats.visit_count}\n"
        f"[bold]Total spent:[/bold] {stats.total_spent}\n"
        f"[bold]Last visit:[/bold] {last_visit}",
        title=store.client_name(client_id)
    ))


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]appointment-engine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
