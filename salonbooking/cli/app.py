"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from contextlib import contextmanager
from typing import Iterator, List, Optional, Annotated

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..config import AppConfig, SalonConfig, get_default_config_path, parse_clock
from ..domain.exceptions import SalonBookingError, SlotConflictError
from ..domain.models import AppointmentStatus, BookingRequest, CandidateSlot, combine
from ..domain.reminders import due_reminders, reminder_message
from ..services.availability import AppointmentStoreProtocol, AvailabilityService
from ..services.booking import BookingService
from ..services.history import ActionHistory
from ..adapters.backend_client import BackendRestClient
from ..adapters.sql_store import SqlAppointmentStore

app = typer.Typer(
    name="salonbooking",
    help="Find free salon appointment slots and book them without double-booking",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    return AppConfig.load_from_yaml(config_path)


@contextmanager
def _open_store(config: AppConfig) -> Iterator[AppointmentStoreProtocol]:
    if config.backend is not None:
        yield BackendRestClient(url=config.backend.url, api_key=config.backend.api_key)
        return

    store = SqlAppointmentStore(database_url=config.database_url)
    try:
        yield store
    finally:
        store.close()


def _build_services(config: AppConfig, store: AppointmentStoreProtocol):
    availability = AvailabilityService(store, config.calculator_for)
    booking = BookingService(
        store,
        availability,
        history=ActionHistory(capacity=config.history_capacity),
        stylists_for=config.stylist_ids,
    )
    return availability, booking


def _parse_day(value: Optional[str], tz: str):
    if not value:
        return pendulum.now(tz).date()
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Error parsing date '{value}': {e}[/red]")
        raise typer.Exit(1)


def _render_slots(salon: SalonConfig, title: str, slots: List[CandidateSlot]) -> None:
    if not slots:
        console.print(
            f"[yellow]⚠ No time slots left for {salon.name} on this day.[/yellow]\n"
            "Try another date or a shorter service."
        )
        return

    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Start", style="bold")
    table.add_column("End")
    table.add_column("Status")

    for slot in slots:
        if slot.available:
            table.add_row(slot.start.format("HH:mm"), slot.end.format("HH:mm"), "[green]free[/green]")
        else:
            table.add_row(
                f"[dim]{slot.start.format('HH:mm')}[/dim]",
                f"[dim]{slot.end.format('HH:mm')}[/dim]",
                "[dim]booked[/dim]",
            )

    free = sum(1 for slot in slots if slot.available)
    console.print()
    console.print(table)
    console.print(f"[bold green]✓ {free} of {len(slots)} slot(s) free[/bold green]\n")


@app.command()
def slots(
    salon_id: Annotated[str, typer.Argument(help="Salon id")],
    service_id: Annotated[str, typer.Argument(help="Service id")],
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD), defaults to today")] = None,
    stylist: Annotated[Optional[str], typer.Option("--stylist", "-s", help="Stylist id")] = None,
    config_file: ConfigOption = None,
):
    """
    Show bookable slots for a service on a day.

    Examples:

        salonbooking slots downtown haircut --date 2024-11-25

        salonbooking slots downtown color --stylist anna
    """
    try:
        config = _load_config(config_file)
        tz = config.timezone
        salon = config.find_salon(salon_id)
        service = salon.find_service(service_id)
        stylist_name = salon.find_stylist(stylist).name if stylist else None
        selected = _parse_day(day, tz)

        with _open_store(config) as store:
            availability, _ = _build_services(config, store)
            found = asyncio.run(
                availability.get_slots(
                    salon_id=salon.id,
                    service=service,
                    selected_date=selected,
                    now=pendulum.now(tz),
                    stylist_id=stylist,
                )
            )

        title = f"{service.name} at {salon.name} on {selected.isoformat()}"
        if stylist_name:
            title += f" with {stylist_name}"
        _render_slots(salon, title, found)

    except (FileNotFoundError, ValueError, SalonBookingError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def book(
    salon_id: Annotated[str, typer.Argument(help="Salon id")],
    service_id: Annotated[str, typer.Argument(help="Service id")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD), defaults to today")] = None,
    stylist: Annotated[Optional[str], typer.Option("--stylist", "-s", help="Stylist id")] = None,
    user: Annotated[str, typer.Option("--user", "-u", help="Customer id")] = "walk-in",
    notes: Annotated[str, typer.Option("--notes", help="Notes for the salon")] = "",
    config_file: ConfigOption = None,
):
    """
    Book a slot. If someone else booked it first, shows fresh availability.
    """
    try:
        config = _load_config(config_file)
        tz = config.timezone
        salon = config.find_salon(salon_id)
        service = salon.find_service(service_id)
        selected = _parse_day(day, tz)

        starts_at = combine(selected, parse_clock(start), tz)
        ends_at = starts_at.add(minutes=service.duration_minutes)
        if ends_at.date() != starts_at.date():
            raise ValueError("Appointment must end on the day it starts")

        request = BookingRequest(
            user_id=user,
            salon_id=salon.id,
            service_id=service.id,
            stylist_id=stylist,
            date=selected,
            start_time=starts_at.time(),
            end_time=ends_at.time(),
            notes=notes,
        )

        with _open_store(config) as store:
            availability, booking = _build_services(config, store)

            try:
                appointment = asyncio.run(booking.book(request, service, pendulum.now(tz)))
            except SlotConflictError as e:
                console.print(f"[bold red]✗ Slot no longer available:[/bold red] {e}")
                refreshed = asyncio.run(
                    availability.get_slots(
                        salon_id=salon.id,
                        service=service,
                        selected_date=selected,
                        now=pendulum.now(tz),
                        stylist_id=stylist,
                    )
                )
                _render_slots(salon, "Current availability", refreshed)
                raise typer.Exit(1)

        console.print(
            f"\n[bold green]✓ Booked {service.name} at {salon.name}[/bold green]\n"
            f"   Date: {appointment.date.isoformat()}\n"
            f"   Time: {appointment.start_time.strftime('%H:%M')} - "
            f"{appointment.end_time.strftime('%H:%M')}\n"
            f"   Status: {appointment.status.value}\n"
            f"   Id: [bold]{appointment.id}[/bold]\n"
        )

    except (FileNotFoundError, ValueError, SalonBookingError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _change_status(appointment_id: str, config_file: Optional[Path], action: str) -> None:
    try:
        config = _load_config(config_file)
        with _open_store(config) as store:
            _, booking = _build_services(config, store)
            appointment = asyncio.run(getattr(booking, action)(appointment_id))

        console.print(
            f"[green]✓ Appointment {appointment.id} is now {appointment.status.value}.[/green]"
        )

    except (FileNotFoundError, ValueError, SalonBookingError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def cancel(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
):
    """
    Cancel an appointment and free its slot.
    """
    _change_status(appointment_id, config_file, "cancel")


@app.command()
def confirm(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
):
    """
    Confirm a pending appointment.
    """
    _change_status(appointment_id, config_file, "confirm")


@app.command()
def complete(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
):
    """
    Mark a confirmed appointment as completed.
    """
    _change_status(appointment_id, config_file, "complete")


@app.command()
def appointments(
    salon_id: Annotated[Optional[str], typer.Option("--salon", help="Only this salon")] = None,
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Only this date (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
):
    """
    List appointments.
    """
    try:
        config = _load_config(config_file)
        if salon_id:
            salon_id = config.find_salon(salon_id).id
        dates = [_parse_day(day, config.timezone)] if day else None

        with _open_store(config) as store:
            found = asyncio.run(store.list_appointments(salon_id=salon_id, dates=dates))

        if not found:
            console.print("[yellow]No appointments found.[/yellow]")
            return

        table = Table(title="Appointments", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Salon", style="bold yellow")
        table.add_column("Service")
        table.add_column("Stylist")
        table.add_column("Date")
        table.add_column("Time")
        table.add_column("Status")

        for appointment in found:
            table.add_row(
                appointment.id,
                appointment.salon_id,
                appointment.service_id,
                appointment.stylist_id or "-",
                appointment.date.isoformat(),
                f"{appointment.start_time.strftime('%H:%M')}-{appointment.end_time.strftime('%H:%M')}",
                appointment.status.value,
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, SalonBookingError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def reminders(
    config_file: ConfigOption = None,
):
    """
    List upcoming appointments that are due for a reminder.
    """
    try:
        config = _load_config(config_file)
        tz = config.timezone
        now = pendulum.now(tz)
        today = now.date()
        window = [today.add(days=offset) for offset in range(config.reminder_window_days + 1)]

        with _open_store(config) as store:
            candidates = asyncio.run(
                store.list_appointments(
                    dates=window,
                    statuses=[AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED],
                )
            )
        due = due_reminders(candidates, now, window_days=config.reminder_window_days, timezone=tz)

        if not due:
            console.print("[yellow]No reminders due.[/yellow]")
            return

        console.print(f"\n[bold cyan]🔔 {len(due)} reminder(s) due:[/bold cyan]\n")
        for appointment in due:
            salon_name, service_name = appointment.salon_id, appointment.service_id
            try:
                salon = config.find_salon(appointment.salon_id)
                salon_name = salon.name
                service_name = salon.find_service(appointment.service_id).name
            except ValueError:
                pass
            console.print(f"  [dim]{appointment.id}[/dim] {reminder_message(appointment, salon_name, service_name)}")
        console.print()

    except (FileNotFoundError, ValueError, SalonBookingError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def salons(
    config_file: ConfigOption = None,
):
    """
    List configured salons with their services and stylists.
    """
    try:
        config = _load_config(config_file)

        if not config.salons:
            console.print("[yellow]No salons defined in the config file.[/yellow]")
            return

        table = Table(title="Configured salons", show_header=True, header_style="bold cyan")
        table.add_column("Salon", style="bold yellow")
        table.add_column("Services")
        table.add_column("Stylists", style="dim")

        for salon in config.salons:
            table.add_row(
                f"{salon.name} ({salon.id})",
                "\n".join(f"{s.id}: {s.name}, {s.duration_minutes} min, {s.price}" for s in salon.services),
                "\n".join(f"{s.id}: {s.name}" for s in salon.stylists) or "-",
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]salonbooking[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
