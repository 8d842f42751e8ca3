"""
Main CLI application using Typer.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.sql_store import SqlReservationStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import (
    PractitionerNotFound,
    ReservationConflict,
    ReservationInvalid,
    SchedulingError,
)
from ..domain.models import CandidateSlot
from ..domain.timezones import local_day_bounds
from ..services.availability import AvailabilityService
from ..services.reservation_arbiter import ReservationArbiter

app = typer.Typer(
    name="slotengine",
    help="Compute bookable appointment slots and reserve them without double-booking",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


def _load_config(config_file: Optional[Path], verbose: bool) -> AppConfig:
    """Load the configuration and set up logging."""
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)

    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )

    return config


def _parse_day(value: str) -> date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as e:
        console.print(f"[red]Could not parse date '{value}': {e}[/red]")
        raise typer.Exit(1)


def _print_slots(title: str, slots: List[CandidateSlot]) -> None:
    if not slots:
        console.print(f"[yellow]⚠ {title}: no available slots.[/yellow]")
        return

    console.print(f"[bold green]✓ {title}: {len(slots)} slot(s)[/bold green]\n")
    for slot in slots:
        console.print(f"  {slot.format_display()}   [dim]{slot.start.to_iso8601_string()}[/dim]")
    console.print()


@app.command()
def slots(
    practitioner: Annotated[str, typer.Argument(help="Practitioner id")],
    day: Annotated[str, typer.Option("--date", "-d", help="Local date (YYYY-MM-DD)")],
    service: Annotated[Optional[List[str]], typer.Option("--service", "-s", help="Service id, repeatable")] = None,
    alternatives: Annotated[bool, typer.Option("--alternatives", help="Also list slots per single service.")] = False,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Show the start times at which the given services can be booked.

    Examples:

        slotengine slots anna --date 2024-11-25 --service haircut

        slotengine slots anna --date 2024-11-25 -s haircut -s coloring --alternatives
    """
    try:
        config = _load_config(config_file, verbose)
        local_day = _parse_day(day)
        service_ids = service or []

        store = SqlReservationStore.from_url(config.database_url)
        availability = AvailabilityService(schedules=config, bookings=store, services=config)

        found = availability.find_slots(
            practitioner_id=practitioner,
            day=local_day,
            service_ids=service_ids,
        )

        _print_slots(", ".join(service_ids) or "default duration", found)

        if alternatives:
            per_service = availability.find_alternatives(
                practitioner_id=practitioner,
                day=local_day,
                service_ids=service_ids,
            )
            for service_id, service_slots in per_service.items():
                _print_slots(service_id, service_slots)

    except (FileNotFoundError, ValueError, PractitionerNotFound) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def book(
    practitioner: Annotated[str, typer.Argument(help="Practitioner id")],
    service: Annotated[str, typer.Option("--service", "-s", help="Service id")],
    start: Annotated[str, typer.Option("--start", help="Start time (ISO 8601; local time of the practitioner if no offset)")],
    client: Annotated[Optional[str], typer.Option("--client", help="Client id")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Reserve a time. Exits with code 2 when the time is already taken.
    """
    try:
        config = _load_config(config_file, verbose)
        schedule = config.get_schedule(practitioner)
        timezone = schedule.timezone if schedule is not None else config.timezone

        try:
            start_at = pendulum.parse(start, tz=timezone)
        except ValueError as e:
            console.print(f"[red]Could not parse start time '{start}': {e}[/red]")
            raise typer.Exit(1)

        if not isinstance(start_at, datetime):
            console.print(f"[red]Could not parse start time '{start}': expected a date and time[/red]")
            raise typer.Exit(1)

        store = SqlReservationStore.from_url(config.database_url)
        arbiter = ReservationArbiter(store=store, schedules=config, services=config)

        reservation = arbiter.reserve(
            practitioner_id=practitioner,
            service_id=service,
            start=start_at,
            client_id=client,
        )

        local_start = reservation.start.in_timezone(timezone)
        local_end = reservation.end.in_timezone(timezone)
        console.print(
            f"[bold green]✓ Reserved[/bold green] {local_start.format('YYYY-MM-DD HH:mm')} - "
            f"{local_end.format('HH:mm')} ({timezone})  [dim]id={reservation.id}[/dim]"
        )

    except ReservationConflict as e:
        console.print(f"[bold yellow]Conflict:[/bold yellow] {e}")
        console.print("Query the available slots again and pick another time.")
        raise typer.Exit(2)

    except (FileNotFoundError, ValueError, ReservationInvalid) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def reservations(
    practitioner: Annotated[str, typer.Argument(help="Practitioner id")],
    day: Annotated[str, typer.Option("--date", "-d", help="Local date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List the active reservations of a practitioner on a day.
    """
    try:
        config = _load_config(config_file, verbose)
        schedule = config.get_schedule(practitioner)
        if schedule is None:
            raise PractitionerNotFound(practitioner)

        local_day = _parse_day(day)
        store = SqlReservationStore.from_url(config.database_url)
        found = store.list_reservations(practitioner, local_day_bounds(local_day, schedule.timezone))

        if not found:
            console.print("[yellow]No reservations on this day.[/yellow]")
            return

        name = config.find_practitioner(practitioner).display_name()
        table = Table(
            title=f"Reservations of {name} on {local_day.isoformat()}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Time", style="bold yellow")
        table.add_column("Service")
        table.add_column("Client", style="dim")
        table.add_column("Status")
        table.add_column("Id", style="dim")

        for reservation in found:
            local_start = reservation.start.in_timezone(schedule.timezone)
            local_end = reservation.end.in_timezone(schedule.timezone)
            table.add_row(
                f"{local_start.format('HH:mm')} - {local_end.format('HH:mm')}",
                reservation.service_id,
                reservation.client_id or "",
                reservation.status.value,
                reservation.id,
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def list_services(
    config_file: ConfigOption = None,
):
    """
    List all configured services.
    """
    try:
        config_path = config_file or get_default_config_path()
        config = AppConfig.load_from_yaml(config_path)

        if not config.services:
            console.print("[yellow]No services defined in the config file.[/yellow]")
            return

        table = Table(
            title="Configured services",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Id", style="bold yellow")
        table.add_column("Name")
        table.add_column("Duration (min)", justify="right")
        table.add_column("Buffer (min)", justify="right", style="dim")

        for item in config.services:
            table.add_row(
                item.id,
                item.name,
                str(item.duration_minutes),
                "default" if item.buffer_minutes is None else str(item.buffer_minutes),
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
    console.print(f"\n[bold cyan]slotengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
