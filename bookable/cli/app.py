"""
Main CLI application using Typer.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from pendulum import Date, DateTime
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.factory import build_calendar_client
from ..config import AppConfig, credential_status, load_config
from ..domain.exceptions import (
    ConfigurationError,
    InvalidInput,
    SlotConflict,
    UpstreamUnavailable,
)
from ..domain.models import availability_to_payload, parse_date_key
from ..services.availability import AvailabilityService
from ..services.booking import BookingRequest, BookingService
from ..services.conflict_guard import ConflictGuard

app = typer.Typer(
    name="bookable",
    help="Compute bookable appointment slots against a Google Calendar",
    add_completion=False
)

console = Console()

EXIT_CONFLICT = 2

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml if present")
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Use deterministic mock calendar data instead of Google Calendar.")
]
JsonOption = Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    Appointment availability tools.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True
    )


def _load(config_file: Optional[Path], mock: bool) -> AppConfig:
    config = load_config(config_file)
    if mock:
        config.calendar.backend = "mock"
    return config


def _run(coro):
    """
    Run a coroutine and translate core errors into exit codes.

    Conflicts exit with 2 ("pick another time"), everything else with 1.
    """
    try:
        return asyncio.run(coro)

    except SlotConflict as e:
        console.print(f"[bold yellow]Not available:[/bold yellow] {e}. Please pick another time.")
        raise typer.Exit(EXIT_CONFLICT)

    except UpstreamUnavailable as e:
        console.print(f"[bold red]Calendar unavailable:[/bold red] {e}. Please try again later.")
        raise typer.Exit(1)


def _resource_id(config: AppConfig) -> str:
    if config.calendar.backend == "mock":
        return config.calendar.calendar_id or "mock"
    return config.resolve_calendar_id()


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


def _next_business_day(tz: str) -> Date:
    """Tomorrow, moved forward to Monday if it falls on a weekend."""
    tomorrow = pendulum.today(tz).add(days=1).date()
    if tomorrow.weekday() == 5:
        return tomorrow.add(days=2)
    if tomorrow.weekday() == 6:
        return tomorrow.add(days=1)
    return tomorrow


def _parse_instant(value: str, tz: str) -> DateTime:
    try:
        parsed = pendulum.parse(value, tz=tz)
    except ValueError as e:
        raise InvalidInput(f"Invalid date/time: {value!r}") from e
    if not isinstance(parsed, DateTime):
        raise InvalidInput(f"Expected a date and time, got {value!r}")
    return parsed


@app.command()
def availability(
    config_file: ConfigOption = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD). Defaults to the next business day.")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD). Defaults to start + range_days.")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Appointment duration in minutes")] = None,
    buffer: Annotated[Optional[int], typer.Option("--buffer", "-b", help="Buffer time in minutes")] = None,
    mock: MockOption = False,
    as_json: JsonOption = False,
):
    """
    Show how many slots are bookable on each business day.

    Examples:

        bookable availability --mock
        bookable availability --start 2025-03-03 --end 2025-03-14
    """
    try:
        config = _load(config_file, mock)
        start_date = parse_date_key(start) if start else _next_business_day(config.timezone)
        end_date = parse_date_key(end) if end else start_date.add(days=config.defaults.range_days)
        options = config.availability_options(start_date, end_date, duration, buffer)
        resource_id = _resource_id(config)
        client = build_calendar_client(config)
    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        _fail(str(e))

    service = AvailabilityService(
        client, timeout_seconds=config.calendar.request_timeout_seconds
    )
    result = _run(service.calculate_availability(resource_id, options))

    if as_json:
        typer.echo(json.dumps(availability_to_payload(result), indent=2))
        return

    table = Table(title="Availability", show_header=True, header_style="bold cyan")
    table.add_column("Date", style="bold")
    table.add_column("Day")
    table.add_column("Open slots", justify="right")

    for key, count in result.items():
        day = parse_date_key(key)
        style = "green" if count else "dim"
        table.add_row(key, day.format("dddd", locale="en"), f"[{style}]{count}[/{style}]")

    console.print()
    console.print(table)
    console.print()


@app.command()
def slots(
    date: Annotated[str, typer.Argument(help="Day to inspect (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Appointment duration in minutes")] = None,
    buffer: Annotated[Optional[int], typer.Option("--buffer", "-b", help="Buffer time in minutes")] = None,
    mock: MockOption = False,
    as_json: JsonOption = False,
):
    """
    List the bookable slots of a single day.
    """
    try:
        config = _load(config_file, mock)
        day = parse_date_key(date)
        options = config.availability_options(day, day, duration, buffer)
        resource_id = _resource_id(config)
        client = build_calendar_client(config)
    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        _fail(str(e))

    service = AvailabilityService(
        client, timeout_seconds=config.calendar.request_timeout_seconds
    )
    day_slots = _run(service.get_detailed_day_slots(
        resource_id,
        day,
        duration_minutes=options.appointment_duration,
        buffer_minutes=options.buffer_time,
        business_hours=options.business_hours,
    ))

    if as_json:
        typer.echo(json.dumps(day_slots.to_payload(), indent=2))
        return

    if not len(day_slots):
        console.print(f"[yellow]No bookable slots on {day_slots.date_key}.[/yellow]")
        return

    console.print(f"[bold green]{len(day_slots)} slot(s) on {day.format('dddd, MMMM D, YYYY', locale='en')}:[/bold green]\n")
    for slot in day_slots:
        console.print(f"  {slot.format_time()} - {slot.end.format('h:mm A', locale='en')}")


@app.command("check-slot")
def check_slot(
    start: Annotated[str, typer.Argument(help="Slot start, e.g. 2025-03-03T10:00")],
    end: Annotated[str, typer.Argument(help="Slot end, e.g. 2025-03-03T12:00")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Check whether a slot is still free. Exits with 2 if it is taken.
    """
    try:
        config = _load(config_file, mock)
        slot_start = _parse_instant(start, config.timezone)
        slot_end = _parse_instant(end, config.timezone)
        resource_id = _resource_id(config)
        client = build_calendar_client(config)
    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        _fail(str(e))

    guard = ConflictGuard(
        client,
        buffer_minutes=config.defaults.buffer_time,
        timeout_seconds=config.calendar.request_timeout_seconds,
    )
    try:
        _run(guard.ensure_slot_available(resource_id, slot_start, slot_end))
    except InvalidInput as e:
        _fail(str(e))

    console.print("[bold green]✓ Slot is available[/bold green]")


@app.command()
def book(
    start: Annotated[str, typer.Option("--start", help="Slot start, e.g. 2025-03-03T10:00")],
    first_name: Annotated[str, typer.Option("--first-name")],
    last_name: Annotated[str, typer.Option("--last-name")],
    phone: Annotated[str, typer.Option("--phone")],
    email: Annotated[str, typer.Option("--email")],
    address: Annotated[str, typer.Option("--address")],
    service: Annotated[str, typer.Option("--service", help="Service name shown in the calendar event")] = "Service Call",
    end: Annotated[Optional[str], typer.Option("--end", help="Slot end. Defaults to start + appointment duration.")] = None,
    apt_suite: Annotated[str, typer.Option("--apt-suite")] = "",
    notes: Annotated[str, typer.Option("--notes")] = "",
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Book a slot after re-checking that it is still free.
    """
    try:
        config = _load(config_file, mock)
        slot_start = _parse_instant(start, config.timezone)
        slot_end = (
            _parse_instant(end, config.timezone) if end
            else slot_start.add(minutes=config.defaults.appointment_duration)
        )
        resource_id = _resource_id(config)
        client = build_calendar_client(config)
    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        _fail(str(e))

    guard = ConflictGuard(
        client,
        buffer_minutes=config.defaults.buffer_time,
        timeout_seconds=config.calendar.request_timeout_seconds,
    )
    request = BookingRequest(
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        email=email,
        address=address,
        service_name=service,
        slot_start=slot_start,
        slot_end=slot_end,
        apt_suite=apt_suite,
        notes=notes,
    )

    try:
        confirmation = _run(BookingService(guard, client).book(resource_id, request))
    except InvalidInput as e:
        _fail(str(e))

    console.print(Panel.fit(
        f"[bold green]✓ Booking created[/bold green]\n\n"
        f"[bold]When:[/bold] {confirmation.slot.start.format('dddd, MMMM D, YYYY h:mm A', locale='en')}\n"
        f"[bold]Client:[/bold] {confirmation.request.full_name}\n"
        f"[bold]Event:[/bold] {confirmation.event_id}",
        title="Booking"
    ))


@app.command("check-env")
def check_env(
    config_file: ConfigOption = None,
    connect: Annotated[bool, typer.Option("--connect", help="Also verify the credential can read the calendar.")] = False,
):
    """
    Show which Google Calendar credentials are configured.
    """
    status = credential_status()

    table = Table(title="Google Calendar environment", show_header=True, header_style="bold cyan")
    table.add_column("Variable", style="bold yellow")
    table.add_column("Set")
    table.add_column("Value", style="dim")

    for var, info in status.items():
        table.add_row(var, "✓" if info["present"] else "✗", str(info["masked"]))

    console.print()
    console.print(table)

    all_configured = all(info["present"] for info in status.values())
    if not all_configured:
        console.print("\n[red]✗ Some environment variables are missing[/red]\n")
        raise typer.Exit(1)

    console.print("\n[green]✓ All Google Calendar environment variables are configured![/green]\n")

    if connect:
        try:
            config = _load(config_file, mock=False)
            config.calendar.backend = "google"
            client = build_calendar_client(config)
            calendar = client.get_calendar(config.resolve_calendar_id())
        except (FileNotFoundError, ValueError, ConfigurationError, UpstreamUnavailable) as e:
            _fail(str(e))

        console.print(f"[green]✓ Connected to calendar:[/green] {calendar.get('summary', 'N/A')}\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookable[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
