"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.booking_repository import BookingRepository
from ..adapters.database import create_db_engine, create_session_factory, init_db as create_tables
from ..adapters.events import BOOKING_CREATED, BOOKING_UPDATED, EventDispatcher
from ..adapters.settings_provider import DatabaseSettingsProvider
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookingEngineError
from ..domain.models import NotFound
from ..domain.timezone import BusinessTimezone
from ..services.booking_service import BookingMetadata, BookingService

app = typer.Typer(
    name="servicebooker",
    help="Book field-service appointments against a shared calendar",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)

WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=False, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config = AppConfig.load_from_yaml(config_file or get_default_config_path())
    _configure_logging(config.log_level)
    return config


def _build(config: AppConfig):
    """Wire the store, settings source and publisher into a BookingService."""
    engine = create_db_engine(config.database_url)
    session_factory = create_session_factory(engine)
    repository = BookingRepository(session_factory)
    settings = DatabaseSettingsProvider(session_factory)

    dispatcher = EventDispatcher()
    for event_name in (BOOKING_CREATED, BOOKING_UPDATED):
        dispatcher.subscribe(event_name, _log_event)

    return BookingService(repository, settings, publisher=dispatcher), repository, settings, engine


def _log_event(event_name, payload):
    logger.info("Event %s: %s", event_name, payload.get("request_number"))


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(1)


def _parse_instant(value: str, business_tz: BusinessTimezone):
    """Parse an ISO instant; values without an offset are business-local."""
    try:
        parsed = pendulum.parse(value, tz=business_tz.timezone)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid date/time: {value}") from exc
    if not isinstance(parsed, pendulum.DateTime):
        raise typer.BadParameter(f"Expected a date and time, got: {value}")
    return parsed


def _local(instant, business_tz: BusinessTimezone) -> str:
    return business_tz.to_business_local(instant).format("YYYY-MM-DD HH:mm")


@app.command("init-db")
def init_db(config_file: ConfigOption = None):
    """
    Create tables and seed statuses, scheduler settings, rate tiers and service locations.
    """
    try:
        config = _load_config(config_file)
        _, repository, settings, engine = _build(config)

        create_tables(engine)
        added = repository.seed_statuses()
        settings.set_settings(
            {key: value for key, value in config.settings.as_settings().items() if value is not None}
        )
        tiers = repository.replace_rate_tiers(config.rate_tier_bands())
        locations = repository.upsert_resources([r.to_resource() for r in config.resources])

        console.print(Panel.fit(
            f"[bold green]✓ Database ready[/bold green]\n\n"
            f"[bold]Statuses added:[/bold] {added}\n"
            f"[bold]Rate tier bands:[/bold] {tiers}\n"
            f"[bold]Service locations:[/bold] {locations}",
            title="init-db",
        ))
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command("show-config")
def show_config(config_file: ConfigOption = None):
    """
    Show the scheduler settings in effect, with fallbacks applied.
    """
    try:
        config = _load_config(config_file)
        service, *_ = _build(config)
        scheduler = service.scheduler_config()

        table = Table(title="Scheduler settings", show_header=True, header_style="bold cyan")
        table.add_column("Setting", style="bold yellow")
        table.add_column("Value")
        for key, value in scheduler.as_settings().items():
            table.add_row(key, "[red]not configured[/red]" if value is None else str(value))

        console.print()
        console.print(table)
        console.print()
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def tiers(config_file: ConfigOption = None):
    """
    List the active rate tier bands.
    """
    try:
        config = _load_config(config_file)
        service, *_ = _build(config)
        bands = service.rate_tiers()

        if not bands:
            console.print("[yellow]No rate tiers configured; every hour bills at Standard.[/yellow]")
            return

        table = Table(title="Rate tiers", show_header=True, header_style="bold cyan")
        table.add_column("Day", style="bold")
        table.add_column("From")
        table.add_column("To")
        table.add_column("Tier", style="bold yellow")
        table.add_column("Multiplier", justify="right")
        for band in sorted(bands, key=lambda b: (b.day_of_week, b.time_start)):
            table.add_row(
                WEEKDAYS[band.day_of_week],
                band.time_start.strftime("%H:%M"),
                band.time_end.strftime("%H:%M"),
                f"[{band.color_code}]{band.tier_name}[/]",
                f"{band.rate_multiplier:.2f}x",
            )

        console.print()
        console.print(table)
        console.print()
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def resources(config_file: ConfigOption = None):
    """
    List the service locations bookings can be scheduled against.
    """
    try:
        config = _load_config(config_file)
        service, *_ = _build(config)
        locations = service.list_resources()

        if not locations:
            console.print("[yellow]No service locations configured.[/yellow]")
            return

        table = Table(title="Service locations", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="bold")
        table.add_column("Name", style="bold yellow")
        table.add_column("Type")
        table.add_column("Notes")
        for location in locations:
            table.add_row(location.id, location.name, location.resource_type, location.description or "")

        console.print()
        console.print(table)
        console.print()
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def bookings(
    date: Annotated[str, typer.Argument(help="Business-local date (YYYY-MM-DD)")],
    client: Annotated[Optional[str], typer.Option("--client", "-u", help="Caller id, marks own bookings")] = None,
    config_file: ConfigOption = None,
):
    """
    List bookings occupying a business day.
    """
    try:
        config = _load_config(config_file)
        service, *_ = _build(config)
        business_tz = service.scheduler_config().business_tz()
        entries = service.list_bookings_for_day(date, caller_id=client)

        if not entries:
            console.print(f"[yellow]No bookings on {date}.[/yellow]")
            return

        table = Table(title=f"Bookings on {date} ({business_tz.name})", show_header=True, header_style="bold cyan")
        table.add_column("Request", style="bold")
        table.add_column("Start")
        table.add_column("End")
        table.add_column("Buffer zone", style="dim")
        table.add_column("Client")
        table.add_column("Service")
        for entry in entries:
            table.add_row(
                entry.request_number,
                _local(entry.start, business_tz),
                _local(entry.end, business_tz),
                f"{_local(entry.buffer_start, business_tz)} - {_local(entry.buffer_end, business_tz)}",
                f"[green]{entry.client_name}[/green]" if entry.is_own_booking else entry.client_name,
                entry.service_type,
            )

        console.print()
        console.print(table)
        console.print()
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def suggest(
    date: Annotated[str, typer.Argument(help="First business-local date to search (YYYY-MM-DD)")],
    duration: Annotated[Optional[float], typer.Option("--duration", "-d", help="Duration in hours")] = None,
    tier: Annotated[Optional[str], typer.Option("--tier", "-t", help="standard, premium, emergency or any")] = None,
    client: Annotated[Optional[str], typer.Option("--client", "-u", help="Client the slot is for")] = None,
    config_file: ConfigOption = None,
):
    """
    Suggest the first open slot on or after DATE.
    """
    try:
        config = _load_config(config_file)
        service, *_ = _build(config)
        business_tz = service.scheduler_config().business_tz()
        result = service.suggest_slot(date, duration, tier_preference=tier, owner_id=client)

        if isinstance(result, NotFound):
            console.print(f"[yellow]⚠ {result.message}[/yellow]")
            return

        console.print(Panel.fit(
            f"[bold]Start:[/bold] {_local(result.start, business_tz)}\n"
            f"[bold]End:[/bold] {_local(result.end, business_tz)}\n"
            f"[bold]Rate tier:[/bold] {result.tier.tier_name} ({result.tier.multiplier:.2f}x)",
            title="✓ Suggested slot",
        ))
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def book(
    client: Annotated[str, typer.Option("--client", "-u", help="Client id")],
    start: Annotated[str, typer.Option("--start", help="Start (ISO; business-local if no offset)")],
    end: Annotated[Optional[str], typer.Option("--end", help="End (ISO)")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Duration in minutes")] = None,
    resource: Annotated[Optional[str], typer.Option("--resource", "-r", help="Service location id")] = None,
    title: Annotated[str, typer.Option("--title", help="Request title")] = "Service Request",
    name: Annotated[Optional[str], typer.Option("--name", help="Client display name")] = None,
    service_type: Annotated[Optional[str], typer.Option("--service-type", help="Service type")] = None,
    config_file: ConfigOption = None,
):
    """
    Create a booking.
    """
    try:
        config = _load_config(config_file)
        service, *_ = _build(config)
        business_tz = service.scheduler_config().business_tz()

        outcome = service.create_booking(
            owner_id=client,
            start=_parse_instant(start, business_tz),
            end=_parse_instant(end, business_tz) if end else None,
            duration_minutes=duration,
            resource_id=resource,
            metadata=BookingMetadata(title=title, client_name=name, service_type=service_type),
        )

        if not outcome.created:
            rejection = outcome.rejection
            hint = ""
            if rejection.earliest_start:
                hint = f"\nEarliest acceptable start: {_local(rejection.earliest_start, business_tz)}"
            elif rejection.latest_end:
                hint = f"\nLatest acceptable end: {_local(rejection.latest_end, business_tz)}"
            console.print(f"[bold red]✗ Rejected ({rejection.rule.value}):[/bold red] {rejection.message}{hint}")
            raise typer.Exit(1)

        booking = outcome.booking
        console.print(Panel.fit(
            f"[bold]Request:[/bold] {booking.request_number}\n"
            f"[bold]When:[/bold] {_local(booking.start, business_tz)} - {_local(booking.end, business_tz)}\n"
            f"[bold]Status:[/bold] {booking.status}",
            title="✓ Booking created",
        ))
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def cancel(
    request_number: Annotated[str, typer.Argument(help="Request number, e.g. SR-2025-00001")],
    client: Annotated[str, typer.Option("--client", "-u", help="Client id")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Cancellation reason")] = None,
    config_file: ConfigOption = None,
):
    """
    Cancel one of your bookings before it starts.
    """
    try:
        config = _load_config(config_file)
        service, *_ = _build(config)
        result = service.cancel_booking(request_number, client, reason=reason)

        console.print(f"[green]✓ {result.booking.request_number} cancelled.[/green]")
        if result.late_cancellation:
            console.print("[yellow]⚠ Late cancellation: less than 1 hour before the appointment.[/yellow]")
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def estimate(
    start: Annotated[str, typer.Option("--start", help="Start (ISO; business-local if no offset)")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Duration in minutes")] = 60,
    client: Annotated[Optional[str], typer.Option("--client", "-u", help="Client id, for first-hour comp")] = None,
    config_file: ConfigOption = None,
):
    """
    Estimate the cost of a window, priced by rate tier.
    """
    try:
        config = _load_config(config_file)
        service, *_ = _build(config)
        business_tz = service.scheduler_config().business_tz()
        cost = service.estimate_cost(
            _parse_instant(start, business_tz), duration_minutes=duration, owner_id=client
        )

        table = Table(title="Cost estimate", show_header=True, header_style="bold cyan")
        table.add_column("Tier", style="bold yellow")
        table.add_column("Hours", justify="right")
        table.add_column("Cost", justify="right")
        for block in cost.breakdown:
            table.add_row(f"{block.tier_name} ({block.multiplier:.2f}x)", f"{block.hours:g}", f"${block.cost:.2f}")

        console.print()
        console.print(table)
        if cost.first_hour_discount:
            console.print(f"Subtotal: ${cost.subtotal:.2f}")
            console.print(f"[green]First hour comp (new client): -${cost.first_hour_discount:.2f}[/green]")
        console.print(f"[bold]Total: ${cost.total:.2f}[/bold]\n")
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]servicebooker[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
