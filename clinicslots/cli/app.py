"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Annotated

import pendulum
import typer
from pendulum import DateTime
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ..adapters.memory_store import InMemoryBookingStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SchedulingError, SlotConflictError
from ..domain.models import TimeRange, format_slot
from ..domain.scheduling import SlotScheduler, resolve_duration_minutes
from ..services.booking import BookingService

app = typer.Typer(
    name="clinicslots",
    help="Compute and book appointment slots for clinic professionals",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
BookingsOption = Annotated[
    Optional[Path],
    typer.Option("--bookings", "-b", help="JSON file with booked slots. Defaults to bookings_file from config")
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    Appointment slot scheduling for the clinic portal.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    return AppConfig.load_from_yaml(config_path)


def _load_store(config: AppConfig, bookings_file: Optional[Path]) -> tuple[InMemoryBookingStore, Optional[Path]]:
    """
    Load the booking store from the given file or the configured one.
    A missing file yields an empty store that will be created on save.
    """
    path = bookings_file or config.bookings_file
    if path is None:
        return InMemoryBookingStore(), None
    if not path.exists():
        console.print(f"[yellow]Archivo de reservas no encontrado, se usará uno vacío: {path}[/yellow]")
        return InMemoryBookingStore(), path
    return InMemoryBookingStore.load_from_json(path, timezone=config.timezone), path


def _build_service(config: AppConfig, store: InMemoryBookingStore) -> BookingService:
    scheduler = SlotScheduler(buffer_minutes=config.buffer_minutes())
    return BookingService(store=store, scheduler=scheduler)


def _parse_instant(value: str, tz: str) -> DateTime:
    try:
        parsed = pendulum.parse(value, tz=tz)
    except ValueError as e:
        raise ValueError(f"Fecha/hora inválida '{value}': {e}") from e
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Fecha/hora inválida '{value}'")
    return parsed


async def _collect_available(
    service: BookingService,
    professional_id: str,
    windows: List[TimeRange],
    duration_minutes: int,
) -> List[TimeRange]:
    slots: List[TimeRange] = []
    for window in windows:
        slots.extend(
            await service.find_available_slots(
                professional_id=professional_id,
                window_start=window.start,
                window_end=window.end,
                duration_minutes=duration_minutes,
            )
        )
    return slots


@app.command()
def slots(
    professional: Annotated[str, typer.Argument(help="Professional id or name")],
    date: Annotated[Optional[str], typer.Option("--date", help="First day (YYYY-MM-DD). Defaults to today")] = None,
    days: Annotated[int, typer.Option("--days", min=1, max=60, help="Number of days to search")] = 1,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Slot duration in minutes")] = None,
    bookings_file: BookingsOption = None,
    config_file: ConfigOption = None,
):
    """
    Show available slots for a professional.

    Examples:

        clinicslots slots dr-rojas --date 2025-03-10

        clinicslots slots "Ana Rojas" --days 5 --duration 45
    """
    try:
        config = _load_config(config_file)
        tz = config.timezone

        prof = config.find_professional(professional)
        if not prof.active:
            raise ValueError(f"El profesional '{prof.name}' no está activo.")

        specialty = config.find_specialty(prof.specialty_id)
        duration_minutes = resolve_duration_minutes(duration, prof, specialty)

        if date:
            first_day = pendulum.from_format(date, "YYYY-MM-DD", tz=tz).start_of("day")
        else:
            first_day = pendulum.now(tz).start_of("day")
        last_day = first_day.add(days=days - 1).end_of("day")

        store, _ = _load_store(config, bookings_file)
        service = _build_service(config, store)

        scheduler = service.scheduler
        windows = scheduler.working_windows(
            first_day,
            last_day,
            config.working_hours(),
        )
        available = asyncio.run(
            _collect_available(service, prof.id, windows, duration_minutes)
        )

        console.print(f"\n[bold cyan]{prof.name}[/bold cyan] – {specialty.name}")
        console.print(
            f"   Duración: {duration_minutes} min | Intervalo entre citas: "
            f"{scheduler.buffer_minutes:g} min"
        )
        console.print()

        if not available:
            console.print("[yellow]⚠ No hay horarios disponibles en el periodo.[/yellow]\n")
            return

        table = Table(title="Horarios disponibles", show_header=True, header_style="bold cyan")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Horario", style="bold")

        for idx, slot in enumerate(available, 1):
            table.add_row(str(idx), format_slot(slot))

        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def check(
    professional: Annotated[str, typer.Argument(help="Professional id or name")],
    start: Annotated[str, typer.Option("--start", help="Candidate start (ISO 8601)")],
    end: Annotated[str, typer.Option("--end", help="Candidate end (ISO 8601)")],
    bookings_file: BookingsOption = None,
    config_file: ConfigOption = None,
):
    """
    Check whether a candidate slot conflicts with existing bookings.

    Exits with status 1 when a conflict is found.
    """
    try:
        config = _load_config(config_file)
        prof = config.find_professional(professional)
        candidate = TimeRange(
            start=_parse_instant(start, config.timezone),
            end=_parse_instant(end, config.timezone),
        )

        store, _ = _load_store(config, bookings_file)
        service = _build_service(config, store)
        scheduler = service.scheduler

        booked = asyncio.run(service.fetch_booked(prof.id, candidate.start, candidate.end))

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    if scheduler.buffer_minutes <= 0:
        console.print(
            "[yellow]⚠ Intervalo entre citas = 0: la verificación de conflictos está desactivada.[/yellow]"
        )

    if scheduler.conflicts(candidate, booked):
        console.print(f"[bold red]✗ Conflicto:[/bold red] {format_slot(candidate)}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓ Disponible:[/bold green] {format_slot(candidate)}")


@app.command()
def book(
    professional: Annotated[str, typer.Argument(help="Professional id or name")],
    start: Annotated[str, typer.Option("--start", help="Slot start (ISO 8601)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Slot duration in minutes")] = None,
    patient: Annotated[Optional[str], typer.Option("--patient", help="Patient id")] = None,
    bookings_file: BookingsOption = None,
    config_file: ConfigOption = None,
):
    """
    Book a slot for a professional and store it in the bookings file.
    """
    try:
        config = _load_config(config_file)
        prof = config.find_professional(professional)
        if not prof.active:
            raise ValueError(f"El profesional '{prof.name}' no está activo.")

        specialty = config.find_specialty(prof.specialty_id)
        duration_minutes = resolve_duration_minutes(duration, prof, specialty)

        slot_start = _parse_instant(start, config.timezone)
        candidate = TimeRange(start=slot_start, end=slot_start.add(minutes=duration_minutes))

        working_day = config.working_hours().get_working_hours_for_day(slot_start)
        if working_day is None or not working_day.contains(candidate):
            raise ValueError(f"Horario fuera de la jornada laboral: {format_slot(candidate)}")

        store, path = _load_store(config, bookings_file)
        service = _build_service(config, store)

        booking = asyncio.run(
            service.book(professional_id=prof.id, candidate=candidate, patient_id=patient)
        )

        if path is not None:
            store.save_to_json(path)

    except SlotConflictError as e:
        console.print(f"[bold red]✗ No se pudo reservar:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓ Cita reservada[/bold green] ({booking.id}): {booking.format_display()}")


@app.command()
def list_professionals(
    config_file: ConfigOption = None,
):
    """
    List all configured professionals.
    """
    try:
        config = _load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    if not config.professionals:
        console.print("[yellow]No hay profesionales definidos en la configuración.[/yellow]")
        return

    specialties = {specialty.id: specialty for specialty in config.specialties}

    table = Table(
        title="Profesionales",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Id", style="bold yellow")
    table.add_column("Nombre")
    table.add_column("Especialidad", style="dim")
    table.add_column("Duración (min)", justify="right")
    table.add_column("Activo", justify="center")

    for professional in config.professionals:
        specialty = specialties[professional.specialty]
        duration = professional.slot_duration_minutes or specialty.default_slot_duration_minutes
        table.add_row(
            professional.id,
            professional.name,
            specialty.name,
            str(duration),
            "✓" if professional.active else "–",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]clinicslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
