"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryRecordStore, MockAuthenticator
from ..adapters.supabase_authenticator import SupabaseAuthenticator
from ..adapters.supabase_store import SupabaseRecordStore
from ..config import AppConfig, get_default_config_path
from ..domain.availability import AvailabilityCalculator
from ..domain.exceptions import (
    AuthenticationError,
    InvalidStatusTransitionError,
    PaymentProcessingError,
    PaymentValidationError,
    RecordNotFoundError,
    SlotbookError,
    SlotUnavailableError,
)
from ..domain.models import AppointmentSummary, CardDetails, PaymentMethod
from ..domain.time_grid import bookable_dates, generate_time_grid
from ..services.booking_service import BookingService

app = typer.Typer(
    name="slotbook",
    help="Agende serviços com parceiros: horários, pagamento e agendamentos",
    add_completion=False
)

console = Console()

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "pending": "[yellow]Pendente[/yellow]",
    "confirmed": "[green]Confirmado[/green]",
    "canceled": "[red]Cancelado[/red]",
    "completed": "[dim]Concluído[/dim]",
}

PAYMENT_LABELS = {
    "pending": "[yellow]Aguardando[/yellow]",
    "paid": "[green]Pago[/green]",
    "failed": "[red]Falhou[/red]",
    "refunded": "[cyan]Reembolsado[/cyan]",
}

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Dados de demonstração em memória, sem backend."),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _load_config(config_file: Optional[Path], mock: bool, verbose: bool) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if mock and not config_path.exists():
        config = AppConfig()
    else:
        config = AppConfig.load_from_yaml(config_path)

    _configure_logging("DEBUG" if verbose else config.log_level)
    pendulum.set_locale("pt_br")
    return config


def _build_service(config: AppConfig, mock: bool) -> Tuple[BookingService, str]:
    """
    Wire store, calculator and services for one CLI invocation.

    Returns:
        The booking service and the signed-in customer id
    """
    booking = config.booking
    calculator = AvailabilityCalculator(
        grid=generate_time_grid(booking.open_hour, booking.close_hour, booking.step_minutes),
        timezone=config.timezone,
        lead_time_minutes=booking.lead_time_minutes,
    )

    if mock:
        session = MockAuthenticator().get_session()
        store = InMemoryRecordStore(enforce_unique_slots=booking.enforce_unique_slots)
        return BookingService(store=store, calculator=calculator), session.user_id

    if not config.store.is_configured():
        raise AuthenticationError("store.url and store.anon_key must be configured.")

    authenticator = SupabaseAuthenticator(
        url=config.store.url,
        anon_key=config.store.anon_key,
        timeout_seconds=config.store.timeout_seconds,
    )
    session = authenticator.get_session()
    store = SupabaseRecordStore(
        url=config.store.url,
        anon_key=config.store.anon_key,
        access_token=session.access_token,
        timeout_seconds=config.store.timeout_seconds,
    )
    return BookingService(store=store, calculator=calculator), session.user_id


def _parse_date(value: str, tz: str) -> pendulum.Date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Data inválida '{value}': {e}[/red]")
        raise typer.Exit(1)


def _format_price(value) -> str:
    return f"R$ {value:.2f}".replace(".", ",")


def _fail(message: str) -> None:
    console.print(f"[bold red]Erro:[/bold red] {message}")
    raise typer.Exit(1)


@app.command()
def partners(
    search: Annotated[Optional[str], typer.Option("--search", "-s", help="Nome ou categoria")] = None,
    city: Annotated[Optional[str], typer.Option("--city", help="Cidade ou bairro")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Find active partners, best rated first.
    """
    try:
        config = _load_config(config_file, mock, verbose)
        service, _ = _build_service(config, mock)
        found = asyncio.run(service.search_partners(text=search, location=city))

        if not found:
            console.print("[yellow]Nenhum parceiro encontrado.[/yellow]")
            return

        table = Table(title="Parceiros", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim")
        table.add_column("Nome", style="bold yellow")
        table.add_column("Categoria")
        table.add_column("Local")
        table.add_column("Avaliação", justify="right")
        for item in found:
            location = ", ".join(part for part in (item.neighborhood, item.city) if part)
            rating = f"★ {item.rating:.1f}" if item.rating else "-"
            table.add_row(item.id, item.business_name, item.category, location, rating)

        console.print()
        console.print(table)
        console.print(f"\n{len(found)} {'resultado' if len(found) == 1 else 'resultados'}\n")

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        _fail(str(e))


@app.command()
def partner(
    partner_id: Annotated[str, typer.Argument(help="ID do parceiro")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Show a partner and the services it offers.
    """
    try:
        config = _load_config(config_file, mock, verbose)
        service, _ = _build_service(config, mock)

        found = asyncio.run(service.get_partner(partner_id))
        services = asyncio.run(service.list_services(partner_id))

        rating = f"★ {found.rating:.1f} ({found.total_reviews})" if found.rating else "sem avaliações"
        console.print(Panel.fit(
            f"[bold]{found.business_name}[/bold]\n"
            f"{found.category} · {found.neighborhood or ''} {found.city}\n"
            f"{rating}",
            title=found.id
        ))

        table = Table(title="Serviços", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim")
        table.add_column("Serviço", style="bold yellow")
        table.add_column("Duração")
        table.add_column("Preço", justify="right")
        for item in services:
            table.add_row(item.id, item.name, f"{item.duration} min", _format_price(item.price))
        console.print(table)

    except RecordNotFoundError:
        _fail("Parceiro não encontrado")
    except (FileNotFoundError, ValueError, SlotbookError) as e:
        _fail(str(e))


@app.command()
def slots(
    partner_id: Annotated[str, typer.Argument(help="ID do parceiro")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Data (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Show the time grid of a day with the free and taken slots.

    Without --date only the selectable days are listed.
    """
    try:
        config = _load_config(config_file, mock, verbose)
        tz = config.timezone
        now = pendulum.now(tz)

        if date is None:
            console.print("[bold]Selecione a data[/bold] (use --date):")
            for day in bookable_dates(now.date(), config.booking.horizon_days):
                suffix = " [cyan](hoje)[/cyan]" if day == now.date() else ""
                console.print(f"  {day.format('ddd DD/MM', locale='pt_br')}  {day.to_date_string()}{suffix}")
            return

        selected = _parse_date(date, tz)
        service, _ = _build_service(config, mock)
        offers = asyncio.run(service.list_slots(partner_id, selected, now))

        table = Table(
            title=f"Horários em {selected.format('DD/MM/YYYY')}",
            show_header=False
        )
        columns = 4
        for _ in range(columns):
            table.add_column(justify="center")

        cells = [
            f"[bold green]{offer.label()}[/bold green]" if offer.available else f"[dim strike]{offer.label()}[/dim strike]"
            for offer in offers
        ]
        for index in range(0, len(cells), columns):
            row = cells[index:index + columns]
            table.add_row(*row, *[""] * (columns - len(row)))

        console.print()
        console.print(table)
        free = sum(1 for offer in offers if offer.available)
        console.print(f"\n{free} horário(s) disponível(is)\n")

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        _fail(str(e))


@app.command()
def book(
    partner_id: Annotated[str, typer.Argument(help="ID do parceiro")],
    service_id: Annotated[str, typer.Argument(help="ID do serviço")],
    date: Annotated[str, typer.Option("--date", "-d", help="Data (YYYY-MM-DD)")],
    time: Annotated[str, typer.Option("--time", "-t", help="Horário (HH:mm)")],
    method: Annotated[PaymentMethod, typer.Option("--method", "-m", help="Forma de pagamento")] = PaymentMethod.CREDIT_CARD,
    card_number: Annotated[str, typer.Option("--card-number", help="Número do cartão")] = "",
    card_name: Annotated[str, typer.Option("--card-name", help="Nome como está no cartão")] = "",
    card_expiry: Annotated[str, typer.Option("--card-expiry", help="Validade (MM/AA)")] = "",
    card_cvv: Annotated[str, typer.Option("--card-cvv", help="CVV")] = "",
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Book a slot and pay for it.

    Examples:

        slotbook book studio-bella manicure --date 2026-03-02 --time 10:30 --method pix --mock
    """
    try:
        config = _load_config(config_file, mock, verbose)
        tz = config.timezone
        now = pendulum.now(tz)
        selected = _parse_date(date, tz)

        service, customer_id = _build_service(config, mock)

        offers = {offer.label(): offer for offer in asyncio.run(service.list_slots(partner_id, selected, now))}
        offer = offers.get(time)
        if offer is None:
            _fail(f"Horário inválido: {time}. Opções: {', '.join(offers)}")
        if not offer.available:
            _fail(f"Horário {time} indisponível")

        date_time = service.calculator.to_datetime(selected, offer.start)
        context = asyncio.run(service.load_context(partner_id, service_id, date_time))

        console.print(Panel.fit(
            f"[bold]{context.service_name}[/bold]\n"
            f"{context.partner_name}\n"
            f"{date_time.format('DD/MM/YYYY')} às {offer.label()} · {context.duration} min\n"
            f"[bold]Total:[/bold] {_format_price(context.price)}",
            title="Resumo"
        ))

        card = CardDetails(
            number=card_number,
            holder_name=card_name,
            expiry=card_expiry,
            cvv=card_cvv,
        )
        confirmation = asyncio.run(
            service.book(customer_id=customer_id, context=context, method=method, card=card)
        )

        lines = [
            "[bold green]✓ Agendamento confirmado![/bold green]\n",
            f"[bold]Código:[/bold] {confirmation.appointment_id}",
            f"[bold]Pagamento:[/bold] {'PIX' if confirmation.method is PaymentMethod.PIX else 'Cartão'}",
        ]
        if confirmation.pix_code:
            lines.append(f"[bold]Código PIX:[/bold] {confirmation.pix_code}")
        console.print(Panel.fit("\n".join(lines), title="Confirmação"))

    except PaymentValidationError:
        _fail("Preencha todos os dados do cartão")
    except SlotUnavailableError:
        _fail("Este horário acabou de ser reservado. Escolha outro horário.")
    except PaymentProcessingError as e:
        logger.debug("Commit failed at step %s", e.step)
        _fail("Erro ao processar pagamento. Tente novamente mais tarde.")
    except RecordNotFoundError:
        _fail("Serviço não encontrado")
    except (FileNotFoundError, ValueError, SlotbookError) as e:
        _fail(str(e))


def _appointment_table(title: str, appointments: list[AppointmentSummary], tz: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Data")
    table.add_column("Parceiro")
    table.add_column("Serviço")
    table.add_column("Valor", justify="right")
    table.add_column("Status")
    table.add_column("Pagamento")
    for item in appointments:
        partner_label = item.partner_name or item.appointment.partner_id
        if item.partner_city:
            partner_label = f"{partner_label} ({item.partner_city})"
        table.add_row(
            item.id,
            item.date_time.in_timezone(tz).format("DD/MM/YYYY HH:mm"),
            partner_label,
            item.service_name or item.appointment.service_id,
            _format_price(item.service_price) if item.service_price is not None else "-",
            STATUS_LABELS[item.status.value],
            PAYMENT_LABELS[item.payment_status.value] if item.payment_status else "-",
        )
    return table


@app.command()
def appointments(
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    List your upcoming and past appointments.
    """
    try:
        config = _load_config(config_file, mock, verbose)
        service, customer_id = _build_service(config, mock)
        overview = asyncio.run(service.list_appointments(customer_id, pendulum.now(config.timezone)))

        if not overview.upcoming and not overview.past:
            console.print("[yellow]Nenhum agendamento encontrado.[/yellow]")
            return

        console.print()
        console.print(_appointment_table("Próximos", overview.upcoming, config.timezone))
        console.print(_appointment_table("Histórico", overview.past, config.timezone))
        console.print()

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        _fail(str(e))


@app.command()
def cancel(
    appointment_id: Annotated[str, typer.Argument(help="ID do agendamento")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Cancel one of your appointments.
    """
    try:
        config = _load_config(config_file, mock, verbose)
        service, customer_id = _build_service(config, mock)
        asyncio.run(service.cancel_appointment(customer_id, appointment_id))
        console.print("[green]✓ Agendamento cancelado[/green]")

    except RecordNotFoundError:
        _fail("Agendamento não encontrado")
    except InvalidStatusTransitionError:
        _fail("Este agendamento não pode mais ser cancelado")
    except (FileNotFoundError, ValueError, SlotbookError) as e:
        _fail(f"Erro ao cancelar agendamento: {e}")


@app.command()
def login(
    email: Annotated[str, typer.Option("--email", "-e", prompt="E-mail")],
    password: Annotated[str, typer.Option("--password", prompt="Senha", hide_input=True)],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Sign in and cache the session.
    """
    try:
        config = _load_config(config_file, False, verbose)
        authenticator = SupabaseAuthenticator(
            url=config.store.url,
            anon_key=config.store.anon_key,
            timeout_seconds=config.store.timeout_seconds,
        )
        authenticator.sign_in(email, password)
        if authenticator.insecure_storage_warning:
            console.print(f"[yellow]{authenticator.insecure_storage_warning}[/yellow]")

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        _fail(str(e))


@app.command()
def logout(config_file: ConfigOption = None):
    """
    Clear the cached session.
    """
    try:
        config = _load_config(config_file, False, False)
        authenticator = SupabaseAuthenticator(url=config.store.url, anon_key=config.store.anon_key)
        authenticator.clear_cache()

    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbook[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
