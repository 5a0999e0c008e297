"""Planner CRM CLI - serve the API, prepare the database, scan SLAs."""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from .config import settings

app = typer.Typer(
    name="planner-crm",
    help="Planner CRM - opportunity pipeline engine",
    no_args_is_help=True,
)
console = Console()

# Default sales funnel followed by the client onboarding funnel it converts into.
DEFAULT_FUNNELS = [
    {
        "name": "Venda Planejamento",
        "generates_contract": True,
        "stages": [
            ("Novo", "slate", 24),
            ("Qualificado", "blue", 48),
            ("Proposta Feita", "orange", 72),
            ("Fechamento", "green", None),
        ],
    },
    {
        "name": "Onboarding",
        "generates_contract": False,
        "stages": [
            ("Boas-vindas", "cyan", 48),
            ("Coleta de Dados", "purple", 120),
            ("Concluído", "gray", None),
        ],
    },
]

DEFAULT_LOST_REASONS = [
    ("price", "Preço"),
    ("no_response", "Sem retorno"),
    ("competitor", "Fechou com concorrente"),
    ("timing", "Momento inadequado"),
]


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("serve")
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the Planner CRM API."""
    import uvicorn

    _configure_logging()
    console.print(f"[bold cyan]Starting Planner CRM at http://{host}:{port}[/bold cyan]")
    uvicorn.run("planner_crm.app:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db():
    """Create all tables on the configured database (SQLite / local dev)."""
    from .database import create_all

    asyncio.run(create_all())
    console.print(f"[green]Tables created on {settings.database_url}[/green]")


async def _seed() -> tuple[int, int]:
    from .database import async_session_factory, create_all
    from .services import funnel_svc

    await create_all()
    funnels_created = 0
    reasons_created = 0
    async with async_session_factory() as db:
        existing = {f.name for f in await funnel_svc.list_funnels(db, include_inactive=True)}
        for spec in DEFAULT_FUNNELS:
            if spec["name"] in existing:
                continue
            funnel = await funnel_svc.create_funnel(
                db, spec["name"], generates_contract=spec["generates_contract"]
            )
            for name, color, sla_hours in spec["stages"]:
                await funnel_svc.add_stage(db, funnel.id, name, color=color, sla_hours=sla_hours)
            funnels_created += 1

        for reason_id, name in DEFAULT_LOST_REASONS:
            if await funnel_svc.get_lost_reason(db, reason_id) is None:
                await funnel_svc.create_lost_reason(db, reason_id, name)
                reasons_created += 1
    return funnels_created, reasons_created


@app.command("seed")
def seed():
    """Create the default funnels, stages and lost reasons if missing."""
    funnels_created, reasons_created = asyncio.run(_seed())
    console.print(
        f"[green]Seeded {funnels_created} funnel(s) and {reasons_created} lost reason(s)[/green]"
    )


async def _list_funnels():
    from .database import async_session_factory
    from .services import funnel_svc

    async with async_session_factory() as db:
        return await funnel_svc.list_funnels(db, include_inactive=True)


@app.command("funnels")
def funnels():
    """List funnels and their stages."""
    table = Table(title="Funnels")
    table.add_column("#", style="dim")
    table.add_column("Funnel", style="cyan")
    table.add_column("Stages")
    table.add_column("Active")
    for funnel in asyncio.run(_list_funnels()):
        stages = ", ".join(
            f"{s.name} ({s.sla_hours}h)" if s.sla_hours else s.name for s in funnel.stages
        )
        table.add_row(str(funnel.order_position), funnel.name, stages, "yes" if funnel.is_active else "no")
    console.print(table)


@app.command("sla-scan")
def sla_scan():
    """Scan active opportunities once and notify owners of SLA breaches."""
    from .worker import sla_worker

    _configure_logging()
    created = asyncio.run(sla_worker.run_once())
    console.print(f"[bold]Created {created} SLA breach notification(s)[/bold]")


if __name__ == "__main__":
    app()
