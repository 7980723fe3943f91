"""Typer CLI for Xenofy-Engine."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="xenofy", help="Xenofy-Engine: Shopify ingestion and analytics backend")
console = Console()

_STATUS_STYLES = {
    "succeeded": "green",
    "partial": "yellow",
    "skipped": "cyan",
    "failed": "red",
}


def _print_run(run) -> None:
    table = Table(title=f"Run {run.id} ({run.trigger})")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Records", justify="right")
    table.add_column("Error")
    for step in run.steps:
        style = _STATUS_STYLES.get(step.status, "white")
        table.add_row(step.name, f"[{style}]{step.status}[/{style}]", str(step.records), step.error or "")
    console.print(table)
    style = _STATUS_STYLES.get(run.status, "white")
    console.print(f"[bold {style}]{run.status.upper()}[/bold {style}]")


async def _with_db(fn):
    from xenofy_engine.common.logging import setup_logging
    from xenofy_engine.common.config import get_settings
    from xenofy_engine.deps import get_db

    setup_logging(get_settings().log_level)
    db = get_db()
    await db.init()
    await db.create_all()
    try:
        return await fn(db)
    finally:
        await db.close()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Xenofy-Engine API server."""
    import uvicorn
    from xenofy_engine.app import create_app

    console.print(f"[bold green]Starting Xenofy-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def ingest(
    tenant_id: str = typer.Argument(..., help="Tenant to ingest"),
    step: list[str] = typer.Option(None, "--step", help="Limit to these steps (repeatable)"),
):
    """Run one synchronous ingestion for a tenant."""
    from xenofy_engine.common.exceptions import XenofyError
    from xenofy_engine.deps import get_ingestion_service

    async def _run(db):
        return await get_ingestion_service().run_for_tenant(
            db, tenant_id, steps=step or None, trigger="manual"
        )

    try:
        run = asyncio.run(_with_db(_run))
    except XenofyError as e:
        console.print(f"[bold red]{e.code}[/bold red] {e.message}")
        raise typer.Exit(1)
    _print_run(run)
    if run.status == "failed":
        raise typer.Exit(1)


@app.command("ingest-all")
def ingest_all():
    """Run one scheduler tick over every tenant with a credential."""
    from xenofy_engine.deps import get_scheduler

    summary = asyncio.run(_with_db(lambda db: get_scheduler().run_once()))
    console.print(
        f"[green]{len(summary.succeeded)} ingested[/green], "
        f"[cyan]{len(summary.skipped)} skipped[/cyan], "
        f"[red]{len(summary.failed)} failed[/red]"
    )
    if summary.failed:
        raise typer.Exit(1)


@app.command("seed-demo")
def seed_demo():
    """Create the demo tenant and user if missing."""
    from xenofy_engine.auth.demo import provision_demo_account
    from xenofy_engine.common.config import get_settings

    async def _seed(db):
        async with db.get_session() as session:
            return await provision_demo_account(session, get_settings())

    tenant, user, created = asyncio.run(_with_db(_seed))
    verb = "Created" if created else "Found"
    console.print(f"[bold green]{verb}[/bold green] demo account {user.email} (tenant {tenant.id})")


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Xenofy-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
