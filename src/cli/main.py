"""OrderDesk CLI.

Operator entry point for database setup, catalog management and running
messages through the decision engine by hand.

Usage:
    orderdesk init-db                                  Create tables
    orderdesk add-product "Chicken Biryani" --tenant t1 --variant half
    orderdesk products --tenant t1                     List the catalog
    orderdesk ingest "2kg onion, 1L milk" --tenant t1 --customer c1
    orderdesk serve                                    Run the API
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console

from src.cli.output import format_ingest_result, format_products_table
from src.config import load_config

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="orderdesk",
    help="Conversational order-taking decision engine",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to orderdesk.yaml config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """OrderDesk CLI."""
    global _config_path
    _config_path = config
    cfg_level = "debug" if verbose else load_config(config_path=config).log_level
    logging.basicConfig(
        level=getattr(logging, cfg_level.upper(), logging.INFO),
        format="%(levelname)s:%(name)s:%(message)s",
    )


@app.command("init-db")
def init_db_command():
    """Create database tables."""
    from src.db.connection import DATABASE_URL, init_db

    init_db()
    console.print(f"[green]Database ready:[/green] {DATABASE_URL}")


@app.command("add-product")
def add_product_command(
    canonical: str = typer.Argument(..., help="Canonical product name"),
    tenant: str = typer.Option(..., "--tenant", "-t", help="Tenant id"),
    display_name: Optional[str] = typer.Option(None, "--display-name", help="Display name"),
    variant: Optional[str] = typer.Option(None, "--variant", help="Variant (size, spice level)"),
    unit: Optional[str] = typer.Option(None, "--unit", help="Unit (kg, l, pc, plate)"),
):
    """Add a product to a tenant's catalog."""
    from src.db.connection import get_db_context, init_db
    from src.services.catalog_service import add_product

    init_db()
    with get_db_context() as db:
        product = add_product(db, tenant, canonical, display_name, variant, unit)
        product_id = product.id
    console.print(f"[green]Added[/green] {canonical}{f' ({variant})' if variant else ''}: {product_id}")


@app.command("products")
def products_command(
    tenant: str = typer.Option(..., "--tenant", "-t", help="Tenant id"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List a tenant's catalog."""
    from src.db.connection import get_db_context, init_db
    from src.services.catalog_service import list_products

    init_db()
    with get_db_context() as db:
        output = format_products_table(list_products(db, tenant), as_json=json_output)
        if json_output:
            typer.echo(output)
        else:
            console.print(output)


@app.command("ingest")
def ingest_command(
    text: str = typer.Argument(..., help="Message text"),
    tenant: str = typer.Option(..., "--tenant", "-t", help="Tenant id"),
    customer: str = typer.Option(..., "--customer", "-c", help="Customer key"),
    message_id: Optional[str] = typer.Option(None, "--message-id", help="Channel message id"),
    order_id: Optional[str] = typer.Option(None, "--order-id", help="Force the active order"),
    edited: bool = typer.Option(False, "--edited", help="Message edits --message-id"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Run one message through the decision engine."""
    from src.db.connection import init_db
    from src.services.ingest_service import IngestService

    cfg = load_config(config_path=_config_path)
    init_db()
    service = IngestService.with_model_backends(config=cfg.engine)
    result = asyncio.run(
        service.ingest(
            tenant_id=tenant,
            customer_key=customer,
            text=text,
            message_id=message_id,
            forced_active_order_id=order_id,
            edited=edited,
        )
    )
    output = format_ingest_result(result, as_json=json_output)
    if json_output:
        typer.echo(output)
    else:
        console.print(output)
    if result.kind == "error":
        raise typer.Exit(1)


@app.command("serve")
def serve_command(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind host"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    cfg = load_config(config_path=_config_path)
    uvicorn.run("src.api.main:app", host=host, port=port, log_level=cfg.log_level.lower())


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved engine configuration."""
    cfg = load_config(config_path=_config_path)
    console.print(f"[bold]log_level:[/bold] {cfg.log_level}")
    console.print("[bold]Engine:[/bold]")
    for name, value in cfg.engine.model_dump().items():
        console.print(f"  {name}: {value}")


if __name__ == "__main__":
    app()
