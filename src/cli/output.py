"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich output (default) and machine-parseable JSON
output (--json flag). All formatting goes through these functions so the
CLI commands stay clean.
"""

import json

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.db.models import Product
from src.orchestrator.models.ingest import IngestResult
from src.orchestrator.models.order import LineItem

# Result kind color map
KIND_COLORS = {
    "order": "green",
    "modifier": "blue",
    "inquiry": "cyan",
    "none": "yellow",
    "error": "red",
}


def format_qty(item: LineItem) -> str:
    """Format quantity and unit, e.g. "2 kg" or "—"."""
    if item.qty is None:
        return "—"
    return f"{item.qty} {item.unit}" if item.unit else str(item.qty)


def format_items_table(items: list[LineItem], title: str = "Items") -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Item", style="white")
    table.add_column("Qty", justify="right")
    table.add_column("Variant")
    table.add_column("Match", style="dim")
    table.add_column("Notes")
    for n, item in enumerate(items, 1):
        name = item.canonical or item.name
        if item.needs_clarify:
            name = f"{name} [yellow](which: {', '.join(item.variant_options)}?)[/yellow]"
        table.add_row(
            str(n),
            name,
            format_qty(item),
            item.variant or "",
            item.match_type,
            item.notes or "",
        )
    return table


def format_ingest_result(result: IngestResult, as_json: bool = False) -> str | Panel:
    """Format an ingest decision as a Rich panel or JSON.

    Args:
        result: The tagged ingest result.
        as_json: If True, return a JSON string instead of a panel.

    Returns:
        JSON string or a Rich Panel.
    """
    if as_json:
        return json.dumps(result.model_dump(mode="json"), indent=2)

    color = KIND_COLORS.get(result.kind, "white")
    lines: list = []
    if result.kind == "order":
        lines.append(Text(f"Order {result.order_id}  link: {result.link_reason}  stage: {result.stage}"))
        lines.append(format_items_table(result.items))
        if result.unmatched:
            lines.append(Text(f"Not in catalog: {', '.join(result.unmatched)}", style="yellow"))
    elif result.kind == "modifier":
        lines.append(Text(f"{result.status.value}: {result.summary}"))
        if result.candidates:
            for n, candidate in enumerate(result.candidates, 1):
                lines.append(Text(f"  {n}. {candidate.label}"))
        else:
            lines.append(format_items_table(result.items))
    elif result.kind == "inquiry":
        lines.append(Text(
            f"{result.inquiry_kind.value}: {result.canonical or '?'}"
            f" (in catalog: {'—' if result.in_catalog is None else result.in_catalog})"
        ))
    elif result.kind == "none":
        lines.append(Text(f"reason: {result.reason.value}"))
    elif result.kind == "error":
        lines.append(Text(f"{result.error} (retryable: {result.retryable})"))

    reply = getattr(result, "reply", None)
    if reply:
        lines.append(Text(f"\nReply: {reply}", style="italic"))

    return Panel(
        Group(*lines),
        title=f"[bold {color}]{result.kind}[/bold {color}]",
        border_style=color,
    )


def format_products_table(products: list[Product], as_json: bool = False) -> str | Table:
    """Format catalog rows as a Rich table or JSON."""
    if as_json:
        return json.dumps(
            [
                {
                    "id": p.id,
                    "canonical": p.canonical,
                    "display_name": p.display_name,
                    "variant": p.variant,
                    "unit": p.unit,
                }
                for p in products
            ],
            indent=2,
        )

    table = Table(title="Catalog")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Canonical")
    table.add_column("Display name")
    table.add_column("Variant")
    table.add_column("Unit")
    for p in products:
        table.add_row(p.id[:8], p.canonical, p.display_name or "", p.variant or "", p.unit or "")
    return table
