"""Tests for CLI output formatters."""

import json

from rich.console import Console
from rich.panel import Panel

from src.cli.output import format_ingest_result, format_products_table, format_qty
from src.db.models import Product
from src.orchestrator.models.ingest import (
    ErrorIngestResult,
    NoneIngestResult,
    NoneReason,
    OrderIngestResult,
)
from src.orchestrator.models.order import LineItem


def _render(renderable) -> str:
    console = Console(width=120, record=True)
    console.print(renderable)
    return console.export_text()


def test_format_qty():
    assert format_qty(LineItem(name="onion", qty=2, unit="kg")) == "2 kg"
    assert format_qty(LineItem(name="coke", qty=3)) == "3"
    assert format_qty(LineItem(name="bread")) == "—"


class TestFormatIngestResult:
    """JSON and panel output."""

    def test_json(self):
        result = NoneIngestResult(reason=NoneReason.GREETING)
        assert json.loads(format_ingest_result(result, as_json=True)) == {
            "kind": "none",
            "reason": "greeting",
            "order_id": None,
            "reply": None,
        }

    def test_order_panel(self):
        result = OrderIngestResult(
            order_id="o1",
            items=[LineItem(name="onion", canonical="onion", qty=2, unit="kg")],
            link_reason="no_previous",
            stage="building_order",
            unmatched=["paneer"],
            reply="Got it.",
        )
        panel = format_ingest_result(result)
        assert isinstance(panel, Panel)

        text = _render(panel)
        assert "no_previous" in text
        assert "onion" in text
        assert "Not in catalog: paneer" in text
        assert "Reply: Got it." in text

    def test_error_panel(self):
        text = _render(format_ingest_result(ErrorIngestResult(error="E-4001", retryable=True, reply="Sorry")))
        assert "E-4001 (retryable: True)" in text


def test_products_json():
    product = Product(id="p1", tenant_id="t1", canonical="Onion", unit="kg")
    assert json.loads(format_products_table([product], as_json=True)) == [
        {"id": "p1", "canonical": "Onion", "display_name": None, "variant": None, "unit": "kg"}
    ]
