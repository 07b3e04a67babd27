"""Tests for the order parser pipeline."""

import pytest

from src.orchestrator.models.intent import FallbackReason
from src.orchestrator.models.order import LineItem, ParseResult, ParseStrategy
from src.orchestrator.nl_engine.order_parser import OrderParserPipeline
from src.orchestrator.nl_engine.outcome import Invalid, Ok, Unavailable
from tests.helpers import StubOrderBackend


def _model(*items: LineItem, confidence: float = 0.9) -> Ok:
    return Ok(ParseResult(items=list(items), is_order_like=True, confidence=confidence))


def _names(result: ParseResult) -> list[str]:
    return [i.canonical for i in result.items]


class TestRulePath:
    """No extractor configured."""

    @pytest.mark.asyncio
    async def test_inline_items(self):
        result = await OrderParserPipeline().parse("2kg onion, 1L milk")

        assert result.reason == ParseStrategy.RULES
        assert result.fallback == FallbackReason.NO_CREDENTIALS
        assert result.is_order_like
        assert _names(result) == ["onion", "milk"]

    @pytest.mark.asyncio
    async def test_list_lines(self):
        result = await OrderParserPipeline().parse("hi\nrice\nmilk")

        assert result.reason == ParseStrategy.LIST_LINES
        assert [(i.canonical, i.qty) for i in result.items] == [("rice", 1), ("milk", 1)]

    @pytest.mark.asyncio
    async def test_not_an_order(self):
        result = await OrderParserPipeline().parse("hello there")

        assert result.reason == ParseStrategy.NONE
        assert result.items == []
        assert not result.is_order_like

    @pytest.mark.asyncio
    async def test_catalog_hint_passed_to_rules(self):
        result = await OrderParserPipeline().parse("chicken biryani", ["Chicken Biryani"])

        assert _names(result) == ["chicken biryani"]
        assert result.items[0].qty is None


class TestModelPath:
    """Model extraction, grounding and overrides."""

    @pytest.mark.asyncio
    async def test_model_items_are_grounded(self):
        backend = StubOrderBackend(
            _model(LineItem(name="onion", qty=2, unit="KG"), LineItem(name="paneer", qty=1))
        )
        result = await OrderParserPipeline(backend).parse("2 kg onion please", ["Onion"])

        assert backend.calls == [("2 kg onion please", ["Onion"])]
        assert result.reason == ParseStrategy.MODEL
        assert result.fallback == FallbackReason.NONE
        assert [(i.canonical, i.qty, i.unit) for i in result.items] == [("onion", 2, "kg")]
        assert result.confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_all_items_invented_falls_back_to_rules(self):
        backend = StubOrderBackend(_model(LineItem(name="paneer", qty=1)))
        result = await OrderParserPipeline(backend).parse("2 coke")

        assert result.reason == ParseStrategy.RULES
        assert _names(result) == ["coke"]

    @pytest.mark.asyncio
    async def test_list_shape_overrides_model(self):
        backend = StubOrderBackend(_model(LineItem(name="rice milk", qty=3)))
        result = await OrderParserPipeline(backend).parse("rice\nmilk")

        assert result.reason == ParseStrategy.LIST_LINES
        assert _names(result) == ["rice", "milk"]
        assert result.confidence is None

    @pytest.mark.asyncio
    async def test_invalid_output_falls_back(self):
        backend = StubOrderBackend(Invalid({"items": "two cokes"}, "not a list"))
        result = await OrderParserPipeline(backend).parse("2 coke")

        assert result.reason == ParseStrategy.RULES
        assert result.fallback == FallbackReason.INVALID_OUTPUT

    @pytest.mark.asyncio
    async def test_budget_rejection_falls_back(self):
        backend = StubOrderBackend(Unavailable(FallbackReason.BUDGET))
        result = await OrderParserPipeline(backend).parse("2 coke")

        assert result.fallback == FallbackReason.BUDGET
        assert _names(result) == ["coke"]

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        backend = StubOrderBackend(_model(LineItem(name="coke", qty=2)), delay=0.3)
        result = await OrderParserPipeline(backend, timeout_seconds=0.05).parse("2 coke")

        assert result.fallback == FallbackReason.TIMEOUT
        assert result.reason == ParseStrategy.RULES
