"""Tests for applying structured change requests to line items."""

import pytest

from src.orchestrator.models.order import (
    LineItem,
    ModifierChange,
    ModifierPayload,
    ModifierScope,
    ModifierStatus,
    ModifierTarget,
)
from src.services.modifier_engine import (
    apply_modifier,
    apply_modifier_at,
    find_candidate_indices,
    is_unspecified_target,
    score_item,
)


def _item(name: str, qty=1, unit=None, **kw) -> LineItem:
    return LineItem(name=name, canonical=name, qty=qty, unit=unit, **kw)


def _mod(target: str, change_type: str, scope=ModifierScope.ONE, **change) -> ModifierPayload:
    return ModifierPayload(
        target=ModifierTarget(text=target, canonical=target or None),
        scope=scope,
        change=ModifierChange(type=change_type, **change),
    )


@pytest.fixture
def items() -> list[LineItem]:
    return [_item("coke", 2), _item("diet coke", 1), _item("onion", 2, "kg")]


# ============================================================================
# Target resolution
# ============================================================================


class TestTargetResolution:
    """Scoring and candidate selection."""

    def test_scores(self):
        assert score_item("coke", "coke") == 3
        assert score_item("diet coke", "coke") == 2
        assert score_item("chicken biryani", "biryani rice") == 1
        assert score_item("onion", "coke") == 0
        assert score_item("", "coke") == 0

    def test_exact_beats_substring(self, items):
        assert find_candidate_indices(items, "coke") == [0]

    def test_tied_substring_matches(self, items):
        assert find_candidate_indices(items, "cok") == [0, 1]

    def test_no_match(self, items):
        assert find_candidate_indices(items, "sprite") == []

    @pytest.mark.parametrize("text", ["", "it", "that one", "them", None])
    def test_pronoun_targets_match_everything(self, items, text):
        assert is_unspecified_target(text)
        assert find_candidate_indices(items, text) == [0, 1, 2]


# ============================================================================
# Apply
# ============================================================================


class TestApplyModifier:
    """apply_modifier outcomes."""

    def test_does_not_mutate_input(self, items):
        before = [i.model_copy() for i in items]
        apply_modifier(items, _mod("onion", "qty", new_qty=5))
        assert items == before

    def test_set_qty(self, items):
        result = apply_modifier(items, _mod("onion", "qty", new_qty=5))
        assert result.status == ModifierStatus.APPLIED
        assert result.items[2].qty == 5

    def test_delta_qty_defaults_missing_qty_to_one(self):
        result = apply_modifier([_item("bread", None)], _mod("bread", "qty", delta_qty=2))
        assert result.items[0].qty == 3

    def test_qty_to_zero_removes_item(self, items):
        result = apply_modifier(items, _mod("onion", "qty", delta_qty=-2))
        assert result.status == ModifierStatus.APPLIED
        assert [i.canonical for i in result.items] == ["coke", "diet coke"]
        assert "removed 1" in result.summary

    def test_same_qty_is_noop(self, items):
        result = apply_modifier(items, _mod("onion", "qty", new_qty=2))
        assert result.status == ModifierStatus.NOOP

    def test_qty_without_value_is_noop(self, items):
        result = apply_modifier(items, _mod("onion", "qty"))
        assert result.status == ModifierStatus.NOOP

    def test_fractional_qty_kept(self, items):
        result = apply_modifier(items, _mod("onion", "qty", delta_qty=0.5))
        assert result.items[2].qty == 2.5

    def test_set_variant(self, items):
        result = apply_modifier(items, _mod("onion", "variant", new_variant="red"))
        assert result.items[2].variant == "red"

    def test_remove(self, items):
        result = apply_modifier(items, _mod("onion", "remove"))
        assert [i.canonical for i in result.items] == ["coke", "diet coke"]

    def test_note_appends(self):
        start = [_item("biryani", notes="no onion")]
        result = apply_modifier(start, _mod("biryani", "note", note="extra raita"))
        assert result.items[0].notes == "no onion; extra raita"

    def test_unknown_change_type_is_noop(self, items):
        result = apply_modifier(items, _mod("onion", "gift_wrap"))
        assert result.status == ModifierStatus.NOOP
        assert "gift_wrap" in result.summary

    def test_no_match(self, items):
        result = apply_modifier(items, _mod("sprite", "remove"))
        assert result.status == ModifierStatus.NO_MATCH
        assert len(result.items) == 3

    def test_several_candidates_are_ambiguous(self, items):
        result = apply_modifier(items, _mod("it", "qty", new_qty=2))
        assert result.status == ModifierStatus.AMBIGUOUS
        assert [c.index for c in result.candidates] == [0, 1, 2]
        assert [c.label for c in result.candidates] == ["coke", "diet coke", "onion kg"]
        assert result.items == items

    def test_ambiguous_scope_never_applies(self, items):
        result = apply_modifier(items, _mod("onion", "remove", scope=ModifierScope.AMBIGUOUS))
        assert result.status == ModifierStatus.AMBIGUOUS
        assert len(result.items) == 3

    def test_scope_all(self, items):
        result = apply_modifier(items, _mod("", "qty", scope=ModifierScope.ALL, new_qty=1))
        assert result.status == ModifierStatus.APPLIED
        assert [i.qty for i in result.items] == [1, 1, 1]

    def test_scope_all_variant_touches_only_variant(self):
        start = [
            _item("biryani", 2, notes="no onion"),
            _item("coke", 1),
            _item("onion", 3, "kg"),
        ]
        result = apply_modifier(
            start, _mod("", "variant", scope=ModifierScope.ALL, new_variant="spicy")
        )

        assert result.status == ModifierStatus.APPLIED
        assert [i.variant for i in result.items] == ["spicy", "spicy", "spicy"]
        assert [(i.canonical, i.qty, i.unit, i.notes) for i in result.items] == [
            ("biryani", 2, None, "no onion"),
            ("coke", 1, None, None),
            ("onion", 3, "kg", None),
        ]

    def test_same_product_in_two_variants_is_ambiguous(self):
        start = [
            _item("chicken biryani", variant="half"),
            _item("coke"),
            _item("chicken biryani", variant="full"),
        ]
        result = apply_modifier(start, _mod("biryani", "qty", new_qty=2))

        assert result.status == ModifierStatus.AMBIGUOUS
        assert [c.index for c in result.candidates] == [0, 2]
        assert [c.label for c in result.candidates] == [
            "chicken biryani half",
            "chicken biryani full",
        ]

    def test_qty_below_zero_removes_item(self):
        result = apply_modifier(
            [_item("coke", 3), _item("onion", 2, "kg")], _mod("coke", "qty", delta_qty=-5)
        )

        assert result.status == ModifierStatus.APPLIED
        assert [i.canonical for i in result.items] == ["onion"]

    def test_scope_all_on_empty_order(self):
        result = apply_modifier([], _mod("", "remove", scope=ModifierScope.ALL))
        assert result.status == ModifierStatus.NO_MATCH


class TestApplyModifierAt:
    """Applying a modifier to a picked index."""

    def test_applies_at_index(self, items):
        result = apply_modifier_at(items, _mod("it", "qty", new_qty=4), 1)
        assert result.status == ModifierStatus.APPLIED
        assert [i.qty for i in result.items] == [2, 4, 2]

    def test_index_out_of_range(self, items):
        result = apply_modifier_at(items, _mod("it", "remove"), 7)
        assert result.status == ModifierStatus.NO_MATCH
