"""
Unit tests for the verdict resolver.

The resolver is pure, so these tests use plain objects and dict lookups
instead of the database.
"""
from types import SimpleNamespace

from app.models.ingredient import Verdict
from app.services.verdict_resolver import (
    RULE_ALL_UNKNOWN,
    RULE_MANUAL_OVERRIDE,
    RULE_NO_INGREDIENTS,
    resolve_verdict,
)


def make_ingredient(id, name, verdict):
    return SimpleNamespace(id=id, name=name, verdict=verdict)


def make_product(ingredient_ids, verdict="unknown", rule_applied=None, verdict_override=False):
    return SimpleNamespace(
        ingredient_ids=ingredient_ids,
        verdict=verdict,
        rule_applied=rule_applied,
        verdict_override=verdict_override,
    )


def lookup_for(*ingredients):
    return {i.id: i for i in ingredients}.get


class TestResolveVerdict:
    """Highest-severity-wins aggregation."""

    def test_avoid_beats_everything(self):
        lookup = lookup_for(
            make_ingredient(1, "Sugar", "safe"),
            make_ingredient(2, "Red Dye 40", "avoid"),
            make_ingredient(3, "Salt", "caution"),
        )
        result = resolve_verdict(make_product([1, 2, 3]), lookup)

        assert result.verdict == Verdict.AVOID
        assert result.rule_applied == "ingredient:Red Dye 40"
        assert result.ingredient_id == 2
        assert result.changed is True

    def test_caution_beats_safe(self):
        lookup = lookup_for(make_ingredient(1, "Sugar", "safe"), make_ingredient(2, "Salt", "caution"))
        result = resolve_verdict(make_product([1, 2]), lookup)

        assert result.verdict == Verdict.CAUTION
        assert result.rule_applied == "ingredient:Salt"

    def test_all_safe(self):
        lookup = lookup_for(make_ingredient(1, "Water", "safe"), make_ingredient(2, "Oats", "safe"))
        result = resolve_verdict(make_product([1, 2]), lookup)

        assert result.verdict == Verdict.SAFE
        # First safe ingredient is reported
        assert result.rule_applied == "ingredient:Water"

    def test_first_ingredient_wins_ties(self):
        lookup = lookup_for(make_ingredient(1, "Red 40", "avoid"), make_ingredient(2, "Yellow 5", "avoid"))
        result = resolve_verdict(make_product([1, 2]), lookup)

        assert result.rule_applied == "ingredient:Red 40"

    def test_all_unknown(self):
        lookup = lookup_for(make_ingredient(1, "Mystery", "unknown"))
        result = resolve_verdict(make_product([1]), lookup)

        assert result.verdict == Verdict.UNKNOWN
        assert result.rule_applied == RULE_ALL_UNKNOWN

    def test_no_ingredients(self):
        result = resolve_verdict(make_product([]), lookup_for())

        assert result.verdict == Verdict.UNKNOWN
        assert result.rule_applied == RULE_NO_INGREDIENTS

    def test_flagged_is_treated_as_avoid(self):
        lookup = lookup_for(make_ingredient(1, "BHA", "flagged"))
        result = resolve_verdict(make_product([1]), lookup)

        assert result.verdict == Verdict.AVOID


class TestUnresolvableReferences:
    """Deleted or unreadable ingredients degrade to unknown."""

    def test_missing_ingredient_is_unknown(self):
        lookup = lookup_for(make_ingredient(1, "Sugar", "safe"))
        result = resolve_verdict(make_product([99, 1]), lookup)

        assert result.verdict == Verdict.SAFE

    def test_null_reference_is_unknown(self):
        result = resolve_verdict(make_product([None]), lookup_for())

        assert result.verdict == Verdict.UNKNOWN
        assert result.rule_applied == RULE_ALL_UNKNOWN

    def test_lookup_error_is_unknown(self):
        def failing_lookup(ingredient_id):
            raise LookupError("gone")

        result = resolve_verdict(make_product([1]), failing_lookup)

        assert result.verdict == Verdict.UNKNOWN

    def test_garbage_verdict_is_unknown(self):
        lookup = lookup_for(make_ingredient(1, "Odd", "definitely-bad"), make_ingredient(2, "Oats", "safe"))
        result = resolve_verdict(make_product([1, 2]), lookup)

        assert result.verdict == Verdict.SAFE


class TestChangeDetection:
    """``changed`` reflects whether persistence is needed."""

    def test_unchanged_when_stored_values_match(self):
        lookup = lookup_for(make_ingredient(1, "Salt", "caution"))
        product = make_product([1], verdict="caution", rule_applied="ingredient:Salt")

        assert resolve_verdict(product, lookup).changed is False

    def test_rule_change_alone_counts_as_changed(self):
        lookup = lookup_for(make_ingredient(1, "Salt", "caution"), make_ingredient(2, "MSG", "caution"))
        product = make_product([2, 1], verdict="caution", rule_applied="ingredient:Salt")

        result = resolve_verdict(product, lookup)
        assert result.changed is True
        assert result.rule_applied == "ingredient:MSG"

    def test_override_is_skipped(self):
        lookup = lookup_for(make_ingredient(1, "Red 40", "avoid"))
        product = make_product(
            [1], verdict="safe", rule_applied=RULE_MANUAL_OVERRIDE, verdict_override=True
        )

        result = resolve_verdict(product, lookup)

        assert result.skipped is True
        assert result.changed is False
        assert result.verdict == Verdict.SAFE
