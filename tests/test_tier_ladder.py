import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.bundle_schemas import Tier
from services.tier_ladder import TierLadder, ladder_from_rules, normalize, validate_tier


class TestNormalize:
    """Clamp, validate, dedupe by minQty and sort."""

    def test_sorted_ascending_and_deduped_last_wins(self):
        tiers = normalize([
            {"minQty": 5, "type": "percentage", "value": 20},
            {"minQty": 2, "type": "percentage", "value": 10},
            {"minQty": 5, "type": "fixed", "value": 7},
        ])
        assert [t.min_qty for t in tiers] == [2, 5]
        assert tiers[1] == Tier(min_qty=5, type="fixed", value=7.0)

    def test_min_qty_is_clamped(self):
        tiers = normalize([{"minQty": 0, "value": 1}, {"minQty": 5000, "value": 2}])
        assert [t.min_qty for t in tiers] == [1, 999]

    def test_invalid_rows_are_dropped(self):
        tiers = normalize([
            {"minQty": 2, "type": "bogus", "value": 10},
            {"minQty": 3, "type": "percentage", "value": -1},
            {"minQty": 4, "type": "percentage", "value": "abc"},
            {"minQty": 6, "type": "fixed", "value": 3},
        ])
        assert tiers == [Tier(min_qty=6, type="fixed", value=3.0)]

    def test_missing_type_defaults_to_percentage(self):
        assert validate_tier({"minQty": 3, "value": 5}) == Tier(3, "percentage", 5.0)

    def test_missing_value_counts_as_zero(self):
        assert validate_tier({"minQty": 3, "type": "fixed", "value": None}) == Tier(3, "fixed", 0.0)

    def test_idempotent(self):
        rows = [{"minQty": 4, "value": 15}, {"minQty": 2, "value": 10}, {"minQty": 4, "value": 12}]
        once = normalize(rows)
        assert normalize(once) == once


class TestTierLadder:
    def test_defaults_to_single_two_unit_tier(self):
        ladder = TierLadder()
        assert ladder.rows == [{"minQty": 2, "type": "percentage", "value": 10}]
        assert ladder.effective_min_qty == 2

    def test_empty_ladder_falls_back_to_zero_tier_and_is_invalid(self):
        ladder = TierLadder([])
        assert ladder.effective() == [Tier(1, "percentage", 0.0)]
        assert ladder.is_valid() is False

    def test_add_tier_steps_past_current_max(self):
        ladder = TierLadder([{"minQty": 2, "value": 10}, {"minQty": 4, "value": 15}])
        row = ladder.add_tier()
        assert row == {"minQty": 5, "type": "percentage", "value": 10}
        assert len(ladder) == 3

    def test_add_tier_caps_at_999(self):
        ladder = TierLadder([{"minQty": 999, "value": 10}])
        assert ladder.add_tier()["minQty"] == 999

    def test_remove_keeps_last_tier(self):
        ladder = TierLadder([{"minQty": 2, "value": 10}])
        assert ladder.remove_tier(0) is False
        assert len(ladder) == 1

    def test_remove_out_of_range_is_noop(self):
        ladder = TierLadder([{"minQty": 2, "value": 10}, {"minQty": 3, "value": 12}])
        assert ladder.remove_tier(5) is False
        assert ladder.remove_tier(0) is True
        assert ladder.rows == [{"minQty": 3, "value": 12}]

    def test_update_tier_clamps_min_qty(self):
        ladder = TierLadder()
        assert ladder.update_tier(0, {"minQty": -3, "value": 25}) is True
        assert ladder.rows[0]["minQty"] == 1
        assert ladder.primary == Tier(1, "percentage", 25.0)

    def test_invalid_row_makes_ladder_invalid_but_not_broken(self):
        ladder = TierLadder([{"minQty": 2, "value": 10}, {"minQty": 3, "value": -5}])
        assert ladder.is_valid() is False
        assert ladder.normalized() == [Tier(2, "percentage", 10.0)]


class TestLadderFromRules:
    def test_uses_persisted_tiers(self):
        rules = {"tiers": [{"minQty": 3, "type": "fixed", "value": 5}, {"minQty": 2, "type": "fixed", "value": 2}]}
        assert ladder_from_rules(rules) == [
            {"minQty": 2, "type": "fixed", "value": 2.0},
            {"minQty": 3, "type": "fixed", "value": 5.0},
        ]

    def test_synthesizes_single_tier_without_tiers(self):
        rules = {"type": "fixed", "value": 4}
        assert ladder_from_rules(rules, cover_quantity=3) == [{"minQty": 3, "type": "fixed", "value": 4.0}]
