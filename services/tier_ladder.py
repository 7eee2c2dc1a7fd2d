"""
Tier Ladder Model
Ordered, deduplicated quantity-discount breakpoints for "quantity" offers.

Editor rows are kept raw (as typed) and normalized on read, so a half-edited
row never breaks the ladder; invalid rows are simply skipped.
"""
from typing import Any, Dict, Iterable, List, Optional, Union
import logging
import math

from schemas.bundle_schemas import DEFAULT_TIERS, FALLBACK_TIER, TIER_TYPES, Tier
from settings import MAX_TIER_QTY, MIN_TIER_QTY
from utils import clamp_int, to_float, to_int

logger = logging.getLogger(__name__)

TierLike = Union[Tier, Dict[str, Any]]


def _as_row(tier: TierLike) -> Dict[str, Any]:
    if isinstance(tier, Tier):
        return tier.to_dict()
    return dict(tier) if isinstance(tier, dict) else {}


def clamp_min_qty(value: Any) -> int:
    return clamp_int(value, MIN_TIER_QTY, MAX_TIER_QTY, fallback=MIN_TIER_QTY)


def validate_tier(tier: TierLike) -> Optional[Tier]:
    """Return the clamped Tier, or None when the row fails a check."""
    row = _as_row(tier)
    tier_type = str(row.get("type") or "percentage").strip()
    if tier_type not in TIER_TYPES:
        return None
    raw_value = row.get("value")
    value = to_float(0 if raw_value is None else raw_value)
    if value is None or not math.isfinite(value) or value < 0:
        return None
    return Tier(min_qty=clamp_min_qty(row.get("minQty")), type=tier_type, value=value)


def normalize(tiers: Optional[Iterable[TierLike]]) -> List[Tier]:
    """
    Clamp, validate, dedupe by minQty (later rows win) and sort ascending.

    Rows failing validation are dropped silently; the ladder may be mid-edit.
    """
    valid = [t for t in (validate_tier(row) for row in (tiers or [])) if t is not None]

    # Stable sort keeps input order among equal minQty, so the last one wins.
    valid.sort(key=lambda t: t.min_qty)
    by_min_qty: Dict[int, Tier] = {}
    for tier in valid:
        by_min_qty[tier.min_qty] = tier
    return sorted(by_min_qty.values(), key=lambda t: t.min_qty)


class TierLadder:
    """Editable ladder of tier rows backing a quantity offer."""

    def __init__(self, rows: Optional[Iterable[TierLike]] = None):
        source = DEFAULT_TIERS if rows is None else rows
        self._rows: List[Dict[str, Any]] = [_as_row(r) for r in source]

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._rows]

    def __len__(self) -> int:
        return len(self._rows)

    def normalized(self) -> List[Tier]:
        return normalize(self._rows)

    def effective(self) -> List[Tier]:
        """Normalized ladder, or the single zero tier when nothing survives."""
        tiers = self.normalized()
        return tiers if tiers else [Tier(FALLBACK_TIER.min_qty, FALLBACK_TIER.type, FALLBACK_TIER.value)]

    @property
    def primary(self) -> Tier:
        return self.effective()[0]

    @property
    def effective_min_qty(self) -> int:
        return self.primary.min_qty

    def is_valid(self) -> bool:
        """Non-empty and every row passes validation."""
        if not self._rows:
            return False
        return all(validate_tier(row) is not None for row in self._rows)

    def add_tier(self) -> Dict[str, Any]:
        max_min = max((clamp_min_qty(r.get("minQty")) for r in self._rows), default=MIN_TIER_QTY)
        row = {"minQty": min(MAX_TIER_QTY, max_min + 1), "type": "percentage", "value": 10}
        self._rows.append(row)
        return dict(row)

    def remove_tier(self, index: int) -> bool:
        # A quantity offer always keeps at least one breakpoint.
        if len(self._rows) <= 1:
            return False
        if index < 0 or index >= len(self._rows):
            return False
        self._rows.pop(index)
        return True

    def update_tier(self, index: int, patch: Dict[str, Any]) -> bool:
        if index < 0 or index >= len(self._rows):
            return False
        row = {**self._rows[index], **patch}
        if "minQty" in patch:
            row["minQty"] = clamp_min_qty(patch.get("minQty"))
        self._rows[index] = row
        return True


def ladder_from_rules(rules: Optional[Dict[str, Any]], cover_quantity: Any = 1) -> List[Dict[str, Any]]:
    """Rebuild editor rows from a persisted rules block."""
    rules = rules if isinstance(rules, dict) else {}
    raw = rules.get("tiers")
    tiers = normalize(raw if isinstance(raw, list) else [])
    if tiers:
        return [t.to_dict() for t in tiers]
    logger.debug("No persisted tiers; synthesizing a single tier from rules.type/value")
    return [{
        "minQty": clamp_min_qty(to_int(cover_quantity, 1)),
        "type": str(rules.get("type") or "percentage"),
        "value": to_float(rules.get("value")) or 0.0,
    }]
