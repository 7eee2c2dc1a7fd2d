"""
Bundle Draft Builder
Converts editor state (offer + presentation fields) into the canonical
BundleDraftDict persisted by the bundle backend, and back again.

This builder ensures that:
- Quantity offers  → one component at qty 1 + normalized tier ladder
- Bundle offers    → base + addons, each item in its own synthesized group
- Grouped offers   → components exactly as arranged in the group builder

Incomplete state never raises; it only makes can_submit() False.
For any draft produced here, hydrate() followed by build_draft() yields the
same document.
"""

from typing import Any, Dict, List, Optional
import logging

from schemas.bundle_schemas import (
    Addon,
    BUNDLE_DISCOUNT_TYPES,
    BundleDraftDict,
    BundleOffer,
    Component,
    Discount,
    DraftInput,
    GroupedOffer,
    Presentation,
    QuantityOffer,
    RulesDict,
    synthesized_group,
)
from services.component_model import BundleComponentModel
from services.tier_ladder import TierLadder, ladder_from_rules
from settings import DRAFT_VERSION, MAX_TIER_QTY, MAX_USES_PER_ORDER, PRODUCT_REF_PREFIX, is_product_ref, sanitize_ref
from utils import clamp_int, clean_text, to_float

logger = logging.getLogger(__name__)


def _clamp_item_qty(value: Any) -> int:
    return clamp_int(value, 1, MAX_TIER_QTY, fallback=1)


def _discount_type(value: Any) -> str:
    text = str(value or "").strip()
    return text if text in BUNDLE_DISCOUNT_TYPES else "percentage"


def _eligibility_and_limits(min_cart_qty: int) -> Dict[str, Any]:
    return {
        "eligibility": {"mustIncludeAllGroups": True, "minCartQty": max(1, int(min_cart_qty))},
        "limits": {"maxUsesPerOrder": MAX_USES_PER_ORDER},
    }


def translate_quantity(offer: QuantityOffer) -> Dict[str, Any]:
    """
    Quantity offer → components + rules.

    Output:
    {
        "components": [{"variantId": "product:1", "quantity": 1, "group": "v:product:1"}],
        "rules": {
            "type": "percentage", "value": 10,
            "tiers": [{"minQty": 2, "type": "percentage", "value": 10}],
            "eligibility": {"mustIncludeAllGroups": true, "minCartQty": 2},
            "limits": {"maxUsesPerOrder": 50}
        }
    }
    """
    base = sanitize_ref(offer.base_ref)
    model = BundleComponentModel()
    if base:
        model.add(synthesized_group(base), base)

    ladder = TierLadder(offer.tiers)
    tiers = ladder.effective()
    primary = tiers[0]
    rules: RulesDict = {
        "type": "fixed" if primary.type == "fixed" else "percentage",
        "value": float(primary.value),
        "tiers": [t.to_dict() for t in tiers],
        **_eligibility_and_limits(primary.min_qty),
    }
    return {"components": model.to_dicts(), "rules": rules}


def translate_bundle(offer: BundleOffer) -> Dict[str, Any]:
    """
    Bundle offer → components + rules.

    Every item gets its own group "v:<ref>" so the rule requires one of each
    distinct item rather than treating them as alternatives.
    """
    base = sanitize_ref(offer.base_ref)
    model = BundleComponentModel()
    if base:
        model.add(synthesized_group(base), base)
        model.update_at(len(model) - 1, {"quantity": _clamp_item_qty(offer.base_quantity)})

    seen = {base} if base else set()
    for addon in offer.addons:
        ref = sanitize_ref(addon.ref)
        if not ref or ref in seen:
            continue
        seen.add(ref)
        model.add(synthesized_group(ref), ref)
        model.update_at(len(model) - 1, {"quantity": _clamp_item_qty(addon.quantity)})

    rules: RulesDict = {
        "type": _discount_type(offer.discount.type),
        "value": to_float(offer.discount.value) or 0.0,
        **_eligibility_and_limits(model.total_quantity()),
    }
    return {"components": model.to_dicts(), "rules": rules}


def translate_grouped(offer: GroupedOffer) -> Dict[str, Any]:
    """
    Grouped offer → components + rules.

    minCartQty is the cheapest way to satisfy every group: the smallest
    quantity inside each group, summed over groups.
    """
    model = BundleComponentModel(offer.components)
    min_cart_qty = sum(min(c.quantity for _, c in items) for _, items in model.groups_view())
    rules: RulesDict = {
        "type": _discount_type(offer.discount.type),
        "value": to_float(offer.discount.value) or 0.0,
        **_eligibility_and_limits(min_cart_qty),
    }
    return {"components": model.to_dicts(), "rules": rules}


def build_presentation(draft_input: DraftInput) -> Dict[str, Any]:
    presentation = Presentation(
        title=draft_input.presentation.title,
        cta=draft_input.presentation.cta,
        banner_color=draft_input.presentation.banner_color,
        badge_color=draft_input.presentation.badge_color,
        cover_ref=sanitize_ref(draft_input.offer.base_ref),
    )
    return presentation.to_dict()


def build_draft(draft_input: DraftInput) -> BundleDraftDict:
    """
    Main builder function. Single exhaustive dispatch over the offer kind.

    Args:
        draft_input: editor state

    Returns:
        Canonical BundleDraftDict
    """
    offer = draft_input.offer
    if isinstance(offer, QuantityOffer):
        body = translate_quantity(offer)
    elif isinstance(offer, BundleOffer):
        body = translate_bundle(offer)
    elif isinstance(offer, GroupedOffer):
        body = translate_grouped(offer)
    else:
        raise TypeError(f"Unknown offer type: {type(offer).__name__}")

    return {
        "version": DRAFT_VERSION,
        "name": clean_text(draft_input.name),
        "status": draft_input.status,
        "components": body["components"],
        "rules": body["rules"],
        "presentation": build_presentation(draft_input),
    }


def can_submit(draft_input: DraftInput, draft: Optional[BundleDraftDict] = None) -> bool:
    """Computed submit eligibility. Never raises."""
    draft = draft if draft is not None else build_draft(draft_input)
    if not sanitize_ref(draft_input.anchor_product_id):
        return False
    if not draft["name"].strip():
        return False
    components = draft["components"]
    if not components:
        return False
    offer = draft_input.offer
    if isinstance(offer, (BundleOffer, QuantityOffer)) and not sanitize_ref(offer.base_ref):
        return False
    if isinstance(offer, (BundleOffer, GroupedOffer)) and len(components) < 2:
        return False
    if isinstance(offer, QuantityOffer) and not TierLadder(offer.tiers).is_valid():
        return False
    return True


def _anchor_from(bundle: Dict[str, Any], cover: Optional[str]) -> Optional[str]:
    anchor = sanitize_ref(bundle.get("triggerProductId"))
    if anchor:
        return anchor
    if is_product_ref(cover):
        return sanitize_ref(cover[len(PRODUCT_REF_PREFIX):])
    return None


def hydrate(bundle: Dict[str, Any], anchor_product_id: Optional[str] = None) -> DraftInput:
    """
    Reverse mapping: persisted bundle → editor state.

    The cover item is presentation.coverVariantId, falling back to the first
    component. Documents whose groups were arranged by hand stay grouped;
    otherwise anything besides the cover makes it a bundle offer.
    """
    bundle = bundle if isinstance(bundle, dict) else {}
    raw_components = bundle.get("components")
    if not isinstance(raw_components, list):
        raw_components = []
    components = [Component.from_dict(c) for c in raw_components if isinstance(c, dict)]
    components = [c for c in components if c.ref]
    presentation = Presentation.from_dict(bundle.get("presentation"))
    rules = bundle.get("rules")
    if not isinstance(rules, dict):
        rules = {}
    discount = Discount(type=_discount_type(rules.get("type")), value=to_float(rules.get("value")) or 0.0)

    cover = presentation.cover_ref or (components[0].ref if components else None)
    cover_qty = next((c.quantity for c in components if c.ref == cover), 1)
    rest = [c for c in components if c.ref != cover] if cover else components[1:]

    hand_grouped = any(c.group != synthesized_group(c.ref) for c in components)
    if hand_grouped:
        offer = GroupedOffer(components=components, discount=discount)
    elif rest:
        offer = BundleOffer(
            base_ref=cover,
            base_quantity=_clamp_item_qty(cover_qty),
            addons=[Addon(ref=c.ref, quantity=_clamp_item_qty(c.quantity)) for c in rest],
            discount=discount,
        )
    else:
        offer = QuantityOffer(base_ref=cover, tiers=ladder_from_rules(rules, cover_qty))

    status = str(bundle.get("status") or "draft").strip().lower()
    return DraftInput(
        name=clean_text(bundle.get("name")),
        offer=offer,
        presentation=presentation,
        anchor_product_id=anchor_product_id or _anchor_from(bundle, cover),
        status=status if status in ("draft", "active", "paused") else "draft",
    )


def default_bundle_name(product_name: Any) -> Optional[str]:
    name = clean_text(product_name)
    return f"Bundle - {name}" if name else None


def edit_patch(draft: BundleDraftDict, status: str) -> Dict[str, Any]:
    """PATCH body used in edit mode."""
    return {
        "name": draft["name"],
        "components": draft["components"],
        "rules": draft["rules"],
        "presentation": draft["presentation"],
        "status": status,
    }


def duplicate_payload(bundle: Dict[str, Any]) -> Dict[str, Any]:
    """Create-body for "duplicate": a fresh draft copy of a persisted bundle."""
    return {
        "version": DRAFT_VERSION,
        "name": f"{bundle.get('name') or ''} (Copy)",
        "status": "draft",
        "components": list(bundle.get("components") or []),
        "rules": bundle.get("rules") or {"type": "fixed", "value": 0},
        "presentation": bundle.get("presentation") or {},
    }


def summarize(draft: BundleDraftDict) -> List[str]:
    """Short human-readable lines for logs and previews."""
    rules = draft.get("rules", {})
    lines = [f"{draft.get('name') or '(unnamed)'} [{draft.get('status')}]"]
    for c in draft.get("components", []):
        lines.append(f"  {c['quantity']} x {c['variantId']} ({c['group']})")
    if rules.get("tiers"):
        for t in rules["tiers"]:
            lines.append(f"  >= {t['minQty']}: {t['value']} {t['type']}")
    else:
        lines.append(f"  {rules.get('value')} {rules.get('type')}")
    return lines
