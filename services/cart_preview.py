"""
Cart Preview Reconciler
Merges a hypothetical cart with locally known variant metadata and the
backend's per-bundle evaluation verdicts into one preview.

Pure functions only; the evaluation request itself is made by the cart
session workflow.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union
import logging

from schemas.bundle_schemas import CartItemDict, VariantMetadata
from services.variant_cache import UNKNOWN, VariantMetadataCache
from settings import sanitize_ref
from utils import clamp_quantity, to_float

logger = logging.getLogger(__name__)

Lookup = Callable[[str], Any]


@dataclass
class CartLine:
    ref: str
    quantity: int = 1


@dataclass
class PreviewLine:
    ref: str
    quantity: int
    unit_price: Optional[float] = None
    line_total: Optional[float] = None
    loading: bool = False
    missing: bool = False
    insufficient_stock: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variantId": self.ref,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "lineTotal": self.line_total,
            "loading": self.loading,
            "missing": self.missing,
            "insufficientStock": self.insufficient_stock,
        }


@dataclass
class BundleVerdict:
    bundle_id: Optional[str]
    name: str
    matched: bool
    applied: bool
    uses: int
    discount_amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bundleId": self.bundle_id,
            "name": self.name,
            "matched": self.matched,
            "applied": self.applied,
            "uses": self.uses,
            "discountAmount": self.discount_amount,
        }


@dataclass
class CartPreview:
    lines: List[PreviewLine] = field(default_factory=list)
    subtotal: float = 0.0
    bundles: List[BundleVerdict] = field(default_factory=list)
    total_discount: float = 0.0
    post_discount_total: float = 0.0
    coupon_code: Optional[str] = None

    @property
    def applied_count(self) -> int:
        return sum(1 for b in self.bundles if b.applied)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "subtotal": self.subtotal,
            "bundles": [b.to_dict() for b in self.bundles],
            "appliedCount": self.applied_count,
            "totalDiscount": self.total_discount,
            "postDiscountTotal": self.post_discount_total,
            "couponCode": self.coupon_code,
        }


def _as_line(item: Union[CartLine, Dict[str, Any]]) -> Optional[CartLine]:
    if isinstance(item, CartLine):
        ref, quantity = sanitize_ref(item.ref), item.quantity
    elif isinstance(item, dict):
        ref, quantity = sanitize_ref(item.get("variantId") or item.get("ref")), item.get("quantity", 1)
    else:
        return None
    if not ref:
        return None
    return CartLine(ref=ref, quantity=clamp_quantity(quantity))


def merge_cart_lines(items: Iterable[Union[CartLine, Dict[str, Any]]]) -> List[CartLine]:
    """Sum quantities per ref; result is sorted by ref."""
    totals: Dict[str, int] = {}
    for item in items or []:
        line = _as_line(item)
        if line is None:
            continue
        totals[line.ref] = totals.get(line.ref, 0) + line.quantity
    return [CartLine(ref=ref, quantity=qty) for ref, qty in sorted(totals.items())]


def evaluation_items(items: Iterable[Union[CartLine, Dict[str, Any]]]) -> List[CartItemDict]:
    """Request body items for /bundles/evaluate and /bundles/cart-banner."""
    return [{"variantId": line.ref, "quantity": line.quantity} for line in merge_cart_lines(items)]


def _resolve_lookup(source: Union[VariantMetadataCache, Lookup, None]) -> Lookup:
    if source is None:
        return lambda ref: UNKNOWN
    if isinstance(source, VariantMetadataCache):
        return source.lookup
    return source


def parse_verdicts(evaluation: Optional[Dict[str, Any]]) -> List[BundleVerdict]:
    verdicts: List[BundleVerdict] = []
    for raw in (evaluation or {}).get("bundles") or []:
        if not isinstance(raw, dict):
            continue
        bundle = raw.get("bundle") if isinstance(raw.get("bundle"), dict) else {}
        verdicts.append(BundleVerdict(
            bundle_id=sanitize_ref(bundle.get("_id") or raw.get("bundleId")),
            name=str(bundle.get("name") or raw.get("name") or "").strip(),
            matched=bool(raw.get("matched")),
            applied=bool(raw.get("applied")),
            uses=int(to_float(raw.get("uses")) or 0),
            discount_amount=to_float(raw.get("discountAmount")) or 0.0,
        ))
    return verdicts


def reconcile(
    items: Iterable[Union[CartLine, Dict[str, Any]]],
    lookup: Union[VariantMetadataCache, Lookup, None] = None,
    evaluation: Optional[Dict[str, Any]] = None,
    missing: Optional[Set[str]] = None,
) -> CartPreview:
    """
    Build the cart preview.

    Args:
        items: Raw cart lines ({variantId, quantity}); duplicates are merged
        lookup: Metadata cache (or any ref -> VariantMetadata | UNKNOWN callable)
        evaluation: Body of /bundles/evaluate, or None before the first evaluation
        missing: Refs the backend reported as unresolvable

    Returns:
        CartPreview with priced lines, verdicts and totals
    """
    find = _resolve_lookup(lookup)
    cache = lookup if isinstance(lookup, VariantMetadataCache) else None
    missing_refs = set(missing or ())

    lines: List[PreviewLine] = []
    subtotal = 0.0
    for line in merge_cart_lines(items):
        meta = find(line.ref)
        is_missing = line.ref in missing_refs or bool(cache and cache.is_missing(line.ref))
        known = isinstance(meta, VariantMetadata)
        unit_price = meta.price if known else None
        stock = meta.stock if known else None

        line_total = None
        if unit_price is not None:
            line_total = unit_price * line.quantity
            subtotal += line_total

        lines.append(PreviewLine(
            ref=line.ref,
            quantity=line.quantity,
            unit_price=unit_price,
            line_total=line_total,
            loading=not known and not is_missing,
            missing=is_missing,
            insufficient_stock=stock is not None and stock < line.quantity,
        ))

    verdicts = parse_verdicts(evaluation)
    applied_block = (evaluation or {}).get("applied") or {}
    server_total = to_float(applied_block.get("totalDiscount")) if isinstance(applied_block, dict) else None
    if server_total is not None:
        total_discount = server_total
    else:
        total_discount = sum(v.discount_amount for v in verdicts if v.applied)

    coupon = (evaluation or {}).get("coupon") or {}
    coupon_code = sanitize_ref(coupon.get("code")) if isinstance(coupon, dict) else None

    preview = CartPreview(
        lines=lines,
        subtotal=subtotal,
        bundles=verdicts,
        total_discount=total_discount,
        post_discount_total=max(0.0, subtotal - total_discount),
        coupon_code=coupon_code,
    )
    logger.debug(
        f"Cart preview: {len(lines)} lines, subtotal={subtotal}, "
        f"applied={preview.applied_count}, discount={total_discount}"
    )
    return preview
