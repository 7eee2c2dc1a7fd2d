"""
Cart Preview Workflow
A mock cart evaluated against the merchant's active bundles.
"""
from typing import Any, Dict, List, Optional, Union
import logging

from schemas.bundle_schemas import VariantMetadata
from services.admin_session import AdminSession, Workflow
from services.cart_preview import CartLine, CartPreview, evaluation_items, reconcile
from settings import sanitize_ref
from utils import action_boundary, clamp_quantity, to_float

logger = logging.getLogger(__name__)


def parse_banner(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    payload = payload or {}
    banner = payload.get("banner") if isinstance(payload.get("banner"), dict) else {}
    return {
        "title": str(banner.get("title") or "").strip() or None,
        "hasDiscount": bool(payload.get("hasDiscount")),
        "discountAmount": to_float(payload.get("discountAmount")) or 0.0,
        "couponCode": sanitize_ref(payload.get("couponCode")),
    }


class CartSession(Workflow):
    def __init__(self, session: AdminSession, items: Optional[List[Dict[str, Any]]] = None):
        super().__init__(session)
        self.items: List[CartLine] = []
        self.evaluation: Optional[Dict[str, Any]] = None
        self.banner: Optional[Dict[str, Any]] = None
        for item in items or []:
            self.add_item(item.get("variantId"), item.get("quantity", 1))

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.items)

    def add_item(self, variant: Union[Dict[str, Any], VariantMetadata, str, None], quantity: Any = 1) -> bool:
        """Add a picked variant, or bump the quantity of a line already in the cart."""
        if isinstance(variant, (dict, VariantMetadata)):
            meta = self.session.variant_cache.remember(variant)
            ref = meta.ref if meta else None
        else:
            ref = sanitize_ref(variant)
        if not ref:
            return False
        qty = clamp_quantity(quantity)
        for line in self.items:
            if line.ref == ref:
                line.quantity += qty
                return True
        self.items.append(CartLine(ref=ref, quantity=qty))
        return True

    def set_quantity(self, ref: Any, quantity: Any) -> bool:
        key = sanitize_ref(ref)
        for line in self.items:
            if line.ref == key:
                line.quantity = clamp_quantity(quantity)
                return True
        return False

    def remove(self, ref: Any) -> bool:
        key = sanitize_ref(ref)
        before = len(self.items)
        self.items = [line for line in self.items if line.ref != key]
        return len(self.items) != before

    def clear(self) -> None:
        self.items = []
        self.evaluation = None
        self.banner = None

    def preview(self) -> CartPreview:
        return reconcile(self.items, self.session.variant_cache, self.evaluation)

    @action_boundary(
        "evaluate",
        "Failed to evaluate cart.",
        success_message="Cart evaluated.",
        target=lambda cart, create_coupon=False: "cart",
    )
    async def evaluate(self, create_coupon: bool = False) -> CartPreview:
        items = evaluation_items(self.items)
        evaluation = await self._call(self.api.evaluate, items, create_coupon)
        banner = await self._call(self.api.cart_banner, items)
        self.evaluation = evaluation
        self.banner = parse_banner(banner)
        return self.preview()
