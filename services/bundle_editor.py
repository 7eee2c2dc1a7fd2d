"""
Bundle Editor Workflow
Create/edit state for one bundle: offer kind, base reference, addons, tier
ladder, group builder and presentation fields. The canonical draft and the
submit gate are recomputed from this state on every read.
"""
from typing import Any, Dict, List, Optional, Union
import logging

from schemas.bundle_schemas import (
    BUNDLE_DISCOUNT_TYPES,
    BUNDLE_STATUSES,
    Addon,
    BundleDraftDict,
    BundleOffer,
    Component,
    Discount,
    DraftInput,
    GroupedOffer,
    Offer,
    Presentation,
    QuantityOffer,
    VariantMetadata,
)
from services.admin_session import AdminSession, Workflow
from services.component_model import BundleComponentModel
from services.draft_builder import (
    build_draft,
    can_submit,
    default_bundle_name,
    edit_patch,
    hydrate,
    translate_bundle,
)
from services.errors import BundleNotFoundError, DraftIncompleteError
from services.tier_ladder import TierLadder
from services.variant_cache import extract_variants, pick_default_variant
from settings import MAX_TIER_QTY, is_product_ref, sanitize_ref, to_product_ref
from utils import action_boundary, clamp_int, to_float

logger = logging.getLogger(__name__)

OFFER_KINDS = ("quantity", "bundle", "grouped")
INCOMPLETE_MESSAGE = "Complete the bundle details first."
NEEDS_ADDON_MESSAGE = "Pick at least one more product to go with the base product."


def _save_message(editor: "BundleEditor", status: str = "draft") -> str:
    if status == "active":
        return "Bundle activated."
    return "Bundle saved." if editor.mode == "create" else "Bundle updated."


def _save_target(editor: "BundleEditor", status: str = "draft") -> str:
    return "create" if editor.mode == "create" else str(editor.bundle_id)


class BundleEditor(Workflow):
    """Editor state for create mode (fresh) or edit mode (hydrated)."""

    def __init__(
        self,
        session: AdminSession,
        mode: str = "create",
        bundle_id: Optional[str] = None,
        anchor_product_id: Optional[str] = None,
    ):
        super().__init__(session)
        self.mode = "edit" if mode == "edit" else "create"
        self.bundle_id = sanitize_ref(bundle_id)
        self.anchor_product_id = sanitize_ref(anchor_product_id)
        self.bundle: Optional[Dict[str, Any]] = None
        self.product: Optional[Dict[str, Any]] = None
        self.created: Any = None

        self.name = ""
        self.status = "draft"
        self.offer_kind = "quantity"
        self.base_ref: Optional[str] = None
        self.base_ref_mode = "variant"
        self.base_quantity = 1
        self.addons: List[Addon] = []
        self.discount = Discount()
        self.ladder = TierLadder()
        self.groups = BundleComponentModel()
        self.presentation = Presentation()

    # --- state loading ---

    def apply_input(self, draft_input: DraftInput) -> None:
        """Replace editor state with a DraftInput (from hydrate or the HTTP layer)."""
        offer = draft_input.offer
        self.name = draft_input.name
        self.status = draft_input.status
        self.presentation = Presentation(
            title=draft_input.presentation.title,
            cta=draft_input.presentation.cta,
            banner_color=draft_input.presentation.banner_color,
            badge_color=draft_input.presentation.badge_color,
        )
        if draft_input.anchor_product_id:
            self.anchor_product_id = draft_input.anchor_product_id
        self.offer_kind = offer.kind
        self.base_ref = sanitize_ref(offer.base_ref)
        self.base_ref_mode = "product" if is_product_ref(self.base_ref) else "variant"

        if isinstance(offer, QuantityOffer):
            self.ladder = TierLadder(offer.tiers)
        elif isinstance(offer, BundleOffer):
            self.base_quantity = offer.base_quantity
            self.addons = [Addon(a.ref, a.quantity) for a in offer.addons]
            self.discount = Discount(offer.discount.type, offer.discount.value)
        elif isinstance(offer, GroupedOffer):
            self.groups = BundleComponentModel(offer.components)
            self.discount = Discount(offer.discount.type, offer.discount.value)

    # --- offer ---

    def set_offer_kind(self, kind: str) -> bool:
        if kind not in OFFER_KINDS:
            return False
        if kind == "grouped" and not len(self.groups):
            # Seed the group builder from whatever bundle items exist.
            self.groups = BundleComponentModel(self._bundle_offer_components())
        self.offer_kind = kind
        return True

    def _bundle_offer_components(self) -> List[Component]:
        offer = BundleOffer(self.base_ref, self.base_quantity, list(self.addons), self.discount)
        return [Component.from_dict(c) for c in translate_bundle(offer)["components"]]

    @property
    def offer(self) -> Offer:
        if self.offer_kind == "bundle":
            return BundleOffer(
                base_ref=self.base_ref,
                base_quantity=self.base_quantity,
                addons=list(self.addons),
                discount=self.discount,
            )
        if self.offer_kind == "grouped":
            return GroupedOffer(components=self.groups.components, discount=self.discount)
        return QuantityOffer(base_ref=self.base_ref, tiers=self.ladder.rows)

    def set_base_ref(self, ref: Any) -> None:
        self.base_ref = sanitize_ref(ref)
        self.base_ref_mode = "product" if is_product_ref(self.base_ref) else "variant"

    def set_base_ref_mode(self, mode: str) -> None:
        """
        "product" targets any variant of the anchor product; "variant" picks the
        product's default variant.
        """
        if mode == "product":
            self.base_ref_mode = "product"
            self.base_ref = to_product_ref(self.anchor_product_id) or self.base_ref
            return
        self.base_ref_mode = "variant"
        default = pick_default_variant(extract_variants(self.product, include_default=True))
        if default is not None and default.ref:
            self.base_ref = default.ref

    def set_base_quantity(self, quantity: Any) -> None:
        self.base_quantity = clamp_int(quantity, 1, MAX_TIER_QTY, fallback=1)

    def set_discount(self, type: Optional[str] = None, value: Any = None) -> None:
        if type is not None and type in BUNDLE_DISCOUNT_TYPES:
            self.discount.type = type
        if value is not None:
            number = to_float(value)
            self.discount.value = max(0.0, number) if number is not None else 0.0

    # --- addons ---

    def add_addon(self, variant: Union[Dict[str, Any], VariantMetadata, str]) -> bool:
        """Add a picked variant; a ref already present is ignored."""
        if isinstance(variant, str):
            ref = sanitize_ref(variant)
        else:
            meta = self.session.variant_cache.remember(variant)
            ref = meta.ref if meta else None
        if not ref or ref == self.base_ref or any(a.ref == ref for a in self.addons):
            return False
        self.addons.append(Addon(ref=ref, quantity=1))
        return True

    def remove_addon(self, ref: Any) -> bool:
        key = sanitize_ref(ref)
        before = len(self.addons)
        self.addons = [a for a in self.addons if a.ref != key]
        return len(self.addons) != before

    def set_addon_quantity(self, ref: Any, quantity: Any) -> bool:
        key = sanitize_ref(ref)
        for addon in self.addons:
            if addon.ref == key:
                addon.quantity = clamp_int(quantity, 1, MAX_TIER_QTY, fallback=1)
                return True
        return False

    # --- presentation ---

    def set_presentation(self, **fields: Any) -> None:
        for key in ("title", "cta", "banner_color", "badge_color"):
            if key in fields:
                setattr(self.presentation, key, str(fields[key] or "").strip())

    def apply_default_name(self) -> Optional[str]:
        """Fill an empty name as "Bundle - <product name>" once the product is known."""
        if self.name.strip() or not self.product:
            return None
        name = default_bundle_name(self.product.get("name") or self.product.get("title"))
        if name:
            self.name = name
        return name

    # --- computed ---

    @property
    def draft_input(self) -> DraftInput:
        return DraftInput(
            name=self.name,
            offer=self.offer,
            presentation=self.presentation,
            anchor_product_id=self.anchor_product_id,
            status=self.status,
        )

    @property
    def draft(self) -> BundleDraftDict:
        return build_draft(self.draft_input)

    @property
    def can_submit(self) -> bool:
        return can_submit(self.draft_input)

    def _incomplete_reason(self) -> Optional[str]:
        draft_input = self.draft_input
        draft = build_draft(draft_input)
        if can_submit(draft_input, draft):
            return None
        if self.offer_kind != "quantity" and len(draft["components"]) == 1:
            return NEEDS_ADDON_MESSAGE
        return INCOMPLETE_MESSAGE

    # --- actions ---

    @action_boundary("load", "Failed to load bundle.")
    async def load_bundle(self) -> Dict[str, Any]:
        """Edit mode: fetch the bundle list, find this bundle and hydrate from it."""
        bundles = await self._call(self.api.list_bundles)
        found = next((b for b in bundles if str(b.get("_id")) == str(self.bundle_id)), None)
        if found is None:
            raise BundleNotFoundError(self.bundle_id)

        self.bundle = found
        self.apply_input(hydrate(found, self.anchor_product_id))
        if self.anchor_product_id and not self.session.variant_cache.is_loaded(self.anchor_product_id):
            await self._fetch_product(self.anchor_product_id)
        return found

    @action_boundary("load_product", "Failed to load product.")
    async def load_product(self, product_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        pid = sanitize_ref(product_id) or self.anchor_product_id
        if not pid:
            return None
        self.anchor_product_id = pid
        product = await self._fetch_product(pid)

        if not self.base_ref:
            if self.base_ref_mode == "product":
                self.base_ref = to_product_ref(pid)
            else:
                self.set_base_ref_mode("variant")
        self.apply_default_name()
        return product

    async def _fetch_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        cache = self.session.variant_cache
        cache.mark_loading(product_id)
        try:
            product = await self._call(self.api.get_product, product_id)
        finally:
            cache.clear_loading(product_id)
        self.product = product
        if product:
            cache.remember_product(product)
        return product

    @action_boundary("save", "Failed to save bundle.", success_message=_save_message, target=_save_target)
    async def save(self, status: str = "draft") -> Any:
        """
        Submit the current draft.

        Create mode POSTs the full draft; edit mode PATCHes the edit fields.
        Nothing reaches the network while the draft is not submittable.
        """
        if status not in BUNDLE_STATUSES:
            status = "draft"
        reason = self._incomplete_reason()
        if reason:
            raise DraftIncompleteError(reason)

        draft = self.draft
        if self.mode == "create":
            result = await self._call(self.api.create_bundle, {**draft, "status": status})
            self.created = result
        else:
            result = await self._call(self.api.update_bundle, self.bundle_id, edit_patch(draft, status))
        self.status = status
        logger.info(f"Saved bundle mode={self.mode} id={self.bundle_id} status={status}")
        return result
