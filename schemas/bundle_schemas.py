"""
Standardized Bundle Rule Schemas
================================

Canonical data structures for bundle rule documents authored by the admin tool.
Every draft sent to the bundle backend MUST conform to BundleDraftDict.

WIRE FORMAT:
------------
- components[].variantId   - variant id, or "product:<id>" for any variant of a product
- components[].group       - partition label (max 50 chars); one item per group must match
- rules.tiers              - only present for quantity offers
- presentation.*           - omitted when empty (never null)

OFFER KINDS:
------------
- quantity: one base reference with a minQty ladder ("buy more, save more")
- bundle:   base reference plus addons, every item in its own group
- grouped:  free-form components with named groups (interchangeable alternatives)
"""

from typing import List, Dict, Any, Optional, Union, TypedDict, Literal
from dataclasses import dataclass, field
import logging

from settings import MAX_GROUP_NAME_LENGTH, sanitize_ref
from utils import clamp_quantity

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE DEFINITIONS (TypedDict for wire documents)
# =============================================================================

class ComponentDict(TypedDict):
    """One structural entry of a bundle."""
    variantId: str   # variant id or "product:<id>"
    quantity: int    # units required per bundle use (>= 1)
    group: str       # partition label (<= 50 chars)


class TierDict(TypedDict):
    """Quantity-discount breakpoint."""
    minQty: int      # 1..999
    type: str        # "percentage" | "fixed"
    value: float     # >= 0


class EligibilityDict(TypedDict):
    mustIncludeAllGroups: bool
    minCartQty: int


class LimitsDict(TypedDict):
    maxUsesPerOrder: int


class RulesDict(TypedDict, total=False):
    type: str        # "percentage" | "fixed" | "bundle_price"
    value: float
    tiers: List[TierDict]
    eligibility: EligibilityDict
    limits: LimitsDict


class PresentationDict(TypedDict, total=False):
    """Display metadata. Absent keys mean "not set"."""
    title: str
    cta: str
    bannerColor: str
    badgeColor: str
    coverVariantId: str


class BundleDraftDict(TypedDict):
    """Complete persistable bundle rule document."""
    version: int
    name: str
    status: str
    components: List[ComponentDict]
    rules: RulesDict
    presentation: PresentationDict


class CartItemDict(TypedDict):
    variantId: str
    quantity: int


# =============================================================================
# CONSTANTS
# =============================================================================

BUNDLE_STATUSES = ("draft", "active", "paused")
TIER_TYPES = ("percentage", "fixed")
BUNDLE_DISCOUNT_TYPES = ("percentage", "fixed", "bundle_price")
GROUP_REF_PREFIX = "v:"


def synthesized_group(ref: Optional[str]) -> str:
    """Deterministic group name for an item that must appear on its own."""
    return f"{GROUP_REF_PREFIX}{str(ref or '').strip()}"[:MAX_GROUP_NAME_LENGTH]


# =============================================================================
# DATACLASS DEFINITIONS
# =============================================================================

@dataclass
class Component:
    """Bundle component. `ref` is persisted as variantId."""
    ref: str
    quantity: int = 1
    group: str = ""

    def to_dict(self) -> ComponentDict:
        return {
            "variantId": self.ref,
            "quantity": self.quantity,
            "group": self.group,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Component":
        return cls(
            ref=sanitize_ref(data.get("variantId")) or "",
            quantity=clamp_quantity(data.get("quantity", 1)),
            group=str(data.get("group") or "").strip()[:MAX_GROUP_NAME_LENGTH],
        )


@dataclass
class Tier:
    """A validated quantity-discount breakpoint."""
    min_qty: int
    type: str = "percentage"
    value: float = 0.0

    def to_dict(self) -> TierDict:
        return {
            "minQty": self.min_qty,
            "type": self.type,
            "value": self.value,
        }


DEFAULT_TIERS: List[Dict[str, Any]] = [{"minQty": 2, "type": "percentage", "value": 10}]
FALLBACK_TIER = Tier(min_qty=1, type="percentage", value=0.0)


@dataclass
class Presentation:
    """Display metadata attached to a bundle."""
    title: str = ""
    cta: str = ""
    banner_color: str = ""
    badge_color: str = ""
    cover_ref: Optional[str] = None

    def to_dict(self) -> PresentationDict:
        out: PresentationDict = {}
        if self.cover_ref:
            out["coverVariantId"] = self.cover_ref
        for key, value in (
            ("title", self.title),
            ("cta", self.cta),
            ("bannerColor", self.banner_color),
            ("badgeColor", self.badge_color),
        ):
            text = str(value or "").strip()
            if text:
                out[key] = text
        return out

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Presentation":
        data = data if isinstance(data, dict) else {}
        return cls(
            title=str(data.get("title") or "").strip(),
            cta=str(data.get("cta") or "").strip(),
            banner_color=str(data.get("bannerColor") or "").strip(),
            badge_color=str(data.get("badgeColor") or "").strip(),
            cover_ref=sanitize_ref(data.get("coverVariantId")),
        )


@dataclass
class Addon:
    ref: str
    quantity: int = 1


@dataclass
class Discount:
    type: str = "percentage"  # "percentage" | "fixed" | "bundle_price"
    value: float = 10.0


@dataclass
class QuantityOffer:
    """Single base reference with a minQty ladder. Tiers are raw editor rows."""
    base_ref: Optional[str]
    tiers: List[Dict[str, Any]] = field(default_factory=lambda: [dict(t) for t in DEFAULT_TIERS])

    @property
    def kind(self) -> str:
        return "quantity"


@dataclass
class BundleOffer:
    """Base reference plus addons; each item is required on its own."""
    base_ref: Optional[str]
    base_quantity: int = 1
    addons: List[Addon] = field(default_factory=list)
    discount: Discount = field(default_factory=Discount)

    @property
    def kind(self) -> str:
        return "bundle"


@dataclass
class GroupedOffer:
    """Free-form components with named groups, as arranged in the group builder."""
    components: List[Component] = field(default_factory=list)
    discount: Discount = field(default_factory=Discount)

    @property
    def kind(self) -> str:
        return "grouped"

    @property
    def base_ref(self) -> Optional[str]:
        return self.components[0].ref if self.components else None


Offer = Union[QuantityOffer, BundleOffer, GroupedOffer]


@dataclass
class DraftInput:
    """Everything the draft builder needs. Built fresh (create) or hydrated (edit)."""
    name: str
    offer: Offer
    presentation: Presentation = field(default_factory=Presentation)
    anchor_product_id: Optional[str] = None
    status: Literal["draft", "active", "paused"] = "draft"


@dataclass
class VariantMetadata:
    """Last-seen catalog data for a reference. price/stock None means unknown, not zero."""
    ref: str
    name: str = ""
    sku: Optional[str] = None
    price: Optional[float] = None
    stock: Optional[int] = None
    is_active: bool = False
    status: Optional[str] = None
    image_url: Optional[str] = None
    needs_resolution: bool = False
    product_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variantId": self.ref,
            "name": self.name,
            "sku": self.sku,
            "price": self.price,
            "stock": self.stock,
            "isActive": self.is_active,
            "status": self.status,
            "imageUrl": self.image_url,
            "needsResolution": self.needs_resolution,
            "productId": self.product_id,
            "attributes": self.attributes,
        }


def components_to_dicts(components: List[Component]) -> List[ComponentDict]:
    return [c.to_dict() for c in components]
