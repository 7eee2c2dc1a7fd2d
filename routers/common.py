"""
Shared router pieces: bearer auth, per-merchant admin session, editor-state
request model and ActionOutcome -> HTTP response mapping.
"""
from typing import Any, Dict, List, Literal, Optional
import logging

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from schemas.bundle_schemas import (
    DEFAULT_TIERS,
    Addon,
    BundleOffer,
    Component,
    Discount,
    DraftInput,
    GroupedOffer,
    Presentation,
    QuantityOffer,
)
from services.admin_session import AdminSession, SessionRegistry
from settings import MAX_TIER_QTY, is_product_ref
from utils import ActionOutcome, clamp_int

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> AdminSession:
    """AdminSession for this request, backed by the merchant's state in app.state.sessions."""
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    registry = getattr(request.app.state, "sessions", None)
    if registry is None:
        registry = SessionRegistry()
        request.app.state.sessions = registry
    return registry.open(credentials.credentials)


def outcome_error(outcome: ActionOutcome) -> JSONResponse:
    if outcome.logout:
        return JSONResponse(status_code=401, content={"error": "Unauthorized", "logout": True})

    if outcome.notification is not None:
        message = outcome.notification.message
    elif outcome.http_status == 409:
        message = "Action already in flight"
    else:
        message = "Request failed"
    content: Dict[str, Any] = {"error": message}
    if outcome.invalid:
        content["invalid"] = outcome.invalid
    headers = {"Retry-After": str(outcome.retry_after)} if outcome.retry_after is not None else None
    return JSONResponse(status_code=outcome.http_status, content=content, headers=headers)


def outcome_message(outcome: ActionOutcome) -> Optional[str]:
    return outcome.notification.message if outcome.notification is not None else None


# ---- Editor state (request/response) ----

class AddonModel(BaseModel):
    variantId: str
    quantity: float = 1


class ComponentModel(BaseModel):
    variantId: str
    quantity: float = 1
    group: str = ""


class DiscountModel(BaseModel):
    type: str = "percentage"
    value: float = 10


class PresentationModel(BaseModel):
    title: Optional[str] = None
    cta: Optional[str] = None
    bannerColor: Optional[str] = None
    badgeColor: Optional[str] = None


class DraftStateRequest(BaseModel):
    """Editor state as sent by the admin UI."""
    name: str = ""
    offerType: Literal["quantity", "bundle", "grouped"] = "quantity"
    baseVariantId: Optional[str] = None
    baseQuantity: float = 1
    addons: List[AddonModel] = Field(default_factory=list)
    tiers: List[Dict[str, Any]] = Field(default_factory=lambda: [dict(t) for t in DEFAULT_TIERS])
    components: List[ComponentModel] = Field(default_factory=list)
    discount: DiscountModel = Field(default_factory=DiscountModel)
    presentation: PresentationModel = Field(default_factory=PresentationModel)
    productId: Optional[str] = None
    status: Literal["draft", "active", "paused"] = "draft"

    def to_draft_input(self) -> DraftInput:
        discount = Discount(type=self.discount.type, value=self.discount.value)
        if self.offerType == "bundle":
            offer = BundleOffer(
                base_ref=self.baseVariantId,
                base_quantity=clamp_int(self.baseQuantity, 1, MAX_TIER_QTY, 1),
                addons=[
                    Addon(ref=a.variantId, quantity=clamp_int(a.quantity, 1, MAX_TIER_QTY, 1))
                    for a in self.addons
                ],
                discount=discount,
            )
        elif self.offerType == "grouped":
            offer = GroupedOffer(
                components=[Component.from_dict(c.model_dump()) for c in self.components],
                discount=discount,
            )
        else:
            offer = QuantityOffer(base_ref=self.baseVariantId, tiers=list(self.tiers))
        p = self.presentation
        return DraftInput(
            name=self.name,
            offer=offer,
            presentation=Presentation(
                title=p.title or "",
                cta=p.cta or "",
                banner_color=p.bannerColor or "",
                badge_color=p.badgeColor or "",
            ),
            anchor_product_id=self.productId,
            status=self.status,
        )


def state_from_input(draft_input: DraftInput) -> Dict[str, Any]:
    """Editor state dict (the DraftStateRequest shape) for a DraftInput."""
    offer = draft_input.offer
    state: Dict[str, Any] = {
        "name": draft_input.name,
        "offerType": offer.kind,
        "baseVariantId": offer.base_ref,
        "baseRefMode": "product" if is_product_ref(offer.base_ref) else "variant",
        "baseQuantity": 1,
        "addons": [],
        "tiers": [],
        "components": [],
        "discount": {"type": "percentage", "value": 10},
        "presentation": {
            "title": draft_input.presentation.title,
            "cta": draft_input.presentation.cta,
            "bannerColor": draft_input.presentation.banner_color,
            "badgeColor": draft_input.presentation.badge_color,
        },
        "productId": draft_input.anchor_product_id,
        "status": draft_input.status,
    }
    if isinstance(offer, QuantityOffer):
        state["tiers"] = [dict(t) for t in offer.tiers]
    elif isinstance(offer, BundleOffer):
        state["baseQuantity"] = offer.base_quantity
        state["addons"] = [{"variantId": a.ref, "quantity": a.quantity} for a in offer.addons]
        state["discount"] = {"type": offer.discount.type, "value": offer.discount.value}
    elif isinstance(offer, GroupedOffer):
        state["components"] = [c.to_dict() for c in offer.components]
        state["discount"] = {"type": offer.discount.type, "value": offer.discount.value}
    return state
