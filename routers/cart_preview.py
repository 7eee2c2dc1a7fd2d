"""
Cart Preview Router
Evaluates a mock cart against active bundles and returns the reconciled
preview plus the storefront banner.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List
import logging

from routers.common import get_session, outcome_error, outcome_message
from services.admin_session import AdminSession
from services.cart_session import CartSession

logger = logging.getLogger(__name__)
router = APIRouter()


class CartItemModel(BaseModel):
    variantId: str
    quantity: float = 1


class CartPreviewRequest(BaseModel):
    items: List[CartItemModel] = Field(default_factory=list)
    createCoupon: bool = False


@router.post("/cart-preview")
async def cart_preview(request: CartPreviewRequest, session: AdminSession = Depends(get_session)):
    cart = CartSession(session, items=[item.model_dump() for item in request.items])
    outcome = await cart.evaluate(request.createCoupon)
    if not outcome.ok:
        return outcome_error(outcome)
    return {
        "message": outcome_message(outcome),
        "preview": outcome.value.to_dict(),
        "banner": cart.banner,
        "totalQuantity": cart.total_quantity,
    }
