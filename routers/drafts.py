"""
Drafts Router
Pure editor-state endpoints: build/preview a draft, hydrate a persisted
bundle, and start a create-mode editor from a catalog product.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Any, Dict, Optional
import logging

from routers.common import DraftStateRequest, get_session, outcome_error, state_from_input
from services.admin_session import AdminSession
from services.bundle_editor import BundleEditor
from services.draft_builder import build_draft, can_submit, hydrate, summarize
from services.variant_cache import extract_variants

logger = logging.getLogger(__name__)
router = APIRouter()


class HydrateRequest(BaseModel):
    bundle: Dict[str, Any]
    productId: Optional[str] = None


@router.post("/drafts/preview")
async def preview_draft(request: DraftStateRequest):
    """Canonical draft for the given editor state, plus the submit gate."""
    draft_input = request.to_draft_input()
    draft = build_draft(draft_input)
    return {
        "draft": draft,
        "canSubmit": can_submit(draft_input, draft),
        "summary": summarize(draft),
    }


@router.post("/drafts/hydrate")
async def hydrate_draft(request: HydrateRequest):
    """Editor state for a persisted bundle document."""
    draft_input = hydrate(request.bundle, request.productId)
    return {"state": state_from_input(draft_input)}


@router.get("/drafts/new")
async def new_draft(productId: str, session: AdminSession = Depends(get_session)):
    """Create-mode editor state seeded from a catalog product (default variant, default name)."""
    editor = BundleEditor(session, mode="create", anchor_product_id=productId)
    outcome = await editor.load_product(productId)
    if not outcome.ok:
        return outcome_error(outcome)
    variants = extract_variants(editor.product) if editor.product else []
    return {
        "state": state_from_input(editor.draft_input),
        "variants": [v.to_dict() for v in variants],
        "canSubmit": editor.can_submit,
    }
