"""
Bundles Router
Bundle list, create/update through the editor workflow, and row actions
(activate, pause, delete, duplicate, export).
"""
from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse
from typing import Literal, Optional
import logging

from routers.common import DraftStateRequest, get_session, outcome_error, outcome_message, state_from_input
from services.admin_session import AdminSession
from services.bundle_editor import BundleEditor
from services.bundle_list import BundleList, export_json

logger = logging.getLogger(__name__)
router = APIRouter()


def _action_response(outcome):
    if not outcome.ok:
        return outcome_error(outcome)
    return {
        "success": True,
        "message": outcome_message(outcome),
        "bundles": outcome.value,
    }


@router.get("/bundles")
async def list_bundles(
    status: Optional[str] = None,
    search: Optional[str] = None,
    sortKey: str = "updatedAt",
    sortDir: Literal["asc", "desc"] = "desc",
    session: AdminSession = Depends(get_session),
):
    """List bundles for a status filter; search and sort are applied locally."""
    listing = BundleList(session, status=status or "all")
    outcome = await listing.load()
    if not outcome.ok:
        return outcome_error(outcome)
    bundles = listing.filtered_sorted(search, sortKey, sortDir)
    return {"bundles": bundles, "total": len(bundles)}


async def _save(editor: BundleEditor, request: DraftStateRequest):
    editor.apply_input(request.to_draft_input())
    outcome = await editor.save(request.status)
    if not outcome.ok:
        return outcome_error(outcome)
    return {
        "success": True,
        "message": outcome_message(outcome),
        "bundle": outcome.value,
        "draft": editor.draft,
    }


@router.post("/bundles")
async def create_bundle(request: DraftStateRequest, session: AdminSession = Depends(get_session)):
    """Build the draft from editor state, gate it, and create the bundle."""
    editor = BundleEditor(session, mode="create", anchor_product_id=request.productId)
    result = await _save(editor, request)
    if isinstance(result, dict):
        return JSONResponse(status_code=201, content=result)
    return result


@router.patch("/bundles/{bundle_id}")
async def update_bundle(
    bundle_id: str,
    request: DraftStateRequest,
    session: AdminSession = Depends(get_session),
):
    editor = BundleEditor(session, mode="edit", bundle_id=bundle_id, anchor_product_id=request.productId)
    return await _save(editor, request)


@router.get("/bundles/{bundle_id}/editor")
async def edit_bundle(
    bundle_id: str,
    productId: Optional[str] = None,
    session: AdminSession = Depends(get_session),
):
    """Edit-mode editor state hydrated from the persisted bundle."""
    editor = BundleEditor(session, mode="edit", bundle_id=bundle_id, anchor_product_id=productId)
    outcome = await editor.load_bundle()
    if not outcome.ok:
        return outcome_error(outcome)
    return {
        "bundle": outcome.value,
        "state": state_from_input(editor.draft_input),
        "canSubmit": editor.can_submit,
    }


@router.post("/bundles/{bundle_id}/activate")
async def activate_bundle(bundle_id: str, session: AdminSession = Depends(get_session)):
    listing = BundleList(session)
    return _action_response(await listing.activate(bundle_id))


@router.post("/bundles/{bundle_id}/pause")
async def pause_bundle(bundle_id: str, session: AdminSession = Depends(get_session)):
    listing = BundleList(session)
    return _action_response(await listing.pause(bundle_id))


@router.delete("/bundles/{bundle_id}")
async def delete_bundle(bundle_id: str, session: AdminSession = Depends(get_session)):
    """Soft delete (the backend pauses it as well)."""
    listing = BundleList(session)
    return _action_response(await listing.delete(bundle_id))


@router.post("/bundles/{bundle_id}/duplicate")
async def duplicate_bundle(bundle_id: str, session: AdminSession = Depends(get_session)):
    listing = BundleList(session)
    outcome = await listing.duplicate(bundle_id)
    if not outcome.ok:
        return outcome_error(outcome)
    return {
        "success": True,
        "message": outcome_message(outcome),
        "bundle": outcome.value,
        "bundles": listing.bundles,
    }


@router.get("/bundles/{bundle_id}/export")
async def export_bundle(bundle_id: str, session: AdminSession = Depends(get_session)):
    """Download one bundle document as JSON."""
    listing = BundleList(session)
    outcome = await listing.load()
    if not outcome.ok:
        return outcome_error(outcome)
    bundle = listing.find(bundle_id)
    if bundle is None:
        return JSONResponse(status_code=404, content={"error": "Bundle not found."})
    filename, body = export_json(bundle)
    return JSONResponse(
        content=body,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
