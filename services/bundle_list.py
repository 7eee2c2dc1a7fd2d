"""
Bundles List Workflow
Loads the merchant's bundles and runs row actions (activate, pause, delete,
duplicate, export). Every successful mutation reloads the list.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from services.admin_session import AdminSession, Workflow
from services.draft_builder import duplicate_payload
from services.errors import BundleNotFoundError
from settings import sanitize_ref
from utils import action_boundary

logger = logging.getLogger(__name__)

STATUS_FILTERS = ("all", "draft", "active", "paused")
DEFAULT_SORT_KEY = "updatedAt"


def _compare_key(value: Any) -> Tuple[int, Any]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))


def filter_and_sort(
    bundles: List[Dict[str, Any]],
    search: Optional[str] = None,
    sort_key: str = DEFAULT_SORT_KEY,
    sort_dir: str = "desc",
) -> List[Dict[str, Any]]:
    """
    Local search (name or _id, case-insensitive) and sort.

    Rows missing the sort key always go last, whatever the direction.
    """
    q = str(search or "").strip().lower()
    rows = [
        b for b in bundles
        if not q or q in str(b.get("name") or "").lower() or q in str(b.get("_id") or "").lower()
    ]
    key = sort_key or DEFAULT_SORT_KEY
    present = [b for b in rows if b.get(key) is not None]
    absent = [b for b in rows if b.get(key) is None]
    present.sort(key=lambda b: _compare_key(b.get(key)), reverse=sort_dir != "asc")
    return present + absent


def _row_target(listing: "BundleList", bundle_id: Any) -> str:
    return str(bundle_id)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def export_json(bundle: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Download name and body for one bundle."""
    return f"bundle-{bundle.get('_id')}.json", dict(bundle)


class BundleList(Workflow):
    def __init__(self, session: AdminSession, status: str = "all"):
        super().__init__(session)
        self.status = status if status in STATUS_FILTERS else "all"
        self.bundles: List[Dict[str, Any]] = []

    def find(self, bundle_id: Any) -> Optional[Dict[str, Any]]:
        key = sanitize_ref(bundle_id)
        return next((b for b in self.bundles if str(b.get("_id")) == key), None)

    def filtered_sorted(
        self,
        search: Optional[str] = None,
        sort_key: str = DEFAULT_SORT_KEY,
        sort_dir: str = "desc",
    ) -> List[Dict[str, Any]]:
        """Search and sort, with each row's lastValidatedAt from this merchant's activations."""
        validated = self.session.validated_at
        return [
            {**b, "lastValidatedAt": _iso(validated.get(str(b.get("_id"))))}
            for b in filter_and_sort(self.bundles, search, sort_key, sort_dir)
        ]

    async def _reload(self, search: Optional[str] = None) -> List[Dict[str, Any]]:
        status = None if self.status == "all" else self.status
        self.bundles = await self._call(self.api.list_bundles, status, search)
        return self.bundles

    @action_boundary("load", "Failed to load bundles.")
    async def load(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        if status is not None:
            self.status = status if status in STATUS_FILTERS else "all"
        return await self._reload(search)

    @action_boundary(
        "activate",
        "Failed to activate bundle.",
        success_message="Bundle activated.",
        invalid_message="Cannot activate: invalid variants ({count}).",
        target=_row_target,
    )
    async def activate(self, bundle_id: str) -> List[Dict[str, Any]]:
        await self._call(self.api.update_bundle, bundle_id, {"status": "active"})
        self.session.validated_at[str(bundle_id)] = datetime.now(timezone.utc)
        return await self._reload()

    @action_boundary("pause", "Failed to pause bundle.", success_message="Bundle paused.", target=_row_target)
    async def pause(self, bundle_id: str) -> List[Dict[str, Any]]:
        await self._call(self.api.update_bundle, bundle_id, {"status": "paused"})
        return await self._reload()

    @action_boundary("delete", "Failed to delete bundle.", success_message="Bundle deleted.", target=_row_target)
    async def delete(self, bundle_id: str) -> List[Dict[str, Any]]:
        """Soft delete; the backend also pauses the bundle."""
        await self._call(self.api.delete_bundle, bundle_id)
        return await self._reload()

    @action_boundary(
        "duplicate",
        "Failed to duplicate bundle.",
        success_message="Bundle duplicated.",
        target=_row_target,
    )
    async def duplicate(self, bundle_id: str) -> Any:
        bundle = self.find(bundle_id)
        if bundle is None:
            await self._reload()
            bundle = self.find(bundle_id)
        if bundle is None:
            raise BundleNotFoundError(bundle_id)
        created = await self._call(self.api.create_bundle, duplicate_payload(bundle))
        await self._reload()
        return created
