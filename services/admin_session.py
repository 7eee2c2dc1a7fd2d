"""
Admin Session
Owns the merchant's credential, the backend client and the state shared by
every workflow opened with that credential (variant cache, in-flight flags,
activation timestamps).

HTTP requests are short-lived, so per-merchant state lives in a
SessionRegistry keyed by a hash of the bearer token and outlives any single
request.
"""
import asyncio
import hashlib
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from services.bundle_api import BundleApiClient
from services.concurrency_control import InFlightTracker
from services.notifications import Notifier
from services.variant_cache import VariantMetadataCache
from utils import ActionDiscarded

logger = logging.getLogger(__name__)


class SessionState:
    """Per-merchant state that survives across requests."""

    def __init__(self, variant_cache: Optional[VariantMetadataCache] = None):
        self.variant_cache = variant_cache or VariantMetadataCache()
        self.in_flight = InFlightTracker()
        self.validated_at: Dict[str, datetime] = {}


class AdminSession:
    def __init__(
        self,
        token: Optional[str],
        api: Optional[BundleApiClient] = None,
        variant_cache: Optional[VariantMetadataCache] = None,
        notifier: Optional[Notifier] = None,
        state: Optional[SessionState] = None,
        on_logout: Optional[Callable[[str], None]] = None,
    ):
        self.token = token
        self.api = api or BundleApiClient(token)
        self.state = state or SessionState(variant_cache)
        self.notifier = notifier or Notifier()
        self._on_logout = on_logout
        self._workflows: List["Workflow"] = []

    @property
    def variant_cache(self) -> VariantMetadataCache:
        return self.state.variant_cache

    @property
    def in_flight(self) -> InFlightTracker:
        """Flags for mutating actions, shared by every request with this token."""
        return self.state.in_flight

    @property
    def validated_at(self) -> Dict[str, datetime]:
        return self.state.validated_at

    @property
    def logged_in(self) -> bool:
        return bool(self.token)

    def register(self, workflow: "Workflow") -> None:
        self._workflows.append(workflow)

    def logout(self, reason: str = "") -> None:
        """Terminal: drop the credential and every in-flight flag."""
        logger.warning(f"Session logged out{': ' + reason if reason else ''}")
        token, self.token = self.token, None
        self.api.token = None
        self.in_flight.discard_all()
        for workflow in self._workflows:
            workflow.in_flight.discard_all()
        if token and self._on_logout is not None:
            self._on_logout(token)


class SessionRegistry:
    """SessionState per bearer token. Tokens are stored only as SHA-256 digests."""

    def __init__(self):
        self._states: Dict[str, SessionState] = {}

    @staticmethod
    def _key(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    def __len__(self) -> int:
        return len(self._states)

    def state_for(self, token: str) -> SessionState:
        key = self._key(token)
        if key not in self._states:
            self._states[key] = SessionState()
        return self._states[key]

    def open(self, token: str) -> AdminSession:
        return AdminSession(
            token=token,
            api=BundleApiClient(token),
            state=self.state_for(token),
            on_logout=self.forget,
        )

    def forget(self, token: str) -> None:
        if self._states.pop(self._key(token), None) is not None:
            logger.info("Dropped session state after logout")

    def cached_variants(self) -> int:
        return sum(len(state.variant_cache) for state in self._states.values())


class Workflow:
    """
    Base for merchant-facing workflows (editor, bundle list, cart preview).

    Network calls go through _call(); once close() has been called, results
    arriving afterwards are discarded without touching workflow state.
    Read-only loads are flagged on the workflow's own tracker; mutating
    actions use the session's shared tracker (see utils.action_boundary).
    """

    def __init__(self, session: AdminSession):
        self.session = session
        self.in_flight = InFlightTracker()
        self.closed = False
        session.register(self)

    @property
    def api(self) -> BundleApiClient:
        return self.session.api

    def close(self) -> None:
        self.closed = True

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        result = await asyncio.to_thread(fn, *args, **kwargs)
        if self.closed:
            raise ActionDiscarded(getattr(fn, "__name__", "call"))
        return result
