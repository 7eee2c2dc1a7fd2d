"""
Utility functions for the bundle admin backend.
Includes numeric coercion helpers and the action-boundary decorator that turns
backend failures into a single user-visible notification.
"""
import functools
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from services.errors import (
    ActionInFlightError,
    AuthenticationError,
    BundleApiError,
    BundleNotFoundError,
    BundleVariantsInvalidError,
    DraftIncompleteError,
    NetworkError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Rate limited (429). Please retry shortly."


def to_float(value: Any) -> Optional[float]:
    """Coerce to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def to_int(value: Any, fallback: int) -> int:
    """Floor to int; non-numeric input yields the fallback."""
    number = to_float(value)
    if number is None:
        return fallback
    return math.floor(number)


def clamp_int(value: Any, low: int, high: int, fallback: int) -> int:
    return max(low, min(high, to_int(value, fallback)))


def clamp_quantity(value: Any) -> int:
    """Positive integer quantity: max(1, floor(value))."""
    return max(1, to_int(value, 1))


def clean_text(value: Any, limit: Optional[int] = None) -> str:
    text = str(value or "").strip()
    return text[:limit] if limit is not None else text


class ActionDiscarded(Exception):
    """Raised when a workflow was closed while its network call was in flight."""


@dataclass
class ActionOutcome:
    """Result of one merchant action after errors were converted at the boundary."""
    ok: bool
    value: Any = None
    notification: Any = None
    logout: bool = False
    discarded: bool = False
    http_status: int = 200
    invalid: List[str] = field(default_factory=list)
    retry_after: Optional[int] = None


def action_boundary(
    action: str,
    failure_message: str,
    success_message: Any = None,
    invalid_message: str = "Some variants in this bundle are invalid ({count}).",
    target: Optional[Callable[..., Any]] = None,
):
    """
    Decorator for async workflow actions.

    The decorated method's owner must expose `session` (AdminSession),
    `in_flight` (InFlightTracker) and `closed`. Every backend error is caught
    here and converted to exactly one notification; nothing propagates.

    Args:
        action: In-flight key; a second concurrent call with the same key is rejected
        failure_message: Generic message for network/server failures
        success_message: Optional message (or callable taking the call arguments) on success
        invalid_message: Message for BUNDLE_VARIANTS_INVALID, formatted with {count}
        target: Optional callable taking the call arguments and naming what the
            action touches. When given, the flag "<action>:<target>" is held on
            the session's shared tracker, so concurrent requests from the same
            merchant see it. Without it the flag is local to the workflow.
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs) -> ActionOutcome:
            session = self.session
            if target is None:
                tracker, key = self.in_flight, action
            else:
                tracker, key = session.in_flight, f"{action}:{target(self, *args, **kwargs)}"
            try:
                async with tracker.hold(key):
                    value = await func(self, *args, **kwargs)
            except ActionDiscarded:
                logger.info(f"Discarded result of {action}: workflow closed")
                return ActionOutcome(ok=False, discarded=True, http_status=499)
            except ActionInFlightError as e:
                logger.info(f"Ignoring duplicate {action}: {e}")
                return ActionOutcome(ok=False, http_status=409)
            except AuthenticationError as e:
                logger.warning(f"{action} rejected with {e.status}; logging out")
                session.logout(reason=f"{action}: {e.status}")
                return ActionOutcome(ok=False, logout=True, http_status=401)
            except DraftIncompleteError as e:
                note = session.notifier.error(str(e) or failure_message)
                return ActionOutcome(ok=False, notification=note, http_status=422)
            except BundleNotFoundError as e:
                if self.closed:
                    return ActionOutcome(ok=False, discarded=True, http_status=499)
                note = session.notifier.error(str(e))
                return ActionOutcome(ok=False, notification=note, http_status=404)
            except BundleVariantsInvalidError as e:
                if self.closed:
                    return ActionOutcome(ok=False, discarded=True, http_status=499)
                session.variant_cache.mark_missing(e.invalid)
                note = session.notifier.error(invalid_message.format(count=len(e.invalid)))
                return ActionOutcome(ok=False, notification=note, http_status=422, invalid=list(e.invalid))
            except RateLimitedError as e:
                if self.closed:
                    return ActionOutcome(ok=False, discarded=True, http_status=499)
                note = session.notifier.warn(RATE_LIMITED_MESSAGE)
                return ActionOutcome(ok=False, notification=note, http_status=429, retry_after=e.retry_after)
            except (BundleApiError, NetworkError) as e:
                logger.error(f"{action} failed: {type(e).__name__}: {e}")
                if self.closed:
                    return ActionOutcome(ok=False, discarded=True, http_status=499)
                note = session.notifier.error(failure_message)
                return ActionOutcome(ok=False, notification=note, http_status=502)

            message = success_message(self, *args, **kwargs) if callable(success_message) else success_message
            note = session.notifier.success(message) if message else None
            return ActionOutcome(ok=True, value=value, notification=note)

        return wrapper
    return decorator
