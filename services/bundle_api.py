"""
Bundle Backend Client
Thin requests-based client for the bundle store, catalog and evaluation
endpoints. Every request carries the merchant's bearer token.

Non-success responses are raised as typed errors from services.errors;
nothing is retried here.
"""
from typing import Any, Dict, List, Optional
import logging
import time

import requests

from services.errors import (
    VARIANTS_INVALID_CODE,
    AuthenticationError,
    BundleApiError,
    BundleVariantsInvalidError,
    NetworkError,
    RateLimitedError,
)
from settings import BUNDLE_API_BASE_URL, BUNDLE_API_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def _parse_retry_after(value: Any) -> Optional[int]:
    try:
        seconds = int(float(str(value).strip()))
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def _invalid_refs(details: Dict[str, Any]) -> List[str]:
    invalid = details.get("invalid")
    if not isinstance(invalid, list):
        meta = details.get("meta") if isinstance(details.get("meta"), dict) else {}
        invalid = meta.get("invalid")
    if not isinstance(invalid, list):
        return []
    return [str(ref).strip() for ref in invalid if str(ref or "").strip()]


def _decode(response: Any) -> Any:
    if not response.text:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def raise_for_response(response: Any) -> None:
    """Map a non-success backend response onto the error taxonomy."""
    status = response.status_code
    if status < 400:
        return

    body = _decode(response)
    body = body if isinstance(body, dict) else {}
    message = str(body.get("error") or body.get("message") or "").strip()
    code = body.get("code")
    details = body.get("details") if isinstance(body.get("details"), dict) else {}

    if status in (401, 403):
        raise AuthenticationError(status, message or "Unauthorized", code=code, details=details)
    if status == 429:
        raise RateLimitedError(
            message,
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            code=code,
            details=details,
        )
    if code == VARIANTS_INVALID_CODE:
        raise BundleVariantsInvalidError(status, _invalid_refs(details), message=message, details=details)
    raise BundleApiError(status, message, code=code, details=details)


def unwrap_product(payload: Any) -> Optional[Dict[str, Any]]:
    """Product detail arrives as {data}, {product} or {data: {data}}."""
    if not isinstance(payload, dict):
        return None
    inner = payload.get("data")
    if isinstance(inner, dict) and isinstance(inner.get("data"), dict):
        return inner["data"]
    if isinstance(inner, dict):
        return inner
    if isinstance(payload.get("product"), dict):
        return payload["product"]
    return None


class BundleApiClient:
    """Blocking client; workflows run its calls through asyncio.to_thread."""

    def __init__(
        self,
        token: Optional[str],
        base_url: str = BUNDLE_API_BASE_URL,
        timeout: float = BUNDLE_API_TIMEOUT_SECONDS,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        start = time.time()
        try:
            response = requests.request(
                method,
                url,
                params=query or None,
                json=body,
                headers=self._headers(headers),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {path} transport error: {e}")
            raise NetworkError(str(e)) from e

        dur_ms = int((time.time() - start) * 1000)
        logger.info(f"API {method} {path} status={response.status_code} durMs={dur_ms}")
        raise_for_response(response)
        return _decode(response)

    # --- bundle store ---

    def list_bundles(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        data = self.request("GET", "/bundles", params={"status": status, "search": search}) or {}
        bundles = data.get("bundles") if isinstance(data, dict) else None
        return [b for b in (bundles or []) if isinstance(b, dict)]

    def create_bundle(self, draft: Dict[str, Any]) -> Any:
        return self.request("POST", "/bundles", body=draft)

    def update_bundle(self, bundle_id: str, patch: Dict[str, Any]) -> Any:
        return self.request("PATCH", f"/bundles/{bundle_id}", body=patch)

    def delete_bundle(self, bundle_id: str) -> Any:
        return self.request("DELETE", f"/bundles/{bundle_id}")

    # --- catalog ---

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        payload = self.request("GET", f"/products/{product_id}", headers={"Cache-Control": "no-cache"})
        return unwrap_product(payload)

    # --- evaluation ---

    def evaluate(self, items: List[Dict[str, Any]], create_coupon: bool = False) -> Dict[str, Any]:
        data = self.request(
            "POST",
            "/bundles/evaluate",
            params={"createCoupon": "true" if create_coupon else "false"},
            body={"items": items},
        )
        return data if isinstance(data, dict) else {}

    def cart_banner(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        data = self.request("POST", "/bundles/cart-banner", body={"items": items})
        return data if isinstance(data, dict) else {}
