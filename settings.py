"""
Centralized configuration helpers for the bundle admin backend.
"""
from __future__ import annotations

import os
from typing import Any, List, Optional

BUNDLE_API_BASE_URL: str = (os.getenv("BUNDLE_API_BASE_URL") or "http://localhost:4000/api").rstrip("/")
BUNDLE_API_TIMEOUT_SECONDS: float = float(os.getenv("BUNDLE_API_TIMEOUT_SECONDS") or 15)

# Ceiling on how many times one bundle may apply inside a single order.
MAX_USES_PER_ORDER: int = int(os.getenv("BUNDLE_MAX_USES_PER_ORDER") or 50)

LOG_LEVEL: str = (os.getenv("LOG_LEVEL") or "INFO").upper()
CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in (os.getenv("CORS_ORIGINS") or "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
] or ["http://localhost:3000"]
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT") or 8080)
ENVIRONMENT: str = os.getenv("NODE_ENV", "development")

DRAFT_VERSION: int = 1
MAX_GROUP_NAME_LENGTH: int = 50
MIN_TIER_QTY: int = 1
MAX_TIER_QTY: int = 999

PRODUCT_REF_PREFIX: str = "product:"


def sanitize_ref(value: Optional[Any]) -> Optional[str]:
    """Normalize raw variant/product references (strip whitespace, drop empties)."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    text = str(value).strip()
    if not text:
        return None
    return text


def is_product_ref(value: Optional[Any]) -> bool:
    """A product-level reference matches any variant of that product."""
    return str(value or "").strip().startswith(PRODUCT_REF_PREFIX)


def to_product_ref(product_id: Optional[Any]) -> Optional[str]:
    pid = sanitize_ref(product_id)
    return f"{PRODUCT_REF_PREFIX}{pid}" if pid else None
