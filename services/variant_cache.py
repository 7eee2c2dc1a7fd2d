"""
Variant Metadata Cache
Last-seen descriptive data (name, sku, price, stock, active flag) for catalog
references, populated lazily as products are browsed or variants are picked.

The catalog stays the source of truth; entries are display hints only and are
never evicted within a session.
"""
from typing import Any, Dict, Iterable, List, Optional, Set, Union
import logging
import re

from schemas.bundle_schemas import VariantMetadata
from settings import sanitize_ref, to_product_ref, PRODUCT_REF_PREFIX
from utils import to_float, to_int

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = {"sale", "active", "available", "in_stock"}
_GID_TAIL = re.compile(r"/(\d+)$")


class _Unknown:
    """Sentinel for "metadata not fetched yet"."""

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()


def extract_product_id(payload: Any) -> Optional[str]:
    """
    Pull a bare product id out of a product payload or reference.

    Handles dicts ({"id": ...}), "product:<id>" refs and gid-style ids.
    """
    if isinstance(payload, dict):
        raw = payload.get("id") or payload.get("productId") or payload.get("product_id")
    else:
        raw = payload
    text = sanitize_ref(raw)
    if not text:
        return None
    if text.startswith(PRODUCT_REF_PREFIX):
        text = text[len(PRODUCT_REF_PREFIX):].strip() or None
        return text
    match = _GID_TAIL.search(text)
    if text.startswith("gid://") and match:
        return match.group(1)
    return text


def _price(value: Any) -> Optional[float]:
    if isinstance(value, dict):
        value = value.get("amount", value.get("value"))
    return to_float(value)


def _stock(item: Dict[str, Any]) -> Optional[int]:
    for key in ("stock", "stock_quantity", "quantity", "inventory_quantity"):
        if key in item and item[key] is not None:
            number = to_float(item[key])
            if number is not None:
                return to_int(number, 0)
    return None


def _is_active(item: Dict[str, Any], fallback: bool = False) -> bool:
    for key in ("isActive", "is_active", "is_available"):
        if key in item and item[key] is not None:
            return bool(item[key])
    status = str(item.get("status") or "").strip().lower()
    if status:
        return status in ACTIVE_STATUSES
    return fallback


def metadata_from_payload(payload: Union[VariantMetadata, Dict[str, Any]]) -> Optional[VariantMetadata]:
    """Parse a picked-variant payload (camelCase, as the picker emits it)."""
    if isinstance(payload, VariantMetadata):
        return payload
    if not isinstance(payload, dict):
        return None
    ref = sanitize_ref(payload.get("variantId") or payload.get("ref"))
    if not ref:
        return None
    return VariantMetadata(
        ref=ref,
        name=str(payload.get("name") or "").strip(),
        sku=sanitize_ref(payload.get("sku")),
        price=_price(payload.get("price")),
        stock=_stock(payload),
        is_active=_is_active(payload),
        status=sanitize_ref(payload.get("status")),
        image_url=payload.get("imageUrl") or payload.get("productImageUrl"),
        needs_resolution=bool(payload.get("needsResolution", False)),
        product_id=sanitize_ref(payload.get("productId")),
        attributes=dict(payload.get("attributes") or {}),
    )


def extract_variants(product: Optional[Dict[str, Any]], include_default: bool = True) -> List[VariantMetadata]:
    """
    Enumerate the variants of a catalog product payload.

    Variants come from `skus` or `variants`. A product without any variants is
    represented by a single product-level entry when include_default is set.
    """
    product = product or {}
    product_id = extract_product_id(product)
    product_name = str(product.get("name") or product.get("title") or "").strip()
    product_price = _price(product.get("price"))
    product_active = _is_active(product)
    image = product.get("main_image") or product.get("image_url")
    if isinstance(product.get("image"), dict):
        image = image or product["image"].get("url")

    raw_variants = product.get("skus") or product.get("variants") or []
    variants: List[VariantMetadata] = []
    for raw in raw_variants:
        if not isinstance(raw, dict):
            continue
        ref = sanitize_ref(raw.get("id") or raw.get("variantId"))
        options = raw.get("related_option_values") or raw.get("options") or []
        option_names = [str(o.get("name") if isinstance(o, dict) else o).strip() for o in options if o]
        name = str(raw.get("name") or "").strip()
        if not name:
            name = " / ".join([n for n in option_names if n]) or product_name
        price = _price(raw.get("price"))
        variants.append(VariantMetadata(
            ref=ref or "",
            name=name,
            sku=sanitize_ref(raw.get("sku")),
            price=price if price is not None else product_price,
            stock=_stock(raw),
            is_active=_is_active(raw, fallback=product_active),
            status=sanitize_ref(raw.get("status")),
            image_url=raw.get("image_url") or image,
            needs_resolution=ref is None,
            product_id=product_id,
            attributes=dict(raw.get("attributes") or {}),
        ))

    if not variants and include_default and product_id:
        variants.append(VariantMetadata(
            ref=to_product_ref(product_id),
            name=product_name,
            sku=sanitize_ref(product.get("sku")),
            price=product_price,
            stock=_stock(product),
            is_active=product_active,
            status=sanitize_ref(product.get("status")),
            image_url=image,
            needs_resolution=False,
            product_id=product_id,
        ))
    return variants


def pick_default_variant(variants: Iterable[VariantMetadata]) -> Optional[VariantMetadata]:
    """First active & resolved variant, else first resolved, else first."""
    variants = list(variants)
    if not variants:
        return None
    for v in variants:
        if v.is_active and not v.needs_resolution:
            return v
    for v in variants:
        if not v.needs_resolution:
            return v
    return variants[0]


class VariantMetadataCache:
    """Session-owned metadata mapping with per-product loading flags."""

    def __init__(self):
        self._by_ref: Dict[str, VariantMetadata] = {}
        self._loading_products: Set[str] = set()
        self._loaded_products: Set[str] = set()
        self._missing: Set[str] = set()

    def __len__(self) -> int:
        return len(self._by_ref)

    def __contains__(self, ref: object) -> bool:
        return isinstance(ref, str) and ref.strip() in self._by_ref

    def lookup(self, ref: Optional[str]) -> Union[VariantMetadata, _Unknown]:
        key = sanitize_ref(ref)
        if not key:
            return UNKNOWN
        return self._by_ref.get(key, UNKNOWN)

    def remember(self, payload: Union[VariantMetadata, Dict[str, Any]]) -> Optional[VariantMetadata]:
        meta = metadata_from_payload(payload)
        if meta is None or not meta.ref:
            return None
        self._by_ref[meta.ref] = meta
        self._missing.discard(meta.ref)
        return meta

    def remember_product(self, product: Optional[Dict[str, Any]]) -> List[VariantMetadata]:
        variants = extract_variants(product, include_default=True)
        for meta in variants:
            if meta.ref:
                self.remember(meta)

        product_id = extract_product_id(product or {})
        if product_id:
            # Product-level refs resolve to the product's own name/price.
            product_ref = to_product_ref(product_id)
            if product_ref not in self._by_ref:
                base = variants[0] if variants else None
                self._by_ref[product_ref] = VariantMetadata(
                    ref=product_ref,
                    name=str((product or {}).get("name") or (product or {}).get("title") or "").strip(),
                    price=_price((product or {}).get("price")),
                    stock=_stock(product or {}),
                    is_active=_is_active(product or {}, fallback=bool(base and base.is_active)),
                    product_id=product_id,
                )
            self.mark_loaded(product_id)
        logger.debug(f"Cached {len(variants)} variants for product {product_id}")
        return variants

    # --- per-product loading flags ---

    def mark_loading(self, product_id: str) -> None:
        self._loading_products.add(str(product_id))

    def mark_loaded(self, product_id: str) -> None:
        self._loading_products.discard(str(product_id))
        self._loaded_products.add(str(product_id))

    def clear_loading(self, product_id: str) -> None:
        self._loading_products.discard(str(product_id))

    def is_loading(self, product_id: str) -> bool:
        return str(product_id) in self._loading_products

    def is_loaded(self, product_id: str) -> bool:
        return str(product_id) in self._loaded_products

    # --- refs the backend could not resolve ---

    def mark_missing(self, refs: Iterable[Any]) -> None:
        for ref in refs or []:
            key = sanitize_ref(ref)
            if key:
                self._missing.add(key)

    def is_missing(self, ref: Optional[str]) -> bool:
        key = sanitize_ref(ref)
        return bool(key) and key in self._missing

    def clear_missing(self, ref: Optional[str] = None) -> None:
        if ref is None:
            self._missing.clear()
        else:
            self._missing.discard(str(ref).strip())

    def label_for(self, ref: Optional[str]) -> str:
        """"Name (ref)" when the name is known, else the bare ref."""
        key = sanitize_ref(ref)
        if not key:
            return "—"
        meta = self.lookup(key)
        if meta is not UNKNOWN and meta.name:
            return f"{meta.name} ({key})"
        return key
