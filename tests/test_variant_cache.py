import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.bundle_schemas import VariantMetadata
from services.variant_cache import (
    UNKNOWN,
    VariantMetadataCache,
    extract_product_id,
    extract_variants,
    pick_default_variant,
)

PRODUCT = {
    "id": "55",
    "name": "Travel Mug",
    "price": 12,
    "status": "sale",
    "skus": [
        {"id": "s1", "price": {"amount": 14}, "stock": 0, "status": "hidden",
         "related_option_values": [{"name": "Red"}]},
        {"id": "s2", "stock": 8, "status": "sale", "related_option_values": [{"name": "Blue"}]},
        {"price": 9, "status": "sale"},
    ],
}


class TestExtract:
    def test_product_id_forms(self):
        assert extract_product_id({"id": 55}) == "55"
        assert extract_product_id("product:55") == "55"
        assert extract_product_id("gid://shopify/Product/77") == "77"
        assert extract_product_id(None) is None

    def test_variants_from_skus(self):
        variants = extract_variants(PRODUCT)
        assert [v.ref for v in variants] == ["s1", "s2", ""]
        s1, s2, unresolved = variants
        assert (s1.name, s1.price, s1.is_active) == ("Red", 14.0, False)
        assert (s2.name, s2.price, s2.stock, s2.is_active) == ("Blue", 12.0, 8, True)
        assert unresolved.needs_resolution is True

    def test_product_without_variants_gets_default_entry(self):
        variants = extract_variants({"id": "9", "name": "Poster", "price": 5})
        assert len(variants) == 1
        assert variants[0].ref == "product:9"
        assert extract_variants({"id": "9"}, include_default=False) == []

    def test_pick_default_variant_prefers_active_resolved(self):
        assert pick_default_variant(extract_variants(PRODUCT)).ref == "s2"
        inactive = [VariantMetadata(ref="", needs_resolution=True), VariantMetadata(ref="a")]
        assert pick_default_variant(inactive).ref == "a"
        assert pick_default_variant([]) is None


class TestCache:
    def test_lookup_unknown_until_remembered(self):
        cache = VariantMetadataCache()
        assert cache.lookup("v1") is UNKNOWN
        cache.remember({"variantId": "v1", "name": "Mug", "price": "4.5", "isActive": True})
        meta = cache.lookup(" v1 ")
        assert meta.price == 4.5
        assert "v1" in cache
        assert cache.label_for("v1") == "Mug (v1)"

    def test_remember_product_caches_variants_and_product_ref(self):
        cache = VariantMetadataCache()
        cache.mark_loading("55")
        cache.remember_product(PRODUCT)
        assert cache.lookup("s2").name == "Blue"
        assert cache.lookup("product:55").name == "Travel Mug"
        assert cache.is_loading("55") is False
        assert cache.is_loaded("55") is True

    def test_missing_refs_cleared_when_seen_again(self):
        cache = VariantMetadataCache()
        cache.mark_missing(["v1", " ", None])
        assert cache.is_missing("v1")
        cache.remember({"variantId": "v1"})
        assert not cache.is_missing("v1")

    def test_clear_missing_all(self):
        cache = VariantMetadataCache()
        cache.mark_missing(["a", "b"])
        cache.clear_missing()
        assert not cache.is_missing("a")
