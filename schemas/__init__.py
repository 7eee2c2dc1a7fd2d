"""
Bundle Schemas Package
Provides standardized data structures for bundle rule documents.
"""

from .bundle_schemas import (
    # Wire documents
    ComponentDict,
    TierDict,
    RulesDict,
    PresentationDict,
    BundleDraftDict,
    CartItemDict,

    # Model types
    Component,
    Tier,
    Presentation,
    Addon,
    Discount,
    QuantityOffer,
    BundleOffer,
    GroupedOffer,
    Offer,
    DraftInput,
    VariantMetadata,

    # Defaults / constants
    DEFAULT_TIERS,
    FALLBACK_TIER,
    BUNDLE_STATUSES,
    TIER_TYPES,
    BUNDLE_DISCOUNT_TYPES,

    # Helper functions
    synthesized_group,
    components_to_dicts,
)
