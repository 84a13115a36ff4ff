"""ASP registry, product codes, parsing and SEO helpers"""

from .registry import (
    ASP_REGISTRY,
    VALID_PROVIDER_IDS,
    map_legacy_provider,
    map_legacy_services,
    normalize_asp_name,
)

__all__ = [
    "ASP_REGISTRY",
    "VALID_PROVIDER_IDS",
    "map_legacy_provider",
    "map_legacy_services",
    "normalize_asp_name",
]
