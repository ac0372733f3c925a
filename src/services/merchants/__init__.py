"""
Merchant normalization and entity resolution.

Public API:
    - MerchantResolver: Resolves raw descriptions to per-user merchant IDs
    - MerchantRepository: Store protocol the resolver depends on
    - ResolutionError: Store failure during resolution
    - normalize_merchant_name / calculate_similarity: Pure name helpers
"""

from services.merchants.config import (
    KNOWN_MERCHANTS,
    STRIP_RULES,
    StripRule,
    ResolverConfig,
    DEFAULT_RESOLVER_CONFIG,
)
from services.merchants.normalizer import (
    normalize_merchant_name,
    match_known_merchant,
    strip_noise,
)
from services.merchants.similarity import calculate_similarity
from services.merchants.resolver import (
    MerchantRepository,
    MerchantResolver,
    ResolutionError,
)

__all__ = [
    'KNOWN_MERCHANTS',
    'STRIP_RULES',
    'StripRule',
    'ResolverConfig',
    'DEFAULT_RESOLVER_CONFIG',
    'normalize_merchant_name',
    'match_known_merchant',
    'strip_noise',
    'calculate_similarity',
    'MerchantRepository',
    'MerchantResolver',
    'ResolutionError',
]
