"""
Merchant entity resolution.

Maps a raw transaction description to a per-user merchant ID:

1. An existing alias for the exact raw string wins, before any normalization.
2. Otherwise the name is normalized (known brands included) and matched to
   a merchant with the same canonical name.
3. Otherwise the first merchant, in creation order, whose canonical name is
   similar enough is reused.
4. Otherwise a new merchant is created.

The alias is recorded on every path except the first, so later lookups of
the same raw string short-circuit.
"""

import logging
import uuid
from typing import List, Optional, Protocol

from models.merchant import Merchant, MerchantAlias
from services.merchants.config import ResolverConfig, DEFAULT_RESOLVER_CONFIG
from services.merchants.normalizer import normalize_merchant_name
from services.merchants.similarity import calculate_similarity
from utils.db.base import ConflictError, StorageError

logger = logging.getLogger(__name__)


class ResolutionError(StorageError):
    """Raised when a merchant could not be resolved because the store failed."""
    pass


class MerchantRepository(Protocol):
    """Merchant store used by the resolver."""

    def get_alias(self, user_id: str, raw_name: str) -> Optional[MerchantAlias]: ...

    def get_merchant_by_name(self, user_id: str, canonical_name: str) -> Optional[Merchant]: ...

    def list_merchants(self, user_id: str) -> List[Merchant]: ...

    def create_merchant(self, merchant: Merchant) -> Merchant:
        """Raises ConflictError if the canonical name is taken."""
        ...

    def add_raw_name(self, merchant: Merchant, raw_name: str) -> None: ...

    def create_alias(self, alias: MerchantAlias) -> MerchantAlias:
        """Raises ConflictError if the raw name is already bound."""
        ...


class MerchantResolver:
    """Resolves raw descriptions to merchant IDs for one store."""

    def __init__(self, repository: MerchantRepository, config: Optional[ResolverConfig] = None):
        self.repository = repository
        self.config = config or DEFAULT_RESOLVER_CONFIG

    def resolve(self, user_id: str, raw_name: str) -> uuid.UUID:
        """
        Resolve a raw description to a merchant ID, creating the merchant if
        needed.

        Raises:
            ValueError: If raw_name is blank
            ResolutionError: If the store fails
        """
        if not raw_name or not raw_name.strip():
            raise ValueError("raw_name must not be blank")

        try:
            return self._resolve(user_id, raw_name)
        except ResolutionError:
            raise
        except StorageError as e:
            logger.error(
                f"Merchant resolution failed for user {user_id}: {str(e)}",
                extra={'raw_name': raw_name}
            )
            raise ResolutionError(f"Could not resolve merchant '{raw_name}': {str(e)}", e.error_code) from e

    def _resolve(self, user_id: str, raw_name: str) -> uuid.UUID:
        alias = self.repository.get_alias(user_id, raw_name)
        if alias is not None:
            return alias.merchant_id

        canonical_name = normalize_merchant_name(raw_name)

        merchant = self.repository.get_merchant_by_name(user_id, canonical_name)
        if merchant is None:
            merchant = self.find_similar_merchant(user_id, canonical_name)

        if merchant is None:
            merchant = self._create_merchant(user_id, canonical_name, raw_name)
        elif raw_name not in merchant.raw_name_aliases:
            self.repository.add_raw_name(merchant, raw_name)

        return self._record_alias(user_id, raw_name, merchant.merchant_id)

    def find_similar_merchant(self, user_id: str, canonical_name: str) -> Optional[Merchant]:
        """
        First merchant, ordered by (created_at, merchant_id), whose canonical
        name is more similar than the configured threshold.
        """
        merchants = sorted(
            self.repository.list_merchants(user_id),
            key=lambda m: (m.created_at, str(m.merchant_id))
        )
        for merchant in merchants:
            similarity = calculate_similarity(canonical_name, merchant.canonical_name)
            if similarity > self.config.similarity_threshold:
                logger.debug(
                    f"'{canonical_name}' matched '{merchant.canonical_name}' "
                    f"with similarity {similarity:.2f}"
                )
                return merchant
        return None

    def _create_merchant(self, user_id: str, canonical_name: str, raw_name: str) -> Merchant:
        merchant = Merchant(
            user_id=user_id,
            canonical_name=canonical_name,
            raw_name_aliases={raw_name},
        )
        try:
            created = self.repository.create_merchant(merchant)
            logger.info(f"Created merchant '{canonical_name}' for user {user_id}")
            return created
        except ConflictError:
            existing = self.repository.get_merchant_by_name(user_id, canonical_name)
            if existing is None:
                raise ResolutionError(f"Merchant '{canonical_name}' conflicted but could not be re-read")
            logger.info(f"Merchant '{canonical_name}' was created concurrently, reusing it")
            if raw_name not in existing.raw_name_aliases:
                self.repository.add_raw_name(existing, raw_name)
            return existing

    def _record_alias(self, user_id: str, raw_name: str, merchant_id: uuid.UUID) -> uuid.UUID:
        try:
            self.repository.create_alias(
                MerchantAlias(user_id=user_id, raw_name=raw_name, merchant_id=merchant_id)
            )
            return merchant_id
        except ConflictError:
            existing = self.repository.get_alias(user_id, raw_name)
            if existing is None:
                raise ResolutionError(f"Alias for '{raw_name}' conflicted but could not be re-read")
            if existing.merchant_id != merchant_id:
                logger.info(
                    f"Alias for '{raw_name}' was bound concurrently to merchant {existing.merchant_id}"
                )
            return existing.merchant_id
