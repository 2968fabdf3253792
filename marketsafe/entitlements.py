"""
Entitlements: upload quotas per subscription tier, the buyer's purchase
ledger, and reconciliation of server-confirmed changes into the session
store and its persisted mirror.
"""

import logging
from typing import Iterable, List, Optional

from marketsafe.cache import PersistedSessionCache
from marketsafe.errors import (
    AlreadyPurchasedError,
    AuthorizationError,
    CacheError,
    EntitlementExceeded,
    RemoteError,
)
from marketsafe.models import Dataset, Purchase, Subscription, Tier, User
from marketsafe.session import SessionStore

logger = logging.getLogger(__name__)

# None means unbounded
UPLOAD_QUOTAS: dict[Tier, Optional[int]] = {
    Tier.NONE: 0,
    Tier.BASIC: 5,
    Tier.PRO: 20,
    Tier.ENTERPRISE: None,
}


def quota(tier: Tier) -> Optional[int]:
    return UPLOAD_QUOTAS[tier]


def remaining_uploads(subscription: Subscription) -> Optional[int]:
    limit = quota(subscription.tier)
    if limit is None:
        return None
    return max(0, limit - subscription.upload_count)


def check_upload_allowed(subscription: Subscription) -> None:
    """Raise ``EntitlementExceeded`` unless the subscription permits one more upload."""
    tier = subscription.tier
    limit = quota(tier)
    if tier == Tier.NONE:
        raise EntitlementExceeded(
            "A subscription is required to upload datasets",
            tier=tier.value, quota=0, upload_count=subscription.upload_count,
        )
    if limit is not None and subscription.upload_count >= limit:
        raise EntitlementExceeded(
            f"The {tier.value} plan allows {limit} uploads; upgrade to upload more",
            tier=tier.value, quota=limit, upload_count=subscription.upload_count,
        )


def exceeds_quota(subscription: Subscription) -> bool:
    # tier none blocks uploads outright, whatever the count
    if subscription.tier == Tier.NONE:
        return False
    limit = quota(subscription.tier)
    return limit is not None and subscription.upload_count > limit


def check_tier_change(subscription: Subscription, tier: Tier) -> None:
    """Raise ``EntitlementExceeded`` if ``tier`` cannot hold the uploads already made."""
    target = Subscription(tier=tier, upload_count=subscription.upload_count)
    if exceeds_quota(target):
        raise EntitlementExceeded(
            f"The {tier.value} plan allows {quota(tier)} uploads and "
            f"{subscription.upload_count} are in use",
            tier=tier.value, quota=quota(tier), upload_count=subscription.upload_count,
        )


class PurchaseLedger:
    """
    A buyer's purchases plus the locally cached view of the catalog items
    they have not bought yet. A purchase is the only thing that entitles the
    buyer to preview or download a dataset.
    """

    def __init__(
        self,
        buyer_id: str,
        purchases: Iterable[Purchase] = (),
        catalog: Iterable[Dataset] = (),
    ) -> None:
        self.buyer_id = buyer_id
        self._purchases: dict[str, Purchase] = {}
        self._catalog: List[Dataset] = []
        for p in purchases:
            self.record(p)
        self.replace_catalog(catalog)

    # ── writes ────────────────────────────────────────────────────────────────

    def record(self, purchase: Purchase) -> None:
        if purchase.buyer_id != self.buyer_id:
            raise AuthorizationError(
                f"Purchase '{purchase.id}' belongs to another buyer"
            )
        if purchase.dataset_id in self._purchases:
            raise AlreadyPurchasedError(purchase.dataset_id, status_code=None)
        self._purchases[purchase.dataset_id] = purchase
        self._catalog = [d for d in self._catalog if d.id != purchase.dataset_id]

    def replace_catalog(self, catalog: Iterable[Dataset]) -> None:
        self._catalog = [d for d in catalog if d.id not in self._purchases]

    # ── reads ─────────────────────────────────────────────────────────────────

    @property
    def purchases(self) -> List[Purchase]:
        return list(self._purchases.values())

    @property
    def available(self) -> List[Dataset]:
        return list(self._catalog)

    def has_purchased(self, dataset_id: str) -> bool:
        return dataset_id in self._purchases

    def check_entitled(self, dataset_id: str) -> None:
        if not self.has_purchased(dataset_id):
            raise AuthorizationError(f"Dataset '{dataset_id}' has not been purchased")


class EntitlementSync:
    """
    Applies server-confirmed changes to the session store first and the
    persisted cache second. A cache write failure is logged and leaves the
    in-memory session authoritative; the next successful mutation rewrites
    the whole record and so repairs the cache.
    """

    def __init__(self, store: SessionStore, cache: PersistedSessionCache) -> None:
        self.store = store
        self.cache = cache
        self.cache_dirty = False

    def apply_user(self, user: User) -> None:
        self.store.complete_authentication(user)
        self._persist()

    def apply_profile(self, name: str, email: str) -> None:
        self.store.update_profile(name, email)
        self._persist()

    def apply_subscription_change(self, subscription: Subscription) -> None:
        if exceeds_quota(subscription):
            raise RemoteError(
                f"Authority confirmed {subscription.upload_count} uploads on the "
                f"{subscription.tier.value} plan, over its quota of {quota(subscription.tier)}"
            )
        self.store.update_subscription(subscription)
        self._persist()
        logger.info(
            "Subscription now %s (%d uploads used)",
            subscription.tier.value, subscription.upload_count,
        )

    def apply_purchase(self, ledger: PurchaseLedger, purchase: Purchase) -> None:
        ledger.record(purchase)
        logger.info("Recorded purchase %s of dataset %s", purchase.id, purchase.dataset_id)

    def clear(self) -> None:
        """
        End the session and remove it from the cache. If the record cannot be
        removed the whole cache file is deleted, and if that fails too
        ``CacheError`` is raised.
        """
        self.store.end_session()
        try:
            self.cache.clear()
        except CacheError as exc:
            logger.warning("Could not clear session cache, removing %s: %s", self.cache.path, exc)
            try:
                self.cache.path.unlink(missing_ok=True)
            except OSError as unlink_exc:
                self.cache_dirty = True
                raise CacheError(
                    f"Session cache {self.cache.path} still holds the logged-out session"
                ) from unlink_exc
        self.cache_dirty = False

    def _persist(self) -> None:
        user = self.store.user
        if user is None:
            return
        try:
            self.cache.save(user)
        except CacheError as exc:
            logger.warning("Session cache write failed, keeping in-memory session: %s", exc)
            self.cache_dirty = True
            return
        if self.cache_dirty:
            logger.info("Session cache resynchronised")
        self.cache_dirty = False
