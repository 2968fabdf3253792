"""
Unit tests for upload quotas, the purchase ledger and entitlement sync.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from marketsafe.cache import PersistedSessionCache
from marketsafe.entitlements import (
    EntitlementSync,
    PurchaseLedger,
    check_tier_change,
    check_upload_allowed,
    exceeds_quota,
    quota,
    remaining_uploads,
)
from marketsafe.errors import (
    AlreadyPurchasedError,
    AuthorizationError,
    CacheError,
    EntitlementExceeded,
    RemoteError,
)
from marketsafe.models import Dataset, DatasetStatus, Purchase, Role, Subscription, Tier, User
from marketsafe.session import SessionStore


# ── fixtures ──────────────────────────────────────────────────────────────────

def dataset(id, price="100"):
    return Dataset(
        id=id,
        title=f"Dataset {id}",
        category="Retail",
        price=Decimal(price),
        status=DatasetStatus.ANONYMIZED,
        is_listed=True,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        owner_id="S-001",
    )


def purchase(dataset_id, buyer="B-001", id=None):
    return Purchase(
        id=id or f"P-{dataset_id}",
        dataset_id=dataset_id,
        buyer_id=buyer,
        purchase_date=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )


def seller(tier=Tier.NONE, uploads=0) -> User:
    return User(
        id="S-001", name="Seller", email="s@example.com", role=Role.SELLER,
        token="tok", subscription=Subscription(tier=tier, upload_count=uploads),
    )


def make_sync(tmp_path, user=None):
    store = SessionStore()
    cache = PersistedSessionCache(tmp_path / "session.json")
    sync = EntitlementSync(store, cache)
    if user is not None:
        sync.apply_user(user)
    return sync


# ── tests ─────────────────────────────────────────────────────────────────────

class TestUploadQuota:
    def test_quota_per_tier(self):
        assert quota(Tier.NONE) == 0
        assert quota(Tier.BASIC) == 5
        assert quota(Tier.PRO) == 20
        assert quota(Tier.ENTERPRISE) is None

    def test_no_subscription_blocks_uploads(self):
        with pytest.raises(EntitlementExceeded, match="subscription is required") as exc:
            check_upload_allowed(Subscription())
        assert exc.value.tier == "none"

    def test_basic_allows_up_to_five(self):
        check_upload_allowed(Subscription(tier=Tier.BASIC, upload_count=4))
        with pytest.raises(EntitlementExceeded) as exc:
            check_upload_allowed(Subscription(tier=Tier.BASIC, upload_count=5))
        assert exc.value.quota == 5
        assert exc.value.upload_count == 5

    def test_pro_limit(self):
        check_upload_allowed(Subscription(tier=Tier.PRO, upload_count=19))
        with pytest.raises(EntitlementExceeded):
            check_upload_allowed(Subscription(tier=Tier.PRO, upload_count=20))

    def test_enterprise_unbounded(self):
        check_upload_allowed(Subscription(tier=Tier.ENTERPRISE, upload_count=10_000))
        assert remaining_uploads(Subscription(tier=Tier.ENTERPRISE)) is None

    def test_remaining_uploads(self):
        assert remaining_uploads(Subscription(tier=Tier.BASIC, upload_count=2)) == 3
        assert remaining_uploads(Subscription(tier=Tier.NONE)) == 0


class TestTierChange:
    def test_downgrade_below_used_uploads_rejected(self):
        with pytest.raises(EntitlementExceeded) as exc:
            check_tier_change(Subscription(tier=Tier.PRO, upload_count=7), Tier.BASIC)
        assert exc.value.tier == "basic"
        assert exc.value.quota == 5

    def test_downgrade_to_exactly_used_uploads_allowed(self):
        check_tier_change(Subscription(tier=Tier.PRO, upload_count=5), Tier.BASIC)

    def test_upgrades_allowed(self):
        check_tier_change(Subscription(tier=Tier.BASIC, upload_count=5), Tier.PRO)
        check_tier_change(Subscription(tier=Tier.PRO, upload_count=20), Tier.ENTERPRISE)

    def test_no_plan_never_exceeds(self):
        assert not exceeds_quota(Subscription(tier=Tier.NONE, upload_count=3))
        assert exceeds_quota(Subscription(tier=Tier.BASIC, upload_count=6))


class TestPurchaseLedger:
    def test_second_purchase_of_same_dataset_rejected(self):
        ledger = PurchaseLedger("B-001")
        ledger.record(purchase("1"))
        with pytest.raises(AlreadyPurchasedError):
            ledger.record(purchase("1", id="P-other"))
        assert len(ledger.purchases) == 1

    def test_purchase_removes_item_from_catalog_view(self):
        ledger = PurchaseLedger("B-001", catalog=[dataset("1"), dataset("2")])
        ledger.record(purchase("1"))
        assert [d.id for d in ledger.available] == ["2"]

    def test_catalog_refresh_hides_purchased(self):
        ledger = PurchaseLedger("B-001", purchases=[purchase("2")])
        ledger.replace_catalog([dataset("1"), dataset("2"), dataset("3")])
        assert [d.id for d in ledger.available] == ["1", "3"]

    def test_entitlement_follows_purchase(self):
        ledger = PurchaseLedger("B-001", purchases=[purchase("1")])
        ledger.check_entitled("1")
        with pytest.raises(AuthorizationError):
            ledger.check_entitled("2")

    def test_foreign_purchase_rejected(self):
        with pytest.raises(AuthorizationError):
            PurchaseLedger("B-001").record(purchase("1", buyer="B-999"))

    def test_ledger_built_from_existing_purchases(self):
        ledger = PurchaseLedger("B-001", purchases=[purchase("1"), purchase("2")],
                                catalog=[dataset("1"), dataset("3")])
        assert ledger.has_purchased("2")
        assert [d.id for d in ledger.available] == ["3"]


class TestEntitlementSync:
    def test_subscription_change_reaches_store_and_cache(self, tmp_path):
        sync = make_sync(tmp_path, seller())
        sync.apply_subscription_change(Subscription(tier=Tier.BASIC))
        assert sync.store.user.subscription == Subscription(tier=Tier.BASIC, upload_count=0)
        assert sync.cache.load().subscription == Subscription(tier=Tier.BASIC, upload_count=0)

    def test_cache_failure_is_not_fatal(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = SessionStore()
        store.complete_authentication(seller())
        sync = EntitlementSync(store, PersistedSessionCache(blocker / "session.json"))

        sync.apply_subscription_change(Subscription(tier=Tier.PRO))

        assert store.user.subscription.tier == Tier.PRO
        assert sync.cache_dirty

    def test_next_successful_write_repairs_cache(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = SessionStore()
        store.complete_authentication(seller())
        sync = EntitlementSync(store, PersistedSessionCache(blocker / "session.json"))
        sync.apply_subscription_change(Subscription(tier=Tier.PRO))

        sync.cache = PersistedSessionCache(tmp_path / "session.json")
        sync.apply_profile("Renamed", "r@example.com")

        assert not sync.cache_dirty
        cached = sync.cache.load()
        assert cached.subscription.tier == Tier.PRO
        assert cached.name == "Renamed"

    def test_clear_ends_session_and_cache(self, tmp_path):
        sync = make_sync(tmp_path, seller())
        sync.clear()
        assert sync.store.user is None
        assert sync.cache.load() is None

    def test_apply_purchase_updates_ledger(self, tmp_path):
        sync = make_sync(tmp_path)
        ledger = PurchaseLedger("B-001", catalog=[dataset("1")])
        sync.apply_purchase(ledger, purchase("1"))
        assert ledger.has_purchased("1")
        assert ledger.available == []

    def test_over_quota_confirmation_not_applied(self, tmp_path):
        sync = make_sync(tmp_path, seller(Tier.PRO, uploads=7))
        with pytest.raises(RemoteError):
            sync.apply_subscription_change(Subscription(tier=Tier.BASIC, upload_count=7))
        assert sync.store.user.subscription.tier == Tier.PRO
        assert sync.cache.load().subscription.tier == Tier.PRO

    def test_clear_removes_file_when_record_cannot_be_cleared(self, tmp_path, monkeypatch):
        sync = make_sync(tmp_path, seller())

        def broken_clear():
            raise CacheError("disk full")

        monkeypatch.setattr(sync.cache, "clear", broken_clear)
        sync.clear()

        assert not sync.cache.path.exists()
        assert not sync.cache_dirty
        assert PersistedSessionCache(tmp_path / "session.json").load() is None

    def test_clear_raises_when_session_survives_on_disk(self, tmp_path, monkeypatch):
        (tmp_path / "session.json").mkdir()
        store = SessionStore()
        store.complete_authentication(seller())
        sync = EntitlementSync(store, PersistedSessionCache(tmp_path / "session.json"))

        def broken_clear():
            raise CacheError("disk full")

        monkeypatch.setattr(sync.cache, "clear", broken_clear)
        with pytest.raises(CacheError, match="still holds"):
            sync.clear()

        assert store.user is None
        assert sync.cache_dirty
