"""
MarketSafe client facade.

Owns the session store, its persisted mirror and the remote authority
client, and runs every user action through the same steps: validate
locally, check entitlements, hold the action's in-flight slot, call the
authority, and apply the confirmed result only if the session that issued
the request is still the current one.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Set

from marketsafe.authority import RemoteAuthority
from marketsafe.cache import PersistedSessionCache
from marketsafe.config import Settings
from marketsafe.entitlements import (
    EntitlementSync,
    PurchaseLedger,
    check_tier_change,
    check_upload_allowed,
)
from marketsafe.errors import (
    AlreadyPurchasedError,
    AuthenticationError,
    AuthorizationError,
    DatasetNotFoundError,
    DuplicateSubmissionError,
    MarketSafeError,
    NotAuthenticatedError,
    StaleResponseError,
    ValidationError,
)
from marketsafe.forms import LoginForm, ProfileForm, RegistrationForm, UploadForm, parse_form
from marketsafe.guard import Decision, authorize_path
from marketsafe.lifecycle import DatasetLifecycleTracker
from marketsafe.marketplace import MarketplaceQuery
from marketsafe.models import (
    Dataset,
    DatasetStatus,
    Preview,
    Purchase,
    Role,
    SellerStats,
    Subscription,
    Tier,
    User,
)
from marketsafe.session import SessionStore

logger = logging.getLogger(__name__)


class InFlightGuard:
    """Keys of actions whose request is currently outstanding."""

    def __init__(self) -> None:
        self._keys: Set[str] = set()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        if key in self._keys:
            raise DuplicateSubmissionError(key)
        self._keys.add(key)
        try:
            yield
        finally:
            self._keys.discard(key)

    def is_held(self, key: str) -> bool:
        return key in self._keys


@dataclass
class SellerDashboard:
    datasets: List[Dataset]
    stats: SellerStats


class MarketSafeClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        session: Optional[SessionStore] = None,
        cache: Optional[PersistedSessionCache] = None,
        authority: Optional[RemoteAuthority] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.session = session if session is not None else SessionStore()
        self.cache = cache if cache is not None else PersistedSessionCache(
            self.settings.cache_path, self.settings.cache_key
        )
        self.authority = authority if authority is not None else RemoteAuthority(
            self.settings.api_url,
            token_provider=lambda: self.session.token,
            timeout=self.settings.request_timeout,
        )
        self.sync = EntitlementSync(self.session, self.cache)
        self.in_flight = InFlightGuard()
        self.tracker: Optional[DatasetLifecycleTracker] = None
        self.ledger: Optional[PurchaseLedger] = None
        self._started = False

    # ── lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> Optional[User]:
        """Hydrate the session from the persisted cache (once per process)."""
        if not self._started:
            cached = self.cache.load()
            if cached is not None:
                self.session.complete_authentication(cached)
                logger.info("Restored cached session for %s", cached.id)
            self._started = True
        return self.session.user

    def authorize(self, path: str) -> Decision:
        # hydration must settle before the first protected route is judged
        self.start()
        return authorize_path(path, self.session.user)

    def logout(self) -> None:
        self.tracker = None
        self.ledger = None
        self.sync.clear()

    # ── auth ──────────────────────────────────────────────────────────────────

    def login(self, email: str, password: str) -> User:
        form = parse_form(LoginForm, email=email, password=password)
        with self.in_flight.hold("login"):
            return self._authenticate(lambda: self.authority.login(form.email, form.password))

    def register(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str,
        role: str = Role.BUYER.value,
    ) -> User:
        form = parse_form(
            RegistrationForm,
            name=name,
            email=email,
            password=password,
            confirm_password=confirm_password,
            role=role,
        )
        with self.in_flight.hold("register"):
            return self._authenticate(
                lambda: self.authority.register(form.name, form.email, form.password, form.role)
            )

    def _authenticate(self, call) -> User:
        self.start()
        self.session.begin_authentication()
        try:
            user = call()
        except MarketSafeError:
            self.session.fail_authentication()
            raise
        if not self.session.pending:
            # logged out (or otherwise reset) while the request was outstanding
            raise StaleResponseError("Authentication response arrived after the attempt was abandoned")
        if not user.joined_date:
            user = user.model_copy(update={"joined_date": datetime.now(timezone.utc).isoformat()})
        self.tracker = None
        self.ledger = None
        self.sync.apply_user(user)
        return self.session.user

    def update_profile(self, name: str, email: str) -> User:
        self._require_user()
        form = parse_form(ProfileForm, name=name, email=email)
        self.sync.apply_profile(form.name, form.email)
        return self.session.user

    # ── subscriptions & uploads ───────────────────────────────────────────────

    def subscribe(self, tier: Tier) -> Subscription:
        user = self._require_role(Role.SELLER)
        try:
            tier = Tier(tier)
        except ValueError as exc:
            raise ValidationError(f"Unknown plan '{tier}'", field="tier") from exc
        if tier == Tier.NONE:
            raise ValidationError("Choose a paid plan", field="tier")
        check_tier_change(user.subscription, tier)
        with self.in_flight.hold("subscribe"):
            with self._remote() as identity:
                subscription = self.authority.subscribe(tier)
            self._ensure_current(identity)
            self.sync.apply_subscription_change(subscription)
        return subscription

    def check_upload_allowed(self) -> None:
        user = self._require_role(Role.SELLER)
        check_upload_allowed(user.subscription)

    def upload_dataset(
        self,
        title: str,
        description: str,
        file_name: str,
        content: str,
        category: str = "E-commerce",
        price="0",
    ) -> Dataset:
        form = parse_form(
            UploadForm,
            title=title,
            description=description,
            category=category,
            price=price,
            file_name=file_name,
            content=content,
        )
        self.check_upload_allowed()
        with self.in_flight.hold("upload"):
            with self._remote() as identity:
                receipt = self.authority.upload(
                    form.title, form.description, form.category,
                    str(form.price), form.file_name, form.content,
                )
            self._ensure_current(identity)
            self.sync.apply_subscription_change(receipt.subscription)
            if self.tracker is not None:
                self.tracker.track(receipt.dataset)
        logger.info("Uploaded dataset %s, now %s", receipt.dataset.id, receipt.dataset.status.value)
        return receipt.dataset

    # ── seller datasets ───────────────────────────────────────────────────────

    def seller_dashboard(self) -> SellerDashboard:
        user = self._require_role(Role.SELLER)
        with self._remote() as identity:
            datasets = self.authority.my_datasets()
            stats = self.authority.seller_stats()
        self._ensure_current(identity)
        if self.tracker is None:
            self.tracker = DatasetLifecycleTracker(user.id, datasets)
        else:
            self.tracker.refresh(datasets)
        return SellerDashboard(datasets=self.tracker.datasets, stats=stats)

    def report_status(self, dataset_id: str, status: DatasetStatus) -> Dataset:
        """Record a status reported by the anonymization service."""
        return self._require_tracker().report_status(dataset_id, DatasetStatus(status))

    def confirm_listing_fee(self, dataset_id: str) -> None:
        self._require_tracker().confirm_listing_fee(dataset_id)

    def set_listing(self, dataset_id: str, listed: bool) -> Dataset:
        tracker = self._require_tracker()
        tracker.check_listing(dataset_id, listed)
        with self.in_flight.hold(f"listing:{dataset_id}"):
            with self._remote() as identity:
                confirmed = self.authority.set_listing(dataset_id, listed)
            self._ensure_current(identity)
            return tracker.apply_listing(confirmed)

    # ── buyer ─────────────────────────────────────────────────────────────────

    def my_purchases(self) -> List[Purchase]:
        user = self._require_role(Role.BUYER)
        with self._remote() as identity:
            purchases = self.authority.my_purchases()
        self._ensure_current(identity)
        catalog = self.ledger.available if self.ledger is not None else ()
        self.ledger = PurchaseLedger(user.id, purchases, catalog)
        return self.ledger.purchases

    def browse(self, query: Optional[MarketplaceQuery] = None) -> List[Dataset]:
        """Fetch the catalog; buyers only see datasets they have not bought."""
        query = query or MarketplaceQuery()
        self.start()
        with self._remote():
            catalog = self.authority.marketplace()
        if self.session.role == Role.BUYER:
            self._buyer_ledger().replace_catalog(catalog)
            catalog = self.ledger.available
        return query.apply(catalog)

    def purchase(self, dataset_id: str) -> Purchase:
        self._require_role(Role.BUYER)
        ledger = self._buyer_ledger()
        if ledger.has_purchased(dataset_id):
            raise AlreadyPurchasedError(dataset_id, status_code=None)
        with self.in_flight.hold(f"purchase:{dataset_id}"):
            with self._remote() as identity:
                purchase = self.authority.purchase(dataset_id)
            self._ensure_current(identity)
            self.sync.apply_purchase(ledger, purchase)
        return purchase

    def preview(self, dataset_id: str) -> Preview:
        self._check_data_access(dataset_id)
        with self._remote():
            return self.authority.preview(dataset_id)

    def download(self, dataset_id: str, anonymized: bool = True) -> bytes:
        self._check_data_access(dataset_id)
        with self._remote():
            return self.authority.download(dataset_id, anonymized=anonymized)

    # ── helpers ───────────────────────────────────────────────────────────────

    @contextmanager
    def _remote(self) -> Iterator[Optional[tuple[str, str]]]:
        """
        Wrap a call made with the current credentials. Yields the session
        identity the request is issued under; if the authority rejects those
        credentials the session is ended before the error propagates.
        """
        identity = self.session.identity
        try:
            yield identity
        except AuthenticationError:
            if identity is not None and self.session.identity == identity:
                logger.warning("Credentials for %s were rejected, ending session", identity[0])
                self.logout()
            raise

    def _require_user(self) -> User:
        self.start()
        user = self.session.user
        if user is None:
            raise NotAuthenticatedError("Please log in first")
        return user

    def _require_role(self, role: Role) -> User:
        user = self._require_user()
        if user.role != role:
            raise AuthorizationError(f"Only {role.value} accounts can do this")
        return user

    def _require_tracker(self) -> DatasetLifecycleTracker:
        self._require_role(Role.SELLER)
        if self.tracker is None:
            self.seller_dashboard()
        return self.tracker

    def _buyer_ledger(self) -> PurchaseLedger:
        if self.ledger is None:
            self.my_purchases()
        return self.ledger

    def _check_data_access(self, dataset_id: str) -> None:
        user = self._require_user()
        if user.role == Role.BUYER:
            self._buyer_ledger().check_entitled(dataset_id)
        else:
            try:
                self._require_tracker().get(dataset_id)
            except DatasetNotFoundError as exc:
                raise AuthorizationError(f"Dataset '{dataset_id}' is not one of yours") from exc

    def _ensure_current(self, identity) -> None:
        if self.session.identity != identity:
            logger.info("Discarding response issued under a previous session")
            raise StaleResponseError("The session changed while the request was outstanding")
