"""HTTP client for the MarketSafe remote authority"""

import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import pydantic
import requests

from marketsafe.config import DEFAULT_API_URL
from marketsafe.errors import (
    AlreadyPurchasedError,
    AuthenticationError,
    AuthorizationError,
    EntitlementExceeded,
    NetworkError,
    RemoteError,
)
from marketsafe.models import (
    Dataset,
    Preview,
    Purchase,
    Role,
    SellerStats,
    Subscription,
    Tier,
    UploadReceipt,
    User,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=pydantic.BaseModel)

TokenProvider = Callable[[], Optional[str]]


class RemoteAuthority:
    """
    Thin client over the authority's REST endpoints.

    Every request carries the current session token (when there is one) as a
    bearer credential. Failures are never retried here: transport problems
    raise ``NetworkError``, error statuses are mapped onto the package's
    exception taxonomy.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        token_provider: Optional[TokenProvider] = None,
        http: Optional[Any] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider or (lambda: None)
        # anything with requests.Session's request() signature works here
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout

    # ── auth ──────────────────────────────────────────────────────────────────

    def register(self, name: str, email: str, password: str, role: Role) -> User:
        payload = self._request(
            "POST",
            "/auth/register",
            json={"name": name, "email": email, "password": password, "role": role.value},
        )
        return self._parse(User, payload)

    def login(self, email: str, password: str) -> User:
        payload = self._request(
            "POST", "/auth/login", json={"email": email, "password": password}
        )
        return self._parse(User, payload)

    # ── seller ────────────────────────────────────────────────────────────────

    def my_datasets(self) -> List[Dataset]:
        return self._parse_list(Dataset, self._request("GET", "/datasets/my-datasets"), "datasets")

    def seller_stats(self) -> SellerStats:
        return self._parse(SellerStats, self._request("GET", "/seller/stats"))

    def set_listing(self, dataset_id: str, is_listed: bool) -> Dataset:
        payload = self._request(
            "PATCH", f"/datasets/{dataset_id}/list", json={"isListed": is_listed}
        )
        return self._parse(Dataset, _unwrap(payload, "dataset"))

    def upload(
        self,
        title: str,
        description: str,
        category: str,
        price: str,
        file_name: str,
        content: str,
    ) -> UploadReceipt:
        payload = self._request(
            "POST",
            "/datasets/upload",
            json={
                "title": title,
                "description": description,
                "category": category,
                "price": price,
                "fileName": file_name,
                "csv": content,
            },
        )
        return self._parse(UploadReceipt, payload)

    def subscribe(self, tier: Tier) -> Subscription:
        payload = self._request("POST", "/subscriptions/subscribe", json={"tier": tier.value})
        body = _unwrap(payload, "user")
        if not isinstance(body, dict) or "subscription" not in body:
            raise RemoteError("Subscription response did not include a subscription")
        return self._parse(Subscription, body["subscription"])

    # ── buyer / catalog ───────────────────────────────────────────────────────

    def marketplace(self) -> List[Dataset]:
        return self._parse_list(Dataset, self._request("GET", "/datasets/marketplace"), "datasets")

    def my_purchases(self) -> List[Purchase]:
        return self._parse_list(
            Purchase, self._request("GET", "/purchases/my-purchases"), "purchases"
        )

    def purchase(self, dataset_id: str) -> Purchase:
        try:
            payload = self._request("POST", f"/purchases/dataset/{dataset_id}")
        except RemoteError as exc:
            if exc.status_code == 409:
                raise AlreadyPurchasedError(dataset_id) from exc
            raise
        return self._parse(Purchase, _unwrap(payload, "purchase"))

    def preview(self, dataset_id: str) -> Preview:
        return self._parse(Preview, self._request("GET", f"/datasets/{dataset_id}/preview"))

    def download(self, dataset_id: str, anonymized: bool = False) -> bytes:
        suffix = "download-anonymized" if anonymized else "download"
        return self._request("GET", f"/datasets/{dataset_id}/{suffix}", raw=True)

    # ── plumbing ──────────────────────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        raw: bool = False,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"Accept": "application/json"}
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug("%s %s", method, url)
        try:
            response = self.http.request(
                method, url, json=json, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise NetworkError(f"Could not reach the server: {exc}") from exc

        if response.status_code >= 400:
            _raise_for_status(response)
        if raw:
            return response.content
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(
                f"Malformed response from {path}", response.status_code
            ) from exc

    @staticmethod
    def _parse(model: Type[M], payload: Any) -> M:
        try:
            return model.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise RemoteError(f"Unexpected {model.__name__} payload: {exc}") from exc

    def _parse_list(self, model: Type[M], payload: Any, key: str) -> List[M]:
        items = _unwrap(payload, key)
        if not isinstance(items, list):
            raise RemoteError(f"Expected a list of {model.__name__} records")
        return [self._parse(model, item) for item in items]


def _unwrap(payload: Any, key: str) -> Any:
    if isinstance(payload, dict) and key in payload:
        return payload[key]
    return payload


def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str):
            return message
    return f"Request failed with status {response.status_code}"


def _raise_for_status(response) -> None:
    status = response.status_code
    message = _error_message(response)
    if status == 401:
        raise AuthenticationError(message)
    if status == 402:
        raise EntitlementExceeded(message)
    if status == 403:
        raise AuthorizationError(message)
    raise RemoteError(message, status)
