"""
Seller-side dataset lifecycle.

Status is driven by the anonymization service::

    processing ──▶ anonymized ──(list)──▶ listed
        │                    ◀─(unlist)──
        └────────▶ failed (terminal)

Listing is toggled by the owner and needs ``status = anonymized``. The very
first listing of a dataset also needs the one-time listing fee confirmed.
"""

import logging
from enum import Enum
from typing import Iterable, List

from marketsafe.errors import (
    DatasetNotFoundError,
    InvalidTransitionError,
    ListingFeeNotConfirmed,
    ListingNotAllowed,
)
from marketsafe.models import Dataset, DatasetStatus

logger = logging.getLogger(__name__)

_ALLOWED: dict[DatasetStatus, frozenset[DatasetStatus]] = {
    DatasetStatus.PROCESSING: frozenset({DatasetStatus.ANONYMIZED, DatasetStatus.FAILED}),
    DatasetStatus.ANONYMIZED: frozenset(),
    DatasetStatus.FAILED: frozenset(),
}


class SellerState(str, Enum):
    PROCESSING = "processing"
    FAILED = "failed"
    UNLISTED = "unlisted"
    LISTED = "listed"


def seller_state(dataset: Dataset) -> SellerState:
    if dataset.status == DatasetStatus.PROCESSING:
        return SellerState.PROCESSING
    if dataset.status == DatasetStatus.FAILED:
        return SellerState.FAILED
    return SellerState.LISTED if dataset.is_listed else SellerState.UNLISTED


class DatasetLifecycleTracker:
    def __init__(self, owner_id: str, datasets: Iterable[Dataset] = ()) -> None:
        self.owner_id = owner_id
        self._datasets: dict[str, Dataset] = {}
        self._fee_confirmed: set[str] = set()
        self._ever_listed: set[str] = set()
        self.refresh(datasets)

    # ── writes ────────────────────────────────────────────────────────────────

    def track(self, dataset: Dataset) -> None:
        if dataset.owner_id != self.owner_id:
            raise ValueError(f"Dataset '{dataset.id}' is not owned by '{self.owner_id}'")
        current = self._datasets.get(dataset.id)
        if (
            current is not None
            and current.status == DatasetStatus.FAILED
            and dataset.status != DatasetStatus.FAILED
        ):
            logger.warning(
                "Ignoring %s status for failed dataset %s", dataset.status.value, dataset.id
            )
            dataset = dataset.model_copy(
                update={"status": DatasetStatus.FAILED, "is_listed": False}
            )
        if dataset.is_listed:
            self._ever_listed.add(dataset.id)
        self._datasets[dataset.id] = dataset

    def refresh(self, datasets: Iterable[Dataset]) -> None:
        """Reconcile with the authority's list; datasets it no longer reports are dropped."""
        fresh = list(datasets)
        keep = {d.id for d in fresh}
        for dataset_id in list(self._datasets):
            if dataset_id not in keep:
                del self._datasets[dataset_id]
        for dataset in fresh:
            self.track(dataset)

    def report_status(self, dataset_id: str, status: DatasetStatus) -> Dataset:
        current = self.get(dataset_id)
        if status == current.status:
            return current
        if status not in _ALLOWED[current.status]:
            raise InvalidTransitionError(
                f"Dataset '{dataset_id}' cannot go from {current.status.value} to {status.value}"
            )
        updated = current.model_copy(update={"status": status})
        self._datasets[dataset_id] = updated
        logger.info("Dataset %s is now %s", dataset_id, status.value)
        return updated

    def confirm_listing_fee(self, dataset_id: str) -> None:
        dataset = self.get(dataset_id)
        if dataset.status != DatasetStatus.ANONYMIZED:
            raise ListingNotAllowed(
                f"Dataset '{dataset_id}' is {dataset.status.value}; only anonymized datasets can be listed"
            )
        self._fee_confirmed.add(dataset_id)

    def check_listing(self, dataset_id: str, listed: bool) -> None:
        """Raise unless the owner may set ``is_listed`` to ``listed`` right now."""
        dataset = self.get(dataset_id)
        if not listed:
            return
        if dataset.status != DatasetStatus.ANONYMIZED:
            raise ListingNotAllowed(
                f"Dataset '{dataset_id}' is {dataset.status.value}; only anonymized datasets can be listed"
            )
        if self.requires_fee_confirmation(dataset_id):
            raise ListingFeeNotConfirmed(
                f"Confirm the one-time listing fee before listing '{dataset_id}'"
            )

    def apply_listing(self, dataset: Dataset) -> Dataset:
        """Apply a listing change the authority has confirmed."""
        self.get(dataset.id)
        self.track(dataset)
        return self._datasets[dataset.id]

    # ── reads ─────────────────────────────────────────────────────────────────

    def get(self, dataset_id: str) -> Dataset:
        dataset = self._datasets.get(dataset_id)
        if dataset is None:
            raise DatasetNotFoundError(f"Dataset '{dataset_id}' not found")
        return dataset

    @property
    def datasets(self) -> List[Dataset]:
        return list(self._datasets.values())

    def state_of(self, dataset_id: str) -> SellerState:
        return seller_state(self.get(dataset_id))

    def requires_fee_confirmation(self, dataset_id: str) -> bool:
        self.get(dataset_id)
        return dataset_id not in self._ever_listed and dataset_id not in self._fee_confirmed

    def in_state(self, state: SellerState) -> List[Dataset]:
        return [d for d in self._datasets.values() if seller_state(d) == state]
