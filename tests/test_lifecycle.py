"""
Unit tests for the seller-side dataset lifecycle.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pydantic
import pytest

from marketsafe.errors import (
    DatasetNotFoundError,
    InvalidTransitionError,
    ListingFeeNotConfirmed,
    ListingNotAllowed,
)
from marketsafe.lifecycle import DatasetLifecycleTracker, SellerState
from marketsafe.models import Dataset, DatasetStatus


def ds(id, status=DatasetStatus.PROCESSING, listed=False, owner="S-001"):
    return Dataset(
        id=id,
        title=f"Dataset {id}",
        category="Retail",
        price=Decimal("500"),
        status=status,
        is_listed=listed,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        owner_id=owner,
    )


def make_tracker(*datasets) -> DatasetLifecycleTracker:
    return DatasetLifecycleTracker("S-001", datasets)


class TestListedInvariant:
    def test_listed_processing_dataset_cannot_exist(self):
        with pytest.raises(pydantic.ValidationError):
            ds("1", status=DatasetStatus.PROCESSING, listed=True)

    def test_listed_failed_dataset_cannot_exist(self):
        with pytest.raises(pydantic.ValidationError):
            ds("1", status=DatasetStatus.FAILED, listed=True)


class TestStatusTransitions:
    def test_processing_to_anonymized(self):
        tracker = make_tracker(ds("1"))
        tracker.report_status("1", DatasetStatus.ANONYMIZED)
        assert tracker.state_of("1") == SellerState.UNLISTED

    def test_processing_to_failed_is_distinct_state(self):
        tracker = make_tracker(ds("1"))
        tracker.report_status("1", DatasetStatus.FAILED)
        assert tracker.state_of("1") == SellerState.FAILED
        assert tracker.in_state(SellerState.PROCESSING) == []

    def test_failed_is_terminal(self):
        tracker = make_tracker(ds("1", status=DatasetStatus.FAILED))
        for status in (DatasetStatus.PROCESSING, DatasetStatus.ANONYMIZED):
            with pytest.raises(InvalidTransitionError):
                tracker.report_status("1", status)

    def test_anonymized_cannot_go_back(self):
        tracker = make_tracker(ds("1", status=DatasetStatus.ANONYMIZED))
        with pytest.raises(InvalidTransitionError):
            tracker.report_status("1", DatasetStatus.PROCESSING)

    def test_repeated_report_is_noop(self):
        tracker = make_tracker(ds("1"))
        assert tracker.report_status("1", DatasetStatus.PROCESSING).status == DatasetStatus.PROCESSING

    def test_unknown_dataset(self):
        with pytest.raises(DatasetNotFoundError, match="not found"):
            make_tracker().report_status("X", DatasetStatus.FAILED)

    def test_refresh_keeps_failed_terminal(self):
        tracker = make_tracker(ds("1", status=DatasetStatus.FAILED))
        tracker.refresh([ds("1", status=DatasetStatus.PROCESSING)])
        assert tracker.get("1").status == DatasetStatus.FAILED

    def test_refresh_drops_vanished_datasets(self):
        tracker = make_tracker(ds("1"), ds("2"))
        tracker.refresh([ds("2")])
        assert [d.id for d in tracker.datasets] == ["2"]

    def test_foreign_dataset_rejected(self):
        with pytest.raises(ValueError):
            make_tracker(ds("1", owner="S-999"))


class TestListing:
    def test_processing_rejected_regardless_of_confirmation(self):
        tracker = make_tracker(ds("1"))
        with pytest.raises(ListingNotAllowed):
            tracker.confirm_listing_fee("1")
        with pytest.raises(ListingNotAllowed):
            tracker.check_listing("1", True)

    def test_failed_cannot_be_listed(self):
        tracker = make_tracker(ds("1", status=DatasetStatus.FAILED))
        with pytest.raises(ListingNotAllowed):
            tracker.check_listing("1", True)

    def test_first_listing_needs_fee_confirmation(self):
        tracker = make_tracker(ds("1", status=DatasetStatus.ANONYMIZED))
        assert tracker.requires_fee_confirmation("1")
        with pytest.raises(ListingFeeNotConfirmed):
            tracker.check_listing("1", True)
        tracker.confirm_listing_fee("1")
        tracker.check_listing("1", True)

    def test_previously_listed_needs_no_confirmation(self):
        tracker = make_tracker(ds("1", status=DatasetStatus.ANONYMIZED, listed=True))
        tracker.apply_listing(ds("1", status=DatasetStatus.ANONYMIZED, listed=False))
        assert tracker.state_of("1") == SellerState.UNLISTED
        assert not tracker.requires_fee_confirmation("1")
        tracker.check_listing("1", True)

    def test_unlisting_has_no_precondition(self):
        tracker = make_tracker(ds("1"))
        tracker.check_listing("1", False)

    def test_apply_confirmed_listing(self):
        tracker = make_tracker(ds("1", status=DatasetStatus.ANONYMIZED))
        tracker.confirm_listing_fee("1")
        tracker.apply_listing(ds("1", status=DatasetStatus.ANONYMIZED, listed=True))
        assert tracker.state_of("1") == SellerState.LISTED
