"""
Sandbox remote authority.

An in-memory FastAPI implementation of the endpoints the client consumes,
for local development and end-to-end tests. Run it with::

    uvicorn marketsafe.sandbox:app --port 5000
"""

import csv
import io
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response
from pydantic import BaseModel, Field

from marketsafe.entitlements import check_tier_change, check_upload_allowed
from marketsafe.errors import EntitlementExceeded
from marketsafe.models import (
    Dataset,
    DatasetStatus,
    Purchase,
    Role,
    SellerStats,
    Subscription,
    Tier,
    WireModel,
)
from marketsafe.store import Account, SandboxStore, hash_password

PREVIEW_ROWS = 10


# ── Request bodies ───────────────────────────────────────────────────────────

class RegisterBody(BaseModel):
    name: str
    email: str
    password: str
    role: Role


class LoginBody(BaseModel):
    email: str
    password: str


class ListingBody(WireModel):
    is_listed: bool


class SubscribeBody(BaseModel):
    tier: Tier


class UploadBody(WireModel):
    title: str
    description: str
    category: str
    price: Decimal = Field(default=Decimal("0"), ge=0)
    file_name: str
    csv: str


class StatusBody(BaseModel):
    status: DatasetStatus


# ── Dependencies ─────────────────────────────────────────────────────────────

def get_store(request: Request) -> SandboxStore:
    return request.app.state.store


def current_account(
    authorization: Optional[str] = Header(default=None),
    store: SandboxStore = Depends(get_store),
) -> Account:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Not authorized, no token")
    account = store.account_for_token(authorization.removeprefix("Bearer ").strip())
    if account is None:
        raise HTTPException(401, "Not authorized, token failed")
    return account


def seller_account(account: Account = Depends(current_account)) -> Account:
    if account.role != Role.SELLER:
        raise HTTPException(403, "Only sellers can do this")
    return account


def buyer_account(account: Account = Depends(current_account)) -> Account:
    if account.role != Role.BUYER:
        raise HTTPException(403, "Only buyers can do this")
    return account


def _api_user(account: Account, token: str) -> dict:
    data = account.as_user(token).to_wire()
    data["_id"] = data.pop("id")
    return data


def _owned_dataset(store: SandboxStore, dataset_id: str, account: Account) -> Dataset:
    dataset = store.get_dataset(dataset_id)
    if dataset is None:
        raise HTTPException(404, f"Dataset '{dataset_id}' not found")
    if dataset.owner_id != account.id:
        raise HTTPException(403, "You do not own this dataset")
    return dataset


def _readable_dataset(store: SandboxStore, dataset_id: str, account: Account) -> Dataset:
    dataset = store.get_dataset(dataset_id)
    if dataset is None:
        raise HTTPException(404, f"Dataset '{dataset_id}' not found")
    if dataset.owner_id == account.id:
        return dataset
    if store.find_purchase(account.id, dataset_id) is None:
        raise HTTPException(403, "Purchase this dataset to access it")
    return dataset


router = APIRouter(prefix="/api")


# ── Auth ─────────────────────────────────────────────────────────────────────

@router.post("/auth/register", status_code=201, summary="Create an account")
def register(body: RegisterBody, store: SandboxStore = Depends(get_store)):
    if store.find_by_email(body.email):
        raise HTTPException(400, "User already exists")
    account = Account(
        id=uuid.uuid4().hex,
        name=body.name,
        email=body.email,
        role=body.role,
        password_hash=hash_password(body.password),
        joined_date=datetime.now(timezone.utc).isoformat(),
    )
    store.add_account(account)
    return _api_user(account, store.issue_token(account.id))


@router.post("/auth/login", summary="Log in with email and password")
def login(body: LoginBody, store: SandboxStore = Depends(get_store)):
    account = store.find_by_email(body.email)
    if account is None or not account.check_password(body.password):
        raise HTTPException(401, "Invalid email or password")
    return _api_user(account, store.issue_token(account.id))


# ── Seller ───────────────────────────────────────────────────────────────────

@router.get("/datasets/my-datasets", summary="Datasets owned by the seller")
def my_datasets(
    account: Account = Depends(seller_account),
    store: SandboxStore = Depends(get_store),
):
    return [d.to_wire() for d in store.datasets_for_owner(account.id)]


@router.get("/seller/stats", summary="Seller dashboard totals")
def seller_stats(
    account: Account = Depends(seller_account),
    store: SandboxStore = Depends(get_store),
):
    owned = store.datasets_for_owner(account.id)
    sales = [p for d in owned for p in store.purchases_for_dataset(d.id)]
    prices = {d.id: d.price for d in owned}
    return SellerStats(
        total_datasets=len(owned),
        listed_datasets=sum(1 for d in owned if d.is_listed),
        total_views=sum(d.views for d in owned),
        total_sales=len(sales),
        total_revenue=sum((prices[p.dataset_id] for p in sales), Decimal("0")),
    ).to_wire()


@router.post("/datasets/upload", status_code=201, summary="Upload a CSV for anonymization")
def upload(
    body: UploadBody,
    account: Account = Depends(seller_account),
    store: SandboxStore = Depends(get_store),
):
    try:
        check_upload_allowed(account.subscription)
    except EntitlementExceeded as exc:
        raise HTTPException(402, str(exc))
    dataset = Dataset(
        id=uuid.uuid4().hex,
        title=body.title,
        description=body.description,
        category=body.category,
        price=body.price,
        created_at=datetime.now(timezone.utc),
        owner_id=account.id,
        seller=account.name,
        data_points=max(0, len(body.csv.strip().splitlines()) - 1),
    )
    store.add_dataset(dataset, body.csv)
    account.subscription = account.subscription.model_copy(
        update={"upload_count": account.subscription.upload_count + 1}
    )
    return {"dataset": dataset.to_wire(), "subscription": account.subscription.to_wire()}


@router.patch("/datasets/{dataset_id}/list", summary="List or unlist a dataset")
def set_listing(
    dataset_id: str,
    body: ListingBody,
    account: Account = Depends(seller_account),
    store: SandboxStore = Depends(get_store),
):
    dataset = _owned_dataset(store, dataset_id, account)
    if body.is_listed and dataset.status != DatasetStatus.ANONYMIZED:
        raise HTTPException(400, f"Dataset is {dataset.status.value}; only anonymized datasets can be listed")
    updated = dataset.model_copy(update={"is_listed": body.is_listed})
    store.datasets[dataset_id] = updated
    return updated.to_wire()


@router.post("/subscriptions/subscribe", summary="Change subscription tier")
def subscribe(
    body: SubscribeBody,
    account: Account = Depends(seller_account),
):
    if body.tier == Tier.NONE:
        raise HTTPException(400, "Choose a paid tier")
    try:
        check_tier_change(account.subscription, body.tier)
    except EntitlementExceeded as exc:
        raise HTTPException(402, str(exc))
    account.subscription = Subscription(
        tier=body.tier, upload_count=account.subscription.upload_count
    )
    return {"user": {"_id": account.id, "subscription": account.subscription.to_wire()}}


# ── Catalog & purchases ──────────────────────────────────────────────────────

@router.get("/datasets/marketplace", summary="Listed datasets")
def marketplace(store: SandboxStore = Depends(get_store)):
    return [d.to_wire() for d in store.listed_datasets()]


@router.get("/purchases/my-purchases", summary="Buyer's purchases")
def my_purchases(
    account: Account = Depends(buyer_account),
    store: SandboxStore = Depends(get_store),
):
    return [
        p.model_copy(update={"dataset": store.get_dataset(p.dataset_id)}).to_wire()
        for p in store.purchases_for_buyer(account.id)
    ]


@router.post("/purchases/dataset/{dataset_id}", status_code=201, summary="Purchase a dataset")
def purchase(
    dataset_id: str,
    account: Account = Depends(buyer_account),
    store: SandboxStore = Depends(get_store),
):
    dataset = store.get_dataset(dataset_id)
    if dataset is None or not dataset.is_listed:
        raise HTTPException(404, f"Dataset '{dataset_id}' is not for sale")
    if store.find_purchase(account.id, dataset_id):
        raise HTTPException(409, "You have already purchased this dataset")
    record = Purchase(
        id=uuid.uuid4().hex,
        dataset_id=dataset_id,
        buyer_id=account.id,
        purchase_date=datetime.now(timezone.utc),
    )
    store.add_purchase(record)
    return record.to_wire()


@router.get("/datasets/{dataset_id}/preview", summary="First rows of a dataset")
def preview(
    dataset_id: str,
    account: Account = Depends(current_account),
    store: SandboxStore = Depends(get_store),
):
    _readable_dataset(store, dataset_id, account)
    reader = csv.DictReader(io.StringIO(store.files.get(dataset_id, "")))
    rows = []
    for row in reader:
        if len(rows) >= PREVIEW_ROWS:
            break
        rows.append({k: v or "" for k, v in row.items() if k is not None})
    return {"headers": reader.fieldnames or [], "rows": rows}


@router.get("/datasets/{dataset_id}/download", summary="Original upload (owner only)")
def download(
    dataset_id: str,
    account: Account = Depends(seller_account),
    store: SandboxStore = Depends(get_store),
):
    _owned_dataset(store, dataset_id, account)
    return Response(store.files.get(dataset_id, ""), media_type="text/csv")


@router.get("/datasets/{dataset_id}/download-anonymized", summary="Anonymized dataset")
def download_anonymized(
    dataset_id: str,
    account: Account = Depends(current_account),
    store: SandboxStore = Depends(get_store),
):
    dataset = _readable_dataset(store, dataset_id, account)
    if dataset.status != DatasetStatus.ANONYMIZED:
        raise HTTPException(409, f"Dataset is {dataset.status.value}")
    # the anonymization engine lives elsewhere; the sandbox serves the stored file
    return Response(store.files.get(dataset_id, ""), media_type="text/csv")


# ── Admin ────────────────────────────────────────────────────────────────────

@router.post("/admin/datasets/{dataset_id}/status", summary="Report anonymization status")
def report_status(
    dataset_id: str,
    body: StatusBody,
    store: SandboxStore = Depends(get_store),
):
    dataset = store.get_dataset(dataset_id)
    if dataset is None:
        raise HTTPException(404, f"Dataset '{dataset_id}' not found")
    if dataset.status != DatasetStatus.PROCESSING and body.status != dataset.status:
        raise HTTPException(409, f"Dataset is already {dataset.status.value}")
    updated = dataset.model_copy(update={"status": body.status})
    store.datasets[dataset_id] = updated
    return updated.to_wire()


@router.post("/admin/seed", summary="Re-seed demo data")
def reseed(store: SandboxStore = Depends(get_store)):
    from scripts.seed_data import seed
    store.clear()
    seed(store)
    return {
        "status": "seeded",
        "accounts": len(store.accounts),
        "datasets": len(store.datasets),
    }


def create_app(store: Optional[SandboxStore] = None, seed_on_startup: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Auto-seed on startup so the sandbox is immediately usable
        if seed_on_startup:
            from scripts.seed_data import seed
            seed(app.state.store)
        yield

    app = FastAPI(
        title="MarketSafe Sandbox Authority",
        version="1.0.0",
        description="In-memory stand-in for the MarketSafe backend",
        lifespan=lifespan,
    )
    app.state.store = store if store is not None else SandboxStore()
    app.include_router(router)
    return app


app = create_app()
