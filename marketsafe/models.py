from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from enum import Enum
from datetime import datetime
from decimal import Decimal
from typing import Optional


class Role(str, Enum):
    SELLER = "seller"
    BUYER = "buyer"


class Tier(str, Enum):
    NONE = "none"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class DatasetStatus(str, Enum):
    PROCESSING = "processing"
    ANONYMIZED = "anonymized"
    FAILED = "failed"


class SortKey(str, Enum):
    FEATURED = "featured"
    NEWEST = "newest"
    POPULAR = "popular"
    PRICE_LOW = "price-low"
    PRICE_HIGH = "price-high"


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Subscription(WireModel):
    tier: Tier = Tier.NONE
    upload_count: int = Field(default=0, ge=0)


class User(WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str
    email: str
    role: Role
    token: str = Field(min_length=1)  # only authenticated actors are modelled
    joined_date: str = ""
    subscription: Subscription = Field(default_factory=Subscription)

    @field_validator("role", mode="before")
    @classmethod
    def _canonical_role(cls, value):
        # older payloads capitalise roles ("Seller"); there is one spelling
        if isinstance(value, str):
            return value.strip().lower()
        return value


class Dataset(WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    title: str
    description: str = ""
    category: str
    price: Decimal = Field(ge=0)
    status: DatasetStatus = DatasetStatus.PROCESSING
    is_listed: bool = False
    views: int = 0
    created_at: datetime
    owner_id: str
    # catalog display fields
    featured: bool = False
    seller: Optional[str] = None
    data_points: Optional[int] = None
    insights: Optional[str] = None

    @model_validator(mode="after")
    def _listed_requires_anonymized(self):
        if self.is_listed and self.status != DatasetStatus.ANONYMIZED:
            raise ValueError(
                f"Dataset '{self.id}' cannot be listed while {self.status.value}"
            )
        return self


class Purchase(WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    dataset_id: str
    buyer_id: str
    purchase_date: datetime
    dataset: Optional[Dataset] = None


# ── Response models ──────────────────────────────────────────────────────────

class Preview(WireModel):
    headers: list[str]
    rows: list[dict[str, str]]


class SellerStats(WireModel):
    total_datasets: int = 0
    listed_datasets: int = 0
    total_views: int = 0
    total_sales: int = 0
    total_revenue: Decimal = Decimal("0")


class UploadReceipt(WireModel):
    dataset: Dataset
    subscription: Subscription
