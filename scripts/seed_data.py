"""
Deterministic demo data for the sandbox authority.

Produces:
  - 8 accounts: 6 catalog sellers on different tiers, 1 demo seller and 1 buyer
  - 6 listed, anonymized catalog datasets with small generated CSV files
  - 1 seller dataset still processing and 1 that failed anonymization

Demo logins (password ``password123``):
  seller@marketsafe.io, buyer@marketsafe.io
"""

import random
from datetime import datetime, timezone
from decimal import Decimal

from marketsafe.models import Dataset, DatasetStatus, Role, Subscription, Tier
from marketsafe.store import Account, SandboxStore, hash_password

SEED = 42
DEMO_PASSWORD = "password123"
# lowest cost bcrypt accepts, for demo logins only
DEMO_BCRYPT_ROUNDS = 4

# (id, seller, title, description, category, price, views, created, data points, featured, insights)
CATALOG = [
    ("1", "DataCorp Inc.", "E-commerce Customer Behavior Q3 2024",
     "Anonymous shopping patterns and preferences from 50K users across multiple product categories. "
     "Includes purchase history, browsing behavior, and seasonal trends.",
     "E-commerce", "2500", 1240, datetime(2024, 1, 15), 50000, True,
     "Strong Electronics purchase interest detected with 23% conversion rate increase potential during weekend hours"),
    ("2", "AppAnalytics Pro", "Mobile App User Engagement Data",
     "User interaction patterns across mobile shopping apps including session duration, feature usage, "
     "and retention metrics.",
     "Mobile Apps", "1800", 892, datetime(2024, 2, 3), 32000, False,
     "High engagement rates in Electronics category suggest significant market opportunity"),
    ("3", "Social Insights Ltd.", "Social Media Marketing Insights",
     "Consumer engagement patterns across social platforms with anonymized demographic and behavioral data.",
     "Social Media", "3200", 1580, datetime(2024, 1, 28), 78000, True,
     "Peak engagement occurs during evening hours with 45% higher conversion rates"),
    ("4", "Market Analytics Pro", "Retail Analytics Dataset",
     "Seasonal shopping trends and consumer preferences from major retail chains with complete anonymization.",
     "Retail", "2100", 654, datetime(2024, 2, 10), 41000, False,
     "Seasonal patterns show 67% increase in Electronics purchases during holiday seasons"),
    ("5", "HealthData Insights", "Healthcare Consumer Behavior",
     "Anonymous healthcare service usage patterns and consumer preferences in the digital health sector.",
     "Healthcare", "4500", 423, datetime(2024, 1, 20), 29000, False,
     "Digital health adoption accelerated by 156% with strong mobile preference"),
    ("6", "FinTech Data Solutions", "Financial Services Analytics",
     "Consumer financial behavior patterns and preferences in digital banking and fintech services.",
     "Finance", "3800", 789, datetime(2024, 2, 1), 55000, True,
     "Mobile banking usage increased 89% with preference for contactless transactions"),
]

TIERS = [Tier.PRO, Tier.BASIC, Tier.ENTERPRISE, Tier.BASIC, Tier.PRO, Tier.ENTERPRISE]


def _account(password_hash: str, id: str, name: str, email: str, role: Role,
             subscription: Subscription) -> Account:
    return Account(
        id=id,
        name=name,
        email=email,
        role=role,
        password_hash=password_hash,
        joined_date="2024-01-01T00:00:00+00:00",
        subscription=subscription,
    )


def _csv(rng: random.Random, rows: int = 25) -> str:
    lines = ["customer_id,age_band,region,category,spend"]
    for i in range(rows):
        lines.append(",".join([
            f"C{i + 1:05d}",
            rng.choice(["18-24", "25-34", "35-44", "45-54", "55+"]),
            rng.choice(["North", "South", "East", "West"]),
            rng.choice(["Electronics", "Apparel", "Grocery", "Home"]),
            str(rng.randint(5, 500)),
        ]))
    return "\n".join(lines) + "\n"


def seed(store: SandboxStore) -> None:
    rng = random.Random(SEED)
    password_hash = hash_password(DEMO_PASSWORD, rounds=DEMO_BCRYPT_ROUNDS)

    # ── catalog sellers & datasets ───────────────────────────────────────────
    for i, (ds_id, seller, title, description, category, price, views,
            created, points, featured, insights) in enumerate(CATALOG):
        owner_id = f"S-{i + 1:03d}"
        store.add_account(_account(
            password_hash, owner_id, seller, f"sales{i + 1}@marketsafe.io", Role.SELLER,
            Subscription(tier=TIERS[i], upload_count=1),
        ))
        store.add_dataset(
            Dataset(
                id=ds_id,
                title=title,
                description=description,
                category=category,
                price=Decimal(price),
                status=DatasetStatus.ANONYMIZED,
                is_listed=True,
                views=views,
                created_at=created.replace(tzinfo=timezone.utc),
                owner_id=owner_id,
                featured=featured,
                seller=seller,
                data_points=points,
                insights=insights,
            ),
            _csv(rng),
        )

    # ── demo seller with datasets still moving through anonymization ─────────
    store.add_account(_account(
        password_hash, "S-100", "Demo Seller", "seller@marketsafe.io", Role.SELLER,
        Subscription(tier=Tier.BASIC, upload_count=2),
    ))
    for ds_id, title, status in [
        ("100", "Loyalty Programme Members 2024", DatasetStatus.PROCESSING),
        ("101", "Store Footfall Sensors", DatasetStatus.FAILED),
    ]:
        store.add_dataset(
            Dataset(
                id=ds_id,
                title=title,
                description=f"{title} (demo upload)",
                category="Retail",
                price=Decimal("990"),
                status=status,
                created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
                owner_id="S-100",
                seller="Demo Seller",
            ),
            _csv(rng, rows=10),
        )

    # ── demo buyer ───────────────────────────────────────────────────────────
    store.add_account(_account(
        password_hash, "B-001", "Demo Buyer", "buyer@marketsafe.io", Role.BUYER, Subscription(),
    ))
