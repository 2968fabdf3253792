import secrets
from typing import Optional

import bcrypt
from pydantic import BaseModel, Field

from marketsafe.models import Dataset, Purchase, Role, Subscription, User

BCRYPT_ROUNDS = 12


class Account(BaseModel):
    id: str
    name: str
    email: str
    role: Role
    password_hash: str
    joined_date: str
    subscription: Subscription = Field(default_factory=Subscription)

    def check_password(self, password: str) -> bool:
        return verify_password(password, self.password_hash)

    def as_user(self, token: str) -> User:
        return User(
            id=self.id,
            name=self.name,
            email=self.email,
            role=self.role,
            token=token,
            joined_date=self.joined_date,
            subscription=self.subscription,
        )


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False


class SandboxStore:
    """In-memory state of the sandbox authority."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.tokens: dict[str, str] = {}  # token -> account id
        self.datasets: dict[str, Dataset] = {}
        self.files: dict[str, str] = {}  # dataset id -> raw csv
        self.purchases: dict[str, Purchase] = {}

    # ── writes ────────────────────────────────────────────────────────────────

    def add_account(self, account: Account) -> None:
        self.accounts[account.id] = account

    def issue_token(self, account_id: str) -> str:
        token = secrets.token_urlsafe(32)
        self.tokens[token] = account_id
        return token

    def add_dataset(self, dataset: Dataset, csv: str = "") -> None:
        self.datasets[dataset.id] = dataset
        self.files[dataset.id] = csv

    def add_purchase(self, purchase: Purchase) -> None:
        self.purchases[purchase.id] = purchase

    def clear(self) -> None:
        self.accounts.clear()
        self.tokens.clear()
        self.datasets.clear()
        self.files.clear()
        self.purchases.clear()

    # ── reads ─────────────────────────────────────────────────────────────────

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def find_by_email(self, email: str) -> Optional[Account]:
        wanted = email.strip().lower()
        for account in self.accounts.values():
            if account.email.lower() == wanted:
                return account
        return None

    def account_for_token(self, token: str) -> Optional[Account]:
        account_id = self.tokens.get(token)
        return self.accounts.get(account_id) if account_id else None

    def get_dataset(self, dataset_id: str) -> Optional[Dataset]:
        return self.datasets.get(dataset_id)

    def datasets_for_owner(self, owner_id: str) -> list[Dataset]:
        return [d for d in self.datasets.values() if d.owner_id == owner_id]

    def listed_datasets(self) -> list[Dataset]:
        return [d for d in self.datasets.values() if d.is_listed]

    def purchases_for_buyer(self, buyer_id: str) -> list[Purchase]:
        return [p for p in self.purchases.values() if p.buyer_id == buyer_id]

    def find_purchase(self, buyer_id: str, dataset_id: str) -> Optional[Purchase]:
        for p in self.purchases.values():
            if p.buyer_id == buyer_id and p.dataset_id == dataset_id:
                return p
        return None

    def purchases_for_dataset(self, dataset_id: str) -> list[Purchase]:
        return [p for p in self.purchases.values() if p.dataset_id == dataset_id]
