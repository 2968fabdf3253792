from dataclasses import dataclass
from typing import Any, Callable, Iterable, List

from marketsafe.models import Dataset, SortKey

ALL_CATEGORIES = "All"

CATEGORIES = [
    ALL_CATEGORIES,
    "E-commerce",
    "Social Media",
    "Mobile Apps",
    "Retail",
    "Healthcare",
    "Finance",
    "Travel",
    "Education",
]

# (key, descending). Python's sort is stable in both directions, so equal
# keys keep catalog order.
_ORDERINGS: dict[SortKey, tuple[Callable[[Dataset], Any], bool]] = {
    SortKey.FEATURED: (lambda d: d.featured, True),
    SortKey.NEWEST: (lambda d: d.created_at, True),
    SortKey.POPULAR: (lambda d: d.views, True),
    SortKey.PRICE_LOW: (lambda d: d.price, False),
    SortKey.PRICE_HIGH: (lambda d: d.price, True),
}


@dataclass(frozen=True)
class MarketplaceQuery:
    search: str = ""
    category: str = ALL_CATEGORIES
    sort: SortKey = SortKey.FEATURED

    def matches(self, dataset: Dataset) -> bool:
        term = self.search.lower()
        matches_search = term in dataset.title.lower() or term in dataset.description.lower()
        matches_category = self.category == ALL_CATEGORIES or dataset.category == self.category
        return matches_search and matches_category

    def apply(self, catalog: Iterable[Dataset]) -> List[Dataset]:
        key, descending = _ORDERINGS[SortKey(self.sort)]
        filtered = [d for d in catalog if self.matches(d)]
        return sorted(filtered, key=key, reverse=descending)
