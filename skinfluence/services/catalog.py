"""
Catalog service — read-only product catalog held in memory.

The catalog is loaded once from a JSON array of products. A load builds a
complete new snapshot and swaps it in with a single assignment, so callers
only ever see the previous snapshot or the new one, never a partial load.
"""

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from skinfluence.config import Settings
from skinfluence.errors import CatalogNotFoundError, InvalidCatalogDataError
from skinfluence.schemas import (
    BudgetTier,
    PriceBand,
    Preferences,
    Product,
    RetailLink,
    SafetyFlag,
    StepType,
)

logger = logging.getLogger(__name__)

_PRODUCT_LIST = TypeAdapter(list[Product])

RETAILER_BASE_URLS = {
    "Amazon": "https://amazon.com/dp/",
    "Sephora": "https://sephora.com/product/",
    "Olive Young": "https://oliveyoung.com/store/goods/",
    "YesStyle": "https://yesstyle.com/en/",
    "TikTok Shop": "https://shop.tiktok.com/item/",
}
DEFAULT_RETAILER_BASE_URL = "https://example.com/product/"

# Mock price ranges (USD, inclusive) per price band
PRICE_RANGES = {
    PriceBand.LOW: (8, 25),
    PriceBand.MID: (25, 60),
    PriceBand.HIGH: (60, 120),
}


@dataclass(frozen=True)
class CatalogSnapshot:
    products: tuple[Product, ...] = ()
    index: Mapping[str, Product] = field(default_factory=lambda: MappingProxyType({}))
    version: str = ""

    @classmethod
    def build(cls, products: list[Product], version: str) -> "CatalogSnapshot":
        index: dict[str, Product] = {}
        for product in products:
            # first occurrence wins on duplicate ids
            index.setdefault(product.id, product)
        return cls(products=tuple(products), index=MappingProxyType(index), version=version)


class CatalogService:
    """Answers product queries against the current catalog snapshot."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._snapshot = CatalogSnapshot(version=settings.catalog_version)
        self._loaded = False

    # ── Loading ─────────────────────────────────────────────────────────────

    def load_catalog(self, path: Optional[Path] = None) -> list[Product]:
        """Load the full catalog, replacing the current snapshot on success."""
        path = Path(path or self.settings.catalog_path)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as e:
            logger.error(f"Catalog file missing: {path}")
            raise CatalogNotFoundError(path) from e
        except OSError as e:
            logger.error(f"Catalog at {path} is unreadable: {e}")
            raise InvalidCatalogDataError(path, str(e)) from e

        try:
            products = _PRODUCT_LIST.validate_json(raw)
        except ValidationError as e:
            logger.error(f"Catalog at {path} failed to parse: {e.error_count()} error(s)")
            raise InvalidCatalogDataError(path, str(e)) from e

        self._snapshot = CatalogSnapshot.build(products, self.settings.catalog_version)
        self._loaded = True
        logger.info(
            f"Loaded catalog {self._snapshot.version} | {len(products)} products | {path}"
        )
        return list(products)

    def load_products(self, products: list[Product], version: Optional[str] = None) -> None:
        """Install an already-built product list as the current snapshot."""
        self._snapshot = CatalogSnapshot.build(
            list(products), version or self.settings.catalog_version
        )
        self._loaded = True

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def version(self) -> str:
        return self._snapshot.version

    @property
    def products(self) -> tuple[Product, ...]:
        return self._snapshot.products

    # ── Queries ─────────────────────────────────────────────────────────────

    def by_id(self, product_id: str) -> Optional[Product]:
        return self._snapshot.index.get(product_id)

    def by_step_type(self, step_type: StepType) -> list[Product]:
        step_type = StepType(step_type)
        return [p for p in self._snapshot.products if p.step_type == step_type]

    def filtered(
        self,
        step_type: Optional[StepType] = None,
        budget_tier: Optional[BudgetTier] = None,
        required_flags: frozenset[SafetyFlag] = frozenset(),
        search_text: str = "",
    ) -> list[Product]:
        """Conjunctive filter over the catalog.

        A non-empty search_text short-circuits the other criteria: every product
        whose brand, name or an ingredient highlight contains the text is
        returned regardless of step type, budget or flags.
        """
        products = self._snapshot.products

        if search_text:
            needle = search_text.lower()
            return [
                p
                for p in products
                if needle in p.brand.lower()
                or needle in p.name.lower()
                or p.mentions(needle)
            ]

        if step_type is not None:
            step_type = StepType(step_type)
            products = [p for p in products if p.step_type == step_type]
        if budget_tier is not None:
            budget_tier = BudgetTier(budget_tier)
            products = [p for p in products if p.matches_budget(budget_tier)]
        if required_flags:
            required = frozenset(SafetyFlag(f) for f in required_flags)
            products = [p for p in products if p.matches_flags(required)]
        return list(products)

    def alternatives(
        self,
        product_id: str,
        preferences: Preferences,
        limit: Optional[int] = None,
    ) -> list[Product]:
        """Compliant alternatives, budget matches first, then most shared flags."""
        product = self.by_id(product_id)
        if product is None or not product.alternatives:
            return []

        required = preferences.required_flags()
        candidates = [
            alt
            for alt in (self.by_id(alt_id) for alt_id in product.alternatives)
            if alt is not None and alt.matches_flags(required)
        ]
        # sorted() is stable, ties keep the listed order
        ranked = sorted(
            candidates,
            key=lambda p: (
                not p.matches_budget(preferences.budget_tier),
                -len(p.flag_set & required),
            ),
        )
        return ranked[:limit] if limit is not None else ranked

    # ── Retail links ────────────────────────────────────────────────────────

    def retail_links(self, product_id: str, retailer_order: list[str]) -> list[RetailLink]:
        """Mock per-retailer links; prices are stable per product and retailer."""
        product = self.by_id(product_id)
        if product is None:
            return []

        links: list[RetailLink] = []
        for retailer in retailer_order:
            rng = random.Random(f"{product_id}:{retailer}")
            low, high = PRICE_RANGES.get(product.price_band, (15, 45))
            base_url = RETAILER_BASE_URLS.get(retailer, DEFAULT_RETAILER_BASE_URL)
            links.append(
                RetailLink(
                    retailer=retailer,
                    url=f"{base_url}{product_id}",
                    price=str(rng.randint(low, high)),
                    currency="USD",
                    in_stock=rng.random() >= 0.2,
                )
            )
        return links
