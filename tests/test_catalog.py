"""
Catalog service tests — loading, snapshot retention, queries and alternatives.
"""

import json

import pytest

from factories import make_preferences, make_product
from skinfluence.config import DEFAULT_CATALOG_PATH, Settings
from skinfluence.errors import CatalogError, CatalogNotFoundError, InvalidCatalogDataError
from skinfluence.schemas import BudgetTier, PriceBand, SafetyFlag, StepType
from skinfluence.services.catalog import CatalogService, CatalogSnapshot


def _write_catalog(path, products: list[dict]) -> None:
    path.write_text(json.dumps(products))


def _raw_product(id: str, step_type: str = "cleanser", **overrides) -> dict:
    raw = {
        "id": id,
        "brand": "Brand",
        "name": f"Name {id}",
        "stepType": step_type,
        "flags": [],
        "inciHighlights": [],
        "priceBand": "$",
        "images": [],
    }
    raw.update(overrides)
    return raw


# ── Loading ─────────────────────────────────────────────────────────────────


class TestLoadCatalog:
    def test_loads_camel_case_json(self, catalog, settings):
        _write_catalog(
            settings.catalog_path,
            [
                _raw_product(
                    "c1",
                    flags=["fragrance_free"],
                    inciHighlights=["Ceramides"],
                    alternatives=["c2"],
                ),
                _raw_product("c2", priceBand="$$"),
            ],
        )
        products = catalog.load_catalog()

        assert [p.id for p in products] == ["c1", "c2"]
        assert catalog.is_loaded
        assert catalog.version == "test-v1"
        first = catalog.by_id("c1")
        assert first.step_type == StepType.CLEANSER
        assert first.flags == (SafetyFlag.FRAGRANCE_FREE,)
        assert first.inci_highlights == ("Ceramides",)
        assert first.alternatives == ("c2",)
        assert catalog.by_id("c2").price_band == PriceBand.MID

    def test_missing_file_raises_not_found(self, catalog, tmp_path):
        with pytest.raises(CatalogNotFoundError):
            catalog.load_catalog(tmp_path / "nope.json")
        assert not catalog.is_loaded
        assert catalog.products == ()

    def test_unparseable_json_raises_invalid_data(self, catalog, settings):
        settings.catalog_path.write_text("{not json")
        with pytest.raises(InvalidCatalogDataError):
            catalog.load_catalog()

    def test_schema_mismatch_raises_invalid_data(self, catalog, settings):
        _write_catalog(settings.catalog_path, [{"id": "x", "stepType": "toner"}])
        with pytest.raises(InvalidCatalogDataError):
            catalog.load_catalog()

    def test_unreadable_path_raises_catalog_error(self, catalog, tmp_path):
        with pytest.raises(InvalidCatalogDataError):
            catalog.load_catalog(tmp_path)
        assert not catalog.is_loaded

    def test_errors_share_a_base_class(self):
        assert issubclass(CatalogNotFoundError, CatalogError)
        assert issubclass(InvalidCatalogDataError, CatalogError)

    def test_failed_reload_keeps_previous_snapshot(self, catalog, settings):
        _write_catalog(settings.catalog_path, [_raw_product("c1")])
        catalog.load_catalog()

        settings.catalog_path.write_text("[{\"id\": 1}]")
        with pytest.raises(InvalidCatalogDataError):
            catalog.load_catalog()

        assert [p.id for p in catalog.products] == ["c1"]
        assert catalog.by_id("c1") is not None

    def test_successful_reload_replaces_whole_set(self, catalog, settings):
        _write_catalog(settings.catalog_path, [_raw_product("c1"), _raw_product("c2")])
        catalog.load_catalog()
        _write_catalog(settings.catalog_path, [_raw_product("c3")])
        catalog.load_catalog()

        assert [p.id for p in catalog.products] == ["c3"]
        assert catalog.by_id("c1") is None

    def test_bundled_catalog_loads(self):
        service = CatalogService(Settings(catalog_path=DEFAULT_CATALOG_PATH))
        products = service.load_catalog()
        assert products
        assert {p.step_type for p in products} == set(StepType)
        ids = {p.id for p in products}
        for product in products:
            assert set(product.alternatives or ()) <= ids


# ── Queries ─────────────────────────────────────────────────────────────────


@pytest.fixture
def loaded(catalog):
    catalog.load_products(
        [
            make_product(
                "cl-cheap",
                StepType.CLEANSER,
                brand="CeraVe",
                name="Foaming Cleanser",
                price_band=PriceBand.LOW,
                flags=(SafetyFlag.FRAGRANCE_FREE,),
                inci_highlights=("Ceramides", "Niacinamide"),
            ),
            make_product(
                "se-vitc",
                StepType.SERUM,
                brand="Klairs",
                name="Vitamin Drop",
                price_band=PriceBand.MID,
                flags=(SafetyFlag.FRAGRANCE_FREE, SafetyFlag.PREGNANCY_SAFE),
                inci_highlights=("Ascorbic Acid",),
            ),
            make_product(
                "cl-lux",
                StepType.CLEANSER,
                brand="Fresh",
                name="Soy Cleanser",
                price_band=PriceBand.HIGH,
                flags=(SafetyFlag.FRAGRANCE_FREE, SafetyFlag.PREGNANCY_SAFE),
            ),
        ]
    )
    return catalog


class TestQueries:
    def test_by_id(self, loaded):
        assert loaded.by_id("se-vitc").brand == "Klairs"
        assert loaded.by_id("missing") is None

    def test_snapshot_index_is_read_only(self):
        snapshot = CatalogSnapshot.build([make_product("p", StepType.SERUM)], "v1")
        with pytest.raises(TypeError):
            snapshot.index["q"] = make_product("q", StepType.SERUM)
        assert list(snapshot.index) == ["p"]

    def test_by_step_type_keeps_catalog_order(self, loaded):
        assert [p.id for p in loaded.by_step_type(StepType.CLEANSER)] == ["cl-cheap", "cl-lux"]
        assert [p.id for p in loaded.by_step_type("serum")] == ["se-vitc"]
        assert loaded.by_step_type(StepType.MASK) == []

    def test_filtered_without_criteria_returns_everything(self, loaded):
        assert [p.id for p in loaded.filtered()] == ["cl-cheap", "se-vitc", "cl-lux"]

    def test_filtered_is_conjunctive(self, loaded):
        result = loaded.filtered(
            step_type=StepType.CLEANSER,
            budget_tier=BudgetTier.PREMIUM,
            required_flags=frozenset({SafetyFlag.FRAGRANCE_FREE}),
        )
        assert [p.id for p in result] == ["cl-lux"]

    def test_filtered_flags_use_superset_rule(self, loaded):
        required = frozenset({SafetyFlag.FRAGRANCE_FREE, SafetyFlag.PREGNANCY_SAFE})
        assert [p.id for p in loaded.filtered(required_flags=required)] == ["se-vitc", "cl-lux"]

    def test_filtered_budget_tier(self, loaded):
        assert [p.id for p in loaded.filtered(budget_tier=BudgetTier.VALUE)] == ["cl-cheap"]
        assert [p.id for p in loaded.filtered(budget_tier=BudgetTier.BALANCED)] == [
            "cl-cheap",
            "se-vitc",
        ]

    def test_search_matches_brand_name_and_ingredients(self, loaded):
        assert [p.id for p in loaded.filtered(search_text="cerave")] == ["cl-cheap"]
        assert [p.id for p in loaded.filtered(search_text="SOY")] == ["cl-lux"]
        assert [p.id for p in loaded.filtered(search_text="ascorbic")] == ["se-vitc"]

    def test_search_short_circuits_other_criteria(self, loaded):
        """Search text ignores step type, budget and flags."""
        result = loaded.filtered(
            step_type=StepType.SERUM,
            budget_tier=BudgetTier.PREMIUM,
            required_flags=frozenset({SafetyFlag.EO_FREE}),
            search_text="cleanser",
        )
        assert [p.id for p in result] == ["cl-cheap", "cl-lux"]


# ── Alternatives ────────────────────────────────────────────────────────────


class TestAlternatives:
    def test_budget_match_outranks_flag_count(self, catalog):
        catalog.load_products(
            [
                make_product("base", StepType.SERUM, alternatives=("off-budget", "on-budget")),
                make_product(
                    "off-budget",
                    StepType.SERUM,
                    price_band=PriceBand.HIGH,
                    flags=(SafetyFlag.FRAGRANCE_FREE, SafetyFlag.EO_FREE),
                ),
                make_product(
                    "on-budget",
                    StepType.SERUM,
                    price_band=PriceBand.LOW,
                    flags=(SafetyFlag.FRAGRANCE_FREE,),
                ),
            ]
        )
        prefs = make_preferences(BudgetTier.VALUE)

        result = catalog.alternatives("base", prefs)
        assert [p.id for p in result] == ["on-budget", "off-budget"]

    def test_ties_keep_listed_order(self, catalog):
        catalog.load_products(
            [
                make_product("base", StepType.SERUM, alternatives=("two", "one")),
                make_product(
                    "one",
                    StepType.SERUM,
                    price_band=PriceBand.LOW,
                    flags=(SafetyFlag.FRAGRANCE_FREE,),
                ),
                make_product(
                    "two",
                    StepType.SERUM,
                    price_band=PriceBand.LOW,
                    flags=(SafetyFlag.FRAGRANCE_FREE, SafetyFlag.EO_FREE),
                ),
            ]
        )
        prefs = make_preferences(BudgetTier.VALUE, fragrance_free=True)
        assert [p.id for p in catalog.alternatives("base", prefs)] == ["two", "one"]

    def test_non_compliant_and_unknown_alternatives_dropped(self, catalog):
        catalog.load_products(
            [
                make_product("base", StepType.SERUM, alternatives=("ghost", "bare", "safe")),
                make_product("bare", StepType.SERUM),
                make_product("safe", StepType.SERUM, flags=(SafetyFlag.PREGNANCY_SAFE,)),
            ]
        )
        prefs = make_preferences(pregnancy_safe=True)
        assert [p.id for p in catalog.alternatives("base", prefs)] == ["safe"]

    def test_limit_truncates(self, catalog):
        catalog.load_products(
            [make_product("base", StepType.SERUM, alternatives=("a", "b", "c"))]
            + [make_product(x, StepType.SERUM) for x in ("a", "b", "c")]
        )
        result = catalog.alternatives("base", make_preferences(), limit=2)
        assert [p.id for p in result] == ["a", "b"]

    def test_unknown_product_or_no_alternatives(self, catalog):
        catalog.load_products([make_product("base", StepType.SERUM)])
        assert catalog.alternatives("base", make_preferences()) == []
        assert catalog.alternatives("missing", make_preferences()) == []


# ── Retail links ────────────────────────────────────────────────────────────


class TestRetailLinks:
    def test_one_link_per_retailer_in_order(self, loaded):
        links = loaded.retail_links("cl-cheap", ["Sephora", "Amazon", "Corner Shop"])

        assert [link.retailer for link in links] == ["Sephora", "Amazon", "Corner Shop"]
        assert links[0].url == "https://sephora.com/product/cl-cheap"
        assert links[1].url == "https://amazon.com/dp/cl-cheap"
        assert links[2].url == "https://example.com/product/cl-cheap"
        for link in links:
            assert 8 <= int(link.price) <= 25
            assert link.currency == "USD"

    def test_links_are_reproducible(self, loaded):
        first = loaded.retail_links("se-vitc", ["Amazon", "YesStyle"])
        second = loaded.retail_links("se-vitc", ["Amazon", "YesStyle"])
        assert first == second

    def test_unknown_product_has_no_links(self, loaded):
        assert loaded.retail_links("missing", ["Amazon"]) == []
