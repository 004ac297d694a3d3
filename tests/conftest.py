import pytest

from skinfluence.config import Settings
from skinfluence.services.catalog import CatalogService
from skinfluence.services.routine_engine import RoutineEngine


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(catalog_path=tmp_path / "catalog.json", catalog_version="test-v1")


@pytest.fixture
def catalog(settings) -> CatalogService:
    return CatalogService(settings)


@pytest.fixture
def make_engine(settings):
    """Build an engine over an in-memory product list."""

    def _make(products) -> RoutineEngine:
        service = CatalogService(settings)
        service.load_products(products)
        return RoutineEngine(service, settings)

    return _make
