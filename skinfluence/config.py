from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "catalog_v1.json"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SKINFLUENCE_",
        extra="ignore",
    )

    service_name: str = "Skinfluence"
    log_level: str = "INFO"

    # Catalog
    catalog_path: Path = DEFAULT_CATALOG_PATH
    catalog_version: str = "v1"

    # Routine engine
    rules_version: str = "mock-1"
    max_alternatives: int = 3


@lru_cache
def get_settings() -> Settings:
    return Settings()
