"""Configuration management for Personal Primer."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnthropicSettings(BaseSettings):
    """Content generation service settings."""

    api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")
    model: str = Field(default="claude-sonnet-4-5-20250929", alias="PRIMER_MODEL")
    timeout: float = Field(default=120.0, alias="PRIMER_LLM_TIMEOUT")
    max_tokens: int = Field(default=4096, alias="PRIMER_LLM_MAX_TOKENS")


class SearchSettings(BaseSettings):
    """Google Custom Search settings (used by the reading resolver)."""

    api_key: str = Field(default="", alias="GOOGLE_SEARCH_API_KEY")
    cx: str = Field(default="", alias="GOOGLE_SEARCH_CX")
    url: str = Field(
        default="https://www.googleapis.com/customsearch/v1",
        alias="GOOGLE_SEARCH_URL",
    )
    num_results: int = Field(default=5, alias="GOOGLE_SEARCH_NUM")

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.cx)


class CatalogSettings(BaseSettings):
    """Music catalog and image archive endpoints."""

    itunes_search_url: str = Field(
        default="https://itunes.apple.com/search", alias="ITUNES_SEARCH_URL"
    )
    itunes_country: str = Field(default="US", alias="ITUNES_COUNTRY")
    itunes_limit: int = Field(default=10, alias="ITUNES_LIMIT")
    commons_api_url: str = Field(
        default="https://commons.wikimedia.org/w/api.php", alias="COMMONS_API_URL"
    )
    wikipedia_api_url: str = Field(
        default="https://en.wikipedia.org/w/api.php", alias="WIKIPEDIA_API_URL"
    )
    thumb_width: int = Field(default=800, alias="IMAGE_THUMB_WIDTH")
    timeout: float = Field(default=15.0, alias="CATALOG_TIMEOUT")
    user_agent: str = Field(
        default="PersonalPrimer/1.0 (daily curation)", alias="CATALOG_USER_AGENT"
    )


class CurationSettings(BaseSettings):
    """Curation pipeline tuning."""

    exposure_window_days: int = Field(default=14, alias="EXPOSURE_WINDOW_DAYS")
    insight_window_days: int = Field(default=14, alias="INSIGHT_WINDOW_DAYS")
    target_duration_days: int = Field(default=7, alias="ARC_TARGET_DURATION_DAYS")
    lock_timeout_seconds: float = Field(default=600.0, alias="GENERATION_LOCK_TIMEOUT")


class StorageSettings(BaseSettings):
    """SQLite storage settings."""

    db_path: Path = Field(default=Path("primer_data/primer.db"), alias="PRIMER_DB_PATH")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    curation: CurationSettings = Field(default_factory=CurationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    @property
    def config_dir(self) -> Path:
        """Get config directory."""
        return self.project_root / "config"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_starter_arcs(path: Path | None = None) -> list[dict[str, Any]]:
    """Load starter arc definitions from YAML."""
    settings = get_settings()
    arcs_path = path or settings.config_dir / "starter_arcs.yaml"

    with open(arcs_path) as f:
        data = yaml.safe_load(f) or {}
    return list(data.get("starter_arcs", []))
