"""Configuration management for the navigator."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Chat stream endpoint settings."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    chat_url: str = Field(default="http://localhost:3000/api/chat", alias="CHAT_API_URL")
    timeout: float = Field(default=60.0, alias="CHAT_TIMEOUT")


class SearchSettings(BaseSettings):
    """Search cascade settings. Durations are milliseconds."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    search_api_url: str = Field(default="", alias="SEARCH_API_URL")
    serper_api_key: str = Field(default="", alias="SERPER_API_KEY")
    scraper_api_key: str = Field(default="", alias="SCRAPER_API_KEY")
    puppeteer_ws_endpoint: str = Field(default="", alias="PUPPETEER_WS_ENDPOINT")

    timeout_ms: int = Field(default=10000, alias="SEARCH_TIMEOUT")
    max_results: int = Field(default=10, alias="SEARCH_MAX_RESULTS")
    max_retries: int = Field(default=3, alias="SEARCH_MAX_RETRIES")
    backoff_base_ms: int = Field(default=1000, alias="SEARCH_BACKOFF_BASE")
    backoff_max_ms: int = Field(default=15000, alias="SEARCH_BACKOFF_MAX")
    level_delay_ms: int = Field(default=200, alias="SEARCH_LEVEL_DELAY")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class ToolsSettings(BaseSettings):
    """Page-fetch / screenshot / app-launch service settings."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    base_url: str = Field(default="http://localhost:3000", alias="TOOLS_BASE_URL")
    timeout: float = Field(default=30.0, alias="TOOLS_TIMEOUT")


class NavigationSettings(BaseSettings):
    """Orchestrator limits."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    max_deep_read_depth: int = Field(default=5, alias="MAX_DEEP_READ_DEPTH")
    fetch_batch_size: int = Field(default=5, alias="FETCH_BATCH_SIZE")
    text_limit: int = Field(default=150, alias="NAV_TEXT_LIMIT")
    auto_summarize: bool = Field(default=True, alias="AUTO_SUMMARIZE")
    history_window: int = Field(default=5, alias="HISTORY_WINDOW")
    max_memory_facts: int = Field(default=50, alias="MAX_MEMORY_FACTS")
    scrape_images_pages: int = Field(default=5, alias="SCRAPE_IMAGES_PAGES")
    page_content_chars: int = Field(default=6000, alias="PAGE_CONTENT_CHARS")


class ServiceSettings(BaseModel):
    """HTTP service settings (uses nested delimiter SERVICE__)."""

    host: str = "0.0.0.0"
    port: int = 9100


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Sub-settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    tools: ToolsSettings = Field(default_factory=ToolsSettings)
    navigation: NavigationSettings = Field(default_factory=NavigationSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)

    # Paths
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    @property
    def config_dir(self) -> Path:
        """Get config directory."""
        return self.project_root / "config"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_site_registry(path: Path | None = None) -> dict[str, Any]:
    """Load site aliases and site-search templates from YAML."""
    if path is None:
        path = get_settings().config_dir / "site-registry.yaml"

    if not path.exists():
        return {"sites": {}}

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    data.setdefault("sites", {})
    return data
