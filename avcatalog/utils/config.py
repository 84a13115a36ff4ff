"""Configuration management for avcatalog."""

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class DatabaseConfig(BaseModel):
    """Database configuration."""

    url: str = "sqlite:///data/db/catalog.db"
    echo: bool = False


class SiteConfig(BaseModel):
    """Storefront configuration."""

    mode: str = "adult-v"
    site_url: str = "https://www.adult-v.com"
    site_name: str = "Adult Viewer Lab"
    alternate_name: str = "アダルトビューアーラボ"
    default_locale: str = "ja"


class CrawlingConfig(BaseModel):
    """Shared crawler configuration."""

    max_retries: int = 3
    timeout: int = 30
    force_reprocess: bool = False
    rate_limits: Dict[str, Dict[str, float]] = Field(default_factory=dict)


class DugaSourceConfig(BaseModel):
    """DUGA affiliate API configuration."""

    enabled: bool = True
    app_id: str = ""
    agent_id: str = ""
    banner_id: str = "01"
    max_items: int = 500
    hits: int = 100


class SokmilSourceConfig(BaseModel):
    """SOKMIL affiliate API configuration."""

    enabled: bool = True
    api_key: str = ""
    affiliate_id: str = "47418-001"
    max_items: int = 500
    hits: int = 100


class B10fSourceConfig(BaseModel):
    """b10f CSV feed configuration."""

    enabled: bool = True
    affiliate_id: str = "12556"
    csv_url: str = "https://b10f.jp/csv_home.php?all=1&atype={affiliate_id}&nosep=1"


class SourcesConfig(BaseModel):
    """Per-ASP source configuration."""

    duga: DugaSourceConfig = Field(default_factory=DugaSourceConfig)
    sokmil: SokmilSourceConfig = Field(default_factory=SokmilSourceConfig)
    b10f: B10fSourceConfig = Field(default_factory=B10fSourceConfig)


class ScheduleConfig(BaseModel):
    """Scheduling configuration."""

    duga_hours: int = 6
    sokmil_hours: int = 6
    b10f_hours: int = 24
    reprocess_hours: int = 12
    expire_sales_minutes: int = 60
    backfill_hour: int = 3
    reconcile_hour: int = 4
    sitemap_hour: int = 5
    news_hour: int = 6
    max_instances_per_job: int = 1
    misfire_grace_time_seconds: int = 300


class APIConfig(BaseModel):
    """API configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    adjust_limit_offset_for_ids: bool = True


class IndexingConfig(BaseModel):
    """Search-engine notification configuration."""

    indexnow_key: str = ""
    indexnow_endpoint: str = "https://api.indexnow.org/indexnow"
    key_location: str = ""
    sitemap_dir: str = "data/sitemaps"
    recent_hours: int = 24
    ping_endpoints: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = "data/logs/avcatalog.log"


class Config(BaseModel):
    """Main configuration model."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    site: SiteConfig = Field(default_factory=SiteConfig)
    crawling: CrawlingConfig = Field(default_factory=CrawlingConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Settings(BaseSettings):
    """Environment-based settings.

    Empty values leave the YAML configuration untouched.
    """

    # Database
    database_url: str = ""

    # ASP credentials
    duga_app_id: str = ""
    duga_agent_id: str = ""
    duga_banner_id: str = ""
    sokmil_api_key: str = ""
    sokmil_affiliate_id: str = ""
    b10f_affiliate_id: str = ""

    # Publishing
    site_url: str = ""
    indexnow_key: str = ""

    # Logging
    log_level: str = ""

    # API
    api_host: str = ""
    api_port: int = 0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# (settings attribute, config path)
_ENV_OVERRIDES = [
    ("database_url", ("database", "url")),
    ("duga_app_id", ("sources", "duga", "app_id")),
    ("duga_agent_id", ("sources", "duga", "agent_id")),
    ("duga_banner_id", ("sources", "duga", "banner_id")),
    ("sokmil_api_key", ("sources", "sokmil", "api_key")),
    ("sokmil_affiliate_id", ("sources", "sokmil", "affiliate_id")),
    ("b10f_affiliate_id", ("sources", "b10f", "affiliate_id")),
    ("site_url", ("site", "site_url")),
    ("indexnow_key", ("indexing", "indexnow_key")),
    ("log_level", ("logging", "level")),
    ("api_host", ("api", "host")),
    ("api_port", ("api", "port")),
]


class ConfigManager:
    """Configuration manager for loading and merging config sources."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to YAML configuration file
        """
        load_dotenv()

        if config_path is None:
            config_path = Path(__file__).parent.parent.parent / "config" / "config.yaml"

        self.config_path = Path(config_path)
        self.yaml_config = self._load_yaml()
        self.env_settings = Settings()
        self.config = self._merge_config()

    def _load_yaml(self) -> Dict[str, Any]:
        """Load YAML configuration file."""
        if not self.config_path.exists():
            return {}

        with open(self.config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _merge_config(self) -> Config:
        """Merge YAML config with environment variables."""
        merged = copy.deepcopy(self.yaml_config)

        for attr, path in _ENV_OVERRIDES:
            value = getattr(self.env_settings, attr)
            if not value:
                continue
            section = merged
            for key in path[:-1]:
                section = section.setdefault(key, {})
            section[path[-1]] = value

        return Config(**merged)


# Global config instance
_config_manager: Optional[ConfigManager] = None


def get_config() -> Config:
    """Get global configuration instance."""
    return get_config_manager().config


def get_settings() -> Settings:
    """Get environment settings."""
    return get_config_manager().env_settings


def get_config_manager() -> ConfigManager:
    """Get configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
