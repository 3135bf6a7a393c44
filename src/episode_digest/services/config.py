"""
Loads and handles config from config.yml
Deployment-specific values (OLLAMA_BASE_URL, OLLAMA_MODEL, DATABASE_PATH) may be overridden from .env
"""
import os
from typing import List, Dict, Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

CONFIG_ENV_VAR = "EPISODE_DIGEST_CONFIG"


class FeedConfig(BaseModel):
    """A single podcast RSS feed."""
    name: str
    url: str
    enabled: bool = True


class ProcessingConfig(BaseModel):
    concurrency: int = Field(default=10, ge=1, le=20)
    retry_attempts: int = Field(default=3, ge=0, le=10)
    retry_delay: float = Field(default=1.0, ge=0.0, le=10.0)  # seconds
    timeout_seconds: float = Field(default=300.0, gt=0)


class CachingConfig(BaseModel):
    """
    Item staleness and the two cache tiers.
    staleness_threshold_days=None means stored insights never go stale.
    """
    staleness_threshold_days: Optional[int] = Field(default=None, ge=1, le=365)
    max_period_cache_entries: int = Field(default=52, ge=1, le=104)
    enable_aggregate_cache: bool = True
    enable_discovery_cache: bool = True
    discovery_cache_days: int = Field(default=7, ge=1, le=365)


class FeaturesConfig(BaseModel):
    enable_detailed_progress: bool = True


class ReportConfig(BaseModel):
    timezone: str = "America/New_York"
    top_issue_count: int = Field(default=5, ge=1, le=20)


class Config(BaseModel):
    # Core
    DATABASE_PATH: str = "data/episodes.db"

    # Ollama
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"
    OLLAMA_API_KEY: Optional[str] = None  # only from .env, for authenticating proxies

    feeds: List[FeedConfig] = Field(default_factory=list)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    caching: CachingConfig = Field(default_factory=CachingConfig)
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path(path: Optional[str] = None) -> str:
    """Get the path to config.yml, handling different working directories."""
    if path:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Cannot find config file: {path}")
        return path

    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        if not os.path.exists(env_path):
            raise FileNotFoundError(f"Cannot find config file from {CONFIG_ENV_VAR}: {env_path}")
        return env_path

    # Try relative path first
    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # Try from project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    raise FileNotFoundError("Cannot find resources/config.yml")


def _parse_feeds(data: List[Dict[str, Any]]) -> List[FeedConfig]:
    feeds = []
    for feed in data or []:
        feeds.append(FeedConfig(
            name=feed.get("name") or feed.get("url", ""),
            url=feed.get("url", ""),
            enabled=_bool(feed.get("enabled", True)),
        ))
    return feeds


def parse_config(data: Dict[str, Any]) -> Config:
    """Build a Config from already-loaded YAML data, applying .env overrides."""
    data = data or {}
    caching = dict(data.get("caching") or {})
    for flag in ("enable_aggregate_cache", "enable_discovery_cache"):
        if flag in caching:
            caching[flag] = _bool(caching[flag])

    return Config(
        DATABASE_PATH=os.getenv("DATABASE_PATH") or data.get("DATABASE_PATH", "data/episodes.db"),
        OLLAMA_BASE_URL=os.getenv("OLLAMA_BASE_URL") or data.get("OLLAMA_BASE_URL", "http://localhost:11434"),
        OLLAMA_MODEL=os.getenv("OLLAMA_MODEL") or data.get("OLLAMA_MODEL", "llama3.1:8b"),
        OLLAMA_API_KEY=os.getenv("OLLAMA_API_KEY"),
        feeds=_parse_feeds(data.get("feeds", [])),
        processing=ProcessingConfig(**(data.get("processing") or {})),
        caching=CachingConfig(**caching),
        features=FeaturesConfig(**(data.get("features") or {})),
        report=ReportConfig(**(data.get("report") or {})),
    )


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and deployment overrides from .env."""
    load_dotenv()

    config_path = _get_config_path(path)

    with open(config_path, 'r') as file:
        config = yaml.safe_load(file)

    return parse_config(config)


def get_enabled_feeds(config: Config) -> List[FeedConfig]:
    """Get only enabled feeds."""
    return [feed for feed in config.feeds if feed.enabled]
