"""
Loads and handles config from config.yml
API credentials (TWITTER_BEARER_TOKEN, OPENROUTER_API_KEY) are loaded from .env for security
"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from core.entities import SOURCE_TYPES, ModelConfig, Source

logger = logging.getLogger(__name__)


class SourceConfig(BaseModel):
    """Configuration for a single content source."""
    id: str
    name: str
    type: str  # blog, video, microblog
    locator: str  # feed URL, channel feed URL or @handle
    icon: Optional[str] = None
    enabled: bool = True

    def to_source(self) -> Source:
        return Source(
            id=self.id,
            name=self.name,
            type=self.type,
            locator=self.locator,
            icon=self.icon,
        )


class DemoPost(BaseModel):
    """Canned microblog post served in demo mode."""
    text: str
    url: str
    date: datetime
    author: str


class FetchConfig(BaseModel):
    max_items_per_source: int = 5
    max_content_length: int = 15000  # characters kept at ingestion
    prompt_content_length: int = 10000  # characters sent to a model
    min_content_length: int = 50  # title + content below this is not summarized
    transcript_min_length: int = 100
    fetch_timeout: float = 30.0  # seconds
    microblog_delay: float = 1.0  # seconds between microblog sources
    transcript_languages: List[str] = ["en"]


class RateLimitConfig(BaseModel):
    max_attempts: int = 3
    base_delay: float = 15.0
    max_delay: float = 60.0


class SummarizationConfig(BaseModel):
    chunk_size: int = 3
    chunk_delay: float = 1.0
    model_timeout: float = 120.0
    temperature: float = 0.3


class RetentionConfig(BaseModel):
    max_contents: int = 100
    max_comparisons: int = 500


class Config(BaseModel):
    # Core
    STORAGE_PATH: str = "data/news.db"
    DEMO_MODE: bool = False

    # Model providers
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_API_KEY: Optional[str] = None

    # Microblog API
    TWITTER_API_BASE_URL: str = "https://api.twitter.com/2"
    TWITTER_BEARER_TOKEN: Optional[str] = None

    sources: List[SourceConfig] = []
    models: List[ModelConfig] = []
    batch_model_id: Optional[str] = None
    selection_policy: Literal["random", "rotation"] = "random"
    batch_mode: bool = True

    fetch: FetchConfig = FetchConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    summarization: SummarizationConfig = SummarizationConfig()
    retention: RetentionConfig = RetentionConfig()

    demo_posts: Dict[str, DemoPost] = {}

    def enabled_sources(self) -> List[Source]:
        return [src.to_source() for src in self.sources if src.enabled]

    def get_source(self, source_id: str) -> Optional[Source]:
        for source in self.enabled_sources():
            if source.id == source_id:
                return source
        return None

    def get_model_by_id(self, model_id: str) -> Optional[ModelConfig]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    def get_all_models(self) -> List[ModelConfig]:
        return list(self.models)

    def batch_model(self) -> Optional[ModelConfig]:
        """
        The low-cost model used for digests: ``batch_model_id`` when set,
        else the first DeepSeek model, else the first model in the pool.
        """
        if self.batch_model_id:
            model = self.get_model_by_id(self.batch_model_id)
            if model:
                return model
            logger.warning(f"batch_model_id '{self.batch_model_id}' is not in the model pool")
        for model in self.models:
            if "deepseek" in model.id:
                return model
        return self.models[0] if self.models else None


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> str:
    """Get the path to config.yml, handling different working directories."""
    if os.path.exists("resources/config.yml"):
        return "resources/config.yml"

    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config_path = os.path.join(project_root, "resources", "config.yml")
    if os.path.exists(config_path):
        return config_path

    raise FileNotFoundError("Cannot find resources/config.yml")


def _parse_sources(data: List[Dict[str, Any]]) -> List[SourceConfig]:
    """Parse source entries, skipping the ones that are invalid."""
    sources = []
    for src in data:
        try:
            source = SourceConfig(
                id=src["id"],
                name=src.get("name", src["id"]),
                type=str(src.get("type", "")).lower(),
                locator=src.get("locator") or src.get("url", ""),
                icon=src.get("icon"),
                enabled=_bool(src.get("enabled", True)),
            )
        except (KeyError, ValueError) as e:
            logger.error(f"Skipping invalid source entry {src!r}: {e}")
            continue

        if source.type not in SOURCE_TYPES:
            logger.error(f"Skipping source '{source.id}': unknown type '{source.type}'")
            continue
        sources.append(source)
    return sources


def _parse_models(data: List[Dict[str, Any]]) -> List[ModelConfig]:
    return [
        ModelConfig(
            id=m["id"],
            name=m.get("name", m["id"]),
            provider=m.get("provider", "ollama"),
        )
        for m in data
    ]


def parse_config(config: Dict[str, Any]) -> Config:
    """Build a Config from already-loaded YAML data plus environment secrets."""
    return Config(
        STORAGE_PATH=config.get("STORAGE_PATH", "data/news.db"),
        DEMO_MODE=_bool(os.getenv("DEMO_MODE", config.get("DEMO_MODE", False))),

        OLLAMA_BASE_URL=config.get("OLLAMA_BASE_URL", "http://localhost:11434"),
        OPENROUTER_BASE_URL=config.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        OPENROUTER_API_KEY=os.getenv("OPENROUTER_API_KEY"),

        TWITTER_API_BASE_URL=config.get("TWITTER_API_BASE_URL", "https://api.twitter.com/2"),
        TWITTER_BEARER_TOKEN=os.getenv("TWITTER_BEARER_TOKEN"),

        sources=_parse_sources(config.get("sources", [])),
        models=_parse_models(config.get("models", [])),
        batch_model_id=config.get("batch_model_id"),
        selection_policy=config.get("selection_policy", "random"),
        batch_mode=_bool(config.get("batch_mode", True)),

        fetch=FetchConfig(**config.get("fetch", {})),
        rate_limit=RateLimitConfig(**config.get("rate_limit", {})),
        summarization=SummarizationConfig(**config.get("summarization", {})),
        retention=RetentionConfig(**config.get("retention", {})),

        demo_posts={
            source_id: DemoPost(**post)
            for source_id, post in (config.get("demo_posts") or {}).items()
        },
    )


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and credentials from .env."""
    load_dotenv()

    config_path = path or _get_config_path()

    with open(config_path, "r") as file:
        config = yaml.safe_load(file) or {}

    return parse_config(config)
