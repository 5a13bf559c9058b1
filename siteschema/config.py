"""Pydantic Settings: loads configuration from environment variables."""

from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings

from siteschema.analysis.confidence import StructuralTuning
from siteschema.crawl.models import CrawlConfig


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "ignore"}

    api_key: str

    redis_url: str = "redis://localhost:6379"
    page_ttl_seconds: int | None = None
    log_level: str = "INFO"

    # Crawl defaults, overridable per run
    crawl_max_pages: int = 1000
    crawl_max_depth: int = 10
    crawl_concurrency: int = 5
    crawl_throttle_ms: int = 100
    crawl_render: bool = False
    crawl_follow_subdomains: bool = False
    crawl_user_agent: str = "Mozilla/5.0 (compatible; siteschema-bot/1.0)"
    crawl_screenshot_mode: str = "none"
    crawl_timeout_seconds: float = 30.0
    screenshot_dir: str = "screenshots"

    analyze_max_clusters: int = 20
    analyze_include_singletons: bool = True

    ai_validation_enabled: bool = False
    llm_provider: str = "openai"
    fast_llm: str = "gpt-4o-mini"
    ai_max_instances: int = 40

    # Structural pre-confidence tuning for object detection
    object_skip_threshold: float = 0.8
    object_jaccard_weight: float = 0.4
    object_field_count_weight: float = 0.25
    object_type_consistency_weight: float = 0.35
    object_cv_penalty: float = 0.5
    object_max_source_penalty: float = 0.5
    object_source_step_penalty: float = 0.25
    object_large_sample_bonus: float = 0.05
    object_small_sample_penalty: float = 0.10

    def crawl_config(self, **overrides: Any) -> CrawlConfig:
        """Build an immutable run configuration, applying non-None overrides."""
        values: dict[str, Any] = {
            "max_pages": self.crawl_max_pages,
            "max_depth": self.crawl_max_depth,
            "concurrency": self.crawl_concurrency,
            "throttle_ms": self.crawl_throttle_ms,
            "render": self.crawl_render,
            "follow_subdomains": self.crawl_follow_subdomains,
            "user_agent": self.crawl_user_agent,
            "screenshot_mode": self.crawl_screenshot_mode,
            "timeout_seconds": self.crawl_timeout_seconds,
            "screenshot_dir": self.screenshot_dir,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return CrawlConfig(**values)

    def structural_tuning(self) -> StructuralTuning:
        return StructuralTuning(
            skip_threshold=self.object_skip_threshold,
            jaccard_weight=self.object_jaccard_weight,
            field_count_weight=self.object_field_count_weight,
            type_consistency_weight=self.object_type_consistency_weight,
            cv_penalty=self.object_cv_penalty,
            max_source_penalty=self.object_max_source_penalty,
            source_step_penalty=self.object_source_step_penalty,
            large_sample_bonus=self.object_large_sample_bonus,
            small_sample_penalty=self.object_small_sample_penalty,
        )

    @property
    def validator_model(self) -> str:
        return f"{self.llm_provider}:{self.fast_llm}"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
