from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "job-search-agent"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    openai_api_key: str | None = None
    scoring_model: str = "gpt-4o-mini"
    field_detection_model: str = "gpt-4o-mini"
    adzuna_app_id: str | None = None
    adzuna_api_key: str | None = None
    linkedin_email: str | None = None
    linkedin_password: str | None = None
    search_query: str = "Full Stack Developer"
    browser_headless: bool = False
    browser_slow_mo_ms: int = 100
    worker_enabled: bool = False
    ingestion_interval_seconds: float = 3600.0
    max_backoff_seconds: float = 900.0
    retention_days: int = 7
    source_overrides_json: str | None = None
    otel_enabled: bool = True
    otel_service_name: str = "job-search-agent"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JSA_", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
