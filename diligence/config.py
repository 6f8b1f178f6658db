from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "google/gemini-2.5-pro"
    openrouter_model: str = ""
    fallback_models: str = "google/gemini-2.5-flash"  # comma-separated, tried in order
    evidence_model: str = ""  # optional override for the evidence brief only
    synthesis_max_tokens: int = 8192

    # Search provider
    search_provider: str = "brave"  # brave | tavily
    brave_api_key: str = ""
    tavily_api_key: str = ""
    search_fallback_to_tavily: bool = True
    search_max_results: int = 10

    # Resilient invocation
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_backoff_multiplier: float = 2.0
    retry_max_delay_seconds: float = 10.0
    attempt_timeout_seconds: float = 90.0
    backend_max_concurrency: int = 0  # 0 = unlimited

    # Section orchestration
    section_timeout_seconds: float = 240.0
    orchestrator_timeout_seconds: float = 300.0

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def fallback_model_list(self) -> list[str]:
        return [m.strip() for m in self.fallback_models.split(",") if m.strip()]


settings = Settings()
