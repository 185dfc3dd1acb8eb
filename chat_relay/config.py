from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SAFETY_PHRASES = (
    "no puedo parar,he perdido mucho,necesito recuperar,estoy en deuda,mi familia,"
    "adicto,ayuda,problema,controlar,demasiado dinero"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: Literal["development", "production", "test"] = "development"
    log_level: str = "INFO"

    # Storage
    database_url: Optional[str] = None
    database_pool_size: int = 20
    redis_url: Optional[str] = None
    redis_socket_timeout_seconds: float = 2.0

    # Language model
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4-turbo-preview"
    max_tokens: int = 500
    temperature: float = 0.7
    llm_timeout_seconds: float = 60.0
    llm_mock_mode: bool = False

    # Retrieval
    embedding_model: str = "text-embedding-3-large"
    embedding_timeout_seconds: float = 30.0
    corpus_path: str = "knowledge/embeddings.json"
    retrieval_mode: Literal["auto", "embedding", "keyword"] = "auto"
    retrieval_top_k: int = 3
    context_char_budget: int = 1500
    snippet_chars: int = 200
    history_turns: int = 4

    response_cache_ttl_seconds: int = 3600

    # Telemetry
    telemetry_flush_interval_seconds: float = 5.0
    telemetry_batch_threshold: int = 50
    telemetry_max_queue_size: int = 5000
    telemetry_counter_ttl_seconds: int = 86400

    # Chat property
    tawk_api_key: Optional[str] = None
    tawk_property_id: Optional[str] = None
    tawk_webhook_secret: Optional[str] = None
    tawk_base_url: str = "https://api.tawk.to/v3"
    tawk_timeout_seconds: float = 15.0
    require_webhook_signature: bool = False

    # Comma-separated phrase list
    safety_phrases: str = DEFAULT_SAFETY_PHRASES
    system_message_marker: str = "[Sistema]"

    admin_token: Optional[str] = None
    cors_allow_origins: str = "*"

    @property
    def safety_phrase_list(self) -> list[str]:
        return [item.strip() for item in self.safety_phrases.split(",") if item.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]
        return origins or ["*"]

    @property
    def use_embeddings(self) -> bool:
        if self.retrieval_mode == "auto":
            return bool(self.openai_api_key)
        return self.retrieval_mode == "embedding"

    @property
    def use_mock_llm(self) -> bool:
        return self.llm_mock_mode or not self.openai_api_key


settings = Settings()


def get_settings() -> Settings:
    return settings
