from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = "sqlite:///./career_quest.db"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    log_level: str = "INFO"

    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_session_token: str | None = None
    textract_region: str | None = None

    ai_enabled: bool = False
    llm_provider: str = "openai"
    groq_api_key: str | None = None
    groq_model: str = "llama-3.1-8b-instant"
    groq_api_base: str = "https://api.groq.com/openai/v1"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_vision_model: str = "gpt-4o-mini"
    openai_api_base: str = "https://api.openai.com/v1"
    ai_text_timeout_seconds: float = 15.0
    ai_vision_timeout_seconds: float = 18.0

    ocr_provider: str = ""
    ocr_space_api_key: str | None = None
    ocr_space_api_base: str = "https://api.ocr.space"
    ocr_timeout_seconds: float = 12.0

    quest_login_max_failures: int = 5
    quest_login_lock_seconds: int = 60 * 15
    quest_login_rate_limit: int = 15
    quest_login_rate_window_seconds: int = 60 * 15
    quest_request_rate_limit: int = 90
    quest_request_rate_window_seconds: int = 60
    quest_candidate_limit: int = 5

    link_probe_timeout_seconds: float = 4.5
    link_max_redirects: int = 3
    screenshot_max_bytes: int = 3 * 1024 * 1024

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, value: str) -> str:
        # Render/Postgres providers often expose postgres:// URLs.
        if isinstance(value, str) and value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://"):]
        return value

settings = Settings()
