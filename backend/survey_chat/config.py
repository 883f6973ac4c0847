"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Survey Chat"
    environment: str = "development"
    log_level: str = "info"

    # Hosted assistant
    openai_api_key: str = ""
    openai_assistant_id: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "gpt-4o-transcribe"
    http_timeout_seconds: float = 30.0

    # MongoDB (transcript blobs)
    mongodb_uri: str = "mongodb://mongodb:27017"
    mongodb_database: str = "survey_chat"
    transcript_collection: str = "transcript_blobs"
    transcript_prefix: str = "chat-transcripts"

    # Run coordination
    run_gate_poll_interval_seconds: float = 0.5
    run_gate_timeout_seconds: float = 15.0
    run_poll_interval_seconds: float = 1.0
    run_timeout_seconds: float = 120.0

    # Conversation
    end_sentinel: str = "END_INTERVIEW"
    context_value_max_length: int = 240
    header_field_max_length: int = 200

    # Widget
    frontend_url: str = "http://localhost:3000"
    widget_api_base_url: str = "http://localhost:8000"
    parent_webhook_url: str = ""
    max_recording_seconds: float = 120.0

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def assistant_configured(self) -> bool:
        return bool(self.openai_api_key and self.openai_assistant_id)


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency for injecting settings."""
    return settings
