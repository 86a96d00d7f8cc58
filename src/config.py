"""
Centralized Configuration System
Environment-aware settings for the webhook engine, AI pipeline and providers.
"""
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal, Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    """
    Production-grade configuration management.
    Loads from environment variables with sensible defaults.
    Provider credentials are SecretStr so they never end up in logs or reprs.
    """

    # ============================================
    # AI BACKEND
    # ============================================
    # The OpenAI provider reads OPENAI_API_KEY from the environment itself;
    # this field only decides whether the AI path is enabled at all.
    openai_api_key: Optional[SecretStr] = None
    classifier_model: str = "openai:gpt-4o-mini"
    responder_model: str = "openai:gpt-4o-mini"

    classification_temperature: float = 0.3
    classification_max_tokens: int = 500
    generation_temperature: float = 0.7
    generation_max_tokens: int = 100

    # Retry on rate limiting: 3 attempts, 1s doubling, capped at 10s
    ai_max_attempts: int = 3
    ai_retry_base_delay_seconds: float = 1.0
    ai_retry_max_delay_seconds: float = 10.0

    auto_response_confidence_threshold: float = 0.7
    max_response_chars: int = 160

    # ============================================
    # BUSINESS HOURS
    # ============================================
    business_timezone: str = "Europe/Rome"
    business_open_hour: int = 9
    business_close_hour: int = 18
    business_name: str = "EasyCashFlows"
    support_phone: str = "+39 123 456 7890"

    # ============================================
    # TWILIO (WhatsApp + SMS)
    # ============================================
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[SecretStr] = None
    twilio_whatsapp_from: Optional[str] = None
    twilio_sms_from: Optional[str] = None

    # ============================================
    # LINKMOBILITY (WhatsApp)
    # ============================================
    linkmobility_api_key: Optional[SecretStr] = None
    linkmobility_endpoint: str = "https://api.linkmobility.eu"
    linkmobility_platform_id: Optional[str] = None
    linkmobility_partner_id: Optional[str] = None
    linkmobility_source_number: Optional[str] = None

    # ============================================
    # SKEBBY (SMS)
    # ============================================
    skebby_username: Optional[str] = None
    skebby_password: Optional[SecretStr] = None
    skebby_api_url: str = "https://api.skebby.it/API/v1.0/REST/"
    skebby_message_type: str = "GP"
    skebby_sender: Optional[str] = "EasyCashFlows"

    # ============================================
    # SENDGRID (Email)
    # ============================================
    sendgrid_api_key: Optional[SecretStr] = None
    sendgrid_from_email: Optional[str] = None
    sendgrid_from_name: str = "EasyCashFlows"

    # ============================================
    # FACEBOOK MESSENGER
    # ============================================
    facebook_page_access_token: Optional[SecretStr] = None
    facebook_verify_token: Optional[SecretStr] = None
    facebook_app_secret: Optional[SecretStr] = None
    facebook_graph_api_version: str = "v18.0"

    # ============================================
    # OUTBOUND HTTP
    # ============================================
    provider_http_timeout_seconds: float = 10.0

    # ============================================
    # MONGODB (collaborating storage)
    # ============================================
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "easycashflows"
    mongodb_max_pool_size: int = 20
    mongodb_min_pool_size: int = 1
    mongodb_server_selection_timeout_ms: int = 5000
    business_context_cache_seconds: int = 60
    delivery_retention_days: int = 30  # TTL for the dedup ledger, 0 keeps forever

    # ============================================
    # OBSERVABILITY
    # ============================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    enable_structured_logging: bool = False  # Set to True for production JSON logs

    # ============================================
    # ENVIRONMENT
    # ============================================
    environment: Literal["development", "staging", "production"] = "development"
    public_base_url: Optional[str] = None  # Used by /webhooks/info when set

    @property
    def enforce_signatures(self) -> bool:
        """Webhook signatures are mandatory only in the production profile."""
        return self.environment == "production"

    @property
    def ai_enabled(self) -> bool:
        return self.openai_api_key is not None


@lru_cache()
def get_settings() -> Settings:
    """
    Singleton pattern for settings.
    Uses LRU cache to ensure only one Settings instance exists.
    """
    return Settings()


# Convenience accessor for common use
settings = get_settings()
