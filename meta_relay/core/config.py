"""
Application configuration using 12-factor environment variables.
"""
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MetaConfig(BaseModel):
    """
    Provider configuration handed to interpreters, store and send pipeline.

    Built once from Settings so business logic never reaches for globals.
    """

    model_config = {"frozen": True}

    base_url: str
    whatsapp_token: str = ""
    whatsapp_phone_number_id: str = ""
    whatsapp_business_number: str = ""
    whatsapp_business_account_id: str = ""
    messenger_token: str = ""
    page_id: str = ""
    http_timeout: float = 15.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Meta Relay")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(default="sqlite:///./data/meta_relay.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Graph API
    meta_base_url: str = Field(default="https://graph.facebook.com/v21.0")
    meta_http_timeout: float = Field(default=15.0)

    # WhatsApp Business
    meta_whatsapp_token: str = Field(default="")
    meta_whatsapp_phone_number_id: str = Field(default="", description="Phone number id used in send URLs")
    meta_whatsapp_business_number: str = Field(default="", description="Business number as it appears in webhook 'from'")
    meta_whatsapp_business_account_id: str = Field(default="", description="WABA id owning the template catalog")

    # Messenger
    meta_messenger_token: str = Field(default="")
    meta_page_id: str = Field(default="", description="Facebook page id the Messenger inbox belongs to")

    # Webhook security
    meta_app_secret: Optional[str] = Field(default=None, description="App secret for X-Hub-Signature-256 validation")
    meta_webhook_verify_token: Optional[str] = Field(default=None, description="Token echoed during subscription verification")

    @property
    def is_app_secret_configured(self) -> bool:
        """Check if the webhook signing secret is configured."""
        return bool(self.meta_app_secret)

    def meta_config(self) -> MetaConfig:
        """Build the provider configuration value."""
        return MetaConfig(
            base_url=self.meta_base_url.rstrip("/"),
            whatsapp_token=self.meta_whatsapp_token,
            whatsapp_phone_number_id=self.meta_whatsapp_phone_number_id,
            whatsapp_business_number=self.meta_whatsapp_business_number,
            whatsapp_business_account_id=self.meta_whatsapp_business_account_id,
            messenger_token=self.meta_messenger_token,
            page_id=self.meta_page_id,
            http_timeout=self.meta_http_timeout,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
