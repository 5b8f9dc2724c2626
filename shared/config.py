"""
Shared configuration for all services, read from the environment and `.env`.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Vertex AI
    gcp_project: Optional[str] = Field(default=None, alias="GCP_PROJECT")
    gcp_region: str = Field(default="us-central1", alias="GCP_REGION")
    text_model: str = Field(default="gemini-2.5-flash", alias="TEXT_MODEL")
    image_model: str = Field(default="imagen-3.0-generate-002", alias="IMAGE_MODEL")

    # Image capability selection: imagen | local | http
    image_provider: str = Field(default="imagen", alias="IMAGE_PROVIDER")
    sd_api_url: Optional[str] = Field(default=None, alias="SD_API_URL")
    image_api_url: str = Field(default="https://api.siliconflow.cn/v1", alias="IMAGE_API_URL")
    image_api_key: Optional[str] = Field(default=None, alias="IMAGE_API_KEY")
    image_api_model: str = Field(default="Kwai-Kolors/Kolors", alias="IMAGE_API_MODEL")

    # Timeouts in seconds. Each is shorter than the caller's own timeout.
    text_timeout: float = Field(default=25.0, alias="TEXT_TIMEOUT")
    image_timeout: float = Field(default=30.0, alias="IMAGE_TIMEOUT")
    embed_timeout: float = Field(default=15.0, alias="EMBED_TIMEOUT")
    client_timeout: float = Field(default=60.0, alias="CLIENT_TIMEOUT")
    # Wall-clock cap on one image request, retries and fallback included
    image_request_budget: float = Field(default=50.0, gt=0, alias="IMAGE_REQUEST_BUDGET")

    # Inter-service communication
    content_service_url: str = Field(default="http://localhost:8001", alias="CONTENT_SERVICE_URL")
    image_service_url: str = Field(default="http://localhost:8002", alias="IMAGE_SERVICE_URL")
    design_service_url: str = Field(default="http://localhost:8003", alias="DESIGN_SERVICE_URL")
    template_service_url: str = Field(default="http://localhost:8004", alias="TEMPLATE_SERVICE_URL")

    image_concurrency: int = Field(default=2, ge=1, alias="IMAGE_CONCURRENCY")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def check_image_budget(self) -> "Settings":
        if self.image_request_budget >= self.client_timeout:
            raise ValueError(
                f"IMAGE_REQUEST_BUDGET ({self.image_request_budget}s) must be shorter than "
                f"CLIENT_TIMEOUT ({self.client_timeout}s)"
            )
        return self


@lru_cache()
def get_settings() -> Settings:
    return Settings()
