from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from typing import Optional


class Settings(BaseSettings):
    # ─── Identity ──────────────────────────────────────────────
    role_arn: str = Field(..., min_length=1)
    source_profile: str = "default"
    aws_region: Optional[str] = None
    default_session_name: str = "jhondoe"

    # ─── Metadata endpoint ─────────────────────────────────────
    role_name: str = "dummy-iamrole"
    host: str = "0.0.0.0"
    port: int = 80

    # ─── Refresh policy ────────────────────────────────────────
    # STS AssumeRole accepts 900..43200 seconds
    duration_seconds: int = Field(1200, ge=900, le=43200)
    updatable_seconds: int = Field(600, gt=0)
    check_interval: float = Field(60, gt=0)
    provider_timeout: float = Field(30, gt=0)
    shutdown_timeout: float = Field(10, ge=0)

    # ─── Logging ───────────────────────────────────────────────
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="IMDS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @model_validator(mode="after")
    def check_refresh_window(self) -> "Settings":
        if self.updatable_seconds >= self.duration_seconds:
            raise ValueError(
                "updatable_seconds must be shorter than duration_seconds so credentials "
                "are refreshed before they expire"
            )
        return self


def get_settings() -> Settings:
    return Settings()
