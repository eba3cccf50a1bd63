"""Provisioning settings using Pydantic settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from m365provision.provisioning.models import RetryPolicy


class ProvisioningSettings(BaseSettings):
    """Provisioning settings loaded from environment variables.

    Retry delays and attempt counts are fixed policy and are not
    configurable here; only the propagation wait and the activity log
    destination vary between environments.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROVISION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    propagation_delay_seconds: float = Field(
        default=15.0,
        ge=0,
        le=300,
        description="Wait before the first Exchange operation of a batch",
    )
    activity_log_path: Path | None = Field(
        default=None,
        description="JSON-lines file that receives every activity entry",
    )

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy with the configured propagation delay."""
        return RetryPolicy(propagation_delay_seconds=self.propagation_delay_seconds)


@lru_cache
def get_settings() -> ProvisioningSettings:
    """Get cached settings instance."""
    return ProvisioningSettings()
