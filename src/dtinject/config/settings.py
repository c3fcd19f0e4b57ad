"""dtinject Settings configuration.

Uses Pydantic Settings for type-safe configuration management
with support for environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebhookSettings(BaseSettings):
    """Install container defaults owned by the webhook deployment."""

    model_config = SettingsConfigDict(
        env_prefix="DTINJECT_WEBHOOK_",
        extra="ignore",
    )

    image: str = Field(
        default="public.ecr.aws/dynatrace/dynatrace-operator:latest",
        description="Operator image used for the install container without node image pull",
    )
    bootstrapper_command: list[str] = Field(
        default_factory=lambda: ["/usr/local/bin/dynatrace-operator", "bootstrap"],
        description="Entrypoint of the install container when the image is not self-extracting",
    )
    is_openshift: bool = Field(
        default=False,
        description="Leave the install container user unset so OpenShift can assign one",
    )
    default_user_id: int = Field(
        default=1001,
        ge=1,
        description="User ID for the install container when the pod sets none",
    )
    default_group_id: int = Field(
        default=1001,
        ge=1,
        description="Group ID for the install container when the pod sets none",
    )


class KubernetesSettings(BaseSettings):
    """Kubernetes configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DTINJECT_K8S_",
        extra="ignore",
    )

    in_cluster: bool = Field(
        default=True,
        description="Whether running inside a Kubernetes cluster",
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Path to kubeconfig file (if not in-cluster)",
    )
    context: str | None = Field(
        default=None,
        description="Kubernetes context to use",
    )
    api_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Deadline in seconds for a single pipeline invocation",
    )


class ModulesSettings(BaseSettings):
    """Operator modules installed alongside the webhook."""

    model_config = SettingsConfigDict(
        env_prefix="DTINJECT_MODULES_",
        extra="ignore",
    )

    csi_driver: bool = Field(
        default=True,
        description="Whether the CSI driver provisioning the code module cache is installed",
    )


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DTINJECT_OBSERVABILITY_",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )


class Settings(BaseSettings):
    """Main dtinject configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DTINJECT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    modules: ModulesSettings = Field(default_factory=ModulesSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use this function to access settings throughout the application.
    Settings are cached after first load for performance.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()


def reload_settings() -> Settings:
    """Force reload settings (clears cache).

    Use this when you need to reload settings from environment
    or .env file, such as during testing.

    Returns:
        Settings: Fresh settings instance.
    """
    get_settings.cache_clear()
    return get_settings()
