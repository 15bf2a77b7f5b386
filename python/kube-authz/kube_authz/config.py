"""Service settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """kube-authz configuration.

    Every field can be overridden by an environment variable of the same
    name (e.g. ``AUTHZ_POLICY_PATHS='["./policies"]'``, ``API_LOG_LEVEL=debug``).
    """

    # API
    api_log_level: str = "info"

    # Policy loading
    authz_policy_paths: list[str] = []
    authz_ignored_kinds: list[str] = ["Pod", "Deployment", "Service", "ConfigMap", "Secret"]
    authz_require_namespaces: bool = False

    model_config = {"env_prefix": "", "case_sensitive": False}


settings = Settings()
