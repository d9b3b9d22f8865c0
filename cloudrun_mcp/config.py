"""
Configuration for the Cloud Run MCP server.

Environment is read here and only here; everything downstream receives
plain values through ToolSettings.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .models import ExecutionMode


DEFAULT_REGION = "europe-west1"
DEFAULT_PORT = 3000
DEFAULT_MAX_SERVICE_LOG_PAGES = 50


class ConfigurationError(ValueError):
    """Fatal startup configuration problem (bad flags, unknown tool names)."""


@dataclass
class ServerConfig:
    """Server configuration loaded from the environment."""
    project_id: Optional[str] = None
    region: Optional[str] = None
    default_service_name: Optional[str] = None
    skip_iam_check: bool = True
    force_stdio: bool = False
    port: int = DEFAULT_PORT
    service_log_max_pages: Optional[int] = DEFAULT_MAX_SERVICE_LOG_PAGES

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "ServerConfig":
        """Load configuration from environment variables."""
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        max_pages_str = os.getenv("SERVICE_LOG_MAX_PAGES", str(DEFAULT_MAX_SERVICE_LOG_PAGES))
        try:
            max_pages = int(max_pages_str)
        except ValueError:
            raise ConfigurationError(
                f"SERVICE_LOG_MAX_PAGES must be an integer, got: {max_pages_str}"
            )

        try:
            port = int(os.getenv("PORT", str(DEFAULT_PORT)))
        except ValueError:
            raise ConfigurationError(f"PORT must be an integer, got: {os.getenv('PORT')}")

        return cls(
            project_id=os.getenv("GOOGLE_CLOUD_PROJECT") or None,
            region=os.getenv("GOOGLE_CLOUD_REGION") or None,
            default_service_name=os.getenv("DEFAULT_SERVICE_NAME") or None,
            # Anything but an explicit "false" keeps the IAM check skipped
            skip_iam_check=os.getenv("SKIP_IAM_CHECK") != "false",
            force_stdio=bool(os.getenv("GCP_STDIO")),
            port=port,
            # 0 disables the ceiling
            service_log_max_pages=max_pages if max_pages > 0 else None,
        )

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if self.port < 1 or self.port > 65535:
            errors.append("port must be between 1 and 65535")
        if self.service_log_max_pages is not None and self.service_log_max_pages < 1:
            errors.append("service_log_max_pages must be positive")
        return errors


@dataclass(frozen=True)
class ToolSettings:
    """Effective defaults handed to tool handlers."""
    default_project_id: Optional[str] = None
    default_region: str = DEFAULT_REGION
    default_service_name: Optional[str] = None
    skip_iam_check: bool = True
    mode: ExecutionMode = ExecutionMode.LOCAL
    service_log_max_pages: Optional[int] = DEFAULT_MAX_SERVICE_LOG_PAGES

    @property
    def is_remote(self) -> bool:
        return self.mode == ExecutionMode.REMOTE


def resolve_settings(
    config: ServerConfig,
    metadata_project: Optional[str],
    metadata_region: Optional[str],
    mode: ExecutionMode,
) -> ToolSettings:
    """Resolve effective defaults: environment, then GCP metadata, then built-in."""
    return ToolSettings(
        default_project_id=config.project_id or metadata_project,
        default_region=config.region or metadata_region or DEFAULT_REGION,
        default_service_name=config.default_service_name,
        skip_iam_check=config.skip_iam_check,
        mode=mode,
        service_log_max_pages=config.service_log_max_pages,
    )
