"""Unified configuration management for the outfit analysis gateway.

Simple, clean configuration shared by the gateway service, the analysis
collaborator and the Python gateway client.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, field_validator

from .schemas import CollaboratorConfig, LogConfig, ServiceConfig, StorageConfig


class ServiceSettings(BaseModel):
    """Unified settings for the gateway and its clients.

    Each component uses only the fields it needs.
    """

    # ========================================================================
    # BASIC SETTINGS
    # ========================================================================
    data_dir: str = ".data"
    log_level: str = "INFO"
    log_format: str = "text"
    debug: bool = False
    environment: str = "development"
    service_port: int = 8000

    # ========================================================================
    # VISION COLLABORATOR SETTINGS
    # ========================================================================
    xai_api_key: Optional[str] = None
    vision_base_url: str = "https://api.x.ai/v1"
    vision_model: str = "grok-2-vision"
    vision_timeout: int = 30
    vision_detailed_timeout: int = 45

    # ========================================================================
    # CACHE SETTINGS
    # ========================================================================
    cache_ttl_seconds: int = 300
    stale_window_seconds: float = 3.0
    occasion_config_path: Optional[str] = None

    # ========================================================================
    # CLIENT SETTINGS - only used by the gateway client and scripts
    # ========================================================================
    gateway_url: str = "http://localhost:8000"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment."""
        valid_envs = ["development", "test", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v.lower()

    @field_validator("vision_timeout", "vision_detailed_timeout", "cache_ttl_seconds")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Timeouts and cache windows must be positive")
        return v

    def get_log_config(self) -> LogConfig:
        """Get logging configuration."""
        return LogConfig(level=self.log_level, format=self.log_format)

    def get_service_config(self) -> ServiceConfig:
        """Get service configuration."""
        return ServiceConfig(port=self.service_port)

    def get_storage_config(self) -> StorageConfig:
        """Get record store configuration."""
        return StorageConfig(data_dir=str(Path(self.data_dir).resolve()))

    def get_collaborator_config(self) -> CollaboratorConfig:
        """Get vision collaborator configuration."""
        return CollaboratorConfig(
            api_key=self.xai_api_key,
            base_url=self.vision_base_url,
            model=self.vision_model,
            timeout_seconds=self.vision_timeout,
            detailed_timeout_seconds=self.vision_detailed_timeout,
        )


# ============================================================================
# UNIFIED SETTINGS LOADER
# ============================================================================

def get_settings() -> ServiceSettings:
    """Get unified service settings.

    Loads all environment variables once; components use what they need.
    """
    if not hasattr(get_settings, "_instance"):
        def parse_bool(value: str) -> bool:
            return value.lower() in ("true", "1", "yes", "on")

        get_settings._instance = ServiceSettings(
            # Basic settings
            data_dir=os.environ.get("DATA_DIR", os.path.join(os.getcwd(), ".data")),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_format=os.environ.get("LOG_FORMAT", "text"),
            debug=parse_bool(os.environ.get("DEBUG", "false")),
            environment=os.environ.get("ENVIRONMENT", "development"),
            service_port=int(os.environ.get("SERVICE_PORT", "8000")),

            # Vision collaborator
            xai_api_key=os.environ.get("XAI_API_KEY"),
            vision_base_url=os.environ.get("VISION_BASE_URL", "https://api.x.ai/v1"),
            vision_model=os.environ.get("VISION_MODEL", "grok-2-vision"),
            vision_timeout=int(os.environ.get("VISION_TIMEOUT", "30")),
            vision_detailed_timeout=int(os.environ.get("VISION_DETAILED_TIMEOUT", "45")),

            # Caching
            cache_ttl_seconds=int(os.environ.get("CACHE_TTL_SECONDS", "300")),
            stale_window_seconds=float(os.environ.get("STALE_WINDOW_SECONDS", "3")),
            occasion_config_path=os.environ.get("OCCASION_CONFIG_PATH"),

            # Client
            gateway_url=os.environ.get("GATEWAY_URL", "http://localhost:8000"),
        )
    return get_settings._instance


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    if hasattr(get_settings, "_instance"):
        del get_settings._instance
