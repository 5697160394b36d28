"""Configuration management for Restyle Studio.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the RESTYLE_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (RESTYLE_* prefix)
2. .env file in the project root
3. Default values defined in RestyleConfig

Example .env file:
    RESTYLE_GATEWAY_API_KEY=sk-...
    RESTYLE_GATEWAY_URL=https://ai.gateway.lovable.dev/v1/chat/completions
    RESTYLE_GATEWAY_TIMEOUT=120
    RESTYLE_DATA_DIR=data

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from restyle.core.config import config

    print(config.edit_model)
    print(config.media_dir)

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- data_dir: For gallery.json, edit_history.json and share_links.json
- media_dir: For uploaded and edited image files

Gateway Credential
------------------
``gateway_api_key`` has no default.  The service still starts without it;
every gateway call then fails with a "not configured" outcome instead of
reaching the network.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RestyleConfig(BaseSettings):
    """Main configuration for Restyle Studio.

    Attributes
    ----------
    Gateway Settings:
        gateway_url : str
            Chat-completions endpoint of the multimodal AI gateway
        gateway_api_key : str | None
            Bearer credential for the gateway
        edit_model : str
            Model used for clothing edits and virtual try-on (image output)
        analysis_model : str
            Model used for clothing detection and outfit suggestions
        gateway_timeout : float
            Seconds to wait for a gateway response

    Storage:
        data_dir : Path
            Directory for the JSON record files
        media_dir : Path
            Directory for image blobs
        max_upload_bytes : int
            Largest accepted image upload

    Server:
        server_host : str
            Bind address
        server_port : int
            Port (1024-65535)

    Examples
    --------
        >>> custom_config = RestyleConfig(
        ...     gateway_api_key="test-key",
        ...     data_dir="/tmp/restyle/data",
        ...     media_dir="/tmp/restyle/media",
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RESTYLE_",
        case_sensitive=False,
    )

    # Gateway settings
    gateway_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1/chat/completions",
        description="Chat-completions endpoint of the AI gateway",
    )
    gateway_api_key: str | None = Field(
        default=None,
        description="Bearer credential for the AI gateway",
    )
    edit_model: str = Field(
        default="google/gemini-2.5-flash-image-preview",
        description="Model used for image-producing requests",
    )
    analysis_model: str = Field(
        default="google/gemini-2.5-flash",
        description="Model used for text-only analysis requests",
    )
    gateway_timeout: float = Field(
        default=120.0,
        description="Seconds to wait for a gateway response",
        gt=0,
    )

    # Paths
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for gallery, history and share link records",
    )
    media_dir: Path = Field(
        default=Path("media"),
        description="Directory for uploaded and edited images",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted image upload in bytes",
        ge=1,
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=8000,
        description="Server port",
        ge=1024,
        le=65535,
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.media_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance, loaded from RESTYLE_* variables and .env.
config = RestyleConfig()
