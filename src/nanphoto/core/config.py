"""Configuration management for Nanphoto.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the NANPHOTO_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (NANPHOTO_* prefix)
2. .env file in the project root
3. Default values defined in NanphotoConfig

Example .env file:
    NANPHOTO_GEMINI_API_KEY=AIza...
    NANPHOTO_PASSWORD=letmein
    NANPHOTO_GALLERY_BACKEND=sqlite
    NANPHOTO_GALLERY_MAX_ITEMS=100

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from nanphoto.core.config import config

    print(config.image_model)
    print(config.gallery_db_path)

Gallery Backends
----------------
``gallery_backend`` selects where generated images are kept:

- ``sqlite``: a single ``gallery`` table in ``data_dir / gallery_db_name``
- ``memory``: a process-local list, lost on restart
- ``none``: no gallery; generation still works, gallery endpoints answer 503
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NanphotoConfig(BaseSettings):
    """Main configuration for Nanphoto.

    Values are loaded from environment variables with the NANPHOTO_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Gemini Settings:
        gemini_api_key : str
            API key for the Generative Language API (empty = not configured)
        gemini_base_url : str
            Base URL of the ``models`` collection
        chat_model : str
            Default model for chat answers
        allowed_chat_models : list[str]
            Models a chat request may select explicitly
        image_model : str
            Model for every image-producing mode
        image_model_choices : dict[str, str]
            Names a text-to-image request may pick, mapped to the model that
            serves them
        text_model : str
            Model for auxiliary text correction and fact lookup
        request_timeout : float
            Timeout in seconds for a single outbound call

    Chat Settings:
        chat_temperature : float
        chat_max_output_tokens : int

    Access:
        password : str
            Shared password gating the API (empty = gate disabled)

    Gallery:
        gallery_backend : Literal["sqlite", "memory", "none"]
        data_dir : Path
        gallery_db_name : str
        gallery_max_items : int
            Capacity; the oldest images are evicted beyond this count
        gallery_autosave : bool
            Store every generated image automatically

    Server:
        server_host : str
        server_port : int
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NANPHOTO_",
        case_sensitive=False,
    )

    # Gemini settings
    gemini_api_key: str = Field(
        default="",
        description="API key for the Generative Language API",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Base URL of the Gemini models collection",
    )
    chat_model: str = Field(
        default="gemini-2.5-flash",
        description="Default model for chat answers",
    )
    allowed_chat_models: list[str] = Field(
        default=["gemini-2.5-flash", "gemini-3-flash-preview"],
        description="Models a chat request may select explicitly",
    )
    image_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Model used by every image-producing mode",
    )
    image_model_choices: dict[str, str] = Field(
        default={
            "gemini-2.5-flash-image": "gemini-2.5-flash-image",
            "imagen-4": "gemini-2.5-flash-image",
        },
        description="Selectable text-to-image model names and the model serving each",
    )
    text_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used for text correction and fact lookup",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Timeout in seconds for one outbound model call",
        gt=0,
    )

    # Chat generation settings
    chat_temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    chat_max_output_tokens: int = Field(default=8192, ge=1)

    # Access gate
    password: str = Field(
        default="",
        description="Shared password; leave empty to disable the session gate",
    )

    # Gallery
    gallery_backend: Literal["sqlite", "memory", "none"] = Field(
        default="sqlite",
        description="Gallery storage backend",
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the gallery database",
    )
    gallery_db_name: str = Field(default="gallery.db")
    gallery_max_items: int = Field(
        default=40,
        description="Maximum number of images kept in the gallery",
        ge=1,
    )
    gallery_autosave: bool = Field(
        default=True,
        description="Append every generated image to the gallery",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        if self.gallery_backend == "sqlite":
            self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def gallery_db_path(self) -> Path:
        """Full path of the SQLite gallery database."""
        return self.data_dir / self.gallery_db_name

    @property
    def auth_enabled(self) -> bool:
        """Whether the password gate is active."""
        return bool(self.password)


# Global configuration instance
# Loads values from environment variables (NANPHOTO_* prefix) and .env file.
config = NanphotoConfig()
