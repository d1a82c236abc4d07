"""
Application configuration for PlanMark.

Settings are read from environment variables prefixed with ``PLANMARK_``
(or a local ``.env`` file). Use ``get_settings()`` to obtain the cached
instance.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings."""

    model_config = SettingsConfigDict(
        env_prefix="PLANMARK_",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "PlanMark"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    api_prefix: str = "/api/v1"

    # Where save/load endpoints read and write project files
    projects_dir: Path = Path("projects")

    # Segment hit-test tolerance in image pixels
    hit_tolerance_px: float = Field(default=6.0, gt=0)

    # Display defaults per shape kind
    polygon_color: str = "#ff0000"
    segment_color: str = "#0000ff"
    rectangle_color: str = "#00aa00"
    text_color: str = "#000000"
    default_font_size: float = Field(default=16.0, gt=0)
    default_font_family: str = "Arial"

    # Upload guard for floor plan images
    max_image_bytes: int = 20 * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
