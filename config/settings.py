#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings

from .constants import (
    MERMAID_INK_URL, KROKI_URL, MMDC_BINARY,
    RENDER_TIMEOUT_SECONDS, RENDER_CONCURRENCY,
    SLIDE_BOUNDARY_LEVEL, DEFAULT_THEME, DECK_FOOTER_TEXT,
)


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # ========== Rendering ==========
    render_primary: str = "mermaid_ink"  # mermaid_ink | kroki
    mermaid_ink_url: str = MERMAID_INK_URL
    kroki_url: str = KROKI_URL
    render_timeout_seconds: float = RENDER_TIMEOUT_SECONDS
    render_concurrency: int = RENDER_CONCURRENCY

    # Local mermaid-cli fallback (only used when the binary is installed)
    local_render_enabled: bool = True
    mmdc_path: str = MMDC_BINARY

    # Extra denylist entries on top of the built-in ones
    forbidden_diagram_keywords: List[str] = []

    # ========== Image Store ==========
    image_store_backend: str = "local"  # local | s3
    storage_dir: Path = BASE_DIR / "data" / "images"
    public_base_url: Optional[str] = None

    # S3 / R2 compatible object storage
    s3_bucket: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_region: str = "auto"
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_public_url: Optional[str] = None

    # Re-encoding applied before upload: web | print
    upload_profile: str = "web"

    # ========== Record Store ==========
    database_path: Path = BASE_DIR / "data" / "articles.db"
    cache_backend: str = "embedded"  # embedded | entries

    # ========== Slide Deck ==========
    slide_boundary_level: int = SLIDE_BOUNDARY_LEVEL
    default_theme: str = DEFAULT_THEME
    include_title_slide: bool = True
    deck_footer_text: str = DECK_FOOTER_TEXT

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def ensure_directories(self):
        """Create local directories used by the file-backed stores."""
        for dir_path in [self.storage_dir, self.database_path.parent]:
            dir_path.mkdir(exist_ok=True, parents=True)

    def summary(self) -> dict:
        """Non-secret configuration summary for logs and health checks."""
        return {
            "render_primary": self.render_primary,
            "render_timeout_seconds": self.render_timeout_seconds,
            "local_render_enabled": self.local_render_enabled,
            "image_store_backend": self.image_store_backend,
            "cache_backend": self.cache_backend,
            "upload_profile": self.upload_profile,
            "default_theme": self.default_theme,
        }


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
