"""Configuration module - exports Settings and a module-level singleton."""

from docingest.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "settings"]
