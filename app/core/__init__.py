"""Core: config, tenant context, and application bootstrap.

Single place for settings and app wiring (lifespan, exception handlers).
"""

from app.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
