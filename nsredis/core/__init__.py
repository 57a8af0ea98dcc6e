"""Core: config and constants.

Single place for settings and shared constants.
"""

from nsredis.core.config import get_settings

__all__ = ["get_settings"]
