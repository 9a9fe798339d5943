"""
Configuration Module

Gateway settings loaded from the environment.
"""

from gateway.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
