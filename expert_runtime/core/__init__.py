"""
Core utilities and configuration for the expert runtime.

This package provides logging configuration and environment-driven settings.
"""

from expert_runtime.core.config import Settings, settings
from expert_runtime.core.logging_config import get_logger, setup_logging

__all__ = ["Settings", "get_logger", "settings", "setup_logging"]
