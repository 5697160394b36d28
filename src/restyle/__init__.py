"""Restyle Studio - AI clothing editor service."""

__version__ = "0.1.0"

from restyle.core.config import RestyleConfig, config
from restyle.core.prompt_safety import SanitizationResult, sanitize

__all__ = [
    "RestyleConfig",
    "SanitizationResult",
    "config",
    "sanitize",
]
