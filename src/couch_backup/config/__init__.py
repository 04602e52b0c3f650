"""
Configuration module for the couch backup system.
"""

from .loader import ConfigLoader
from .models import BackupSystemConfig

__all__ = [
    "ConfigLoader",
    "BackupSystemConfig",
]
