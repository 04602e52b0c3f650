"""
CLI module for the couch backup system.
"""

from .main import main

__all__ = [
    "main",
]
