"""Property-owner assembly platform: representation, delegation and weighted voting."""

from .main import create_application

__all__ = ["create_application"]
