"""
SDK for CRS Status.

Provides programmatic access to relay service usage figures.
"""

from .relay_client import UsageClient

__all__ = ["UsageClient"]
