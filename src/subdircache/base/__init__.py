"""Base classes for subdircache.

This module provides the abstract transfer target interface the cache
manager arms when a cache file needs refreshing.
"""

from subdircache.base.target import TransferError, TransferOutcome, TransferTarget

__all__ = [
    "TransferError",
    "TransferOutcome",
    "TransferTarget",
]
