"""Storage backend for hookrelay.

Persists subscriptions and delivery records to Qdrant with
project-scoped keys.
"""

from .base import COLLECTION_NAMES, PLACEHOLDER_VECTOR_DIM
from .client import HookRelayStorage
from .retry import qdrant_retry

__all__ = [
    "COLLECTION_NAMES",
    "HookRelayStorage",
    "PLACEHOLDER_VECTOR_DIM",
    "qdrant_retry",
]
