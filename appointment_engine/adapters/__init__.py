"""
Adapters layer - Storage backends implementing the service ports.
"""

from .memory_store import InMemorySchedulingStore

__all__ = ["InMemorySchedulingStore"]
