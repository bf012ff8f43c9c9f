"""Vivero persistence backends."""

from .kv_store import KeyValueBackend, MemoryBackend, RedisBackend

__all__ = [
    "KeyValueBackend",
    "MemoryBackend",
    "RedisBackend",
]
