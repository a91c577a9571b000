"""Fingerprint Store: valores content-addressed e metadata por nó."""

from .backends import LocalBackend, MemoryBackend, StorageBackend
from .records import FingerprintRecord, NotFound, StorageRef
from .store import FingerprintStore, deserialize, serialize, stored_form, value_fingerprint

__all__ = [
    "FingerprintRecord",
    "FingerprintStore",
    "LocalBackend",
    "MemoryBackend",
    "NotFound",
    "StorageBackend",
    "StorageRef",
    "deserialize",
    "serialize",
    "stored_form",
    "value_fingerprint",
]
