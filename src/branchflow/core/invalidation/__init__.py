"""Fingerprints e decisão de staleness por nó."""

from .engine import InvalidationEngine, Staleness
from .fingerprint import code_fingerprint, definition_fingerprint

__all__ = ["InvalidationEngine", "Staleness", "code_fingerprint", "definition_fingerprint"]
