"""Expansão dinâmica de patterns (`map` / `cross`) em nós branch."""

from .expander import (
    branch_id,
    consolidate,
    expand,
    expand_into,
    pattern_fingerprint,
    slice_elements,
    take,
    upstream_elements,
)

__all__ = [
    "branch_id",
    "consolidate",
    "expand",
    "expand_into",
    "pattern_fingerprint",
    "slice_elements",
    "take",
    "upstream_elements",
]
