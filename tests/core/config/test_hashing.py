# tests/core/config/test_hashing.py
"""
Testes do hashing de configuração.

O hash identifica a configuração resolvida no Manifest de cada run:
SHA-256 do JSON canônico (chaves ordenadas, sem espaços).
"""

import hashlib
import json

import pytest

from branchflow.core.config.hashing import canonical_hash, compute_config_hash


def _canonical_json_bytes(obj: dict) -> bytes:
    s = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def test_hash_matches_sha256_of_canonical_json():
    cfg = {"engine": {"backend": "thread", "workers": 2}, "store": {"root": "_bf"}}
    expected = hashlib.sha256(_canonical_json_bytes(cfg)).hexdigest()

    assert compute_config_hash(cfg) == expected
    assert len(compute_config_hash(cfg)) == 64


def test_hash_is_independent_of_key_order():
    a = {"engine": {"workers": 2, "backend": "thread"}, "store": {"root": "x"}}
    b = {"store": {"root": "x"}, "engine": {"backend": "thread", "workers": 2}}
    assert compute_config_hash(a) == compute_config_hash(b)


def test_hash_changes_when_config_changes():
    a = {"engine": {"workers": 2}}
    b = {"engine": {"workers": 3}}
    assert compute_config_hash(a) != compute_config_hash(b)


def test_canonical_hash_accepts_lists():
    assert canonical_hash([1, "a"]) == canonical_hash([1, "a"])
    assert canonical_hash([1, "a"]) != canonical_hash(["a", 1])


def test_compute_config_hash_rejects_non_dict():
    with pytest.raises(TypeError):
        compute_config_hash(["not", "a", "dict"])
