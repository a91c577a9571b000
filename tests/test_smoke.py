# tests/test_smoke.py
"""
Smoke test do branchflow.

Garante que o pacote importa sem efeitos colaterais e expõe a API
pública. Não executa runs nem toca o filesystem.
"""

import branchflow


def test_smoke():
    assert branchflow.__version__
    for name in ("Engine", "task", "ref", "map_pattern", "cross_pattern", "NotFound"):
        assert hasattr(branchflow, name)
