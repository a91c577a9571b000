# tests/conftest.py
"""
Fixtures compartilhados para testes do branchflow.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações mínimas e determinísticas (YAML e dict)
- stores isolados (filesystem em `tmp_path` e em memória)
- engines prontos para uso
- planos pequenos e canônicos (cenário A × B)

Decisões arquiteturais:
    - Funções de task vivem em nível de módulo (`tests/_tasks.py`) para
      terem fingerprint de código estável e serem picklable
    - Engines de teste usam `tmp_path` como raiz do store
    - Nenhuma fixture executa uma run

Limites explícitos:
    - Não substituir testes de integração
    - Não conter lógica condicional complexa
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))


# =====================================================
# Config fixtures
# =====================================================

@pytest.fixture
def defaults_yaml() -> str:
    """YAML de defaults semelhante a um `branchflow.defaults.yaml` real."""
    return """\
store:
  root: _store
engine:
  backend: sequential
  workers: 1
  fail_fast: false
"""


@pytest.fixture
def local_yaml() -> str:
    """YAML de override local (apenas diferenças)."""
    return """\
engine:
  backend: thread
  workers: 4
"""


@pytest.fixture
def store_config(tmp_path) -> dict:
    return {"store": {"root": str(tmp_path / "store")}}


# =====================================================
# Store / Engine fixtures
# =====================================================

@pytest.fixture
def store(tmp_path):
    from branchflow.core.storage import FingerprintStore, LocalBackend

    return FingerprintStore(LocalBackend(tmp_path / "store"))


@pytest.fixture
def memory_store():
    from branchflow.core.storage import FingerprintStore, MemoryBackend

    return FingerprintStore(MemoryBackend())


@pytest.fixture
def make_engine(tmp_path):
    """Factory de engines que compartilham o mesmo store em disco."""
    from branchflow.core.engine import Engine

    def _make(**engine_cfg):
        config = {"store": {"root": str(tmp_path / "store")}}
        if engine_cfg:
            config["engine"] = engine_cfg
        return Engine(config=config)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


# =====================================================
# Plan fixtures
# =====================================================

@pytest.fixture
def scenario_plan():
    """
    Cenário canônico: A=[1,2,3], B=[10,20]

        c = cross(A, B) → 6 branches (a + b)
        m = map(A)      → 3 branches (a * 2)
        total = sum(c)
    """
    from _tasks import add, double, values, total
    from branchflow.core.plan import cross_pattern, map_pattern, ref, task

    def build(a=(1, 2, 3), b=(10, 20)):
        return [
            task("a", values, list(a)),
            task("b", values, list(b)),
            task("c", add, ref("a"), ref("b"), pattern=cross_pattern("a", "b")),
            task("m", double, ref("a"), pattern=map_pattern("a")),
            task("total", total, ref("c")),
        ]

    return build
