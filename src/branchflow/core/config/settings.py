# src/branchflow/core/config/settings.py
"""
Configuração validada do engine.

Converte o dicionário resolvido pelo loader em `EngineSettings`, uma
estrutura imutável consumida por Engine, Scheduler e pool de workers.
Valores inválidos levantam `EngineConfigurationError` antes de qualquer
execução.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from branchflow.core.exceptions import EngineConfigurationError
from branchflow.core.plan.types import MemoryPolicy, StorageFormat

from .loader import resolve_config


BACKENDS = ("sequential", "thread", "process")


def _choice(section: Dict[str, Any], key: str, allowed, *, where: str) -> str:
    value = section.get(key)
    allowed_values = [a.value if hasattr(a, "value") else a for a in allowed]
    if value not in allowed_values:
        raise EngineConfigurationError(
            f"{where}.{key} inválido: {value!r}",
            details={"key": f"{where}.{key}", "received": value, "allowed": allowed_values},
            hint=f"Use um de: {', '.join(allowed_values)}",
        )
    return value


@dataclass(frozen=True)
class EngineSettings:
    """Parâmetros efetivos de execução (v1)."""

    root: Path
    backend: str = "sequential"
    workers: int = 1
    fail_fast: bool = False
    memory: MemoryPolicy = MemoryPolicy.PERSISTENT
    format: StorageFormat = StorageFormat.JOBLIB
    manifest: bool = True

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "EngineSettings":
        cfg = resolve_config(config or {})
        store_cfg = cfg.get("store") or {}
        engine_cfg = cfg.get("engine") or {}

        root = store_cfg.get("root")
        if not isinstance(root, (str, Path)) or not str(root).strip():
            raise EngineConfigurationError(
                "store.root deve ser um caminho não vazio",
                details={"key": "store.root", "received": root},
            )

        workers = engine_cfg.get("workers", 1)
        if isinstance(workers, bool) or not isinstance(workers, (int, float)) or int(workers) < 1:
            raise EngineConfigurationError(
                f"engine.workers deve ser inteiro >= 1, recebido: {workers!r}",
                details={"key": "engine.workers", "received": workers},
            )

        return cls(
            root=Path(root),
            backend=_choice(engine_cfg, "backend", BACKENDS, where="engine"),
            workers=int(workers),
            fail_fast=bool(engine_cfg.get("fail_fast", False)),
            memory=MemoryPolicy(_choice(engine_cfg, "memory", list(MemoryPolicy), where="engine")),
            format=StorageFormat(_choice(engine_cfg, "format", list(StorageFormat), where="engine")),
            manifest=bool(engine_cfg.get("manifest", True)),
        )
