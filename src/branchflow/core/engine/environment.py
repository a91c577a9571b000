# src/branchflow/core/engine/environment.py
"""
Ambiente explícito de workers.

Com o backend `process`, cada worker é um interpretador novo: estado
global criado no coordenador (variáveis de módulo, imports dinâmicos,
variáveis de ambiente definidas em runtime) não existe lá. O
`WorkerEnvironment` declara o que precisa ser replicado:

    - packages: módulos importados em cada worker
    - env: variáveis de ambiente definidas em cada worker
    - setup: callables (picklable) executados uma vez por processo

A aplicação é idempotente por processo (chave = fingerprint do
ambiente) e é repetida antes de cada nó, o que a torna barata e
correta também para os backends `sequential` e `thread`.
"""

from __future__ import annotations

import importlib
import inspect
import os
import threading
import types
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from branchflow.core.config.hashing import canonical_hash
from branchflow.core.plan.types import TaskDefinition


class WorkerStateWarning(UserWarning):
    """Task depende de estado que não é replicado para workers de processo."""


_APPLIED: set = set()
_APPLY_LOCK = threading.Lock()


@dataclass(frozen=True)
class WorkerEnvironment:
    packages: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)
    setup: Tuple[Callable[[], Any], ...] = ()

    @classmethod
    def build(
        cls,
        *,
        packages: Sequence[str] = (),
        env: Optional[Dict[str, str]] = None,
        setup: Sequence[Callable[[], Any]] = (),
    ) -> "WorkerEnvironment":
        return cls(
            packages=tuple(packages),
            env={str(k): str(v) for k, v in (env or {}).items()},
            setup=tuple(setup),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.packages or self.env or self.setup)

    def fingerprint(self) -> str:
        return canonical_hash(
            {
                "packages": list(self.packages),
                "env": dict(sorted(self.env.items())),
                "setup": [
                    f"{getattr(fn, '__module__', '')}.{getattr(fn, '__qualname__', repr(fn))}"
                    for fn in self.setup
                ],
            }
        )

    def apply(self) -> bool:
        """Aplica o ambiente no processo atual; False se já aplicado."""
        if self.is_empty:
            return False
        key = self.fingerprint()
        with _APPLY_LOCK:
            if key in _APPLIED:
                return False
            for name, value in self.env.items():
                os.environ[name] = value
            for package in self.packages:
                importlib.import_module(package)
            for fn in self.setup:
                fn()
            _APPLIED.add(key)
        return True


def apply_environment(environment: Optional[WorkerEnvironment]) -> None:
    """Initializer de processos do pool."""
    if environment is not None:
        environment.apply()


def _unwrap(fn: Any) -> Any:
    while hasattr(fn, "func") and not isinstance(fn, types.FunctionType):
        fn = fn.func
    return inspect.unwrap(fn) if callable(fn) else fn


def worker_state_issues(task: TaskDefinition, environment: Optional[WorkerEnvironment] = None) -> List[str]:
    """
    Problemas de estado de uma task quando executada em outro processo.

    Detecta:
        - closures sobre variáveis locais
        - leitura de globais de módulo que não são módulos, classes ou funções
          (o valor no worker é o da importação, não o do coordenador)
    """
    fn = _unwrap(task.fn)
    if not isinstance(fn, types.FunctionType):
        return []

    issues: List[str] = []
    if fn.__closure__:
        names = ", ".join(fn.__code__.co_freevars)
        issues.append(
            f"task '{task.name}' captura estado local ({names}); "
            "o worker recebe uma cópia serializada no momento do despacho"
        )

    replicated = set(environment.packages) if environment is not None else set()
    data_globals = []
    for name in fn.__code__.co_names:
        if name not in fn.__globals__ or name in replicated:
            continue
        value = fn.__globals__[name]
        if isinstance(value, (types.ModuleType, type)) or callable(value):
            continue
        data_globals.append(name)
    if data_globals:
        issues.append(
            f"task '{task.name}' lê globais de módulo ({', '.join(sorted(data_globals))}); "
            "mudanças feitas no coordenador não são replicadas para processos worker"
        )
    return issues
