# src/branchflow/core/plan/types.py
"""
Tipos canônicos de declaração de plano do branchflow.

Este módulo define as estruturas e enums fundamentais que padronizam
a comunicação entre a API de declaração, o Graph Builder, o Expander,
o Scheduler e o Fingerprint Store.

Componentes principais:
    - Ref            → referência ao valor de outra task
    - BranchPattern  → regra declarativa de expansão (`map` | `cross`)
    - TaskOptions    → opções por task (formato, memória, deployment, iteração)
    - TaskDefinition → definição imutável de uma task
    - NodeStatus     → estados de um nó durante a run
    - NodeKind       → natureza de um nó no grafo (static, pattern, branch)

Princípios fundamentais:
    - Tipos são estáveis e serializáveis (enums com valores textuais)
    - TaskDefinition é imutável durante toda a run
    - Nenhuma lógica de execução vive neste módulo
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


class StorageFormat(str, Enum):
    """Formato de serialização do valor de um nó no Fingerprint Store."""
    JOBLIB = "joblib"
    PICKLE = "pickle"
    JSON = "json"


class MemoryPolicy(str, Enum):
    """
    Política de retenção de valores realizados no coordenador.

    - PERSISTENT: o valor permanece em memória após ser armazenado
    - TRANSIENT: o valor é descartado após o store e relido quando necessário

    Afeta apenas o pico de memória, nunca a correção.
    """
    PERSISTENT = "persistent"
    TRANSIENT = "transient"


class Deployment(str, Enum):
    """Onde a computação de um nó é executada."""
    WORKER = "worker"
    MAIN = "main"


class Iteration(str, Enum):
    """
    Como os valores dos branches de um pattern são consolidados
    quando uma task downstream referencia o pattern inteiro.

    - LIST: lista na ordem de expansão
    - FRAME: `pandas.concat` das partes (DataFrame vazio quando não há branches)
    """
    LIST = "list"
    FRAME = "frame"


class PatternKind(str, Enum):
    MAP = "map"
    CROSS = "cross"


class NodeKind(str, Enum):
    STATIC = "static"
    PATTERN = "pattern"
    BRANCH = "branch"


class NodeStatus(str, Enum):
    """
    Estados de um nó durante uma run.

    Transições permitidas:
        pending → dispatched → completed | errored
        pending → skipped   (fingerprint confere; nenhuma computação)

    Nós descendentes de um nó com erro permanecem `pending` até o fim
    da run (distinto de `skipped`).
    """
    PENDING = "pending"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERRORED = "errored"

    @property
    def is_done(self) -> bool:
        """Estado terminal que libera dependentes (completed ou skipped)."""
        return self in (NodeStatus.COMPLETED, NodeStatus.SKIPPED)

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.COMPLETED, NodeStatus.SKIPPED, NodeStatus.ERRORED)


@dataclass(frozen=True)
class Ref:
    """Referência ao valor de outra task do plano (por nome)."""
    name: str

    def __repr__(self) -> str:
        return f"ref({self.name!r})"


@dataclass(frozen=True)
class BranchPattern:
    """
    Regra declarativa de expansão dinâmica.

    `names` são os nomes das tasks upstream sobre as quais o pattern
    itera; cada um deve aparecer como `Ref` nos argumentos da task.
    """
    kind: PatternKind
    names: Tuple[str, ...]

    def describe(self) -> str:
        return f"{self.kind.value}({', '.join(self.names)})"


@dataclass(frozen=True)
class TaskOptions:
    """
    Opções declaradas por task.

    `format` e `memory` com valor None herdam o default do engine
    (`engine.format`, `engine.memory`).
    """
    format: Optional[StorageFormat] = None
    memory: Optional[MemoryPolicy] = None
    deployment: Deployment = Deployment.WORKER
    iteration: Iteration = Iteration.LIST


@dataclass(frozen=True)
class TaskDefinition:
    """
    Definição imutável de uma task do plano.

    Campos:
        - name: identificador único e estável entre runs
        - fn: computação (função pura recomendada, não imposta)
        - args / kwargs: bindings ordenados; cada um é literal ou `Ref`
        - pattern: `BranchPattern` opcional
        - options: `TaskOptions`

    Invariantes:
        - `name` é único no plano (validado por PlanSource / build_graph)
        - Uma instância nunca é alterada após criada
    """
    name: str
    fn: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Mapping[str, Any] = field(default_factory=dict)
    pattern: Optional[BranchPattern] = None
    options: TaskOptions = field(default_factory=TaskOptions)

    @property
    def is_patterned(self) -> bool:
        return self.pattern is not None

    def refs(self) -> List[str]:
        """Nomes referenciados pelos bindings, em ordem, sem duplicatas."""
        seen: Dict[str, None] = {}
        for value in list(self.args) + list(self.kwargs.values()):
            if isinstance(value, Ref):
                seen.setdefault(value.name, None)
        return list(seen)

    def literal_bindings(self) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        """Bindings com `Ref` substituídas por marcadores textuais estáveis."""
        def mark(v: Any) -> Any:
            return ("__ref__", v.name) if isinstance(v, Ref) else v

        args = tuple(mark(a) for a in self.args)
        kwargs = {k: mark(v) for k, v in sorted(self.kwargs.items())}
        return args, kwargs
