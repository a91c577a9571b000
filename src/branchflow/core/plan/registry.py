# src/branchflow/core/plan/registry.py
"""
Representação de declaração do plano (PlanSource).

O `PlanSource` é a coleção ordenada de `TaskDefinition` tal como o
chamador a declarou. Ele é compilado em um `Graph` (representação de
execução) pelo Graph Builder; os dois tipos nunca se confundem.

Responsabilidades do módulo:
    - Validar unicidade de `task.name` no momento do registro
    - Preservar a ordem de declaração
    - Expor acesso controlado às definições registradas

Limites explícitos:
    - Não resolve referências nem detecta ciclos (responsabilidade do builder)
    - Não executa tasks
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Union

from branchflow.core.config.hashing import canonical_hash
from branchflow.core.exceptions import DuplicateTaskError, PlanDefinitionError

from .types import TaskDefinition


@dataclass
class PlanSource:
    """
    Plano declarado: TaskDefinitions únicas em ordem de registro.

    Invariantes:
        - Cada `name` registrado é único
        - `list()` reflete exatamente a ordem de registro
    """

    _tasks: Dict[str, TaskDefinition] = field(default_factory=dict, init=False, repr=False)
    _order: List[str] = field(default_factory=list, init=False, repr=False)

    @classmethod
    def of(cls, tasks: Union["PlanSource", Iterable[TaskDefinition]]) -> "PlanSource":
        if isinstance(tasks, PlanSource):
            return tasks
        source = cls()
        for t in tasks:
            source.add(t)
        return source

    def add(self, definition: TaskDefinition) -> None:
        if not isinstance(definition, TaskDefinition):
            raise PlanDefinitionError(
                f"Entradas do plano devem ser TaskDefinition, recebido: {type(definition).__name__}"
            )
        name = definition.name
        if not isinstance(name, str) or not name.strip():
            raise PlanDefinitionError("nome da task deve ser uma string não vazia")

        if name in self._tasks:
            raise DuplicateTaskError(
                f"Nome de task duplicado: {name}",
                details={"task": name},
            )

        self._tasks[name] = definition
        self._order.append(name)

    def get(self, name: str) -> TaskDefinition:
        return self._tasks[name]

    def names(self) -> List[str]:
        return list(self._order)

    def list(self) -> List[TaskDefinition]:
        return [self._tasks[n] for n in self._order]

    def describe(self) -> List[Dict[str, object]]:
        """Descrição estrutural serializável (sem código) usada no Manifest."""
        return [
            {
                "name": t.name,
                "fn": getattr(t.fn, "__qualname__", repr(t.fn)),
                "refs": t.refs(),
                "pattern": t.pattern.describe() if t.pattern else None,
            }
            for t in self.list()
        ]

    def plan_hash(self) -> str:
        return canonical_hash(self.describe())

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[TaskDefinition]:
        return iter(self.list())

    def __len__(self) -> int:
        return len(self._order)
