# src/branchflow/core/plan/task.py
"""
API de declaração de tasks.

Este módulo é a única superfície de autoria de planos do branchflow:
o chamador declara uma lista ordenada de `TaskDefinition` usando
`task`, `ref`, `map_pattern` e `cross_pattern`.

Exemplo:

    plan = [
        task("a", lambda: [1, 2, 3]),
        task("b", lambda: [10, 20]),
        task("c", lambda x, y: (x, y), ref("a"), ref("b"),
             pattern=cross_pattern("a", "b")),
        task("total", len, ref("c")),
    ]

Decisões arquiteturais:
    - Opções textuais são normalizadas para enums na declaração
    - Valores inválidos geram `PlanDefinitionError` imediatamente
    - A API não executa nada e não toca no store
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

from branchflow.core.exceptions import PlanDefinitionError

from .types import (
    BranchPattern,
    Deployment,
    Iteration,
    MemoryPolicy,
    PatternKind,
    Ref,
    StorageFormat,
    TaskDefinition,
    TaskOptions,
)


def ref(name: str) -> Ref:
    """Referência ao valor realizado da task `name`."""
    if not isinstance(name, str) or not name.strip():
        raise PlanDefinitionError("ref() exige um nome de task não vazio")
    return Ref(name)


def _pattern(kind: PatternKind, names) -> BranchPattern:
    if not names:
        raise PlanDefinitionError(f"{kind.value}_pattern() exige ao menos um nome upstream")
    cleaned = []
    for n in names:
        n = n.name if isinstance(n, Ref) else n
        if not isinstance(n, str) or not n.strip():
            raise PlanDefinitionError(f"{kind.value}_pattern() exige nomes não vazios")
        if n in cleaned:
            raise PlanDefinitionError(f"{kind.value}_pattern() repete o upstream '{n}'")
        cleaned.append(n)
    return BranchPattern(kind=kind, names=tuple(cleaned))


def map_pattern(*names: Union[str, Ref]) -> BranchPattern:
    """Expansão element-wise (zip) sobre upstreams de mesmo comprimento."""
    return _pattern(PatternKind.MAP, names)


def cross_pattern(*names: Union[str, Ref]) -> BranchPattern:
    """Expansão pelo produto cartesiano completo dos upstreams."""
    return _pattern(PatternKind.CROSS, names)


def _coerce(enum_cls, value, option: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise PlanDefinitionError(
            f"{option} inválido: {value!r}",
            details={"option": option, "received": value},
            hint=f"Use um de: {allowed}",
        ) from None


def task(
    name: str,
    fn: Callable[..., Any],
    *args: Any,
    pattern: Optional[BranchPattern] = None,
    format: Optional[Union[str, StorageFormat]] = None,
    memory: Optional[Union[str, MemoryPolicy]] = None,
    deployment: Union[str, Deployment] = Deployment.WORKER,
    iteration: Union[str, Iteration] = Iteration.LIST,
    **kwargs: Any,
) -> TaskDefinition:
    """
    Declara uma task.

    Args:
        name: identificador único e estável entre runs.
        fn: computação a ser chamada com os bindings resolvidos.
        *args / **kwargs: bindings (literais ou `ref(...)`).
        pattern: `map_pattern(...)` ou `cross_pattern(...)` opcional.
        format: formato de storage (`joblib`, `pickle`, `json`).
        memory: política de retenção (`persistent`, `transient`).
        deployment: `worker` (pool) ou `main` (coordenador).
        iteration: consolidação downstream dos branches (`list`, `frame`).

    Raises:
        PlanDefinitionError: nome vazio, `fn` não chamável ou opção inválida.
    """
    if not isinstance(name, str) or not name.strip():
        raise PlanDefinitionError("nome da task deve ser uma string não vazia")
    if not callable(fn):
        raise PlanDefinitionError(
            f"Computação da task '{name}' não é chamável",
            details={"task": name, "received": type(fn).__name__},
        )
    if pattern is not None and not isinstance(pattern, BranchPattern):
        raise PlanDefinitionError(
            f"Pattern da task '{name}' deve vir de map_pattern() ou cross_pattern()",
            details={"task": name},
        )

    options = TaskOptions(
        format=_coerce(StorageFormat, format, "format"),
        memory=_coerce(MemoryPolicy, memory, "memory"),
        deployment=_coerce(Deployment, deployment, "deployment"),
        iteration=_coerce(Iteration, iteration, "iteration"),
    )
    return TaskDefinition(
        name=name,
        fn=fn,
        args=tuple(args),
        kwargs=dict(kwargs),
        pattern=pattern,
        options=options,
    )
