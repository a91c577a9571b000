# src/branchflow/core/graph/builder.py
"""
Graph Builder: compila um `PlanSource` no esqueleto estático do `Graph`.

O builder opera exclusivamente em nível estrutural, analisando:
    - nomes das tasks (únicos e não vazios)
    - referências entre tasks (`Ref`)
    - patterns declarados (`map` | `cross`)
    - formação de ciclos

Decisões arquiteturais:
    - Tasks com pattern viram um único nó colapsado; o fan-out é
      adiado para a run, pois o número de branches depende do
      comprimento de dados realizados e não do texto do plano
    - Ciclos são detectados por DFS com pilha de recursão explícita
      (iterativa, sem limite de profundidade do interpretador); uma
      back-edge gera `CyclicDependencyError` com o caminho do ciclo
    - A ordem de declaração é preservada na arena do grafo

Limites explícitos:
    - Não executa tasks
    - Não consulta o Fingerprint Store
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Union

from branchflow.core.exceptions import (
    CyclicDependencyError,
    PatternDefinitionError,
    UnknownDependencyError,
)
from branchflow.core.plan.registry import PlanSource
from branchflow.core.plan.types import NodeKind, TaskDefinition

from .graph import Graph, Node


def _check_cycles(deps: Dict[str, List[str]]) -> None:
    white, gray, black = 0, 1, 2
    color = {name: white for name in deps}

    for root in deps:
        if color[root] != white:
            continue
        path: List[str] = [root]
        color[root] = gray
        iters: List[Iterator[str]] = [iter(deps[root])]
        while iters:
            try:
                dep = next(iters[-1])
            except StopIteration:
                color[path.pop()] = black
                iters.pop()
                continue
            if color[dep] == gray:
                raise CyclicDependencyError(path[path.index(dep):] + [dep])
            if color[dep] == white:
                color[dep] = gray
                path.append(dep)
                iters.append(iter(deps[dep]))


def build_graph(plan: Union[PlanSource, Iterable[TaskDefinition]]) -> Graph:
    """
    Valida o plano e produz o esqueleto estático do grafo.

    Raises:
        DuplicateTaskError: nomes duplicados.
        UnknownDependencyError: `Ref` para task não declarada.
        PatternDefinitionError: pattern sobre nome não declarado ou não vinculado.
        CyclicDependencyError: ciclo de referências.
    """
    source = PlanSource.of(plan)

    deps: Dict[str, List[str]] = {}
    for t in source:
        refs = t.refs()
        for r in refs:
            if r not in source:
                raise UnknownDependencyError(
                    f"Task '{t.name}' depende da task desconhecida '{r}'",
                    details={"task": t.name, "dependency": r},
                )
        if t.pattern is not None:
            for p in t.pattern.names:
                if p not in source:
                    raise UnknownDependencyError(
                        f"Pattern da task '{t.name}' itera sobre a task desconhecida '{p}'",
                        details={"task": t.name, "dependency": p},
                    )
                if p not in refs:
                    raise PatternDefinitionError(
                        f"Pattern da task '{t.name}' itera sobre '{p}', mas '{p}' não é argumento da task",
                        details={"task": t.name, "pattern": t.pattern.describe()},
                        hint=f"Passe ref('{p}') como argumento da task.",
                    )
        deps[t.name] = refs

    _check_cycles(deps)

    graph = Graph()
    # inserção em ordem topológica estável para que add_edge encontre os upstreams
    pending = source.names()
    placed: Dict[str, None] = {}
    while pending:
        rest = []
        for name in pending:
            if all(d in placed for d in deps[name]):
                t = source.get(name)
                kind = NodeKind.PATTERN if t.is_patterned else NodeKind.STATIC
                graph.add_node(Node(node_id=name, task=t, kind=kind), deps=deps[name])
                placed[name] = None
            else:
                rest.append(name)
        pending = rest
    return graph
