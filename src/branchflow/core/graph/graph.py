# src/branchflow/core/graph/graph.py
"""
Grafo de execução (representação de run-time) do branchflow.

O `Graph` é uma arena de nós indexada por `node_id`, com arestas de
dependência explícitas. Ele nasce como esqueleto estático (um nó por
TaskDefinition, patterns colapsados) e cresce durante a run quando o
Expander realiza `splice` de nós branch.

Arestas:
    A → B significa que B precisa do valor completo de A.
    Após um splice, cada branch depende dos upstreams do seu pattern e
    o nó pattern passa a depender de todos os seus branches (ponto de
    consolidação).

Invariantes:
    - `node_id` é único na arena
    - O grafo completo (estático + branches) é acíclico
    - A ordem de inserção é preservada e usada como desempate determinístico
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from branchflow.core.errors import ErrorPayload
from branchflow.core.exceptions import CyclicDependencyError, PlanDefinitionError
from branchflow.core.plan.types import NodeKind, NodeStatus, TaskDefinition


@dataclass(frozen=True)
class SliceRef:
    """
    Elemento upstream consumido por um branch.

    - source: nó que fornece o elemento (nó static fatiado ou branch upstream)
    - index: posição no valor do nó static; None quando `source` é um branch
    - element_id: identidade estável do elemento (entra no id do branch)
    - value_hash: fingerprint do valor do elemento
    """
    source: str
    index: Optional[int]
    element_id: str
    value_hash: str


@dataclass
class Node:
    """Vértice do grafo: static, pattern (colapsado) ou branch."""

    node_id: str
    task: TaskDefinition
    kind: NodeKind = NodeKind.STATIC
    status: NodeStatus = NodeStatus.PENDING
    parent: Optional[str] = None
    slices: Dict[str, SliceRef] = field(default_factory=dict)
    value_hash: Optional[str] = None
    expanded: bool = False
    children: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    error: Optional[ErrorPayload] = None

    @property
    def name(self) -> str:
        return self.task.name

    @property
    def is_pattern(self) -> bool:
        return self.kind == NodeKind.PATTERN


class Graph:
    """Arena de nós + arestas de dependência."""

    def __init__(self) -> None:
        self._nodes: Dict[str, Node] = {}
        self._index: Dict[str, int] = {}
        self._deps: Dict[str, List[str]] = {}
        self._dependents: Dict[str, List[str]] = {}

    # -----------------------------
    # Construção
    # -----------------------------
    def add_node(self, node: Node, deps: Iterable[str] = ()) -> Node:
        if node.node_id in self._nodes:
            raise PlanDefinitionError(
                f"Node id duplicado: {node.node_id}",
                details={"node_id": node.node_id},
            )
        self._index[node.node_id] = len(self._nodes)
        self._nodes[node.node_id] = node
        self._deps[node.node_id] = []
        self._dependents[node.node_id] = []
        for dep in deps:
            self.add_edge(dep, node.node_id)
        return node

    def add_edge(self, upstream: str, downstream: str) -> None:
        if upstream not in self._nodes or downstream not in self._nodes:
            missing = upstream if upstream not in self._nodes else downstream
            raise PlanDefinitionError(f"Nó desconhecido na aresta: {missing}")
        if upstream == downstream:
            raise CyclicDependencyError([upstream, downstream])
        if upstream in self._deps[downstream]:
            return
        self._deps[downstream].append(upstream)
        self._dependents[upstream].append(downstream)

    def splice(self, pattern_id: str, branches: List[Node]) -> None:
        """
        Insere branches de um pattern no grafo vivo.

        Cada branch herda as dependências do pattern; o pattern passa a
        depender dos branches. Nenhum ciclo pode surgir: os upstreams do
        pattern já estão concluídos e os branches são nós novos.
        """
        pattern = self._nodes[pattern_id]
        upstream = list(self._deps[pattern_id])
        for branch in branches:
            self.add_node(branch, deps=upstream)
            self.add_edge(branch.node_id, pattern_id)
        pattern.children = [b.node_id for b in branches]
        pattern.expanded = True

    # -----------------------------
    # Consulta
    # -----------------------------
    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: str) -> Node:
        return self._nodes[node_id]

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def deps(self, node_id: str) -> List[str]:
        return list(self._deps[node_id])

    def dependents(self, node_id: str) -> List[str]:
        return list(self._dependents[node_id])

    def descendants(self, node_id: str) -> Set[str]:
        seen: Set[str] = set()
        stack = list(self._dependents[node_id])
        while stack:
            nid = stack.pop()
            if nid in seen:
                continue
            seen.add(nid)
            stack.extend(self._dependents[nid])
        return seen

    def ancestors(self, node_id: str) -> Set[str]:
        seen: Set[str] = set()
        stack = list(self._deps[node_id])
        while stack:
            nid = stack.pop()
            if nid in seen:
                continue
            seen.add(nid)
            stack.extend(self._deps[nid])
        return seen

    def frontier(self) -> List[Node]:
        """Nós `pending` cujas dependências estão todas completed/skipped."""
        return [
            n
            for n in self._nodes.values()
            if n.status == NodeStatus.PENDING
            and all(self._nodes[d].status.is_done for d in self._deps[n.node_id])
        ]

    def topological_order(self) -> List[Node]:
        """
        Ordem topológica determinística (Kahn); empates resolvidos pela
        ordem de inserção na arena.

        Raises:
            CyclicDependencyError: se algum ciclo impedir a ordenação completa.
        """
        incoming = {nid: len(d) for nid, d in self._deps.items()}
        ready = [(self._index[nid], nid) for nid, c in incoming.items() if c == 0]
        heapq.heapify(ready)
        order: List[Node] = []
        while ready:
            _, nid = heapq.heappop(ready)
            order.append(self._nodes[nid])
            for child in self._dependents[nid]:
                incoming[child] -= 1
                if incoming[child] == 0:
                    heapq.heappush(ready, (self._index[child], child))

        if len(order) != len(self._nodes):
            remaining = [nid for nid, c in incoming.items() if c > 0]
            raise CyclicDependencyError(remaining + remaining[:1])
        return order

    def subgraph(self, names: Iterable[str]) -> "Graph":
        """Novo grafo com `names` e todos os seus ancestrais (run parcial)."""
        keep: Set[str] = set()
        for name in names:
            if name not in self._nodes:
                raise PlanDefinitionError(
                    f"Alvo desconhecido: {name}",
                    details={"target": name},
                )
            keep.add(name)
            keep |= self.ancestors(name)

        sub = Graph()
        for nid, node in self._nodes.items():
            if nid in keep:
                sub.add_node(node, deps=[d for d in self._deps[nid] if d in keep])
        return sub
