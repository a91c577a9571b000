# src/branchflow/core/branching/expander.py
"""
Dynamic Branch Expander (v1).

Transforma um nó pattern colapsado em N nós branch, a partir dos valores
realizados dos seus upstreams.

Elementos:
    - upstream pattern → os seus branches, na ordem de expansão
      (identidade = branch id, hash = value_hash do branch)
    - upstream static  → o valor fatiado:
        list/tuple/Sequence por item, `pandas.DataFrame` por linha
        (`df.iloc[[i]]` sem o rótulo do índice), `pandas.Series` por item
      (identidade = `joblib.hash` do elemento + ordinal de ocorrência)

Decisões arquiteturais:
    - A posição do elemento NÃO entra na identidade: inserir ou anexar
      elementos preserva os ids dos branches existentes (linhas de
      DataFrame chegam com índice novo, então o rótulo também não entra)
    - `iteration="frame"` concatena os branches com índice novo (0..n-1)
    - `cross` = produto cartesiano com o primeiro input variando mais devagar
    - `map`   = zip; comprimentos diferentes → PatternArityError
    - A expansão depende apenas dos valores upstream (nunca de tempo,
      aleatoriedade ou ambiente)

Limites explícitos:
    - Strings, bytes e mappings não são fatiáveis (PatternInputError)
"""

from __future__ import annotations

import hashlib
import itertools
from typing import Any, Callable, Dict, List, Mapping, Sequence

import pandas as pd

from branchflow.core.exceptions import PatternArityError, PatternInputError
from branchflow.core.graph.graph import Graph, Node, SliceRef
from branchflow.core.plan.types import Iteration, NodeKind, PatternKind
from branchflow.core.storage.store import value_fingerprint


def branch_id(pattern: str, element_ids: Sequence[str]) -> str:
    """Id determinístico de um branch: `<pattern>_<16 hex>`."""
    payload = repr((pattern, tuple(element_ids))).encode("utf-8")
    return f"{pattern}_{hashlib.blake2b(payload, digest_size=8).hexdigest()}"


def is_sliceable(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray, Mapping)):
        return False
    return hasattr(value, "__len__") and hasattr(value, "__getitem__")


def take(value: Any, index: int) -> Any:
    """Elemento `index` de um valor fatiável."""
    if isinstance(value, pd.DataFrame):
        return value.iloc[[index]].reset_index(drop=True)
    if isinstance(value, pd.Series):
        return value.iloc[index]
    return value[index]


def slice_elements(source: str, value: Any) -> List[SliceRef]:
    """Fatia o valor de um nó static em elementos identificados."""
    if not is_sliceable(value):
        raise PatternInputError(
            f"Valor de '{source}' não pode ser iterado por um pattern (recebido {type(value).__name__})",
            details={"upstream": source, "value_type": type(value).__name__},
            hint="Retorne uma lista, tupla, Series ou DataFrame na task upstream.",
        )

    seen: Dict[str, int] = {}
    out: List[SliceRef] = []
    for i in range(len(value)):
        h = value_fingerprint(take(value, i))
        occurrence = seen.get(h, 0)
        seen[h] = occurrence + 1
        element_id = h if occurrence == 0 else f"{h}~{occurrence}"
        out.append(SliceRef(source=source, index=i, element_id=element_id, value_hash=h))
    return out


def upstream_elements(graph: Graph, name: str, load: Callable[[str], Any]) -> List[SliceRef]:
    """Elementos de um upstream já concluído (pattern ou static)."""
    upstream = graph.node(name)
    if upstream.is_pattern:
        return [
            SliceRef(source=c, index=None, element_id=c, value_hash=graph.node(c).value_hash or "")
            for c in upstream.children
        ]
    return slice_elements(name, load(name))


def expand(pattern_node: Node, upstreams: Mapping[str, Sequence[SliceRef]]) -> List[Node]:
    """
    Calcula os branches de `pattern_node` a partir dos elementos de cada
    nome do pattern (`upstreams[name]`).

    Raises:
        PatternArityError: `map` com inputs de comprimentos diferentes.
    """
    pattern = pattern_node.task.pattern
    names = list(pattern.names)
    columns = [list(upstreams[n]) for n in names]

    if pattern.kind == PatternKind.MAP:
        lengths = {n: len(c) for n, c in zip(names, columns)}
        if len(set(lengths.values())) > 1:
            raise PatternArityError(
                f"map pattern '{pattern_node.node_id}' exige inputs de mesmo comprimento: {lengths}",
                details={"pattern": pattern_node.node_id, "lengths": lengths},
                hint="Use cross_pattern para combinações ou alinhe o comprimento dos inputs.",
            )
        combos = zip(*columns)
    else:
        combos = itertools.product(*columns)

    branches: List[Node] = []
    for combo in combos:
        bid = branch_id(pattern_node.node_id, [s.element_id for s in combo])
        branches.append(
            Node(
                node_id=bid,
                task=pattern_node.task,
                kind=NodeKind.BRANCH,
                parent=pattern_node.node_id,
                slices=dict(zip(names, combo)),
            )
        )
    return branches


def expand_into(graph: Graph, pattern_id: str, load: Callable[[str], Any]) -> List[Node]:
    """Expande o pattern e realiza o splice dos branches no grafo vivo."""
    node = graph.node(pattern_id)
    upstreams = {name: upstream_elements(graph, name, load) for name in node.task.pattern.names}
    branches = expand(node, upstreams)
    graph.splice(pattern_id, branches)
    return branches


def consolidate(values: List[Any], iteration: Iteration) -> Any:
    """Agrega os valores dos branches na ordem de expansão."""
    if Iteration(iteration) is Iteration.FRAME:
        if not values:
            return pd.DataFrame()
        return pd.concat(values, ignore_index=True)
    return list(values)


def pattern_fingerprint(iteration: Iteration, children: Sequence[tuple]) -> str:
    """Fingerprint do valor consolidado: pares (branch_id, value_hash) ordenados."""
    return value_fingerprint((Iteration(iteration).value, [tuple(c) for c in children]))
