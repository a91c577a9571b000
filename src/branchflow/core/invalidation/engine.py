# src/branchflow/core/invalidation/engine.py
"""
Invalidation Engine (v1).

Decide, por nó, se o valor armazenado ainda é válido para a run atual.
A comparação é exclusivamente por valor: fingerprint de código, de
definição e de cada input contra o FingerprintRecord vigente. Não existe
propagação de "dirty bits"; um upstream reconstruído com o mesmo valor
não invalida os seus dependentes.

Motivos (ordem de avaliação):
    forced → missing → invalidated → errored → code → definition
    → inputs → missing_value → fresh
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Set, Tuple

from branchflow.core.graph.graph import Node
from branchflow.core.plan.types import NodeKind, StorageFormat, TaskDefinition
from branchflow.core.storage.records import FingerprintRecord, NotFound
from branchflow.core.storage.store import FingerprintStore

from .fingerprint import code_fingerprint, definition_fingerprint


FORCED = "forced"
MISSING = "missing"
INVALIDATED = "invalidated"
ERRORED = "errored"
CODE = "code"
DEFINITION = "definition"
INPUTS = "inputs"
MISSING_VALUE = "missing_value"
FRESH = "fresh"


@dataclass(frozen=True)
class Staleness:
    stale: bool
    reason: str

    def __bool__(self) -> bool:
        return self.stale


class InvalidationEngine:
    """Compara o estado atual de um nó com o seu registro no store."""

    def __init__(
        self,
        store: FingerprintStore,
        *,
        default_format: StorageFormat = StorageFormat.JOBLIB,
        force: Iterable[str] = (),
    ):
        self.store = store
        self.default_format = StorageFormat(default_format)
        self.force: Set[str] = set(force)
        self._hashes: Dict[str, Tuple[str, str]] = {}

    def format_for(self, task: TaskDefinition) -> StorageFormat:
        return task.options.format or self.default_format

    def hashes_for(self, task: TaskDefinition) -> Tuple[str, str]:
        """(code_hash, definition_hash) da task; calculado uma vez por run."""
        cached = self._hashes.get(task.name)
        if cached is None:
            cached = (code_fingerprint(task.fn), definition_fingerprint(task, self.format_for(task)))
            self._hashes[task.name] = cached
        return cached

    def is_forced(self, node: Node) -> bool:
        return node.node_id in self.force or node.name in self.force

    def check(
        self,
        node: Node,
        input_hashes: Dict[str, Optional[str]],
        record: Optional[FingerprintRecord] = None,
    ) -> Staleness:
        if self.is_forced(node):
            return Staleness(True, FORCED)

        if record is None:
            record = self.store.get_metadata(node.node_id)
        if record is NotFound:
            return Staleness(True, MISSING)
        if record.invalidated:
            return Staleness(True, INVALIDATED)
        if record.failed:
            return Staleness(True, ERRORED)

        code_hash, definition_hash = self.hashes_for(node.task)
        if record.code_hash != code_hash:
            return Staleness(True, CODE)
        if record.definition_hash != definition_hash:
            return Staleness(True, DEFINITION)
        if dict(record.input_hashes) != dict(input_hashes):
            return Staleness(True, INPUTS)
        if node.kind != NodeKind.PATTERN and not self.store.has_value(record):
            return Staleness(True, MISSING_VALUE)
        return Staleness(False, FRESH)

    def is_stale(self, node: Node, input_hashes: Dict[str, Optional[str]]) -> bool:
        return self.check(node, input_hashes).stale
