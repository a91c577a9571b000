# src/branchflow/core/engine/scheduler.py
"""
Scheduler / Executor (v1).

Máquina de estados por nó:

    pending → dispatched → completed | errored
    pending → skipped

Loop:
    1. calcula a fronteira (pendentes com dependências concluídas)
    2. patterns: expande (não despacha) ou finaliza após os branches
    3. demais nós: consulta o Invalidation Engine; fresh → skipped,
       stale → despacha ao pool (ou inline com deployment="main")
    4. conclusão: grava o registro no store e só então marca completed;
       erro: grava registro de erro e marca errored (descendentes ficam pending)
    5. repete até não haver fronteira nem trabalho em voo

Invariantes:
    - O coordenador é o único dono do grafo e das escritas no store
    - Um nó só é despachado após os registros de todos os upstreams estarem gravados
    - Um erro nunca interrompe subárvores independentes (exceto com fail_fast)
"""

from __future__ import annotations

import threading
from concurrent.futures import FIRST_COMPLETED, Future, wait
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from branchflow.core.branching.expander import consolidate, expand_into, pattern_fingerprint, take
from branchflow.core.config.settings import EngineSettings
from branchflow.core.errors import ErrorPayload, computation_error, error_from_exception
from branchflow.core.exceptions import StorageError, StorageReadError
from branchflow.core.graph.graph import Graph, Node
from branchflow.core.invalidation.engine import InvalidationEngine
from branchflow.core.plan.types import Deployment, MemoryPolicy, NodeKind, NodeStatus, Ref
from branchflow.core.storage.records import FingerprintRecord, NotFound
from branchflow.core.storage.store import FingerprintStore, stored_form
from branchflow.core.traceability import manifest as mf

from .context import RunContext
from .workers import WorkerPool, WorkItem, WorkOutcome, execute_work


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """Executa um grafo até drenar a fronteira."""

    poll_interval = 0.05

    def __init__(
        self,
        *,
        graph: Graph,
        store: FingerprintStore,
        invalidation: InvalidationEngine,
        pool: WorkerPool,
        ctx: RunContext,
        settings: EngineSettings,
        manifest: Optional[mf.RunManifest] = None,
    ):
        self.graph = graph
        self.store = store
        self.invalidation = invalidation
        self.pool = pool
        self.ctx = ctx
        self.settings = settings
        self.manifest = manifest

        self.records: Dict[str, FingerprintRecord] = {}
        self.executed: List[str] = []
        self.cancelled = False

        self._values: Dict[str, Any] = {}
        self._inputs: Dict[str, Dict[str, Optional[str]]] = {}
        self._futures: Dict[Future, str] = {}
        self._cancel = threading.Event()
        self._halted = False

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def cancel(self) -> None:
        self._cancel.set()

    def run(self) -> None:
        try:
            while True:
                if self._cancel.is_set():
                    self._abort()
                    return
                progressed = self._advance()
                if not self._futures:
                    if progressed:
                        continue
                    return
                done, _ = wait(list(self._futures), timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                for future in done:
                    self._collect(future)
        except KeyboardInterrupt:
            self._abort()

    def _advance(self) -> bool:
        if self._halted:
            return False
        progressed = False
        for node in self.graph.frontier():
            if self._cancel.is_set() or self._halted:
                break
            if node.is_pattern:
                if node.expanded:
                    self._finalize_pattern(node)
                else:
                    self._expand(node)
            else:
                self._schedule(node)
            progressed = True
        return progressed

    def _abort(self) -> None:
        self.cancelled = True
        for future in self._futures:
            future.cancel()
        self._futures.clear()
        for node in self.graph.nodes():
            if node.status == NodeStatus.DISPATCHED:
                node.status = NodeStatus.PENDING
                self.ctx.log(node_id=node.node_id, level="WARNING", message="node cancelled")
        self.ctx.log(node_id=None, level="WARNING", message="run cancelled")

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------
    def _keep(self, node: Node) -> bool:
        policy = node.task.options.memory or self.settings.memory
        return MemoryPolicy(policy) is MemoryPolicy.PERSISTENT

    def load(self, node_id: str) -> Any:
        if node_id in self._values:
            return self._values[node_id]
        node = self.graph.node(node_id)
        if node.is_pattern:
            values = [self.load(c) for c in node.children]
            return consolidate(values, node.task.options.iteration)
        value = self.store.get(node_id)
        if value is NotFound:
            raise StorageReadError(
                f"Valor armazenado do nó '{node_id}' não encontrado",
                details={"node_id": node_id},
                hint="Remova o nó com `Engine.delete` ou force o rebuild.",
            )
        if self._keep(node):
            self._values[node_id] = value
        return value

    def _previous(self, node_id: str) -> Any:
        try:
            return self.store.get_metadata(node_id)
        except StorageReadError as exc:
            self.ctx.log(node_id=node_id, level="WARNING", message=str(exc))
            return NotFound

    def _input_hashes(self, node: Node) -> Dict[str, Optional[str]]:
        out: Dict[str, Optional[str]] = {}
        for name in node.task.refs():
            sliced = node.slices.get(name)
            if sliced is not None:
                out[name] = sliced.value_hash
            else:
                out[name] = self.graph.node(name).value_hash
        return out

    def _bind(self, node: Node, value: Any) -> Any:
        if not isinstance(value, Ref):
            return value
        sliced = node.slices.get(value.name)
        if sliced is not None:
            if sliced.index is None:
                return self.load(sliced.source)
            return take(self.load(sliced.source), sliced.index)
        return self.load(value.name)

    def _resolve(self, node: Node) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        args = tuple(self._bind(node, a) for a in node.task.args)
        kwargs = {k: self._bind(node, v) for k, v in node.task.kwargs.items()}
        return args, kwargs

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------
    def _expand(self, node: Node) -> None:
        try:
            branches = expand_into(self.graph, node.node_id, self.load)
        except Exception as exc:
            self._fail(node, exc)
            return
        self.ctx.log(
            node_id=node.node_id,
            level="INFO",
            message=f"expanded into {len(branches)} branches",
            children=len(branches),
        )
        if self.manifest is not None:
            mf.branches_expanded(self.manifest, pattern_id=node.node_id, ts=_now(), children=node.children)

    def _finalize_pattern(self, node: Node) -> None:
        children = [self.graph.node(c) for c in node.children]
        iteration = node.task.options.iteration
        node.value_hash = pattern_fingerprint(iteration, [(c.node_id, c.value_hash) for c in children])
        inputs = self._input_hashes(node)
        code_hash, definition_hash = self.invalidation.hashes_for(node.task)

        previous = self._previous(node.node_id)
        verdict = self.invalidation.check(node, inputs, record=previous)
        unchanged = (
            not verdict.stale
            and previous.children == node.children
            and previous.value_hash == node.value_hash
        )
        if unchanged and all(c.status == NodeStatus.SKIPPED for c in children):
            self.records[node.node_id] = previous
            self._mark_skipped(node)
            return

        record = FingerprintRecord(
            node_id=node.node_id,
            task=node.name,
            kind=NodeKind.PATTERN.value,
            code_hash=code_hash,
            definition_hash=definition_hash,
            input_hashes=inputs,
            value_hash=node.value_hash,
            children=list(node.children),
            iteration=iteration.value,
        )
        try:
            self.store.put_record(record)
        except StorageError as exc:
            self._fail(node, exc)
            return
        self.records[node.node_id] = record
        node.status = NodeStatus.COMPLETED
        self.ctx.log(node_id=node.node_id, level="INFO", message="pattern consolidated", children=len(children))
        if self.manifest is not None:
            mf.node_completed(
                self.manifest,
                node_id=node.node_id,
                ts=_now(),
                result={"value_hash": node.value_hash, "children": len(children)},
            )

    # ------------------------------------------------------------------
    # Static / branch nodes
    # ------------------------------------------------------------------
    def _mark_skipped(self, node: Node) -> None:
        node.status = NodeStatus.SKIPPED
        node.reason = "fresh"
        self.ctx.log(node_id=node.node_id, level="DEBUG", message="node up to date")
        if self.manifest is not None:
            mf.node_skipped(self.manifest, node_id=node.node_id, ts=_now(), task=node.name, kind=node.kind.value)

    def _schedule(self, node: Node) -> None:
        inputs = self._input_hashes(node)
        previous = self._previous(node.node_id)
        verdict = self.invalidation.check(node, inputs, record=previous)
        if not verdict.stale:
            node.value_hash = previous.value_hash
            self.records[node.node_id] = previous
            self._mark_skipped(node)
            return

        node.reason = verdict.reason
        self._inputs[node.node_id] = inputs
        try:
            args, kwargs = self._resolve(node)
        except Exception as exc:
            self._fail(node, exc)
            return

        item = WorkItem(node_id=node.node_id, fn=node.task.fn, args=args, kwargs=kwargs)
        node.status = NodeStatus.DISPATCHED
        self.ctx.log(node_id=node.node_id, level="INFO", message="node dispatched", reason=verdict.reason)
        if self.manifest is not None:
            mf.node_dispatched(
                self.manifest,
                node_id=node.node_id,
                ts=_now(),
                task=node.name,
                kind=node.kind.value,
                reason=verdict.reason,
            )

        if self.pool.inline or node.task.options.deployment == Deployment.MAIN:
            self._complete(node, execute_work(item, self.pool.environment))
        else:
            self._futures[self.pool.submit(item)] = node.node_id

    def _collect(self, future: Future) -> None:
        node_id = self._futures.pop(future)
        node = self.graph.node(node_id)
        try:
            outcome = future.result()
        except Exception as exc:
            outcome = WorkOutcome.from_exception(node_id, exc)
        self._complete(node, outcome)

    def _complete(self, node: Node, outcome: WorkOutcome) -> None:
        for message in outcome.warnings:
            self.ctx.add_warning(node_id=node.node_id, message=message)

        if not outcome.ok:
            payload = computation_error(
                node_id=node.node_id,
                exc_type=outcome.error_type or "Exception",
                exc_message=outcome.error_message or "",
            )
            self._fail(node, payload, outcome=outcome)
            return

        code_hash, definition_hash = self.invalidation.hashes_for(node.task)
        fmt = self.invalidation.format_for(node.task)
        record = FingerprintRecord(
            node_id=node.node_id,
            task=node.name,
            kind=node.kind.value,
            parent=node.parent,
            code_hash=code_hash,
            definition_hash=definition_hash,
            input_hashes=self._inputs.get(node.node_id, {}),
            format=fmt.value,
            duration_ms=outcome.duration_ms,
            warnings=list(outcome.warnings),
        )
        try:
            ref = self.store.put(node.node_id, outcome.value, record)
        except StorageError as exc:
            self._fail(node, exc, outcome=outcome)
            return

        self.records[node.node_id] = record.supersede(
            value_hash=ref.value_hash,
            value_ref=ref.value_ref,
            bytes=ref.bytes,
            created_at=record.created_at,
        )
        node.value_hash = ref.value_hash
        if self._keep(node):
            self._values[node.node_id] = stored_form(outcome.value, fmt)
        node.status = NodeStatus.COMPLETED
        self.executed.append(node.node_id)

        self.ctx.log(
            node_id=node.node_id,
            level="INFO",
            message="node completed",
            duration_ms=round(outcome.duration_ms, 3),
            bytes=ref.bytes,
        )
        if self.manifest is not None:
            mf.node_completed(
                self.manifest,
                node_id=node.node_id,
                ts=_now(),
                result={
                    "value_hash": ref.value_hash,
                    "bytes": ref.bytes,
                    "duration_ms": round(outcome.duration_ms, 3),
                    "warnings": list(outcome.warnings),
                },
            )

    def _fail(
        self,
        node: Node,
        error: Union[BaseException, ErrorPayload],
        *,
        outcome: Optional[WorkOutcome] = None,
    ) -> None:
        payload = error if isinstance(error, ErrorPayload) else error_from_exception(error, node_id=node.node_id)
        node.status = NodeStatus.ERRORED
        node.error = payload

        previous = self._previous(node.node_id)
        code_hash, definition_hash = self.invalidation.hashes_for(node.task)
        record = FingerprintRecord(
            node_id=node.node_id,
            task=node.name,
            kind=node.kind.value,
            parent=node.parent,
            code_hash=code_hash,
            definition_hash=definition_hash,
            input_hashes=self._inputs.get(node.node_id, {}),
            value_hash=previous.value_hash if previous is not NotFound else None,
            value_ref=previous.value_ref if previous is not NotFound else None,
            format=previous.format if previous is not NotFound else None,
            bytes=previous.bytes if previous is not NotFound else 0,
            duration_ms=outcome.duration_ms if outcome is not None else 0.0,
            warnings=list(outcome.warnings) if outcome is not None else [],
            error=payload.to_dict(),
            children=list(node.children),
        )
        self.records[node.node_id] = record
        try:
            self.store.put_record(record)
        except StorageError as exc:
            self.ctx.log(node_id=node.node_id, level="ERROR", message=f"error record not written: {exc}")

        self.ctx.log(
            node_id=node.node_id,
            level="ERROR",
            message=payload.message,
            error_type=payload.type,
        )
        if self.manifest is not None:
            mf.node_failed(self.manifest, node_id=node.node_id, ts=_now(), error=payload.to_dict())
        if self.settings.fail_fast:
            self._halted = True
