# src/branchflow/core/engine/engine.py
"""
Engine de execução do branchflow (fachada pública).

Responsabilidades:
    - compilar o plano (`build_graph`) e recortar runs parciais
    - montar store, invalidação, pool de workers, contexto e Manifest
    - executar o Scheduler e consolidar o `RunReport`
    - oferecer a API de inspeção: status (dry run), leitura de valores,
      invalidação manual, remoção e poda de registros

Política de erros:
    - Erros de plano (ciclo, referência, duplicidade) e de configuração
      são levantados antes de qualquer execução
    - Erros de nós nunca são levantados: ficam no RunReport, no
      FingerprintRecord e no Manifest como ErrorPayload
    - Leituras de nós inexistentes retornam `NotFound`
"""

from __future__ import annotations

import fnmatch
import uuid
import warnings
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from branchflow._version import __version__
from branchflow.core.branching.expander import consolidate
from branchflow.core.config.hashing import compute_config_hash
from branchflow.core.config.loader import resolve_config
from branchflow.core.config.settings import EngineSettings
from branchflow.core.exceptions import PlanDefinitionError
from branchflow.core.graph.builder import build_graph
from branchflow.core.graph.graph import Graph, Node
from branchflow.core.invalidation.engine import InvalidationEngine
from branchflow.core.plan.registry import PlanSource
from branchflow.core.plan.types import Iteration, NodeKind, NodeStatus
from branchflow.core.storage.backends import LocalBackend
from branchflow.core.storage.records import FingerprintRecord, NotFound
from branchflow.core.storage.store import FingerprintStore
from branchflow.core.traceability import manifest as mf

from .context import Reporter, RunContext
from .environment import WorkerEnvironment, WorkerStateWarning, worker_state_issues
from .report import RUN_CANCELLED, RUN_COMPLETED, RUN_FAILED, NodeReport, RunReport
from .scheduler import Scheduler
from .workers import make_pool


STALE = "stale"
FRESH = "fresh"

PlanLike = Union[PlanSource, Iterable[Any]]


class Engine:
    """Engine canônico do branchflow (planner + scheduler + store)."""

    def __init__(
        self,
        *,
        config: Optional[Dict[str, Any]] = None,
        store: Optional[FingerprintStore] = None,
        environment: Optional[WorkerEnvironment] = None,
        reporter: Optional[Reporter] = None,
    ):
        self.config: Dict[str, Any] = resolve_config(config or {})
        self.settings = EngineSettings.from_config(self.config)
        self.store = store if store is not None else FingerprintStore(LocalBackend(self.settings.root))
        self.environment = environment if environment is not None else WorkerEnvironment()
        self.reporter = reporter
        self._scheduler: Optional[Scheduler] = None
        self.last_context: Optional[RunContext] = None
        self.last_manifest: Optional[mf.RunManifest] = None

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    def _invalidation(self, force: Iterable[str] = ()) -> InvalidationEngine:
        return InvalidationEngine(self.store, default_format=self.settings.format, force=force)

    def _check_worker_state(self, source: PlanSource, ctx: RunContext) -> None:
        for task in source.list():
            for issue in worker_state_issues(task, self.environment):
                warnings.warn(issue, WorkerStateWarning, stacklevel=3)
                ctx.log(node_id=task.name, level="WARNING", message=issue, warning="WorkerStateWarning")
                ctx.add_warning(node_id=task.name, message=f"WorkerStateWarning: {issue}")

    def run(
        self,
        plan: PlanLike,
        *,
        names: Optional[Iterable[str]] = None,
        force: Optional[Iterable[str]] = None,
    ) -> RunReport:
        """
        Constrói o plano (ou apenas `names` e seus ancestrais).

        `force` reconstrói os alvos nomeados: nomes de task (um pattern
        nomeado inclui todos os seus branches) ou node ids armazenados
        (ex.: um único branch).
        """
        source = PlanSource.of(plan)
        graph = build_graph(source)
        if names is not None:
            graph = graph.subgraph(list(names))

        forced = list(force or [])
        unknown = [f for f in forced if f not in source]
        if unknown:
            stored = set(self.store.node_ids())
            unknown = [f for f in unknown if f not in stored]
        if unknown:
            raise PlanDefinitionError(
                f"Alvo(s) de force desconhecido(s): {', '.join(unknown)}",
                details={"targets": unknown},
            )

        started = datetime.now(timezone.utc)
        run_id = f"{started.strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}"
        ctx = RunContext(
            run_id=run_id,
            created_at=started,
            config=self.config,
            meta={"plan_hash": source.plan_hash(), "backend": self.settings.backend},
            reporter=self.reporter,
        )
        manifest = None
        if self.settings.manifest:
            manifest = mf.create_manifest(
                run_id=run_id,
                started_at=started,
                version=__version__,
                config_hash=compute_config_hash(self.config),
                plan_hash=source.plan_hash(),
            )

        if self.settings.backend == "process":
            self._check_worker_state(source, ctx)

        ctx.log(node_id=None, level="INFO", message="run started", nodes=len(graph))
        pool = make_pool(self.settings.backend, self.settings.workers, self.environment)
        scheduler = Scheduler(
            graph=graph,
            store=self.store,
            invalidation=self._invalidation(forced),
            pool=pool,
            ctx=ctx,
            settings=self.settings,
            manifest=manifest,
        )
        self._scheduler = scheduler
        try:
            scheduler.run()
        finally:
            pool.shutdown(cancel=scheduler.cancelled)
            self._scheduler = None

        finished = datetime.now(timezone.utc)
        report = self._report(graph, scheduler, ctx, started, finished)
        ctx.log(node_id=None, level="INFO", message=f"run {report.status}", counts=report.counts())

        if manifest is not None:
            mf.run_finished(manifest, ts=finished, status=report.status)
            self.store.put_document(self.store.run_key(run_id), manifest.to_dict())
        self.last_context = ctx
        self.last_manifest = manifest
        return report

    def cancel(self) -> None:
        """Interrompe a run em andamento (chamado de outra thread ou callback)."""
        if self._scheduler is not None:
            self._scheduler.cancel()

    def _report(
        self,
        graph: Graph,
        scheduler: Scheduler,
        ctx: RunContext,
        started: datetime,
        finished: datetime,
    ) -> RunReport:
        nodes: Dict[str, NodeReport] = {}
        for node in graph.nodes():
            record = scheduler.records.get(node.node_id)
            if node.status == NodeStatus.SKIPPED or record is None:
                node_warnings = list(ctx.warnings.get(node.node_id, []))
            else:
                node_warnings = list(record.warnings)
            nodes[node.node_id] = NodeReport(
                node_id=node.node_id,
                task=node.name,
                kind=node.kind.value,
                status=node.status,
                parent=node.parent,
                reason=node.reason,
                duration_ms=record.duration_ms if record is not None else 0.0,
                bytes=record.bytes if record is not None else 0,
                warnings=node_warnings,
                error=node.error,
            )

        if scheduler.cancelled:
            status = RUN_CANCELLED
        elif any(n.status == NodeStatus.ERRORED for n in graph.nodes()):
            status = RUN_FAILED
        else:
            status = RUN_COMPLETED
        return RunReport(
            run_id=ctx.run_id,
            status=status,
            nodes=nodes,
            executed=list(scheduler.executed),
            started_at=started.isoformat(),
            finished_at=finished.isoformat(),
        )

    # ------------------------------------------------------------------
    # Inspeção
    # ------------------------------------------------------------------
    def get_status(self, plan: PlanLike) -> Dict[str, str]:
        """
        Dry run: `stale` | `fresh` por nó, sem executar nada.

        Branches aparecem quando conhecidos pelos registros armazenados;
        um upstream stale torna stale todos os seus dependentes.
        """
        graph = build_graph(PlanSource.of(plan))
        invalidation = self._invalidation()
        state: Dict[str, Tuple[bool, Optional[str]]] = {}
        result: Dict[str, str] = {}

        for node in graph.topological_order():
            deps = graph.deps(node.node_id)
            if any(state[d][0] for d in deps):
                state[node.node_id] = (True, None)
                result[node.node_id] = STALE
                continue

            inputs = {name: state[name][1] for name in node.task.refs()}
            record = self.store.get_metadata(node.node_id)
            stale = invalidation.check(node, inputs, record=record).stale

            if node.is_pattern and record is not NotFound:
                for child in record.children:
                    child_stale = self._child_stale(invalidation, node, child)
                    result[child] = STALE if (stale or child_stale) else FRESH
                    stale = stale or child_stale

            value_hash = record.value_hash if record is not NotFound else None
            state[node.node_id] = (stale, value_hash)
            result[node.node_id] = STALE if stale else FRESH
        return result

    def _child_stale(self, invalidation: InvalidationEngine, pattern: Node, child_id: str) -> bool:
        record = self.store.get_metadata(child_id)
        if record is NotFound:
            return True
        branch = Node(node_id=child_id, task=pattern.task, kind=NodeKind.BRANCH, parent=pattern.node_id)
        return invalidation.check(branch, record.input_hashes, record=record).stale

    def read_value(self, node_id: str) -> Any:
        """Valor armazenado do nó; um pattern devolve o valor consolidado."""
        record = self.store.get_metadata(node_id)
        if record is NotFound:
            return NotFound
        if record.kind != NodeKind.PATTERN.value:
            return self.store.get(node_id)

        values = []
        for child in record.children:
            value = self.store.get(child)
            if value is NotFound:
                return NotFound
            values.append(value)
        return consolidate(values, Iteration(record.iteration or Iteration.LIST.value))

    def get_metadata(self, node_id: str) -> Union[FingerprintRecord, Any]:
        return self.store.get_metadata(node_id)

    def invalidate(self, node_id: str) -> List[str]:
        """Marca o nó (e os branches de um pattern) para rebuild, preservando os dados."""
        record = self.store.get_metadata(node_id)
        if record is NotFound:
            return []
        targets = [record] + [
            r for r in (self.store.get_metadata(c) for c in record.children) if r is not NotFound
        ]
        for r in targets:
            self.store.put_record(r.supersede(invalidated=True))
        return [r.node_id for r in targets]

    def _matching(self, target: str) -> List[str]:
        ids = self.store.node_ids()
        if target in ids:
            return [target]
        return [nid for nid in ids if fnmatch.fnmatchcase(nid, target)]

    def delete(self, target: str) -> List[str]:
        """Remove registros por id, pattern (com branches) ou glob; libera blobs órfãos."""
        selected: List[str] = []
        for node_id in self._matching(target):
            record = self.store.get_metadata(node_id)
            selected.append(node_id)
            if record is not NotFound:
                selected.extend(record.children)

        deleted = [nid for nid in dict.fromkeys(selected) if self.store.delete(nid)]
        if deleted:
            self.store.collect_garbage()
        return deleted

    def prune(self, plan: PlanLike) -> List[str]:
        """Remove registros que não pertencem mais ao plano; branches ficam enquanto listados pelo pattern."""
        source = PlanSource.of(plan)
        names = set(source.names())
        records = {r.node_id: r for r in self.store.records()}

        keep = set()
        for node_id, record in records.items():
            if record.kind == NodeKind.BRANCH.value:
                parent = records.get(record.parent or "")
                if record.parent in names and parent is not None and node_id in parent.children:
                    keep.add(node_id)
            elif node_id in names:
                keep.add(node_id)

        deleted = [nid for nid in records if nid not in keep and self.store.delete(nid)]
        self.store.collect_garbage()
        return deleted
