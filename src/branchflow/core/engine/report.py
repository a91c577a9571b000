# src/branchflow/core/engine/report.py
"""
RunReport v1: resultado agregado de uma run.

Um `NodeReport` por nó conhecido ao final da run (static, pattern e
branches expandidos), com status final, duração, tamanho armazenado,
warnings e erro. O status da run é:

    - completed: nenhum nó com erro
    - failed:    ao menos um nó com erro (após drenar o restante)
    - cancelled: run interrompida (cancel / KeyboardInterrupt)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from branchflow.core.errors import ErrorPayload, summarize
from branchflow.core.plan.types import NodeStatus


RUN_COMPLETED = "completed"
RUN_FAILED = "failed"
RUN_CANCELLED = "cancelled"

REPORT_COLUMNS = [
    "node_id",
    "task",
    "kind",
    "parent",
    "status",
    "reason",
    "duration_ms",
    "bytes",
    "warnings",
    "error",
]


@dataclass(frozen=True)
class NodeReport:
    node_id: str
    task: str
    kind: str
    status: NodeStatus
    parent: Optional[str] = None
    reason: Optional[str] = None
    duration_ms: float = 0.0
    bytes: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[ErrorPayload] = None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    def to_row(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "task": self.task,
            "kind": self.kind,
            "parent": self.parent,
            "status": self.status.value,
            "reason": self.reason,
            "duration_ms": self.duration_ms,
            "bytes": self.bytes,
            "warnings": list(self.warnings),
            "error": self.message,
        }


@dataclass(frozen=True)
class RunReport:
    run_id: str
    status: str
    nodes: Dict[str, NodeReport] = field(default_factory=dict)
    executed: List[str] = field(default_factory=list)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == RUN_FAILED

    @property
    def cancelled(self) -> bool:
        return self.status == RUN_CANCELLED

    def __getitem__(self, node_id: str) -> NodeReport:
        return self.nodes[node_id]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def status_of(self, node_id: str) -> NodeStatus:
        return self.nodes[node_id].status

    def with_status(self, status: NodeStatus) -> List[str]:
        return [nid for nid, n in self.nodes.items() if n.status == status]

    def errors(self) -> Dict[str, str]:
        """Nós com erro e a última mensagem capturada de cada um."""
        return {
            nid: n.error.message
            for nid, n in self.nodes.items()
            if n.status == NodeStatus.ERRORED and n.error is not None
        }

    def error_lines(self) -> List[str]:
        payloads = [n.error for n in self.nodes.values() if n.error is not None]
        return summarize(payloads)

    def warnings(self) -> Dict[str, List[str]]:
        return {nid: list(n.warnings) for nid, n in self.nodes.items() if n.warnings}

    def counts(self) -> Dict[str, int]:
        out = {s.value: 0 for s in NodeStatus}
        for n in self.nodes.values():
            out[n.status.value] += 1
        return out

    def to_frame(self) -> pd.DataFrame:
        rows = [n.to_row() for n in self.nodes.values()]
        return pd.DataFrame.from_records(rows, columns=REPORT_COLUMNS)

    def summary(self) -> str:
        counts = ", ".join(f"{k}={v}" for k, v in self.counts().items() if v)
        lines = [f"run {self.run_id}: {self.status} ({counts})"]
        lines.extend(f"  {line}" for line in self.error_lines())
        return "\n".join(lines)
