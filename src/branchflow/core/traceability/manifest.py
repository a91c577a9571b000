# src/branchflow/core/traceability/manifest.py
"""
Manifest v1 — rastreabilidade de execuções do branchflow.

O Manifest consolida, de forma determinística e auditável:
    - metadados da run (run_id, started_at, finished_at, status, versão)
    - hashes semânticos das entradas (config e plano)
    - estado incremental de cada nó (static, pattern e branch)
    - Event Log ordenado de eventos explícitos

Eventos canônicos:
    node_dispatched, node_completed, node_skipped, node_failed,
    branches_expanded, run_finished

Decisões arquiteturais:
    - UTC é o timezone canônico para todos os timestamps
    - O formato de persistência é JSON determinístico (sort_keys)
    - Nenhum evento é emitido implicitamente; o Scheduler chama a API

Limites explícitos:
    - Não executa nós
    - Não decide políticas de execução (fail-fast, skip)
    - Não realiza migração de versões de schema
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """Timestamps sem timezone são assumidos como UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


@dataclass
class RunManifest:
    """
    Registro de uma run.

    Campos:
        - run: metadados da execução
        - inputs: hashes de config e plano
        - nodes: estado incremental por node_id
        - events: Event Log ordenado
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    nodes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "nodes": {k: dict(v) for k, v in self.nodes.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunManifest":
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            nodes={k: dict(v) for k, v in (data.get("nodes", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2, sort_keys=True, default=str)

    def event_types(self) -> List[str]:
        return [e["event_type"] for e in self.events]


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    version: str,
    config_hash: str,
    plan_hash: str,
) -> RunManifest:
    """Manifest inicial da run. O Event Log começa vazio."""
    started_at = _ensure_tzaware_utc(started_at)
    return RunManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "branchflow_version": version,
        },
        inputs={
            "config_hash": config_hash,
            "plan_hash": plan_hash,
        },
    )


def add_event(
    manifest: RunManifest,
    *,
    event_type: str,
    ts: datetime,
    node_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    event: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if node_id is not None:
        event["node_id"] = node_id
    if payload:
        event["payload"] = dict(payload)
    manifest.events.append(event)


def _node(manifest: RunManifest, node_id: str) -> Dict[str, Any]:
    if node_id not in manifest.nodes:
        manifest.nodes[node_id] = {"node_id": node_id}
    return manifest.nodes[node_id]


def node_dispatched(manifest: RunManifest, *, node_id: str, ts: datetime, task: str, kind: str, reason: str) -> None:
    node = _node(manifest, node_id)
    node.update({"task": task, "kind": kind, "status": "dispatched", "reason": reason, "started_at": _iso(ts)})
    add_event(manifest, event_type="node_dispatched", ts=ts, node_id=node_id, payload={"reason": reason})


def node_completed(manifest: RunManifest, *, node_id: str, ts: datetime, result: Dict[str, Any]) -> None:
    node = _node(manifest, node_id)
    node["status"] = "completed"
    node["finished_at"] = _iso(ts)
    node.update(result)
    add_event(manifest, event_type="node_completed", ts=ts, node_id=node_id, payload=result)


def node_skipped(manifest: RunManifest, *, node_id: str, ts: datetime, task: str, kind: str) -> None:
    node = _node(manifest, node_id)
    node.update({"task": task, "kind": kind, "status": "skipped"})
    add_event(manifest, event_type="node_skipped", ts=ts, node_id=node_id)


def node_failed(manifest: RunManifest, *, node_id: str, ts: datetime, error: Dict[str, Any]) -> None:
    node = _node(manifest, node_id)
    node["status"] = "errored"
    node["finished_at"] = _iso(ts)
    node["error"] = dict(error)
    add_event(manifest, event_type="node_failed", ts=ts, node_id=node_id, payload={"error": dict(error)})


def branches_expanded(manifest: RunManifest, *, pattern_id: str, ts: datetime, children: List[str]) -> None:
    node = _node(manifest, pattern_id)
    node["children"] = list(children)
    add_event(
        manifest,
        event_type="branches_expanded",
        ts=ts,
        node_id=pattern_id,
        payload={"count": len(children)},
    )


def run_finished(manifest: RunManifest, *, ts: datetime, status: str) -> None:
    manifest.run["finished_at"] = _iso(ts)
    manifest.run["status"] = status
    started = manifest.run.get("started_at")
    if started:
        manifest.run["duration_ms"] = _ms_between(datetime.fromisoformat(started), ts)
    add_event(manifest, event_type="run_finished", ts=ts, payload={"status": status})


def save_manifest(manifest: RunManifest, path: Union[str, Path]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(manifest.to_json(), encoding="utf-8")


def load_manifest(path: Union[str, Path]) -> RunManifest:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return RunManifest.from_dict(data)
