# src/branchflow/core/engine/context.py
"""
Contexto de execução de uma run do branchflow.

O `RunContext` concentra identidade, configuração resolvida, eventos
estruturados e warnings por nó de uma única run. Ele é o log da run:
cada evento recebe `run_id`, `node_id`, `level` e `timestamp` e é
encaminhado ao `reporter` opcional (stream de status do build).

Invariantes:
    - Cada run possui um RunContext próprio
    - Eventos sempre incluem `run_id` e `node_id`
    - Warnings são agrupados por `node_id`

Limites explícitos:
    - Não executa nós
    - Não persiste dados (o Manifest é salvo pelo Engine)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional


Reporter = Callable[[Dict[str, Any]], None]


@dataclass
class RunContext:
    """Contexto canônico de uma run (identidade, config, eventos, warnings)."""

    run_id: str
    created_at: datetime
    config: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)
    reporter: Optional[Reporter] = field(default=None, repr=False)

    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, node_id: Optional[str], level: str, message: str, **extra: Any) -> Dict[str, Any]:
        event = {
            "run_id": self.run_id,
            "node_id": node_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)
        if self.reporter is not None:
            self.reporter(dict(event))
        return event

    def add_warning(self, *, node_id: str, message: str) -> None:
        if node_id not in self.warnings:
            self.warnings[node_id] = []
        self.warnings[node_id].append(message)

    def events_for(self, node_id: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e.get("node_id") == node_id]
