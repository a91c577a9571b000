# src/branchflow/core/storage/records.py
"""
FingerprintRecord v1: proveniência persistida por nó.

Cada nó construído (static, branch ou pattern) possui exatamente um
registro vigente no store, em `meta/<node_id>.json`. O registro é
escrito atomicamente após o nó terminar, consultado antes do
agendamento para decidir a necessidade de rebuild e nunca é mutado:
apenas substituído (`supersede`).

Campos:
    - node_id, task, kind, parent: identidade do nó
    - code_hash: hash do código da computação
    - definition_hash: hash dos bindings literais, pattern e formato
    - input_hashes: fingerprint de cada input no momento do build
    - value_hash / value_ref / format / bytes: valor armazenado (content-addressed)
    - duration_ms, warnings, error: resultado da execução
    - children / iteration: branches e modo de consolidação (apenas patterns)
    - invalidated: marcado por `Engine.invalidate` (força rebuild, preserva dados)
    - created_at: timestamp ISO 8601 em UTC
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _NotFoundType:
    """Sentinela retornada (nunca levantada) quando um nó não existe no store."""

    _instance: Optional["_NotFoundType"] = None

    def __new__(cls) -> "_NotFoundType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NotFound"

    def __reduce__(self):
        return (_NotFoundType, ())


NotFound = _NotFoundType()


@dataclass(frozen=True)
class StorageRef:
    """Referência ao valor persistido de um nó."""
    node_id: str
    value_ref: str
    value_hash: str
    format: str
    bytes: int


@dataclass(frozen=True)
class FingerprintRecord:
    node_id: str
    task: str
    kind: str
    parent: Optional[str] = None
    code_hash: Optional[str] = None
    definition_hash: Optional[str] = None
    input_hashes: Dict[str, str] = field(default_factory=dict)
    value_hash: Optional[str] = None
    value_ref: Optional[str] = None
    format: Optional[str] = None
    bytes: int = 0
    duration_ms: float = 0.0
    warnings: List[str] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    children: List[str] = field(default_factory=list)
    iteration: Optional[str] = None
    invalidated: bool = False
    created_at: str = field(default_factory=_utc_now)

    @property
    def failed(self) -> bool:
        return self.error is not None

    def supersede(self, **changes: Any) -> "FingerprintRecord":
        """Novo registro derivado deste, com timestamp renovado."""
        changes.setdefault("created_at", _utc_now())
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, sort_keys=True, indent=2)

    def to_row(self) -> Dict[str, Any]:
        """Linha achatada para a tabela de metadata (pandas)."""
        return {
            "node_id": self.node_id,
            "task": self.task,
            "kind": self.kind,
            "parent": self.parent,
            "value_hash": self.value_hash,
            "format": self.format,
            "bytes": self.bytes,
            "duration_ms": self.duration_ms,
            "warnings": "; ".join(self.warnings),
            "error": (self.error or {}).get("message"),
            "children": len(self.children),
            "invalidated": self.invalidated,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FingerprintRecord":
        return cls(
            node_id=data["node_id"],
            task=data["task"],
            kind=data["kind"],
            parent=data.get("parent"),
            code_hash=data.get("code_hash"),
            definition_hash=data.get("definition_hash"),
            input_hashes=dict(data.get("input_hashes") or {}),
            value_hash=data.get("value_hash"),
            value_ref=data.get("value_ref"),
            format=data.get("format"),
            bytes=int(data.get("bytes") or 0),
            duration_ms=float(data.get("duration_ms") or 0.0),
            warnings=list(data.get("warnings") or []),
            error=data.get("error"),
            children=list(data.get("children") or []),
            iteration=data.get("iteration"),
            invalidated=bool(data.get("invalidated", False)),
            created_at=data.get("created_at") or _utc_now(),
        )


RECORD_COLUMNS = list(FingerprintRecord(node_id="", task="", kind="").to_row().keys())
