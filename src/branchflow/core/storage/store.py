# src/branchflow/core/storage/store.py
"""
Fingerprint Store (v1).

Persistência de valores e metadata por nó, sobre um `StorageBackend`.

Layout (chaves do backend):
    objects/<hh>/<value_hash>.<format>   → valor serializado (content-addressed)
    meta/<node_id>.json                  → FingerprintRecord vigente
    runs/<run_id>.json                   → Manifest da run (traceability)

Decisões (v1):
    - `value_hash` = `joblib.hash` da forma armazenada do valor: o que a
      próxima run relê do store tem o mesmo hash que a run atual calculou
    - `json` não preserva tuplas nem chaves não-string; a forma armazenada
      é o valor após ida e volta pelo codec (`stored_form`)
    - Blob é escrito antes do registro: um registro vigente sempre aponta
      para um blob completo
    - Blobs nunca são sobrescritos (mesmo hash → mesmo conteúdo)
    - Blobs sem referência são removidos apenas por `collect_garbage`

Limites explícitos:
    - Sem locking entre processos: um único coordenador escreve no store
    - Leituras de nós inexistentes retornam `NotFound` (não levantam)
"""

from __future__ import annotations

import io
import json
import pickle
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union
from urllib.parse import quote, unquote

import joblib
import pandas as pd

from branchflow.core.exceptions import StorageReadError, StorageWriteError
from branchflow.core.plan.types import StorageFormat
from .backends import LocalBackend, StorageBackend
from .records import RECORD_COLUMNS, FingerprintRecord, NotFound, StorageRef


OBJECTS_PREFIX = "objects/"
META_PREFIX = "meta/"
RUNS_PREFIX = "runs/"


def value_fingerprint(value: Any) -> str:
    """Fingerprint de conteúdo de um valor realizado."""
    return joblib.hash(value)


def serialize(value: Any, fmt: StorageFormat) -> bytes:
    fmt = StorageFormat(fmt)
    if fmt is StorageFormat.JOBLIB:
        buf = io.BytesIO()
        joblib.dump(value, buf)
        return buf.getvalue()
    if fmt is StorageFormat.PICKLE:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    return json.dumps(value, ensure_ascii=False, sort_keys=True).encode("utf-8")


def deserialize(data: bytes, fmt: StorageFormat) -> Any:
    fmt = StorageFormat(fmt)
    if fmt is StorageFormat.JOBLIB:
        return joblib.load(io.BytesIO(data))
    if fmt is StorageFormat.PICKLE:
        return pickle.loads(data)
    return json.loads(data.decode("utf-8"))


def stored_form(value: Any, fmt: StorageFormat) -> Any:
    """Valor como será relido do store (ida e volta para formatos com perda)."""
    fmt = StorageFormat(fmt)
    if fmt is StorageFormat.JSON:
        return deserialize(serialize(value, fmt), fmt)
    return value


class FingerprintStore:
    """Store canônica de valores e FingerprintRecords."""

    def __init__(self, backend: Optional[StorageBackend] = None, *, root: Union[str, Path, None] = None):
        if backend is None:
            backend = LocalBackend(root if root is not None else "_branchflow")
        self.backend = backend

    @classmethod
    def local(cls, root: Union[str, Path]) -> "FingerprintStore":
        return cls(LocalBackend(root))

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    @staticmethod
    def meta_key(node_id: str) -> str:
        return f"{META_PREFIX}{quote(node_id, safe='')}.json"

    @staticmethod
    def object_key(value_hash: str, fmt: StorageFormat) -> str:
        return f"{OBJECTS_PREFIX}{value_hash[:2]}/{value_hash}.{StorageFormat(fmt).value}"

    @staticmethod
    def run_key(run_id: str) -> str:
        return f"{RUNS_PREFIX}{run_id}.json"

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------
    def put(self, node_id: str, value: Any, record: FingerprintRecord) -> StorageRef:
        """Persiste `value` e o registro do nó (blob primeiro, registro depois).

        Os campos de valor do registro (`value_hash`, `value_ref`,
        `format`, `bytes`) são preenchidos aqui.
        """
        fmt = StorageFormat(record.format or StorageFormat.JOBLIB)
        try:
            data = serialize(value, fmt)
            if fmt is StorageFormat.JSON:
                value = deserialize(data, fmt)
            value_hash = value_fingerprint(value)
        except Exception as exc:
            raise StorageWriteError(
                f"Valor do nó '{node_id}' não pode ser serializado como {fmt.value}: {exc}",
                details={"node_id": node_id, "format": fmt.value, "exc_type": type(exc).__name__},
                hint="Escolha outro `format` para a task ou retorne um valor serializável.",
            ) from exc

        key = self.object_key(value_hash, fmt)
        try:
            if not self.backend.exists(key):
                self.backend.write_bytes(key, data)
        except OSError as exc:
            raise StorageWriteError(
                f"Falha ao gravar o valor do nó '{node_id}': {exc}",
                details={"node_id": node_id, "key": key},
                hint="Verifique espaço em disco e permissões do diretório do store.",
            ) from exc

        ref = StorageRef(
            node_id=node_id,
            value_ref=key,
            value_hash=value_hash,
            format=fmt.value,
            bytes=len(data),
        )
        self.put_record(
            record.supersede(
                node_id=node_id,
                value_hash=value_hash,
                value_ref=key,
                format=fmt.value,
                bytes=len(data),
                created_at=record.created_at,
            )
        )
        return ref

    def put_record(self, record: FingerprintRecord) -> None:
        """Substitui atomicamente o registro vigente do nó."""
        try:
            self.backend.write_bytes(self.meta_key(record.node_id), record.to_json().encode("utf-8"))
        except (OSError, TypeError, ValueError) as exc:
            raise StorageWriteError(
                f"Falha ao gravar a metadata do nó '{record.node_id}': {exc}",
                details={"node_id": record.node_id},
            ) from exc

    def put_document(self, key: str, payload: Any) -> None:
        """Persiste um documento JSON arbitrário (ex.: Manifest em runs/)."""
        try:
            data = json.dumps(payload, ensure_ascii=False, indent=2, default=str).encode("utf-8")
            self.backend.write_bytes(key, data)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageWriteError(f"Falha ao gravar o documento '{key}': {exc}", details={"key": key}) from exc

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def get_metadata(self, node_id: str) -> Union[FingerprintRecord, Any]:
        """Registro vigente do nó ou `NotFound`."""
        try:
            raw = self.backend.read_bytes(self.meta_key(node_id))
        except KeyError:
            return NotFound
        try:
            return FingerprintRecord.from_dict(json.loads(raw.decode("utf-8")))
        except (ValueError, KeyError, TypeError) as exc:
            raise StorageReadError(
                f"Metadata do nó '{node_id}' corrompida: {exc}",
                details={"node_id": node_id},
                hint="Remova o nó com `Engine.delete` para forçar o rebuild.",
            ) from exc

    def has_value(self, record: FingerprintRecord) -> bool:
        return bool(record.value_ref) and self.backend.exists(record.value_ref)

    def get(self, node_id: str) -> Any:
        """Valor armazenado do nó ou `NotFound`."""
        record = self.get_metadata(node_id)
        if record is NotFound or not record.value_ref:
            return NotFound
        return self.load_ref(record.value_ref, record.format, node_id=node_id)

    def load_ref(self, value_ref: str, fmt: Optional[str], *, node_id: str = "") -> Any:
        try:
            data = self.backend.read_bytes(value_ref)
        except KeyError:
            return NotFound
        try:
            return deserialize(data, StorageFormat(fmt or StorageFormat.JOBLIB))
        except Exception as exc:
            raise StorageReadError(
                f"Valor armazenado do nó '{node_id}' não pode ser desserializado: {exc}",
                details={"node_id": node_id, "key": value_ref, "exc_type": type(exc).__name__},
                hint="Remova o nó com `Engine.delete` para forçar o rebuild.",
            ) from exc

    def get_document(self, key: str) -> Any:
        try:
            raw = self.backend.read_bytes(key)
        except KeyError:
            return NotFound
        return json.loads(raw.decode("utf-8"))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    def node_ids(self) -> List[str]:
        out = []
        for key in self.backend.keys(META_PREFIX):
            name = key[len(META_PREFIX):]
            if name.endswith(".json"):
                out.append(unquote(name[: -len(".json")]))
        return sorted(out)

    def records(self) -> Iterator[FingerprintRecord]:
        for node_id in self.node_ids():
            record = self.get_metadata(node_id)
            if record is not NotFound:
                yield record

    def table(self) -> pd.DataFrame:
        """Tabela de metadata de todos os nós armazenados."""
        rows = [r.to_row() for r in self.records()]
        if not rows:
            return pd.DataFrame(columns=RECORD_COLUMNS)
        return pd.DataFrame.from_records(rows, columns=RECORD_COLUMNS)

    def run_ids(self) -> List[str]:
        return sorted(
            k[len(RUNS_PREFIX): -len(".json")]
            for k in self.backend.keys(RUNS_PREFIX)
            if k.endswith(".json")
        )

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------
    def delete(self, node_id: str) -> bool:
        """Remove o registro do nó. Blobs são liberados por `collect_garbage`."""
        return self.backend.delete(self.meta_key(node_id))

    def collect_garbage(self) -> List[str]:
        """Remove blobs não referenciados por nenhum registro vigente."""
        referenced = {r.value_ref for r in self.records() if r.value_ref}
        removed = []
        for key in self.backend.keys(OBJECTS_PREFIX):
            if key not in referenced:
                self.backend.delete(key)
                removed.append(key)
        return removed

    def __repr__(self) -> str:
        return f"FingerprintStore({self.backend!r})"
