# src/branchflow/core/storage/backends.py
"""
Backends de persistência do Fingerprint Store.

Um backend é um blob store chave/valor com escrita atômica por chave.
Chaves usam `/` como separador (ex.: `meta/a.json`, `objects/ab/abcdef.joblib`).

Backends disponíveis:
    - LocalBackend: filesystem sob um diretório raiz (default)
    - MemoryBackend: dicionário em memória (testes, runs efêmeras)

Object stores de rede implementam o mesmo protocolo.

Invariantes:
    - `write_bytes` é atômico: um conteúdo parcial nunca é visível em `read_bytes`
    - `read_bytes` levanta KeyError quando a chave não existe
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Protocol, Union, runtime_checkable


_TMP_PREFIX = ".tmp-"


@runtime_checkable
class StorageBackend(Protocol):
    """Contrato mínimo de um backend de storage."""

    def write_bytes(self, key: str, data: bytes) -> None:
        ...

    def read_bytes(self, key: str) -> bytes:
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> bool:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...


class LocalBackend:
    """Blob store em filesystem com escrita via arquivo temporário + os.replace."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*key.split("/"))

    def write_bytes(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=str(path.parent))
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def read_bytes(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            raise KeyError(key) from None

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return False
        return True

    def keys(self, prefix: str = "") -> List[str]:
        base = self._path(prefix) if prefix else self.root
        if not base.exists():
            return []
        out = []
        for p in base.rglob("*"):
            if p.is_file() and not p.name.startswith(_TMP_PREFIX):
                out.append(p.relative_to(self.root).as_posix())
        return sorted(out)

    def __repr__(self) -> str:
        return f"LocalBackend({str(self.root)!r})"


class MemoryBackend:
    """Blob store em memória, thread-safe."""

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def write_bytes(self, key: str, data: bytes) -> None:
        with self._lock:
            self._blobs[key] = bytes(data)

    def read_bytes(self, key: str) -> bytes:
        with self._lock:
            return self._blobs[key]

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._blobs.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._blobs if k.startswith(prefix))
