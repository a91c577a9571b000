# src/branchflow/core/invalidation/fingerprint.py
"""
Fingerprints de código e de definição de tasks.

- code_fingerprint(fn): hash do código-fonte (dedent); fallback para
  bytecode + constantes e, por último, para o nome qualificado.
  `functools.partial` é desembrulhado (função + argumentos fixados).
- definition_fingerprint(task, fmt): hash dos bindings literais, do
  pattern, do formato de armazenamento e do modo de iteração.

Ambos são estáveis entre processos: nenhum endereço de memória entra
no payload hasheado.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import textwrap
from types import CodeType
from typing import Any, Callable

import joblib

from branchflow.core.plan.types import StorageFormat, TaskDefinition


def _sha256(payload: Any) -> str:
    return hashlib.sha256(repr(payload).encode("utf-8")).hexdigest()


def _code_payload(code: CodeType) -> tuple:
    consts = tuple(
        _code_payload(c) if isinstance(c, CodeType) else repr(c)
        for c in code.co_consts
    )
    return (code.co_name, code.co_code, consts, code.co_names)


def code_fingerprint(fn: Callable[..., Any]) -> str:
    if isinstance(fn, functools.partial):
        bound = (fn.args, sorted((fn.keywords or {}).items()))
        return _sha256(("partial", code_fingerprint(fn.func), _safe_hash(bound)))

    target = inspect.unwrap(fn)
    try:
        return _sha256(("source", textwrap.dedent(inspect.getsource(target))))
    except (OSError, TypeError):
        pass

    code = getattr(target, "__code__", None)
    if isinstance(code, CodeType):
        return _sha256(("bytecode", _code_payload(code)))

    module = getattr(target, "__module__", None)
    qualname = getattr(target, "__qualname__", None) or type(target).__qualname__
    return _sha256(("name", module, qualname))


def _safe_hash(obj: Any) -> str:
    try:
        return joblib.hash(obj)
    except Exception:
        return _sha256(obj)


def definition_fingerprint(task: TaskDefinition, fmt: StorageFormat) -> str:
    args, kwargs = task.literal_bindings()
    pattern = task.pattern.describe() if task.pattern is not None else None
    return _safe_hash(
        {
            "args": args,
            "kwargs": kwargs,
            "pattern": pattern,
            "format": StorageFormat(fmt).value,
            "iteration": task.options.iteration.value,
        }
    )
