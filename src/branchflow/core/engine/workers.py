# src/branchflow/core/engine/workers.py
"""
Pool de workers e execução isolada de um nó.

Backends:
    - sequential → execução inline no coordenador
    - thread     → concurrent.futures.ThreadPoolExecutor
    - process    → loky.ProcessPoolExecutor (cloudpickle para closures)

`execute_work` nunca levanta para falhas do código do usuário: devolve
um `WorkOutcome` com valor ou erro, duração e warnings capturados.
O coordenador é o único dono do grafo e das escritas no store.
"""

from __future__ import annotations

import threading
import time
import warnings
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import loky

from branchflow.core.config.settings import BACKENDS
from branchflow.core.exceptions import EngineConfigurationError

from .environment import WorkerEnvironment, apply_environment


# ---------------------------------------------------------------------------
# Captura de warnings por thread
# ---------------------------------------------------------------------------

class _WarningRouter:
    """
    Encaminha warnings para o coletor da thread que os emitiu.

    `warnings.showwarning` é global; enquanto houver capturas ativas,
    o router ocupa esse hook e despacha pelo coletor thread-local.
    Warnings de threads sem captura seguem para o hook anterior.
    """

    _ALWAYS = ("always", None, Warning, None, 0)

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._local = threading.local()
        self._users = 0
        self._previous: Optional[Callable[..., Any]] = None
        self._hook: Optional[Callable[..., Any]] = None
        self._added_filter = False

    def _show(self, message, category, filename, lineno, file=None, line=None):
        sink = getattr(self._local, "sink", None)
        if sink is not None:
            sink.append(f"{category.__name__}: {message}")
            return
        if self._previous is not None:
            self._previous(message, category, filename, lineno, file, line)

    def _install(self) -> None:
        self._previous = warnings.showwarning
        self._hook = self._show
        warnings.showwarning = self._hook
        self._added_filter = self._ALWAYS not in warnings.filters
        if self._added_filter:
            warnings.simplefilter("always")

    def _uninstall(self) -> None:
        if warnings.showwarning is self._hook:
            warnings.showwarning = self._previous
        if self._added_filter and self._ALWAYS in warnings.filters:
            warnings.filters.remove(self._ALWAYS)
        self._previous = None
        self._hook = None
        self._added_filter = False

    @contextmanager
    def capture(self) -> Iterator[List[str]]:
        sink: List[str] = []
        with self._lock:
            if self._users == 0:
                self._install()
            self._users += 1
        outer = getattr(self._local, "sink", None)
        self._local.sink = sink
        try:
            yield sink
        finally:
            self._local.sink = outer
            with self._lock:
                self._users -= 1
                if self._users == 0:
                    self._uninstall()


_ROUTER = _WarningRouter()


def capture_warnings():
    """Context manager que coleta warnings emitidos pela thread atual."""
    return _ROUTER.capture()


# ---------------------------------------------------------------------------
# Unidade de trabalho
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkItem:
    node_id: str
    fn: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkOutcome:
    node_id: str
    value: Any = None
    duration_ms: float = 0.0
    warnings: List[str] = field(default_factory=list)
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_type is None

    @classmethod
    def from_exception(cls, node_id: str, exc: BaseException, **kwargs: Any) -> "WorkOutcome":
        return cls(node_id=node_id, error_type=type(exc).__name__, error_message=str(exc), **kwargs)


def execute_work(item: WorkItem, environment: Optional[WorkerEnvironment] = None) -> WorkOutcome:
    """Executa um nó (em qualquer backend) e devolve o resultado capturado."""
    started = time.perf_counter()
    with capture_warnings() as sink:
        try:
            if environment is not None:
                environment.apply()
            value = item.fn(*item.args, **item.kwargs)
        except Exception as exc:
            return WorkOutcome.from_exception(
                item.node_id,
                exc,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                warnings=list(sink),
            )
    return WorkOutcome(
        node_id=item.node_id,
        value=value,
        duration_ms=(time.perf_counter() - started) * 1000.0,
        warnings=list(sink),
    )


# ---------------------------------------------------------------------------
# Pools
# ---------------------------------------------------------------------------

class InlineExecutor(Executor):
    """Executor que roda cada submissão imediatamente na thread chamadora."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)
        return future


class WorkerPool:
    """Fachada única sobre os três backends de execução."""

    def __init__(
        self,
        backend: str = "sequential",
        workers: int = 1,
        environment: Optional[WorkerEnvironment] = None,
    ):
        if backend not in BACKENDS:
            raise EngineConfigurationError(
                f"Backend de workers desconhecido: {backend!r}",
                details={"backend": backend, "allowed": list(BACKENDS)},
            )
        self.backend = backend
        self.workers = max(1, int(workers))
        self.environment = environment

        if backend == "thread":
            self._executor: Executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="branchflow-worker"
            )
        elif backend == "process":
            self._executor = loky.ProcessPoolExecutor(
                max_workers=self.workers,
                initializer=apply_environment,
                initargs=(environment,),
            )
        else:
            self._executor = InlineExecutor()

    @property
    def inline(self) -> bool:
        return self.backend == "sequential"

    def submit(self, item: WorkItem) -> Future:
        return self._executor.submit(execute_work, item, self.environment)

    def shutdown(self, *, cancel: bool = False) -> None:
        if isinstance(self._executor, loky.ProcessPoolExecutor):
            self._executor.shutdown(wait=not cancel, kill_workers=cancel)
        else:
            self._executor.shutdown(wait=not cancel, cancel_futures=cancel)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(cancel=exc_type is not None)


def make_pool(backend: str, workers: int, environment: Optional[WorkerEnvironment] = None) -> WorkerPool:
    return WorkerPool(backend, workers, environment)
