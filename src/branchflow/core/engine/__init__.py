"""Execução: Engine (fachada), Scheduler, pool de workers e RunReport."""

from .context import RunContext
from .engine import Engine
from .environment import WorkerEnvironment, WorkerStateWarning
from .report import NodeReport, RunReport
from .workers import WorkerPool, make_pool

__all__ = [
    "Engine",
    "NodeReport",
    "RunContext",
    "RunReport",
    "WorkerEnvironment",
    "WorkerPool",
    "WorkerStateWarning",
    "make_pool",
]
