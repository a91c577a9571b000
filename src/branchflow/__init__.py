"""
branchflow — build incremental de DAGs com branching dinâmico.

API pública:
    - declaração: `task`, `ref`, `map_pattern`, `cross_pattern`, `PlanSource`
    - execução: `Engine`, `RunReport`, `WorkerEnvironment`
    - store: `FingerprintStore`, `LocalBackend`, `MemoryBackend`, `NotFound`
    - configuração: `load_config`
"""

from branchflow._version import __version__
from branchflow.core.config import load_config
from branchflow.core.engine import Engine, NodeReport, RunReport, WorkerEnvironment, WorkerStateWarning
from branchflow.core.exceptions import (
    BranchflowException,
    BranchPatternError,
    ComputationError,
    CyclicDependencyError,
    DuplicateTaskError,
    EngineConfigurationError,
    PatternArityError,
    PatternInputError,
    PlanDefinitionError,
    StorageReadError,
    StorageWriteError,
    UnknownDependencyError,
)
from branchflow.core.plan import PlanSource, cross_pattern, map_pattern, ref, task
from branchflow.core.storage import FingerprintStore, LocalBackend, MemoryBackend, NotFound

__all__ = [
    "__version__",
    "BranchPatternError",
    "BranchflowException",
    "ComputationError",
    "CyclicDependencyError",
    "DuplicateTaskError",
    "Engine",
    "EngineConfigurationError",
    "FingerprintStore",
    "LocalBackend",
    "MemoryBackend",
    "NodeReport",
    "NotFound",
    "PatternArityError",
    "PatternInputError",
    "PlanDefinitionError",
    "PlanSource",
    "RunReport",
    "StorageReadError",
    "StorageWriteError",
    "UnknownDependencyError",
    "WorkerEnvironment",
    "WorkerStateWarning",
    "cross_pattern",
    "load_config",
    "map_pattern",
    "ref",
    "task",
]
