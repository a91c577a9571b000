# src/branchflow/core/plan/__init__.py
"""
Declaração de planos do branchflow.

- types    → TaskDefinition, Ref, BranchPattern, TaskOptions e enums de estado
- task     → API de autoria (`task`, `ref`, `map_pattern`, `cross_pattern`)
- registry → `PlanSource`, o plano declarado e ordenado
"""

from .registry import PlanSource
from .task import cross_pattern, map_pattern, ref, task
from .types import (
    BranchPattern,
    Deployment,
    Iteration,
    MemoryPolicy,
    NodeKind,
    NodeStatus,
    PatternKind,
    Ref,
    StorageFormat,
    TaskDefinition,
    TaskOptions,
)

__all__ = [
    "BranchPattern",
    "Deployment",
    "Iteration",
    "MemoryPolicy",
    "NodeKind",
    "NodeStatus",
    "PatternKind",
    "PlanSource",
    "Ref",
    "StorageFormat",
    "TaskDefinition",
    "TaskOptions",
    "cross_pattern",
    "map_pattern",
    "ref",
    "task",
]
