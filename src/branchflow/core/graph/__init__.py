# src/branchflow/core/graph/__init__.py
"""
Grafo de dependências do branchflow: arena de nós (`Graph`, `Node`) e
o builder que compila um `PlanSource` em esqueleto estático.
"""

from .builder import build_graph
from .graph import Graph, Node, SliceRef

__all__ = ["Graph", "Node", "SliceRef", "build_graph"]
