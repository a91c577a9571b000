"""Núcleo do branchflow: plano, grafo, branching, storage, invalidação e engine."""
