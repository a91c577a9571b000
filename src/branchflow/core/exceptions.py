# src/branchflow/core/exceptions.py
"""
branchflow — Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do branchflow.

Objetivo:
- Permitir que planner, expander, store e engine levantem exceções semânticas
- Facilitar o mapeamento determinístico para ErrorPayload
- Evitar ValueError/RuntimeError genéricos em guardrails críticos

Escopo dos erros (política de propagação):
- Erros de plano (duplicidade, referência inexistente, ciclo) são fatais
  para a run inteira e ocorrem antes de qualquer execução.
- Erros de pattern são fatais apenas para o nó pattern e seus descendentes.
- Erros de computação e de storage são fatais apenas para o nó que os
  produziu e sua subárvore de dependentes.

Regras:
- Exceções carregam apenas dados estruturados (serializáveis) em `details`.
- Mensagem deve ser curta e humana.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class BranchflowException(Exception):
    """Base class para exceções internas do branchflow.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.hint = hint

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Plano / Grafo (plan-time)
# ---------------------------------------------------------------------------

class PlanDefinitionError(BranchflowException):
    """Definição de task inválida (nome vazio, função não chamável, opção desconhecida)."""


class DuplicateTaskError(PlanDefinitionError):
    """Dois TaskDefinitions declaram o mesmo nome no plano."""


class UnknownDependencyError(PlanDefinitionError):
    """Uma referência (`Ref`) aponta para uma task não declarada no plano."""


class PatternDefinitionError(PlanDefinitionError):
    """Pattern declarado sobre nomes inexistentes ou não vinculados como argumento."""


class CyclicDependencyError(PlanDefinitionError):
    """
    O grafo de dependências contém um ciclo.

    O atributo `cycle` contém o caminho do ciclo, começando e terminando
    no mesmo nome (ex.: ["a", "b", "a"]).
    """

    def __init__(self, cycle: Sequence[str]):
        path: List[str] = list(cycle)
        super().__init__(
            f"Ciclo detectado no grafo de dependências: {' -> '.join(path)}",
            details={"cycle": path},
            hint="Remova uma das referências do ciclo; o plano precisa formar um DAG.",
        )
        self.cycle = path


# ---------------------------------------------------------------------------
# Branching dinâmico (runtime)
# ---------------------------------------------------------------------------

class BranchPatternError(BranchflowException):
    """Falha ao expandir um pattern (`map`/`cross`) sobre valores realizados."""


class PatternArityError(BranchPatternError):
    """Inputs de um `map` possuem comprimentos diferentes."""


class PatternInputError(BranchPatternError):
    """Valor upstream de um pattern não pode ser fatiado em elementos."""


# ---------------------------------------------------------------------------
# Computação / Storage (runtime)
# ---------------------------------------------------------------------------

class ComputationError(BranchflowException):
    """Falha opaca do código do usuário durante a computação de um nó."""


class StorageError(BranchflowException):
    """Base para falhas de persistência no Fingerprint Store."""


class StorageWriteError(StorageError):
    """Escrita de valor ou metadata falhou (disco cheio, permissão, serialização)."""


class StorageReadError(StorageError):
    """Leitura de valor ou metadata falhou (blob corrompido, formato inválido)."""


# ---------------------------------------------------------------------------
# Engine / Configuração
# ---------------------------------------------------------------------------

class EngineConfigurationError(BranchflowException):
    """Configuração inválida ou inconsistente para execução."""
