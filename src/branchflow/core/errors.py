"""
branchflow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do branchflow.
Erros capturados durante uma run são convertidos em `ErrorPayload` antes
de chegarem ao RunReport, ao FingerprintRecord e ao Manifest, e devem ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis

Nenhum stack trace cru é exposto ao operador.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from .exceptions import BranchflowException


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorPayload:
    """
    Payload canônico de erro do branchflow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Branching
PATTERN_ARITY_ERROR = "PATTERN_ARITY_ERROR"
PATTERN_INPUT_ERROR = "PATTERN_INPUT_ERROR"

# Computação
COMPUTATION_ERROR = "COMPUTATION_ERROR"

# Storage
STORAGE_WRITE_ERROR = "STORAGE_WRITE_ERROR"
STORAGE_READ_ERROR = "STORAGE_READ_ERROR"

# Engine / Execução (falhas internas sem código próprio)
ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"


# Exceções levantadas durante a run.
_CODES_BY_EXCEPTION = {
    "PatternArityError": PATTERN_ARITY_ERROR,
    "PatternInputError": PATTERN_INPUT_ERROR,
    "StorageWriteError": STORAGE_WRITE_ERROR,
    "StorageReadError": STORAGE_READ_ERROR,
}


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def computation_error(
    *,
    node_id: str,
    exc_type: str,
    exc_message: str,
    hint: str = "Verifique o código da task; nós independentes continuam sendo construídos.",
) -> ErrorPayload:
    return ErrorPayload(
        type=COMPUTATION_ERROR,
        message=exc_message or f"{exc_type} levantado pela task",
        details={
            "node_id": node_id,
            "exc_type": exc_type,
        },
        hint=hint,
    )


def error_from_exception(exc: BaseException, *, node_id: Optional[str] = None) -> ErrorPayload:
    """Converte exceções em ErrorPayload (serializável, acionável).

    Regras:
    - BranchflowException: já vem com message/details/hint.
    - Outras exceções: encapsular como COMPUTATION_ERROR sem expor stack trace.
    """
    if isinstance(exc, BranchflowException):
        details = dict(exc.details)
        if node_id is not None:
            details.setdefault("node_id", node_id)
        return ErrorPayload(
            type=_CODES_BY_EXCEPTION.get(exc.__class__.__name__, ENGINE_EXECUTION_ERROR),
            message=exc.message or "Erro de execução",
            details=details,
            hint=exc.hint,
        )

    return computation_error(
        node_id=node_id or "",
        exc_type=exc.__class__.__name__,
        exc_message=str(exc),
    )


def summarize(errors: List[ErrorPayload]) -> List[str]:
    """Linhas curtas `TYPE: message` para exibição em relatórios."""
    return [f"{e.type}: {e.message}" for e in errors]
