# src/branchflow/core/config/hashing.py
"""
Hashing canônico de estruturas JSON do branchflow.

O hash gerado representa a identidade estrutural da configuração
efetiva (e, por extensão, de qualquer estrutura JSON-serializável como
a descrição de um plano) e é registrado no Manifest de cada run.

Política de hashing (v1):
    - Serialização JSON canônica (chaves ordenadas, separadores compactos)
    - Codificação UTF-8
    - SHA-256, hexadecimal de 64 caracteres
"""

import hashlib
import json
from typing import Any, Dict


def canonical_hash(obj: Any) -> str:
    """
    Gera um hash SHA-256 determinístico de uma estrutura JSON-serializável.

    Valores não serializáveis nativamente são convertidos via `str`, o que
    mantém o hash estável para tipos com `repr`/`str` determinísticos.
    """
    canonical_json = json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera um hash determinístico da configuração efetiva.

    Raises:
        TypeError: Se o objeto fornecido não for um dicionário.
    """
    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )
    return canonical_hash(config)
