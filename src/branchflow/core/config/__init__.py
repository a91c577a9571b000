# src/branchflow/core/config/__init__.py
"""
Camada de configuração do branchflow.

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (YAML/JSON)
    - Resolução da configuração final via deep-merge determinístico
      sobre `DEFAULT_CONFIG`
    - Validação dos parâmetros do engine (`EngineSettings`)
    - Geração de hash canônico para rastreabilidade no Manifest
"""

from .hashing import canonical_hash, compute_config_hash
from .loader import DEFAULT_CONFIG, load_config, resolve_config
from .merge import deep_merge
from .settings import EngineSettings

__all__ = [
    "DEFAULT_CONFIG",
    "EngineSettings",
    "canonical_hash",
    "compute_config_hash",
    "deep_merge",
    "load_config",
    "resolve_config",
]
