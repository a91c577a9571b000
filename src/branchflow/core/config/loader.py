# src/branchflow/core/config/loader.py
"""
Loader canônico de configuração do branchflow.

A configuração efetiva é resolvida a partir de:
    - `DEFAULT_CONFIG` embutido (sempre presente)
    - um arquivo de defaults do projeto (opcional)
    - um arquivo local de overrides (opcional)

Precedência: local > defaults do projeto > DEFAULT_CONFIG.

Princípios fundamentais:
    - Configuração é declarativa e explícita
    - Erros estruturais são tratados como falhas fatais
    - A mesma entrada sempre produz a mesma configuração final

Limites explícitos:
    - Não valida valores semânticos (responsabilidade de `settings`)
    - Não persiste configuração ou hash
"""

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union
import json

import yaml  # PyYAML

from .merge import deep_merge
from .errors import (
    ConfigFileNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)


DEFAULT_CONFIG: Dict[str, Any] = {
    "store": {
        "root": "_branchflow",
    },
    "engine": {
        "backend": "sequential",
        "workers": 1,
        "fail_fast": False,
        "memory": "persistent",
        "format": "joblib",
        "manifest": True,
    },
}


def _load_file(path: Path) -> Dict[str, Any]:
    """
    Carrega um arquivo de configuração e valida sua estrutura básica.

    Arquivos vazios são interpretados como dicionários vazios.

    Raises:
        ConfigFileNotFoundError: Se o arquivo não existir.
        UnsupportedConfigFormatError: Se o formato do arquivo não for suportado.
        InvalidConfigRootTypeError: Se o conteúdo raiz não for um dicionário.
    """
    if not path.exists():
        raise ConfigFileNotFoundError(f"Arquivo de configuração não encontrado: {path}")

    suffix = path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

    elif suffix == ".json":
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)

    else:
        raise UnsupportedConfigFormatError(f"Formato não suportado: {path.suffix}")

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}"
        )

    return data


def resolve_config(*overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Aplica overrides já materializados (dicts) sobre `DEFAULT_CONFIG`, em ordem."""
    effective = deepcopy(DEFAULT_CONFIG)
    for override in overrides:
        if override:
            effective = deep_merge(effective, override)
    return effective


def load_config(
    *,
    defaults_path: Optional[Union[str, Path]] = None,
    local_path: Optional[Union[str, Path]] = None,
) -> Dict[str, Any]:
    """
    Carrega e resolve a configuração efetiva do engine.

    Política de resolução:
        - `defaults_path`, quando informado, é obrigatório (deve existir)
        - `local_path` é opcional; se o arquivo não existir é ignorado
        - A resolução utiliza `deep_merge` com política determinística

    Args:
        defaults_path: Caminho para o arquivo de configuração do projeto.
        local_path: Caminho opcional para overrides locais.

    Returns:
        Dict[str, Any]: Configuração final resolvida.

    Raises:
        ConfigFileNotFoundError: Se o arquivo de defaults não existir.
        UnsupportedConfigFormatError: Se o formato do arquivo não for suportado.
        InvalidConfigRootTypeError: Se o conteúdo não for um dicionário.
        ConfigTypeConflictError: Se ocorrer conflito estrutural durante o merge.
    """
    project: Dict[str, Any] = {}
    if defaults_path is not None:
        project = _load_file(Path(defaults_path))

    local: Dict[str, Any] = {}
    if local_path is not None:
        local_file = Path(local_path)
        if local_file.exists():
            local = _load_file(local_file)

    return resolve_config(project, local)
