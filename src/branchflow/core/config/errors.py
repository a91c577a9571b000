# src/branchflow/core/config/errors.py
"""
Exceções canônicas da camada de configuração do branchflow.

As exceções aqui definidas representam violações estruturais da
configuração (arquivo ausente, formato desconhecido, raiz inválida,
conflito de tipos no merge), e não erros de execução de nós.

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção representa erro de computação ou de storage
"""


class ConfigError(Exception):
    """
    Exceção base para erros relacionados à configuração do branchflow.

    Permite captura genérica de erros de configuração e distinção clara
    entre falhas estruturais e falhas de execução.
    """


class ConfigFileNotFoundError(ConfigError):
    """
    Exceção levantada quando um arquivo de configuração declarado
    explicitamente não é encontrado.

    Limites explícitos:
        - Não tenta inferir ou criar o arquivo automaticamente
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Exceção levantada quando o formato do arquivo de configuração
    não é suportado pelo loader.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """
    Exceção levantada quando o conteúdo raiz da configuração
    não é um dicionário (`dict`).
    """


class ConfigTypeConflictError(ConfigError):
    """
    Exceção levantada quando ocorre conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"engine": {"workers": 4}}
        - override: {"engine": "thread"}

    Invariantes:
        - Nenhum merge parcial é produzido em caso de conflito
    """
