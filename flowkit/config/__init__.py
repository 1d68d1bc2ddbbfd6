"""
Flowkit configuration: model, JSON format, layered loader and flags.
"""

from .models import (
    Account,
    Accounts,
    Alias,
    Config,
    Contract,
    ContractDeployment,
    Contracts,
    Deployment,
    Deployments,
    Emulator,
    Emulators,
    KeyConfig,
    KeyType,
    Network,
    Networks,
    default_config,
)
from .json_parser import JSONParser, substitute_env
from .loader import Loader, default_paths, global_path, local_path
from .flags import Flags

__all__ = [
    "Account",
    "Accounts",
    "Alias",
    "Config",
    "Contract",
    "ContractDeployment",
    "Contracts",
    "Deployment",
    "Deployments",
    "Emulator",
    "Emulators",
    "KeyConfig",
    "KeyType",
    "Network",
    "Networks",
    "default_config",
    "JSONParser",
    "substitute_env",
    "Loader",
    "default_paths",
    "global_path",
    "local_path",
    "Flags",
]
