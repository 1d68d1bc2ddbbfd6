"""
Flowkit - Flow Project Toolkit

A Python toolkit for developing on the Flow blockchain: project
configuration, keys and accounts, Cadence import resolution, ordered
contract deployment, transaction signing and event scanning.

Usage:
    from flowkit import Flowkit, State, FileSystem, HttpGateway

    state = State.load(["flow.json"], FileSystem())
    network = state.networks().by_name("emulator")
    flowkit = Flowkit(state, network, HttpGateway("http://127.0.0.1:8888"))

    flowkit.deploy_project(update=True)

Sending a transaction:
    from flowkit import AccountRoles, Script

    account = state.accounts().by_name("emulator-account")
    tx, result = flowkit.send_transaction(
        AccountRoles.single(account),
        Script(code, args, "./transactions/mint.cdc"),
    )

From command flags:
    flowkit = Flowkit.from_flags(Flags(network="testnet"))
"""

# Engine
from .client import Flowkit, default_gateway
from .state import State, extract_key

# Configuration
from .config import Config, Flags, Loader

# Accounts and keys
from .accounts import Account, Accounts
from .providers import (
    KeyProvider,
    HexKeyProvider,
    FileKeyProvider,
    KMSKeyProvider,
    Bip44KeyProvider,
)
from .infra.crypto import PrivateKey, generate_private_key

# Roles
from .roles import Role, AccountRoles, AddressRoles

# Programs, deployment and transactions
from .core.program import Program, Script
from .core.imports import ImportReplacer
from .core.deployment import Deployment
from .core.transaction import Transaction
from .core.gateway import Gateway
from .cadence import Value

# Infrastructure
from .infra.files import FileSystem, ReaderWriter
from .infra.api import HttpGateway
from .infra.rpc import GrpcGateway

# Domain models
from .models import (
    Address,
    Identifier,
    ChainID,
    SignatureAlgorithm,
    HashAlgorithm,
    AccountKey,
    FlowAccount,
    Block,
    TransactionResult,
    TransactionStatus,
)

# Event scanning
from .scanner import EventScanner, EventWorker

# Confirmation tracking
from .confirmation import SealTracker

# Error types
from .errors import (
    FlowkitError,
    ConfigurationError,
    ConfigNotFoundError,
    InvalidConfigError,
    NotFoundError,
    KeyMaterialError,
    InvalidKeyError,
    ProgramError,
    DeploymentError,
    ProjectDeploymentError,
    ContractError,
    UpdateNoDiffError,
    TransactionError,
    TransactionExecutionError,
    SealTimeoutError,
    NetworkError,
)

# Event hooks
from .events import EventEmitter, EventType, Event

# Logging
from .logging import StructuredLogger, LogLevel, create_file_logger

__version__ = "0.1.0"
__all__ = [
    # Engine
    "Flowkit",
    "default_gateway",
    "State",
    "extract_key",

    # Configuration
    "Config",
    "Flags",
    "Loader",

    # Accounts and Keys
    "Account",
    "Accounts",
    "KeyProvider",
    "HexKeyProvider",
    "FileKeyProvider",
    "KMSKeyProvider",
    "Bip44KeyProvider",
    "PrivateKey",
    "generate_private_key",

    # Roles
    "Role",
    "AccountRoles",
    "AddressRoles",

    # Programs and Transactions
    "Program",
    "Script",
    "ImportReplacer",
    "Deployment",
    "Transaction",
    "Gateway",
    "Value",

    # Infrastructure
    "FileSystem",
    "ReaderWriter",
    "HttpGateway",
    "GrpcGateway",

    # Models
    "Address",
    "Identifier",
    "ChainID",
    "SignatureAlgorithm",
    "HashAlgorithm",
    "AccountKey",
    "FlowAccount",
    "Block",
    "TransactionResult",
    "TransactionStatus",

    # Events
    "EventScanner",
    "EventWorker",

    # Confirmation
    "SealTracker",

    # Errors
    "FlowkitError",
    "ConfigurationError",
    "ConfigNotFoundError",
    "InvalidConfigError",
    "NotFoundError",
    "KeyMaterialError",
    "InvalidKeyError",
    "ProgramError",
    "DeploymentError",
    "ProjectDeploymentError",
    "ContractError",
    "UpdateNoDiffError",
    "TransactionError",
    "TransactionExecutionError",
    "SealTimeoutError",
    "NetworkError",

    # Hooks
    "EventEmitter",
    "EventType",
    "Event",

    # Logging
    "StructuredLogger",
    "LogLevel",
    "create_file_logger",
]
