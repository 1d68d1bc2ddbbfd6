"""
Flowkit - Error Types

Specific exception classes for better error handling and debugging.
"""

from typing import Optional, List, Dict


class FlowkitError(Exception):
    """Base exception for all Flowkit errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidArgumentError(FlowkitError):
    """An argument passed to an operation is invalid."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(FlowkitError):
    """Error in project configuration."""
    pass


class ConfigNotFoundError(ConfigurationError):
    """No configuration layer could be found."""

    def __init__(self, paths: Optional[List[str]] = None):
        super().__init__("missing configuration", {"paths": paths or []})
        self.paths = paths or []


class ConfigOutdatedError(ConfigurationError):
    """Configuration uses a schema this version no longer reads."""

    def __init__(self, path: Optional[str] = None):
        super().__init__(
            "you are using old configuration format, "
            "please update your flow.json by running 'flow config update' "
            "or recreate it with 'flow init'",
            {"path": path} if path else None
        )
        self.path = path


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""
    pass


class MissingEnvironmentVariableError(ConfigurationError):
    """A configuration value references an unset environment variable."""

    def __init__(self, name: str):
        super().__init__(f"required environment variable {name} not set", {"variable": name})
        self.name = name


# =============================================================================
# Lookup Errors
# =============================================================================

class NotFoundError(FlowkitError):
    """Lookup for a named entity missed."""

    def __init__(self, kind: str, key: str, message: Optional[str] = None):
        super().__init__(message or f"{kind} {key} does not exist", {"kind": kind, "key": key})
        self.kind = kind
        self.key = key


class InvalidAddressError(FlowkitError):
    """Address is malformed or not valid on the target chain."""

    def __init__(self, address: str, chain: Optional[str] = None):
        if chain:
            msg = f"address 0x{address} is not valid for chain {chain}"
        else:
            msg = f"invalid address: {address}"
        super().__init__(msg, {"address": address, "chain": chain})
        self.address = address
        self.chain = chain


# =============================================================================
# Key Errors
# =============================================================================

class KeyMaterialError(FlowkitError):
    """Error related to cryptographic keys."""
    pass


class InvalidKeyError(KeyMaterialError):
    """Key could not be decoded or failed validation."""
    pass


class InvalidMnemonicError(KeyMaterialError):
    """Mnemonic failed the BIP-39 checksum."""

    def __init__(self, message: str = "invalid mnemonic"):
        super().__init__(message)


class InvalidDerivationPathError(KeyMaterialError):
    """Derivation path is malformed."""

    def __init__(self, path: str):
        super().__init__(f"invalid derivation path: {path}", {"path": path})
        self.path = path


class UnsupportedSignatureAlgorithmError(KeyMaterialError):
    """Signature algorithm is not supported for the requested operation."""

    def __init__(self, algorithm: str):
        super().__init__(f"invalid signature algorithm: {algorithm}", {"algorithm": algorithm})
        self.algorithm = algorithm


class KeyFileExistsError(KeyMaterialError):
    """Key extraction target already exists."""

    def __init__(self, path: str):
        super().__init__(
            f"key file '{path}' already exists, remove it first or choose a different account",
            {"path": path}
        )
        self.path = path


# =============================================================================
# Program Errors
# =============================================================================

class ProgramError(FlowkitError):
    """Error analyzing or rewriting Cadence source."""
    pass


class CadenceParseError(ProgramError):
    """Cadence source could not be scanned."""

    def __init__(self, message: str, location: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message, {"location": location, "line": line} if location or line else None)
        self.location = location
        self.line = line


class ContractNameError(ProgramError):
    """Source does not declare exactly one contract."""

    def __init__(self, location: Optional[str] = None):
        super().__init__(
            "must declare exactly one contract or contract interface",
            {"location": location} if location else None
        )
        self.location = location


class UnresolvedImportError(ProgramError):
    """Import token could not be mapped to an address."""

    def __init__(self, token: str, location: Optional[str] = None):
        super().__init__(
            f"import {token} could not be resolved from provided contracts",
            {"location": location} if location else None
        )
        self.token = token
        self.location = location


class MissingNetworkError(ProgramError):
    """Imports need a network but none was selected."""

    def __init__(self):
        super().__init__("missing network, specify which network to use to resolve imports in script code")


class MissingScriptLocationError(ProgramError):
    """Imports need a location to resolve relative paths."""

    def __init__(self):
        super().__init__("resolving imports in scripts not supported")


# =============================================================================
# Deployment Errors
# =============================================================================

class DeploymentError(FlowkitError):
    """Error planning or executing a deployment."""
    pass


class ContractConflictError(DeploymentError):
    """Contract is deployed to more than one account on a network."""

    def __init__(self, contract: str):
        super().__init__(
            "the same contract cannot be deployed to multiple accounts on the same network",
            {"contract": contract}
        )
        self.contract = contract


class UnresolvedDependencyError(DeploymentError):
    """Contract imports something not in the deployment set nor aliased."""

    def __init__(self, location: str, token: str):
        super().__init__(
            f"import from {location} could not be found: {token}, make sure import path is correct, "
            "and the contract is added to deployments or has an alias"
        )
        self.location = location
        self.token = token


class CyclicImportError(DeploymentError):
    """Import graph contains one or more cycles."""

    def __init__(self, cycles: List[List[str]]):
        rendered = " ".join(f"[{' '.join(cycle)}]" for cycle in cycles)
        super().__init__(f"contracts: import cycle(s) detected: [{rendered}]", {"cycles": cycles})
        self.cycles = cycles


class ProjectDeploymentError(DeploymentError):
    """One or more contracts failed to deploy."""

    def __init__(self, errors: Dict[str, Exception]):
        lines = [f"failed to deploy contract {name}: {err}" for name, err in errors.items()]
        super().__init__("\n".join(lines), {"contracts": list(errors)})
        self.errors = errors


# =============================================================================
# Contract Errors
# =============================================================================

class ContractError(FlowkitError):
    """Error related to on-chain contracts."""
    pass


class ExistingContractError(ContractError):
    """Contract already exists on the account and update was not requested."""

    def __init__(self, name: str, address: str):
        super().__init__(f"contract {name} exists in account {address}", {"name": name, "address": address})
        self.name = name
        self.address = address


class MissingContractError(ContractError):
    """Contract to remove is not present on the account."""

    def __init__(self, name: str, available: List[str]):
        super().__init__(
            f"can not remove a non-existing contract named '{name}'. "
            f"Account only contains the contracts: {available}",
            {"name": name, "available": available}
        )
        self.name = name
        self.available = available


class UpdateNoDiffError(ContractError):
    """Contract on chain already matches the provided source."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(
            "contract already exists and is the same as the contract provided for update",
            {"name": name} if name else None
        )
        self.name = name


# =============================================================================
# Transaction Errors
# =============================================================================

class TransactionError(FlowkitError):
    """Error during transaction construction, signing or submission."""
    pass


class AuthorizersMismatchError(TransactionError):
    """Prepare block arity differs from provided authorizers."""

    def __init__(self, required: int, provided: int):
        super().__init__(
            f"provided authorizers length mismatch, required authorizers {required}, but provided {provided}",
            {"required": required, "provided": provided}
        )
        self.required = required
        self.provided = provided


class InvalidSignerError(TransactionError):
    """Signer does not hold any role in the transaction."""
    pass


class TransactionExecutionError(TransactionError):
    """Transaction was sealed but execution failed on chain."""

    def __init__(self, txid: str, message: str):
        super().__init__(message, {"txid": txid})
        self.txid = txid
        self.chain_message = message


class SealTimeoutError(TransactionError):
    """Transaction was not sealed within the allowed time."""

    def __init__(self, txid: str, timeout_seconds: float, status: Optional[str] = None):
        super().__init__(
            f"Seal timeout for {txid}: waited {timeout_seconds}s, last status {status}",
            {"txid": txid, "timeout": timeout_seconds, "status": status}
        )
        self.txid = txid
        self.timeout_seconds = timeout_seconds
        self.status = status


# =============================================================================
# Network Errors
# =============================================================================

class NetworkError(FlowkitError):
    """Error communicating with an access node."""
    pass


class GatewayTransportError(NetworkError):
    """Transport-level failure talking to the gateway."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        operation: Optional[str] = None
    ):
        super().__init__(message, {"status_code": status_code, "endpoint": endpoint, "operation": operation})
        self.status_code = status_code
        self.endpoint = endpoint
        self.operation = operation
