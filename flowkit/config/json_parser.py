"""
Flowkit - JSON Configuration Format

Parses and serializes ``flow.json``.
"""

import json
import os
import re
from typing import Optional

from ..cadence import Value
from ..constants import SERVICE_ADDRESSES, EMULATOR
from ..errors import (
    ConfigOutdatedError,
    InvalidArgumentError,
    InvalidConfigError,
    InvalidKeyError,
    MissingEnvironmentVariableError,
)
from ..infra.crypto import PrivateKey, decode_public_key
from ..models import Address, HashAlgorithm, SignatureAlgorithm
from .models import (
    Account,
    Alias,
    Config,
    Contract,
    ContractDeployment,
    Deployment,
    Emulator,
    KeyConfig,
    KeyType,
    Network,
)


ENV_PATTERN = re.compile(r"^\$\{(\w+)\}$|^\$(\w+)$")

SERVICE_ADDRESS_ALIAS = "service"


def substitute_env(value: str) -> str:
    """
    Replace a whole-value ``${NAME}`` or ``$NAME`` reference with the
    environment variable it names.

    Raises:
        MissingEnvironmentVariableError: If the variable is not set.
    """
    match = ENV_PATTERN.match(value.strip()) if value else None
    if not match:
        return value
    name = match.group(1) or match.group(2)
    resolved = os.environ.get(name)
    if resolved is None:
        raise MissingEnvironmentVariableError(name)
    return resolved


def _require_dict(value, what: str) -> dict:
    if not isinstance(value, dict):
        raise InvalidConfigError(f"invalid {what}: expected an object")
    return value


# =============================================================================
# Accounts
# =============================================================================

def _parse_address(raw: str, account: str) -> Address:
    if not raw:
        raise InvalidConfigError(f"missing address for account {account}")
    if raw == SERVICE_ADDRESS_ALIAS:
        return Address.from_hex(SERVICE_ADDRESSES[EMULATOR])
    return Address.from_hex(raw)


def _check_hex_key(key: KeyConfig, account: str) -> None:
    try:
        PrivateKey.from_hex(key.sig_algo, key.private_key)
    except InvalidKeyError as e:
        raise InvalidKeyError(f"invalid private key for account {account}: {e.message}")


def _parse_account_key(raw, account: str) -> KeyConfig:
    if isinstance(raw, str):
        key = KeyConfig(type=KeyType.HEX, private_key=substitute_env(raw))
        _check_hex_key(key, account)
        return key

    raw = _require_dict(raw, f"key for account {account}")
    private_key = substitute_env(raw.get("privateKey", ""))
    location = raw.get("location", "")
    resource_id = raw.get("resourceID", "")
    mnemonic = substitute_env(raw.get("mnemonic", ""))

    if sum(1 for value in (private_key, location, resource_id) if value) > 1:
        raise InvalidConfigError(
            f"only one of privateKey, location or resourceID can be set for account {account}"
        )

    if raw.get("type"):
        key_type = KeyType.parse(raw["type"])
    elif location:
        key_type = KeyType.FILE
    elif resource_id:
        key_type = KeyType.KMS
    elif mnemonic:
        key_type = KeyType.BIP44
    else:
        key_type = KeyType.HEX

    try:
        key = KeyConfig(
            type=key_type,
            index=int(raw.get("index", 0)),
            sig_algo=SignatureAlgorithm.from_string(raw.get("signatureAlgorithm", "ECDSA_P256")),
            hash_algo=HashAlgorithm.from_string(raw.get("hashAlgorithm", "SHA3_256")),
            private_key=private_key,
            location=location,
            resource_id=resource_id,
            mnemonic=mnemonic,
            derivation_path=raw.get("derivationPath", ""),
        )
    except (InvalidArgumentError, ValueError) as e:
        raise InvalidConfigError(f"invalid key for account {account}: {e}")

    if key.type == KeyType.HEX:
        _check_hex_key(key, account)
    elif key.type == KeyType.FILE and not key.location:
        raise InvalidConfigError(f"missing location for file key of account {account}")
    elif key.type == KeyType.KMS and not key.resource_id:
        raise InvalidConfigError(f"missing resourceID for KMS key of account {account}")
    elif key.type == KeyType.BIP44 and not key.mnemonic:
        raise InvalidConfigError(f"missing mnemonic for bip44 key of account {account}")
    return key


def _serialize_account_key(key: KeyConfig):
    simple = (
        key.type == KeyType.HEX
        and key.index == 0
        and key.sig_algo == SignatureAlgorithm.ECDSA_P256
        and key.hash_algo == HashAlgorithm.SHA3_256
    )
    if simple:
        return key.private_key

    data = {
        "type": key.type.value,
        "index": key.index,
        "signatureAlgorithm": key.sig_algo.value,
        "hashAlgorithm": key.hash_algo.value,
    }
    for name, value in (
        ("privateKey", key.private_key),
        ("location", key.location),
        ("resourceID", key.resource_id),
        ("mnemonic", key.mnemonic),
        ("derivationPath", key.derivation_path),
    ):
        if value:
            data[name] = value
    return data


# =============================================================================
# Parser
# =============================================================================

class JSONParser:
    """Parser for the JSON configuration format."""

    def supports_format(self, extension: str) -> bool:
        return extension == ".json"

    def deserialize(self, raw: bytes, path: Optional[str] = None) -> Config:
        """
        Parse configuration bytes.

        Args:
            raw: File contents.
            path: Origin of the bytes, used in error details.

        Returns:
            Parsed Config (not yet validated).

        Raises:
            ConfigOutdatedError: If the file uses the pre-release layout.
            InvalidConfigError: On syntax or structure errors.
        """
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise InvalidConfigError(f"configuration syntax error: {e}", {"path": path} if path else None)
        data = _require_dict(data, "configuration")

        if "host" in data:
            raise ConfigOutdatedError(path)

        conf = Config()

        for name, raw_emulator in data.get("emulators", {}).items():
            raw_emulator = _require_dict(raw_emulator, f"emulator {name}")
            conf.emulators.add_or_update(Emulator(
                name=name,
                port=int(raw_emulator.get("port", 0)),
                service_account=raw_emulator.get("serviceAccount", ""),
            ))

        for name, raw_contract in data.get("contracts", {}).items():
            conf.contracts.add_or_update(self._parse_contract(name, raw_contract))

        for name, raw_network in data.get("networks", {}).items():
            conf.networks.add_or_update(self._parse_network(name, raw_network))

        for name, raw_account in data.get("accounts", {}).items():
            raw_account = _require_dict(raw_account, f"account {name}")
            if "keys" in raw_account:
                raise ConfigOutdatedError(path)
            conf.accounts.add_or_update(Account(
                name=name,
                address=_parse_address(raw_account.get("address", ""), name),
                key=_parse_account_key(raw_account.get("key", ""), name),
            ))

        for network, accounts in data.get("deployments", {}).items():
            for account, contracts in _require_dict(accounts, f"deployments for {network}").items():
                conf.deployments.add_or_update(Deployment(
                    network=network,
                    account=account,
                    contracts=[self._parse_contract_deployment(c) for c in contracts],
                ))

        return conf

    def _parse_contract(self, name: str, raw) -> Contract:
        if isinstance(raw, str):
            return Contract(name=name, location=raw)
        raw = _require_dict(raw, f"contract {name}")
        contract = Contract(name=name, location=raw.get("source", ""))
        for network, address in raw.get("aliases", {}).items():
            if not address:
                raise InvalidConfigError(f"empty alias address for contract {name} on {network}")
            contract.aliases.append(Alias(network, Address.from_hex(address)))
        return contract

    def _parse_network(self, name: str, raw) -> Network:
        if isinstance(raw, str):
            return Network(name=name, host=raw)
        raw = _require_dict(raw, f"network {name}")
        network = Network(
            name=name,
            host=raw.get("host", ""),
            key=raw.get("key", ""),
            fork=raw.get("fork", ""),
        )
        if network.key:
            try:
                decode_public_key(SignatureAlgorithm.ECDSA_P256, network.key)
            except InvalidKeyError:
                raise InvalidConfigError(f"invalid network key for {name}, expected a P-256 public key")
        if not network.host and not network.fork:
            raise InvalidConfigError(f"missing host for network {name}")
        return network

    def _parse_contract_deployment(self, raw) -> ContractDeployment:
        if isinstance(raw, str):
            return ContractDeployment(name=raw)
        raw = _require_dict(raw, "contract deployment")
        return ContractDeployment(
            name=raw.get("name", ""),
            args=[Value.from_json(arg) for arg in raw.get("args", [])],
        )

    # =========================================================================
    # Serialize
    # =========================================================================

    def serialize(self, conf: Config) -> bytes:
        """Serialize configuration as tab-indented JSON."""
        data = {
            "emulators": {
                e.name: {"port": e.port, "serviceAccount": e.service_account}
                for e in conf.emulators
            },
            "contracts": {c.name: self._serialize_contract(c) for c in conf.contracts},
            "networks": {n.name: self._serialize_network(n) for n in conf.networks},
            "accounts": {
                a.name: {"address": a.address.hex(), "key": _serialize_account_key(a.key)}
                for a in conf.accounts
            },
            "deployments": {},
        }
        for deployment in conf.deployments:
            contracts = [
                c.name if not c.args else {"name": c.name, "args": [arg.to_json() for arg in c.args]}
                for c in deployment.contracts
            ]
            data["deployments"].setdefault(deployment.network, {})[deployment.account] = contracts

        return json.dumps(data, indent="\t").encode() + b"\n"

    def _serialize_contract(self, contract: Contract):
        if not contract.aliases:
            return contract.location
        return {
            "source": contract.location,
            "aliases": {a.network: a.address.hex() for a in contract.aliases},
        }

    def _serialize_network(self, network: Network):
        if not network.key and not network.fork:
            return network.host
        data = {"host": network.host}
        if network.key:
            data["key"] = network.key
        if network.fork:
            data["fork"] = network.fork
        return data
