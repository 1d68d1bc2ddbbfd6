"""
Flowkit - Transaction Builder

Builds, encodes and signs Flow transactions.

Signing follows the two-phase scheme of the chain: every non-payer
signer signs the payload, the payer signs the envelope, which commits
to the payload signatures.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import rlp
from rlp.sedes import big_endian_int

from ..cadence import Value
from ..constants import (
    ADDRESS_LENGTH,
    IDENTIFIER_LENGTH,
    MAX_GAS_LIMIT,
    DEFAULT_GAS_LIMIT,
    TEMPLATE_GAS_LIMIT,
    TRANSACTION_DOMAIN_TAG,
)
from ..errors import (
    AuthorizersMismatchError,
    InvalidArgumentError,
    InvalidSignerError,
    TransactionError,
)
from ..models import AccountKey, Address, FlowAccount, Identifier
from . import templates
from .program import Program


@dataclass
class ProposalKey:
    """Key whose sequence number the transaction consumes."""
    address: Address = field(default_factory=Address.empty)
    key_index: int = 0
    sequence_number: int = 0


@dataclass
class TransactionSignature:
    """A signature over the payload or the envelope."""
    address: Address
    signer_index: int
    key_index: int
    signature: bytes

    def _fields(self) -> list:
        return [self.signer_index, self.key_index, self.signature]


class Transaction:
    """
    Mutable transaction under construction.

    Example:
        tx = Transaction()
        tx.set_script_with_args(code, args)
        tx.set_reference_block(block)
        tx.set_proposer(account, key_index=0)
        tx.set_payer(payer_address)
        tx.add_authorizers([authorizer_address])
        tx.set_signer(account)
        tx.sign()
    """

    def __init__(self):
        self.script: bytes = b""
        self.arguments: List[Value] = []
        self.reference_block_id: Identifier = Identifier.empty()
        self.gas_limit: int = DEFAULT_GAS_LIMIT
        self.proposal_key = ProposalKey()
        self.payer: Address = Address.empty()
        self.authorizers: List[Address] = []
        self.payload_signatures: List[TransactionSignature] = []
        self.envelope_signatures: List[TransactionSignature] = []
        self._signer = None
        self._proposer: Optional[FlowAccount] = None

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def from_payload(cls, payload) -> "Transaction":
        """
        Rebuild a transaction from its hex encoding.

        Accepts both the full canonical form (payload plus signatures)
        and a bare payload.

        Raises:
            InvalidArgumentError: If the payload cannot be decoded.
        """
        raw = payload.decode() if isinstance(payload, bytes) else payload
        try:
            decoded = rlp.decode(bytes.fromhex(raw.strip()))
        except (ValueError, rlp.DecodingError) as e:
            raise InvalidArgumentError(f"failed to decode partial transaction from {raw}: {e}")

        if len(decoded) == 3 and isinstance(decoded[0], list):
            payload_fields, payload_sigs, envelope_sigs = decoded
        elif len(decoded) == 9:
            payload_fields, payload_sigs, envelope_sigs = decoded, [], []
        else:
            raise InvalidArgumentError(f"failed to decode transaction from {raw}: unexpected field count")

        tx = cls()
        try:
            tx._decode_payload(payload_fields)
            signer_list = tx.signer_list()
            tx.payload_signatures = [tx._decode_signature(s, signer_list) for s in payload_sigs]
            tx.envelope_signatures = [tx._decode_signature(s, signer_list) for s in envelope_sigs]
        except (ValueError, TypeError, IndexError, rlp.DeserializationError) as e:
            raise InvalidArgumentError(f"failed to decode transaction from {raw}: {e}")
        return tx

    def _decode_payload(self, fields: list) -> None:
        (script, args, ref_block, gas_limit, proposer, key_index,
         sequence_number, payer, authorizers) = fields
        self.script = script
        self.arguments = [Value.decode(arg) for arg in args]
        self.reference_block_id = Identifier(ref_block.rjust(IDENTIFIER_LENGTH, b"\x00"))
        self.gas_limit = big_endian_int.deserialize(gas_limit)
        self.proposal_key = ProposalKey(
            Address(proposer.rjust(ADDRESS_LENGTH, b"\x00")),
            big_endian_int.deserialize(key_index),
            big_endian_int.deserialize(sequence_number),
        )
        self.payer = Address(payer.rjust(ADDRESS_LENGTH, b"\x00"))
        self.authorizers = [Address(a.rjust(ADDRESS_LENGTH, b"\x00")) for a in authorizers]

    @staticmethod
    def _decode_signature(fields: list, signer_list: List[Address]) -> TransactionSignature:
        signer_index = big_endian_int.deserialize(fields[0])
        return TransactionSignature(
            address=signer_list[signer_index],
            signer_index=signer_index,
            key_index=big_endian_int.deserialize(fields[1]),
            signature=fields[2],
        )

    # =========================================================================
    # Setters
    # =========================================================================

    @property
    def signer(self):
        return self._signer

    @property
    def proposer(self) -> Optional[FlowAccount]:
        return self._proposer

    def set_script_with_args(self, script: bytes, args: Optional[List[Value]] = None) -> "Transaction":
        self.script = script.encode() if isinstance(script, str) else bytes(script)
        self.arguments = list(args or [])
        return self

    def add_argument(self, arg: Value) -> "Transaction":
        self.arguments.append(arg)
        return self

    def set_reference_block(self, block) -> "Transaction":
        self.reference_block_id = block.id
        return self

    def set_gas_limit(self, gas_limit: int) -> "Transaction":
        """Set the gas limit, capped at the chain maximum."""
        if gas_limit < 0:
            raise InvalidArgumentError(f"invalid gas limit: {gas_limit}")
        self.gas_limit = min(gas_limit, MAX_GAS_LIMIT)
        return self

    def set_payer(self, address: Address) -> "Transaction":
        self.payer = address
        return self

    def set_proposer(self, account: FlowAccount, key_index: int = 0) -> "Transaction":
        """
        Use a key of an on-chain account as the proposal key.

        Args:
            account: Proposer account state, carrying current sequence numbers.
            key_index: Position of the key in the account's key list.

        Raises:
            TransactionError: If the account has no key at that position.
        """
        if key_index < 0 or key_index >= len(account.keys):
            raise TransactionError(f"failed to retrieve proposer key at index {key_index}")

        key = account.keys[key_index]
        self._proposer = account
        self.proposal_key = ProposalKey(account.address, key.index, key.sequence_number)
        return self

    def add_authorizers(self, authorizers: List[Address]) -> "Transaction":
        """
        Add authorizers after checking them against the prepare block.

        Raises:
            TransactionError: If the script does not declare exactly one
                transaction.
            AuthorizersMismatchError: If the prepare block takes a
                different number of accounts.
        """
        required = Program(self.script).prepare_parameter_count()
        if required != len(authorizers):
            raise AuthorizersMismatchError(required, len(authorizers))

        self.authorizers.extend(authorizers)
        return self

    def set_signer(self, account) -> "Transaction":
        """
        Select the account that signs next.

        Raises:
            InvalidKeyError: If the account key does not validate.
            InvalidSignerError: If the account holds no role.
        """
        account.key.validate()
        if not self._valid_signer(account.address):
            raise InvalidSignerError(
                f"not a valid signer {account.address}, proposer: {self.proposal_key.address}, "
                f"payer: {self.payer}, authorizers: {[str(a) for a in self.authorizers]}"
            )
        self._signer = account
        return self

    def _valid_signer(self, address: Address) -> bool:
        return (
            self.proposal_key.address == address
            or self.payer == address
            or address in self.authorizers
        )

    # =========================================================================
    # Signing
    # =========================================================================

    def signer_list(self) -> List[Address]:
        """Addresses that may sign, unique, in proposer, payer, authorizers order."""
        signers: List[Address] = []
        for address in [self.proposal_key.address, self.payer] + self.authorizers:
            if address.is_empty or address in signers:
                continue
            signers.append(address)
        return signers

    def _signer_index(self, address: Address) -> int:
        try:
            return self.signer_list().index(address)
        except ValueError:
            raise InvalidSignerError(f"{address} is not a signer of this transaction")

    def should_sign_envelope(self) -> bool:
        return self._signer is not None and self._signer.address == self.payer

    def sign(self) -> "Transaction":
        """
        Sign with the selected signer.

        The payer signs the envelope; everyone else signs the payload. A
        new signature by the same address and key replaces the old one.

        Raises:
            InvalidSignerError: If no signer was selected.
        """
        if self._signer is None:
            raise InvalidSignerError("transaction has no signer set")

        address = self._signer.address
        key_index = self._signer.key.index
        signer = self._signer.signer()

        if self.should_sign_envelope():
            message = self.envelope_message()
            target = self.envelope_signatures
        else:
            message = self.payload_message()
            target = self.payload_signatures

        try:
            signature = signer.sign(message)
        except ValueError as e:
            raise TransactionError(f"failed to sign transaction: {e}")

        target[:] = [s for s in target if not (s.address == address and s.key_index == key_index)]
        target.append(TransactionSignature(address, self._signer_index(address), key_index, signature))
        self._refresh_signer_indexes()
        return self

    def _refresh_signer_indexes(self) -> None:
        signer_list = self.signer_list()
        for signatures in (self.payload_signatures, self.envelope_signatures):
            for s in signatures:
                s.signer_index = signer_list.index(s.address)
            signatures.sort(key=lambda s: (s.signer_index, s.key_index))

    # =========================================================================
    # Encoding
    # =========================================================================

    def _payload_fields(self) -> list:
        return [
            self.script,
            [arg.encode() for arg in self.arguments],
            self.reference_block_id.value,
            self.gas_limit,
            self.proposal_key.address.value,
            self.proposal_key.key_index,
            self.proposal_key.sequence_number,
            self.payer.value,
            [a.value for a in self.authorizers],
        ]

    def _envelope_fields(self) -> list:
        return [self._payload_fields(), [s._fields() for s in self.payload_signatures]]

    def _canonical_fields(self) -> list:
        return [
            self._payload_fields(),
            [s._fields() for s in self.payload_signatures],
            [s._fields() for s in self.envelope_signatures],
        ]

    def payload_message(self) -> bytes:
        """Domain-tagged bytes signed by payload signers."""
        return TRANSACTION_DOMAIN_TAG + rlp.encode(self._payload_fields())

    def envelope_message(self) -> bytes:
        """Domain-tagged bytes signed by the payer."""
        return TRANSACTION_DOMAIN_TAG + rlp.encode(self._envelope_fields())

    def encode(self) -> bytes:
        """Canonical RLP form including signatures."""
        return rlp.encode(self._canonical_fields())

    def id(self) -> Identifier:
        return Identifier(hashlib.sha3_256(self.encode()).digest())

    def hex(self) -> str:
        return self.encode().hex()

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.id().hex()}, payer={self.payer}, "
            f"proposer={self.proposal_key.address}, authorizers={[str(a) for a in self.authorizers]})"
        )


# =============================================================================
# Template Transactions
# =============================================================================

def _from_template(signer, script: bytes, args: List[Value]) -> Transaction:
    tx = Transaction()
    tx.set_script_with_args(script, args)
    tx.authorizers.append(signer.address)
    tx.set_payer(signer.address)
    tx.set_gas_limit(TEMPLATE_GAS_LIMIT)
    tx.set_signer(signer)
    return tx


def new_add_account_contract(signer, name: str, code: bytes, args: Optional[List[Value]] = None) -> Transaction:
    """Transaction adding a contract, with typed init arguments, to the signer."""
    script, script_args = templates.add_account_contract(name, code, list(args or []))
    return _from_template(signer, script, script_args)


def new_update_account_contract(signer, name: str, code: bytes) -> Transaction:
    script, args = templates.update_account_contract(name, code)
    return _from_template(signer, script, args)


def new_remove_account_contract(signer, name: str) -> Transaction:
    script, args = templates.remove_account_contract(name)
    return _from_template(signer, script, args)


def new_create_account(signer, keys: List[AccountKey], contracts: Optional[Dict[str, bytes]] = None) -> Transaction:
    """Transaction creating an account paid for by the signer."""
    script, args = templates.create_account(keys, dict(contracts or {}))
    return _from_template(signer, script, args)
