"""
Unit tests for transaction building, signing and encoding.
"""

import pytest

from flowkit.cadence import Value
from flowkit.constants import MAX_GAS_LIMIT, TEMPLATE_GAS_LIMIT, TRANSACTION_DOMAIN_TAG
from flowkit.core.transaction import (
    Transaction,
    new_add_account_contract,
    new_create_account,
    new_remove_account_contract,
)
from flowkit.errors import (
    AuthorizersMismatchError,
    InvalidArgumentError,
    InvalidSignerError,
    TransactionError,
)
from flowkit.models import AccountKey, Block, Identifier, TransactionStatus
from flowkit.roles import AccountRoles, Role


SINGLE_AUTH = b"transaction { prepare(signer: &Account) { } }"
TWO_AUTH = b"transaction { prepare(a: &Account, b: &Account) { } }"
REFERENCE_BLOCK = Block(id=Identifier(b"\x07" * 32), height=7)


def verify(account, message: bytes, signature: bytes) -> bool:
    return account.key.private_key().verify(message, signature, account.key.hash_algo)


def build(gateway, proposer, payer, authorizers, script=SINGLE_AUTH) -> Transaction:
    tx = Transaction()
    tx.set_script_with_args(script)
    tx.set_reference_block(REFERENCE_BLOCK)
    tx.set_proposer(gateway.get_account(proposer.address), proposer.key.index)
    tx.set_payer(payer.address)
    tx.add_authorizers([a.address for a in authorizers])
    return tx


class TestBuilding:
    """Tests for transaction construction."""

    @pytest.mark.unit
    def test_authorizer_count_mismatch(self, alice):
        """A two-account prepare block rejects a single authorizer."""
        tx = Transaction().set_script_with_args(TWO_AUTH)
        with pytest.raises(AuthorizersMismatchError) as exc:
            tx.add_authorizers([alice.address])
        assert exc.value.required == 2
        assert exc.value.provided == 1

    @pytest.mark.unit
    def test_gas_limit_capped(self):
        """Gas limits above the chain maximum are capped."""
        assert Transaction().set_gas_limit(10 ** 9).gas_limit == MAX_GAS_LIMIT

    @pytest.mark.unit
    def test_negative_gas_limit(self):
        """Negative gas limits are invalid."""
        with pytest.raises(InvalidArgumentError):
            Transaction().set_gas_limit(-1)

    @pytest.mark.unit
    def test_proposer_key_out_of_range(self, gateway, alice):
        """The proposal key must exist on chain."""
        with pytest.raises(TransactionError):
            Transaction().set_proposer(gateway.get_account(alice.address), 3)

    @pytest.mark.unit
    def test_proposal_key_takes_sequence_number(self, gateway, alice):
        """The proposal key copies the on-chain sequence number."""
        gateway.get_account(alice.address).keys[0].sequence_number = 12
        tx = Transaction().set_proposer(gateway.get_account(alice.address), 0)
        assert tx.proposal_key.sequence_number == 12
        assert tx.proposal_key.address == alice.address

    @pytest.mark.unit
    def test_signer_without_role(self, gateway, alice, bob, charlie):
        """Accounts holding no role cannot sign."""
        tx = build(gateway, alice, alice, [alice])
        with pytest.raises(InvalidSignerError):
            tx.set_signer(charlie)

    @pytest.mark.unit
    def test_sign_without_signer(self):
        """Signing needs a selected signer."""
        with pytest.raises(InvalidSignerError):
            Transaction().sign()


class TestSigning:
    """Tests for payload and envelope signatures."""

    @pytest.mark.unit
    def test_distinct_roles(self, gateway, alice, bob, charlie):
        """Proposer and authorizer sign the payload, the payer signs the envelope."""
        roles = AccountRoles(proposer=alice, authorizers=[charlie], payer=bob)
        tx = build(gateway, alice, bob, [charlie])

        for signer in roles.signers():
            tx.set_signer(signer).sign()

        assert tx.proposal_key.address == alice.address
        assert tx.payer == bob.address
        assert tx.authorizers == [charlie.address]
        assert [s.address for s in tx.payload_signatures] == [alice.address, charlie.address]
        assert [s.address for s in tx.envelope_signatures] == [bob.address]

        payload = tx.payload_message()
        assert verify(alice, payload, tx.payload_signatures[0].signature)
        assert verify(charlie, payload, tx.payload_signatures[1].signature)
        assert verify(bob, tx.envelope_message(), tx.envelope_signatures[0].signature)

    @pytest.mark.unit
    def test_single_account_signs_envelope_only(self, gateway, alice):
        """An account holding every role signs once, on the envelope."""
        tx = build(gateway, alice, alice, [alice])
        for signer in AccountRoles.single(alice).signers():
            tx.set_signer(signer).sign()

        assert tx.payload_signatures == []
        assert [s.address for s in tx.envelope_signatures] == [alice.address]

    @pytest.mark.unit
    def test_resign_replaces_signature(self, gateway, alice, bob):
        """Signing twice with the same key keeps one signature."""
        tx = build(gateway, alice, bob, [alice])
        tx.set_signer(alice).sign()
        tx.set_signer(alice).sign()
        assert len(tx.payload_signatures) == 1

    @pytest.mark.unit
    def test_signer_indexes_follow_signer_list(self, gateway, alice, bob, charlie):
        """Signatures are indexed by position in proposer, payer, authorizers."""
        tx = build(gateway, alice, bob, [charlie])
        tx.set_signer(charlie).sign()
        tx.set_signer(alice).sign()

        assert tx.signer_list() == [alice.address, bob.address, charlie.address]
        assert [(s.signer_index, s.key_index) for s in tx.payload_signatures] == [(0, 0), (2, 0)]

    @pytest.mark.unit
    def test_messages_carry_domain_tag(self, gateway, alice):
        """Signed messages are prefixed with the transaction domain tag."""
        tx = build(gateway, alice, alice, [alice])
        assert tx.payload_message().startswith(TRANSACTION_DOMAIN_TAG)
        assert tx.envelope_message().startswith(TRANSACTION_DOMAIN_TAG)
        assert len(TRANSACTION_DOMAIN_TAG) == 32

    @pytest.mark.unit
    def test_roles_of(self, alice, bob, charlie):
        """Role lookup by address."""
        roles = AccountRoles(proposer=alice, authorizers=[charlie, alice], payer=bob)
        assert roles.roles_of(alice.address) == [Role.PROPOSER, Role.AUTHORIZER]
        assert roles.roles_of(bob.address) == [Role.PAYER]
        assert [s.name for s in roles.signers()] == ["alice", "charlie", "bob"]


class TestEncoding:
    """Tests for transaction encoding."""

    @pytest.mark.unit
    def test_decode_signed_transaction(self, gateway, alice, bob, charlie):
        """A signed transaction decodes to the same id and signatures."""
        tx = build(gateway, alice, bob, [charlie])
        tx.add_argument(Value.string("hello"))
        for signer in AccountRoles(alice, [charlie], bob).signers():
            tx.set_signer(signer).sign()

        decoded = Transaction.from_payload(tx.hex())

        assert decoded.id() == tx.id()
        assert decoded.arguments == [Value.string("hello")]
        assert [s.address for s in decoded.envelope_signatures] == [bob.address]

    @pytest.mark.unit
    def test_cosign_decoded_payload(self, gateway, alice, bob):
        """A partially signed payload can be decoded and signed by the payer."""
        tx = build(gateway, alice, bob, [alice])
        tx.set_signer(alice).sign()

        decoded = Transaction.from_payload(tx.hex())
        decoded.set_signer(bob).sign()

        assert verify(bob, decoded.envelope_message(), decoded.envelope_signatures[0].signature)
        assert decoded.payload_signatures[0].signature == tx.payload_signatures[0].signature

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", ["zz", "c0", "c3010203"])
    def test_invalid_payload(self, payload):
        """Undecodable payloads are rejected."""
        with pytest.raises(InvalidArgumentError):
            Transaction.from_payload(payload)

    @pytest.mark.unit
    def test_id_changes_with_signatures(self, gateway, alice):
        """The id covers the signatures."""
        tx = build(gateway, alice, alice, [alice])
        unsigned = tx.id()
        tx.set_signer(alice).sign()
        assert tx.id() != unsigned


class TestTemplates:
    """Tests for the account and contract templates."""

    @pytest.mark.unit
    def test_add_contract_without_args(self, alice):
        """Contracts without init arguments take only name and code."""
        tx = new_add_account_contract(alice, "Hello", b"pub contract Hello {}")
        script = tx.script.decode()

        assert "transaction(name: String, code: String)" in script
        assert "code.decodeHex())" in script
        assert [a.value for a in tx.arguments] == ["Hello", b"pub contract Hello {}".hex()]
        assert tx.authorizers == [alice.address]
        assert tx.payer == alice.address
        assert tx.gas_limit == TEMPLATE_GAS_LIMIT

    @pytest.mark.unit
    def test_add_contract_with_args(self, alice):
        """Init arguments become typed parameters passed to add."""
        tx = new_add_account_contract(alice, "Token", b"pub contract Token {}", [Value.string("x"), Value("UInt64", "5")])
        script = tx.script.decode()

        assert "code: String, arg0: String, arg1: UInt64)" in script
        assert "code.decodeHex(), arg0, arg1)" in script
        assert len(tx.arguments) == 4

    @pytest.mark.unit
    def test_remove_contract(self, alice):
        """Removal takes the contract name."""
        tx = new_remove_account_contract(alice, "Hello")
        assert tx.arguments == [Value.string("Hello")]

    @pytest.mark.unit
    def test_create_account_arguments(self, alice):
        """Account creation passes keys, algorithms and weights as arrays."""
        key = AccountKey(alice.key.private_key().public_key_hex, weight=1000)
        tx = new_create_account(alice, [key])
        public_keys, sig_algos, hash_algos, weights, contracts = tx.arguments

        assert public_keys.value[0].value == key.public_key
        assert sig_algos.value[0] == Value("UInt8", "1")
        assert hash_algos.value[0] == Value("UInt8", "3")
        assert weights.value[0].value == "1000.00000000"
        assert contracts.value == []


class TestSealedSend:
    """Tests for sending through a gateway."""

    @pytest.mark.integration
    def test_send_waits_for_seal(self, gateway, alice):
        """Waiting for the seal polls past pending results."""
        tx = build(gateway, alice, alice, [alice])
        tx.set_signer(alice).sign()

        txid = gateway.send_signed_transaction(tx)
        result = gateway.get_transaction_result(txid, wait_seal=True)

        assert result.status == TransactionStatus.SEALED
        assert gateway.polls[txid] == 2
        assert gateway.get_account(alice.address).keys[0].sequence_number == 1
