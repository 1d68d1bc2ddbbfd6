"""
Flowkit - Transaction Templates

Canonical Cadence transactions for account creation and contract
management.
"""

from typing import Dict, List, Tuple

from ..cadence import Value
from ..models import AccountKey


CREATE_ACCOUNT = """transaction(publicKeys: [String], signatureAlgorithms: [UInt8], hashAlgorithms: [UInt8], weights: [UFix64], contracts: {String: String}) {
	prepare(signer: auth(BorrowValue) &Account) {
		let account = Account(payer: signer)

		for i, publicKey in publicKeys {
			let key = PublicKey(
				publicKey: publicKey.decodeHex(),
				signatureAlgorithm: SignatureAlgorithm(rawValue: signatureAlgorithms[i])!
			)
			account.keys.add(
				publicKey: key,
				hashAlgorithm: HashAlgorithm(rawValue: hashAlgorithms[i])!,
				weight: weights[i]
			)
		}

		for name in contracts.keys {
			account.contracts.add(name: name, code: contracts[name]!.decodeHex())
		}
	}
}
"""

ADD_ACCOUNT_CONTRACT = """transaction(name: String, code: String{params}) {
	prepare(signer: auth(AddContract) &Account) {
		signer.contracts.add(name: name, code: code.decodeHex(){args})
	}
}
"""

UPDATE_ACCOUNT_CONTRACT = """transaction(name: String, code: String) {
	prepare(signer: auth(UpdateContract) &Account) {
		signer.contracts.update(name: name, code: code.decodeHex())
	}
}
"""

REMOVE_ACCOUNT_CONTRACT = """transaction(name: String) {
	prepare(signer: auth(RemoveContract) &Account) {
		signer.contracts.remove(name: name)
	}
}
"""


def add_account_contract(name: str, code: bytes, args: List[Value]) -> Tuple[bytes, List[Value]]:
    """
    Script and arguments that add a contract to the signing account.

    Contract init arguments become typed positional parameters
    ``arg0 .. argN``. Without arguments the script takes only name and
    code.

    Returns:
        (script, arguments) pair.
    """
    params = "".join(f", arg{i}: {arg.type_id}" for i, arg in enumerate(args))
    call_args = "".join(f", arg{i}" for i in range(len(args)))
    script = ADD_ACCOUNT_CONTRACT.replace("{params}", params).replace("{args}", call_args)
    return script.encode(), [Value.string(name), Value.string(code.hex())] + list(args)


def update_account_contract(name: str, code: bytes) -> Tuple[bytes, List[Value]]:
    return UPDATE_ACCOUNT_CONTRACT.encode(), [Value.string(name), Value.string(code.hex())]


def remove_account_contract(name: str) -> Tuple[bytes, List[Value]]:
    return REMOVE_ACCOUNT_CONTRACT.encode(), [Value.string(name)]


def create_account(keys: List[AccountKey], contracts: Dict[str, bytes]) -> Tuple[bytes, List[Value]]:
    """
    Script and arguments creating an account with keys and contracts.

    Args:
        keys: Keys to register; weights are given in whole units.
        contracts: Contract name to source deployed with the account.

    Returns:
        (script, arguments) pair.
    """
    args = [
        Value.array([Value.string(key.public_key) for key in keys]),
        Value.array([Value.integer("UInt8", key.sig_algo.cadence_raw_value) for key in keys]),
        Value.array([Value.integer("UInt8", key.hash_algo.cadence_raw_value) for key in keys]),
        Value.array([Value.ufix64(key.weight) for key in keys]),
        Value.dictionary([
            (Value.string(name), Value.string(code.hex())) for name, code in contracts.items()
        ]),
    ]
    return CREATE_ACCOUNT.encode(), args
