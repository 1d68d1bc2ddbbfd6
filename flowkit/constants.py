"""
Flowkit - Constants

Centralized chain and engine constants.
"""

# =============================================================================
# Chains and Networks
# =============================================================================

EMULATOR = "emulator"
TESTNET = "testnet"
MAINNET = "mainnet"

DEFAULT_EMULATOR_NAME = "default"
DEFAULT_EMULATOR_PORT = 3569
DEFAULT_EMULATOR_SERVICE_ACCOUNT = "emulator-account"

DEFAULT_NETWORK_HOSTS = {
    EMULATOR: "127.0.0.1:3569",
    TESTNET: "access.devnet.nodes.onflow.org:9000",
    MAINNET: "access.mainnet.nodes.onflow.org:9000",
}

# REST access API endpoints for the default networks
DEFAULT_REST_HOSTS = {
    EMULATOR: "http://127.0.0.1:8888",
    TESTNET: "https://rest-testnet.onflow.org",
    MAINNET: "https://rest-mainnet.onflow.org",
}

# Service account addresses
SERVICE_ADDRESSES = {
    MAINNET: "e467b9dd11fa00df",
    TESTNET: "8c5303eaa26202d6",
    EMULATOR: "f8d6e0586b0a20c7",
}


# =============================================================================
# Addresses
# =============================================================================

ADDRESS_LENGTH = 8
IDENTIFIER_LENGTH = 32

# Codewords XORed into generated addresses, per chain
CHAIN_CODEWORDS = {
    MAINNET: 0x0000000000000000,
    TESTNET: 0x6834ba37b3980209,
    EMULATOR: 0x1cb159857af02018,
}

# Columns of the parity-check matrix of the [64, 45] linear code
PARITY_CHECK_COLUMNS = (
    0x00001, 0x00002, 0x00004, 0x00008, 0x00010, 0x00020, 0x00040, 0x00080,
    0x00100, 0x00200, 0x00400, 0x00800, 0x01000, 0x02000, 0x04000, 0x08000,
    0x10000, 0x20000, 0x40000, 0x7328d, 0x6689a, 0x6112f, 0x6084b, 0x433fd,
    0x42aab, 0x41951, 0x233ce, 0x22a81, 0x21948, 0x1ef60, 0x1deca, 0x1c639,
    0x1bdd8, 0x1a535, 0x194ac, 0x18c46, 0x1632b, 0x1529b, 0x14a43, 0x13184,
    0x12942, 0x118c1, 0x0f812, 0x0e027, 0x0d00e, 0x0c83c, 0x0b01d, 0x0a831,
    0x0982b, 0x07034, 0x0682a, 0x05819, 0x03807, 0x007d2, 0x00727, 0x0068e,
    0x0067c, 0x0059d, 0x004eb, 0x003b4, 0x0036a, 0x002d9, 0x001c7, 0x0003f,
)


# =============================================================================
# Transactions
# =============================================================================

# Upper bound for any transaction's compute limit
MAX_GAS_LIMIT = 9999

# Compute limit used for account and contract template transactions
TEMPLATE_GAS_LIMIT = 9999

# Compute limit for user transactions when none is given
DEFAULT_GAS_LIMIT = 1000

# Domain separation tag prepended to transaction signing messages
TRANSACTION_DOMAIN_TAG = b"FLOW-V0.0-transaction".ljust(32, b"\x00")

# Full signing weight of an account
ACCOUNT_KEY_WEIGHT_THRESHOLD = 1000

ACCOUNT_CREATED_EVENT = "flow.AccountCreated"

# Reserved import that never needs resolving
CRYPTO_CONTRACT = "Crypto"


# =============================================================================
# Keys
# =============================================================================

DEFAULT_DERIVATION_PATH = "m/44'/539'/0'/0/0"

# Minimum seed length for key generation
MIN_SEED_LENGTH = 32

# Minimum seed length for SLIP-0010 derivation
MIN_HD_SEED_LENGTH = 16

MNEMONIC_ENTROPY_BITS = 128

KEY_FILE_MODE = 0o600
CONFIG_FILE_MODE = 0o644

GOOGLE_CREDENTIALS_ENV = "GOOGLE_APPLICATION_CREDENTIALS"


# =============================================================================
# Config and Events
# =============================================================================

CONFIG_FILENAME = "flow.json"

DEFAULT_WORKER_COUNT = 1
DEFAULT_BLOCKS_PER_WORKER = 250

# Seconds between transaction status polls while waiting for seal
SEAL_POLL_INTERVAL = 1.0
SEAL_TIMEOUT = 300.0

# Largest gRPC message accepted from an access node
GRPC_MAX_MESSAGE_SIZE = 60 * 1024 * 1024
# Retries of a call rejected with RESOURCE_EXHAUSTED
GRPC_RETRIES = 3

# Access API transports a network can be reached over
GRPC_TRANSPORT = "grpc"
REST_TRANSPORT = "rest"
