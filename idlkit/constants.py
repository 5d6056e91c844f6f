"""idlkit constants and enums."""

INTEGER_WIDTHS = {
    "u8": 1,
    "i8": 1,
    "u16": 2,
    "i16": 2,
    "u32": 4,
    "i32": 4,
    "u64": 8,
    "i64": 8,
    "u128": 16,
    "i128": 16,
}

# 128-bit integers convert as wire values but are not accepted as seed leaves.
SEED_INTEGER_WIDTHS = {name: width for name, width in INTEGER_WIDTHS.items() if width <= 8}

FLOAT_TYPES = {"f32", "f64"}

PRIMITIVE_TYPES = set(INTEGER_WIDTHS) | FLOAT_TYPES | {"bool", "string", "pubkey", "bytes"}

# Older IDLs spell the address type differently.
PRIMITIVE_ALIASES = {"publicKey": "pubkey"}

SEED_KINDS = {"const", "arg", "account"}
TYPE_DEF_KINDS = {"struct", "enum", "type"}

MAX_SEED_LEN = 32
PUBKEY_LEN = 32

# Largest integer a JSON/JS number carries exactly.
MAX_SAFE_INTEGER = 2**53 - 1

CLUSTER_URLS = {
    "localnet": "http://127.0.0.1:8899",
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet": "https://api.mainnet-beta.solana.com",
}

DEFAULT_CLUSTER = "devnet"
DEFAULT_COMMITMENT = "confirmed"
ALLOWED_COMMITMENTS = {"processed", "confirmed", "finalized"}

SETTINGS_FILENAME = "idlkit.toml"


def integer_bounds(type_name: str) -> tuple[int, int]:
    width = INTEGER_WIDTHS[type_name]
    bits = width * 8
    if type_name.startswith("i"):
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    return 0, (1 << bits) - 1
