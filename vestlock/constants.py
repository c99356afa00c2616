"""Vestlock constants."""

PUBKEY_LEN = 32
SEED_LEN = 32
SEED_MATERIAL_LEN = SEED_LEN - 1

U8_MAX = 0xFF
U32_MAX = 0xFFFF_FFFF
U64_MAX = 0xFFFF_FFFF_FFFF_FFFF

# Instruction tags.
IX_INIT = 0
IX_CREATE = 1
IX_UNLOCK = 2
IX_SET_BENEFICIARY = 3

# Calendar arithmetic.
SECONDS_PER_DAY = 86_400
# Mean Gregorian year (365.2425 days); the team cliff.
SECONDS_PER_YEAR = 31_556_952
MONTHS_PER_YEAR = 12

DEFAULT_DECIMALS = 9

# Rent (lamports_per_byte_year * exemption_threshold, plus per-account overhead).
RENT_LAMPORTS_PER_BYTE_YEAR = 3_480
RENT_EXEMPTION_YEARS = 2
ACCOUNT_STORAGE_OVERHEAD = 128

LAMPORTS_PER_SOL = 1_000_000_000

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
BPF_LOADER_ID = "BPFLoaderUpgradeab1e11111111111111111111111"
NATIVE_LOADER_ID = "NativeLoader1111111111111111111111111111111"

# Default vesting program ID (localnet).
DEFAULT_PROGRAM_ID = "EVestLockProgram1111111111111111111111111111"

DEFAULT_CONFIG_NAME = "vesting-config.toml"
DEFAULT_LEDGER_NAME = "vestlock-ledger.json"
DEFAULT_PAYER_PATH = "~/.config/solana/id.json"
DEFAULT_RPC_URL = "http://127.0.0.1:8899"
DEFAULT_EXECUTION_DATE = "2022-01-01T00:00:00"

# Largest account a program may allocate (10 MiB).
MAX_ACCOUNT_DATA_LEN = 10 * 1024 * 1024
