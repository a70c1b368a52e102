# consolidator/core/constants.py

LAMPORTS_PER_SOL = 1_000_000_000

# Kept behind on a SOL sweep so the source can still pay fees
SOL_RESERVE_LAMPORTS = 10_000_000

# Rent-exempt minimum of a 165-byte token account
RENT_EXEMPT_TOKEN_ACCOUNT_LAMPORTS = 2_039_280

TOKEN_ACCOUNT_DATA_SIZE = 165

# Metadata account field limits (bytes)
METADATA_NAME_MAX_LEN = 32
METADATA_SYMBOL_MAX_LEN = 10
METADATA_URI_MAX_LEN = 200

IPFS_GATEWAYS = [
    "https://ipfs.io/ipfs/",
    "https://gateway.pinata.cloud/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://gateway.ipfs.io/ipfs/",
    "https://ipfs.fleek.co/ipfs/",
]
ARWEAVE_GATEWAY = "https://arweave.net/"

EXPLORER_TX_URL = "https://solscan.io/tx/{signature}"
