# consolidator/config.py

import os
from dotenv import load_dotenv

# Load .env from the project root
script_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(script_dir)
dotenv_path = os.path.join(project_root, '.env')
load_dotenv(dotenv_path=dotenv_path)

# --- Solana Node Connection ---
# Comma separated; the fastest live endpoint is picked at startup
SOLANA_RPC_ENDPOINTS = os.getenv("SOLANA_RPC_ENDPOINTS", "https://api.mainnet-beta.solana.com")
# Optional: enables push confirmation through signatureSubscribe
SOLANA_WSS_ENDPOINT = os.getenv("SOLANA_WSS_ENDPOINT")

# --- Wallet (Required - MUST be in .env or environment) ---
SOLANA_PRIVATE_KEY = os.getenv("SOLANA_PRIVATE_KEY")
# No default for private key

# --- Transaction Settings ---
CONFIRM_TIMEOUT_SECONDS = 30.0
CONFIRM_POLL_INTERVAL_SECONDS = 1.0
MAX_SEND_RETRIES = 3
SOL_RESERVE_LAMPORTS = 10_000_000  # 0.01 SOL stays behind on a sweep

# --- Refresh ---
REFRESH_COOLDOWN_SECONDS = 5.0
REFRESH_DEBOUNCE_SECONDS = 1.0
REFRESH_INTERVAL_SECONDS = 10.0

# --- Metadata ---
METADATA_FETCH_TIMEOUT_SECONDS = 10.0

# --- Output ---
DESTINATION_PREFERENCE_PATH = os.getenv(
    "DESTINATION_PREFERENCE_PATH",
    os.path.join(os.path.expanduser("~"), ".consolidator", "preferences.json"),
)
EXPLORER_TX_URL = "https://solscan.io/tx/{signature}"
NOTIFICATION_LOG_PATH = os.getenv("NOTIFICATION_LOG_PATH")  # None = console only
