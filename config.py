import os

# --- Telegram ---
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_TOKEN", "")
ALLOWED_USERS = {int(u) for u in os.getenv("ALLOWED_USERS", "").split(",") if u.strip()}
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "")
WEBHOOK_PORT = int(os.getenv("WEBHOOK_PORT", "3000"))

# --- Solana / Jito endpoints ---
RPC_ENDPOINT = os.getenv("RPC_ENDPOINT", "https://api.mainnet-beta.solana.com")
BLOCK_ENGINE_URL = os.getenv("BLOCK_ENGINE_URL", "https://mainnet.block-engine.jito.wtf")
TIP_ACCOUNT = os.getenv("TIP_ACCOUNT", "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))

# --- Programs ---
SWAP_PROGRAM_ID = os.getenv("SWAP_PROGRAM_ID", "Axz6g5nHgKzm5CbLJc43auxpdpkL1BafBywSvotyTUSv")
RAYDIUM_AMM_V4_PROGRAM_ID = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"

# --- Storage ---
KEYPAIRS_DIR = os.getenv("KEYPAIRS_DIR", "user_keypairs")
WALLETS_DIR = os.getenv("WALLETS_DIR", "user_wallets")
MAX_KEYPAIRS = int(os.getenv("MAX_KEYPAIRS", "20"))

# --- Batching ---
SOL_TRANSFER_CHUNK_SIZE = int(os.getenv("SOL_TRANSFER_CHUNK_SIZE", "10"))
ATA_CHUNK_SIZE = int(os.getenv("ATA_CHUNK_SIZE", "10"))
WSOL_CHUNK_SIZE = int(os.getenv("WSOL_CHUNK_SIZE", "6"))
RECLAIM_CHUNK_SIZE = int(os.getenv("RECLAIM_CHUNK_SIZE", "2"))
DEFAULT_STEPS = int(os.getenv("DEFAULT_STEPS", "5"))
DEFAULT_TIP_SOL = float(os.getenv("DEFAULT_TIP_SOL", "0.01"))
RECLAIM_DUST_LAMPORTS = int(os.getenv("RECLAIM_DUST_LAMPORTS", "5000"))

# --- Simulation / menu ---
SWAP_TAX_RATE = float(os.getenv("SWAP_TAX_RATE", "0.005"))  # 0.5% per swap
MIN_FUNDED_BALANCE = float(os.getenv("MIN_FUNDED_BALANCE", "0.05"))

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "")

# --- Protocol constants ---
LAMPORTS_PER_SOL = 1_000_000_000
MAX_TRANSACTION_SIZE = 1232  # bytes
MAX_BUNDLE_TRANSACTIONS = 5
