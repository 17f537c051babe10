import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from the .env file at the repository root
dotenv_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=dotenv_path)

RPC_ENDPOINT = os.getenv("RPC_ENDPOINT", "https://api.mainnet-beta.solana.com")
WALLETS_FILE = Path(__file__).parent.parent / os.getenv("WALLETS_FILE", "data/wallets.json")
JUPITER_API_URL = os.getenv("JUPITER_API_URL", "https://lite-api.jup.ag/swap/v1")

# Base58 secret key of the funding wallet; only needed to actually run a campaign
ADMIN_PRIVATE_KEY = os.getenv("ADMIN_PRIVATE_KEY")

# Funding constants (lamports)
FEE_PER_TRANSFER = int(os.getenv("FEE_PER_TRANSFER", "5000"))
EXTRA_BUFFER = int(os.getenv("EXTRA_BUFFER", "5000000"))

# Swap settings
SLIPPAGE_BPS = int(os.getenv("SLIPPAGE_BPS", "100"))
PRIORITY_FEE_MAX_LAMPORTS = int(os.getenv("PRIORITY_FEE_MAX_LAMPORTS", "1000"))
PRIORITY_LEVEL = os.getenv("PRIORITY_LEVEL", "medium")

# Seconds to wait between consecutive submissions
DELAY_BETWEEN_TRANSACTIONS = float(os.getenv("DELAY_BETWEEN_TRANSACTIONS", "0.5"))

LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"
# Combined DEX preset; falls back to an unfiltered quote when no route matches
DEX_PRESET = "Raydium,Meteora,Orca+V2"
