import os
from dotenv import load_dotenv

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # RENT RECLAIMER CONFIGURATION (Environment-Based)
    # ═══════════════════════════════════════════════════════════════════

    # Console output (file log is always written)
    SILENT_MODE = _env_bool("SILENT_MODE", False)

    # Paths
    DATA_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../data"))
    RENT_DB_PATH = os.getenv("RENT_DB_PATH", os.path.join(DATA_DIR, "rent_reclaimer.db"))
    OPERATOR_KEYPAIR_PATH = os.getenv("OPERATOR_KEYPAIR_PATH", "./operator-keypair.json")
    WHITELIST_PATH = os.getenv("WHITELIST_PATH", "whitelist.json")

    # --- Ledger Providers ---
    RPC_URL = os.getenv("RPC_URL", "")
    PUBLIC_RPC_URL = "https://api.mainnet-beta.solana.com"
    HELIUS_API_KEY = os.getenv("HELIUS_API_KEY", "")
    HELIUS_API_URL = os.getenv("HELIUS_API_URL", "https://api.helius.xyz/v0")
    TRITON_API_KEY = os.getenv("TRITON_API_KEY", "")
    QUICKNODE_API_KEY = os.getenv("QUICKNODE_API_KEY", "")
    ALCHEMY_API_KEY = os.getenv("ALCHEMY_API_KEY", "")

    # --- Reclaim Execution ---
    RECLAIM_DRY_RUN = _env_bool("RECLAIM_DRY_RUN", True)  # Always dry-run unless disabled
    PRIORITY_FEE_MICRO_LAMPORTS = int(os.getenv("PRIORITY_FEE_MICRO_LAMPORTS", "10000"))
    RECLAIM_BATCH_SIZE = int(os.getenv("RECLAIM_BATCH_SIZE", "15"))
    MAX_BATCH_RECLAIM_LAMPORTS = int(os.getenv("MAX_BATCH_RECLAIM_LAMPORTS", "100000000"))  # 0.1 SOL
    RECLAIM_MIN_AGE_SECONDS = int(os.getenv("RECLAIM_MIN_AGE_SECONDS", "0"))

    # --- Treasury Sweep ---
    TREASURY_ADDRESS = os.getenv("TREASURY_ADDRESS", "")
    TREASURY_RESERVE_LAMPORTS = int(os.getenv("TREASURY_RESERVE_LAMPORTS", "50000000"))  # 0.05 SOL

    # --- Polling ---
    MONITOR_INTERVAL_HOURS = float(os.getenv("MONITOR_INTERVAL_HOURS", "2"))

    # --- Notifications ---
    DISCORD_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL", "")
    TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_CHAT_ID = os.getenv("TELEGRAM_CHAT_ID", "")

    @staticmethod
    def resolve_rpc_url() -> str:
        """
        Resolve the JSON-RPC endpoint from available credentials.

        Priority: Helius > Triton > QuickNode > Alchemy > RPC_URL > public.
        """
        if Settings.HELIUS_API_KEY:
            return f"https://mainnet.helius-rpc.com/?api-key={Settings.HELIUS_API_KEY}"
        if Settings.TRITON_API_KEY:
            return f"https://rpc.triton.one/{Settings.TRITON_API_KEY}"
        if Settings.QUICKNODE_API_KEY:
            return f"https://solana-mainnet.quiknode.pro/{Settings.QUICKNODE_API_KEY}/"
        if Settings.ALCHEMY_API_KEY:
            return f"https://solana-mainnet.g.alchemy.com/v2/{Settings.ALCHEMY_API_KEY}"
        if Settings.RPC_URL:
            return Settings.RPC_URL
        return Settings.PUBLIC_RPC_URL
