"""
Rent Reclaimer Configuration
============================
Crawl, verification and safety parameters for the reclaim pipeline.
"""

import json
import os
from dataclasses import dataclass
from typing import Optional

from solders.keypair import Keypair

from config.settings import Settings


class ConfigurationError(Exception):
    """Missing or malformed configuration. Halts startup."""


@dataclass
class RentReclaimerConfig:
    """Configuration for discovery, verification and reclaim runs."""

    # Crawling
    PAGE_SIZE: int = 100  # Transactions per history page
    FLUSH_THRESHOLD: int = 50  # Candidates buffered before verify + persist
    PAGE_DELAY_SECONDS: float = 0.1  # Pause between history pages
    HISTORY_TYPE_HINT: Optional[str] = "SET_AUTHORITY"  # Provider-side noise filter

    # Verification
    VERIFY_BATCH_SIZE: int = 100  # Accounts per getMultipleAccounts
    STALE_AFTER_SECONDS: int = 3600  # Re-verify active accounts and failed closes hourly
    REFRESH_BATCH_SIZE: int = 1000
    REFRESH_MAX_ITERATIONS: int = 100  # Caps one cycle at 100k re-checks

    # Deposit detection
    RENT_TOLERANCE_LAMPORTS: int = 100
    FALLBACK_RENT_LAMPORTS: int = 2_039_280  # 165-byte account at current rent

    # Reclaim Execution
    RECLAIM_BATCH_SIZE: int = 15  # Close instructions per transaction
    PRIORITY_FEE_MICRO_LAMPORTS: int = 10_000
    MAX_BATCH_RECLAIM_LAMPORTS: int = 100_000_000  # Circuit breaker ceiling (0.1 SOL)
    RECLAIM_MIN_AGE_SECONDS: int = 0  # Cool-down since classified reclaimable
    DRY_RUN: bool = True  # Always dry-run unless disabled

    # Treasury Sweep
    TREASURY_ADDRESS: Optional[str] = None
    TREASURY_RESERVE_LAMPORTS: int = 50_000_000  # Kept for fees (0.05 SOL)

    @classmethod
    def from_settings(cls) -> "RentReclaimerConfig":
        return cls(
            RECLAIM_BATCH_SIZE=Settings.RECLAIM_BATCH_SIZE,
            PRIORITY_FEE_MICRO_LAMPORTS=Settings.PRIORITY_FEE_MICRO_LAMPORTS,
            MAX_BATCH_RECLAIM_LAMPORTS=Settings.MAX_BATCH_RECLAIM_LAMPORTS,
            RECLAIM_MIN_AGE_SECONDS=Settings.RECLAIM_MIN_AGE_SECONDS,
            DRY_RUN=Settings.RECLAIM_DRY_RUN,
            TREASURY_ADDRESS=Settings.TREASURY_ADDRESS or None,
            TREASURY_RESERVE_LAMPORTS=Settings.TREASURY_RESERVE_LAMPORTS,
        )


def load_operator_keypair(path: Optional[str] = None) -> Keypair:
    """
    Load the operator keypair from a Solana CLI style JSON byte array.

    Raises:
        ConfigurationError: file missing or not a 64-byte secret key
    """
    path = path or Settings.OPERATOR_KEYPAIR_PATH
    if not os.path.exists(path):
        raise ConfigurationError(f"Operator keypair not found at {path}")

    try:
        with open(path, "r") as f:
            secret = json.load(f)
        return Keypair.from_bytes(bytes(secret))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid operator keypair at {path}: {e}") from e
