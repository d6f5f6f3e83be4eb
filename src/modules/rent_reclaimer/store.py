"""
Rent Store
==========
Facade over the sqlite repositories used by discovery and reclaim.

All writes are idempotent upserts keyed by account or operator address,
so overlapping or repeated partial writes converge.
"""

import json
import os
from typing import Dict, Iterable, List, Optional

from src.modules.rent_reclaimer.config import ConfigurationError
from src.shared.models.sponsored_account import AccountStatus, ScanCheckpoint, SponsoredAccount
from src.shared.system.database.core import DatabaseCore
from src.shared.system.database.repositories.account_repo import SponsoredAccountRepository
from src.shared.system.database.repositories.checkpoint_repo import ScanCheckpointRepository
from src.shared.system.database.repositories.fee_repo import OperatorFeeRepository
from src.shared.system.database.repositories.whitelist_repo import WhitelistRepository
from src.shared.system.logging import Logger


class RentStore:
    """State store for sponsored accounts, checkpoints, fees and the whitelist."""

    def __init__(self, db_path: Optional[str] = None, whitelist_path: Optional[str] = None):
        self.core = DatabaseCore(db_path)
        self.whitelist_path = whitelist_path

        self.accounts = SponsoredAccountRepository(self.core)
        self.checkpoints = ScanCheckpointRepository(self.core)
        self.fees = OperatorFeeRepository(self.core)
        self.whitelist = WhitelistRepository(self.core)

        self.accounts.init_table()
        self.checkpoints.init_table()
        self.fees.init_table()
        self.whitelist.init_table()

    # --- ACCOUNTS ---
    def upsert_accounts(self, accounts: Iterable[SponsoredAccount]) -> int:
        return self.accounts.upsert_accounts(accounts)

    def get_account(self, address: str) -> Optional[SponsoredAccount]:
        return self.accounts.get_account(address)

    def get_accounts_for_operator(self, operator: str) -> List[SponsoredAccount]:
        return self.accounts.get_accounts_for_operator(operator)

    def get_by_status(self, status: AccountStatus, operator: Optional[str] = None) -> List[SponsoredAccount]:
        return self.accounts.get_by_status(status, operator)

    def get_due_for_refresh(self, operator: str, verified_before: float, limit: int) -> List[SponsoredAccount]:
        return self.accounts.get_due_for_refresh(operator, verified_before, limit)

    def update_account_status(self, address: str, status: AccountStatus, **extra) -> bool:
        return self.accounts.update_account_status(address, status, **extra)

    def mark_reclaimed(self, address: str, signature: str, amount: int,
                       reclaimed_at: Optional[float] = None) -> bool:
        return self.accounts.mark_reclaimed(address, signature, amount, reclaimed_at)

    def get_operator_stats(self, operator: str) -> Dict[str, int]:
        return self.accounts.get_operator_stats(operator)

    def get_global_stats(self) -> Dict[str, int]:
        return self.accounts.get_global_stats()

    def get_accounts_grouped_by_wallet(self, operator: str) -> Dict[str, List[SponsoredAccount]]:
        return self.accounts.get_accounts_grouped_by_wallet(operator)

    # --- CHECKPOINTS ---
    def get_checkpoint(self, operator: str) -> Optional[ScanCheckpoint]:
        return self.checkpoints.get_checkpoint(operator)

    def update_checkpoint(self, partial: ScanCheckpoint) -> None:
        self.checkpoints.update_checkpoint(partial)

    # --- FEES ---
    def add_operator_fee(self, signature: str, operator: str, fee: int,
                         timestamp: Optional[int] = None, tx_type: Optional[str] = None,
                         slot: Optional[int] = None) -> None:
        self.fees.add_fee(signature, operator, fee, timestamp, tx_type, slot)

    def get_operator_fee_totals(self, operator: str) -> Dict[str, int]:
        return self.fees.get_fee_totals(operator)

    # --- WHITELIST ---
    def add_to_whitelist(self, address: str, note: Optional[str] = None) -> None:
        self.whitelist.add(address, note)

    def remove_from_whitelist(self, address: str) -> bool:
        return self.whitelist.remove(address)

    def get_whitelist(self) -> List[str]:
        """Stored whitelist merged with the optional JSON file of addresses."""
        addresses = set(self.whitelist.get_whitelist())
        addresses.update(self._load_whitelist_file())
        return sorted(addresses)

    def _load_whitelist_file(self) -> List[str]:
        if not self.whitelist_path or not os.path.exists(self.whitelist_path):
            return []
        try:
            with open(self.whitelist_path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            # An unreadable whitelist must never widen the reclaim set
            Logger.error(f"❌ [STORE] Could not read whitelist file {self.whitelist_path}: {e}")
            raise ConfigurationError(f"Unreadable whitelist file {self.whitelist_path}") from e

        if isinstance(data, dict):
            data = data.get("addresses", [])
        if not isinstance(data, list):
            raise ConfigurationError(f"Whitelist file {self.whitelist_path} must hold a list of addresses")
        return [a for a in data if isinstance(a, str) and a]
