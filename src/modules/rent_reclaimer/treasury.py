"""
Treasury Sweep
==============
After a reclaim run, forward the operator's surplus balance to a
treasury address, keeping a reserve for future fees. Never fatal.
"""

from typing import Optional

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from src.shared.infrastructure.ledger_client import LedgerError
from src.shared.system.logging import Logger


def build_transfer_ix(from_pubkey: Pubkey, to_pubkey: Pubkey, lamports: int) -> Instruction:
    return transfer(TransferParams(from_pubkey=from_pubkey, to_pubkey=to_pubkey, lamports=int(lamports)))


class TreasurySweeper:
    """Forwards the operator's surplus above a fee reserve to the treasury address."""

    def __init__(self, ledger, operator_keypair: Keypair, destination: Optional[str], reserve_lamports: int):
        self.ledger = ledger
        self.keypair = operator_keypair
        self.destination = destination
        self.reserve_lamports = reserve_lamports

    async def sweep(self) -> Optional[str]:
        """Transfer balance minus reserve. Returns the signature, or None if nothing was sent."""
        if not self.destination:
            return None

        operator = self.keypair.pubkey()
        if str(operator) == self.destination:
            Logger.warning("⚠️ [TREASURY] Destination is the operator itself - sweep disabled")
            return None

        try:
            balance = await self.ledger.get_balance(str(operator))
            surplus = balance - self.reserve_lamports
            if surplus <= 0:
                Logger.debug(f"[TREASURY] Balance {balance} within reserve {self.reserve_lamports} - nothing to sweep")
                return None

            ix = build_transfer_ix(operator, Pubkey.from_string(self.destination), surplus)
            signature = await self.ledger.submit_mutation([ix], self.keypair)
        except (LedgerError, ValueError) as e:
            Logger.error(f"❌ [TREASURY] Sweep failed: {e}")
            return None

        Logger.success(f"[TREASURY] Swept {surplus / 1e9:.6f} SOL to {self.destination[:8]}... ({signature[:12]}...)")
        return signature
