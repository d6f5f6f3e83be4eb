"""
Reclaim Engine
==============
Closes verified-empty sponsored accounts and returns their deposits
to the operator.

Safety gates, in order:
- whitelist: listed addresses never reach a transaction
- cool-down: accounts must have been reclaimable for a minimum age
- double-tap: state is re-read right before mutation; refilled accounts
  go back to `active`
- circuit breaker: a batch worth more than the ceiling is aborted whole
- dry run: report only, no submission and no writes

Batches run strictly one after another. A failed batch is retried one
account per transaction so a single bad account cannot sink the rest.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from solders.compute_budget import set_compute_unit_price
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.instructions import close_account
from spl.token.models import CloseAccountParams

from src.modules.rent_reclaimer.config import RentReclaimerConfig
from src.modules.rent_reclaimer.constants import LAMPORTS_PER_SOL, PROGRAM_BY_KIND
from src.modules.rent_reclaimer.store import RentStore
from src.modules.rent_reclaimer.verifier import Verifier, VerifiedResult
from src.shared.infrastructure.ledger_client import LedgerError
from src.shared.models.sponsored_account import CIRCUIT_BREAKER_REASON, AccountStatus
from src.shared.notification.reclaim_notifier import ReclaimCompleted, ReclaimNotifier
from src.shared.system.logging import Logger


@dataclass
class ReclaimSummary:
    success: int = 0
    failed: int = 0
    skipped: int = 0
    revived: int = 0
    lamports: int = 0
    dry_run: bool = False
    signatures: List[str] = field(default_factory=list)

    @property
    def sol(self) -> float:
        return self.lamports / LAMPORTS_PER_SOL

    def merge(self, other: "ReclaimSummary") -> None:
        self.success += other.success
        self.failed += other.failed
        self.skipped += other.skipped
        self.revived += other.revived
        self.lamports += other.lamports
        self.signatures.extend(other.signatures)


class Reclaimer:
    """Reclaim engine for one operator identity."""

    def __init__(
        self,
        ledger,
        store: RentStore,
        operator_keypair: Keypair,
        config: Optional[RentReclaimerConfig] = None,
        verifier: Optional[Verifier] = None,
        notifier: Optional[ReclaimNotifier] = None,
    ):
        self.ledger = ledger
        self.store = store
        self.keypair = operator_keypair
        self.operator = str(operator_keypair.pubkey())
        self.config = config or RentReclaimerConfig()
        self.verifier = verifier or Verifier(ledger, self.config.VERIFY_BATCH_SIZE)
        self.notifier = notifier

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def reclaim_eligible(self) -> ReclaimSummary:
        """Reclaim every stored `reclaimable` account that passes whitelist and cool-down."""
        candidates = self.store.get_by_status(AccountStatus.RECLAIMABLE, self.operator)
        whitelist = set(self.store.get_whitelist())
        min_age = self.config.RECLAIM_MIN_AGE_SECONDS
        now = time.time()

        eligible: List[str] = []
        cooling = 0
        for account in candidates:
            if account.address in whitelist:
                continue
            if min_age > 0 and (account.reclaimable_since is None or now - account.reclaimable_since < min_age):
                cooling += 1
                continue
            eligible.append(account.address)

        if cooling:
            Logger.info(f"[RECLAIM] {cooling} accounts still in cool-down ({min_age}s)")
        if not eligible:
            Logger.info("[RECLAIM] Nothing eligible for reclaim")
            return ReclaimSummary(dry_run=self.config.DRY_RUN)

        return await self.reclaim_accounts(eligible)

    async def reclaim_accounts(self, addresses: Sequence[str]) -> ReclaimSummary:
        """Double-tap verify `addresses`, then reclaim the confirmed ones in batches."""
        summary = ReclaimSummary(dry_run=self.config.DRY_RUN)

        whitelist = set(self.store.get_whitelist())
        targets = []
        for address in dict.fromkeys(addresses):
            if address in whitelist:
                Logger.info(f"🛡️ [RECLAIM] {address[:8]}... is whitelisted - skipped")
                summary.skipped += 1
            else:
                targets.append(address)
        if not targets:
            return summary

        try:
            results = await self.verifier.verify(targets, self.operator)
        except LedgerError as e:
            Logger.error(f"❌ [RECLAIM] Double-tap verification failed, nothing executed: {e}")
            summary.failed += len(targets)
            return summary

        confirmed = self._apply_double_tap(results, summary)
        if not confirmed:
            return summary

        size = self.config.RECLAIM_BATCH_SIZE
        batches = [confirmed[i:i + size] for i in range(0, len(confirmed), size)]
        Logger.info(
            f"♻️ [RECLAIM] {len(confirmed)} accounts confirmed in {len(batches)} batches"
            f"{' (DRY RUN)' if self.config.DRY_RUN else ''}"
        )
        for batch in batches:
            summary.merge(await self.reclaim_batch(batch))

        Logger.success(
            f"[RECLAIM] Done: {summary.success} reclaimed, {summary.failed} failed, "
            f"{summary.sol:.6f} SOL{' (simulated)' if summary.dry_run else ''}"
        )
        return summary

    async def reclaim_batch(self, batch: List[VerifiedResult]) -> ReclaimSummary:
        """Execute one batch with circuit breaker, dry run and single-account fallback."""
        summary = ReclaimSummary(dry_run=self.config.DRY_RUN)
        total = sum(r.lamports for r in batch)
        ceiling = self.config.MAX_BATCH_RECLAIM_LAMPORTS

        if total > ceiling:
            reason = (
                f"{CIRCUIT_BREAKER_REASON}: batch value {total} lamports exceeds ceiling {ceiling} "
                f"({len(batch)} accounts)"
            )
            Logger.critical(f"[RECLAIM] {reason}")
            for result in batch:
                self.store.update_account_status(result.address, AccountStatus.ERROR, error_message=reason)
            summary.failed += len(batch)
            return summary

        if self.config.DRY_RUN:
            Logger.info(f"🧪 [RECLAIM] DRY RUN: would close {len(batch)} accounts for {total / LAMPORTS_PER_SOL:.6f} SOL")
            summary.success += len(batch)
            summary.lamports += total
            return summary

        instructions = [self._priority_fee_instruction()]
        instructions.extend(self.build_close_instruction(r) for r in batch)
        try:
            signature = await self.ledger.submit_mutation(instructions, self.keypair)
        except LedgerError as e:
            Logger.warning(f"⚠️ [RECLAIM] Batch of {len(batch)} failed ({e}) - retrying one by one")
            for result in batch:
                summary.merge(await self._reclaim_single(result))
            return summary

        self._record_success(batch, signature, summary)
        return summary

    def build_close_instruction(self, result: VerifiedResult) -> Instruction:
        """CloseAccount sending the deposit to the operator, signed by the operator as authority."""
        operator = self.keypair.pubkey()
        return close_account(CloseAccountParams(
            program_id=Pubkey.from_string(PROGRAM_BY_KIND[result.kind]),
            account=Pubkey.from_string(result.address),
            dest=operator,
            owner=operator,
            signers=[],
        ))

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _apply_double_tap(self, results: List[VerifiedResult], summary: ReclaimSummary) -> List[VerifiedResult]:
        confirmed: List[VerifiedResult] = []
        for result in results:
            if result.can_reclaim:
                confirmed.append(result)
                continue

            if self.config.DRY_RUN:
                summary.skipped += 1
                continue

            if result.status == AccountStatus.ACTIVE:
                Logger.warning(f"⚠️ [RECLAIM] {result.address[:8]}... was refilled - reverting to active")
                self.store.update_account_status(
                    result.address, AccountStatus.ACTIVE,
                    lamports=result.lamports, last_verified_at=time.time(),
                )
                summary.revived += 1
            else:
                Logger.info(f"[RECLAIM] {result.address[:8]}... is now {result.status.value} - skipped")
                self.store.update_account_status(
                    result.address, result.status,
                    lamports=result.lamports, last_verified_at=time.time(),
                )
                summary.skipped += 1
        return confirmed

    def _priority_fee_instruction(self) -> Instruction:
        return set_compute_unit_price(self.config.PRIORITY_FEE_MICRO_LAMPORTS)

    async def _reclaim_single(self, result: VerifiedResult) -> ReclaimSummary:
        summary = ReclaimSummary()
        instructions = [self._priority_fee_instruction(), self.build_close_instruction(result)]
        try:
            signature = await self.ledger.submit_mutation(instructions, self.keypair)
        except LedgerError as e:
            Logger.error(f"❌ [RECLAIM] {result.address[:8]}... failed: {e}")
            self.store.update_account_status(result.address, AccountStatus.ERROR, error_message=str(e))
            summary.failed += 1
            return summary

        self._record_success([result], signature, summary)
        return summary

    def _record_success(self, batch: List[VerifiedResult], signature: str, summary: ReclaimSummary) -> None:
        now = time.time()
        recovered = 0
        for result in batch:
            self.store.mark_reclaimed(result.address, signature, result.lamports, now)
            recovered += result.lamports
        summary.success += len(batch)
        summary.lamports += recovered
        summary.signatures.append(signature)
        Logger.success(f"[RECLAIM] Closed {len(batch)} accounts (+{recovered / LAMPORTS_PER_SOL:.6f} SOL) {signature[:12]}...")

        if self.notifier:
            self.notifier.notify(ReclaimCompleted(
                operator=self.operator,
                amount_lamports=recovered,
                account_count=len(batch),
                signature=signature,
            ))
