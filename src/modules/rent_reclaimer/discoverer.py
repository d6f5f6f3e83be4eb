"""
Discovery & Checkpoint Engine
=============================
Resumable, bidirectional crawl of an operator's sponsorship history.

One cycle (at most one per operator, see InFlightRegistry):
1. Upward sync   - pages newer than the newest cursor, up to the seam
2. Stale refresh - re-verify active accounts and failed closes not checked recently
3. Backfill      - pages older than the oldest cursor until history ends
4. Totals        - checkpoint status, last sync time, rolling counters

Progress is persisted page by page. Any provider error stops the loop it
happens in; the checkpoint always reflects the last fully persisted page.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from src.modules.rent_reclaimer.classifier import CandidateExtractor, DepositSizes
from src.modules.rent_reclaimer.config import RentReclaimerConfig
from src.modules.rent_reclaimer.registry import InFlightRegistry, get_default_registry
from src.modules.rent_reclaimer.store import RentStore
from src.modules.rent_reclaimer.verifier import Verifier
from src.shared.infrastructure.ledger_client import LedgerError
from src.shared.models.ledger import LedgerTransaction
from src.shared.models.sponsored_account import (
    AccountStatus,
    ScanCheckpoint,
    ScanStatus,
    SponsoredAccount,
)
from src.shared.system.logging import Logger


@dataclass
class ScanResult:
    from_cache: bool
    accounts: List[SponsoredAccount]
    stats: Dict[str, int]
    checkpoint: Optional[ScanCheckpoint]


class Discoverer:
    """Discovery engine for a single operator."""

    def __init__(
        self,
        operator: str,
        ledger,
        store: RentStore,
        config: Optional[RentReclaimerConfig] = None,
        registry: Optional[InFlightRegistry] = None,
        verifier: Optional[Verifier] = None,
    ):
        self.operator = operator
        self.ledger = ledger
        self.store = store
        self.config = config or RentReclaimerConfig()
        self.registry = registry or get_default_registry()
        self.verifier = verifier or Verifier(ledger, self.config.VERIFY_BATCH_SIZE)
        self.deposits = DepositSizes(self.config)
        self.extractor = CandidateExtractor(operator, self.deposits)
        self._tasks: Set[asyncio.Task] = set()
        self._tag = f"{operator[:6]}..."

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def scan(self, wait_for_sync: bool = False, force_verify: bool = False,
                   max_items: Optional[int] = None) -> ScanResult:
        """
        Return stored accounts and stats, and start an update cycle.

        If a cycle is already running for this operator, the cached view is
        returned and nothing new is started. With `wait_for_sync`, the call
        returns after the cycle finishes.
        """
        checkpoint = self.store.get_checkpoint(self.operator)

        if not self.registry.try_acquire(self.operator):
            Logger.info(f"[DISCOVERY] {self._tag} scan already in flight - serving cached data")
            return self._snapshot(True, checkpoint)

        task = asyncio.create_task(self._run_cycle(force_verify, max_items))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        if wait_for_sync:
            await task
            return self._snapshot(False, self.store.get_checkpoint(self.operator))

        return self._snapshot(checkpoint is not None, checkpoint)

    async def ingest_transactions(self, transactions: List[LedgerTransaction], source: str) -> int:
        """
        Run pushed transactions through extraction, verification and
        persistence. Cursors are left untouched. Returns candidates stored.
        """
        if not self.deposits.loaded:
            await self.deposits.load(self.ledger)

        candidates: List[SponsoredAccount] = []
        for tx in transactions:
            candidates.extend(self._process_transaction(tx, source))
        if candidates:
            await self._flush(candidates)
        return len(candidates)

    async def wait_idle(self) -> None:
        """Wait for background cycles started by scan()."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # CYCLE
    # =========================================================================

    async def _run_cycle(self, force_verify: bool, max_items: Optional[int]) -> None:
        cycle_started = time.time()
        try:
            checkpoint = self.store.get_checkpoint(self.operator)
            if checkpoint is None:
                Logger.info(f"[DISCOVERY] {self._tag} initial scan starting")
                self.store.update_checkpoint(ScanCheckpoint(
                    operator=self.operator,
                    scan_status=ScanStatus.SCANNING,
                    first_scan_complete=False,
                ))
                checkpoint = self.store.get_checkpoint(self.operator)

            if not self.deposits.loaded:
                await self.deposits.load(self.ledger)

            if checkpoint.newest_signature:
                await self._sync_upward(checkpoint)

            cutoff = cycle_started if force_verify else cycle_started - self.config.STALE_AFTER_SECONDS
            await self._refresh_stale(cutoff)

            if not checkpoint.first_scan_complete:
                await self._backfill(checkpoint, max_items)

            self._write_totals()
        except Exception as e:
            # Background task boundary: nothing may escape to the event loop
            Logger.error(f"❌ [DISCOVERY] {self._tag} cycle failed: {e}")
        finally:
            self.registry.release(self.operator)

    def _snapshot(self, from_cache: bool, checkpoint: Optional[ScanCheckpoint]) -> ScanResult:
        return ScanResult(
            from_cache=from_cache,
            accounts=self.store.get_accounts_for_operator(self.operator),
            stats=self.store.get_operator_stats(self.operator),
            checkpoint=checkpoint,
        )

    def _write_totals(self) -> None:
        stats = self.store.get_operator_stats(self.operator)
        self.store.update_checkpoint(ScanCheckpoint(
            operator=self.operator,
            scan_status=ScanStatus.COMPLETE,
            last_scan_at=time.time(),
            total_accounts=stats["total_accounts"],
            reclaimable_count=stats["reclaimable_accounts"],
            reclaimable_lamports=stats["reclaimable_lamports"],
        ))
        Logger.info(
            f"📊 [DISCOVERY] {self._tag} {stats['total_accounts']} accounts, "
            f"{stats['reclaimable_accounts']} reclaimable "
            f"({stats['reclaimable_lamports'] / 1e9:.4f} SOL)"
        )

    # =========================================================================
    # CRAWLING
    # =========================================================================

    async def _fetch_page(self, before: Optional[str]) -> List[LedgerTransaction]:
        return await self.ledger.fetch_history(
            self.operator,
            before=before,
            limit=self.config.PAGE_SIZE,
            type_hint=self.config.HISTORY_TYPE_HINT,
        )

    def _process_transaction(self, tx: LedgerTransaction, source: str) -> List[SponsoredAccount]:
        if tx.fee_payer == self.operator:
            self.store.add_operator_fee(tx.signature, self.operator, tx.fee, tx.timestamp, tx.type, tx.slot)
        return self.extractor.extract(tx, source=source)

    async def _backfill(self, checkpoint: ScanCheckpoint, max_items: Optional[int]) -> None:
        """Walk history downward from the oldest cursor."""
        before = checkpoint.oldest_signature
        newest: Optional[LedgerTransaction] = None
        page_oldest: Optional[LedgerTransaction] = None
        pending: List[SponsoredAccount] = []
        processed = 0
        reached_end = False

        self.store.update_checkpoint(ScanCheckpoint(operator=self.operator, scan_status=ScanStatus.SCANNING))
        Logger.info(f"[DISCOVERY] {self._tag} backfilling history from {before[:8] + '...' if before else 'tip'}")

        while max_items is None or processed < max_items:
            try:
                page = await self._fetch_page(before)
            except LedgerError as e:
                Logger.error(f"❌ [DISCOVERY] {self._tag} history page failed, progress kept: {e}")
                break

            if not page:
                reached_end = True
                break

            if max_items is not None:
                page = page[:max_items - processed]

            if newest is None and not checkpoint.newest_signature:
                newest = page[0]

            for tx in page:
                pending.extend(self._process_transaction(tx, "history"))
            processed += len(page)
            page_oldest = page[-1]
            before = page_oldest.signature

            if len(pending) >= self.config.FLUSH_THRESHOLD:
                await self._flush(pending)
                pending = []

            if not pending:
                self._save_cursors(oldest=page_oldest, newest=newest)

            if processed and processed % 500 == 0:
                Logger.info(f"[DISCOVERY] {self._tag} processed {processed} txs downwards")

            if max_items is not None and processed >= max_items:
                Logger.info(f"[DISCOVERY] {self._tag} hit scan limit of {max_items} transactions")
                break

            await asyncio.sleep(self.config.PAGE_DELAY_SECONDS)

        if pending:
            await self._flush(pending)

        self._save_cursors(oldest=page_oldest, newest=newest, first_scan_complete=reached_end or None)
        if reached_end:
            Logger.success(f"[DISCOVERY] {self._tag} reached start of history ({processed} txs this run)")

    async def _sync_upward(self, checkpoint: ScanCheckpoint) -> None:
        """Fetch transactions newer than the newest cursor, stopping at the seam."""
        seam = checkpoint.newest_signature
        seam_slot = checkpoint.newest_slot
        before: Optional[str] = None
        first_new: Optional[LedgerTransaction] = None
        found: List[SponsoredAccount] = []
        reached_seam = False

        while True:
            try:
                page = await self._fetch_page(before)
            except LedgerError as e:
                Logger.error(f"❌ [DISCOVERY] {self._tag} upward sync failed: {e}")
                break

            if not page:
                reached_seam = True
                break

            fresh: List[LedgerTransaction] = []
            for tx in page:
                if tx.signature == seam or (seam_slot is not None and tx.slot < seam_slot):
                    reached_seam = True
                    break
                fresh.append(tx)

            if first_new is None and fresh:
                first_new = fresh[0]
            for tx in fresh:
                found.extend(self._process_transaction(tx, "sync"))

            if reached_seam:
                break
            before = page[-1].signature
            await asyncio.sleep(self.config.PAGE_DELAY_SECONDS)

        if found:
            await self._flush(found)
            Logger.info(f"[DISCOVERY] {self._tag} {len(found)} new candidates since last sync")

        if reached_seam and first_new is not None:
            self._save_cursors(newest=first_new)

    def _save_cursors(self, oldest: Optional[LedgerTransaction] = None,
                      newest: Optional[LedgerTransaction] = None,
                      first_scan_complete: Optional[bool] = None) -> None:
        self.store.update_checkpoint(ScanCheckpoint(
            operator=self.operator,
            oldest_signature=oldest.signature if oldest else None,
            oldest_slot=oldest.slot if oldest else None,
            newest_signature=newest.signature if newest else None,
            newest_slot=newest.slot if newest else None,
            first_scan_complete=first_scan_complete,
        ))

    # =========================================================================
    # VERIFICATION
    # =========================================================================

    async def _flush(self, candidates: List[SponsoredAccount]) -> None:
        """
        Verify candidates and persist them.

        If verification fails, new accounts are stored as unverified `active`
        and known accounts keep their stored status.
        """
        unique: Dict[str, SponsoredAccount] = {}
        for candidate in candidates:
            unique[candidate.address] = candidate
        batch = list(unique.values())

        try:
            results = await self.verifier.verify([c.address for c in batch], self.operator)
        except LedgerError as e:
            Logger.warning(f"⚠️ [DISCOVERY] {self._tag} verification deferred for {len(batch)} accounts: {e}")
            self.store.upsert_accounts(batch)
            return

        now = time.time()
        for candidate, result in zip(batch, results):
            candidate.status = result.status
            candidate.lamports = result.lamports if result.exists else 0
            candidate.last_verified_at = now
            candidate.user_wallet = result.owner or candidate.user_wallet
            candidate.mint = result.mint or candidate.mint
            candidate.kind = result.kind or candidate.kind
        self.store.upsert_accounts(batch)
        Logger.debug(f"[DISCOVERY] {self._tag} stored {len(batch)} accounts")

    async def _refresh_stale(self, verified_before: float) -> None:
        """Re-verify active accounts, and failed closes, last checked before `verified_before`."""
        iterations = 0
        checked = 0
        newly_reclaimable = 0

        while iterations < self.config.REFRESH_MAX_ITERATIONS:
            batch = self.store.get_due_for_refresh(
                self.operator, verified_before, self.config.REFRESH_BATCH_SIZE
            )
            if not batch:
                break

            try:
                results = await self.verifier.verify([a.address for a in batch], self.operator)
            except LedgerError as e:
                Logger.error(f"❌ [DISCOVERY] {self._tag} stale refresh aborted: {e}")
                break

            now = time.time()
            closed: List[SponsoredAccount] = []
            for account, result in zip(batch, results):
                account.status = result.status
                account.lamports = result.lamports if result.exists else 0
                account.last_verified_at = now
                account.error_message = None
                if result.can_reclaim:
                    newly_reclaimable += 1
                if result.status == AccountStatus.CLOSED:
                    closed.append(account)
            self.store.upsert_accounts(batch)

            for account in closed:
                await self._record_closure(account)

            checked += len(batch)
            iterations += 1
            if len(batch) < self.config.REFRESH_BATCH_SIZE:
                break
            await asyncio.sleep(self.config.PAGE_DELAY_SECONDS * 2)

        if checked:
            Logger.info(
                f"[DISCOVERY] {self._tag} re-verified {checked} accounts, "
                f"{newly_reclaimable} now reclaimable"
            )

    async def _record_closure(self, account: SponsoredAccount) -> None:
        """Best effort: keep the last transaction touching a closed account as its closing reference."""
        try:
            history = await self.ledger.fetch_history(account.address, limit=1)
        except LedgerError as e:
            Logger.debug(f"[DISCOVERY] No closing tx for {account.address[:8]}...: {e}")
            return
        if history:
            last = history[0]
            self.store.update_account_status(
                account.address,
                AccountStatus.CLOSED,
                reclaim_signature=last.signature,
                reclaimed_at=float(last.timestamp) if last.timestamp else None,
            )
