"""
Rent Reclaimer Service
======================
Polling loop: for each operator, scan (wait for sync, force verify), then
reclaim eligible accounts and sweep surplus to the treasury.

A failure for one operator is logged and never stops the others.
"""

import asyncio
from typing import Any, Dict, List, Optional

from solders.keypair import Keypair

from config.settings import Settings
from src.modules.rent_reclaimer.config import RentReclaimerConfig, load_operator_keypair
from src.modules.rent_reclaimer.discoverer import Discoverer
from src.modules.rent_reclaimer.reclaimer import Reclaimer
from src.modules.rent_reclaimer.registry import InFlightRegistry, get_default_registry
from src.modules.rent_reclaimer.store import RentStore
from src.modules.rent_reclaimer.treasury import TreasurySweeper
from src.shared.infrastructure.ledger_client import create_ledger_client
from src.shared.notification.reclaim_notifier import ReclaimNotifier
from src.shared.system.logging import Logger


class RentReclaimerService:
    """
    Runs discovery and reclaim for every configured operator.

    Each operator gets its own Discoverer, Reclaimer and TreasurySweeper,
    built per cycle over the shared ledger client and store.
    """

    def __init__(
        self,
        ledger,
        store: RentStore,
        operators: List[Keypair],
        config: Optional[RentReclaimerConfig] = None,
        notifier: Optional[ReclaimNotifier] = None,
        registry: Optional[InFlightRegistry] = None,
        claim: bool = True,
    ):
        self.ledger = ledger
        self.store = store
        self.operators = operators
        self.config = config or RentReclaimerConfig()
        self.notifier = notifier
        self.registry = registry or get_default_registry()
        self.claim = claim
        self.cycles = 0

    @classmethod
    def from_settings(cls, claim: bool = True) -> "RentReclaimerService":
        """Wire the service from environment. ConfigurationError propagates."""
        keypair = load_operator_keypair(Settings.OPERATOR_KEYPAIR_PATH)
        return cls(
            ledger=create_ledger_client(),
            store=RentStore(Settings.RENT_DB_PATH, Settings.WHITELIST_PATH),
            operators=[keypair],
            config=RentReclaimerConfig.from_settings(),
            notifier=ReclaimNotifier.from_settings(),
            claim=claim,
        )

    async def run_operator(self, keypair: Keypair) -> Dict[str, Any]:
        operator = str(keypair.pubkey())
        discoverer = Discoverer(operator, self.ledger, self.store, self.config, self.registry)
        scan = await discoverer.scan(wait_for_sync=True, force_verify=True)
        report: Dict[str, Any] = {"stats": scan.stats, "reclaim": None, "sweep": None}

        if not self.claim:
            return report

        reclaimer = Reclaimer(self.ledger, self.store, keypair, self.config, notifier=self.notifier)
        report["reclaim"] = await reclaimer.reclaim_eligible()

        if self.config.TREASURY_ADDRESS and not self.config.DRY_RUN:
            sweeper = TreasurySweeper(
                self.ledger, keypair, self.config.TREASURY_ADDRESS, self.config.TREASURY_RESERVE_LAMPORTS
            )
            report["sweep"] = await sweeper.sweep()
        return report

    async def run_cycle(self) -> Dict[str, Dict[str, Any]]:
        """One pass over every operator. Returns per-operator reports (errors included)."""
        self.cycles += 1
        Logger.section(f"Reclaim Cycle #{self.cycles}")
        reports: Dict[str, Dict[str, Any]] = {}
        for keypair in self.operators:
            operator = str(keypair.pubkey())
            try:
                reports[operator] = await self.run_operator(keypair)
            except Exception as e:
                # Operator boundary: one bad operator must not stop the cycle
                Logger.error(f"❌ [SERVICE] Operator {operator[:8]}... failed: {e}")
                reports[operator] = {"error": str(e)}
        return reports

    async def run_forever(self, interval_seconds: Optional[float] = None) -> None:
        interval = interval_seconds or Settings.MONITOR_INTERVAL_HOURS * 3600
        Logger.info(f"[SERVICE] Monitoring {len(self.operators)} operators every {interval / 3600:.2f}h")
        try:
            while True:
                await self.run_cycle()
                Logger.info(f"[SERVICE] Next cycle in {interval / 60:.0f} minutes")
                await asyncio.sleep(interval)
        finally:
            await self.close()

    async def close(self) -> None:
        if self.notifier:
            await self.notifier.drain()
        await self.ledger.close()
