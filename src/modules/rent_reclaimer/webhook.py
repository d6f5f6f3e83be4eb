"""
Inbound Event Ingestion
=======================
Push-based discovery from Helius enhanced-transaction webhooks.

Payloads go through the same extraction, verification and persistence
path as the history crawl. The HTTP listener itself lives elsewhere.
"""

from typing import Any, Dict, Iterable, List, Optional

from src.modules.rent_reclaimer.config import RentReclaimerConfig
from src.modules.rent_reclaimer.discoverer import Discoverer
from src.modules.rent_reclaimer.store import RentStore
from src.shared.infrastructure.helius_client import parse_enhanced_transaction
from src.shared.models.ledger import LedgerTransaction
from src.shared.system.logging import Logger


class InvalidPayloadError(ValueError):
    """Webhook body is not a list of transactions."""


def parse_payload(raw_transactions: Any) -> List[LedgerTransaction]:
    if not isinstance(raw_transactions, list):
        raise InvalidPayloadError("webhook payload must be a list of transactions")

    parsed: List[LedgerTransaction] = []
    for raw in raw_transactions:
        if not isinstance(raw, dict) or not raw.get("signature"):
            Logger.debug("[WEBHOOK] Skipping malformed transaction entry")
            continue
        try:
            parsed.append(parse_enhanced_transaction(raw))
        except (KeyError, TypeError, ValueError) as e:
            Logger.debug(f"[WEBHOOK] Skipping unparseable transaction {raw.get('signature')}: {e}")
    return parsed


async def handle_external_event(
    raw_transactions: Any,
    operators: Iterable[str],
    ledger,
    store: RentStore,
    config: Optional[RentReclaimerConfig] = None,
) -> Dict[str, int]:
    """
    Ingest a webhook delivery for a set of operators.

    Returns candidates stored per operator. Raises InvalidPayloadError for a
    body that is not a list, so the listener can answer 400.
    """
    transactions = parse_payload(raw_transactions)
    Logger.info(f"🪝 [WEBHOOK] Received {len(transactions)} transactions")

    stored: Dict[str, int] = {}
    for operator in operators:
        relevant = [tx for tx in transactions if tx.fee_payer == operator]
        if not relevant:
            continue
        discoverer = Discoverer(operator, ledger, store, config)
        stored[operator] = await discoverer.ingest_transactions(relevant, source="webhook")
        if stored[operator]:
            Logger.success(f"[WEBHOOK] {stored[operator]} sponsored accounts discovered for {operator[:8]}...")
    return stored
