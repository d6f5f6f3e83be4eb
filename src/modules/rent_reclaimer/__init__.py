"""
Rent Reclaimer Module
=====================
Discovers, verifies and reclaims rent deposits locked in token accounts
an operator sponsored for its users.

Components:
- classifier.py: candidate extraction from operator transactions
- verifier.py: on-chain status classification
- discoverer.py: resumable bidirectional history crawl with checkpoints
- reclaimer.py: safety-gated batched account closing
- treasury.py: surplus sweep after reclaim runs
- webhook.py: push-based discovery from Helius webhooks
- service.py: polling loop over all operators
- config.py: configuration and operator keypair loading
"""

from src.modules.rent_reclaimer.config import ConfigurationError, RentReclaimerConfig
from src.modules.rent_reclaimer.discoverer import Discoverer, ScanResult
from src.modules.rent_reclaimer.reclaimer import Reclaimer, ReclaimSummary
from src.modules.rent_reclaimer.verifier import Verifier, VerifiedResult

__all__ = [
    'ConfigurationError',
    'RentReclaimerConfig',
    'Discoverer',
    'ScanResult',
    'Reclaimer',
    'ReclaimSummary',
    'Verifier',
    'VerifiedResult',
]
