"""
Reclaim Engine Unit Tests
=========================
Safety gates (whitelist, cool-down, double-tap, circuit breaker, dry run),
batching and single-account fallback.
"""

import time
from unittest.mock import MagicMock

import pytest

from src.modules.rent_reclaimer.constants import COMPUTE_BUDGET_PROGRAM_ID
from src.shared.models.sponsored_account import AccountStatus, ResourceKind, SponsoredAccount
from tests.mocks.mock_ledger import TOKEN_RENT, new_address, token_account_state


def seed_reclaimable(store, ledger, operator, count=1, reclaimable_since=None):
    """Reclaimable accounts present both in the store and on the ledger."""
    addresses = []
    now = time.time()
    for _ in range(count):
        address, user = new_address(), new_address()
        ledger.set_account(token_account_state(address, owner=user, close_authority=operator))
        store.upsert_accounts([SponsoredAccount(
            address=address,
            operator=operator,
            user_wallet=user,
            kind=ResourceKind.TOKEN,
            rent_paid=TOKEN_RENT,
            lamports=TOKEN_RENT,
            status=AccountStatus.RECLAIMABLE,
            last_verified_at=now,
            reclaimable_since=reclaimable_since,
        )])
        addresses.append(address)
    return addresses


@pytest.fixture
def reclaimer(ledger, store, operator_keypair, config):
    from src.modules.rent_reclaimer.reclaimer import Reclaimer

    return Reclaimer(ledger, store, operator_keypair, config)


class TestReclaimLifecycle:
    """Discovery through reclaim for one sponsored account."""

    @pytest.mark.asyncio
    async def test_discover_then_reclaim(self, ledger, store, operator, operator_keypair, config, registry, sponsored):
        from src.modules.rent_reclaimer.discoverer import Discoverer
        from src.modules.rent_reclaimer.reclaimer import Reclaimer

        account = sponsored[0]
        scan = await Discoverer(operator, ledger, store, config, registry).scan(wait_for_sync=True)
        assert scan.stats["reclaimable_accounts"] == 1

        summary = await Reclaimer(ledger, store, operator_keypair, config).reclaim_accounts([account])

        assert summary.success == 1
        assert summary.failed == 0
        assert summary.lamports == TOKEN_RENT
        assert summary.sol == TOKEN_RENT / 1e9
        stored = store.get_account(account)
        assert stored.status == AccountStatus.RECLAIMED
        assert stored.reclaim_signature == summary.signatures[0]
        assert stored.reclaimed_amount == TOKEN_RENT
        assert stored.reclaimed_at is not None
        assert ledger.closed_accounts == [account]

    @pytest.mark.asyncio
    async def test_priority_fee_leads_every_transaction(self, reclaimer, store, ledger, operator):
        seed_reclaimable(store, ledger, operator)

        await reclaimer.reclaim_eligible()

        [instructions] = ledger.submissions
        assert str(instructions[0].program_id) == COMPUTE_BUDGET_PROGRAM_ID

    @pytest.mark.asyncio
    async def test_batches_run_in_configured_size(self, reclaimer, store, ledger, operator):
        seed_reclaimable(store, ledger, operator, count=20)

        summary = await reclaimer.reclaim_eligible()

        assert [len(batch) for batch in ledger.closed_batches] == [15, 5]
        assert summary.success == 20
        assert len(summary.signatures) == 2

    @pytest.mark.asyncio
    async def test_notifier_gets_one_event_per_transaction(self, ledger, store, operator_keypair, operator, config):
        from src.modules.rent_reclaimer.reclaimer import Reclaimer

        notifier = MagicMock()
        seed_reclaimable(store, ledger, operator, count=2)

        await Reclaimer(ledger, store, operator_keypair, config, notifier=notifier).reclaim_eligible()

        notifier.notify.assert_called_once()
        event = notifier.notify.call_args[0][0]
        assert event.account_count == 2
        assert event.amount_lamports == 2 * TOKEN_RENT
        assert event.operator == operator


class TestDoubleTap:
    """State is re-read right before any mutation."""

    @pytest.mark.asyncio
    async def test_refilled_account_is_revived(self, reclaimer, store, ledger, operator):
        [address] = seed_reclaimable(store, ledger, operator)
        ledger.set_account(token_account_state(address, owner=new_address(), amount=5, close_authority=operator))

        summary = await reclaimer.reclaim_accounts([address])

        assert summary.revived == 1
        assert summary.success == 0
        assert ledger.submissions == []
        stored = store.get_account(address)
        assert stored.status == AccountStatus.ACTIVE
        assert stored.reclaimable_since is None

    @pytest.mark.asyncio
    async def test_account_closed_elsewhere_is_skipped(self, reclaimer, store, ledger, operator):
        [address] = seed_reclaimable(store, ledger, operator)
        ledger.remove_account(address)

        summary = await reclaimer.reclaim_accounts([address])

        assert summary.skipped == 1
        assert ledger.submissions == []
        assert store.get_account(address).status == AccountStatus.CLOSED

    @pytest.mark.asyncio
    async def test_verification_outage_executes_nothing(self, reclaimer, store, ledger, operator):
        addresses = seed_reclaimable(store, ledger, operator, count=3)
        ledger.fail_account_reads = True

        summary = await reclaimer.reclaim_accounts(addresses)

        assert summary.failed == 3
        assert ledger.submissions == []
        assert all(store.get_account(a).status == AccountStatus.RECLAIMABLE for a in addresses)


class TestCircuitBreaker:
    """A batch worth more than the ceiling is never submitted."""

    @pytest.mark.asyncio
    async def test_oversized_batch_aborts_whole(self, ledger, store, operator_keypair, operator):
        from src.modules.rent_reclaimer.config import RentReclaimerConfig
        from src.modules.rent_reclaimer.reclaimer import Reclaimer

        config = RentReclaimerConfig(PAGE_DELAY_SECONDS=0, DRY_RUN=False, MAX_BATCH_RECLAIM_LAMPORTS=2 * TOKEN_RENT)
        addresses = seed_reclaimable(store, ledger, operator, count=3)

        summary = await Reclaimer(ledger, store, operator_keypair, config).reclaim_accounts(addresses)

        assert ledger.submissions == []
        assert summary.failed == 3
        assert summary.success == 0
        for address in addresses:
            stored = store.get_account(address)
            assert stored.status == AccountStatus.ERROR
            assert "Circuit breaker" in stored.error_message

    @pytest.mark.asyncio
    async def test_tripped_accounts_stay_out_of_retry(self, ledger, store, operator_keypair, operator, registry):
        """The next scan does not quietly bring a tripped batch back to reclaimable."""
        from src.modules.rent_reclaimer.config import RentReclaimerConfig
        from src.modules.rent_reclaimer.discoverer import Discoverer
        from src.modules.rent_reclaimer.reclaimer import Reclaimer

        config = RentReclaimerConfig(PAGE_DELAY_SECONDS=0, DRY_RUN=False, MAX_BATCH_RECLAIM_LAMPORTS=TOKEN_RENT)
        addresses = seed_reclaimable(store, ledger, operator, count=2)
        await Reclaimer(ledger, store, operator_keypair, config).reclaim_accounts(addresses)

        await Discoverer(operator, ledger, store, config, registry).scan(wait_for_sync=True, force_verify=True)

        for address in addresses:
            stored = store.get_account(address)
            assert stored.status == AccountStatus.ERROR
            assert stored.error_message.startswith("Circuit breaker")

    @pytest.mark.asyncio
    async def test_batch_at_ceiling_goes_through(self, ledger, store, operator_keypair, operator):
        from src.modules.rent_reclaimer.config import RentReclaimerConfig
        from src.modules.rent_reclaimer.reclaimer import Reclaimer

        config = RentReclaimerConfig(PAGE_DELAY_SECONDS=0, DRY_RUN=False, MAX_BATCH_RECLAIM_LAMPORTS=2 * TOKEN_RENT)
        addresses = seed_reclaimable(store, ledger, operator, count=2)

        summary = await Reclaimer(ledger, store, operator_keypair, config).reclaim_accounts(addresses)

        assert summary.success == 2


class TestWhitelistAndCooldown:

    @pytest.mark.asyncio
    async def test_whitelisted_account_never_submitted(self, reclaimer, store, ledger, operator):
        protected, other = seed_reclaimable(store, ledger, operator, count=2)
        store.add_to_whitelist(protected)

        summary = await reclaimer.reclaim_eligible()

        assert protected not in ledger.submitted_accounts
        assert ledger.closed_accounts == [other]
        assert summary.success == 1
        assert store.get_account(protected).status == AccountStatus.RECLAIMABLE

    @pytest.mark.asyncio
    async def test_explicit_request_for_whitelisted_account_is_skipped(self, reclaimer, store, ledger, operator):
        [protected] = seed_reclaimable(store, ledger, operator)
        store.add_to_whitelist(protected)

        summary = await reclaimer.reclaim_accounts([protected])

        assert summary.skipped == 1
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_cool_down_holds_recent_accounts(self, ledger, store, operator_keypair, operator):
        from src.modules.rent_reclaimer.config import RentReclaimerConfig
        from src.modules.rent_reclaimer.reclaimer import Reclaimer

        config = RentReclaimerConfig(PAGE_DELAY_SECONDS=0, DRY_RUN=False, RECLAIM_MIN_AGE_SECONDS=3600)
        [fresh] = seed_reclaimable(store, ledger, operator)
        [aged] = seed_reclaimable(store, ledger, operator, reclaimable_since=time.time() - 7200)

        summary = await Reclaimer(ledger, store, operator_keypair, config).reclaim_eligible()

        assert ledger.closed_accounts == [aged]
        assert summary.success == 1
        assert store.get_account(fresh).status == AccountStatus.RECLAIMABLE


class TestFallbackAndDryRun:

    @pytest.mark.asyncio
    async def test_failed_batch_retried_one_by_one(self, reclaimer, store, ledger, operator):
        """One bad account costs only itself."""
        good_a, bad, good_b = seed_reclaimable(store, ledger, operator, count=3)
        ledger.fail_batches = True
        ledger.failing_accounts = {bad}

        summary = await reclaimer.reclaim_accounts([good_a, bad, good_b])

        assert summary.success == 2
        assert summary.failed == 1
        assert len(ledger.submissions) == 4
        assert store.get_account(bad).status == AccountStatus.ERROR
        assert store.get_account(bad).error_message
        assert store.get_account(good_a).status == AccountStatus.RECLAIMED
        assert store.get_account(good_a).reclaim_signature != store.get_account(good_b).reclaim_signature

    @pytest.mark.asyncio
    async def test_failed_close_is_retried_next_cycle(self, reclaimer, ledger, store, operator, config, registry):
        """A close that failed is re-verified by the next scan and reclaimed once it goes through."""
        from src.modules.rent_reclaimer.discoverer import Discoverer

        [address] = seed_reclaimable(store, ledger, operator)
        ledger.failing_accounts = {address}
        summary = await reclaimer.reclaim_eligible()
        assert summary.failed == 1
        assert store.get_account(address).status == AccountStatus.ERROR

        ledger.failing_accounts = set()
        await Discoverer(operator, ledger, store, config, registry).scan(wait_for_sync=True, force_verify=True)
        assert store.get_account(address).status == AccountStatus.RECLAIMABLE
        assert store.get_account(address).error_message is None

        summary = await reclaimer.reclaim_eligible()

        assert summary.success == 1
        assert ledger.closed_accounts == [address]
        stored = store.get_account(address)
        assert stored.status == AccountStatus.RECLAIMED
        assert stored.reclaim_signature

    @pytest.mark.asyncio
    async def test_dry_run_reports_without_side_effects(self, ledger, store, operator_keypair, operator):
        from src.modules.rent_reclaimer.config import RentReclaimerConfig
        from src.modules.rent_reclaimer.reclaimer import Reclaimer

        config = RentReclaimerConfig(PAGE_DELAY_SECONDS=0, DRY_RUN=True)
        addresses = seed_reclaimable(store, ledger, operator, count=3)
        ledger.set_account(token_account_state(addresses[2], owner=new_address(), amount=1, close_authority=operator))

        summary = await Reclaimer(ledger, store, operator_keypair, config).reclaim_accounts(addresses)

        assert summary.dry_run is True
        assert summary.success == 2
        assert summary.skipped == 1
        assert summary.lamports == 2 * TOKEN_RENT
        assert ledger.submissions == []
        assert all(store.get_account(a).status == AccountStatus.RECLAIMABLE for a in addresses)

    @pytest.mark.asyncio
    async def test_nothing_eligible(self, reclaimer, ledger):
        summary = await reclaimer.reclaim_eligible()

        assert summary.success == 0
        assert ledger.submissions == []

    def test_close_instruction_targets_operator(self, reclaimer, operator):
        from src.modules.rent_reclaimer.constants import TOKEN_2022_PROGRAM_ID
        from src.modules.rent_reclaimer.verifier import VerifiedResult

        address = new_address()
        ix = reclaimer.build_close_instruction(VerifiedResult(
            address=address, status=AccountStatus.RECLAIMABLE, kind=ResourceKind.TOKEN_2022,
        ))

        assert str(ix.program_id) == TOKEN_2022_PROGRAM_ID
        assert [str(m.pubkey) for m in ix.accounts] == [address, operator, operator]
