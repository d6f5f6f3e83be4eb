"""
Treasury Sweep Unit Tests
=========================
"""

from unittest.mock import AsyncMock

import pytest

from src.modules.rent_reclaimer.constants import SYSTEM_PROGRAM_ID
from tests.mocks.mock_ledger import new_address


class TestTreasurySweeper:
    """Only the surplus above the reserve ever leaves the operator."""

    @pytest.mark.asyncio
    async def test_surplus_is_transferred(self, ledger, operator_keypair, operator):
        from src.modules.rent_reclaimer.treasury import TreasurySweeper

        ledger.balances[operator] = 150_000_000
        sweeper = TreasurySweeper(ledger, operator_keypair, new_address(), reserve_lamports=50_000_000)

        signature = await sweeper.sweep()

        assert signature == "mock-sig-1"
        [[ix]] = ledger.submissions
        assert str(ix.program_id) == SYSTEM_PROGRAM_ID

    @pytest.mark.asyncio
    async def test_balance_within_reserve_is_left_alone(self, ledger, operator_keypair, operator):
        from src.modules.rent_reclaimer.treasury import TreasurySweeper

        ledger.balances[operator] = 40_000_000
        sweeper = TreasurySweeper(ledger, operator_keypair, new_address(), reserve_lamports=50_000_000)

        assert await sweeper.sweep() is None
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_no_destination_configured(self, ledger, operator_keypair):
        from src.modules.rent_reclaimer.treasury import TreasurySweeper

        assert await TreasurySweeper(ledger, operator_keypair, None, 0).sweep() is None

    @pytest.mark.asyncio
    async def test_submission_failure_is_not_fatal(self, ledger, operator_keypair, operator):
        from src.modules.rent_reclaimer.treasury import TreasurySweeper
        from src.shared.infrastructure.ledger_client import SubmissionError

        ledger.balances[operator] = 150_000_000
        ledger.submit_mutation = AsyncMock(side_effect=SubmissionError("blockhash expired"))
        sweeper = TreasurySweeper(ledger, operator_keypair, new_address(), reserve_lamports=50_000_000)

        assert await sweeper.sweep() is None

    def test_transfer_instruction_amount(self, operator_keypair):
        from solders.pubkey import Pubkey
        from solders.system_program import decode_transfer

        from src.modules.rent_reclaimer.treasury import build_transfer_ix

        destination = Pubkey.new_unique()
        ix = build_transfer_ix(operator_keypair.pubkey(), destination, 1_234)

        params = decode_transfer(ix)
        assert params["lamports"] == 1_234
        assert params["to_pubkey"] == destination
