"""
Program IDs and well-known addresses used by candidate extraction.
"""

from spl.token.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID as _ATA,
    TOKEN_2022_PROGRAM_ID as _TOKEN_2022,
    TOKEN_PROGRAM_ID as _TOKEN,
)

from src.shared.models.sponsored_account import ResourceKind

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = str(_TOKEN)
TOKEN_2022_PROGRAM_ID = str(_TOKEN_2022)
ASSOCIATED_TOKEN_PROGRAM_ID = str(_ATA)
COMPUTE_BUDGET_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"
SYSVAR_RENT_ID = "SysvarRent111111111111111111111111111111111"
SYSVAR_CLOCK_ID = "SysvarC1ock11111111111111111111111111111111"

# Never a sponsored account, never a presumed owner
INFRASTRUCTURE_ADDRESSES = frozenset({
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    ASSOCIATED_TOKEN_PROGRAM_ID,
    COMPUTE_BUDGET_PROGRAM_ID,
    SYSVAR_RENT_ID,
    SYSVAR_CLOCK_ID,
})

KIND_BY_PROGRAM = {
    TOKEN_PROGRAM_ID: ResourceKind.TOKEN,
    TOKEN_2022_PROGRAM_ID: ResourceKind.TOKEN_2022,
}

PROGRAM_BY_KIND = {kind: program for program, kind in KIND_BY_PROGRAM.items()}

# Account sizes used for the rent-exempt deposit of each kind
TOKEN_ACCOUNT_SIZE = 165
TOKEN_2022_ACCOUNT_SIZE = 170  # Base layout + account type + ImmutableOwner extension

ACCOUNT_SIZE_BY_KIND = {
    ResourceKind.TOKEN: TOKEN_ACCOUNT_SIZE,
    ResourceKind.TOKEN_2022: TOKEN_2022_ACCOUNT_SIZE,
}

LAMPORTS_PER_SOL = 1_000_000_000
