"""
SPL Token Account Layout
========================
Decoder for the 165-byte base token account shared by Token and Token-2022.
Token-2022 extensions live after the base layout and are ignored here.
"""

import struct
from dataclasses import dataclass
from typing import Optional

from solders.pubkey import Pubkey

# mint, owner, amount, delegate(COption), state, is_native(COption<u64>),
# delegated_amount, close_authority(COption)
_LAYOUT = struct.Struct("<32s32sQI32sBIQQI32s")
TOKEN_ACCOUNT_LEN = _LAYOUT.size  # 165

STATE_UNINITIALIZED = 0
STATE_INITIALIZED = 1
STATE_FROZEN = 2


@dataclass
class TokenAccount:
    mint: str
    owner: str
    amount: int
    delegate: Optional[str]
    state: int
    is_native: Optional[int]
    delegated_amount: int
    close_authority: Optional[str]

    @property
    def closing_authority(self) -> str:
        """Close authority if set, otherwise the owner."""
        return self.close_authority or self.owner

    @property
    def is_frozen(self) -> bool:
        return self.state == STATE_FROZEN


def decode_token_account(data: bytes) -> Optional[TokenAccount]:
    """Decode account data. Returns None if it is not an initialized token account."""
    if len(data) < TOKEN_ACCOUNT_LEN:
        return None

    (mint, owner, amount, delegate_tag, delegate, state, native_tag, native,
     delegated_amount, close_tag, close_authority) = _LAYOUT.unpack_from(data)

    if state == STATE_UNINITIALIZED:
        return None

    return TokenAccount(
        mint=str(Pubkey(mint)),
        owner=str(Pubkey(owner)),
        amount=amount,
        delegate=str(Pubkey(delegate)) if delegate_tag else None,
        state=state,
        is_native=native if native_tag else None,
        delegated_amount=delegated_amount,
        close_authority=str(Pubkey(close_authority)) if close_tag else None,
    )


def encode_token_account(account: TokenAccount) -> bytes:
    """Inverse of decode_token_account (base layout only)."""

    def key(value: Optional[str]) -> bytes:
        return bytes(Pubkey.from_string(value)) if value else bytes(32)

    return _LAYOUT.pack(
        key(account.mint),
        key(account.owner),
        account.amount,
        1 if account.delegate else 0,
        key(account.delegate),
        account.state,
        1 if account.is_native is not None else 0,
        account.is_native or 0,
        account.delegated_amount,
        1 if account.close_authority else 0,
        key(account.close_authority),
    )
