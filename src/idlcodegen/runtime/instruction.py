"""Helpers shared by generated instruction builders."""

from typing import Optional

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey


class ProgramInstruction:
    """Base class of every generated ``<Name>IxData`` class."""


def optional_account_meta(
    pubkey: Optional[Pubkey],
    program_id: Optional[Pubkey],
    is_signer: bool,
    is_writable: bool,
) -> AccountMeta:
    """
    Account meta for an optional instruction account.

    An omitted optional account is passed as the program id itself, read-only
    and unsigned.
    """
    if pubkey is not None:
        return AccountMeta(pubkey=pubkey, is_signer=is_signer, is_writable=is_writable)
    if program_id is None:
        raise ValueError("program_id is required to fill an omitted optional account")
    return AccountMeta(pubkey=program_id, is_signer=False, is_writable=False)
