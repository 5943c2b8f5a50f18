"""
Support library imported by generated bindings.

Generated modules only depend on this package and ``solders``.
"""

from .borsh import (
    DISCRIMINATOR_SIZE,
    BorshEnum,
    BorshReader,
    BorshWriter,
    dispatch,
)
from .errors import (
    DecodeError,
    DiscriminatorMismatch,
    PayloadMalformed,
    PayloadTooShort,
    UnknownDiscriminator,
)
from . import fixed
from .fixed import FixedLayout, ZeroCopy, align_up
from .instruction import ProgramInstruction, optional_account_meta

__all__ = [
    "DISCRIMINATOR_SIZE",
    "BorshEnum",
    "BorshReader",
    "BorshWriter",
    "dispatch",
    "DecodeError",
    "DiscriminatorMismatch",
    "PayloadMalformed",
    "PayloadTooShort",
    "UnknownDiscriminator",
    "fixed",
    "FixedLayout",
    "ZeroCopy",
    "align_up",
    "ProgramInstruction",
    "optional_account_meta",
]
