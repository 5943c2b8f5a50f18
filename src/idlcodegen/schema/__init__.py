"""
Schema module: the canonical in-memory model of a program interface and the
dialect normalizer that produces it.
"""

from .models import (
    DISCRIMINATOR_SIZE,
    PUBKEY_ALIASES,
    SCALAR_NAMES,
    AbstractType,
    AccountDecl,
    AccountRef,
    ConstantDecl,
    EnumBody,
    EnumVariant,
    ErrorDecl,
    EventDecl,
    FieldDef,
    FixedArray,
    Instruction,
    InstructionArg,
    ListOf,
    NamedReference,
    OptionalOf,
    PayloadSource,
    ProgramMetadata,
    ProgramSchema,
    Scalar,
    SerializationStrategy,
    StructBody,
    TypeDef,
)
from .idl_parser import IDLParser, normalize, parse_discriminator, parse_file

__all__ = [
    "DISCRIMINATOR_SIZE",
    "PUBKEY_ALIASES",
    "SCALAR_NAMES",
    "AbstractType",
    "AccountDecl",
    "AccountRef",
    "ConstantDecl",
    "EnumBody",
    "EnumVariant",
    "ErrorDecl",
    "EventDecl",
    "FieldDef",
    "FixedArray",
    "Instruction",
    "InstructionArg",
    "ListOf",
    "NamedReference",
    "OptionalOf",
    "PayloadSource",
    "ProgramMetadata",
    "ProgramSchema",
    "Scalar",
    "SerializationStrategy",
    "StructBody",
    "TypeDef",
    "IDLParser",
    "normalize",
    "parse_discriminator",
    "parse_file",
]
