"""
Data models for a normalized program interface.

These models are the single canonical shape every IDL dialect is normalized
into. Nothing downstream of the parser ever looks at raw JSON again.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


DISCRIMINATOR_SIZE = 8

# Resolved when neither the top-level key nor the metadata object has a value
DEFAULT_NAME = "unknown"
DEFAULT_VERSION = "0.0.0"


# ---------------------------------------------------------------------------
# Abstract types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Scalar:
    """A primitive type such as ``u64`` or ``publicKey``."""
    name: str


@dataclass(frozen=True)
class ListOf:
    """A dynamic, length-prefixed list."""
    inner: "AbstractType"


@dataclass(frozen=True)
class OptionalOf:
    inner: "AbstractType"


@dataclass(frozen=True)
class FixedArray:
    """An array with a statically known length (no length prefix on the wire)."""
    inner: "AbstractType"
    size: int


@dataclass(frozen=True)
class NamedReference:
    """A reference to a user-defined type by name. Not resolved here."""
    name: str


AbstractType = Union[Scalar, ListOf, OptionalOf, FixedArray, NamedReference]


# ---------------------------------------------------------------------------
# Type definitions
# ---------------------------------------------------------------------------


class SerializationStrategy(Enum):
    """How a type's payload is framed on the wire."""
    DEFAULT = "default"
    FIXED_LAYOUT = "fixed-layout"


class PayloadSource(Enum):
    """Where an account or event payload body comes from."""
    INLINE = "inline"  # legacy dialect: body declared on the account/event itself
    BY_NAME = "by-name"  # modern dialect: body is the TypeDef of the same name


@dataclass
class FieldDef:
    """A named, typed field of a record or variant."""
    name: str
    type: AbstractType
    docs: List[str] = field(default_factory=list)


@dataclass
class StructBody:
    """
    A record body.

    Exactly one of ``fields`` (named) or ``tuple_fields`` (positional) is used;
    an empty struct has both empty.
    """
    fields: List[FieldDef] = field(default_factory=list)
    tuple_fields: List[AbstractType] = field(default_factory=list)

    @property
    def is_tuple(self) -> bool:
        return bool(self.tuple_fields)


@dataclass
class EnumVariant:
    name: str
    fields: List[FieldDef] = field(default_factory=list)
    tuple_fields: List[AbstractType] = field(default_factory=list)

    @property
    def is_unit(self) -> bool:
        return not self.fields and not self.tuple_fields


@dataclass
class EnumBody:
    """A sum type body."""
    variants: List[EnumVariant] = field(default_factory=list)


TypeBody = Union[StructBody, EnumBody]


@dataclass
class TypeDef:
    """A named user-defined type."""
    name: str
    body: TypeBody
    docs: List[str] = field(default_factory=list)
    serialization: SerializationStrategy = SerializationStrategy.DEFAULT
    packed: bool = False

    @property
    def is_struct(self) -> bool:
        return isinstance(self.body, StructBody)

    @property
    def is_enum(self) -> bool:
        return isinstance(self.body, EnumBody)


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


@dataclass
class AccountRef:
    """An account passed to an instruction."""
    name: str
    is_signer: bool = False
    is_writable: bool = False
    is_optional: bool = False
    docs: List[str] = field(default_factory=list)


@dataclass
class InstructionArg:
    name: str
    type: AbstractType
    docs: List[str] = field(default_factory=list)


@dataclass
class Instruction:
    """A single instruction in the program."""
    name: str
    accounts: List[AccountRef] = field(default_factory=list)
    args: List[InstructionArg] = field(default_factory=list)
    docs: List[str] = field(default_factory=list)
    discriminator: Optional[bytes] = None  # explicit 8-byte tag, if declared


@dataclass
class AccountDecl:
    """
    An on-chain account type.

    ``payload`` is the inline body for the legacy dialect or the TypeDef of the
    same name for the modern dialect; it is ``None`` when a by-name reference
    has no matching TypeDef.
    """
    name: str
    source: PayloadSource
    payload: Optional[TypeDef] = None
    discriminator: Optional[bytes] = None
    docs: List[str] = field(default_factory=list)


@dataclass
class EventDecl:
    """An event emitted by the program. Same payload rules as ``AccountDecl``."""
    name: str
    source: PayloadSource
    payload: Optional[TypeDef] = None
    discriminator: Optional[bytes] = None


@dataclass
class ErrorDecl:
    code: int
    name: str
    msg: Optional[str] = None

    @property
    def message(self) -> str:
        return self.msg if self.msg else self.name


@dataclass
class ConstantDecl:
    name: str
    type: AbstractType
    value: str


@dataclass
class ProgramMetadata:
    """Informational metadata that does not affect generated code."""
    spec: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ProgramSchema:
    """
    Complete normalized description of a program interface.

    ``address``, ``name`` and ``version`` are resolved once during parsing:
    the top-level value wins, the metadata object is the fallback, and a
    sentinel default applies when both are absent.
    """
    name: str = DEFAULT_NAME
    version: str = DEFAULT_VERSION
    address: Optional[str] = None
    metadata: ProgramMetadata = field(default_factory=ProgramMetadata)

    instructions: List[Instruction] = field(default_factory=list)
    accounts: List[AccountDecl] = field(default_factory=list)
    types: List[TypeDef] = field(default_factory=list)
    errors: List[ErrorDecl] = field(default_factory=list)
    events: List[EventDecl] = field(default_factory=list)
    constants: List[ConstantDecl] = field(default_factory=list)

    def get_type(self, name: str) -> Optional[TypeDef]:
        """Get a user-defined type by name."""
        for ty in self.types:
            if ty.name == name:
                return ty
        return None

    def get_instruction(self, name: str) -> Optional[Instruction]:
        for ix in self.instructions:
            if ix.name == name:
                return ix
        return None

    def get_account(self, name: str) -> Optional[AccountDecl]:
        for acc in self.accounts:
            if acc.name == name:
                return acc
        return None

    def get_event(self, name: str) -> Optional[EventDecl]:
        for ev in self.events:
            if ev.name == name:
                return ev
        return None

    def summary(self) -> str:
        """Return a human-readable summary."""
        lines = [
            f"Program: {self.name} v{self.version}",
            f"Address: {self.address or 'Not specified'}",
            f"Instructions: {len(self.instructions)}",
            f"Accounts: {len(self.accounts)}",
            f"Types: {len(self.types)}",
            f"Errors: {len(self.errors)}",
            f"Events: {len(self.events)}",
        ]
        return "\n".join(lines)


# Address scalar spellings seen across IDL dialects; all map identically
PUBKEY_ALIASES = ("publicKey", "pubkey", "Pubkey")

SCALAR_NAMES = frozenset(
    [
        "bool",
        "u8", "i8", "u16", "i16", "u32", "i32", "u64", "i64", "u128", "i128",
        "f32", "f64",
        "string",
        "bytes",
        *PUBKEY_ALIASES,
    ]
)
