"""
Override Resolver - corrections to an IDL without editing the IDL itself.

An override file can correct a program address that is missing or wrong
and replace account, event and instruction discriminators:

    {
      "program_address": "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",
      "accounts": {"PoolState": {"discriminator": [1, 2, 3, 4, 5, 6, 7, 8]}},
      "instructions": {"swap": {"discriminator": [9, 9, 9, 9, 9, 9, 9, 9]}}
    }

Resolution is three pure steps: ``discover`` -> ``validate`` -> ``apply``.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from solders.pubkey import Pubkey

from .exceptions import (
    AllZeroDiscriminator,
    EmptyOverrideDocument,
    InvalidProgramAddress,
    OverrideDiscoveryConflict,
    OverrideLoadError,
    SchemaParseError,
    SystemDefaultAddress,
    UnknownOverrideEntity,
)
from .schema.idl_parser import parse_discriminator
from .schema.models import DISCRIMINATOR_SIZE, ProgramSchema

logger = logging.getLogger(__name__)

SOURCE_EXPLICIT = "explicit --override-file"
SOURCE_CONVENTION = "convention-based discovery"
SOURCE_GLOBAL = "global fallback"

OVERRIDES_DIR = "overrides"
GLOBAL_OVERRIDE_FILE = "idl-overrides.json"

SECTIONS = ("accounts", "events", "instructions")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


@dataclass
class OverrideDocument:
    """A parsed override file. Section maps are keyed by entity name."""
    program_address: Optional[str] = None
    accounts: Dict[str, bytes] = field(default_factory=dict)
    events: Dict[str, bytes] = field(default_factory=dict)
    instructions: Dict[str, bytes] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return (
            self.program_address is None
            and not self.accounts
            and not self.events
            and not self.instructions
        )


class OverrideKind(Enum):
    PROGRAM_ADDRESS = "program address"
    ACCOUNT_DISCRIMINATOR = "account discriminator"
    EVENT_DISCRIMINATOR = "event discriminator"
    INSTRUCTION_DISCRIMINATOR = "instruction discriminator"


def format_value(value: Optional[Union[str, bytes]]) -> str:
    if value is None:
        return "(none)"
    if isinstance(value, bytes):
        return str(list(value))
    return value


@dataclass
class AppliedOverride:
    """
    Audit record of one applied correction.

    ``entity_name`` is ``None`` for the address override; ``original_value`` is
    ``None`` when the schema had no value before.
    """
    kind: OverrideKind
    entity_name: Optional[str]
    original_value: Optional[Union[str, bytes]]
    new_value: Union[str, bytes]

    def describe(self) -> str:
        target = self.kind.value if self.entity_name is None else f"{self.kind.value} of {self.entity_name}"
        return f"{target}: {format_value(self.original_value)} -> {format_value(self.new_value)}"


@dataclass
class Found:
    path: Path
    source: str


@dataclass
class NotFound:
    pass


@dataclass
class Conflict:
    candidates: List[Tuple[Path, str]]


DiscoveryResult = Union[Found, NotFound, Conflict]


# ---------------------------------------------------------------------------
# Discovery and loading
# ---------------------------------------------------------------------------


def candidate_paths(schema_name: str, root: Optional[Path] = None) -> List[Tuple[Path, str]]:
    """Conventional override locations for a schema, in precedence order."""
    base = Path(root) if root is not None else Path.cwd()
    return [
        (base / OVERRIDES_DIR / f"{schema_name}.json", SOURCE_CONVENTION),
        (base / GLOBAL_OVERRIDE_FILE, SOURCE_GLOBAL),
    ]


def discover(
    schema_name: str,
    explicit_path: Optional[Union[str, Path]] = None,
    root: Optional[Path] = None,
) -> DiscoveryResult:
    """
    Find the override file for ``schema_name``.

    An existing explicit path wins outright. Otherwise the conventional and
    global locations are checked; finding more than one is a conflict.
    """
    if explicit_path is not None:
        explicit = Path(explicit_path)
        if explicit.is_file():
            return Found(explicit, SOURCE_EXPLICIT)
        logger.warning("Override file %s does not exist; searching default locations", explicit)

    found = [(path, source) for path, source in candidate_paths(schema_name, root) if path.is_file()]
    if not found:
        return NotFound()
    if len(found) > 1:
        return Conflict(found)
    path, source = found[0]
    return Found(path, source)


def parse_override_document(raw: Any) -> OverrideDocument:
    """Build an ``OverrideDocument`` from decoded JSON."""
    if not isinstance(raw, dict):
        raise OverrideLoadError("override file must contain a JSON object")

    address = raw.get("program_address")
    if address is not None and not isinstance(address, str):
        raise OverrideLoadError("program_address must be a string")

    doc = OverrideDocument(program_address=address)
    for section in SECTIONS:
        entries = raw.get(section)
        if entries is None:
            continue
        if not isinstance(entries, dict):
            raise OverrideLoadError(f"{section} must be an object mapping names to overrides")
        parsed: Dict[str, bytes] = {}
        for name, entry in entries.items():
            path = f"{section}.{name}.discriminator"
            if not isinstance(entry, dict) or "discriminator" not in entry:
                raise OverrideLoadError(f"{section}.{name}: expected an object with a 'discriminator'")
            try:
                parsed[name] = parse_discriminator(entry["discriminator"], path)
            except SchemaParseError as e:
                raise OverrideLoadError(str(e)) from e
        setattr(doc, section, parsed)

    unknown = set(raw) - set(SECTIONS) - {"program_address"}
    if unknown:
        logger.debug("Ignoring unknown override keys: %s", ", ".join(sorted(unknown)))
    return doc


def load_override_document(path: Union[str, Path]) -> OverrideDocument:
    path = Path(path)
    try:
        with open(path) as f:
            raw = json.load(f)
    except OSError as e:
        raise OverrideLoadError(f"Failed to read override file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise OverrideLoadError(f"Failed to parse override file JSON {path}: {e}") from e
    return parse_override_document(raw)


# ---------------------------------------------------------------------------
# Validation and application
# ---------------------------------------------------------------------------


def _validate_address(address: str) -> None:
    try:
        pubkey = Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidProgramAddress(address) from e
    if pubkey == Pubkey.default():
        raise SystemDefaultAddress(address)


def _entity_names(schema: ProgramSchema, section: str) -> List[str]:
    return [decl.name for decl in getattr(schema, section)]


def validate(doc: OverrideDocument, schema: ProgramSchema) -> None:
    """
    Raise the matching ``OverrideValidationError`` subclass for the first
    rule ``doc`` breaks. Rules, in order: the document is not empty; the
    address is a valid, non-default pubkey; no discriminator is all zeros;
    every entity name exists in the schema.
    """
    if doc.is_empty:
        raise EmptyOverrideDocument()

    if doc.program_address is not None:
        _validate_address(doc.program_address)

    zero = bytes(DISCRIMINATOR_SIZE)
    for section in SECTIONS:
        for name, tag in getattr(doc, section).items():
            if tag == zero:
                raise AllZeroDiscriminator(section[:-1], name)

    for section in SECTIONS:
        available = _entity_names(schema, section)
        for name in getattr(doc, section):
            if name not in available:
                raise UnknownOverrideEntity(section[:-1], name, available)


_SECTION_KINDS = {
    "accounts": OverrideKind.ACCOUNT_DISCRIMINATOR,
    "events": OverrideKind.EVENT_DISCRIMINATOR,
    "instructions": OverrideKind.INSTRUCTION_DISCRIMINATOR,
}


def apply(schema: ProgramSchema, doc: OverrideDocument) -> Tuple[ProgramSchema, List[AppliedOverride]]:
    """
    Apply a validated document to a copy of ``schema``.

    The input schema is left untouched. Returns the patched copy and one
    audit record per replaced value.
    """
    patched = copy.deepcopy(schema)
    applied: List[AppliedOverride] = []

    if doc.program_address is not None:
        applied.append(
            AppliedOverride(OverrideKind.PROGRAM_ADDRESS, None, patched.address, doc.program_address)
        )
        patched.address = doc.program_address

    for section in SECTIONS:
        overrides = getattr(doc, section)
        for decl in getattr(patched, section):
            if decl.name in overrides:
                new_tag = overrides[decl.name]
                applied.append(
                    AppliedOverride(_SECTION_KINDS[section], decl.name, decl.discriminator, new_tag)
                )
                decl.discriminator = new_tag

    return patched, applied


def resolve_overrides(
    schema: ProgramSchema,
    explicit_path: Optional[Union[str, Path]] = None,
    root: Optional[Path] = None,
) -> Tuple[ProgramSchema, List[AppliedOverride]]:
    """Discover, load, validate and apply the override file for ``schema``."""
    result = discover(schema.name, explicit_path, root)
    if isinstance(result, Conflict):
        raise OverrideDiscoveryConflict(result.candidates)
    if isinstance(result, NotFound):
        logger.debug("No override file for %s", schema.name)
        return schema, []

    logger.info("Using override file %s (%s)", result.path, result.source)
    doc = load_override_document(result.path)
    validate(doc, schema)
    patched, applied = apply(schema, doc)
    for record in applied:
        logger.info("Applied override: %s", record.describe())
    return patched, applied
