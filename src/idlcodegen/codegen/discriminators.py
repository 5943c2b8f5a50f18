"""
Discriminator resolution.

Explicit tags come from the schema (after overrides are applied). Instructions
without one fall back to their zero-based declaration position, encoded as a
little-endian u64. Accounts and events without one have no framing.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from ..schema.models import DISCRIMINATOR_SIZE, ProgramSchema

logger = logging.getLogger(__name__)


def derive_instruction_discriminator(position: int) -> bytes:
    return position.to_bytes(DISCRIMINATOR_SIZE, "little")


@dataclass(frozen=True)
class DiscriminatorTable:
    """Read-only view of every resolved tag, built once per schema."""

    instructions: Mapping[str, bytes]
    accounts: Mapping[str, bytes]
    events: Mapping[str, bytes]

    def instruction(self, name: str) -> bytes:
        return self.instructions[name]

    def account(self, name: str) -> Optional[bytes]:
        return self.accounts.get(name)

    def event(self, name: str) -> Optional[bytes]:
        return self.events.get(name)


def _claim(kind: str, table: Dict[str, bytes], name: str, tag: bytes) -> None:
    if name in table:
        logger.warning("%s %s is declared more than once; keeping the first declaration", kind, name)
        return
    table[name] = tag


def build_discriminator_table(schema: ProgramSchema) -> DiscriminatorTable:
    instructions: Dict[str, bytes] = {}
    for position, ix in enumerate(schema.instructions):
        tag = ix.discriminator
        if tag is None:
            tag = derive_instruction_discriminator(position)
        _claim("instruction", instructions, ix.name, tag)

    accounts: Dict[str, bytes] = {}
    for account in schema.accounts:
        if account.discriminator is not None:
            _claim("account", accounts, account.name, account.discriminator)
    events: Dict[str, bytes] = {}
    for event in schema.events:
        if event.discriminator is not None:
            _claim("event", events, event.name, event.discriminator)

    return DiscriminatorTable(
        instructions=MappingProxyType(instructions),
        accounts=MappingProxyType(accounts),
        events=MappingProxyType(events),
    )


def first_unique(kind: str, entries: List[Tuple[str, bytes]]) -> List[Tuple[str, bytes]]:
    """
    Drop entries whose tag was already claimed by an earlier declaration.

    A dispatcher can only route one prefix to one decoder; the first
    declaration wins.
    """
    seen: Dict[bytes, str] = {}
    kept = []
    for name, tag in entries:
        if tag in seen:
            logger.warning(
                "%s %s shares discriminator %s with %s; dispatch keeps %s",
                kind, name, list(tag), seen[tag], seen[tag],
            )
            continue
        seen[tag] = name
        kept.append((name, tag))
    return kept
