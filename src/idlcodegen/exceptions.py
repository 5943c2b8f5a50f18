"""
Compile-time errors raised by the code generator.

Errors raised by the *generated* bindings live in ``idlcodegen.runtime.errors``.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple


class IdlCodegenError(Exception):
    """Base class for every error the compiler raises."""


class SchemaParseError(IdlCodegenError):
    """The IDL is not valid JSON or matches no supported dialect."""

    def __init__(self, message: str, path: str = "$"):
        self.path = path
        self.reason = message
        super().__init__(f"{path}: {message}")


class OverrideLoadError(IdlCodegenError):
    """An override file could not be read or is structurally malformed."""


class OverrideDiscoveryConflict(IdlCodegenError):
    """More than one override file applies to the same IDL."""

    def __init__(self, candidates: Sequence[Tuple[Path, str]]):
        self.candidates: List[Tuple[Path, str]] = list(candidates)
        listing = "; ".join(f"{path} ({source})" for path, source in self.candidates)
        super().__init__(
            f"Multiple override files found: {listing}. "
            "Remove all but one or pass --override-file explicitly."
        )


class OverrideValidationError(IdlCodegenError):
    """Base class for override document validation failures."""


class EmptyOverrideDocument(OverrideValidationError):
    def __init__(self):
        super().__init__("Empty override file: must contain at least one override")


class InvalidProgramAddress(OverrideValidationError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(
            f"Invalid program address: {address}. Must be a base58-encoded 32-byte pubkey."
        )


class SystemDefaultAddress(OverrideValidationError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(
            f"Invalid program address: {address}. Cannot be the system default pubkey."
        )


class AllZeroDiscriminator(OverrideValidationError):
    def __init__(self, entity_type: str, entity_name: str):
        self.entity_type = entity_type
        self.entity_name = entity_name
        self.discriminator = bytes(8)
        super().__init__(
            f"Invalid discriminator for {entity_type} '{entity_name}': cannot be all zeros"
        )


class UnknownOverrideEntity(OverrideValidationError):
    def __init__(self, entity_type: str, entity_name: str, available: Sequence[str]):
        self.entity_type = entity_type
        self.entity_name = entity_name
        self.available = list(available)
        listing = ", ".join(self.available) if self.available else "(none)"
        super().__init__(
            f"Unknown {entity_type} '{entity_name}' in override file. Available: {listing}"
        )


class CodegenAssemblyError(IdlCodegenError):
    """A generated module failed to assemble. This is a compiler bug."""

    def __init__(self, unit: str, message: str, source: Optional[str] = None):
        self.unit = unit
        self.source = source
        super().__init__(f"Failed to assemble generated module '{unit}': {message}")
