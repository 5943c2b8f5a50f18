"""
IDL Code Generator for Solana programs.

Reads Anchor / Codama IDL JSON in any supported dialect and emits typed
Python bindings that reproduce the program's exact binary wire framing.
"""

from .codegen import GeneratedPackage, emit_package
from .exceptions import IdlCodegenError
from .overrides import resolve_overrides
from .schema import ProgramSchema, normalize, parse_file

__version__ = "0.1.0"

__all__ = [
    "GeneratedPackage",
    "emit_package",
    "IdlCodegenError",
    "resolve_overrides",
    "ProgramSchema",
    "normalize",
    "parse_file",
]
