"""
Code generation: type mapping, discriminator protocol and module emission.
"""

from .discriminators import DiscriminatorTable, build_discriminator_table, derive_instruction_discriminator
from .emitter import GeneratedPackage, ModuleEmitter, emit_package
from .type_mapper import TargetType, annotation, map_type, render_annotation

__all__ = [
    "DiscriminatorTable",
    "build_discriminator_table",
    "derive_instruction_discriminator",
    "GeneratedPackage",
    "ModuleEmitter",
    "emit_package",
    "TargetType",
    "annotation",
    "map_type",
    "render_annotation",
]
