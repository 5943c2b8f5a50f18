"""
Type Mapper - maps abstract IDL types to Python annotations.

``map_type`` is pure and structurally recursive. Named references map to a
class name without any lookup; a dangling reference only surfaces when the
generated package is imported.
"""

from dataclasses import dataclass
from typing import FrozenSet, Tuple, Union

from ..schema.models import (
    AbstractType,
    FixedArray,
    ListOf,
    NamedReference,
    OptionalOf,
    PUBKEY_ALIASES,
    Scalar,
)
from .naming import type_name


# Scalar IDL name -> Python annotation
SCALAR_ANNOTATIONS = {
    "bool": "bool",
    "u8": "int",
    "i8": "int",
    "u16": "int",
    "i16": "int",
    "u32": "int",
    "i32": "int",
    "u64": "int",
    "i64": "int",
    "u128": "int",
    "i128": "int",
    "f32": "float",
    "f64": "float",
    "string": "str",
    "bytes": "bytes",
    **{alias: "Pubkey" for alias in PUBKEY_ALIASES},
}


@dataclass(frozen=True)
class TargetPrimitive:
    annotation: str
    source: str  # canonical scalar name, "pubkey" for every address spelling


@dataclass(frozen=True)
class TargetList:
    inner: "TargetType"
    length: int = -1  # -1 for a length-prefixed list


@dataclass(frozen=True)
class TargetOptional:
    inner: "TargetType"


@dataclass(frozen=True)
class TargetNamed:
    name: str


TargetType = Union[TargetPrimitive, TargetList, TargetOptional, TargetNamed]


def map_type(ty: AbstractType) -> TargetType:
    """Map an abstract type to its target representation."""
    if isinstance(ty, Scalar):
        annotation = SCALAR_ANNOTATIONS.get(ty.name)
        if annotation is None:
            # same as the parser: a name outside the scalar table is a type reference
            return TargetNamed(type_name(ty.name))
        source = "pubkey" if ty.name in PUBKEY_ALIASES else ty.name
        return TargetPrimitive(annotation, source)
    if isinstance(ty, ListOf):
        return TargetList(map_type(ty.inner))
    if isinstance(ty, FixedArray):
        return TargetList(map_type(ty.inner), ty.size)
    if isinstance(ty, OptionalOf):
        return TargetOptional(map_type(ty.inner))
    if isinstance(ty, NamedReference):
        return TargetNamed(type_name(ty.name))
    raise TypeError(f"not an abstract type: {ty!r}")


def render_annotation(target: TargetType) -> str:
    if isinstance(target, TargetPrimitive):
        return target.annotation
    if isinstance(target, TargetList):
        return f"List[{render_annotation(target.inner)}]"
    if isinstance(target, TargetOptional):
        return f"Optional[{render_annotation(target.inner)}]"
    return target.name


def annotation(ty: AbstractType) -> str:
    return render_annotation(map_type(ty))


def typing_imports(target: TargetType) -> FrozenSet[str]:
    """Names the annotation needs from ``typing``."""
    if isinstance(target, TargetList):
        return frozenset(["List"]) | typing_imports(target.inner)
    if isinstance(target, TargetOptional):
        return frozenset(["Optional"]) | typing_imports(target.inner)
    return frozenset()


def uses_pubkey(target: TargetType) -> bool:
    if isinstance(target, TargetPrimitive):
        return target.source == "pubkey"
    if isinstance(target, (TargetList, TargetOptional)):
        return uses_pubkey(target.inner)
    return False


def referenced_names(target: TargetType) -> Tuple[str, ...]:
    """Class names of user-defined types reachable from ``target``."""
    if isinstance(target, TargetNamed):
        return (target.name,)
    if isinstance(target, (TargetList, TargetOptional)):
        return referenced_names(target.inner)
    return ()
