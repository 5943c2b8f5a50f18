"""
Size and layout planning.

The fixed-layout planner builds the same ``FixedLayout`` descriptors the
generated code uses at runtime, so offsets and sizes computed here are
exactly what the bindings will cast onto.
"""

import logging
from typing import Dict, FrozenSet, List, Optional

from ..runtime import fixed
from ..schema.models import (
    AbstractType,
    EnumBody,
    FixedArray,
    ListOf,
    NamedReference,
    OptionalOf,
    PUBKEY_ALIASES,
    ProgramSchema,
    Scalar,
    SerializationStrategy,
    TypeDef,
)
from .naming import field_name

logger = logging.getLogger(__name__)

# Encoded size of a length prefix, an option tag and an enum variant index
LENGTH_PREFIX = 4
OPTION_TAG = 1
VARIANT_INDEX = 1


def scalar_key(name: str) -> str:
    return "pubkey" if name in PUBKEY_ALIASES else name


class PlannedStruct(fixed.FixedType):
    """Compile-time stand-in for a generated fixed-layout class."""

    def __init__(self, name: str, layout: fixed.FixedLayout):
        self.name = name
        self.layout = layout

    @property
    def size(self) -> int:
        return self.layout.size

    @property
    def align(self) -> int:
        return self.layout.align


def struct_fields(typedef: TypeDef):
    """``(python_name, abstract_type)`` pairs of a struct body, in order."""
    body = typedef.body
    if body.is_tuple:
        return [(f"field_{i}", ty) for i, ty in enumerate(body.tuple_fields)]
    return [(field_name(f.name), f.type) for f in body.fields]


def fixed_type_for(
    ty: AbstractType,
    schema: ProgramSchema,
    _visiting: FrozenSet[str] = frozenset(),
) -> Optional[fixed.FixedType]:
    """Fixed-size descriptor for ``ty``, or ``None`` if its size is dynamic."""
    if isinstance(ty, Scalar):
        return fixed.SCALARS.get(scalar_key(ty.name))
    if isinstance(ty, FixedArray):
        inner = fixed_type_for(ty.inner, schema, _visiting)
        return fixed.array(inner, ty.size) if inner is not None else None
    if isinstance(ty, NamedReference):
        typedef = schema.get_type(ty.name)
        if typedef is None or not typedef.is_struct or ty.name in _visiting:
            return None
        layout = plan_fixed_layout(typedef, schema, _visiting | {ty.name})
        return PlannedStruct(typedef.name, layout) if layout is not None else None
    return None


def plan_fixed_layout(
    typedef: TypeDef,
    schema: ProgramSchema,
    _visiting: FrozenSet[str] = frozenset(),
) -> Optional[fixed.FixedLayout]:
    """Plan ``typedef`` as a fixed layout; ``None`` if any field is dynamic."""
    if not typedef.is_struct:
        return None
    fields = []
    for name, ty in struct_fields(typedef):
        ftype = fixed_type_for(ty, schema, _visiting | {typedef.name})
        if ftype is None:
            return None
        fields.append((name, ftype))
    return fixed.FixedLayout(fields, packed=typedef.packed)


def resolve_strategy(typedef: TypeDef, schema: ProgramSchema) -> SerializationStrategy:
    """The strategy actually used to frame ``typedef``."""
    if typedef.serialization != SerializationStrategy.FIXED_LAYOUT:
        return SerializationStrategy.DEFAULT
    if plan_fixed_layout(typedef, schema) is None:
        logger.warning(
            "%s requests a fixed layout but has dynamically sized fields; "
            "using the default strategy",
            typedef.name,
        )
        return SerializationStrategy.DEFAULT
    return SerializationStrategy.FIXED_LAYOUT


def layout_closure(roots: List[TypeDef], schema: ProgramSchema) -> List[str]:
    """
    Names of every struct that needs a ``LAYOUT``: the roots plus each struct
    reachable from them through fields, in discovery order.
    """
    found: List[str] = []

    def visit(ty: AbstractType) -> None:
        if isinstance(ty, FixedArray):
            visit(ty.inner)
        elif isinstance(ty, NamedReference):
            typedef = schema.get_type(ty.name)
            if typedef is not None:
                walk(typedef)

    def walk(typedef: TypeDef) -> None:
        if typedef.name in found or not typedef.is_struct:
            return
        found.append(typedef.name)
        for _, ty in struct_fields(typedef):
            visit(ty)

    for root in roots:
        walk(root)
    return found


def min_encoded_size(
    ty: AbstractType,
    schema: ProgramSchema,
    _visiting: FrozenSet[str] = frozenset(),
) -> int:
    """Smallest number of bytes any value of ``ty`` encodes to."""
    if isinstance(ty, Scalar):
        key = scalar_key(ty.name)
        if key in ("string", "bytes"):
            return LENGTH_PREFIX
        return fixed.SCALARS[key].size
    if isinstance(ty, ListOf):
        return LENGTH_PREFIX
    if isinstance(ty, OptionalOf):
        return OPTION_TAG
    if isinstance(ty, FixedArray):
        return ty.size * min_encoded_size(ty.inner, schema, _visiting)
    if isinstance(ty, NamedReference):
        typedef = schema.get_type(ty.name)
        if typedef is None or ty.name in _visiting:
            return 0
        return min_payload_size(typedef, schema, _visiting | {ty.name})
    return 0


def min_payload_size(
    typedef: TypeDef,
    schema: ProgramSchema,
    _visiting: FrozenSet[str] = frozenset(),
) -> int:
    visiting = _visiting | {typedef.name}
    if isinstance(typedef.body, EnumBody):
        return VARIANT_INDEX
    return sum(min_encoded_size(ty, schema, visiting) for _, ty in struct_fields(typedef))


def layout_report(typedef: TypeDef, schema: ProgramSchema) -> Optional[Dict[str, object]]:
    """Offsets, size and padding of a fixed layout, for diagnostics."""
    layout = plan_fixed_layout(typedef, schema)
    if layout is None:
        return None
    return {
        "size": layout.size,
        "align": layout.align,
        "padding": layout.padding,
        "offsets": dict(zip((name for name, _ in layout.fields), layout.offsets)),
    }
