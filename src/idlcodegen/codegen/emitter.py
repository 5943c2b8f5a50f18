"""
Module Emitter - partitions generated declarations into Python modules.

Output units: ``types``, ``accounts``, ``instructions``, ``errors``,
``events`` and the ``__init__`` aggregator. Each unit is a declaration tree
with its own minimal import set; rendering to text is the last step, and
every rendered unit must compile.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from solders.pubkey import Pubkey

from ..exceptions import CodegenAssemblyError
from ..schema.models import (
    AbstractType,
    EnumBody,
    FixedArray,
    ListOf,
    NamedReference,
    OptionalOf,
    PayloadSource,
    ProgramSchema,
    SerializationStrategy,
    TypeDef,
)
from . import layout as planner
from .decls import Comment, ImportSet, ModuleUnit, Statement
from .discriminators import DiscriminatorTable, build_discriminator_table, first_unique
from .naming import type_name, variant_class_name
from .protocol import (
    Scope,
    build_constants,
    build_dispatcher,
    build_errors,
    build_framed,
    build_instruction,
    build_type,
)
from .render import render_module

logger = logging.getLogger(__name__)

UNIT_NAMES = ("types", "accounts", "instructions", "errors", "events", "__init__")

# Units star-imported by the aggregator. Events stay a submodule so an event
# and a type sharing one name never collide in the package namespace.
REEXPORTED_UNITS = ("types", "accounts", "instructions", "errors")


@dataclass
class GeneratedPackage:
    """Rendered bindings for one program."""
    program: str
    units: List[ModuleUnit] = field(default_factory=list)
    sources: Dict[str, str] = field(default_factory=dict)  # filename -> text

    def source(self, unit_name: str) -> str:
        return self.sources[f"{unit_name}.py"]


def _payload_types(schema: ProgramSchema) -> List[TypeDef]:
    """Every TypeDef that gets a class: declared types plus inline payloads."""
    typedefs = list(schema.types)
    for decl in list(schema.accounts) + list(schema.events):
        if decl.source == PayloadSource.INLINE and decl.payload is not None:
            typedefs.append(decl.payload)
    return typedefs


def first_by_name(decls: Iterable[Any]) -> List[Any]:
    """Declarations in order, dropping later ones that reuse a name."""
    seen: Set[str] = set()
    kept = []
    for decl in decls:
        if decl.name not in seen:
            seen.add(decl.name)
            kept.append(decl)
    return kept


def hoisted_payloads(schema: ProgramSchema) -> List[TypeDef]:
    """
    Inline account and event payloads that are emitted into the types module.

    Any module can then import them from ``.types``. A payload whose name is
    already taken by a declared type stays in its own module.
    """
    taken = {t.name for t in schema.types}
    hoisted: List[TypeDef] = []
    for decl in list(schema.accounts) + list(schema.events):
        if decl.source != PayloadSource.INLINE or decl.payload is None:
            continue
        if decl.payload.name in taken:
            continue
        taken.add(decl.payload.name)
        hoisted.append(decl.payload)
    return hoisted


def _type_refs(ty: AbstractType) -> Iterable[str]:
    if isinstance(ty, NamedReference):
        yield ty.name
    elif isinstance(ty, (ListOf, OptionalOf, FixedArray)):
        yield from _type_refs(ty.inner)


def _typedef_refs(typedef: TypeDef) -> Iterable[str]:
    if isinstance(typedef.body, EnumBody):
        for variant in typedef.body.variants:
            for f in variant.fields:
                yield from _type_refs(f.type)
            for ty in variant.tuple_fields:
                yield from _type_refs(ty)
    else:
        for f in typedef.body.fields:
            yield from _type_refs(f.type)
        for ty in typedef.body.tuple_fields:
            yield from _type_refs(ty)


def unresolved_references(schema: ProgramSchema) -> List[str]:
    """Names referenced by a field or argument that no TypeDef declares."""
    declared = {t.name for t in _payload_types(schema)}
    missing: List[str] = []
    refs: List[str] = []
    for typedef in _payload_types(schema):
        refs.extend(_typedef_refs(typedef))
    for ix in schema.instructions:
        for arg in ix.args:
            refs.extend(_type_refs(arg.type))
    for name in refs:
        if name not in declared and name not in missing:
            missing.append(name)
    return missing


class ModuleEmitter:
    """
    Compiles one ``ProgramSchema`` into a ``GeneratedPackage``.

    The discriminator table and the strategy of every payload type are
    resolved once, before any declaration is built.
    """

    def __init__(self, schema: ProgramSchema):
        self.schema = schema
        self.table: DiscriminatorTable = build_discriminator_table(schema)
        self.strategies: Dict[str, SerializationStrategy] = {
            t.name: planner.resolve_strategy(t, schema) for t in _payload_types(schema)
        }
        roots = [
            t for t in _payload_types(schema)
            if self.strategies[t.name] == SerializationStrategy.FIXED_LAYOUT
        ]
        self.layout_names: Set[str] = set(planner.layout_closure(roots, schema))
        hoisted = hoisted_payloads(schema)
        self._hoisted: Set[int] = {id(t) for t in hoisted}
        self.type_defs: List[TypeDef] = list(schema.types) + hoisted
        self.shared_types: Set[str] = {type_name(t.name) for t in self.type_defs}

    def _scope(self, imports: ImportSet, local: Iterable[str] = ()) -> Scope:
        return Scope(
            self.schema,
            imports,
            local=local,
            shared=self.shared_types,
            layout_names=self.layout_names,
        )

    def _new_unit(self, name: str, docstring: str, empty_marker: Optional[str]) -> ModuleUnit:
        unit = ModuleUnit(name=name, docstring=docstring, empty_marker=empty_marker)
        unit.imports.add("__future__", "annotations")
        return unit

    # -- units ---------------------------------------------------------------

    def types_unit(self) -> ModuleUnit:
        unit = self._new_unit(
            "types", f"User-defined types of the {self.schema.name} program.", "No types defined"
        )
        local: Set[str] = set()
        for typedef in self.type_defs:
            local.add(type_name(typedef.name))
            if typedef.is_enum:
                local.update(variant_class_name(typedef.name, v.name) for v in typedef.body.variants)
        scope = Scope(self.schema, unit.imports, local=local, layout_names=self.layout_names)
        for typedef in self.type_defs:
            decls, exports = build_type(typedef, scope)
            unit.body.extend(decls)
            unit.exports.extend(exports)
        return unit

    def _framed_unit(self, name: str, suffix: str, decls, lookup) -> ModuleUnit:
        kind = suffix.lower()
        unit = self._new_unit(
            name,
            f"{suffix} types of the {self.schema.name} program.",
            f"No {name} defined",
        )
        local_payloads = [
            d.payload
            for d in decls
            if d.source == PayloadSource.INLINE
            and d.payload is not None
            and id(d.payload) not in self._hoisted
        ]
        scope = self._scope(unit.imports, {type_name(p.name) for p in local_payloads})

        framed = []
        for decl in first_by_name(decls):
            if any(decl.payload is p for p in local_payloads):
                body, exports = build_type(decl.payload, scope)
                unit.body.extend(body)
                unit.exports.extend(exports)

            tag = lookup(decl.name)
            if tag is None:
                logger.debug("%s %s has no discriminator; emitting payload only", kind, decl.name)
                continue
            strategy = (
                self.strategies.get(decl.payload.name, SerializationStrategy.DEFAULT)
                if decl.payload is not None
                else SerializationStrategy.DEFAULT
            )
            body, exports, const, wrapper = build_framed(
                decl.name, suffix, decl.payload, tag, strategy, scope,
                docs=getattr(decl, "docs", ()),
            )
            unit.body.extend(body)
            unit.exports.extend(exports)
            framed.append((decl.name, tag, const, wrapper))

        if framed:
            by_name = {name: (const, wrapper) for name, _, const, wrapper in framed}
            kept = first_unique(kind, [(name, tag) for name, tag, _, _ in framed])
            body, exports = build_dispatcher(kind, [by_name[name] for name, _ in kept], scope)
            unit.body.extend(body)
            unit.exports.extend(exports)
        return unit

    def accounts_unit(self) -> ModuleUnit:
        return self._framed_unit("accounts", "Account", self.schema.accounts, self.table.account)

    def events_unit(self) -> ModuleUnit:
        return self._framed_unit("events", "Event", self.schema.events, self.table.event)

    def instructions_unit(self) -> ModuleUnit:
        unit = self._new_unit(
            "instructions",
            f"Instructions of the {self.schema.name} program.",
            "No instructions defined",
        )
        scope = self._scope(unit.imports)
        built = []
        for ix in first_by_name(self.schema.instructions):
            tag = self.table.instruction(ix.name)
            body, exports, const, data_cls = build_instruction(ix, tag, scope)
            unit.body.extend(body)
            unit.exports.extend(exports)
            built.append((ix.name, tag, const, data_cls))

        if built:
            by_name = {name: (const, data_cls) for name, _, const, data_cls in built}
            kept = first_unique("instruction", [(name, tag) for name, tag, _, _ in built])
            body, exports = build_dispatcher(
                "instruction",
                [by_name[name] for name, _ in kept],
                scope,
                returns="ProgramInstruction",
            )
            classes = [data_cls for _, _, _, data_cls in built]
            variants = f"({classes[0]},)" if len(classes) == 1 else f"({', '.join(classes)})"
            unit.body.append(Statement([f"INSTRUCTION_VARIANTS = {variants}"]))
            unit.exports.append("INSTRUCTION_VARIANTS")
            unit.body.extend(body)
            unit.exports.extend(exports)
        return unit

    def errors_unit(self) -> ModuleUnit:
        unit = self._new_unit(
            "errors", f"Error codes of the {self.schema.name} program.", "No errors defined"
        )
        if self.schema.errors:
            body, exports = build_errors(self.schema, self._scope(unit.imports))
            unit.body.extend(body)
            unit.exports.extend(exports)
        return unit

    def aggregator_unit(self) -> ModuleUnit:
        schema = self.schema
        lines = [f"Python bindings for the {schema.name} program (v{schema.version})."]
        if schema.metadata.description:
            lines.extend(["", schema.metadata.description])
        lines.extend(["", "Event types live in the ``events`` submodule and are not re-exported."])
        unit = ModuleUnit(name="__init__", docstring="\n".join(lines), export_all=False)
        unit.imports.add(".", "events")
        for name in REEXPORTED_UNITS:
            unit.imports.add(f".{name}", "*")

        address = self._program_address()
        if address is not None:
            unit.imports.add("solders.pubkey", "Pubkey")
            unit.body.append(Statement([f'PROGRAM_ID = Pubkey.from_string("{address}")']))
        else:
            unit.body.append(Comment([
                "PROGRAM_ID: the IDL declares no program address.",
                "Pass the deployed program id to the instruction builders explicitly.",
            ]))

        constants, _ = build_constants(schema.constants)
        unit.body.extend(constants)
        return unit

    def _program_address(self) -> Optional[str]:
        address = self.schema.address
        if not address:
            return None
        try:
            Pubkey.from_string(address)
        except ValueError:
            logger.warning("Program address %r is not a valid pubkey; PROGRAM_ID omitted", address)
            return None
        return address

    # -- assembly ------------------------------------------------------------

    def build_units(self) -> List[ModuleUnit]:
        for name in unresolved_references(self.schema):
            logger.warning(
                "Type '%s' is referenced but never declared; the generated bindings "
                "will fail when it is used",
                name,
            )
        return [
            self.types_unit(),
            self.accounts_unit(),
            self.instructions_unit(),
            self.errors_unit(),
            self.events_unit(),
            self.aggregator_unit(),
        ]

    def emit(self) -> GeneratedPackage:
        package = GeneratedPackage(program=self.schema.name)
        for unit in self.build_units():
            source = render_module(unit)
            assemble_check(unit.name, source)
            package.units.append(unit)
            package.sources[unit.filename] = source
            logger.debug("Rendered %s (%d declarations)", unit.filename, len(unit.body))
        return package


def assemble_check(unit_name: str, source: str) -> None:
    """Raise ``CodegenAssemblyError`` unless ``source`` is valid Python."""
    try:
        compile(source, f"<generated {unit_name}.py>", "exec")
    except SyntaxError as e:
        raise CodegenAssemblyError(unit_name, f"line {e.lineno}: {e.msg}", source) from e


def emit_package(schema: ProgramSchema) -> GeneratedPackage:
    """Compile ``schema`` into rendered Python modules."""
    return ModuleEmitter(schema).emit()
