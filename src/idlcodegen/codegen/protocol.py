"""
Discriminator Protocol Codegen.

Builds declaration nodes for:
- payload types (dataclasses and sum types with ``serialize``/``deserialize``)
- fixed-layout descriptors for zero-copy types
- discriminator-framed account and event wrappers
- instruction data, account keys and instruction builders
- prefix dispatchers and the program error enum

Every builder takes a ``Scope`` and records the imports its declarations
actually use, so each module imports only what it needs.
"""

import json
import logging
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..schema.models import (
    AbstractType,
    AccountRef,
    ConstantDecl,
    EnumVariant,
    FieldDef,
    FixedArray,
    Instruction,
    ListOf,
    NamedReference,
    ProgramSchema,
    Scalar,
    SerializationStrategy,
    TypeDef,
)
from . import layout as planner
from .decls import ClassDecl, Declaration, FieldDecl, ImportSet, Routine, Statement
from .naming import (
    field_name,
    to_pascal_case,
    to_snake_case,
    to_upper_snake_case,
    type_name,
    variant_class_name,
)
from .type_mapper import (
    TargetNamed,
    TargetOptional,
    TargetPrimitive,
    TargetType,
    map_type,
    referenced_names,
    render_annotation,
    typing_imports,
    uses_pubkey,
)

logger = logging.getLogger(__name__)

RUNTIME = "idlcodegen.runtime"

INTEGER_SCALARS = frozenset(
    ["u8", "i8", "u16", "i16", "u32", "i32", "u64", "i64", "u128", "i128"]
)

ZERO_COPY_HAZARD = [
    "# Zero-copy decode: the bytes after the discriminator are cast onto",
    "# {cls}.LAYOUT without per-field validation. Data written under a",
    "# different layout decodes to wrong values instead of raising.",
]

# (python name, abstract type, doc lines)
FieldSpec = Tuple[str, AbstractType, List[str]]


class Scope:
    """
    Name resolution and import tracking for one output module.

    ``local`` holds class names the module defines itself and ``shared`` the
    class names defined in the types module. A reference to a shared name is
    imported from ``.types``; a name in neither set is left as written.
    """

    def __init__(
        self,
        schema: ProgramSchema,
        imports: ImportSet,
        local: Iterable[str] = (),
        shared: Iterable[str] = (),
        layout_names: Iterable[str] = (),
    ):
        self.schema = schema
        self.imports = imports
        self.local: Set[str] = set(local)
        self.shared: Set[str] = set(shared)
        self.layout_names: Set[str] = set(layout_names)

    def typing(self, *names: str) -> None:
        if names:
            self.imports.add("typing", *names)

    def runtime(self, *names: str) -> None:
        self.imports.add(RUNTIME, *names)

    def dataclass(self) -> None:
        self.imports.add("dataclasses", "dataclass")

    def pubkey(self) -> None:
        self.imports.add("solders.pubkey", "Pubkey")

    def reference(self, class_name: str) -> None:
        if class_name in self.local:
            return
        if class_name in self.shared:
            self.imports.add(".types", class_name)

    def annotate(self, ty: AbstractType) -> Tuple[TargetType, str]:
        target = map_type(ty)
        self.typing(*sorted(typing_imports(target)))
        if uses_pubkey(target):
            self.pubkey()
        for name in referenced_names(target):
            self.reference(name)
        return target, render_annotation(target)


def _stem(name: str) -> str:
    """Drop the escape suffix before composing a name with a suffix."""
    return name.rstrip("_") or name


def _doc(lines: Sequence[str]) -> Optional[str]:
    text = "\n".join(line.strip() for line in lines).strip()
    return text or None


def bytes_literal(tag: bytes) -> str:
    return f"bytes([{', '.join(str(b) for b in tag)}])"


# ---------------------------------------------------------------------------
# Read / write expressions
# ---------------------------------------------------------------------------


def writer_call(target: TargetType, value: str, depth: int = 0) -> str:
    """Expression that encodes ``value`` with the writer ``w``."""
    if isinstance(target, TargetPrimitive):
        return f"w.write_{target.source}({value})"
    if isinstance(target, TargetNamed):
        return f"{value}.serialize(w)"
    fn = writer_fn(target.inner, depth + 1)
    if isinstance(target, TargetOptional):
        return f"w.write_option({value}, {fn})"
    if target.length < 0:
        return f"w.write_vec({value}, {fn})"
    return f"w.write_array({value}, {target.length}, {fn})"


def writer_fn(target: TargetType, depth: int) -> str:
    if isinstance(target, TargetPrimitive):
        return f"w.write_{target.source}"
    var = f"v{depth}"
    return f"lambda {var}: {writer_call(target, var, depth)}"


def reader_call(target: TargetType) -> str:
    """Expression that decodes one value with the reader ``r``."""
    if isinstance(target, TargetPrimitive):
        return f"r.read_{target.source}()"
    if isinstance(target, TargetNamed):
        return f"{target.name}.deserialize(r)"
    fn = reader_fn(target.inner)
    if isinstance(target, TargetOptional):
        return f"r.read_option({fn})"
    if target.length < 0:
        return f"r.read_vec({fn})"
    return f"r.read_array({target.length}, {fn})"


def reader_fn(target: TargetType) -> str:
    if isinstance(target, TargetPrimitive):
        return f"r.read_{target.source}"
    return f"lambda: {reader_call(target)}"


def fixed_descriptor(ty: AbstractType, scope: Scope) -> str:
    """``idlcodegen.runtime.fixed`` descriptor expression for a fixed-size type."""
    if isinstance(ty, Scalar):
        return f"fixed.{planner.scalar_key(ty.name).upper()}"
    if isinstance(ty, FixedArray):
        return f"fixed.array({fixed_descriptor(ty.inner, scope)}, {ty.size})"
    if isinstance(ty, NamedReference):
        name = type_name(ty.name)
        scope.reference(name)
        return f"fixed.nested(lambda: {name})"
    raise ValueError(f"{ty!r} has no fixed layout")


# ---------------------------------------------------------------------------
# Payload types
# ---------------------------------------------------------------------------


def named_specs(fields: Sequence[FieldDef]) -> List[FieldSpec]:
    return [(field_name(f.name), f.type, list(f.docs)) for f in fields]


def tuple_specs(types: Sequence[AbstractType]) -> List[FieldSpec]:
    return [(f"field_{i}", ty, []) for i, ty in enumerate(types)]


def _specs_of(owner) -> List[FieldSpec]:
    if owner.tuple_fields:
        return tuple_specs(owner.tuple_fields)
    return named_specs(owner.fields)


def _field_decls(specs: Sequence[FieldSpec], scope: Scope) -> Tuple[List[FieldDecl], List[TargetType]]:
    decls, targets = [], []
    for name, ty, docs in specs:
        target, annotation = scope.annotate(ty)
        decls.append(FieldDecl(name, annotation, comments=docs))
        targets.append(target)
    return decls, targets


def _serialize_routine(names: Sequence[str], targets: Sequence[TargetType], method: str) -> Routine:
    body = [writer_call(target, f"self.{name}") for name, target in zip(names, targets)]
    return Routine(method, ["self", "w: BorshWriter"], body, returns="None")


def _deserialize_routine(
    cls_name: str, names: Sequence[str], targets: Sequence[TargetType], method: str
) -> Routine:
    if names:
        body = ["return cls("]
        body.extend(
            f'    {name}=r.read_field("{name}", {reader_fn(target)}),'
            for name, target in zip(names, targets)
        )
        body.append(")")
    else:
        body = ["return cls()"]
    return Routine(method, ["cls", "r: BorshReader"], body, returns=cls_name, decorators=["classmethod"])


def build_struct(
    cls_name: str,
    specs: Sequence[FieldSpec],
    scope: Scope,
    docstring: Optional[str] = None,
    layout_owner: Optional[TypeDef] = None,
) -> ClassDecl:
    """
    A dataclass with ``serialize``/``deserialize``. When ``layout_owner`` is
    given the class also carries ``LAYOUT`` and ``SIZE`` for zero-copy use.
    """
    scope.dataclass()
    scope.runtime("BorshReader", "BorshWriter")
    fields, targets = _field_decls(specs, scope)
    names = [f.name for f in fields]

    bases: List[str] = []
    class_vars: List[FieldDecl] = []
    if layout_owner is not None:
        plan = planner.plan_fixed_layout(layout_owner, scope.schema)
        if plan is None:
            raise ValueError(f"{layout_owner.name} has no fixed layout")
        scope.typing("ClassVar")
        scope.runtime("FixedLayout", "ZeroCopy", "fixed")
        bases.append("ZeroCopy")
        entries = [f'("{name}", {fixed_descriptor(ty, scope)}),' for name, ty, _ in specs]
        if entries:
            layout_expr = "\n".join(
                ["FixedLayout(", "    ["]
                + [f"        {entry}" for entry in entries]
                + ["    ],", f"    packed={layout_owner.packed},", ")"]
            )
        else:
            layout_expr = f"FixedLayout([], packed={layout_owner.packed})"
        class_vars = [
            FieldDecl("LAYOUT", "FixedLayout", layout_expr, class_var=True),
            FieldDecl("SIZE", "int", str(plan.size), class_var=True),
        ]

    return ClassDecl(
        cls_name,
        bases=bases,
        decorators=["dataclass"],
        docstring=docstring,
        class_vars=class_vars,
        fields=fields,
        routines=[
            _serialize_routine(names, targets, "serialize"),
            _deserialize_routine(cls_name, names, targets, "deserialize"),
        ],
    )


def build_enum(typedef: TypeDef, scope: Scope) -> Tuple[List[Declaration], List[str]]:
    """A ``BorshEnum`` base class plus one dataclass per variant."""
    base = type_name(typedef.name)
    scope.runtime("BorshEnum")
    decls: List[Declaration] = [
        ClassDecl(base, bases=["BorshEnum"], docstring=_doc(typedef.docs))
    ]
    exports = [base]

    variants: List[EnumVariant] = typedef.body.variants
    if variants:
        scope.dataclass()
        scope.typing("ClassVar")
    for index, variant in enumerate(variants):
        cls_name = variant_class_name(typedef.name, variant.name)
        specs = _specs_of(variant)
        fields, targets = _field_decls(specs, scope)
        names = [f.name for f in fields]
        routines = []
        if names:
            scope.runtime("BorshReader", "BorshWriter")
            routines = [
                _serialize_routine(names, targets, "_serialize_fields"),
                _deserialize_routine(cls_name, names, targets, "_deserialize_fields"),
            ]
        decls.append(
            ClassDecl(
                cls_name,
                bases=[base],
                decorators=["dataclass"],
                class_vars=[FieldDecl("INDEX", "int", str(index), class_var=True)],
                fields=fields,
                routines=routines,
            )
        )
        exports.append(cls_name)

    members = exports[1:]
    if len(members) == 1:
        tuple_expr = f"({members[0]},)"
    else:
        tuple_expr = f"({', '.join(members)})"
    decls.append(Statement([f"{base}.VARIANTS = {tuple_expr}"]))
    return decls, exports


def build_type(typedef: TypeDef, scope: Scope) -> Tuple[List[Declaration], List[str]]:
    if typedef.is_enum:
        return build_enum(typedef, scope)
    layout_owner = typedef if typedef.name in scope.layout_names else None
    cls = build_struct(
        type_name(typedef.name),
        _specs_of(typedef.body),
        scope,
        docstring=_doc(typedef.docs),
        layout_owner=layout_owner,
    )
    return [cls], [cls.name]


# ---------------------------------------------------------------------------
# Framed accounts and events
# ---------------------------------------------------------------------------


def build_framed(
    decl_name: str,
    suffix: str,
    payload: Optional[TypeDef],
    tag: bytes,
    strategy: SerializationStrategy,
    scope: Scope,
    docs: Sequence[str] = (),
) -> Tuple[List[Declaration], List[str], str, str]:
    """
    A ``<Name><Suffix>`` wrapper whose ``to_bytes``/``from_bytes`` frame the
    payload with its 8-byte discriminator.

    Returns ``(decls, exports, discm_constant, wrapper_class)``.
    """
    wrapper = _stem(type_name(decl_name)) + suffix
    const = f"{_stem(to_upper_snake_case(decl_name))}_{suffix.upper()}_DISCM"
    payload_cls = type_name(payload.name if payload is not None else decl_name)
    scope.reference(payload_cls)
    scope.dataclass()
    scope.typing("ClassVar")
    scope.runtime("BorshReader", "BorshWriter")

    fixed_layout = strategy == SerializationStrategy.FIXED_LAYOUT and payload is not None
    if fixed_layout:
        min_size = planner.plan_fixed_layout(payload, scope.schema).size
        encode = "w.write_raw(self.data.to_layout_bytes())"
        decode = [line.format(cls=payload_cls) for line in ZERO_COPY_HAZARD]
        decode.append(f'return cls(data=r.read_field("data", lambda: r.read_fixed({payload_cls})))')
    else:
        min_size = planner.min_payload_size(payload, scope.schema) if payload is not None else 0
        encode = "self.data.serialize(w)"
        decode = [f'return cls(data=r.read_field("data", lambda: {payload_cls}.deserialize(r)))']

    kind = suffix.lower()
    wrapper_decl = ClassDecl(
        wrapper,
        decorators=["dataclass"],
        docstring=_doc(docs) or f"``{decl_name}`` {kind} framed with its discriminator.",
        class_vars=[
            FieldDecl("DISCRIMINATOR", "bytes", const, class_var=True),
            FieldDecl("MIN_SIZE", "int", str(min_size), class_var=True),
        ],
        fields=[FieldDecl("data", payload_cls)],
        routines=[
            Routine(
                "to_bytes",
                ["self"],
                [
                    "w = BorshWriter()",
                    "w.write_discriminator(self.DISCRIMINATOR)",
                    encode,
                    "return w.getvalue()",
                ],
                returns="bytes",
            ),
            Routine(
                "from_bytes",
                ["cls", "data: bytes"],
                [
                    f'r = BorshReader(data, context="{wrapper}")',
                    "r.expect_discriminator(cls.DISCRIMINATOR)",
                    "r.require(cls.MIN_SIZE)",
                    *decode,
                ],
                returns=wrapper,
                decorators=["classmethod"],
            ),
        ],
    )
    decls: List[Declaration] = [Statement([f"{const} = {bytes_literal(tag)}"]), wrapper_decl]
    return decls, [const, wrapper], const, wrapper


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------


def _account_meta_line(ref: AccountRef) -> str:
    name = field_name(ref.name)
    flags = f"is_signer={ref.is_signer}, is_writable={ref.is_writable}"
    if ref.is_optional:
        return f"optional_account_meta(self.{name}, program_id, {flags}),"
    return f"AccountMeta(pubkey=self.{name}, {flags}),"


def build_keys(ix: Instruction, scope: Scope) -> ClassDecl:
    cls_name = f"{_stem(to_pascal_case(ix.name))}Keys"
    scope.dataclass()
    scope.typing("List", "Optional")
    scope.pubkey()
    scope.imports.add("solders.instruction", "AccountMeta")

    fields = []
    for ref in ix.accounts:
        annotation = "Optional[Pubkey]" if ref.is_optional else "Pubkey"
        fields.append(FieldDecl(field_name(ref.name), annotation, comments=list(ref.docs)))

    if ix.accounts:
        body = ["return ["]
        body.extend(f"    {_account_meta_line(ref)}" for ref in ix.accounts)
        body.append("]")
    else:
        body = ["return []"]
    if any(ref.is_optional for ref in ix.accounts):
        scope.runtime("optional_account_meta")

    return ClassDecl(
        cls_name,
        decorators=["dataclass"],
        docstring=f"Accounts of ``{ix.name}``, in instruction order.",
        fields=fields,
        routines=[
            Routine(
                "to_account_metas",
                ["self", "program_id: Optional[Pubkey] = None"],
                body,
                returns="List[AccountMeta]",
            )
        ],
    )


def build_instruction(
    ix: Instruction, tag: bytes, scope: Scope
) -> Tuple[List[Declaration], List[str], str, str]:
    """
    Discriminator constant, account count, args, data, keys and builder for
    one instruction.

    Returns ``(decls, exports, discm_constant, data_class)``.
    """
    pascal = _stem(to_pascal_case(ix.name))
    upper = _stem(to_upper_snake_case(ix.name))
    builder = f"{_stem(to_snake_case(ix.name))}_ix"
    const = f"{upper}_IX_DISCM"
    accounts_len = f"{upper}_IX_ACCOUNTS_LEN"
    args_cls = f"{pascal}IxArgs"
    data_cls = f"{pascal}IxData"

    scope.dataclass()
    scope.typing("ClassVar")
    scope.runtime("BorshReader", "BorshWriter", "ProgramInstruction")

    decls: List[Declaration] = [
        Statement([f"{const} = {bytes_literal(tag)}", f"{accounts_len} = {len(ix.accounts)}"])
    ]
    exports = [const, accounts_len]

    specs = [(field_name(a.name), a.type, list(a.docs)) for a in ix.args]
    if specs:
        decls.append(build_struct(args_cls, specs, scope))
        exports.append(args_cls)
    min_size = sum(planner.min_encoded_size(a.type, scope.schema) for a in ix.args)

    if specs:
        encode = ["self.args.serialize(w)"]
        decode = [f'return cls(args=r.read_field("args", lambda: {args_cls}.deserialize(r)))']
        fields = [FieldDecl("args", args_cls)]
    else:
        encode, decode, fields = [], ["return cls()"], []

    decls.append(
        ClassDecl(
            data_cls,
            bases=["ProgramInstruction"],
            decorators=["dataclass"],
            docstring=_doc(ix.docs),
            class_vars=[
                FieldDecl("DISCRIMINATOR", "bytes", const, class_var=True),
                FieldDecl("MIN_SIZE", "int", str(min_size), class_var=True),
            ],
            fields=fields,
            routines=[
                Routine(
                    "to_bytes",
                    ["self"],
                    ["w = BorshWriter()", "w.write_discriminator(self.DISCRIMINATOR)", *encode, "return w.getvalue()"],
                    returns="bytes",
                ),
                Routine(
                    "from_bytes",
                    ["cls", "data: bytes"],
                    [
                        f'r = BorshReader(data, context="{data_cls}")',
                        "r.expect_discriminator(cls.DISCRIMINATOR)",
                        "r.require(cls.MIN_SIZE)",
                        *decode,
                    ],
                    returns=data_cls,
                    decorators=["classmethod"],
                ),
            ],
        )
    )
    exports.append(data_cls)

    keys = build_keys(ix, scope)
    decls.append(keys)
    exports.append(keys.name)

    scope.imports.add("solders.instruction", "Instruction")
    params = ["program_id: Pubkey", f"keys: {keys.name}"]
    data_expr = f"{data_cls}().to_bytes()"
    if specs:
        params.append(f"args: {args_cls}")
        data_expr = f"{data_cls}(args).to_bytes()"
    decls.append(
        Routine(
            builder,
            params,
            [
                "return Instruction(",
                "    program_id=program_id,",
                "    accounts=keys.to_account_metas(program_id),",
                f"    data={data_expr},",
                ")",
            ],
            returns="Instruction",
            docstring=_doc(ix.docs),
        )
    )
    exports.append(builder)
    return decls, exports, const, data_cls


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def build_dispatcher(
    kind: str, entries: Sequence[Tuple[str, str]], scope: Scope, returns: Optional[str] = None
) -> Tuple[List[Declaration], List[str]]:
    """
    ``<KIND>_DECODERS`` and ``decode_<kind>(data)``, switching on the full
    8-byte prefix. ``entries`` are ``(discm_constant, class)`` pairs.
    """
    table = f"{kind.upper()}_DECODERS"
    scope.runtime("dispatch")
    if returns is None:
        classes = [cls for _, cls in entries]
        if len(classes) == 1:
            returns = classes[0]
        else:
            scope.typing("Union")
            returns = f"Union[{', '.join(classes)}]"
    lines = [f"{table} = {{"]
    lines.extend(f"    {const}: {cls}," for const, cls in entries)
    lines.append("}")
    decode = Routine(
        f"decode_{kind}",
        ["data: bytes"],
        [f'return dispatch({table}, data, "{kind}")'],
        returns=returns,
        docstring=f"Decode any {kind} of this program by its 8-byte discriminator.",
    )
    return [Statement(lines), decode], [table, decode.name]


# ---------------------------------------------------------------------------
# Errors and constants
# ---------------------------------------------------------------------------


def error_enum_name(program: str) -> str:
    return f"{_stem(to_pascal_case(program))}Error"


def build_errors(schema: ProgramSchema, scope: Scope) -> Tuple[List[Declaration], List[str]]:
    enum_name = error_enum_name(schema.name)
    scope.imports.add("enum", "IntEnum")
    scope.typing("Dict", "Optional")

    members, messages = [], []
    seen: Set[str] = set()
    for err in schema.errors:
        member = to_pascal_case(err.name)
        if member in seen:
            logger.warning("Duplicate error name %s (code %d) skipped", err.name, err.code)
            continue
        seen.add(member)
        members.append(FieldDecl(member, None, str(err.code)))
        messages.append(f"    {enum_name}.{member}: {err.message!r},")

    enum_decl = ClassDecl(
        enum_name,
        bases=["IntEnum"],
        docstring=f"Custom error codes of the {schema.name} program.",
        class_vars=members,
        routines=[
            Routine(
                "message",
                ["self"],
                ["return ERROR_MESSAGES[self]"],
                returns="str",
                decorators=["property"],
            )
        ],
    )
    table = Statement([f"ERROR_MESSAGES: Dict[{enum_name}, str] = {{", *messages, "}"])
    lookup = Routine(
        "error_from_code",
        ["code: int"],
        [
            "try:",
            f"    return {enum_name}(code)",
            "except ValueError:",
            "    return None",
        ],
        returns=f"Optional[{enum_name}]",
        docstring="Map a custom program error code to its enum member, if declared.",
    )
    return [enum_decl, table, lookup], [enum_name, "ERROR_MESSAGES", "error_from_code"]


def _int_literal(value: str) -> Optional[str]:
    try:
        return str(int(value.replace("_", ""), 0))
    except ValueError:
        return None


def _byte_list(value: str) -> Optional[List[int]]:
    try:
        items = json.loads(value)
    except ValueError:
        return None
    if isinstance(items, list) and all(isinstance(b, int) and 0 <= b <= 255 for b in items):
        return items
    return None


def constant_literal(const: ConstantDecl) -> str:
    """
    Python literal for a declared constant. Values that do not parse under
    their declared type are emitted as their source string.
    """
    value = const.value.strip()
    ty = const.type
    if isinstance(ty, Scalar):
        key = planner.scalar_key(ty.name)
        if key in INTEGER_SCALARS:
            literal = _int_literal(value)
            if literal is not None:
                return literal
        elif key == "bool" and value in ("true", "false"):
            return "True" if value == "true" else "False"
        elif key in ("f32", "f64"):
            try:
                return repr(float(value))
            except ValueError:
                pass
        elif key == "string" and len(value) >= 2 and value[0] == value[-1] == '"':
            try:
                return repr(json.loads(value))
            except ValueError:
                pass
        elif key == "bytes":
            items = _byte_list(value)
            if items is not None:
                return bytes_literal(bytes(items))
    elif isinstance(ty, (FixedArray, ListOf)) and ty.inner == Scalar("u8"):
        items = _byte_list(value)
        if items is not None:
            return bytes_literal(bytes(items))
    return repr(value)


def build_constants(constants: Sequence[ConstantDecl]) -> Tuple[List[Declaration], List[str]]:
    if not constants:
        return [], []
    lines, names = [], []
    for const in constants:
        name = to_upper_snake_case(const.name)
        lines.append(f"{name} = {constant_literal(const)}")
        names.append(name)
    return [Statement(lines)], names
