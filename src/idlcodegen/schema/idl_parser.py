"""
IDL Parser for Solana programs.

Normalizes every supported IDL dialect into a single ``ProgramSchema``:

- legacy Anchor (top-level ``name``/``version``, ``isMut``/``isSigner``,
  account bodies inline, event fields inline, ``{"defined": "Name"}``)
- modern Anchor / Codama-style (``metadata`` object, ``writable``/``signer``,
  accounts and events that reference a TypeDef by name,
  ``{"defined": {"name": "Name"}}``)

Dialect detection is structural and happens once, here.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import SchemaParseError
from .models import (
    DEFAULT_NAME,
    DEFAULT_VERSION,
    DISCRIMINATOR_SIZE,
    SCALAR_NAMES,
    AbstractType,
    AccountDecl,
    AccountRef,
    ConstantDecl,
    EnumBody,
    EnumVariant,
    ErrorDecl,
    EventDecl,
    FieldDef,
    FixedArray,
    Instruction,
    InstructionArg,
    ListOf,
    NamedReference,
    OptionalOf,
    PayloadSource,
    ProgramMetadata,
    ProgramSchema,
    Scalar,
    SerializationStrategy,
    StructBody,
    TypeDef,
)

logger = logging.getLogger(__name__)

# Serialization tags that select the zero-copy layout
FIXED_LAYOUT_TAGS = ("bytemuck", "bytemuckunsafe")


class IDLParser:
    """
    Parser for Solana IDL files.

    Each ``_parse_*`` method receives the JSON value and its path (for example
    ``instructions[3].args[0].type``) so that a failure points at the exact
    offending value. The parser never returns a partially normalized schema.
    """

    def parse_file(self, path: Union[str, Path]) -> ProgramSchema:
        """Parse an IDL file from disk."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"IDL file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            text = f.read()

        return self.parse_text(text)

    def parse_text(self, text: str) -> ProgramSchema:
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise SchemaParseError(f"malformed JSON: {e.msg} (line {e.lineno}, column {e.colno})") from e
        return self.parse(raw)

    def parse(self, idl: Any) -> ProgramSchema:
        """Normalize a decoded IDL document."""
        root = self._expect_object(idl, "$")

        if "instructions" not in root:
            raise SchemaParseError("missing required key 'instructions'", "$")

        metadata = root.get("metadata")
        if metadata is None:
            metadata = {}
        metadata = self._expect_object(metadata, "metadata")

        # Explicit top-level value wins, metadata is the fallback
        address = self._optional_str(root, "address", "$") or self._optional_str(metadata, "address", "metadata")
        name = self._optional_str(root, "name", "$") or self._optional_str(metadata, "name", "metadata") or DEFAULT_NAME
        version = (
            self._optional_str(root, "version", "$")
            or self._optional_str(metadata, "version", "metadata")
            or DEFAULT_VERSION
        )

        schema = ProgramSchema(
            name=name,
            version=version,
            address=address,
            metadata=ProgramMetadata(
                spec=self._optional_str(metadata, "spec", "metadata"),
                description=self._optional_str(metadata, "description", "metadata"),
            ),
        )

        # Types first: modern accounts and events resolve their bodies against them
        for i, ty_data in enumerate(self._optional_list(root, "types", "$")):
            schema.types.append(self._parse_type_def(ty_data, f"types[{i}]"))

        for i, ix_data in enumerate(self._expect_list(root["instructions"], "instructions")):
            schema.instructions.append(self._parse_instruction(ix_data, f"instructions[{i}]"))

        for i, acc_data in enumerate(self._optional_list(root, "accounts", "$")):
            schema.accounts.append(self._parse_account_decl(acc_data, f"accounts[{i}]", schema))

        for i, err_data in enumerate(self._optional_list(root, "errors", "$")):
            schema.errors.append(self._parse_error(err_data, f"errors[{i}]"))

        for i, ev_data in enumerate(self._optional_list(root, "events", "$")):
            schema.events.append(self._parse_event_decl(ev_data, f"events[{i}]", schema))

        for i, const_data in enumerate(self._optional_list(root, "constants", "$")):
            schema.constants.append(self._parse_constant(const_data, f"constants[{i}]"))

        logger.debug(
            "Normalized IDL %s v%s: %d instructions, %d accounts, %d types, %d events",
            schema.name,
            schema.version,
            len(schema.instructions),
            len(schema.accounts),
            len(schema.types),
            len(schema.events),
        )
        return schema

    # ------------------------------------------------------------------
    # Instructions
    # ------------------------------------------------------------------

    def _parse_instruction(self, ix_data: Any, path: str) -> Instruction:
        """Parse a single instruction from IDL."""
        ix = self._expect_object(ix_data, path)
        name = self._required_str(ix, "name", path)

        accounts: List[AccountRef] = []
        for i, acc_data in enumerate(self._optional_list(ix, "accounts", path)):
            accounts.extend(self._parse_instruction_account(acc_data, f"{path}.accounts[{i}]", prefix=""))

        arguments = []
        for i, arg_data in enumerate(self._optional_list(ix, "args", path)):
            arg_path = f"{path}.args[{i}]"
            arg = self._expect_object(arg_data, arg_path)
            arguments.append(
                InstructionArg(
                    name=self._required_str(arg, "name", arg_path),
                    type=self._parse_type(self._required(arg, "type", arg_path), f"{arg_path}.type"),
                    docs=self._parse_docs(arg, arg_path),
                )
            )

        return Instruction(
            name=name,
            accounts=accounts,
            args=arguments,
            docs=self._parse_docs(ix, path),
            discriminator=self._parse_discriminator(ix, path),
        )

    def _parse_instruction_account(self, acc_data: Any, path: str, prefix: str) -> List[AccountRef]:
        """Parse an account from an instruction's account list."""
        acc = self._expect_object(acc_data, path)
        name = prefix + self._required_str(acc, "name", path)

        # Legacy composite group: {"name": "group", "accounts": [...]}
        if "accounts" in acc:
            refs: List[AccountRef] = []
            for i, member in enumerate(self._expect_list(acc["accounts"], f"{path}.accounts")):
                refs.extend(self._parse_instruction_account(member, f"{path}.accounts[{i}]", prefix=f"{name}_"))
            return refs

        # Old format: isMut, isSigner
        # New format: writable, signer
        is_writable = self._flag(acc, ("writable", "isMut"), path)
        is_signer = self._flag(acc, ("signer", "isSigner"), path)
        is_optional = self._flag(acc, ("optional", "isOptional"), path)

        return [
            AccountRef(
                name=name,
                is_signer=is_signer,
                is_writable=is_writable,
                is_optional=is_optional,
                docs=self._parse_docs(acc, path),
            )
        ]

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def _parse_type_def(self, ty_data: Any, path: str) -> TypeDef:
        ty = self._expect_object(ty_data, path)
        return self._build_type_def(
            name=self._required_str(ty, "name", path),
            owner=ty,
            body=self._required(ty, "type", path),
            path=path,
        )

    def _build_type_def(self, name: str, owner: Dict[str, Any], body: Any, path: str) -> TypeDef:
        serialization = SerializationStrategy.DEFAULT
        tag = owner.get("serialization")
        if tag is not None:
            if not isinstance(tag, str):
                raise SchemaParseError("expected a string", f"{path}.serialization")
            if tag in FIXED_LAYOUT_TAGS:
                serialization = SerializationStrategy.FIXED_LAYOUT

        packed = False
        repr_data = owner.get("repr")
        if repr_data is not None:
            repr_obj = self._expect_object(repr_data, f"{path}.repr")
            packed = self._flag(repr_obj, ("packed",), f"{path}.repr")

        return TypeDef(
            name=name,
            body=self._parse_type_body(body, f"{path}.type"),
            docs=self._parse_docs(owner, path),
            serialization=serialization,
            packed=packed,
        )

    def _parse_type_body(self, body_data: Any, path: str) -> Union[StructBody, EnumBody]:
        body = self._expect_object(body_data, path)
        kind = self._required_str(body, "kind", path)

        if kind == "struct":
            fields, tuple_fields = self._parse_fields(body.get("fields"), f"{path}.fields")
            return StructBody(fields=fields, tuple_fields=tuple_fields)

        if kind == "enum":
            variants = []
            for i, var_data in enumerate(self._expect_list(self._required(body, "variants", path), f"{path}.variants")):
                var_path = f"{path}.variants[{i}]"
                var = self._expect_object(var_data, var_path)
                fields, tuple_fields = self._parse_fields(var.get("fields"), f"{var_path}.fields")
                variants.append(
                    EnumVariant(
                        name=self._required_str(var, "name", var_path),
                        fields=fields,
                        tuple_fields=tuple_fields,
                    )
                )
            return EnumBody(variants=variants)

        raise SchemaParseError(f"unsupported type kind '{kind}'", f"{path}.kind")

    def _parse_fields(self, fields_data: Any, path: str):
        """
        Parse a struct or variant field list.

        Named fields are objects with a ``name``; positional (tuple) fields are
        bare type expressions. Mixing the two is rejected.
        """
        if fields_data is None:
            return [], []

        items = self._expect_list(fields_data, path)
        if not items:
            return [], []

        if all(isinstance(item, dict) and "name" in item for item in items):
            fields = []
            for i, item in enumerate(items):
                field_path = f"{path}[{i}]"
                fields.append(
                    FieldDef(
                        name=self._required_str(item, "name", field_path),
                        type=self._parse_type(self._required(item, "type", field_path), f"{field_path}.type"),
                        docs=self._parse_docs(item, field_path),
                    )
                )
            return fields, []

        if any(isinstance(item, dict) and "name" in item for item in items):
            raise SchemaParseError("mixes named and positional fields", path)

        return [], [self._parse_type(item, f"{path}[{i}]") for i, item in enumerate(items)]

    def _parse_type(self, type_data: Any, path: str) -> AbstractType:
        """
        Normalize a type expression.

        Type can be a simple string or a complex object like
        ``{"vec": "u8"}``, ``{"array": ["u8", 32]}`` or ``{"defined": ...}``.
        """
        if isinstance(type_data, str):
            if type_data in SCALAR_NAMES:
                return Scalar(type_data)
            # Legacy IDLs occasionally name a user type directly
            return NamedReference(type_data)

        if not isinstance(type_data, dict) or len(type_data) != 1:
            raise SchemaParseError(f"unrecognized type expression {json.dumps(type_data)}", path)

        key, value = next(iter(type_data.items()))

        if key == "vec":
            return ListOf(self._parse_type(value, f"{path}.vec"))

        if key in ("option", "coption"):
            return OptionalOf(self._parse_type(value, f"{path}.{key}"))

        if key == "array":
            if not isinstance(value, list) or len(value) != 2:
                raise SchemaParseError("array type must have exactly 2 elements", f"{path}.array")
            inner, size = value
            if isinstance(size, bool) or not isinstance(size, int) or size < 0:
                raise SchemaParseError("array size must be a non-negative integer", f"{path}.array[1]")
            return FixedArray(self._parse_type(inner, f"{path}.array[0]"), size)

        if key == "defined":
            # Old format: {"defined": "MyType"}
            # New format: {"defined": {"name": "MyType"}}
            if isinstance(value, str):
                return NamedReference(value)
            if isinstance(value, dict) and isinstance(value.get("name"), str):
                return NamedReference(value["name"])
            raise SchemaParseError("defined type must be a name or an object with a name", f"{path}.defined")

        raise SchemaParseError(f"unrecognized type expression key '{key}'", path)

    # ------------------------------------------------------------------
    # Accounts, events, errors, constants
    # ------------------------------------------------------------------

    def _parse_account_decl(self, acc_data: Any, path: str, schema: ProgramSchema) -> AccountDecl:
        """Parse a global account type definition."""
        acc = self._expect_object(acc_data, path)
        name = self._required_str(acc, "name", path)
        discriminator = self._parse_discriminator(acc, path)

        if "type" in acc:
            return AccountDecl(
                name=name,
                source=PayloadSource.INLINE,
                payload=self._build_type_def(name, acc, acc["type"], path),
                discriminator=discriminator,
                docs=self._parse_docs(acc, path),
            )

        payload = schema.get_type(name)
        if payload is None:
            logger.warning("Account '%s' references a type that is not declared in 'types'", name)
        return AccountDecl(
            name=name,
            source=PayloadSource.BY_NAME,
            payload=payload,
            discriminator=discriminator,
            docs=self._parse_docs(acc, path) or (payload.docs if payload else []),
        )

    def _parse_event_decl(self, ev_data: Any, path: str, schema: ProgramSchema) -> EventDecl:
        ev = self._expect_object(ev_data, path)
        name = self._required_str(ev, "name", path)
        discriminator = self._parse_discriminator(ev, path)

        if "fields" in ev:
            fields = []
            for i, field_data in enumerate(self._expect_list(ev["fields"], f"{path}.fields")):
                field_path = f"{path}.fields[{i}]"
                item = self._expect_object(field_data, field_path)
                # The legacy "index" flag only matters for log indexing
                fields.append(
                    FieldDef(
                        name=self._required_str(item, "name", field_path),
                        type=self._parse_type(self._required(item, "type", field_path), f"{field_path}.type"),
                        docs=self._parse_docs(item, field_path),
                    )
                )
            return EventDecl(
                name=name,
                source=PayloadSource.INLINE,
                payload=TypeDef(name=name, body=StructBody(fields=fields)),
                discriminator=discriminator,
            )

        payload = schema.get_type(name)
        if payload is None:
            logger.warning("Event '%s' references a type that is not declared in 'types'", name)
        return EventDecl(
            name=name,
            source=PayloadSource.BY_NAME,
            payload=payload,
            discriminator=discriminator,
        )

    def _parse_error(self, err_data: Any, path: str) -> ErrorDecl:
        err = self._expect_object(err_data, path)
        code = self._required(err, "code", path)
        if isinstance(code, bool) or not isinstance(code, int):
            raise SchemaParseError("expected an integer", f"{path}.code")
        return ErrorDecl(
            code=code,
            name=self._required_str(err, "name", path),
            msg=self._optional_str(err, "msg", path),
        )

    def _parse_constant(self, const_data: Any, path: str) -> ConstantDecl:
        const = self._expect_object(const_data, path)
        value = self._required(const, "value", path)
        return ConstantDecl(
            name=self._required_str(const, "name", path),
            type=self._parse_type(self._required(const, "type", path), f"{path}.type"),
            value=value if isinstance(value, str) else json.dumps(value),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_discriminator(self, owner: Dict[str, Any], path: str) -> Optional[bytes]:
        """Extract an explicit 8-byte discriminator if present."""
        disc = owner.get("discriminator")
        if disc is None:
            return None
        return parse_discriminator(disc, f"{path}.discriminator")

    def _parse_docs(self, owner: Dict[str, Any], path: str) -> List[str]:
        docs = owner.get("docs")
        if docs is None:
            return []
        if isinstance(docs, str):
            return [docs]
        items = self._expect_list(docs, f"{path}.docs")
        if not all(isinstance(line, str) for line in items):
            raise SchemaParseError("docs must be a list of strings", f"{path}.docs")
        return list(items)

    def _flag(self, owner: Dict[str, Any], keys, path: str) -> bool:
        """Read a boolean that may be spelled several ways; the first spelling present wins."""
        for key in keys:
            if key in owner:
                value = owner[key]
                if not isinstance(value, bool):
                    raise SchemaParseError("expected a boolean", f"{path}.{key}")
                return value
        return False

    @staticmethod
    def _expect_object(value: Any, path: str) -> Dict[str, Any]:
        if not isinstance(value, dict):
            raise SchemaParseError(f"expected an object, got {type(value).__name__}", path)
        return value

    @staticmethod
    def _expect_list(value: Any, path: str) -> List[Any]:
        if not isinstance(value, list):
            raise SchemaParseError(f"expected an array, got {type(value).__name__}", path)
        return value

    def _optional_list(self, owner: Dict[str, Any], key: str, path: str) -> List[Any]:
        value = owner.get(key)
        if value is None:
            return []
        return self._expect_list(value, key if path == "$" else f"{path}.{key}")

    @staticmethod
    def _required(owner: Dict[str, Any], key: str, path: str) -> Any:
        if key not in owner:
            raise SchemaParseError(f"missing required key '{key}'", path)
        return owner[key]

    def _required_str(self, owner: Dict[str, Any], key: str, path: str) -> str:
        value = self._required(owner, key, path)
        if not isinstance(value, str) or not value:
            raise SchemaParseError("expected a non-empty string", f"{path}.{key}")
        return value

    @staticmethod
    def _optional_str(owner: Dict[str, Any], key: str, path: str) -> Optional[str]:
        value = owner.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise SchemaParseError("expected a string", key if path == "$" else f"{path}.{key}")
        return value or None


def parse_discriminator(value: Any, path: str) -> bytes:
    """Validate a JSON discriminator: exactly 8 integers in 0..255."""
    if not isinstance(value, list) or len(value) != DISCRIMINATOR_SIZE:
        raise SchemaParseError(f"discriminator must be exactly {DISCRIMINATOR_SIZE} bytes", path)
    for b in value:
        if isinstance(b, bool) or not isinstance(b, int) or not 0 <= b <= 255:
            raise SchemaParseError("discriminator bytes must be integers in 0..255", path)
    return bytes(value)


def normalize(raw: Any) -> ProgramSchema:
    """Normalize a decoded IDL document into a ``ProgramSchema``."""
    return IDLParser().parse(raw)


def parse_file(path: Union[str, Path]) -> ProgramSchema:
    return IDLParser().parse_file(path)
