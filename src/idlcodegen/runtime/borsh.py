"""
Length-prefixed binary encoding used by generated bindings.

Layout rules:
- integers are little-endian, 8 to 128 bits
- ``bool`` is one byte, 0 or 1
- ``string``, ``bytes`` and ``vec`` carry a ``u32`` length prefix
- ``option`` carries a one-byte tag (0 = none, 1 = some)
- fixed arrays carry no prefix
- an enum value is a one-byte variant index followed by the variant's fields
"""

import struct
from typing import Any, Callable, ClassVar, List, Mapping, Optional, Sequence, Tuple, Type

from solders.pubkey import Pubkey

from .errors import DiscriminatorMismatch, PayloadMalformed, PayloadTooShort, UnknownDiscriminator

DISCRIMINATOR_SIZE = 8
PUBKEY_SIZE = 32
LENGTH_PREFIX_SIZE = 4

_U8 = struct.Struct("<B")
_I8 = struct.Struct("<b")
_U16 = struct.Struct("<H")
_I16 = struct.Struct("<h")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")
_F32 = struct.Struct("<f")
_F64 = struct.Struct("<d")


class BorshWriter:
    """Accumulates an encoded payload."""

    def __init__(self):
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def write_raw(self, data: bytes) -> None:
        self._buf += data

    def write_discriminator(self, tag: bytes) -> None:
        if len(tag) != DISCRIMINATOR_SIZE:
            raise ValueError(f"discriminator must be {DISCRIMINATOR_SIZE} bytes, got {len(tag)}")
        self._buf += tag

    def _pack(self, codec: struct.Struct, kind: str, value: Any) -> None:
        try:
            self._buf += codec.pack(value)
        except struct.error as e:
            raise ValueError(f"{value!r} cannot be encoded as {kind}") from e

    def write_u8(self, value: int) -> None:
        self._pack(_U8, "u8", value)

    def write_i8(self, value: int) -> None:
        self._pack(_I8, "i8", value)

    def write_u16(self, value: int) -> None:
        self._pack(_U16, "u16", value)

    def write_i16(self, value: int) -> None:
        self._pack(_I16, "i16", value)

    def write_u32(self, value: int) -> None:
        self._pack(_U32, "u32", value)

    def write_i32(self, value: int) -> None:
        self._pack(_I32, "i32", value)

    def write_u64(self, value: int) -> None:
        self._pack(_U64, "u64", value)

    def write_i64(self, value: int) -> None:
        self._pack(_I64, "i64", value)

    def write_u128(self, value: int) -> None:
        self._buf += _int_to_bytes(value, 16, signed=False, kind="u128")

    def write_i128(self, value: int) -> None:
        self._buf += _int_to_bytes(value, 16, signed=True, kind="i128")

    def write_f32(self, value: float) -> None:
        self._pack(_F32, "f32", value)

    def write_f64(self, value: float) -> None:
        self._pack(_F64, "f64", value)

    def write_bool(self, value: bool) -> None:
        self._buf.append(1 if value else 0)

    def write_string(self, value: str) -> None:
        data = value.encode("utf-8")
        self.write_u32(len(data))
        self._buf += data

    def write_bytes(self, value: bytes) -> None:
        self.write_u32(len(value))
        self._buf += bytes(value)

    def write_pubkey(self, value: Pubkey) -> None:
        raw = bytes(value)
        if len(raw) != PUBKEY_SIZE:
            raise ValueError(f"pubkey must be {PUBKEY_SIZE} bytes, got {len(raw)}")
        self._buf += raw

    def write_vec(self, items: Sequence[Any], write_item: Callable[[Any], None]) -> None:
        self.write_u32(len(items))
        for item in items:
            write_item(item)

    def write_array(self, items: Sequence[Any], length: int, write_item: Callable[[Any], None]) -> None:
        if len(items) != length:
            raise ValueError(f"fixed array expects {length} items, got {len(items)}")
        for item in items:
            write_item(item)

    def write_option(self, value: Optional[Any], write_item: Callable[[Any], None]) -> None:
        if value is None:
            self._buf.append(0)
        else:
            self._buf.append(1)
            write_item(value)


class BorshReader:
    """
    Cursor over an encoded payload.

    Every read checks the remaining length first, so short input raises
    ``PayloadTooShort`` instead of reading out of bounds. ``read_field`` and
    the sequence readers maintain a structural path that is attached to every
    error raised underneath them.
    """

    def __init__(self, data: bytes, offset: int = 0, context: str = ""):
        self._view = memoryview(data)
        self._offset = offset
        self._path: List[str] = [context] if context else []

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._view) - self._offset

    @property
    def path(self) -> str:
        out = ""
        for part in self._path:
            if out and not part.startswith("["):
                out += "."
            out += part
        return out

    def malformed(self, reason: str) -> PayloadMalformed:
        return PayloadMalformed(reason, self.path)

    def require(self, size: int) -> None:
        if self.remaining < size:
            raise PayloadTooShort(size, max(self.remaining, 0), self.path)

    def read_field(self, name: str, read: Callable[[], Any]) -> Any:
        self._path.append(name)
        try:
            return read()
        finally:
            self._path.pop()

    def read_raw(self, size: int) -> bytes:
        self.require(size)
        start = self._offset
        self._offset += size
        return bytes(self._view[start:self._offset])

    def _unpack(self, codec: struct.Struct) -> Any:
        self.require(codec.size)
        (value,) = codec.unpack_from(self._view, self._offset)
        self._offset += codec.size
        return value

    def read_u8(self) -> int:
        return self._unpack(_U8)

    def read_i8(self) -> int:
        return self._unpack(_I8)

    def read_u16(self) -> int:
        return self._unpack(_U16)

    def read_i16(self) -> int:
        return self._unpack(_I16)

    def read_u32(self) -> int:
        return self._unpack(_U32)

    def read_i32(self) -> int:
        return self._unpack(_I32)

    def read_u64(self) -> int:
        return self._unpack(_U64)

    def read_i64(self) -> int:
        return self._unpack(_I64)

    def read_u128(self) -> int:
        return int.from_bytes(self.read_raw(16), "little", signed=False)

    def read_i128(self) -> int:
        return int.from_bytes(self.read_raw(16), "little", signed=True)

    def read_f32(self) -> float:
        return self._unpack(_F32)

    def read_f64(self) -> float:
        return self._unpack(_F64)

    def read_bool(self) -> bool:
        value = self.read_u8()
        if value > 1:
            raise self.malformed(f"invalid bool value {value}")
        return value == 1

    def read_string(self) -> str:
        raw = self.read_raw(self.read_u32())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise self.malformed(f"invalid UTF-8 string: {e.reason}") from e

    def read_bytes(self) -> bytes:
        return self.read_raw(self.read_u32())

    def read_pubkey(self) -> Pubkey:
        return Pubkey.from_bytes(self.read_raw(PUBKEY_SIZE))

    def read_vec(self, read_item: Callable[[], Any]) -> List[Any]:
        count = self.read_u32()
        # More items than bytes left: every item must consume input, so a
        # bogus prefix fails within `remaining` reads.
        return self._read_items(count, read_item, must_advance=count > self.remaining)

    def read_array(self, length: int, read_item: Callable[[], Any]) -> List[Any]:
        return self._read_items(length, read_item)

    def _read_items(
        self, count: int, read_item: Callable[[], Any], must_advance: bool = False
    ) -> List[Any]:
        items = []
        for i in range(count):
            self._path.append(f"[{i}]")
            try:
                start = self._offset
                items.append(read_item())
                if must_advance and self._offset == start:
                    raise self.malformed(
                        f"length {count} exceeds the {self.remaining} remaining bytes "
                        "and items consume no input"
                    )
            finally:
                self._path.pop()
        return items

    def read_option(self, read_item: Callable[[], Any]) -> Optional[Any]:
        tag = self.read_u8()
        if tag == 0:
            return None
        if tag == 1:
            return read_item()
        raise self.malformed(f"invalid option tag {tag}")

    def expect_discriminator(self, expected: bytes) -> None:
        actual = self.read_raw(DISCRIMINATOR_SIZE)
        if actual != expected:
            raise DiscriminatorMismatch(expected, actual, self.path)

    def read_fixed(self, cls: Type[Any]) -> Any:
        """Cast the next ``cls.LAYOUT.size`` bytes onto ``cls``'s fixed layout."""
        size = cls.LAYOUT.size
        self.require(size)
        value = cls.from_layout_bytes(self._view, self._offset)
        self._offset += size
        return value


class BorshEnum:
    """
    Base class for generated sum types.

    Subclasses list their variant classes in ``VARIANTS``; each variant class
    sets ``INDEX`` and, when it carries fields, overrides
    ``_serialize_fields`` / ``_deserialize_fields``.
    """

    VARIANTS: ClassVar[Tuple[type, ...]] = ()
    INDEX: ClassVar[int] = -1

    def serialize(self, w: BorshWriter) -> None:
        w.write_u8(self.INDEX)
        self._serialize_fields(w)

    def _serialize_fields(self, w: BorshWriter) -> None:
        pass

    @classmethod
    def deserialize(cls, r: BorshReader) -> "BorshEnum":
        index = r.read_u8()
        if index >= len(cls.VARIANTS):
            raise r.malformed(f"invalid variant index {index} for {cls.__name__}")
        variant = cls.VARIANTS[index]
        return r.read_field(variant.__name__, lambda: variant._deserialize_fields(r))

    @classmethod
    def _deserialize_fields(cls, r: BorshReader) -> "BorshEnum":
        return cls()


def dispatch(table: Mapping[bytes, Any], data: bytes, context: str) -> Any:
    """Decode ``data`` with the entry of ``table`` keyed by its 8-byte prefix."""
    if len(data) < DISCRIMINATOR_SIZE:
        raise PayloadTooShort(DISCRIMINATOR_SIZE, len(data), context)
    tag = bytes(data[:DISCRIMINATOR_SIZE])
    decoder = table.get(tag)
    if decoder is None:
        raise UnknownDiscriminator(tag, context, kind=context)
    return decoder.from_bytes(data)


def _int_to_bytes(value: int, size: int, signed: bool, kind: str) -> bytes:
    try:
        return int(value).to_bytes(size, "little", signed=signed)
    except OverflowError as e:
        raise ValueError(f"{value!r} cannot be encoded as {kind}") from e
