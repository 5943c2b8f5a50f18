"""
Fixed-layout (zero-copy) framing.

A fixed-layout type is a plain record whose fields sit at statically known,
alignment-padded offsets. Decoding casts the payload bytes onto the layout
instead of walking a length-prefixed stream.
"""

import struct
from typing import Any, Callable, ClassVar, Dict, List, Sequence, Tuple

from solders.pubkey import Pubkey

from .errors import PayloadTooShort


def align_up(offset: int, align: int) -> int:
    return (offset + align - 1) // align * align


class FixedType:
    """A field type with a statically known size and alignment."""

    name: str = ""
    size: int = 0
    align: int = 1

    def unpack(self, buf: Any, offset: int) -> Any:
        raise NotImplementedError

    def pack_into(self, buf: bytearray, offset: int, value: Any) -> None:
        raise NotImplementedError


class FixedScalar(FixedType):
    """Numeric scalar backed by a ``struct`` format; naturally aligned."""

    def __init__(self, name: str, fmt: str):
        self.name = name
        self._codec = struct.Struct("<" + fmt)
        self.size = self._codec.size
        self.align = self.size

    def unpack(self, buf: Any, offset: int) -> Any:
        return self._codec.unpack_from(buf, offset)[0]

    def pack_into(self, buf: bytearray, offset: int, value: Any) -> None:
        try:
            self._codec.pack_into(buf, offset, value)
        except struct.error as e:
            raise ValueError(f"{value!r} cannot be encoded as {self.name}") from e


class FixedWideInt(FixedType):
    """128-bit integer. 16 bytes wide, 8-byte aligned."""

    def __init__(self, name: str, signed: bool):
        self.name = name
        self.signed = signed
        self.size = 16
        self.align = 8

    def unpack(self, buf: Any, offset: int) -> int:
        return int.from_bytes(bytes(buf[offset:offset + 16]), "little", signed=self.signed)

    def pack_into(self, buf: bytearray, offset: int, value: int) -> None:
        try:
            buf[offset:offset + 16] = int(value).to_bytes(16, "little", signed=self.signed)
        except OverflowError as e:
            raise ValueError(f"{value!r} cannot be encoded as {self.name}") from e


class FixedBool(FixedType):
    name = "bool"
    size = 1
    align = 1

    def unpack(self, buf: Any, offset: int) -> bool:
        return buf[offset] != 0

    def pack_into(self, buf: bytearray, offset: int, value: bool) -> None:
        buf[offset] = 1 if value else 0


class FixedPubkey(FixedType):
    name = "pubkey"
    size = 32
    align = 1

    def unpack(self, buf: Any, offset: int) -> Pubkey:
        return Pubkey.from_bytes(bytes(buf[offset:offset + 32]))

    def pack_into(self, buf: bytearray, offset: int, value: Pubkey) -> None:
        buf[offset:offset + 32] = bytes(value)


class FixedArrayType(FixedType):
    def __init__(self, elem: FixedType, length: int):
        self.elem = elem
        self.length = length

    @property
    def name(self) -> str:
        return f"[{self.elem.name}; {self.length}]"

    @property
    def size(self) -> int:
        return self.elem.size * self.length

    @property
    def align(self) -> int:
        return self.elem.align

    def unpack(self, buf: Any, offset: int) -> List[Any]:
        step = self.elem.size
        return [self.elem.unpack(buf, offset + i * step) for i in range(self.length)]

    def pack_into(self, buf: bytearray, offset: int, value: Sequence[Any]) -> None:
        if len(value) != self.length:
            raise ValueError(f"fixed array expects {self.length} items, got {len(value)}")
        step = self.elem.size
        for i, item in enumerate(value):
            self.elem.pack_into(buf, offset + i * step, item)


class NestedLayout(FixedType):
    """
    Embeds another fixed-layout class.

    The class is resolved lazily so layouts can refer to classes defined
    later in the same module.
    """

    def __init__(self, resolve: Callable[[], type]):
        self._resolve = resolve

    @property
    def target(self) -> type:
        return self._resolve()

    @property
    def name(self) -> str:
        return self.target.__name__

    @property
    def size(self) -> int:
        return self.target.LAYOUT.size

    @property
    def align(self) -> int:
        return self.target.LAYOUT.align

    def unpack(self, buf: Any, offset: int) -> Any:
        cls = self.target
        return cls(**cls.LAYOUT.unpack(buf, offset))

    def pack_into(self, buf: bytearray, offset: int, value: Any) -> None:
        self.target.LAYOUT.pack_into(buf, offset, value)


U8 = FixedScalar("u8", "B")
I8 = FixedScalar("i8", "b")
U16 = FixedScalar("u16", "H")
I16 = FixedScalar("i16", "h")
U32 = FixedScalar("u32", "I")
I32 = FixedScalar("i32", "i")
U64 = FixedScalar("u64", "Q")
I64 = FixedScalar("i64", "q")
F32 = FixedScalar("f32", "f")
F64 = FixedScalar("f64", "d")
U128 = FixedWideInt("u128", signed=False)
I128 = FixedWideInt("i128", signed=True)
BOOL = FixedBool()
PUBKEY = FixedPubkey()

SCALARS: Dict[str, FixedType] = {
    t.name: t for t in (U8, I8, U16, I16, U32, I32, U64, I64, F32, F64, U128, I128, BOOL, PUBKEY)
}


def array(elem: FixedType, length: int) -> FixedArrayType:
    return FixedArrayType(elem, length)


def nested(resolve: Callable[[], type]) -> NestedLayout:
    return NestedLayout(resolve)


class FixedLayout:
    """
    Ordered field layout with natural alignment.

    Each field starts at the next multiple of its alignment; the total size is
    rounded up to the largest field alignment. ``packed`` layouts use
    alignment 1 throughout, so there is no padding at all.
    """

    def __init__(self, fields: Sequence[Tuple[str, FixedType]], packed: bool = False):
        self.fields = list(fields)
        self.packed = packed
        self._plan = None

    def _compute(self) -> Tuple[List[int], int, int]:
        if self._plan is None:
            offsets = []
            offset = 0
            max_align = 1
            for _, ftype in self.fields:
                field_align = 1 if self.packed else ftype.align
                offset = align_up(offset, field_align)
                offsets.append(offset)
                offset += ftype.size
                max_align = max(max_align, field_align)
            self._plan = (offsets, align_up(offset, max_align), max_align)
        return self._plan

    @property
    def offsets(self) -> List[int]:
        return list(self._compute()[0])

    @property
    def size(self) -> int:
        return self._compute()[1]

    @property
    def align(self) -> int:
        return self._compute()[2]

    @property
    def padding(self) -> int:
        return self.size - sum(ftype.size for _, ftype in self.fields)

    def unpack(self, buf: Any, offset: int = 0) -> Dict[str, Any]:
        return {
            name: ftype.unpack(buf, offset + field_offset)
            for (name, ftype), field_offset in zip(self.fields, self._compute()[0])
        }

    def pack_into(self, buf: bytearray, offset: int, obj: Any) -> None:
        for (name, ftype), field_offset in zip(self.fields, self._compute()[0]):
            ftype.pack_into(buf, offset + field_offset, getattr(obj, name))


class ZeroCopy:
    """Mixin for generated classes with a fixed ``LAYOUT``."""

    LAYOUT: ClassVar[FixedLayout]

    def to_layout_bytes(self) -> bytes:
        buf = bytearray(self.LAYOUT.size)
        self.LAYOUT.pack_into(buf, 0, self)
        return bytes(buf)

    @classmethod
    def from_layout_bytes(cls, data: Any, offset: int = 0) -> Any:
        size = cls.LAYOUT.size
        available = len(data) - offset
        if available < size:
            raise PayloadTooShort(size, max(available, 0), cls.__name__)
        return cls(**cls.LAYOUT.unpack(data, offset))
