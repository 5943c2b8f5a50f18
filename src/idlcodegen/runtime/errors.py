"""Errors raised by generated bindings while decoding program data."""

from typing import Optional


class DecodeError(Exception):
    """
    Base class for decode failures.

    ``path`` names the structural position that failed, for example
    ``PoolStateAccount.data.reward_infos[2].emissions``.
    """

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class PayloadTooShort(DecodeError):
    def __init__(self, needed: int, available: int, path: str = ""):
        self.needed = needed
        self.available = available
        super().__init__(f"payload too short: needed {needed} bytes, {available} available", path)


class PayloadMalformed(DecodeError):
    def __init__(self, reason: str, path: str = ""):
        self.reason = reason
        super().__init__(f"payload malformed: {reason}", path)


class DiscriminatorMismatch(DecodeError):
    def __init__(self, expected: bytes, actual: bytes, path: str = ""):
        self.expected = bytes(expected)
        self.actual = bytes(actual)
        super().__init__(
            f"discriminator does not match. Expected: {list(self.expected)}. Received: {list(self.actual)}",
            path,
        )


class UnknownDiscriminator(DecodeError):
    """No declaration in a dispatch table carries this 8-byte prefix."""

    def __init__(self, actual: bytes, path: str = "", kind: Optional[str] = None):
        self.actual = bytes(actual)
        self.kind = kind
        what = f"{kind} " if kind else ""
        super().__init__(f"unknown {what}discriminator {list(self.actual)}", path)
