"""
A mutable byte buffer for secret material that can be zero-filled in place.
"""

import binascii


class SecretBuffer:
    """
    Holds secret bytes in a `bytearray` so they can be wiped from memory.

    The value is never shown by `repr()` or `str()`.
    """

    __slots__ = ("_data",)

    def __init__(self, value: bytes | bytearray | str = b""):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._data = bytearray(value)

    @property
    def raw(self) -> bytearray:
        """The backing storage. Callers must not keep copies around."""
        return self._data

    def __bool__(self) -> bool:
        return len(self._data) > 0

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretBuffer):
            return self._data == other._data
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        return "SecretBuffer('**********')" if self._data else "SecretBuffer('')"

    __str__ = __repr__

    def set(self, value: bytes | bytearray) -> None:
        """Replaces the content, wiping the previous bytes first."""
        self.wipe()
        self._data[:] = value

    def from_hex(self) -> "SecretBuffer":
        """Decodes this buffer as hexadecimal text into a new buffer."""
        return SecretBuffer(binascii.unhexlify(self._data))

    def wipe(self) -> None:
        """Overwrites every byte with zero, keeping the length."""
        for i in range(len(self._data)):
            self._data[i] = 0

    def is_wiped(self) -> bool:
        return not any(self._data)
