# Derived from the Bitcoin Core test framework (test/functional/test_framework/script.py)

#!/usr/bin/env python3
# Copyright (c) 2015-2022 The Bitcoin Core developers
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

"""Tapscript serialization: opcodes, minimal pushes and CScript.

Only the part of the Script language that is needed to build tapscript leaves is covered here.
"""

import struct
from typing import Iterable, Iterator, Optional, Tuple, Union


LEAF_VERSION_TAPSCRIPT = 0xc0

# Largest leaf script we accept. Tapscript has no consensus limit on its own, but standard
# policy and the legacy consensus rules cap scripts at 10k bytes.
MAX_SCRIPT_SIZE = 10000


def ser_compact_size(n: int) -> bytes:
    if n < 253:
        return struct.pack("B", n)
    elif n < 0x10000:
        return struct.pack("<BH", 253, n)
    elif n < 0x100000000:
        return struct.pack("<BI", 254, n)
    return struct.pack("<BQ", 255, n)


def compact_size_len(n: int) -> int:
    return len(ser_compact_size(n))


def bn2vch(v: int) -> bytes:
    """Convert number to bitcoin-specific little endian format."""
    # We need v.bit_length() bits, plus a sign bit for every nonzero number.
    n_bits = v.bit_length() + (v != 0)
    # The number of bytes for that is:
    n_bytes = (n_bits + 7) // 8
    # Convert number to absolute value + sign in top bit.
    encoded_v = 0 if v == 0 else abs(v) | ((v < 0) << (n_bytes * 8 - 1))
    # Serialize to bytes
    return encoded_v.to_bytes(n_bytes, 'little')


OPCODE_NAMES = {}


class CScriptOp(int):
    """A single script opcode"""
    __slots__ = ()

    @staticmethod
    def encode_op_pushdata(d: bytes) -> bytes:
        """Encode a PUSHDATA op, returning bytes"""
        if len(d) < 0x4c:
            return b'' + bytes([len(d)]) + d  # OP_PUSHDATA
        elif len(d) <= 0xff:
            return b'\x4c' + bytes([len(d)]) + d  # OP_PUSHDATA1
        elif len(d) <= 0xffff:
            return b'\x4d' + struct.pack(b'<H', len(d)) + d  # OP_PUSHDATA2
        elif len(d) <= 0xffffffff:
            return b'\x4e' + struct.pack(b'<I', len(d)) + d  # OP_PUSHDATA4
        else:
            raise ValueError("Data too long to encode in a PUSHDATA op")

    @staticmethod
    def encode_op_n(n: int) -> 'CScriptOp':
        """Encode a small integer op, returning an opcode"""
        if not (0 <= n <= 16):
            raise ValueError('Integer must be in range 0 <= n <= 16, got %d' % n)

        if n == 0:
            return OP_0
        else:
            return CScriptOp(OP_1 + n - 1)

    def __str__(self):
        return repr(self)

    def __repr__(self):
        if self in OPCODE_NAMES:
            return OPCODE_NAMES[self]
        else:
            return 'CScriptOp(0x%x)' % self


def _opcode(value: int, name: str) -> CScriptOp:
    op = CScriptOp(value)
    OPCODE_NAMES[op] = name
    return op


# push value
OP_0 = _opcode(0x00, 'OP_0')
OP_PUSHDATA1 = _opcode(0x4c, 'OP_PUSHDATA1')
OP_PUSHDATA2 = _opcode(0x4d, 'OP_PUSHDATA2')
OP_PUSHDATA4 = _opcode(0x4e, 'OP_PUSHDATA4')
OP_1NEGATE = _opcode(0x4f, 'OP_1NEGATE')
OP_1 = _opcode(0x51, 'OP_1')
OP_2 = _opcode(0x52, 'OP_2')
OP_3 = _opcode(0x53, 'OP_3')
OP_4 = _opcode(0x54, 'OP_4')
OP_5 = _opcode(0x55, 'OP_5')
OP_6 = _opcode(0x56, 'OP_6')
OP_7 = _opcode(0x57, 'OP_7')
OP_8 = _opcode(0x58, 'OP_8')
OP_9 = _opcode(0x59, 'OP_9')
OP_10 = _opcode(0x5a, 'OP_10')
OP_11 = _opcode(0x5b, 'OP_11')
OP_12 = _opcode(0x5c, 'OP_12')
OP_13 = _opcode(0x5d, 'OP_13')
OP_14 = _opcode(0x5e, 'OP_14')
OP_15 = _opcode(0x5f, 'OP_15')
OP_16 = _opcode(0x60, 'OP_16')

# control
OP_VERIFY = _opcode(0x69, 'OP_VERIFY')

# stack ops
OP_DROP = _opcode(0x75, 'OP_DROP')
OP_DUP = _opcode(0x76, 'OP_DUP')

# bit logic
OP_EQUAL = _opcode(0x87, 'OP_EQUAL')
OP_EQUALVERIFY = _opcode(0x88, 'OP_EQUALVERIFY')

# crypto
OP_SHA256 = _opcode(0xa8, 'OP_SHA256')
OP_CHECKSIG = _opcode(0xac, 'OP_CHECKSIG')
OP_CHECKSIGVERIFY = _opcode(0xad, 'OP_CHECKSIGVERIFY')

# expansion
OP_CHECKLOCKTIMEVERIFY = _opcode(0xb1, 'OP_CHECKLOCKTIMEVERIFY')
OP_CHECKSEQUENCEVERIFY = _opcode(0xb2, 'OP_CHECKSEQUENCEVERIFY')

# tapscript
OP_CHECKSIGADD = _opcode(0xba, 'OP_CHECKSIGADD')


ScriptElement = Union[CScriptOp, int, bytes]


class CScript(bytes):
    """Serialized script

    A bytes subclass, so you can use this directly whenever bytes are accepted.

    It can be constructed from a list of opcodes, integers (pushed as minimally encoded numbers)
    and byte strings (pushed as data).
    """
    __slots__ = ()

    @classmethod
    def __coerce_instance(cls, other: ScriptElement) -> bytes:
        # Coerce other into bytes
        if isinstance(other, CScriptOp):
            other = bytes([other])
        elif isinstance(other, int):
            if 0 <= other <= 16:
                other = bytes([CScriptOp.encode_op_n(other)])
            elif other == -1:
                other = bytes([OP_1NEGATE])
            else:
                other = CScriptOp.encode_op_pushdata(bn2vch(other))
        elif isinstance(other, (bytes, bytearray)):
            other = CScriptOp.encode_op_pushdata(bytes(other))
        else:
            raise TypeError(f"Cannot coerce {type(other).__name__} into a script element")
        return other

    def __add__(self, other):
        # add makes no sense for a CScript()
        raise NotImplementedError

    def join(self, iterable):
        # join makes no sense for a CScript()
        raise NotImplementedError

    def __new__(cls, value: Union[bytes, Iterable[ScriptElement]] = b''):
        if isinstance(value, (bytes, bytearray)):
            return super().__new__(cls, value)
        else:
            return super().__new__(cls, b''.join(cls.__coerce_instance(instance) for instance in value))

    def raw_iter(self) -> Iterator[Tuple[int, Optional[bytes]]]:
        """Raw iteration

        Yields tuples of (opcode, data), where data is None for opcodes that do not push data.
        """
        i = 0
        while i < len(self):
            opcode = self[i]
            i += 1

            if opcode > OP_PUSHDATA4 or opcode == OP_0:
                yield (opcode, None)
                continue

            if opcode < OP_PUSHDATA1:
                datasize = opcode
            elif opcode == OP_PUSHDATA1:
                if i >= len(self):
                    raise ValueError('PUSHDATA1: missing data length')
                datasize = self[i]
                i += 1
            elif opcode == OP_PUSHDATA2:
                if i + 1 >= len(self):
                    raise ValueError('PUSHDATA2: missing data length')
                datasize = self[i] + (self[i + 1] << 8)
                i += 2
            else:
                if i + 3 >= len(self):
                    raise ValueError('PUSHDATA4: missing data length')
                datasize = struct.unpack('<I', self[i:i + 4])[0]
                i += 4

            data = bytes(self[i:i + datasize])
            if len(data) < datasize:
                raise ValueError('PUSHDATA: truncated data')
            i += datasize

            yield (opcode, data)

    def __iter__(self):
        """Cooked iteration

        Yields pushed data as bytes, small integer opcodes as ints and other opcodes as CScriptOp,
        so that a script can be spliced into another one with CScript([*a, *b]).
        """
        for opcode, data in self.raw_iter():
            if data is not None:
                yield data
            elif opcode == OP_0:
                yield 0
            elif OP_1 <= opcode <= OP_16:
                yield opcode - OP_1 + 1
            elif opcode == OP_1NEGATE:
                yield -1
            else:
                yield CScriptOp(opcode)

    def disassemble(self) -> str:
        parts = []
        for opcode, data in self.raw_iter():
            if data is not None:
                parts.append(data.hex())
            else:
                parts.append(repr(CScriptOp(opcode)))
        return ' '.join(parts)

    def __repr__(self):
        return f"CScript([{self.disassemble()}])"
