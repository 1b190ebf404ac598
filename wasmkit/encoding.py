"""Binary encoding primitives: LEB128 writer, value types, constants and numeric opcodes."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

_U32_MAX = (1 << 32) - 1
_I32_MIN, _I32_MAX = -(1 << 31), (1 << 31) - 1
_I64_MIN, _I64_MAX = -(1 << 63), (1 << 63) - 1
_V128_MAX = (1 << 128) - 1

_SIMD_PREFIX = 0xFD
_MISC_PREFIX = 0xFC


def _unsigned_leb128(value: int) -> bytes:
    out = bytearray()
    while True:
        low = value & 0x7F
        value >>= 7
        if value:
            out.append(low | 0x80)
        else:
            out.append(low)
            return bytes(out)


def _signed_leb128(value: int) -> bytes:
    out = bytearray()
    while True:
        low = value & 0x7F
        value >>= 7
        done = (value == 0 and not low & 0x40) or (value == -1 and low & 0x40)
        if done:
            out.append(low)
            return bytes(out)
        out.append(low | 0x80)


class Encoder:
    """Accumulates the bytes of a wasm binary."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def byte(self, value: int) -> None:
        """Append a single byte."""
        if not 0 <= value <= 0xFF:
            raise ValueError(f"byte out of range: {value}")
        self._buf.append(value)

    def raw(self, data: bytes) -> None:
        """Append bytes verbatim."""
        self._buf.extend(data)

    def u32(self, value: int) -> None:
        """Append an unsigned 32-bit LEB128 integer."""
        if not 0 <= value <= _U32_MAX:
            raise ValueError(f"u32 out of range: {value}")
        self._buf.extend(_unsigned_leb128(value))

    def i32(self, value: int) -> None:
        """Append a signed 32-bit LEB128 integer."""
        if not _I32_MIN <= value <= _I32_MAX:
            raise ValueError(f"i32 out of range: {value}")
        self._buf.extend(_signed_leb128(value))

    def i64(self, value: int) -> None:
        """Append a signed 64-bit LEB128 integer."""
        if not _I64_MIN <= value <= _I64_MAX:
            raise ValueError(f"i64 out of range: {value}")
        self._buf.extend(_signed_leb128(value))

    def usize(self, value: int) -> None:
        """Append a count or length as an unsigned 32-bit LEB128 integer."""
        if value < 0:
            raise ValueError(f"negative size: {value}")
        self.u32(value)

    def blob(self, data: bytes) -> None:
        """Append length-prefixed bytes."""
        self.usize(len(data))
        self.raw(data)

    def string(self, value: str) -> None:
        """Append a length-prefixed UTF-8 string."""
        self.blob(value.encode("utf-8"))

    def pos(self) -> int:
        """Current write offset."""
        return len(self._buf)

    def getvalue(self) -> bytes:
        """Everything written so far."""
        return bytes(self._buf)

    def simd(self, opcode: int) -> None:
        """Append a SIMD-prefixed opcode."""
        self.byte(_SIMD_PREFIX)
        self.u32(opcode)


class ValType(enum.Enum):
    """A wasm value type with its binary type code."""

    I32 = 0x7F
    I64 = 0x7E
    F32 = 0x7D
    F64 = 0x7C
    V128 = 0x7B
    EXTERNREF = 0x6F
    FUNCREF = 0x70

    def emit(self, encoder: Encoder) -> None:
        """Write this type's code."""
        encoder.byte(self.value)


@dataclass(frozen=True)
class Value:
    """A constant of a numeric type."""

    ty: ValType
    value: int | float

    def emit(self, encoder: Encoder) -> None:
        """Write the `const` instruction that produces this value."""
        if self.ty is ValType.I32:
            encoder.byte(0x41)
            encoder.i32(int(self.value))
        elif self.ty is ValType.I64:
            encoder.byte(0x42)
            encoder.i64(int(self.value))
        elif self.ty is ValType.F32:
            encoder.byte(0x43)
            encoder.raw(struct.pack("<f", float(self.value)))
        elif self.ty is ValType.F64:
            encoder.byte(0x44)
            encoder.raw(struct.pack("<d", float(self.value)))
        elif self.ty is ValType.V128:
            bits = int(self.value)
            if not 0 <= bits <= _V128_MAX:
                raise ValueError(f"v128 out of range: {bits}")
            encoder.simd(12)
            encoder.raw(bits.to_bytes(16, "little"))
        else:
            raise ValueError(f"no constant encoding for {self.ty.name}")


def _op(code: int) -> tuple:
    return (None, code, False)


def _simd(code: int) -> tuple:
    return (_SIMD_PREFIX, code, False)


def _simd_lane(code: int) -> tuple:
    return (_SIMD_PREFIX, code, True)


def _misc(code: int) -> tuple:
    return (_MISC_PREFIX, code, False)


def _emit_op(spec: tuple, name: str, encoder: Encoder, lane: int | None) -> None:
    prefix, opcode, takes_lane = spec
    if takes_lane and lane is None:
        raise ValueError(f"{name} requires a lane index")
    if not takes_lane and lane is not None:
        raise ValueError(f"{name} takes no lane index")
    if prefix is None:
        encoder.byte(opcode)
    else:
        encoder.byte(prefix)
        encoder.u32(opcode)
    if takes_lane:
        encoder.byte(lane)


@enum.unique
class BinaryOp(enum.Enum):
    """Operators that take two operands."""

    I32_EQ = _op(0x46)
    I32_NE = _op(0x47)
    I32_LT_S = _op(0x48)
    I32_LT_U = _op(0x49)
    I32_GT_S = _op(0x4A)
    I32_GT_U = _op(0x4B)
    I32_LE_S = _op(0x4C)
    I32_LE_U = _op(0x4D)
    I32_GE_S = _op(0x4E)
    I32_GE_U = _op(0x4F)

    I64_EQ = _op(0x51)
    I64_NE = _op(0x52)
    I64_LT_S = _op(0x53)
    I64_LT_U = _op(0x54)
    I64_GT_S = _op(0x55)
    I64_GT_U = _op(0x56)
    I64_LE_S = _op(0x57)
    I64_LE_U = _op(0x58)
    I64_GE_S = _op(0x59)
    I64_GE_U = _op(0x5A)

    F32_EQ = _op(0x5B)
    F32_NE = _op(0x5C)
    F32_LT = _op(0x5D)
    F32_GT = _op(0x5E)
    F32_LE = _op(0x5F)
    F32_GE = _op(0x60)

    F64_EQ = _op(0x61)
    F64_NE = _op(0x62)
    F64_LT = _op(0x63)
    F64_GT = _op(0x64)
    F64_LE = _op(0x65)
    F64_GE = _op(0x66)

    I32_ADD = _op(0x6A)
    I32_SUB = _op(0x6B)
    I32_MUL = _op(0x6C)
    I32_DIV_S = _op(0x6D)
    I32_DIV_U = _op(0x6E)
    I32_REM_S = _op(0x6F)
    I32_REM_U = _op(0x70)
    I32_AND = _op(0x71)
    I32_OR = _op(0x72)
    I32_XOR = _op(0x73)
    I32_SHL = _op(0x74)
    I32_SHR_S = _op(0x75)
    I32_SHR_U = _op(0x76)
    I32_ROTL = _op(0x77)
    I32_ROTR = _op(0x78)

    I64_ADD = _op(0x7C)
    I64_SUB = _op(0x7D)
    I64_MUL = _op(0x7E)
    I64_DIV_S = _op(0x7F)
    I64_DIV_U = _op(0x80)
    I64_REM_S = _op(0x81)
    I64_REM_U = _op(0x82)
    I64_AND = _op(0x83)
    I64_OR = _op(0x84)
    I64_XOR = _op(0x85)
    I64_SHL = _op(0x86)
    I64_SHR_S = _op(0x87)
    I64_SHR_U = _op(0x88)
    I64_ROTL = _op(0x89)
    I64_ROTR = _op(0x8A)

    F32_ADD = _op(0x92)
    F32_SUB = _op(0x93)
    F32_MUL = _op(0x94)
    F32_DIV = _op(0x95)
    F32_MIN = _op(0x96)
    F32_MAX = _op(0x97)
    F32_COPYSIGN = _op(0x98)

    F64_ADD = _op(0xA0)
    F64_SUB = _op(0xA1)
    F64_MUL = _op(0xA2)
    F64_DIV = _op(0xA3)
    F64_MIN = _op(0xA4)
    F64_MAX = _op(0xA5)
    F64_COPYSIGN = _op(0xA6)

    I8X16_REPLACE_LANE = _simd_lane(23)
    I16X8_REPLACE_LANE = _simd_lane(26)
    I32X4_REPLACE_LANE = _simd_lane(28)
    I64X2_REPLACE_LANE = _simd_lane(30)
    F32X4_REPLACE_LANE = _simd_lane(32)
    F64X2_REPLACE_LANE = _simd_lane(34)

    I8X16_EQ = _simd(0x23)
    I8X16_NE = _simd(0x24)
    I8X16_LT_S = _simd(0x25)
    I8X16_LT_U = _simd(0x26)
    I8X16_GT_S = _simd(0x27)
    I8X16_GT_U = _simd(0x28)
    I8X16_LE_S = _simd(0x29)
    I8X16_LE_U = _simd(0x2A)
    I8X16_GE_S = _simd(0x2B)
    I8X16_GE_U = _simd(0x2C)

    I16X8_EQ = _simd(0x2D)
    I16X8_NE = _simd(0x2E)
    I16X8_LT_S = _simd(0x2F)
    I16X8_LT_U = _simd(0x30)
    I16X8_GT_S = _simd(0x31)
    I16X8_GT_U = _simd(0x32)
    I16X8_LE_S = _simd(0x33)
    I16X8_LE_U = _simd(0x34)
    I16X8_GE_S = _simd(0x35)
    I16X8_GE_U = _simd(0x36)

    I32X4_EQ = _simd(0x37)
    I32X4_NE = _simd(0x38)
    I32X4_LT_S = _simd(0x39)
    I32X4_LT_U = _simd(0x3A)
    I32X4_GT_S = _simd(0x3B)
    I32X4_GT_U = _simd(0x3C)
    I32X4_LE_S = _simd(0x3D)
    I32X4_LE_U = _simd(0x3E)
    I32X4_GE_S = _simd(0x3F)
    I32X4_GE_U = _simd(0x40)

    I64X2_EQ = _simd(214)
    I64X2_NE = _simd(215)
    I64X2_LT_S = _simd(216)
    I64X2_GT_S = _simd(217)
    I64X2_LE_S = _simd(218)
    I64X2_GE_S = _simd(219)

    F32X4_EQ = _simd(0x41)
    F32X4_NE = _simd(0x42)
    F32X4_LT = _simd(0x43)
    F32X4_GT = _simd(0x44)
    F32X4_LE = _simd(0x45)
    F32X4_GE = _simd(0x46)

    F64X2_EQ = _simd(0x47)
    F64X2_NE = _simd(0x48)
    F64X2_LT = _simd(0x49)
    F64X2_GT = _simd(0x4A)
    F64X2_LE = _simd(0x4B)
    F64X2_GE = _simd(0x4C)

    V128_AND = _simd(0x4E)
    V128_AND_NOT = _simd(0x4F)
    V128_OR = _simd(0x50)
    V128_XOR = _simd(0x51)

    I8X16_NARROW_I16X8_S = _simd(0x65)
    I8X16_NARROW_I16X8_U = _simd(0x66)
    I8X16_SHL = _simd(0x6B)
    I8X16_SHR_S = _simd(0x6C)
    I8X16_SHR_U = _simd(0x6D)
    I8X16_ADD = _simd(0x6E)
    I8X16_ADD_SAT_S = _simd(0x6F)
    I8X16_ADD_SAT_U = _simd(0x70)
    I8X16_SUB = _simd(0x71)
    I8X16_SUB_SAT_S = _simd(0x72)
    I8X16_SUB_SAT_U = _simd(0x73)
    I8X16_MIN_S = _simd(0x76)
    I8X16_MIN_U = _simd(0x77)
    I8X16_MAX_S = _simd(0x78)
    I8X16_MAX_U = _simd(0x79)
    I8X16_ROUNDING_AVERAGE_U = _simd(0x7B)

    I16X8_NARROW_I32X4_S = _simd(0x85)
    I16X8_NARROW_I32X4_U = _simd(0x86)
    I16X8_SHL = _simd(0x8B)
    I16X8_SHR_S = _simd(0x8C)
    I16X8_SHR_U = _simd(0x8D)
    I16X8_ADD = _simd(0x8E)
    I16X8_ADD_SAT_S = _simd(0x8F)
    I16X8_ADD_SAT_U = _simd(0x90)
    I16X8_SUB = _simd(0x91)
    I16X8_SUB_SAT_S = _simd(0x92)
    I16X8_SUB_SAT_U = _simd(0x93)
    I16X8_MUL = _simd(0x95)
    I16X8_MIN_S = _simd(0x96)
    I16X8_MIN_U = _simd(0x97)
    I16X8_MAX_S = _simd(0x98)
    I16X8_MAX_U = _simd(0x99)
    I16X8_ROUNDING_AVERAGE_U = _simd(0x9B)

    I32X4_SHL = _simd(0xAB)
    I32X4_SHR_S = _simd(0xAC)
    I32X4_SHR_U = _simd(0xAD)
    I32X4_ADD = _simd(0xAE)
    I32X4_SUB = _simd(0xB1)
    I32X4_MUL = _simd(0xB5)
    I32X4_MIN_S = _simd(0xB6)
    I32X4_MIN_U = _simd(0xB7)
    I32X4_MAX_S = _simd(0xB8)
    I32X4_MAX_U = _simd(0xB9)

    I64X2_SHL = _simd(0xCB)
    I64X2_SHR_S = _simd(0xCC)
    I64X2_SHR_U = _simd(0xCD)
    I64X2_ADD = _simd(0xCE)
    I64X2_SUB = _simd(0xD1)
    I64X2_MUL = _simd(0xD5)

    F32X4_ADD = _simd(0xE4)
    F32X4_SUB = _simd(0xE5)
    F32X4_MUL = _simd(0xE6)
    F32X4_DIV = _simd(0xE7)
    F32X4_MIN = _simd(0xE8)
    F32X4_MAX = _simd(0xE9)
    F32X4_PMIN = _simd(0xEA)
    F32X4_PMAX = _simd(0xEB)

    F64X2_ADD = _simd(0xF0)
    F64X2_SUB = _simd(0xF1)
    F64X2_MUL = _simd(0xF2)
    F64X2_DIV = _simd(0xF3)
    F64X2_MIN = _simd(0xF4)
    F64X2_MAX = _simd(0xF5)
    F64X2_PMIN = _simd(0xF6)
    F64X2_PMAX = _simd(0xF7)

    I32X4_DOT_I16X8_S = _simd(0xBA)

    I16X8_Q15_MULR_SAT_S = _simd(130)
    I16X8_EXT_MUL_LOW_I8X16_S = _simd(156)
    I16X8_EXT_MUL_HIGH_I8X16_S = _simd(157)
    I16X8_EXT_MUL_LOW_I8X16_U = _simd(158)
    I16X8_EXT_MUL_HIGH_I8X16_U = _simd(159)
    I32X4_EXT_MUL_LOW_I16X8_S = _simd(188)
    I32X4_EXT_MUL_HIGH_I16X8_S = _simd(189)
    I32X4_EXT_MUL_LOW_I16X8_U = _simd(190)
    I32X4_EXT_MUL_HIGH_I16X8_U = _simd(191)
    I64X2_EXT_MUL_LOW_I32X4_S = _simd(220)
    I64X2_EXT_MUL_HIGH_I32X4_S = _simd(221)
    I64X2_EXT_MUL_LOW_I32X4_U = _simd(222)
    I64X2_EXT_MUL_HIGH_I32X4_U = _simd(223)

    def emit(self, encoder: Encoder, lane: int | None = None) -> None:
        """Write this operator; lane-replacing operators need `lane`."""
        _emit_op(self.value, self.name, encoder, lane)


@enum.unique
class UnaryOp(enum.Enum):
    """Operators that take one operand."""

    I32_EQZ = _op(0x45)
    I32_CLZ = _op(0x67)
    I32_CTZ = _op(0x68)
    I32_POPCNT = _op(0x69)

    I64_EQZ = _op(0x50)
    I64_CLZ = _op(0x79)
    I64_CTZ = _op(0x7A)
    I64_POPCNT = _op(0x7B)

    F32_ABS = _op(0x8B)
    F32_NEG = _op(0x8C)
    F32_CEIL = _op(0x8D)
    F32_FLOOR = _op(0x8E)
    F32_TRUNC = _op(0x8F)
    F32_NEAREST = _op(0x90)
    F32_SQRT = _op(0x91)

    F64_ABS = _op(0x99)
    F64_NEG = _op(0x9A)
    F64_CEIL = _op(0x9B)
    F64_FLOOR = _op(0x9C)
    F64_TRUNC = _op(0x9D)
    F64_NEAREST = _op(0x9E)
    F64_SQRT = _op(0x9F)

    I32_WRAP_I64 = _op(0xA7)
    I32_TRUNC_S_F32 = _op(0xA8)
    I32_TRUNC_U_F32 = _op(0xA9)
    I32_TRUNC_S_F64 = _op(0xAA)
    I32_TRUNC_U_F64 = _op(0xAB)
    I64_EXTEND_S_I32 = _op(0xAC)
    I64_EXTEND_U_I32 = _op(0xAD)
    I64_TRUNC_S_F32 = _op(0xAE)
    I64_TRUNC_U_F32 = _op(0xAF)
    I64_TRUNC_S_F64 = _op(0xB0)
    I64_TRUNC_U_F64 = _op(0xB1)

    F32_CONVERT_S_I32 = _op(0xB2)
    F32_CONVERT_U_I32 = _op(0xB3)
    F32_CONVERT_S_I64 = _op(0xB4)
    F32_CONVERT_U_I64 = _op(0xB5)
    F32_DEMOTE_F64 = _op(0xB6)
    F64_CONVERT_S_I32 = _op(0xB7)
    F64_CONVERT_U_I32 = _op(0xB8)
    F64_CONVERT_S_I64 = _op(0xB9)
    F64_CONVERT_U_I64 = _op(0xBA)
    F64_PROMOTE_F32 = _op(0xBB)

    I32_REINTERPRET_F32 = _op(0xBC)
    I64_REINTERPRET_F64 = _op(0xBD)
    F32_REINTERPRET_I32 = _op(0xBE)
    F64_REINTERPRET_I64 = _op(0xBF)

    I32_EXTEND8_S = _op(0xC0)
    I32_EXTEND16_S = _op(0xC1)
    I64_EXTEND8_S = _op(0xC2)
    I64_EXTEND16_S = _op(0xC3)
    I64_EXTEND32_S = _op(0xC4)

    I8X16_SPLAT = _simd(15)
    I16X8_SPLAT = _simd(16)
    I32X4_SPLAT = _simd(17)
    I64X2_SPLAT = _simd(18)
    F32X4_SPLAT = _simd(19)
    F64X2_SPLAT = _simd(20)
    I8X16_EXTRACT_LANE_S = _simd_lane(21)
    I8X16_EXTRACT_LANE_U = _simd_lane(22)
    I16X8_EXTRACT_LANE_S = _simd_lane(24)
    I16X8_EXTRACT_LANE_U = _simd_lane(25)
    I32X4_EXTRACT_LANE = _simd_lane(27)
    I64X2_EXTRACT_LANE = _simd_lane(29)
    F32X4_EXTRACT_LANE = _simd_lane(31)
    F64X2_EXTRACT_LANE = _simd_lane(33)

    V128_NOT = _simd(0x4D)
    V128_ANY_TRUE = _simd(0x53)

    I8X16_ABS = _simd(0x60)
    I8X16_POPCNT = _simd(98)
    I8X16_NEG = _simd(0x61)
    I8X16_ALL_TRUE = _simd(99)
    I8X16_BITMASK = _simd(0x64)

    I16X8_ABS = _simd(0x80)
    I16X8_NEG = _simd(0x81)
    I16X8_ALL_TRUE = _simd(131)
    I16X8_BITMASK = _simd(0x84)
    I16X8_WIDEN_LOW_I8X16_S = _simd(0x87)
    I16X8_WIDEN_HIGH_I8X16_S = _simd(0x88)
    I16X8_WIDEN_LOW_I8X16_U = _simd(0x89)
    I16X8_WIDEN_HIGH_I8X16_U = _simd(0x8A)

    I32X4_ABS = _simd(0xA0)
    I32X4_NEG = _simd(0xA1)
    I32X4_ALL_TRUE = _simd(163)
    I32X4_BITMASK = _simd(0xA4)
    I32X4_WIDEN_LOW_I16X8_S = _simd(0xA7)
    I32X4_WIDEN_HIGH_I16X8_S = _simd(0xA8)
    I32X4_WIDEN_LOW_I16X8_U = _simd(0xA9)
    I32X4_WIDEN_HIGH_I16X8_U = _simd(0xAA)

    I64X2_ABS = _simd(192)
    I64X2_NEG = _simd(193)
    I64X2_ALL_TRUE = _simd(195)
    I64X2_BITMASK = _simd(196)

    F32X4_ABS = _simd(224)
    F32X4_NEG = _simd(225)
    F32X4_SQRT = _simd(227)
    F32X4_CEIL = _simd(103)
    F32X4_FLOOR = _simd(104)
    F32X4_TRUNC = _simd(105)
    F32X4_NEAREST = _simd(106)

    F64X2_ABS = _simd(236)
    F64X2_NEG = _simd(237)
    F64X2_SQRT = _simd(239)
    F64X2_CEIL = _simd(116)
    F64X2_FLOOR = _simd(117)
    F64X2_TRUNC = _simd(122)
    F64X2_NEAREST = _simd(148)

    I32X4_TRUNC_SAT_F32X4_S = _simd(248)
    I32X4_TRUNC_SAT_F32X4_U = _simd(249)
    F32X4_CONVERT_I32X4_S = _simd(250)
    F32X4_CONVERT_I32X4_U = _simd(251)

    I32_TRUNC_S_SAT_F32 = _misc(0x00)
    I32_TRUNC_U_SAT_F32 = _misc(0x01)
    I32_TRUNC_S_SAT_F64 = _misc(0x02)
    I32_TRUNC_U_SAT_F64 = _misc(0x03)
    I64_TRUNC_S_SAT_F32 = _misc(0x04)
    I64_TRUNC_U_SAT_F32 = _misc(0x05)
    I64_TRUNC_S_SAT_F64 = _misc(0x06)
    I64_TRUNC_U_SAT_F64 = _misc(0x07)

    I16X8_EXT_ADD_PAIRWISE_I8X16_S = _simd(124)
    I16X8_EXT_ADD_PAIRWISE_I8X16_U = _simd(125)
    I32X4_EXT_ADD_PAIRWISE_I16X8_S = _simd(126)
    I32X4_EXT_ADD_PAIRWISE_I16X8_U = _simd(127)
    I64X2_EXTEND_LOW_I32X4_S = _simd(199)
    I64X2_EXTEND_HIGH_I32X4_S = _simd(200)
    I64X2_EXTEND_LOW_I32X4_U = _simd(201)
    I64X2_EXTEND_HIGH_I32X4_U = _simd(202)
    I32X4_TRUNC_SAT_F64X2_S_ZERO = _simd(252)
    I32X4_TRUNC_SAT_F64X2_U_ZERO = _simd(253)
    F64X2_CONVERT_LOW_I32X4_S = _simd(254)
    F64X2_CONVERT_LOW_I32X4_U = _simd(255)
    F32X4_DEMOTE_F64X2_ZERO = _simd(94)
    F64X2_PROMOTE_LOW_F32X4 = _simd(95)

    def emit(self, encoder: Encoder, lane: int | None = None) -> None:
        """Write this operator; lane-extracting operators need `lane`."""
        _emit_op(self.value, self.name, encoder, lane)