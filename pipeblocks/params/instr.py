"""
Value-castable builders of RISC-V instruction words.

The builders accept Python integers, enum members or Amaranth values as
fields, so the same classes are used to assemble test programs and to
describe instruction rewriting in hardware (e.g. compressed instruction
expansion).
"""

from dataclasses import dataclass
from enum import Enum

from amaranth.hdl import ValueCastable
from amaranth import *

from amaranth_types import ValueLike
from pipeblocks.arch import Opcode, Registers, Funct3, Funct12


__all__ = [
    "RISCVInstr",
    "RTypeInstr",
    "ITypeInstr",
    "STypeInstr",
    "BTypeInstr",
    "UTypeInstr",
    "JTypeInstr",
    "IllegalInstr",
    "EBreakInstr",
]


@dataclass(frozen=True)
class FieldSpec:
    """Placement of a single instruction field.

    Attributes
    ----------
    name: str
        Name of the field.
    slices: tuple[tuple[int, int], ...]
        Consecutive slices of the field value, lowest first, as pairs of
        (position in the instruction word, width).
    signed: bool
        Whether the field encodes a signed value.
    skip: int
        Number of least significant bits of the value which are implied
        and not encoded (e.g. one for branch offsets).
    """

    name: str
    slices: tuple[tuple[int, int], ...]
    signed: bool = False
    skip: int = 0

    @property
    def width(self) -> int:
        return sum(width for _, width in self.slices) + self.skip

    def cast(self, value: ValueLike) -> Value:
        shape = Shape(self.width, self.signed)
        if isinstance(value, Enum):
            return Const(value.value, shape)
        if isinstance(value, int):
            return Const(value, shape)

        val = Value.cast(value)
        if len(val) != self.width:
            raise AttributeError(f"Field {self.name}: expected width {self.width}, given {len(val)}")
        if val.shape().signed and not self.signed:
            raise AttributeError(f"Field {self.name}: signed value given for an unsigned field")
        return val

    def place(self, value: Value) -> list[tuple[int, Value]]:
        parts = []
        offset = self.skip
        for base, width in self.slices:
            parts.append((base, value[offset : offset + width]))
            offset += width
        return parts


_opcode = FieldSpec("opcode", ((0, 7),))
_rd = FieldSpec("rd", ((7, 5),))
_funct3 = FieldSpec("funct3", ((12, 3),))
_rs1 = FieldSpec("rs1", ((15, 5),))
_rs2 = FieldSpec("rs2", ((20, 5),))
_funct7 = FieldSpec("funct7", ((25, 7),))


class RISCVInstr(ValueCastable):
    """Base class of instruction builders.

    Subclasses list their fields in `fields`; every field must be set
    in the constructor.
    """

    fields: tuple[FieldSpec, ...] = (_opcode,)

    def __init__(self, opcode: Opcode, **kwargs: ValueLike):
        self._values: dict[str, Value] = {"opcode": Cat(C(0b11, 2), C(opcode.value, 5))}
        for spec in self.fields:
            if spec.name == "opcode":
                continue
            self._values[spec.name] = spec.cast(kwargs[spec.name])

    def __getattr__(self, name: str) -> Value:
        try:
            return self.__dict__["_values"][name]
        except KeyError:
            raise AttributeError(name) from None

    def encode(self) -> int:
        return Const.cast(self.as_value()).value

    def as_value(self) -> Value:
        parts: list[tuple[int, Value]] = []
        for spec in self.fields:
            parts += spec.place(self._values[spec.name])
        parts.sort(key=lambda part: part[0])
        return Cat(part for _, part in parts)

    def shape(self) -> Shape:
        return unsigned(32)


class RTypeInstr(RISCVInstr):
    fields = (_opcode, _rd, _funct3, _rs1, _rs2, _funct7)

    def __init__(
        self, opcode: Opcode, funct3: ValueLike, funct7: ValueLike, rd: ValueLike, rs1: ValueLike, rs2: ValueLike
    ):
        super().__init__(opcode, funct3=funct3, funct7=funct7, rd=rd, rs1=rs1, rs2=rs2)


class ITypeInstr(RISCVInstr):
    fields = (_opcode, _rd, _funct3, _rs1, FieldSpec("imm", ((20, 12),), signed=True))

    def __init__(self, opcode: Opcode, funct3: ValueLike, rd: ValueLike, rs1: ValueLike, imm: ValueLike):
        super().__init__(opcode, funct3=funct3, rd=rd, rs1=rs1, imm=imm)


class STypeInstr(RISCVInstr):
    fields = (_opcode, _funct3, _rs1, _rs2, FieldSpec("imm", ((7, 5), (25, 7)), signed=True))

    def __init__(self, opcode: Opcode, funct3: ValueLike, rs1: ValueLike, rs2: ValueLike, imm: ValueLike):
        super().__init__(opcode, funct3=funct3, rs1=rs1, rs2=rs2, imm=imm)


class BTypeInstr(RISCVInstr):
    fields = (_opcode, _funct3, _rs1, _rs2, FieldSpec("imm", ((8, 4), (25, 6), (7, 1), (31, 1)), True, 1))

    def __init__(self, opcode: Opcode, funct3: ValueLike, rs1: ValueLike, rs2: ValueLike, imm: ValueLike):
        super().__init__(opcode, funct3=funct3, rs1=rs1, rs2=rs2, imm=imm)


class UTypeInstr(RISCVInstr):
    fields = (_opcode, _rd, FieldSpec("imm", ((12, 20),), True, 12))

    def __init__(self, opcode: Opcode, rd: ValueLike, imm: ValueLike):
        super().__init__(opcode, rd=rd, imm=imm)


class JTypeInstr(RISCVInstr):
    fields = (_opcode, _rd, FieldSpec("imm", ((21, 10), (20, 1), (12, 8), (31, 1)), True, 1))

    def __init__(self, opcode: Opcode, rd: ValueLike, imm: ValueLike):
        super().__init__(opcode, rd=rd, imm=imm)


class IllegalInstr(RISCVInstr):
    fields = (_opcode, FieldSpec("illegal", ((7, 25),)))

    def __init__(self):
        super().__init__(Opcode.RESERVED, illegal=2**25 - 1)


class EBreakInstr(ITypeInstr):
    def __init__(self):
        super().__init__(
            opcode=Opcode.SYSTEM, rd=Registers.ZERO, funct3=Funct3.PRIV, rs1=Registers.ZERO, imm=Funct12.EBREAK
        )
