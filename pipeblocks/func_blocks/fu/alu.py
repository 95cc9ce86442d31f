from typing import Sequence
from amaranth import *

from transactron import TModule

from pipeblocks.arch import OpType, Funct3, Funct7
from pipeblocks.params import GenParams
from transactron.utils import OneHotSwitch

from pipeblocks.func_blocks.fu.common.fu_decoder import DecoderManager
from enum import IntFlag, auto

__all__ = ["AluFn", "Alu"]


class AluFn(DecoderManager):
    class Fn(IntFlag):
        ADD = auto()  # Addition
        XOR = auto()  # Bitwise xor
        OR = auto()  # Bitwise or
        AND = auto()  # Bitwise and
        SUB = auto()  # Subtraction
        SLT = auto()  # Set if less than (signed)
        SLTU = auto()  # Set if less than (unsigned)
        SLL = auto()  # Logic left shift
        SRL = auto()  # Logic right shift
        SRA = auto()  # Arithmetic right shift

    def get_instructions(self) -> Sequence[tuple]:
        return [
            (self.Fn.ADD, OpType.ARITHMETIC, Funct3.ADD, Funct7.ADD),
            (self.Fn.SUB, OpType.ARITHMETIC, Funct3.ADD, Funct7.SUB),
            (self.Fn.SLT, OpType.COMPARE, Funct3.SLT),
            (self.Fn.SLTU, OpType.COMPARE, Funct3.SLTU),
            (self.Fn.XOR, OpType.LOGIC, Funct3.XOR),
            (self.Fn.OR, OpType.LOGIC, Funct3.OR),
            (self.Fn.AND, OpType.LOGIC, Funct3.AND),
            (self.Fn.SLL, OpType.SHIFT, Funct3.SLL),
            (self.Fn.SRL, OpType.SHIFT, Funct3.SR, Funct7.SL),
            (self.Fn.SRA, OpType.SHIFT, Funct3.SR, Funct7.SA),
        ]


class Alu(Elaboratable):
    """
    Single cycle integer ALU, shifts included.

    Attributes
    ----------
    fn: Signal(AluFn.Fn), in
        One-hot selected operation.
    in1: Signal(xlen), in
    in2: Signal(xlen), in
    out: Signal(xlen), out
    """

    def __init__(self, gen_params: GenParams, alu_fn=AluFn()):
        self.gen_params = gen_params

        self.fn = alu_fn.get_function()
        self.in1 = Signal(gen_params.isa.xlen)
        self.in2 = Signal(gen_params.isa.xlen)

        self.out = Signal(gen_params.isa.xlen)

    def elaborate(self, platform):
        m = TModule()

        xlen = self.gen_params.isa.xlen
        xlen_log = self.gen_params.isa.xlen_log

        with OneHotSwitch(m, self.fn) as OneHotCase:
            with OneHotCase(AluFn.Fn.ADD):
                m.d.comb += self.out.eq(self.in1 + self.in2)
            with OneHotCase(AluFn.Fn.XOR):
                m.d.comb += self.out.eq(self.in1 ^ self.in2)
            with OneHotCase(AluFn.Fn.OR):
                m.d.comb += self.out.eq(self.in1 | self.in2)
            with OneHotCase(AluFn.Fn.AND):
                m.d.comb += self.out.eq(self.in1 & self.in2)
            with OneHotCase(AluFn.Fn.SUB):
                m.d.comb += self.out.eq(self.in1 - self.in2)
            with OneHotCase(AluFn.Fn.SLT):
                m.d.comb += self.out.eq(self.in1.as_signed() < self.in2.as_signed())
            with OneHotCase(AluFn.Fn.SLTU):
                m.d.comb += self.out.eq(self.in1 < self.in2)
            with OneHotCase(AluFn.Fn.SLL):
                m.d.comb += self.out.eq(self.in1 << self.in2[0:xlen_log])
            with OneHotCase(AluFn.Fn.SRL):
                m.d.comb += self.out.eq(self.in1 >> self.in2[0:xlen_log])
            with OneHotCase(AluFn.Fn.SRA):
                m.d.comb += self.out.eq(Cat(self.in1, self.in1[xlen - 1].replicate(xlen)) >> self.in2[0:xlen_log])

        return m
