from amaranth import *

from enum import IntFlag, auto

from typing import Sequence

from pipeblocks.params import GenParams
from pipeblocks.arch import Funct3, OpType, Extension
from transactron.utils import OneHotSwitch
from pipeblocks.func_blocks.fu.common.fu_decoder import DecoderManager

__all__ = ["JumpBranchFn", "JumpBranch"]


class JumpBranchFn(DecoderManager):
    class Fn(IntFlag):
        JAL = auto()
        JALR = auto()
        AUIPC = auto()
        BEQ = auto()
        BNE = auto()
        BLT = auto()
        BLTU = auto()
        BGE = auto()
        BGEU = auto()

    def get_instructions(self) -> Sequence[tuple]:
        return [
            (self.Fn.BEQ, OpType.BRANCH, Funct3.BEQ),
            (self.Fn.BNE, OpType.BRANCH, Funct3.BNE),
            (self.Fn.BLT, OpType.BRANCH, Funct3.BLT),
            (self.Fn.BLTU, OpType.BRANCH, Funct3.BLTU),
            (self.Fn.BGE, OpType.BRANCH, Funct3.BGE),
            (self.Fn.BGEU, OpType.BRANCH, Funct3.BGEU),
            (self.Fn.JAL, OpType.JAL),
            (self.Fn.JALR, OpType.JALR, Funct3.JALR),
            (self.Fn.AUIPC, OpType.AUIPC),
        ]


class JumpBranch(Elaboratable):
    """
    Combinational branch comparator and control transfer target calculation.

    Attributes
    ----------
    in1: Signal(xlen), in
        First source operand.
    in2: Signal(xlen), in
        Second source operand.
    in_pc: Signal(xlen), in
    in_imm: Signal(xlen), in
        Sign extended immediate.
    in_rvc: Signal(1), in
        Set for compressed instructions.
    jmp_addr: Signal(xlen), out
        Target address of the jump or branch.
    reg_res: Signal(xlen), out
        Link address, or the AUIPC result.
    taken: Signal(1), out
        The control transfer happens.
    next_pc: Signal(xlen), out
        Address of the instruction executed after this one.
    """

    def __init__(self, gen_params: GenParams, fn=JumpBranchFn()):
        self.gen_params = gen_params

        xlen = gen_params.isa.xlen
        self.fn = fn.get_function()
        self.in1 = Signal(xlen)
        self.in2 = Signal(xlen)
        self.in_pc = Signal(xlen)
        self.in_imm = Signal(xlen)
        self.in_rvc = Signal()
        self.jmp_addr = Signal(xlen)
        self.reg_res = Signal(xlen)
        self.taken = Signal()
        self.next_pc = Signal(xlen)

    def elaborate(self, platform):
        m = Module()

        branch_target = Signal(self.gen_params.isa.xlen)
        seq_pc = Signal(self.gen_params.isa.xlen)

        m.d.comb += branch_target.eq(self.in_pc + self.in_imm)

        m.d.comb += seq_pc.eq(self.in_pc + 4)
        if Extension.C in self.gen_params.isa.extensions:
            with m.If(self.in_rvc):
                m.d.comb += seq_pc.eq(self.in_pc + 2)

        m.d.comb += self.reg_res.eq(seq_pc)

        with OneHotSwitch(m, self.fn) as OneHotCase:
            with OneHotCase(JumpBranchFn.Fn.JAL):
                m.d.comb += self.jmp_addr.eq(branch_target)
                m.d.comb += self.taken.eq(1)
            with OneHotCase(JumpBranchFn.Fn.JALR):
                # lowest bit of the sum is cleared
                m.d.comb += self.jmp_addr.eq(self.in1 + self.in_imm)
                m.d.comb += self.jmp_addr[0].eq(0)
                m.d.comb += self.taken.eq(1)
            with OneHotCase(JumpBranchFn.Fn.AUIPC):
                m.d.comb += self.reg_res.eq(branch_target)
            with OneHotCase(JumpBranchFn.Fn.BEQ):
                m.d.comb += self.jmp_addr.eq(branch_target)
                m.d.comb += self.taken.eq(self.in1 == self.in2)
            with OneHotCase(JumpBranchFn.Fn.BNE):
                m.d.comb += self.jmp_addr.eq(branch_target)
                m.d.comb += self.taken.eq(self.in1 != self.in2)
            with OneHotCase(JumpBranchFn.Fn.BLT):
                m.d.comb += self.jmp_addr.eq(branch_target)
                m.d.comb += self.taken.eq(self.in1.as_signed() < self.in2.as_signed())
            with OneHotCase(JumpBranchFn.Fn.BLTU):
                m.d.comb += self.jmp_addr.eq(branch_target)
                m.d.comb += self.taken.eq(self.in1.as_unsigned() < self.in2.as_unsigned())
            with OneHotCase(JumpBranchFn.Fn.BGE):
                m.d.comb += self.jmp_addr.eq(branch_target)
                m.d.comb += self.taken.eq(self.in1.as_signed() >= self.in2.as_signed())
            with OneHotCase(JumpBranchFn.Fn.BGEU):
                m.d.comb += self.jmp_addr.eq(branch_target)
                m.d.comb += self.taken.eq(self.in1.as_unsigned() >= self.in2.as_unsigned())

        m.d.comb += self.next_pc.eq(Mux(self.taken, self.jmp_addr, seq_pc))

        return m
