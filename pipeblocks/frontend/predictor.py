from amaranth import *

from transactron import TModule

from pipeblocks.params import GenParams
from pipeblocks.arch import Opcode, Extension

__all__ = ["StaticPredictor"]


class StaticPredictor(Elaboratable):
    """Static branch predictor

    The module looks at a raw fetched word only. Jumps with an immediate
    target (`JAL`, `C.J`, `C.JAL`) are always predicted taken. Conditional
    branches (`BRANCH`, `C.BEQZ`, `C.BNEZ`) are predicted taken when the
    offset is negative, which favours loops. `JALR` is never predicted, as its
    target depends on a register value.

    Attributes
    ----------
    instr: Signal(32), in
        Fetched word. For compressed instructions only the lower half is used.
    pc: Signal(xlen), in
        Address of the instruction.
    taken: Signal(1), out
        The next instruction is predicted to be fetched from `target`.
    target: Signal(xlen), out
        Predicted jump target.
    rvc: Signal(1), out
        The instruction is a compressed one.
    """

    def __init__(self, gen_params: GenParams) -> None:
        self.gen_params = gen_params
        xlen = gen_params.isa.xlen

        self.instr = Signal(32)
        self.pc = Signal(xlen)
        self.taken = Signal()
        self.target = Signal(xlen)
        self.rvc = Signal()

    def elaborate(self, platform):
        m = TModule()

        instr = self.instr
        xlen = self.gen_params.isa.xlen
        compressed = Extension.C in self.gen_params.isa.extensions

        is_jump = Signal()
        is_branch = Signal()
        offset = Signal(signed(xlen))

        bimm = Signal(signed(13))
        jimm = Signal(signed(21))
        m.d.comb += [
            bimm.eq(Cat(0, instr[8:12], instr[25:31], instr[7], instr[31])),
            jimm.eq(Cat(0, instr[21:31], instr[20], instr[12:20], instr[31])),
        ]

        with m.If(instr[0:2] == 0b11):
            with m.Switch(instr[2:7]):
                with m.Case(Opcode.JAL):
                    m.d.comb += is_jump.eq(1)
                    m.d.comb += offset.eq(jimm)
                with m.Case(Opcode.BRANCH):
                    m.d.comb += is_branch.eq(1)
                    m.d.comb += offset.eq(bimm)

        if compressed:
            cjimm = Signal(signed(12))
            cbimm = Signal(signed(9))
            m.d.comb += [
                cjimm.eq(Cat(0, instr[3:6], instr[11], instr[2], instr[7], instr[6], instr[9:11], instr[8], instr[12])),
                cbimm.eq(Cat(0, instr[3:5], instr[10:12], instr[2], instr[5:7], instr[12])),
                self.rvc.eq(instr[0:2] != 0b11),
            ]

            with m.If(instr[0:2] == 0b01):
                with m.Switch(instr[13:16]):
                    # C.JAL exists only on RV32
                    with m.Case(0b001, 0b101):
                        m.d.comb += is_jump.eq(1)
                        m.d.comb += offset.eq(cjimm)
                    with m.Case(0b110, 0b111):
                        m.d.comb += is_branch.eq(1)
                        m.d.comb += offset.eq(cbimm)

        m.d.comb += self.target.eq(self.pc + offset)

        # misaligned targets are left to execute-1
        misaligned = self.target[0:1] if compressed else self.target[0:2]
        m.d.comb += self.taken.eq((is_jump | (is_branch & offset[-1])) & ~misaligned.any())

        return m
