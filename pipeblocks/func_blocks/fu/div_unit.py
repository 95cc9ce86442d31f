from enum import IntFlag, auto
from collections.abc import Sequence

from amaranth import *

from pipeblocks.params import GenParams
from pipeblocks.arch import OpType, Funct3
from pipeblocks.interface.layouts import CommonLayoutFields
from transactron import TModule
from transactron.lib import logging

from pipeblocks.func_blocks.fu.common.fu_decoder import DecoderManager

from transactron.utils import OneHotSwitch
from pipeblocks.func_blocks.fu.division.long_division import LongDivider

__all__ = ["DivUnit", "DivFn"]


log = logging.HardwareLogger("func_blocks.fu.div")


class DivFn(DecoderManager):
    class Fn(IntFlag):
        DIV = auto()
        DIVU = auto()
        REM = auto()
        REMU = auto()

    def get_instructions(self) -> Sequence[tuple]:
        return [
            (self.Fn.DIV, OpType.DIV_REM, Funct3.DIV),
            (self.Fn.DIVU, OpType.DIV_REM, Funct3.DIVU),
            (self.Fn.REM, OpType.DIV_REM, Funct3.REM),
            (self.Fn.REMU, OpType.DIV_REM, Funct3.REMU),
        ]


class DivUnit(Elaboratable):
    """
    Signed and unsigned division and remainder. Division by zero and
    signed overflow give the results required by the RISC-V M extension.

    The interface is the same as in `MulUnit`.
    """

    def __init__(self, gen_params: GenParams, ipc: int = 4, div_fn=DivFn()):
        self.gen_params = gen_params
        self.ipc = ipc
        self.div_fn = div_fn

        xlen = gen_params.isa.xlen

        self.exec_fn = Signal(gen_params.get(CommonLayoutFields).exec_fn_layout)
        self.i1 = Signal(xlen)
        self.i2 = Signal(xlen)
        self.issue = Signal()
        self.ready = Signal()
        self.done = Signal()
        self.accept = Signal()
        self.result = Signal(xlen)

    def elaborate(self, platform):
        m = TModule()

        m.submodules.decoder = decoder = self.div_fn.get_decoder(self.gen_params)
        m.submodules.divider = divider = LongDivider(self.gen_params, self.ipc)

        xlen = self.gen_params.isa.xlen
        sign_bit = xlen - 1  # position of sign bit

        m.d.comb += decoder.exec_fn.eq(self.exec_fn)
        i1, i2 = self.i1, self.i2

        flip_sign = Signal(1)  # if result is negative number
        rem_res = Signal(1)  # flag whether we want quotient or remainder

        saved_flip_sign = Signal(1)
        saved_rem_res = Signal(1)

        dividend = Signal(xlen)
        divisor = Signal(xlen)

        def _abs(s: Value) -> Value:
            return Mux(s.as_signed() < 0, -s, s)

        with OneHotSwitch(m, decoder.decode_fn) as OneHotCase:
            with OneHotCase(DivFn.Fn.DIVU):
                m.d.comb += flip_sign.eq(0)
                m.d.comb += rem_res.eq(0)
                m.d.comb += dividend.eq(i1)
                m.d.comb += divisor.eq(i2)
            with OneHotCase(DivFn.Fn.DIV):
                # quotient is negative if divisor and dividend have different signs
                m.d.comb += flip_sign.eq(i1[sign_bit] ^ i2[sign_bit])
                m.d.comb += rem_res.eq(0)
                m.d.comb += dividend.eq(_abs(i1))
                m.d.comb += divisor.eq(_abs(i2))
            with OneHotCase(DivFn.Fn.REMU):
                m.d.comb += flip_sign.eq(0)
                m.d.comb += rem_res.eq(1)
                m.d.comb += dividend.eq(i1)
                m.d.comb += divisor.eq(i2)
            with OneHotCase(DivFn.Fn.REM):
                # sign of remainder is equal to sign of dividend
                m.d.comb += flip_sign.eq(i1[sign_bit])
                m.d.comb += rem_res.eq(1)
                m.d.comb += dividend.eq(_abs(i1))
                m.d.comb += divisor.eq(_abs(i2))

        m.d.comb += [
            divider.issue.eq(self.issue),
            divider.dividend.eq(dividend),
            divider.divisor.eq(divisor),
            divider.accept.eq(self.accept),
            self.ready.eq(divider.ready),
            self.done.eq(divider.done),
        ]

        with m.If(self.issue & self.ready):
            m.d.sync += saved_flip_sign.eq(flip_sign)
            m.d.sync += saved_rem_res.eq(rem_res)
            log.debug(m, 1, "issue fn={} i1=0x{:08x} i2=0x{:08x}", decoder.decode_fn, i1, i2)

        result = Mux(saved_rem_res, divider.remainder, divider.quotient)
        # change sign but only if it was requested and sign is not correct
        flip_sig = Mux(saved_flip_sign, ~result[sign_bit], 0)
        m.d.comb += self.result.eq(Mux(flip_sig, -result, result))

        return m
