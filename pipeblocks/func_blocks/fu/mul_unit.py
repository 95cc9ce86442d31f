from enum import IntFlag, auto
from collections.abc import Sequence

from amaranth import *

from pipeblocks.func_blocks.fu.unsigned_multiplication.common import MulBaseUnsigned
from pipeblocks.func_blocks.fu.unsigned_multiplication.shift import ShiftUnsignedMul
from pipeblocks.func_blocks.fu.unsigned_multiplication.direct import DirectUnsignedMul
from pipeblocks.params import GenParams
from pipeblocks.params.configurations import MulType
from pipeblocks.arch import OpType, Funct3
from pipeblocks.interface.layouts import CommonLayoutFields
from transactron import TModule
from transactron.lib import logging

from pipeblocks.func_blocks.fu.common.fu_decoder import DecoderManager


__all__ = ["MulUnit", "MulFn", "MulType"]

from transactron.utils import OneHotSwitch


log = logging.HardwareLogger("func_blocks.fu.mul")


class MulFn(DecoderManager):
    """
    Hot wire enum of 4 different multiplication operations.
    """

    class Fn(IntFlag):
        MUL = auto()  # Lower part multiplication
        MULH = auto()  # Upper part multiplication signed×signed
        MULHU = auto()  # Upper part multiplication unsigned×unsigned
        MULHSU = auto()  # Upper part multiplication signed×unsigned

    def get_instructions(self) -> Sequence[tuple]:
        return [
            (self.Fn.MUL, OpType.MUL, Funct3.MUL),
            (self.Fn.MULH, OpType.MUL, Funct3.MULH),
            (self.Fn.MULHU, OpType.MUL, Funct3.MULHU),
            (self.Fn.MULHSU, OpType.MUL, Funct3.MULHSU),
        ]


class MulUnit(Elaboratable):
    """
    Module responsible for handling every kind of multiplication based on selected unsigned integer multiplication
    module.

    Attributes
    ----------
    exec_fn: Signal(exec_fn_layout), in
        Decoded operation, sampled on `issue`.
    i1: Signal(xlen), in
    i2: Signal(xlen), in
    issue: Signal(1), in
        Start the computation. Ignored when `ready` is not set.
    ready: Signal(1), out
    done: Signal(1), out
        `result` is valid. Stays set until `accept`.
    accept: Signal(1), in
    result: Signal(xlen), out
    """

    def __init__(self, gen_params: GenParams, mul_type: MulType, mul_fn=MulFn()):
        """
        Parameters
        ----------
        gen_params: GenParams
            Core generation parameters.
        mul_type: MulType
            Unsigned multiplier implementation.
        """
        self.gen_params = gen_params
        self.mul_type = mul_type
        self.mul_fn = mul_fn

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

        m.submodules.decoder = decoder = self.mul_fn.get_decoder(self.gen_params)

        multiplier: MulBaseUnsigned
        # Selecting unsigned integer multiplication module
        match self.mul_type:
            case MulType.SHIFT_MUL:
                m.submodules.multiplier = multiplier = ShiftUnsignedMul(self.gen_params)
            case MulType.DIRECT_MUL:
                m.submodules.multiplier = multiplier = DirectUnsignedMul(self.gen_params)

        xlen = self.gen_params.isa.xlen
        sign_bit = xlen - 1  # position of sign bit

        i1, i2 = self.i1, self.i2

        value1 = Signal(xlen)  # input value for multiplier submodule
        value2 = Signal(xlen)  # input value for multiplier submodule
        negative_res = Signal(1)  # if result is negative number
        high_res = Signal(1)  # if result should contain upper part of result

        saved_negative_res = Signal(1)
        saved_high_res = Signal(1)

        m.d.comb += decoder.exec_fn.eq(self.exec_fn)

        # The multiplier works on unsigned numbers, so the operands are converted to nonnegative ones
        # and the sign of the result is applied afterwards.
        with OneHotSwitch(m, decoder.decode_fn) as OneHotCase:
            with OneHotCase(MulFn.Fn.MUL):
                # Only the lower part is needed, which is the same for unsigned and U2 interpretation.
                m.d.comb += negative_res.eq(0)
                m.d.comb += high_res.eq(0)
                m.d.comb += value1.eq(i1)
                m.d.comb += value2.eq(i2)
            with OneHotCase(MulFn.Fn.MULH):
                m.d.comb += negative_res.eq(i1[sign_bit] ^ i2[sign_bit])
                m.d.comb += high_res.eq(1)
                m.d.comb += value1.eq(Mux(i1[sign_bit], -i1, i1))
                m.d.comb += value2.eq(Mux(i2[sign_bit], -i2, i2))
            with OneHotCase(MulFn.Fn.MULHU):
                m.d.comb += negative_res.eq(0)
                m.d.comb += high_res.eq(1)
                m.d.comb += value1.eq(i1)
                m.d.comb += value2.eq(i2)
            with OneHotCase(MulFn.Fn.MULHSU):
                m.d.comb += negative_res.eq(i1[sign_bit])
                m.d.comb += high_res.eq(1)
                m.d.comb += value1.eq(Mux(i1[sign_bit], -i1, i1))
                m.d.comb += value2.eq(i2)

        m.d.comb += [
            multiplier.issue.eq(self.issue),
            multiplier.i1.eq(value1),
            multiplier.i2.eq(value2),
            multiplier.accept.eq(self.accept),
            self.ready.eq(multiplier.ready),
            self.done.eq(multiplier.done),
        ]

        with m.If(self.issue & self.ready):
            m.d.sync += saved_negative_res.eq(negative_res)
            m.d.sync += saved_high_res.eq(high_res)
            log.debug(m, 1, "issue fn={} i1=0x{:08x} i2=0x{:08x}", decoder.decode_fn, i1, i2)

        sign_result = Mux(saved_negative_res, -multiplier.o, multiplier.o)  # changing sign of result
        m.d.comb += self.result.eq(Mux(saved_high_res, sign_result[xlen:], sign_result[:xlen]))

        return m
