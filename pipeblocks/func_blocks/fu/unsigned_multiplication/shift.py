from amaranth import *

from pipeblocks.func_blocks.fu.unsigned_multiplication.common import MulBaseUnsigned
from pipeblocks.params import GenParams
from transactron import TModule

__all__ = ["ShiftUnsignedMul"]


class ShiftUnsignedMul(MulBaseUnsigned):
    """
    Module with @see{MulBaseUnsigned} interface performing cheap multi clock cycle multiplication using
    Russian Peasants Algorithm.
    """

    def __init__(self, gen_params: GenParams):
        super().__init__(gen_params)

    def elaborate(self, platform):
        m = TModule()
        xlen = self.gen_params.isa.xlen

        res = Signal(unsigned(xlen * 2))

        i1 = Signal(unsigned(xlen * 2))
        i2 = Signal(unsigned(xlen))
        busy = Signal()

        m.d.comb += self.ready.eq(~busy)
        m.d.comb += self.done.eq(busy & ~i2.any())
        m.d.comb += self.o.eq(res)

        with m.If(self.issue & self.ready):
            m.d.sync += res.eq(0)
            m.d.sync += i1.eq(self.i1)
            m.d.sync += i2.eq(self.i2)
            m.d.sync += busy.eq(1)

        with m.If(self.done & self.accept):
            m.d.sync += busy.eq(0)

        with m.If(busy & i2.any()):
            with m.If(i2[0]):
                m.d.sync += res.eq(res + i1)
            m.d.sync += i1.eq(i1 << 1)
            m.d.sync += i2.eq(i2 >> 1)

        return m
