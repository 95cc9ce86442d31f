from amaranth import *

from pipeblocks.func_blocks.fu.unsigned_multiplication.common import MulBaseUnsigned
from pipeblocks.params import GenParams
from transactron import TModule

__all__ = ["DirectUnsignedMul"]


class DirectUnsignedMul(MulBaseUnsigned):
    """
    Module with @see{MulBaseUnsigned} interface computing the product in a single
    clock cycle, leaving the choice of the multiplier structure to the synthesis tool.
    """

    def __init__(self, gen_params: GenParams):
        super().__init__(gen_params)

    def elaborate(self, platform):
        m = TModule()

        res = Signal.like(self.o)
        valid = Signal()

        m.d.comb += self.ready.eq(~valid)
        m.d.comb += self.done.eq(valid)
        m.d.comb += self.o.eq(res)

        with m.If(self.issue & self.ready):
            m.d.sync += res.eq(self.i1 * self.i2)
            m.d.sync += valid.eq(1)

        with m.If(self.done & self.accept):
            m.d.sync += valid.eq(0)

        return m
