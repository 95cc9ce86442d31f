from abc import abstractmethod
from amaranth import *

from pipeblocks.params import GenParams
from transactron import TModule

__all__ = ["MulBaseUnsigned"]


class MulBaseUnsigned(Elaboratable):
    """
    Abstract module creating common interface of unsigned multiplication module.

    A computation is started by asserting `issue` while `ready` is set. The
    product is presented on `o` with `done` set until `accept` is asserted.

    Attributes
    ----------
    issue: Signal(1), in
        Request a computation of `i1 * i2`.
    i1: Signal(xlen), in
    i2: Signal(xlen), in
    ready: Signal(1), out
        The unit can take a new computation.
    done: Signal(1), out
        The product is available.
    accept: Signal(1), in
        The product was consumed.
    o: Signal(2 * xlen), out
        Product of the inputs.
    """

    def __init__(self, gen_params: GenParams):
        """
        Parameters
        ----------
        gen_params: GenParams
            Core generation parameters.
        """
        self.gen_params = gen_params
        xlen = gen_params.isa.xlen

        self.issue = Signal()
        self.i1 = Signal(xlen)
        self.i2 = Signal(xlen)
        self.ready = Signal()
        self.done = Signal()
        self.accept = Signal()
        self.o = Signal(2 * xlen)

    @abstractmethod
    def elaborate(self, platform) -> TModule:
        raise NotImplementedError()
